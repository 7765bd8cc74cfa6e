"""
HTML Normalization
==================

Converts feed HTML fragments into readable plain text:

- tags are stripped, block elements become paragraphs separated by a
  blank line
- anchors become bracketed reference links (``[text][1]``) with the
  reference list appended after the text (``[1] https://...``)
- list items are kept on consecutive lines, ``<pre>`` keeps its whitespace
"""

import re
import html
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from bs4.element import CData, Declaration, Doctype, ProcessingInstruction

from ..utils.logging import get_logger_for_component


class HtmlNormalizer:
    """Plain text renderer for HTML fragments found in RSS/Atom entries."""

    # Elements removed together with their content
    DANGEROUS_ELEMENTS = {
        "script",
        "style",
        "iframe",
        "embed",
        "object",
        "applet",
        "form",
        "input",
        "button",
        "select",
        "textarea",
        "meta",
        "link",
        "base",
        "noscript",
        "canvas",
        "head",
        "title",
    }

    # Elements that start and end a paragraph
    BLOCK_ELEMENTS = {
        "p",
        "div",
        "section",
        "article",
        "aside",
        "header",
        "footer",
        "main",
        "nav",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "blockquote",
        "ul",
        "ol",
        "dl",
        "dt",
        "dd",
        "table",
        "thead",
        "tbody",
        "tfoot",
        "tr",
        "figure",
        "figcaption",
        "hr",
        "address",
        "details",
        "summary",
    }

    # Non-content node types skipped while walking
    SKIPPED_STRINGS = (Comment, CData, ProcessingInstruction, Declaration, Doctype)

    WHITESPACE_PATTERN = re.compile(r"\s+")
    REPEATED_SPACES_PATTERN = re.compile(r" {2,}")
    TAG_PATTERN = re.compile(r"<[^>]+>")
    JAVASCRIPT_URL_PATTERN = re.compile(r"^\s*javascript:", re.IGNORECASE)

    def __init__(self, parser: str = "html.parser"):
        self.parser = parser
        self.logger = get_logger_for_component("html_text")

    def normalize(self, html_content: Optional[str]) -> str:
        """Convert an HTML fragment to plain text.

        Args:
            html_content: Raw HTML (or plain text) from a feed field

        Returns:
            Normalized plain text, empty string for empty input
        """
        if not html_content or not html_content.strip():
            return ""

        try:
            soup = BeautifulSoup(html_content, self.parser)

            for element in soup(self.DANGEROUS_ELEMENTS):
                element.decompose()

            renderer = _Renderer(self)
            renderer.walk(soup)
            return renderer.result()

        except Exception as e:
            self.logger.warning(f"Failed to normalize HTML, using fallback: {e}")
            return self._extract_text_fallback(html_content)

    def _extract_text_fallback(self, html_content: str) -> str:
        """Regex tag stripping for content the HTML parser chokes on."""
        text = self.TAG_PATTERN.sub(" ", html_content)
        text = html.unescape(text)
        return self.WHITESPACE_PATTERN.sub(" ", text).strip()

    def is_followable_link(self, href: Optional[str]) -> bool:
        """Anchors worth listing as a reference."""
        if not href or not href.strip():
            return False
        href = href.strip()
        if href.startswith("#"):
            return False
        return not self.JAVASCRIPT_URL_PATTERN.match(href)


class _Renderer:
    """Single-use tree walker collecting paragraphs and link references."""

    def __init__(self, normalizer: HtmlNormalizer):
        self.normalizer = normalizer
        # (text, tight): tight blocks are joined to a previous tight block
        # with a single newline instead of a blank line
        self.blocks: List[Tuple[str, bool]] = []
        self.inline: List[str] = []
        self.links: List[str] = []
        self._tight = False

    def walk(self, node) -> None:
        for child in list(node.children):
            if isinstance(child, NavigableString):
                if isinstance(child, HtmlNormalizer.SKIPPED_STRINGS):
                    continue
                self.inline.append(
                    HtmlNormalizer.WHITESPACE_PATTERN.sub(" ", str(child))
                )
            elif isinstance(child, Tag):
                self._walk_tag(child)

    def _walk_tag(self, tag: Tag) -> None:
        name = tag.name.lower() if tag.name else ""

        if name == "br":
            self.inline.append("\n")
        elif name == "a":
            self._walk_anchor(tag)
        elif name == "li":
            self.flush()
            self._tight = True
            self.inline.append("* ")
            self.walk(tag)
            self.flush()
            self._tight = False
        elif name == "pre":
            self.flush()
            text = tag.get_text()
            if text.strip():
                self.blocks.append((text.strip("\n"), False))
        elif name in HtmlNormalizer.BLOCK_ELEMENTS:
            self.flush()
            self.walk(tag)
            self.flush()
        elif name == "img":
            alt = (tag.get("alt") or "").strip()
            if alt:
                self.inline.append(alt)
        else:
            self.walk(tag)

    def _walk_anchor(self, tag: Tag) -> None:
        start = len(self.inline)
        self.walk(tag)

        href = tag.get("href")
        if not self.normalizer.is_followable_link(href):
            return

        href = href.strip()
        label = "".join(self.inline[start:]).strip()
        del self.inline[start:]

        if href in self.links:
            number = self.links.index(href) + 1
        else:
            self.links.append(href)
            number = len(self.links)

        self.inline.append(f"[{label or href}][{number}]")

    def flush(self) -> None:
        """Close the current paragraph."""
        if not self.inline:
            return

        raw = "".join(self.inline)
        self.inline = []

        lines = [
            HtmlNormalizer.REPEATED_SPACES_PATTERN.sub(" ", line).strip()
            for line in raw.split("\n")
        ]
        text = "\n".join(lines).strip()
        if text and text != "*":
            self.blocks.append((text, self._tight))

    def result(self) -> str:
        self.flush()

        parts: List[str] = []
        previous_tight = False
        for text, tight in self.blocks:
            if parts:
                parts.append("\n" if tight and previous_tight else "\n\n")
            parts.append(text)
            previous_tight = tight

        text = "".join(parts)

        if self.links:
            references = "\n".join(
                f"[{number}] {url}" for number, url in enumerate(self.links, start=1)
            )
            text = f"{text}\n\n{references}" if text else references

        return text


_default_normalizer: Optional[HtmlNormalizer] = None


def html_to_text(html_content: Optional[str]) -> str:
    """Normalize an HTML fragment with a shared normalizer instance."""
    global _default_normalizer

    if _default_normalizer is None:
        _default_normalizer = HtmlNormalizer()

    return _default_normalizer.normalize(html_content)
