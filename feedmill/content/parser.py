"""
Feed Parser
===========

Maps RSS and Atom documents onto the uniform Article model. feedparser
does the XML work; this module picks the fields, parses the native date
format of each family and normalizes HTML to plain text.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, List, Optional, Union

import feedparser
from dateutil.parser import isoparse

from .html_text import html_to_text
from .models import Article
from ..utils.exceptions import FeedParseError
from ..utils.logging import get_logger_for_component

logger = get_logger_for_component("feed_parser")

ATOM = "atom"
RSS = "rss"


def parse_rfc3339(value: Optional[str]) -> Optional[datetime]:
    """Parse an Atom timestamp, keeping its UTC offset. None if unparsable."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = isoparse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_rfc2822(value: Optional[str]) -> Optional[datetime]:
    """Parse an RSS pubDate, keeping its UTC offset. None if unparsable."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        # "-0000" means UTC with unknown local offset
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def detect_family(version: Optional[str]) -> Optional[str]:
    """Map feedparser's version string onto the two supported families."""
    if not version:
        return None
    if version.startswith("atom"):
        return ATOM
    if version.startswith("rss"):
        return RSS
    return None


def _text_field(entry: Any, name: str) -> str:
    """Entry field as a string, empty when missing or malformed.

    Membership is checked first: FeedParserDict.get() falls back to related
    keys (``updated`` to ``published``) while ``in`` does not.
    """
    try:
        if name not in entry:
            return ""
        value = entry.get(name)
    except (AttributeError, KeyError, TypeError):
        return ""
    if value is None:
        return ""
    if not isinstance(value, str):
        return str(value)
    return value


def _summary(entry: Any) -> str:
    """Entry summary, empty when the feed gave none.

    feedparser copies the content into ``summary`` for entries that have no
    summary of their own; only a real one comes with ``summary_detail``.
    """
    try:
        if "summary_detail" not in entry:
            return ""
    except TypeError:
        return ""
    return _text_field(entry, "summary")


def _first_content(entry: Any) -> str:
    """Value of the first content block (Atom content, RSS content:encoded)."""
    try:
        blocks = entry.get("content")
        if blocks:
            return blocks[0].get("value", "") or ""
    except (AttributeError, IndexError, KeyError, TypeError):
        pass
    return ""


def _atom_article(source: str, entry: Any) -> Article:
    return Article(
        id=_text_field(entry, "id"),
        source=source,
        title=html_to_text(_text_field(entry, "title")),
        sub_title=html_to_text(_summary(entry)),
        content=html_to_text(_first_content(entry)),
        date=parse_rfc3339(_text_field(entry, "updated")),
    )


def _rss_article(source: str, entry: Any) -> Article:
    # feedparser exposes <guid> as "id", <description> as "summary"
    # and <pubDate> as "published"
    return Article(
        id=_text_field(entry, "id"),
        source=source,
        title=html_to_text(_text_field(entry, "title")),
        sub_title=html_to_text(_summary(entry)),
        content=html_to_text(_first_content(entry)),
        date=parse_rfc2822(_text_field(entry, "published")),
    )


def parse_feed(source: str, raw: Union[bytes, str]) -> List[Article]:
    """Parse a raw feed document into articles tagged with ``source``.

    Args:
        source: Configured feed URL, used as the identity namespace
        raw: Response body

    Returns:
        Articles in document order

    Raises:
        FeedParseError: If the document is not a recognizable RSS or Atom feed
    """
    if isinstance(raw, str):
        # feedparser treats str arguments as URLs or file names
        raw = raw.encode("utf-8")

    parsed = feedparser.parse(raw)
    family = detect_family(getattr(parsed, "version", ""))

    if family is None:
        reason = getattr(parsed, "bozo_exception", None) or "unrecognized document"
        raise FeedParseError(
            f"Not an RSS or Atom feed: {reason}",
            feed_url=source,
        )

    if getattr(parsed, "bozo", False):
        logger.warning(
            f"Feed parsing warning for {source}: {parsed.get('bozo_exception')}"
        )

    build = _atom_article if family == ATOM else _rss_article

    articles = []
    for entry in parsed.entries:
        try:
            articles.append(build(source, entry))
        except Exception as e:
            logger.warning(f"Failed to parse entry in {source}: {e}")
            continue

    logger.debug(f"Parsed {len(articles)} {family} entries from {source}")
    return articles
