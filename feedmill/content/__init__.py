"""
FeedMill Content Module
======================

Article model, feed parsing and HTML-to-text normalization.
"""

from .models import Article, ArticleKey
from .html_text import HtmlNormalizer, html_to_text
from .parser import parse_feed

__all__ = [
    "Article",
    "ArticleKey",
    "HtmlNormalizer",
    "html_to_text",
    "parse_feed",
]
