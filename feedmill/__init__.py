"""
FeedMill - Terminal Feed Aggregator
===================================

Polls RSS and Atom feeds, keeps a de-duplicated, date-ordered collection
of their articles and mirrors it into a local SQLite cache.

Main Components:
- Content: feed parsing, HTML to plain text, the Article model
- Collection: keyed, ordered in-memory article set with full-mirror reconcile
- Processing: concurrent fetch pipeline and periodic update driver
- Storage: SQLite article cache with schema versioning
- UI: list navigation state for the terminal browser
"""

__version__ = "0.3.0"
__author__ = "FeedMill Development Team"
__description__ = "Terminal RSS/Atom feed aggregator"

# Core imports for easy access
from .config.settings import get_settings
from .content.models import Article, ArticleKey
from .collection.article_collection import ArticleCollection, ArticleView
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedMillError

__all__ = [
    "get_settings",
    "Article",
    "ArticleKey",
    "ArticleCollection",
    "ArticleView",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedMillError",
]
