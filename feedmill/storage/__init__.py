"""
FeedMill Storage Layer
=====================

Repository for the persistent article cache.
"""

from .article_cache import ArticleCache

__all__ = [
    "ArticleCache",
]
