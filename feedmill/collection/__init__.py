"""
FeedMill Collection Module
=========================

The authoritative in-memory article collection and its read-only view.
"""

from .article_collection import (
    ArticleCollection,
    ArticleView,
    InsertOutcome,
    ReconcileResult,
)

__all__ = [
    "ArticleCollection",
    "ArticleView",
    "InsertOutcome",
    "ReconcileResult",
]
