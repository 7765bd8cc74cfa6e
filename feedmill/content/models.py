"""
FeedMill Data Models
===================

The normalized article model shared by the parser, the in-memory
collection and the cache store.
"""

from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class ArticleKey(NamedTuple):
    """Identity of an article: the feed entry id namespaced by its source."""
    id: str
    source: str


# Articles with a date sort before articles without one
_DATED = 0
_UNDATED = 1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)

SortKey = Tuple[int, int, str, str]


class Article(BaseModel):
    """Single normalized feed entry.

    Two articles with the same ``key`` are the same logical entry, even if
    their content differs between fetches. Equality compares every field.
    """
    id: str = Field(default="", description="Feed-provided entry id, empty when the feed has none")
    source: str = Field(..., description="Configured feed URL the entry came from")
    title: str = Field(default="", description="Plain text title")
    sub_title: str = Field(default="", description="Plain text summary/description")
    content: str = Field(default="", description="Plain text full content")
    date: Optional[datetime] = Field(default=None, description="Entry timestamp with its UTC offset")

    model_config = {"frozen": True}

    @field_validator("date")
    @classmethod
    def ensure_aware(cls, v):
        """Naive timestamps are taken to be UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def key(self) -> ArticleKey:
        return ArticleKey(self.id, self.source)

    @property
    def sort_key(self) -> SortKey:
        """Newest first, undated last, then source and id ascending."""
        if self.date is None:
            return (_UNDATED, 0, self.source, self.id)
        # Exact microseconds since the epoch
        return (_DATED, -((self.date - EPOCH) // _MICROSECOND), self.source, self.id)

    def __lt__(self, other: "Article") -> bool:
        if not isinstance(other, Article):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __gt__(self, other: "Article") -> bool:
        if not isinstance(other, Article):
            return NotImplemented
        return self.sort_key > other.sort_key

    def __str__(self) -> str:
        return f"Article({self.title[:50]}:{self.source})"
