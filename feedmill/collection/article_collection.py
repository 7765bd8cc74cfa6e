"""
Article Collection
==================

In-memory, de-duplicated, date-ordered set of every known article.

Two structures hold the same Article objects:

- an index ``ArticleKey -> Article`` for lookup, replace and delete
- a sorted list ordered by ``Article.sort_key`` for display order

Writers are serialized by a lock. After each write the ordered list is
published as an immutable tuple, so readers never take the lock and never
see a half-applied reconcile.
"""

import threading
from bisect import bisect_left
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..content.models import Article, ArticleKey, SortKey


class InsertOutcome(str, Enum):
    """What an upsert did to the collection."""
    ADDED = "added"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


@dataclass
class ReconcileResult:
    """Outcome of mirroring the collection onto a fresh snapshot."""
    removed: Dict[ArticleKey, Article] = field(default_factory=dict)
    added: int = 0
    changed: int = 0
    unchanged: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.removed or self.added or self.changed)


class ArticleView:
    """Read-only handle on a collection, for display code."""

    __slots__ = ("_collection",)

    def __init__(self, collection: "ArticleCollection"):
        self._collection = collection

    def snapshot(self) -> Tuple[Article, ...]:
        return self._collection.snapshot()

    def __len__(self) -> int:
        return len(self._collection.snapshot())

    def __iter__(self) -> Iterator[Article]:
        return iter(self._collection.snapshot())

    def __repr__(self) -> str:
        return f"ArticleView({len(self)} articles)"


class ArticleCollection:
    """Ordered, keyed article store with full-mirror reconciliation."""

    def __init__(self, articles: Iterable[Article] = ()):
        self._lock = threading.Lock()
        self._index: Dict[ArticleKey, Article] = {}
        # Parallel lists kept sorted by sort key
        self._order_keys: List[SortKey] = []
        self._order: List[Article] = []
        self._snapshot: Tuple[Article, ...] = ()

        if articles:
            self.extend(articles)

    # ------------------------------------------------------------------
    # Internal helpers, callers hold the lock
    # ------------------------------------------------------------------

    def _ordered_insert(self, article: Article) -> None:
        sort_key = article.sort_key
        position = bisect_left(self._order_keys, sort_key)
        self._order_keys.insert(position, sort_key)
        self._order.insert(position, article)

    def _ordered_remove(self, article: Article) -> None:
        sort_key = article.sort_key
        position = bisect_left(self._order_keys, sort_key)
        if position == len(self._order_keys) or self._order_keys[position] != sort_key:
            raise RuntimeError(f"Ordering entry missing for {article.key}")
        del self._order_keys[position]
        del self._order[position]

    def _upsert(self, article: Article) -> InsertOutcome:
        key = article.key
        existing = self._index.get(key)

        if existing is None:
            self._index[key] = article
            self._ordered_insert(article)
            return InsertOutcome.ADDED

        if existing == article:
            return InsertOutcome.UNCHANGED

        # The date may have moved, so the old slot has to go first
        self._ordered_remove(existing)
        self._index[key] = article
        self._ordered_insert(article)
        return InsertOutcome.CHANGED

    def _delete(self, key: ArticleKey) -> Optional[Article]:
        article = self._index.pop(key, None)
        if article is not None:
            self._ordered_remove(article)
        return article

    def _publish(self) -> None:
        self._snapshot = tuple(self._order)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    def insert(self, article: Article) -> InsertOutcome:
        """Insert or replace the article stored under ``article.key``."""
        with self._lock:
            outcome = self._upsert(article)
            if outcome is not InsertOutcome.UNCHANGED:
                self._publish()
            return outcome

    def extend(self, articles: Iterable[Article]) -> int:
        """Upsert many articles under one lock; returns how many were new or changed."""
        with self._lock:
            touched = 0
            for article in articles:
                if self._upsert(article) is not InsertOutcome.UNCHANGED:
                    touched += 1
            if touched:
                self._publish()
            return touched

    def remove(self, key: ArticleKey) -> Optional[Article]:
        """Remove an article from both structures, returning it if present."""
        with self._lock:
            article = self._delete(ArticleKey(*key))
            if article is not None:
                self._publish()
            return article

    def reconcile_with_report(self, latest: Mapping[ArticleKey, Article]) -> ReconcileResult:
        """Make the collection mirror ``latest`` exactly and report the changes."""
        with self._lock:
            result = ReconcileResult()

            stale = [key for key in self._index if key not in latest]
            for key in stale:
                result.removed[key] = self._delete(key)

            for article in latest.values():
                outcome = self._upsert(article)
                if outcome is InsertOutcome.ADDED:
                    result.added += 1
                elif outcome is InsertOutcome.CHANGED:
                    result.changed += 1
                else:
                    result.unchanged += 1

            if result.has_changes:
                self._publish()
            return result

    def reconcile(self, latest: Mapping[ArticleKey, Article]) -> Dict[ArticleKey, Article]:
        """Full-mirror sync against ``latest``.

        Every held key missing from ``latest`` is removed, then every article
        in ``latest`` is upserted. Afterwards the key set equals ``latest``'s.

        Returns:
            The removed articles, so the cache can be pruned to match
        """
        return self.reconcile_with_report(latest).removed

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    def snapshot(self) -> Tuple[Article, ...]:
        """Current articles in display order. Never blocks."""
        return self._snapshot

    def view(self) -> ArticleView:
        return ArticleView(self)

    def get(self, key: ArticleKey) -> Optional[Article]:
        return self._index.get(ArticleKey(*key))

    def keys(self) -> List[ArticleKey]:
        with self._lock:
            return list(self._index)

    def articles_from(self, source: str) -> List[Article]:
        """Articles of one source, in display order."""
        return [article for article in self._snapshot if article.source == source]

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, key) -> bool:
        return ArticleKey(*key) in self._index

    def __iter__(self) -> Iterator[Article]:
        return iter(self._snapshot)

    def __repr__(self) -> str:
        return f"ArticleCollection({len(self)} articles)"
