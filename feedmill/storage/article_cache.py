"""
Article Cache
=============

Repository for the on-disk mirror of the article collection. It is read
once at startup and afterwards only receives upserts and deletes for the
changes produced by each reconciliation.
"""

import sqlite3
from typing import Iterable, List, Optional, Tuple

from ..content.models import Article, ArticleKey
from ..content.parser import parse_rfc3339
from ..database.connection import DatabaseConnection
from ..database.schema import ARTICLES_TABLE, CacheSchema
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import CacheError, ErrorCode

UPSERT_SQL = f"""
    INSERT OR REPLACE INTO {ARTICLES_TABLE}
    (id, source, title, sub_title, content, date)
    VALUES (?, ?, ?, ?, ?, ?)
"""

DELETE_SQL = f"DELETE FROM {ARTICLES_TABLE} WHERE id = ? AND source = ?"

SELECT_ALL_SQL = f"""
    SELECT id, source, title, sub_title, content, date
    FROM {ARTICLES_TABLE}
"""


def article_to_row(article: Article) -> Tuple[str, str, str, str, str, Optional[str]]:
    """Serialize an article; dates are stored as RFC-3339 strings."""
    return (
        article.id,
        article.source,
        article.title,
        article.sub_title,
        article.content,
        article.date.isoformat() if article.date else None,
    )


def row_to_article(row: sqlite3.Row) -> Article:
    return Article(
        id=row["id"] or "",
        source=row["source"] or "",
        title=row["title"],
        sub_title=row["sub_title"],
        content=row["content"],
        date=parse_rfc3339(row["date"]),
    )


class ArticleCache:
    """Key-value style persistence of articles keyed by ``(id, source)``."""

    def __init__(self, db_connection: DatabaseConnection, schema: Optional[CacheSchema] = None):
        """Initialize the cache and make sure the schema is current.

        Args:
            db_connection: Database connection manager
            schema: Schema manager (default: current schema version)

        Raises:
            CacheError: If the database cannot be opened or initialized
        """
        self.db = db_connection
        self.schema = schema or CacheSchema()
        self.logger = get_logger_for_component("article_cache")
        self.was_reset = False

        try:
            with self.db.get_connection() as conn:
                self.was_reset = self.schema.ensure(conn)
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to initialize cache schema at {self.db.db_path}: {e}",
                error_code=ErrorCode.DATABASE_SCHEMA,
                recoverable=False,
            ) from e

    @classmethod
    def open(cls, db_path: str, pool_size: int = 2) -> "ArticleCache":
        """Open (creating if needed) the cache database at ``db_path``.

        Raises:
            CacheError: If the file cannot be opened, e.g. it is not a database
        """
        try:
            connection = DatabaseConnection(db_path, pool_size=pool_size)
        except (sqlite3.Error, OSError) as e:
            raise CacheError(
                f"Failed to open cache database {db_path}: {e}",
                error_code=ErrorCode.DATABASE_CONNECTION,
                recoverable=False,
            ) from e
        return cls(connection)

    def load_all(self) -> List[Article]:
        """Read every cached article.

        Raises:
            CacheError: If the rows cannot be read
        """
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(SELECT_ALL_SQL).fetchall()
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to load cached articles: {e}",
                query=SELECT_ALL_SQL,
                error_code=ErrorCode.DATABASE_ERROR,
                recoverable=False,
            ) from e

        articles = []
        for row in rows:
            try:
                articles.append(row_to_article(row))
            except (ValueError, TypeError) as e:
                self.logger.warning(f"Skipping unreadable cache row {row['id']!r}: {e}")

        self.logger.info(f"Loaded {len(articles)} cached articles")
        return articles

    def upsert(self, article: Article) -> None:
        """Insert or replace one article."""
        self.upsert_many([article])

    def upsert_many(self, articles: Iterable[Article]) -> int:
        """Insert or replace many articles in one transaction.

        Returns:
            Number of rows written
        """
        rows = [article_to_row(article) for article in articles]
        if not rows:
            return 0

        try:
            with self.db.transaction() as conn:
                conn.executemany(UPSERT_SQL, rows)
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to upsert {len(rows)} articles: {e}",
                query=UPSERT_SQL,
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        self.logger.debug(f"Upserted {len(rows)} articles")
        return len(rows)

    def delete(self, keys: Iterable[ArticleKey]) -> int:
        """Remove the rows for the given identity keys.

        Returns:
            Number of rows deleted
        """
        params = [(key[0], key[1]) for key in keys]
        if not params:
            return 0

        try:
            with self.db.transaction() as conn:
                deleted = 0
                for param in params:
                    deleted += conn.execute(DELETE_SQL, param).rowcount
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to delete {len(params)} articles: {e}",
                query=DELETE_SQL,
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        self.logger.debug(f"Deleted {deleted} articles")
        return deleted

    def apply_changes(
        self, upserts: Iterable[Article], deletes: Iterable[ArticleKey]
    ) -> Tuple[int, int]:
        """Write one reconciliation's changes in a single transaction.

        Returns:
            (rows upserted, rows deleted)
        """
        rows = [article_to_row(article) for article in upserts]
        params = [(key[0], key[1]) for key in deletes]

        try:
            with self.db.transaction() as conn:
                if rows:
                    conn.executemany(UPSERT_SQL, rows)
                deleted = 0
                for param in params:
                    deleted += conn.execute(DELETE_SQL, param).rowcount
        except sqlite3.Error as e:
            raise CacheError(
                f"Failed to write cache changes: {e}",
                error_code=ErrorCode.DATABASE_TRANSACTION,
            ) from e

        return len(rows), deleted

    def count(self) -> int:
        row = self.db.execute_one(f"SELECT COUNT(*) FROM {ARTICLES_TABLE}")
        return row[0] if row else 0

    def clear(self) -> int:
        """Delete every cached article."""
        return self.db.execute_update(f"DELETE FROM {ARTICLES_TABLE}")

    def close(self) -> None:
        self.db.close_all_connections()
