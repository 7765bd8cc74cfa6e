"""
FeedMill Cache Schema
=====================

Single-table SQLite schema for the article cache. The schema version is
kept in ``PRAGMA user_version``; a cache written by a different version
is dropped and recreated empty rather than migrated, since everything in
it can be fetched again.
"""

import sqlite3
import logging

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

ARTICLES_TABLE = "Articles"

CREATE_ARTICLES_SQL = f"""
    CREATE TABLE IF NOT EXISTS {ARTICLES_TABLE} (
        id TEXT,
        source TEXT,
        title TEXT NOT NULL,
        sub_title TEXT NOT NULL,
        content TEXT NOT NULL,
        date TEXT,
        PRIMARY KEY (id, source)
    )
"""


class CacheSchema:
    """Creates, checks and resets the cache schema on a connection."""

    def __init__(self, version: int = SCHEMA_VERSION):
        self.version = version

    def get_version(self, conn: sqlite3.Connection) -> int:
        return conn.execute("PRAGMA user_version").fetchone()[0]

    def has_articles_table(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ? COLLATE NOCASE",
            (ARTICLES_TABLE,),
        ).fetchone()
        return row is not None

    def ensure(self, conn: sqlite3.Connection) -> bool:
        """Bring the database to the current schema.

        Returns:
            True if an existing cache was discarded because of a version mismatch
        """
        found_version = self.get_version(conn)
        has_table = self.has_articles_table(conn)

        if has_table and found_version == self.version:
            return False

        reset = has_table or found_version not in (0, self.version)
        if reset:
            logger.warning(
                f"Cache schema version {found_version} does not match "
                f"{self.version}, recreating empty cache"
            )
            self.drop(conn)

        conn.execute(CREATE_ARTICLES_SQL)
        # PRAGMA does not accept bound parameters
        conn.execute(f"PRAGMA user_version = {int(self.version)}")
        conn.commit()

        logger.info(f"Cache schema version {self.version} ready")
        return reset

    def drop(self, conn: sqlite3.Connection) -> None:
        """Drop the cache table and clear the version. The caller commits."""
        conn.execute(f"DROP TABLE IF EXISTS {ARTICLES_TABLE}")
        conn.execute("PRAGMA user_version = 0")
        logger.info("Cache table dropped")

    def verify(self, conn: sqlite3.Connection) -> bool:
        """Check the table exists with the expected columns and version."""
        if not self.has_articles_table(conn) or self.get_version(conn) != self.version:
            return False

        columns = [row[1] for row in conn.execute(f"PRAGMA table_info({ARTICLES_TABLE})")]
        expected = ["id", "source", "title", "sub_title", "content", "date"]
        if columns != expected:
            logger.error(f"Unexpected cache columns. Expected: {expected}, Found: {columns}")
            return False
        return True
