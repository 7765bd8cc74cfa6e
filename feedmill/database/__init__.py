"""
FeedMill Database Module
=======================

SQLite connection pooling and the versioned cache schema.
"""

from .connection import DatabaseConnection
from .schema import CacheSchema, SCHEMA_VERSION

__all__ = [
    "DatabaseConnection",
    "CacheSchema",
    "SCHEMA_VERSION",
]
