"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for FeedMill tests.

- XDG directories point into a throwaway directory so nothing touches $HOME
- Cache fixtures use a fresh SQLite file per test
- HTTP is replaced by a MagicMock session serving canned responses
"""

import pytest
import tempfile
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_HOME = Path(tempfile.mkdtemp(prefix="feedmill_tests_"))
os.environ["XDG_CONFIG_HOME"] = str(_TEST_HOME / "config")
os.environ["XDG_CACHE_HOME"] = str(_TEST_HOME / "cache")
os.environ["FEEDMILL_DEBUG"] = "false"
os.environ["FEEDMILL_LOGGING__CONSOLE_LOGGING"] = "false"


RSS_SOURCE = "https://example.com/rss.xml"
ATOM_SOURCE = "https://example.org/atom.xml"

SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
    <channel>
        <title>Example RSS</title>
        <link>https://example.com</link>
        <description>Test feed</description>
        <item>
            <title>Second post</title>
            <link>https://example.com/2</link>
            <guid>rss-2</guid>
            <description>&lt;p&gt;Summary &lt;b&gt;two&lt;/b&gt;&lt;/p&gt;</description>
            <pubDate>Wed, 02 Oct 2024 12:00:00 +0000</pubDate>
        </item>
        <item>
            <title>First post</title>
            <link>https://example.com/1</link>
            <guid>rss-1</guid>
            <description>Summary one</description>
            <pubDate>Tue, 01 Oct 2024 12:00:00 +0000</pubDate>
        </item>
    </channel>
</rss>"""

SAMPLE_ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
    <title>Example Atom</title>
    <id>urn:example:feed</id>
    <updated>2024-10-03T09:30:00+02:00</updated>
    <entry>
        <title>Atom entry</title>
        <id>urn:example:entry:1</id>
        <updated>2024-10-03T09:30:00+02:00</updated>
        <summary>Short summary</summary>
        <content type="html">&lt;p&gt;Hello World!&lt;/p&gt;&lt;p&gt;Good Bye World!&lt;/p&gt;</content>
    </entry>
</feed>"""


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def temp_db_path(tmp_path):
    """Path of a cache database that does not exist yet."""
    return str(tmp_path / "feedmill" / "cache.db")


@pytest.fixture
def article_cache(temp_db_path):
    """Open article cache on a fresh database."""
    from feedmill.storage.article_cache import ArticleCache

    cache = ArticleCache.open(temp_db_path)
    yield cache
    cache.close()


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def test_settings(temp_db_path):
    """Settings with two sources and a temporary cache."""
    from feedmill.config.settings import FeedMillSettings

    return FeedMillSettings(
        sources=[RSS_SOURCE, ATOM_SOURCE],
        update_interval=60,
        database={"path": temp_db_path},
        limits={"request_timeout": 5, "max_concurrent_fetches": 4},
    )


# ============================================================================
# Article Fixtures
# ============================================================================


@pytest.fixture
def make_article():
    """Factory for articles with sensible defaults."""
    from feedmill.content.models import Article

    def _make(id="a", source=RSS_SOURCE, title=None, date=None, **kwargs):
        return Article(
            id=id,
            source=source,
            title=title if title is not None else f"Title {id}",
            date=date,
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_articles(make_article):
    """Three dated articles and one undated, from two sources."""
    return [
        make_article("1", RSS_SOURCE, date=datetime(2024, 10, 1, 12, tzinfo=timezone.utc)),
        make_article("2", RSS_SOURCE, date=datetime(2024, 10, 2, 12, tzinfo=timezone.utc)),
        make_article("x", ATOM_SOURCE, date=datetime(2024, 10, 3, 7, 30, tzinfo=timezone.utc)),
        make_article("undated", ATOM_SOURCE),
    ]


# ============================================================================
# HTTP Fixtures
# ============================================================================


def make_response(status=200, body=b"", reason="OK"):
    response = MagicMock()
    response.status = status
    response.reason = reason
    response.read = AsyncMock(return_value=body.encode("utf-8") if isinstance(body, str) else body)
    return response


@pytest.fixture
def http_response():
    """Factory for a mocked aiohttp response."""
    return make_response


@pytest.fixture
def mock_http_session():
    """Factory for a session whose ``get(url)`` serves canned responses.

    ``routes`` maps a URL to a response MagicMock or to an exception that
    entering the request context raises.
    """

    def _make(routes):
        session = MagicMock()

        def get(url, *args, **kwargs):
            request = MagicMock()
            outcome = routes.get(url)
            if outcome is None:
                outcome = make_response(404, reason="Not Found")
            if isinstance(outcome, BaseException):
                request.__aenter__.side_effect = outcome
            else:
                request.__aenter__.return_value = outcome
            request.__aexit__.return_value = False
            return request

        session.get.side_effect = get
        return session

    return _make
