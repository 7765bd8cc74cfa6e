"""
Feed Fetcher
============

Concurrent retrieval of every configured source. Each source is fetched
and parsed by its own task; the tasks report to a single collector through
a queue and the collector merges all articles into one map keyed by
article identity.

A failing source (transport error, bad status, timeout, unparsable body)
is logged and contributes nothing to the cycle.
"""

import asyncio
import math
import ssl
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Set
from urllib.parse import urlparse

import aiohttp
import certifi

from ..config.settings import FeedMillSettings, get_settings
from ..content.models import Article, ArticleKey
from ..content.parser import parse_feed
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import ErrorCode, FeedError, FeedFetchError


@dataclass
class FetchResult:
    """Outcome of fetching and parsing one source."""

    source: str
    success: bool
    articles: List[Article] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    fetch_time: Optional[datetime] = None
    duration_seconds: float = 0.0

    def __post_init__(self):
        if not self.fetch_time:
            self.fetch_time = datetime.now(timezone.utc)

    @property
    def article_count(self) -> int:
        return len(self.articles)


@dataclass
class FetchCycle:
    """Everything retrieved across all sources in one cycle."""

    articles: Dict[ArticleKey, Article] = field(default_factory=dict)
    results: Dict[str, FetchResult] = field(default_factory=dict)

    @property
    def failed_sources(self) -> List[str]:
        return [source for source, result in self.results.items() if not result.success]

    @property
    def succeeded_sources(self) -> List[str]:
        return [source for source, result in self.results.items() if result.success]


class FeedFetcher:
    """Concurrent RSS/Atom fetcher producing the latest article snapshot."""

    ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"

    def __init__(
        self,
        max_concurrent: Optional[int] = None,
        timeout: Optional[int] = None,
        settings: Optional[FeedMillSettings] = None,
    ):
        """Initialize feed fetcher.

        Args:
            max_concurrent: Maximum concurrent feed fetches (default from config)
            timeout: Per-request timeout in seconds (default from config)
            settings: Settings to read defaults from (default: global settings)
        """
        settings = settings or get_settings()
        self.max_concurrent = max_concurrent or settings.limits.max_concurrent_fetches
        self.timeout = timeout or settings.limits.request_timeout
        self.user_agent = f"{settings.app_name}/{settings.version}"
        self.logger = get_logger_for_component("feed_fetcher")

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_concurrent * 2,
            limit_per_host=4,
            enable_cleanup_closed=True,
        )

        timeout = aiohttp.ClientTimeout(total=self.timeout)

        headers = {
            "User-Agent": self.user_agent,
            "Accept": self.ACCEPT,
            "Accept-Encoding": "gzip, deflate",
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def download(self, source: str, session: aiohttp.ClientSession) -> bytes:
        """HTTP GET one source and return the body.

        Raises:
            FeedFetchError: On invalid URL, transport failure, timeout or non-2xx status
        """
        parsed = urlparse(source)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise FeedFetchError(
                f"Invalid feed URL: {source}",
                feed_url=source,
                error_code=ErrorCode.FEED_INVALID_URL,
                recoverable=False,
            )

        try:
            async with session.get(source) as response:
                if not 200 <= response.status < 300:
                    if response.status == 404:
                        code = ErrorCode.FEED_NOT_FOUND
                    elif response.status in (401, 403):
                        code = ErrorCode.FEED_ACCESS_DENIED
                    else:
                        code = ErrorCode.FEED_HTTP_ERROR
                    raise FeedFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        feed_url=source,
                        error_code=code,
                    )
                return await response.read()

        except asyncio.TimeoutError as e:
            raise FeedFetchError(
                f"Request timeout after {self.timeout}s",
                feed_url=source,
                error_code=ErrorCode.FEED_FETCH_TIMEOUT,
            ) from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(
                f"Fetch error: {e}",
                feed_url=source,
                error_code=ErrorCode.FEED_NETWORK_ERROR,
            ) from e

    async def fetch_source(
        self, source: str, session: aiohttp.ClientSession
    ) -> FetchResult:
        """Fetch and parse a single source. Never raises for source failures.

        Args:
            source: Feed URL
            session: aiohttp session for requests

        Returns:
            FetchResult with articles or error information
        """
        start_time = datetime.now(timezone.utc)
        started = time.monotonic()

        try:
            self.logger.debug(f"Fetching feed: {source}")
            raw = await self.download(source, session)
            articles = parse_feed(source, raw)

            duration = time.monotonic() - started
            self.logger.info(
                f"Fetched {len(articles)} articles from {source} in {duration:.2f}s"
            )
            return FetchResult(
                source=source,
                success=True,
                articles=articles,
                fetch_time=start_time,
                duration_seconds=duration,
            )

        except FeedError as e:
            self.logger.warning(f"Feed fetch failed for {source}: {e}", extra=e.to_dict())
            return FetchResult(
                source=source,
                success=False,
                error=str(e),
                error_code=e.error_code,
                fetch_time=start_time,
                duration_seconds=time.monotonic() - started,
            )

        except Exception as e:
            self.logger.error(f"Feed fetch failed for {source}: {e}", exc_info=True)
            return FetchResult(
                source=source,
                success=False,
                error=f"Unexpected error: {e}",
                fetch_time=start_time,
                duration_seconds=time.monotonic() - started,
            )

    def cycle_timeout_for(self, source_count: int) -> float:
        """Upper bound for one cycle: every semaphore wave hitting the request timeout."""
        waves = math.ceil(source_count / self.max_concurrent)
        return float(self.timeout * (waves + 1))

    async def _collect(
        self, queue: "asyncio.Queue[FetchResult]", pending: Set[str], cycle: FetchCycle
    ) -> None:
        """Fan-in: merge results until every source has reported.

        Later articles win when two resolve to the same key.
        """
        while pending:
            result = await queue.get()
            pending.discard(result.source)
            cycle.results[result.source] = result
            for article in result.articles:
                cycle.articles[article.key] = article

    async def collect(
        self,
        sources: Sequence[str],
        session: Optional[aiohttp.ClientSession] = None,
        cycle_timeout: Optional[float] = None,
    ) -> FetchCycle:
        """Fetch every source concurrently and merge the results.

        Args:
            sources: Feed URLs
            session: Session to reuse (default: a new session for this cycle)
            cycle_timeout: Give up on sources that have not reported after this
                many seconds (default: derived from the request timeout)

        Returns:
            FetchCycle with the merged article map and per-source results
        """
        unique_sources = list(dict.fromkeys(sources))
        cycle = FetchCycle()
        if not unique_sources:
            return cycle

        if session is None:
            async with self.get_session() as own_session:
                return await self.collect(unique_sources, own_session, cycle_timeout)

        self.logger.info(f"Starting concurrent fetch of {len(unique_sources)} feeds")

        queue: "asyncio.Queue[FetchResult]" = asyncio.Queue()
        semaphore = asyncio.Semaphore(self.max_concurrent)
        pending = set(unique_sources)

        async def fetch_and_report(source: str) -> None:
            async with semaphore:
                result = await self.fetch_source(source, session)
            queue.put_nowait(result)

        tasks = [
            asyncio.create_task(fetch_and_report(source), name=f"fetch_{urlparse(source).netloc}")
            for source in unique_sources
        ]

        timeout = cycle_timeout if cycle_timeout is not None else self.cycle_timeout_for(len(unique_sources))
        try:
            await asyncio.wait_for(self._collect(queue, pending, cycle), timeout=timeout)
        except asyncio.TimeoutError:
            for source in sorted(pending):
                self.logger.warning(f"No result from {source} within {timeout:.0f}s, abandoning it")
                cycle.results[source] = FetchResult(
                    source=source,
                    success=False,
                    error=f"No result within {timeout:.0f}s",
                    error_code=ErrorCode.FEED_FETCH_TIMEOUT,
                )
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        self.logger.info(
            f"Feed fetch complete: {len(cycle.succeeded_sources)}/{len(unique_sources)} "
            f"feeds successful, {len(cycle.articles)} articles"
        )
        return cycle

    async def fetch_all(
        self, sources: Sequence[str], session: Optional[aiohttp.ClientSession] = None
    ) -> Dict[ArticleKey, Article]:
        """Latest snapshot: every article currently live across all sources."""
        cycle = await self.collect(sources, session=session)
        return cycle.articles
