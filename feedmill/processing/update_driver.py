"""
Update Driver
=============

Periodic refresh loop: fetch every source, reconcile the collection
against the result, then persist the changes in the background.

Ticks are coalesced through a single ``asyncio.Event``. A tick that fires
while a cycle is running leaves one pending refresh behind, never more,
so an overrunning cycle is followed immediately by exactly one more.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..collection.article_collection import ArticleCollection
from ..content.models import Article, ArticleKey
from ..storage.article_cache import ArticleCache
from ..utils.exceptions import CacheError, handle_exception
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .feed_fetcher import FeedFetcher


class DriverState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"


@dataclass
class CycleReport:
    """Summary of one fetch and reconcile cycle."""

    added: int = 0
    changed: int = 0
    removed: int = 0
    unchanged: int = 0
    retained: int = 0
    failed_sources: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.changed or self.removed)

    @property
    def total(self) -> int:
        return self.added + self.changed + self.unchanged


class UpdateDriver:
    """Keeps the collection and cache in step with the configured sources."""

    def __init__(
        self,
        collection: ArticleCollection,
        fetcher: FeedFetcher,
        cache: Optional[ArticleCache] = None,
        sources: Sequence[str] = (),
        interval: float = 300,
        retain_failed_sources: bool = False,
    ):
        """Initialize the driver.

        Args:
            collection: Collection to reconcile
            fetcher: Fetch pipeline
            cache: Cache to mirror changes into (None disables persistence)
            sources: Feed URLs to poll
            interval: Seconds between ticks
            retain_failed_sources: Keep the previous articles of a source whose
                fetch failed instead of pruning them
        """
        self.collection = collection
        self.fetcher = fetcher
        self.cache = cache
        self.sources = list(sources)
        self.interval = interval
        self.retain_failed_sources = retain_failed_sources
        self.logger = get_logger_for_component("update_driver")

        self.state = DriverState.IDLE
        self.cycle_count = 0
        self.last_report: Optional[CycleReport] = None

        self._tick = asyncio.Event()
        self._ticker_task: Optional[asyncio.Task] = None
        self._driver_task: Optional[asyncio.Task] = None

        self._cache_lock = asyncio.Lock()
        self._cache_tasks: Set[asyncio.Task] = set()
        self._pending_deletes: Set[ArticleKey] = set()

    @property
    def is_running(self) -> bool:
        return self._driver_task is not None and not self._driver_task.done()

    @property
    def pending_deletes(self) -> Set[ArticleKey]:
        """Keys whose cache deletion failed and will be retried next cycle."""
        return set(self._pending_deletes)

    # ------------------------------------------------------------------
    # One cycle
    # ------------------------------------------------------------------

    def _retain_failed(self, latest: Dict[ArticleKey, Article], failed: Iterable[str]) -> int:
        retained = 0
        for source in failed:
            for article in self.collection.articles_from(source):
                if article.key not in latest:
                    latest[article.key] = article
                    retained += 1
        return retained

    async def run_cycle(self) -> CycleReport:
        """Fetch, reconcile and schedule the cache write for one cycle."""
        self.cycle_count += 1
        report = CycleReport(started_at=datetime.now(timezone.utc))
        self.state = DriverState.FETCHING

        try:
            with PerformanceLogger(
                self.logger, "update cycle", cycle=self.cycle_count, sources=len(self.sources)
            ) as perf:
                cycle = await self.fetcher.collect(self.sources)
                latest = dict(cycle.articles)
                report.failed_sources = cycle.failed_sources

                if self.retain_failed_sources and report.failed_sources:
                    report.retained = self._retain_failed(latest, report.failed_sources)

                result = self.collection.reconcile_with_report(latest)
        finally:
            self.state = DriverState.IDLE

        report.added = result.added
        report.changed = result.changed
        report.removed = len(result.removed)
        report.unchanged = result.unchanged
        report.duration_seconds = perf.duration or 0.0

        self._schedule_cache_write(list(latest.values()), list(result.removed))

        self.logger.info(
            f"Cycle {self.cycle_count}: {report.added} added, {report.changed} changed, "
            f"{report.removed} removed, {report.unchanged} unchanged, "
            f"{len(report.failed_sources)} failed sources"
        )
        self.last_report = report
        return report

    # ------------------------------------------------------------------
    # Cache persistence
    # ------------------------------------------------------------------

    def _schedule_cache_write(self, upserts: List[Article], deletes: List[ArticleKey]) -> None:
        if self.cache is None:
            return
        task = asyncio.create_task(
            self._write_cache(upserts, deletes), name=f"cache_write_{self.cycle_count}"
        )
        self._cache_tasks.add(task)
        task.add_done_callback(self._cache_write_done)

    def _cache_write_done(self, task: asyncio.Task) -> None:
        self._cache_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            handle_exception(error, self.logger, "cache write")

    async def _write_cache(self, upserts: List[Article], deletes: List[ArticleKey]) -> None:
        # Lock waiters run in FIFO order, so writes land in cycle order
        async with self._cache_lock:
            upsert_keys = {article.key for article in upserts}
            to_delete = (self._pending_deletes | set(deletes)) - upsert_keys
            self._pending_deletes = set()

            try:
                with PerformanceLogger(self.logger, "cache write", upserts=len(upserts)):
                    written, deleted = await asyncio.to_thread(
                        self.cache.apply_changes, upserts, to_delete
                    )
            except CacheError as e:
                self._pending_deletes = to_delete
                self.logger.error(
                    f"Cache write failed, {len(to_delete)} deletes deferred to next cycle: {e}",
                    extra=e.to_dict(),
                )
                return

            self.logger.debug(f"Cache updated: {written} upserted, {deleted} deleted")

    async def wait_for_cache_writes(self) -> None:
        """Wait until every scheduled cache write has finished."""
        while self._cache_tasks:
            await asyncio.gather(*list(self._cache_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Periodic loop
    # ------------------------------------------------------------------

    def trigger(self) -> None:
        """Request a refresh as soon as the current cycle (if any) ends."""
        self._tick.set()

    async def _ticker(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._tick.set()

    async def _drive(self) -> None:
        while True:
            await self._tick.wait()
            self._tick.clear()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                handle_exception(e, self.logger, "update cycle", {"cycle": self.cycle_count})

    def start(self) -> bool:
        """Start ticking; the first cycle runs immediately.

        Returns:
            False if there is nothing to poll and the driver was not started
        """
        if not self.sources:
            self.logger.info("No sources configured, update driver not started")
            return False
        if self.is_running:
            return True

        self.logger.info(
            f"Starting update driver: {len(self.sources)} sources every {self.interval}s"
        )
        self._tick.set()
        self._driver_task = asyncio.create_task(self._drive(), name="update_driver")
        self._ticker_task = asyncio.create_task(self._ticker(), name="update_ticker")
        return True

    async def stop(self) -> None:
        """Cancel the loop and flush outstanding cache writes."""
        tasks = [task for task in (self._ticker_task, self._driver_task) if task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._ticker_task = None
        self._driver_task = None
        self.state = DriverState.IDLE

        await self.wait_for_cache_writes()
        self.logger.info("Update driver stopped")

    async def run_forever(self) -> None:
        """Run the periodic loop until cancelled."""
        if not self.start():
            return
        try:
            await asyncio.gather(self._driver_task, self._ticker_task)
        finally:
            await self.stop()
