"""
FeedMill Application
====================

Wires the cache, collection, fetch pipeline and update driver together
from one settings object.
"""

from typing import Optional

from .collection.article_collection import ArticleCollection, ArticleView
from .config.settings import FeedMillSettings, get_settings
from .processing.feed_fetcher import FeedFetcher
from .processing.update_driver import CycleReport, UpdateDriver
from .storage.article_cache import ArticleCache
from .utils.logging import get_logger_for_component


class FeedMillApp:
    """Owns the long-lived components of a running aggregator."""

    def __init__(
        self,
        settings: Optional[FeedMillSettings] = None,
        cache: Optional[ArticleCache] = None,
        fetcher: Optional[FeedFetcher] = None,
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("app")

        self.cache = cache or ArticleCache.open(
            self.settings.database.path, pool_size=self.settings.database.pool_size
        )
        self.collection = ArticleCollection()
        self.fetcher = fetcher or FeedFetcher(settings=self.settings)
        self.driver = UpdateDriver(
            self.collection,
            self.fetcher,
            cache=self.cache,
            sources=self.settings.sources,
            interval=self.settings.update_interval,
            retain_failed_sources=self.settings.retain_failed_sources,
        )

    @property
    def view(self) -> ArticleView:
        return self.collection.view()

    def load_cache(self) -> int:
        """Seed the collection from the cache.

        Raises:
            CacheError: If the cache cannot be read; startup should abort
        """
        articles = self.cache.load_all()
        self.collection.extend(articles)
        self.logger.info(f"Collection seeded with {len(self.collection)} cached articles")
        return len(self.collection)

    def start(self) -> bool:
        """Start periodic updates; False when no sources are configured."""
        return self.driver.start()

    async def refresh(self) -> CycleReport:
        """Run one cycle now and wait for its cache write."""
        report = await self.driver.run_cycle()
        await self.driver.wait_for_cache_writes()
        return report

    async def stop(self) -> None:
        await self.driver.stop()
        self.cache.close()

    async def __aenter__(self) -> "FeedMillApp":
        try:
            self.load_cache()
        except Exception:
            self.cache.close()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
