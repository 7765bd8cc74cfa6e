#!/usr/bin/env python3
"""
End-to-End Integration Tests for FeedMill
=========================================

Tests the complete workflow from feed documents to the persistent cache:
fetch, parse, reconcile, persist and reload. HTTP is served by a mocked
aiohttp session; everything else is real, including SQLite.
"""

import asyncio
from unittest.mock import patch

import pytest

from feedmill.app import FeedMillApp
from feedmill.content.models import ArticleKey
from feedmill.processing.update_driver import DriverState
from feedmill.storage.article_cache import ArticleCache

from conftest import ATOM_SOURCE, RSS_SOURCE, SAMPLE_ATOM, SAMPLE_RSS

ALL_KEYS = {
    ArticleKey("rss-1", RSS_SOURCE),
    ArticleKey("rss-2", RSS_SOURCE),
    ArticleKey("urn:example:entry:1", ATOM_SOURCE),
}


class _ServedSession:
    """Stands in for FeedFetcher.get_session() around a mocked session."""

    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, *exc):
        return False


class TestEndToEndIntegration:
    """
    End-to-end tests for the complete FeedMill update path.
    """

    @pytest.fixture
    def serve(self, mock_http_session):
        """Patch a fetcher so each cycle sees ``routes``."""

        def _serve(app, routes):
            session = mock_http_session(routes)
            return patch.object(app.fetcher, "get_session", side_effect=lambda: _ServedSession(session))

        return _serve

    @pytest.fixture
    def healthy_routes(self, http_response):
        return {
            RSS_SOURCE: http_response(200, SAMPLE_RSS),
            ATOM_SOURCE: http_response(200, SAMPLE_ATOM),
        }

    @pytest.mark.asyncio
    async def test_cold_start_fetch_persists_everything(self, test_settings, serve, healthy_routes):
        async with FeedMillApp(test_settings) as app:
            assert len(app.collection) == 0

            with serve(app, healthy_routes):
                report = await app.refresh()

            assert report.added == 3
            assert report.failed_sources == []
            assert set(app.collection.keys()) == ALL_KEYS

            # Newest first: atom entry (Oct 3), then rss-2, then rss-1
            assert [a.id for a in app.view] == ["urn:example:entry:1", "rss-2", "rss-1"]

        cache = ArticleCache.open(test_settings.database.path)
        try:
            cached = cache.load_all()
        finally:
            cache.close()
        assert {a.key for a in cached} == ALL_KEYS

    @pytest.mark.asyncio
    async def test_restart_restores_identical_articles(self, test_settings, serve, healthy_routes):
        async with FeedMillApp(test_settings) as app:
            with serve(app, healthy_routes):
                await app.refresh()
            before = list(app.view)

        async with FeedMillApp(test_settings) as app:
            after = list(app.view)

        assert after == before
        atom = next(a for a in after if a.source == ATOM_SOURCE)
        assert atom.date.utcoffset().total_seconds() == 2 * 3600
        assert "Hello World!" in atom.content

    @pytest.mark.asyncio
    async def test_unchanged_feeds_give_quiet_cycle(self, test_settings, serve, healthy_routes):
        async with FeedMillApp(test_settings) as app:
            with serve(app, healthy_routes):
                await app.refresh()
                report = await app.refresh()

        assert not report.has_changes
        assert report.unchanged == 3

    @pytest.mark.asyncio
    async def test_failed_source_is_pruned_from_cache(
        self, test_settings, serve, healthy_routes, http_response
    ):
        async with FeedMillApp(test_settings) as app:
            with serve(app, healthy_routes):
                await app.refresh()

            broken = {
                RSS_SOURCE: http_response(200, SAMPLE_RSS),
                ATOM_SOURCE: http_response(503, reason="Service Unavailable"),
            }
            with serve(app, broken):
                report = await app.refresh()

            assert report.failed_sources == [ATOM_SOURCE]
            assert report.removed == 1
            assert {a.source for a in app.view} == {RSS_SOURCE}

        async with FeedMillApp(test_settings) as app:
            assert {a.source for a in app.view} == {RSS_SOURCE}

    @pytest.mark.asyncio
    async def test_failed_source_retained_when_configured(
        self, test_settings, serve, healthy_routes, http_response
    ):
        settings = test_settings.model_copy(update={"retain_failed_sources": True})

        async with FeedMillApp(settings) as app:
            with serve(app, healthy_routes):
                await app.refresh()

            with serve(app, {RSS_SOURCE: http_response(200, SAMPLE_RSS), ATOM_SOURCE: asyncio.TimeoutError()}):
                report = await app.refresh()

            assert report.retained == 1
            assert set(app.collection.keys()) == ALL_KEYS

    @pytest.mark.asyncio
    async def test_background_driver_refreshes_view(self, test_settings, serve, healthy_routes):
        async with FeedMillApp(test_settings) as app:
            view = app.view
            with serve(app, healthy_routes):
                assert app.start() is True

                loop = asyncio.get_running_loop()
                deadline = loop.time() + 5
                while len(view) < 3:
                    assert loop.time() < deadline, "driver never published the first cycle"
                    await asyncio.sleep(0.01)

                await app.driver.stop()

            assert app.driver.state is DriverState.IDLE
            assert {a.key for a in view} == ALL_KEYS
