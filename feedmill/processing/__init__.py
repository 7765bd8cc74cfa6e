"""
FeedMill Processing Module
=========================

Concurrent feed retrieval and the periodic reconciliation loop.
"""

from .feed_fetcher import FeedFetcher, FetchCycle, FetchResult
from .update_driver import CycleReport, DriverState, UpdateDriver

__all__ = [
    "FeedFetcher",
    "FetchCycle",
    "FetchResult",
    "CycleReport",
    "DriverState",
    "UpdateDriver",
]
