"""Sync engine: SyncWorker, ViewSynchronizer, batched health fetch."""

from flowdeck.engine.health_batch import RecentRunsResult, fetch_recent_runs
from flowdeck.engine.synchronizer import ViewSynchronizer
from flowdeck.engine.worker import SyncWorker

__all__ = [
    "RecentRunsResult",
    "SyncWorker",
    "ViewSynchronizer",
    "fetch_recent_runs",
]
