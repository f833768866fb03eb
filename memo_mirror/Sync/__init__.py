"""Sync engine and service for mirroring remote memos locally."""

from .cancellation import CancellationToken
from .sync_engine import MemoSyncEngine, SyncResult
from .sync_service import MemoSyncService, SyncAlreadyRunningError, SyncError

__all__ = [
    "CancellationToken",
    "MemoSyncEngine",
    "MemoSyncService",
    "SyncAlreadyRunningError",
    "SyncError",
    "SyncResult",
]
