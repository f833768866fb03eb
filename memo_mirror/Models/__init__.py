from .memo import Memo, PaginationCursor, ProgressEvent, SyncState, SyncStatus

__all__ = ["Memo", "PaginationCursor", "ProgressEvent", "SyncState", "SyncStatus"]
