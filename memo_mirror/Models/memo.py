# memo.py
# Description: Domain records shared by the API client, the local store and the sync engine
#
"""
Memo Domain Models
------------------

Plain records passed between the layers:
- Memo: one note, keyed by its slug
- SyncStatus: the single persisted sync-status row
- ProgressEvent: one progress update emitted during a sync run
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional


class SyncState(str, Enum):
    """Values of the persisted sync status."""
    IDLE = "idle"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncState.COMPLETED, SyncState.FAILED, SyncState.CANCELLED)


@dataclass
class Memo:
    """A single memo. `content` is plain text, `tags` keeps the remote order."""
    slug: str
    content: str
    created_at: str
    updated_at: str
    tags: List[str] = field(default_factory=list)
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["url"] is None:
            del data["url"]
        return data


@dataclass
class SyncStatus:
    """Snapshot of the sync_status row."""
    status: SyncState = SyncState.IDLE
    last_sync_at: Optional[str] = None
    total_memos: int = 0
    error_message: Optional[str] = None


@dataclass
class ProgressEvent:
    """Progress update emitted after each persisted batch and at the end of a run."""
    total: int
    current: int
    status: str
    message: str


@dataclass(frozen=True)
class PaginationCursor:
    """Position after the last record of a page; valid for one sync run only."""
    slug: str
    updated_at_epoch: Optional[int] = None

    @property
    def has_timestamp(self) -> bool:
        return self.updated_at_epoch is not None
