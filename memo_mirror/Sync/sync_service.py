# sync_service.py
# Description: Service layer exposing sync runs and local cache reads to callers
#
# Imports
import asyncio
import inspect
from typing import Any, AsyncIterator, Callable, List, Optional
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from ..DB.Memos_DB import MemosDB
from ..Export.formatters import render_memos
from ..memo_api.client import FlomoClient
from ..Models.memo import Memo, ProgressEvent, SyncStatus
from .cancellation import CancellationToken
from .sync_engine import MemoSource, MemoSyncEngine, ProgressCallback, SyncResult
#
########################################################################################################################
#
# Classes:

class SyncError(Exception):
    """Base exception for sync service errors."""
    pass


class SyncAlreadyRunningError(SyncError):
    """A sync run is already active on this service."""
    pass


SourceFactory = Callable[[str], MemoSource]


def default_source_factory(token: str) -> MemoSource:
    return FlomoClient(token)


class MemoSyncService:
    """High-level service for memo synchronization and local cache access."""

    def __init__(self, db: MemosDB,
                 source_factory: Optional[SourceFactory] = None,
                 max_iterations: Optional[int] = None,
                 unproductive_page_limit: Optional[int] = None):
        """
        Initialize sync service.

        Args:
            db: Local memo store
            source_factory: Builds a MemoSource from an authorization token
            max_iterations: Page ceiling passed to each engine run
            unproductive_page_limit: Unproductive-page threshold passed to each engine run
        """
        self.db = db
        self.source_factory = source_factory or default_source_factory
        self.max_iterations = max_iterations
        self.unproductive_page_limit = unproductive_page_limit
        self._active_token: Optional[CancellationToken] = None

    @property
    def is_syncing(self) -> bool:
        return self._active_token is not None

    def _begin_run(self) -> CancellationToken:
        if self._active_token is not None:
            raise SyncAlreadyRunningError("A sync is already in progress")
        self._active_token = CancellationToken()
        return self._active_token

    async def _run(self, token: str, cancel_token: CancellationToken,
                   progress_callback: Optional[ProgressCallback]) -> SyncResult:
        source = None
        try:
            source = self.source_factory(token)
            engine = MemoSyncEngine(
                source, self.db,
                progress_callback=progress_callback,
                max_iterations=self.max_iterations,
                unproductive_page_limit=self.unproductive_page_limit
            )
            return await engine.sync(cancel_token)
        finally:
            self._active_token = None
            close = getattr(source, "close", None)
            if close is not None:
                closed = close()
                if inspect.isawaitable(closed):
                    await closed

    async def run_sync(self, token: str,
                       progress_callback: Optional[ProgressCallback] = None) -> SyncResult:
        """
        Run one sync to completion.

        Raises:
            SyncAlreadyRunningError: if another run is active
        """
        cancel_token = self._begin_run()
        return await self._run(token, cancel_token, progress_callback)

    async def start_sync(self, token: str) -> AsyncIterator[ProgressEvent]:
        """
        Run one sync and yield its progress events.

        The stream ends after the terminal event (completed, failed or
        cancelled). Closing the stream early cancels the run.

        Raises:
            SyncAlreadyRunningError: on first iteration, if another run is active
        """
        cancel_token = self._begin_run()
        queue: "asyncio.Queue[Optional[ProgressEvent]]" = asyncio.Queue()
        task = asyncio.create_task(self._run(token, cancel_token, queue.put_nowait))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            task.result()
        finally:
            if not task.done():
                cancel_token.cancel("Progress stream closed")
                await asyncio.wait({task})
                if not task.cancelled() and task.exception() is not None:
                    error = task.exception()
                    logger.error(f"Sync run failed after its progress stream was closed: "
                                 f"{type(error).__name__}: {error}")

    def cancel_sync(self) -> bool:
        """
        Ask the active run to stop at its next checkpoint.

        Returns:
            True if a run was active
        """
        if self._active_token is None:
            logger.debug("cancel_sync called with no active sync")
            return False
        self._active_token.cancel()
        return True

    def get_sync_status(self) -> SyncStatus:
        return self.db.get_sync_status()

    def get_page(self, order_by: str = "created_at", order_dir: str = "desc",
                 offset: int = 0, limit: int = 50) -> List[Memo]:
        return self.db.get_memos_page(order_by, order_dir, offset, limit)

    def search(self, query: str, order_by: str = "created_at", order_dir: str = "desc",
               offset: int = 0, limit: int = 50) -> List[Memo]:
        return self.db.search_memos(query, order_by, order_dir, offset, limit)

    def clear_local_data(self) -> None:
        """Wipe the local cache and reset the status to idle."""
        if self.is_syncing:
            raise SyncAlreadyRunningError("Cannot clear local data while a sync is in progress")
        self.db.clear_all_memos()

    def export(self, fmt: str, **options: Any) -> str:
        """Render every cached memo in the given format (json, markdown or table)."""
        return render_memos(self.db.get_all_memos(), fmt, **options)

#
# End of sync_service.py
########################################################################################################################
