# sync_engine.py
# Description: Engine for pull-based mirroring of remote memos into the local store
#
# Imports
import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Protocol, Set, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from ..DB.Memos_DB import MemosDB, MemosDBError
from ..memo_api.client import MemoAPIError
from ..Models.memo import Memo, PaginationCursor, ProgressEvent, SyncState
from ..Utils.timestamps import timestamp_to_epoch
from .cancellation import CancellationToken
#
########################################################################################################################
#
# Classes and Functions:

ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class MemoSource(Protocol):
    """Anything that can hand out pages of memos after a cursor."""

    @property
    def page_size(self) -> int: ...

    async def fetch_page(self, cursor: Optional[PaginationCursor]) -> List[Memo]: ...


@dataclass
class SyncResult:
    """Outcome of one sync run."""
    status: SyncState
    total_memos: int = 0
    iterations: int = 0
    fetched_records: int = 0
    unique_slugs: int = 0
    error: Optional[str] = None
    safety_stop: bool = False
    duration: float = 0.0


def derive_cursor(last_memo: Memo) -> PaginationCursor:
    """Cursor pointing after `last_memo`; slug only when its updated_at does not parse."""
    epoch = timestamp_to_epoch(last_memo.updated_at)
    if epoch is None:
        logger.warning(f"Could not parse updated_at '{last_memo.updated_at}' of memo {last_memo.slug}; "
                       f"continuing with slug-only pagination")
    return PaginationCursor(slug=last_memo.slug, updated_at_epoch=epoch)


class MemoSyncEngine:
    """Pages through a MemoSource and mirrors every memo into a MemosDB."""

    MAX_ITERATIONS = 100
    UNPRODUCTIVE_PAGE_LIMIT = 2

    def __init__(self,
                 source: MemoSource,
                 db: MemosDB,
                 progress_callback: Optional[ProgressCallback] = None,
                 max_iterations: Optional[int] = None,
                 unproductive_page_limit: Optional[int] = None):
        """
        Initialize the sync engine.

        Args:
            source: Remote memo source to page through
            db: Local store receiving the memos
            progress_callback: Optional callback (plain or async) for progress updates
            max_iterations: Hard ceiling on page fetches per run
            unproductive_page_limit: Consecutive unproductive pages that end a run
        """
        self.source = source
        self.db = db
        self.progress_callback = progress_callback
        self.max_iterations = self.MAX_ITERATIONS if max_iterations is None else max_iterations
        self.unproductive_page_limit = (self.UNPRODUCTIVE_PAGE_LIMIT if unproductive_page_limit is None
                                        else unproductive_page_limit)
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if self.unproductive_page_limit < 1:
            raise ValueError(f"unproductive_page_limit must be at least 1, got {self.unproductive_page_limit}")

    async def _store(self, func, *args, **kwargs):
        """Run a blocking store call off the event loop."""
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _emit(self, event: ProgressEvent) -> None:
        """Deliver a progress event. Delivery failures are logged and otherwise ignored."""
        if self.progress_callback is None:
            return
        try:
            result = self.progress_callback(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed ({type(e).__name__}: {e}); continuing sync")

    async def _safe_count(self) -> int:
        try:
            return await self._store(self.db.get_memo_count)
        except MemosDBError as e:
            logger.error(f"Could not read memo count: {e}")
            return 0

    async def _safe_status(self, state: SyncState, total: Optional[int] = None,
                           error: Optional[str] = None) -> None:
        try:
            await self._store(self.db.update_sync_status, state, total, error)
        except MemosDBError as e:
            logger.error(f"Could not record sync status '{state.value}': {e}")

    async def _finish_cancelled(self, result: SyncResult, reason: Optional[str]) -> SyncResult:
        count = await self._safe_count()
        await self._safe_status(SyncState.CANCELLED, total=count)
        result.status = SyncState.CANCELLED
        result.total_memos = count
        logger.info(f"Sync cancelled after {result.iterations} iterations; {count} memos kept locally")
        await self._emit(ProgressEvent(total=count, current=count, status=SyncState.CANCELLED.value,
                                       message=reason or f"Sync cancelled, {count} memos kept"))
        return result

    async def _finish_failed(self, result: SyncResult, message: str) -> SyncResult:
        # total_memos keeps the value recorded after the last persisted batch
        await self._safe_status(SyncState.FAILED, error=message)
        count = await self._safe_count()
        result.status = SyncState.FAILED
        result.total_memos = count
        result.error = message
        logger.error(f"Sync failed after {result.iterations} iterations: {message}")
        await self._emit(ProgressEvent(total=count, current=count, status=SyncState.FAILED.value,
                                       message=f"Sync failed: {message}"))
        return result

    async def _finish_completed(self, result: SyncResult) -> SyncResult:
        final_count = await self._store(self.db.get_memo_count)
        await self._store(self.db.update_sync_status, SyncState.COMPLETED, final_count)
        result.status = SyncState.COMPLETED
        result.total_memos = final_count
        logger.info(f"Sync completed: {result.iterations} iterations, {result.fetched_records} records fetched, "
                    f"{result.unique_slugs} unique slugs seen, {final_count} unique memos in database")
        await self._emit(ProgressEvent(total=final_count, current=final_count,
                                       status=SyncState.COMPLETED.value,
                                       message=f"Successfully synced {final_count} unique memos"))
        return result

    async def sync(self, cancel_token: Optional[CancellationToken] = None) -> SyncResult:
        """
        Main sync method.

        Fetches pages until the data ends, the run is cancelled, a fetch or
        persist fails, or the iteration ceiling is reached. The outcome is
        recorded in the sync status row and returned; source and store errors
        are not raised.

        Args:
            cancel_token: Token checked before every page fetch

        Returns:
            SyncResult describing the run
        """
        cancel_token = cancel_token or CancellationToken()
        start_time = time.time()
        result = SyncResult(status=SyncState.SYNCING)

        try:
            await self._store(self.db.update_sync_status, SyncState.SYNCING)
        except MemosDBError as e:
            return await self._finish_failed(result, str(e))

        logger.info(f"Starting sync (page size {self.source.page_size}, ceiling {self.max_iterations} pages)")
        try:
            result = await self._run_pages(cancel_token, result)
        except asyncio.CancelledError:
            await self._finish_cancelled(result, "Sync task was cancelled")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error during sync: {e}")
            await self._finish_failed(result, f"Unexpected error: {e}")
            raise
        finally:
            result.duration = time.time() - start_time
        return result

    async def _run_pages(self, cancel_token: CancellationToken, result: SyncResult) -> SyncResult:
        page_size = self.source.page_size
        seen_slugs: Set[str] = set()
        cursor: Optional[PaginationCursor] = None
        unproductive_pages = 0

        while True:
            if result.iterations >= self.max_iterations:
                logger.warning(f"Reached maximum iteration limit of {self.max_iterations}; "
                               f"stopping with the memos fetched so far")
                result.safety_stop = True
                break

            if cancel_token.is_cancelled:
                return await self._finish_cancelled(result, cancel_token.reason)

            result.iterations += 1
            try:
                memos = await self.source.fetch_page(cursor)
            except MemoAPIError as e:
                return await self._finish_failed(result, str(e))

            result.fetched_records += len(memos)
            page_slugs = {memo.slug for memo in memos}
            new_count = len(page_slugs - seen_slugs)
            seen_slugs.update(page_slugs)
            result.unique_slugs = len(seen_slugs)
            logger.debug(f"Iteration {result.iterations}: {len(memos)} memos, {new_count} new")

            # Empty pages, and duplicate-only pages fetched without a timestamp cursor, are
            # tolerated until they repeat; a page with new slugs resets the count.
            timestamp_cursor = cursor is not None and cursor.has_timestamp
            if not memos or (new_count == 0 and not timestamp_cursor):
                unproductive_pages += 1
                if memos:
                    logger.warning(f"All {len(memos)} memos in this batch are duplicates and the "
                                   f"pagination timestamp is missing")
                keep_going = unproductive_pages < self.unproductive_page_limit
                if not keep_going:
                    logger.info(f"Ending sync after {unproductive_pages} consecutive unproductive pages")
            else:
                if new_count > 0:
                    unproductive_pages = 0
                keep_going = len(memos) >= page_size

            if keep_going and memos:
                cursor = derive_cursor(memos[-1])

            if memos:
                try:
                    await self._store(self.db.bulk_upsert_memos, memos)
                    current = await self._store(self.db.get_memo_count)
                    await self._store(self.db.update_sync_status, SyncState.SYNCING, current)
                except MemosDBError as e:
                    return await self._finish_failed(result, str(e))

                await self._emit(ProgressEvent(
                    total=current + (len(memos) if keep_going else 0),
                    current=current,
                    status=SyncState.SYNCING.value,
                    message=f"Synced {current} unique memos..."
                ))

            if not keep_going:
                break

        try:
            return await self._finish_completed(result)
        except MemosDBError as e:
            return await self._finish_failed(result, str(e))

#
# End of sync_engine.py
########################################################################################################################
