# Memos_DB.py
#########################################
# Memos Database Library
# Local cache of memos mirrored from the remote note service
#
# This library provides:
# - Idempotent upsert of memos keyed by slug
# - Atomic bulk upsert (one transaction per batch)
# - Paged reads and substring search ordered by created_at / updated_at
# - A single-row sync status record
#
# All operations share one connection guarded by one lock.
#
#########################################

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

# Third-Party Libraries
from loguru import logger

# Local Imports
from ..Models.memo import Memo, SyncState, SyncStatus


# --- Custom Exceptions ---
class MemosDBError(Exception):
    """Base exception for memo store errors."""
    pass


class SchemaError(MemosDBError):
    """Exception for schema initialization failures."""
    pass


# --- Ordering ---
ORDER_FIELDS = {"created_at": "created_at", "updated_at": "updated_at"}
ORDER_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}
DEFAULT_ORDER_FIELD = "created_at"
DEFAULT_ORDER_DIRECTION = "DESC"

MEMORY_DB = ":memory:"


def resolve_order(order_by: Optional[str], order_dir: Optional[str]) -> str:
    """
    Build the ORDER BY clause for memo reads.

    Unknown fields fall back to created_at and unknown directions to DESC.
    Row id breaks ties so offset paging is stable.
    """
    field_name = ORDER_FIELDS.get((order_by or "").lower(), DEFAULT_ORDER_FIELD)
    direction = ORDER_DIRECTIONS.get((order_dir or "").lower(), DEFAULT_ORDER_DIRECTION)
    return f"{field_name} {direction}, id {direction}"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


_UPSERT_SQL = """
    INSERT INTO memos (slug, content, created_at, updated_at, tags, url, synced_at)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(slug) DO UPDATE SET
        content = excluded.content,
        updated_at = excluded.updated_at,
        tags = excluded.tags,
        url = excluded.url,
        synced_at = excluded.synced_at
"""


# --- Database Class ---
class MemosDB:
    """Database operations for the local memo cache."""

    _CURRENT_SCHEMA_VERSION = 1

    def __init__(self, db_path: Union[str, Path], client_id: str = "default"):
        """
        Initialize the memos database.

        Args:
            db_path: Path to the SQLite database file or ':memory:'
            client_id: Client identifier, used in log lines
        """
        self.is_memory_db = str(db_path) == MEMORY_DB
        self.db_path_str = MEMORY_DB if self.is_memory_db else str(Path(db_path).expanduser().resolve())
        self.client_id = client_id
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

        if not self.is_memory_db:
            db_dir = Path(self.db_path_str).parent
            try:
                db_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise MemosDBError(f"Failed to create database directory {db_dir}: {e}") from e

        self._initialize_schema()
        logger.info(f"MemosDB initialized with path: {self.db_path_str} [Client: {self.client_id}]")

    def _get_connection(self) -> sqlite3.Connection:
        """Return the shared connection, opening it on first use."""
        if self._conn is None:
            # Used from worker threads, always under self._lock
            self._conn = sqlite3.connect(self.db_path_str, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _initialize_schema(self):
        """Initialize the database schema."""
        try:
            with self.transaction() as conn:
                conn.executescript(f"""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY NOT NULL
                );
                INSERT OR IGNORE INTO schema_version (version) VALUES ({self._CURRENT_SCHEMA_VERSION});

                CREATE TABLE IF NOT EXISTS memos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    slug TEXT NOT NULL UNIQUE,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    url TEXT NOT NULL DEFAULT '',
                    synced_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS sync_status (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    last_sync_at TEXT,
                    total_memos INTEGER DEFAULT 0,
                    status TEXT DEFAULT 'idle',
                    error_message TEXT
                );
                INSERT OR IGNORE INTO sync_status (id, status) VALUES (1, 'idle');

                CREATE INDEX IF NOT EXISTS idx_memos_created_at ON memos(created_at);
                CREATE INDEX IF NOT EXISTS idx_memos_updated_at ON memos(updated_at);
                """)
        except sqlite3.Error as e:
            raise SchemaError(f"Failed to initialize memos schema: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.

        Holds the store lock for the whole block; commits on success and
        rolls back on any exception.
        """
        with self._lock:
            conn = self._get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    # --- Row mapping ---

    @staticmethod
    def _row_to_memo(row: sqlite3.Row) -> Memo:
        try:
            tags = json.loads(row["tags"]) if row["tags"] else []
        except json.JSONDecodeError:
            logger.warning(f"Unreadable tags for memo {row['slug']}: {row['tags']!r}")
            tags = []
        return Memo(
            slug=row["slug"],
            content=row["content"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            tags=tags,
            url=row["url"] or None,
        )

    @staticmethod
    def _memo_params(memo: Memo, synced_at: str) -> tuple:
        return (
            memo.slug,
            memo.content,
            memo.created_at,
            memo.updated_at,
            json.dumps(list(memo.tags), ensure_ascii=False),
            memo.url or "",
            synced_at,
        )

    # --- Writes ---

    def upsert_memo(self, memo: Memo) -> None:
        """Insert a memo or overwrite the stored one with the same slug (created_at is kept)."""
        try:
            with self.transaction() as conn:
                conn.execute(_UPSERT_SQL, self._memo_params(memo, _utc_now()))
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to upsert memo {memo.slug}: {e}") from e

    def bulk_upsert_memos(self, memos: Iterable[Memo]) -> int:
        """
        Upsert a batch of memos in a single transaction.

        Either every memo in the batch is written or none is.

        Returns:
            Number of memos in the batch
        """
        synced_at = _utc_now()
        params = [self._memo_params(memo, synced_at) for memo in memos]
        if not params:
            return 0
        try:
            with self.transaction() as conn:
                conn.executemany(_UPSERT_SQL, params)
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to upsert batch of {len(params)} memos: {e}") from e
        logger.debug(f"Upserted batch of {len(params)} memos")
        return len(params)

    def clear_all_memos(self) -> None:
        """Delete every memo and reset the sync status to idle in one transaction."""
        try:
            with self.transaction() as conn:
                conn.execute("DELETE FROM memos")
                conn.execute(
                    "UPDATE sync_status SET status = ?, total_memos = 0, error_message = NULL WHERE id = 1",
                    (SyncState.IDLE.value,)
                )
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to clear memos: {e}") from e
        logger.info("Cleared local memo cache")

    # --- Reads ---

    def get_memos_page(self, order_by: str = "created_at", order_dir: str = "desc",
                       offset: int = 0, limit: int = 50) -> List[Memo]:
        """
        Get one page of memos.

        Args:
            order_by: "created_at" or "updated_at"; anything else means created_at
            order_dir: "asc" or "desc"; anything else means desc
            offset: Rows to skip
            limit: Maximum rows to return

        Returns:
            List of memos in the requested order
        """
        query = f"SELECT * FROM memos ORDER BY {resolve_order(order_by, order_dir)} LIMIT ? OFFSET ?"
        try:
            with self.transaction() as conn:
                rows = conn.execute(query, (limit, offset)).fetchall()
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to query memos: {e}") from e
        return [self._row_to_memo(row) for row in rows]

    def search_memos(self, query: str, order_by: str = "created_at", order_dir: str = "desc",
                     offset: int = 0, limit: int = 50) -> List[Memo]:
        """
        Case-sensitive substring search over content and the serialized tag list.

        Ordering and fallback rules are the same as get_memos_page.
        """
        # instr() is case-sensitive and treats the query literally, unlike LIKE
        sql = (
            "SELECT * FROM memos WHERE instr(content, ?) > 0 OR instr(tags, ?) > 0 "
            f"ORDER BY {resolve_order(order_by, order_dir)} LIMIT ? OFFSET ?"
        )
        try:
            with self.transaction() as conn:
                rows = conn.execute(sql, (query, query, limit, offset)).fetchall()
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to search memos: {e}") from e
        return [self._row_to_memo(row) for row in rows]

    def get_all_memos(self) -> List[Memo]:
        """Every stored memo, newest first."""
        try:
            with self.transaction() as conn:
                rows = conn.execute(f"SELECT * FROM memos ORDER BY {resolve_order(None, None)}").fetchall()
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to fetch all memos: {e}") from e
        return [self._row_to_memo(row) for row in rows]

    def get_memo(self, slug: str) -> Optional[Memo]:
        try:
            with self.transaction() as conn:
                row = conn.execute("SELECT * FROM memos WHERE slug = ?", (slug,)).fetchone()
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to fetch memo {slug}: {e}") from e
        return self._row_to_memo(row) if row else None

    def get_memo_count(self) -> int:
        try:
            with self.transaction() as conn:
                return conn.execute("SELECT COUNT(*) FROM memos").fetchone()[0]
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to count memos: {e}") from e

    # --- Sync status ---

    def update_sync_status(self, status: Union[SyncState, str],
                           total_memos: Optional[int] = None,
                           error_message: Optional[str] = None) -> None:
        """
        Update the sync status row.

        - syncing / idle: error cleared
        - completed: last_sync_at set to now, error cleared
        - failed: error_message recorded
        - cancelled: error left as is unless one is given
        total_memos is only written when given.
        """
        state = SyncState(status)
        assignments = ["status = ?"]
        values: list = [state.value]

        if total_memos is not None:
            assignments.append("total_memos = ?")
            values.append(total_memos)

        if state == SyncState.COMPLETED:
            assignments.append("last_sync_at = ?")
            values.append(_utc_now())
            assignments.append("error_message = NULL")
        elif state in (SyncState.SYNCING, SyncState.IDLE):
            assignments.append("error_message = NULL")
        elif error_message is not None:
            assignments.append("error_message = ?")
            values.append(error_message)

        try:
            with self.transaction() as conn:
                conn.execute(f"UPDATE sync_status SET {', '.join(assignments)} WHERE id = 1", values)
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to update sync status: {e}") from e

    def get_sync_status(self) -> SyncStatus:
        try:
            with self.transaction() as conn:
                row = conn.execute(
                    "SELECT last_sync_at, total_memos, status, error_message FROM sync_status WHERE id = 1"
                ).fetchone()
        except sqlite3.Error as e:
            raise MemosDBError(f"Failed to get sync status: {e}") from e
        if row is None:
            raise MemosDBError("Sync status row is missing")
        return SyncStatus(
            status=SyncState(row["status"]),
            last_sync_at=row["last_sync_at"],
            total_memos=row["total_memos"] or 0,
            error_message=row["error_message"],
        )

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


# End of Memos_DB.py
