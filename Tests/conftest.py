"""
Root conftest.py for shared test fixtures and configuration.
This file provides common fixtures used across the test suite.
"""

import shutil
import sys
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import pytest

# Add project root to Python path for consistent imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from memo_mirror.config import reset_config_cache
from memo_mirror.DB.Memos_DB import MemosDB
from memo_mirror.Models.memo import Memo, PaginationCursor


# ========== Path and File System Fixtures ==========

@pytest.fixture
def isolated_temp_dir():
    """Create an isolated temporary directory that's always cleaned up."""
    temp_dir = tempfile.mkdtemp(prefix="memo_mirror_test_")
    temp_path = Path(temp_dir)
    yield temp_path
    # Ensure cleanup even if test fails
    if temp_path.exists():
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def temp_db_path(isolated_temp_dir):
    """Provide a path for a temporary database file."""
    return isolated_temp_dir / "test_memos.db"


# ========== Cleanup and Isolation Fixtures ==========

@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config, database and token lookups at a per-test directory."""
    monkeypatch.setenv("MEMO_MIRROR_CONFIG", str(tmp_path / "config" / "config.toml"))
    monkeypatch.setenv("MEMO_MIRROR_DB", str(tmp_path / "data" / "memos.db"))
    monkeypatch.delenv("FLOMO_TOKEN", raising=False)
    monkeypatch.delenv("MEMO_MIRROR_LOG_LEVEL", raising=False)
    reset_config_cache()
    yield tmp_path
    reset_config_cache()


@pytest.fixture(autouse=True)
def restore_sys_path():
    """Automatically restore sys.path after each test."""
    original_path = sys.path.copy()
    yield
    sys.path[:] = original_path


# ========== Database Fixtures ==========

@pytest.fixture
def memos_db(temp_db_path):
    """File-backed memo store, closed after the test."""
    db = MemosDB(temp_db_path, client_id="test_client")
    yield db
    db.close()


# ========== Memo Fixtures ==========

def build_memo(index: Union[int, str], content: Optional[str] = None, created_at: str = "2024-01-01 00:00:00",
               updated_at: Optional[str] = "auto", tags: Sequence[str] = ()) -> Memo:
    """Memo with a predictable slug; updated_at defaults to a value derived from the index."""
    slug = index if isinstance(index, str) else f"memo-{index:05d}"
    if updated_at == "auto":
        seconds = index if isinstance(index, int) else 0
        updated_at = f"2024-02-01 {seconds // 3600 % 24:02d}:{seconds // 60 % 60:02d}:{seconds % 60:02d}"
    return Memo(
        slug=slug,
        content=content if content is not None else f"Memo body {index}",
        created_at=created_at,
        updated_at=updated_at,
        tags=list(tags),
        url=f"https://v.flomoapp.com/mine/?memo_id={slug}",
    )


@pytest.fixture
def make_memo() -> Callable[..., Memo]:
    return build_memo


def memo_range(start: int, stop: int, **kwargs) -> List[Memo]:
    return [build_memo(i, **kwargs) for i in range(start, stop)]


@pytest.fixture
def make_memos() -> Callable[..., List[Memo]]:
    """make_memos(start, stop) -> memos with slugs memo-<start> .. memo-<stop - 1>."""
    return memo_range


class ScriptedSource:
    """
    In-memory MemoSource replaying a fixed list of pages.

    Entries may be exceptions, which are raised instead of returned. Once the
    script runs out, empty pages are returned (or the last page repeats when
    `repeat_last` is set).
    """

    def __init__(self, pages: Sequence[Union[List[Memo], Exception]], page_size: int = 200,
                 repeat_last: bool = False):
        self.pages = list(pages)
        self._page_size = page_size
        self.repeat_last = repeat_last
        self.cursors: List[Optional[PaginationCursor]] = []
        self.closed = False

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def fetch_count(self) -> int:
        return len(self.cursors)

    async def fetch_page(self, cursor: Optional[PaginationCursor]) -> List[Memo]:
        self.cursors.append(cursor)
        position = len(self.cursors) - 1
        if position < len(self.pages):
            page = self.pages[position]
        elif self.repeat_last and self.pages:
            page = self.pages[-1]
        else:
            page = []
        if isinstance(page, Exception):
            raise page
        return list(page)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def scripted_source() -> Callable[..., ScriptedSource]:
    return ScriptedSource
