"""
Pytest configuration and shared fixtures for Search Gateway MCP tests.

This module contains:
- MockFileSystem: In-memory filesystem for testing without actual I/O
- FrozenClock: Settable clock for deterministic timestamps
- Shared fixtures available to all test modules
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import pytest

from search_gateway_mcp.analytics import AnalyticsStore
from search_gateway_mcp.config import Config
from search_gateway_mcp.storage import AnalyticsStorage

STORAGE_DIR = "/test/data"
START_TIME = datetime(2025, 1, 15, 10, 30, 0, tzinfo=UTC)


class MockFileSystem:
    """
    In-memory file system for testing.

    Simulates a file system using dictionaries:
    - _files: dict mapping path -> content (str)
    - _dirs: set of directory paths
    - _read_only: paths whose writes raise PermissionError

    FEATURES:
    - No actual I/O operations
    - Easy to inspect state
    - Supports permission simulation via chmod()
    """

    def __init__(self) -> None:
        self._files: dict[str, str] = {}
        self._dirs: set[str] = set()
        self._read_only: set[str] = set()

    def exists(self, path: str) -> bool:
        return path in self._files or path in self._dirs

    def is_file(self, path: str) -> bool:
        return path in self._files

    def is_dir(self, path: str) -> bool:
        return path in self._dirs

    def makedirs(self, path: str, exist_ok: bool = False) -> None:
        """
        Create mock directory and parent directories.

        Args:
            path: Absolute path of directory to create.
            exist_ok: If True, don't raise if directory exists.

        Raises:
            FileExistsError: If path exists and exist_ok is False.
            PermissionError: If path is marked read-only.
        """
        if path in self._read_only:
            raise PermissionError(f"Permission denied: {path}")
        if path in self._dirs and not exist_ok:
            raise FileExistsError(f"Directory exists: {path}")
        parts = path.rstrip("/").split("/")
        for i in range(1, len(parts) + 1):
            parent = "/".join(parts[:i])
            if parent:
                self._dirs.add(parent)

    def read_text(self, path: str, _encoding: str = "utf-8") -> str:
        """
        Read mock file contents.

        Raises:
            FileNotFoundError: If path not in _files.
        """
        if path not in self._files:
            raise FileNotFoundError(f"No such file: {path}")
        return self._files[path]

    def write_text(self, path: str, content: str, _encoding: str = "utf-8") -> None:
        """
        Write text to mock file, creating parent directories.

        Raises:
            PermissionError: If the path or its directory is read-only.

        Example:
            >>> fs = MockFileSystem()
            >>> fs.write_text('/data/analytics.json', '{}')
            >>> fs.get_file('/data/analytics.json')
            '{}'
        """
        parent = "/".join(path.rstrip("/").split("/")[:-1])
        if path in self._read_only or parent in self._read_only:
            raise PermissionError(f"Permission denied: {path}")
        if parent and parent not in self._dirs:
            self.makedirs(parent, exist_ok=True)
        self._files[path] = content

    def replace(self, src: str, dst: str) -> None:
        """
        Move src over dst atomically (dst is overwritten if present).

        Raises:
            FileNotFoundError: If src does not exist.
            PermissionError: If dst is read-only.
        """
        if src not in self._files:
            raise FileNotFoundError(f"No such file: {src}")
        if dst in self._read_only:
            raise PermissionError(f"Permission denied: {dst}")
        self._files[dst] = self._files.pop(src)

    def remove(self, path: str) -> None:
        if path not in self._files:
            raise FileNotFoundError(f"No such file: {path}")
        del self._files[path]
        self._read_only.discard(path)

    def chmod(self, path: str, mode: int) -> None:
        """
        Simulate permission changes.

        Only the owner write bit (0o200) matters: without it, writes to the
        path (or into the directory) raise PermissionError.

        Raises:
            FileNotFoundError: If path not in _files or _dirs.
        """
        if path not in self._files and path not in self._dirs:
            raise FileNotFoundError(f"No such file or directory: {path}")
        if mode & 0o200 == 0:
            self._read_only.add(path)
        else:
            self._read_only.discard(path)

    # Test helpers

    def get_file(self, path: str) -> str | None:
        return self._files.get(path)

    def set_file(self, path: str, content: str) -> None:
        """Put a file in place directly, creating parent directories."""
        parent = "/".join(path.rstrip("/").split("/")[:-1])
        if parent:
            self.makedirs(parent, exist_ok=True)
        self._files[path] = content

    def list_files(self) -> list[str]:
        return sorted(self._files)

    def clear(self) -> None:
        self._files.clear()
        self._dirs.clear()
        self._read_only.clear()


class FrozenClock:
    """
    Callable clock for AnalyticsStore that only moves when told to.

    Example:
        >>> clock = FrozenClock()
        >>> clock.advance(minutes=5)
        >>> clock() - START_TIME
        datetime.timedelta(seconds=300)
    """

    def __init__(self, start: datetime = START_TIME) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_config() -> Iterator[None]:
    """
    Clear Config overrides and the extracted API key around every test.

    Config keeps class-level state, so one test's overrides would otherwise
    leak into the next.
    """
    Config.reset_test_overrides()
    yield
    Config.reset_test_overrides()


@pytest.fixture
def mock_fs() -> MockFileSystem:
    """Fresh in-memory filesystem for each test."""
    return MockFileSystem()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def storage(mock_fs: MockFileSystem) -> AnalyticsStorage:
    """AnalyticsStorage rooted at /test/data on the mock filesystem."""
    return AnalyticsStorage(storage_dir=STORAGE_DIR, filesystem=mock_fs)


@pytest.fixture
def store(storage: AnalyticsStorage, clock: FrozenClock) -> AnalyticsStore:
    """
    AnalyticsStore on mock storage with a frozen clock.

    Example:
        >>> store.record_request("GET", "/health", "10.0.0.1", "curl/8.4")
        >>> store.total_requests
        1
    """
    return AnalyticsStore(storage=storage, clock=clock)
