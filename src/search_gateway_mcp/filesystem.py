"""
Snapshot I/O seam for Search Gateway MCP.

PURPOSE: Keep every disk access of AnalyticsStorage behind one small interface.
AI CONTEXT: Tests swap in the in-memory MockFileSystem from tests/conftest.py
to simulate a missing volume, corrupt JSON or a read-only mount.

OPERATIONS USED BY STORAGE:
- exists / is_file: probe for analytics.json
- makedirs: create ANALYTICS_DIR on first flush
- read_text / write_text: snapshot body
- replace: move analytics.json.tmp over analytics.json
- remove: discard a temp file after a failed move

USAGE:
    storage = AnalyticsStorage(filesystem=RealFileSystem())
    storage = AnalyticsStorage(filesystem=mock_fs)  # pytest fixture
"""

from __future__ import annotations

import os
from typing import Protocol

__all__ = ["FileSystem", "RealFileSystem"]


class FileSystem(Protocol):
    """
    Structural interface for snapshot storage.

    Paths are plain strings. Errors surface as the usual OSError subclasses;
    AnalyticsStorage decides which of them are survivable.
    """

    def exists(self, path: str) -> bool: ...

    def is_file(self, path: str) -> bool: ...

    def makedirs(self, path: str, exist_ok: bool = False) -> None:
        """Create path and its parents. Raises OSError if it exists and not exist_ok."""
        ...

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        """
        Return the whole file.

        Raises:
            FileNotFoundError: If the snapshot has never been written.
        """
        ...

    def write_text(self, path: str, content: str, encoding: str = "utf-8") -> None:
        """
        Create or truncate path and write content.

        Raises:
            PermissionError: On a read-only volume.
        """
        ...

    def replace(self, src: str, dst: str) -> None:
        """
        Move src over dst in one step.

        The temp-then-replace sequence means a crash mid-flush leaves the
        previous analytics.json intact.

        Raises:
            FileNotFoundError: If src is missing.
        """
        ...

    def remove(self, path: str) -> None: ...


class RealFileSystem:
    """FileSystem backed by the os module."""

    def exists(self, path: str) -> bool:  # pragma: no cover
        return os.path.exists(path)

    def is_file(self, path: str) -> bool:  # pragma: no cover
        return os.path.isfile(path)

    def makedirs(self, path: str, exist_ok: bool = False) -> None:  # pragma: no cover
        os.makedirs(path, exist_ok=exist_ok)

    def read_text(self, path: str, encoding: str = "utf-8") -> str:  # pragma: no cover
        with open(path, encoding=encoding) as snapshot:
            return snapshot.read()

    def write_text(
        self, path: str, content: str, encoding: str = "utf-8"
    ) -> None:  # pragma: no cover
        with open(path, "w", encoding=encoding) as snapshot:
            snapshot.write(content)

    def replace(self, src: str, dst: str) -> None:  # pragma: no cover
        os.replace(src, dst)

    def remove(self, path: str) -> None:  # pragma: no cover
        os.remove(path)
