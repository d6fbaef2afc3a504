"""
Storage management for Search Gateway MCP analytics.

PURPOSE: Centralized JSON file I/O with error handling and data integrity.
AI CONTEXT: All snapshot persistence goes through this module.

STORAGE STRUCTURE:
    $ANALYTICS_DIR/
    ├── analytics.json      # AnalyticsSnapshot document
    └── analytics.json.tmp  # Transient, only during a write

ERROR HANDLING STRATEGY:
- Directory missing: Created on first write
- File not found: Return None (caller starts fresh)
- JSON or UTF-8 corruption: Log error, return None
- Write failure: Log error, return False, don't crash server
- Server continues in degraded mode if storage fails

USAGE:
    # Production
    storage = AnalyticsStorage()

    # Testing with MockFileSystem
    storage = AnalyticsStorage(storage_dir="/test", filesystem=mock_fs)
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Any

from .config import Config
from .filesystem import RealFileSystem

if TYPE_CHECKING:
    from .filesystem import FileSystem

logger = logging.getLogger(__name__)


class AnalyticsStorage:
    """
    JSON snapshot I/O with comprehensive error handling.

    DESIGN PRINCIPLES:
    1. Fail-safe: Never crash server on I/O errors
    2. Predictable: Loads return a dict or None, writes return bool
    3. Crash-safe: Writes go to a temp file that is then moved into place
    4. Logged: All errors recorded for debugging
    5. Testable: FileSystem can be injected for mocking

    THREAD SAFETY:
    Not thread-safe on its own. AnalyticsStore serializes calls.
    Single-writer assumed (one gateway process).
    """

    def __init__(
        self,
        storage_dir: str | None = None,
        filesystem: FileSystem | None = None,
    ) -> None:
        """
        Initialize storage paths. No I/O happens here.

        Args:
            storage_dir: Custom storage path. Default: Config.get_analytics_dir()
            filesystem: FileSystem implementation. Default: RealFileSystem
        """
        self.storage_dir = storage_dir or Config.get_analytics_dir()
        self._fs: FileSystem = filesystem or RealFileSystem()
        self.analytics_file = os.path.join(self.storage_dir, Config.ANALYTICS_FILE)
        self._temp_file = f"{self.analytics_file}.tmp"

    def _ensure_dir(self) -> None:
        """Create the storage directory if it is missing."""
        if not self._fs.exists(self.storage_dir):
            self._fs.makedirs(self.storage_dir, exist_ok=True)
            logger.info(f"Created analytics data directory: {self.storage_dir}")

    def _read_json(self, file_path: str) -> Any:
        """
        Read JSON file with error handling.

        Args:
            file_path: Path to JSON file

        Returns:
            Parsed JSON data, or None on any error.
        """
        try:
            content = self._fs.read_text(file_path)
            return json.loads(content)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in {file_path}: {e}")
            return None
        except UnicodeDecodeError as e:
            logger.error(f"Invalid UTF-8 in {file_path}: {e}")
            return None
        except OSError as e:
            logger.error(f"Error reading {file_path}: {e}")
            return None

    def _write_json(self, file_path: str, data: Any) -> bool:
        """
        Write JSON file through a temporary sibling with error handling.

        Args:
            file_path: Path to JSON file
            data: Data to serialize

        Returns:
            True on success, False on failure.

        FORMATTING:
        - 2-space indent for readability
        - UTF-8 encoding
        """
        try:
            self._ensure_dir()
            content = json.dumps(data, indent=2)
            self._fs.write_text(self._temp_file, content)
            self._fs.replace(self._temp_file, file_path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing {file_path}: {e}")
            self._discard_temp()
            return False

    def _discard_temp(self) -> None:
        """Remove a leftover temp file so the next flush starts clean."""
        if not self._fs.is_file(self._temp_file):
            return
        try:
            self._fs.remove(self._temp_file)
        except OSError as e:
            logger.warning(f"Could not remove {self._temp_file}: {e}")

    # =========================================================================
    # SNAPSHOT OPERATIONS
    # =========================================================================

    def exists(self) -> bool:
        """Check whether a snapshot file is present."""
        return self._fs.is_file(self.analytics_file)

    def load_snapshot(self) -> dict[str, Any] | None:
        """
        Load the analytics snapshot document.

        Returns:
            Parsed JSON object, or None if absent, unreadable, corrupt, or
            not a JSON object.
        """
        data = self._read_json(self.analytics_file)
        if data is None:
            return None
        if not isinstance(data, dict):
            logger.error(f"Ignoring {self.analytics_file}: expected a JSON object")
            return None
        return data

    def save_snapshot(self, snapshot: dict[str, Any]) -> bool:
        """
        Save the analytics snapshot, overwriting any prior snapshot.

        Args:
            snapshot: AnalyticsSnapshot.to_dict() output

        Returns:
            True on success.
        """
        return self._write_json(self.analytics_file, snapshot)
