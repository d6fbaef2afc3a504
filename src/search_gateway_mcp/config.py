"""
Configuration for Search Gateway MCP Server.

PURPOSE: Centralized configuration constants and runtime settings.
AI CONTEXT: All configurable values live here - modify this file to change behavior.

CONFIGURATION CATEGORIES:
- Server identity: Name, description, MCP protocol version
- Analytics: Snapshot location, flush interval, recent-call bound
- Sessions: Optional cap on concurrently registered sessions
- HTTP: Bind host and port

ENVIRONMENT VARIABLES:
- ANALYTICS_DIR: Directory holding analytics.json (default: /app/data)
- ANALYTICS_SAVE_INTERVAL: Seconds between periodic flushes (default: 60)
- ANALYTICS_MAX_RECENT_CALLS: Recent tool calls kept (default: 100)
- ANALYTICS_IMPORT_KEY: Shared secret for /analytics/import (default: unset)
- MCP_MAX_SESSIONS: Registered session cap, 0 for unbounded (default: 0)
- BRAVE_API_KEY: Fallback search API key when a request carries none
- HOST / PORT: HTTP bind address (default: 0.0.0.0:8080)

USAGE:
    from search_gateway_mcp.config import Config
    analytics_dir = Config.get_analytics_dir()
    interval = Config.get_save_interval()
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, ClassVar


def _env_int(name: str, default: int) -> int:
    """Read a non-negative integer environment variable, falling back on bad values."""
    raw = os.environ.get(name, "")
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


@dataclass(frozen=True)
class Config:
    """
    Immutable configuration container for Search Gateway MCP.

    DESIGN: Frozen dataclass ensures configuration immutability at runtime.
    All values are class-level constants - no instance creation needed.
    Environment-backed settings are read through classmethods so tests can
    override them without touching os.environ.

    STORAGE STRUCTURE:
        $ANALYTICS_DIR/
        └── analytics.json   # AnalyticsSnapshot document
    """

    # =========================================================================
    # SERVER IDENTITY
    # =========================================================================
    SERVER_NAME: ClassVar[str] = "Brave Search MCP Server"
    SERVER_DESCRIPTION: ClassVar[str] = (
        "MCP server for Brave Search API with web, local, image, video, "
        "news search and AI summarization"
    )
    DOCUMENTATION_URL: ClassVar[str] = "https://github.com/hithereiamaliff/mcp-bravesearch"
    TRANSPORT_NAME: ClassVar[str] = "streamable-http"

    # =========================================================================
    # MCP PROTOCOL CONFIGURATION
    # =========================================================================
    MCP_VERSION: ClassVar[str] = "2025-03-26"
    MCP_SERVER_NAME: ClassVar[str] = "brave-search"
    MCP_ENDPOINT: ClassVar[str] = "/mcp"
    SESSION_HEADER: ClassVar[str] = "mcp-session-id"

    # =========================================================================
    # ANALYTICS CONFIGURATION
    # =========================================================================
    ANALYTICS_DIR: ClassVar[str] = "/app/data"
    ANALYTICS_FILE: ClassVar[str] = "analytics.json"
    SAVE_INTERVAL_SECONDS: ClassVar[int] = 60
    MAX_RECENT_CALLS: ClassVar[int] = 100
    SUMMARY_RECENT_CALLS: ClassVar[int] = 20
    TOOLS_RECENT_CALLS: ClassVar[int] = 50
    HOURLY_WINDOW: ClassVar[int] = 24
    USER_AGENT_MAX_LENGTH: ClassVar[int] = 50

    # =========================================================================
    # HTTP CONFIGURATION
    # =========================================================================
    DEFAULT_HOST: ClassVar[str] = "0.0.0.0"  # nosec B104
    DEFAULT_PORT: ClassVar[int] = 8080

    # =========================================================================
    # ENVIRONMENT-BASED SETTINGS (runtime configurable)
    # =========================================================================
    _overrides: ClassVar[dict[str, Any]] = {}
    _api_key: ClassVar[str] = ""

    @classmethod
    def _override(cls, key: str) -> Any:
        return cls._overrides.get(key)

    @classmethod
    def get_analytics_dir(cls) -> str:
        """
        Get the directory that holds the analytics snapshot.

        Business context: Container deployments mount a volume at this path so
        counters survive restarts.

        Returns:
            Directory path from the test override, ANALYTICS_DIR, or /app/data.
        """
        override = cls._override("analytics_dir")
        if override is not None:
            return str(override)
        return os.environ.get("ANALYTICS_DIR") or cls.ANALYTICS_DIR

    @classmethod
    def get_save_interval(cls) -> int:
        """
        Get the periodic analytics flush interval in seconds.

        Returns:
            Positive number of seconds. Zero or invalid values fall back to
            SAVE_INTERVAL_SECONDS.
        """
        override = cls._override("save_interval")
        if override is not None:
            return int(override)
        return _env_int("ANALYTICS_SAVE_INTERVAL", cls.SAVE_INTERVAL_SECONDS) or (
            cls.SAVE_INTERVAL_SECONDS
        )

    @classmethod
    def get_max_recent_calls(cls) -> int:
        """Get the bound on the recent tool-call history."""
        override = cls._override("max_recent_calls")
        if override is not None:
            return int(override)
        return _env_int("ANALYTICS_MAX_RECENT_CALLS", cls.MAX_RECENT_CALLS) or (
            cls.MAX_RECENT_CALLS
        )

    @classmethod
    def get_import_key(cls) -> str | None:
        """
        Get the shared secret guarding /analytics/import.

        Business context: Restoring backups mutates counters, so deployments
        that expose the gateway publicly set a key. Unset means the endpoint
        is open.

        Returns:
            The configured key, or None when no key is required.
        """
        if "import_key" in cls._overrides:
            value = cls._overrides["import_key"]
            return str(value) if value else None
        return os.environ.get("ANALYTICS_IMPORT_KEY") or None

    @classmethod
    def get_max_sessions(cls) -> int:
        """Get the registered session cap. Zero means unbounded."""
        override = cls._override("max_sessions")
        if override is not None:
            return int(override)
        return _env_int("MCP_MAX_SESSIONS", 0)

    @classmethod
    def get_host(cls) -> str:
        """Get the HTTP bind host."""
        return os.environ.get("HOST") or cls.DEFAULT_HOST

    @classmethod
    def get_port(cls) -> int:
        """Get the HTTP bind port."""
        return _env_int("PORT", cls.DEFAULT_PORT) or cls.DEFAULT_PORT

    # =========================================================================
    # SEARCH API KEY
    # =========================================================================
    @classmethod
    def set_api_key(cls, api_key: str) -> None:
        """
        Store the search API key extracted from the latest /mcp request.

        Args:
            api_key: Key supplied by query parameter, header, or environment.
        """
        cls._api_key = api_key

    @classmethod
    def get_api_key(cls) -> str:
        """
        Get the search API key for outbound provider calls.

        Returns:
            The most recently extracted key, else BRAVE_API_KEY, else "".
        """
        return cls._api_key or os.environ.get("BRAVE_API_KEY", "")

    # =========================================================================
    # TEST SUPPORT
    # =========================================================================
    @classmethod
    def set_test_overrides(
        cls,
        analytics_dir: str | None = None,
        save_interval: int | None = None,
        max_recent_calls: int | None = None,
        import_key: str | None = None,
        max_sessions: int | None = None,
    ) -> None:
        """
        Set test overrides for environment-based settings.

        Must call reset_test_overrides() in test teardown to avoid affecting
        other tests. A None argument leaves that setting to the environment,
        except import_key where "" forces "no key required".

        Example:
            >>> Config.set_test_overrides(import_key="secret")
            >>> Config.get_import_key()
            'secret'
            >>> Config.reset_test_overrides()
        """
        values = {
            "analytics_dir": analytics_dir,
            "save_interval": save_interval,
            "max_recent_calls": max_recent_calls,
            "import_key": import_key,
            "max_sessions": max_sessions,
        }
        cls._overrides = {key: value for key, value in values.items() if value is not None}

    @classmethod
    def reset_test_overrides(cls) -> None:
        """Clear test overrides and the extracted API key."""
        cls._overrides = {}
        cls._api_key = ""
