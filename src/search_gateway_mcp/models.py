"""
Data models for Search Gateway MCP analytics.

PURPOSE: Type-safe dataclasses representing the persisted analytics state.
AI CONTEXT: These models define the JSON schema of analytics.json.

MODEL HIERARCHY:
- AnalyticsSnapshot: Process-wide counters (has many ToolCallRecords)
- ToolCallRecord: One recent tool invocation, newest first in the snapshot

SERIALIZATION:
All models have to_dict() for JSON persistence and from_dict() for loading.
JSON keys are camelCase so snapshots written by earlier deployments load
unchanged. Timestamps use ISO 8601 format with UTC timezone.

USAGE:
    snapshot = AnalyticsSnapshot.create()
    record = ToolCallRecord.create("brave_web_search", "10.0.0.1", "curl/8.4")
    snapshot.recent_tool_calls.insert(0, record)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


def _now_iso(now: datetime | None = None) -> str:
    """
    Format a UTC timestamp as ISO 8601 with millisecond precision.

    Args:
        now: Timestamp to format. Defaults to the current UTC time.

    Returns:
        String like '2025-12-01T10:30:00.123Z'.
    """
    moment = now or datetime.now(UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _coerce_counts(raw: Any) -> dict[str, int]:
    """
    Convert a loaded JSON mapping into a str -> int counter dict.

    Entries whose value cannot be read as a non-negative integer are dropped
    and logged, so a hand-edited snapshot never poisons the counters.
    """
    if not isinstance(raw, dict):
        return {}
    counts: dict[str, int] = {}
    for key, value in raw.items():
        try:
            count = int(value)
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Dropping non-integer counter {key!r}: {value!r}")
            continue
        if count < 0:
            logger.warning(f"Dropping negative counter {key!r}: {count}")
            continue
        counts[str(key)] = count
    return counts


def _coerce_total(raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(value, 0)


@dataclass
class ToolCallRecord:
    """
    A single recorded tool invocation.

    Business context: The dashboard lists the latest calls so operators can
    see who is using which search tool right now.
    """

    tool: str
    timestamp: str
    client_ip: str
    user_agent: str

    @classmethod
    def create(
        cls,
        tool: str,
        client_ip: str,
        user_agent: str,
        now: datetime | None = None,
    ) -> ToolCallRecord:
        """
        Factory method stamping the record with the current time.

        Args:
            tool: Tool name from the tools/call params.
            client_ip: Resolved client address.
            user_agent: Truncated User-Agent header.
            now: Optional clock value for deterministic tests.

        Returns:
            New ToolCallRecord.
        """
        return cls(tool=tool, timestamp=_now_iso(now), client_ip=client_ip, user_agent=user_agent)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "timestamp": self.timestamp,
            "clientIp": self.client_ip,
            "userAgent": self.user_agent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCallRecord:
        return cls(
            tool=str(data.get("tool", "unknown")),
            timestamp=str(data.get("timestamp", "")),
            client_ip=str(data.get("clientIp", "unknown")),
            user_agent=str(data.get("userAgent", "unknown")),
        )


@dataclass
class AnalyticsSnapshot:
    """
    Full durable representation of the analytics counters.

    LIFECYCLE:
    1. Created at process start, fresh or loaded from analytics.json
    2. Mutated by every tracked request and tool call (via AnalyticsStore)
    3. Persisted periodically and on graceful shutdown

    INVARIANTS:
    - All counters are non-negative integers
    - Keyed counters gain keys lazily on first occurrence
    - recent_tool_calls is newest first and bounded by the store
    """

    server_start_time: str
    total_requests: int = 0
    total_tool_calls: int = 0
    requests_by_method: dict[str, int] = field(default_factory=dict)
    requests_by_endpoint: dict[str, int] = field(default_factory=dict)
    tool_calls: dict[str, int] = field(default_factory=dict)
    recent_tool_calls: list[ToolCallRecord] = field(default_factory=list)
    clients_by_ip: dict[str, int] = field(default_factory=dict)
    clients_by_user_agent: dict[str, int] = field(default_factory=dict)
    hourly_requests: dict[str, int] = field(default_factory=dict)

    @classmethod
    def create(cls, now: datetime | None = None) -> AnalyticsSnapshot:
        """
        Create an empty snapshot whose server start time is now.

        Args:
            now: Optional clock value for deterministic tests.

        Returns:
            AnalyticsSnapshot with zeroed counters.
        """
        return cls(server_start_time=_now_iso(now))

    def to_dict(self) -> dict[str, Any]:
        """
        Convert snapshot to the analytics.json document.

        Returns:
            Dict with camelCase keys. Counter dicts are copied so callers
            can serialize outside the store lock.
        """
        return {
            "serverStartTime": self.server_start_time,
            "totalRequests": self.total_requests,
            "totalToolCalls": self.total_tool_calls,
            "requestsByMethod": dict(self.requests_by_method),
            "requestsByEndpoint": dict(self.requests_by_endpoint),
            "toolCalls": dict(self.tool_calls),
            "recentToolCalls": [record.to_dict() for record in self.recent_tool_calls],
            "clientsByIp": dict(self.clients_by_ip),
            "clientsByUserAgent": dict(self.clients_by_user_agent),
            "hourlyRequests": dict(self.hourly_requests),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], now: datetime | None = None) -> AnalyticsSnapshot:
        """
        Create snapshot from a loaded analytics.json document.

        Missing sections fall back to empty values and a missing or empty
        serverStartTime is replaced with now, matching a fresh start.

        Args:
            data: Parsed JSON object.
            now: Clock used when serverStartTime is absent.

        Returns:
            AnalyticsSnapshot populated from data.
        """
        recent_raw = data.get("recentToolCalls")
        recent = [
            ToolCallRecord.from_dict(item)
            for item in (recent_raw if isinstance(recent_raw, list) else [])
            if isinstance(item, dict)
        ]
        return cls(
            server_start_time=str(data.get("serverStartTime") or _now_iso(now)),
            total_requests=_coerce_total(data.get("totalRequests", 0)),
            total_tool_calls=_coerce_total(data.get("totalToolCalls", 0)),
            requests_by_method=_coerce_counts(data.get("requestsByMethod")),
            requests_by_endpoint=_coerce_counts(data.get("requestsByEndpoint")),
            tool_calls=_coerce_counts(data.get("toolCalls")),
            recent_tool_calls=recent,
            clients_by_ip=_coerce_counts(data.get("clientsByIp")),
            clients_by_user_agent=_coerce_counts(data.get("clientsByUserAgent")),
            hourly_requests=_coerce_counts(data.get("hourlyRequests")),
        )
