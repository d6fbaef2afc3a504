"""
Statistics engine for Search Gateway MCP analytics.

PURPOSE: Derive read-only views from analytics counters.
AI CONTEXT: Pure data processing - no visualization, no I/O.

METRIC CATEGORIES:
1. Time Metrics: Uptime since server start, hourly request buckets
2. Usage Metrics: Tool ranking, unique clients
3. Reports: Plain-text summary for the CLI

HOUR BUCKETS:
Keys are UTC timestamps truncated to the hour, e.g. '2025-12-01T14'.
They sort lexicographically in chronological order.

USAGE:
    engine = StatisticsEngine()
    uptime = engine.format_uptime(snapshot.server_start_time)
    ranked = engine.rank_tools(snapshot.tool_calls)
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from .config import Config


def _parse_iso(value: str) -> datetime | None:
    """Parse an ISO 8601 timestamp, accepting a trailing 'Z'."""
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class StatisticsEngine:
    """
    Calculator for analytics summary views.

    DESIGN:
    - Stateless: Each method operates on provided data
    - Pure: No side effects, only data transformation
    - Clock-injectable: Methods accept `now` for deterministic tests
    """

    def __init__(self, hourly_window: int | None = None) -> None:
        """
        Initialize the engine.

        Args:
            hourly_window: Number of most recent hour buckets to report.
                Default: Config.HOURLY_WINDOW (24)
        """
        self.hourly_window = hourly_window or Config.HOURLY_WINDOW

    @staticmethod
    def hour_key(now: datetime | None = None) -> str:
        """
        Build the hourly bucket key for a timestamp.

        Args:
            now: Timestamp to bucket. Defaults to current UTC time.

        Returns:
            'YYYY-MM-DDTHH' in UTC.

        Example:
            >>> StatisticsEngine.hour_key(datetime(2025, 1, 2, 3, 45, tzinfo=UTC))
            '2025-01-02T03'
        """
        moment = (now or datetime.now(UTC)).astimezone(UTC)
        return moment.strftime("%Y-%m-%dT%H")

    def format_uptime(self, server_start_time: str, now: datetime | None = None) -> str:
        """
        Format elapsed time since server start.

        Business context: Uptime is shown on the dashboard badge. Because the
        start time is inherited from a reloaded snapshot, it reflects how long
        analytics have been collected, not the current process age.

        Args:
            server_start_time: ISO 8601 start timestamp from the snapshot.
            now: Current time. Defaults to current UTC time.

        Returns:
            '{d}d {h}h {m}m' when at least a day has passed, '{h}h {m}m' when
            at least an hour has passed, else '{m}m'. Unparseable or future
            start times yield '0m'.

        Example:
            >>> engine = StatisticsEngine()
            >>> engine.format_uptime(
            ...     '2025-01-01T00:00:00Z', datetime(2025, 1, 2, 3, 4, tzinfo=UTC)
            ... )
            '1d 3h 4m'
        """
        start = _parse_iso(server_start_time)
        if start is None:
            return "0m"
        elapsed = int(((now or datetime.now(UTC)) - start).total_seconds())
        if elapsed < 0:
            return "0m"

        days, remainder = divmod(elapsed, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes = remainder // 60

        if days > 0:
            return f"{days}d {hours}h {minutes}m"
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    def rank_tools(self, tool_calls: dict[str, int]) -> list[tuple[str, int]]:
        """
        Sort tools by descending call count.

        Ties keep first-seen order, so the ranking is stable across calls.

        Args:
            tool_calls: Mapping of tool name to count.

        Returns:
            List of (tool_name, count) pairs, most used first.
        """
        return sorted(tool_calls.items(), key=lambda item: item[1], reverse=True)

    def recent_hours(self, hourly_requests: dict[str, int]) -> dict[str, int]:
        """
        Select the most recent hour buckets in ascending time order.

        Args:
            hourly_requests: Mapping of hour key to request count.

        Returns:
            Dict with at most `hourly_window` entries, oldest first.
        """
        latest = sorted(hourly_requests.items(), key=lambda item: item[0], reverse=True)
        return dict(reversed(latest[: self.hourly_window]))

    def unique_clients(self, clients_by_ip: dict[str, int]) -> int:
        """Count distinct client IPs seen."""
        return len(clients_by_ip)

    def generate_summary_report(self, summary: dict[str, Any]) -> str:
        """
        Render an analytics summary as a plain-text report.

        Args:
            summary: Output of AnalyticsStore.summarize().

        Returns:
            Multi-line report string for terminal output.
        """
        lines = [
            "=" * 50,
            f"{summary.get('server', Config.SERVER_NAME).upper()} - ANALYTICS REPORT",
            "=" * 50,
            f"Uptime:          {summary.get('uptime', '0m')}",
            f"Tracking since:  {summary.get('serverStartTime', '')}",
        ]
        totals = summary.get("summary", {})
        lines += [
            "",
            f"Total requests:   {totals.get('totalRequests', 0)}",
            f"Total tool calls: {totals.get('totalToolCalls', 0)}",
            f"Unique clients:   {totals.get('uniqueClients', 0)}",
        ]

        by_tool = summary.get("breakdown", {}).get("byTool", {})
        lines += ["", "Tools:"]
        if by_tool:
            lines += [f"  {name:<28} {count}" for name, count in by_tool.items()]
        else:
            lines.append("  (no tool calls yet)")

        by_endpoint = summary.get("breakdown", {}).get("byEndpoint", {})
        if by_endpoint:
            lines += ["", "Endpoints:"]
            lines += [f"  {name:<28} {count}" for name, count in by_endpoint.items()]

        lines.append("=" * 50)
        return "\n".join(lines)
