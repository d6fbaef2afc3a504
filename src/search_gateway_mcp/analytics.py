"""
Analytics store for Search Gateway MCP.

PURPOSE: Process-wide usage counters with durable JSON snapshots.
AI CONTEXT: Every tracked request and tool call mutates state through this module.

STATE:
- One AnalyticsSnapshot held in memory, authoritative between flushes
- Loaded once at startup, persisted by AnalyticsScheduler and on import

FAILURE SEMANTICS:
- Missing or corrupt snapshot: start fresh with serverStartTime = now
- Persist failure: log and keep serving, in-memory state stays authoritative

CONCURRENCY:
All mutation goes through methods that hold a single lock, so the store is
safe under the asyncio event loop and from threadpool handlers alike.

USAGE:
    store = AnalyticsStore(AnalyticsStorage())
    store.load()
    store.record_request("POST", "/mcp", "10.0.0.1", "curl/8.4")
    store.record_tool_call("brave_web_search", "10.0.0.1", "curl/8.4")
    store.persist()
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .config import Config
from .models import AnalyticsSnapshot, ToolCallRecord
from .statistics import StatisticsEngine
from .storage import AnalyticsStorage

if TYPE_CHECKING:
    from .schemas import ImportPayload

__all__ = ["AnalyticsStore"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _increment(counter: dict[str, int], key: str, amount: int = 1) -> None:
    counter[key] = counter.get(key, 0) + amount


class AnalyticsStore:
    """
    State holder for gateway usage analytics.

    INVARIANTS:
    - Counters only grow; all values are non-negative integers
    - recent_tool_calls is newest first and never longer than max_recent_calls
    - serverStartTime is set once: at construction or from a loaded snapshot

    Readers get copies (snapshot(), summarize(), tool_report()) so nothing
    outside this class holds a reference to mutable counter state.
    """

    def __init__(
        self,
        storage: AnalyticsStorage | None = None,
        statistics: StatisticsEngine | None = None,
        max_recent_calls: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize an empty store. Call load() to restore persisted counts.

        Args:
            storage: Snapshot persistence. Default: AnalyticsStorage()
            statistics: Summary calculator. Default: StatisticsEngine()
            max_recent_calls: Bound on recent tool calls.
                Default: Config.get_max_recent_calls()
            clock: Callable returning the current UTC datetime.
        """
        self.storage = storage or AnalyticsStorage()
        self.statistics = statistics or StatisticsEngine()
        self.max_recent_calls = max_recent_calls or Config.get_max_recent_calls()
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._snapshot = AnalyticsSnapshot.create(self._clock())

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def load(self) -> bool:
        """
        Replace in-memory state with the persisted snapshot, if any.

        Never raises. A missing or unreadable snapshot leaves a fresh state
        whose serverStartTime is now.

        Returns:
            True if a stored snapshot was loaded.
        """
        data = self.storage.load_snapshot()
        if data is None:
            with self._lock:
                self._snapshot = AnalyticsSnapshot.create(self._clock())
            logger.info("No existing analytics file, starting fresh")
            return False

        loaded = AnalyticsSnapshot.from_dict(data, now=self._clock())
        del loaded.recent_tool_calls[self.max_recent_calls :]
        with self._lock:
            self._snapshot = loaded
        logger.info(f"Loaded analytics from {self.storage.analytics_file}")
        logger.info(f"   Total requests: {loaded.total_requests}")
        return True

    def persist(self) -> bool:
        """
        Write the full snapshot to durable storage.

        Failure is logged, not raised. The in-memory state remains
        authoritative until the next successful persist.

        Returns:
            True on success.
        """
        with self._lock:
            document = self._snapshot.to_dict()
        with self._persist_lock:
            saved = self.storage.save_snapshot(document)
        if saved:
            logger.info(f"Saved analytics to {self.storage.analytics_file}")
        else:
            logger.error("Failed to save analytics, keeping in-memory state")
        return saved

    # =========================================================================
    # RECORDING
    # =========================================================================

    def record_request(
        self,
        method: str,
        endpoint: str,
        client_ip: str,
        user_agent: str,
        now: datetime | None = None,
    ) -> None:
        """
        Count one inbound HTTP request.

        Args:
            method: HTTP method, e.g. 'POST'.
            endpoint: Logical endpoint name, e.g. '/mcp'.
            client_ip: Resolved client address.
            user_agent: User-Agent header, truncated to 50 characters here.
            now: Request arrival time. Defaults to the store clock.
        """
        hour = self.statistics.hour_key(now or self._clock())
        agent = user_agent[: Config.USER_AGENT_MAX_LENGTH]
        with self._lock:
            snapshot = self._snapshot
            snapshot.total_requests += 1
            _increment(snapshot.requests_by_method, method)
            _increment(snapshot.requests_by_endpoint, endpoint)
            _increment(snapshot.clients_by_ip, client_ip)
            _increment(snapshot.clients_by_user_agent, agent)
            _increment(snapshot.hourly_requests, hour)

    def record_tool_call(
        self,
        tool_name: str,
        client_ip: str,
        user_agent: str,
        now: datetime | None = None,
    ) -> None:
        """
        Count one tools/call invocation and remember it as the newest call.

        Args:
            tool_name: Name from the tools/call params.
            client_ip: Resolved client address.
            user_agent: User-Agent header, truncated to 50 characters here.
            now: Call time. Defaults to the store clock.
        """
        record = ToolCallRecord.create(
            tool_name,
            client_ip,
            user_agent[: Config.USER_AGENT_MAX_LENGTH],
            now=now or self._clock(),
        )
        with self._lock:
            snapshot = self._snapshot
            snapshot.total_tool_calls += 1
            _increment(snapshot.tool_calls, tool_name)
            snapshot.recent_tool_calls.insert(0, record)
            del snapshot.recent_tool_calls[self.max_recent_calls :]

    def merge(self, delta: ImportPayload) -> None:
        """
        Add externally supplied aggregate counts to the live counters.

        Used to restore a backup after the snapshot volume was lost. Each
        section is optional and skipped when absent. Recent tool-call
        history is never touched.

        Args:
            delta: Validated import payload.
        """
        with self._lock:
            snapshot = self._snapshot
            if delta.summary is not None:
                snapshot.total_requests += delta.summary.totalRequests or 0
                snapshot.total_tool_calls += delta.summary.totalToolCalls or 0

            breakdown = delta.breakdown
            if breakdown is None:
                return
            sections = (
                (breakdown.byMethod, snapshot.requests_by_method),
                (breakdown.byEndpoint, snapshot.requests_by_endpoint),
                (breakdown.byTool, snapshot.tool_calls),
            )
            for incoming, counter in sections:
                for key, count in (incoming or {}).items():
                    _increment(counter, key, count)

    # =========================================================================
    # READ VIEWS
    # =========================================================================

    def snapshot(self) -> AnalyticsSnapshot:
        """Return a deep copy of the current snapshot."""
        with self._lock:
            return copy.deepcopy(self._snapshot)

    @property
    def total_requests(self) -> int:
        return self._snapshot.total_requests

    @property
    def total_tool_calls(self) -> int:
        return self._snapshot.total_tool_calls

    def summarize(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Build the /analytics summary document.

        Args:
            now: Time used for uptime. Defaults to the store clock.

        Returns:
            Dict with server, uptime, serverStartTime, summary, breakdown
            (tools sorted by count), clients, the last 24 hourly buckets in
            ascending order, and the 20 most recent tool calls.
        """
        current = self.snapshot()
        engine = self.statistics
        return {
            "server": Config.SERVER_NAME,
            "uptime": engine.format_uptime(current.server_start_time, now or self._clock()),
            "serverStartTime": current.server_start_time,
            "summary": {
                "totalRequests": current.total_requests,
                "totalToolCalls": current.total_tool_calls,
                "uniqueClients": engine.unique_clients(current.clients_by_ip),
            },
            "breakdown": {
                "byMethod": current.requests_by_method,
                "byEndpoint": current.requests_by_endpoint,
                "byTool": dict(engine.rank_tools(current.tool_calls)),
            },
            "clients": {
                "byIp": current.clients_by_ip,
                "byUserAgent": current.clients_by_user_agent,
            },
            "hourlyRequests": engine.recent_hours(current.hourly_requests),
            "recentToolCalls": [
                record.to_dict()
                for record in current.recent_tool_calls[: Config.SUMMARY_RECENT_CALLS]
            ],
        }

    def tool_report(self, limit: int | None = None) -> dict[str, Any]:
        """
        Build the /analytics/tools document.

        Args:
            limit: Recent calls to include. Default: Config.TOOLS_RECENT_CALLS

        Returns:
            Dict with totalToolCalls, tools as [{name, count}] sorted by
            count, and recentCalls newest first.
        """
        current = self.snapshot()
        count = Config.TOOLS_RECENT_CALLS if limit is None else limit
        return {
            "totalToolCalls": current.total_tool_calls,
            "tools": [
                {"name": name, "count": calls}
                for name, calls in self.statistics.rank_tools(current.tool_calls)
            ],
            "recentCalls": [record.to_dict() for record in current.recent_tool_calls[:count]],
        }
