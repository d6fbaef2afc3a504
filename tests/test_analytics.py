"""Tests for analytics module."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from conftest import STORAGE_DIR, FrozenClock, MockFileSystem
from search_gateway_mcp.analytics import AnalyticsStore
from search_gateway_mcp.schemas import ImportPayload
from search_gateway_mcp.storage import AnalyticsStorage

ANALYTICS_PATH = f"{STORAGE_DIR}/analytics.json"


def _payload(**data: object) -> ImportPayload:
    return ImportPayload.model_validate(data)


class TestRecordRequest:
    """Test suite for request counting.

    Categories:
    1. Totals - Monotonic counter property (1 test)
    2. Breakdown - Method, endpoint, client, agent, hour (2 tests)
    3. Truncation - User agent cut to 50 chars (1 test)
    """

    @pytest.mark.parametrize("n", [0, 1, 7, 250])
    def test_total_requests_equals_number_recorded(self, store: AnalyticsStore, n: int) -> None:
        """Verifies N recorded requests yield totalRequests == N.

        Business context:
        totalRequests is the headline number on the dashboard. It must never
        skip or double count.
        """
        for i in range(n):
            store.record_request("GET", "/health", f"10.0.0.{i % 5}", "curl/8.4")
        assert store.total_requests == n
        assert store.summarize()["summary"]["totalRequests"] == n

    def test_breakdowns_are_incremented(self, store: AnalyticsStore) -> None:
        store.record_request("POST", "/mcp", "10.0.0.1", "claude-desktop/1.0")
        store.record_request("GET", "/health", "10.0.0.1", "kube-probe/1.29")
        store.record_request("POST", "/mcp", "10.0.0.2", "claude-desktop/1.0")

        snapshot = store.snapshot()
        assert snapshot.requests_by_method == {"POST": 2, "GET": 1}
        assert snapshot.requests_by_endpoint == {"/mcp": 2, "/health": 1}
        assert snapshot.clients_by_ip == {"10.0.0.1": 2, "10.0.0.2": 1}
        assert snapshot.clients_by_user_agent == {"claude-desktop/1.0": 2, "kube-probe/1.29": 1}

    def test_hourly_bucket_uses_clock(self, store: AnalyticsStore, clock: FrozenClock) -> None:
        store.record_request("GET", "/", "ip", "ua")
        clock.advance(hours=1)
        store.record_request("GET", "/", "ip", "ua")
        store.record_request("GET", "/", "ip", "ua")
        assert store.snapshot().hourly_requests == {"2025-01-15T10": 1, "2025-01-15T11": 2}

    def test_user_agent_truncated_to_50_chars(self, store: AnalyticsStore) -> None:
        agent = "Mozilla/5.0 " + "x" * 100
        store.record_request("GET", "/", "ip", agent)
        assert list(store.snapshot().clients_by_user_agent) == [agent[:50]]


class TestRecordToolCall:
    """Test suite for tool call tracking.

    Categories:
    1. Counting - Per-tool increments (1 test)
    2. Recent list - Newest first, bounded at 100 (3 tests)
    """

    def test_increments_named_tool_by_one(self, store: AnalyticsStore) -> None:
        for expected in range(1, 4):
            store.record_tool_call("brave_web_search", "ip", "ua")
            assert store.snapshot().tool_calls["brave_web_search"] == expected
        store.record_tool_call("brave_news_search", "ip", "ua")
        assert store.snapshot().tool_calls == {"brave_web_search": 3, "brave_news_search": 1}
        assert store.total_tool_calls == 4

    def test_head_is_most_recent_call(self, store: AnalyticsStore, clock: FrozenClock) -> None:
        store.record_tool_call("brave_web_search", "10.0.0.1", "ua")
        clock.advance(seconds=1)
        store.record_tool_call("brave_image_search", "10.0.0.2", "ua")

        head = store.snapshot().recent_tool_calls[0]
        assert head.tool == "brave_image_search"
        assert head.client_ip == "10.0.0.2"
        assert head.timestamp == "2025-01-15T10:30:01.000Z"

    def test_recent_calls_bounded_at_100_newest_first(self, store: AnalyticsStore) -> None:
        """Verifies the 101st call evicts the oldest and keeps the newest 100.

        Arrangement:
        Records 101 calls with distinguishable client IPs (call index).

        Assertion Strategy:
        Length is 100, the head is call 100, the tail is call 1, and call 0
        (the oldest) is gone.
        """
        for i in range(101):
            store.record_tool_call("brave_web_search", str(i), "ua")

        recent = store.snapshot().recent_tool_calls
        assert len(recent) == 100
        assert [r.client_ip for r in recent] == [str(i) for i in range(100, 0, -1)]
        assert "0" not in {r.client_ip for r in recent}

    def test_configured_bound(self, storage: AnalyticsStorage, clock: FrozenClock) -> None:
        store = AnalyticsStore(storage=storage, max_recent_calls=3, clock=clock)
        for i in range(5):
            store.record_tool_call("t", str(i), "ua")
        assert [r.client_ip for r in store.snapshot().recent_tool_calls] == ["4", "3", "2"]


class TestPersistence:
    """Test suite for load/persist.

    Categories:
    1. Fresh start - Missing and corrupt files (2 tests)
    2. Round trip - Equal snapshot, start time preserved (2 tests)
    3. Failure - Persist reports False, state intact (1 test)
    """

    def test_load_without_file_starts_fresh(
        self, store: AnalyticsStore, clock: FrozenClock
    ) -> None:
        clock.advance(minutes=10)
        assert store.load() is False
        snapshot = store.snapshot()
        assert snapshot.total_requests == 0
        assert snapshot.server_start_time == "2025-01-15T10:40:00.000Z"

    def test_load_corrupt_file_starts_fresh(
        self, store: AnalyticsStore, mock_fs: MockFileSystem
    ) -> None:
        mock_fs.set_file(ANALYTICS_PATH, "{not json")
        assert store.load() is False
        assert store.total_requests == 0

    def test_persist_then_reload_round_trip(
        self, storage: AnalyticsStorage, clock: FrozenClock
    ) -> None:
        """Verifies persisting and reloading yields an equal snapshot.

        Business context:
        Container restarts must not reset the counters, and uptime keeps
        counting from the original serverStartTime rather than the restart.

        Arrangement:
        A store records mixed traffic and persists. A second store, created
        an hour later on the same storage, loads.

        Assertion Strategy:
        The reloaded snapshot equals the original, including its start time.
        """
        first = AnalyticsStore(storage=storage, clock=clock)
        first.record_request("POST", "/mcp", "10.0.0.1", "ua")
        first.record_tool_call("brave_web_search", "10.0.0.1", "ua")
        first.record_request("GET", "/health", "10.0.0.2", "probe")
        assert first.persist() is True

        clock.advance(hours=1)
        second = AnalyticsStore(storage=storage, clock=clock)
        assert second.load() is True

        assert second.snapshot() == first.snapshot()
        assert second.snapshot().server_start_time == "2025-01-15T10:30:00.000Z"
        assert second.summarize()["uptime"] == "1h 0m"

    def test_persisted_file_is_camel_case_json(
        self, store: AnalyticsStore, mock_fs: MockFileSystem
    ) -> None:
        store.record_tool_call("brave_web_search", "ip", "ua")
        store.persist()
        document = json.loads(mock_fs.get_file(ANALYTICS_PATH) or "{}")
        assert document["totalToolCalls"] == 1
        assert document["toolCalls"] == {"brave_web_search": 1}
        assert document["recentToolCalls"][0]["clientIp"] == "ip"

    def test_persist_failure_keeps_memory_state(
        self, store: AnalyticsStore, mock_fs: MockFileSystem
    ) -> None:
        mock_fs.makedirs(STORAGE_DIR, exist_ok=True)
        mock_fs.chmod(STORAGE_DIR, 0o555)
        store.record_request("GET", "/", "ip", "ua")

        assert store.persist() is False
        assert store.total_requests == 1

    def test_load_truncates_oversized_recent_list(
        self, storage: AnalyticsStorage, mock_fs: MockFileSystem, clock: FrozenClock
    ) -> None:
        calls = [
            {"tool": "t", "timestamp": "", "clientIp": str(i), "userAgent": ""} for i in range(8)
        ]
        mock_fs.set_file(ANALYTICS_PATH, json.dumps({"recentToolCalls": calls}))
        store = AnalyticsStore(storage=storage, max_recent_calls=5, clock=clock)
        store.load()
        assert len(store.snapshot().recent_tool_calls) == 5


class TestMerge:
    """Test suite for importing aggregate counts.

    Categories:
    1. Addition - Per-key sums (2 tests)
    2. Partial payloads - Missing sections skipped (1 test)
    3. Order independence - Disjoint deltas commute (1 test)
    """

    def test_adds_tool_counts(self, store: AnalyticsStore) -> None:
        for _ in range(3):
            store.record_tool_call("search", "ip", "ua")
        store.merge(_payload(breakdown={"byTool": {"search": 5}}))
        assert store.snapshot().tool_calls["search"] == 8

    def test_adds_totals_and_breakdowns(self, store: AnalyticsStore) -> None:
        store.record_request("POST", "/mcp", "ip", "ua")
        store.merge(
            _payload(
                summary={"totalRequests": 10, "totalToolCalls": 4},
                breakdown={"byMethod": {"POST": 9, "GET": 1}, "byEndpoint": {"/mcp": 10}},
            )
        )
        snapshot = store.snapshot()
        assert snapshot.total_requests == 11
        assert snapshot.total_tool_calls == 4
        assert snapshot.requests_by_method == {"POST": 10, "GET": 1}
        assert snapshot.requests_by_endpoint == {"/mcp": 11}

    def test_missing_sections_are_skipped(self, store: AnalyticsStore) -> None:
        store.record_tool_call("brave_web_search", "ip", "ua")
        before = store.snapshot()
        store.merge(_payload(summary={"totalRequests": 2}))
        after = store.snapshot()
        assert after.total_requests == before.total_requests + 2
        assert after.total_tool_calls == before.total_tool_calls
        assert after.tool_calls == before.tool_calls
        assert after.recent_tool_calls == before.recent_tool_calls

    def test_disjoint_deltas_commute(
        self, storage: AnalyticsStorage, clock: FrozenClock
    ) -> None:
        """Verifies merge order does not change the result for disjoint keys.

        Business context:
        Operators may restore several backups in any order after a volume
        loss; the restored totals must not depend on that order.
        """
        a = _payload(summary={"totalRequests": 3}, breakdown={"byTool": {"brave_web_search": 2}})
        b = _payload(summary={"totalToolCalls": 5}, breakdown={"byMethod": {"GET": 4}})

        ab = AnalyticsStore(storage=storage, clock=clock)
        ab.merge(a)
        ab.merge(b)
        ba = AnalyticsStore(storage=storage, clock=clock)
        ba.merge(b)
        ba.merge(a)

        assert ab.snapshot() == ba.snapshot()


class TestSummaries:
    """Test suite for the /analytics and /analytics/tools documents."""

    def test_first_request_scenario(self, store: AnalyticsStore) -> None:
        """Verifies the summary after the very first request with no file.

        Assertion Strategy:
        totalRequests 1, uniqueClients 1, uptime '0m'.
        """
        store.load()
        store.record_request("GET", "/analytics", "203.0.113.9", "curl/8.4")

        summary = store.summarize()

        assert summary["summary"] == {"totalRequests": 1, "totalToolCalls": 0, "uniqueClients": 1}
        assert summary["uptime"] == "0m"
        assert summary["server"] == "Brave Search MCP Server"

    def test_by_tool_sorted_descending(self, store: AnalyticsStore) -> None:
        for name, count in (("a", 1), ("b", 3), ("c", 2)):
            for _ in range(count):
                store.record_tool_call(name, "ip", "ua")
        assert list(store.summarize()["breakdown"]["byTool"].items()) == [
            ("b", 3),
            ("c", 2),
            ("a", 1),
        ]

    def test_recent_calls_limited_to_20(self, store: AnalyticsStore) -> None:
        for i in range(30):
            store.record_tool_call("t", str(i), "ua")
        recent = store.summarize()["recentToolCalls"]
        assert len(recent) == 20
        assert recent[0]["clientIp"] == "29"

    def test_hourly_requests_last_24_ascending(
        self, store: AnalyticsStore, clock: FrozenClock
    ) -> None:
        for _ in range(30):
            store.record_request("GET", "/", "ip", "ua")
            clock.advance(hours=1)
        hourly = store.summarize()["hourlyRequests"]
        assert len(hourly) == 24
        assert list(hourly) == sorted(hourly)

    def test_tool_report(self, store: AnalyticsStore) -> None:
        for i in range(60):
            store.record_tool_call("brave_web_search" if i % 3 else "brave_news_search", "ip", "ua")
        report = store.tool_report()
        assert report["totalToolCalls"] == 60
        assert report["tools"] == [
            {"name": "brave_web_search", "count": 40},
            {"name": "brave_news_search", "count": 20},
        ]
        assert len(report["recentCalls"]) == 50

    def test_snapshot_is_a_copy(self, store: AnalyticsStore) -> None:
        copy = store.snapshot()
        copy.tool_calls["injected"] = 1
        assert "injected" not in store.snapshot().tool_calls
