"""
Presenters for the analytics dashboard.

PURPOSE: Testable layer between AnalyticsStore and the HTML/PNG views.
AI CONTEXT: Pure data transformation plus matplotlib rendering; no HTTP.

DESIGN PRINCIPLES:
1. Presenters read store views, return view models (dataclasses)
2. No dependencies on FastAPI
3. Chart rendering lazy-imports matplotlib so it stays an optional extra

USAGE:
    presenter = DashboardPresenter(store)
    overview = presenter.get_overview()
    png = ChartPresenter(store).render_tools_chart()
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .analytics import AnalyticsStore

__all__ = [
    "ToolUsageViewModel",
    "RecentCallViewModel",
    "DashboardOverview",
    "DashboardPresenter",
    "ChartPresenter",
]

TOOL_COLORS: tuple[str, ...] = (
    "#3b82f6",
    "#22c55e",
    "#f59e0b",
    "#ef4444",
    "#a855f7",
    "#14b8a6",
)
HOURLY_COLOR = "#3b82f6"


@dataclass
class ToolUsageViewModel:
    """One row of the tool usage table."""

    name: str
    count: int
    total: int

    @property
    def bar_width(self) -> int:
        """
        Percentage width for the usage bar.

        Returns:
            Integer 0-100, proportional to this tool's share of all calls.

        Example:
            >>> ToolUsageViewModel("brave_web_search", 3, 4).bar_width
            75
        """
        if self.total == 0:
            return 0
        return int((self.count / self.total) * 100)


@dataclass
class RecentCallViewModel:
    """One recent tool call."""

    tool: str
    timestamp: str
    client_ip: str

    @property
    def time_display(self) -> str:
        """Timestamp as 'YYYY-MM-DD HH:MM:SS', or '—' when unparseable."""
        try:
            dt = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
            return dt.strftime("%Y-%m-%d %H:%M:%S")
        except (ValueError, TypeError, AttributeError):
            return "—"


@dataclass
class DashboardOverview:
    """Complete view model for the dashboard page."""

    server: str = ""
    uptime: str = "0m"
    server_start_time: str = ""
    total_requests: int = 0
    total_tool_calls: int = 0
    unique_clients: int = 0
    tools: list[ToolUsageViewModel] = field(default_factory=list)
    recent_calls: list[RecentCallViewModel] = field(default_factory=list)
    hourly_requests: dict[str, int] = field(default_factory=dict)
    report_text: str = ""


class DashboardPresenter:
    """
    Presenter for the dashboard page.

    Builds the overview from AnalyticsStore.summarize() so the page shows
    exactly what /analytics returns.
    """

    def __init__(self, store: AnalyticsStore) -> None:
        self.store = store

    def get_overview(self, now: datetime | None = None) -> DashboardOverview:
        """
        Get complete overview data for the dashboard.

        Args:
            now: Time used for uptime. Defaults to the store clock.

        Returns:
            DashboardOverview with totals, ranked tools, recent calls,
            hourly buckets and the plain-text report.
        """
        summary = self.store.summarize(now=now)
        totals = summary["summary"]
        by_tool: dict[str, int] = summary["breakdown"]["byTool"]
        tool_total = sum(by_tool.values())

        return DashboardOverview(
            server=summary["server"],
            uptime=summary["uptime"],
            server_start_time=summary["serverStartTime"],
            total_requests=totals["totalRequests"],
            total_tool_calls=totals["totalToolCalls"],
            unique_clients=totals["uniqueClients"],
            tools=[
                ToolUsageViewModel(name=name, count=count, total=tool_total)
                for name, count in by_tool.items()
            ],
            recent_calls=[
                RecentCallViewModel(
                    tool=call.get("tool", ""),
                    timestamp=call.get("timestamp", ""),
                    client_ip=call.get("clientIp", ""),
                )
                for call in summary["recentToolCalls"]
            ],
            hourly_requests=summary["hourlyRequests"],
            report_text=self.store.statistics.generate_summary_report(summary),
        )


class ChartPresenter:
    """
    Presenter for server-side chart images.

    Uses matplotlib with the non-interactive Agg backend. Every render
    method raises ImportError when matplotlib is missing; routes catch it
    and serve a placeholder SVG.
    """

    def __init__(self, store: AnalyticsStore) -> None:
        self.store = store

    @staticmethod
    def _to_png(fig: Any) -> bytes:
        import matplotlib.pyplot as plt

        buf = io.BytesIO()
        plt.tight_layout()
        plt.savefig(buf, format="png", dpi=100, bbox_inches="tight")
        plt.close(fig)
        buf.seek(0)
        return buf.read()

    @staticmethod
    def _render_empty(message: str) -> Any:
        import matplotlib.pyplot as plt

        fig, ax = plt.subplots(figsize=(8, 3))
        ax.text(0.5, 0.5, message, ha="center", va="center", fontsize=14)
        ax.set_xlim(0, 1)
        ax.set_ylim(0, 1)
        ax.axis("off")
        return fig

    def render_tools_chart(self) -> bytes:
        """
        Render tool call counts as a horizontal bar chart PNG.

        Tools are ordered by count, busiest at the top.

        Returns:
            PNG image bytes.

        Raises:
            ImportError: If matplotlib is not installed.
        """
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        ranked = self.store.tool_report(limit=0)["tools"]
        if not ranked:
            return self._to_png(self._render_empty("No tool calls yet"))

        names = [tool["name"] for tool in reversed(ranked)]
        counts = [tool["count"] for tool in reversed(ranked)]
        colors = [TOOL_COLORS[i % len(TOOL_COLORS)] for i in range(len(names))]

        fig, ax = plt.subplots(figsize=(8, max(2, 0.5 * len(names) + 1)))
        ax.barh(names, counts, color=colors)
        ax.set_xlabel("Calls")
        ax.set_title("Tool Usage")
        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)
        return self._to_png(fig)

    def render_hourly_chart(self) -> bytes:
        """
        Render requests per hour for the last 24 buckets as a line chart PNG.

        Returns:
            PNG image bytes.

        Raises:
            ImportError: If matplotlib is not installed.
        """
        import matplotlib

        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        hourly: dict[str, int] = self.store.summarize()["hourlyRequests"]
        if not hourly:
            return self._to_png(self._render_empty("No requests yet"))

        # Bucket keys are YYYY-MM-DDTHH; label with the hour only
        labels = [f"{key[-2:]}:00" for key in hourly]
        values = list(hourly.values())

        fig, ax = plt.subplots(figsize=(8, 3))
        ax.plot(range(len(values)), values, color=HOURLY_COLOR, marker="o")
        ax.fill_between(range(len(values)), values, color=HOURLY_COLOR, alpha=0.15)
        ax.set_ylabel("Requests")
        ax.set_title("Requests per Hour (UTC)")
        ax.set_xticks(range(len(labels)))
        ax.set_xticklabels(labels, rotation=45, ha="right")
        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)
        return self._to_png(fig)
