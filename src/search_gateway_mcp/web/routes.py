"""
FastAPI routes for Search Gateway MCP.

PURPOSE: Thin route handlers over the store, dispatcher and presenters.
AI CONTEXT: Routes should be simple - business logic lives elsewhere.

ROUTE STRUCTURE:
- / and /health : Server info and liveness (tracked)
- /analytics, /analytics/tools : JSON usage views (tracked)
- /analytics/dashboard : Full HTML page (tracked)
- /analytics/partials/* : htmx partial updates (not tracked)
- /analytics/charts/* : PNG chart images (not tracked)
- /analytics/import : Merge backed-up counts (not tracked)
- /mcp : MCP protocol endpoint, handed to RequestDispatcher
- /ping : Liveness for any method (tracked)

"Tracked" routes count toward the analytics they report on.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from html import escape
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import ValidationError

from ..__version__ import __version__
from ..analytics import AnalyticsStore
from ..config import Config
from ..dispatcher import RequestDispatcher, client_ip, user_agent
from ..presenters import ChartPresenter, DashboardOverview, DashboardPresenter
from ..schemas import ImportPayload
from .auth import require_api_key

__all__ = [
    "router",
    "get_store",
    "get_dispatcher",
    "get_dashboard_presenter",
    "get_chart_presenter",
]

router = APIRouter()

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# =============================================================================
# CSS Styles
# =============================================================================

_DASHBOARD_CSS = """
:root {
    --bg: #0f172a;
    --surface: #1e293b;
    --border: #334155;
    --text: #f1f5f9;
    --text-muted: #94a3b8;
    --primary: #3b82f6;
    --success: #22c55e;
}
* { box-sizing: border-box; margin: 0; padding: 0; }
body {
    font-family: system-ui, -apple-system, sans-serif;
    background: var(--bg);
    color: var(--text);
    line-height: 1.6;
    padding: 1rem;
}
.container { max-width: 1400px; margin: 0 auto; }
header {
    display: flex;
    justify-content: space-between;
    align-items: center;
    margin-bottom: 1.5rem;
    padding-bottom: 1rem;
    border-bottom: 1px solid var(--border);
}
h1 { font-size: 1.5rem; font-weight: 600; }
.refresh-indicator { color: var(--text-muted); font-size: 0.875rem; }
.grid {
    display: grid;
    grid-template-columns: repeat(auto-fit, minmax(220px, 1fr));
    gap: 1rem;
    margin-bottom: 1.5rem;
}
.panel {
    background: var(--surface);
    border: 1px solid var(--border);
    border-radius: 0.5rem;
    padding: 1rem;
}
.panel h2 {
    font-size: 1rem;
    font-weight: 500;
    color: var(--text-muted);
    margin-bottom: 0.75rem;
}
.metric { font-size: 2rem; font-weight: 700; color: var(--primary); }
table { width: 100%; border-collapse: collapse; }
th, td {
    text-align: left;
    padding: 0.75rem;
    border-bottom: 1px solid var(--border);
}
th { color: var(--text-muted); font-weight: 500; font-size: 0.875rem; }
.chart-container { display: flex; justify-content: center; padding: 1rem 0; }
.chart-container img { max-width: 100%; height: auto; border-radius: 0.25rem; }
.bar-track {
    height: 0.75rem;
    background: var(--border);
    border-radius: 0.25rem;
    overflow: hidden;
}
.bar-fill { height: 100%; background: var(--success); }
.empty { color: var(--text-muted); font-style: italic; }
footer {
    margin-top: 2rem;
    padding-top: 1rem;
    border-top: 1px solid var(--border);
    color: var(--text-muted);
    font-size: 0.875rem;
    text-align: center;
}
"""

# =============================================================================
# Dependency Factory Functions
# =============================================================================


def get_store(request: Request) -> AnalyticsStore:
    """Return the process-wide AnalyticsStore created by create_app()."""
    store: AnalyticsStore = request.app.state.store
    return store


def get_dispatcher(request: Request) -> RequestDispatcher:
    """Return the RequestDispatcher bound to the app's store and registry."""
    dispatcher: RequestDispatcher = request.app.state.dispatcher
    return dispatcher


def get_dashboard_presenter(
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> DashboardPresenter:
    return DashboardPresenter(store)


def get_chart_presenter(
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> ChartPresenter:
    return ChartPresenter(store)


def _track(store: AnalyticsStore, request: Request, endpoint: str) -> None:
    store.record_request(request.method, endpoint, client_ip(request), user_agent(request))


def _utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _base_path(request: Request) -> str:
    """Mount prefix set by a reverse proxy (uvicorn --root-path), without a trailing slash."""
    return str(request.scope.get("root_path", "")).rstrip("/")


# ============================================================================
# Server Info Routes
# ============================================================================


@router.get("/health")
async def health(
    request: Request,
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> dict[str, str]:
    """
    Liveness probe for container orchestrators.

    Returns:
        {'status': 'healthy', 'server', 'version', 'transport', 'timestamp'}
    """
    _track(store, request, "/health")
    return {
        "status": "healthy",
        "server": Config.SERVER_NAME,
        "version": __version__,
        "transport": Config.TRANSPORT_NAME,
        "timestamp": _utc_timestamp(),
    }


@router.get("/")
async def server_info(
    request: Request,
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> dict[str, Any]:
    """Describe the server and list its endpoints."""
    _track(store, request, "/")
    return {
        "name": Config.SERVER_NAME,
        "version": __version__,
        "description": Config.SERVER_DESCRIPTION,
        "transport": Config.TRANSPORT_NAME,
        "endpoints": {
            "mcp": Config.MCP_ENDPOINT,
            "health": "/health",
            "analytics": "/analytics",
            "analyticsTools": "/analytics/tools",
            "analyticsDashboard": "/analytics/dashboard",
        },
        "documentation": Config.DOCUMENTATION_URL,
    }


@router.api_route("/ping", methods=ALL_METHODS)
async def ping(
    request: Request,
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> dict[str, str]:
    _track(store, request, "/ping")
    return {"message": "pong"}


# ============================================================================
# Analytics Routes (JSON)
# ============================================================================


@router.get("/analytics")
async def analytics_summary(
    request: Request,
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> dict[str, Any]:
    """
    Full usage summary.

    The request is counted before the summary is built, so the response
    includes itself.
    """
    _track(store, request, "/analytics")
    return store.summarize()


@router.get("/analytics/tools")
async def analytics_tools(
    request: Request,
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> dict[str, Any]:
    """Per-tool call counts and the 50 most recent calls."""
    _track(store, request, "/analytics/tools")
    return store.tool_report()


@router.post("/analytics/import")
async def analytics_import(
    request: Request,
    store: Annotated[AnalyticsStore, Depends(get_store)],
) -> JSONResponse:
    """
    Merge backed-up aggregate counts into the live analytics.

    Used after the snapshot volume was lost: post a saved /analytics
    response back to restore the totals. When ANALYTICS_IMPORT_KEY is set,
    the ?key= query parameter must match it.

    Returns:
        200 with currentStats after a successful merge and persist
        403 {'error': 'Invalid import key'} on a key mismatch
        400 {'error': 'Failed to import analytics', 'details': ...} when
        the body is not a valid import document; nothing is merged
    """
    import_key = Config.get_import_key()
    if import_key is not None and request.query_params.get("key") != import_key:
        return JSONResponse(status_code=403, content={"error": "Invalid import key"})

    try:
        payload = ImportPayload.model_validate_json(await request.body())
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"error": "Failed to import analytics", "details": str(e)},
        )

    store.merge(payload)
    await asyncio.to_thread(store.persist)
    return JSONResponse(
        content={
            "message": "Analytics imported successfully",
            "currentStats": {
                "totalRequests": store.total_requests,
                "totalToolCalls": store.total_tool_calls,
            },
        }
    )


# ============================================================================
# Dashboard Routes (HTML)
# ============================================================================


@router.get("/analytics/dashboard", response_class=HTMLResponse)
async def analytics_dashboard(
    request: Request,
    store: Annotated[AnalyticsStore, Depends(get_store)],
    presenter: Annotated[DashboardPresenter, Depends(get_dashboard_presenter)],
) -> HTMLResponse:
    """Render the analytics dashboard page."""
    _track(store, request, "/analytics/dashboard")
    html = _render_dashboard_html(presenter.get_overview(), _base_path(request))
    return HTMLResponse(content=html, media_type="text/html; charset=utf-8")


@router.get("/analytics/partials/summary", response_class=HTMLResponse)
async def summary_partial(
    presenter: Annotated[DashboardPresenter, Depends(get_dashboard_presenter)],
) -> HTMLResponse:
    """Metric cards, refreshed by htmx every 30 seconds."""
    return HTMLResponse(content=_render_summary_cards(presenter.get_overview()))


@router.get("/analytics/partials/tools", response_class=HTMLResponse)
async def tools_partial(
    presenter: Annotated[DashboardPresenter, Depends(get_dashboard_presenter)],
) -> HTMLResponse:
    """Tool table and recent calls, refreshed by htmx every 30 seconds."""
    overview = presenter.get_overview()
    return HTMLResponse(content=_render_tools_panel(overview) + _render_recent_calls(overview))


def _chart_img(src: str, alt: str) -> str:
    # Cache-busting query string so htmx swaps fetch a fresh image
    stamp = int(datetime.now(UTC).timestamp())
    return f'<img src="{escape(src)}?t={stamp}" alt="{alt}">'


@router.get("/analytics/partials/hourly-chart", response_class=HTMLResponse)
async def hourly_chart_partial(request: Request) -> HTMLResponse:
    src = f"{_base_path(request)}/analytics/charts/hourly.png"
    return HTMLResponse(content=_chart_img(src, "Hourly Requests Chart"))


@router.get("/analytics/partials/tools-chart", response_class=HTMLResponse)
async def tools_chart_partial(request: Request) -> HTMLResponse:
    src = f"{_base_path(request)}/analytics/charts/tools.png"
    return HTMLResponse(content=_chart_img(src, "Tool Usage Chart"))


# ============================================================================
# Chart Routes (PNG images)
# ============================================================================


@router.get("/analytics/charts/tools.png")
async def tools_chart(
    presenter: Annotated[ChartPresenter, Depends(get_chart_presenter)],
) -> Response:
    """
    Tool usage bar chart.

    Returns:
        PNG bytes, or an SVG placeholder when matplotlib is not installed.
    """
    try:
        return Response(content=presenter.render_tools_chart(), media_type="image/png")
    except ImportError:
        return Response(content=_placeholder_chart_svg("Tool Usage"), media_type="image/svg+xml")


@router.get("/analytics/charts/hourly.png")
async def hourly_chart(
    presenter: Annotated[ChartPresenter, Depends(get_chart_presenter)],
) -> Response:
    """
    Requests-per-hour line chart.

    Returns:
        PNG bytes, or an SVG placeholder when matplotlib is not installed.
    """
    try:
        return Response(content=presenter.render_hourly_chart(), media_type="image/png")
    except ImportError:
        return Response(content=_placeholder_chart_svg("Hourly"), media_type="image/svg+xml")


# ============================================================================
# MCP Protocol Route
# ============================================================================


@router.api_route(
    Config.MCP_ENDPOINT,
    methods=["GET", "POST", "DELETE"],
    dependencies=[Depends(require_api_key)],
)
async def mcp_endpoint(
    request: Request,
    dispatcher: Annotated[RequestDispatcher, Depends(get_dispatcher)],
) -> Response:
    """
    MCP streamable HTTP endpoint.

    The search API key is extracted first (see web/auth.py), then the
    dispatcher tracks the request and routes it to a session transport.
    """
    return await dispatcher.dispatch(request)


# ============================================================================
# Template Rendering Helpers
# ============================================================================


def _placeholder_chart_svg(title: str) -> bytes:
    """
    Generate a placeholder SVG when matplotlib is unavailable.

    Example:
        >>> b'Hourly Chart' in _placeholder_chart_svg('Hourly')
        True
    """
    svg = f"""<svg xmlns="http://www.w3.org/2000/svg" width="400" height="200">
        <rect width="100%" height="100%" fill="#f1f5f9"/>
        <text x="50%" y="50%" text-anchor="middle" fill="#64748b" font-size="16">
            {title} Chart (install matplotlib)
        </text>
    </svg>"""
    return svg.encode("utf-8")


def _render_summary_cards(overview: DashboardOverview) -> str:
    cards = (
        ("Total Requests", overview.total_requests),
        ("Tool Calls", overview.total_tool_calls),
        ("Unique Clients", overview.unique_clients),
        ("Uptime", overview.uptime),
    )
    return "\n".join(
        f"""<div class="panel">
            <h2>{label}</h2>
            <div class="metric">{escape(str(value))}</div>
        </div>"""
        for label, value in cards
    )


def _render_tools_panel(overview: DashboardOverview) -> str:
    """
    Render the tool usage table with proportional bars.

    Args:
        overview: Dashboard view model; only `tools` is read.

    Returns:
        HTML fragment; an empty-state message when no tool was called yet.
    """
    if not overview.tools:
        return '<h2>Tools</h2><p class="empty">No tool calls yet</p>'

    rows = "\n".join(
        f"""<tr>
            <td>{escape(tool.name)}</td>
            <td>{tool.count}</td>
            <td><div class="bar-track">
                <div class="bar-fill" style="width: {tool.bar_width}%"></div>
            </div></td>
        </tr>"""
        for tool in overview.tools
    )
    return f"""<h2>Tools</h2>
    <table>
        <thead><tr><th>Tool</th><th>Calls</th><th>Share</th></tr></thead>
        <tbody>{rows}</tbody>
    </table>"""


def _render_recent_calls(overview: DashboardOverview) -> str:
    if not overview.recent_calls:
        return '<h2 style="margin-top: 1rem;">Recent Calls</h2><p class="empty">None yet</p>'

    rows = "\n".join(
        f"""<tr>
            <td>{escape(call.time_display)}</td>
            <td>{escape(call.tool)}</td>
            <td>{escape(call.client_ip)}</td>
        </tr>"""
        for call in overview.recent_calls
    )
    return f"""<h2 style="margin-top: 1rem;">Recent Calls</h2>
    <table>
        <thead><tr><th>Time (UTC)</th><th>Tool</th><th>Client</th></tr></thead>
        <tbody>{rows}</tbody>
    </table>"""


def _render_dashboard_html(overview: DashboardOverview, base_path: str = "") -> str:
    """
    Render the complete dashboard HTML page.

    Server-rendered on first load; htmx then refreshes the metric cards and
    tool panel every 30 seconds and the chart panels every 60 seconds.

    Args:
        overview: DashboardOverview from DashboardPresenter.
        base_path: Mount prefix prepended to every dashboard URL, empty when
            the app is served at the root.

    Returns:
        Complete HTML document string.
    """
    server = escape(overview.server)
    base = escape(base_path)
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{server} - Analytics Dashboard</title>
    <script src="https://unpkg.com/htmx.org@1.9.10"></script>
    <style>
        {_DASHBOARD_CSS}
    </style>
</head>
<body>
    <div class="container">
        <header>
            <h1>🔍 {server}</h1>
            <span class="refresh-indicator">
                Tracking since {escape(overview.server_start_time)} &bull; Auto-refresh: 30s
            </span>
        </header>

        <div class="grid" id="summary-cards"
             hx-get="{base}/analytics/partials/summary"
             hx-trigger="every 30s"
             hx-swap="innerHTML">
            {_render_summary_cards(overview)}
        </div>

        <div class="panel" id="hourly-chart-panel">
            <h2>📈 Requests per Hour</h2>
            <div class="chart-container"
                 hx-get="{base}/analytics/partials/hourly-chart"
                 hx-trigger="every 60s"
                 hx-swap="innerHTML">
                <img src="{base}/analytics/charts/hourly.png" alt="Hourly Requests Chart">
            </div>
        </div>

        <div class="panel" id="tools-chart-panel" style="margin-top: 1rem;">
            <h2>📊 Tool Usage</h2>
            <div class="chart-container"
                 hx-get="{base}/analytics/partials/tools-chart"
                 hx-trigger="every 60s"
                 hx-swap="innerHTML">
                <img src="{base}/analytics/charts/tools.png" alt="Tool Usage Chart">
            </div>
        </div>

        <div class="panel" id="tools-panel"
             style="margin-top: 1rem;"
             hx-get="{base}/analytics/partials/tools"
             hx-trigger="every 30s"
             hx-swap="innerHTML">
            {_render_tools_panel(overview)}
            {_render_recent_calls(overview)}
        </div>

        <footer>
            {server} v{__version__} &bull; <a href="{base}/analytics">JSON</a>
        </footer>
    </div>
</body>
</html>"""
