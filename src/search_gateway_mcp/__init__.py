"""
Search Gateway MCP Server.

PURPOSE: Serve a search MCP server over streamable HTTP and record usage analytics.
AI CONTEXT: This package multiplexes client sessions onto per-session protocol
handlers and keeps durable request/tool-call counters.

PACKAGE STRUCTURE:
- server.py: JSON-RPC protocol handler with search tool definitions
- transport.py: Per-session streamable HTTP transport
- registry.py: Session id -> transport mapping
- dispatcher.py: Per-request orchestration for the /mcp endpoint
- analytics.py: In-memory counters with JSON snapshot persistence
- scheduler.py: Periodic and shutdown analytics flush
- storage.py: JSON file persistence
- web/: FastAPI application and routes

QUICK START:
    # Run the HTTP gateway
    python -m search_gateway_mcp serve --port 8080

    # Print the persisted analytics summary
    python -m search_gateway_mcp report

HTTP ENDPOINTS:
1. /mcp - MCP protocol endpoint
2. /health - Liveness probe
3. /analytics - JSON usage summary
4. /analytics/tools - Per-tool usage
5. /analytics/dashboard - HTML dashboard
6. /analytics/import - Merge backed-up counts
"""

from search_gateway_mcp.__version__ import (
    __author__,
    __copyright__,
    __description__,
    __license__,
    __title__,
    __url__,
    __version__,
    __version_date__,
)

__all__ = [
    "__version__",
    "__version_date__",
    "__title__",
    "__description__",
    "__url__",
    "__author__",
    "__license__",
    "__copyright__",
]
