"""
HTTP surface for Search Gateway MCP.

PURPOSE: FastAPI application serving the MCP endpoint, analytics JSON and
the htmx dashboard.

USAGE:
    # Via CLI
    search-gateway-mcp serve --port 8080

    # Programmatically
    from search_gateway_mcp.web import create_app
    app = create_app()
    # Run with uvicorn
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
