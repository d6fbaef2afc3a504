"""Version information for search-gateway-mcp."""

__version__ = "1.2.0"
__version_date__ = "2026-10-19"

__title__ = "search_gateway_mcp"
__description__ = "Streamable HTTP gateway for a search MCP server with usage analytics"
__url__ = "https://github.com/hithereiamaliff/mcp-bravesearch"

__author__ = "Search Gateway MCP contributors"

__license__ = "MIT"
__copyright__ = "Copyright 2025 Search Gateway MCP contributors"

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
