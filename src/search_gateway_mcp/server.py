"""
Search MCP protocol handler.

PURPOSE: Answer MCP JSON-RPC messages for the search tool set.
AI CONTEXT: One SearchMcpServer is connected to each SessionTransport. The
actual search calls go to an injected SearchProvider.

AVAILABLE TOOLS:
1. brave_web_search    - General web search
2. brave_local_search  - Businesses and places near a location
3. brave_image_search  - Image results
4. brave_video_search  - Video results
5. brave_news_search   - Recent news articles
6. brave_summarizer    - AI summary for a previous web search key

MESSAGE FLOW:
    Transport → handle_message(message) → tool handler → SearchProvider
    Transport ← JSON-RPC response dict

ERROR CODES (JSON-RPC 2.0):
- -32601: Method or tool not found
- -32602: Invalid params (missing required tool argument)
- -32603: Internal error
Provider failures are reported in-band as a result with isError: true.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .__version__ import __version__
from .config import Config
from .protocol import (
    CALL_TOOL_METHOD,
    INITIALIZE_METHOD,
    INVALID_PARAMS,
    LIST_TOOLS_METHOD,
    METHOD_NOT_FOUND,
    PING_METHOD,
    error_envelope,
)

__all__ = ["SearchProvider", "SearchProviderError", "SearchMcpServer"]

logger = logging.getLogger(__name__)


class SearchProviderError(Exception):
    """Raised by a SearchProvider when the upstream search fails."""


class SearchProvider(Protocol):
    """
    Outbound search client consumed by the server.

    Implementations call the upstream search API with the key from
    Config.get_api_key() and return text suitable for an MCP text content
    item.
    """

    async def search(self, tool: str, arguments: dict[str, Any]) -> str:
        """
        Run one search.

        Args:
            tool: Tool name, e.g. 'brave_web_search'.
            arguments: Validated tool arguments.

        Returns:
            Formatted result text.

        Raises:
            SearchProviderError: If the upstream call fails.
        """
        ...


def _query_schema(description: str, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    properties: dict[str, Any] = {
        "query": {"type": "string", "description": description},
        "count": {
            "type": "integer",
            "description": "Number of results (1-20, default 10)",
            "minimum": 1,
            "maximum": 20,
            "default": 10,
        },
    }
    properties.update(extra or {})
    return {"type": "object", "properties": properties, "required": ["query"]}


class SearchMcpServer:
    """
    MCP server exposing search tools.

    ARCHITECTURE:
    - Tool Registry: Tool definitions with JSON schemas for tools/list
    - Message Handler: Routes JSON-RPC messages to method handlers
    - Provider: Executes the searches behind tools/call

    A server instance is stateless apart from the initialized flag, so the
    transport layer can create one per session cheaply.
    """

    def __init__(self, provider: SearchProvider | None = None) -> None:
        """
        Initialize the server with an optional search provider.

        Args:
            provider: Search backend. Without one, tools/call returns an
                in-band error explaining that no provider is configured.
        """
        self.provider = provider
        self.initialized = False
        self.client_info: dict[str, Any] = {}
        self.tools = self._build_tool_definitions()
        self._method_handlers = {
            INITIALIZE_METHOD: self._handle_initialize,
            LIST_TOOLS_METHOD: self._handle_list_tools,
            CALL_TOOL_METHOD: self._handle_call_tool,
            PING_METHOD: self._handle_ping,
        }

    def _build_tool_definitions(self) -> dict[str, dict[str, Any]]:
        """
        Build the MCP tool registry with JSON schemas for all search tools.

        Returns:
            Dict mapping tool names to their definitions, each with 'name',
            'description', and 'inputSchema'.
        """
        freshness = {
            "type": "string",
            "description": "Age filter: pd (24h), pw (7d), pm (31d), py (365d)",
            "enum": ["pd", "pw", "pm", "py"],
        }
        safesearch = {
            "type": "string",
            "description": "Adult content filter",
            "enum": ["off", "moderate", "strict"],
            "default": "moderate",
        }
        return {
            "brave_web_search": {
                "name": "brave_web_search",
                "description": (
                    "Performs a web search using the Brave Search API. Use for general "
                    "queries, news, articles, and online content."
                ),
                "inputSchema": _query_schema(
                    "Search query (max 400 chars, 50 words)",
                    {
                        "offset": {
                            "type": "integer",
                            "description": "Pagination offset (max 9, default 0)",
                            "minimum": 0,
                            "maximum": 9,
                            "default": 0,
                        },
                        "country": {"type": "string", "description": "2-letter country code"},
                        "search_lang": {"type": "string", "description": "Result language"},
                        "safesearch": safesearch,
                        "freshness": freshness,
                        "summary": {
                            "type": "boolean",
                            "description": "Request a summarizer key for brave_summarizer",
                        },
                    },
                ),
            },
            "brave_local_search": {
                "name": "brave_local_search",
                "description": (
                    "Searches for local businesses and places. Returns names, addresses, "
                    "ratings, phone numbers and opening hours."
                ),
                "inputSchema": _query_schema("Local search query (e.g. 'pizza near Central Park')"),
            },
            "brave_image_search": {
                "name": "brave_image_search",
                "description": "Searches for images and returns titles, sources and URLs.",
                "inputSchema": _query_schema(
                    "Image search query", {"safesearch": safesearch}
                ),
            },
            "brave_video_search": {
                "name": "brave_video_search",
                "description": "Searches for videos and returns titles, durations and URLs.",
                "inputSchema": _query_schema(
                    "Video search query",
                    {"safesearch": safesearch, "freshness": freshness},
                ),
            },
            "brave_news_search": {
                "name": "brave_news_search",
                "description": "Searches for recent news articles and breaking events.",
                "inputSchema": _query_schema("News search query", {"freshness": freshness}),
            },
            "brave_summarizer": {
                "name": "brave_summarizer",
                "description": (
                    "Retrieves an AI-generated summary for a web search made with "
                    "summary=true, using the returned summarizer key."
                ),
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "key": {
                            "type": "string",
                            "description": "Summarizer key from brave_web_search",
                        },
                        "entity_info": {
                            "type": "boolean",
                            "description": "Include entity information",
                            "default": False,
                        },
                    },
                    "required": ["key"],
                },
            },
        }

    # =========================================================================
    # METHOD HANDLERS
    # =========================================================================

    async def _handle_initialize(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        """
        Handle the initialize handshake.

        Records client info and returns the server capabilities.
        """
        self.initialized = True
        client_info = params.get("clientInfo")
        if isinstance(client_info, dict):
            self.client_info = client_info
        return self._result(
            msg_id,
            {
                "protocolVersion": Config.MCP_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": Config.MCP_SERVER_NAME, "version": __version__},
            },
        )

    async def _handle_list_tools(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        return self._result(msg_id, {"tools": list(self.tools.values())})

    async def _handle_ping(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        return self._result(msg_id, {})

    async def _handle_call_tool(self, params: dict[str, Any], msg_id: Any) -> dict[str, Any]:
        """
        Handle tools/call by validating arguments and delegating to the provider.

        Args:
            params: {'name': tool name, 'arguments': dict}
            msg_id: JSON-RPC message id.

        Returns:
            Result with text content, an isError result on provider failure,
            or a JSON-RPC error for unknown tools and missing arguments.
        """
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}

        if not isinstance(tool_name, str):
            return error_envelope(msg_id, INVALID_PARAMS, "Tool name must be a string")
        tool = self.tools.get(tool_name)
        if tool is None:
            return error_envelope(msg_id, METHOD_NOT_FOUND, f"Unknown tool: {tool_name}")
        if not isinstance(arguments, dict):
            return error_envelope(msg_id, INVALID_PARAMS, "Tool arguments must be an object")

        missing = [
            name for name in tool["inputSchema"].get("required", []) if not arguments.get(name)
        ]
        if missing:
            return error_envelope(
                msg_id, INVALID_PARAMS, f"Missing required argument(s): {', '.join(missing)}"
            )

        if self.provider is None:
            return self._tool_result(
                msg_id, f"Search provider not configured; cannot run {tool_name}", is_error=True
            )

        try:
            text = await self.provider.search(tool_name, arguments)
        except SearchProviderError as e:
            logger.warning(f"{tool_name} failed: {e}")
            return self._tool_result(msg_id, f"Error: {e}", is_error=True)

        return self._tool_result(msg_id, text)

    # =========================================================================
    # RESPONSE HELPERS
    # =========================================================================

    def _result(self, msg_id: Any, result: dict[str, Any]) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": msg_id, "result": result}

    def _tool_result(self, msg_id: Any, text: str, is_error: bool = False) -> dict[str, Any]:
        """
        Build a tools/call result with a single text content item.

        Args:
            msg_id: JSON-RPC message id.
            text: Content text shown to the user.
            is_error: Marks the result as a tool-level failure.

        Returns:
            {'jsonrpc': '2.0', 'id': msg_id, 'result': {'content': [...], 'isError': bool}}
        """
        return self._result(
            msg_id,
            {"content": [{"type": "text", "text": text}], "isError": is_error},
        )

    # =========================================================================
    # MESSAGE HANDLING
    # =========================================================================

    async def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """
        Route an MCP JSON-RPC request to the matching method handler.

        Args:
            message: Parsed JSON-RPC request with 'method', 'id' and optional
                'params'.

        Returns:
            JSON-RPC response dict, success or error.

        Example:
            >>> response = await server.handle_message(
            ...     {'jsonrpc': '2.0', 'id': 1, 'method': 'tools/list'}
            ... )
            >>> len(response['result']['tools'])
            6
        """
        method = message.get("method", "")
        msg_id = message.get("id")
        params = message.get("params")
        if not isinstance(params, dict):
            params = {}

        handler = self._method_handlers.get(method)
        if handler is None:
            return error_envelope(msg_id, METHOD_NOT_FOUND, f"Unknown method: {method}")
        return await handler(params, msg_id)

    async def handle_notification(self, message: dict[str, Any]) -> None:
        """Accept a client notification. Only logged; no state changes."""
        logger.debug(f"Notification: {message.get('method')}")
