"""
Request dispatcher for the MCP endpoint.

PURPOSE: Run the per-request pipeline for /mcp.
AI CONTEXT: Called by the /mcp route after API key extraction.

PIPELINE (dispatch()):
1. Record the request in analytics (always, before anything can fail)
2. Decode the JSON body; a tools/call with a tool name is recorded as a tool call
3. Resolve the session transport through the registry
4. Delegate to the transport, which produces the HTTP response

Any exception from steps 3-4 becomes a 500 JSON-RPC internal error envelope.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse, Response

from .config import Config
from .protocol import INTERNAL_ERROR, error_envelope, parse_message

if TYPE_CHECKING:
    from starlette.requests import Request

    from .analytics import AnalyticsStore
    from .registry import SessionRegistry

__all__ = ["RequestDispatcher", "client_ip", "user_agent", "read_json_body"]

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


def client_ip(request: Request) -> str:
    """
    Resolve the originating client address.

    Returns:
        First X-Forwarded-For entry, else the socket peer, else 'unknown'.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client is not None and request.client.host:
        return request.client.host
    return UNKNOWN


def user_agent(request: Request) -> str:
    """User-Agent header truncated for analytics, or 'unknown'."""
    agent = request.headers.get("user-agent", "")
    return agent[: Config.USER_AGENT_MAX_LENGTH] if agent else UNKNOWN


async def read_json_body(request: Request) -> Any:
    """
    Decode the request body as JSON.

    Returns:
        Decoded value, or None for an empty or undecodable body.
    """
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.debug("Request body is not valid JSON")
        return None


class RequestDispatcher:
    """
    Per-request orchestration for /mcp.

    Holds no state of its own; the store and registry are shared by all
    requests.
    """

    def __init__(self, store: AnalyticsStore, registry: SessionRegistry) -> None:
        self.store = store
        self.registry = registry

    async def dispatch(self, request: Request) -> Response:
        """
        Handle one /mcp request end to end.

        Args:
            request: Incoming Starlette request.

        Returns:
            The transport's response, or a 500 internal error envelope.
        """
        ip = client_ip(request)
        agent = user_agent(request)
        self.store.record_request(request.method, Config.MCP_ENDPOINT, ip, agent)

        body = await read_json_body(request) if request.method == "POST" else None
        parsed = parse_message(body)
        if parsed.tool_name:
            self.store.record_tool_call(parsed.tool_name, ip, agent)

        try:
            transport = await self.registry.resolve(
                request.headers.get(Config.SESSION_HEADER), body
            )
            return await transport.handle_request(request, body)
        except Exception as e:
            logger.exception(f"MCP request failed: {e}")
            return JSONResponse(
                status_code=500,
                content=error_envelope(None, INTERNAL_ERROR, "Internal server error"),
            )
