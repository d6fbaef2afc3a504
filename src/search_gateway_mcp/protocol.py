"""
JSON-RPC message classification for the MCP endpoint.

PURPOSE: Parse raw request bodies into a closed set of request kinds up front.
AI CONTEXT: The registry and dispatcher branch on RequestKind instead of
poking at body fields.

REQUEST KINDS:
- INITIALIZE: Session handshake ('initialize')
- LIST_TOOLS: Capability discovery ('tools/list'), allowed without a session
- CALL_TOOL: Tool invocation ('tools/call'), tracked in analytics
- PING: Liveness ('ping')
- REQUEST: Any other method with an id
- NOTIFICATION: Method without an id (e.g. 'notifications/initialized')
- RESPONSE: Client reply to a server request (result or error, no method)
- INVALID: Anything else, including batches for single-message checks

ERROR CODES (JSON-RPC 2.0 + MCP transport):
- -32700: Parse error
- -32600: Invalid request
- -32601: Method not found
- -32602: Invalid params
- -32603: Internal error
- -32000: Server not initialized
- -32001: Session not found
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "SERVER_NOT_INITIALIZED",
    "SESSION_NOT_FOUND",
    "RequestKind",
    "ParsedRequest",
    "parse_message",
    "parse_body",
    "error_envelope",
]

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_NOT_INITIALIZED = -32000
SESSION_NOT_FOUND = -32001

INITIALIZE_METHOD = "initialize"
LIST_TOOLS_METHOD = "tools/list"
CALL_TOOL_METHOD = "tools/call"
PING_METHOD = "ping"


class RequestKind(Enum):
    INITIALIZE = "initialize"
    LIST_TOOLS = "list_tools"
    CALL_TOOL = "call_tool"
    PING = "ping"
    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"
    INVALID = "invalid"


_METHOD_KINDS: dict[str, RequestKind] = {
    INITIALIZE_METHOD: RequestKind.INITIALIZE,
    LIST_TOOLS_METHOD: RequestKind.LIST_TOOLS,
    CALL_TOOL_METHOD: RequestKind.CALL_TOOL,
    PING_METHOD: RequestKind.PING,
}


@dataclass(frozen=True)
class ParsedRequest:
    """
    One classified JSON-RPC message.

    Attributes:
        kind: Closed classification of the message.
        method: JSON-RPC method, None for responses and invalid input.
        id: Request id, None for notifications.
        params: Params object, empty when absent.
        tool_name: Tool name for tools/call messages that carry one, with or
            without an id.
        raw: The original message object.
    """

    kind: RequestKind
    method: str | None = None
    id: Any = None
    params: dict[str, Any] = field(default_factory=dict)
    tool_name: str | None = None
    raw: Any = None

    @property
    def expects_response(self) -> bool:
        """True for messages the server must answer (requests with an id)."""
        return self.kind not in (
            RequestKind.NOTIFICATION,
            RequestKind.RESPONSE,
            RequestKind.INVALID,
        )

    @property
    def is_discovery(self) -> bool:
        return self.kind is RequestKind.LIST_TOOLS


def _classify_method(method: str, message: dict[str, Any], params: Any) -> ParsedRequest:
    has_id = "id" in message and message["id"] is not None
    kind = _METHOD_KINDS.get(method)

    if kind is RequestKind.LIST_TOOLS:
        # Discovery shape: params absent or an object whose cursor, if any, is a string
        cursor = params.get("cursor") if isinstance(params, dict) else None
        if params is not None and not isinstance(params, dict):
            kind = RequestKind.INVALID
        elif cursor is not None and not isinstance(cursor, str):
            kind = RequestKind.INVALID
    elif kind is None:
        kind = RequestKind.REQUEST if has_id else RequestKind.NOTIFICATION
    elif not has_id:
        kind = RequestKind.NOTIFICATION

    tool_name = None
    if method == CALL_TOOL_METHOD and isinstance(params, dict):
        name = params.get("name")
        tool_name = name if isinstance(name, str) and name else None

    return ParsedRequest(
        kind=kind,
        method=method,
        id=message.get("id"),
        params=params if isinstance(params, dict) else {},
        tool_name=tool_name,
        raw=message,
    )


def parse_message(message: Any) -> ParsedRequest:
    """
    Classify a single JSON-RPC message.

    Args:
        message: Decoded JSON value.

    Returns:
        ParsedRequest. Non-objects (including batch lists) are INVALID.

    Example:
        >>> parse_message({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}).kind
        <RequestKind.LIST_TOOLS: 'list_tools'>
    """
    if not isinstance(message, dict):
        return ParsedRequest(kind=RequestKind.INVALID, raw=message)

    method = message.get("method")
    if isinstance(method, str) and method:
        return _classify_method(method, message, message.get("params"))

    if "result" in message or "error" in message:
        return ParsedRequest(kind=RequestKind.RESPONSE, id=message.get("id"), raw=message)

    return ParsedRequest(kind=RequestKind.INVALID, id=message.get("id"), raw=message)


def parse_body(body: Any) -> list[ParsedRequest]:
    """
    Classify a request body that may be a single message or a batch.

    Args:
        body: Decoded JSON body.

    Returns:
        One ParsedRequest per message. An empty batch yields an empty list.
    """
    if isinstance(body, list):
        return [parse_message(item) for item in body]
    return [parse_message(body)]


def error_envelope(msg_id: Any, code: int, message: str) -> dict[str, Any]:
    """
    Build a JSON-RPC 2.0 error response.

    Args:
        msg_id: Request id to echo, or None when unknown.
        code: JSON-RPC error code.
        message: Human-readable error message.

    Returns:
        {'jsonrpc': '2.0', 'id': msg_id, 'error': {'code': ..., 'message': ...}}
    """
    return {"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": message}}
