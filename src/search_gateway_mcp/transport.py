"""
Streamable HTTP transport for one MCP session.

PURPOSE: Bind one SearchMcpServer to one HTTP session and turn request bodies
into HTTP responses.
AI CONTEXT: SessionRegistry creates transports; RequestDispatcher calls
handle_request(). A transport owns its server exclusively.

MODES:
- Stateful: built with a session_id_generator. The initialize request mints
  the session id, fires on_session_initialized, and every later request must
  echo the id in the mcp-session-id header.
- Stateless: no generator. Used for one-shot tools/list discovery; no session
  id is ever issued and no header is checked.

REPLY FORMAT:
- JSON (default): application/json body, a single object or a batch list
- SSE: text/event-stream with one 'message' event per response, when
  json_response=False and the client accepts event streams

HTTP STATUS:
- 200: Responses produced (or DELETE succeeded)
- 202: Body held only notifications/responses
- 400: Parse error, invalid request, not initialized, missing session header
- 404: Session id mismatch or transport closed
- 405: GET (no standalone stream), DELETE on a stateless transport
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse, Response, StreamingResponse

from .config import Config
from .protocol import (
    INVALID_REQUEST,
    PARSE_ERROR,
    SERVER_NOT_INITIALIZED,
    SESSION_NOT_FOUND,
    ParsedRequest,
    RequestKind,
    error_envelope,
    parse_body,
)

if TYPE_CHECKING:
    from starlette.requests import Request

    from .server import SearchMcpServer

__all__ = ["SessionTransport"]

logger = logging.getLogger(__name__)


def _error_response(status_code: int, code: int, message: str, msg_id: Any = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_envelope(msg_id, code, message))


class SessionTransport:
    """
    Per-session streamable HTTP transport.

    LIFECYCLE:
    1. Created by SessionRegistry
    2. connect(server) binds the protocol handler
    3. handle_request() for every request routed to this session
    4. close() on DELETE (or LRU eviction); afterwards every request gets 404
    """

    def __init__(
        self,
        session_id_generator: Callable[[], str] | None = None,
        on_session_initialized: Callable[[str, SessionTransport], None] | None = None,
        on_close: Callable[[str], None] | None = None,
        json_response: bool = True,
    ) -> None:
        """
        Args:
            session_id_generator: Mints the session id on initialize. None
                makes the transport stateless.
            on_session_initialized: Called with (session_id, transport) once
                the handshake assigns an id.
            on_close: Called with the session id when the transport closes.
            json_response: Reply with JSON bodies instead of SSE streams.
        """
        self._session_id_generator = session_id_generator
        self._on_session_initialized = on_session_initialized
        self._on_close = on_close
        self.json_response = json_response
        self.session_id: str | None = None
        self.initialized = False
        self.closed = False
        self.server: SearchMcpServer | None = None

    @property
    def stateful(self) -> bool:
        return self._session_id_generator is not None

    @property
    def _handler(self) -> SearchMcpServer:
        if self.server is None:
            raise RuntimeError("Transport is not connected to a server")
        return self.server

    async def connect(self, server: SearchMcpServer) -> None:
        """
        Bind the protocol handler that will answer this transport's messages.

        Raises:
            RuntimeError: If a server is already connected.
        """
        if self.server is not None:
            raise RuntimeError("Transport already connected to a server")
        self.server = server

    def close(self) -> None:
        """Close the transport and notify the owner. Idempotent."""
        if self.closed:
            return
        self.closed = True
        if self.session_id is not None and self._on_close is not None:
            self._on_close(self.session_id)
        logger.info(f"Session closed: {self.session_id or '(stateless)'}")

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    async def handle_request(self, request: Request, body: Any) -> Response:
        """
        Produce the HTTP response for one request routed to this transport.

        Args:
            request: Incoming Starlette request (method and headers are read).
            body: Decoded JSON body, or None when absent or not valid JSON.

        Returns:
            Starlette Response.

        Raises:
            RuntimeError: If no server is connected.
        """
        if self.server is None:
            raise RuntimeError("Transport is not connected to a server")
        if self.closed:
            return _error_response(404, SESSION_NOT_FOUND, "Session not found")

        if request.method == "POST":
            return await self._handle_post(request, body)
        if request.method == "DELETE":
            return await self._handle_delete(request)
        return JSONResponse(
            status_code=405,
            content=error_envelope(None, SERVER_NOT_INITIALIZED, "Method not allowed."),
            headers={"Allow": "POST, DELETE" if self.stateful else "POST"},
        )

    def _validate_session(self, request: Request) -> Response | None:
        """Return an error response if the request does not belong to this session."""
        if not self.stateful:
            return None
        if not self.initialized:
            return _error_response(
                400, SERVER_NOT_INITIALIZED, "Bad Request: Server not initialized"
            )
        header = request.headers.get(Config.SESSION_HEADER)
        if not header:
            return _error_response(
                400, SERVER_NOT_INITIALIZED, "Bad Request: Mcp-Session-Id header is required"
            )
        if header != self.session_id:
            return _error_response(404, SESSION_NOT_FOUND, "Session not found")
        return None

    async def _handle_delete(self, request: Request) -> Response:
        if not self.stateful:
            return _error_response(405, SERVER_NOT_INITIALIZED, "Method not allowed.")
        error = self._validate_session(request)
        if error is not None:
            return error
        self.close()
        return Response(status_code=200)

    async def _handle_post(self, request: Request, body: Any) -> Response:
        if body is None:
            return _error_response(400, PARSE_ERROR, "Parse error")

        messages = parse_body(body)
        if not messages:
            return _error_response(400, INVALID_REQUEST, "Invalid Request: Empty batch")
        invalid = next((m for m in messages if m.kind is RequestKind.INVALID), None)
        if invalid is not None:
            return _error_response(400, INVALID_REQUEST, "Invalid Request", invalid.id)

        if any(m.kind is RequestKind.INITIALIZE for m in messages):
            error = self._start_session(messages)
        else:
            error = self._validate_session(request)
        if error is not None:
            return error

        requests = [m for m in messages if m.expects_response]
        for message in messages:
            if not message.expects_response:
                await self._handler.handle_notification(message.raw)

        headers = {Config.SESSION_HEADER: self.session_id} if self.session_id else {}
        if not requests:
            return Response(status_code=202, headers=headers)

        if self.json_response or "text/event-stream" not in request.headers.get("accept", ""):
            responses = [await self._handler.handle_message(m.raw) for m in requests]
            content: Any = responses if isinstance(body, list) else responses[0]
            return JSONResponse(content=content, headers=headers)

        return StreamingResponse(
            self._stream(requests),
            media_type="text/event-stream",
            headers={**headers, "Cache-Control": "no-cache"},
        )

    def _start_session(self, messages: list[ParsedRequest]) -> Response | None:
        """
        Handle the initialize handshake at the transport level.

        Mints the session id and fires on_session_initialized before the
        server sees the initialize request.
        """
        if len(messages) > 1:
            return _error_response(
                400, INVALID_REQUEST, "Invalid Request: Only one initialization request is allowed"
            )
        if self.initialized and self.stateful:
            return _error_response(
                400, INVALID_REQUEST, "Invalid Request: Server already initialized"
            )

        if self._session_id_generator is not None:
            self.session_id = self._session_id_generator()
            if self._on_session_initialized is not None:
                self._on_session_initialized(self.session_id, self)
            logger.info(f"Session initialized: {self.session_id}")
        self.initialized = True
        return None

    async def _stream(self, requests: list[ParsedRequest]) -> AsyncIterator[str]:
        """
        Yield one SSE 'message' event per response.

        Headers are already on the wire once the first event is sent, so a
        failure here is logged and ends the stream rather than producing a
        second response.
        """
        try:
            for message in requests:
                response = await self._handler.handle_message(message.raw)
                yield f"event: message\ndata: {json.dumps(response)}\n\n"
        except Exception as e:
            logger.error(f"Stream for session {self.session_id} aborted: {e}")
