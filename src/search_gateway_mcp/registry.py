"""
Session registry for Search Gateway MCP.

PURPOSE: Resolve each /mcp request to exactly one SessionTransport.
AI CONTEXT: The only place transports are created and the only owner of the
session id -> transport map.

RESOLUTION ORDER (resolve()):
1. Known mcp-session-id header -> existing transport (hot path)
2. No header and a tools/list body -> throwaway stateless transport,
   never registered
3. Anything else -> new stateful transport; it registers itself through
   on_session_initialized once the initialize handshake mints its id

An unknown header falls through to step 3. The client-supplied id is
ignored, so a client that believes it resumed a session is talking to a new,
uninitialized one and gets 'Server not initialized' back.

RETENTION:
Sessions live for the process lifetime unless closed by DELETE. With
max_sessions > 0 the map is an LRU: registering past the cap closes and
drops the least recently resolved session.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from .config import Config
from .protocol import parse_message
from .server import SearchMcpServer
from .transport import SessionTransport

__all__ = ["SessionRegistry"]

logger = logging.getLogger(__name__)


def _new_session_id() -> str:
    return str(uuid.uuid4())


class SessionRegistry:
    """
    Mapping from session id to live transport.

    THREAD SAFETY:
    One lock guards the map. Nothing awaits while it is held, and transport
    close callbacks run after it is released.
    """

    def __init__(
        self,
        server_factory: Callable[[], SearchMcpServer] | None = None,
        id_generator: Callable[[], str] | None = None,
        max_sessions: int | None = None,
        json_response: bool = True,
    ) -> None:
        """
        Args:
            server_factory: Builds the protocol handler for each new transport.
                Default: SearchMcpServer with no provider.
            id_generator: Session id source. Default: uuid4 strings.
            max_sessions: LRU cap, 0 for unbounded. Default:
                Config.get_max_sessions()
            json_response: Reply mode for new transports.
        """
        self._server_factory = server_factory or SearchMcpServer
        self._id_generator = id_generator or _new_session_id
        self.max_sessions = Config.get_max_sessions() if max_sessions is None else max_sessions
        self.json_response = json_response
        self._transports: OrderedDict[str, SessionTransport] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._transports)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._transports

    def get(self, session_id: str) -> SessionTransport | None:
        """Look up a registered transport without touching LRU order."""
        with self._lock:
            return self._transports.get(session_id)

    def session_ids(self) -> list[str]:
        """Registered session ids, least recently resolved first."""
        with self._lock:
            return list(self._transports)

    async def resolve(self, session_header: str | None, body: Any) -> SessionTransport:
        """
        Return the transport that should handle this request.

        Args:
            session_header: Value of the mcp-session-id header, if any.
            body: Decoded JSON request body, or None.

        Returns:
            Existing, one-shot, or newly created transport. New transports
            are already connected to a fresh server.
        """
        if session_header:
            with self._lock:
                transport = self._transports.get(session_header)
                if transport is not None:
                    self._transports.move_to_end(session_header)
            if transport is not None:
                return transport
            logger.debug(f"Unknown session id {session_header}, starting a new session")
        elif parse_message(body).is_discovery:
            transport = SessionTransport(json_response=self.json_response)
            await transport.connect(self._server_factory())
            return transport

        transport = SessionTransport(
            session_id_generator=self._id_generator,
            on_session_initialized=self._register,
            on_close=self._unregister,
            json_response=self.json_response,
        )
        await transport.connect(self._server_factory())
        return transport

    def _register(self, session_id: str, transport: SessionTransport) -> None:
        evicted: list[SessionTransport] = []
        with self._lock:
            self._transports[session_id] = transport
            self._transports.move_to_end(session_id)
            while self.max_sessions and len(self._transports) > self.max_sessions:
                _, oldest = self._transports.popitem(last=False)
                evicted.append(oldest)
            active = len(self._transports)
        for oldest in evicted:
            logger.info(f"Evicting least recently used session {oldest.session_id}")
            oldest.close()
        logger.info(f"Registered session {session_id} ({active} active)")

    def _unregister(self, session_id: str) -> None:
        with self._lock:
            self._transports.pop(session_id, None)

    def close_all(self) -> None:
        """Close every registered transport. Used on shutdown."""
        with self._lock:
            transports = list(self._transports.values())
            self._transports.clear()
        for transport in transports:
            transport.close()
