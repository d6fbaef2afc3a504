"""Tests for transport module."""

from __future__ import annotations

import json
from typing import Any

import pytest
import pytest_asyncio
from fastapi.responses import StreamingResponse
from starlette.requests import Request

from search_gateway_mcp.server import SearchMcpServer
from search_gateway_mcp.transport import SessionTransport

SESSION_ID = "3f1c8a52-6a55-4c2e-9f53-8d1b2f0e7a11"

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 0,
    "method": "initialize",
    "params": {"protocolVersion": "2025-03-26", "capabilities": {}, "clientInfo": {"name": "t"}},
}
LIST_TOOLS = {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}
INITIALIZED_NOTIFICATION = {"jsonrpc": "2.0", "method": "notifications/initialized"}


def make_request(method: str = "POST", headers: dict[str, str] | None = None) -> Request:
    """Build a bare Starlette request; the transport only reads method and headers."""
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": method,
            "path": "/mcp",
            "query_string": b"",
            "headers": raw_headers,
        }
    )


def body_of(response: Any) -> Any:
    return json.loads(response.body)


class Recorder:
    """Captures registry callbacks."""

    def __init__(self) -> None:
        self.initialized: list[tuple[str, SessionTransport]] = []
        self.closed: list[str] = []

    def on_initialized(self, session_id: str, transport: SessionTransport) -> None:
        self.initialized.append((session_id, transport))

    def on_close(self, session_id: str) -> None:
        self.closed.append(session_id)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest_asyncio.fixture
async def stateful(recorder: Recorder) -> SessionTransport:
    transport = SessionTransport(
        session_id_generator=lambda: SESSION_ID,
        on_session_initialized=recorder.on_initialized,
        on_close=recorder.on_close,
    )
    await transport.connect(SearchMcpServer())
    return transport


@pytest_asyncio.fixture
async def stateless() -> SessionTransport:
    transport = SessionTransport()
    await transport.connect(SearchMcpServer())
    return transport


async def _initialize(transport: SessionTransport) -> None:
    response = await transport.handle_request(make_request(), INITIALIZE)
    assert response.status_code == 200


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_twice_raises(self, stateless: SessionTransport) -> None:
        with pytest.raises(RuntimeError):
            await stateless.connect(SearchMcpServer())

    @pytest.mark.asyncio
    async def test_unconnected_transport_raises(self) -> None:
        with pytest.raises(RuntimeError):
            await SessionTransport().handle_request(make_request(), LIST_TOOLS)


class TestInitialize:
    """Test suite for the initialize handshake on a stateful transport.

    Categories:
    1. Session minting - Id, callback, response header (1 test)
    2. Misuse - Second initialize, batched initialize (2 tests)
    3. Gating - Requests before initialize (1 test)
    """

    @pytest.mark.asyncio
    async def test_mints_session_and_fires_callback(
        self, stateful: SessionTransport, recorder: Recorder
    ) -> None:
        """Verifies initialize assigns the id, notifies the owner, and returns it.

        Business context:
        The registry learns about a new session only through this callback;
        the client learns the id only through the response header.
        """
        response = await stateful.handle_request(make_request(), INITIALIZE)

        assert response.status_code == 200
        assert response.headers["mcp-session-id"] == SESSION_ID
        assert body_of(response)["result"]["serverInfo"]["name"] == "brave-search"
        assert stateful.session_id == SESSION_ID
        assert recorder.initialized == [(SESSION_ID, stateful)]

    @pytest.mark.asyncio
    async def test_second_initialize_rejected(self, stateful: SessionTransport) -> None:
        await _initialize(stateful)
        response = await stateful.handle_request(
            make_request(headers={"mcp-session-id": SESSION_ID}), INITIALIZE
        )
        assert response.status_code == 400
        assert body_of(response)["error"] == {
            "code": -32600,
            "message": "Invalid Request: Server already initialized",
        }

    @pytest.mark.asyncio
    async def test_batched_initialize_rejected(self, stateful: SessionTransport) -> None:
        response = await stateful.handle_request(make_request(), [INITIALIZE, LIST_TOOLS])
        assert response.status_code == 400
        assert stateful.session_id is None

    @pytest.mark.asyncio
    async def test_request_before_initialize_rejected(self, stateful: SessionTransport) -> None:
        response = await stateful.handle_request(make_request(), LIST_TOOLS)
        assert response.status_code == 400
        assert body_of(response)["error"] == {
            "code": -32000,
            "message": "Bad Request: Server not initialized",
        }


class TestSessionValidation:
    @pytest.mark.asyncio
    async def test_matching_header_is_served(self, stateful: SessionTransport) -> None:
        await _initialize(stateful)
        response = await stateful.handle_request(
            make_request(headers={"mcp-session-id": SESSION_ID}), LIST_TOOLS
        )
        assert response.status_code == 200
        assert len(body_of(response)["result"]["tools"]) == 6

    @pytest.mark.asyncio
    async def test_missing_header_rejected(self, stateful: SessionTransport) -> None:
        await _initialize(stateful)
        response = await stateful.handle_request(make_request(), LIST_TOOLS)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_mismatched_header_is_not_found(self, stateful: SessionTransport) -> None:
        await _initialize(stateful)
        response = await stateful.handle_request(
            make_request(headers={"mcp-session-id": "other"}), LIST_TOOLS
        )
        assert response.status_code == 404
        assert body_of(response)["error"]["code"] == -32001


class TestPostBodies:
    """Test suite for POST body handling.

    Categories:
    1. Malformed - Undecodable, empty batch, invalid message (3 tests)
    2. Notifications - 202 Accepted (1 test)
    3. Batches - List in, list out (1 test)
    """

    @pytest.mark.asyncio
    async def test_undecodable_body_is_parse_error(self, stateless: SessionTransport) -> None:
        response = await stateless.handle_request(make_request(), None)
        assert response.status_code == 400
        assert body_of(response)["error"]["code"] == -32700

    @pytest.mark.asyncio
    async def test_empty_batch_is_invalid(self, stateless: SessionTransport) -> None:
        response = await stateless.handle_request(make_request(), [])
        assert response.status_code == 400
        assert body_of(response)["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_invalid_message(self, stateless: SessionTransport) -> None:
        response = await stateless.handle_request(make_request(), {"jsonrpc": "2.0", "id": 9})
        assert response.status_code == 400
        assert body_of(response)["id"] == 9

    @pytest.mark.asyncio
    async def test_notification_only_is_accepted(self, stateful: SessionTransport) -> None:
        await _initialize(stateful)
        response = await stateful.handle_request(
            make_request(headers={"mcp-session-id": SESSION_ID}), INITIALIZED_NOTIFICATION
        )
        assert response.status_code == 202
        assert response.body == b""
        assert response.headers["mcp-session-id"] == SESSION_ID

    @pytest.mark.asyncio
    async def test_batch_returns_list(self, stateless: SessionTransport) -> None:
        ping = {"jsonrpc": "2.0", "id": 2, "method": "ping"}
        response = await stateless.handle_request(
            make_request(), [LIST_TOOLS, ping, INITIALIZED_NOTIFICATION]
        )
        responses = body_of(response)
        assert [r["id"] for r in responses] == [1, 2]


class TestStateless:
    @pytest.mark.asyncio
    async def test_serves_without_session_header(self, stateless: SessionTransport) -> None:
        response = await stateless.handle_request(make_request(), LIST_TOOLS)
        assert response.status_code == 200
        assert "mcp-session-id" not in response.headers
        assert stateless.session_id is None

    @pytest.mark.asyncio
    async def test_delete_not_allowed(self, stateless: SessionTransport) -> None:
        response = await stateless.handle_request(make_request("DELETE"), None)
        assert response.status_code == 405


class TestMethodsAndClose:
    @pytest.mark.asyncio
    async def test_get_is_not_allowed(self, stateful: SessionTransport) -> None:
        response = await stateful.handle_request(make_request("GET"), None)
        assert response.status_code == 405
        assert response.headers["allow"] == "POST, DELETE"

    @pytest.mark.asyncio
    async def test_delete_closes_and_notifies(
        self, stateful: SessionTransport, recorder: Recorder
    ) -> None:
        await _initialize(stateful)
        response = await stateful.handle_request(
            make_request("DELETE", {"mcp-session-id": SESSION_ID}), None
        )
        assert response.status_code == 200
        assert stateful.closed
        assert recorder.closed == [SESSION_ID]

    @pytest.mark.asyncio
    async def test_closed_transport_returns_not_found(self, stateful: SessionTransport) -> None:
        await _initialize(stateful)
        stateful.close()
        response = await stateful.handle_request(
            make_request(headers={"mcp-session-id": SESSION_ID}), LIST_TOOLS
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_close_is_idempotent(
        self, stateful: SessionTransport, recorder: Recorder
    ) -> None:
        await _initialize(stateful)
        stateful.close()
        stateful.close()
        assert recorder.closed == [SESSION_ID]


class TestSseMode:
    @pytest.mark.asyncio
    async def test_streams_one_event_per_response(self) -> None:
        """Verifies SSE replies when JSON mode is off and the client accepts streams.

        Assertion Strategy:
        Drains the body iterator and checks the event framing and payload.
        """
        transport = SessionTransport(json_response=False)
        await transport.connect(SearchMcpServer())

        response = await transport.handle_request(
            make_request(headers={"accept": "application/json, text/event-stream"}), LIST_TOOLS
        )

        assert isinstance(response, StreamingResponse)
        assert response.media_type == "text/event-stream"
        chunks = [chunk async for chunk in response.body_iterator]
        assert len(chunks) == 1
        assert chunks[0].startswith("event: message\ndata: ")
        payload = json.loads(chunks[0].split("data: ", 1)[1])
        assert payload["id"] == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_json_without_stream_accept(self) -> None:
        transport = SessionTransport(json_response=False)
        await transport.connect(SearchMcpServer())
        response = await transport.handle_request(
            make_request(headers={"accept": "application/json"}), LIST_TOOLS
        )
        assert not isinstance(response, StreamingResponse)
        assert body_of(response)["id"] == 1
