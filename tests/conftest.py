"""Shared fixtures: a scripted MCP server behind httpx.MockTransport and a fake stream transport."""

import asyncio
import json
from typing import Any, Callable, Optional

import httpx
import pytest

from shared.config import ClientSettings
from mcp_client.transport import EventSource, StreamTransport


SERVER_URL = "https://example.com/mcp/sse"

TEST_TOOL = {"name": "test-tool", "description": "Test tool", "inputSchema": {}}
TEST_CONTENT = {"content": [{"type": "text", "text": "Tool result"}]}


def rpc_result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def rpc_error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def initialize_result() -> dict[str, Any]:
    return {
        "protocolVersion": "2025-06-18",
        "capabilities": {"tools": {}},
        "serverInfo": {"name": "test-server", "version": "1.0.0"},
    }


class MockServer:
    """
    Direct-mode MCP server answering every POST in its response body.

    Per-method replies can be overridden with `responses[method]`, either a
    result payload or a callable taking the JSON-RPC request and returning
    an `httpx.Response`.
    """

    def __init__(self, session_id: Optional[str] = "test-session-id") -> None:
        self.session_id = session_id
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, Any] = {
            "initialize": initialize_result(),
            "tools/list": {"tools": [TEST_TOOL]},
            "resources/list": {"resources": []},
            "tools/call": TEST_CONTENT,
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "GET":
            return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=b"")

        body = json.loads(request.content)
        if "id" not in body:
            return httpx.Response(202)

        method = body["method"]
        reply = self.responses.get(method)
        if callable(reply):
            return reply(body)
        if reply is None:
            return httpx.Response(200, json=rpc_error(body["id"], -32601, f"Method not found: {method}"))

        headers = {}
        if method == "initialize" and self.session_id:
            headers["Mcp-Session-Id"] = self.session_id
        return httpx.Response(200, json=rpc_result(body["id"], reply), headers=headers)

    def rpc_requests(self, method: Optional[str] = None) -> list[httpx.Request]:
        """POSTed JSON-RPC requests, optionally filtered by method."""
        found = []
        for request in self.requests:
            if request.method != "POST":
                continue
            if method is None or json.loads(request.content).get("method") == method:
                found.append(request)
        return found


class FakeStreamTransport(StreamTransport):
    """
    In-memory stream transport.

    `responder` maps a sent request to its reply (or None for no reply);
    replies and `on_connect` messages are delivered on the next loop turn.
    """

    def __init__(
        self,
        responder: Optional[Callable[[dict[str, Any]], Optional[dict[str, Any]]]] = None,
        on_connect: Optional[list[dict[str, Any]]] = None
    ) -> None:
        self.responder = responder
        self.on_connect = list(on_connect or [])
        self.source: Optional[EventSource] = None
        self.sent: list[dict[str, Any]] = []
        self.connect_calls: list[tuple[str, dict[str, str]]] = []
        self.disconnect_calls = 0

    async def connect(self, url: str, headers: Optional[dict[str, str]] = None) -> EventSource:
        self.connect_calls.append((url, dict(headers or {})))
        self.source = EventSource()
        loop = asyncio.get_running_loop()
        for message in self.on_connect:
            loop.call_soon(self.source.emit, "message", message)
        return self.source

    async def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)
        if self.responder is None or "id" not in message:
            return
        reply = self.responder(message)
        if reply is not None:
            asyncio.get_running_loop().call_soon(self.source.emit, "message", reply)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self.source is not None:
            self.source.close()

    def emit(self, message: dict[str, Any]) -> None:
        self.source.emit("message", message)

    def sent_requests(self, method: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("method") == method]


def default_responder(message: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Answer discovery and tool calls like MockServer does."""
    method = message["method"]
    if method == "tools/list":
        return rpc_result(message["id"], {"tools": [TEST_TOOL]})
    if method == "resources/list":
        return rpc_result(message["id"], {"resources": []})
    if method == "tools/call":
        return rpc_result(message["id"], TEST_CONTENT)
    return rpc_error(message["id"], -32601, f"Method not found: {method}")


async def wait_until(predicate: Callable[[], bool], attempts: int = 100) -> None:
    """Yield to the event loop until `predicate` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("Condition not reached")


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(response_timeout=2.0)


@pytest.fixture
def mock_server() -> MockServer:
    return MockServer()


@pytest.fixture
def http_client(mock_server: MockServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(mock_server))
