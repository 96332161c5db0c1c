"""MCP Client for remote MCP servers.

Speaks JSON-RPC 2.0 to a remote server in one of two modes, detected
during the initialize handshake:

- DIRECT: every request is a POST whose response body holds the reply.
- STREAM: requests are transmitted through a `StreamTransport` and the
  replies arrive on a companion SSE stream, matched by request id.

Handles credentials, the server-assigned session id and caching of
discovery results.
"""

import asyncio
from typing import Any, Optional

import httpx

from shared.config import ClientSettings, get_settings
from shared.logging import get_logger, redact
from shared.models import (
    ApiKeyConfig,
    JsonRpcRequest,
    OAuthToken,
    RemoteServerConfig,
    RequestId,
    SessionState,
    TransportMode,
)
from mcp_client.correlation import PendingCallTable, RequestIdAllocator, unwrap_response
from mcp_client.discovery import DiscoveryCache, normalize_resources, normalize_tools
from mcp_client.errors import (
    MCPClientError,
    MCPConnectionError,
    MCPConnectionLostError,
    MCPInitializationError,
    MCPNotInitializedError,
    MCPProtocolError,
    MCPRPCError,
    MCPTimeoutError,
)
from mcp_client.headers import compose_headers
from mcp_client.transport import (
    EventSource,
    HttpxStreamTransport,
    StreamTransport,
    check_response,
    decode_reply,
)

logger = get_logger(__name__)


class MCPClient:
    """
    Session client for a remote MCP server.

    Call `initialize()` once, then `list_tools()`, `list_resources()`,
    `call_tool()` and `read_resource()` any number of times, possibly
    concurrently.
    """

    def __init__(
        self,
        config: RemoteServerConfig,
        oauth_token: Optional[OAuthToken] = None,
        api_key: Optional[ApiKeyConfig] = None,
        *,
        stream_transport: Optional[StreamTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[ClientSettings] = None
    ) -> None:
        """
        Initialize MCP Client.

        Args:
            config: Remote server URL and declared transport
            oauth_token: Optional OAuth credential (wins over `api_key`)
            api_key: Optional API-key credential
            stream_transport: Event-stream transport used in stream mode;
                defaults to `HttpxStreamTransport`
            http_client: HTTP client for POSTs; created and owned if omitted
            settings: Client settings; defaults to `get_settings()`
        """
        self.config = config
        self.settings = settings or get_settings()
        self.log = logger.bind(server=config.name or config.url)

        self._oauth_token = oauth_token
        self._api_key = api_key
        if oauth_token is not None and api_key is not None:
            self.log.warning(
                "Both OAuth token and API key configured, using OAuth token",
                api_key_header=api_key.header_name
            )

        self._http = http_client
        self._owns_http = http_client is None
        self._stream_transport = stream_transport
        self._stream: Optional[EventSource] = None

        self._session = SessionState()
        self._ids = RequestIdAllocator()
        self._pending = PendingCallTable()
        self._cache = DiscoveryCache()
        self._init_lock = asyncio.Lock()

    @property
    def session(self) -> SessionState:
        """Snapshot of the session state."""
        return self._session.model_copy(deep=True)

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id

    @property
    def mode(self) -> Optional[TransportMode]:
        return self._session.mode

    @property
    def is_initialized(self) -> bool:
        return self._session.initialized

    @property
    def server_info(self) -> dict[str, Any]:
        return dict(self._session.server_info)

    @property
    def post_url(self) -> str:
        return self.config.url

    @property
    def stream_url(self) -> str:
        return self.config.url

    @property
    def pending_count(self) -> int:
        """Number of stream-mode calls awaiting a reply."""
        return len(self._pending)

    def _get_http(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.settings.request_timeout,
                follow_redirects=True
            )
            self._owns_http = True
        return self._http

    def _headers(self, content_type: bool = True) -> dict[str, str]:
        return compose_headers(
            self._oauth_token,
            self._api_key,
            self._session.session_id,
            session_header=self.settings.session_header,
            content_type=content_type
        )

    async def __aenter__(self) -> "MCPClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    # Initialization

    async def initialize(self) -> None:
        """
        Perform the initialize handshake and prefetch discovery results.

        Detects the server's mode from the reply to `initialize`, captures
        the session id, then fetches `tools/list` and `resources/list`.
        A server without resource support yields an empty resource list.
        Calling again after success is a no-op.

        Raises:
            MCPInitializationError: If the handshake or tool discovery fails;
                the client is left uninitialized
        """
        async with self._init_lock:
            if self._session.initialized:
                self.log.debug("Already initialized")
                return

            self.log.info(
                "Initializing MCP session",
                url=self.config.url,
                transport=self.config.transport.value
            )

            try:
                await self._handshake()
                await self._prefetch()
            except MCPClientError as e:
                await self._reset()
                self.log.error("MCP initialization failed", error=str(e))
                raise MCPInitializationError(
                    f"Failed to initialize MCP session with {self.config.url}: {e}"
                ) from e
            except BaseException:
                await self._reset()
                raise

            self._session.initialized = True
            self.log.info(
                "MCP session initialized",
                mode=self._session.mode.value,
                session_id=redact(self._session.session_id),
                server_name=self._session.server_info.get("name", "unknown"),
                protocol=self._session.protocol_version
            )

    async def _handshake(self) -> None:
        request_id = self._ids.next()
        request = JsonRpcRequest(
            id=request_id,
            method="initialize",
            params={
                "protocolVersion": self.settings.protocol_version,
                "capabilities": {},
                "clientInfo": self.settings.client_info,
            }
        )

        response = await self._post(request.to_wire())

        session_id = response.headers.get(self.settings.session_header)
        if session_id:
            self._session.session_id = session_id
            self.log.info("Session assigned", session_id=redact(session_id))

        reply = decode_reply(response, request_id)
        if reply is not None and reply.get("id") != request_id:
            reply = None

        content_type = response.headers.get("content-type", "")
        if reply is not None and response.status_code == 200 and "application/json" in content_type:
            result = unwrap_response(reply)
            self._session.mode = TransportMode.DIRECT
        else:
            # Reply is in an event-stream body or still to come on the stream
            if reply is not None:
                result = unwrap_response(reply)
            self._session.mode = TransportMode.STREAM
            waiter = None if reply is not None else self._pending.register(request_id)
            try:
                source = await self._connect_stream()
                if waiter is not None and not source.streaming:
                    raise MCPConnectionError(
                        "Server accepted initialize without a reply and offers no event stream"
                    )
            except BaseException:
                self._pending.discard(request_id)
                raise
            if waiter is not None:
                result = unwrap_response(await self._await_reply(request_id, waiter))

        self.log.debug("Transport mode detected", mode=self._session.mode.value)

        if isinstance(result, dict):
            self._session.protocol_version = result.get("protocolVersion")
            self._session.capabilities = result.get("capabilities") or {}
            self._session.server_info = result.get("serverInfo") or {}

        await self._notify("notifications/initialized")

    async def _prefetch(self) -> None:
        await self.list_tools()

        try:
            await self.list_resources()
        except MCPRPCError as e:
            if e.is_method_not_found:
                self.log.info("Server does not support resources")
                self._cache.resources = []
            else:
                self.log.warning("Resource prefetch failed", error=str(e), code=e.code)

    async def _connect_stream(self) -> EventSource:
        if self._stream_transport is None:
            self._stream_transport = HttpxStreamTransport(self._get_http(), post_url=self.post_url)

        source = await self._stream_transport.connect(
            self.stream_url,
            self._headers(content_type=False)
        )
        source.on("message", self._pending.dispatch)
        source.on("close", lambda: self._on_stream_closed(source))
        self._stream = source
        return source

    def _on_stream_closed(self, source: EventSource) -> None:
        if self._stream is source:
            self._stream = None
        self._pending.reject_all(
            MCPConnectionLostError("Event stream closed with requests outstanding")
        )

    async def _reset(self) -> None:
        await self.disconnect()
        self._session = SessionState()
        self._cache.clear()

    # Correlation

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        """POST a JSON-RPC payload and check the HTTP status."""
        try:
            response = await self._get_http().post(
                self.post_url,
                json=payload,
                headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise MCPConnectionError(f"Cannot connect to MCP Server at {self.post_url}: {e}") from e

        check_response(response)
        return response

    async def _send_rpc(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Send a JSON-RPC request and return the matching result.

        Raises:
            MCPNotInitializedError: If no mode has been negotiated
            MCPConnectionError: On transport failure or lost stream
            MCPRPCError: If the server replied with an error
            MCPTimeoutError: If a stream-mode reply does not arrive in time
        """
        mode = self._session.mode
        if mode is None:
            raise MCPNotInitializedError("MCP client is not initialized")

        request_id = self._ids.next()
        payload = JsonRpcRequest(id=request_id, method=method, params=params).to_wire()

        self.log.debug("Sending request", method=method, request_id=request_id, mode=mode.value)

        if mode == TransportMode.DIRECT:
            message = await self._request_direct(payload, request_id)
        else:
            message = await self._request_stream(payload, request_id)

        return unwrap_response(message)

    async def _request_direct(self, payload: dict[str, Any], request_id: RequestId) -> dict[str, Any]:
        response = await self._post(payload)
        message = decode_reply(response, request_id)

        if message is None:
            raise MCPProtocolError(
                f"No JSON-RPC response for request {request_id} "
                f"(HTTP {response.status_code}, "
                f"Content-Type: {response.headers.get('content-type', '')}): "
                f"{response.text[:200]}"
            )
        if message.get("id") != request_id:
            raise MCPProtocolError(
                f"Response id {message.get('id')!r} does not match request id {request_id!r}"
            )
        return message

    async def _request_stream(self, payload: dict[str, Any], request_id: RequestId) -> dict[str, Any]:
        if self._stream is None or self._stream.closed:
            raise MCPConnectionError("Event stream is not connected")

        waiter = self._pending.register(request_id)
        try:
            await self._stream_transport.send(payload)
        except BaseException:
            self._pending.discard(request_id)
            raise

        return await self._await_reply(request_id, waiter)

    async def _await_reply(self, request_id: RequestId, waiter: asyncio.Future) -> dict[str, Any]:
        timeout = self.settings.response_timeout
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError:
            self._pending.discard(request_id)
            self.log.error("Call timed out", request_id=request_id, timeout=timeout)
            raise MCPTimeoutError(f"Call {request_id} timed out after {timeout}s") from None
        except asyncio.CancelledError:
            self._pending.discard(request_id)
            raise

    async def _notify(self, method: str, params: Optional[dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification. Failures are logged, not raised."""
        payload = JsonRpcRequest(method=method, params=params).to_wire()
        try:
            if self._session.mode == TransportMode.STREAM:
                await self._stream_transport.send(payload)
            else:
                await self._post(payload)
        except MCPConnectionError as e:
            self.log.warning("Notification failed", method=method, error=str(e))

    # Discovery and invocation

    async def list_tools(self) -> list[dict[str, Any]]:
        """
        List tools exposed by the server.

        The first successful call is cached; later calls return the
        cached list until `invalidate_tool_cache()`.

        Returns:
            Flat list of MCP tool definitions
        """
        return await self._cache.get_tools(self._fetch_tools)

    async def _fetch_tools(self) -> list[dict[str, Any]]:
        self.log.info("Listing tools")
        result = await self._send_rpc("tools/list")
        tools = normalize_tools(result)
        self.log.info("Tools listed", count=len(tools))
        return tools

    async def list_resources(self) -> list[dict[str, Any]]:
        """
        List resources exposed by the server.

        Cached like `list_tools()`; reset with `invalidate_resource_cache()`.

        Returns:
            Flat list of MCP resource definitions
        """
        return await self._cache.get_resources(self._fetch_resources)

    async def _fetch_resources(self) -> list[dict[str, Any]]:
        self.log.info("Listing resources")
        result = await self._send_rpc("resources/list")
        resources = normalize_resources(result)
        self.log.info("Resources listed", count=len(resources))
        return resources

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> Any:
        """
        Invoke a tool on the server.

        Never cached. The tool name is not checked against the cached
        tool list; unknown tools fail with the server's own error.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Raw `tools/call` result (content blocks)
        """
        arguments = arguments or {}
        self.log.info("Calling tool", tool=name, args=_sanitize_args(arguments))

        result = await self._send_rpc("tools/call", {"name": name, "arguments": arguments})

        self.log.info("Tool call completed", tool=name)
        return result

    async def read_resource(self, uri: str) -> Any:
        """
        Read a resource by URI.

        Returns:
            Raw `resources/read` result
        """
        self.log.info("Reading resource", uri=uri)
        return await self._send_rpc("resources/read", {"uri": uri})

    def invalidate_tool_cache(self) -> None:
        """Drop the cached tool list; the next `list_tools()` refetches."""
        self._cache.invalidate_tools()

    def invalidate_resource_cache(self) -> None:
        """Drop the cached resource list; the next `list_resources()` refetches."""
        self._cache.invalidate_resources()

    # Teardown

    async def disconnect(self) -> None:
        """
        Tear down the event stream.

        Every call still awaiting a reply fails with
        `MCPConnectionLostError`.
        """
        self._pending.reject_all(MCPConnectionLostError("Client disconnected"))
        self._stream = None
        if self._stream_transport is not None:
            await self._stream_transport.disconnect()

    async def close(self) -> None:
        """Disconnect and close the HTTP client if this instance created it."""
        await self.disconnect()
        if self._owns_http and self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            self._http = None

    def __repr__(self) -> str:
        mode = self._session.mode.value if self._session.mode else "uninitialized"
        return f"<MCPClient(url='{self.config.url}', mode='{mode}')>"


def _sanitize_args(args: dict[str, Any]) -> dict[str, Any]:
    """Truncate long string arguments for logging."""
    sanitized = {}
    for key, value in args.items():
        if isinstance(value, str) and len(value) > 100:
            sanitized[key] = value[:100] + f"... ({len(value)} chars)"
        else:
            sanitized[key] = value
    return sanitized
