"""Event-stream transport for stream-correlated MCP servers.

The session client consumes a `StreamTransport`: something that can open
an event stream, push a JSON-RPC request toward the server and tear the
stream down. Replies are delivered as `message` events on the returned
`EventSource`, never as the return value of `send`.

`HttpxStreamTransport` is the default implementation. Tests substitute
their own transport.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Optional
from urllib.parse import urljoin

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.logging import get_logger
from shared.models import RequestId
from mcp_client.errors import MCPAuthError, MCPConnectionError, MCPHTTPError
from mcp_client.sse import aiter_sse_events, parse_sse_body

logger = get_logger(__name__)


EventHandler = Callable[..., Any]


def check_response(response: httpx.Response, body: Optional[str] = None) -> None:
    """
    Raise the matching client error for a non-success response.

    Args:
        response: HTTP response (body must already be read unless `body` is given)
        body: Response text, for streamed responses

    Raises:
        MCPAuthError: On 401/403
        MCPHTTPError: On any other non-2xx status
    """
    if response.is_success:
        return
    if body is None:
        body = response.text
    if response.status_code in (401, 403):
        raise MCPAuthError(
            response.status_code,
            body,
            www_authenticate=response.headers.get("www-authenticate")
        )
    raise MCPHTTPError(response.status_code, body)


def decode_reply(
    response: httpx.Response,
    request_id: Optional[RequestId] = None
) -> Optional[dict[str, Any]]:
    """
    Parse the JSON-RPC message carried in a POST response body.

    Servers answer with either plain JSON or an SSE body.

    Args:
        response: Fully read HTTP response
        request_id: Prefer the message with this id in an SSE body

    Returns:
        The message, or None if the body holds none
    """
    text = response.text
    if not text.strip():
        return None

    content_type = response.headers.get("content-type", "")
    if "text/event-stream" in content_type:
        return parse_sse_body(text, request_id) or parse_sse_body(text)

    try:
        data = response.json()
    except ValueError:
        return parse_sse_body(text, request_id)

    return data if isinstance(data, dict) else None


class EventSource:
    """
    Minimal event emitter for an open stream.

    Emits `message` (parsed JSON-RPC dict), `endpoint` (POST URL announced
    by the server) and `close` (no payload, at most once).

    `streaming` is False when no GET stream backs the source; messages then
    come only from POST response bodies.
    """

    def __init__(self, streaming: bool = True) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._closed = False
        self.streaming = streaming

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, event: str, handler: EventHandler) -> EventHandler:
        """Register a handler for an event."""
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every handler registered for `event`."""
        if self._closed and event != "close":
            return
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(*args)
            except Exception:
                logger.exception("Event handler failed", event=event)

    def close(self) -> None:
        """Mark the stream closed and notify `close` handlers once."""
        if self._closed:
            return
        self._closed = True
        self.emit("close")


class StreamTransport(ABC):
    """Contract for the companion event stream used in stream mode."""

    @abstractmethod
    async def connect(self, url: str, headers: Optional[dict[str, str]] = None) -> EventSource:
        """Open the event stream and return its event source."""
        pass

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        """Transmit a JSON-RPC message. The reply arrives on the event source."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the stream. Safe to call repeatedly."""
        pass


class HttpxStreamTransport(StreamTransport):
    """
    Stream transport built on httpx.

    The stream is a long-lived GET; requests are POSTed to `post_url`,
    which a server may replace by sending an `endpoint` event. A reply
    found in a POST response body is emitted on the event source like one
    read from the stream. A server that answers the GET with 405 has no
    stream; the source then carries POST-body replies only.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        post_url: Optional[str] = None
    ) -> None:
        """
        Initialize the transport.

        Args:
            http_client: Client used for both the stream and the POSTs
            post_url: Initial URL requests are POSTed to
        """
        self.http = http_client
        self.post_url = post_url
        self._headers: dict[str, str] = {}
        self._response: Optional[httpx.Response] = None
        self._reader: Optional[asyncio.Task] = None
        self._source: Optional[EventSource] = None

    @retry(
        retry=retry_if_exception_type(httpx.ConnectError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        reraise=True
    )
    async def _open(self, url: str, headers: dict[str, str]) -> httpx.Response:
        # The stream may stay quiet indefinitely; only connecting is bounded
        limits = self.http.timeout
        timeout = httpx.Timeout(
            connect=limits.connect,
            read=None,
            write=limits.write,
            pool=limits.pool
        )
        request = self.http.build_request("GET", url, headers=headers, timeout=timeout)
        return await self.http.send(request, stream=True)

    async def connect(self, url: str, headers: Optional[dict[str, str]] = None) -> EventSource:
        if self._source is not None:
            await self.disconnect()

        headers = dict(headers or {})
        stream_headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            **headers,
        }

        logger.debug("Opening event stream", url=url, headers=sorted(headers))

        try:
            response = await self._open(url, stream_headers)
        except httpx.HTTPError as e:
            raise MCPConnectionError(f"Cannot connect to event stream at {url}: {e}") from e

        self._headers = headers
        if self.post_url is None:
            self.post_url = url

        if response.status_code == 405:
            await response.aclose()
            logger.info("Server offers no event stream, using POST replies only", url=url)
            self._source = EventSource(streaming=False)
            return self._source

        if not response.is_success:
            body = (await response.aread()).decode(errors="replace")
            await response.aclose()
            check_response(response, body=body[:500])

        self._response = response
        source = EventSource()
        self._source = source
        self._reader = asyncio.create_task(self._read(response, source, url))

        logger.info("Event stream connected", url=url, status=response.status_code)
        return source

    async def _read(self, response: httpx.Response, source: EventSource, base_url: str) -> None:
        try:
            async for event in aiter_sse_events(response.aiter_lines()):
                if event.event == "endpoint":
                    self.post_url = urljoin(base_url, event.data.strip())
                    logger.debug("Server announced endpoint", url=self.post_url)
                    source.emit("endpoint", self.post_url)
                    continue
                if event.event != "message":
                    continue
                try:
                    data = event.json()
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON stream event", data=event.data[:200])
                    continue
                source.emit("message", data)
        except httpx.HTTPError as e:
            logger.warning("Event stream failed", error=str(e))
        finally:
            await response.aclose()
            logger.info("Event stream closed")
            source.close()

    async def send(self, message: dict[str, Any]) -> None:
        source = self._source
        if source is None or source.closed:
            raise MCPConnectionError("Event stream is not connected")
        if not self.post_url:
            raise MCPConnectionError("No endpoint available for sending requests")

        headers = {
            **self._headers,
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }

        try:
            response = await self.http.post(self.post_url, json=message, headers=headers)
        except httpx.HTTPError as e:
            raise MCPConnectionError(f"Cannot send request to {self.post_url}: {e}") from e

        check_response(response)

        reply = decode_reply(response, message.get("id"))
        if reply is not None:
            logger.debug("Reply in POST body", request_id=reply.get("id"))
            source.emit("message", reply)

    async def disconnect(self) -> None:
        reader, self._reader = self._reader, None
        source, self._source = self._source, None
        response, self._response = self._response, None

        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        if response is not None:
            await response.aclose()
        if source is not None:
            source.close()
