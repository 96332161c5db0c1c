"""Server-Sent Events parsing.

MCP servers use SSE both as the body of a single POST reply and as a
long-lived companion stream. Both are parsed here:

    event: message
    data: {"jsonrpc": "2.0", "id": 1, "result": {...}}

"""

import json
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator, Optional

from shared.models import RequestId


@dataclass
class SSEEvent:
    """A dispatched SSE event."""
    event: str = "message"
    data: str = ""
    id: Optional[str] = None

    def json(self) -> Any:
        return json.loads(self.data)


class _EventBuilder:
    """Accumulates field lines until a blank line dispatches the event."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.event: Optional[str] = None
        self.data: list[str] = []
        self.id: Optional[str] = None

    def feed(self, line: str) -> Optional[SSEEvent]:
        line = line.rstrip("\r\n")
        if not line:
            return self.flush()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self.event = value
        elif field == "data":
            self.data.append(value)
        elif field == "id":
            self.id = value
        return None

    def flush(self) -> Optional[SSEEvent]:
        if not self.data:
            self.reset()
            return None
        event = SSEEvent(
            event=self.event or "message",
            data="\n".join(self.data),
            id=self.id
        )
        self.reset()
        return event


def iter_sse_events(lines: Iterable[str]) -> Iterator[SSEEvent]:
    """Yield events from SSE text lines. A trailing undelimited event is flushed."""
    builder = _EventBuilder()
    for line in lines:
        event = builder.feed(line)
        if event is not None:
            yield event
    event = builder.flush()
    if event is not None:
        yield event


async def aiter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    """Yield events from a live line stream."""
    builder = _EventBuilder()
    async for line in lines:
        event = builder.feed(line)
        if event is not None:
            yield event
    event = builder.flush()
    if event is not None:
        yield event


def parse_sse_body(
    text: str,
    request_id: Optional[RequestId] = None
) -> Optional[dict[str, Any]]:
    """
    Extract a JSON-RPC message from a complete SSE body.

    Args:
        text: Full SSE response text
        request_id: If given, only a message with this id is returned

    Returns:
        The parsed JSON-RPC message, or None if none was found
    """
    for event in iter_sse_events(text.splitlines()):
        if event.event != "message":
            continue
        try:
            data = event.json()
        except json.JSONDecodeError:
            continue
        if not isinstance(data, dict) or "jsonrpc" not in data:
            continue
        if request_id is None or data.get("id") == request_id:
            return data
    return None
