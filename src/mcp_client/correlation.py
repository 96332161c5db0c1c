"""Request/response correlation for stream-correlated mode.

Each outstanding call owns one future in the `PendingCallTable`, keyed
by its JSON-RPC id. Replies arriving on the event stream resolve the
matching future; a closed stream rejects all of them.
"""

import asyncio
import itertools
from typing import Any

from pydantic import ValidationError

from shared.logging import get_logger
from shared.models import JsonRpcResponse, RequestId
from mcp_client.errors import MCPProtocolError, MCPRPCError

logger = get_logger(__name__)


class RequestIdAllocator:
    """Monotonic JSON-RPC id source. Ids start at 1 and are never reused."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def next(self) -> int:
        return next(self._counter)


class PendingCallTable:
    """
    Waiters for calls awaiting a reply on the event stream.

    Owned by a single event loop; entries are removed exactly once, by
    `dispatch`, `discard` or `reject_all`.
    """

    def __init__(self) -> None:
        self._waiters: dict[RequestId, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._waiters)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._waiters

    def register(self, request_id: RequestId) -> asyncio.Future:
        """
        Create the waiter for a request about to be transmitted.

        Raises:
            ValueError: If a waiter for this id is already pending
        """
        if request_id in self._waiters:
            raise ValueError(f"Request id {request_id!r} is already pending")

        future = asyncio.get_running_loop().create_future()
        self._waiters[request_id] = future
        return future

    def dispatch(self, message: Any) -> bool:
        """
        Resolve the waiter matching a stream message.

        Messages with no pending waiter are ignored.

        Returns:
            True if a waiter was resolved
        """
        if not isinstance(message, dict):
            return False

        request_id = message.get("id")
        if request_id is None:
            logger.debug("Ignoring server notification", method=message.get("method"))
            return False

        future = self._waiters.pop(request_id, None)
        if future is None:
            logger.debug("Ignoring unmatched message", request_id=request_id)
            return False

        if not future.done():
            future.set_result(message)
        return True

    def discard(self, request_id: RequestId) -> None:
        """Remove a waiter without resolving it."""
        future = self._waiters.pop(request_id, None)
        if future is not None and not future.done():
            future.cancel()

    def reject_all(self, exc: BaseException) -> int:
        """
        Fail every pending waiter and clear the table.

        Returns:
            Number of waiters rejected
        """
        waiters, self._waiters = self._waiters, {}
        for future in waiters.values():
            if not future.done():
                future.set_exception(exc)
        if waiters:
            logger.warning("Rejected pending calls", count=len(waiters), error=str(exc))
        return len(waiters)


def unwrap_response(message: dict[str, Any]) -> Any:
    """
    Return the result of a JSON-RPC response.

    A missing result with no error counts as an empty successful result.

    Raises:
        MCPProtocolError: If the message is not a well-formed response
        MCPRPCError: If the response carries an error member
    """
    try:
        response = JsonRpcResponse.model_validate(message)
    except ValidationError as e:
        raise MCPProtocolError(f"Malformed JSON-RPC response: {e}") from e

    if response.error is not None:
        raise MCPRPCError(
            code=response.error.code,
            message=response.error.message,
            data=response.error.data
        )

    return {} if response.result is None else response.result
