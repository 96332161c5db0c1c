"""Exceptions raised by the MCP client."""

import re
from typing import Any, Optional


METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

_RESOURCE_METADATA_RE = re.compile(r'resource_metadata(?:_uri)?="([^"]+)"')


class MCPClientError(Exception):
    """Base exception for MCP Client errors."""
    pass


class MCPConnectionError(MCPClientError):
    """Connection to MCP Server failed."""
    pass


class MCPHTTPError(MCPConnectionError):
    """MCP Server answered with a non-success HTTP status."""

    def __init__(self, status_code: int, body: str = "", message: Optional[str] = None) -> None:
        self.status_code = status_code
        self.body = body[:500]
        if message is None:
            message = f"HTTP {status_code}: {self.body}" if self.body else f"HTTP {status_code}"
        super().__init__(message)


class MCPAuthError(MCPHTTPError):
    """Authentication failed."""

    def __init__(
        self,
        status_code: int,
        body: str = "",
        www_authenticate: Optional[str] = None
    ) -> None:
        self.www_authenticate = www_authenticate
        self.resource_metadata_uri = None
        if www_authenticate:
            match = _RESOURCE_METADATA_RE.search(www_authenticate)
            if match:
                self.resource_metadata_uri = match.group(1)
        reason = "Authentication required" if status_code == 401 else "Access denied"
        super().__init__(status_code, body, message=f"{reason} (HTTP {status_code})")

    @property
    def oauth_required(self) -> bool:
        """True when the server issued a Bearer challenge."""
        if self.resource_metadata_uri:
            return True
        return bool(self.www_authenticate and self.www_authenticate.lower().startswith("bearer"))


class MCPConnectionLostError(MCPConnectionError):
    """Event stream closed while the call was outstanding."""
    pass


class MCPProtocolError(MCPClientError):
    """Reply could not be interpreted as the expected JSON-RPC response."""
    pass


class MCPRPCError(MCPClientError):
    """Server returned a JSON-RPC error member."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)

    @property
    def is_method_not_found(self) -> bool:
        return (
            self.code == METHOD_NOT_FOUND
            or "Method not found" in self.message
            or "Unknown method" in self.message
        )


class MCPTimeoutError(MCPClientError, TimeoutError):
    """No reply arrived on the event stream in time."""
    pass


class MCPNotInitializedError(MCPClientError):
    """Operation requires a successful initialize handshake."""
    pass


class MCPInitializationError(MCPClientError):
    """The initialize handshake failed."""
    pass
