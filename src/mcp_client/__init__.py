"""MCP Client - Remote session, discovery and tool execution.

The MCP Client negotiates a session with a remote MCP server,
discovers its tools and resources, and executes tool calls over
plain HTTP or an SSE companion stream.
"""

from mcp_client.client import MCPClient
from mcp_client.discovery import DiscoveryCache, normalize_resources, normalize_tools
from mcp_client.errors import (
    MCPAuthError,
    MCPClientError,
    MCPConnectionError,
    MCPConnectionLostError,
    MCPHTTPError,
    MCPInitializationError,
    MCPNotInitializedError,
    MCPProtocolError,
    MCPRPCError,
    MCPTimeoutError,
)
from mcp_client.proxy import handle_request
from mcp_client.transport import EventSource, HttpxStreamTransport, StreamTransport

__all__ = [
    "MCPClient",
    "DiscoveryCache",
    "normalize_resources",
    "normalize_tools",
    "MCPAuthError",
    "MCPClientError",
    "MCPConnectionError",
    "MCPConnectionLostError",
    "MCPHTTPError",
    "MCPInitializationError",
    "MCPNotInitializedError",
    "MCPProtocolError",
    "MCPRPCError",
    "MCPTimeoutError",
    "handle_request",
    "EventSource",
    "HttpxStreamTransport",
    "StreamTransport",
]
