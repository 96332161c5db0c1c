"""Core data models for the MCP client.

This module defines the configuration records, JSON-RPC envelopes and
session state shared by the transport and session layers.
"""

from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


JSONRPC_VERSION = "2.0"

RequestId = Union[str, int]


class TransportKind(str, Enum):
    """Transport declared for a remote MCP server."""
    HTTP = "http"
    SSE = "sse"


class TransportMode(str, Enum):
    """Operating mode detected during initialization.

    DIRECT: replies are read from the POST response body.
    STREAM: replies arrive as events on a companion SSE stream.
    """
    DIRECT = "direct"
    STREAM = "stream"


class RemoteServerConfig(BaseModel):
    """Connection configuration for a remote MCP server."""
    url: str = Field(..., description="Remote MCP endpoint URL")
    transport: TransportKind = Field(default=TransportKind.HTTP)
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class OAuthToken(BaseModel):
    """OAuth credential sent as an Authorization header."""
    access_token: str
    token_type: str = "Bearer"
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None
    scope: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ApiKeyConfig(BaseModel):
    """
    API-key credential sent under a custom header.

    The header value is sent verbatim. Use `from_template` to expand an
    `{apiKey}` placeholder before constructing the client.
    """
    header_name: str = Field(..., description="Header name, e.g. X-API-Key")
    header_value: str = Field(..., description="Literal header value")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_template(
        cls,
        api_key: str,
        header_name: str = "Authorization",
        template: str = "Bearer {apiKey}"
    ) -> "ApiKeyConfig":
        """Build a config whose value is `template` with the key substituted."""
        return cls(
            header_name=header_name,
            header_value=template.replace("{apiKey}", api_key)
        )


class JsonRpcError(BaseModel):
    """Error member of a JSON-RPC response."""
    code: int
    message: str
    data: Any = None


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request. Notifications carry no id."""
    jsonrpc: str = JSONRPC_VERSION
    id: Optional[RequestId] = None
    method: str
    params: Optional[Any] = None

    @property
    def is_notification(self) -> bool:
        return self.id is None

    def to_wire(self) -> dict[str, Any]:
        """Serialize for transmission, omitting absent id and params."""
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.id is not None:
            payload["id"] = self.id
        if self.params is not None:
            payload["params"] = self.params
        return payload


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response."""
    jsonrpc: str = JSONRPC_VERSION
    id: Optional[RequestId] = None
    result: Any = None
    error: Optional[JsonRpcError] = None


class McpTool(BaseModel):
    """Tool definition as advertised by a remote MCP server."""
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class McpResource(BaseModel):
    """Resource definition as advertised by a remote MCP server."""
    uri: str
    name: str
    description: Optional[str] = None
    mime_type: Optional[str] = Field(default=None, alias="mimeType")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class SessionState(BaseModel):
    """
    Per-client protocol state.

    Created empty, filled in by a successful initialize handshake and
    kept for the lifetime of the client instance.
    """
    initialized: bool = False
    session_id: Optional[str] = None
    protocol_version: Optional[str] = None
    capabilities: dict[str, Any] = Field(default_factory=dict)
    server_info: dict[str, Any] = Field(default_factory=dict)
    mode: Optional[TransportMode] = None

    @property
    def is_direct(self) -> bool:
        return self.mode == TransportMode.DIRECT
