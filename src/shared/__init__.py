"""Shared utilities and data models for the MCP client."""

from shared.models import (
    ApiKeyConfig,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    McpResource,
    McpTool,
    OAuthToken,
    RemoteServerConfig,
    SessionState,
    TransportKind,
    TransportMode,
)
from shared.config import ClientSettings, get_settings, load_server_configs
from shared.logging import configure_from_settings, get_logger, setup_logging

__all__ = [
    "ApiKeyConfig",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "McpResource",
    "McpTool",
    "OAuthToken",
    "RemoteServerConfig",
    "SessionState",
    "TransportKind",
    "TransportMode",
    "ClientSettings",
    "get_settings",
    "load_server_configs",
    "get_logger",
    "configure_from_settings",
    "setup_logging",
]
