"""Configuration management for the MCP client.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.models import RemoteServerConfig


class ClientSettings(BaseSettings):
    """MCP client protocol and runtime configuration."""
    protocol_version: str = Field(default="2025-06-18", description="MCP protocol version offered")
    client_name: str = Field(default="mcp-remote-client")
    client_version: str = Field(default="1.0.0")

    # Timeouts
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    response_timeout: Optional[float] = Field(
        default=60.0,
        gt=0,
        description="Seconds to wait for a reply on the event stream; None waits forever"
    )

    session_header: str = Field(default="Mcp-Session-Id")

    # Logging
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="MCP_CLIENT_",
        env_file=".env",
        extra="ignore"
    )

    @property
    def client_info(self) -> dict[str, str]:
        """Client identification sent in the initialize handshake."""
        return {"name": self.client_name, "version": self.client_version}

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ClientSettings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data.get("client", data))


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_server_configs(path: str | Path) -> list[RemoteServerConfig]:
    """
    Load remote server definitions from a YAML file.

    The file holds a `servers` list of url/transport/name mappings.
    Credentials are never read from this file.

    Args:
        path: YAML file path

    Returns:
        List of server configurations (empty if the file is missing)
    """
    data = load_yaml_config(path)
    return [
        RemoteServerConfig(
            url=entry["url"],
            transport=entry.get("transport", "http"),
            name=entry.get("name")
        )
        for entry in data.get("servers", [])
    ]


@lru_cache
def get_settings() -> ClientSettings:
    """Get cached client settings."""
    config_path = os.environ.get("MCP_CLIENT_CONFIG_PATH", "config/client.yaml")
    return ClientSettings.from_yaml(config_path)
