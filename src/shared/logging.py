"""Structured logging for the MCP client.

Uses structlog. Credentials and session ids never reach the output in
full: the `redact_secrets` processor shortens any of the known secret
keys to a short prefix before rendering.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any, MutableMapping, Optional

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from shared.config import ClientSettings


SECRET_KEYS = frozenset({
    "session_id",
    "access_token",
    "refresh_token",
    "authorization",
    "api_key",
})


def redact(value: Optional[str], keep: int = 8) -> Optional[str]:
    """Shorten a session id or token to a loggable prefix."""
    if not value:
        return value
    if value.endswith("...") and len(value) <= keep + 3:
        return value
    return f"{value[:keep]}..."


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor that shortens secret-bearing keys in the event dict."""
    for key in SECRET_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = redact(value)
    return event_dict


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog for the client.

    Output goes to stderr so stdout stays free for JSON-RPC traffic when
    the client runs behind a stdio gateway.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines instead of the colored console format
    """
    level = getattr(logging, log_level.upper())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # httpx logs every request at INFO
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def configure_from_settings(settings: "ClientSettings") -> None:
    """Apply the `log_level` and `json_logs` client settings."""
    setup_logging(settings.log_level, json_output=settings.json_logs)


def get_logger(name: Optional[str] = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a logger, optionally with context already bound.

    Args:
        name: Logger name (typically module name)
        **initial_context: Context values bound to every event

    Returns:
        A bound structlog logger
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
