"""Request header composition.

Every outbound request carries the configured credential and, once the
server has assigned one, the session id.
"""

from typing import Optional

from shared.models import ApiKeyConfig, OAuthToken


DEFAULT_SESSION_HEADER = "Mcp-Session-Id"


def compose_headers(
    oauth_token: Optional[OAuthToken] = None,
    api_key: Optional[ApiKeyConfig] = None,
    session_id: Optional[str] = None,
    *,
    session_header: str = DEFAULT_SESSION_HEADER,
    content_type: bool = True
) -> dict[str, str]:
    """
    Build the header set for an outbound request.

    OAuth takes precedence over an API key; at most one credential
    header is emitted.

    Args:
        oauth_token: OAuth credential, sent as `Authorization`
        api_key: API-key credential, sent verbatim under its own header name
        session_id: Server-assigned session id
        session_header: Header name carrying the session id
        content_type: Add JSON content negotiation headers (POST bodies)

    Returns:
        Header mapping
    """
    headers: dict[str, str] = {}

    if content_type:
        headers["Content-Type"] = "application/json"
        headers["Accept"] = "application/json, text/event-stream"

    if oauth_token is not None:
        headers["Authorization"] = f"{oauth_token.token_type} {oauth_token.access_token}"
    elif api_key is not None:
        headers[api_key.header_name] = api_key.header_value

    if session_id:
        headers[session_header] = session_id

    return headers
