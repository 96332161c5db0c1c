"""JSON-RPC request handling on top of an MCP Client.

Lets a gateway expose a connected remote server as its own JSON-RPC
endpoint: incoming requests are answered from the client's cache or
forwarded through it.
"""

from typing import Any, Optional

from shared.logging import get_logger
from shared.models import JSONRPC_VERSION
from mcp_client.client import MCPClient
from mcp_client.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_NOT_FOUND,
    MCPClientError,
    MCPRPCError,
)

logger = get_logger(__name__)


def _result(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


async def handle_request(client: MCPClient, request: dict[str, Any]) -> Optional[dict[str, Any]]:
    """
    Answer a JSON-RPC request using `client`.

    Notifications (requests without an id) are executed but produce no
    response.

    Args:
        client: Remote server client
        request: Incoming JSON-RPC request

    Returns:
        JSON-RPC response, or None for notifications
    """
    request_id = request.get("id")
    is_notification = request_id is None
    method = request.get("method")
    params = request.get("params")

    logger.debug("Handling proxied request", method=method, request_id=request_id)

    try:
        if method == "initialize":
            await client.initialize()
            session = client.session
            response = _result(request_id, {
                "protocolVersion": session.protocol_version or client.settings.protocol_version,
                "capabilities": session.capabilities,
                "serverInfo": session.server_info or client.settings.client_info,
            })
        elif method == "tools/list":
            response = _result(request_id, {"tools": await client.list_tools()})
        elif method == "resources/list":
            response = _result(request_id, {"resources": await client.list_resources()})
        elif method == "tools/call":
            if not isinstance(params, dict) or not isinstance(params.get("name"), str):
                response = _error(request_id, INVALID_PARAMS, "Invalid params for tools/call")
            else:
                result = await client.call_tool(params["name"], params.get("arguments"))
                response = _result(request_id, result)
        elif method == "resources/read":
            if not isinstance(params, dict) or not isinstance(params.get("uri"), str):
                response = _error(request_id, INVALID_PARAMS, "Invalid params for resources/read")
            else:
                response = _result(request_id, await client.read_resource(params["uri"]))
        else:
            response = _error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")
    except MCPRPCError as e:
        response = _error(request_id, e.code, e.message, e.data)
    except MCPClientError as e:
        logger.warning("Proxied request failed", method=method, error=str(e))
        response = _error(request_id, INTERNAL_ERROR, str(e))

    if is_notification:
        return None
    return response
