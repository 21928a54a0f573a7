from __future__ import annotations

from typing import Any, Dict, Optional

import structlog

from . import __version__
from .tools import MCP_TOOLS, ClientFactory, call_tool

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "ilovepdf-mcp"

log = structlog.get_logger()


def _error(rpc_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}}


async def build_jsonrpc_response(
    msg: Dict[str, Any],
    *,
    client_factory: Optional[ClientFactory] = None,
) -> Optional[Dict[str, Any]]:
    """Build a JSON-RPC response for an incoming message.

    Returns:
      - dict: JSON-RPC response object when the request has an `id`
      - None: for notifications (no `id`) or methods like `initialized`

    Tool failures are successful JSON-RPC responses whose result has
    `isError: true`; only malformed requests produce JSON-RPC errors.
    """

    method = msg.get("method")
    rpc_id = msg.get("id", None)

    # Notifications (no id) do not get responses.
    expects_response = rpc_id is not None

    if not isinstance(method, str) or not method.strip():
        if not expects_response:
            return None
        return _error(rpc_id, -32600, "Invalid Request: missing method")

    try:
        if method == "initialize":
            result = {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
            }
            response: Dict[str, Any] = {"jsonrpc": "2.0", "id": rpc_id, "result": result}

        elif method in ("initialized", "notifications/initialized"):
            # Notification from client.
            return None

        elif method == "ping":
            response = {"jsonrpc": "2.0", "id": rpc_id, "result": {}}

        elif method == "tools/list":
            response = {"jsonrpc": "2.0", "id": rpc_id, "result": {"tools": MCP_TOOLS}}

        elif method == "tools/call":
            params = msg.get("params") or {}
            tool_name = params.get("name") if isinstance(params, dict) else None
            tool_args = (params.get("arguments") if isinstance(params, dict) else None) or {}

            if not isinstance(tool_name, str) or not tool_name.strip():
                return _error(rpc_id, -32602, "Invalid params: tools/call missing params.name")
            if not isinstance(tool_args, dict):
                return _error(rpc_id, -32602, "Invalid params: tools/call params.arguments must be an object")

            log.info("tools/call", tool=tool_name)
            result = await call_tool(tool_name, tool_args, client_factory=client_factory)
            response = {"jsonrpc": "2.0", "id": rpc_id, "result": result}

        else:
            response = _error(rpc_id, -32601, f"Method not found: {method}")

    except Exception as e:
        log.exception("jsonrpc handler error", method=method, error=str(e))
        response = _error(rpc_id, -32603, str(e))

    if not expects_response:
        return None
    return response
