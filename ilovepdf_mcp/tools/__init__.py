"""Tool package for the iLovePDF MCP server.

This module is the single registry the transports dispatch through:
- MCP_TOOLS / MCP_TOOL_NAMES for tools/list
- invoke_tool() for the REST wrapper (raises)
- call_tool() for MCP tools/call (never raises; failures become isError results)
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..errors import ILoveAPIError, UnknownToolError
from ..providers.ilove_api import CredentialContext, ILoveAPIClient, get_client
from .base import ToolSpec
from .chain import CHAIN_TOOLS
from .credentials import resolve_credentials
from .image import IMAGE_TOOLS
from .pdf import PDF_TOOLS
from .signature import SIGNATURE_TOOLS
from .utility import UTILITY_TOOLS


logger = logging.getLogger(__name__)

ClientFactory = Callable[[CredentialContext], ILoveAPIClient]

TOOLS = PDF_TOOLS + IMAGE_TOOLS + SIGNATURE_TOOLS + CHAIN_TOOLS + UTILITY_TOOLS
TOOLS_BY_NAME: Dict[str, ToolSpec] = {t.name: t for t in TOOLS}

# Canonical list of MCP tool names exposed by this server.
MCP_TOOL_NAMES = tuple(t.name for t in TOOLS)

MCP_TOOLS = [t.descriptor() for t in TOOLS]


class InvalidArgumentsError(ValueError):
    pass


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


async def invoke_tool(
    name: str,
    arguments: Dict[str, Any],
    *,
    client_factory: Optional[ClientFactory] = None,
    settings: Optional[Settings] = None,
) -> str:
    """Run one tool call and return its text reply.

    Order: tool lookup, credential resolution, argument validation, then the
    remote workflow. Nothing touches the network before all three pass.
    """
    tool = TOOLS_BY_NAME.get(name)
    if tool is None:
        raise UnknownToolError(f"Unknown tool: {name}. Available: {list(MCP_TOOL_NAMES)}")

    credentials = resolve_credentials(arguments, tool.backend, settings or get_settings())

    try:
        inp = tool.input_model.model_validate(arguments)
    except ValidationError as e:
        raise InvalidArgumentsError(f"Invalid arguments for {name}: {_format_validation_error(e)}") from e

    factory = client_factory or get_client
    async with factory(credentials) as client:
        return await tool.handler(inp, client)


def tool_result(text: str, *, is_error: bool = False) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


async def call_tool(
    name: str,
    arguments: Dict[str, Any],
    *,
    client_factory: Optional[ClientFactory] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """MCP tools/call: every failure is reported as one `Error: ...` text result."""
    try:
        text = await invoke_tool(name, arguments, client_factory=client_factory, settings=settings)
    except (ILoveAPIError, ValueError, OSError) as e:
        logger.warning("tool %s failed: %s", name, e)
        return tool_result(f"Error: {e}", is_error=True)
    except Exception as e:
        logger.exception("tool %s crashed", name)
        return tool_result(f"Error: {e}", is_error=True)
    return tool_result(text)


__all__ = [
    "TOOLS",
    "TOOLS_BY_NAME",
    "MCP_TOOLS",
    "MCP_TOOL_NAMES",
    "ClientFactory",
    "InvalidArgumentsError",
    "ToolSpec",
    "call_tool",
    "invoke_tool",
    "resolve_credentials",
    "tool_result",
]
