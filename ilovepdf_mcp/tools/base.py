from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Type

from pydantic import BaseModel

from ..providers.ilove_api import BackendKind, ILoveAPIClient
from ..schemas import MultiFileArgs, TransformOptions, tool_input_schema
from ..workflows.transform.runner import format_outcome, run_transform

Handler = Callable[[Any, ILoveAPIClient], Awaitable[str]]


@dataclass(frozen=True)
class ToolSpec:
    """One MCP tool: its advertised schema, its handler and the backend it talks to."""

    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Handler
    backend: BackendKind = "document"

    def descriptor(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": tool_input_schema(self.input_model),
        }


def input_refs(inp: Any) -> List[str]:
    if isinstance(inp, MultiFileArgs):
        return list(inp.files)
    return [inp.file]


def transform_tool(
    name: str,
    description: str,
    input_model: Type[TransformOptions],
    headline: str,
    *,
    backend: BackendKind = "document",
) -> ToolSpec:
    """Build a tool that runs the standard start/upload/process/download/delete sequence.

    The input model inherits the transform's options model, so the validated
    input is itself the option set handed to the runner.
    """

    async def handler(inp: Any, client: ILoveAPIClient) -> str:
        outcome = await run_transform(
            client,
            inp,
            input_refs(inp),
            output=inp.output,
            keep_task=bool(getattr(inp, "keep_task", False)),
        )
        return format_outcome(outcome, headline)

    handler.__name__ = name
    return ToolSpec(name=name, description=description, input_model=input_model, handler=handler, backend=backend)
