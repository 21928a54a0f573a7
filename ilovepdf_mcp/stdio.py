from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Dict, Optional, Set

import structlog

from .config import configure_logging
from .jsonrpc import build_jsonrpc_response
from .tools import ClientFactory


log = structlog.get_logger()


async def _stdin_reader() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader


class _StdoutWriter:
    """Line writer over sys.stdout; stdout carries protocol frames only."""

    def write(self, data: bytes) -> None:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()

    async def drain(self) -> None:
        return None


async def serve_stdio(
    reader: Optional[asyncio.StreamReader] = None,
    writer: Any = None,
    *,
    client_factory: Optional[ClientFactory] = None,
) -> None:
    """Serve newline-delimited JSON-RPC until the reader hits EOF.

    Each request runs as its own task, so a slow tool call does not block
    pings or other calls. Responses may therefore be written out of order.
    """
    if reader is None:
        reader = await _stdin_reader()
    if writer is None:
        writer = _StdoutWriter()
    write_lock = asyncio.Lock()
    pending: Set[asyncio.Task] = set()

    async def send(message: Dict[str, Any]) -> None:
        line = json.dumps(message, ensure_ascii=False) + "\n"
        async with write_lock:
            writer.write(line.encode("utf-8"))
            await writer.drain()

    async def handle(msg: Dict[str, Any]) -> None:
        response = await build_jsonrpc_response(msg, client_factory=client_factory)
        if response is not None:
            await send(response)

    log.info("stdio transport ready")
    while True:
        raw = await reader.readline()
        if not raw:
            break
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except ValueError as e:
            await send({"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": f"Parse error: {e}"}})
            continue
        if not isinstance(msg, dict):
            await send({"jsonrpc": "2.0", "id": None, "error": {"code": -32600, "message": "Invalid Request"}})
            continue

        task = asyncio.create_task(handle(msg))
        pending.add(task)
        task.add_done_callback(pending.discard)

    if pending:
        await asyncio.gather(*pending)
    log.info("stdio transport closed")


def main() -> None:
    configure_logging(stream=sys.stderr)
    asyncio.run(serve_stdio())
