from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, Dict, Optional

import structlog
from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from . import __version__
from .config import configure_logging
from .errors import (
    ILoveAPIError,
    MissingCredentialsError,
    SessionExpiredError,
    SessionStateError,
    UnknownToolError,
)
from .jsonrpc import SERVER_NAME, build_jsonrpc_response
from .tools import MCP_TOOL_NAMES, ClientFactory, invoke_tool


log = structlog.get_logger()


class SessionManager:
    def __init__(self) -> None:
        self._queues: Dict[str, asyncio.Queue[Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    async def get_queue(self, session_id: str) -> asyncio.Queue[Dict[str, Any]]:
        async with self._lock:
            q = self._queues.get(session_id)
            if q is None:
                q = asyncio.Queue()
                self._queues[session_id] = q
            return q

    async def get_existing_queue(self, session_id: str) -> Optional[asyncio.Queue[Dict[str, Any]]]:
        async with self._lock:
            return self._queues.get(session_id)

    async def send(self, session_id: str, message: Dict[str, Any]) -> None:
        q = await self.get_queue(session_id)
        await q.put(message)

    async def close(self, session_id: str) -> None:
        async with self._lock:
            self._queues.pop(session_id, None)


sessions = SessionManager()


def create_app(client_factory: Optional[ClientFactory] = None) -> FastAPI:
    configure_logging()

    app = FastAPI(title=SERVER_NAME, version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "healthy", "version": __version__, "tools": len(MCP_TOOL_NAMES)}

    # ------------------
    # REST wrapper endpoint
    # ------------------

    @app.post("/tools/{tool_name}")
    async def http_tool(tool_name: str, payload: Optional[Dict[str, Any]] = Body(default=None)) -> Dict[str, Any]:
        try:
            text = await invoke_tool(tool_name, payload or {}, client_factory=client_factory)
            return {"tool": tool_name, "text": text}
        except UnknownToolError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except (MissingCredentialsError, FileNotFoundError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        except (SessionStateError, SessionExpiredError) as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ILoveAPIError as e:
            log.warning("tool failed", tool=tool_name, status_code=e.status_code, error=str(e))
            raise HTTPException(status_code=502, detail=str(e))
        except Exception as e:
            log.exception("tool crashed", tool=tool_name, error=str(e))
            raise HTTPException(status_code=500, detail="Internal server error")

    # ------------------
    # MCP over SSE transport
    # ------------------

    @app.get("/sse")
    async def sse(session_id: Optional[str] = Query(default=None)):
        sid = session_id or str(uuid.uuid4())
        queue = await sessions.get_queue(sid)

        async def event_generator():
            try:
                # Tell the client where to POST messages.
                yield {"event": "endpoint", "data": f"/messages?session_id={sid}"}

                while True:
                    try:
                        msg = await asyncio.wait_for(queue.get(), timeout=15.0)
                        yield {"event": "message", "data": json.dumps(msg, ensure_ascii=False)}
                    except asyncio.TimeoutError:
                        # keep-alive
                        yield {"event": "ping", "data": "keepalive"}
            finally:
                # Client disconnected; drop the queue to avoid unbounded growth.
                await sessions.close(sid)

        return EventSourceResponse(event_generator())

    @app.post("/messages")
    async def messages(request: Request, session_id: str = Query(...)):
        try:
            payload = await request.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            return JSONResponse(
                {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}},
                status_code=200,
            )

        response = await build_jsonrpc_response(payload, client_factory=client_factory)

        # Notifications (no id) do not get JSON-RPC responses.
        if response is None:
            return JSONResponse({"status": "ok"}, status_code=200)

        # If an SSE client is connected for this session, also publish the response over SSE.
        q = await sessions.get_existing_queue(session_id)
        if q is not None:
            await sessions.send(session_id, response)

        return JSONResponse(response, status_code=200)

    return app


app = create_app()
