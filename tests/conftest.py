from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import parse_qs, unquote

import httpx
import pytest

from ilovepdf_mcp.config import Settings
from ilovepdf_mcp.providers.ilove_api import CredentialContext, ILoveAPIClient, TokenCache
from ilovepdf_mcp.workflows.transform.store import get_session_store


DOC_HOST = "api.ilovepdf.test"
IMG_HOST = "api.iloveimg.test"
WORKER = "worker7.ilovepdf.test"

_TASK_FIELD_RE = re.compile(rb'name="task"\r\n\r\n([^\r]*)\r\n')
_FILENAME_RE = re.compile(rb'name="file"; filename="([^"]*)"')


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "ILOVEPDF_API_BASE_URL": f"https://{DOC_HOST}",
        "ILOVEIMG_API_BASE_URL": f"https://{IMG_HOST}",
        "ILOVEPDF_PUBLIC_KEY": None,
        "ILOVEPDF_SECRET_KEY": None,
        "ILOVEIMG_PUBLIC_KEY": None,
        "ILOVEIMG_SECRET_KEY": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.t = float(start)

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += float(seconds)


def _json_response(status: int, data: Any) -> httpx.Response:
    return httpx.Response(status, json=data)


class FakeBackend:
    """In-memory stand-in for the iLovePDF/iLoveIMG REST API, served via httpx.MockTransport."""

    def __init__(self, *, server: str = WORKER, credits: int = 250) -> None:
        self.server = server
        self.credits = credits

        self.requests: List[Tuple[str, str]] = []
        self.auth_calls: List[Dict[str, Any]] = []
        self.starts: List[Tuple[str, str, str]] = []  # (host, tool, region)
        self.uploads: List[Tuple[str, str, str]] = []  # (task, kind, name)
        self.process_bodies: List[Dict[str, Any]] = []
        self.chain_bodies: List[Dict[str, Any]] = []
        self.signature_bodies: List[Dict[str, Any]] = []

        self.tasks: Dict[str, Dict[str, Any]] = {}
        self.deleted: Set[str] = set()

        # Failure injection
        self.auth_status: Optional[int] = None
        self.start_status: Optional[int] = None
        self.process_error: Optional[Tuple[int, str]] = None

        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}-{self._seq}"

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        host = request.url.host
        path = request.url.path
        self.requests.append((method, str(request.url)))

        if host in (DOC_HOST, IMG_HOST):
            if path == "/v1/auth" and method == "POST":
                return self._auth(request)
            m = re.fullmatch(r"/v1/start/([^/]+)/([^/]+)", path)
            if m and method == "GET":
                return self._start(host, m.group(1), m.group(2))
            if path.startswith("/v1/signature"):
                return self._signature(request, path)

        if path == "/v1/task/next" and method == "POST":
            return self._chain(request)

        if host != self.server:
            return httpx.Response(404, text=f"unknown server {host}")

        if path == "/v1/upload" and method == "POST":
            return self._upload(request)
        if path == "/v1/process" and method == "POST":
            return self._process(request)
        m = re.fullmatch(r"/v1/download/([^/]+)", path)
        if m and method == "GET":
            return self._download(m.group(1))
        m = re.fullmatch(r"/v1/task/([^/]+)", path)
        if m and method == "DELETE":
            return self._delete(m.group(1))

        return httpx.Response(404, text=f"no route for {method} {path}")

    # -----------------
    # Routes
    # -----------------

    def _auth(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.auth_calls.append(body)
        if self.auth_status is not None:
            return httpx.Response(self.auth_status, text='{"error":"invalid project key"}')
        return _json_response(200, {"token": self._next("tok")})

    def _start(self, host: str, tool: str, region: str) -> httpx.Response:
        self.starts.append((host, tool, region))
        if self.start_status is not None:
            return httpx.Response(self.start_status, text='{"error":"tool not enabled"}')
        task_id = self._next("task")
        self.tasks[task_id] = {"tool": tool, "state": "started", "files": []}
        return _json_response(200, {"server": self.server, "task": task_id, "remaining_credits": self.credits})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        ctype = request.headers.get("content-type", "")
        if ctype.startswith("application/x-www-form-urlencoded"):
            form = parse_qs(request.content.decode("utf-8"))
            task_id = form["task"][0]
            kind, name = "url", form["cloud_file"][0]
        else:
            task_match = _TASK_FIELD_RE.search(request.content)
            name_match = _FILENAME_RE.search(request.content)
            if not task_match or not name_match:
                return httpx.Response(400, text="malformed multipart body")
            task_id = task_match.group(1).decode("utf-8")
            kind, name = "file", unquote(name_match.group(1).decode("utf-8"))

        task = self.tasks.get(task_id)
        if task is None or task_id in self.deleted:
            return httpx.Response(404, text="task not found")

        server_filename = self._next("srv") + ".bin"
        task["files"].append(server_filename)
        task["state"] = "uploaded"
        self.uploads.append((task_id, kind, name))
        return _json_response(200, {"server_filename": server_filename})

    def _process(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.process_bodies.append(body)
        if self.process_error is not None:
            status, text = self.process_error
            return httpx.Response(status, text=text)
        task = self.tasks.get(body.get("task"))
        if task is None or task["state"] != "uploaded":
            return httpx.Response(400, text='{"error":"no files uploaded"}')
        task["state"] = "processed"
        return _json_response(
            200, {"download_filename": "result.pdf", "output_filenumber": 1, "status": "TaskSuccess"}
        )

    def _download(self, task_id: str) -> httpx.Response:
        task = self.tasks.get(task_id)
        if task is None or task_id in self.deleted or task["state"] != "processed":
            return httpx.Response(404, text="nothing to download")
        return httpx.Response(200, content=b"%PDF-result-" + task_id.encode("utf-8"))

    def _delete(self, task_id: str) -> httpx.Response:
        if task_id not in self.tasks or task_id in self.deleted:
            return httpx.Response(404, text="task not found")
        self.deleted.add(task_id)
        return _json_response(200, {})

    def _chain(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.chain_bodies.append(body)
        parent = self.tasks.get(body.get("task"))
        if parent is None or body.get("task") in self.deleted or parent["state"] != "processed":
            return httpx.Response(404, text='{"error":"parent task not found"}')
        child_id = self._next("task")
        srv = self._next("srv") + ".pdf"
        self.tasks[child_id] = {"tool": body.get("tool"), "state": "uploaded", "files": [srv]}
        return _json_response(
            200, {"task": child_id, "server": self.server, "files": {srv: "result.pdf"}}
        )

    def _signature(self, request: httpx.Request, path: str) -> httpx.Response:
        method = request.method
        if path == "/v1/signature" and method == "POST":
            body = json.loads(request.content)
            self.signature_bodies.append(body)
            return _json_response(200, {"token_requester": "sig-token-1"})
        if path == "/v1/signature" and method == "GET":
            return _json_response(200, {"page": int(request.url.params.get("page", "1")), "items": []})
        m = re.fullmatch(r"/v1/signature/([^/]+)(/[a-z]+)?", path)
        if not m:
            return httpx.Response(404, text="no such signature route")
        token, suffix = m.group(1), m.group(2) or ""
        if suffix == "" and method == "GET":
            return _json_response(200, {"token_requester": token, "status": "pending"})
        if suffix == "/download" and method == "GET":
            return httpx.Response(200, content=b"PK-signed-" + token.encode("utf-8"))
        if suffix == "/void" and method == "PUT":
            return _json_response(200, {})
        if suffix == "/remind" and method == "POST":
            return _json_response(200, {})
        return httpx.Response(404, text="no such signature route")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token_cache(clock: FakeClock) -> TokenCache:
    return TokenCache(clock=clock)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client_factory(backend: FakeBackend, settings: Settings, token_cache: TokenCache):
    def factory(credentials: CredentialContext) -> ILoveAPIClient:
        return ILoveAPIClient(credentials, settings=settings, token_cache=token_cache, transport=backend.transport())

    return factory


@pytest.fixture
def make_client(client_factory):
    def make(backend_kind: str = "document", public_key: str = "project_public_test") -> ILoveAPIClient:
        return client_factory(CredentialContext(public_key=public_key, secret_key="secret_test", backend=backend_kind))

    return make


@pytest.fixture(autouse=True)
def _clear_session_store():
    asyncio.run(get_session_store().clear())
    yield
    asyncio.run(get_session_store().clear())


@pytest.fixture
def pdf_file(tmp_path):
    p = tmp_path / "input.pdf"
    p.write_bytes(b"%PDF-1.4\n%fake\n")
    return p
