from __future__ import annotations

import logging
import posixpath
import time
import urllib.parse
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import Settings, get_settings
from ..errors import (
    AuthenticationError,
    ChainError,
    DownloadError,
    ILoveAPIError,
    ProcessError,
    SessionExpiredError,
    SessionStateError,
    SignatureError,
    TaskStartError,
    UploadError,
)
from ..schemas import ChainedTask, ProcessResult, TaskInfo, UploadedFile


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

BackendKind = Literal["document", "image"]
SessionState = Literal["started", "uploaded", "processed_live", "chained", "downloaded", "deleted"]
Clock = Callable[[], float]
ErrorFactory = Callable[..., ILoveAPIError]


def is_remote_reference(ref: str) -> bool:
    """True when an input reference should be fetched by the backend rather than uploaded."""
    return (ref or "").strip().lower().startswith(("http://", "https://"))


def _display_name(ref: str) -> str:
    if is_remote_reference(ref):
        name = posixpath.basename(urllib.parse.urlparse(ref.strip()).path)
        return urllib.parse.unquote(name) or "download"
    return Path(ref).name


# -------------------------
# Credentials + token cache
# -------------------------


@dataclass(frozen=True)
class CredentialContext:
    """A key pair routed to one backend. Hashable; used as the token cache key."""

    public_key: str
    secret_key: str = field(repr=False)
    backend: BackendKind = "document"


@dataclass(frozen=True)
class CachedToken:
    value: str = field(repr=False)
    expires_at: float


class TokenCache:
    """Process-local bearer tokens, one entry per credential context.

    Refreshes race last-writer-wins; tokens for the same context are interchangeable.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._items: Dict[CredentialContext, CachedToken] = {}

    def now(self) -> float:
        return float(self._clock())

    def get(self, credentials: CredentialContext) -> Optional[str]:
        entry = self._items.get(credentials)
        if entry is None:
            return None
        if self.now() >= entry.expires_at:
            self._items.pop(credentials, None)
            return None
        return entry.value

    def put(self, credentials: CredentialContext, value: str, *, ttl_s: float) -> CachedToken:
        entry = CachedToken(value=value, expires_at=self.now() + float(ttl_s))
        self._items[credentials] = entry
        return entry

    def invalidate(self, credentials: CredentialContext) -> None:
        self._items.pop(credentials, None)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


# -------------------------
# Task session
# -------------------------


@dataclass
class TaskSession:
    """Handle for one remote task.

    The server host travels inside the handle; client calls take the session,
    never a host, so every request for a task reaches the shard that owns it.
    """

    task_id: str
    server: str
    transform: str
    backend: BackendKind
    remaining_credits: Optional[int]
    created_at: float
    expires_at: float
    state: SessionState = "started"
    files: List[UploadedFile] = field(default_factory=list)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


# -------------------------
# Client
# -------------------------


class ILoveAPIClient:
    """Task-lifecycle client for the iLovePDF (document) and iLoveIMG (image) REST APIs.

    One instance per credential context. Use as an async context manager, or
    call `aclose()` when done. Nothing is retried: every failed step raises
    the error type of that step.
    """

    def __init__(
        self,
        credentials: CredentialContext,
        *,
        settings: Optional[Settings] = None,
        token_cache: Optional[TokenCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.credentials = credentials
        self.settings = settings or get_settings()
        self._tokens = token_cache if token_cache is not None else get_token_cache()

        if credentials.backend == "image":
            self.base_url = self.settings.image_api_base_url
        else:
            self.base_url = self.settings.document_api_base_url

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.http_timeout_s),
            verify=self.settings.ssl_verify,
            follow_redirects=True,
            trust_env=True,
            transport=transport,
        )

    async def __aenter__(self) -> "ILoveAPIClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def now(self) -> float:
        return self._tokens.now()

    # -------------------------
    # HTTP plumbing
    # -------------------------

    def _server_url(self, session: TaskSession, path: str) -> str:
        server = (session.server or "").strip().rstrip("/")
        if not server:
            raise SessionStateError(
                f"Task {session.task_id} has no server; pass the server reported when the task was started"
            )
        if server.startswith(("http://", "https://")):
            return f"{server}{path}"
        return f"https://{server}{path}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        error: ErrorFactory,
        step: str,
        auth: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        headers: Dict[str, str] = dict(kwargs.pop("headers", None) or {})
        if auth:
            headers["Authorization"] = f"Bearer {await self.get_token()}"

        try:
            resp = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise error(f"{step} failed: {e}") from e

        if not resp.is_success:
            body = resp.text or ""
            msg = f"{step} failed: {resp.status_code}"
            if body.strip():
                msg += f" - {body.strip()}"
            raise error(msg, status_code=resp.status_code, body=body)
        return resp

    @staticmethod
    def _json(resp: httpx.Response, error: ErrorFactory, step: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            snippet = (resp.text or "")[:800]
            raise error(
                f"{step} returned non-JSON response: {e}; body={snippet}",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    def _parse(self, resp: httpx.Response, schema: Type[T], error: ErrorFactory, step: str) -> T:
        data = self._json(resp, error, step)
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise error(
                f"{step} returned an unexpected response: {e}; data={str(data)[:800]}",
                status_code=resp.status_code,
                body=resp.text,
            ) from e

    def _require_state(self, session: TaskSession, allowed: Sequence[SessionState], action: str, error: ErrorFactory = SessionStateError) -> None:
        if session.backend != self.credentials.backend:
            raise error(f"Cannot {action} task {session.task_id}: it belongs to the {session.backend} backend")
        if session.state not in allowed:
            raise error(f"Cannot {action} task {session.task_id}: task is {session.state}")
        if session.is_expired(self.now()):
            raise SessionExpiredError(
                f"Task {session.task_id} has expired (tasks live about 2 hours); session expired, restart the chain"
            )

    def _new_session(
        self,
        *,
        task_id: str,
        server: str,
        transform: str,
        remaining_credits: Optional[int],
        expires_in: Optional[float] = None,
        state: SessionState = "started",
        files: Optional[List[UploadedFile]] = None,
    ) -> TaskSession:
        now = self.now()
        ttl = float(expires_in) if expires_in and expires_in > 0 else float(self.settings.task_expiry_s)
        return TaskSession(
            task_id=task_id,
            server=server,
            transform=transform,
            backend=self.credentials.backend,
            remaining_credits=remaining_credits,
            created_at=now,
            expires_at=now + ttl,
            state=state,
            files=list(files or []),
        )

    # -------------------------
    # Auth
    # -------------------------

    async def get_token(self) -> str:
        cached = self._tokens.get(self.credentials)
        if cached is not None:
            return cached

        resp = await self._request(
            "POST",
            f"{self.base_url}/v1/auth",
            error=AuthenticationError,
            step="Auth",
            auth=False,
            json={"public_key": self.credentials.public_key},
        )
        data = self._json(resp, AuthenticationError, "Auth")
        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token.strip():
            raise AuthenticationError("Auth failed: response did not include a token", status_code=resp.status_code)

        ttl = float(self.settings.token_validity_s) - float(self.settings.token_safety_margin_s)
        self._tokens.put(self.credentials, token, ttl_s=ttl)
        logger.info("authenticated backend=%s ttl_s=%s", self.credentials.backend, int(ttl))
        return token

    # -------------------------
    # Task lifecycle
    # -------------------------

    async def start_task(self, transform: str, region: Optional[str] = None) -> TaskSession:
        region = (region or self.settings.default_region).strip().lower()
        if self.credentials.backend == "image":
            # The image backend serves a single region.
            region = self.settings.image_region

        err = partial(TaskStartError, transform=transform)
        step = f"Start task '{transform}'"
        resp = await self._request("GET", f"{self.base_url}/v1/start/{transform}/{region}", error=err, step=step)
        info = self._parse(resp, TaskInfo, err, step)

        session = self._new_session(
            task_id=info.task,
            server=info.server,
            transform=transform,
            remaining_credits=info.remaining_credits,
            expires_in=info.expires_in,
        )
        logger.info(
            "task started task=%s transform=%s server=%s region=%s remaining_credits=%s",
            session.task_id,
            transform,
            session.server,
            region,
            session.remaining_credits,
        )
        return session

    async def upload_file(self, session: TaskSession, path: str) -> UploadedFile:
        self._require_state(session, ("started", "uploaded"), "upload to")
        p = Path(path).expanduser()
        if not p.is_file():
            raise FileNotFoundError(f"Input file not found: {path}")

        with p.open("rb") as fh:
            resp = await self._request(
                "POST",
                self._server_url(session, "/v1/upload"),
                error=UploadError,
                step="Upload",
                data={"task": session.task_id},
                files={"file": (p.name, fh)},
            )
        return self._attach(session, resp, p.name)

    async def upload_url(self, session: TaskSession, url: str) -> UploadedFile:
        self._require_state(session, ("started", "uploaded"), "upload to")
        resp = await self._request(
            "POST",
            self._server_url(session, "/v1/upload"),
            error=UploadError,
            step="Upload",
            data={"task": session.task_id, "cloud_file": url},
        )
        return self._attach(session, resp, _display_name(url))

    async def upload(self, session: TaskSession, ref: str) -> UploadedFile:
        """Upload a local path, or have the backend fetch an http(s) URL."""
        if is_remote_reference(ref):
            return await self.upload_url(session, ref.strip())
        return await self.upload_file(session, ref)

    def _attach(self, session: TaskSession, resp: httpx.Response, display_name: str) -> UploadedFile:
        uploaded = self._parse(resp, UploadedFile, UploadError, "Upload")
        ref = uploaded.model_copy(update={"filename": display_name})
        session.files.append(ref)
        session.state = "uploaded"
        logger.debug("uploaded task=%s file=%s server_filename=%s", session.task_id, display_name, ref.server_filename)
        return ref

    async def process(
        self,
        session: TaskSession,
        transform: Optional[str],
        files: Sequence[UploadedFile],
        options: Optional[Dict[str, Any]] = None,
    ) -> ProcessResult:
        self._require_state(session, ("uploaded",), "process")
        if not files:
            raise SessionStateError(f"Cannot process task {session.task_id}: no files")

        tool = transform or session.transform
        body: Dict[str, Any] = dict(options or {})
        body.update(
            {
                "task": session.task_id,
                "tool": tool,
                "files": [f.model_dump(exclude_none=True) for f in files],
            }
        )
        resp = await self._request(
            "POST",
            self._server_url(session, "/v1/process"),
            error=ProcessError,
            step="Process",
            json=body,
        )
        result = self._parse(resp, ProcessResult, ProcessError, "Process")
        session.state = "processed_live"
        logger.info(
            "processed task=%s tool=%s files=%s output_files=%s status=%s",
            session.task_id,
            tool,
            len(files),
            result.output_filenumber,
            result.status,
        )
        return result

    async def download(self, session: TaskSession, output_path: str) -> Path:
        self._require_state(session, ("processed_live",), "download")
        resp = await self._request(
            "GET",
            self._server_url(session, f"/v1/download/{session.task_id}"),
            error=DownloadError,
            step="Download",
        )
        out = Path(output_path).expanduser()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(resp.content)
        session.state = "downloaded"
        logger.info("downloaded task=%s bytes=%s path=%s", session.task_id, len(resp.content), out)
        return out

    async def delete_task(self, session: TaskSession) -> None:
        """Release a task. Best-effort: failures are logged, never raised."""
        if session.state == "deleted":
            return
        try:
            await self._request(
                "DELETE",
                self._server_url(session, f"/v1/task/{session.task_id}"),
                error=ILoveAPIError,
                step="Delete task",
            )
        except ILoveAPIError as e:
            logger.warning("delete task %s failed (ignored): %s", session.task_id, e)
        session.state = "deleted"

    async def chain(self, parent: TaskSession, next_transform: str) -> TaskSession:
        """Bind a live parent task's output to a new task for `next_transform`.

        Only rebinds inputs; the caller still has to `process` the returned session.
        """
        self._require_state(parent, ("processed_live",), "chain", error=ChainError)

        if parent.server:
            url = self._server_url(parent, "/v1/task/next")
        else:
            url = f"{self.base_url}/v1/task/next"

        resp = await self._request(
            "POST",
            url,
            error=ChainError,
            step="Chain",
            json={"task": parent.task_id, "tool": next_transform},
        )
        chained = self._parse(resp, ChainedTask, ChainError, "Chain")
        if not chained.files:
            raise ChainError(f"Chain from task {parent.task_id} returned no files to process", status_code=resp.status_code)

        files = [f if f.filename else f.model_copy(update={"filename": f.server_filename}) for f in chained.files]
        session = self._new_session(
            task_id=chained.task,
            server=chained.server or parent.server,
            transform=next_transform,
            remaining_credits=chained.remaining_credits if chained.remaining_credits is not None else parent.remaining_credits,
            state="uploaded",
            files=files,
        )
        parent.state = "chained"
        logger.info(
            "chained parent=%s child=%s next=%s files=%s", parent.task_id, session.task_id, next_transform, len(files)
        )
        return session

    def resume_session(
        self,
        task_id: str,
        *,
        server: Optional[str] = None,
        transform: str = "",
    ) -> TaskSession:
        """Rebuild a handle for a processed task kept alive by an earlier call."""
        return self._new_session(
            task_id=task_id,
            server=(server or "").strip(),
            transform=transform,
            remaining_credits=None,
            state="processed_live",
        )

    async def get_remaining_credits(self) -> Optional[int]:
        """Read the credit balance by starting a throwaway task.

        There is no read-only quota endpoint; this costs a task slot, so do not poll it.
        """
        probe = "compressimage" if self.credentials.backend == "image" else "compress"
        session = await self.start_task(probe)
        try:
            return session.remaining_credits
        finally:
            await self.delete_task(session)

    # -------------------------
    # Signatures
    # -------------------------

    def _signature_url(self, token: Optional[str] = None, suffix: str = "") -> str:
        url = f"{self.base_url}/v1/signature"
        if token is not None:
            url += "/" + urllib.parse.quote(token, safe="")
        return url + suffix

    async def create_signature(self, session: TaskSession, request: Dict[str, Any]) -> str:
        self._require_state(session, ("uploaded",), "request signatures for")
        body = dict(request)
        body["task"] = session.task_id
        body.setdefault("files", [f.model_dump(exclude_none=True) for f in session.files])

        resp = await self._request(
            "POST", self._signature_url(), error=SignatureError, step="Create signature", json=body
        )
        data = self._json(resp, SignatureError, "Create signature")
        token = None
        if isinstance(data, dict):
            token = data.get("token_requester") or data.get("token")
        if not isinstance(token, str) or not token:
            raise SignatureError(
                "Create signature returned no token", status_code=resp.status_code, body=resp.text
            )
        session.state = "processed_live"
        logger.info("signature requested task=%s signers=%s", session.task_id, len(body.get("signers") or []))
        return token

    async def list_signatures(self, *, page: int = 1, status: Optional[str] = None) -> Any:
        params: Dict[str, Any] = {"page": page}
        if status:
            params["status"] = status
        resp = await self._request(
            "GET", self._signature_url(), error=SignatureError, step="List signatures", params=params
        )
        return self._json(resp, SignatureError, "List signatures")

    async def get_signature_status(self, token: str) -> Any:
        resp = await self._request(
            "GET", self._signature_url(token), error=SignatureError, step="Get signature status"
        )
        return self._json(resp, SignatureError, "Get signature status")

    async def download_signed_files(self, token: str, output_path: str) -> Path:
        resp = await self._request(
            "GET", self._signature_url(token, "/download"), error=SignatureError, step="Download signed files"
        )
        out = Path(output_path).expanduser()
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(resp.content)
        return out

    async def void_signature(self, token: str) -> None:
        await self._request("PUT", self._signature_url(token, "/void"), error=SignatureError, step="Void signature")

    async def send_signature_reminder(self, token: str) -> None:
        await self._request(
            "POST", self._signature_url(token, "/remind"), error=SignatureError, step="Send signature reminder"
        )


# -------------------------
# Process-wide token cache + client factory
# -------------------------


_TOKEN_CACHE = TokenCache()


def get_token_cache() -> TokenCache:
    return _TOKEN_CACHE


def get_client(credentials: CredentialContext) -> ILoveAPIClient:
    """Build a client bound to the process-wide token cache."""
    return ILoveAPIClient(credentials, token_cache=_TOKEN_CACHE)
