from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ...errors import ChainError
from ...providers.ilove_api import TaskSession


logger = logging.getLogger(__name__)

_TERMINAL = ("chained", "downloaded", "deleted")


@dataclass
class _Entry:
    session: TaskSession
    stored_at: float


class TaskSessionStore:
    """In-memory registry of tasks kept alive for chaining.

    Sessions are keyed by task id. Finished sessions stay behind as
    tombstones until they age out, so a chain request against a task that was
    already chained or deleted fails locally instead of reaching the backend.
    Expiry of the remote task itself is checked by the client, not here.

    Thread-safety: handlers run concurrently; state is guarded with an asyncio.Lock.
    """

    def __init__(
        self,
        ttl_seconds: float = 2 * 60 * 60 + 10 * 60,
        max_sessions: int = 256,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl_seconds = float(ttl_seconds)
        self._max_sessions = int(max_sessions)
        self._clock = clock
        self._items: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    def _cleanup(self) -> None:
        """Drop entries older than the task window and keep memory bounded."""
        now = self._clock()

        expired: List[str] = [tid for tid, e in self._items.items() if now - e.stored_at > self._ttl_seconds]
        for tid in expired:
            self._items.pop(tid, None)

        if len(self._items) <= self._max_sessions:
            return
        # Remove oldest
        ordered = sorted(self._items.items(), key=lambda kv: kv[1].stored_at)
        for tid, _ in ordered[: len(self._items) - self._max_sessions]:
            self._items.pop(tid, None)

    async def put(self, session: TaskSession) -> None:
        async with self._lock:
            self._cleanup()
            prev = self._items.get(session.task_id)
            stored_at = prev.stored_at if prev is not None else self._clock()
            self._items[session.task_id] = _Entry(session=session, stored_at=stored_at)
        logger.debug("session stored task=%s state=%s", session.task_id, session.state)

    async def get(self, task_id: str) -> Optional[TaskSession]:
        async with self._lock:
            self._cleanup()
            entry = self._items.get(task_id)
            return entry.session if entry is not None else None

    async def checkout(self, task_id: str) -> Optional[TaskSession]:
        """Return the live session for `task_id`, or None if this process never kept it.

        Raises ChainError for a task that was already chained, downloaded or deleted.
        """
        session = await self.get(task_id)
        if session is not None and session.state in _TERMINAL:
            raise ChainError(f"Task {task_id} is no longer available: it was already {session.state}")
        return session

    async def discard(self, task_id: str) -> None:
        async with self._lock:
            self._items.pop(task_id, None)

    async def clear(self) -> None:
        async with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


# Module-level singleton store for local usage
STORE = TaskSessionStore()


def get_session_store() -> TaskSessionStore:
    return STORE
