from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ...providers.ilove_api import ILoveAPIClient, TaskSession
from ...schemas import ProcessResult, TransformOptions, UploadedFile
from .store import TaskSessionStore, get_session_store


logger = logging.getLogger(__name__)


@dataclass
class TransformOutcome:
    transform: str
    session: TaskSession
    result: ProcessResult
    output: Optional[Path] = None

    @property
    def kept(self) -> bool:
        return self.output is None

    @property
    def remaining_credits(self) -> Optional[int]:
        return self.session.remaining_credits


def _with_overrides(files: Sequence[UploadedFile], options: TransformOptions) -> List[UploadedFile]:
    overrides = options.file_overrides()
    if not overrides:
        return list(files)
    return [f.model_copy(update=overrides) for f in files]


async def _finish(
    client: ILoveAPIClient,
    session: TaskSession,
    options: TransformOptions,
    *,
    output: Optional[str],
    keep_task: bool,
    store: Optional[TaskSessionStore],
) -> TransformOutcome:
    """Process an uploaded session, then either keep it or download and release it."""
    files = _with_overrides(session.files, options)
    result = await client.process(session, options.transform, files, options.payload())

    if keep_task:
        await (store or get_session_store()).put(session)
        logger.info("task kept for chaining task=%s transform=%s", session.task_id, options.transform)
        return TransformOutcome(transform=options.transform, session=session, result=result)

    if not output:
        raise ValueError("output is required unless keep_task is true")
    out = await client.download(session, output)
    await client.delete_task(session)
    return TransformOutcome(transform=options.transform, session=session, result=result, output=out)


async def run_transform(
    client: ILoveAPIClient,
    options: TransformOptions,
    inputs: Sequence[str],
    *,
    output: Optional[str] = None,
    keep_task: bool = False,
    region: Optional[str] = None,
    store: Optional[TaskSessionStore] = None,
) -> TransformOutcome:
    """Run one remote transform end to end.

    Inputs are uploaded one at a time so the backend sees them in caller order
    (merge and image-to-PDF depend on it). On failure the task is deleted
    best-effort and the original error is re-raised.
    """
    session = await client.start_task(options.transform, region)
    try:
        for ref in inputs:
            await client.upload(session, ref)
        return await _finish(client, session, options, output=output, keep_task=keep_task, store=store)
    except Exception:
        await client.delete_task(session)
        raise


async def run_chain(
    client: ILoveAPIClient,
    parent: TaskSession,
    options: TransformOptions,
    *,
    output: Optional[str] = None,
    keep_task: bool = False,
    store: Optional[TaskSessionStore] = None,
) -> TransformOutcome:
    """Feed a kept task's output into `options.transform` without re-uploading."""
    store = store or get_session_store()
    child = await client.chain(parent, options.transform)
    # The parent is chained now; keep its tombstone so it cannot be chained twice.
    await store.put(parent)
    try:
        return await _finish(client, child, options, output=output, keep_task=keep_task, store=store)
    except Exception:
        await client.delete_task(child)
        raise


async def download_kept(
    client: ILoveAPIClient,
    session: TaskSession,
    output: str,
    *,
    store: Optional[TaskSessionStore] = None,
) -> Path:
    out = await client.download(session, output)
    await client.delete_task(session)
    await (store or get_session_store()).put(session)
    return out


def format_outcome(outcome: TransformOutcome, headline: str) -> str:
    """Render the tool-level text reply for a finished transform."""
    credits = outcome.remaining_credits if outcome.remaining_credits is not None else "unknown"
    if outcome.kept:
        return (
            f"{headline} (task kept for chaining)!\n"
            f"Task ID: {outcome.session.task_id}\n"
            f"Server: {outcome.session.server}\n"
            f"Remaining credits: {credits}\n\n"
            "Next: Use chain_tasks with this task ID to apply another operation, "
            "or download_task to fetch the result."
        )
    return f"{headline} successfully!\nOutput: {outcome.output}\nRemaining credits: {credits}"
