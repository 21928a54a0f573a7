from __future__ import annotations

import logging
from typing import Optional

from ..providers.ilove_api import ILoveAPIClient, TaskSession
from ..schemas import ChainTasksInput, DownloadTaskInput
from ..workflows.transform.runner import download_kept, format_outcome, run_chain
from ..workflows.transform.store import TaskSessionStore, get_session_store
from .base import ToolSpec


logger = logging.getLogger(__name__)


async def _lookup(store: TaskSessionStore, client: ILoveAPIClient, task_id: str, server: Optional[str]) -> TaskSession:
    """Find a kept task, or rebuild a handle for one kept by another process."""
    session = await store.checkout(task_id)
    if session is not None:
        return session
    logger.info("task %s not kept by this process; resuming from caller-supplied server", task_id)
    return client.resume_session(task_id, server=server)


async def chain_tasks(inp: ChainTasksInput, client: ILoveAPIClient) -> str:
    store = get_session_store()
    parent = await _lookup(store, client, inp.parent_task, inp.server)
    outcome = await run_chain(
        client,
        parent,
        inp.next_options(),
        output=inp.output,
        keep_task=inp.keep_task or not inp.output,
        store=store,
    )
    return format_outcome(outcome, f"Task chained to {inp.next_tool}")


async def download_task(inp: DownloadTaskInput, client: ILoveAPIClient) -> str:
    store = get_session_store()
    session = await _lookup(store, client, inp.task, inp.server)
    out = await download_kept(client, session, inp.output, store=store)
    return f"Task result downloaded successfully!\nOutput: {out}"


CHAIN_TOOLS = (
    ToolSpec(
        "chain_tasks",
        "Chain multiple PDF operations together. The output of a task kept with keep_task becomes "
        "input for next_tool, avoiding re-upload. Downloads to output when given; otherwise returns "
        "a task ID that can be used for subsequent operations.",
        ChainTasksInput,
        chain_tasks,
    ),
    ToolSpec(
        "download_task",
        "Download the result of a task kept with keep_task (or produced by chain_tasks) and release it.",
        DownloadTaskInput,
        download_task,
    ),
)
