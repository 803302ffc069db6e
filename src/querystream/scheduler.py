"""Cooperative scheduling of delayed units of work on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]


class Scheduler:
    """Runs jobs as tasks, each after an optional delay.

    A job that wants to run again re-submits itself, so the delay between
    runs is explicit and every run starts from a fresh task. Exceptions that
    escape a job are logged when its task finishes.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of submitted jobs that have not finished."""
        return len(self._pending)

    def submit(self, job: Job, delay: float = 0.0, name: str | None = None) -> asyncio.Task[None]:
        """Schedule ``job`` to run after ``delay`` seconds.

        Must be called from within the running event loop.
        """
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(job, delay), name=name)
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, job: Job, delay: float) -> None:
        # Always yield at least once before the job starts
        await asyncio.sleep(delay)
        await job()

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Scheduled job {task.get_name()} failed: {exc!r}", exc_info=exc)

    async def drain(self) -> None:
        """Wait until no jobs are pending, including ones submitted meanwhile."""
        while self._pending:
            await asyncio.wait(set(self._pending))
