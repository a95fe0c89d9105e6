"""In-process job queue using asyncio.

Each submitted job gets its own runner task; inside a job, items are processed
one at a time. No external dependencies (Redis, Celery) needed.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from reportjobs.jobs.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)


class InProcessQueue(JobDispatcher):
    """Local async job queue."""

    def __init__(self, run_fn: Callable[[str], Awaitable[None]]):
        """
        run_fn: async callable(job_id) -> None
            Drives one job to a terminal status (normally JobRunner.run).
        """
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: Dict[str, asyncio.Task] = {}
        self._run_fn = run_fn
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def running_jobs(self) -> List[str]:
        return list(self._tasks)

    async def submit(self, job_id: str) -> None:
        await self._queue.put(job_id)

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _worker_loop(self) -> None:
        """Hand queued jobs to their own runner tasks."""
        while self._running:
            try:
                job_id = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            task = asyncio.create_task(self._run_fn(job_id), name=f"job-{job_id}")
            self._tasks[job_id] = task
            task.add_done_callback(lambda t, jid=job_id: self._on_done(jid, t))

    def _on_done(self, job_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Runner for job {job_id} crashed", exc_info=exc)
