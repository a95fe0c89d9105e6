"""
Job Runner

Drives one bulk job through its reports, one item at a time:
- Items are attempted strictly in input order
- A failed item is recorded and the loop moves on
- Cancellation is honoured between items, never mid-item
- Export jobs finish by zipping the rendered files into a bundle
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from reportjobs.executors.base import ItemContext, WorkExecutor
from reportjobs.jobs.models import (
    CompletedResult,
    FailedResult,
    ItemOutcome,
    ItemResult,
    JobKind,
    JobRecord,
    JobStatus,
    utcnow,
)
from reportjobs.jobs.registry import JobRegistry
from reportjobs.storage.bundles import BundleStore

logger = logging.getLogger(__name__)

_RUNNING_STAGE = {
    JobKind.BULK_UPDATE: "updating",
    JobKind.BULK_EXPORT: "generating",
}


class JobRunner:
    """Executes jobs registered in a JobRegistry.

    The runner is the only writer of a job record while it runs. Every write
    happens on the event loop between awaits, so a poll never sees a half
    recorded item.
    """

    def __init__(
        self,
        registry: JobRegistry,
        executors: Dict[JobKind, WorkExecutor],
        bundles: BundleStore,
        bundle_ttl: timedelta,
        item_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._registry = registry
        self._executors = executors
        self._bundles = bundles
        self._bundle_ttl = bundle_ttl
        self._item_timeout = item_timeout
        self._clock = clock

    async def run(self, job_id: str) -> None:
        job = self._registry.lookup(job_id)
        if job is None:
            logger.warning(f"Job {job_id} vanished before it could run")
            return
        if job.status != JobStatus.PENDING:
            logger.warning(f"Job {job_id} is {job.status.value}, not pending; skipping")
            return

        try:
            await self._drive(job)
        except asyncio.CancelledError:
            self._finish(job, JobStatus.FAILED, error="Job interrupted by service shutdown")
            self._release(job)
            raise
        except Exception as e:
            logger.exception(f"Job {job.id} failed outside item processing")
            self._finish(job, JobStatus.FAILED, error=f"{type(e).__name__}: {e}")
            self._release(job)

    async def _drive(self, job: JobRecord) -> None:
        job.status = JobStatus.IN_PROGRESS
        job.stage = _RUNNING_STAGE[job.kind]
        job.started_at = self._clock()
        logger.info(f"Job {job.id} started ({job.kind.value}, {len(job.input_ids)} item(s))")

        executor = self._executors[job.kind]

        while job.cursor < len(job.input_ids):
            if job.cancel_requested:
                self._finish(job, JobStatus.CANCELLED)
                self._release(job)
                return

            item_id = job.input_ids[job.cursor]
            job.current_item_id = item_id
            result = await self._execute_item(executor, item_id, self._item_context(job))

            outcome = ItemOutcome(
                item_id=item_id,
                display_name=job.display_name(item_id),
                result=result,
            )
            if isinstance(result, CompletedResult):
                job.completed_items.append(outcome)
            else:
                job.failed_items.append(outcome)
                logger.warning(f"[Job {job.id}] Item {item_id} failed: {result.reason}")
            job.cursor += 1

        job.current_item_id = None

        if not job.completed_items:
            self._finish(job, JobStatus.FAILED, error=f"All {len(job.failed_items)} item(s) failed")
            self._release(job)
        elif job.kind == JobKind.BULK_EXPORT:
            await self._publish_bundle(job)
        else:
            self._finish(job, JobStatus.COMPLETED)

    def _item_context(self, job: JobRecord) -> ItemContext:
        return ItemContext(
            job_id=job.id,
            kind=job.kind,
            format=job.format,
            report_type=job.report_type,
        )

    async def _execute_item(self, executor: WorkExecutor, item_id: str, context: ItemContext) -> ItemResult:
        """Run one item, turning timeouts and stray exceptions into a failed result.

        An item that overruns is abandoned through its gate and cancelled, and
        the runner waits for it to unwind before returning. The next item never
        starts while this one still holds a worker thread.
        """
        task = asyncio.ensure_future(executor.execute(item_id, context))
        try:
            done, _ = await asyncio.wait({task}, timeout=self._item_timeout)
            if not done:
                if context.gate.abandon():
                    task.cancel()
                    await asyncio.wait({task})
                    if not task.cancelled() and task.exception() is not None:
                        logger.info(f"[Job {context.job_id}] Abandoned item {item_id} raised {task.exception()!r}")
                    return FailedResult(reason=f"Timed out after {self._item_timeout:g}s")
                # Already writing; let it finish and report what it did
                await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

        try:
            result = task.result()
        except Exception as e:
            logger.warning(f"[Job {context.job_id}] Executor raised on {item_id}", exc_info=True)
            return FailedResult(reason=str(e) or type(e).__name__)

        if not isinstance(result, (CompletedResult, FailedResult)):
            return FailedResult(reason="Executor returned no result")
        return result

    async def _publish_bundle(self, job: JobRecord) -> None:
        job.stage = "bundling"
        refs = [
            o.result.artifact_ref
            for o in job.completed_items
            if isinstance(o.result, CompletedResult) and o.result.artifact_ref
        ]
        bundle_name = f"reports-{job.report_type.value}-{job.format.value}-{job.id[:8]}.zip"

        loop = asyncio.get_running_loop()
        bundle = await loop.run_in_executor(
            None, self._bundles.assemble, job.id, refs, bundle_name
        )

        now = self._clock()
        job.bundle_ref = bundle.path
        job.bundle_filename = bundle.filename
        job.bundle_size_bytes = bundle.size_bytes
        job.ready_at = now
        job.expires_at = now + self._bundle_ttl
        job.status = JobStatus.READY
        job.stage = JobStatus.READY.value
        job.finished_at = now
        logger.info(
            f"Job {job.id} ready: {len(job.completed_items)} exported, "
            f"{len(job.failed_items)} failed, expires {job.expires_at.isoformat()}"
        )

    def _finish(self, job: JobRecord, status: JobStatus, error: Optional[str] = None) -> None:
        if job.is_terminal:
            return
        job.status = status
        job.stage = status.value
        job.current_item_id = None
        job.error = error
        job.finished_at = self._clock()
        logger.info(
            f"Job {job.id} {status.value}: {len(job.completed_items)} completed, "
            f"{len(job.failed_items)} failed of {len(job.input_ids)}"
        )

    def _release(self, job: JobRecord) -> None:
        if job.kind == JobKind.BULK_EXPORT:
            self._bundles.release(job.id)
