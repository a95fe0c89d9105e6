"""Retention sweeper: expires old export bundles and forgets old jobs."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from reportjobs.jobs.models import JobKind, JobStatus, utcnow
from reportjobs.jobs.registry import JobRegistry
from reportjobs.storage.bundles import BundleStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired: List[str] = field(default_factory=list)
    evicted: List[str] = field(default_factory=list)
    orphans_removed: int = 0


class RetentionSweeper:
    """Periodic, idempotent cleanup pass over the registry and export storage."""

    def __init__(
        self,
        registry: JobRegistry,
        bundles: BundleStore,
        interval_seconds: float,
        record_retention: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._registry = registry
        self._bundles = bundles
        self._interval = interval_seconds
        self._record_retention = record_retention
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def sweep_once(self) -> SweepResult:
        now = self._clock()
        result = SweepResult()

        for job in self._registry.records(JobKind.BULK_EXPORT):
            if job.status != JobStatus.READY or not job.bundle_expired(now):
                continue
            self._bundles.release(job.id)
            job.bundle_ref = None
            job.status = JobStatus.EXPIRED
            job.stage = JobStatus.EXPIRED.value
            result.expired.append(job.id)
            logger.info(f"Export job {job.id} expired; bundle released")

        result.evicted = self._registry.evict_finished_before(now - self._record_retention)
        for job_id in result.evicted:
            self._bundles.release(job_id)

        owned = {job.id for job in self._registry.records()}
        result.orphans_removed = self._bundles.cleanup_orphans(keep=owned)

        if result.evicted or result.orphans_removed:
            logger.info(
                f"Sweep evicted {len(result.evicted)} job record(s), "
                f"removed {result.orphans_removed} orphaned export dir(s)"
            )
        return result

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Retention sweep failed")
