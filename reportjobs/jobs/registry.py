"""Process-wide store of job records with single-flight enforcement."""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from reportjobs.jobs.errors import ConflictError, NotFoundError
from reportjobs.jobs.models import (
    ExportFormat,
    JobKind,
    JobRecord,
    JobStatus,
    ReportType,
    utcnow,
)

logger = logging.getLogger(__name__)


class JobRegistry:
    """Owns every JobRecord known to this process.

    Readers (``get``, ``list_active``) receive deep copies. ``lookup`` and
    ``records`` hand out live records and are reserved for the runner and the
    retention sweeper, the only writers after creation.
    """

    def __init__(self, single_flight: bool = True, clock: Callable[[], datetime] = utcnow):
        self._jobs: Dict[str, JobRecord] = {}
        self._single_flight = single_flight
        self.clock = clock

    def ensure_can_start(self, kind: JobKind) -> None:
        """Raise ConflictError if single-flight is on and a job of this kind is active."""
        if not self._single_flight:
            return
        active = self._find_active(kind)
        if active is not None:
            raise ConflictError(
                f"A {kind.value} job is already running (job {active.id})"
            )

    def create(
        self,
        kind: JobKind,
        input_ids: List[str],
        display_names: Optional[Dict[str, str]] = None,
        format: Optional[ExportFormat] = None,
        report_type: Optional[ReportType] = None,
    ) -> JobRecord:
        """Register a new pending job. Raises ConflictError if one of this kind is active."""
        self.ensure_can_start(kind)

        job = JobRecord(
            kind=kind,
            input_ids=list(input_ids),
            display_names=dict(display_names or {}),
            format=format,
            report_type=report_type,
        )
        self._jobs[job.id] = job
        logger.info(f"Created {kind.value} job {job.id} with {len(job.input_ids)} item(s)")
        return job.snapshot()

    def get(self, job_id: str) -> JobRecord:
        return self._require(job_id).snapshot()

    def list_active(self, kind: JobKind) -> List[JobRecord]:
        """Jobs a client can re-attach to: pending/in_progress, plus ready exports not yet expired."""
        now = self.clock()
        active = []
        for job in self._jobs.values():
            if job.kind != kind:
                continue
            if job.is_active or (job.status == JobStatus.READY and not job.bundle_expired(now)):
                active.append(job.snapshot())
        active.sort(key=lambda j: j.created_at)
        return active

    def request_cancel(self, job_id: str) -> None:
        """Flag a job for cancellation. The runner acts on it at the next item boundary."""
        job = self._require(job_id)
        if not job.is_active:
            raise ConflictError(f"Job {job_id} is already {job.status.value}")
        if not job.cancel_requested:
            job.cancel_requested = True
            logger.info(f"Cancellation requested for job {job_id}")

    # Writer access (runner / sweeper)

    def lookup(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    def records(self, kind: Optional[JobKind] = None) -> List[JobRecord]:
        return [j for j in self._jobs.values() if kind is None or j.kind == kind]

    def evict(self, job_ids: Iterable[str]) -> int:
        removed = 0
        for job_id in job_ids:
            if self._jobs.pop(job_id, None) is not None:
                removed += 1
        return removed

    def evict_finished_before(self, cutoff: datetime) -> List[str]:
        """Drop terminal records that finished before ``cutoff``. Returns their ids."""
        stale = [
            j.id for j in self._jobs.values()
            if j.is_terminal and j.finished_at is not None and j.finished_at < cutoff
        ]
        self.evict(stale)
        return stale

    def _find_active(self, kind: JobKind) -> Optional[JobRecord]:
        for job in self._jobs.values():
            if job.kind == kind and job.is_active:
                return job
        return None

    def _require(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job
