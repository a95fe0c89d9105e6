"""Start / status / cancel / list / download operations over the job registry."""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from reportjobs.jobs.dispatcher import JobDispatcher
from reportjobs.jobs.errors import ConflictError, GoneError, InvalidJobRequest
from reportjobs.jobs.models import ExportFormat, JobKind, JobRecord, JobStatus, ReportType
from reportjobs.jobs.registry import JobRegistry
from reportjobs.reports.store import ReportStore
from reportjobs.storage.bundles import BundleStore

logger = logging.getLogger(__name__)


@dataclass
class BundleDownload:
    path: str
    filename: str
    size_bytes: int
    media_type: str = "application/zip"


class JobService:
    """Control surface used by the HTTP routers.

    Every method except ``start`` is free of side effects on job progress;
    ``cancel`` only raises the cancellation flag.
    """

    def __init__(
        self,
        registry: JobRegistry,
        dispatcher: JobDispatcher,
        reports: ReportStore,
        bundles: BundleStore,
        poll_interval_ms: int = 2000,
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.reports = reports
        self.bundles = bundles
        self.poll_interval_ms = poll_interval_ms

    async def start(
        self,
        kind: JobKind,
        input_ids: List[str],
        format: Optional[ExportFormat] = None,
        report_type: Optional[ReportType] = None,
    ) -> JobRecord:
        # Keep first occurrence of each id, in the order given
        ids = list(dict.fromkeys(i.strip() for i in input_ids if i and i.strip()))
        if not ids:
            raise InvalidJobRequest("At least one report id is required")
        if kind == JobKind.BULK_EXPORT:
            if format is None or report_type is None:
                raise InvalidJobRequest("Export jobs need a format and a report type")
        elif format is not None or report_type is not None:
            raise InvalidJobRequest("Format and report type only apply to export jobs")
        self.registry.ensure_can_start(kind)

        # Capture company names now so the ledger survives report deletion
        loop = asyncio.get_running_loop()
        names = await loop.run_in_executor(None, self.reports.display_names, ids)

        job = self.registry.create(
            kind,
            ids,
            display_names=names,
            format=format,
            report_type=report_type,
        )
        await self.dispatcher.submit(job.id)
        return job

    def status(self, job_id: str) -> JobRecord:
        return self.registry.get(job_id)

    def cancel(self, job_id: str) -> JobRecord:
        self.registry.request_cancel(job_id)
        return self.registry.get(job_id)

    def list_active(self, kind: JobKind) -> List[JobRecord]:
        return self.registry.list_active(kind)

    def download(self, job_id: str) -> BundleDownload:
        job = self.registry.get(job_id)
        if job.kind != JobKind.BULK_EXPORT:
            raise ConflictError("Only export jobs produce a download")
        if job.bundle_expired(self.registry.clock()):
            raise GoneError("This export has expired. Start a new export to download again.")
        if job.status != JobStatus.READY:
            raise ConflictError(f"Export is {job.status.value}, not ready for download")
        if not self.bundles.exists(job.bundle_ref):
            raise GoneError("The export bundle is no longer available")
        return BundleDownload(
            path=job.bundle_ref,
            filename=job.bundle_filename,
            size_bytes=job.bundle_size_bytes,
        )
