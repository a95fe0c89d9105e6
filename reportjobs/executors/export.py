"""Bulk-export executor: render one report and stage it for the job's bundle."""

import logging
from typing import Optional

from reportjobs.executors.base import ItemContext, WorkExecutor, run_blocking
from reportjobs.jobs.models import ExportFormat, ItemResult, JobKind, ReportType
from reportjobs.rendering.sections import build_document
from reportjobs.rendering.writers import render
from reportjobs.reports.store import Report, ReportStore
from reportjobs.storage.bundles import BundleStore, safe_filename

logger = logging.getLogger(__name__)


def artifact_filename(report: Report, report_type: ReportType, fmt: ExportFormat) -> str:
    return f"{safe_filename(report.company_name)}-{report_type.value}.{fmt.value}"


class ExportReportExecutor(WorkExecutor):
    kind = JobKind.BULK_EXPORT

    def __init__(self, store: ReportStore, bundles: BundleStore):
        self._store = store
        self._bundles = bundles

    def _render_and_stage(self, report: Report, context: ItemContext) -> Optional[str]:
        doc = build_document(report.company_name, report.analysis_data or {}, context.report_type)
        content = render(doc, context.format)
        if not context.gate.enter():
            return None
        return self._bundles.stage_artifact(
            context.job_id,
            artifact_filename(report, context.report_type, context.format),
            content,
        )

    async def execute(self, item_id: str, context: ItemContext) -> ItemResult:
        if context.format is None or context.report_type is None:
            return self.failed("Export format and report type are required")

        report = await run_blocking(self._store.get, item_id)
        if report is None:
            return self.failed("Report not found")
        if not report.analysis_data:
            return self.failed("Report has no analysis to export")

        # Rendering is CPU bound; keep it off the event loop
        filename = await run_blocking(self._render_and_stage, report, context)
        if filename is None:
            return self.failed("Export abandoned before staging")
        logger.info(f"[Job {context.job_id}] Exported {report.company_name} as {filename}")
        return self.completed(artifact_ref=filename)
