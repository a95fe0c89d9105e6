"""Bulk-update executor: regenerate one report's AI analysis."""

import logging
from typing import Any, Dict

from reportjobs.ai.analysis import AnalysisError, AnalysisGenerator
from reportjobs.executors.base import ItemContext, WorkExecutor, run_blocking
from reportjobs.jobs.models import ItemResult, JobKind
from reportjobs.reports.store import ReportStore

logger = logging.getLogger(__name__)


class RegenerateAnalysisExecutor(WorkExecutor):
    kind = JobKind.BULK_UPDATE

    def __init__(self, store: ReportStore, generator: AnalysisGenerator):
        self._store = store
        self._generator = generator

    def _save(self, item_id: str, analysis: Dict[str, Any], context: ItemContext) -> bool:
        if not context.gate.enter():
            return False
        self._store.save_analysis(item_id, analysis)
        return True

    async def execute(self, item_id: str, context: ItemContext) -> ItemResult:
        report = await run_blocking(self._store.get, item_id)
        if report is None:
            return self.failed("Report not found")

        try:
            analysis = await self._generator.generate(report.company_name, report.analysis_data)
        except AnalysisError as e:
            return self.failed(str(e))

        try:
            saved = await run_blocking(self._save, item_id, analysis, context)
        except KeyError:
            return self.failed("Report was deleted during update")
        if not saved:
            return self.failed("Update abandoned before saving")

        logger.info(f"[Job {context.job_id}] Regenerated analysis for {report.company_name} ({item_id})")
        return self.completed(artifact_ref=item_id)
