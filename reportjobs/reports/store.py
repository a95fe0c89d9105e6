"""Saved report lookup: the job engine only needs get-by-id and save-analysis."""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Report(BaseModel):
    """A saved company assessment."""
    id: str
    company_name: str
    analysis_data: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReportStore(ABC):
    """Abstract report persistence used by the work executors."""

    @abstractmethod
    def get(self, report_id: str) -> Optional[Report]:
        ...

    @abstractmethod
    def save_analysis(self, report_id: str, analysis: Dict[str, Any]) -> Report:
        """Replace a report's analysis. Raises KeyError if the report does not exist."""
        ...

    def display_names(self, report_ids: Iterable[str]) -> Dict[str, str]:
        """Company names for the given ids. Unknown ids fall back to the id itself."""
        names = {}
        for report_id in report_ids:
            report = self.get(report_id)
            names[report_id] = report.company_name if report else report_id
        return names


class InMemoryReportStore(ReportStore):
    """Dict-backed store for local development and tests."""

    def __init__(self, reports: Optional[Iterable[Report]] = None):
        self._reports: Dict[str, Report] = {r.id: r for r in (reports or [])}

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryReportStore":
        with open(path, "r", encoding="utf-8") as fh:
            rows = json.load(fh)
        reports = [Report.model_validate(row) for row in rows]
        logger.info(f"Loaded {len(reports)} report(s) from {path}")
        return cls(reports)

    def add(self, report: Report) -> None:
        self._reports[report.id] = report

    def delete(self, report_id: str) -> None:
        self._reports.pop(report_id, None)

    def all(self) -> List[Report]:
        return list(self._reports.values())

    def get(self, report_id: str) -> Optional[Report]:
        report = self._reports.get(report_id)
        return report.model_copy(deep=True) if report else None

    def save_analysis(self, report_id: str, analysis: Dict[str, Any]) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise KeyError(report_id)
        report.analysis_data = analysis
        report.updated_at = datetime.now(timezone.utc)
        return report.model_copy(deep=True)


class SupabaseReportStore(ReportStore):
    """Reports table in Supabase (columns: id, company_name, analysis_data, created_at, updated_at)."""

    def __init__(self, client, table: str = "reports"):
        self._client = client
        self._table = table

    def get(self, report_id: str) -> Optional[Report]:
        response = (
            self._client.table(self._table)
            .select("id, company_name, analysis_data, created_at, updated_at")
            .eq("id", report_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return Report.model_validate(response.data[0])

    def save_analysis(self, report_id: str, analysis: Dict[str, Any]) -> Report:
        response = (
            self._client.table(self._table)
            .update({
                "analysis_data": analysis,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", report_id)
            .execute()
        )
        if not response.data:
            raise KeyError(report_id)
        return Report.model_validate(response.data[0])
