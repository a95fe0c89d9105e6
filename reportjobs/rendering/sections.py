"""Turns a saved analysis into a format-neutral document for one report type."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from reportjobs.jobs.models import ReportType

REPORT_TITLES = {
    ReportType.OVERVIEW: "Company Overview",
    ReportType.EXECUTIVE: "Executive Summary",
    ReportType.DETAILED: "Detailed Analysis",
    ReportType.FINANCIAL: "Financial Impact",
}


@dataclass
class Table:
    headers: List[str]
    rows: List[List[str]]


@dataclass
class Section:
    heading: str
    paragraphs: List[str] = field(default_factory=list)
    table: Optional[Table] = None


@dataclass
class ReportDocument:
    title: str
    subtitle: str
    sections: List[Section] = field(default_factory=list)


def format_money(value: Any) -> str:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return str(value or "")
    if abs(amount) >= 1_000_000_000:
        return f"${amount / 1_000_000_000:.1f}B"
    if abs(amount) >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    if abs(amount) >= 1_000:
        return f"${amount / 1_000:.0f}K"
    return f"${amount:,.0f}"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _rows_table(rows: List[Dict[str, Any]], columns: List[tuple]) -> Optional[Table]:
    if not rows:
        return None
    return Table(
        headers=[label for _, label in columns],
        rows=[[_text(row.get(key)) for key, _ in columns] for row in rows],
    )


def _overview(analysis: Dict[str, Any]) -> List[Section]:
    overview = analysis.get("companyOverview") or {}
    readiness = overview.get("dataReadiness") or {}
    sections = [
        Section("Summary", [_text(analysis.get("summary"))]),
        Section(
            "Company Profile",
            [
                f"Annual revenue: {format_money(overview.get('annualRevenue'))}",
                f"Employees: {_text(overview.get('totalEmployees'))}",
                _text(overview.get("position")),
            ],
        ),
        Section(
            "Operational Friction",
            table=_rows_table(
                (overview.get("frictionTable") or {}).get("rows") or [],
                [("domain", "Domain"), ("annualBurden", "Annual Burden"), ("strategicImpact", "Strategic Impact")],
            ),
        ),
        Section(
            "Data Readiness",
            [
                f"Current state: {_text(readiness.get('currentState'))}",
                f"Key gaps: {_text(readiness.get('keyGaps'))}",
            ],
        ),
        Section("Why Now", [_text(overview.get("whyNow"))]),
    ]
    return sections


def _executive(analysis: Dict[str, Any]) -> List[Section]:
    summary = analysis.get("executiveSummary") or {}
    sections = [
        Section(_text(summary.get("headline")) or "Headline", [_text(summary.get("context"))]),
        Section(
            "Opportunity",
            table=_rows_table(
                (summary.get("opportunityTable") or {}).get("rows") or [],
                [("metric", "Metric"), ("value", "Value")],
            ),
        ),
    ]
    for finding in summary.get("findings") or []:
        heading = _text(finding.get("title"))
        if finding.get("value"):
            heading = f"{heading} ({finding['value']})"
        sections.append(Section(heading, [_text(finding.get("body"))]))
    sections.append(Section("Critical Path", [_text(summary.get("criticalPath"))]))
    sections.append(Section("Recommended Action", [_text(summary.get("recommendedAction"))]))
    return sections


def _detailed(analysis: Dict[str, Any]) -> List[Section]:
    sections = [Section("Summary", [_text(analysis.get("summary"))])]
    for step in analysis.get("steps") or []:
        table = None
        data = step.get("data") or []
        if data and all(isinstance(row, dict) for row in data):
            keys: List[str] = []
            for row in data:
                for key in row:
                    if key not in keys:
                        keys.append(key)
            table = _rows_table(data, [(k, k) for k in keys])
        heading = f"Step {step.get('step', '')}: {_text(step.get('title'))}".strip()
        sections.append(Section(heading, [_text(step.get("content"))], table))
    return sections


def _financial(analysis: Dict[str, Any]) -> List[Section]:
    dashboard = analysis.get("executiveDashboard") or {}
    totals = Table(
        headers=["Benefit", "Annual Value"],
        rows=[
            ["Revenue", format_money(dashboard.get("totalRevenueBenefit"))],
            ["Cost", format_money(dashboard.get("totalCostBenefit"))],
            ["Cash Flow", format_money(dashboard.get("totalCashFlowBenefit"))],
            ["Risk", format_money(dashboard.get("totalRiskBenefit"))],
            ["Total", format_money(dashboard.get("totalAnnualValue"))],
        ],
    )
    use_cases = [
        {
            "rank": uc.get("rank"),
            "useCase": uc.get("useCase"),
            "priorityScore": uc.get("priorityScore"),
            "monthlyTokens": uc.get("monthlyTokens"),
            "annualValue": format_money(uc.get("annualValue")),
        }
        for uc in dashboard.get("topUseCases") or []
    ]
    return [
        Section("Value Summary", table=totals),
        Section(
            "Token Economics",
            [
                f"Monthly tokens: {_text(dashboard.get('totalMonthlyTokens'))}",
                f"Value per million tokens: {format_money(dashboard.get('valuePerMillionTokens'))}",
            ],
        ),
        Section(
            "Top Use Cases",
            table=_rows_table(
                use_cases,
                [
                    ("rank", "Rank"),
                    ("useCase", "Use Case"),
                    ("priorityScore", "Priority"),
                    ("monthlyTokens", "Monthly Tokens"),
                    ("annualValue", "Annual Value"),
                ],
            ),
        ),
    ]


_BUILDERS = {
    ReportType.OVERVIEW: _overview,
    ReportType.EXECUTIVE: _executive,
    ReportType.DETAILED: _detailed,
    ReportType.FINANCIAL: _financial,
}


def build_document(company_name: str, analysis: Dict[str, Any], report_type: ReportType) -> ReportDocument:
    """Select and flatten the parts of an analysis that a report type shows."""
    sections = _BUILDERS[report_type](analysis)
    # Drop sections with nothing to show
    sections = [
        s for s in sections
        if s.table is not None or any(p.strip() for p in s.paragraphs)
    ]
    return ReportDocument(
        title=company_name,
        subtitle=REPORT_TITLES[report_type],
        sections=sections,
    )
