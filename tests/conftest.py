"""Shared fixtures for job engine tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from reportjobs.executors.base import ItemContext, WorkExecutor
from reportjobs.jobs.models import JobKind, JobRecord
from reportjobs.jobs.registry import JobRegistry
from reportjobs.jobs.runner import JobRunner
from reportjobs.reports.store import InMemoryReportStore, Report
from reportjobs.storage.bundles import BundleStore


SAMPLE_ANALYSIS = {
    "summary": "Acme can unlock significant value from AI-assisted operations.",
    "steps": [
        {
            "step": 1,
            "title": "Friction Mapping",
            "content": "Manual order entry dominates back-office time.",
            "data": [{"Function": "Sales Ops", "Hours": 1200}],
        },
        {"step": 2, "title": "Use Cases", "content": "Automate order intake."},
    ],
    "executiveSummary": {
        "headline": "AI can return $4.2M annually",
        "context": "Acme is a mid-size manufacturer.",
        "opportunityTable": {"rows": [{"metric": "Annual value", "value": "$4.2M"}]},
        "findings": [{"title": "Order intake", "body": "Highest friction area.", "value": "$1.1M"}],
        "criticalPath": "Clean the order history data first.",
        "recommendedAction": "Pilot order-intake automation in Q1.",
    },
    "companyOverview": {
        "annualRevenue": 250000000,
        "totalEmployees": 1200,
        "position": "Regional leader in industrial fasteners.",
        "frictionTable": {
            "rows": [{"domain": "Sales", "annualBurden": "$2M", "strategicImpact": "High"}]
        },
        "dataReadiness": {"currentState": "ERP data is reliable.", "keyGaps": "No CRM history."},
        "whyNow": "Competitors are automating quoting.",
    },
    "executiveDashboard": {
        "totalRevenueBenefit": 1500000,
        "totalCostBenefit": 2000000,
        "totalCashFlowBenefit": 500000,
        "totalRiskBenefit": 200000,
        "totalAnnualValue": 4200000,
        "totalMonthlyTokens": 12000000,
        "valuePerMillionTokens": 29166,
        "topUseCases": [
            {"rank": 1, "useCase": "Order intake", "priorityScore": 9.1, "monthlyTokens": 4000000, "annualValue": 1100000},
        ],
    },
}


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class ScriptedExecutor(WorkExecutor):
    """Executor whose behaviour per item is given by a script.

    Script values: "ok", "fail", "raise", "timeout_error", "hang". Items not
    in the script succeed. ``hooks`` run while an item is in flight, before it
    returns.
    When ``bundles`` is given, successful items stage a small text file.
    """

    def __init__(self, kind=JobKind.BULK_UPDATE, script=None, hooks=None, bundles=None):
        self.kind = kind
        self.script = script or {}
        self.hooks = hooks or {}
        self.bundles = bundles
        self.calls = []

    async def execute(self, item_id: str, context: ItemContext):
        self.calls.append(item_id)
        await asyncio.sleep(0)
        hook = self.hooks.get(item_id)
        if hook is not None:
            hook(item_id, context)

        action = self.script.get(item_id, "ok")
        if action == "fail":
            return self.failed(f"could not process {item_id}")
        if action == "raise":
            raise RuntimeError("exploded")
        if action == "timeout_error":
            raise TimeoutError("upstream socket timed out")
        if action == "hang":
            await asyncio.sleep(3600)
        if self.bundles is not None:
            ref = self.bundles.stage_artifact(context.job_id, f"{item_id}.txt", item_id.encode())
            return self.completed(artifact_ref=ref)
        return self.completed(artifact_ref=item_id)


class RecordingDispatcher:
    """Dispatcher stand-in that records submissions without running anything."""

    def __init__(self):
        self.submitted = []
        self.running = True

    async def submit(self, job_id: str) -> None:
        self.submitted.append(job_id)

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


def assert_ledger_consistent(job: JobRecord):
    done = len(job.completed_items) + len(job.failed_items)
    assert done + (len(job.input_ids) - job.cursor) == len(job.input_ids)
    assert done <= len(job.input_ids)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return JobRegistry(clock=clock)


@pytest.fixture
def bundles(tmp_path):
    return BundleStore(str(tmp_path / "exports"))


@pytest.fixture
def report_store():
    return InMemoryReportStore([
        Report(id="A", company_name="Acme Corp", analysis_data=SAMPLE_ANALYSIS),
        Report(id="B", company_name="Globex", analysis_data=SAMPLE_ANALYSIS),
        Report(id="C", company_name="Initech", analysis_data=SAMPLE_ANALYSIS),
        Report(id="D", company_name="Umbrella", analysis_data=None),
    ])


@pytest.fixture
def make_runner(registry, bundles, clock):
    def _make(executors, item_timeout=None, ttl=timedelta(minutes=60)):
        return JobRunner(
            registry,
            executors,
            bundles,
            bundle_ttl=ttl,
            item_timeout=item_timeout,
            clock=clock,
        )
    return _make
