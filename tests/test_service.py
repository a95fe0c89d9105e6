"""Tests for the job control surface (start, status, cancel, list, download)."""

import asyncio
import os
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from conftest import RecordingDispatcher, ScriptedExecutor
from reportjobs.jobs.errors import ConflictError, GoneError, InvalidJobRequest, NotFoundError
from reportjobs.jobs.in_process_queue import InProcessQueue
from reportjobs.jobs.models import ExportFormat, JobKind, JobStatus, ReportType
from reportjobs.jobs.service import JobService
from reportjobs.jobs.sweeper import RetentionSweeper


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def service(registry, dispatcher, report_store, bundles):
    return JobService(registry, dispatcher, report_store, bundles, poll_interval_ms=1500)


async def _wait_terminal(service, job_id, timeout=5.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        job = service.status(job_id)
        if job.status not in (JobStatus.PENDING, JobStatus.IN_PROGRESS):
            return job
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"job {job_id} still {job.status.value}")
        await asyncio.sleep(0.01)


class TestStart:

    @pytest.mark.asyncio
    async def test_start_registers_and_submits(self, service, dispatcher):
        job = await service.start(JobKind.BULK_UPDATE, ["A", "B", "A", " ", "Z"])

        assert job.status == JobStatus.PENDING
        assert job.input_ids == ["A", "B", "Z"]
        assert job.display_names == {"A": "Acme Corp", "B": "Globex", "Z": "Z"}
        assert dispatcher.submitted == [job.id]

    @pytest.mark.asyncio
    async def test_start_rejects_empty_selection(self, service, dispatcher):
        with pytest.raises(InvalidJobRequest):
            await service.start(JobKind.BULK_UPDATE, ["", "  "])
        assert dispatcher.submitted == []

    @pytest.mark.asyncio
    async def test_export_requires_format_and_report_type(self, service):
        with pytest.raises(InvalidJobRequest):
            await service.start(JobKind.BULK_EXPORT, ["A"], format=ExportFormat.PDF)

    @pytest.mark.asyncio
    async def test_update_rejects_export_options(self, service):
        with pytest.raises(InvalidJobRequest):
            await service.start(JobKind.BULK_UPDATE, ["A"], format=ExportFormat.PDF)

    @pytest.mark.asyncio
    async def test_second_start_conflicts_and_leaves_first_alone(self, service, dispatcher):
        first = await service.start(JobKind.BULK_UPDATE, ["A"])
        before = service.status(first.id)

        with pytest.raises(ConflictError):
            await service.start(JobKind.BULK_UPDATE, ["B"])

        assert service.status(first.id) == before
        assert dispatcher.submitted == [first.id]


class TestControl:

    @pytest.mark.asyncio
    async def test_cancel_flags_job(self, service):
        job = await service.start(JobKind.BULK_UPDATE, ["A"])
        cancelled = service.cancel(job.id)
        assert cancelled.cancel_requested is True
        assert cancelled.status == JobStatus.PENDING

    def test_status_and_cancel_of_unknown_job(self, service):
        with pytest.raises(NotFoundError):
            service.status("missing")
        with pytest.raises(NotFoundError):
            service.cancel("missing")

    @pytest.mark.asyncio
    async def test_list_active_for_reattach(self, service):
        job = await service.start(JobKind.BULK_UPDATE, ["A"])
        assert [j.id for j in service.list_active(JobKind.BULK_UPDATE)] == [job.id]
        assert service.list_active(JobKind.BULK_EXPORT) == []


class TestDownload:

    @pytest.mark.asyncio
    async def test_download_while_in_progress_conflicts(self, service, registry):
        job = await service.start(
            JobKind.BULK_EXPORT, ["A"], format=ExportFormat.MD, report_type=ReportType.OVERVIEW
        )
        registry.lookup(job.id).status = JobStatus.IN_PROGRESS
        before = service.status(job.id)

        with pytest.raises(ConflictError):
            service.download(job.id)

        assert service.status(job.id) == before

    @pytest.mark.asyncio
    async def test_update_jobs_have_no_download(self, service):
        job = await service.start(JobKind.BULK_UPDATE, ["A"])
        with pytest.raises(ConflictError):
            service.download(job.id)

    @pytest.mark.asyncio
    async def test_ready_then_expired(self, service, registry, bundles, clock, make_runner):
        job = await service.start(
            JobKind.BULK_EXPORT, ["A", "B"], format=ExportFormat.MD, report_type=ReportType.OVERVIEW
        )
        executor = ScriptedExecutor(kind=JobKind.BULK_EXPORT, bundles=bundles)
        await make_runner({JobKind.BULK_EXPORT: executor}, ttl=timedelta(minutes=10)).run(job.id)

        bundle = service.download(job.id)
        assert os.path.isfile(bundle.path)
        assert bundle.filename.endswith(".zip")
        assert bundle.size_bytes == os.path.getsize(bundle.path)

        clock.advance(minutes=11)
        RetentionSweeper(registry, bundles, 60, timedelta(hours=24), clock=clock).sweep_once()

        with pytest.raises(GoneError):
            service.download(job.id)

    @pytest.mark.asyncio
    async def test_missing_bundle_file_is_gone(self, service, bundles, make_runner):
        job = await service.start(
            JobKind.BULK_EXPORT, ["A"], format=ExportFormat.MD, report_type=ReportType.OVERVIEW
        )
        executor = ScriptedExecutor(kind=JobKind.BULK_EXPORT, bundles=bundles)
        await make_runner({JobKind.BULK_EXPORT: executor}).run(job.id)
        os.remove(service.status(job.id).bundle_ref)

        with pytest.raises(GoneError):
            service.download(job.id)


class TestWithInProcessQueue:

    @pytest.mark.asyncio
    async def test_jobs_run_to_completion(self, registry, report_store, bundles, make_runner):
        update_exec = ScriptedExecutor(script={"B": "fail"})
        export_exec = ScriptedExecutor(kind=JobKind.BULK_EXPORT, bundles=bundles)
        runner = make_runner({JobKind.BULK_UPDATE: update_exec, JobKind.BULK_EXPORT: export_exec})
        queue = InProcessQueue(run_fn=runner.run)
        service = JobService(registry, queue, report_store, bundles)

        await queue.start()
        try:
            update = await service.start(JobKind.BULK_UPDATE, ["A", "B", "C"])
            export = await service.start(
                JobKind.BULK_EXPORT, ["A"], format=ExportFormat.JSON, report_type=ReportType.FINANCIAL
            )
            update_done = await _wait_terminal(service, update.id)
            export_done = await _wait_terminal(service, export.id)
        finally:
            await queue.stop()

        assert update_done.status == JobStatus.COMPLETED
        assert [o.item_id for o in update_done.completed_items] == ["A", "C"]
        assert [o.item_id for o in update_done.failed_items] == ["B"]
        assert update_done.failed_items[0].display_name == "Globex"
        assert export_done.status == JobStatus.READY
        assert queue.running_jobs() == []

    @pytest.mark.asyncio
    async def test_stop_interrupts_running_job(self, registry, report_store, bundles, make_runner):
        runner = make_runner({JobKind.BULK_UPDATE: ScriptedExecutor(script={"A": "hang"})})
        queue = InProcessQueue(run_fn=runner.run)
        service = JobService(registry, queue, report_store, bundles)

        await queue.start()
        job = await service.start(JobKind.BULK_UPDATE, ["A", "B"])
        for _ in range(200):
            if service.status(job.id).status == JobStatus.IN_PROGRESS:
                break
            await asyncio.sleep(0.01)
        await queue.stop()

        stopped = service.status(job.id)
        assert stopped.status == JobStatus.FAILED
        assert stopped.error == "Job interrupted by service shutdown"


class TestDownloadWindow:

    @pytest.mark.asyncio
    async def test_bundle_past_expiry_is_gone_before_any_sweep(self, service, registry, bundles, clock, make_runner):
        job = await service.start(
            JobKind.BULK_EXPORT, ["A"], format=ExportFormat.MD, report_type=ReportType.OVERVIEW
        )
        executor = ScriptedExecutor(kind=JobKind.BULK_EXPORT, bundles=bundles)
        await make_runner({JobKind.BULK_EXPORT: executor}, ttl=timedelta(minutes=10)).run(job.id)

        clock.advance(minutes=9)
        assert [j.id for j in service.list_active(JobKind.BULK_EXPORT)] == [job.id]
        assert service.download(job.id).filename.endswith(".zip")

        clock.advance(minutes=1)
        assert service.list_active(JobKind.BULK_EXPORT) == []
        with pytest.raises(GoneError):
            service.download(job.id)
        assert service.status(job.id).status == JobStatus.READY


class TestConflictBeforeLookups:

    @pytest.mark.asyncio
    async def test_rejected_start_does_not_touch_report_store(self, service, report_store, monkeypatch):
        lookups = MagicMock(wraps=report_store.display_names)
        monkeypatch.setattr(report_store, "display_names", lookups)

        await service.start(JobKind.BULK_UPDATE, ["A"])
        with pytest.raises(ConflictError):
            await service.start(JobKind.BULK_UPDATE, ["B", "C"])

        assert lookups.call_count == 1

    def test_registry_check_matches_create(self, registry):
        registry.ensure_can_start(JobKind.BULK_UPDATE)
        registry.create(JobKind.BULK_UPDATE, ["A"])
        with pytest.raises(ConflictError):
            registry.ensure_can_start(JobKind.BULK_UPDATE)
        registry.ensure_can_start(JobKind.BULK_EXPORT)
