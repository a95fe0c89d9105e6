"""Saved-reports page compatibility API.

Provides the paths and camelCase payloads the reports page already uses:
  POST /api/bulk-update/start            {reportIds}
  GET  /api/bulk-update/status/{job_id}
  POST /api/bulk-update/cancel/{job_id}
  GET  /api/bulk-update/active
  POST /api/bulk-export/start            {reportIds, format, reportType}
  GET  /api/bulk-export/status/{job_id}
  POST /api/bulk-export/cancel/{job_id}
  GET  /api/bulk-export/active
  GET  /api/bulk-export/download/{job_id}

This is a thin layer over the same JobService as /api/v1/jobs.
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List

from reportjobs.api.v1.jobs import get_service, http_error
from reportjobs.jobs.errors import JobError, NotFoundError
from reportjobs.jobs.models import (
    ExportFormat,
    FailedResult,
    JobKind,
    JobRecord,
    JobStatus,
    ReportType,
)

router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BulkUpdateStartRequest(_CamelModel):
    report_ids: List[str] = Field(min_length=1)


class BulkExportStartRequest(_CamelModel):
    report_ids: List[str] = Field(min_length=1)
    format: ExportFormat = ExportFormat.PDF
    report_type: ReportType = ReportType.OVERVIEW


# ---------------------------------------------------------------------------
# Payload mapping
# ---------------------------------------------------------------------------

def _failed_companies(job: JobRecord) -> List[Dict[str, Any]]:
    return [
        {
            "id": o.item_id,
            "name": o.display_name,
            "error": o.result.reason if isinstance(o.result, FailedResult) else "",
        }
        for o in job.failed_items
    ]


def _base_payload(job: JobRecord) -> Dict[str, Any]:
    return {
        "id": job.id,
        "status": job.status.value,
        "progress": round(job.progress_percent, 1),
        "currentCompanyId": job.current_item_id,
        "companyIds": job.input_ids,
        "failedCompanies": _failed_companies(job),
        "error": job.error,
    }


def update_payload(job: JobRecord) -> Dict[str, Any]:
    payload = _base_payload(job)
    payload["completedCompanies"] = [
        {"id": o.item_id, "name": o.display_name, "status": "completed"}
        for o in job.completed_items
    ]
    return payload


def export_payload(job: JobRecord) -> Dict[str, Any]:
    payload = _base_payload(job)
    # The page knows the running export status as "generating"
    if job.status == JobStatus.IN_PROGRESS:
        payload["status"] = "generating"
    payload.update({
        "format": job.format.value if job.format else None,
        "reportType": job.report_type.value if job.report_type else None,
        "completedCompanies": [
            {"id": o.item_id, "name": o.display_name, "filename": o.result.artifact_ref}
            for o in job.completed_items
        ],
        "expiresAt": job.expires_at.isoformat() if job.expires_at else None,
    })
    if job.status == JobStatus.READY:
        payload["downloadUrl"] = f"/api/bulk-export/download/{job.id}"
        payload["fileSize"] = job.bundle_size_bytes
    return payload


def _status_of_kind(job_id: str, kind: JobKind) -> JobRecord:
    job = get_service().status(job_id)
    if job.kind != kind:
        raise NotFoundError(f"Job {job_id} not found")
    return job


# ---------------------------------------------------------------------------
# Bulk update
# ---------------------------------------------------------------------------

@router.post("/bulk-update/start")
async def start_bulk_update(request: BulkUpdateStartRequest):
    """Regenerate the AI analysis of every selected report."""
    service = get_service()
    try:
        job = await service.start(JobKind.BULK_UPDATE, request.report_ids)
    except JobError as e:
        raise http_error(e)
    return {"jobId": job.id, "pollIntervalMs": service.poll_interval_ms}


@router.get("/bulk-update/status/{job_id}")
async def bulk_update_status(job_id: str):
    try:
        return update_payload(_status_of_kind(job_id, JobKind.BULK_UPDATE))
    except JobError as e:
        raise http_error(e)


@router.post("/bulk-update/cancel/{job_id}")
async def cancel_bulk_update(job_id: str):
    try:
        _status_of_kind(job_id, JobKind.BULK_UPDATE)
        get_service().cancel(job_id)
    except JobError as e:
        raise http_error(e)
    return {"success": True}


@router.get("/bulk-update/active")
async def active_bulk_updates():
    return [update_payload(j) for j in get_service().list_active(JobKind.BULK_UPDATE)]


# ---------------------------------------------------------------------------
# Bulk export
# ---------------------------------------------------------------------------

@router.post("/bulk-export/start")
async def start_bulk_export(request: BulkExportStartRequest):
    """Render every selected report and bundle the files into one zip."""
    service = get_service()
    try:
        job = await service.start(
            JobKind.BULK_EXPORT,
            request.report_ids,
            format=request.format,
            report_type=request.report_type,
        )
    except JobError as e:
        raise http_error(e)
    return {"jobId": job.id, "pollIntervalMs": service.poll_interval_ms}


@router.get("/bulk-export/status/{job_id}")
async def bulk_export_status(job_id: str):
    try:
        return export_payload(_status_of_kind(job_id, JobKind.BULK_EXPORT))
    except JobError as e:
        raise http_error(e)


@router.post("/bulk-export/cancel/{job_id}")
async def cancel_bulk_export(job_id: str):
    try:
        _status_of_kind(job_id, JobKind.BULK_EXPORT)
        get_service().cancel(job_id)
    except JobError as e:
        raise http_error(e)
    return {"success": True}


@router.get("/bulk-export/active")
async def active_bulk_exports():
    return [export_payload(j) for j in get_service().list_active(JobKind.BULK_EXPORT)]


@router.get("/bulk-export/download/{job_id}")
async def download_bulk_export(job_id: str):
    """Stream the zip bundle of a ready export."""
    try:
        bundle = get_service().download(job_id)
    except JobError as e:
        raise http_error(e)
    return FileResponse(bundle.path, media_type=bundle.media_type, filename=bundle.filename)
