"""Job management API: start bulk jobs, poll status, cancel, download bundles."""

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from reportjobs.jobs.errors import ConflictError, GoneError, InvalidJobRequest, JobError, NotFoundError
from reportjobs.jobs.models import ExportFormat, FailedResult, JobKind, JobRecord, ReportType

router = APIRouter()

# Set by main.py during lifespan
_service = None


def set_service(service):
    global _service
    _service = service


def get_service():
    if _service is None:
        raise HTTPException(status_code=503, detail="Job service not initialized")
    return _service


_STATUS_CODES = {
    NotFoundError: 404,
    ConflictError: 409,
    GoneError: 410,
    InvalidJobRequest: 400,
}


def http_error(exc: JobError) -> HTTPException:
    """Map a job control error onto the matching HTTP status."""
    for exc_type, code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return HTTPException(status_code=code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def job_payload(job: JobRecord) -> Dict[str, Any]:
    """Status payload for one job snapshot."""
    payload = {
        "job_id": job.id,
        "kind": job.kind.value,
        "status": job.status.value,
        "stage": job.stage,
        "progress_percent": round(job.progress_percent, 1),
        "current_item_id": job.current_item_id,
        "input_ids": job.input_ids,
        "completed_items": [
            {
                "item_id": o.item_id,
                "display_name": o.display_name,
                "artifact_ref": o.result.artifact_ref,
            }
            for o in job.completed_items
        ],
        "failed_items": [
            {
                "item_id": o.item_id,
                "display_name": o.display_name,
                "reason": o.result.reason if isinstance(o.result, FailedResult) else "",
            }
            for o in job.failed_items
        ],
        "cancel_requested": job.cancel_requested,
        "error": job.error,
        "created_at": _iso(job.created_at),
        "started_at": _iso(job.started_at),
        "finished_at": _iso(job.finished_at),
    }

    if job.kind == JobKind.BULK_EXPORT:
        payload.update({
            "format": job.format.value if job.format else None,
            "report_type": job.report_type.value if job.report_type else None,
            "bundle_size_bytes": job.bundle_size_bytes,
            "ready_at": _iso(job.ready_at),
            "expires_at": _iso(job.expires_at),
        })

    return payload


class JobStartRequest(BaseModel):
    kind: JobKind
    report_ids: List[str] = Field(min_length=1)
    format: Optional[ExportFormat] = None
    report_type: Optional[ReportType] = None


class JobStartResponse(BaseModel):
    job_id: str
    status: str
    poll_interval_ms: int
    message: str


@router.post("/jobs", response_model=JobStartResponse, status_code=201)
async def start_job(request: JobStartRequest):
    """Start a bulk update or bulk export job."""
    service = get_service()
    try:
        job = await service.start(
            request.kind,
            request.report_ids,
            format=request.format,
            report_type=request.report_type,
        )
    except JobError as e:
        raise http_error(e)

    return JobStartResponse(
        job_id=job.id,
        status=job.status.value,
        poll_interval_ms=service.poll_interval_ms,
        message="Job submitted. Poll GET /api/v1/jobs/{id} for status.",
    )


@router.get("/jobs")
async def list_active_jobs(kind: JobKind = Query(...)):
    """Jobs of a kind that a reloaded client can re-attach to."""
    service = get_service()
    return {"jobs": [job_payload(j) for j in service.list_active(kind)]}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str):
    """Get the current status and item ledger of a job."""
    service = get_service()
    try:
        return job_payload(service.status(job_id))
    except JobError as e:
        raise http_error(e)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str):
    """Request cancellation. The item in flight finishes before the job stops."""
    service = get_service()
    try:
        return job_payload(service.cancel(job_id))
    except JobError as e:
        raise http_error(e)


@router.get("/jobs/{job_id}/download")
async def download_job_bundle(job_id: str):
    """Download a ready export bundle."""
    service = get_service()
    try:
        bundle = service.download(job_id)
    except JobError as e:
        raise http_error(e)
    return FileResponse(bundle.path, media_type=bundle.media_type, filename=bundle.filename)
