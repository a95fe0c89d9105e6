"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from reportjobs.api.v1 import jobs as jobs_api
from reportjobs.jobs.models import JobKind

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health, dispatcher state, and active job counts."""
    service = jobs_api._service
    if service is None:
        return {"status": "starting", "python_version": sys.version}

    active = {
        kind.value: len([j for j in service.list_active(kind) if j.is_active])
        for kind in JobKind
    }
    return {
        "status": "healthy",
        "dispatcher_running": getattr(service.dispatcher, "running", None),
        "active_jobs": active,
        "export_dir": service.bundles.base_dir,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
