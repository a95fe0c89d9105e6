"""Aggregate all API routers."""

from fastapi import APIRouter
from reportjobs.api.v1.health import router as health_router
from reportjobs.api.v1.jobs import router as jobs_router
from reportjobs.api.v1.bulk import router as bulk_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(jobs_router, tags=["jobs"])

# Compatibility shim: mounts /api/bulk-update/* and /api/bulk-export/* for the reports page
bulk_router_compat = APIRouter(prefix="/api")
bulk_router_compat.include_router(bulk_router, tags=["bulk"])
