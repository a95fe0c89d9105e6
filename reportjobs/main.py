"""Report Jobs Service - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reportjobs.config import settings
from reportjobs.api.v1.router import v1_router, bulk_router_compat
from reportjobs.api.v1.health import router as health_root_router
from reportjobs.api.v1 import jobs as jobs_api
from reportjobs.ai.analysis import GeminiAnalysisGenerator
from reportjobs.db.supabase_client import get_supabase
from reportjobs.executors.export import ExportReportExecutor
from reportjobs.executors.regenerate import RegenerateAnalysisExecutor
from reportjobs.jobs.in_process_queue import InProcessQueue
from reportjobs.jobs.models import JobKind
from reportjobs.jobs.registry import JobRegistry
from reportjobs.jobs.runner import JobRunner
from reportjobs.jobs.service import JobService
from reportjobs.jobs.sweeper import RetentionSweeper
from reportjobs.reports.store import InMemoryReportStore, ReportStore, SupabaseReportStore
from reportjobs.storage.bundles import BundleStore

logger = logging.getLogger(__name__)


def build_report_store() -> ReportStore:
    if settings.report_store_backend == "supabase":
        return SupabaseReportStore(get_supabase(), table=settings.reports_table)
    if settings.reports_seed_file:
        return InMemoryReportStore.from_json_file(settings.reports_seed_file)
    return InMemoryReportStore()


# Global references, set during lifespan
_dispatcher = None
_sweeper = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    global _dispatcher, _sweeper

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting Report Jobs Service on port {settings.service_port}")
    logger.info(f"Report store: {settings.report_store_backend}")
    logger.info(f"Export dir: {settings.export_dir} (bundle TTL {settings.export_bundle_ttl_minutes} min)")

    registry = JobRegistry(single_flight=settings.single_flight_enabled)
    bundles = BundleStore(settings.export_dir)
    reports = build_report_store()

    executors = {
        JobKind.BULK_UPDATE: RegenerateAnalysisExecutor(
            reports,
            GeminiAnalysisGenerator(settings.gemini_api_key, settings.gemini_model),
        ),
        JobKind.BULK_EXPORT: ExportReportExecutor(reports, bundles),
    }
    runner = JobRunner(
        registry,
        executors,
        bundles,
        bundle_ttl=timedelta(minutes=settings.export_bundle_ttl_minutes),
        item_timeout=settings.item_timeout_seconds,
    )

    # Start job dispatcher and retention sweeper
    _dispatcher = InProcessQueue(run_fn=runner.run)
    await _dispatcher.start()
    _sweeper = RetentionSweeper(
        registry,
        bundles,
        interval_seconds=settings.sweep_interval_seconds,
        record_retention=timedelta(hours=settings.job_record_retention_hours),
    )
    # Clear bundles left behind by a previous process
    _sweeper.sweep_once()
    await _sweeper.start()
    logger.info("Job dispatcher and retention sweeper started")

    # Wire the service into API endpoints
    jobs_api.set_service(
        JobService(
            registry,
            _dispatcher,
            reports,
            bundles,
            poll_interval_ms=settings.poll_interval_ms,
        )
    )

    yield

    # Shutdown
    logger.info("Shutting down Report Jobs Service")
    await _sweeper.stop()
    await _dispatcher.stop()
    jobs_api.set_service(None)


app = FastAPI(
    title="Report Jobs Service",
    description="Bulk AI regeneration and export of saved company reports",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow frontend dev server and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints
app.include_router(bulk_router_compat)  # /api/bulk-update/*, /api/bulk-export/*
