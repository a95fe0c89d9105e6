"""Application configuration via environment variables."""

import os
import tempfile

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Service
    service_port: int = 8002
    log_level: str = "INFO"

    # Job processing
    poll_interval_ms: int = 2000
    single_flight_enabled: bool = True
    item_timeout_seconds: float = 600.0
    job_record_retention_hours: int = 24

    # Export bundles
    export_dir: str = os.path.join(tempfile.gettempdir(), "report_exports")
    export_bundle_ttl_minutes: int = 60
    sweep_interval_seconds: int = 300

    # Report storage
    report_store_backend: str = "memory"  # "memory" or "supabase"
    reports_seed_file: Optional[str] = None
    reports_table: str = "reports"

    # Supabase (only when report_store_backend=supabase)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # AI analysis
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
