"""Job record data model for bulk report processing."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, computed_field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobKind(str, Enum):
    BULK_UPDATE = "bulk_update"
    BULK_EXPORT = "bulk_export"


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    # Export only
    READY = "ready"
    EXPIRED = "expired"


ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED, JobStatus.EXPIRED}
)


class ExportFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    XLSX = "xlsx"
    MD = "md"
    JSON = "json"


class ReportType(str, Enum):
    OVERVIEW = "overview"
    EXECUTIVE = "executive"
    DETAILED = "detailed"
    FINANCIAL = "financial"


class CompletedResult(BaseModel):
    outcome: Literal["completed"] = "completed"
    artifact_ref: Optional[str] = None


class FailedResult(BaseModel):
    outcome: Literal["failed"] = "failed"
    reason: str


ItemResult = Annotated[Union[CompletedResult, FailedResult], Field(discriminator="outcome")]


class ItemOutcome(BaseModel):
    """Result of processing one report within a job. Append-only once recorded."""
    item_id: str
    display_name: str
    result: ItemResult


class JobRecord(BaseModel):
    """Tracks the lifecycle of one bulk job.

    After creation only the runner (and the retention sweeper, for the
    ready -> expired transition) writes to a record. ``cancel_requested`` is
    the single flag the control surface may set.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    stage: str = "queued"
    input_ids: List[str]
    display_names: Dict[str, str] = Field(default_factory=dict)
    cursor: int = 0
    current_item_id: Optional[str] = None
    completed_items: List[ItemOutcome] = Field(default_factory=list)
    failed_items: List[ItemOutcome] = Field(default_factory=list)
    cancel_requested: bool = False
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    # Export only
    format: Optional[ExportFormat] = None
    report_type: Optional[ReportType] = None
    bundle_ref: Optional[str] = None
    bundle_filename: Optional[str] = None
    bundle_size_bytes: Optional[int] = None
    ready_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @computed_field
    @property
    def progress_percent(self) -> float:
        if not self.input_ids:
            return 0.0
        done = len(self.completed_items) + len(self.failed_items)
        return 100.0 * done / len(self.input_ids)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def bundle_expired(self, now: datetime) -> bool:
        """True once the download window has closed, whether or not a sweep has run yet."""
        if self.status == JobStatus.EXPIRED:
            return True
        return (
            self.status == JobStatus.READY
            and self.expires_at is not None
            and self.expires_at <= now
        )

    def display_name(self, item_id: str) -> str:
        return self.display_names.get(item_id, item_id)

    def snapshot(self) -> "JobRecord":
        """Deep copy handed to readers so polls never see a live record."""
        return self.model_copy(deep=True)
