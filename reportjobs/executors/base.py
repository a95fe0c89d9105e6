"""Work executor interface: processes one report within a bulk job."""

import asyncio
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from reportjobs.jobs.models import (
    CompletedResult,
    ExportFormat,
    FailedResult,
    ItemResult,
    JobKind,
    ReportType,
)


class CommitGate:
    """Settles, once, whether an item may still write anything.

    Executors call ``enter`` right before a write they cannot take back. The
    runner calls ``abandon`` when an item overruns its timeout. Whichever call
    comes first wins, so an abandoned item never writes and an item that has
    started writing is never reported as timed out.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state: Optional[str] = None

    def enter(self) -> bool:
        with self._lock:
            if self._state is None:
                self._state = "entered"
            return self._state == "entered"

    def abandon(self) -> bool:
        with self._lock:
            if self._state is None:
                self._state = "abandoned"
            return self._state == "abandoned"


@dataclass(frozen=True)
class ItemContext:
    """Kind-specific options the runner passes with every item.

    The runner builds a fresh context, and so a fresh gate, for each item.
    """
    job_id: str
    kind: JobKind
    format: Optional[ExportFormat] = None
    report_type: Optional[ReportType] = None
    gate: CommitGate = field(default_factory=CommitGate, compare=False, repr=False)


async def run_blocking(fn: Callable[..., Any], *args: Any) -> Any:
    """Run blocking work in the default thread pool.

    A thread cannot be interrupted. If the awaiting task is cancelled, wait
    for the thread to return before passing the cancellation on, so the
    caller's item is really over when its task is.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, fn, *args)
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait({future})
        raise


class WorkExecutor(ABC):
    """Abstract base class for per-item work.

    Implementations return a CompletedResult or a FailedResult with a short,
    user-displayable reason. Anything that still escapes ``execute`` is turned
    into a failed item by the runner.
    """

    kind: JobKind

    @abstractmethod
    async def execute(self, item_id: str, context: ItemContext) -> ItemResult:
        """Process one report."""
        ...

    @staticmethod
    def completed(artifact_ref: Optional[str] = None) -> CompletedResult:
        return CompletedResult(artifact_ref=artifact_ref)

    @staticmethod
    def failed(reason: str) -> FailedResult:
        return FailedResult(reason=reason)
