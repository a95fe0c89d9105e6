"""Job dispatcher interface."""

from abc import ABC, abstractmethod


class JobDispatcher(ABC):
    """Abstract interface for handing registered jobs to a runner."""

    @abstractmethod
    async def submit(self, job_id: str) -> None:
        """Schedule a pending job for execution."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher and any jobs it is running."""
        ...
