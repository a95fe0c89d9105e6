"""Errors raised by the job registry and control surface."""


class JobError(Exception):
    """Base class for job control errors."""


class NotFoundError(JobError):
    """No job with the given id is known (never created, evicted, or lost on restart)."""


class ConflictError(JobError):
    """The operation is not allowed in the job's current state."""


class GoneError(JobError):
    """The job's export bundle has expired and its storage was released."""


class InvalidJobRequest(JobError):
    """A start request is malformed (no items, missing export options)."""
