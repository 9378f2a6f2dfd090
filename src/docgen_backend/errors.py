"""
Error taxonomy for the document generation backend.

Errors raised before a job exists (``ValidationError``) are reported to the
submitting client synchronously. Errors raised while a job is being generated
(``RenderError``, ``StorageError``) are captured on the job record and are only
visible by polling its status.
"""

from __future__ import annotations


class DocgenError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(DocgenError):
    """A submission is malformed or misses a required field."""


class NotFoundError(DocgenError):
    """A requested job or artifact does not exist (any more)."""


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job with id {job_id} not found")
        self.job_id = job_id


class ArtifactNotFoundError(NotFoundError):
    def __init__(self, location: str) -> None:
        super().__init__(f"Artifact not found at {location}")
        self.location = location


class RenderError(DocgenError):
    """The renderer could not produce a document for a valid-looking input."""


class StorageError(DocgenError):
    """A rendered artifact could not be persisted, or no output directory is usable."""


class InvalidTransitionError(DocgenError):
    """An illegal job state change was attempted. Indicates a programming error."""

    def __init__(self, job_id: str, current: str, requested: str, reason: str | None = None) -> None:
        message = f"Illegal transition for job {job_id}: {current} -> {requested}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.job_id = job_id
        self.current = current
        self.requested = requested
