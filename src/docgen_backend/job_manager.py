"""
Job registry and lifecycle state machine for document generation.

This module is the single authority over job state:
- Job creation and registration
- Validated status transitions (pending -> processing -> completed | failed)
- Artifact association and download URL derivation
- Explicit deletion and periodic expiry of old jobs
- Thread-safe access to job state

Rendering itself happens elsewhere (see ``generation``); the JobManager never
performs work on behalf of a job, it only records what happened to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from threading import Event, Lock, Thread
from typing import Any, Callable, Dict, Mapping, Optional

from .artifact_store import ArtifactStore
from .errors import InvalidTransitionError, JobNotFoundError
from .models import JobDetail, JobStatus, JobSummary
from .utils import generate_job_id, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=24)
DEFAULT_SWEEP_INTERVAL = timedelta(hours=1)

ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def download_url_for(job_id: str) -> str:
    return f"/jobs/{job_id}/download"


@dataclass
class JobRecord:
    """
    Internal representation of a document generation job.

    Attributes:
        id: Unique job identifier, immutable
        document_type: Renderer variant to invoke (not validated here)
        form_data: Opaque payload handed to the renderer untouched
        language: Two-letter language code
        status: Current lifecycle status
        created_at: Creation timestamp (UTC)
        updated_at: Timestamp of the last status transition (UTC)
        artifact_location: Stored artifact handle, only once completed
        filename: Suggested download filename, only once completed
        error: Failure message, only once failed
    """

    id: str
    document_type: str
    form_data: Mapping[str, Any]
    language: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    artifact_location: Optional[str] = None
    filename: Optional[str] = None
    error: Optional[str] = None

    @property
    def download_url(self) -> Optional[str]:
        return download_url_for(self.id) if self.artifact_location else None

    def to_summary(self) -> JobSummary:
        return JobSummary(
            job_id=self.id,
            status=self.status,
            document_type=self.document_type,
            language=self.language,
            created_at=self.created_at,
            updated_at=self.updated_at,
            download_url=self.download_url,
            error=self.error,
        )

    def to_detail(self) -> JobDetail:
        return JobDetail(
            **self.to_summary().model_dump(),
            form_data=dict(self.form_data),
            filename=self.filename,
        )


class JobManager:
    """
    Central registry for job lifecycle management.

    Thread Safety:
        Every read-modify-write of the registry (create, transition, delete,
        sweep) holds ``_lock``. Callers receive snapshot copies of records,
        never the live objects.

    Cleanup:
        ``start()`` launches a daemon thread that calls ``sweep_expired()``
        every ``sweep_interval``; ``stop()`` ends it promptly. Deleting a job
        also deletes its artifact through the ArtifactStore; failures there
        are logged and never reach the caller.
    """

    def __init__(
        self,
        artifact_store: ArtifactStore | None = None,
        max_age: timedelta = DEFAULT_MAX_AGE,
        sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = generate_job_id,
    ) -> None:
        """
        Initialize the job manager.

        Args:
            artifact_store: Store used to delete artifacts of removed jobs
            max_age: Jobs older than this are removed by the sweep (default: 24h)
            sweep_interval: Delay between automatic sweeps (default: 1h)
            clock: Source of the current UTC time
            id_factory: Generator of job identifiers
        """
        self.artifact_store = artifact_store
        self.max_age = max_age
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._id_factory = id_factory
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = Lock()
        self._stop_event = Event()
        self._sweeper: Thread | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, document_type: str, form_data: Mapping[str, Any], language: str) -> str:
        """
        Register a new pending job and return its id.

        No rendering happens here; the caller hands the id to the
        GenerationService afterwards.
        """
        now = self._clock()
        with self._lock:
            job_id = self._id_factory()
            while job_id in self._jobs:
                job_id = self._id_factory()
            self._jobs[job_id] = JobRecord(
                id=job_id,
                document_type=document_type,
                form_data=form_data,
                language=language,
                status=JobStatus.PENDING,
                created_at=now,
                updated_at=now,
            )

        logger.info("Job %s registered (%s, %s)", job_id, document_type, language)
        return job_id

    def get(self, job_id: str) -> JobRecord:
        """
        Return a snapshot of a job.

        Raises:
            JobNotFoundError: If the id is unknown (or the job was swept)
        """
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            return replace(record)

    def list_all(self) -> list[JobRecord]:
        """Snapshots of every tracked job, newest first."""
        with self._lock:
            records = sorted(self._jobs.values(), key=lambda r: r.created_at, reverse=True)
            return [replace(record) for record in records]

    def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        artifact_location: Optional[str] = None,
        error: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> JobRecord:
        """
        Move a job to ``new_status`` and stamp ``updated_at``.

        Args:
            job_id: The job to update
            new_status: Target status; must be reachable from the current one
            artifact_location: Required for COMPLETED, rejected otherwise
            error: Required for FAILED, rejected otherwise
            filename: Download filename, required for COMPLETED, rejected otherwise

        Returns:
            Snapshot of the updated job

        Raises:
            JobNotFoundError: If the id is unknown
            InvalidTransitionError: If the state machine or payload rules are violated
        """
        new_status = JobStatus(new_status)
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                raise JobNotFoundError(job_id)

            reason = self._check_transition(record.status, new_status, artifact_location, error, filename)
            if reason is not None:
                exc = InvalidTransitionError(job_id, record.status.value, new_status.value, reason)
                logger.error("%s", exc)
                raise exc

            record.status = new_status
            if new_status == JobStatus.COMPLETED:
                record.artifact_location = artifact_location
                record.filename = filename
            elif new_status == JobStatus.FAILED:
                record.error = error
            record.updated_at = max(self._clock(), record.updated_at)
            snapshot = replace(record)

        logger.info("Job %s -> %s", job_id, snapshot.status.value)
        return snapshot

    @staticmethod
    def _check_transition(
        current: JobStatus,
        new_status: JobStatus,
        artifact_location: Optional[str],
        error: Optional[str],
        filename: Optional[str],
    ) -> Optional[str]:
        if new_status not in ALLOWED_TRANSITIONS[current]:
            return "not permitted by the job state machine"
        if new_status == JobStatus.COMPLETED:
            if not artifact_location:
                return "completed jobs need an artifact location"
            if not filename:
                return "completed jobs need a download filename"
            if error is not None:
                return "completed jobs cannot carry an error"
        elif new_status == JobStatus.FAILED:
            if not error:
                return "failed jobs need an error message"
            if artifact_location is not None:
                return "failed jobs cannot carry an artifact"
        elif artifact_location is not None or error is not None:
            return f"{new_status.value} jobs carry neither artifact nor error"
        if filename is not None and new_status != JobStatus.COMPLETED:
            return "only completed jobs carry a filename"
        return None

    def delete(self, job_id: str) -> bool:
        """
        Remove a job and request deletion of its artifact.

        Returns:
            True if a job was removed, False if the id was unknown
        """
        with self._lock:
            record = self._jobs.pop(job_id, None)

        if record is None:
            return False

        if record.artifact_location:
            self._discard_artifact(record.artifact_location)
        logger.info("Job %s deleted", job_id)
        return True

    def _discard_artifact(self, location: str) -> None:
        if self.artifact_store is None:
            return
        try:
            self.artifact_store.delete(location)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error deleting artifact %s: %s", location, exc)

    def sweep_expired(self, max_age: timedelta | None = None, now: datetime | None = None) -> int:
        """
        Delete every job created more than ``max_age`` before ``now``.

        Jobs are removed regardless of status, including ones still
        processing; their GenerationService run notices on its next
        transition.

        Returns:
            Number of jobs removed
        """
        max_age = self.max_age if max_age is None else max_age
        now = self._clock() if now is None else now
        with self._lock:
            expired = [job_id for job_id, record in self._jobs.items() if now - record.created_at > max_age]

        removed = sum(1 for job_id in expired if self.delete(job_id))
        if removed:
            logger.info("Sweep removed %d expired job(s)", removed)
        return removed

    def start(self) -> None:
        """Start the background sweeper thread (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = Thread(target=self._sweep_loop, name="job-sweeper", daemon=True)
        self._sweeper.start()
        logger.info(
            "Job sweeper started (interval=%s, max_age=%s)",
            self.sweep_interval,
            self.max_age,
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the sweeper thread to exit and wait for it."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None
            logger.info("Job sweeper stopped")

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval.total_seconds()):
            try:
                self.sweep_expired()
            except Exception:  # noqa: BLE001
                logger.exception("Job sweep failed")
