"""
Background execution of document generation jobs.

``GenerationService.submit`` hands a freshly created job to a worker thread
and returns at once, so the request that created the job never waits for
rendering. ``run`` then drives the job through
``pending -> processing -> completed | failed`` exactly once.
"""

from __future__ import annotations

import logging
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .artifact_store import ArtifactStore
from .errors import JobNotFoundError, ValidationError
from .job_manager import JobManager
from .models import JobStatus
from .renderer import DocumentRenderer, document_filename

logger = logging.getLogger(__name__)


class GenerationService:
    """
    Runs the renderer for jobs on a thread pool and records the outcome.

    All failures are terminal for the job; there is no retry. ``run`` never
    raises: rendering and storage errors become a ``failed`` job, and a
    failure to record that is logged as critical.
    """

    def __init__(
        self,
        job_manager: JobManager,
        renderer: DocumentRenderer,
        artifact_store: ArtifactStore,
        max_workers: int = 4,
        include_traceback: bool = True,
    ) -> None:
        """
        Args:
            job_manager: Registry whose jobs are generated
            renderer: Collaborator that produces document bytes
            artifact_store: Where finished documents are written
            max_workers: Number of documents rendered concurrently
            include_traceback: Append the stack trace to job errors (off in production)
        """
        self.job_manager = job_manager
        self.renderer = renderer
        self.artifact_store = artifact_store
        self.include_traceback = include_traceback
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="docgen-worker")

    def submit(self, job_id: str) -> Future:
        """Schedule ``run(job_id)`` in the background. Call once per job."""
        return self._executor.submit(self.run, job_id)

    def run(self, job_id: str) -> None:
        location: Optional[str] = None
        try:
            job = self.job_manager.transition(job_id, JobStatus.PROCESSING)
            logger.info("Starting document generation for job %s, documentType: %s", job_id, job.document_type)

            if not self.renderer.supports(job.document_type):
                raise ValidationError(f"Unsupported document type: {job.document_type}")

            data = self.renderer.render(job.document_type, job.form_data, job.language)
            filename = document_filename(job.document_type, job_id)
            location = self.artifact_store.save(data, filename)
            self.job_manager.transition(
                job_id,
                JobStatus.COMPLETED,
                artifact_location=location,
                filename=filename,
            )
            logger.info("Document generated successfully for job %s: %s", job_id, location)
        except JobNotFoundError:
            # Swept or deleted while rendering; nobody can download the result.
            logger.warning("Job %s no longer exists; discarding generation result", job_id)
            self._discard(location)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error generating document for job %s: %s", job_id, exc)
            self._discard(location)
            self._record_failure(job_id, self._describe(exc))

    def _describe(self, exc: Exception) -> str:
        message = str(exc) or type(exc).__name__
        if self.include_traceback:
            message = f"{message}\n{traceback.format_exc()}"
        return message

    def _discard(self, location: Optional[str]) -> None:
        if location:
            self.artifact_store.delete(location)

    def _record_failure(self, job_id: str, message: str) -> None:
        try:
            self.job_manager.transition(job_id, JobStatus.FAILED, error=message)
        except JobNotFoundError:
            logger.warning("Job %s no longer exists; failure not recorded", job_id)
        except Exception:  # noqa: BLE001
            logger.critical("Could not mark job %s as failed; leaving it in its last state", job_id, exc_info=True)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
