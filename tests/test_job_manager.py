"""
Tests for the JobManager registry and state machine.

Tests cover:
- Job creation and id uniqueness
- Legal and illegal status transitions
- Artifact/error mutual exclusivity
- Deletion and artifact cleanup
- Expiry sweep and the background sweeper thread
"""

import re
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from docgen_backend.errors import InvalidTransitionError, JobNotFoundError
from docgen_backend.job_manager import JobManager
from docgen_backend.models import JobStatus


def _complete(manager, job_id, location="/tmp/doc.pdf"):
    manager.transition(job_id, JobStatus.PROCESSING)
    return manager.transition(job_id, JobStatus.COMPLETED, artifact_location=location, filename="doc.pdf")


class TestCreate:
    """Tests for JobManager.create and get."""

    def test_create_registers_pending_job(self, manager, clock):
        """A new job is pending, untouched, and timestamped by the clock."""
        job_id = manager.create("invoice", {"INVOICE NUMBER": "INV-1"}, "en")
        job = manager.get(job_id)

        assert job.status == JobStatus.PENDING
        assert job.document_type == "invoice"
        assert job.form_data == {"INVOICE NUMBER": "INV-1"}
        assert job.language == "en"
        assert job.created_at == job.updated_at == clock.now
        assert job.artifact_location is None
        assert job.error is None
        assert job.download_url is None

    def test_job_id_format(self, manager):
        """Ids combine a millisecond timestamp and a base36 suffix."""
        job_id = manager.create("invoice", {}, "en")
        assert re.fullmatch(r"job_\d+_[0-9a-z]{9}", job_id)

    def test_concurrent_creation_yields_distinct_ids(self):
        """Creating many jobs from many threads never reuses an id."""
        manager = JobManager()
        with ThreadPoolExecutor(max_workers=16) as pool:
            ids = list(pool.map(lambda i: manager.create("invoice", {"n": i}, "en"), range(500)))

        assert len(set(ids)) == 500
        assert len(manager) == 500

    def test_colliding_id_is_regenerated(self):
        """A duplicate id from the factory is replaced by a fresh one."""
        ids = iter(["job_1", "job_1", "job_2"])
        manager = JobManager(id_factory=lambda: next(ids))

        assert manager.create("invoice", {}, "en") == "job_1"
        assert manager.create("invoice", {}, "en") == "job_2"

    def test_get_unknown_job_raises(self, manager):
        """Unknown ids raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            manager.get("job_missing")

    def test_get_returns_snapshot(self, manager):
        """Mutating a returned record does not change the registry."""
        job_id = manager.create("invoice", {}, "en")
        snapshot = manager.get(job_id)
        snapshot.status = JobStatus.FAILED

        assert manager.get(job_id).status == JobStatus.PENDING

    def test_list_all_newest_first(self, manager, clock):
        """list_all orders jobs by creation time, newest first."""
        first = manager.create("invoice", {}, "en")
        clock.advance(seconds=1)
        second = manager.create("packing-list", {}, "tr")

        assert [job.id for job in manager.list_all()] == [second, first]


class TestTransitions:
    """Tests for the job state machine."""

    def test_success_path(self, manager, clock):
        """pending -> processing -> completed sets artifact and download URL."""
        job_id = manager.create("invoice", {}, "en")
        clock.advance(seconds=1)
        processing = manager.transition(job_id, JobStatus.PROCESSING)
        clock.advance(seconds=1)
        completed = manager.transition(
            job_id, JobStatus.COMPLETED, artifact_location="/tmp/INVOICE.pdf", filename="INVOICE.pdf"
        )

        assert processing.status == JobStatus.PROCESSING
        assert processing.artifact_location is None and processing.error is None
        assert completed.status == JobStatus.COMPLETED
        assert completed.artifact_location == "/tmp/INVOICE.pdf"
        assert completed.filename == "INVOICE.pdf"
        assert completed.download_url == f"/jobs/{job_id}/download"
        assert completed.error is None
        assert completed.updated_at > processing.updated_at > completed.created_at

    def test_failure_path(self, manager):
        """pending -> processing -> failed records the error and no artifact."""
        job_id = manager.create("invoice", {}, "en")
        manager.transition(job_id, JobStatus.PROCESSING)
        failed = manager.transition(job_id, JobStatus.FAILED, error="bad template")

        assert failed.status == JobStatus.FAILED
        assert failed.error == "bad template"
        assert failed.artifact_location is None
        assert failed.download_url is None

    def test_status_accepts_plain_strings(self, manager):
        """Status values may be given as their string form."""
        job_id = manager.create("invoice", {}, "en")
        assert manager.transition(job_id, "processing").status == JobStatus.PROCESSING

    @pytest.mark.parametrize(
        "path",
        [
            [JobStatus.COMPLETED],
            [JobStatus.FAILED],
            [JobStatus.PENDING],
            [JobStatus.PROCESSING, JobStatus.PROCESSING],
            [JobStatus.PROCESSING, JobStatus.PENDING],
        ],
    )
    def test_illegal_transitions_rejected(self, manager, path):
        """Transitions outside the state machine raise InvalidTransitionError."""
        job_id = manager.create("invoice", {}, "en")
        *legal, illegal = path
        for status in legal:
            manager.transition(job_id, status)

        with pytest.raises(InvalidTransitionError):
            manager.transition(job_id, illegal, artifact_location="/tmp/x.pdf", error="x")

    def test_terminal_states_are_final(self, manager):
        """Completed and failed jobs accept no further transitions."""
        completed_id = manager.create("invoice", {}, "en")
        _complete(manager, completed_id)
        failed_id = manager.create("invoice", {}, "en")
        manager.transition(failed_id, JobStatus.PROCESSING)
        manager.transition(failed_id, JobStatus.FAILED, error="boom")

        with pytest.raises(InvalidTransitionError):
            manager.transition(completed_id, JobStatus.FAILED, error="late failure")
        with pytest.raises(InvalidTransitionError):
            manager.transition(failed_id, JobStatus.COMPLETED, artifact_location="/tmp/x.pdf")

        assert manager.get(completed_id).error is None
        assert manager.get(failed_id).error == "boom"

    def test_rejected_transition_leaves_job_unchanged(self, manager, clock):
        """A rejected transition neither changes status nor stamps updated_at."""
        job_id = manager.create("invoice", {}, "en")
        clock.advance(seconds=5)
        with pytest.raises(InvalidTransitionError):
            manager.transition(job_id, JobStatus.COMPLETED, artifact_location="/tmp/x.pdf")

        job = manager.get(job_id)
        assert job.status == JobStatus.PENDING
        assert job.updated_at == job.created_at

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"filename": "x.pdf"},
            {"artifact_location": "/tmp/x.pdf"},
            {"artifact_location": "/tmp/x.pdf", "filename": "x.pdf", "error": "boom"},
        ],
    )
    def test_completed_requires_artifact_and_filename(self, manager, kwargs):
        """Completing needs an artifact location, a download filename and no error."""
        job_id = manager.create("invoice", {}, "en")
        manager.transition(job_id, JobStatus.PROCESSING)
        with pytest.raises(InvalidTransitionError):
            manager.transition(job_id, JobStatus.COMPLETED, **kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"error": ""},
            {"error": "boom", "artifact_location": "/tmp/x.pdf"},
        ],
    )
    def test_failed_requires_error_only(self, manager, kwargs):
        """Failing needs a non-empty error and no artifact location."""
        job_id = manager.create("invoice", {}, "en")
        manager.transition(job_id, JobStatus.PROCESSING)
        with pytest.raises(InvalidTransitionError):
            manager.transition(job_id, JobStatus.FAILED, **kwargs)

    def test_processing_carries_no_payload(self, manager):
        """Starting generation must not attach an artifact or error."""
        job_id = manager.create("invoice", {}, "en")
        with pytest.raises(InvalidTransitionError):
            manager.transition(job_id, JobStatus.PROCESSING, error="too early")

    def test_transition_unknown_job_raises(self, manager):
        """Transitions on unknown ids raise JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            manager.transition("job_missing", JobStatus.PROCESSING)

    def test_updated_at_never_moves_backwards(self, manager, clock):
        """updated_at stays monotonic even if the clock steps back."""
        job_id = manager.create("invoice", {}, "en")
        clock.advance(minutes=-10)
        job = manager.transition(job_id, JobStatus.PROCESSING)

        assert job.updated_at == job.created_at

    def test_observed_statuses_are_monotonic(self, manager):
        """Statuses seen across a lifecycle follow pending, processing, terminal."""
        order = [JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.COMPLETED]
        job_id = manager.create("invoice", {}, "en")
        observed = [manager.get(job_id).status]
        manager.transition(job_id, JobStatus.PROCESSING)
        observed.append(manager.get(job_id).status)
        manager.transition(job_id, JobStatus.COMPLETED, artifact_location="/tmp/x.pdf", filename="x.pdf")
        observed.append(manager.get(job_id).status)

        assert observed == order


class TestDelete:
    """Tests for JobManager.delete."""

    def test_delete_removes_job(self, manager):
        """Deleting an existing job returns True and forgets it."""
        job_id = manager.create("invoice", {}, "en")

        assert manager.delete(job_id) is True
        with pytest.raises(JobNotFoundError):
            manager.get(job_id)

    def test_delete_unknown_job_returns_false(self, manager):
        """Deleting an unknown id reports that nothing was removed."""
        assert manager.delete("job_missing") is False

    def test_delete_completed_job_deletes_artifact(self, manager, recording_store):
        """Deleting a completed job also deletes its stored artifact."""
        job_id = manager.create("invoice", {}, "en")
        _complete(manager, job_id, location="/tmp/INVOICE_x.pdf")

        manager.delete(job_id)

        assert recording_store.deleted == ["/tmp/INVOICE_x.pdf"]

    def test_delete_without_artifact_skips_store(self, manager, recording_store):
        """Jobs without an artifact do not touch the store."""
        job_id = manager.create("invoice", {}, "en")
        manager.delete(job_id)

        assert recording_store.deleted == []

    def test_artifact_delete_failure_is_swallowed(self, clock, recording_store, caplog):
        """Errors from the store are logged and never reach the caller."""
        store = recording_store
        store.fail_on_delete = True
        manager = JobManager(artifact_store=store, clock=clock)
        job_id = manager.create("invoice", {}, "en")
        _complete(manager, job_id)

        assert manager.delete(job_id) is True
        assert store.deleted == ["/tmp/doc.pdf"]
        assert "Error deleting artifact" in caplog.text


class TestSweep:
    """Tests for expiry of old jobs."""

    def test_sweep_removes_only_expired_jobs(self, manager, clock):
        """Jobs older than max_age are removed, newer ones retained."""
        old_id = manager.create("invoice", {}, "en")
        clock.advance(hours=23)
        new_id = manager.create("invoice", {}, "en")
        clock.advance(hours=2)

        removed = manager.sweep_expired(timedelta(hours=24))

        assert removed == 1
        with pytest.raises(JobNotFoundError):
            manager.get(old_id)
        assert manager.get(new_id).status == JobStatus.PENDING

    def test_sweep_uses_configured_max_age(self, clock):
        """Without an argument the manager's own max_age applies."""
        manager = JobManager(max_age=timedelta(minutes=30), clock=clock)
        job_id = manager.create("invoice", {}, "en")
        clock.advance(minutes=31)

        assert manager.sweep_expired() == 1
        with pytest.raises(JobNotFoundError):
            manager.get(job_id)

    def test_sweep_ignores_status(self, manager, clock, recording_store):
        """Processing and completed jobs expire like any other; artifacts are deleted."""
        processing_id = manager.create("invoice", {}, "en")
        manager.transition(processing_id, JobStatus.PROCESSING)
        completed_id = manager.create("invoice", {}, "en")
        _complete(manager, completed_id, location="/tmp/old.pdf")

        removed = manager.sweep_expired(now=clock.now + timedelta(hours=25))

        assert removed == 2
        assert len(manager) == 0
        assert recording_store.deleted == ["/tmp/old.pdf"]

    def test_sweep_with_nothing_expired(self, manager):
        """A sweep over fresh jobs removes nothing."""
        manager.create("invoice", {}, "en")
        assert manager.sweep_expired() == 0
        assert len(manager) == 1


class TestSweeper:
    """Tests for the background sweeper thread."""

    def test_sweeper_removes_expired_jobs(self):
        """The sweeper thread sweeps on its own schedule."""
        manager = JobManager(max_age=timedelta(0), sweep_interval=timedelta(milliseconds=20))
        manager.create("invoice", {}, "en")
        manager.start()
        try:
            deadline = time.monotonic() + 3
            while len(manager) and time.monotonic() < deadline:
                time.sleep(0.01)
            assert len(manager) == 0
        finally:
            manager.stop()

    def test_start_is_idempotent_and_stop_is_prompt(self):
        """Starting twice keeps one thread; stop returns without waiting an interval."""
        manager = JobManager(sweep_interval=timedelta(hours=1))
        manager.start()
        thread = manager._sweeper
        manager.start()

        assert manager._sweeper is thread
        assert manager.sweeper_running

        started = time.monotonic()
        manager.stop()

        assert time.monotonic() - started < 2
        assert not manager.sweeper_running
