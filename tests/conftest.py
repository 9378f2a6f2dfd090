"""
Pytest configuration and fixtures for Docgen Backend tests.
"""

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from docgen_backend.artifact_store import ArtifactStore
from docgen_backend.configuration import make_runtime_config
from docgen_backend.job_manager import JobManager
from docgen_backend.main import create_app
from docgen_backend.models import JobStatus
from docgen_backend.renderer import DocumentRenderer


class StubRenderer(DocumentRenderer):
    """Renderer double returning fixed bytes, optionally failing or blocking."""

    def __init__(self, payload=b"PDF", error=None, gate=None):
        self.payload = payload
        self.error = error
        self.gate = gate
        self.started = threading.Event()
        self.calls = []

    def render(self, document_type, form_data, language):
        self.calls.append((document_type, dict(form_data), language))
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.error is not None:
            raise self.error
        return self.payload


class RecordingStore:
    """Artifact store double that remembers delete requests."""

    def __init__(self, fail_on_delete=False):
        self.deleted = []
        self.fail_on_delete = fail_on_delete

    def delete(self, location):
        self.deleted.append(location)
        if self.fail_on_delete:
            raise OSError("disk on fire")


class FrozenClock:
    """Deterministic clock for JobManager tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def recording_store():
    return RecordingStore()


@pytest.fixture
def manager(clock, recording_store):
    """A JobManager with a frozen clock and a recording artifact store."""
    return JobManager(artifact_store=recording_store, clock=clock)


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "documents"


@pytest.fixture
def artifact_store(output_dir):
    return ArtifactStore(output_dir)


@pytest.fixture
def renderer_factory():
    """Build StubRenderer instances with custom behaviour."""
    return StubRenderer


@pytest.fixture
def renderer(renderer_factory):
    return renderer_factory()


@pytest.fixture
def config(output_dir):
    return make_runtime_config({"storage": {"output_dir": str(output_dir)}, "generation": {"max_workers": 2}})


@pytest.fixture
def app(config, renderer):
    application = create_app(config, renderer=renderer)
    yield application
    application.state.generation_service.shutdown(wait=True)


@pytest.fixture
def client(app):
    """Create a test client for the FastAPI app (lifespan not started)."""
    return TestClient(app)


@pytest.fixture
def wait_for_terminal():
    """Return a helper that polls a JobManager until a job is completed or failed."""

    def _wait(job_manager, job_id, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            job = job_manager.get(job_id)
            if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
                return job
            time.sleep(0.01)
        raise AssertionError(f"Job {job_id} did not finish within {timeout}s")

    return _wait
