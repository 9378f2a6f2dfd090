"""
Docgen Backend - REST API for asynchronous business document generation

This package provides a FastAPI-based web service that turns structured form
data into PDF business documents (invoices, packing lists, credit and debit
notes, order confirmations, price offers, technical sheets). It enables:

- Validated job submission that returns a job id immediately
- Background rendering on a worker pool, off the request path
- Job status polling and artifact download
- Automatic expiry of old jobs and their files

Key Components:
    - main: FastAPI application factory and HTTP endpoint definitions
    - job_manager: Job registry, state machine and expiry sweep
    - generation: Background execution of rendering jobs
    - artifact_store: Filesystem storage for finished documents
    - renderer: Document type catalogue and the reportlab PDF renderer
    - localization: Language normalisation and document strings
    - models: Pydantic models for request/response validation
    - configuration: Config loading and merging logic
    - errors: Error taxonomy
    - utils: Filesystem, id and clock helpers

Usage:
    Run the API server with:
        uvicorn --factory docgen_backend.main:create_app --host 0.0.0.0 --port 3001

Architecture Principles:
    - One JobManager per process, injected into the HTTP layer
    - Thread-safe job state management
    - Request latency independent of rendering cost
    - No durability across restarts: jobs live in memory only
"""
