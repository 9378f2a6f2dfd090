from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from omegaconf import DictConfig

from .artifact_store import ArtifactStore
from .configuration import configure_logging, is_production, make_runtime_config
from .errors import ArtifactNotFoundError, JobNotFoundError, RenderError, ValidationError
from .generation import GenerationService
from .job_manager import JobManager, JobRecord
from .localization import normalize_language
from .models import (
    CreateJobRequest,
    CreateJobResponse,
    DocumentTypeInfo,
    FontStatus,
    JobDetail,
    JobList,
    JobStatus,
)
from .renderer import (
    DocumentRenderer,
    PdfDocumentRenderer,
    describe_document_types,
    document_filename,
    validate_submission,
)
from .utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def get_job_manager(request: Request) -> JobManager:
    return request.app.state.job_manager


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service


def get_artifact_store(request: Request) -> ArtifactStore:
    return request.app.state.artifact_store


def _get_job_or_404(manager: JobManager, job_id: str) -> JobRecord:
    try:
        return manager.get(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc


@router.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@router.get("/document-types", response_model=List[DocumentTypeInfo])
def list_document_types() -> List[DocumentTypeInfo]:
    return [DocumentTypeInfo.model_validate(info) for info in describe_document_types()]


@router.get("/jobs", response_model=JobList)
def list_jobs(manager: JobManager = Depends(get_job_manager)) -> JobList:
    jobs = [record.to_summary() for record in manager.list_all()]
    return JobList(total_jobs=len(jobs), jobs=jobs)


@router.post("/jobs", response_model=CreateJobResponse, status_code=202)
def create_job(
    payload: CreateJobRequest,
    manager: JobManager = Depends(get_job_manager),
    service: GenerationService = Depends(get_generation_service),
) -> CreateJobResponse:
    try:
        validate_submission(payload.document_type, payload.form_data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    language = normalize_language(payload.language)
    job_id = manager.create(payload.document_type, dict(payload.form_data or {}), language)
    service.submit(job_id)

    return CreateJobResponse(job_id=job_id, status=JobStatus.PENDING, status_url=f"/jobs/{job_id}")


@router.get("/jobs/{job_id}", response_model=JobDetail)
def get_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> JobDetail:
    return _get_job_or_404(manager, job_id).to_detail()


@router.get("/jobs/{job_id}/download")
def download_job(
    job_id: str,
    manager: JobManager = Depends(get_job_manager),
    store: ArtifactStore = Depends(get_artifact_store),
    service: GenerationService = Depends(get_generation_service),
) -> Response:
    job = _get_job_or_404(manager, job_id)
    if job.status != JobStatus.COMPLETED or not job.artifact_location:
        raise HTTPException(status_code=404, detail=f"Document not available (status: {job.status.value})")

    try:
        data = store.read(job.artifact_location)
    except ArtifactNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Document file not found") from exc

    return Response(
        content=data,
        media_type=service.renderer.media_type,
        headers={"Content-Disposition": f'attachment; filename="{job.filename}"'},
    )


@router.delete("/jobs/{job_id}")
def delete_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> Dict[str, str]:
    if not manager.delete(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    return {"status": "deleted"}


@router.get("/fonts", response_model=FontStatus)
def font_status(service: GenerationService = Depends(get_generation_service)) -> FontStatus:
    info = service.renderer.font_status()
    status = (
        "Custom font loaded"
        if info["customFontLoaded"]
        else "Custom font not available - using built-in Helvetica"
    )
    return FontStatus(
        font=info["font"],
        font_path=info["fontPath"],
        custom_font_loaded=info["customFontLoaded"],
        status=status,
    )


# Path suffix of the per-type /generate-<suffix> routes -> document type
LEGACY_GENERATE_ROUTES = {
    "proforma": "proforma-invoice",
    "invoice": "invoice",
    "packing-list": "packing-list",
    "technical": "technical-sheet",
    "credit-note": "credit-note",
    "debit-note": "debit-note",
    "order-confirmation": "order-confirmation",
    "siparis": "siparis",
    "price-offer": "price-offer",
}


def _render_now(
    renderer: DocumentRenderer,
    document_type: Optional[str],
    form_data: Any,
    language: Optional[str],
) -> Response:
    """
    Validate and render within the request, answering with the PDF itself.

    Kept for clients that predate the job API; large documents should go
    through ``POST /jobs`` instead.
    """
    try:
        validate_submission(document_type, form_data)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not renderer.supports(document_type):
        raise HTTPException(status_code=400, detail=f"Unsupported document type: {document_type}")

    language = normalize_language(language)
    try:
        data = renderer.render(document_type, dict(form_data or {}), language)
    except RenderError as exc:
        logger.error("PDF generation error for %s: %s", document_type, exc)
        raise HTTPException(status_code=500, detail=f"PDF generation failed: {exc}") from exc

    filename = document_filename(document_type, str(int(utcnow().timestamp() * 1000)))
    return Response(
        content=data,
        media_type=renderer.media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/generate")
def generate_document(
    payload: CreateJobRequest,
    service: GenerationService = Depends(get_generation_service),
) -> Response:
    return _render_now(service.renderer, payload.document_type, payload.form_data, payload.language)


@router.post("/generate-{variant}")
def generate_document_variant(
    variant: str,
    payload: CreateJobRequest,
    service: GenerationService = Depends(get_generation_service),
) -> Response:
    document_type = LEGACY_GENERATE_ROUTES.get(variant)
    if document_type is None:
        raise HTTPException(status_code=404, detail=f"Unknown generate endpoint: generate-{variant}")
    return _render_now(service.renderer, document_type, payload.form_data, payload.language)


def create_app(config: Optional[DictConfig] = None, renderer: Optional[DocumentRenderer] = None) -> FastAPI:
    """
    Build the application and its single JobManager/GenerationService pair.

    The artifact directory is resolved here; if no directory is usable the
    StorageError propagates and the process does not start.
    """
    config = config if config is not None else make_runtime_config()
    configure_logging(config)

    store = ArtifactStore(Path(config.storage.output_dir))
    manager = JobManager(
        artifact_store=store,
        max_age=timedelta(hours=config.jobs.max_age_hours),
        sweep_interval=timedelta(minutes=config.jobs.sweep_interval_minutes),
    )
    service = GenerationService(
        manager,
        renderer if renderer is not None else PdfDocumentRenderer(font_path=config.rendering.font_path),
        store,
        max_workers=config.generation.max_workers,
        include_traceback=not is_production(config),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        manager.start()
        logger.info("Document API ready; artifacts in %s", store.output_dir)
        yield
        manager.stop()
        service.shutdown(wait=False)

    app = FastAPI(title=config.app.title, version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors.allow_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.artifact_store = store
    app.state.job_manager = manager
    app.state.generation_service = service
    app.include_router(router)
    return app

