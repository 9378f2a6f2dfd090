from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateJobRequest(CamelModel):
    # formData is validated by the renderer catalogue so that bad shapes give 400, not 422
    document_type: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("documentType", "docType", "formType", "document_type"),
    )
    form_data: Any = None
    language: Optional[str] = None


class CreateJobResponse(CamelModel):
    job_id: str
    status: JobStatus
    status_url: str


class JobSummary(CamelModel):
    job_id: str
    status: JobStatus
    document_type: str
    language: str
    created_at: datetime
    updated_at: datetime
    download_url: Optional[str] = None
    error: Optional[str] = None


class JobDetail(JobSummary):
    form_data: Dict[str, Any]
    filename: Optional[str] = None


class JobList(CamelModel):
    total_jobs: int
    jobs: List[JobSummary]


class DocumentTypeInfo(CamelModel):
    name: str
    required_fields: List[List[str]]


class FontStatus(CamelModel):
    font: Optional[str] = None
    font_path: Optional[str] = None
    custom_font_loaded: bool
    status: str
