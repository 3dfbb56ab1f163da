from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from catalog_sync.core.enums import ImportEntityType, ImportJobStatus, ImportRunStatus, ImportSourceType


class ImportRowErrorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    row_number: int
    row_data: dict[str, Any] | None
    errors: list[str]
    created_at: datetime


class ImportRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: ImportEntityType
    source_type: ImportSourceType
    status: ImportRunStatus
    file_name: str
    file_size: int
    imported_by: str | None
    total_rows: int | None
    success_count: int
    error_count: int
    error_message: str | None
    started_at: datetime
    completed_at: datetime | None
    duration_ms: int | None
    source_file_id: str | None
    source_file_modified_at: datetime | None
    created_at: datetime


class ImportRunWithErrorsOut(ImportRunOut):
    errors: list[ImportRowErrorOut] = Field(default_factory=list)


class ImportRunListResponse(BaseModel):
    items: list[ImportRunWithErrorsOut]
    total: int
    page: int
    limit: int
    total_pages: int


class ImportRowErrorListResponse(BaseModel):
    items: list[ImportRowErrorOut]
    total: int
    page: int
    limit: int
    total_pages: int


class ImportStatsOut(BaseModel):
    total: int
    by_status: dict[str, int]
    by_entity_type: dict[str, int]
    total_success_rows: int
    total_error_rows: int


class ImportRowErrorPreview(BaseModel):
    row_number: int
    row_data: dict[str, Any] | None
    errors: list[str]


class ImportResultOut(BaseModel):
    """Outcome of an import that ran inside the request."""

    import_id: UUID
    entity_type: ImportEntityType
    total_rows: int
    success_count: int
    error_count: int
    errors: list[ImportRowErrorPreview]


class ImportAcceptedOut(BaseModel):
    job_id: UUID
    total_rows: int
    status_url: str


class ImportProgressOut(BaseModel):
    current: int
    total: int | None
    percentage: int


class ImportJobResultsOut(BaseModel):
    total_rows: int
    success_count: int
    error_count: int


class ImportJobStatusOut(BaseModel):
    job_id: UUID
    status: ImportJobStatus
    progress: ImportProgressOut
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    results: ImportJobResultsOut | None = None
