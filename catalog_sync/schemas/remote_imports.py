from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from catalog_sync.core.enums import ImportEntityType, RemoteScanStatus, RemoteScanTrigger


class RemoteFolderResultOut(BaseModel):
    entity_type: ImportEntityType
    found: int
    processed: int
    skipped: int
    failed: int
    errors: list[str]


class RemoteScanSummaryOut(BaseModel):
    run_id: UUID
    triggered_by: RemoteScanTrigger
    status: RemoteScanStatus
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    total_found: int
    total_processed: int
    total_skipped: int
    total_failed: int
    folders: list[RemoteFolderResultOut]
    errors: list[str]


class RemoteScanRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    triggered_by: RemoteScanTrigger
    status: RemoteScanStatus | None
    started_at: datetime
    completed_at: datetime | None
    duration_ms: int | None
    total_files_found: int
    total_files_processed: int
    total_files_skipped: int
    total_files_failed: int
    results: dict[str, Any] | None
    errors: list[str] | None


class RemoteScanRunListResponse(BaseModel):
    items: list[RemoteScanRunOut]
    total: int
    limit: int
    offset: int


class RemoteImportStatusOut(BaseModel):
    is_running: bool
    configured: bool
    scheduler_enabled: bool
