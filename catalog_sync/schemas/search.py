from __future__ import annotations

from pydantic import BaseModel

from catalog_sync.core.enums import SearchSyncStage


class SearchSyncProgressOut(BaseModel):
    stage: SearchSyncStage
    superseded_loaded: int
    products_processed: int
    total_products: int
    message: str


class SearchSyncResultOut(BaseModel):
    success: bool
    total_products: int
    total_superseded: int
    new_collection: str
    old_collection: str | None
    duration_ms: int
    error: str | None = None


class SearchSyncStatusOut(BaseModel):
    enabled: bool
    is_running: bool
    progress: SearchSyncProgressOut
    last_result: SearchSyncResultOut | None = None


class SearchSyncAcceptedOut(BaseModel):
    message: str
    status_url: str
