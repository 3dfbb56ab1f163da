from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from catalog_sync.api.deps import get_search_sync, get_supervisor
from catalog_sync.schemas.search import (
    SearchSyncAcceptedOut,
    SearchSyncProgressOut,
    SearchSyncResultOut,
    SearchSyncStatusOut,
)
from catalog_sync.services.search_sync import SearchIndexSynchronizer
from catalog_sync.services.task_supervisor import BackgroundTaskSupervisor


router = APIRouter()


@router.post("/sync", response_model=SearchSyncAcceptedOut, status_code=202)
async def trigger_search_sync(
    search_sync: SearchIndexSynchronizer = Depends(get_search_sync),
    supervisor: BackgroundTaskSupervisor = Depends(get_supervisor),
) -> SearchSyncAcceptedOut:
    if search_sync.is_running:
        raise HTTPException(status_code=409, detail="A search index rebuild is already running")
    supervisor.spawn(search_sync.full_rebuild(), name="search:full-rebuild:manual")
    return SearchSyncAcceptedOut(message="Search index rebuild started", status_url="/api/v1/search/sync/status")


@router.get("/sync/status", response_model=SearchSyncStatusOut)
async def search_sync_status(
    search_sync: SearchIndexSynchronizer = Depends(get_search_sync),
) -> SearchSyncStatusOut:
    progress = search_sync.progress
    last = search_sync.last_result
    return SearchSyncStatusOut(
        enabled=True,
        is_running=search_sync.is_running,
        progress=SearchSyncProgressOut(
            stage=progress.stage,
            superseded_loaded=progress.superseded_loaded,
            products_processed=progress.products_processed,
            total_products=progress.total_products,
            message=progress.message,
        ),
        last_result=(
            SearchSyncResultOut(
                success=last.success,
                total_products=last.total_products,
                total_superseded=last.total_superseded,
                new_collection=last.new_collection,
                old_collection=last.old_collection,
                duration_ms=last.duration_ms,
                error=last.error,
            )
            if last is not None
            else None
        ),
    )
