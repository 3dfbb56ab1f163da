from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.api.deps import get_orchestrator
from catalog_sync.core.config import get_settings
from catalog_sync.core.db import get_session
from catalog_sync.core.enums import RemoteScanTrigger
from catalog_sync.models.remote_scan_run import RemoteScanRun
from catalog_sync.schemas.remote_imports import (
    RemoteFolderResultOut,
    RemoteImportStatusOut,
    RemoteScanRunListResponse,
    RemoteScanRunOut,
    RemoteScanSummaryOut,
)
from catalog_sync.services.remote_import import RemoteImportAlreadyRunningError, RemoteImportOrchestrator


router = APIRouter()


@router.post("/run", response_model=RemoteScanSummaryOut)
async def trigger_remote_import(
    orchestrator: RemoteImportOrchestrator = Depends(get_orchestrator),
) -> RemoteScanSummaryOut:
    try:
        summary = await orchestrator.run(RemoteScanTrigger.MANUAL)
    except RemoteImportAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    return RemoteScanSummaryOut(
        run_id=summary.run_id,
        triggered_by=summary.triggered_by,
        status=summary.status,
        started_at=summary.started_at,
        completed_at=summary.completed_at,
        duration_ms=summary.duration_ms,
        total_found=summary.total_found,
        total_processed=summary.total_processed,
        total_skipped=summary.total_skipped,
        total_failed=summary.total_failed,
        folders=[
            RemoteFolderResultOut(
                entity_type=f.entity_type,
                found=f.found,
                processed=f.processed,
                skipped=f.skipped,
                failed=f.failed,
                errors=f.errors,
            )
            for f in summary.folders
        ],
        errors=summary.errors,
    )


@router.get("/status", response_model=RemoteImportStatusOut)
async def remote_import_status(
    orchestrator: RemoteImportOrchestrator = Depends(get_orchestrator),
) -> RemoteImportStatusOut:
    settings = get_settings()
    return RemoteImportStatusOut(
        is_running=orchestrator.is_running,
        configured=settings.sharepoint_configured,
        scheduler_enabled=settings.remote_import_enabled,
    )


@router.get("/runs", response_model=RemoteScanRunListResponse)
async def list_remote_import_runs(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    triggered_by: RemoteScanTrigger | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> RemoteScanRunListResponse:
    filters = []
    if triggered_by is not None:
        filters.append(RemoteScanRun.triggered_by == triggered_by)

    total = (await session.execute(select(func.count()).select_from(RemoteScanRun).where(*filters))).scalar_one()
    rows = (
        await session.execute(
            select(RemoteScanRun)
            .where(*filters)
            .order_by(RemoteScanRun.started_at.desc())
            .offset(offset)
            .limit(limit)
        )
    ).scalars().all()
    return RemoteScanRunListResponse(
        items=[RemoteScanRunOut.model_validate(r) for r in rows],
        total=int(total),
        limit=limit,
        offset=offset,
    )


@router.get("/runs/{run_id}", response_model=RemoteScanRunOut)
async def get_remote_import_run(run_id: uuid.UUID, session: AsyncSession = Depends(get_session)) -> RemoteScanRunOut:
    row = await session.get(RemoteScanRun, run_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Remote import run not found")
    return RemoteScanRunOut.model_validate(row)
