from __future__ import annotations

import math
import uuid

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.api.deps import get_job_tracker, get_pipeline
from catalog_sync.core.config import get_settings
from catalog_sync.core.db import get_session
from catalog_sync.core.enums import ImportEntityType, ImportJobStatus, ImportRunStatus
from catalog_sync.core.security import require_basic_auth
from catalog_sync.models.import_run import ImportRun
from catalog_sync.schemas.imports import (
    ImportAcceptedOut,
    ImportJobResultsOut,
    ImportJobStatusOut,
    ImportProgressOut,
    ImportResultOut,
    ImportRowErrorListResponse,
    ImportRowErrorOut,
    ImportRowErrorPreview,
    ImportRunListResponse,
    ImportRunOut,
    ImportRunWithErrorsOut,
    ImportStatsOut,
)
from catalog_sync.services.import_jobs import ImportJobTracker
from catalog_sync.services.import_pipeline import ImportPipeline
from catalog_sync.services.import_runs import (
    build_error_workbook,
    build_template_workbook,
    import_stats,
    list_import_errors,
    list_import_runs,
)
from catalog_sync.services.import_strategies import IMPORT_STRATEGIES


router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


async def _read_upload(file: UploadFile) -> tuple[bytes, str]:
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return content, file.filename or "upload"


async def _run_inline_import(
    *,
    entity_type: ImportEntityType,
    file: UploadFile,
    pipeline: ImportPipeline,
    username: str,
) -> ImportResultOut:
    content, file_name = await _read_upload(file)
    try:
        outcome = await pipeline.import_file(
            content,
            file_name=file_name,
            entity_type=entity_type,
            imported_by=username,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    preview_limit = get_settings().import_error_preview_limit
    return ImportResultOut(
        import_id=outcome.run_id,
        entity_type=outcome.entity_type,
        total_rows=outcome.total_rows,
        success_count=outcome.success_count,
        error_count=outcome.error_count,
        errors=[
            ImportRowErrorPreview(row_number=e.row_number, row_data=e.row_data, errors=e.errors)
            for e in outcome.errors[:preview_limit]
        ],
    )


@router.post("/products", response_model=ImportAcceptedOut, status_code=202)
async def import_products(
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline),
    username: str = Depends(require_basic_auth),
) -> ImportAcceptedOut:
    content, file_name = await _read_upload(file)
    try:
        run = await pipeline.start_background_import(
            content,
            file_name=file_name,
            entity_type=ImportEntityType.PRODUCTS,
            imported_by=username,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ImportAcceptedOut(
        job_id=run.id,
        total_rows=run.total_rows or 0,
        status_url=f"/api/v1/imports/status/{run.id}",
    )


@router.post("/superseded", response_model=ImportResultOut)
async def import_superseded(
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline),
    username: str = Depends(require_basic_auth),
) -> ImportResultOut:
    return await _run_inline_import(
        entity_type=ImportEntityType.SUPERSEDED_MAPPING, file=file, pipeline=pipeline, username=username
    )


@router.post("/dealers", response_model=ImportResultOut)
async def import_dealers(
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline),
    username: str = Depends(require_basic_auth),
) -> ImportResultOut:
    return await _run_inline_import(entity_type=ImportEntityType.DEALERS, file=file, pipeline=pipeline, username=username)


@router.post("/backorders", response_model=ImportResultOut)
async def import_backorders(
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline),
    username: str = Depends(require_basic_auth),
) -> ImportResultOut:
    return await _run_inline_import(
        entity_type=ImportEntityType.BACKORDER, file=file, pipeline=pipeline, username=username
    )


@router.post("/order-status", response_model=ImportResultOut)
async def import_order_status(
    file: UploadFile = File(...),
    pipeline: ImportPipeline = Depends(get_pipeline),
    username: str = Depends(require_basic_auth),
) -> ImportResultOut:
    return await _run_inline_import(
        entity_type=ImportEntityType.ORDER_STATUS, file=file, pipeline=pipeline, username=username
    )


@router.get("", response_model=ImportRunListResponse)
async def list_imports(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: ImportRunStatus | None = Query(default=None),
    entity_type: ImportEntityType | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> ImportRunListResponse:
    runs, total, previews = await list_import_runs(
        session,
        page=page,
        limit=limit,
        status=status,
        entity_type=entity_type,
        error_preview_limit=get_settings().import_error_preview_limit,
    )
    items = [
        ImportRunWithErrorsOut(
            **ImportRunOut.model_validate(run).model_dump(),
            errors=[ImportRowErrorOut.model_validate(e) for e in previews.get(run.id, [])],
        )
        for run in runs
    ]
    return ImportRunListResponse(
        items=items, total=total, page=page, limit=limit, total_pages=_total_pages(total, limit)
    )


@router.get("/stats", response_model=ImportStatsOut)
async def get_import_stats(session: AsyncSession = Depends(get_session)) -> ImportStatsOut:
    stats = await import_stats(session)
    return ImportStatsOut(
        total=stats.total,
        by_status=stats.by_status,
        by_entity_type=stats.by_entity_type,
        total_success_rows=stats.total_success_rows,
        total_error_rows=stats.total_error_rows,
    )


@router.get("/templates/{entity_type}")
async def download_import_template(entity_type: ImportEntityType) -> Response:
    contract = IMPORT_STRATEGIES[entity_type].headers
    filename = f"{entity_type.lower()}_template.xlsx"
    return Response(
        content=build_template_workbook(contract),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/status/{run_id}", response_model=ImportJobStatusOut)
async def get_import_status(
    run_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    tracker: ImportJobTracker = Depends(get_job_tracker),
) -> ImportJobStatusOut:
    run = await session.get(ImportRun, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Import not found")

    job = tracker.get(str(run_id))
    if job is not None:
        status = job.status
        total = job.progress.total
        current = job.progress.current
        error = job.error
        completed_at = job.completed_at
    else:
        # Evicted or from before a restart: the durable row is all there is.
        status = ImportJobStatus(run.status.lower())
        total = run.total_rows
        if run.status == ImportRunStatus.COMPLETED:
            current = total or 0
        else:
            current = run.success_count + run.error_count
        error = run.error_message
        completed_at = run.completed_at

    if status == ImportJobStatus.COMPLETED:
        percentage = 100
    elif total:
        percentage = min(100, round(current * 100 / total))
    else:
        percentage = 0

    results = None
    if status == ImportJobStatus.COMPLETED:
        results = ImportJobResultsOut(
            total_rows=run.total_rows or 0,
            success_count=run.success_count,
            error_count=run.error_count,
        )

    return ImportJobStatusOut(
        job_id=run.id,
        status=status,
        progress=ImportProgressOut(current=current, total=total, percentage=percentage),
        started_at=run.started_at,
        completed_at=completed_at,
        error=error,
        results=results,
    )


async def _get_run_or_404(session: AsyncSession, import_id: uuid.UUID) -> ImportRun:
    run = await session.get(ImportRun, import_id)
    if run is None or not run.is_active:
        raise HTTPException(status_code=404, detail="Import not found")
    return run


@router.get("/{import_id}", response_model=ImportRunOut)
async def get_import(import_id: uuid.UUID, session: AsyncSession = Depends(get_session)) -> ImportRunOut:
    return ImportRunOut.model_validate(await _get_run_or_404(session, import_id))


@router.get("/{import_id}/errors", response_model=ImportRowErrorListResponse)
async def get_import_errors(
    import_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> ImportRowErrorListResponse:
    await _get_run_or_404(session, import_id)
    rows, total = await list_import_errors(session, import_id, page=page, limit=limit)
    return ImportRowErrorListResponse(
        items=[ImportRowErrorOut.model_validate(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=_total_pages(total, limit),
    )


@router.get("/{import_id}/errors/export")
async def export_import_errors(import_id: uuid.UUID, session: AsyncSession = Depends(get_session)) -> Response:
    run = await _get_run_or_404(session, import_id)
    rows, _ = await list_import_errors(session, import_id, limit=0)
    filename = f"import_errors_{run.entity_type.lower()}_{run.id}.xlsx"
    return Response(
        content=build_error_workbook(rows),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
