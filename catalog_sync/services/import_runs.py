from __future__ import annotations

import io
import json
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Font
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import ImportEntityType, ImportRunStatus, ImportSourceType
from catalog_sync.models.base import utcnow
from catalog_sync.models.import_run import ImportRowError, ImportRun
from catalog_sync.services.import_rows import RowError
from catalog_sync.services.tabular import HeaderContract


ERROR_EXPORT_COLUMNS = ("Row Number", "Errors", "Row Data", "Created At")


@dataclass(frozen=True)
class ImportStats:
    total: int
    by_status: dict[str, int]
    by_entity_type: dict[str, int]
    total_success_rows: int
    total_error_rows: int


def _duration_ms(started_at: datetime, finished_at: datetime) -> int:
    if started_at.tzinfo is None and finished_at.tzinfo is not None:
        finished_at = finished_at.replace(tzinfo=None)
    return max(0, int((finished_at - started_at).total_seconds() * 1000))


async def create_import_run(
    session: AsyncSession,
    *,
    entity_type: ImportEntityType,
    file_name: str,
    file_size: int,
    source_type: ImportSourceType = ImportSourceType.MANUAL,
    imported_by: str | None = None,
    total_rows: int | None = None,
    source_file_id: str | None = None,
    source_file_modified_at: datetime | None = None,
) -> ImportRun:
    run = ImportRun(
        id=uuid.uuid4(),
        entity_type=entity_type,
        source_type=source_type,
        status=ImportRunStatus.PENDING,
        file_name=file_name,
        file_size=file_size,
        imported_by=imported_by,
        total_rows=total_rows,
        started_at=utcnow(),
        source_file_id=source_file_id,
        source_file_modified_at=source_file_modified_at,
    )
    session.add(run)
    await session.flush()
    return run


async def _get_run(session: AsyncSession, run_id: uuid.UUID) -> ImportRun:
    run = await session.get(ImportRun, run_id)
    if run is None:
        raise LookupError(f"Import run {run_id} not found")
    return run


async def mark_import_processing(session: AsyncSession, run_id: uuid.UUID, *, total_rows: int) -> ImportRun:
    run = await _get_run(session, run_id)
    if run.status in {ImportRunStatus.COMPLETED, ImportRunStatus.FAILED}:
        raise ValueError(f"Import run {run_id} is already {run.status}")
    run.status = ImportRunStatus.PROCESSING
    run.total_rows = total_rows
    return run


async def complete_import_run(
    session: AsyncSession,
    run_id: uuid.UUID,
    *,
    success_count: int,
    errors: list[RowError],
) -> ImportRun:
    run = await _get_run(session, run_id)
    if run.status in {ImportRunStatus.COMPLETED, ImportRunStatus.FAILED}:
        raise ValueError(f"Import run {run_id} is already {run.status}")

    if errors:
        await session.execute(
            insert(ImportRowError),
            [
                {
                    "import_run_id": run.id,
                    "row_number": error.row_number,
                    "row_data": error.row_data,
                    "errors": list(error.errors),
                }
                for error in sorted(errors, key=lambda e: e.row_number)
            ],
        )

    finished = utcnow()
    run.status = ImportRunStatus.COMPLETED
    run.success_count = success_count
    run.error_count = len(errors)
    run.completed_at = finished
    run.duration_ms = _duration_ms(run.started_at, finished)
    return run


async def fail_import_run(session: AsyncSession, run_id: uuid.UUID, *, message: str) -> ImportRun:
    run = await _get_run(session, run_id)
    if run.status in {ImportRunStatus.COMPLETED, ImportRunStatus.FAILED}:
        return run
    finished = utcnow()
    run.status = ImportRunStatus.FAILED
    run.error_message = message
    run.completed_at = finished
    run.duration_ms = _duration_ms(run.started_at, finished)
    return run


async def latest_completed_remote_import(session: AsyncSession, source_file_id: str) -> ImportRun | None:
    return (
        await session.execute(
            select(ImportRun)
            .where(
                ImportRun.source_file_id == source_file_id,
                ImportRun.source_type == ImportSourceType.REMOTE,
                ImportRun.status == ImportRunStatus.COMPLETED,
            )
            .order_by(ImportRun.completed_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()


async def list_import_runs(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = 20,
    status: ImportRunStatus | None = None,
    entity_type: ImportEntityType | None = None,
    error_preview_limit: int = 100,
) -> tuple[list[ImportRun], int, dict[uuid.UUID, list[ImportRowError]]]:
    filters = [ImportRun.is_active.is_(True)]
    if status is not None:
        filters.append(ImportRun.status == status)
    if entity_type is not None:
        filters.append(ImportRun.entity_type == entity_type)

    total = int((await session.execute(select(func.count()).select_from(ImportRun).where(*filters))).scalar_one())
    runs = list(
        (
            await session.execute(
                select(ImportRun)
                .where(*filters)
                .order_by(ImportRun.created_at.desc())
                .offset((max(1, page) - 1) * limit)
                .limit(limit)
            )
        ).scalars()
    )

    previews: dict[uuid.UUID, list[ImportRowError]] = defaultdict(list)
    if runs and error_preview_limit > 0:
        rows = (
            await session.execute(
                select(ImportRowError)
                .where(ImportRowError.import_run_id.in_([run.id for run in runs]))
                .order_by(ImportRowError.import_run_id, ImportRowError.row_number)
            )
        ).scalars()
        for row in rows:
            bucket = previews[row.import_run_id]
            if len(bucket) < error_preview_limit:
                bucket.append(row)
    return runs, total, dict(previews)


async def list_import_errors(
    session: AsyncSession,
    run_id: uuid.UUID,
    *,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[ImportRowError], int]:
    total = int(
        (
            await session.execute(
                select(func.count()).select_from(ImportRowError).where(ImportRowError.import_run_id == run_id)
            )
        ).scalar_one()
    )
    stmt = select(ImportRowError).where(ImportRowError.import_run_id == run_id).order_by(ImportRowError.row_number)
    if limit > 0:
        stmt = stmt.offset((max(1, page) - 1) * limit).limit(limit)
    rows = list((await session.execute(stmt)).scalars())
    return rows, total


async def import_stats(session: AsyncSession) -> ImportStats:
    active = ImportRun.is_active.is_(True)
    by_status = {
        str(status): int(count)
        for status, count in (
            await session.execute(select(ImportRun.status, func.count()).where(active).group_by(ImportRun.status))
        ).all()
    }
    by_entity_type = {
        str(entity_type): int(count)
        for entity_type, count in (
            await session.execute(
                select(ImportRun.entity_type, func.count()).where(active).group_by(ImportRun.entity_type)
            )
        ).all()
    }
    success_rows, error_rows = (
        await session.execute(
            select(
                func.coalesce(func.sum(ImportRun.success_count), 0),
                func.coalesce(func.sum(ImportRun.error_count), 0),
            ).where(active)
        )
    ).one()
    return ImportStats(
        total=sum(by_status.values()),
        by_status=by_status,
        by_entity_type=by_entity_type,
        total_success_rows=int(success_rows),
        total_error_rows=int(error_rows),
    )


def build_error_workbook(errors: list[ImportRowError]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Import Errors"
    sheet.append(list(ERROR_EXPORT_COLUMNS))
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for error in errors:
        created_at = error.created_at
        if created_at is not None and created_at.tzinfo is not None:
            # Excel has no timezone-aware datetimes.
            created_at = created_at.replace(tzinfo=None)
        sheet.append(
            [
                error.row_number,
                "; ".join(error.errors or []),
                json.dumps(error.row_data or {}, ensure_ascii=False, sort_keys=True),
                created_at,
            ]
        )

    sheet.column_dimensions["A"].width = 12
    sheet.column_dimensions["B"].width = 60
    sheet.column_dimensions["C"].width = 80
    sheet.column_dimensions["D"].width = 22

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_template_workbook(contract: HeaderContract) -> bytes:
    """Empty workbook with the accepted header row, required columns first."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Import"
    sheet.append([*contract.required, *contract.optional])
    for cell in sheet[1]:
        cell.font = Font(bold=True)
        sheet.column_dimensions[cell.column_letter].width = max(12, len(str(cell.value)) + 4)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
