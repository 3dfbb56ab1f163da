from __future__ import annotations

import io
import json
from datetime import UTC, datetime

import pytest
from openpyxl import load_workbook
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.enums import ImportEntityType, ImportRunStatus, ImportSourceType
from catalog_sync.models.import_run import ImportRun
from catalog_sync.services.import_dealers import DEALER_HEADERS
from catalog_sync.services.import_rows import RowError
from catalog_sync.services.import_runs import (
    ERROR_EXPORT_COLUMNS,
    build_error_workbook,
    build_template_workbook,
    complete_import_run,
    create_import_run,
    fail_import_run,
    import_stats,
    latest_completed_remote_import,
    list_import_errors,
    list_import_runs,
    mark_import_processing,
)


async def _completed_run(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    entity_type: ImportEntityType = ImportEntityType.SUPERSEDED_MAPPING,
    errors: list[RowError] | None = None,
    success_count: int = 1,
    **kwargs,
) -> ImportRun:
    async with session_factory() as session:
        async with session.begin():
            run = await create_import_run(session, entity_type=entity_type, file_name="f.csv", file_size=10, **kwargs)
        async with session.begin():
            await mark_import_processing(session, run.id, total_rows=success_count + len(errors or []))
            run = await complete_import_run(session, run.id, success_count=success_count, errors=errors or [])
    return run


@pytest.mark.asyncio
async def test_run_lifecycle_records_counts_and_sorted_errors(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    run = await _completed_run(
        session_factory,
        success_count=3,
        errors=[
            RowError(row_number=9, row_data={"FROMPARTNO": "X"}, errors=["TOPARTNO is required"]),
            RowError(row_number=4, row_data={"FROMPARTNO": "A", "TOPARTNO": "A"}, errors=["same", "twice"]),
        ],
    )

    stored = await db_session.get(ImportRun, run.id)
    assert stored.status == ImportRunStatus.COMPLETED
    assert stored.total_rows == 5
    assert stored.success_count == 3
    assert stored.error_count == 2
    assert stored.completed_at is not None
    assert stored.duration_ms >= 0

    rows, total = await list_import_errors(db_session, run.id, page=1, limit=1)
    assert total == 2
    assert [r.row_number for r in rows] == [4]
    rows, _ = await list_import_errors(db_session, run.id, limit=0)
    assert [r.row_number for r in rows] == [4, 9]
    assert rows[0].errors == ["same", "twice"]


@pytest.mark.asyncio
async def test_terminal_runs_cannot_be_reopened(session_factory: async_sessionmaker[AsyncSession]) -> None:
    run = await _completed_run(session_factory)

    async with session_factory() as session:
        async with session.begin():
            with pytest.raises(ValueError):
                await mark_import_processing(session, run.id, total_rows=1)
            failed = await fail_import_run(session, run.id, message="late")
            assert failed.status == ImportRunStatus.COMPLETED
            assert failed.error_message is None


@pytest.mark.asyncio
async def test_fail_import_run_sets_message(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        async with session.begin():
            run = await create_import_run(
                session, entity_type=ImportEntityType.PRODUCTS, file_name="p.xlsx", file_size=1
            )
            await fail_import_run(session, run.id, message="Invalid file format")

    async with session_factory() as session:
        stored = await session.get(ImportRun, run.id)
        assert stored.status == ImportRunStatus.FAILED
        assert stored.error_message == "Invalid file format"


@pytest.mark.asyncio
async def test_listing_filters_and_error_previews(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    with_errors = await _completed_run(
        session_factory,
        errors=[RowError(row_number=n, row_data=None, errors=["bad"]) for n in (2, 3, 4)],
    )
    await _completed_run(session_factory, entity_type=ImportEntityType.DEALERS)

    runs, total, previews = await list_import_runs(db_session, page=1, limit=10, error_preview_limit=2)
    assert total == 2
    assert [len(previews.get(r.id, [])) for r in runs if r.id == with_errors.id] == [2]

    runs, total, _ = await list_import_runs(db_session, entity_type=ImportEntityType.DEALERS)
    assert total == 1
    assert runs[0].entity_type == ImportEntityType.DEALERS

    runs, total, _ = await list_import_runs(db_session, status=ImportRunStatus.FAILED)
    assert (runs, total) == ([], 0)

    stats = await import_stats(db_session)
    assert stats.total == 2
    assert stats.by_status == {"COMPLETED": 2}
    assert stats.by_entity_type == {"SUPERSEDED_MAPPING": 1, "DEALERS": 1}
    assert stats.total_success_rows == 2
    assert stats.total_error_rows == 3


@pytest.mark.asyncio
async def test_latest_completed_remote_import_ignores_manual_and_failed(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    modified = datetime(2024, 3, 1, 8, 0, tzinfo=UTC)
    await _completed_run(session_factory, source_file_id="file-1")
    assert await latest_completed_remote_import(db_session, "file-1") is None

    remote = await _completed_run(
        session_factory,
        source_file_id="file-1",
        source_type=ImportSourceType.REMOTE,
        source_file_modified_at=modified,
    )
    found = await latest_completed_remote_import(db_session, "file-1")
    assert found is not None
    assert found.id == remote.id


def test_error_workbook_layout() -> None:
    class _Row:
        row_number = 7
        errors = ["Duplicate product code in file (first occurrence at row 3)"]
        row_data = {"Product Code": "ABC123", "Free Stock": 2}
        created_at = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

    wb = load_workbook(io.BytesIO(build_error_workbook([_Row()])))
    ws = wb.active

    assert ws.title == "Import Errors"
    assert [c.value for c in ws[1]] == list(ERROR_EXPORT_COLUMNS)
    assert ws["A2"].value == 7
    assert ws["B2"].value == _Row.errors[0]
    assert json.loads(ws["C2"].value) == {"Free Stock": 2, "Product Code": "ABC123"}
    assert ws["D2"].value == datetime(2024, 1, 2, 3, 4, 5)


def test_template_workbook_lists_required_then_optional_headers() -> None:
    wb = load_workbook(io.BytesIO(build_template_workbook(DEALER_HEADERS)))
    headers = [c.value for c in wb.active[1]]

    assert headers == [*DEALER_HEADERS.required, *DEALER_HEADERS.optional]
    assert headers[-2:] == ["Default shipping Method", "Notes"]
