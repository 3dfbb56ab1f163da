from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.enums import ImportEntityType, ImportSourceType
from catalog_sync.models.import_run import ImportRun
from catalog_sync.services.import_jobs import ImportJobTracker
from catalog_sync.services.import_rows import ImportStrategy, RowError
from catalog_sync.services.import_runs import (
    complete_import_run,
    create_import_run,
    fail_import_run,
    mark_import_processing,
)
from catalog_sync.services.import_strategies import get_import_strategy
from catalog_sync.services.search_sync import SearchIndexSynchronizer
from catalog_sync.services.tabular import TabularFile, load_table, validate_headers
from catalog_sync.services.task_supervisor import BackgroundTaskSupervisor
from catalog_sync.services.upsert_engine import DEFAULT_CHUNK_SIZE, UpsertEngine


logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    run_id: uuid.UUID
    entity_type: ImportEntityType
    total_rows: int
    success_count: int
    error_count: int
    errors: list[RowError] = field(default_factory=list)
    affected_keys: set[str] = field(default_factory=set)

    def results(self) -> dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "success_count": self.success_count,
            "error_count": self.error_count,
        }


class ImportPipeline:
    """
    Loader -> row validation -> upsert engine -> run bookkeeping -> index hook.

    `import_file` runs to completion inside the caller (remote scans, small
    uploads). `start_background_import` validates the file structure up front,
    records the run and hands the rest to the task supervisor.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        job_tracker: ImportJobTracker,
        supervisor: BackgroundTaskSupervisor,
        search_sync: SearchIndexSynchronizer | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._session_factory = session_factory
        self.job_tracker = job_tracker
        self.supervisor = supervisor
        self.search_sync = search_sync
        self.engine = UpsertEngine(session_factory, chunk_size=chunk_size)

    @staticmethod
    def prepare(content: bytes, file_name: str | None, entity_type: ImportEntityType) -> tuple[ImportStrategy, TabularFile]:
        """Parse and check headers; raises TabularFormatError / TabularSchemaError before any row is touched.

        Blocking; the async entry points run it in a worker thread.
        """
        strategy = get_import_strategy(entity_type)
        table = load_table(content, file_name)
        validate_headers(table.headers, strategy.headers)
        return strategy, table

    async def _create_run(self, **kwargs: Any) -> ImportRun:
        async with self._session_factory() as session:
            async with session.begin():
                run = await create_import_run(session, **kwargs)
        self.job_tracker.create(str(run.id), total=kwargs.get("total_rows"))
        return run

    async def import_file(
        self,
        content: bytes,
        *,
        file_name: str,
        entity_type: ImportEntityType,
        source_type: ImportSourceType = ImportSourceType.MANUAL,
        imported_by: str | None = None,
        source_file_id: str | None = None,
        source_file_modified_at: datetime | None = None,
    ) -> ImportOutcome:
        run = await self._create_run(
            entity_type=entity_type,
            file_name=file_name,
            file_size=len(content),
            source_type=source_type,
            imported_by=imported_by,
            source_file_id=source_file_id,
            source_file_modified_at=source_file_modified_at,
        )
        try:
            strategy, table = await asyncio.to_thread(self.prepare, content, file_name, entity_type)
        except ValueError as exc:
            await self._fail(run.id, str(exc))
            raise

        outcome = await self._process(run.id, strategy, table)
        follow_up = self.index_follow_up(outcome)
        if follow_up is not None:
            self.supervisor.spawn(follow_up, name=f"search:{entity_type.lower()}:{run.id}")
        return outcome

    async def start_background_import(
        self,
        content: bytes,
        *,
        file_name: str,
        entity_type: ImportEntityType,
        imported_by: str | None = None,
    ) -> ImportRun:
        strategy, table = await asyncio.to_thread(self.prepare, content, file_name, entity_type)
        run = await self._create_run(
            entity_type=entity_type,
            file_name=file_name,
            file_size=len(content),
            imported_by=imported_by,
            total_rows=table.total_rows,
        )
        self.supervisor.spawn(
            self._process(run.id, strategy, table),
            name=f"import:{entity_type.lower()}:{run.id}",
            on_success=self.index_follow_up,
        )
        return run

    async def _process(self, run_id: uuid.UUID, strategy: ImportStrategy, table: TabularFile) -> ImportOutcome:
        job_id = str(run_id)
        try:
            self.job_tracker.start(job_id)
            valid, invalid = await asyncio.to_thread(strategy.validate_rows, table.iter_rows())
            total = table.total_rows
            self.job_tracker.set_total(job_id, total)
            async with self._session_factory() as session:
                async with session.begin():
                    await mark_import_processing(session, run_id, total_rows=total)

            skipped = len(invalid)
            self.job_tracker.update(job_id, skipped)
            result = await self.engine.run(
                strategy,
                valid,
                on_progress=lambda done, _total: self.job_tracker.update(job_id, skipped + done),
            )

            errors = sorted([*invalid, *result.errors], key=lambda e: e.row_number)
            async with self._session_factory() as session:
                async with session.begin():
                    await complete_import_run(session, run_id, success_count=result.success_count, errors=errors)
        except Exception as exc:
            logger.exception("%s import %s failed", strategy.entity_type, run_id)
            await self._fail(run_id, str(exc) or exc.__class__.__name__)
            raise

        outcome = ImportOutcome(
            run_id=run_id,
            entity_type=strategy.entity_type,
            total_rows=total,
            success_count=result.success_count,
            error_count=len(errors),
            errors=errors,
            affected_keys=strategy.affected_keys(),
        )
        self.job_tracker.complete(job_id, outcome.results())
        logger.info(
            "%s import %s completed: %s ok, %s errors of %s rows",
            outcome.entity_type,
            run_id,
            outcome.success_count,
            outcome.error_count,
            outcome.total_rows,
        )
        return outcome

    async def _fail(self, run_id: uuid.UUID, message: str) -> None:
        self.job_tracker.fail(str(run_id), message)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await fail_import_run(session, run_id, message=message)
        except Exception:
            logger.exception("Could not mark import run %s as failed", run_id)

    def index_follow_up(self, outcome: ImportOutcome) -> Coroutine[Any, Any, Any] | None:
        """The index refresh an import calls for, if any."""
        if self.search_sync is None:
            return None
        if outcome.entity_type == ImportEntityType.PRODUCTS and outcome.success_count > 0:
            return self._rebuild_index()
        if outcome.entity_type == ImportEntityType.SUPERSEDED_MAPPING and outcome.affected_keys:
            return self.search_sync.update_superseded(outcome.affected_keys)
        return None

    async def _rebuild_index(self) -> None:
        await self.search_sync.request_full_rebuild()
