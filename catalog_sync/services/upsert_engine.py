from __future__ import annotations

import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import InstrumentedAttribute

from catalog_sync.services.import_rows import ImportStrategy, RowError, ValidRow


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 10_000

ProgressCallback = Callable[[int, int], Awaitable[None] | None]


@dataclass
class UpsertOutcome:
    success_count: int = 0
    errors: list[RowError] = field(default_factory=list)
    fallback_chunks: int = 0


async def archive_active_snapshots(
    session: AsyncSession,
    model: type[Any],
    parent_column: InstrumentedAttribute,
    parent_ids: Sequence[uuid.UUID],
) -> int:
    """Flip every active snapshot of the given parents to inactive. Returns the number archived."""
    if not parent_ids:
        return 0
    result = await session.execute(
        update(model)
        .where(parent_column.in_(list(parent_ids)), model.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def _notify(on_progress: ProgressCallback | None, done: int, total: int) -> None:
    if on_progress is None:
        return
    maybe_awaitable = on_progress(done, total)
    if inspect.isawaitable(maybe_awaitable):
        await maybe_awaitable


def _error_message(exc: BaseException) -> str:
    text = str(exc).strip()
    if not text:
        return exc.__class__.__name__
    return text.splitlines()[0][:500]


class UpsertEngine:
    """
    Chunked, transactional persistence of validated rows.

    Every chunk is written in one transaction. When that transaction fails, the
    chunk is replayed row by row (one transaction each) so a single bad row only
    costs itself. Strategies flagged `full_state` get the whole file as one chunk
    followed by `finalize` in the same transaction; in the row-by-row fallback
    `finalize` runs in its own transaction after the rows.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._session_factory = session_factory
        self.chunk_size = max(1, int(chunk_size))

    async def run(
        self,
        strategy: ImportStrategy,
        rows: list[ValidRow],
        *,
        on_progress: ProgressCallback | None = None,
    ) -> UpsertOutcome:
        outcome = UpsertOutcome()
        total = len(rows)
        if total == 0:
            return outcome

        size = total if strategy.full_state else self.chunk_size
        done = 0
        for start in range(0, total, size):
            chunk = rows[start : start + size]
            try:
                rejected = await self._persist_chunk(strategy, chunk, all_rows=rows)
            except Exception as exc:
                logger.warning(
                    "%s chunk at rows %s-%s failed (%s); retrying row by row",
                    strategy.entity_type,
                    chunk[0].row_number,
                    chunk[-1].row_number,
                    _error_message(exc),
                )
                outcome.fallback_chunks += 1
                done = await self._persist_rows_individually(
                    strategy, chunk, outcome=outcome, done=done, total=total, on_progress=on_progress
                )
                if strategy.full_state:
                    await self._finalize(strategy, rows)
                continue

            outcome.errors.extend(rejected)
            outcome.success_count += len(chunk) - len(rejected)
            done += len(chunk)
            await _notify(on_progress, done, total)

        return outcome

    async def _persist_chunk(
        self, strategy: ImportStrategy, chunk: list[ValidRow], *, all_rows: list[ValidRow]
    ) -> list[RowError]:
        async with self._session_factory() as session:
            async with session.begin():
                rejected = await strategy.persist_rows(session, chunk)
                if strategy.full_state:
                    await strategy.finalize(session, all_rows)
        return rejected

    async def _persist_rows_individually(
        self,
        strategy: ImportStrategy,
        chunk: list[ValidRow],
        *,
        outcome: UpsertOutcome,
        done: int,
        total: int,
        on_progress: ProgressCallback | None,
    ) -> int:
        for row in chunk:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        rejected = await strategy.persist_rows(session, [row])
            except Exception as exc:
                outcome.errors.append(
                    RowError(row_number=row.row_number, row_data=row.row_data, errors=[_error_message(exc)])
                )
            else:
                if rejected:
                    outcome.errors.extend(rejected)
                else:
                    outcome.success_count += 1
            done += 1
            await _notify(on_progress, done, total)
        return done

    async def _finalize(self, strategy: ImportStrategy, rows: list[ValidRow]) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await strategy.finalize(session, rows)
