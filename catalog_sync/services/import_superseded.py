from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import ImportEntityType
from catalog_sync.models.product_superseded_mapping import ProductSupersededMapping
from catalog_sync.services.import_rows import ImportStrategy, RowError, ValidRow, required_text
from catalog_sync.services.tabular import HeaderContract, TabularRow


logger = logging.getLogger(__name__)

SUPERSEDED_HEADERS = HeaderContract(required=("FROMPARTNO", "TOPARTNO"))


@dataclass(frozen=True)
class SupersededRow:
    product_code: str
    superseded_by: str

    @property
    def pair(self) -> tuple[str, str]:
        return (self.product_code, self.superseded_by)


class SupersededMappingImportStrategy(ImportStrategy):
    """
    The file is the full list of current supersessions.

    Pairs in the file are created or reactivated, active pairs missing from the
    file are archived. Unchanged pairs are not touched, so re-importing the same
    file writes nothing.
    """

    entity_type = ImportEntityType.SUPERSEDED_MAPPING
    headers = SUPERSEDED_HEADERS
    duplicate_labels = ("mapping",)
    full_state = True

    def __init__(self) -> None:
        self._affected_codes: set[str] = set()

    def parse_row(self, row: TabularRow) -> tuple[SupersededRow | None, list[str]]:
        errors: list[str] = []
        from_part = required_text(row, "FROMPARTNO", errors).upper()
        to_part = required_text(row, "TOPARTNO", errors).upper()
        if from_part and to_part and from_part == to_part:
            errors.append("FROMPARTNO and TOPARTNO cannot be the same")
        if errors:
            return None, errors
        return SupersededRow(product_code=from_part, superseded_by=to_part), []

    def natural_keys(self, payload: SupersededRow) -> dict[str, Hashable]:
        return {"mapping": payload.pair}

    async def persist_rows(self, session: AsyncSession, rows: list[ValidRow]) -> list[RowError]:
        payloads: list[SupersededRow] = [row.payload for row in rows]
        codes = sorted({payload.product_code for payload in payloads})
        existing = {
            (mapping.product_code, mapping.superseded_by): mapping
            for mapping in (
                await session.execute(
                    select(ProductSupersededMapping).where(ProductSupersededMapping.product_code.in_(codes))
                )
            ).scalars()
        }

        for payload in payloads:
            self._affected_codes.add(payload.product_code)
            mapping = existing.get(payload.pair)
            if mapping is None:
                session.add(
                    ProductSupersededMapping(
                        product_code=payload.product_code,
                        superseded_by=payload.superseded_by,
                        is_active=True,
                    )
                )
            elif not mapping.is_active:
                mapping.is_active = True
        await session.flush()
        return []

    async def finalize(self, session: AsyncSession, rows: list[ValidRow]) -> None:
        file_pairs = {row.payload.pair for row in rows}
        active = (
            await session.execute(select(ProductSupersededMapping).where(ProductSupersededMapping.is_active.is_(True)))
        ).scalars().all()

        archived = 0
        for mapping in active:
            if (mapping.product_code, mapping.superseded_by) in file_pairs:
                continue
            mapping.is_active = False
            self._affected_codes.add(mapping.product_code)
            archived += 1
        await session.flush()
        if archived:
            logger.info("Archived %s superseded mappings missing from the import file", archived)

    def affected_keys(self) -> set[str]:
        return set(self._affected_codes)
