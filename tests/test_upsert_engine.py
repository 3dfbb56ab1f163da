from __future__ import annotations

import random

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.enums import ImportEntityType
from catalog_sync.models.product import Product
from catalog_sync.models.product_image import ProductImage
from catalog_sync.models.product_price import ProductPrice
from catalog_sync.models.product_stock import ProductStock
from catalog_sync.models.product_superseded_mapping import ProductSupersededMapping
from catalog_sync.services.import_products import PRODUCT_HEADERS, ProductImportStrategy
from catalog_sync.services.import_rows import ImportStrategy
from catalog_sync.services.import_superseded import SupersededMappingImportStrategy
from catalog_sync.services.tabular import HeaderContract, TabularRow
from catalog_sync.services.upsert_engine import UpsertEngine


def _rows(*values: dict[str, object]) -> list[TabularRow]:
    return [TabularRow(row_number=i + 2, values=v) for i, v in enumerate(values)]


def _product(code: str, *, stock: int, retail: float) -> dict[str, object]:
    values: dict[str, object] = {header: None for header in PRODUCT_HEADERS.required}
    values.update(
        {"Product Code": code, "Full Description": f"Part {code}", "Free Stock": stock, "Retail Price": retail}
    )
    return values


async def _import(
    session_factory: async_sessionmaker[AsyncSession],
    strategy: ImportStrategy,
    rows: list[TabularRow],
    *,
    chunk_size: int = 10_000,
):
    valid, invalid = strategy.validate_rows(rows)
    assert invalid == []
    return await UpsertEngine(session_factory, chunk_size=chunk_size).run(strategy, valid)


async def _mapping_state(session: AsyncSession) -> dict[tuple[str, str], bool]:
    rows = (await session.execute(select(ProductSupersededMapping))).scalars().all()
    return {(m.product_code, m.superseded_by): m.is_active for m in rows}


@pytest.mark.asyncio
async def test_product_reimport_archives_previous_snapshots(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    first = await _import(session_factory, ProductImportStrategy(), _rows(_product("p1", stock=5, retail=10)))
    second = await _import(
        session_factory,
        ProductImportStrategy(),
        _rows(_product("P1", stock=7, retail=12.5), _product("P2", stock=1, retail=3)),
        chunk_size=1,
    )

    assert first.success_count == 1
    assert second.success_count == 2
    assert second.fallback_chunks == 0

    products = (await db_session.execute(select(Product).order_by(Product.code))).scalars().all()
    assert [p.code for p in products] == ["P1", "P2"]
    p1 = products[0]

    stocks = (await db_session.execute(select(ProductStock).where(ProductStock.product_id == p1.id))).scalars().all()
    assert len(stocks) == 2
    active = [s for s in stocks if s.is_active]
    assert [s.stock for s in active] == [7]

    prices = (await db_session.execute(select(ProductPrice).where(ProductPrice.product_id == p1.id))).scalars().all()
    assert len(prices) == 2
    assert [float(p.net1) for p in prices if p.is_active] == [12.5]
    assert {p.currency for p in prices} == {"GBP"}


@pytest.mark.asyncio
async def test_superseded_import_reconciles_against_full_file(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    first = SupersededMappingImportStrategy()
    await _import(
        session_factory,
        first,
        _rows({"FROMPARTNO": "A", "TOPARTNO": "B"}, {"FROMPARTNO": "C", "TOPARTNO": "D"}),
        chunk_size=1,
    )
    assert first.affected_keys() == {"A", "C"}

    second = SupersededMappingImportStrategy()
    outcome = await _import(session_factory, second, _rows({"FROMPARTNO": "A", "TOPARTNO": "B"}))

    assert outcome.success_count == 1
    assert await _mapping_state(db_session) == {("A", "B"): True, ("C", "D"): False}
    # A came from the file, C was archived.
    assert second.affected_keys() == {"A", "C"}


@pytest.mark.asyncio
async def test_superseded_reimport_is_idempotent_and_reactivates(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    pairs = _rows({"FROMPARTNO": "A", "TOPARTNO": "B"})
    await _import(session_factory, SupersededMappingImportStrategy(), pairs)
    await _import(session_factory, SupersededMappingImportStrategy(), pairs)

    count = (await db_session.execute(select(func.count()).select_from(ProductSupersededMapping))).scalar_one()
    assert count == 1

    await _import(session_factory, SupersededMappingImportStrategy(), _rows({"FROMPARTNO": "C", "TOPARTNO": "D"}))
    await _import(session_factory, SupersededMappingImportStrategy(), pairs)

    db_session.expire_all()
    assert await _mapping_state(db_session) == {("A", "B"): True, ("C", "D"): False}


class _ImageStrategy(ImportStrategy):
    """Writes one image row per line; code BOOM fails at the database layer."""

    entity_type = ImportEntityType.PRODUCTS
    headers = HeaderContract(required=("code", "image"))

    def parse_row(self, row: TabularRow):
        return (row.text("code"), row.text("image")), []

    async def persist_rows(self, session: AsyncSession, rows):
        for row in rows:
            code, image = row.payload
            if code == "BOOM":
                raise RuntimeError("value violates check constraint\nDETAIL: noisy driver text")
            session.add(ProductImage(product_code=code, image=image))
        await session.flush()
        return []


@pytest.mark.asyncio
async def test_failing_chunk_falls_back_to_row_by_row(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    progress: list[tuple[int, int]] = []
    strategy = _ImageStrategy()
    valid, _ = strategy.validate_rows(
        _rows(
            {"code": "A", "image": "a.jpg"},
            {"code": "BOOM", "image": "x.jpg"},
            {"code": "C", "image": "c.jpg"},
            {"code": "D", "image": "d.jpg"},
            {"code": "E", "image": "e.jpg"},
        )
    )

    outcome = await UpsertEngine(session_factory, chunk_size=2).run(
        strategy, valid, on_progress=lambda done, total: progress.append((done, total))
    )

    assert outcome.success_count == 4
    assert outcome.fallback_chunks == 1
    assert len(outcome.errors) == 1
    assert outcome.errors[0].row_number == 3
    assert outcome.errors[0].errors == ["value violates check constraint"]

    images = (await db_session.execute(select(ProductImage.product_code).order_by(ProductImage.product_code))).scalars()
    assert list(images) == ["A", "C", "D", "E"]

    assert progress[-1] == (5, 5)
    assert [done for done, _ in progress] == sorted(done for done, _ in progress)


@pytest.mark.asyncio
async def test_engine_with_no_rows_writes_nothing(session_factory: async_sessionmaker[AsyncSession]) -> None:
    outcome = await UpsertEngine(session_factory).run(SupersededMappingImportStrategy(), [])

    assert outcome.success_count == 0
    assert outcome.errors == []


@pytest.mark.asyncio
async def test_snapshot_history_is_kept_in_import_order(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    for stock, retail in ((5, 10), (7, 12.5), (9, 15)):
        await _import(session_factory, ProductImportStrategy(), _rows(_product("P1", stock=stock, retail=retail)))

    product = (await db_session.execute(select(Product).where(Product.code == "P1"))).scalar_one()
    stocks = (
        await db_session.execute(
            select(ProductStock).where(ProductStock.product_id == product.id).order_by(ProductStock.created_at)
        )
    ).scalars().all()
    assert [s.stock for s in stocks] == [5, 7, 9]
    assert [s.is_active for s in stocks] == [False, False, True]
    created = [s.created_at for s in stocks]
    assert len(set(created)) == 3
    assert all(s.updated_at >= s.created_at for s in stocks)

    prices = (
        await db_session.execute(
            select(ProductPrice).where(ProductPrice.product_id == product.id).order_by(ProductPrice.created_at)
        )
    ).scalars().all()
    assert [float(p.net1) for p in prices] == [10.0, 12.5, 15.0]
    assert [p.is_active for p in prices] == [False, False, True]


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [3, 11])
async def test_invalid_rows_are_isolated_whatever_their_position(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession, seed: int
) -> None:
    lines = [_product(f"OK{i}", stock=i, retail=1) for i in range(5)]
    for i in range(3):
        bad = _product(f"BAD{i}", stock=0, retail=1)
        bad["Free Stock"] = "lots"
        lines.append(bad)
    random.Random(seed).shuffle(lines)
    rows = _rows(*lines)
    bad_rows = sorted(r.row_number for r in rows if str(r.values["Product Code"]).startswith("BAD"))

    strategy = ProductImportStrategy()
    valid, invalid = strategy.validate_rows(rows)
    outcome = await UpsertEngine(session_factory, chunk_size=2).run(strategy, valid)

    assert outcome.success_count == 5
    assert outcome.errors == []
    assert sorted(e.row_number for e in invalid) == bad_rows
    codes = (await db_session.execute(select(Product.code).order_by(Product.code))).scalars().all()
    assert codes == [f"OK{i}" for i in range(5)]


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [3, 11])
async def test_failing_rows_are_isolated_whatever_their_position(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession, seed: int
) -> None:
    lines = [{"code": f"OK{i}", "image": f"{i}.jpg"} for i in range(6)]
    lines += [{"code": "BOOM", "image": f"boom{i}.jpg"} for i in range(3)]
    random.Random(seed).shuffle(lines)
    rows = _rows(*lines)
    boom_rows = sorted(r.row_number for r in rows if r.values["code"] == "BOOM")

    strategy = _ImageStrategy()
    valid, invalid = strategy.validate_rows(rows)
    outcome = await UpsertEngine(session_factory, chunk_size=2).run(strategy, valid)

    assert invalid == []
    assert outcome.success_count == 6
    assert sorted(e.row_number for e in outcome.errors) == boom_rows
    images = (await db_session.execute(select(ProductImage.product_code).order_by(ProductImage.product_code))).scalars()
    assert list(images) == [f"OK{i}" for i in range(6)]
