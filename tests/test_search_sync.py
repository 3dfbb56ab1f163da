from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.enums import ProductType, SearchSyncStage, SearchSyncStatus, SearchSyncType
from catalog_sync.models.product import Product
from catalog_sync.models.product_image import ProductImage
from catalog_sync.models.product_price import ProductPrice
from catalog_sync.models.product_stock import ProductStock
from catalog_sync.models.product_superseded_mapping import ProductSupersededMapping
from catalog_sync.models.search_sync_log import SearchSyncLog
from catalog_sync.services.search_index import DocumentImportResult, SearchEngineError
from catalog_sync.services.search_sync import (
    SearchIndexSynchronizer,
    SearchSyncAlreadyRunningError,
    expand_dependents,
    resolve_chain,
)


class FakeSearchEngine:
    def __init__(self, *, alias_target: str | None = None, fail_import: bool = False):
        self.collections: dict[str, list[dict[str, Any]]] = {}
        self.aliases: dict[str, str] = {}
        self.deleted: list[str] = []
        self.updates: list[tuple[str, list[dict[str, Any]]]] = []
        self.fail_import = fail_import
        if alias_target:
            self.collections[alias_target] = []
            self.aliases["products"] = alias_target

    async def create_collection(self, schema: dict[str, Any]) -> None:
        self.collections[schema["name"]] = []

    async def import_documents(self, collection: str, documents: list[dict[str, Any]], *, action: str):
        if action == "update":
            self.updates.append((collection, documents))
            return DocumentImportResult(success_count=len(documents))
        if self.fail_import:
            return DocumentImportResult(success_count=0, failed_count=len(documents), errors=["bad document"])
        self.collections[collection].extend(documents)
        return DocumentImportResult(success_count=len(documents))

    async def get_alias_target(self, alias: str) -> str | None:
        return self.aliases.get(alias)

    async def upsert_alias(self, alias: str, collection: str) -> None:
        self.aliases[alias] = collection

    async def delete_collection(self, name: str) -> None:
        self.deleted.append(name)
        self.collections.pop(name, None)


async def _seed_catalog(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as session:
        async with session.begin():
            p1 = Product(id=uuid.uuid4(), code="P1", name="Oil filter", type=ProductType.GENUINE, weight=0.4)
            p2 = Product(id=uuid.uuid4(), code="P2", name="Oil filter v2", type=ProductType.AFTERMARKET)
            p3 = Product(id=uuid.uuid4(), code="P3", name="Retired", type=ProductType.BRANDED, is_active=False)
            session.add_all([p1, p2, p3])
            await session.flush()
            session.add_all(
                [
                    ProductStock(product_id=p1.id, stock=3, is_active=False),
                    ProductStock(product_id=p1.id, stock=9, is_active=True),
                    ProductPrice(product_id=p1.id, currency="GBP", net1=Decimal("12.50"), net7=Decimal("20.00")),
                    ProductSupersededMapping(product_code="P1", superseded_by="P2"),
                    ProductSupersededMapping(product_code="P2", superseded_by="P4"),
                    ProductImage(product_code="P1", image="https://img.test/p1.jpg"),
                ]
            )


def test_resolve_chain_follows_links_and_stops_on_cycles() -> None:
    direct = {"A": "B", "B": "C", "X": "Y", "Y": "X"}
    assert resolve_chain("A", direct) == "C"
    assert resolve_chain("C", direct) == "C"
    assert resolve_chain("X", direct) == "X"


def test_expand_dependents_walks_reverse_links() -> None:
    reverse = {"C": {"B"}, "B": {"A"}, "A": set()}
    assert expand_dependents({"C"}, reverse) == {"A", "B", "C"}
    assert expand_dependents({"Z"}, reverse) == {"Z"}


@pytest.mark.asyncio
async def test_full_rebuild_fills_new_collection_then_swaps_alias(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    await _seed_catalog(session_factory)
    engine = FakeSearchEngine(alias_target="products_1")
    sync = SearchIndexSynchronizer(engine, session_factory, batch_size=1)

    result = await sync.full_rebuild()

    assert result.success is True
    assert result.total_products == 2
    assert result.total_superseded == 2
    assert result.old_collection == "products_1"
    assert engine.aliases["products"] == result.new_collection
    assert result.new_collection.startswith("products_")
    assert engine.deleted == ["products_1"]
    assert sync.progress.stage == SearchSyncStage.COMPLETED
    assert sync.last_result is result
    assert sync.is_running is False

    docs = {d["id"]: d for d in engine.collections[result.new_collection]}
    assert set(docs) == {"P1", "P2"}
    p1 = docs["P1"]
    assert p1["stock"] == 9
    assert p1["net1"] == 12.5
    assert p1["net2"] == 0.0
    assert p1["currency"] == "GBP"
    assert p1["type"] == "GENUINE"
    assert p1["weight"] == 0.4
    assert "height" not in p1
    assert p1["image"] == "https://img.test/p1.jpg"
    # P1 -> P2 -> P4 resolves to the end of the chain.
    assert p1["supersededBy"] == "P4"
    assert docs["P2"]["stock"] == 0
    assert docs["P2"]["supersededBy"] == "P4"

    log = (await db_session.execute(select(SearchSyncLog))).scalar_one()
    assert (log.sync_type, log.status, log.total_records) == (SearchSyncType.FULL, SearchSyncStatus.COMPLETED, 2)


@pytest.mark.asyncio
async def test_failed_rebuild_keeps_alias_and_drops_new_collection(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    await _seed_catalog(session_factory)
    engine = FakeSearchEngine(alias_target="products_1", fail_import=True)
    sync = SearchIndexSynchronizer(engine, session_factory)

    result = await sync.full_rebuild()

    assert result.success is False
    assert "bad document" in result.error
    assert engine.aliases["products"] == "products_1"
    assert engine.deleted == [result.new_collection]
    assert "products_1" in engine.collections
    assert sync.progress.stage == SearchSyncStage.FAILED

    log = (await db_session.execute(select(SearchSyncLog))).scalar_one()
    assert log.status == SearchSyncStatus.FAILED
    assert log.error_message == result.error


@pytest.mark.asyncio
async def test_full_rebuild_refuses_to_run_twice(session_factory: async_sessionmaker[AsyncSession]) -> None:
    sync = SearchIndexSynchronizer(FakeSearchEngine(), session_factory)
    sync._running = True

    with pytest.raises(SearchSyncAlreadyRunningError):
        await sync.full_rebuild()


@pytest.mark.asyncio
async def test_update_superseded_patches_codes_chained_onto_changes(
    session_factory: async_sessionmaker[AsyncSession], db_session: AsyncSession
) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add_all(
                [
                    ProductSupersededMapping(product_code="A", superseded_by="B"),
                    ProductSupersededMapping(product_code="B", superseded_by="C"),
                    ProductSupersededMapping(product_code="X", superseded_by="A"),
                    ProductSupersededMapping(product_code="OLD", superseded_by="NEW", is_active=False),
                ]
            )
    engine = FakeSearchEngine()
    sync = SearchIndexSynchronizer(engine, session_factory)

    result = await sync.update_superseded({"B", "OLD"})

    assert result.success is True
    assert result.affected_products == 4
    collection, docs = engine.updates[0]
    assert collection == "products"
    assert docs == [
        {"id": "A", "supersededBy": "C"},
        {"id": "B", "supersededBy": "C"},
        {"id": "OLD", "supersededBy": ""},
        {"id": "X", "supersededBy": "C"},
    ]

    log = (await db_session.execute(select(SearchSyncLog))).scalar_one()
    assert (log.sync_type, log.status, log.total_records) == (
        SearchSyncType.INCREMENTAL,
        SearchSyncStatus.COMPLETED,
        4,
    )


@pytest.mark.asyncio
async def test_update_superseded_with_no_codes_does_nothing(session_factory: async_sessionmaker[AsyncSession]) -> None:
    engine = FakeSearchEngine()
    result = await SearchIndexSynchronizer(engine, session_factory).update_superseded(set())

    assert result.success is True
    assert result.affected_products == 0
    assert engine.updates == []


@pytest.mark.asyncio
async def test_update_superseded_failure_is_reported(session_factory: async_sessionmaker[AsyncSession]) -> None:
    class _Broken(FakeSearchEngine):
        async def import_documents(self, collection, documents, *, action):
            raise SearchEngineError("Typesense unavailable")

    result = await SearchIndexSynchronizer(_Broken(), session_factory).update_superseded({"A"})

    assert result.success is False
    assert result.error == "Typesense unavailable"


@pytest.mark.asyncio
async def test_repoint_that_errors_after_applying_keeps_new_collection(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    class _RepointTimesOut(FakeSearchEngine):
        async def upsert_alias(self, alias: str, collection: str) -> None:
            await super().upsert_alias(alias, collection)
            raise SearchEngineError("Typesense request timed out")

    await _seed_catalog(session_factory)
    engine = _RepointTimesOut(alias_target="products_1")

    result = await SearchIndexSynchronizer(engine, session_factory).full_rebuild()

    assert result.success is False
    assert engine.aliases["products"] == result.new_collection
    assert result.new_collection in engine.collections
    assert engine.deleted == []


@pytest.mark.asyncio
async def test_rebuild_requested_while_running_runs_one_more_pass(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    await _seed_catalog(session_factory)
    engine = FakeSearchEngine(alias_target="products_1")
    sync = SearchIndexSynchronizer(engine, session_factory)
    queued: list[object] = []

    async def import_and_request(collection, documents, *, action):
        if not queued:
            queued.append(await sync.request_full_rebuild())
        return await FakeSearchEngine.import_documents(engine, collection, documents, action=action)

    engine.import_documents = import_and_request

    result = await sync.full_rebuild()

    assert queued == [None]
    assert result.success is True
    assert sync.last_result is result
    assert sync.is_running is False
    # Two passes: the first collection was replaced by the second.
    assert len(engine.deleted) == 2
    assert engine.aliases["products"] == result.new_collection
    assert list(engine.collections) == [result.new_collection]
