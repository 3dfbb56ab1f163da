from __future__ import annotations

import logging
import time
import uuid
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.core.enums import SearchSyncStage, SearchSyncStatus, SearchSyncType
from catalog_sync.models.product import Product
from catalog_sync.models.product_image import ProductImage
from catalog_sync.models.product_price import ProductPrice
from catalog_sync.models.product_stock import ProductStock
from catalog_sync.models.product_superseded_mapping import ProductSupersededMapping
from catalog_sync.models.search_sync_log import SearchSyncLog
from catalog_sync.services.search_index import SearchEngine, SearchEngineError, product_collection_schema


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10_000
DEFAULT_CURRENCY = "GBP"
PRICE_TIERS = tuple(f"net{i}" for i in range(1, 8))


class SearchSyncAlreadyRunningError(RuntimeError):
    pass


@dataclass
class SearchSyncProgress:
    stage: SearchSyncStage = SearchSyncStage.PENDING
    superseded_loaded: int = 0
    products_processed: int = 0
    total_products: int = 0
    message: str = ""


@dataclass
class SearchSyncResult:
    success: bool
    total_products: int
    total_superseded: int
    new_collection: str
    old_collection: str | None
    duration_ms: int
    error: str | None = None


@dataclass
class SupersededSyncResult:
    success: bool
    affected_products: int
    failed_products: int = 0
    duration_ms: int = 0
    error: str | None = None
    failures: list[str] = field(default_factory=list)


def resolve_chain(code: str, direct: dict[str, str]) -> str:
    """Follow `code -> superseded_by` links to the last code; stops at the first repeat."""
    visited: set[str] = set()
    current = code
    nxt = direct.get(current)
    while nxt and current not in visited:
        visited.add(current)
        current = nxt
        nxt = direct.get(current)
    return current


def expand_dependents(codes: Iterable[str], reverse: dict[str, set[str]]) -> set[str]:
    """Add every code whose chain runs through one of `codes`."""
    expanded = set(codes)
    stack = list(expanded)
    while stack:
        for dependent in reverse.get(stack.pop(), ()):
            if dependent not in expanded:
                expanded.add(dependent)
                stack.append(dependent)
    return expanded


def _unix_seconds(value: datetime | None) -> int:
    if value is None:
        return 0
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp())


def _float_or_none(value: Any) -> float | None:
    return None if value is None else float(value)


def build_product_document(
    product: Product,
    *,
    price: ProductPrice | None,
    stock: ProductStock | None,
    image: str | None,
    superseded_by: str | None,
) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "id": product.code,
        "code": product.code,
        "name": product.name,
        "type": str(product.type),
        "supplierCode": product.supplier_code or "",
        "stock": stock.stock if stock is not None else 0,
        "currency": (price.currency if price is not None else None) or DEFAULT_CURRENCY,
        "createdAt": _unix_seconds(product.created_at),
        "updatedAt": _unix_seconds(product.updated_at),
        "image": image or "",
        "supersededBy": superseded_by or "",
    }
    for tier in PRICE_TIERS:
        amount = getattr(price, tier) if price is not None else None
        doc[tier] = float(amount) if amount is not None else 0.0
    for dim in ("height", "length", "width", "weight"):
        value = _float_or_none(getattr(product, dim))
        if value is not None:
            doc[dim] = value
    return doc


class SearchIndexSynchronizer:
    """
    Keeps the product search index in step with the store.

    Full rebuilds are blue-green: a fresh `products_<ms>` collection is filled
    completely before the alias is repointed, and the previous collection is
    only dropped afterwards. Superseded-mapping imports take the incremental
    path, which patches `supersededBy` on the aliased collection in place.
    """

    def __init__(
        self,
        search_engine: SearchEngine,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        alias: str = "products",
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._engine = search_engine
        self._session_factory = session_factory
        self.alias = alias
        self.batch_size = max(1, int(batch_size))
        self._running = False
        self._rebuild_requested = False
        self._last_stamp = 0
        self.progress = SearchSyncProgress()
        self.last_result: SearchSyncResult | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def _stage(self, stage: SearchSyncStage, message: str) -> None:
        self.progress.stage = stage
        self.progress.message = message
        logger.info("Search sync %s: %s", stage, message)

    async def full_rebuild(self) -> SearchSyncResult:
        if self._running:
            raise SearchSyncAlreadyRunningError("A search index rebuild is already running")
        self._running = True
        try:
            result = await self._full_rebuild()
            self.last_result = result
            # Products written after this pass read the table need one more pass.
            while self._rebuild_requested:
                self._rebuild_requested = False
                logger.info("Search index changed during rebuild; rebuilding again")
                result = await self._full_rebuild()
                self.last_result = result
        finally:
            self._running = False
            self._rebuild_requested = False
        return result

    async def request_full_rebuild(self) -> SearchSyncResult | None:
        """Rebuild now, or queue one more pass behind the rebuild already running."""
        if self._running:
            logger.info("Search index rebuild already running; queued another pass")
            self._rebuild_requested = True
            return None
        return await self.full_rebuild()

    async def _full_rebuild(self) -> SearchSyncResult:
        started = time.monotonic()
        self.progress = SearchSyncProgress()
        # Back-to-back passes can land in the same millisecond.
        self._last_stamp = max(int(time.time() * 1000), self._last_stamp + 1)
        new_collection = f"{self.alias}_{self._last_stamp}"
        old_collection: str | None = None
        collection_created = False
        total_products = 0
        total_superseded = 0

        try:
            old_collection = await self._engine.get_alias_target(self.alias)
            await self._engine.create_collection(product_collection_schema(new_collection))
            collection_created = True

            self._stage(SearchSyncStage.LOADING_SUPERSEDED, "Loading superseded product mappings")
            async with self._session_factory() as session:
                direct = await _load_direct_mappings(session)
                superseded = {code: resolve_chain(code, direct) for code in direct}
                total_superseded = len(superseded)
                self.progress.superseded_loaded = total_superseded
                images = await _load_first_images(session)
                total_count = int(
                    (
                        await session.execute(
                            select(func.count()).select_from(Product).where(Product.is_active.is_(True))
                        )
                    ).scalar_one()
                )

            self.progress.total_products = total_count
            self._stage(SearchSyncStage.SYNCING_PRODUCTS, f"Syncing 0 / {total_count} products")
            async for documents in self._iter_product_documents(superseded, images):
                result = await self._engine.import_documents(new_collection, documents, action="create")
                if result.failed_count:
                    raise SearchEngineError(
                        f"{result.failed_count} documents failed to import: {'; '.join(result.errors)}"
                    )
                total_products += len(documents)
                self.progress.products_processed = total_products
                self.progress.message = f"Syncing {total_products} / {total_count} products"

            self._stage(SearchSyncStage.UPDATING_ALIAS, f"Pointing alias {self.alias} at {new_collection}")
            await self._engine.upsert_alias(self.alias, new_collection)
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            message = str(exc) or exc.__class__.__name__
            logger.exception("Search index rebuild into %s failed", new_collection)
            self._stage(SearchSyncStage.FAILED, f"Sync failed: {message}")
            if collection_created:
                try:
                    # A repoint that errored client-side may still have been applied.
                    if await self._engine.get_alias_target(self.alias) == new_collection:
                        logger.warning("Alias %s already points at %s; keeping it", self.alias, new_collection)
                    else:
                        await self._engine.delete_collection(new_collection)
                except Exception:
                    logger.warning("Could not clean up failed collection %s", new_collection, exc_info=True)
            await self._record(
                SearchSyncType.FULL,
                SearchSyncStatus.FAILED,
                collection_name=new_collection,
                total_records=total_products,
                duration_ms=duration_ms,
                error_message=message,
            )
            return SearchSyncResult(
                success=False,
                total_products=total_products,
                total_superseded=total_superseded,
                new_collection=new_collection,
                old_collection=old_collection,
                duration_ms=duration_ms,
                error=message,
            )

        if old_collection and old_collection != new_collection:
            self._stage(SearchSyncStage.CLEANUP, f"Deleting old collection {old_collection}")
            try:
                await self._engine.delete_collection(old_collection)
            except Exception:
                logger.warning("Could not delete old collection %s", old_collection, exc_info=True)

        duration_ms = int((time.monotonic() - started) * 1000)
        self._stage(
            SearchSyncStage.COMPLETED,
            f"Synced {total_products} products into {new_collection} in {duration_ms} ms",
        )
        await self._record(
            SearchSyncType.FULL,
            SearchSyncStatus.COMPLETED,
            collection_name=new_collection,
            total_records=total_products,
            duration_ms=duration_ms,
        )
        return SearchSyncResult(
            success=True,
            total_products=total_products,
            total_superseded=total_superseded,
            new_collection=new_collection,
            old_collection=old_collection,
            duration_ms=duration_ms,
        )

    async def _iter_product_documents(self, superseded: dict[str, str], images: dict[str, str]):
        last_id: uuid.UUID | None = None
        while True:
            async with self._session_factory() as session:
                stmt = select(Product).where(Product.is_active.is_(True)).order_by(Product.id).limit(self.batch_size)
                if last_id is not None:
                    stmt = stmt.where(Product.id > last_id)
                products = list((await session.execute(stmt)).scalars())
                if not products:
                    return
                ids = [p.id for p in products]
                prices = await _latest_active(session, ProductPrice, ids)
                stocks = await _latest_active(session, ProductStock, ids)

            yield [
                build_product_document(
                    product,
                    price=prices.get(product.id),
                    stock=stocks.get(product.id),
                    image=images.get(product.code),
                    superseded_by=_final_target(product.code, superseded),
                )
                for product in products
            ]
            last_id = products[-1].id
            if len(products) < self.batch_size:
                return

    async def update_superseded(self, codes: Iterable[str]) -> SupersededSyncResult:
        """Patch `supersededBy` for the given codes and everything chained onto them."""
        started = time.monotonic()
        affected = {code for code in codes if code}
        if not affected:
            logger.info("Superseded index update skipped; no affected products")
            return SupersededSyncResult(success=True, affected_products=0)

        try:
            async with self._session_factory() as session:
                direct = await _load_direct_mappings(session)
            reverse: dict[str, set[str]] = defaultdict(set)
            for code, target in direct.items():
                reverse[target].add(code)

            expanded = expand_dependents(affected, reverse)
            resolved = {code: resolve_chain(code, direct) for code in expanded if code in direct}
            updates = [{"id": code, "supersededBy": _final_target(code, resolved) or ""} for code in sorted(expanded)]
            logger.info(
                "Superseded index update: %s affected codes expanded to %s", len(affected), len(expanded)
            )
            result = await self._engine.import_documents(self.alias, updates, action="update")
        except Exception as exc:
            duration_ms = int((time.monotonic() - started) * 1000)
            message = str(exc) or exc.__class__.__name__
            logger.exception("Superseded index update failed")
            await self._record(
                SearchSyncType.INCREMENTAL,
                SearchSyncStatus.FAILED,
                collection_name=self.alias,
                total_records=0,
                duration_ms=duration_ms,
                error_message=message,
            )
            return SupersededSyncResult(success=False, affected_products=0, duration_ms=duration_ms, error=message)

        duration_ms = int((time.monotonic() - started) * 1000)
        if result.failed_count:
            logger.warning(
                "%s products failed to update in the search index: %s",
                result.failed_count,
                "; ".join(result.errors),
            )
        await self._record(
            SearchSyncType.INCREMENTAL,
            SearchSyncStatus.COMPLETED,
            collection_name=self.alias,
            total_records=result.success_count,
            failed_records=result.failed_count,
            duration_ms=duration_ms,
        )
        return SupersededSyncResult(
            success=True,
            affected_products=result.success_count,
            failed_products=result.failed_count,
            duration_ms=duration_ms,
            failures=list(result.errors),
        )

    async def _record(
        self,
        sync_type: SearchSyncType,
        status: SearchSyncStatus,
        *,
        collection_name: str,
        total_records: int,
        duration_ms: int,
        failed_records: int = 0,
        error_message: str | None = None,
    ) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(
                        SearchSyncLog(
                            sync_type=sync_type,
                            status=status,
                            collection_name=collection_name,
                            total_records=total_records,
                            failed_records=failed_records,
                            duration_ms=duration_ms,
                            error_message=error_message,
                        )
                    )
        except Exception:
            logger.exception("Could not record %s search sync log", sync_type)


def _final_target(code: str, resolved: dict[str, str]) -> str | None:
    target = resolved.get(code)
    if not target or target == code:
        return None
    return target


async def _load_direct_mappings(session: AsyncSession) -> dict[str, str]:
    rows = await session.execute(
        select(ProductSupersededMapping.product_code, ProductSupersededMapping.superseded_by)
        .where(ProductSupersededMapping.is_active.is_(True))
        .order_by(ProductSupersededMapping.created_at, ProductSupersededMapping.id)
    )
    return {code: target for code, target in rows.all()}


async def _load_first_images(session: AsyncSession) -> dict[str, str]:
    images: dict[str, str] = {}
    rows = await session.execute(
        select(ProductImage.product_code, ProductImage.image)
        .where(ProductImage.is_active.is_(True))
        .order_by(ProductImage.created_at, ProductImage.id)
    )
    for code, image in rows.all():
        images.setdefault(code, image)
    return images


async def _latest_active(session: AsyncSession, model: type[Any], product_ids: list[uuid.UUID]) -> dict[uuid.UUID, Any]:
    latest: dict[uuid.UUID, Any] = {}
    rows = await session.execute(
        select(model)
        .where(model.product_id.in_(product_ids), model.is_active.is_(True))
        .order_by(model.created_at.desc())
    )
    for row in rows.scalars():
        latest.setdefault(row.product_id, row)
    return latest
