from __future__ import annotations

import uuid
from collections.abc import Hashable
from dataclasses import dataclass

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import ImportEntityType
from catalog_sync.models.order import BackorderLog, Order, OrderItem
from catalog_sync.services.import_rows import (
    ImportStrategy,
    RowError,
    ValidRow,
    reject,
    required_non_negative,
    required_text,
)
from catalog_sync.services.tabular import HeaderContract, TabularRow
from catalog_sync.services.upsert_engine import archive_active_snapshots


BACKORDER_HEADERS = HeaderContract(
    required=(
        "Account No",
        "Customer Name",
        "Your Order No",
        "Our Order No",
        "Itm",
        "Part",
        "Description",
        "Q Ord",
        "Q/O",
        "In WH",
        "Currency",
        "Unit Price",
        "Total",
    )
)


@dataclass(frozen=True)
class BackorderRow:
    order_number: str
    part: str
    qty_ordered: int
    qty_outstanding: int
    in_warehouse: int


class BackorderImportStrategy(ImportStrategy):
    entity_type = ImportEntityType.BACKORDER
    headers = BACKORDER_HEADERS
    duplicate_labels = ("order line",)

    def parse_row(self, row: TabularRow) -> tuple[BackorderRow | None, list[str]]:
        errors: list[str] = []
        order_number = required_text(row, "Your Order No", errors)
        part = required_text(row, "Part", errors)
        qty_ordered = required_non_negative(row, "Q Ord", errors)
        qty_outstanding = required_non_negative(row, "Q/O", errors)
        in_warehouse = required_non_negative(row, "In WH", errors)
        if errors:
            return None, errors
        return (
            BackorderRow(
                order_number=order_number,
                part=part,
                qty_ordered=round(qty_ordered),
                qty_outstanding=round(qty_outstanding),
                in_warehouse=round(in_warehouse),
            ),
            [],
        )

    def natural_keys(self, payload: BackorderRow) -> dict[str, Hashable]:
        return {"order line": (payload.order_number.upper(), payload.part.upper())}

    async def persist_rows(self, session: AsyncSession, rows: list[ValidRow]) -> list[RowError]:
        order_numbers = sorted({row.payload.order_number for row in rows})
        orders = {
            order.order_number: order
            for order in (await session.execute(select(Order).where(Order.order_number.in_(order_numbers)))).scalars()
        }

        items: dict[tuple[uuid.UUID, str], OrderItem] = {}
        if orders:
            order_ids = [order.id for order in orders.values()]
            for item in (
                await session.execute(
                    select(OrderItem).where(OrderItem.order_id.in_(order_ids)).order_by(OrderItem.created_at.asc())
                )
            ).scalars():
                items.setdefault((item.order_id, item.product_code.upper()), item)

        rejected: list[RowError] = []
        accepted: list[tuple[BackorderRow, OrderItem]] = []
        for row in rows:
            payload: BackorderRow = row.payload
            order = orders.get(payload.order_number)
            if order is None:
                rejected.append(reject(row, f"Order not found with Order Number: {payload.order_number}"))
                continue
            item = items.get((order.id, payload.part.upper()))
            if item is None:
                rejected.append(
                    reject(row, f"Order Item not found with Part: {payload.part} for Order: {payload.order_number}")
                )
                continue
            accepted.append((payload, item))

        if not accepted:
            return rejected

        await archive_active_snapshots(session, BackorderLog, BackorderLog.order_item_id, [item.id for _, item in accepted])
        await session.execute(
            insert(BackorderLog),
            [
                {
                    "order_item_id": item.id,
                    "qty_ordered": payload.qty_ordered,
                    "qty_outstanding": payload.qty_outstanding,
                    "in_warehouse": payload.in_warehouse,
                    "is_active": True,
                }
                for payload, item in accepted
            ],
        )
        for payload, item in accepted:
            item.qty_ordered = payload.qty_ordered
            item.qty_outstanding = payload.qty_outstanding
            item.in_warehouse = payload.in_warehouse
        await session.flush()
        return rejected
