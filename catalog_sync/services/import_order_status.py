from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import ImportEntityType, OrderStatus
from catalog_sync.models.order import Order, OrderStatusHistory, OrderStatusLog
from catalog_sync.services.import_rows import (
    ImportStrategy,
    RowError,
    ValidRow,
    lookup_choice,
    reject,
    required_text,
)
from catalog_sync.services.tabular import HeaderContract, TabularRow
from catalog_sync.services.upsert_engine import archive_active_snapshots


ORDER_STATUS_HEADERS = HeaderContract(required=("Your Order No", "Our Order No", "Status"))

IMPORT_NOTE = "Status updated via import"

# Keys are lower case; the ERP extract uses short codes next to the readable names.
STATUS_MAPPING: dict[str, OrderStatus] = {
    "created": OrderStatus.CREATED,
    "backorder": OrderStatus.BACKORDER,
    "pur": OrderStatus.BACKORDER,
    "sbo": OrderStatus.BACKORDER,
    "ready for shipment": OrderStatus.READY_FOR_SHIPMENT,
    "ready_for_shipment": OrderStatus.READY_FOR_SHIPMENT,
    "readyforshipment": OrderStatus.READY_FOR_SHIPMENT,
    "fullfilled": OrderStatus.FULLFILLED,
    "fulfilled": OrderStatus.FULLFILLED,
    "cancelled": OrderStatus.CANCELLED,
    "canceled": OrderStatus.CANCELLED,
    "processing": OrderStatus.PROCESSING,
    "pro": OrderStatus.PROCESSING,
    "piq": OrderStatus.PICKING,
    "pik": OrderStatus.PICKING,
    "adv": OrderStatus.PACKING,
    "wdl": OrderStatus.OUT_FOR_DELIVERY,
}


@dataclass(frozen=True)
class OrderStatusRow:
    order_number: str
    k8_order_no: str | None
    status: OrderStatus


class OrderStatusImportStrategy(ImportStrategy):
    entity_type = ImportEntityType.ORDER_STATUS
    headers = ORDER_STATUS_HEADERS
    duplicate_labels = ("order number",)

    def parse_row(self, row: TabularRow) -> tuple[OrderStatusRow | None, list[str]]:
        errors: list[str] = []
        order_number = required_text(row, "Your Order No", errors)

        status_text = row.text("Status")
        status = None
        if not status_text:
            errors.append("Status is required")
        else:
            status = lookup_choice(status_text, STATUS_MAPPING)
            if status is None:
                errors.append(
                    f'Invalid status: "{status_text}". Valid values are: '
                    f"{', '.join(STATUS_MAPPING)} (case-insensitive)"
                )

        if errors:
            return None, errors
        return OrderStatusRow(order_number=order_number, k8_order_no=row.text("Our Order No") or None, status=status), []

    def natural_keys(self, payload: OrderStatusRow) -> dict[str, Hashable]:
        return {"order number": payload.order_number}

    async def persist_rows(self, session: AsyncSession, rows: list[ValidRow]) -> list[RowError]:
        order_numbers = sorted({row.payload.order_number for row in rows})
        orders = {
            order.order_number: order
            for order in (await session.execute(select(Order).where(Order.order_number.in_(order_numbers)))).scalars()
        }

        rejected: list[RowError] = []
        accepted: list[tuple[OrderStatusRow, Order]] = []
        for row in rows:
            payload: OrderStatusRow = row.payload
            order = orders.get(payload.order_number)
            if order is None:
                rejected.append(reject(row, f"Order not found with Order Number: {payload.order_number}"))
                continue
            accepted.append((payload, order))

        if not accepted:
            return rejected

        await archive_active_snapshots(session, OrderStatusLog, OrderStatusLog.order_id, [order.id for _, order in accepted])
        await session.execute(
            insert(OrderStatusLog),
            [
                {
                    "order_id": order.id,
                    "order_status": payload.status,
                    "k8_order_no": payload.k8_order_no,
                    "notes": IMPORT_NOTE,
                    "is_active": True,
                }
                for payload, order in accepted
            ],
        )
        for payload, order in accepted:
            session.add(
                OrderStatusHistory(
                    order_id=order.id,
                    old_status=order.order_status,
                    new_status=payload.status,
                    notes=IMPORT_NOTE,
                )
            )
            order.order_status = payload.status
            order.k8_order_no = payload.k8_order_no
        await session.flush()
        return rejected
