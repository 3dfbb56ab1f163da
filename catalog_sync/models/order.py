from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.enums import OrderStatus
from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from catalog_sync.models.sql_enums import order_status_enum


class Order(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("order_number", name="uq_order_number"),)

    order_number: Mapped[str] = mapped_column(String(80), nullable=False)
    k8_order_no: Mapped[str | None] = mapped_column(String(80), nullable=True)
    order_status: Mapped[OrderStatus] = mapped_column(order_status_enum, nullable=False, default=OrderStatus.CREATED)


class OrderItem(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "order_items"
    __table_args__ = (Index("ix_order_items_order_code", "order_id", "product_code"),)

    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_code: Mapped[str] = mapped_column(String(80), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    qty_ordered: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qty_outstanding: Mapped[int | None] = mapped_column(Integer, nullable=True)
    in_warehouse: Mapped[int | None] = mapped_column(Integer, nullable=True)


class BackorderLog(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "backorder_logs"
    __table_args__ = (Index("ix_backorder_logs_item_active", "order_item_id", "is_active"),)

    order_item_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False)
    qty_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    qty_outstanding: Mapped[int] = mapped_column(Integer, nullable=False)
    in_warehouse: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class OrderStatusLog(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "order_status_logs"
    __table_args__ = (Index("ix_order_status_logs_order_active", "order_id", "is_active"),)

    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    order_status: Mapped[OrderStatus] = mapped_column(order_status_enum, nullable=False)
    k8_order_no: Mapped[str | None] = mapped_column(String(80), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class OrderStatusHistory(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "order_status_history"

    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    old_status: Mapped[OrderStatus | None] = mapped_column(order_status_enum, nullable=True)
    new_status: Mapped[OrderStatus] = mapped_column(order_status_enum, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
