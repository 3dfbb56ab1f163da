from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ProductStock(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "product_stocks"
    __table_args__ = (Index("ix_product_stocks_product_active", "product_id", "is_active"),)

    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
