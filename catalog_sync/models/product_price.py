from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ProductPrice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    One price snapshot per import. The active row is the current price list;
    archived rows keep the history and are never deleted.
    """

    __tablename__ = "product_prices"
    __table_args__ = (Index("ix_product_prices_product_active", "product_id", "is_active"),)

    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")

    # net1 retail, net2 trade, net3..net6 band 1-4, net7 list
    net1: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net2: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net3: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net4: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net5: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net6: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    net7: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
