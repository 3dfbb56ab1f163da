from __future__ import annotations

from sqlalchemy import Boolean, Float, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.enums import ProductType
from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from catalog_sync.models.sql_enums import product_type_enum


class Product(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("code", name="uq_product_code"),)

    code: Mapped[str] = mapped_column(String(80), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[ProductType] = mapped_column(product_type_enum, nullable=False, default=ProductType.AFTERMARKET)
    supplier_code: Mapped[str | None] = mapped_column(String(120), nullable=True)

    height: Mapped[float | None] = mapped_column(Float, nullable=True)
    length: Mapped[float | None] = mapped_column(Float, nullable=True)
    width: Mapped[float | None] = mapped_column(Float, nullable=True)
    weight: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
