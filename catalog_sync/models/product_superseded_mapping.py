from __future__ import annotations

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ProductSupersededMapping(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "product_superseded_mappings"
    __table_args__ = (
        UniqueConstraint("product_code", "superseded_by", name="uq_superseded_mapping_pair"),
        Index("ix_superseded_mappings_active", "is_active"),
    )

    product_code: Mapped[str] = mapped_column(String(80), nullable=False)
    superseded_by: Mapped[str] = mapped_column(String(80), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
