from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from catalog_sync.core.enums import DealerAccountStatus, DealerTier
from catalog_sync.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from catalog_sync.models.sql_enums import dealer_account_status_enum, dealer_tier_enum


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    email: Mapped[str] = mapped_column(String(320), nullable=False)
    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(200), nullable=False)


class ShippingMethod(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "shipping_methods"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Dealer(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "dealers"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_dealer_user"),
        UniqueConstraint("account_number", name="uq_dealer_account_number"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    account_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    company_name: Mapped[str] = mapped_column(String(300), nullable=False)

    genuine_parts_tier: Mapped[DealerTier] = mapped_column(dealer_tier_enum, nullable=False)
    aftermarket_es_tier: Mapped[DealerTier] = mapped_column(dealer_tier_enum, nullable=False)
    aftermarket_b_tier: Mapped[DealerTier] = mapped_column(dealer_tier_enum, nullable=False)
    account_status: Mapped[DealerAccountStatus] = mapped_column(
        dealer_account_status_enum, nullable=False, default=DealerAccountStatus.ACTIVE
    )

    default_shipping_method_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("shipping_methods.id", ondelete="SET NULL"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
