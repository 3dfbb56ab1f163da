from __future__ import annotations

import asyncio
import re
import uuid
from collections.abc import Hashable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import DealerAccountStatus, DealerTier, ImportEntityType
from catalog_sync.core.security import hash_password
from catalog_sync.models.dealer import Dealer, ShippingMethod, User
from catalog_sync.services.import_rows import (
    ImportStrategy,
    RowError,
    ValidRow,
    lookup_choice,
    parse_number,
    reject,
    required_text,
)
from catalog_sync.services.tabular import HeaderContract, TabularRow


DEALER_HEADERS = HeaderContract(
    required=(
        "Account Number",
        "Company Name",
        "First Name",
        "Last Name",
        "Email",
        "Genuine Parts Tier",
        "Aftermarket ES Tier",
        "Aftermarket B Tier",
        "Temp password",
        "Status",
    ),
    optional=("Default shipping Method", "Notes"),
)

MIN_TEMP_PASSWORD_LENGTH = 6

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TIERS: dict[str, DealerTier] = {tier.value.lower(): tier for tier in DealerTier}
_ACCOUNT_STATUSES: dict[str, DealerAccountStatus] = {status.value.lower(): status for status in DealerAccountStatus}


@dataclass(frozen=True)
class DealerRow:
    account_number: int
    company_name: str
    first_name: str
    last_name: str
    email: str
    genuine_parts_tier: DealerTier
    aftermarket_es_tier: DealerTier
    aftermarket_b_tier: DealerTier
    temp_password: str
    account_status: DealerAccountStatus
    default_shipping_method: str | None
    notes: str | None


def _parse_tier(row: TabularRow, header: str, errors: list[str]) -> DealerTier | None:
    value = row.text(header)
    if not value:
        errors.append(f"{header} is required")
        return None
    tier = lookup_choice(value, _TIERS)
    if tier is None:
        errors.append(f"{header} must be one of: {', '.join(t.value for t in DealerTier)}")
    return tier


def _parse_account_number(row: TabularRow, errors: list[str]) -> int | None:
    if row.get("Account Number") is None:
        errors.append("Account Number is required")
        return None
    try:
        number = parse_number(row.get("Account Number"))
    except ValueError:
        number = None
    if number is None or number <= 0 or not float(number).is_integer():
        errors.append("Account Number must be a positive number")
        return None
    return int(number)


def _resolve_shipping_method(value: str | None, methods: list[ShippingMethod]) -> uuid.UUID | None:
    if not value:
        return None
    lowered = value.strip().lower()
    for method in methods:
        if str(method.id) == lowered:
            return method.id
    for method in methods:
        if method.name.strip().lower() == lowered:
            return method.id
    return None


class DealerImportStrategy(ImportStrategy):
    entity_type = ImportEntityType.DEALERS
    headers = DEALER_HEADERS
    duplicate_labels = ("email", "account number")

    def parse_row(self, row: TabularRow) -> tuple[DealerRow | None, list[str]]:
        errors: list[str] = []
        account_number = _parse_account_number(row, errors)
        company_name = required_text(row, "Company Name", errors)
        first_name = required_text(row, "First Name", errors)
        last_name = required_text(row, "Last Name", errors)

        email = row.text("Email").lower()
        if not email:
            errors.append("Email is required")
        elif not _EMAIL_RE.match(email):
            errors.append("Invalid email format")

        genuine = _parse_tier(row, "Genuine Parts Tier", errors)
        es_tier = _parse_tier(row, "Aftermarket ES Tier", errors)
        b_tier = _parse_tier(row, "Aftermarket B Tier", errors)

        status_text = row.text("Status")
        account_status = lookup_choice(status_text, _ACCOUNT_STATUSES) if status_text else None
        if not status_text:
            errors.append("Status is required")
        elif account_status is None:
            errors.append(f"Status must be one of: {', '.join(s.value for s in DealerAccountStatus)}")

        temp_password = row.text("Temp password")
        if not temp_password:
            errors.append("Temp password is required")
        elif len(temp_password) < MIN_TEMP_PASSWORD_LENGTH:
            errors.append(f"Temp password must be at least {MIN_TEMP_PASSWORD_LENGTH} characters long")

        if errors:
            return None, errors
        return (
            DealerRow(
                account_number=account_number,
                company_name=company_name,
                first_name=first_name,
                last_name=last_name,
                email=email,
                genuine_parts_tier=genuine,
                aftermarket_es_tier=es_tier,
                aftermarket_b_tier=b_tier,
                temp_password=temp_password,
                account_status=account_status,
                default_shipping_method=row.text("Default shipping Method") or None,
                notes=row.text("Notes") or None,
            ),
            [],
        )

    def natural_keys(self, payload: DealerRow) -> dict[str, Hashable]:
        return {"email": payload.email, "account number": payload.account_number}

    async def persist_rows(self, session: AsyncSession, rows: list[ValidRow]) -> list[RowError]:
        payloads: list[DealerRow] = [row.payload for row in rows]
        emails = [payload.email for payload in payloads]
        account_numbers = [payload.account_number for payload in payloads]

        users = {
            user.email: user
            for user in (await session.execute(select(User).where(User.email.in_(emails)))).scalars()
        }
        dealers_by_number = {
            dealer.account_number: dealer
            for dealer in (
                await session.execute(select(Dealer).where(Dealer.account_number.in_(account_numbers)))
            ).scalars()
        }
        dealers_by_user: dict[uuid.UUID, Dealer] = {}
        if users:
            user_ids = [user.id for user in users.values()]
            dealers_by_user = {
                dealer.user_id: dealer
                for dealer in (await session.execute(select(Dealer).where(Dealer.user_id.in_(user_ids)))).scalars()
            }
        shipping_methods = list(
            (await session.execute(select(ShippingMethod).where(ShippingMethod.is_active.is_(True)))).scalars()
        )

        rejected: list[RowError] = []
        accepted: list[tuple[DealerRow, User]] = []
        for row, payload in zip(rows, payloads):
            user = users.get(payload.email)
            same_number = dealers_by_number.get(payload.account_number)
            if user is not None:
                if same_number is not None and same_number.user_id != user.id:
                    rejected.append(reject(row, "Account Number already exists for a different user"))
                    continue
                # Existing accounts keep their password.
                user.first_name = payload.first_name
                user.last_name = payload.last_name
            else:
                if same_number is not None:
                    rejected.append(reject(row, "Account Number already exists for a different email"))
                    continue
                password_hash = await asyncio.to_thread(hash_password, payload.temp_password)
                user = User(
                    id=uuid.uuid4(),
                    email=payload.email,
                    first_name=payload.first_name,
                    last_name=payload.last_name,
                    password_hash=password_hash,
                )
                session.add(user)
            accepted.append((payload, user))
        await session.flush()

        for payload, user in accepted:
            dealer = dealers_by_user.get(user.id)
            if dealer is None:
                dealer = Dealer(id=uuid.uuid4(), user_id=user.id)
                session.add(dealer)
            dealer.account_number = payload.account_number
            dealer.company_name = payload.company_name
            dealer.genuine_parts_tier = payload.genuine_parts_tier
            dealer.aftermarket_es_tier = payload.aftermarket_es_tier
            dealer.aftermarket_b_tier = payload.aftermarket_b_tier
            dealer.account_status = payload.account_status
            dealer.default_shipping_method_id = _resolve_shipping_method(
                payload.default_shipping_method, shipping_methods
            )
            dealer.notes = payload.notes
        await session.flush()
        return rejected
