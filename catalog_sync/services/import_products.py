from __future__ import annotations

import uuid
from collections.abc import Hashable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import ImportEntityType, ProductType
from catalog_sync.models.product import Product
from catalog_sync.models.product_price import ProductPrice
from catalog_sync.models.product_stock import ProductStock
from catalog_sync.services.import_rows import (
    ImportStrategy,
    RowError,
    ValidRow,
    lookup_choice,
    optional_non_negative,
    parse_number,
    required_text,
)
from catalog_sync.services.tabular import HeaderContract, TabularRow
from catalog_sync.services.upsert_engine import archive_active_snapshots


DEFAULT_CURRENCY = "GBP"

PRODUCT_HEADERS = HeaderContract(
    required=(
        "Supplier",
        "Product Code",
        "Height",
        "Length",
        "Width",
        "Weight",
        "Full Description",
        "Free Stock",
        "Cost Price",
        "Retail Price",
        "Trade Price",
        "Band 1",
        "Band 2",
        "Band 3",
        "Band 4",
        "List Price",
        "Discount Code",
    )
)

_DISCOUNT_CODES: dict[str, ProductType] = {
    "gn": ProductType.GENUINE,
    "es": ProductType.AFTERMARKET,
    "br": ProductType.BRANDED,
}

# Column order maps onto net1..net7.
_PRICE_HEADERS = ("Retail Price", "Trade Price", "Band 1", "Band 2", "Band 3", "Band 4", "List Price")


@dataclass(frozen=True)
class ProductRow:
    code: str
    name: str
    type: ProductType
    supplier_code: str | None
    height: float | None
    length: float | None
    width: float | None
    weight: float | None
    stock: int
    prices: tuple[Decimal | None, ...]


def _to_price(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


class ProductImportStrategy(ImportStrategy):
    entity_type = ImportEntityType.PRODUCTS
    headers = PRODUCT_HEADERS
    duplicate_labels = ("product code",)

    def parse_row(self, row: TabularRow) -> tuple[ProductRow | None, list[str]]:
        errors: list[str] = []
        code = required_text(row, "Product Code", errors).upper()
        name = required_text(row, "Full Description", errors)

        product_type = ProductType.AFTERMARKET
        discount_code = row.text("Discount Code")
        if discount_code:
            resolved = lookup_choice(discount_code, _DISCOUNT_CODES)
            if resolved is None:
                errors.append("Discount Code must be one of: gn, es, br")
            else:
                product_type = resolved

        stock = 0
        try:
            free_stock = parse_number(row.get("Free Stock"))
        except ValueError:
            free_stock = None
        if free_stock is None:
            errors.append("Free Stock must be a valid number")
        else:
            stock = round(free_stock)

        height = optional_non_negative(row, "Height", errors)
        length = optional_non_negative(row, "Length", errors)
        width = optional_non_negative(row, "Width", errors)
        weight = optional_non_negative(row, "Weight", errors)

        optional_non_negative(row, "Cost Price", errors)
        prices = tuple(_to_price(optional_non_negative(row, header, errors)) for header in _PRICE_HEADERS)

        if errors:
            return None, errors
        return (
            ProductRow(
                code=code,
                name=name,
                type=product_type,
                supplier_code=row.text("Supplier") or None,
                height=height,
                length=length,
                width=width,
                weight=weight,
                stock=stock,
                prices=prices,
            ),
            [],
        )

    def natural_keys(self, payload: ProductRow) -> dict[str, Hashable]:
        return {"product code": payload.code}

    async def persist_rows(self, session: AsyncSession, rows: list[ValidRow]) -> list[RowError]:
        payloads: list[ProductRow] = [row.payload for row in rows]
        codes = [payload.code for payload in payloads]

        existing = {
            product.code: product
            for product in (await session.execute(select(Product).where(Product.code.in_(codes)))).scalars()
        }

        product_ids: dict[str, uuid.UUID] = {}
        for payload in payloads:
            product = existing.get(payload.code)
            if product is None:
                product = Product(id=uuid.uuid4(), code=payload.code)
                session.add(product)
            product.name = payload.name
            product.type = payload.type
            product.supplier_code = payload.supplier_code
            product.height = payload.height
            product.length = payload.length
            product.width = payload.width
            product.weight = payload.weight
            product.is_active = True
            product_ids[payload.code] = product.id
        await session.flush()

        ids = list(product_ids.values())

        await archive_active_snapshots(session, ProductStock, ProductStock.product_id, ids)
        await session.execute(
            insert(ProductStock),
            [
                {"product_id": product_ids[payload.code], "stock": payload.stock, "is_active": True}
                for payload in payloads
            ],
        )

        await archive_active_snapshots(session, ProductPrice, ProductPrice.product_id, ids)
        await session.execute(
            insert(ProductPrice),
            [
                {
                    "product_id": product_ids[payload.code],
                    "currency": DEFAULT_CURRENCY,
                    **{f"net{index}": price for index, price in enumerate(payload.prices, start=1)},
                    "is_active": True,
                }
                for payload in payloads
            ],
        )
        return []
