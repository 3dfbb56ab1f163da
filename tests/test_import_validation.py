from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from catalog_sync.core.enums import DealerAccountStatus, DealerTier, OrderStatus, ProductType
from catalog_sync.services.import_backorders import BackorderImportStrategy
from catalog_sync.services.import_dealers import DealerImportStrategy
from catalog_sync.services.import_order_status import OrderStatusImportStrategy
from catalog_sync.services.import_products import PRODUCT_HEADERS, ProductImportStrategy
from catalog_sync.services.import_rows import jsonable, parse_number
from catalog_sync.services.import_strategies import IMPORT_STRATEGIES, get_import_strategy
from catalog_sync.services.import_superseded import SupersededMappingImportStrategy
from catalog_sync.services.tabular import TabularRow


def _product_values(code: str, **overrides: object) -> dict[str, object]:
    values: dict[str, object] = {header: None for header in PRODUCT_HEADERS.required}
    values.update(
        {
            "Supplier": "ACME",
            "Product Code": code,
            "Full Description": f"Part {code}",
            "Free Stock": 5,
            "Height": 1.5,
            "Retail Price": 10,
            "Trade Price": 8.5,
            "List Price": "1,250.00",
            "Discount Code": "gn",
        }
    )
    values.update(overrides)
    return values


def _rows(*values: dict[str, object], start: int = 2) -> list[TabularRow]:
    return [TabularRow(row_number=start + i, values=v) for i, v in enumerate(values)]


def test_parse_number_cleans_currency_and_thousands() -> None:
    assert parse_number("£1,250.50") == 1250.5
    assert parse_number(" ") is None
    assert parse_number(None) is None
    assert parse_number(3) == 3.0
    with pytest.raises(ValueError):
        parse_number("twelve")
    with pytest.raises(ValueError):
        parse_number(True)


def test_jsonable_keeps_row_data_serializable() -> None:
    assert jsonable({"a": Decimal("1.50"), "b": date(2024, 1, 2), "c": [1, None]}) == {
        "a": "1.50",
        "b": "2024-01-02",
        "c": [1, None],
    }


def test_every_entity_type_has_a_strategy() -> None:
    for entity_type, strategy_cls in IMPORT_STRATEGIES.items():
        strategy = get_import_strategy(entity_type)
        assert isinstance(strategy, strategy_cls)
        assert strategy.entity_type == entity_type


def test_duplicate_product_code_is_reported_against_first_occurrence() -> None:
    values = [_product_values(f"P{i}") for i in range(6)]
    values[1] = _product_values("ABC123")
    values[5] = _product_values("abc123")
    rows = _rows(*values)  # rows 2..7

    valid, errors = ProductImportStrategy().validate_rows(rows)

    assert [r.row_number for r in valid] == [2, 3, 4, 5, 6]
    assert len(errors) == 1
    assert errors[0].row_number == 7
    assert errors[0].errors == ["Duplicate product code in file (first occurrence at row 3)"]
    assert errors[0].row_data["Product Code"] == "abc123"


def test_product_row_parsing_and_errors() -> None:
    valid, errors = ProductImportStrategy().validate_rows(
        _rows(
            _product_values("ok-1"),
            _product_values("bad-1", Height=-1, **{"Discount Code": "zz", "Free Stock": "lots"}),
            _product_values("", **{"Full Description": None}),
        )
    )

    assert len(valid) == 1
    payload = valid[0].payload
    assert payload.code == "OK-1"
    assert payload.type == ProductType.GENUINE
    assert payload.stock == 5
    assert str(payload.prices[0]) == "10.00"
    assert str(payload.prices[6]) == "1250.00"
    assert payload.prices[2] is None

    by_row = {e.row_number: e.errors for e in errors}
    assert "Discount Code must be one of: gn, es, br" in by_row[3]
    assert "Free Stock must be a valid number" in by_row[3]
    assert "Height must be a non-negative number" in by_row[3]
    assert "Product Code is required" in by_row[4]
    assert "Full Description is required" in by_row[4]


def test_superseded_row_requires_distinct_codes_and_detects_duplicate_pairs() -> None:
    valid, errors = SupersededMappingImportStrategy().validate_rows(
        _rows(
            {"FROMPARTNO": "a", "TOPARTNO": "b"},
            {"FROMPARTNO": "C", "TOPARTNO": "c"},
            {"FROMPARTNO": "A", "TOPARTNO": "B"},
            {"FROMPARTNO": "A", "TOPARTNO": None},
        )
    )

    assert [(r.payload.product_code, r.payload.superseded_by) for r in valid] == [("A", "B")]
    by_row = {e.row_number: e.errors for e in errors}
    assert by_row[3] == ["FROMPARTNO and TOPARTNO cannot be the same"]
    assert by_row[4] == ["Duplicate mapping in file (first occurrence at row 2)"]
    assert by_row[5] == ["TOPARTNO is required"]


def test_order_status_lookup_is_case_insensitive() -> None:
    valid, errors = OrderStatusImportStrategy().validate_rows(
        _rows(
            {"Your Order No": "SO-1", "Our Order No": "K8-1", "Status": "PRO"},
            {"Your Order No": "SO-2", "Our Order No": None, "Status": "Ready For Shipment"},
            {"Your Order No": "SO-3", "Our Order No": None, "Status": "lost"},
            {"Your Order No": "SO-1", "Our Order No": None, "Status": "wdl"},
        )
    )

    assert [r.payload.status for r in valid] == [OrderStatus.PROCESSING, OrderStatus.READY_FOR_SHIPMENT]
    assert valid[1].payload.k8_order_no is None
    by_row = {e.row_number: e.errors for e in errors}
    assert by_row[4][0].startswith('Invalid status: "lost"')
    assert by_row[5] == ["Duplicate order number in file (first occurrence at row 2)"]


def test_backorder_quantities_must_be_present_and_non_negative() -> None:
    base = {
        "Account No": "1001",
        "Customer Name": "Garage",
        "Your Order No": "SO-1",
        "Our Order No": "K8-1",
        "Itm": 1,
        "Part": "P1",
        "Description": "Filter",
        "Q Ord": 4,
        "Q/O": 2,
        "In WH": 0,
        "Currency": "GBP",
        "Unit Price": 3,
        "Total": 12,
    }
    valid, errors = BackorderImportStrategy().validate_rows(
        _rows(base, {**base, "Part": "P2", "Q/O": -1}, {**base, "Part": "P3", "In WH": None}, {**base, "Part": "p1"})
    )

    assert [r.payload.part for r in valid] == ["P1"]
    by_row = {e.row_number: e.errors for e in errors}
    assert by_row[3] == ["Q/O must be a non-negative number"]
    assert by_row[4] == ["In WH is required"]
    assert by_row[5] == ["Duplicate order line in file (first occurrence at row 2)"]


def test_dealer_rows_validate_email_tiers_and_password() -> None:
    base = {
        "Account Number": 1001,
        "Company Name": "Garage Ltd",
        "First Name": "Sam",
        "Last Name": "Doe",
        "Email": "Sam@Example.com",
        "Genuine Parts Tier": "net1",
        "Aftermarket ES Tier": "Net2",
        "Aftermarket B Tier": "NET3",
        "Temp password": "secret1",
        "Status": "active",
        "Default shipping Method": None,
        "Notes": None,
    }
    valid, errors = DealerImportStrategy().validate_rows(
        _rows(
            base,
            {**base, "Account Number": 1002, "Email": "not-an-email", "Temp password": "123", "Status": "gone"},
            {**base, "Account Number": 1003, "Email": "sam@example.com"},
            {**base, "Account Number": "x", "Email": "other@example.com", "Genuine Parts Tier": "Net9"},
        )
    )

    assert len(valid) == 1
    payload = valid[0].payload
    assert payload.email == "sam@example.com"
    assert payload.genuine_parts_tier == DealerTier.NET1
    assert payload.aftermarket_b_tier == DealerTier.NET3
    assert payload.account_status == DealerAccountStatus.ACTIVE

    by_row = {e.row_number: e.errors for e in errors}
    assert "Invalid email format" in by_row[3]
    assert "Temp password must be at least 6 characters long" in by_row[3]
    assert any(m.startswith("Status must be one of") for m in by_row[3])
    assert by_row[4] == ["Duplicate email in file (first occurrence at row 2)"]
    assert "Account Number must be a positive number" in by_row[5]
    assert any(m.startswith("Genuine Parts Tier must be one of") for m in by_row[5])
