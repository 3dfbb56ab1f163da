from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.core.enums import ImportEntityType
from catalog_sync.services.tabular import HeaderContract, TabularRow


T = TypeVar("T")

_NUMBER_CLEANUP = re.compile(r"[,\s£$€]")


@dataclass(frozen=True)
class RowError:
    row_number: int
    row_data: dict[str, Any] | None
    errors: list[str]


@dataclass(frozen=True)
class ValidRow:
    row_number: int
    row_data: dict[str, Any]
    payload: Any


def jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(v) for v in value]
    return str(value)


def raw_row_data(row: TabularRow) -> dict[str, Any]:
    return {header: jsonable(value) for header, value in row.values.items()}


def parse_number(value: Any) -> float | None:
    """Parse a spreadsheet number; blank means None, anything unparsable raises ValueError."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    text = _NUMBER_CLEANUP.sub("", str(value))
    if not text:
        return None
    number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {text}")
    return number


def required_text(row: TabularRow, header: str, errors: list[str]) -> str:
    text = row.text(header)
    if not text:
        errors.append(f"{header} is required")
    return text


def optional_non_negative(row: TabularRow, header: str, errors: list[str]) -> float | None:
    try:
        number = parse_number(row.get(header))
    except ValueError:
        errors.append(f"{header} must be a valid number")
        return None
    if number is not None and number < 0:
        errors.append(f"{header} must be a non-negative number")
        return None
    return number


def required_non_negative(row: TabularRow, header: str, errors: list[str]) -> float | None:
    if row.get(header) is None:
        errors.append(f"{header} is required")
        return None
    return optional_non_negative(row, header, errors)


def lookup_choice(value: str, table: Mapping[str, T]) -> T | None:
    """Case-insensitive lookup; `table` keys are expected in lower case."""
    normalized = value.strip().lower()
    if not normalized:
        return None
    return table.get(normalized)


class DuplicateKeyTracker:
    """Remembers the first row a normalized key was seen on within one file."""

    def __init__(self, label: str):
        self.label = label
        self._first_row: dict[Hashable, int] = {}

    def duplicate_message(self, key: Hashable) -> str | None:
        first = self._first_row.get(key)
        if first is None:
            return None
        return f"Duplicate {self.label} in file (first occurrence at row {first})"

    def register(self, key: Hashable, row_number: int) -> None:
        self._first_row.setdefault(key, row_number)


class ImportStrategy(ABC):
    """
    Entity-specific half of an import: row validation plus persistence.

    One instance serves a single import run, so implementations may collect
    per-run state (e.g. affected product codes) while persisting.

    `persist_rows` runs inside a transaction owned by the upsert engine and returns
    rejections for rows whose references cannot be resolved; those rows must not be
    written. Strategies with `full_state = True` treat the file as the complete
    current truth: the engine processes all rows as a single chunk and calls
    `finalize` with every valid row so absent records can be retired.
    """

    entity_type: ClassVar[ImportEntityType]
    headers: ClassVar[HeaderContract]
    duplicate_labels: ClassVar[tuple[str, ...]] = ()
    full_state: ClassVar[bool] = False

    def validate_rows(self, rows: Iterable[TabularRow]) -> tuple[list[ValidRow], list[RowError]]:
        trackers = {label: DuplicateKeyTracker(label) for label in self.duplicate_labels}
        valid: list[ValidRow] = []
        errors: list[RowError] = []

        for row in rows:
            row_data = raw_row_data(row)
            payload, messages = self.parse_row(row)
            if messages:
                errors.append(RowError(row_number=row.row_number, row_data=row_data, errors=messages))
                continue

            keys = self.natural_keys(payload)
            duplicates: list[str] = []
            for label, key in keys.items():
                message = trackers[label].duplicate_message(key)
                if message:
                    duplicates.append(message)
            if duplicates:
                errors.append(RowError(row_number=row.row_number, row_data=row_data, errors=duplicates))
                continue

            for label, key in keys.items():
                trackers[label].register(key, row.row_number)
            valid.append(ValidRow(row_number=row.row_number, row_data=row_data, payload=payload))

        return valid, errors

    @abstractmethod
    def parse_row(self, row: TabularRow) -> tuple[Any, list[str]]:
        """Return (payload, errors); payload is ignored when errors is non-empty."""

    def natural_keys(self, payload: Any) -> dict[str, Hashable]:
        return {}

    @abstractmethod
    async def persist_rows(self, session: AsyncSession, rows: list[ValidRow]) -> list[RowError]:
        ...

    async def finalize(self, session: AsyncSession, rows: list[ValidRow]) -> None:
        return None

    def affected_keys(self) -> set[str]:
        return set()


def reject(row: ValidRow, message: str) -> RowError:
    return RowError(row_number=row.row_number, row_data=row.row_data, errors=[message])
