from __future__ import annotations

import csv
import io
import logging
import re
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import PurePath
from typing import Any

from openpyxl import load_workbook
from openpyxl.cell.rich_text import CellRichText
from openpyxl.utils.exceptions import InvalidFileException


logger = logging.getLogger(__name__)

INVALID_FORMAT_MESSAGE = "Invalid file format. Please upload a valid XLSX, XLS, or CSV file."
EMPTY_FILE_MESSAGE = "File must contain a header row and at least one data row"

_SPREADSHEET_EXTENSIONS = {".xlsx", ".xls"}
_DELIMITED_EXTENSIONS = {".csv"}
_ZIP_SIGNATURE = b"PK"

_HYPERLINK_FORMULA = re.compile(
    r'^=HYPERLINK\(\s*"[^"]*"\s*[,;]\s*"(?P<text>[^"]*)"\s*\)$',
    re.IGNORECASE,
)


class FileFormat(StrEnum):
    SPREADSHEET = "SPREADSHEET"
    DELIMITED = "DELIMITED"
    UNKNOWN = "UNKNOWN"


class TabularFormatError(ValueError):
    pass


class TabularSchemaError(ValueError):
    def __init__(self, message: str, *, missing: list[str] | None = None, unexpected: list[str] | None = None):
        super().__init__(message)
        self.missing = list(missing or [])
        self.unexpected = list(unexpected or [])


@dataclass(frozen=True)
class HeaderContract:
    required: tuple[str, ...]
    optional: tuple[str, ...] = ()

    @property
    def allowed(self) -> frozenset[str]:
        return frozenset(self.required) | frozenset(self.optional)


@dataclass(frozen=True)
class TabularRow:
    row_number: int
    values: dict[str, Any]

    def get(self, header: str) -> Any:
        return self.values.get(header)

    def text(self, header: str) -> str:
        value = self.values.get(header)
        if value is None:
            return ""
        return str(value).strip()


@dataclass
class TabularFile:
    file_format: FileFormat
    headers: list[str]
    rows: list[TabularRow] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    def iter_rows(self) -> Iterator[TabularRow]:
        return iter(self.rows)


def detect_file_format(content: bytes, file_name: str | None = None) -> FileFormat:
    suffix = PurePath(file_name or "").suffix.lower()
    if suffix in _SPREADSHEET_EXTENSIONS:
        return FileFormat.SPREADSHEET
    if suffix in _DELIMITED_EXTENSIONS:
        return FileFormat.DELIMITED

    if content[:2] == _ZIP_SIGNATURE:
        return FileFormat.SPREADSHEET
    if content and 0x20 <= content[0] <= 0x7E:
        return FileFormat.DELIMITED
    return FileFormat.UNKNOWN


def normalize_cell(value: Any) -> Any:
    """
    Normalize a raw cell value.

    Hyperlink cells come back from openpyxl as their display text already; literal
    `=HYPERLINK("url", "text")` formulas (CSV exports) and rich text are resolved here.
    Blank strings become None and integral floats become ints.
    """
    if value is None:
        return None
    if isinstance(value, CellRichText):
        value = str(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        match = _HYPERLINK_FORMULA.match(text)
        if match:
            return match.group("text").strip() or None
        return text
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def pick_csv_delimiter(csv_text: str) -> str:
    first_non_empty = next((line for line in csv_text.splitlines() if line.strip()), "")
    if not first_non_empty:
        return ","
    candidates = [",", ";", "\t", "|"]
    return max(candidates, key=lambda candidate: first_non_empty.count(candidate))


def _read_spreadsheet(content: bytes) -> list[list[Any]]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
        raise TabularFormatError(INVALID_FORMAT_MESSAGE) from exc

    try:
        if not workbook.worksheets:
            raise TabularFormatError("No worksheet found in the file")
        sheet = workbook.worksheets[0]
        # Read-only sheets yield empty tuples for missing rows, so positions match sheet row numbers.
        return [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _decode_text(content: bytes, *, strict: bool) -> str:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        if strict:
            raise
        text = content.decode("cp1252", errors="replace")
    return text.lstrip("\ufeff")


def _read_delimited(content: bytes, *, strict: bool = False) -> list[list[Any]]:
    try:
        text = _decode_text(content, strict=strict)
        delimiter = pick_csv_delimiter(text)
        return [list(row) for row in csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)]
    except (UnicodeDecodeError, csv.Error) as exc:
        raise TabularFormatError(INVALID_FORMAT_MESSAGE) from exc


def _read_raw_rows(content: bytes, file_format: FileFormat) -> tuple[FileFormat, list[list[Any]]]:
    if file_format == FileFormat.SPREADSHEET:
        return file_format, _read_spreadsheet(content)
    if file_format == FileFormat.DELIMITED:
        return file_format, _read_delimited(content)

    try:
        return FileFormat.SPREADSHEET, _read_spreadsheet(content)
    except TabularFormatError:
        logger.info("Unknown file signature did not parse as a spreadsheet; trying delimited text")
    return FileFormat.DELIMITED, _read_delimited(content, strict=True)


def _build_table(file_format: FileFormat, raw_rows: list[list[Any]]) -> TabularFile:
    if not raw_rows:
        raise TabularFormatError(EMPTY_FILE_MESSAGE)

    columns: list[tuple[int, str]] = []
    seen: set[str] = set()
    for index, raw_header in enumerate(raw_rows[0]):
        header = normalize_cell(raw_header)
        if header is None:
            continue
        header = str(header).strip()
        if header in seen:
            continue
        seen.add(header)
        columns.append((index, header))
    if not columns:
        raise TabularFormatError(EMPTY_FILE_MESSAGE)

    table = TabularFile(file_format=file_format, headers=[header for _, header in columns])
    for row_number, raw_row in enumerate(raw_rows[1:], start=2):
        values = {
            header: normalize_cell(raw_row[index]) if index < len(raw_row) else None
            for index, header in columns
        }
        if all(value is None for value in values.values()):
            continue
        table.rows.append(TabularRow(row_number=row_number, values=values))

    if not table.rows:
        raise TabularFormatError(EMPTY_FILE_MESSAGE)
    return table


def load_table(content: bytes, file_name: str | None = None) -> TabularFile:
    detected = detect_file_format(content, file_name)
    file_format, raw_rows = _read_raw_rows(content, detected)
    return _build_table(file_format, raw_rows)


def validate_headers(headers: list[str], contract: HeaderContract) -> None:
    present = set(headers)
    missing = [header for header in contract.required if header not in present]
    if missing:
        raise TabularSchemaError(
            f"Invalid file structure. Missing required headers: {', '.join(missing)}",
            missing=missing,
        )

    unexpected = [header for header in headers if header not in contract.allowed]
    if unexpected:
        raise TabularSchemaError(
            f"Invalid file structure. Unexpected headers: {', '.join(unexpected)}",
            unexpected=unexpected,
        )
