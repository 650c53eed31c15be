"""
Statement parser — turns an uploaded bank CSV into candidate rows.

The file must be UTF-8 (a BOM is tolerated), comma-delimited, with
a header row naming at least a reference, an amount and a date
column. Header names are matched case- and whitespace-insensitively
against the aliases in COLUMN_ALIASES, unless the caller maps a
field to a column explicitly. When the reference cell is blank the
description stands in for it, so a student number written only in
the narrative can still be matched.

Accepted date formats, tried in order:
    YYYY-MM-DD (ISO-8601, an optional time part is ignored)
    YYYY/MM/DD
    DD/MM/YYYY, DD-MM-YYYY, DD.MM.YYYY (day first)
    DD Mon YYYY (e.g. 05 Mar 2025)

A bad row never aborts the parse. Each row becomes either a
ParsedRow or a RowError, and the caller gets both lists. Only a
file that cannot be read at all raises StatementFormatError.
"""

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from tuition_ledger.exceptions import StatementFormatError
from tuition_ledger.models.invoice import MAX_AMOUNT

CENT = Decimal("0.01")

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "reference": (
        "reference", "ref", "reference number", "payment reference",
        "student number",
    ),
    "amount": ("amount", "credit", "credit amount", "paid amount"),
    "date": ("date", "transaction date", "payment date", "value date"),
    "description": ("description", "narrative", "details", "memo"),
}
REQUIRED_FIELDS = ("reference", "amount", "date")

DATE_FORMATS = ("%Y/%m/%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%d %b %Y")

_CURRENCY_PREFIX = re.compile(r"^(?:ZAR|R|\$)\s*", re.IGNORECASE)
_HEADER_SEPARATORS = re.compile(r"[\s_\-]+")
_PLAIN_DECIMAL = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


@dataclass(frozen=True)
class ParsedRow:
    """A statement row that passed validation."""
    row_number: int
    reference: str
    amount: Decimal
    payment_date: date
    description: str | None = None


@dataclass(frozen=True)
class RowError:
    """A statement row that was skipped, with the reason."""
    row_number: int
    reason: str


@dataclass
class ParseResult:
    rows: list[ParsedRow] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    columns: dict[str, str] = field(default_factory=dict)


@dataclass
class StatementPreview:
    """What an upload looks like before it is imported."""
    headers: list[str]
    columns: dict[str, str]
    missing_fields: list[str]
    sample_rows: list[dict[str, str]]
    total_rows: int


def normalize_header(name: str) -> str:
    return _HEADER_SEPARATORS.sub(" ", (name or "").strip().lower())


def detect_columns(
    fieldnames: list[str], column_map: dict[str, str | None] | None = None
) -> dict[str, str]:
    """
    Map semantic field names to the header names used in the file.

    Columns named in column_map win over the aliases. Fields that
    cannot be placed are left out; a column_map entry naming an
    unknown field or a header the file does not have raises
    StatementFormatError.
    """
    by_normalized = {normalize_header(name): name for name in fieldnames}
    mapping = {}

    for semantic, header in (column_map or {}).items():
        if semantic not in COLUMN_ALIASES:
            raise StatementFormatError(f"Unknown statement field {semantic!r}")
        if not header:
            continue
        key = normalize_header(header)
        if key not in by_normalized:
            raise StatementFormatError(
                f"Column {header!r} mapped to {semantic} is not in the statement. "
                f"Found: {', '.join(fieldnames)}"
            )
        mapping[semantic] = by_normalized[key]

    for semantic, aliases in COLUMN_ALIASES.items():
        if semantic in mapping:
            continue
        for alias in aliases:
            if alias in by_normalized:
                mapping[semantic] = by_normalized[alias]
                break
    return mapping


def resolve_columns(
    fieldnames: list[str], column_map: dict[str, str | None] | None = None
) -> dict[str, str]:
    """
    Like detect_columns, but every required field must be placed.

    Raises StatementFormatError naming the fields that have no column.
    """
    mapping = detect_columns(fieldnames, column_map)
    missing = [name for name in REQUIRED_FIELDS if name not in mapping]
    if missing:
        raise StatementFormatError(
            f"Statement is missing required column(s): {', '.join(missing)}. "
            f"Found: {', '.join(fieldnames)}"
        )
    return mapping


def parse_amount(text: str) -> Decimal:
    """
    Parse a statement amount into a positive Decimal rounded to cents.

    Only plain decimals are accepted, so an exponent such as 5E2
    is rejected rather than read as 500. Raises ValueError with a
    user-facing reason.
    """
    cleaned = (text or "").strip().replace(",", "").replace(" ", "")
    cleaned = _CURRENCY_PREFIX.sub("", cleaned)
    if not cleaned:
        raise ValueError("missing amount")
    if not _PLAIN_DECIMAL.fullmatch(cleaned):
        raise ValueError(f"non-numeric amount {text.strip()!r}")

    try:
        amount = Decimal(cleaned).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"amount too large {text.strip()!r}")
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
    if amount >= MAX_AMOUNT:
        raise ValueError(f"amount too large, got {amount}")
    return amount


def parse_date(text: str) -> date:
    """Parse a statement date. Raises ValueError when no format fits."""
    value = (text or "").strip()
    if not value:
        raise ValueError("missing date")

    iso_part = value.split("T")[0].split(" ")[0]
    try:
        return date.fromisoformat(iso_part)
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unparseable date {value!r}")


def _parse_row(row_number: int, row: dict, columns: dict[str, str]) -> ParsedRow:
    description = None
    if "description" in columns:
        description = (row.get(columns["description"]) or "").strip() or None

    reference = (row.get(columns["reference"]) or "").strip()
    if not reference:
        if not description:
            raise ValueError("missing reference")
        # Parents often type the student number into the narrative only.
        reference = description

    amount = parse_amount(row.get(columns["amount"]) or "")
    payment_date = parse_date(row.get(columns["date"]) or "")

    return ParsedRow(
        row_number=row_number,
        reference=reference,
        amount=amount,
        payment_date=payment_date,
        description=description,
    )


def _is_blank(row: dict) -> bool:
    return not any((v or "").strip() for k, v in row.items() if k is not None)


def _open_reader(content: bytes) -> csv.DictReader:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise StatementFormatError("Statement is not valid UTF-8 text")

    if not text.strip():
        raise StatementFormatError("Statement file is empty")

    reader = csv.DictReader(io.StringIO(text, newline=""), delimiter=",")
    if not reader.fieldnames:
        raise StatementFormatError("Statement has no header row")
    return reader


def parse_statement(
    content: bytes, column_map: dict[str, str | None] | None = None
) -> ParseResult:
    """
    Parse a whole statement file.

    Row numbers match what a user sees in a spreadsheet: the header
    is row 1, the first data row is row 2.
    """
    reader = _open_reader(content)
    columns = resolve_columns(reader.fieldnames, column_map)
    result = ParseResult(columns=columns)

    try:
        for row in reader:
            row_number = reader.line_num
            if _is_blank(row):
                continue
            try:
                result.rows.append(_parse_row(row_number, row, columns))
            except ValueError as e:
                result.errors.append(RowError(row_number=row_number, reason=str(e)))
    except csv.Error as e:
        raise StatementFormatError(f"Malformed CSV near line {reader.line_num}: {e}")

    return result


def preview_statement(
    content: bytes,
    column_map: dict[str, str | None] | None = None,
    sample_size: int = 5,
) -> StatementPreview:
    """
    Read the headers and the first rows of a statement.

    Unlike parse_statement, a missing required column is reported
    in missing_fields instead of raised, so the caller can pick a
    column by hand and try again.
    """
    reader = _open_reader(content)
    columns = detect_columns(reader.fieldnames, column_map)

    sample_rows = []
    total_rows = 0
    try:
        for row in reader:
            if _is_blank(row):
                continue
            total_rows += 1
            if len(sample_rows) < sample_size:
                sample_rows.append(
                    {k: (v or "") for k, v in row.items() if k is not None}
                )
    except csv.Error as e:
        raise StatementFormatError(f"Malformed CSV near line {reader.line_num}: {e}")

    return StatementPreview(
        headers=list(reader.fieldnames),
        columns=columns,
        missing_fields=[name for name in REQUIRED_FIELDS if name not in columns],
        sample_rows=sample_rows,
        total_rows=total_rows,
    )
