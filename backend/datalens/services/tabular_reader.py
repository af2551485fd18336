"""
Tabular Reader: CSV and Spreadsheet Parsing

Turns the raw bytes of an uploaded file into a RawTable: a header list plus
rows of raw cell strings, one string per header. No type conversion happens
here; every cell leaves the reader as text so the classifier sees exactly
what the user uploaded.

- CSV: first non-blank line is the header, fields are whitespace-trimmed,
  rows are padded/truncated to the header width.
- Spreadsheets (.xlsx via openpyxl, .xls via xlrd): first sheet only,
  row 0 is the header, cells rendered through a fixed per-kind conversion.
"""

import csv
import datetime
import enum
import io
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

import openpyxl
import pandas as pd
import xlrd

from ..core.errors import EmptyFileError, MalformedFileError, UnsupportedFormatError
from ..models.dataset import FileKind

logger = logging.getLogger("datalens.reader")


# ═══════════════════════════════════════════════════════════════════════════
# File Kind Detection
# ═══════════════════════════════════════════════════════════════════════════


CSV_EXTENSIONS = (".csv",)
SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")

XLSX_SIGNATURE = b"PK\x03\x04"
XLS_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def detect_file_kind(filename: Optional[str]) -> FileKind:
    """Detect the file kind from its extension, before any byte is read."""
    lower = (filename or "").lower()
    if lower.endswith(CSV_EXTENSIONS):
        return FileKind.CSV
    if lower.endswith(SPREADSHEET_EXTENSIONS):
        return FileKind.SPREADSHEET
    raise UnsupportedFormatError(
        f"Unsupported file format: {filename!r}. Only CSV and Excel files are allowed."
    )


# ═══════════════════════════════════════════════════════════════════════════
# RawTable
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class RawTable:
    """Headers plus rows of raw cell strings, each row as wide as the header."""
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)

    @property
    def width(self) -> int:
        return len(self.headers)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_position(self, name: str) -> Optional[int]:
        """Position of the first header matching ``name``, ignoring case."""
        wanted = name.casefold()
        for position, header in enumerate(self.headers):
            if header.casefold() == wanted:
                return position
        return None

    def column_values(self, position: int) -> List[str]:
        return [row[position] for row in self.rows]

    def to_frame(self) -> pd.DataFrame:
        """Positional DataFrame (columns 0..width-1) so duplicate headers stay distinct."""
        return pd.DataFrame(self.rows, columns=list(range(self.width)), dtype=object)


def _fit_row(cells: Sequence[str], width: int) -> List[str]:
    row = list(cells[:width])
    if len(row) < width:
        row.extend([""] * (width - len(row)))
    return row


# ═══════════════════════════════════════════════════════════════════════════
# CSV
# ═══════════════════════════════════════════════════════════════════════════


def _detect_encoding(content: bytes) -> str:
    """Detect text encoding by trying common encodings in order."""
    for encoding in ('utf-8-sig', 'utf-8', 'latin-1', 'cp1252'):
        try:
            content.decode(encoding)
            return encoding
        except (UnicodeDecodeError, LookupError):
            continue
    return 'utf-8'


def read_csv(content: bytes) -> RawTable:
    encoding = _detect_encoding(content)
    text = content.decode(encoding)

    try:
        # Blank lines come back as empty lists and are skipped
        records = [record for record in csv.reader(io.StringIO(text, newline="")) if record]
    except csv.Error as exc:
        raise MalformedFileError(f"Unreadable CSV content: {exc}") from exc

    if not records:
        raise EmptyFileError("CSV file is empty")

    headers = [name.strip() for name in records[0]]
    rows = [_fit_row([cell.strip() for cell in record], len(headers)) for record in records[1:]]

    if not rows:
        raise EmptyFileError("CSV file has a header but no data rows")

    logger.debug("Parsed CSV (%s): %d columns, %d rows", encoding, len(headers), len(rows))
    return RawTable(headers=headers, rows=rows)


# ═══════════════════════════════════════════════════════════════════════════
# Spreadsheet Cells
# ═══════════════════════════════════════════════════════════════════════════


class CellKind(enum.Enum):
    """Closed set of spreadsheet cell kinds."""
    STRING = "string"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    FORMULA = "formula"
    BLANK = "blank"


@dataclass(frozen=True)
class SheetCell:
    kind: CellKind
    value: Any = None
    is_date: bool = False  # NUMERIC cells with a date number format


BLANK_CELL = SheetCell(CellKind.BLANK)

# Naive cell values are read as UTC
DATE_TEXT_FORMAT = "%a %b %d %H:%M:%S %Z %Y"
# Excel's day zero for time-only values
EXCEL_EPOCH_DAY = datetime.date(1899, 12, 31)


def format_double(value: float) -> str:
    """Render a float the way a JVM prints a double: ``30.0``, ``1.0E7``, ``1.0E-4``."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "-0.0" if math.copysign(1.0, value) < 0 else "0.0"

    if 1e-3 <= abs(value) < 1e7:
        return repr(value)

    shortest = Decimal(repr(value)).normalize()
    sign, digits, _ = shortest.as_tuple()
    digit_text = "".join(str(d) for d in digits)
    mantissa = digit_text[0] + "." + (digit_text[1:] or "0")
    return f"{'-' if sign else ''}{mantissa}E{shortest.adjusted()}"


def format_date(value: Any) -> str:
    if isinstance(value, datetime.datetime):
        moment = value
    elif isinstance(value, datetime.date):
        moment = datetime.datetime.combine(value, datetime.time())
    elif isinstance(value, datetime.time):
        moment = datetime.datetime.combine(EXCEL_EPOCH_DAY, value)
    elif isinstance(value, datetime.timedelta):
        moment = datetime.datetime.combine(EXCEL_EPOCH_DAY, datetime.time()) + value
    else:
        return str(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc).strftime(DATE_TEXT_FORMAT)


def _string_text(cell: SheetCell) -> str:
    return str(cell.value)


def _numeric_text(cell: SheetCell) -> str:
    if cell.is_date:
        return format_date(cell.value)
    return format_double(float(cell.value))


def _boolean_text(cell: SheetCell) -> str:
    return "true" if cell.value else "false"


def _formula_text(cell: SheetCell) -> str:
    # Formula source, never the cached result
    source = str(getattr(cell.value, "text", cell.value))
    return source[1:] if source.startswith("=") else source


def _blank_text(cell: SheetCell) -> str:
    return ""


_CELL_CONVERTERS: Dict[CellKind, Callable[[SheetCell], str]] = {
    CellKind.STRING: _string_text,
    CellKind.NUMERIC: _numeric_text,
    CellKind.BOOLEAN: _boolean_text,
    CellKind.FORMULA: _formula_text,
    CellKind.BLANK: _blank_text,
}


def cell_to_text(cell: Optional[SheetCell]) -> str:
    """Convert a spreadsheet cell to its raw string form."""
    if cell is None:
        return ""
    return _CELL_CONVERTERS[cell.kind](cell)


# ═══════════════════════════════════════════════════════════════════════════
# Workbook Backends
# ═══════════════════════════════════════════════════════════════════════════

# One entry per physical sheet row; None marks a row with no content
SheetRows = List[Optional[List[SheetCell]]]


def _openpyxl_cell(cell: Any) -> SheetCell:
    value = cell.value
    if value is None:
        return BLANK_CELL

    data_type = cell.data_type
    if data_type == "f":
        return SheetCell(CellKind.FORMULA, value)
    if data_type == "b":
        return SheetCell(CellKind.BOOLEAN, bool(value))
    if data_type == "e":
        return BLANK_CELL
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time, datetime.timedelta)):
        return SheetCell(CellKind.NUMERIC, value, is_date=True)
    if isinstance(value, (int, float)):
        return SheetCell(CellKind.NUMERIC, value)
    return SheetCell(CellKind.STRING, str(value))


def _xlsx_rows(content: bytes) -> SheetRows:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(content), data_only=False)
    except Exception as exc:
        raise MalformedFileError(f"Unreadable .xlsx workbook: {exc}") from exc

    try:
        if not workbook.worksheets:
            raise MalformedFileError("Workbook has no worksheets")
        sheet = workbook.worksheets[0]
        sheet_rows: SheetRows = []
        for row in sheet.iter_rows():
            present = any(cell.value is not None for cell in row)
            sheet_rows.append([_openpyxl_cell(cell) for cell in row] if present else None)
        return sheet_rows
    finally:
        workbook.close()


def _xlrd_cell(cell: Any, datemode: int) -> SheetCell:
    ctype = cell.ctype
    if ctype == xlrd.XL_CELL_TEXT:
        return SheetCell(CellKind.STRING, cell.value)
    if ctype == xlrd.XL_CELL_NUMBER:
        return SheetCell(CellKind.NUMERIC, cell.value)
    if ctype == xlrd.XL_CELL_DATE:
        try:
            return SheetCell(CellKind.NUMERIC, xlrd.xldate_as_datetime(cell.value, datemode), is_date=True)
        except xlrd.xldate.XLDateError:
            return SheetCell(CellKind.NUMERIC, cell.value)
    if ctype == xlrd.XL_CELL_BOOLEAN:
        return SheetCell(CellKind.BOOLEAN, bool(cell.value))
    # EMPTY, BLANK and ERROR
    return BLANK_CELL


def _xls_rows(content: bytes) -> SheetRows:
    # xlrd exposes cached results only, so .xls formula cells arrive as their values
    try:
        book = xlrd.open_workbook(file_contents=content, on_demand=True)
    except Exception as exc:
        raise MalformedFileError(f"Unreadable .xls workbook: {exc}") from exc

    try:
        if book.nsheets == 0:
            raise MalformedFileError("Workbook has no worksheets")
        sheet = book.sheet_by_index(0)
        sheet_rows: SheetRows = []
        for index in range(sheet.nrows):
            cells = [_xlrd_cell(cell, book.datemode) for cell in sheet.row(index)]
            present = any(cell.kind is not CellKind.BLANK for cell in cells)
            sheet_rows.append(cells if present else None)
        return sheet_rows
    finally:
        book.release_resources()


def _trim_trailing_blanks(cells: List[SheetCell]) -> List[SheetCell]:
    end = len(cells)
    while end > 0 and cells[end - 1].kind is CellKind.BLANK:
        end -= 1
    return cells[:end]


def table_from_sheet_rows(sheet_rows: SheetRows) -> RawTable:
    """Build a RawTable from physical sheet rows (row 0 is the header)."""
    physical = sum(1 for cells in sheet_rows if cells is not None)
    if physical < 2:
        raise MalformedFileError(
            "Spreadsheet must have at least a header row and one data row"
        )

    header_cells = sheet_rows[0]
    if header_cells is None:
        raise MalformedFileError("Spreadsheet header row is missing")

    headers = [cell_to_text(cell) for cell in _trim_trailing_blanks(header_cells)]
    width = len(headers)

    rows = []
    for cells in sheet_rows[1:]:
        if cells is None:
            continue
        rows.append([cell_to_text(cells[j]) if j < len(cells) else "" for j in range(width)])

    return RawTable(headers=headers, rows=rows)


def read_spreadsheet(content: bytes) -> RawTable:
    if content.startswith(XLSX_SIGNATURE):
        sheet_rows = _xlsx_rows(content)
    elif content.startswith(XLS_SIGNATURE):
        sheet_rows = _xls_rows(content)
    else:
        raise MalformedFileError("Content is neither an .xlsx nor an .xls workbook")

    table = table_from_sheet_rows(sheet_rows)
    logger.debug("Parsed spreadsheet: %d columns, %d rows", table.width, table.row_count)
    return table


# ═══════════════════════════════════════════════════════════════════════════
# Entry Points
# ═══════════════════════════════════════════════════════════════════════════


_READERS: Dict[FileKind, Callable[[bytes], RawTable]] = {
    FileKind.CSV: read_csv,
    FileKind.SPREADSHEET: read_spreadsheet,
}


def read_table(content: bytes, kind: FileKind) -> RawTable:
    """Parse file bytes of the given kind into a RawTable."""
    return _READERS[FileKind(kind)](content)


def read_upload(content: bytes, filename: str) -> RawTable:
    """Detect the kind from ``filename`` and parse ``content``."""
    return read_table(content, detect_file_kind(filename))
