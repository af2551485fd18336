"""
Tests for the tabular reader (CSV and spreadsheet parsing).
"""

import datetime

import pytest
import xlrd

from datalens.core.errors import EmptyFileError, MalformedFileError, UnsupportedFormatError
from datalens.models.dataset import FileKind
from datalens.services.tabular_reader import (
    BLANK_CELL,
    CellKind,
    SheetCell,
    _xlrd_cell,
    cell_to_text,
    detect_file_kind,
    format_date,
    format_double,
    read_csv,
    read_spreadsheet,
    read_table,
    read_upload,
    table_from_sheet_rows,
)


# ============ File Kind Detection ============

@pytest.mark.parametrize("filename,kind", [
    ("data.csv", FileKind.CSV),
    ("REPORT.CSV", FileKind.CSV),
    ("book.xlsx", FileKind.SPREADSHEET),
    ("legacy.XLS", FileKind.SPREADSHEET),
])
def test_detect_file_kind(filename, kind):
    assert detect_file_kind(filename) is kind


@pytest.mark.parametrize("filename", ["notes.txt", "data.csv.bak", "archive.zip", "", None])
def test_detect_file_kind_rejects_other_extensions(filename):
    with pytest.raises(UnsupportedFormatError):
        detect_file_kind(filename)


def test_read_upload_rejects_before_reading_content():
    # Content is never looked at for an unsupported name
    with pytest.raises(UnsupportedFormatError):
        read_upload(b"\xff\xfe not even text", "notes.txt")


# ============ CSV ============

def test_read_csv_headers_and_rows():
    table = read_csv(b"name,age\nAlice,30\nBob,\n")

    assert table.headers == ["name", "age"]
    assert table.rows == [["Alice", "30"], ["Bob", ""]]
    assert table.row_count == 2
    assert table.width == 2


def test_read_csv_trims_whitespace():
    table = read_csv(b" name , age \n  Alice ,  30 \n")

    assert table.headers == ["name", "age"]
    assert table.rows == [["Alice", "30"]]


def test_read_csv_pads_and_truncates_rows():
    table = read_csv(b"a,b,c\n1\n1,2,3,4,5\n")

    assert table.rows == [["1", "", ""], ["1", "2", "3"]]


def test_read_csv_skips_blank_lines():
    table = read_csv(b"\na,b\n\n1,2\n\n3,4\n")

    assert table.headers == ["a", "b"]
    assert table.row_count == 2


def test_read_csv_quoted_fields():
    table = read_csv(b'city,note\n"Paris","a, b"\n"Rome","line ""quoted"""\n')

    assert table.rows == [["Paris", "a, b"], ["Rome", 'line "quoted"']]


def test_read_csv_header_only_is_empty():
    with pytest.raises(EmptyFileError):
        read_csv(b"name,age\n")


def test_read_csv_no_content_is_empty():
    with pytest.raises(EmptyFileError):
        read_csv(b"")


def test_read_csv_strips_utf8_bom():
    table = read_csv("\ufeffname,age\nZoë,30\n".encode("utf-8"))

    assert table.headers == ["name", "age"]
    assert table.rows == [["Zoë", "30"]]


def test_read_csv_falls_back_to_latin1():
    table = read_csv("name\nJosé\n".encode("latin-1"))

    assert table.rows == [["José"]]


def test_duplicate_headers_are_kept():
    table = read_csv(b"x,X,x\n1,2,3\n")

    assert table.headers == ["x", "X", "x"]
    assert table.column_position("X") == 0
    assert table.column_values(2) == ["3"]


def test_column_position_ignores_case():
    table = read_csv(b"Name,Age\nAlice,30\n")

    assert table.column_position("age") == 1
    assert table.column_position("AGE") == 1
    assert table.column_position("missing") is None


# ============ Cell Conversion ============

@pytest.mark.parametrize("value,expected", [
    (30.0, "30.0"),
    (25.5, "25.5"),
    (-2.25, "-2.25"),
    (0.0, "0.0"),
    (0.001, "0.001"),
    (1e7, "1.0E7"),
    (12345678.9, "1.23456789E7"),
    (0.0001, "1.0E-4"),
    (-1.5e-5, "-1.5E-5"),
])
def test_format_double(value, expected):
    assert format_double(value) == expected


def test_format_date():
    assert format_date(datetime.datetime(2024, 1, 15)) == "Mon Jan 15 00:00:00 UTC 2024"
    assert format_date(datetime.date(2024, 1, 15)) == "Mon Jan 15 00:00:00 UTC 2024"
    assert format_date(datetime.datetime(2023, 12, 31, 23, 5, 9)) == "Sun Dec 31 23:05:09 UTC 2023"


def test_format_date_converts_aware_values_to_utc():
    plus_two = datetime.timezone(datetime.timedelta(hours=2))

    assert format_date(datetime.datetime(2024, 1, 15, 1, 30, tzinfo=plus_two)) == "Sun Jan 14 23:30:00 UTC 2024"


@pytest.mark.parametrize("cell,expected", [
    (SheetCell(CellKind.STRING, "hello"), "hello"),
    (SheetCell(CellKind.NUMERIC, 30), "30.0"),
    (SheetCell(CellKind.NUMERIC, datetime.datetime(2024, 1, 15), is_date=True), "Mon Jan 15 00:00:00 UTC 2024"),
    (SheetCell(CellKind.BOOLEAN, True), "true"),
    (SheetCell(CellKind.BOOLEAN, False), "false"),
    (SheetCell(CellKind.FORMULA, "=SUM(A1:A3)"), "SUM(A1:A3)"),
    (BLANK_CELL, ""),
    (None, ""),
])
def test_cell_to_text(cell, expected):
    assert cell_to_text(cell) == expected


def test_every_cell_kind_has_a_converter():
    for kind in CellKind:
        assert isinstance(cell_to_text(SheetCell(kind, "1")), str)


def test_xlrd_cells_map_to_sheet_cells():
    assert _xlrd_cell(xlrd.sheet.Cell(xlrd.XL_CELL_TEXT, "abc"), 0) == SheetCell(CellKind.STRING, "abc")
    assert _xlrd_cell(xlrd.sheet.Cell(xlrd.XL_CELL_NUMBER, 30.0), 0) == SheetCell(CellKind.NUMERIC, 30.0)
    assert _xlrd_cell(xlrd.sheet.Cell(xlrd.XL_CELL_BOOLEAN, 1), 0) == SheetCell(CellKind.BOOLEAN, True)
    assert _xlrd_cell(xlrd.sheet.Cell(xlrd.XL_CELL_ERROR, 7), 0) is BLANK_CELL
    assert _xlrd_cell(xlrd.sheet.Cell(xlrd.XL_CELL_EMPTY, ""), 0) is BLANK_CELL

    date_cell = _xlrd_cell(xlrd.sheet.Cell(xlrd.XL_CELL_DATE, 45306.0), 0)
    assert date_cell.is_date
    assert cell_to_text(date_cell) == "Mon Jan 15 00:00:00 UTC 2024"


# ============ Sheet Structure ============

def _row(*values):
    return [SheetCell(CellKind.STRING, v) if v is not None else BLANK_CELL for v in values]


def test_table_from_sheet_rows_skips_absent_rows_and_pads():
    table = table_from_sheet_rows([
        _row("a", "b", "c"),
        _row("1", "2", "3"),
        None,
        _row("4"),
    ])

    assert table.headers == ["a", "b", "c"]
    assert table.rows == [["1", "2", "3"], ["4", "", ""]]


def test_table_from_sheet_rows_trims_trailing_blank_headers():
    table = table_from_sheet_rows([
        _row("a", "b", None, None),
        _row("1", "2", "3", "4"),
    ])

    assert table.headers == ["a", "b"]
    assert table.rows == [["1", "2"]]


def test_header_only_sheet_is_malformed():
    with pytest.raises(MalformedFileError):
        table_from_sheet_rows([_row("a", "b")])


def test_missing_header_row_is_malformed():
    with pytest.raises(MalformedFileError):
        table_from_sheet_rows([None, _row("1", "2"), _row("3", "4")])


# ============ Spreadsheets ============

def test_read_xlsx_cell_kinds(build_xlsx):
    content = build_xlsx([
        ["name", "age", "joined", "active", "calc"],
        ["Alice", 30, datetime.datetime(2024, 1, 15), True, "=B2*2"],
        [],
        ["Bob", 25.5, None, False, None],
    ])

    table = read_spreadsheet(content)

    assert table.headers == ["name", "age", "joined", "active", "calc"]
    assert table.rows == [
        ["Alice", "30.0", "Mon Jan 15 00:00:00 UTC 2024", "true", "B2*2"],
        ["Bob", "25.5", "", "false", ""],
    ]


def test_read_xlsx_header_only_is_malformed(build_xlsx):
    with pytest.raises(MalformedFileError):
        read_spreadsheet(build_xlsx([["name", "age"]]))


def test_read_spreadsheet_rejects_non_workbook_bytes():
    with pytest.raises(MalformedFileError):
        read_spreadsheet(b"name,age\nAlice,30\n")


def test_read_spreadsheet_rejects_corrupt_zip():
    with pytest.raises(MalformedFileError):
        read_spreadsheet(b"PK\x03\x04" + b"\x00" * 64)


def test_read_table_dispatches_on_kind(build_xlsx):
    csv_table = read_table(b"a\n1\n", FileKind.CSV)
    sheet_table = read_table(build_xlsx([["a"], [1]]), FileKind.SPREADSHEET)

    assert csv_table.rows == [["1"]]
    assert sheet_table.rows == [["1.0"]]
