"""
Tests for column type inference.
"""

import pytest

from datalens.models.dataset import ColumnType
from datalens.services.column_classifier import (
    SAMPLE_SIZE,
    classify_column,
    is_boolean,
    is_date,
    is_numeric,
    match_ratios,
    parse_numeric,
)


@pytest.mark.parametrize("value,expected", [
    ("30", 30.0),
    ("-2.5", -2.5),
    ("+7", 7.0),
    (".5", 0.5),
    ("5.", 5.0),
    ("1e3", 1000.0),
    ("2.5E-2", 0.025),
    ("  42  ", 42.0),
])
def test_parse_numeric_accepts_decimal_syntax(value, expected):
    assert parse_numeric(value) == expected


@pytest.mark.parametrize("value", [
    "", "   ", None, "abc", "1,000", "1_000", "0x1A", "NaN", "Infinity", "-inf", "1e999", "١٢", "1.2.3",
])
def test_parse_numeric_rejects(value):
    assert parse_numeric(value) is None


@pytest.mark.parametrize("value", ["2024-01-15", "2024/1/5", "15-01-2024", "5/1/2024", " 2024-01-15 "])
def test_is_date_matches(value):
    assert is_date(value)


@pytest.mark.parametrize("value", ["2024-01-15T10:00:00", "24-01-15", "Jan 15 2024", "2024.01.15", "", None])
def test_is_date_rejects(value):
    assert not is_date(value)


@pytest.mark.parametrize("value", ["true", "FALSE", "Yes", "no", "1", "0", " True "])
def test_is_boolean_matches(value):
    assert is_boolean(value)


@pytest.mark.parametrize("value", ["y", "n", "on", "off", "2", "", None])
def test_is_boolean_rejects(value):
    assert not is_boolean(value)


def test_numeric_column():
    assert classify_column(["1", "2.5", "-3", "4e2"]) is ColumnType.NUMERIC


def test_date_column():
    assert classify_column(["2024-01-01", "2024-02-01", "15/03/2024"]) is ColumnType.DATE


def test_boolean_column():
    assert classify_column(["yes", "no", "TRUE", "false"]) is ColumnType.BOOLEAN


def test_text_column():
    assert classify_column(["Alice", "Bob", "Carol"]) is ColumnType.TEXT


def test_ones_and_zeros_are_numeric_not_boolean():
    values = ["1", "0", "1", "1"]

    ratios = match_ratios(values)
    assert ratios.numeric == 1.0
    assert ratios.boolean == 1.0
    assert classify_column(values) is ColumnType.NUMERIC


def test_empty_values_lower_every_ratio():
    # One present number out of two sampled values is only 50%
    values = ["30", ""]

    assert match_ratios(values).numeric == 0.5
    assert classify_column(values) is ColumnType.TEXT


def test_threshold_is_inclusive():
    assert classify_column(["1", "2", "3", "4", "x"]) is ColumnType.NUMERIC
    assert classify_column(["1", "2", "3", "x", "y"]) is ColumnType.TEXT


def test_no_values_is_text():
    assert classify_column([]) is ColumnType.TEXT


def test_only_first_sample_values_matter():
    head = [str(i) for i in range(SAMPLE_SIZE)]

    assert classify_column(head + ["word"] * 500) is ColumnType.NUMERIC
    assert classify_column(head + list(reversed(["a", "b", "c"] * 50))) is ColumnType.NUMERIC


def test_classification_is_deterministic():
    values = ["2024-01-01", "", "abc", "2024-03-01", "2024-04-01"] * 30
    results = {classify_column(values) for _ in range(5)}
    assert len(results) == 1
