"""
Column Classifier: Semantic Type Inference From Raw Strings

Looks at the first SAMPLE_SIZE raw values of a column, in original row
order, and measures how many look numeric, date-like, or boolean. The first
type whose ratio reaches MATCH_THRESHOLD wins, checked in the fixed order
NUMERIC, DATE, BOOLEAN; otherwise the column is TEXT.

Empty strings stay in the sample and count as a miss for every test, so a
sparse column can fall below the threshold even when all its non-empty
values match.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ..models.dataset import ColumnType

logger = logging.getLogger("datalens.classifier")

SAMPLE_SIZE = 100
MATCH_THRESHOLD = 0.8

# Locale-invariant decimal syntax, ASCII digits only
NUMBER_PATTERN = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
# YYYY-M-D or D-M-YYYY, separators '-' or '/'
DATE_PATTERN = re.compile(r"[0-9]{4}[-/][0-9]{1,2}[-/][0-9]{1,2}|[0-9]{1,2}[-/][0-9]{1,2}[-/][0-9]{4}")
BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no", "1", "0"})


def parse_numeric(value: Optional[str]) -> Optional[float]:
    """Parse a raw value as a finite double, or return None."""
    if value is None:
        return None
    text = value.strip()
    if not NUMBER_PATTERN.fullmatch(text):
        return None
    number = float(text)
    return number if math.isfinite(number) else None


def is_numeric(value: Optional[str]) -> bool:
    return parse_numeric(value) is not None


def is_date(value: Optional[str]) -> bool:
    return value is not None and DATE_PATTERN.fullmatch(value.strip()) is not None


def is_boolean(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in BOOLEAN_TOKENS


@dataclass(frozen=True)
class TypeRatios:
    """Fraction of sampled values matching each type test."""
    sample_size: int
    numeric: float
    date: float
    boolean: float


def match_ratios(values: Sequence[Optional[str]], sample_size: int = SAMPLE_SIZE) -> TypeRatios:
    sample = list(values[:sample_size])
    if not sample:
        return TypeRatios(sample_size=0, numeric=0.0, date=0.0, boolean=0.0)

    total = len(sample)
    return TypeRatios(
        sample_size=total,
        numeric=sum(1 for v in sample if is_numeric(v)) / total,
        date=sum(1 for v in sample if is_date(v)) / total,
        boolean=sum(1 for v in sample if is_boolean(v)) / total,
    )


def classify_column(values: Sequence[Optional[str]], sample_size: int = SAMPLE_SIZE) -> ColumnType:
    """Infer the semantic type of a column from its raw values (empties included)."""
    ratios = match_ratios(values, sample_size)
    if ratios.sample_size == 0:
        return ColumnType.TEXT
    logger.debug("Ratios over %d values: numeric=%.2f date=%.2f boolean=%.2f",
                 ratios.sample_size, ratios.numeric, ratios.date, ratios.boolean)

    if ratios.numeric >= MATCH_THRESHOLD:
        return ColumnType.NUMERIC
    if ratios.date >= MATCH_THRESHOLD:
        return ColumnType.DATE
    if ratios.boolean >= MATCH_THRESHOLD:
        return ColumnType.BOOLEAN
    return ColumnType.TEXT
