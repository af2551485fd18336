"""
Numeric Profiler: Aggregates for NUMERIC Columns

Computes min/max, mean, median and population standard deviation over
the parseable values of a column. Mean, median and standard deviation are
rounded half-up to two decimals; min and max are reported as parsed.

Also hosts the presence counts (empties and distinct values) that every
column gets regardless of its type.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from .column_classifier import parse_numeric


@dataclass(frozen=True)
class NumericSummary:
    mean: float
    median: float
    std_dev: float
    min_value: float
    max_value: float


def round_half_up(value: float, places: int = 2) -> float:
    """Round to ``places`` decimals, halves going up (towards +inf).

    Values too large to scale are returned as is; they carry no fractional
    digits anyway.
    """
    scale = 10.0 ** places
    scaled = value * scale
    if not math.isfinite(scaled):
        return value
    return math.floor(scaled + 0.5) / scale


def _aggregates(arr: np.ndarray) -> Tuple[float, float, float]:
    return float(arr.mean()), float(np.median(arr)), float(arr.std(ddof=0))


def summarize_numeric(values: Iterable[Optional[str]]) -> Optional[NumericSummary]:
    """Aggregate the parseable values; None when there are none."""
    numbers = [n for n in (parse_numeric(v) for v in values) if n is not None]
    if not numbers:
        return None

    arr = np.asarray(numbers, dtype=float)
    with np.errstate(over="ignore", invalid="ignore"):
        mean, median, std_dev = _aggregates(arr)
        if not all(math.isfinite(v) for v in (mean, median, std_dev)):
            # Sums or squared deviations overflowed; aggregate on a copy scaled into [-1, 1]
            magnitude = float(np.abs(arr).max())
            mean, median, std_dev = (magnitude * v for v in _aggregates(arr / magnitude))

    return NumericSummary(
        mean=round_half_up(mean),
        median=round_half_up(median),
        std_dev=round_half_up(std_dev),
        min_value=float(arr.min()),
        max_value=float(arr.max()),
    )


def count_missing_and_distinct(values: pd.Series) -> Tuple[int, int]:
    """Return (null_count, unique_values) for a column of raw strings.

    A value is missing when it is null or blank after trimming; distinct
    values are compared as trimmed strings, so "1" and "1.0" differ.
    """
    stripped = values.astype("string").str.strip()
    present = stripped[stripped.notna() & (stripped != "")]
    return len(values) - len(present), int(present.nunique())
