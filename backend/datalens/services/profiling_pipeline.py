"""
Column Profiling Pipeline

Reader -> per-column classifier -> numeric profiler. Columns are addressed
by position, never by name, so duplicate headers are profiled as separate
columns with their own index. Pure over its input: the same bytes always
yield the same profiles.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import pandas as pd

from ..models.dataset import ColumnProfile, ColumnType, FileKind
from .column_classifier import SAMPLE_SIZE, classify_column
from .numeric_profiler import count_missing_and_distinct, summarize_numeric
from .tabular_reader import RawTable, read_table

logger = logging.getLogger("datalens.pipeline")


@dataclass
class ProfilingResult:
    total_rows: int
    total_columns: int
    columns: List[ColumnProfile] = field(default_factory=list)


class ColumnProfilingPipeline:
    """Profiles every column of a RawTable."""

    def __init__(self, sample_size: int = SAMPLE_SIZE):
        self.sample_size = sample_size

    def profile_bytes(self, content: bytes, kind: FileKind) -> ProfilingResult:
        """Parse file bytes of the given kind and profile the resulting table."""
        return self.profile_table(read_table(content, kind))

    def profile_table(self, table: RawTable) -> ProfilingResult:
        frame = table.to_frame()

        columns = [
            self._profile_column(name, position, frame[position])
            for position, name in enumerate(table.headers)
        ]

        logger.debug(
            "Profiled %d columns over %d rows", table.width, table.row_count
        )
        return ProfilingResult(
            total_rows=table.row_count,
            total_columns=table.width,
            columns=columns,
        )

    def _profile_column(self, name: str, position: int, series: pd.Series) -> ColumnProfile:
        values = series.tolist()
        null_count, unique_values = count_missing_and_distinct(series)
        data_type = classify_column(values, self.sample_size)

        profile = ColumnProfile(
            column_name=name,
            column_index=position,
            data_type=data_type,
            unique_values=unique_values,
            null_count=null_count,
        )

        if data_type is ColumnType.NUMERIC:
            summary = summarize_numeric(v for v in values if v and v.strip())
            if summary is not None:
                profile.mean = summary.mean
                profile.median = summary.median
                profile.std_dev = summary.std_dev
                profile.min_value = summary.min_value
                profile.max_value = summary.max_value

        return profile
