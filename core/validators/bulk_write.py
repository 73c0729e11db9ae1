"""
Bulk-write matrix parsing

The wire payload of a bulk write is an object matrix whose first row is a
header. Two shapes are accepted:

(a) single-tag time series        (b) multi-tag single timestamp
    ["Timestamp", "T1"]               ["Timestamp", "T1", "T2", ...]
    [t0, v0]                          [t, v1, v2, ...]
    [t1, v1]
    ...

The shape is decided here, at the boundary, by row count: exactly 2 rows
means (b). Storage adapters only ever see the typed union.
"""

import logging
import math
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from core.models.timeseries import BulkWriteMatrix, MultiTagSnapshot, Sample, SingleTagSeries

logger = logging.getLogger(__name__)


def parse_time(value: Any) -> datetime:
    """
    Parse a matrix timestamp cell

    Accepts datetime, ISO-8601 strings ('2024-01-01 08:00:00' or with 'T') and
    epoch milliseconds (interpreted as local wall-clock time).
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}") from None
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return datetime.fromtimestamp(value / 1000)
    raise ValueError(f"Invalid timestamp: {value!r}")


def parse_value(value: Any) -> float:
    """Parse a matrix value cell (numbers, numeric strings, booleans)"""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ValueError(f"Invalid value: {value!r}") from None
    raise ValueError(f"Invalid value: {value!r}")


def parse_bulk_write_matrix(matrix: Sequence[Sequence[Any]]) -> BulkWriteMatrix:
    """
    Convert a raw object matrix into SingleTagSeries or MultiTagSnapshot

    Checks:
    1. Header plus at least one data row
    2. Header has a timestamp column and at least one tag
    3. Every data row is as wide as the header
    4. More than one data row ⇒ exactly one tag column
    5. No NaN/inf values (rejected by the models)

    Raises:
        ValueError: If the matrix matches neither shape

    Example:
        >>> m = parse_bulk_write_matrix([["Timestamp", "T1", "T2"], ["2024-01-01 08:00:00", 1, 2]])
        >>> m.tags
        ['T1', 'T2']
    """
    # 1. Header + data
    if len(matrix) < 2:
        raise ValueError("Bulk-write matrix needs a header row and at least one data row")

    # 2. Header shape
    header = list(matrix[0])
    if len(header) < 2:
        raise ValueError(f"Bulk-write header needs a timestamp and a tag column: {header}")
    tags = [str(h).strip() for h in header[1:]]

    # 3. Row widths
    for i, row in enumerate(matrix[1:], start=1):
        if len(row) != len(header):
            raise ValueError(f"Row {i} has {len(row)} cells, header has {len(header)}")

    if len(matrix) == 2:
        row = matrix[1]
        return MultiTagSnapshot(
            tags=tags,
            time=parse_time(row[0]),
            values=[parse_value(v) for v in row[1:]],
        )

    # 4. Time-series shape carries a single tag
    if len(tags) != 1:
        raise ValueError(
            f"Time-series matrix must have exactly one tag column, got {len(tags)}: {tags}"
        )

    rows = [Sample(parse_time(r[0]), parse_value(r[1])) for r in matrix[1:]]
    logger.debug(f"Parsed bulk-write matrix: {tags[0]} x {len(rows)} rows")
    return SingleTagSeries(tag=tags[0], rows=rows)

