"""
Gap filling utilities for time-series data

Turns irregular raw samples into an evenly spaced series using a
zero-order hold (step / square-wave) policy:
- value at grid time t = latest raw sample at or before t
- before the first raw sample its value is held backward to begin
- after the last raw sample its value is held forward to end
"""

import math
from datetime import datetime, timedelta

from core.models.timeseries import Sample

_ONE_US = timedelta(microseconds=1)


def build_grid(begin: datetime, end: datetime, interval_ms: float) -> list[datetime]:
    """
    Build the resampling grid for [begin, end]

    Points are begin + k * interval for k < ceil(span / interval), followed by
    end itself, so the grid always has ceil(span / interval) + 1 points and
    always closes exactly on end.

    Raises:
        ValueError: If interval_ms is not positive

    Example:
        >>> grid = build_grid(datetime(2024, 1, 1, 0, 0, 0), datetime(2024, 1, 1, 0, 0, 4), 1000)
        >>> len(grid)
        5
    """
    if interval_ms <= 0:
        raise ValueError(f"Interval must be > 0 ms, got {interval_ms}")
    if end < begin:
        return []

    interval_us = max(1, int(round(interval_ms * 1000)))
    span_us = (end - begin) // _ONE_US
    steps = -(-span_us // interval_us)
    step = timedelta(microseconds=interval_us)

    grid = [begin + k * step for k in range(steps)]
    grid.append(end)
    return grid


def fill(
    samples: list[Sample], begin: datetime, end: datetime, interval_ms: float = 1000
) -> list[Sample]:
    """
    Resample raw samples onto an equidistant grid (zero-order hold)

    Args:
        samples: Raw samples sorted by time ASC
        begin: First grid point
        end: Last grid point
        interval_ms: Grid step in milliseconds

    Returns:
        One sample per grid point, or an empty list when the input is empty
        or every raw value is NaN

    Example:
        >>> raw = [Sample(datetime(2024, 1, 1, 0, 0, 2), 42.0)]
        >>> [s.value for s in fill(raw, datetime(2024, 1, 1), datetime(2024, 1, 1, 0, 0, 4))]
        [42.0, 42.0, 42.0, 42.0, 42.0]
    """
    if all(math.isnan(s.value) for s in samples):
        return []

    rows = []
    i = 0
    current = samples[0].value
    for t in build_grid(begin, end, interval_ms):
        while i < len(samples) and samples[i].time <= t:
            current = samples[i].value
            i += 1
        rows.append(Sample(t, current))
    return rows


def pad_edges(
    samples: list[Sample],
    begin: datetime,
    end: datetime,
    before: float | None = None,
    after: float | None = None,
) -> list[Sample]:
    """
    Make sure a series has explicit points at begin and end

    Args:
        samples: In-range samples sorted by time ASC
        begin: Window start
        end: Window end
        before: Last known value before begin (carry-left), if any
        after: First known value after end (carry-right), if any

    Returns:
        New list. With no in-range samples this is a 2-point series: begin
        holds carry-left (else carry-right), end holds carry-right (else
        carry-left), NaN where neither is known. Otherwise
        begin is left-padded with the carried value (or the first in-range
        value) and end is right-padded with the last in-range value.
    """
    if not samples:
        left = before if before is not None else after
        right = after if after is not None else before
        return [
            Sample(begin, math.nan if left is None else left),
            Sample(end, math.nan if right is None else right),
        ]

    padded = list(samples)
    if padded[0].time != begin:
        padded.insert(0, Sample(begin, before if before is not None else padded[0].value))
    if padded[-1].time != end:
        padded.append(Sample(end, padded[-1].value))
    return padded
