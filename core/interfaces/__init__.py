"""Interfaces module - Abstract base classes for time-series stores"""

from .timeseries import TimeSeriesClient

__all__ = [
    "TimeSeriesClient",
]
