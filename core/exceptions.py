"""
Time-series access errors

Hierarchy:
- TimeSeriesError: base class for everything raised by this package
- UnsupportedSchemeError: connection URL names an unknown backend
- BackendError: a store query/write failed (wraps the driver exception)
- CatalogDecodeError: a catalog record could not be decoded at all
"""

from typing import Any


class TimeSeriesError(Exception):
    """Base error for time-series operations"""


class UnsupportedSchemeError(TimeSeriesError, ValueError):
    """Connection URL scheme does not select any backend"""

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            f"Unsupported connection url: {url}. Supported: mongodb://, mongodb+srv://, iotdb://"
        )


class BackendError(TimeSeriesError):
    """Backend query or write failed"""


class CatalogDecodeError(TimeSeriesError):
    """Catalog record could not be decoded; carries the offending record"""

    def __init__(self, record: Any, message: str = ""):
        self.record = record
        super().__init__(f"Cannot decode catalog record {record!r}: {message}")
