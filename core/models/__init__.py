"""Models module - Pydantic data models"""

from .timeseries import (
    BulkWriteMatrix,
    ConnectionConfig,
    HistoryMatrix,
    Measurement,
    MeasurementType,
    MultiTagSnapshot,
    Sample,
    SingleTagSeries,
    SnapshotRecord,
)

__all__ = [
    "BulkWriteMatrix",
    "ConnectionConfig",
    "HistoryMatrix",
    "Measurement",
    "MeasurementType",
    "MultiTagSnapshot",
    "Sample",
    "SingleTagSeries",
    "SnapshotRecord",
]
