"""
Time-series models

Pydantic models for the access layer:
- Measurement: catalog entry for one tag of a device
- Sample / SnapshotRecord: lightweight read results
- SingleTagSeries / MultiTagSnapshot: the two bulk-write matrix shapes
- HistoryMatrix: time-major grid of resampled values for several tags
- ConnectionConfig: parsed connection URL
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, field_validator, model_validator


class MeasurementType(str, Enum):
    """Series classification, stored as the short code"""

    ANALOG = "AI"
    DIGITAL = "DI"

    @classmethod
    def parse(cls, value: Any) -> "MeasurementType":
        """Lenient parse: DI/digital (any case) is Digital, anything else Analog"""
        if isinstance(value, MeasurementType):
            return value
        if isinstance(value, str) and value.strip().upper() in ("DI", "DIGITAL"):
            return cls.DIGITAL
        return cls.ANALOG


class Sample(NamedTuple):
    """One (time, value) point; NaN value means no data"""

    time: datetime
    value: float


class SnapshotRecord(NamedTuple):
    """Latest known value of a tag"""

    tag: str
    time: datetime
    value: float


class Measurement(BaseModel):
    """
    Catalog entry for a tag

    Lives in a per-device catalog. Created/updated by initialize(),
    listed by points().
    """

    tag: str = Field(min_length=1, description="Tag id, unique within a device")
    type: MeasurementType = Field(default=MeasurementType.ANALOG, description="AI or DI")
    desc: str = Field(default="", description="Human readable description")
    unit: str = Field(default="", description="Engineering unit")
    downlimit: float | None = Field(default=None, description="Lower limit")
    uplimit: float | None = Field(default=None, description="Upper limit")
    modify_time: datetime | None = Field(default=None, description="Last catalog update")

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        return MeasurementType.parse(v)

    @field_validator("desc", "unit", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @property
    def is_digital(self) -> bool:
        return self.type == MeasurementType.DIGITAL

    def to_dict(self) -> dict:
        """Convert to JSON-ready dictionary"""
        return {
            "tag": self.tag,
            "type": self.type.value,
            "desc": self.desc,
            "unit": self.unit,
            "downlimit": self.downlimit,
            "uplimit": self.uplimit,
            "modifyTime": (
                self.modify_time.strftime("%Y-%m-%d %H:%M:%S") if self.modify_time else None
            ),
        }

    def to_row(self, with_modify_time: bool = True) -> list[str]:
        """
        Render as a catalog mirror row

        Columns: tag,type,desc,unit,downlimit,uplimit[,modifyTime]
        Commas inside desc are replaced with ';' so the row stays delimited.
        """

        def fmt(v: float | None) -> str:
            return "" if v is None else f"{v:g}"

        row = [
            self.tag,
            self.type.value,
            self.desc.replace(",", ";"),
            self.unit,
            fmt(self.downlimit),
            fmt(self.uplimit),
        ]
        if with_modify_time:
            row.append(self.modify_time.strftime("%Y-%m-%d %H:%M:%S") if self.modify_time else "")
        return row


def _reject_nan(values: list[float]) -> list[float]:
    for v in values:
        if not math.isfinite(v):
            raise ValueError(f"Non-finite value {v} cannot be written")
    return values


class SingleTagSeries(BaseModel):
    """Bulk-write shape (a): one tag, many timestamped rows"""

    tag: str = Field(min_length=1)
    rows: list[Sample] = Field(min_length=1)

    @field_validator("rows")
    @classmethod
    def finite_values(cls, rows: list[Sample]) -> list[Sample]:
        _reject_nan([r.value for r in rows])
        return rows

    @property
    def last(self) -> Sample:
        return self.rows[-1]


class MultiTagSnapshot(BaseModel):
    """Bulk-write shape (b): one timestamp, many tags"""

    tags: list[str] = Field(min_length=1)
    time: datetime
    values: list[float]

    @field_validator("values")
    @classmethod
    def finite_values(cls, values: list[float]) -> list[float]:
        return _reject_nan(values)

    @model_validator(mode="after")
    def same_length(self):
        if len(self.tags) != len(self.values):
            raise ValueError(f"{len(self.tags)} tags but {len(self.values)} values")
        return self

    def items(self) -> list[tuple[str, float]]:
        return list(zip(self.tags, self.values))


BulkWriteMatrix = SingleTagSeries | MultiTagSnapshot


class HistoryMatrix(BaseModel):
    """Resampled history of several tags on one shared grid"""

    begin: datetime
    end: datetime
    interval_ms: int
    tags: list[str]
    rows: list[list[float]] = Field(description="One row per grid point, one column per tag")

    def column(self, tag: str) -> list[float]:
        j = self.tags.index(tag)
        return [row[j] for row in self.rows]


class ConnectionConfig(BaseModel):
    """Typed connection settings parsed once from a connection URL"""

    scheme: str
    host: str
    port: int
    username: str | None = None
    password: str | None = None
    params: dict[str, str] = Field(default_factory=dict)
    url: str = ""

    def param_int(self, name: str, default: int) -> int:
        """Integer query parameter (case-insensitive name), default when absent/invalid"""
        for key, value in self.params.items():
            if key.lower() == name.lower():
                try:
                    return int(value)
                except ValueError:
                    return default
        return default
