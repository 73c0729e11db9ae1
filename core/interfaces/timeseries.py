import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime

from core.models.timeseries import (
    BulkWriteMatrix,
    HistoryMatrix,
    Measurement,
    MultiTagSnapshot,
    Sample,
    SingleTagSeries,
    SnapshotRecord,
)
from core.utils.downsampling import downsample
from core.utils.gap_handling import build_grid, fill

logger = logging.getLogger(__name__)


class TimeSeriesClient(ABC):
    """
    Abstract interface for time-series stores

    Implementations:
    - MongoDBClient (document store, per-tag-per-day buckets)
    - IoTDBClient (purpose-built time-series engine)

    Backends supply the primitives (open, close, drop, initialize,
    bulk_write, points, snapshot, archive). History, plot, multi-tag
    fan-out and the typed write helpers are implemented here once on top of
    them; a backend may override any of them with a pushed-down version.
    """

    def __init__(self, url: str):
        self.url = url

    async def __aenter__(self) -> "TimeSeriesClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ============================================
    # PRIMITIVES
    # ============================================
    @abstractmethod
    async def open(self) -> None:
        """Establish connection to the store"""

    @abstractmethod
    async def close(self) -> None:
        """Close connection"""

    @abstractmethod
    async def drop(self, device: str) -> None:
        """
        Delete a device (database / storage group) with all its data

        Args:
            device: Device name
        """

    @abstractmethod
    async def initialize(self, device: str, measurements: list[Measurement]) -> None:
        """
        Create or update catalog entries

        Args:
            device: Device name
            measurements: Measurements to upsert by tag
        """

    @abstractmethod
    async def bulk_write(self, device: str, matrix: BulkWriteMatrix) -> None:
        """
        Write a bulk-write matrix

        Args:
            device: Device name
            matrix: SingleTagSeries (one tag, many rows) or
                MultiTagSnapshot (one timestamp, many tags)
        """

    @abstractmethod
    async def points(self, device: str, keywords: str = "") -> list[Measurement]:
        """
        Search the catalog

        Args:
            device: Device name
            keywords: Case-insensitive regex over tag ids; '/.../' and
                '/.../i' delimiters are accepted

        Returns:
            Matching measurements sorted by tag
        """

    @abstractmethod
    async def snapshot(self, device: str, tags: list[str]) -> list[SnapshotRecord]:
        """
        Latest (time, value) of each tag

        Args:
            device: Device name
            tags: Tags to read; tags without data are omitted

        Returns:
            Snapshot records
        """

    @abstractmethod
    async def archive(
        self, device: str, tag: str, begin: datetime, end: datetime, digits: int = 6
    ) -> list[Sample]:
        """
        Raw stored samples of a tag within [begin, end]

        Args:
            device: Device name
            tag: Tag id
            begin: Range start (inclusive)
            end: Range end (inclusive)
            digits: Decimal places kept for analog values

        Returns:
            Samples sorted by time ASC
        """

    # ============================================
    # COMPOSED OPERATIONS
    # ============================================
    async def history(
        self,
        device: str,
        tag: str,
        begin: datetime,
        end: datetime,
        digits: int = 6,
        interval_ms: int = 1000,
    ) -> list[Sample]:
        """
        Evenly spaced history of a tag (archive + zero-order-hold fill)

        Returns:
            One sample every interval_ms from begin to end, or [] when the
            tag has no data
        """
        raw = await self.archive(device, tag, begin, end, digits)
        return fill(raw, begin, end, interval_ms)

    async def plot(
        self,
        device: str,
        tag: str,
        begin: datetime,
        end: datetime,
        digits: int = 6,
        pixels: int = 1200,
    ) -> list[Sample]:
        """
        Plot data of a tag (archive reduced to a pixel budget)

        Raw samples are returned as-is for short spans (<= 6h) or when
        there are no more samples than pixels.
        """
        raw = await self.archive(device, tag, begin, end, digits)
        return downsample(raw, begin, end, pixels)

    async def archive_many(
        self, device: str, tags: list[str], begin: datetime, end: datetime, digits: int = 6
    ) -> list[tuple[str, list[Sample]]]:
        """Archive of several tags, one call per tag, in caller order"""
        return [(tag, await self.archive(device, tag, begin, end, digits)) for tag in tags]

    async def history_many(
        self,
        device: str,
        tags: list[str],
        begin: datetime,
        end: datetime,
        digits: int = 6,
        interval_ms: int = 1000,
    ) -> list[tuple[str, list[Sample]]]:
        """History of several tags, one call per tag, in caller order"""
        return [
            (tag, await self.history(device, tag, begin, end, digits, interval_ms))
            for tag in tags
        ]

    async def plot_many(
        self,
        device: str,
        tags: list[str],
        begin: datetime,
        end: datetime,
        digits: int = 6,
        pixels: int = 1200,
    ) -> list[tuple[str, list[Sample]]]:
        """Plot data of several tags, one call per tag, in caller order"""
        return [(tag, await self.plot(device, tag, begin, end, digits, pixels)) for tag in tags]

    async def snapshot_many(self, device: str, tags: list[str]) -> list[SnapshotRecord | None]:
        """Snapshot of several tags, one call per tag; None where a tag has no data"""
        records = []
        for tag in tags:
            found = await self.snapshot(device, [tag])
            records.append(found[0] if found else None)
        return records

    async def history_matrix(
        self,
        device: str,
        tags: list[str],
        begin: datetime,
        end: datetime,
        digits: int = 6,
        interval_ms: int = 1000,
    ) -> HistoryMatrix:
        """
        History of several tags aligned on one grid

        Returns:
            HistoryMatrix with one row per grid point and one column per tag;
            tags without data are NaN columns
        """
        grid = build_grid(begin, end, interval_ms)
        columns = []
        for tag, samples in await self.history_many(device, tags, begin, end, digits, interval_ms):
            values = [s.value for s in samples]
            if len(values) != len(grid):
                logger.debug(f"{device}/{tag}: {len(values)} values for {len(grid)} grid points")
                values = (values + [math.nan] * len(grid))[: len(grid)]
            columns.append(values)

        rows = [[column[i] for column in columns] for i in range(len(grid))]
        return HistoryMatrix(
            begin=begin, end=end, interval_ms=interval_ms, tags=list(tags), rows=rows
        )

    # ============================================
    # TYPED WRITE HELPERS
    # ============================================
    async def write_series(self, device: str, tag: str, samples: list[Sample]) -> None:
        """
        Write many samples of one tag

        Args:
            device: Device name
            tag: Tag id
            samples: (time, value) rows; NaN values are rejected
        """
        if not samples:
            return
        await self.bulk_write(device, SingleTagSeries(tag=tag, rows=samples))

    async def write_snapshot(
        self, device: str, time: datetime, values: list[tuple[str, float]]
    ) -> None:
        """
        Write one timestamp for many tags

        Args:
            device: Device name
            time: Sample time shared by all tags
            values: (tag, value) pairs; NaN values are rejected
        """
        if not values:
            return
        await self.bulk_write(
            device,
            MultiTagSnapshot(
                tags=[tag for tag, _ in values], time=time, values=[v for _, v in values]
            ),
        )
