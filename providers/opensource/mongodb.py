"""
MongoDB implementation of the time-series client

MongoDB has no native time-series model here; samples are stored in a
hand-rolled bucketed schema, one database per device:

- point:    catalog, one document per tag
            {_id: tag, type, desc, unit, downlimit, uplimit, modifyTime}
- snapshot: latest value, one document per tag
            {_id: tag, time, value}
- archive:  one bucket per tag per calendar day
            {_id: "tag#YYYYMMDD", date: "YYYY-MM-DD", values: {"HHMMSS": value}}

Bucket keys are zero-padded, so sorting them as strings sorts them by time.
A bucket holds at most one value per second; a later write in the same
second overwrites the earlier one.
"""

import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Any

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from config.settings import get_settings
from core.exceptions import BackendError, CatalogDecodeError
from core.interfaces.timeseries import TimeSeriesClient
from core.models.timeseries import (
    BulkWriteMatrix,
    Measurement,
    MeasurementType,
    MultiTagSnapshot,
    Sample,
    SnapshotRecord,
)
from core.utils.config import parse_connection_url
from core.utils.encoding import (
    compile_keywords,
    decode_digital,
    decode_value,
    exact_tag_pattern,
    strip_path_prefix,
    to_datetime,
    to_float,
    to_text,
)
from core.utils.gap_handling import fill, pad_edges

logger = logging.getLogger(__name__)

DAY_KEY_FORMAT = "%Y%m%d"
SECOND_KEY_FORMAT = "%H%M%S"


def bucket_id(tag: str, day: date) -> str:
    """Archive bucket id of a tag for one calendar day"""
    return f"{tag}#{day.strftime(DAY_KEY_FORMAT)}"


def second_key(t: datetime) -> str:
    """Key of a sample inside its day bucket (sub-second part is dropped)"""
    return t.strftime(SECOND_KEY_FORMAT)


def key_time(day: date, key: str) -> datetime | None:
    """Inverse of second_key; None for keys that are not HHMMSS"""
    if len(key) != 6 or not key.isdigit():
        return None
    try:
        return datetime.combine(day, time(int(key[:2]), int(key[2:4]), int(key[4:])))
    except ValueError:
        return None


def day_range(begin: datetime, end: datetime) -> list[date]:
    """Calendar days touched by [begin, end]"""
    days = []
    day = begin.date()
    while day <= end.date():
        days.append(day)
        day += timedelta(days=1)
    return days


def decode_bucket(
    doc: dict[str, Any], kind: MeasurementType, digits: int
) -> list[Sample]:
    """
    Decode one archive bucket into time-ordered samples

    Digital tags decode to integer states, analog tags to doubles rounded to
    `digits`. NaN leaves and malformed keys are skipped.
    """
    try:
        day = date.fromisoformat(str(doc.get("date")))
    except ValueError:
        logger.warning(f"Archive bucket {doc.get('_id')} has no valid date, skipped")
        return []

    values = doc.get("values") or {}
    samples = []
    for key in sorted(values):
        t = key_time(day, key)
        if t is None:
            logger.debug(f"Archive bucket {doc.get('_id')}: bad key '{key}' skipped")
            continue
        if kind == MeasurementType.DIGITAL:
            v = float(decode_digital(values[key]))
        else:
            v = decode_value(values[key], digits)
        if math.isnan(v):
            continue
        samples.append(Sample(t, v))
    return samples


class MongoDBClient(TimeSeriesClient):
    """
    MongoDB implementation

    Features:
    - Per-tag-per-day archive buckets (read-modify-replace writes)
    - Latest-value snapshot documents
    - Catalog with case-insensitive regex search

    Archive writes are not atomic: two writers on the same tag and day can
    lose updates. One writer per tag is assumed.
    """

    def __init__(self, url: str):
        super().__init__(url)
        self.settings = get_settings()
        self.config = parse_connection_url(url)
        self.client: AsyncMongoClient | None = None

    def _collection(self, device: str, name: str):
        if not self.client:
            raise RuntimeError("MongoDB client not connected")
        return self.client[device][name]

    def _points(self, device: str):
        return self._collection(device, self.settings.MONGO_COLLECTION_POINT)

    def _snapshots(self, device: str):
        return self._collection(device, self.settings.MONGO_COLLECTION_SNAPSHOT)

    def _archive(self, device: str):
        return self._collection(device, self.settings.MONGO_COLLECTION_ARCHIVE)

    async def open(self) -> None:
        """Connect to MongoDB (bounded by CONNECT_TIMEOUT_SECONDS)"""
        options = {}
        if not any(k.lower() == "serverselectiontimeoutms" for k in self.config.params):
            options["serverSelectionTimeoutMS"] = int(
                self.settings.CONNECT_TIMEOUT_SECONDS * 1000
            )
        client = None
        try:
            client = AsyncMongoClient(self.url, **options)
            # Test connection
            await client.admin.command("ping")
        except PyMongoError as e:
            logger.error(f"✗ Failed to connect to MongoDB: {e}")
            if client is not None:
                await client.close()
            raise BackendError(f"MongoDB connect failed: {e}") from e
        self.client = client
        logger.info(f"✓ Connected to MongoDB: {self.config.host}:{self.config.port}")

    async def close(self) -> None:
        """Close connection"""
        if self.client:
            await self.client.close()
            self.client = None
            logger.info("✓ MongoDB connection closed")

    async def drop(self, device: str) -> None:
        if not self.client:
            raise RuntimeError("MongoDB client not connected")
        try:
            await self.client.drop_database(device)
            logger.info(f"Dropped MongoDB database {device}")
        except PyMongoError as e:
            logger.error(f"✗ MongoDB drop error: {e}")
            raise BackendError(str(e)) from e

    async def initialize(self, device: str, measurements: list[Measurement]) -> None:
        """Upsert catalog documents by tag id"""
        collection = self._points(device)
        now = datetime.now().replace(microsecond=0)
        try:
            for m in measurements:
                await collection.update_one(
                    {"_id": m.tag},
                    {
                        "$set": {
                            "type": m.type.value,
                            "desc": m.desc,
                            "unit": m.unit,
                            "downlimit": m.downlimit,
                            "uplimit": m.uplimit,
                            "modifyTime": now,
                        }
                    },
                    upsert=True,
                )
        except PyMongoError as e:
            logger.error(f"✗ MongoDB initialize error: {e}")
            raise BackendError(str(e)) from e
        logger.info(f"Initialized {len(measurements)} measurements in {device}")

    async def points(self, device: str, keywords: str = "") -> list[Measurement]:
        """
        Search the catalog by tag regex

        Numeric fields stored as strings are coerced; unparsable ones become
        None. A document that cannot be decoded at all raises
        CatalogDecodeError carrying that document.
        """
        pattern = compile_keywords(keywords).pattern
        query = {"_id": {"$regex": pattern, "$options": "i"}} if pattern else {}
        projection = {
            "type": 1,
            "desc": 1,
            "unit": 1,
            "downlimit": 1,
            "uplimit": 1,
            "modifyTime": 1,
        }
        try:
            docs = await self._points(device).find(query, projection).to_list(None)
        except PyMongoError as e:
            logger.error(f"✗ MongoDB points error: {e}")
            raise BackendError(str(e)) from e

        measurements = []
        for doc in docs:
            try:
                measurements.append(
                    Measurement(
                        tag=to_text(doc.get("_id")),
                        type=doc.get("type"),
                        desc=to_text(doc.get("desc")),
                        unit=to_text(doc.get("unit")),
                        downlimit=to_float(doc.get("downlimit")),
                        uplimit=to_float(doc.get("uplimit")),
                        modify_time=to_datetime(doc.get("modifyTime")),
                    )
                )
            except (TypeError, ValueError) as e:
                raise CatalogDecodeError(doc, str(e)) from e
        return sorted(measurements, key=lambda m: m.tag)

    async def snapshot(self, device: str, tags: list[str]) -> list[SnapshotRecord]:
        """Latest values, in request order; tags without a snapshot are omitted"""
        unique = list(dict.fromkeys(tags))
        if not unique:
            return []
        query = {"_id": {"$regex": exact_tag_pattern(unique), "$options": "i"}}
        try:
            docs = await self._snapshots(device).find(query).to_list(None)
        except PyMongoError as e:
            logger.error(f"✗ MongoDB snapshot error: {e}")
            raise BackendError(str(e)) from e

        by_tag = {str(doc["_id"]).lower(): doc for doc in docs}
        records = []
        for tag in unique:
            doc = by_tag.get(tag.lower())
            if not doc:
                continue
            t = to_datetime(doc.get("time"))
            if t is None or "value" not in doc:
                continue
            records.append(SnapshotRecord(str(doc["_id"]), t, decode_value(doc["value"])))
        return records

    async def bulk_write(self, device: str, matrix: BulkWriteMatrix) -> None:
        """
        Write samples into day buckets and refresh snapshots

        MultiTagSnapshot writes one second into each tag's bucket;
        SingleTagSeries writes all rows of its tag, one bucket replace per
        touched day. The snapshot takes the last row, without comparing it
        to the time of the previous snapshot.
        """
        if isinstance(matrix, MultiTagSnapshot):
            for tag, value in matrix.items():
                await self._write_samples(
                    device, strip_path_prefix(tag, device), [Sample(matrix.time, value)]
                )
        else:
            await self._write_samples(device, strip_path_prefix(matrix.tag, device), matrix.rows)

    async def _write_samples(self, device: str, tag: str, samples: list[Sample]) -> None:
        archive = self._archive(device)
        by_day: dict[date, list[Sample]] = {}
        for s in samples:
            by_day.setdefault(s.time.date(), []).append(s)

        try:
            for day, rows in by_day.items():
                key = bucket_id(tag, day)
                doc = await archive.find_one({"_id": key})
                if doc is None:
                    doc = {"_id": key, "date": day.isoformat(), "values": {}}
                values = doc.setdefault("values", {})
                for s in rows:
                    values[second_key(s.time)] = s.value
                await archive.replace_one({"_id": key}, doc, upsert=True)

            last = samples[-1]
            await self._snapshots(device).update_one(
                {"_id": tag},
                {"$set": {"time": last.time, "value": last.value}},
                upsert=True,
            )
        except PyMongoError as e:
            logger.error(f"✗ MongoDB write error ({device}/{tag}): {e}")
            raise BackendError(str(e)) from e
        logger.debug(f"Wrote {len(samples)} samples to {device}/{tag} ({len(by_day)} buckets)")

    async def archive(
        self, device: str, tag: str, begin: datetime, end: datetime, digits: int = 6
    ) -> list[Sample]:
        kind = await self._tag_type(device, tag)
        samples, _, _ = await self._scan(device, tag, kind, begin, end, digits)
        return samples

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
        Evenly spaced history with edge synthesis

        The window edges are made explicit before filling: the value before
        begin comes from the scanned buckets or, failing that, from the last
        value of the previous day. With no in-range samples, end holds the
        carry-left value seen in the scanned buckets, else the first value
        after end.
        """
        kind = await self._tag_type(device, tag)
        samples, before, after = await self._scan(device, tag, kind, begin, end, digits)
        if before is not None:
            after = before
        if before is None and (not samples or samples[0].time != begin):
            before = await self._last_value(device, tag, kind, begin.date() - timedelta(days=1), digits)
        return fill(pad_edges(samples, begin, end, before, after), begin, end, interval_ms)

    async def _scan(
        self,
        device: str,
        tag: str,
        kind: MeasurementType,
        begin: datetime,
        end: datetime,
        digits: int,
    ) -> tuple[list[Sample], float | None, float | None]:
        """
        Read the buckets covering [begin, end]

        Returns:
            (in-range samples, last value before begin, first value after end)
        """
        keys = [bucket_id(tag, day) for day in day_range(begin, end)]
        if not keys:
            return [], None, None
        query = {"_id": {"$regex": exact_tag_pattern(keys), "$options": "i"}}
        try:
            docs = await self._archive(device).find(query).sort("date", 1).to_list(None)
        except PyMongoError as e:
            logger.error(f"✗ MongoDB archive error ({device}/{tag}): {e}")
            raise BackendError(str(e)) from e

        samples: list[Sample] = []
        before = None
        for doc in docs:
            for s in decode_bucket(doc, kind, digits):
                if s.time < begin:
                    before = s.value
                    continue
                if s.time > end:
                    return samples, before, s.value
                samples.append(s)
        return samples, before, None

    async def _last_value(
        self, device: str, tag: str, kind: MeasurementType, day: date, digits: int
    ) -> float | None:
        """Last stored value of a tag on one day"""
        query = {"_id": {"$regex": exact_tag_pattern([bucket_id(tag, day)]), "$options": "i"}}
        try:
            doc = await self._archive(device).find_one(query)
        except PyMongoError as e:
            logger.error(f"✗ MongoDB archive error ({device}/{tag}): {e}")
            raise BackendError(str(e)) from e
        if not doc:
            return None
        samples = decode_bucket(doc, kind, digits)
        return samples[-1].value if samples else None

    async def _tag_type(self, device: str, tag: str) -> MeasurementType:
        """Declared type of a tag; any failure degrades to analog"""
        try:
            doc = await self._points(device).find_one(
                {"_id": {"$regex": exact_tag_pattern([tag]), "$options": "i"}}, {"type": 1}
            )
        except Exception as e:
            logger.warning(f"⚠️ {device}/{tag}: type lookup failed ({e}), assuming analog")
            return MeasurementType.ANALOG
        if doc is None:
            logger.warning(f"⚠️ {device}/{tag or '<empty tag>'} does not exist, assuming analog")
            return MeasurementType.ANALOG
        return MeasurementType.parse(doc.get("type"))
