"""
Apache IoTDB implementation of the time-series client

Each device is an IoTDB database (root.<device>), each tag a DOUBLE series
under it. Catalog metadata lives on the series definition itself:
- tags:       type, unit, desc, modified
- attributes: downlimit, uplimit

History is pushed down to IoTDB as a GROUP BY time query instead of
filling archive samples client-side.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Any

from iotdb.Session import Session
from iotdb.utils.IoTDBConstants import TSDataType
from iotdb.utils.Tablet import Tablet

from config.settings import get_settings
from core.exceptions import BackendError
from core.interfaces.timeseries import TimeSeriesClient
from core.models.timeseries import (
    BulkWriteMatrix,
    Measurement,
    MultiTagSnapshot,
    Sample,
    SnapshotRecord,
)
from core.utils.config import parse_connection_url
from core.utils.encoding import (
    compile_keywords,
    decode_value,
    parse_json_object,
    strip_path_prefix,
    to_datetime,
    to_float,
)
from core.utils.gap_handling import fill

logger = logging.getLogger(__name__)

# Ranges longer than this run a count() before the GROUP BY scan
COUNT_CHECK_SPAN = timedelta(hours=4)


def to_epoch_ms(t: datetime) -> int:
    """Epoch milliseconds of a (naive, local) datetime"""
    return int(round(t.timestamp() * 1000))


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000)


def quote(value: Any) -> str:
    """IoTDB string literal"""
    return "'" + str(value).replace("'", "''") + "'"


def field_value(field) -> Any:
    """Python value of a result field, None for nulls"""
    if field is None or field.get_data_type() is None:
        return None
    return field.get_object_value(field.get_data_type())


class IoTDBClient(TimeSeriesClient):
    """
    Apache IoTDB implementation

    Features:
    - Native last-value snapshot queries
    - Pushed-down GROUP BY history with previous-value fill
    - Tablet (columnar) inserts for series writes

    The IoTDB session is synchronous; calls run in a worker thread.
    """

    def __init__(self, url: str):
        super().__init__(url)
        self.settings = get_settings()
        self.config = parse_connection_url(url)
        self.fetch_size = self.config.param_int("fetchSize", self.settings.IOTDB_FETCH_SIZE)
        self.session: Session | None = None
        self._late_close: asyncio.Task | None = None

    def _path(self, device: str) -> str:
        return f"root.{device}"

    async def open(self) -> None:
        """Open the session (bounded by CONNECT_TIMEOUT_SECONDS)"""
        options = {"fetch_size": self.fetch_size}
        if self.settings.IOTDB_ZONE_ID:
            options["zone_id"] = self.settings.IOTDB_ZONE_ID
        session = Session(
            self.config.host,
            self.config.port,
            self.config.username,
            self.config.password,
            **options,
        )
        opening = asyncio.ensure_future(asyncio.to_thread(session.open, False))
        try:
            await asyncio.wait_for(
                asyncio.shield(opening),
                timeout=self.settings.CONNECT_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error(f"✗ Failed to connect to IoTDB: {e!r}")
            if not opening.done():
                # The worker thread keeps connecting after a timeout
                self._late_close = asyncio.create_task(self._close_when_opened(opening, session))
            raise BackendError(f"IoTDB connect failed: {e!r}") from e
        self.session = session
        logger.info(f"✓ Connected to IoTDB: {self.config.host}:{self.config.port}")

    async def _close_when_opened(self, opening: asyncio.Future, session: Session) -> None:
        """Close a session whose open() finished after the connect timeout"""
        try:
            await opening
        except Exception as e:
            logger.debug(f"Late IoTDB open failed: {e!r}")
            return
        await asyncio.to_thread(session.close)
        logger.warning("Closed IoTDB session that connected after the timeout")

    async def close(self) -> None:
        """Close session"""
        if self.session:
            await asyncio.to_thread(self.session.close)
            self.session = None
            logger.info("✓ IoTDB session closed")

    def _require_session(self) -> Session:
        if not self.session:
            raise RuntimeError("IoTDB session not connected")
        return self.session

    async def _call(self, action: str, fn, *args) -> Any:
        """Run a blocking session call in a worker thread, wrapping failures"""
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            logger.error(f"✗ IoTDB {action} error: {e}")
            raise BackendError(str(e)) from e

    def _fetch(self, sql: str) -> tuple[list[str], list[tuple[int, list[Any]]]]:
        """Execute a query and drain it: (column names, [(timestamp, values)])"""
        data_set = self._require_session().execute_query_statement(sql)
        try:
            names = list(data_set.get_column_names())
            rows = []
            columns: list[str] = []
            while data_set.has_next():
                record = data_set.next()
                fields = record.get_fields()
                # The Time column, when present, is not part of the fields
                columns = names[-len(fields):] if fields else []
                rows.append((record.get_timestamp(), [field_value(f) for f in fields]))
            return columns or names, rows
        finally:
            data_set.close_operation_handle()

    async def _query(self, sql: str) -> tuple[list[str], list[tuple[int, list[Any]]]]:
        logger.debug(f"iotdb query: {sql}")
        self._require_session()
        return await self._call("query", self._fetch, sql)

    async def _execute(self, sql: str) -> None:
        logger.debug(f"iotdb statement: {sql}")
        session = self._require_session()
        await self._call("statement", session.execute_non_query_statement, sql)

    async def drop(self, device: str) -> None:
        await self._execute(f"delete database {self._path(device)}")
        logger.info(f"Dropped IoTDB database {self._path(device)}")

    async def initialize(self, device: str, measurements: list[Measurement]) -> None:
        """
        Create new series or upsert tags/attributes of existing ones

        Existence is decided by a catalog listing taken before any statement
        runs.
        """
        existing = {m.tag for m in await self.points(device)}
        modified = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        for m in measurements:
            tags = (
                f"tags(type={quote(m.type.value)}, unit={quote(m.unit)}, "
                f"desc={quote(m.desc)}, modified={quote(modified)})"
            )
            limits = [
                f"{name}={quote(f'{value:g}')}"
                for name, value in (("downlimit", m.downlimit), ("uplimit", m.uplimit))
                if value is not None
            ]
            attributes = f" attributes({', '.join(limits)})" if limits else ""
            series = f"{self._path(device)}.{m.tag}"
            if m.tag in existing:
                sql = f"alter timeseries {series} upsert {tags}{attributes}"
            else:
                sql = f"create timeseries {series} with datatype=DOUBLE, encoding=GORILLA {tags}{attributes}"
            await self._execute(sql)
        logger.info(f"Initialized {len(measurements)} measurements in {self._path(device)}")

    async def points(self, device: str, keywords: str = "") -> list[Measurement]:
        """
        List series of a device matching a tag regex

        Malformed tag/attribute JSON decodes to an empty payload.
        """
        regex = compile_keywords(keywords)
        prefix = f"{self._path(device)}."
        columns, rows = await self._query(f"show timeseries {self._path(device)}.**")
        index = {name.lower(): i for i, name in enumerate(columns)}
        i_series = index.get("timeseries", 0)
        i_tags = index.get("tags", len(columns) - 2)
        i_attrs = index.get("attributes", len(columns) - 1)

        measurements = []
        for _, values in rows:
            series = str(values[i_series])
            tag = series[len(prefix):] if series.startswith(prefix) else series
            if not regex.search(tag):
                continue
            tags = parse_json_object(values[i_tags])
            attrs = parse_json_object(values[i_attrs])
            measurements.append(
                Measurement(
                    tag=tag,
                    type=tags.get("type", tags.get("t")),
                    desc=str(tags.get("desc", tags.get("d")) or ""),
                    unit=str(tags.get("unit", tags.get("u")) or ""),
                    downlimit=to_float(attrs.get("downlimit", attrs.get("l"))),
                    uplimit=to_float(attrs.get("uplimit", attrs.get("h"))),
                    modify_time=to_datetime(tags.get("modified", tags.get("@t"))),
                )
            )
        return sorted(measurements, key=lambda m: m.tag)

    async def snapshot(self, device: str, tags: list[str]) -> list[SnapshotRecord]:
        """Native last-value query, returned in request order"""
        unique = list(dict.fromkeys(tags))
        if not unique:
            return []
        prefix = f"{self._path(device)}."
        columns, rows = await self._query(
            f"select last {', '.join(unique)} from {self._path(device)}"
        )
        index = {name.lower(): i for i, name in enumerate(columns)}
        i_series = index.get("timeseries", 0)
        i_value = index.get("value", 1)

        found = {}
        for ts, values in rows:
            series = str(values[i_series])
            tag = series[len(prefix):] if series.startswith(prefix) else series
            found[tag.lower()] = SnapshotRecord(tag, from_epoch_ms(ts), decode_value(values[i_value]))
        return [found[t.lower()] for t in unique if t.lower() in found]

    async def archive(
        self, device: str, tag: str, begin: datetime, end: datetime, digits: int = 6
    ) -> list[Sample]:
        _, rows = await self._query(
            f"select {tag} from {self._path(device)} "
            f"where time >= {to_epoch_ms(begin)} and time <= {to_epoch_ms(end)}"
        )
        return [Sample(from_epoch_ms(ts), decode_value(values[0], digits)) for ts, values in rows]

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
        Bucketed history computed by IoTDB

        Each interval_ms bucket takes its last value, empty buckets take the
        previous bucket's value. Ranges over 4 hours are checked with count()
        first and return [] when the series has no samples in range. Leading
        empty buckets are back-filled from the first value.
        """
        b, e = to_epoch_ms(begin), to_epoch_ms(end)
        if end - begin > COUNT_CHECK_SPAN:
            _, rows = await self._query(
                f"select count({tag}) from {self._path(device)} where time >= {b} and time <= {e}"
            )
            if rows and not rows[0][1][0]:
                return []

        step = max(1, int(interval_ms))
        _, rows = await self._query(
            f"select last_value({tag}) from {self._path(device)} "
            f"group by ([{b}, {e + step}), {step}ms) fill(previous)"
        )
        samples = [Sample(from_epoch_ms(ts), decode_value(values[0], digits)) for ts, values in rows]
        known = [s for s in samples if not math.isnan(s.value)]
        return fill(known, begin, end, interval_ms)

    async def bulk_write(self, device: str, matrix: BulkWriteMatrix) -> None:
        """
        MultiTagSnapshot ⇒ one multi-measurement record insert;
        SingleTagSeries ⇒ one tablet insert
        """
        session = self._require_session()
        path = self._path(device)
        if isinstance(matrix, MultiTagSnapshot):
            names = [strip_path_prefix(t, device) for t in matrix.tags]
            await self._call(
                "insert_record",
                session.insert_record,
                path,
                to_epoch_ms(matrix.time),
                names,
                [TSDataType.DOUBLE] * len(names),
                list(matrix.values),
            )
            logger.debug(f"Inserted record of {len(names)} measurements into {path}")
            return

        rows = sorted(matrix.rows, key=lambda s: s.time)
        tablet = Tablet(
            path,
            [strip_path_prefix(matrix.tag, device)],
            [TSDataType.DOUBLE],
            [[s.value] for s in rows],
            [to_epoch_ms(s.time) for s in rows],
        )
        await self._call("insert_tablet", session.insert_tablet, tablet)
        logger.debug(f"Inserted tablet of {len(rows)} rows into {path}")
