"""
JSON-ready renderings of read results

Two renderings of the time axis are supported for sample lists:
- local timestamp strings: {"time": "2024-01-01T08:00:00", "value": 1.0}
- epoch milliseconds (chart data): {"x": 1704067200000, "y": 1.0}
"""

from core.models.timeseries import Measurement, Sample, SnapshotRecord

TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def epoch_ms(sample: Sample) -> int:
    """Epoch milliseconds of a sample (naive times are local wall-clock times)"""
    return int(round(sample.time.timestamp() * 1000))


def samples_to_json(samples: list[Sample], epoch: bool = False) -> list[dict]:
    """Render samples as time/value objects, or x/y epoch-millisecond pairs"""
    if epoch:
        return [{"x": epoch_ms(s), "y": s.value} for s in samples]
    return [{"time": s.time.strftime(TIME_FORMAT), "value": s.value} for s in samples]


def series_to_json(series: list[tuple[str, list[Sample]]], epoch: bool = False) -> dict:
    """Render multi-tag results as {tag: [...]}, keeping tag order"""
    return {tag: samples_to_json(samples, epoch) for tag, samples in series}


def snapshot_to_json(records: list[SnapshotRecord]) -> dict[str, float]:
    """Render snapshot records as {tag: value}"""
    return {r.tag: r.value for r in records}


def points_to_json(measurements: list[Measurement]) -> dict[str, dict]:
    """Render a catalog listing as {tag: measurement}"""
    return {m.tag: m.to_dict() for m in measurements}


def points_to_rows(measurements: list[Measurement], with_modify_time: bool = True) -> list[list[str]]:
    """Catalog mirror rows, header first; writing them out is left to the caller"""
    header = ["tag", "type", "desc", "unit", "downlimit", "uplimit"]
    if with_modify_time:
        header.append("modifyTime")
    return [header] + [m.to_row(with_modify_time) for m in measurements]
