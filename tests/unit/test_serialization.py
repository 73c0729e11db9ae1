"""
Unit tests for JSON-ready renderings and logging setup
"""

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

import pytest

from core.models.timeseries import Measurement, Sample, SnapshotRecord
from core.utils.logging import LOG_FORMAT, setup_logging
from core.utils.serialization import (
    epoch_ms,
    points_to_json,
    points_to_rows,
    samples_to_json,
    series_to_json,
    snapshot_to_json,
)

T0 = datetime(2024, 1, 2, 8, 0, 0)


@pytest.mark.unit
class TestSerialization:
    """Test read result renderings"""

    def test_samples_as_time_value(self):
        assert samples_to_json([Sample(T0, 1.5)]) == [{"time": "2024-01-02T08:00:00", "value": 1.5}]

    def test_samples_as_epoch_pairs(self):
        rendered = samples_to_json([Sample(T0, 1.5)], epoch=True)

        assert rendered == [{"x": int(T0.timestamp() * 1000), "y": 1.5}]
        assert epoch_ms(Sample(T0, 0.0)) == rendered[0]["x"]

    def test_series_keeps_tag_order(self):
        rendered = series_to_json([("B", [Sample(T0, 1.0)]), ("A", [])])

        assert list(rendered) == ["B", "A"]
        assert rendered["A"] == []

    def test_snapshot(self):
        records = [SnapshotRecord("T1", T0, 42.0), SnapshotRecord("T2", T0, 0.0)]

        assert snapshot_to_json(records) == {"T1": 42.0, "T2": 0.0}

    def test_points(self):
        rendered = points_to_json([Measurement(tag="T1", unit="bar")])

        assert rendered["T1"]["unit"] == "bar"
        assert rendered["T1"]["type"] == "AI"

    def test_points_rows_header_first(self):
        rows = points_to_rows([Measurement(tag="T1", downlimit=0, uplimit=10)], with_modify_time=False)

        assert rows[0] == ["tag", "type", "desc", "unit", "downlimit", "uplimit"]
        assert rows[1] == ["T1", "AI", "", "", "0", "10"]


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


@pytest.mark.unit
@pytest.mark.usefixtures("restore_root_logger")
class TestSetupLogging:
    """Test root logging configuration"""

    def test_console_handler(self):
        root = setup_logging("DEBUG")

        assert root.level == logging.DEBUG
        assert [h.formatter._fmt for h in root.handlers] == [LOG_FORMAT]

    def test_unknown_level_falls_back_to_info(self):
        assert setup_logging("chatty").level == logging.INFO

    def test_error_file_handler(self, tmp_path):
        path = tmp_path / "logs" / "errors.log"

        root = setup_logging("INFO", error_log=str(path))
        logging.getLogger("tsaccess.test").error("boom")
        for handler in root.handlers:
            handler.flush()

        assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)
        assert "boom" in path.read_text(encoding="utf-8")
