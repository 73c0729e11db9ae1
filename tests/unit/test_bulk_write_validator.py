"""
Unit tests for bulk-write matrix parsing

Tests shape detection (single-tag series vs multi-tag snapshot) and
rejection of malformed payloads at the boundary.
"""

from datetime import datetime

import pytest

from core.models.timeseries import MultiTagSnapshot, Sample, SingleTagSeries
from core.validators.bulk_write import parse_bulk_write_matrix, parse_time, parse_value


@pytest.mark.unit
class TestShapeDetection:
    """Row count decides the shape"""

    def test_two_rows_is_multi_tag_snapshot(self):
        matrix = [["Timestamp", "T1", "T2", "T3"], ["2024-01-01 08:00:00", 1, "2.5", True]]

        result = parse_bulk_write_matrix(matrix)

        assert isinstance(result, MultiTagSnapshot)
        assert result.tags == ["T1", "T2", "T3"]
        assert result.time == datetime(2024, 1, 1, 8, 0, 0)
        assert result.values == [1.0, 2.5, 1.0]

    def test_two_rows_single_tag_is_snapshot(self):
        result = parse_bulk_write_matrix([["Timestamp", "T1"], ["2024-01-01T08:00:00", 42]])

        assert isinstance(result, MultiTagSnapshot)
        assert result.items() == [("T1", 42.0)]

    def test_more_rows_is_single_tag_series(self):
        matrix = [
            ["Timestamp", "T1"],
            ["2024-01-01 08:00:00", 1],
            ["2024-01-01 08:00:01", 2],
            [datetime(2024, 1, 1, 8, 0, 2), 3],
        ]

        result = parse_bulk_write_matrix(matrix)

        assert isinstance(result, SingleTagSeries)
        assert result.tag == "T1"
        assert result.rows == [
            Sample(datetime(2024, 1, 1, 8, 0, 0), 1.0),
            Sample(datetime(2024, 1, 1, 8, 0, 1), 2.0),
            Sample(datetime(2024, 1, 1, 8, 0, 2), 3.0),
        ]

    def test_header_cells_are_trimmed(self):
        result = parse_bulk_write_matrix([["Timestamp", " T1 "], ["2024-01-01 08:00:00", 1]])

        assert result.tags == ["T1"]


@pytest.mark.unit
class TestMalformedMatrix:
    """Malformed payloads raise ValueError"""

    def test_header_only(self):
        with pytest.raises(ValueError, match="at least one data row"):
            parse_bulk_write_matrix([["Timestamp", "T1"]])

    def test_header_without_tag(self):
        with pytest.raises(ValueError, match="timestamp and a tag column"):
            parse_bulk_write_matrix([["Timestamp"], ["2024-01-01 08:00:00"]])

    def test_ragged_row(self):
        with pytest.raises(ValueError, match="Row 1 has 2 cells"):
            parse_bulk_write_matrix([["Timestamp", "T1", "T2"], ["2024-01-01 08:00:00", 1]])

    def test_series_with_several_tags(self):
        matrix = [
            ["Timestamp", "T1", "T2"],
            ["2024-01-01 08:00:00", 1, 2],
            ["2024-01-01 08:00:01", 1, 2],
        ]

        with pytest.raises(ValueError, match="exactly one tag column"):
            parse_bulk_write_matrix(matrix)

    def test_nan_value(self):
        with pytest.raises(ValueError):
            parse_bulk_write_matrix([["Timestamp", "T1"], ["2024-01-01 08:00:00", float("nan")]])

    def test_nan_string_value(self):
        with pytest.raises(ValueError):
            parse_bulk_write_matrix([["Timestamp", "T1"], ["2024-01-01 08:00:00", "NaN"]])

    def test_bad_timestamp(self):
        with pytest.raises(ValueError, match="Invalid timestamp"):
            parse_bulk_write_matrix([["Timestamp", "T1"], ["not a time", 1]])

    def test_bad_value(self):
        with pytest.raises(ValueError, match="Invalid value"):
            parse_bulk_write_matrix([["Timestamp", "T1"], ["2024-01-01 08:00:00", "high"]])


@pytest.mark.unit
class TestCellParsing:
    """Test individual cell parsers"""

    def test_epoch_milliseconds_are_local_time(self):
        expected = datetime(2024, 1, 1, 8, 0, 0)
        ms = int(expected.timestamp() * 1000)

        assert parse_time(ms) == expected

    def test_bool_is_not_a_timestamp(self):
        with pytest.raises(ValueError):
            parse_time(True)

    def test_value_cells(self):
        assert parse_value(False) == 0.0
        assert parse_value("  -1.5 ") == -1.5
        with pytest.raises(ValueError):
            parse_value(None)
