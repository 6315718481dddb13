"""
Unit tests for parsing and querying tide series.
"""
import dataclasses
import types
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.tide_series import HeightPolicy, TideExtremum, TideKind, TideSeries, parse_kind

RAW_DAY = [
    ("2024-06-15 04:12", "1.532", "H"),
    ("2024-06-15 10:41", "-0.104", "L"),
    ("2024-06-15 17:03", "1.287", "H"),
    ("2024-06-15 22:30", "0.611", "L"),
]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestParseKind:
    """Tests for type code mapping."""

    @pytest.mark.parametrize("code,expected", [
        ("H", TideKind.HIGH),
        ("L", TideKind.LOW),
        ("h", TideKind.HIGH),
        (" l ", TideKind.LOW),
        (None, TideKind.UNKNOWN),
        ("", TideKind.UNKNOWN),
        ("X", TideKind.UNKNOWN),
        ("HH", TideKind.UNKNOWN),
        (1, TideKind.UNKNOWN),
    ])
    def test_codes(self, code, expected):
        assert parse_kind(code) is expected


class TestFromRaw:
    """Tests for building a series from raw provider points."""

    def test_parses_all_points(self):
        series = TideSeries.from_raw(RAW_DAY)
        assert series.count() == 4
        assert series.parse_skipped == 0
        assert series.heights_defaulted == 0
        assert series.first() == TideExtremum(utc(2024, 6, 15, 4, 12), 1.532, TideKind.HIGH)
        assert series.last() == TideExtremum(utc(2024, 6, 15, 22, 30), 0.611, TideKind.LOW)

    @pytest.mark.parametrize("order", [
        [0, 1, 2, 3],
        [3, 2, 1, 0],
        [2, 0, 3, 1],
        [1, 3, 0, 2],
    ])
    def test_sorted_regardless_of_input_order(self, order):
        """N well-formed points give a series of length N in time order."""
        series = TideSeries.from_raw([RAW_DAY[i] for i in order])
        assert len(series) == len(RAW_DAY)
        times = list(series.timestamps())
        assert times == sorted(times)
        assert [p.height for p in series] == [1.532, -0.104, 1.287, 0.611]

    def test_timestamps_use_given_timezone(self):
        tz = ZoneInfo('America/Los_Angeles')
        series = TideSeries.from_raw(RAW_DAY, tz=tz)
        assert series.tz is tz
        assert series.first().timestamp == datetime(2024, 6, 15, 4, 12, tzinfo=tz)
        # Stored in UTC
        assert series.first().timestamp == utc(2024, 6, 15, 11, 12)
        assert series.first().timestamp.utcoffset() == timedelta(0)

    def test_daylight_saving_gap_keeps_elapsed_time(self):
        """Wall-clock 00:00 to 04:00 on the spring-forward day is three real hours."""
        tz = ZoneInfo('America/New_York')
        series = TideSeries.from_raw([
            ("2024-03-10 00:00", "0.0", "L"),
            ("2024-03-10 04:00", "3.0", "H"),
        ], tz=tz)
        first, last = series.timestamps()
        assert last - first == timedelta(hours=3)
        assert first == utc(2024, 3, 10, 5, 0)
        assert last == utc(2024, 3, 10, 8, 0)

    def test_duplicate_instants_across_zones(self):
        """The same instant given in two zones counts as a duplicate."""
        a = TideExtremum(utc(2024, 6, 15, 11, 12), 1.5, TideKind.HIGH)
        b = TideExtremum(datetime(2024, 6, 15, 4, 12, tzinfo=ZoneInfo('America/Los_Angeles')), 0.5, TideKind.LOW)
        with pytest.raises(ValueError, match="Duplicate"):
            TideSeries([a, b])

    def test_default_timezone_is_utc(self):
        series = TideSeries.from_raw(RAW_DAY)
        assert all(t.utcoffset() == timedelta(0) for t in series.timestamps())

    @pytest.mark.parametrize("bad_time", [
        "2024/06/15 04:12",
        "2024-06-15T04:12",
        "2024-06-15",
        "2024-13-01 00:00",
        "",
        None,
    ])
    def test_bad_timestamp_is_dropped(self, bad_time):
        raw = RAW_DAY + [(bad_time, "1.0", "H")]
        series = TideSeries.from_raw(raw)
        assert series.count() == 4
        assert series.parse_skipped == 1

    def test_timestamp_whitespace_is_tolerated(self):
        series = TideSeries.from_raw([(" 2024-06-15 04:12 ", "1.0", "H")])
        assert series.count() == 1

    def test_malformed_points_are_skipped(self):
        raw = RAW_DAY + [("2024-06-16 01:00",), None, 42]
        series = TideSeries.from_raw(raw)
        assert series.count() == 4
        assert series.parse_skipped == 3

    @pytest.mark.parametrize("bad_height", ["", "abc", None, "nan", "inf", "1.2.3"])
    def test_bad_height_defaults_to_zero(self, bad_height):
        series = TideSeries.from_raw([("2024-06-15 04:12", bad_height, "H")])
        assert series.count() == 1
        assert series.first().height == 0.0
        assert series.first().kind is TideKind.HIGH
        assert series.heights_defaulted == 1
        assert series.parse_skipped == 0

    def test_bad_height_dropped_with_drop_policy(self):
        raw = RAW_DAY + [("2024-06-16 01:00", "n/a", "H")]
        series = TideSeries.from_raw(raw, height_policy=HeightPolicy.DROP)
        assert series.count() == 4
        assert series.heights_defaulted == 1
        assert series.parse_skipped == 1
        assert 0.0 not in list(series.heights())

    def test_missing_kind_is_unknown(self):
        series = TideSeries.from_raw([("2024-06-15 04:12", "1.0")])
        assert series.first().kind is TideKind.UNKNOWN

    def test_duplicate_timestamp_keeps_first(self):
        raw = [
            ("2024-06-15 04:12", "1.5", "H"),
            ("2024-06-15 04:12", "9.9", "L"),
            ("2024-06-15 10:41", "0.1", "L"),
        ]
        series = TideSeries.from_raw(raw)
        assert series.count() == 2
        assert series.first().height == 1.5
        assert series.first().kind is TideKind.HIGH
        assert series.parse_skipped == 1

    def test_empty_input(self):
        series = TideSeries.from_raw([])
        assert series.is_empty()
        assert series.count() == 0
        assert series.parse_skipped == 0

    def test_accepts_generator(self):
        series = TideSeries.from_raw(p for p in RAW_DAY)
        assert series.count() == 4

    def test_skips_are_logged(self, caplog):
        with caplog.at_level("WARNING"):
            TideSeries.from_raw(RAW_DAY + [("bad", "1.0", "H")])
        assert "Skipped 1 malformed tide point" in caplog.text


class TestSeriesQueries:
    """Tests for series queries."""

    @pytest.fixture
    def series(self):
        raw = RAW_DAY + [("2024-06-16 01:00", "0.9", None)]
        return TideSeries.from_raw(raw)

    def test_empty_series(self):
        series = TideSeries.empty()
        assert series.is_empty()
        assert series.first() is None
        assert series.last() is None
        assert list(series.heights()) == []
        assert series.min_height() is None
        assert series.max_height() is None
        assert series.extremes() == []

    def test_heights_is_lazy(self, series):
        heights = series.heights()
        assert isinstance(heights, types.GeneratorType)
        assert list(heights) == [1.532, -0.104, 1.287, 0.611, 0.9]

    def test_min_max(self, series):
        assert series.min_height() == -0.104
        assert series.max_height() == 1.532

    def test_extremes_exclude_unknown(self, series):
        extremes = series.extremes()
        assert len(extremes) == 4
        assert all(p.is_extreme for p in extremes)
        assert series.count() == 5

    def test_highs_and_lows(self, series):
        assert [p.height for p in series.highs()] == [1.532, 1.287]
        assert [p.height for p in series.lows()] == [-0.104, 0.611]

    def test_indexing_and_iteration(self, series):
        assert series[0] == series.first()
        assert series[-1] == series.last()
        assert len(list(series)) == 5

    def test_window(self, series):
        window = series.window(utc(2024, 6, 15, 10, 41), utc(2024, 6, 15, 22, 30))
        assert [p.height for p in window] == [-0.104, 1.287, 0.611]
        assert window.tz is series.tz

    def test_window_naive_bounds_use_series_timezone(self):
        tz = ZoneInfo('America/Los_Angeles')
        series = TideSeries.from_raw(RAW_DAY, tz=tz)
        window = series.window(datetime(2024, 6, 15, 10, 41), datetime(2024, 6, 15, 17, 3))
        assert [p.height for p in window] == [-0.104, 1.287]

    def test_window_mixed_bounds(self, series):
        window = series.window(datetime(2024, 6, 15, 10, 41), utc(2024, 6, 15, 22, 30))
        assert [p.height for p in window] == [-0.104, 1.287, 0.611]

    def test_window_outside_is_empty(self, series):
        assert series.window(utc(2025, 1, 1), utc(2025, 1, 2)).is_empty()

    def test_repr(self, series):
        assert "5 points" in repr(series)
        assert repr(TideSeries.empty()) == "TideSeries(empty)"


class TestSeriesInvariants:
    """Tests for construction invariants."""

    def test_constructor_sorts(self):
        a = TideExtremum(utc(2024, 6, 15, 10), 0.5, TideKind.LOW)
        b = TideExtremum(utc(2024, 6, 15, 4), 1.5, TideKind.HIGH)
        series = TideSeries([a, b])
        assert list(series) == [b, a]

    def test_constructor_rejects_duplicates(self):
        a = TideExtremum(utc(2024, 6, 15, 4), 1.5, TideKind.HIGH)
        b = TideExtremum(utc(2024, 6, 15, 4), 0.5, TideKind.LOW)
        with pytest.raises(ValueError, match="Duplicate"):
            TideSeries([a, b])

    def test_constructor_rejects_naive_timestamps(self):
        with pytest.raises(ValueError, match="timezone"):
            TideSeries([TideExtremum(datetime(2024, 6, 15, 4), 1.5)])

    def test_extremum_is_immutable(self):
        point = TideExtremum(utc(2024, 6, 15, 4), 1.5, TideKind.HIGH)
        with pytest.raises(dataclasses.FrozenInstanceError):
            point.height = 2.0

    def test_kind_values(self):
        assert TideKind.HIGH.value == "high"
        assert TideKind("low") is TideKind.LOW
