"""
Tests for the Weather Day Feature Builder.

Covers local day assignment, time parsing, target-time priority,
weather selection and tie-breaking, and coverage counts.
"""

import pytest

from services.weather_day_features import (
    build_weather_day_features,
    to_local_date_iso,
    parse_selected_time,
    resolve_timezone,
    DayCountRecord,
    EntryForWeatherJoin,
    WeatherLogForFeature,
)
from services.weather_association import compute_weather_association

TZ = "Europe/Berlin"


def _day(date_iso="2026-02-26", **overrides):
    values = dict(date_iso=date_iso, documented=True, headache=False, pain_max=None)
    values.update(overrides)
    return DayCountRecord(**values)


def _entry(**overrides):
    values = dict(
        selected_date="2026-02-26",
        selected_time="08:00",
        weather_id=None,
        entry_kind="pain",
        pain_level="5",
    )
    values.update(overrides)
    return EntryForWeatherJoin(**values)


def _log(log_id, **overrides):
    values = dict(
        id=log_id,
        snapshot_date=None,
        requested_at=None,
        pressure_mb=1013.0,
        pressure_change_24h=-2.0,
        temperature_c=10.0,
        humidity=65.0,
    )
    values.update(overrides)
    return WeatherLogForFeature(**values)


class TestLocalDate:
    """Local calendar day of timestamps."""

    def test_post_midnight_berlin_is_next_day(self):
        assert to_local_date_iso("2026-02-25T23:30:00Z", TZ) == "2026-02-26"

    def test_pre_dst_switch(self):
        assert to_local_date_iso("2026-03-28T23:30:00Z", TZ) == "2026-03-29"

    def test_offset_timestamp(self):
        assert to_local_date_iso("2026-07-01T01:30:00+02:00", TZ) == "2026-07-01"

    def test_invalid_timestamp(self):
        assert to_local_date_iso("not a date", TZ) == ""
        assert to_local_date_iso(None, TZ) == ""

    def test_out_of_range_local_date(self):
        assert to_local_date_iso("9999-12-31T23:30:00-05:00", TZ) == ""

    def test_unknown_timezone(self):
        with pytest.raises(ValueError):
            resolve_timezone("Mars/Olympus_Mons")


class TestParseSelectedTime:
    """Diary time strings."""

    def test_single_digit_hour(self):
        assert parse_selected_time("8:00") == (8, 0)
        assert parse_selected_time("08:00") == (8, 0)

    def test_seconds_ignored(self):
        assert parse_selected_time("14:30:45") == (14, 30)

    def test_midnight_clamped(self):
        assert parse_selected_time("24:00") == (23, 59)

    @pytest.mark.parametrize("value", [None, "", "abc", "25:00", "12:60", "24:01", "8"])
    def test_invalid(self, value):
        assert parse_selected_time(value) is None


class TestTargetTime:
    """Target time priority."""

    def test_weather_nearest_to_earliest_pain_entry(self):
        entries = [
            _entry(selected_time="06:00", entry_kind="lifestyle", pain_level=None),
            _entry(selected_time="08:00", entry_kind="pain", pain_level="6"),
        ]
        logs = [
            _log(1, snapshot_date="2026-02-26", requested_at="2026-02-26T05:30:00Z", pressure_mb=1010),
            _log(2, snapshot_date="2026-02-26", requested_at="2026-02-26T06:45:00Z", pressure_mb=1015),
        ]
        build = build_weather_day_features([_day(headache=True, pain_max=6)], entries, logs, TZ)

        assert len(build.features) == 1
        assert build.features[0].pressure_mb == 1015
        assert build.features[0].weather_coverage == "snapshot"

    def test_prefer_pain_disabled_uses_earliest_entry(self):
        entries = [
            _entry(selected_time="06:00", entry_kind="lifestyle", pain_level=None),
            _entry(selected_time="10:00", entry_kind="pain", pain_level="5"),
        ]
        logs = [
            _log(1, snapshot_date="2026-02-26", requested_at="2026-02-26T05:30:00Z", pressure_mb=1001),
            _log(2, snapshot_date="2026-02-26", requested_at="2026-02-26T08:30:00Z", pressure_mb=1002),
        ]
        build = build_weather_day_features(
            [_day(headache=True, pain_max=5)], entries, logs, TZ,
            prefer_pain_as_target=False,
        )
        assert build.features[0].pressure_mb == 1001

    def test_untyped_entry_with_pain_level_counts_as_pain(self):
        entries = [
            _entry(selected_time="06:00", entry_kind="lifestyle", pain_level=None),
            _entry(selected_time="16:00", entry_kind=None, pain_level="4"),
        ]
        logs = [
            _log(1, snapshot_date="2026-02-26", requested_at="2026-02-26T05:00:00Z", pressure_mb=1001),
            _log(2, snapshot_date="2026-02-26", requested_at="2026-02-26T15:00:00Z", pressure_mb=1002),
        ]
        build = build_weather_day_features([_day()], entries, logs, TZ)
        assert build.features[0].pressure_mb == 1002


class TestWeatherSelection:
    """Entry-linked weather first, snapshots second."""

    def test_entry_weather_nearest_to_target(self):
        entries = [
            _entry(selected_time="10:00", weather_id=100),
            _entry(selected_time="07:00", weather_id=200),
        ]
        logs = [_log(100, pressure_mb=1010), _log(200, pressure_mb=1020)]
        build = build_weather_day_features([_day(headache=True, pain_max=7)], entries, logs, TZ)

        assert build.features[0].pressure_mb == 1020
        assert build.features[0].weather_coverage == "entry"

    def test_snapshot_nearest_to_target(self):
        entries = [_entry(selected_time="14:00", entry_kind="lifestyle", pain_level=None)]
        logs = [
            _log(1, snapshot_date="2026-02-26", requested_at="2026-02-26T07:00:00Z", pressure_mb=1001),
            _log(2, snapshot_date="2026-02-26", requested_at="2026-02-26T12:30:00Z", pressure_mb=1002),
            _log(3, snapshot_date="2026-02-26", requested_at="2026-02-26T18:00:00Z", pressure_mb=1003),
        ]
        build = build_weather_day_features([_day()], entries, logs, TZ)

        assert build.features[0].pressure_mb == 1002
        assert build.features[0].weather_coverage == "snapshot"

    def test_equal_distance_picks_lower_id(self):
        logs = [
            _log(99, snapshot_date="2026-02-26", requested_at="2026-02-26T10:00:00Z", pressure_mb=999),
            _log(5, snapshot_date="2026-02-26", requested_at="2026-02-26T12:00:00Z", pressure_mb=555),
        ]
        build = build_weather_day_features([_day()], [], logs, TZ)
        assert build.features[0].pressure_mb == 555

    def test_untimed_snapshots_pick_lowest_id(self):
        logs = [
            _log(50, snapshot_date="2026-02-26", pressure_mb=1050),
            _log(10, snapshot_date="2026-02-26", pressure_mb=1010),
            _log(30, snapshot_date="2026-02-26", pressure_mb=1030),
        ]
        build = build_weather_day_features([_day()], [], logs, TZ)

        assert build.features[0].pressure_mb == 1010
        assert build.features[0].weather_coverage == "snapshot"

    def test_snapshot_day_from_requested_at(self):
        logs = [_log(7, requested_at="2026-02-25T23:15:00Z", pressure_mb=1007)]
        build = build_weather_day_features([_day()], [], logs, TZ)
        assert build.features[0].pressure_mb == 1007

    def test_no_weather(self):
        build = build_weather_day_features([_day()], [], [], TZ)

        assert build.features[0].weather_coverage == "none"
        assert build.features[0].pressure_mb is None
        assert build.features[0].pressure_change_24h is None

    def test_missing_linked_log_falls_back_to_snapshot(self):
        entries = [_entry(weather_id=404)]
        logs = [_log(1, snapshot_date="2026-02-26", pressure_mb=1001)]
        build = build_weather_day_features([_day()], entries, logs, TZ)
        assert build.features[0].weather_coverage == "snapshot"


class TestEntryDayKey:
    """Entry day assignment fallback chain."""

    def test_occurred_at_fallback(self):
        entries = [
            EntryForWeatherJoin(
                selected_date=None,
                selected_time=None,
                occurred_at="2026-02-25T23:30:00Z",
                weather_id=1,
                entry_kind="pain",
                pain_level="3",
            )
        ]
        build = build_weather_day_features([_day()], entries, [_log(1, pressure_mb=1005)], TZ)

        assert build.features[0].pressure_mb == 1005
        assert build.features[0].weather_coverage == "entry"

    def test_timestamp_created_last_resort(self):
        entries = [
            EntryForWeatherJoin(timestamp_created="2026-02-26T09:00:00Z", weather_id=3)
        ]
        build = build_weather_day_features([_day()], entries, [_log(3, pressure_mb=1003)], TZ)
        assert build.features[0].weather_coverage == "entry"

    def test_entries_outside_range_ignored(self):
        entries = [_entry(selected_date="2026-01-01", weather_id=1)]
        build = build_weather_day_features([_day()], entries, [_log(1)], TZ)
        assert build.features[0].weather_coverage == "none"


class TestDayFeatures:
    """Feature rows and coverage counts."""

    def test_undocumented_days_excluded(self):
        days = [_day("2026-02-25"), _day("2026-02-26", documented=False)]
        build = build_weather_day_features(days, [], [], TZ)

        assert [f.date for f in build.features] == ["2026-02-25"]
        assert build.features[0].documented is True

    def test_day_fields_mapped(self):
        days = [_day(headache=True, pain_max=None, acute_med_used=True)]
        logs = [_log(1, snapshot_date="2026-02-26", pressure_mb=1012, pressure_change_24h=-9,
                     temperature_c=3.5, humidity=80)]
        feature = build_weather_day_features(days, [], logs, TZ).features[0]

        assert feature.pain_max == 0.0
        assert feature.had_headache is True
        assert feature.had_acute_med is True
        assert feature.pressure_change_24h == -9
        assert feature.temperature_c == 3.5
        assert feature.humidity == 80

    def test_coverage_counts(self):
        days = [_day("2026-02-24"), _day("2026-02-25"), _day("2026-02-26")]
        entries = [_entry(selected_date="2026-02-24", weather_id=1)]
        logs = [
            _log(1, pressure_mb=1010),
            _log(2, snapshot_date="2026-02-25", requested_at="2026-02-25T10:00:00Z", pressure_mb=1015),
        ]
        build = build_weather_day_features(days, entries, logs, TZ)

        assert len(build.features) == 3
        assert build.coverage_counts.days_with_entry_weather == 1
        assert build.coverage_counts.days_with_snapshot_weather == 1
        assert build.coverage_counts.days_with_no_weather == 1

    def test_features_feed_association(self):
        days = [_day(f"2026-01-{i + 1:02d}", headache=i < 10, pain_max=6 if i < 10 else None) for i in range(30)]
        logs = [
            _log(i + 1, snapshot_date=f"2026-01-{i + 1:02d}", pressure_change_24h=-10.0 if i < 10 else 1.0)
            for i in range(30)
        ]
        build = build_weather_day_features(days, [], logs, TZ)
        result = compute_weather_association(build.features, coverage_counts=build.coverage_counts)

        axis = result.pressure_delta_24h
        assert axis.enabled is True
        assert axis.buckets[0].headache_rate == 1.0
        assert axis.buckets[2].headache_rate == 0.0
        assert axis.relative_risk.rr is None
        assert result.coverage.days_with_snapshot_weather == 30
