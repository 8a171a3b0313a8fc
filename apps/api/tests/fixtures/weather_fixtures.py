"""Synthetic diary days for weather association tests.

Defaults describe a documented day with stable pressure, normal absolute
pressure and no headache. Deterministic, no randomness.
"""
from datetime import date, timedelta
from typing import List

from services.weather_association import WeatherDayFeature


def make_day(day: str, **overrides) -> WeatherDayFeature:
    values = dict(
        date=day,
        documented=True,
        pain_max=0.0,
        had_headache=False,
        had_acute_med=False,
        pressure_mb=1013.0,
        pressure_change_24h=0.0,
        temperature_c=20.0,
        humidity=60.0,
        weather_coverage="entry",
    )
    values.update(overrides)
    return WeatherDayFeature(**values)


def make_days(count: int, start: int = 0, **overrides) -> List[WeatherDayFeature]:
    """`count` consecutive days starting at 2026-01-01 + `start` days."""
    first = date(2026, 1, 1) + timedelta(days=start)
    return [
        make_day((first + timedelta(days=i)).isoformat(), **overrides)
        for i in range(count)
    ]


def feature_payload(count: int, **overrides) -> List[dict]:
    """JSON-ready feature rows for API tests."""
    return [vars(d).copy() for d in make_days(count, **overrides)]
