"""
Weather Association API Router

Exposes the weather ↔ headache association analysis. Either the client sends
pre-aggregated day features, or raw diary rows from which the day features
are built server-side.

Batch only: requests are bounded by WEATHER_ANALYSIS_MAX_DAYS, and diary
entries and weather logs by WEATHER_ANALYSIS_MAX_ROWS_PER_DAY per allowed day.
Association is not causation; every response carries the fixed disclaimer.
"""

from fastapi import APIRouter
import logging

from core.config import settings
from core.exceptions import ValidationError
from schemas import WeatherAssociationRequest, DiaryWeatherAssociationRequest
from services.weather_association import (
    compute_weather_association,
    WeatherDayFeature,
    WeatherCoverageCounts,
    BUCKET_LABELS,
    PRESSURE_DELTA_BUCKETS,
    ABSOLUTE_PRESSURE_BUCKETS,
    DELTA_STRONG_DROP,
    DELTA_MODERATE_DROP,
    PRESSURE_LOW,
    PRESSURE_HIGH,
    MIN_DAYS_FOR_STATEMENT,
    MEDIUM_CONFIDENCE_DAYS,
    HIGH_CONFIDENCE_DAYS,
    MIN_DAYS_ABSOLUTE_PRESSURE,
    MIN_DAYS_PER_BUCKET,
    WEATHER_DISCLAIMER,
)
from services.weather_day_features import (
    build_weather_day_features,
    DayCountRecord,
    EntryForWeatherJoin,
    WeatherLogForFeature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/weather/association", tags=["Weather Association"])


def _check_window(n_days: int, field: str) -> None:
    if n_days > settings.WEATHER_ANALYSIS_MAX_DAYS:
        raise ValidationError(
            f"Too many days for one analysis: {n_days} > {settings.WEATHER_ANALYSIS_MAX_DAYS}",
            field=field,
        )


def _check_rows(n_rows: int, field: str) -> None:
    max_rows = settings.WEATHER_ANALYSIS_MAX_DAYS * settings.WEATHER_ANALYSIS_MAX_ROWS_PER_DAY
    if n_rows > max_rows:
        raise ValidationError(
            f"Too many {field} for one analysis: {n_rows} > {max_rows}",
            field=field,
        )


@router.post("")
def analyze_weather_association(request: WeatherAssociationRequest):
    """
    Weather association from pre-aggregated day features.

    Returns bucket statistics for 24h pressure change (and absolute pressure
    with >= 60 eligible days), relative risk, confidence, coverage and the
    disclaimer. Insufficient data is reported in the result, never as an error.
    """
    _check_window(len(request.features), "features")

    features = [WeatherDayFeature(**f.model_dump()) for f in request.features]
    coverage_counts = None
    if request.coverage_counts is not None:
        coverage_counts = WeatherCoverageCounts(**request.coverage_counts.model_dump())

    result = compute_weather_association(features, coverage_counts=coverage_counts)
    return result.to_dict()


@router.post("/from-diary")
def analyze_weather_association_from_diary(request: DiaryWeatherAssociationRequest):
    """
    Weather association from raw diary rows.

    Day features are built per documented day: weather nearest to the
    earliest pain entry (or earliest entry, or local noon), entry-linked
    weather first, same-day snapshots second.
    """
    _check_window(len(request.days), "days")
    _check_rows(len(request.entries), "entries")
    _check_rows(len(request.weather_logs), "weather_logs")

    try:
        build = build_weather_day_features(
            days=[DayCountRecord(**d.model_dump()) for d in request.days],
            entries=[EntryForWeatherJoin(**e.model_dump()) for e in request.entries],
            weather_logs=[WeatherLogForFeature(**w.model_dump()) for w in request.weather_logs],
            timezone_name=request.timezone or settings.WEATHER_DEFAULT_TIMEZONE,
            prefer_pain_as_target=request.prefer_pain_as_target,
        )
    except ValueError as e:
        raise ValidationError(str(e), field="timezone") from e

    logger.info(
        f"Weather association from diary: {len(build.features)} documented days",
        extra={
            "extra_fields": {
                "days_requested": len(request.days),
                "days_documented": len(build.features),
            }
        }
    )

    result = compute_weather_association(build.features, coverage_counts=build.coverage_counts)
    return result.to_dict()


@router.get("/methodology")
def get_methodology():
    """
    Thresholds and gates behind the analysis, for display in the UI.
    """
    return {
        "pressure_delta_24h": {
            "unit": "hPa",
            "strong_drop_max": DELTA_STRONG_DROP,
            "moderate_drop_max": DELTA_MODERATE_DROP,
            "buckets": [{"key": k, "label": BUCKET_LABELS[k]} for k in PRESSURE_DELTA_BUCKETS],
            "reference_bucket": PRESSURE_DELTA_BUCKETS[-1],
        },
        "absolute_pressure": {
            "unit": "hPa",
            "low_below": PRESSURE_LOW,
            "high_above": PRESSURE_HIGH,
            "min_days": MIN_DAYS_ABSOLUTE_PRESSURE,
            "buckets": [{"key": k, "label": BUCKET_LABELS[k]} for k in ABSOLUTE_PRESSURE_BUCKETS],
            "reference_bucket": ABSOLUTE_PRESSURE_BUCKETS[1],
        },
        "confidence": {
            "low": MIN_DAYS_FOR_STATEMENT,
            "medium": MEDIUM_CONFIDENCE_DAYS,
            "high": HIGH_CONFIDENCE_DAYS,
        },
        "min_days_per_bucket": MIN_DAYS_PER_BUCKET,
        "max_days": settings.WEATHER_ANALYSIS_MAX_DAYS,
        "disclaimer": WEATHER_DISCLAIMER,
    }
