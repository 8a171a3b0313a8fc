"""
Weather Association Engine

Deterministic, clinically interpretable weather ↔ headache association
computed from the patient's own diary days.

Key principles:
- Documented days only (days the patient was actually tracking)
- Fixed, named thresholds (no data-driven cut points, no p-hacking)
- Max two axes: 24h pressure change (primary), absolute pressure (secondary)
- Insufficient data is reported as data, never raised
- Pure function: no DB, no I/O, no caching between calls

Association is not causation. Every result carries the same disclaimer.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, localcontext
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging
import math

logger = logging.getLogger(__name__)


# Sample-size gates (eligible days per axis)
MIN_DAYS_FOR_STATEMENT = 20
MEDIUM_CONFIDENCE_DAYS = 30
HIGH_CONFIDENCE_DAYS = 60
MIN_DAYS_ABSOLUTE_PRESSURE = 60

# Minimum days in a bucket before it may take part in a relative-risk statement
MIN_DAYS_PER_BUCKET = 5
# At least one bucket this large before the medication confounder hint is shown
MIN_DAYS_CONFOUNDING_HINT = 10
ACUTE_MED_SPREAD_THRESHOLD = 0.2
LOW_DELTA_COVERAGE_RATIO = 0.5

# 24h pressure change thresholds (hPa), inclusive on the drop side
DELTA_STRONG_DROP = -8.0
DELTA_MODERATE_DROP = -3.0

# Absolute pressure thresholds (hPa), inclusive on the normal side
PRESSURE_LOW = 1005.0
PRESSURE_HIGH = 1025.0

WEATHER_DISCLAIMER = (
    "Orientierender Hinweis basierend auf Ihrer Dokumentation. "
    "Zusammenhang ≠ Ursache. Keine Diagnose."
)


class WeatherAxis(str, Enum):
    """Analysis axes and the feature field each one requires."""
    DELTA_24H = "delta_24h"
    ABSOLUTE = "absolute"


class WeatherConfidence(str, Enum):
    """Sample-size confidence tiers."""
    INSUFFICIENT = "insufficient"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Bucket keys, in output order
STRONG_DROP = "strong_drop"
MODERATE_DROP = "moderate_drop"
STABLE_OR_RISE = "stable_or_rise"
PRESSURE_DELTA_BUCKETS = (STRONG_DROP, MODERATE_DROP, STABLE_OR_RISE)

LOW_PRESSURE = "low"
NORMAL_PRESSURE = "normal"
HIGH_PRESSURE = "high"
ABSOLUTE_PRESSURE_BUCKETS = (LOW_PRESSURE, NORMAL_PRESSURE, HIGH_PRESSURE)

BUCKET_LABELS = {
    STRONG_DROP: "Starker Abfall (≤ −8 hPa)",
    MODERATE_DROP: "Moderater Abfall (−8 bis −3 hPa)",
    STABLE_OR_RISE: "Stabil / Anstieg (> −3 hPa)",
    LOW_PRESSURE: f"Tiefdruck (< {PRESSURE_LOW:.0f} hPa)",
    NORMAL_PRESSURE: f"Normal ({PRESSURE_LOW:.0f}–{PRESSURE_HIGH:.0f} hPa)",
    HIGH_PRESSURE: f"Hochdruck (> {PRESSURE_HIGH:.0f} hPa)",
}

WEATHER_COVERAGE_TAGS = ("entry", "snapshot", "none")


@dataclass
class WeatherDayFeature:
    """One calendar day of diary + weather data."""
    date: str
    documented: bool
    pain_max: float = 0.0
    had_headache: bool = False
    had_acute_med: bool = False
    pressure_mb: Optional[float] = None
    pressure_change_24h: Optional[float] = None
    temperature_c: Optional[float] = None
    humidity: Optional[float] = None
    weather_coverage: str = "none"  # entry | snapshot | none


@dataclass
class WeatherCoverageCounts:
    """Where the weather of each documented day came from."""
    days_with_entry_weather: int = 0
    days_with_snapshot_weather: int = 0
    days_with_no_weather: int = 0


@dataclass
class WeatherBucket:
    """Headache statistics for one bucket of an axis."""
    key: str
    label: str
    n_days: int
    headache_rate: float
    mean_pain_max: float
    acute_med_rate: float


@dataclass
class RelativeRisk:
    """Comparison of one exposure bucket against the reference bucket."""
    reference_key: str
    reference_label: str
    compare_key: str
    compare_label: str
    rr: Optional[float]
    abs_diff: float


@dataclass
class WeatherAxisResult:
    """Result for a single analysis axis."""
    enabled: bool
    confidence: str
    n_days: int
    buckets: List[WeatherBucket] = field(default_factory=list)
    relative_risk: Optional[RelativeRisk] = None
    notes: List[str] = field(default_factory=list)


@dataclass
class WeatherCoverage:
    """Documentation completeness across all documented days."""
    days_documented: int
    days_with_weather: int
    days_with_delta_24h: int
    ratio_weather: float
    ratio_delta_24h: float
    days_with_entry_weather: int = 0
    days_with_snapshot_weather: int = 0
    days_with_no_weather: int = 0


@dataclass
class WeatherAssociationResult:
    """Complete weather association analysis."""
    pressure_delta_24h: WeatherAxisResult
    absolute_pressure: Optional[WeatherAxisResult]
    coverage: WeatherCoverage
    disclaimer: str = WEATHER_DISCLAIMER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pressure_delta_24h": _axis_to_dict(self.pressure_delta_24h),
            "absolute_pressure": (
                _axis_to_dict(self.absolute_pressure)
                if self.absolute_pressure is not None else None
            ),
            "coverage": vars(self.coverage).copy(),
            "disclaimer": self.disclaimer,
        }


def _axis_to_dict(axis: WeatherAxisResult) -> Dict[str, Any]:
    return {
        "enabled": axis.enabled,
        "confidence": axis.confidence,
        "n_days": axis.n_days,
        "buckets": [vars(b).copy() for b in axis.buckets],
        "relative_risk": vars(axis.relative_risk).copy() if axis.relative_risk else None,
        "notes": list(axis.notes),
    }


# ─── Helpers ────────────────────────────────────────────────────────────

def round2(value: float) -> float:
    """
    Round half-up to 2 decimals (0.125 -> 0.13, not banker's rounding).

    Non-finite values give 0.0. The local precision covers every finite
    float (up to ~1.8e308 plus two decimals).
    """
    if not math.isfinite(value):
        return 0.0
    with localcontext() as ctx:
        ctx.prec = 400
        return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _mean(values: List[float]) -> float:
    total = sum(values)
    if math.isfinite(total):
        return total / len(values)
    # Sum overflowed; average the scaled terms instead
    return sum(v / len(values) for v in values)


def _as_number(value: Any) -> Optional[float]:
    """Numeric field value, or None if missing or malformed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _axis_value(day: WeatherDayFeature, axis: WeatherAxis) -> Optional[float]:
    if axis == WeatherAxis.DELTA_24H:
        return _as_number(day.pressure_change_24h)
    return _as_number(day.pressure_mb)


def _is_documented(day: WeatherDayFeature) -> bool:
    return day.documented is True


def determine_confidence(n_days: int) -> WeatherConfidence:
    """Map an eligible-day count to a confidence tier."""
    if n_days >= HIGH_CONFIDENCE_DAYS:
        return WeatherConfidence.HIGH
    if n_days >= MEDIUM_CONFIDENCE_DAYS:
        return WeatherConfidence.MEDIUM
    if n_days >= MIN_DAYS_FOR_STATEMENT:
        return WeatherConfidence.LOW
    return WeatherConfidence.INSUFFICIENT


# ─── Normalizer & bucketizer ────────────────────────────────────────────

def eligible_days(
    features: Iterable[WeatherDayFeature],
    axis: WeatherAxis
) -> List[WeatherDayFeature]:
    """
    Days that may contribute to an axis.

    A day is eligible when it is documented and the axis field
    (pressure_change_24h for DELTA_24H, pressure_mb for ABSOLUTE) holds a
    finite number. Input order is preserved.
    """
    return [
        day for day in features
        if _is_documented(day) and _axis_value(day, axis) is not None
    ]


def classify_pressure_change(delta: float) -> str:
    if delta <= DELTA_STRONG_DROP:
        return STRONG_DROP
    if delta <= DELTA_MODERATE_DROP:
        return MODERATE_DROP
    return STABLE_OR_RISE


def classify_absolute_pressure(pressure_mb: float) -> str:
    if pressure_mb < PRESSURE_LOW:
        return LOW_PRESSURE
    if pressure_mb <= PRESSURE_HIGH:
        return NORMAL_PRESSURE
    return HIGH_PRESSURE


_CLASSIFIERS: Dict[WeatherAxis, Callable[[float], str]] = {
    WeatherAxis.DELTA_24H: classify_pressure_change,
    WeatherAxis.ABSOLUTE: classify_absolute_pressure,
}

_BUCKET_ORDER = {
    WeatherAxis.DELTA_24H: PRESSURE_DELTA_BUCKETS,
    WeatherAxis.ABSOLUTE: ABSOLUTE_PRESSURE_BUCKETS,
}


def bucketize(
    days: Iterable[WeatherDayFeature],
    axis: WeatherAxis
) -> Dict[str, List[WeatherDayFeature]]:
    """
    Partition eligible days into the axis buckets.

    Every bucket key of the axis is present (possibly empty). Days without a
    usable axis value are skipped, so callers should pass eligible_days().
    """
    classify = _CLASSIFIERS[axis]
    groups: Dict[str, List[WeatherDayFeature]] = {key: [] for key in _BUCKET_ORDER[axis]}
    for day in days:
        value = _axis_value(day, axis)
        if value is None:
            continue
        groups[classify(value)].append(day)
    return groups


# ─── Rates & risk ───────────────────────────────────────────────────────

def build_bucket(key: str, days: List[WeatherDayFeature]) -> WeatherBucket:
    """Headache rate, mean peak pain (headache days only) and acute-med rate."""
    n_days = len(days)
    headache_days = [d for d in days if d.had_headache is True]
    acute_med_days = sum(1 for d in days if d.had_acute_med is True)
    pain_values = [_as_number(d.pain_max) or 0.0 for d in headache_days]

    mean_pain = round2(_mean(pain_values)) if pain_values else 0.0

    return WeatherBucket(
        key=key,
        label=BUCKET_LABELS[key],
        n_days=n_days,
        headache_rate=round2(len(headache_days) / n_days) if n_days > 0 else 0.0,
        mean_pain_max=mean_pain,
        acute_med_rate=round2(acute_med_days / n_days) if n_days > 0 else 0.0,
    )


def compute_relative_risk(
    reference: WeatherBucket,
    compare: WeatherBucket
) -> Optional[RelativeRisk]:
    """
    Relative risk of compare vs reference.

    abs_diff is always compare - reference. rr is None when the reference
    headache rate is 0. Returns None if either bucket is below
    MIN_DAYS_PER_BUCKET.
    """
    if reference.n_days < MIN_DAYS_PER_BUCKET or compare.n_days < MIN_DAYS_PER_BUCKET:
        return None

    abs_diff = round2(compare.headache_rate - reference.headache_rate)
    rr = None
    if reference.headache_rate > 0:
        rr = round2(compare.headache_rate / reference.headache_rate)

    return RelativeRisk(
        reference_key=reference.key,
        reference_label=reference.label,
        compare_key=compare.key,
        compare_label=compare.label,
        rr=rr,
        abs_diff=abs_diff,
    )


def _pick_relative_risk(
    buckets: Dict[str, WeatherBucket],
    reference_key: str,
    compare_keys: tuple
) -> Optional[RelativeRisk]:
    """Compare the first sufficiently large exposure bucket against the reference."""
    reference = buckets[reference_key]
    if reference.n_days < MIN_DAYS_PER_BUCKET:
        return None
    for key in compare_keys:
        if buckets[key].n_days >= MIN_DAYS_PER_BUCKET:
            return compute_relative_risk(reference, buckets[key])
    return None


def _small_bucket_notes(buckets: List[WeatherBucket]) -> List[str]:
    return [
        f"{b.label}: nur {b.n_days} Tage (< {MIN_DAYS_PER_BUCKET}), eingeschränkte Aussagekraft."
        for b in buckets
        if 0 < b.n_days < MIN_DAYS_PER_BUCKET
    ]


def _has_medication_confounder(buckets: List[WeatherBucket]) -> bool:
    qualified = [b for b in buckets if b.n_days >= MIN_DAYS_PER_BUCKET]
    if len(qualified) < 2:
        return False
    if not any(b.n_days >= MIN_DAYS_CONFOUNDING_HINT for b in buckets):
        return False
    rates = [b.acute_med_rate for b in qualified]
    return round2(max(rates) - min(rates)) > ACUTE_MED_SPREAD_THRESHOLD


# ─── Coverage ───────────────────────────────────────────────────────────

def compute_coverage(
    features: Iterable[WeatherDayFeature],
    coverage_counts: Optional[WeatherCoverageCounts] = None
) -> WeatherCoverage:
    """Documentation coverage over documented days only."""
    documented = [d for d in features if _is_documented(d)]
    days_documented = len(documented)
    days_with_weather = sum(1 for d in documented if _as_number(d.pressure_mb) is not None)
    days_with_delta = sum(1 for d in documented if _as_number(d.pressure_change_24h) is not None)

    if coverage_counts is None:
        coverage_counts = WeatherCoverageCounts()
        for day in documented:
            if day.weather_coverage == "entry":
                coverage_counts.days_with_entry_weather += 1
            elif day.weather_coverage == "snapshot":
                coverage_counts.days_with_snapshot_weather += 1
            else:
                coverage_counts.days_with_no_weather += 1

    return WeatherCoverage(
        days_documented=days_documented,
        days_with_weather=days_with_weather,
        days_with_delta_24h=days_with_delta,
        ratio_weather=round2(days_with_weather / days_documented) if days_documented else 0.0,
        ratio_delta_24h=round2(days_with_delta / days_documented) if days_documented else 0.0,
        days_with_entry_weather=coverage_counts.days_with_entry_weather,
        days_with_snapshot_weather=coverage_counts.days_with_snapshot_weather,
        days_with_no_weather=coverage_counts.days_with_no_weather,
    )


# ─── Axes ───────────────────────────────────────────────────────────────

def analyze_pressure_delta(
    features: List[WeatherDayFeature],
    coverage: WeatherCoverage
) -> WeatherAxisResult:
    """Primary axis: 24h pressure change."""
    paired = eligible_days(features, WeatherAxis.DELTA_24H)
    confidence = determine_confidence(len(paired))

    if confidence == WeatherConfidence.INSUFFICIENT:
        if not paired:
            note = "Keine Δ24h-Daten vorhanden."
        else:
            note = (
                f"Nur {len(paired)} Tage mit Δ24h-Daten. "
                f"Mindestens {MIN_DAYS_FOR_STATEMENT} benötigt."
            )
        return WeatherAxisResult(
            enabled=False,
            confidence=confidence.value,
            n_days=len(paired),
            notes=[note],
        )

    groups = bucketize(paired, WeatherAxis.DELTA_24H)
    by_key = {key: build_bucket(key, groups[key]) for key in PRESSURE_DELTA_BUCKETS}
    buckets = [by_key[key] for key in PRESSURE_DELTA_BUCKETS]

    notes = _small_bucket_notes(buckets)
    relative_risk = _pick_relative_risk(by_key, STABLE_OR_RISE, (STRONG_DROP, MODERATE_DROP))

    if coverage.ratio_delta_24h < LOW_DELTA_COVERAGE_RATIO:
        notes.append(
            "Δ24h derzeit nur bei einem Teil der Tage verfügbar. "
            "Aussagekraft kann eingeschränkt sein."
        )
    if _has_medication_confounder(buckets):
        notes.append(
            "Akutmedikation unterscheidet sich zwischen Gruppen; "
            "das kann die beobachtete Schmerzintensität beeinflussen."
        )

    return WeatherAxisResult(
        enabled=True,
        confidence=confidence.value,
        n_days=len(paired),
        buckets=buckets,
        relative_risk=relative_risk,
        notes=notes,
    )


def analyze_absolute_pressure(features: List[WeatherDayFeature]) -> Optional[WeatherAxisResult]:
    """Secondary axis: absolute pressure. Only reported with >= 60 eligible days."""
    paired = eligible_days(features, WeatherAxis.ABSOLUTE)
    if len(paired) < MIN_DAYS_ABSOLUTE_PRESSURE:
        return None

    groups = bucketize(paired, WeatherAxis.ABSOLUTE)
    by_key = {key: build_bucket(key, groups[key]) for key in ABSOLUTE_PRESSURE_BUCKETS}
    buckets = [by_key[key] for key in ABSOLUTE_PRESSURE_BUCKETS]

    return WeatherAxisResult(
        enabled=True,
        confidence=determine_confidence(len(paired)).value,
        n_days=len(paired),
        buckets=buckets,
        relative_risk=_pick_relative_risk(by_key, NORMAL_PRESSURE, (LOW_PRESSURE, HIGH_PRESSURE)),
        notes=_small_bucket_notes(buckets),
    )


def compute_weather_association(
    features: Iterable[WeatherDayFeature],
    coverage_counts: Optional[WeatherCoverageCounts] = None
) -> WeatherAssociationResult:
    """
    Compute the weather ↔ headache association for a list of day features.

    Args:
        features: One WeatherDayFeature per calendar day, any order.
            Duplicate dates are not merged.
        coverage_counts: Weather provenance counts from the day-feature
            builder. Derived from weather_coverage when omitted.

    Returns:
        WeatherAssociationResult. Never raises for any input; insufficient
        data shows up as confidence "insufficient", enabled=False and
        absolute_pressure=None.
    """
    features = list(features or [])
    documented = [d for d in features if _is_documented(d)]

    coverage = compute_coverage(documented, coverage_counts)
    pressure_delta_24h = analyze_pressure_delta(documented, coverage)
    absolute_pressure = analyze_absolute_pressure(documented)

    logger.debug(
        "Weather association computed",
        extra={
            "extra_fields": {
                "days_total": len(features),
                "days_documented": coverage.days_documented,
                "delta_confidence": pressure_delta_24h.confidence,
                "absolute_pressure": absolute_pressure is not None,
            }
        }
    )

    return WeatherAssociationResult(
        pressure_delta_24h=pressure_delta_24h,
        absolute_pressure=absolute_pressure,
        coverage=coverage,
        disclaimer=WEATHER_DISCLAIMER,
    )
