"""
Weather Day Feature Builder

Maps diary day records, diary entries and weather logs to one
WeatherDayFeature per documented day, the input of the weather
association engine.

Rules:
- The day key of a feature is always DayCountRecord.date_iso.
- Entry day key: selected_date > local day of occurred_at > local day of
  timestamp_created (last resort). Never derived by splitting on "T".
- Target time per day: earliest pain entry (optional) > earliest timed
  entry > 12:00 local.
- Weather: entry-linked log nearest the target, else the day's snapshot
  log nearest the target, else none. Ties go to the lower id.

Pure: no DB, no I/O.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging
import re

from services.weather_association import WeatherCoverageCounts, WeatherDayFeature

logger = logging.getLogger(__name__)


DEFAULT_TIMEZONE = "Europe/Berlin"

_SELECTED_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


@dataclass
class DayCountRecord:
    """Per-day diary aggregate (MAX pain, OR headache/medication)."""
    date_iso: str
    documented: bool
    headache: bool = False
    pain_max: Optional[float] = None
    acute_med_used: Optional[bool] = None


@dataclass
class EntryForWeatherJoin:
    """Diary entry fields needed to join weather to a day."""
    selected_date: Optional[str] = None  # YYYY-MM-DD local
    selected_time: Optional[str] = None  # HH:MM or HH:MM:SS local
    occurred_at: Optional[str] = None  # ISO timestamp
    timestamp_created: Optional[str] = None  # ISO timestamp, day assignment only
    weather_id: Optional[int] = None
    entry_kind: Optional[str] = None
    pain_level: Optional[Union[str, float]] = None


@dataclass
class WeatherLogForFeature:
    id: int
    snapshot_date: Optional[str] = None
    requested_at: Optional[str] = None
    pressure_mb: Optional[float] = None
    pressure_change_24h: Optional[float] = None
    temperature_c: Optional[float] = None
    humidity: Optional[float] = None


@dataclass
class WeatherDayFeatureBuild:
    """Builder output: features plus weather provenance counts."""
    features: List[WeatherDayFeature] = field(default_factory=list)
    coverage_counts: WeatherCoverageCounts = field(default_factory=WeatherCoverageCounts)


def resolve_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """ZoneInfo for a name; raises ValueError for unknown zones."""
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e


def _parse_timestamp(iso_timestamp: Optional[str]) -> Optional[datetime]:
    """Aware datetime for an ISO timestamp. Naive timestamps are taken as UTC."""
    if not iso_timestamp or not isinstance(iso_timestamp, str):
        return None
    value = iso_timestamp.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_local_date_iso(iso_timestamp: Optional[str], tz: Union[str, ZoneInfo]) -> str:
    """
    Local calendar day (YYYY-MM-DD) of an ISO timestamp.

    Returns "" when the timestamp cannot be parsed or its local time falls
    outside the representable date range.
    """
    parsed = _parse_timestamp(iso_timestamp)
    if parsed is None:
        return ""
    zone = tz if isinstance(tz, ZoneInfo) else resolve_timezone(tz)
    try:
        return parsed.astimezone(zone).date().isoformat()
    except OverflowError:
        return ""


def parse_selected_time(time_str: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Parse a diary time string to (hour, minute).

    Accepts "8:00", "08:00", "08:00:00". "24:00" is clamped to 23:59.
    Anything else out of range or malformed gives None.
    """
    if not time_str or not isinstance(time_str, str):
        return None
    match = _SELECTED_TIME_RE.match(time_str.strip())
    if not match:
        return None

    hour = int(match.group(1))
    minute = int(match.group(2))

    if hour == 24 and minute == 0:
        hour, minute = 23, 59

    if hour > 23 or minute > 59:
        return None
    return hour, minute


def _parse_date(date_iso: Optional[str]) -> Optional[date]:
    if not date_iso:
        return None
    try:
        return date.fromisoformat(date_iso)
    except (TypeError, ValueError):
        return None


def local_time(date_iso: str, hour: int, minute: int, zone: ZoneInfo) -> Optional[datetime]:
    """Aware datetime for a local wall-clock time on a day."""
    day = _parse_date(date_iso)
    if day is None:
        return None
    return datetime.combine(day, time(hour, minute), tzinfo=zone)


def _local_noon(date_iso: str, zone: ZoneInfo) -> Optional[datetime]:
    return local_time(date_iso, 12, 0, zone)


def _resolve_entry_day_key(entry: EntryForWeatherJoin, zone: ZoneInfo) -> Optional[str]:
    if entry.selected_date:
        return entry.selected_date
    for timestamp in (entry.occurred_at, entry.timestamp_created):
        key = to_local_date_iso(timestamp, zone)
        if key:
            return key
    return None


def _entry_time(entry: EntryForWeatherJoin, zone: ZoneInfo) -> Optional[datetime]:
    """Local time of an entry; entries without a valid time sit at noon."""
    if not entry.selected_date:
        return None
    parsed = parse_selected_time(entry.selected_time)
    if parsed is None:
        return _local_noon(entry.selected_date, zone)
    return local_time(entry.selected_date, parsed[0], parsed[1], zone)


def _is_pain_entry(entry: EntryForWeatherJoin) -> bool:
    if entry.entry_kind == "pain":
        return True
    return not entry.entry_kind and entry.pain_level is not None and entry.pain_level != ""


def _earliest(entries: List[EntryForWeatherJoin], date_iso: str, zone: ZoneInfo) -> Optional[datetime]:
    times = [t for t in (_entry_time(e, zone) for e in entries) if t is not None]
    return min(times) if times else _local_noon(date_iso, zone)


def _target_time(
    day_entries: List[EntryForWeatherJoin],
    date_iso: str,
    zone: ZoneInfo,
    prefer_pain_as_target: bool
) -> Optional[datetime]:
    with_time = [
        e for e in day_entries
        if e.selected_date and parse_selected_time(e.selected_time) is not None
    ]

    if prefer_pain_as_target:
        pain_entries = [e for e in with_time if _is_pain_entry(e)]
        if pain_entries:
            return _earliest(pain_entries, date_iso, zone)

    if with_time:
        return _earliest(with_time, date_iso, zone)

    return _local_noon(date_iso, zone)


def _distance_seconds(moment: Optional[datetime], target: Optional[datetime]) -> float:
    if moment is None or target is None:
        return float("inf")
    return abs((moment - target).total_seconds())


def _pick_nearest_entry(
    entries: List[EntryForWeatherJoin],
    target: Optional[datetime],
    zone: ZoneInfo
) -> Optional[EntryForWeatherJoin]:
    """Entry nearest the target; ties go to the lower weather_id."""
    if not entries:
        return None
    return min(
        entries,
        key=lambda e: (
            _distance_seconds(_entry_time(e, zone), target),
            e.weather_id if e.weather_id is not None else float("inf"),
        ),
    )


def _pick_nearest_weather_log(
    logs: List[WeatherLogForFeature],
    target: Optional[datetime]
) -> WeatherLogForFeature:
    """Log nearest the target by requested_at; untimed candidates fall back to the lowest id."""
    timed = [wl for wl in logs if wl.requested_at is not None]
    if timed:
        return min(
            timed,
            key=lambda wl: (_distance_seconds(_parse_timestamp(wl.requested_at), target), wl.id),
        )
    return min(logs, key=lambda wl: wl.id)


def build_weather_day_features(
    days: List[DayCountRecord],
    entries: List[EntryForWeatherJoin],
    weather_logs: List[WeatherLogForFeature],
    timezone_name: Optional[str] = DEFAULT_TIMEZONE,
    prefer_pain_as_target: bool = True
) -> WeatherDayFeatureBuild:
    """
    Build one WeatherDayFeature per documented day.

    Args:
        days: Day aggregates for the report range. Undocumented days are
            skipped entirely.
        entries: Diary entries, assigned to days via the fallback chain.
        weather_logs: Candidate weather logs (entry-linked and snapshots).
        timezone_name: IANA zone for local day and time calculations.
        prefer_pain_as_target: Use the earliest pain entry as target time.

    Raises:
        ValueError: Unknown timezone.
    """
    zone = resolve_timezone(timezone_name)
    valid_days = {d.date_iso for d in days}
    weather_by_id: Dict[int, WeatherLogForFeature] = {wl.id: wl for wl in weather_logs}

    entries_by_date: Dict[str, List[EntryForWeatherJoin]] = {}
    for entry in entries:
        day_key = _resolve_entry_day_key(entry, zone)
        if not day_key or day_key not in valid_days:
            continue
        entries_by_date.setdefault(day_key, []).append(entry)

    candidates_by_date: Dict[str, List[WeatherLogForFeature]] = {}
    for wl in weather_logs:
        date_key = wl.snapshot_date or to_local_date_iso(wl.requested_at, zone)
        if not date_key:
            continue
        candidates_by_date.setdefault(date_key, []).append(wl)

    result = WeatherDayFeatureBuild()
    counts = result.coverage_counts

    for day in days:
        if day.documented is not True:
            continue

        day_entries = entries_by_date.get(day.date_iso, [])
        target = _target_time(day_entries, day.date_iso, zone, prefer_pain_as_target)

        weather_log: Optional[WeatherLogForFeature] = None
        coverage = "none"

        linked = [e for e in day_entries if e.weather_id is not None]
        best = _pick_nearest_entry(linked, target, zone)
        if best is not None and best.weather_id in weather_by_id:
            weather_log = weather_by_id[best.weather_id]
            coverage = "entry"

        if weather_log is None:
            candidates = candidates_by_date.get(day.date_iso)
            if candidates:
                weather_log = _pick_nearest_weather_log(candidates, target)
                coverage = "snapshot"

        if coverage == "entry":
            counts.days_with_entry_weather += 1
        elif coverage == "snapshot":
            counts.days_with_snapshot_weather += 1
        else:
            counts.days_with_no_weather += 1

        result.features.append(WeatherDayFeature(
            date=day.date_iso,
            documented=True,
            pain_max=day.pain_max if day.pain_max is not None else 0.0,
            had_headache=day.headache is True,
            had_acute_med=day.acute_med_used is True,
            pressure_mb=weather_log.pressure_mb if weather_log else None,
            pressure_change_24h=weather_log.pressure_change_24h if weather_log else None,
            temperature_c=weather_log.temperature_c if weather_log else None,
            humidity=weather_log.humidity if weather_log else None,
            weather_coverage=coverage,
        ))

    logger.debug(
        f"Built {len(result.features)} weather day features "
        f"(entry={counts.days_with_entry_weather}, snapshot={counts.days_with_snapshot_weather}, "
        f"none={counts.days_with_no_weather})"
    )
    return result
