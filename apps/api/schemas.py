from pydantic import BaseModel, Field
from typing import Optional, List, Literal, Union


class WeatherDayFeatureIn(BaseModel):
    """One calendar day of diary + weather data"""
    date: str  # YYYY-MM-DD
    documented: bool
    pain_max: float = 0.0
    had_headache: bool = False
    had_acute_med: bool = False
    pressure_mb: Optional[float] = None
    pressure_change_24h: Optional[float] = None  # None = no prior-day reading
    temperature_c: Optional[float] = None
    humidity: Optional[float] = None
    weather_coverage: Literal["entry", "snapshot", "none"] = "none"


class WeatherCoverageCountsIn(BaseModel):
    days_with_entry_weather: int = Field(default=0, ge=0)
    days_with_snapshot_weather: int = Field(default=0, ge=0)
    days_with_no_weather: int = Field(default=0, ge=0)


class WeatherAssociationRequest(BaseModel):
    """Pre-aggregated day features for the association analysis"""
    features: List[WeatherDayFeatureIn] = Field(default_factory=list)
    coverage_counts: Optional[WeatherCoverageCountsIn] = None


class DiaryDayIn(BaseModel):
    """Per-day diary aggregate (MAX pain, OR headache/medication)"""
    date_iso: str
    documented: bool
    headache: bool = False
    pain_max: Optional[float] = None
    acute_med_used: Optional[bool] = None


class DiaryEntryIn(BaseModel):
    selected_date: Optional[str] = None
    selected_time: Optional[str] = None
    occurred_at: Optional[str] = None
    timestamp_created: Optional[str] = None
    weather_id: Optional[int] = None
    entry_kind: Optional[str] = None
    pain_level: Optional[Union[float, str]] = None


class WeatherLogIn(BaseModel):
    id: int
    snapshot_date: Optional[str] = None
    requested_at: Optional[str] = None
    pressure_mb: Optional[float] = None
    pressure_change_24h: Optional[float] = None
    temperature_c: Optional[float] = None
    humidity: Optional[float] = None


class DiaryWeatherAssociationRequest(BaseModel):
    """Raw diary rows; day features are built server-side"""
    days: List[DiaryDayIn] = Field(default_factory=list)
    entries: List[DiaryEntryIn] = Field(default_factory=list)
    weather_logs: List[WeatherLogIn] = Field(default_factory=list)
    timezone: Optional[str] = None  # IANA zone, defaults to WEATHER_DEFAULT_TIMEZONE
    prefer_pain_as_target: bool = True
