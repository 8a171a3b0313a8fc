"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)
    EXPOSE_API_DOCS: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    # e.g., "https://app.example.org,https://www.example.org"
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Weather association analysis
    # Upper bound on days per request (batch analysis over a bounded history window).
    WEATHER_ANALYSIS_MAX_DAYS: int = Field(default=730, ge=1)
    # Upper bound on diary entries and weather logs per requested day.
    WEATHER_ANALYSIS_MAX_ROWS_PER_DAY: int = Field(default=50, ge=1)
    # IANA zone used by the diary day-feature builder when the request names none.
    WEATHER_DEFAULT_TIMEZONE: str = Field(default="Europe/Berlin")


# Global settings instance
settings = Settings()
