"""Application configuration."""

import json
from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default visiting hours (9 AM - 5 PM with 1-2 PM lunch break, half day Saturday)
_MORNING = {"start": "09:00", "end": "13:00"}
_AFTERNOON = {"start": "14:00", "end": "17:00"}

DEFAULT_VISITING_HOURS: dict[str, Any] = {
    "monday": {"is_available": True, "slots": [_MORNING, _AFTERNOON]},
    "tuesday": {"is_available": True, "slots": [_MORNING, _AFTERNOON]},
    "wednesday": {"is_available": True, "slots": [_MORNING, _AFTERNOON]},
    "thursday": {"is_available": True, "slots": [_MORNING, _AFTERNOON]},
    "friday": {"is_available": True, "slots": [_MORNING, _AFTERNOON]},
    "saturday": {"is_available": True, "slots": [_MORNING]},
    "sunday": {"is_available": False, "slots": []},
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="CareBook API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Redis
    redis_host: str = Field(..., alias="REDIS_HOST")
    redis_port: int = Field(..., alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Scheduling
    slot_duration_minutes: int = Field(default=15, alias="SLOT_DURATION_MINUTES")
    clinic_timezone: str = Field(
        default="UTC",
        alias="CLINIC_TIMEZONE",
        description="IANA timezone used to decide which slots are already in the past",
    )
    schedule_cache_ttl: int = Field(default=300, alias="SCHEDULE_CACHE_TTL")
    default_visiting_hours: dict[str, Any] = Field(
        default_factory=lambda: json.loads(json.dumps(DEFAULT_VISITING_HOURS)),
        alias="DEFAULT_VISITING_HOURS",
        description="Weekly template used when a doctor has no schedule of their own",
    )

    @field_validator("default_visiting_hours", mode="before")
    @classmethod
    def parse_visiting_hours(cls, v: Any) -> Any:
        """Accept the template as a raw JSON string."""
        if isinstance(v, str):
            return json.loads(v)
        return v

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
