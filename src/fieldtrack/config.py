"""FieldTrack telemetry service configuration."""

import os
from functools import lru_cache
from typing import Annotated, Any, Literal

from dotenv import load_dotenv
from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_env_file() -> str:
    """
    Determine the .env file to use.
    You can override this by setting the ENV_FILE environment variable.
    Otherwise, it will choose one based on the ENVIRONMENT value.
    """
    env_file = {
        "production": ".env",
        "development": ".env.dev",
    }
    selected = os.getenv(
        "ENV_FILE", env_file.get(os.getenv("ENVIRONMENT", "development"), ".env.dev")
    )
    load_dotenv(selected, override=True)
    return selected


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """Server config settings."""

    model_config = SettingsConfigDict(
        env_file=get_env_file(),
        env_file_encoding="utf-8",
        case_sensitive=True,  # Ensures exact variable name matching
        env_ignore_empty=True,
        extra="ignore",
    )
    ENVIRONMENT: Literal["development", "production"] = "development"
    PROJECT_NAME: str = "FieldTrack Telemetry API"

    # API settings
    DOMAIN: str = "0.0.0.0"
    DEBUG_MODE: bool = False
    MAX_REPORT_RANGE_DAYS: int = 31
    FASTAPI_CORS_ORIGINS: Annotated[list[AnyUrl] | str, BeforeValidator(parse_cors)] = (
        []
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.FASTAPI_CORS_ORIGINS]

    # RabbitMQ settings
    RABBITMQ_HOST: str = os.getenv("RABBITMQ_HOST", "localhost")
    RABBITMQ_PORT: int = int(os.getenv("RABBITMQ_PORT", "5672"))
    RABBITMQ_USER: str = os.getenv("RABBITMQ_USER", "guest")
    RABBITMQ_PASSWORD: str = os.getenv("RABBITMQ_PASSWORD", "guest")
    TELEMETRY_QUEUE: str = "telemetry_queue"

    # Redis settings
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))

    # Database settings
    POSTGRES_USER: str = os.getenv("POSTGRES_USER", "default_user")
    POSTGRES_PASSWORD: str = os.getenv("POSTGRES_PASSWORD", "default_password")
    POSTGRES_HOST: str = os.getenv("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = int(os.getenv("POSTGRES_PORT", "5432"))
    POSTGRES_DB: str = os.getenv("POSTGRES_DB", "default_db")

    # Alert dispatcher settings
    ALERTING_HOST: str = os.getenv("ALERTING_HOST", "localhost")
    ALERTING_PORT: int = int(os.getenv("ALERTING_PORT", "8001"))

    # Reporting periods are local calendar days in this timezone
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Tehran")

    # Segmentation settings
    MOVING_SPEED_THRESHOLD_KMH: float = 2.0
    IGNORED_STOPPAGE_SECONDS: float = 60.0
    FIRST_MOVEMENT_MIN_POINTS: int = 1

    # Aggregation settings
    EFFICIENCY_POLICY: Literal[
        "work_vs_stoppage_on", "work_vs_elapsed", "expected_work_time"
    ] = "work_vs_stoppage_on"
    EXPECTED_DAILY_WORK_HOURS: float = 8.0
    ATTRIBUTE_IGNORED_STOPPAGE_DISTANCE: bool = False

    # Alerting thresholds
    INACTIVITY_ALERT_ENABLED: bool = True
    INACTIVITY_THRESHOLD_DAYS: float = 1.0
    STOPPAGE_ALERT_ENABLED: bool = True
    STOPPAGE_THRESHOLD_HOURS: float = 3.0

    # Scheduler settings
    REPORT_FINALIZE_TIME: str = "00:15"
    LIVE_EVALUATION_INTERVAL_MINUTES: int = 10
    FINALIZE_GRACE_SECONDS: int = 300


# Global settings instance with caching.
@lru_cache()
def get_settings() -> Settings:
    settings = Settings()

    return settings
