"""Application configuration using Pydantic settings."""

from typing import Any

from pydantic import Field, PostgresDsn, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Studio Analytics API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = False

    # Database (record store)
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "studio_analytics"
    DATABASE_URL: PostgresDsn | str | None = Field(default=None, validate_default=True)
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_RECYCLE_SECONDS: int = 1800
    DATABASE_POOL_TIMEOUT_SECONDS: int = 30

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def assemble_db_connection(cls, v: str | None, info: Any) -> str:
        """Build database URL from components if not provided."""
        if isinstance(v, str):
            return v

        data = info.data
        return str(
            PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=data.get("POSTGRES_USER"),
                password=data.get("POSTGRES_PASSWORD"),
                host=data.get("POSTGRES_SERVER"),
                port=data.get("POSTGRES_PORT"),
                path=f"{data.get('POSTGRES_DB') or ''}",
            ),
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_URL: RedisDsn | None = Field(default=None, validate_default=True)
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 5.0
    REDIS_HEALTH_CHECK_INTERVAL_SECONDS: int = 30
    REDIS_RETRIES: int = 3

    @field_validator("REDIS_URL", mode="before")
    @classmethod
    def assemble_redis_connection(cls, v: str | None, info: Any) -> str:
        """Build Redis URL from components if not provided."""
        if isinstance(v, str):
            return v

        data = info.data
        password_part = f":{data.get('REDIS_PASSWORD')}@" if data.get("REDIS_PASSWORD") else ""
        return f"redis://{password_part}{data.get('REDIS_HOST')}:{data.get('REDIS_PORT')}/{data.get('REDIS_DB')}"

    # Stats response cache (data only changes when ingestion runs)
    STATS_CACHE_TTL_SECONDS: int = 900

    # Studio wall-clock zone that offset-bearing export dates are converted into
    STUDIO_TIMEZONE: str = "America/New_York"

    # Trend windows
    TREND_LOOKBACK_MONTHS: int = 6
    TREND_WEEKS: int = 8
    TREND_MONTHS: int = 6

    # Churn & retention
    CHURN_TRAILING_MONTHS: int = 6
    SURVIVAL_HORIZON_MONTHS: int = 24
    COMMITMENT_CLIFF_MONTHS: int = 3

    # Projection guardrails (empirical, pending business-owner review)
    GROWTH_WINDOW_MONTHS: int = 6
    NON_MRR_MULTIPLIER_CAP: float = 2.0
    PROJECTION_SANITY_RATIO: float = 3.0
    PROJECTION_FALLBACK_GROWTH: float = 1.3

    # Cohorts & conversion pool
    COHORT_WEEKS: int = 8
    POOL_WEEKS: int = 12
    LAG_WINDOW_WEEKS: int = 12

    # First-visit and returning visitor breakdowns (completed weeks shown)
    VISITOR_WEEKS: int = 4

    # Renewal / tenure alerts
    ALERT_WINDOW_DAYS: int = 7

    # Monitoring
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_TRACES_SAMPLE_RATE: float = 1.0


settings = Settings()
