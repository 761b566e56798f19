"""
Sales Analytics Service
Configuration

Every section is a pydantic-settings class with its own environment prefix;
``Settings`` aggregates them and also reads ``.env``.
"""

from datetime import time
from functools import lru_cache
from typing import Optional
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Sales database (PostgreSQL via asyncpg)"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    db: str = Field(default="sales_analytics", alias="database")
    user: str = Field(default="sales")
    password: SecretStr = Field(default="secure_password")
    echo: bool = Field(default=False, description="Log every SQL statement")
    url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Complete SQLAlchemy async URL, takes precedence over the parts above",
    )

    @property
    def async_url(self) -> str:
        if self.url:
            return self.url
        secret = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{secret}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Report cache backend"""

    model_config = SettingsConfigDict(env_prefix="REDIS_", populate_by_name=True)

    host: str = Field(default="localhost")
    port: int = Field(default=6379)
    db: int = Field(default=0)
    password: Optional[SecretStr] = Field(default=None)
    max_connections: int = Field(default=20, description="Connection pool ceiling")
    socket_timeout: int = Field(default=5, description="Seconds before a Redis call gives up")
    url: Optional[str] = Field(default=None, alias="REDIS_URL")

    def get_url(self) -> str:
        """REDIS_URL when set, else assembled from the parts"""
        if self.url:
            return self.url
        auth = f":{self.password.get_secret_value()}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class IngestionSettings(BaseSettings):
    """CSV ingestion and the daily refresh timer"""

    model_config = SettingsConfigDict(env_prefix="INGEST_")

    batch_size: int = Field(default=2000, gt=0, description="Pending orders + items per flush")
    chunk_size: int = Field(default=5000, gt=0, description="Rows read from the file per chunk")
    encoding: str = Field(default="utf-8", description="Source file encoding")
    delimiter: str = Field(default=",", description="Field delimiter")
    busy_policy: str = Field(default="wait", description="wait or fail when a run is in flight")

    daily_refresh_path: Optional[str] = Field(default=None, description="File loaded by the daily timer")
    daily_refresh_time: time = Field(default=time(2, 0), description="Time of day (UTC) for the daily load")

    @field_validator("busy_policy")
    @classmethod
    def validate_busy_policy(cls, v: str) -> str:
        policy = v.strip().lower()
        if policy not in ("wait", "fail"):
            raise ValueError(f"busy_policy must be 'wait' or 'fail', got {v!r}")
        return policy


class CacheSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CACHE_")

    revenue_ttl_seconds: int = Field(default=1800, gt=0, description="TTL for cached revenue reports")


class MonitoringSettings(BaseSettings):
    """Log output"""

    model_config = SettingsConfigDict(env_prefix="", populate_by_name=True)

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="json or text")


class Settings(BaseSettings):
    """
    Application settings.

    Sections read their own prefixed variables; the top-level fields are
    the app identity and the API bind address.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = Field(default="sales-analytics", alias="APP_NAME")
    app_env: str = Field(default="development", alias="APP_ENV")
    version: str = Field(default="1.0.0")

    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        env = v.lower()
        if env not in ("development", "testing", "staging", "production"):
            raise ValueError(f"Unknown APP_ENV {v!r}")
        return env


@lru_cache()
def get_settings() -> Settings:
    """Settings loaded once per process."""
    return Settings()
