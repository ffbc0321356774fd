# Statify Engine - Core Configuration
# Typed configuration for the computation engine and its worker layer

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class IsolationMode(str, Enum):
    """How a single analysis request is isolated from the caller."""
    PROCESS = "process"
    THREAD = "thread"


class ComputeConfig(BaseSettings):
    """Worker execution settings."""

    model_config = SettingsConfigDict(env_prefix="COMPUTE_")

    # Caller-side bound on a single computation
    timeout_seconds: float = Field(default=60.0, gt=0, le=3600, description="Per-request timeout")
    isolation: IsolationMode = Field(default=IsolationMode.PROCESS)
    max_workers: int = Field(default=4, ge=1, le=32, description="Concurrent worker units")
    start_method: str = Field(default="spawn", description="multiprocessing start method")

    @field_validator("start_method")
    @classmethod
    def validate_start_method(cls, v: str) -> str:
        allowed = {"spawn", "fork", "forkserver"}
        if v not in allowed:
            raise ValueError(f"start_method must be one of {sorted(allowed)}")
        return v


class StatsConfig(BaseSettings):
    """Numeric conventions shared by every procedure."""

    model_config = SettingsConfigDict(env_prefix="STATS_")

    # Tolerances
    epsilon: float = Field(default=1e-9, gt=0, description="Rank/frequency comparison tolerance")
    zero_threshold: float = Field(default=1e-15, gt=0, description="Denominators below this are undefined")

    # Inference
    confidence_level: float = Field(default=0.95, gt=0.5, lt=1.0)
    exact_sign_test_max_n: int = Field(default=25, ge=0, le=1000)

    # Unit root test
    unit_root_min_observations: int = Field(default=20, ge=5)
    lag_min: int = Field(default=1, ge=0)
    lag_max: int = Field(default=10, ge=1, le=50)
    unit_root_presample: int = Field(default=5, ge=1, le=50)

    # Missing value definitions
    max_discrete_missing: int = Field(default=3, ge=1, le=10)

    @model_validator(mode="after")
    def check_lag_bounds(self) -> "StatsConfig":
        if self.lag_min > self.lag_max:
            raise ValueError("lag_min must not exceed lag_max")
        return self


class Settings(BaseSettings):
    """Main engine settings - Singleton pattern with caching."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application metadata
    app_name: str = Field(default="Statify Engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(default="text")  # json or text

    # Nested configurations
    compute: ComputeConfig = Field(default_factory=ComputeConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance (Singleton pattern).

    Settings are read once per process; worker processes rebuild them
    from the same environment.
    """
    return Settings()


# Export for easy access
settings = get_settings()
