"""
Configuration management using Pydantic Settings.

Every tunable constant of the routing core lives here and can be
overridden through SWITCHYARD_* environment variables or a .env file.
Components take an optional Settings at construction time and fall back
to get_settings().
"""
import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Routing core settings with validation and environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SWITCHYARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    environment: str = Field(default="development", description="Environment: development, staging, production")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: json or text")

    # Selection
    default_provider: str = Field(default="gpt-4", description="Provider used when selection finds no candidate")
    latency_normalization_ms: float = Field(default=10000.0, gt=0, description="Latency at which performance score reaches zero")
    cost_epsilon: float = Field(default=0.001, gt=0, description="Additive guard in the cost-efficiency denominator")

    # Execution
    max_execution_attempts: int = Field(default=2, ge=1, le=5, description="Hard ceiling of provider invocations per request")

    # Adaptive rules
    dynamic_rule_ttl_seconds: int = Field(default=3600, ge=1, description="Age after which dynamic rules are pruned")
    bottleneck_latency_ms: float = Field(default=5000.0, gt=0, description="Average latency above which a provider is a bottleneck")
    bottleneck_success_rate: float = Field(default=0.9, ge=0.0, le=1.0, description="Success rate below which a provider is a bottleneck")
    bottleneck_cost_per_token: float = Field(default=0.01, gt=0, description="Cost per token above which a provider is a bottleneck")
    slow_provider_latency_ms: float = Field(default=3000.0, gt=0, description="Average latency that triggers caching advice")
    expensive_cost_per_token: float = Field(default=0.005, gt=0, description="Cost per token that triggers cost advice")

    # Parallel scheduling
    high_cpu_percent: float = Field(default=80.0, ge=0.0, le=100.0, description="CPU utilization above which parallelism is halved")
    low_cpu_percent: float = Field(default=30.0, ge=0.0, le=100.0, description="CPU utilization below which parallelism is left as is")
    complexity_halving_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Request complexity above which parallelism is halved")
    max_batch_size: int = Field(default=10, ge=1, description="Upper bound of a processing group")
    default_item_estimate_ms: float = Field(default=1000.0, gt=0, description="Estimated duration of one request")

    # Provider transport
    provider_timeout_seconds: float = Field(default=120.0, gt=0, description="HTTP timeout for provider calls")
    provider_max_retries: int = Field(default=3, ge=1, description="Transport-level attempts per provider call")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of allowed values."""
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        allowed = ["json", "text"]
        if v not in allowed:
            raise ValueError(f"Log format must be one of {allowed}")
        return v

    @field_validator("default_provider")
    @classmethod
    def validate_default_provider(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Default provider must not be empty")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def get_log_level(self) -> int:
        """Get logging level as integer."""
        return getattr(logging, self.log_level)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Routing core settings
    """
    return Settings()
