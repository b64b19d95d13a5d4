from __future__ import annotations

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from breakwater.circuit_breaker import CircuitBreakerConfig
from breakwater.circuit_breaker.breaker import ErrorPredicate
from breakwater.logging import get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven circuit breaker settings (``BREAKER_*``)."""

    model_config = prefixed_settings_config("BREAKER_")

    window_size_seconds: float = 60.0
    failure_threshold_percentage: float = 5.0
    failure_threshold_count: int = 0
    timeout_seconds: float | None = None
    reset_timeout_seconds: float | None = None
    success_threshold: int = 1
    retry_attempts: int = 1
    renew_cancellation: bool = False
    cancel_on_open: bool = False
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().upper()
            get_log_level_value(normalized)
            return normalized
        return value

    @field_validator("timeout_seconds", "reset_timeout_seconds", mode="before")
    @classmethod
    def _blank_duration_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        if self.window_size_seconds <= 0:
            raise ValueError("window_size_seconds must be > 0")
        if not 0 <= self.failure_threshold_percentage <= 100:
            raise ValueError("failure_threshold_percentage must be within 0..100")
        if self.failure_threshold_count < 0:
            raise ValueError("failure_threshold_count must be >= 0")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0 when provided")
        if self.reset_timeout_seconds is not None and self.reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must be >= 0 when provided")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        return self

    def to_config(self, *, is_error: ErrorPredicate | None = None) -> CircuitBreakerConfig:
        """Build the immutable breaker configuration from these settings."""
        return CircuitBreakerConfig(
            window_size=self.window_size_seconds,
            failure_threshold_percentage=self.failure_threshold_percentage,
            failure_threshold_count=self.failure_threshold_count,
            timeout=self.timeout_seconds,
            reset_timeout=self.reset_timeout_seconds,
            success_threshold=self.success_threshold,
            retry_attempts=self.retry_attempts,
            is_error=is_error,
            renew_cancellation=self.renew_cancellation,
            cancel_on_open=self.cancel_on_open,
        )
