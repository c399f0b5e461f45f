"""Configuration schema using Pydantic."""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RateLimitConfig(BaseModel):
    """Client-side rate limiter settings."""
    requests_per_second: float = Field(default=10, gt=0)
    requests_per_minute: int = Field(default=300, gt=0)
    burst_size: float | None = Field(default=None, gt=0)  # None = 2x requests_per_second
    initial_backoff_ms: float = Field(default=1000, gt=0)
    max_backoff_ms: float = Field(default=32000, gt=0)
    backoff_multiplier: float = Field(default=2, gt=0)

    @property
    def effective_burst_size(self) -> float:
        return self.burst_size or self.requests_per_second * 2


class ApiConfig(BaseModel):
    """Backend connection settings."""
    base_url: str = "http://localhost:5000"
    timeout: float = 15.0
    max_retries: int = Field(default=3, ge=0)  # Retries after a 429
    serialize_admission: bool = False  # Exact admission counts, one request at a time
    token_path: str = "~/.bizdesk/auth_token.json"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    enabled: bool = True
    level: str = "INFO"
    file_enabled: bool = True
    file_path: str = "~/.bizdesk/logs/bizdesk.log"
    rotation: str = "10 MB"
    retention: str = "7 days"


class Config(BaseSettings):
    """Root configuration for bizdesk."""
    api: ApiConfig = Field(default_factory=ApiConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="BIZDESK_",
        env_nested_delimiter="__",
    )
