"""Environment-driven settings for the onceview API process.

Loaded once at import time; every knob maps to an upper-case environment
variable of the same name (see `.env.example`).
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    service_name: str = "onceview-api"
    log_level: str = "INFO"
    database_dsn: str
    api_key: str
    redis_url: str = "redis://redis:6379/0"
    kafka_bootstrap_servers: str = "kafka:9092"
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    otel_enabled: bool = True
    outbox_enabled: bool = True
    rate_limit_per_minute: int = Field(default=30, ge=1)

    # Token lifetime in days, applied when the owner does not choose one.
    token_default_days_valid: int = Field(default=3, ge=1)
    token_max_days_valid: int = Field(default=30, ge=1)
    identifier_max_attempts: int = Field(default=5, ge=1)
    response_message_max_length: int = Field(default=500, ge=1)

    @model_validator(mode="after")
    def _default_within_max(self) -> "CommonSettings":
        if self.token_default_days_valid > self.token_max_days_valid:
            raise ValueError("TOKEN_DEFAULT_DAYS_VALID cannot exceed TOKEN_MAX_DAYS_VALID")
        return self


settings = CommonSettings()
