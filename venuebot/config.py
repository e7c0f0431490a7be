"""
Centralized Configuration System
Environment-aware settings for the messaging pipeline and its workers.
"""
from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal, Optional


def _clamp(value, low, high=None):
    if value < low:
        return low
    if high is not None and value > high:
        return high
    return value


class OutboxSettings(BaseModel):
    """
    Outbound (Telegram outbox) worker tuning.

    Values are clamped on load so a bad environment can never produce a
    zero-delay poll loop or unbounded concurrency.
    """
    poll_interval_seconds: float = 0.5
    batch_size: int = 25
    visibility_timeout_seconds: float = 30.0
    max_attempts: int = 10
    max_concurrency: int = 4
    per_chat_min_interval_seconds: float = 1.0
    min_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 60.0

    @field_validator("poll_interval_seconds")
    @classmethod
    def _poll_floor(cls, v: float) -> float:
        return _clamp(v, 0.1)

    @field_validator("batch_size")
    @classmethod
    def _batch_bounds(cls, v: int) -> int:
        return _clamp(v, 1, 200)

    @field_validator("visibility_timeout_seconds")
    @classmethod
    def _lease_bounds(cls, v: float) -> float:
        return _clamp(v, 5.0, 300.0)

    @field_validator("max_attempts")
    @classmethod
    def _attempt_bounds(cls, v: int) -> int:
        return _clamp(v, 1, 100)

    @field_validator("max_concurrency")
    @classmethod
    def _concurrency_bounds(cls, v: int) -> int:
        return _clamp(v, 1, 20)

    @field_validator("per_chat_min_interval_seconds")
    @classmethod
    def _interval_floor(cls, v: float) -> float:
        return _clamp(v, 0.2)

    @field_validator("min_backoff_seconds")
    @classmethod
    def _min_backoff_floor(cls, v: float) -> float:
        return _clamp(v, 1.0)

    @model_validator(mode="after")
    def _max_backoff_not_below_min(self) -> "OutboxSettings":
        if self.max_backoff_seconds < self.min_backoff_seconds:
            self.max_backoff_seconds = self.min_backoff_seconds
        return self


class InboundQueueSettings(BaseModel):
    """Inbound (webhook update) worker tuning. Clamped like OutboxSettings."""
    poll_interval_seconds: float = 0.5
    batch_size: int = 10
    visibility_timeout_seconds: float = 120.0
    max_attempts: int = 5
    max_concurrency: int = 4
    min_backoff_seconds: float = 0.5
    max_backoff_seconds: float = 60.0

    @field_validator("poll_interval_seconds")
    @classmethod
    def _poll_floor(cls, v: float) -> float:
        return _clamp(v, 0.1)

    @field_validator("batch_size")
    @classmethod
    def _batch_bounds(cls, v: int) -> int:
        return _clamp(v, 1, 200)

    @field_validator("visibility_timeout_seconds")
    @classmethod
    def _lease_bounds(cls, v: float) -> float:
        return _clamp(v, 5.0, 300.0)

    @field_validator("max_attempts")
    @classmethod
    def _attempt_bounds(cls, v: int) -> int:
        return _clamp(v, 1, 100)

    @field_validator("max_concurrency")
    @classmethod
    def _concurrency_bounds(cls, v: int) -> int:
        return _clamp(v, 1, 20)

    @field_validator("min_backoff_seconds")
    @classmethod
    def _min_backoff_floor(cls, v: float) -> float:
        return _clamp(v, 0.1)

    @model_validator(mode="after")
    def _max_backoff_not_below_min(self) -> "InboundQueueSettings":
        if self.max_backoff_seconds < self.min_backoff_seconds:
            self.max_backoff_seconds = self.min_backoff_seconds
        return self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="allow"
    )
    """
    Production-grade configuration management.
    Loads from environment variables with sensible defaults.
    Nested queue settings use a double underscore, e.g. OUTBOX__BATCH_SIZE=50.
    """

    # ============================================
    # TELEGRAM BOT
    # ============================================
    telegram_enabled: bool = True
    telegram_bot_token: Optional[str] = None
    telegram_mode: Literal["webhook", "long_polling"] = "webhook"
    telegram_webhook_path: str = "/telegram/webhook"
    telegram_webhook_secret_token: Optional[str] = None
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_request_timeout_seconds: float = 35.0
    long_polling_timeout_seconds: int = 25

    # ============================================
    # MONGODB
    # ============================================
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "venuebot"
    mongodb_max_pool_size: int = 50
    mongodb_min_pool_size: int = 5
    mongodb_server_selection_timeout_ms: int = 5000

    # ============================================
    # MESSAGING PIPELINE
    # ============================================
    inbound: InboundQueueSettings = InboundQueueSettings()
    outbox: OutboxSettings = OutboxSettings()

    # ============================================
    # LOGGING
    # ============================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    enable_structured_logging: bool = False  # Set to True for production JSON logs

    # ============================================
    # ENVIRONMENT
    # ============================================
    environment: Literal["development", "test", "staging", "production"] = "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Singleton pattern for settings.
    Uses LRU cache to ensure only one Settings instance exists.
    """
    return Settings()


# Convenience accessor for common use
settings = get_settings()
