"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Pydantic Settings (v2) can populate values from environment variables.
    However, static type checkers often treat required fields as required
    constructor arguments, which is not how BaseSettings is intended to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    See _build_llm_settings() for rationale about the type ignore.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_retry_settings() -> "RetrySettings":
    return RetrySettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """LLM provider configuration.

    Validation of provider-specific requirements happens in the factory.
    """

    provider: str = Field(
        "openai",
        description="LLM provider name (currently only openai)",
    )
    model: str = Field(
        "gpt-4o-mini",
        description="Vision-capable model name (e.g., gpt-4o, gpt-4o-mini)",
    )
    api_key: str | None = Field(
        None,
        description="API key for the provider",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint (OpenAI-compatible gateways)",
    )
    timeout_seconds: float = Field(
        45.0,
        description="Request timeout in seconds for a single attempt",
        gt=0,
    )
    treatment_temperature: float = Field(
        0.3,
        description="Sampling temperature for treatment suggestions",
        ge=0,
        le=2,
    )
    image_analysis_temperature: float = Field(
        0.1,
        description="Sampling temperature for image auto-fill",
        ge=0,
        le=2,
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )
    max_image_size_mb: int = Field(
        8,
        description="Maximum decoded size of a wound image in megabytes",
        ge=1,
    )
    max_patient_info_chars: int = Field(
        4000,
        description="Maximum patient context length forwarded to the model",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-endpoint sliding-window quotas and the backing store."""

    enabled: bool = Field(
        True,
        description="Enable per-caller rate limiting on AI endpoints",
    )
    backend: str = Field(
        "memory",
        description="Rate limit store backend: memory or redis",
    )
    redis_url: str = Field(
        "redis://localhost:6379/0",
        description="Redis URL used when backend=redis",
    )
    treatment_max_requests: int = Field(
        100,
        description="Treatment suggestions allowed per window (per caller)",
        ge=1,
    )
    treatment_window_ms: int = Field(
        60_000,
        description="Treatment suggestion window size in milliseconds",
        ge=1,
    )
    image_analysis_max_requests: int = Field(
        50,
        description="Image analyses allowed per window (per caller)",
        ge=1,
    )
    image_analysis_window_ms: int = Field(
        60_000,
        description="Image analysis window size in milliseconds",
        ge=1,
    )
    shared_bucket: bool = Field(
        False,
        description="Count both endpoints in one record per caller instead of one per endpoint",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    transaction_max_attempts: int = Field(
        5,
        description="Attempts for a store transaction that loses an optimistic race",
        ge=1,
    )
    janitor_enabled: bool = Field(
        True,
        description="Run the periodic sweep of stale rate limit records",
    )
    janitor_interval_seconds: float = Field(
        3600.0,
        description="Seconds between janitor sweeps",
        gt=0,
    )
    stale_after_ms: int = Field(
        24 * 60 * 60 * 1000,
        description="Records untouched for longer than this are deleted by the janitor",
        ge=1,
    )
    cleanup_batch_size: int = Field(
        100,
        description="Maximum records deleted per janitor sweep",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RetrySettings(BaseSettings):
    """Backoff policy for upstream AI calls."""

    max_retries: int = Field(
        3,
        description="Retries after the first attempt (total attempts = max_retries + 1)",
        ge=0,
    )
    base_delay_ms: int = Field(
        1000,
        description="Delay before the first retry in milliseconds",
        ge=1,
    )
    max_delay_ms: int = Field(
        10_000,
        description="Upper bound for the exponential delay in milliseconds",
        ge=1,
    )
    jitter_ratio: float = Field(
        0.3,
        description="Jitter ceiling as a fraction of the computed delay",
        ge=0,
        le=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RETRY_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log output: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(10 * 1024 * 1024, description="Rotate file logs at this size (0 disables)")
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation id header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    retry: RetrySettings = Field(default_factory=_build_retry_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
