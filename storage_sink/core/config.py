"""Sink configuration (settings and environment).

Single source of truth for all configuration. Uses pydantic-settings
with .env support. Backend-specific fields (e.g. S3_BUCKET) are
validated at load time.
"""

from functools import lru_cache

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_STORAGE_BACKENDS = ("memory", "local", "s3")

# S3 rejects multipart parts below 5MB (except the last one).
MIN_S3_PART_SIZE = 5 * 1024 * 1024


class Settings(BaseSettings):
    """Sink settings loaded from environment and .env.

    All settings are optional with defaults; validate_storage enforces the
    fields each storage backend needs.
    """

    # App
    app_name: str = "storage-sink"
    app_version: str = "1.0.0"
    debug: bool = False

    # Storage backend: "memory" (process-local), "local" (filesystem) or "s3"
    storage_backend: str = "memory"
    storage_root: str = "/var/storage-sink"
    s3_bucket: str | None = None
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_part_size: int = 8 * 1024 * 1024  # 8MB

    # Sink
    sink_root_path: str = ""
    sink_write_timeout_ms: int = 60_000

    # OpenTelemetry
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"
    telemetry_otlp_endpoint: str | None = None
    telemetry_sample_rate: float = 1.0
    telemetry_environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_storage(self) -> "Settings":
        """Validate storage backend and sink tuning values."""
        backend = self.storage_backend.lower()
        if backend not in SUPPORTED_STORAGE_BACKENDS:
            raise ValueError(
                f"Invalid storage_backend '{self.storage_backend}'. "
                f"Must be one of: {', '.join(repr(b) for b in SUPPORTED_STORAGE_BACKENDS)}"
            )
        if backend == "s3" and not self.s3_bucket:
            raise ValueError(
                "s3_bucket is required when storage_backend is 's3'. "
                "Set S3_BUCKET environment variable or update .env file."
            )
        if backend == "local" and not self.storage_root:
            raise ValueError("storage_root is required when storage_backend is 'local'.")
        if self.s3_part_size < MIN_S3_PART_SIZE:
            raise ValueError(
                f"s3_part_size must be at least {MIN_S3_PART_SIZE} bytes, got {self.s3_part_size}"
            )
        if self.sink_write_timeout_ms <= 0:
            raise ValueError(
                f"sink_write_timeout_ms must be positive, got {self.sink_write_timeout_ms}"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached sink settings (single instance per process).

    Validation runs on first call, not at import time. In tests, call
    get_settings.cache_clear() before overriding env vars so the next
    get_settings() uses the new values.

    Returns:
        Loaded and validated Settings instance.
    """
    return Settings()
