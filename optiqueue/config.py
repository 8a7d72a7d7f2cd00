"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Scheduler
    max_concurrent_jobs: int = 3
    job_timeout_seconds: float = 30.0
    max_queue_size: int = 100
    cleanup_interval_seconds: float = 60.0
    default_processing_time_seconds: float = 5.0
    min_processing_time_seconds: float = 1.0
    result_ttl_seconds: float = 24 * 60 * 60
    retry_base_delay_seconds: float = 1.0
    shutdown_grace_seconds: float = 30.0

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    rate_limit_requests_per_minute: int = 100

    # Uploads
    max_upload_size_mb: float = 5.0
    max_batch_files: int = 10
    single_upload_max_retries: int = 2
    batch_upload_max_retries: int = 1
    batch_upload_priority: int = -1

    # Image optimization
    supported_formats: list[str] = ["jpeg", "png", "webp", "gif"]
    max_image_width: int = 1024
    max_image_height: int = 1024
    compression_quality: int = 80
    conversion_threshold_mb: float = 2.0
    processed_dir: str = "./processed"
    processed_file_max_age_seconds: float = 24 * 60 * 60

    # Observability
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "optiqueue"
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


class SchedulerConfig(BaseModel):
    """
    Validated configuration for a single JobScheduler instance.

    Supplied by the host process; the scheduler never reads the environment
    itself.
    """

    model_config = ConfigDict(frozen=True)

    max_concurrent_jobs: int = Field(default=3, ge=1)
    job_timeout_seconds: float = Field(default=30.0, gt=0)
    max_queue_size: int = Field(default=100, ge=1)
    cleanup_interval_seconds: float = Field(default=60.0, gt=0)
    default_processing_time_seconds: float = Field(default=5.0, ge=0)
    min_processing_time_seconds: float = Field(default=1.0, ge=0)
    result_ttl_seconds: float = Field(default=24 * 60 * 60, gt=0)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    shutdown_grace_seconds: float = Field(default=30.0, ge=0)
    history_size: int = Field(default=20, ge=1)
    history_window_seconds: float = Field(default=600.0, gt=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulerConfig":
        """Build a scheduler config from application settings."""
        return cls(
            max_concurrent_jobs=settings.max_concurrent_jobs,
            job_timeout_seconds=settings.job_timeout_seconds,
            max_queue_size=settings.max_queue_size,
            cleanup_interval_seconds=settings.cleanup_interval_seconds,
            default_processing_time_seconds=settings.default_processing_time_seconds,
            min_processing_time_seconds=settings.min_processing_time_seconds,
            result_ttl_seconds=settings.result_ttl_seconds,
            retry_base_delay_seconds=settings.retry_base_delay_seconds,
            shutdown_grace_seconds=settings.shutdown_grace_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
