from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:8000"
    api_key: str | None = None
    slices_per_day: int = 24
    request_timeout_seconds: float = 120.0
    retry_interval_seconds: float = 5.0
    max_backoff_seconds: float = 300.0
    run_on_start: bool = False
    otel_enabled: bool = True
    otel_service_name: str = "app-directory-workers"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="DIRECTORY_WORKER_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
