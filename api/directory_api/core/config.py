from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "app-directory-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    frontend_url: str = "http://localhost:3000"
    github_api_base_url: str = "https://api.github.com"
    github_oauth_base_url: str = "https://github.com"
    github_client_id: str | None = None
    github_client_secret: str | None = None
    github_personal_access_token: str | None = None
    github_timeout_seconds: float = 10.0
    github_contributors_page_size: int = 100
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    session_ttl_hours: int = 24 * 30
    email_address: str = "noreply@example.com"
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_starttls: bool = True
    review_lock_timeout_seconds: int = 300
    refresh_slices_per_day: int = 24
    refresh_api_key: str | None = None
    otel_enabled: bool = True
    otel_service_name: str = "app-directory-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="DIRECTORY_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
