from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "webmentions-api"
    environment: str = "dev"
    site_url: str = "http://localhost:2368/"
    api_key_header: str = "X-API-Key"
    admin_api_key: str | None = None
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    fetch_timeout_seconds: float = 10.0
    max_redirects: int = 10
    user_agent: str = "webmentions-receiver/1.0"
    resource_map_json: str | None = None
    otel_enabled: bool = True
    otel_service_name: str = "webmentions-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="WM_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
