from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "dev"
    api_base_url: str = "http://localhost:8000"
    request_timeout_seconds: float = 10.0
    stale_time_seconds: float = 0.0
    refetch_on_window_focus: bool = True
    applications_page_size: int = 10
    otel_enabled: bool = True
    otel_service_name: str = "research-shock-client"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0

    model_config = SettingsConfigDict(env_prefix="RS_CLIENT_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
