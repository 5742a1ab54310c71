from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "research-shock-api"
    environment: str = "dev"
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    auth_url: str | None = None
    auth_timeout_seconds: float = 5.0
    default_list_limit: int = 50
    otel_enabled: bool = True
    otel_service_name: str = "research-shock-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="RS_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
