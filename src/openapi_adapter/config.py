"""Configuration for the OpenAPI adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="openapi-adapter")

    api_base_url: str = Field(default="https://petstore3.swagger.io")
    api_prefix: str = Field(default="/api/v3")
    openapi_spec_url: Optional[str] = Field(default=None)

    cache_ttl_seconds: float = Field(default=300, gt=0)
    cache_sweep_interval_seconds: float = Field(default=60, gt=0)
    openapi_cache_seconds: float = Field(default=3600, gt=0)

    max_retries: int = Field(default=3, ge=0)
    retry_delay_seconds: float = Field(default=1.0, ge=0)
    retry_jitter: float = Field(default=0.0, ge=0, le=1)
    request_timeout_seconds: float = Field(default=30, gt=0)

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=8000)
    adapter_auth_token: Optional[str] = Field(default=None)
    adapter_max_concurrency: int = Field(default=20, ge=1)

    adapter_log_level: str = Field(default="INFO")

    def spec_location(self) -> str:
        if self.openapi_spec_url:
            return self.openapi_spec_url
        return f"{self.api_base_url.rstrip('/')}{self.api_prefix}/openapi.json"

    def operation_base_url(self) -> str:
        return self.api_base_url.rstrip("/") + self.api_prefix


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
