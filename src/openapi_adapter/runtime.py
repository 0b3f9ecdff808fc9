"""Owned state for one adapter instance: cache, HTTP client, catalog and its handlers."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .cache import TTLCache
from .config import Settings
from .executor import OperationExecutor
from .http_client import AttemptHook, HttpClient
from .openapi import OpenAPICatalog
from .prompts import PromptHandler
from .resources import ResourceHandler


logger = logging.getLogger(__name__)


class AdapterRuntime:
    """Constructs the shared components once and tears them down together.

    ``start()`` launches the cache sweeper; ``aclose()`` stops it and closes
    the HTTP connection pool. Usable as an async context manager.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_attempt: Optional[AttemptHook] = None,
    ) -> None:
        self.settings = settings
        self.cache: TTLCache[Any] = TTLCache(
            default_ttl=settings.cache_ttl_seconds,
            sweep_interval=settings.cache_sweep_interval_seconds,
        )
        self.http_client = HttpClient(
            max_retries=settings.max_retries,
            base_delay=settings.retry_delay_seconds,
            timeout=settings.request_timeout_seconds,
            jitter=settings.retry_jitter,
            transport=transport,
            on_attempt=on_attempt,
        )
        self.catalog = OpenAPICatalog(
            spec_location=settings.spec_location(),
            http_client=self.http_client,
            cache=self.cache,
            cache_seconds=settings.openapi_cache_seconds,
        )
        self.executor = OperationExecutor(
            base_url=settings.operation_base_url(),
            http_client=self.http_client,
            cache=self.cache,
            catalog=self.catalog,
        )
        self.resources = ResourceHandler(self.catalog)
        self.prompts = PromptHandler(self.catalog)

    async def start(self) -> None:
        self.cache.start()
        logger.info(
            "Adapter configuration api_base=%s cache_ttl=%s max_retries=%s request_timeout=%s",
            self.settings.api_base_url,
            self.settings.cache_ttl_seconds,
            self.settings.max_retries,
            self.settings.request_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self.cache.stop()
        await self.http_client.aclose()

    async def __aenter__(self) -> "AdapterRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
