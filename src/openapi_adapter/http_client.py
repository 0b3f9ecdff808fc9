"""HTTP client with bounded retries and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .logging import redact_headers


logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "openapi-adapter/0.1",
}


@dataclass(frozen=True)
class AttemptRecord:
    method: str
    url: str
    attempt: int
    status: Optional[int]
    error: Optional[str]

    @property
    def outcome(self) -> str:
        if self.error is not None:
            return f"error: {self.error}"
        return f"status {self.status}"


AttemptHook = Callable[[AttemptRecord], None]


class HttpClient:
    """Executes one logical request, retrying network errors and 5xx responses.

    A request is retried while ``attempt < max_retries`` and the attempt either
    produced no response (``httpx.TransportError``, timeouts included) or a
    status in [500, 600). Before retry ``attempt + 1`` the client waits
    ``base_delay * 2 ** attempt`` seconds, optionally spread by ``jitter``.
    The wait is an ``asyncio.sleep``, so cancelling the calling task aborts
    pending retries. When retries run out the last error is raised: the
    transport exception, or ``httpx.HTTPStatusError`` for a final 5xx.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        timeout: float = 30,
        jitter: float = 0.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_attempt: Optional[AttemptHook] = None,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout = timeout
        self.jitter = jitter
        self.on_attempt = on_attempt
        self._client = httpx.AsyncClient(
            timeout=timeout, headers=_DEFAULT_HEADERS, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def backoff(self, attempt: int, base_delay: Optional[float] = None) -> float:
        delay = (self.base_delay if base_delay is None else base_delay) * 2**attempt
        if self.jitter:
            delay += delay * self.jitter * random.random()
        return delay

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        method = method.upper()
        retries = self.max_retries if max_retries is None else max_retries
        request_timeout = self.timeout if timeout is None else timeout
        request_kwargs: Dict[str, Any] = {
            "headers": dict(headers or {}),
            "params": dict(params or {}),
            "timeout": request_timeout,
        }
        if json is not None:
            request_kwargs["json"] = json

        logger.debug(
            "HTTP request method=%s url=%s params=%s headers=%s",
            method,
            url,
            request_kwargs["params"],
            redact_headers(request_kwargs["headers"]),
        )

        attempt = 0
        while True:
            try:
                response = await self._client.request(method, url, **request_kwargs)
            except httpx.TransportError as exc:
                self._record(method, url, attempt, None, exc)
                if attempt >= retries:
                    raise
            else:
                self._record(method, url, attempt, response.status_code, None)
                if not 500 <= response.status_code < 600:
                    return response
                if attempt >= retries:
                    response.raise_for_status()

            delay = self.backoff(attempt, base_delay)
            logger.warning(
                "HTTP request failed (attempt %s/%s). Retrying in %.2fs. method=%s url=%s",
                attempt + 1,
                retries,
                delay,
                method,
                url,
            )
            await asyncio.sleep(delay)
            attempt += 1

    def _record(
        self,
        method: str,
        url: str,
        attempt: int,
        status: Optional[int],
        error: Optional[Exception],
    ) -> None:
        record = AttemptRecord(
            method=method,
            url=url,
            attempt=attempt,
            status=status,
            error=None if error is None else f"{type(error).__name__}: {error}",
        )
        logger.debug(
            "HTTP attempt method=%s url=%s attempt=%s outcome=%s",
            method,
            url,
            attempt,
            record.outcome,
        )
        if self.on_attempt is not None:
            self.on_attempt(record)
