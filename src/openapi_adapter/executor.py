"""Execution of catalog operations over HTTP."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import quote

import httpx

from .cache import TTLCache
from .errors import ExecutionError, PathSubstitutionError
from .http_client import HttpClient
from .logging import redact_payload
from .models import ApiResponse, Operation
from .openapi import OpenAPICatalog
from .validator import SchemaValidator, validate_arguments

logger = logging.getLogger(__name__)

_PATH_TOKEN = re.compile(r"{[^}]+}")


class OperationExecutor:
    """Validate, consult the cache, build the request, dispatch, store.

    Only GET operations are cache-eligible, and only 2xx responses are
    stored. A non-2xx status is returned as an ``ApiResponse``; transport
    failures that outlive the retries raise ``ExecutionError``.
    """

    def __init__(
        self,
        base_url: str,
        http_client: HttpClient,
        cache: TTLCache[Any],
        catalog: Optional[OpenAPICatalog] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http_client = http_client
        self.cache = cache
        self.catalog = catalog

    async def execute_by_name(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> ApiResponse:
        if self.catalog is None:
            raise RuntimeError("OperationExecutor has no catalog to resolve names")
        await self.catalog.ensure_loaded()
        operation = self.catalog.require_operation(name)
        return await self.execute(operation, arguments)

    async def execute(
        self, operation: Operation, arguments: Optional[Dict[str, Any]] = None
    ) -> ApiResponse:
        arguments = dict(arguments or {})
        logger.debug("Executing tool: %s args=%s", operation.name, redact_payload(arguments))

        arena = operation.arena
        if arena is None and self.catalog is not None:
            arena = self.catalog.arena
        validate_arguments(operation, arguments, SchemaValidator(arena))

        cache_key = self.fingerprint(operation, arguments) if operation.cacheable else None
        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Returning cached response for %s", operation.name)
                return cached

        url, params, headers, body = self.build_request(operation, arguments)

        try:
            response = await self.http_client.request(
                operation.method,
                url,
                headers=headers,
                params=params,
                json=body,
            )
        except httpx.HTTPStatusError as exc:
            response = exc.response
        except httpx.TransportError as exc:
            logger.error("Failed to execute tool %s: %s", operation.name, exc)
            raise ExecutionError(f"Failed to execute {operation.name}: {exc}") from exc

        api_response = self._to_api_response(response)
        if cache_key is not None and api_response.ok:
            self.cache.set(cache_key, api_response)
        return api_response

    def build_request(
        self, operation: Operation, arguments: Mapping[str, Any]
    ) -> Tuple[str, Dict[str, Any], Dict[str, str], Any]:
        path = operation.path
        params: Dict[str, Any] = {}
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        body: Any = None

        for parameter in operation.parameters:
            value = arguments.get(parameter.name)
            if value is None:
                continue
            if parameter.location == "path":
                path = path.replace(f"{{{parameter.name}}}", quote(str(value), safe=""))
            elif parameter.location == "query":
                params[parameter.name] = _query_value(value)
            elif parameter.location == "header":
                headers[parameter.name] = str(value)
            elif parameter.location == "body":
                body = value

        leftover = _PATH_TOKEN.findall(path)
        if leftover:
            raise PathSubstitutionError(operation.path, leftover)

        return self.base_url + path, params, headers, body

    def fingerprint(self, operation: Operation, arguments: Mapping[str, Any]) -> str:
        relevant = {
            p.name: arguments[p.name]
            for p in operation.parameters
            if p.name in arguments
            and (p.location != "header" or p.name.lower() == "authorization")
        }
        payload = {"operation": operation.name, "arguments": relevant}
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)

    def _to_api_response(self, response: httpx.Response) -> ApiResponse:
        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        return ApiResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=dict(response.headers),
            body=body,
        )


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(item) for item in value]
    if isinstance(value, dict):
        return json.dumps(value)
    return value
