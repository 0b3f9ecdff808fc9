"""Shared fixtures for adapter tests."""

import copy
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from openapi_adapter.cache import TTLCache
from openapi_adapter.config import Settings
from openapi_adapter.executor import OperationExecutor
from openapi_adapter.http_client import HttpClient
from openapi_adapter.openapi import OpenAPICatalog


API_BASE = "https://api.test"
SPEC_URL = f"{API_BASE}/api/v3/openapi.json"

PETSTORE_SPEC: Dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Petstore", "version": "1.0.0"},
    "paths": {
        "/pet/{id}": {
            "get": {
                "operationId": "getPetById",
                "summary": "Find pet by ID",
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
                    {"$ref": "#/components/parameters/TraceId"},
                    {"name": "Authorization", "in": "header", "schema": {"type": "string"}},
                ],
            },
            "delete": {
                "operationId": "deletePet",
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "integer"}},
                ],
            },
        },
        "/pet": {
            "post": {
                "operationId": "addPet",
                "description": "Add a new pet to the store",
                "requestBody": {
                    "required": True,
                    "content": {
                        "application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}
                    },
                },
            },
        },
        "/pet/findByStatus": {
            "get": {
                "operationId": "findPetsByStatus",
                "parameters": [
                    {
                        "name": "status",
                        "in": "query",
                        "schema": {"type": "string", "enum": ["available", "pending", "sold"]},
                    },
                    {
                        "name": "tags",
                        "in": "query",
                        "schema": {"type": "array", "items": {"type": "string"}},
                    },
                ],
            },
        },
        "/store/inventory": {
            "get": {"responses": {"200": {"description": "ok"}}},
        },
    },
    "components": {
        "parameters": {
            "TraceId": {"name": "X-Trace-Id", "in": "header", "schema": {"type": "string"}},
        },
        "schemas": {
            "Category": {
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "name": {"type": "string"},
                    "parent": {"$ref": "#/components/schemas/Category"},
                },
            },
            "Pet": {
                "type": "object",
                "required": ["name"],
                "additionalProperties": False,
                "properties": {
                    "id": {"type": "integer", "minimum": 1},
                    "name": {"type": "string", "minLength": 1},
                    "status": {"type": "string", "enum": ["available", "pending", "sold"]},
                    "category": {"$ref": "#/components/schemas/Category"},
                    "photoUrls": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
}


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Handler = Callable[[httpx.Request], httpx.Response]


class MockBackend:
    """Routes requests by (method, path) and records every request seen."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, handler: Handler) -> None:
        self.routes[(method.upper(), path)] = handler

    def json(self, method: str, path: str, payload: Any, status: int = 200) -> None:
        self.add(method, path, lambda request: httpx.Response(status, json=payload))

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if (method is None or r.method == method.upper())
            and (path is None or r.url.path == path)
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "not found"})
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class Stack:
    def __init__(
        self,
        backend: MockBackend,
        spec: Optional[Dict[str, Any]] = None,
        max_retries: int = 2,
        spec_url: str = SPEC_URL,
    ) -> None:
        self.backend = backend
        self.clock = FakeClock()
        if spec is not None:
            backend.json("GET", httpx.URL(spec_url).path, spec)
        self.cache: TTLCache[Any] = TTLCache(default_ttl=300, clock=self.clock)
        self.http_client = HttpClient(
            max_retries=max_retries, base_delay=0, timeout=5, transport=backend.transport
        )
        self.catalog = OpenAPICatalog(spec_url, self.http_client, self.cache)
        self.executor = OperationExecutor(
            f"{API_BASE}/api/v3", self.http_client, self.cache, catalog=self.catalog
        )


@pytest.fixture
def petstore_spec() -> Dict[str, Any]:
    return copy.deepcopy(PETSTORE_SPEC)


@pytest.fixture
def backend() -> MockBackend:
    return MockBackend()


@pytest.fixture
def stack(backend: MockBackend, petstore_spec: Dict[str, Any]) -> Stack:
    return Stack(backend, petstore_spec)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url=API_BASE,
        api_prefix="/api/v3",
        max_retries=2,
        retry_delay_seconds=0,
        request_timeout_seconds=5,
        cache_ttl_seconds=300,
        adapter_transport="stdio",
    )
