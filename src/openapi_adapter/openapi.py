"""OpenAPI document loader and operation catalog."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator

from .cache import TTLCache
from .errors import LoadError, ToolNotFoundError
from .http_client import HttpClient
from .models import PARAMETER_LOCATIONS, Operation, Parameter
from .schema import SchemaArena, SchemaResolutionError, resolve_object


logger = logging.getLogger(__name__)

SPEC_CACHE_KEY = "openapi-spec"
HTTP_METHODS = ("get", "post", "put", "delete", "patch")
_PATH_TOKEN = re.compile(r"{([^}]+)}")
_SWAGGER2_SCHEMA_KEYS = (
    "type",
    "format",
    "enum",
    "pattern",
    "minLength",
    "maxLength",
    "minimum",
    "maximum",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "minItems",
    "maxItems",
    "items",
)


class _Info(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str
    version: str


class OpenAPIDocumentModel(BaseModel):
    """Structural check applied to every fetched document."""

    model_config = ConfigDict(extra="allow")

    openapi: Optional[str] = None
    swagger: Optional[str] = None
    info: _Info
    paths: Dict[str, Optional[Dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("paths")
    @classmethod
    def _paths_start_with_slash(
        cls, paths: Dict[str, Optional[Dict[str, Any]]]
    ) -> Dict[str, Optional[Dict[str, Any]]]:
        for path in paths:
            if not path.startswith("/"):
                raise ValueError(f"path must start with '/': {path}")
        return paths

    @model_validator(mode="after")
    def _check_version(self) -> "OpenAPIDocumentModel":
        if self.openapi is not None:
            if not self.openapi.startswith("3."):
                raise ValueError(f"unsupported openapi version: {self.openapi}")
        elif self.swagger is not None:
            if self.swagger != "2.0":
                raise ValueError(f"unsupported swagger version: {self.swagger}")
        else:
            raise ValueError("document declares neither 'openapi' nor 'swagger'")
        return self


class OpenAPICatalog:
    """Loads an OpenAPI document and derives the set of invocable operations.

    The parsed document is cached under ``SPEC_CACHE_KEY`` for
    ``cache_seconds`` so repeated loads do not refetch it. ``build()``
    replaces the whole operation map at once; on a failed load the previous
    catalog stays in place.
    """

    def __init__(
        self,
        spec_location: str,
        http_client: HttpClient,
        cache: TTLCache[Any],
        cache_seconds: float = 3600,
    ) -> None:
        self.spec_location = spec_location
        self.http_client = http_client
        self.cache = cache
        self.cache_seconds = cache_seconds
        self._document: Optional[Dict[str, Any]] = None
        self._arena: Optional[SchemaArena] = None
        self._operations: Dict[str, Operation] = {}
        self._load_lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._document is not None

    @property
    def document(self) -> Optional[Mapping[str, Any]]:
        if self._document is None:
            return None
        return MappingProxyType(self._document)

    @property
    def arena(self) -> Optional[SchemaArena]:
        return self._arena

    @property
    def schemas(self) -> Dict[str, Any]:
        if self._document is None:
            return {}
        components = self._document.get("components") or {}
        return dict(components.get("schemas") or self._document.get("definitions") or {})

    async def ensure_loaded(self) -> None:
        if self.loaded:
            return
        async with self._load_lock:
            if self.loaded:
                return
            await self.load()
            self.build()

    async def reload(self) -> None:
        async with self._load_lock:
            self.cache.delete(SPEC_CACHE_KEY)
            await self.load()
            self.build()

    async def load(self) -> Dict[str, Any]:
        cached = self.cache.get(SPEC_CACHE_KEY)
        if cached is not None:
            logger.info("Loaded OpenAPI spec from cache")
            self._document = cached
            return cached

        logger.info("Loading OpenAPI specification from %s", self.spec_location)
        try:
            raw = await self._fetch()
            document = self._parse(raw)
            OpenAPIDocumentModel.model_validate(document)
        except LoadError:
            raise
        except PydanticValidationError as exc:
            logger.error("Invalid OpenAPI specification: %s", exc)
            raise LoadError(f"Invalid OpenAPI specification: {exc}") from exc
        except (httpx.HTTPError, yaml.YAMLError, OSError, ValueError) as exc:
            logger.error("Failed to load OpenAPI specification: %s", exc)
            raise LoadError(f"Failed to load OpenAPI specification: {exc}") from exc

        self.cache.set(SPEC_CACHE_KEY, document, ttl=self.cache_seconds)
        self._document = document
        logger.info("OpenAPI specification loaded successfully")
        return document

    def build(self) -> Dict[str, Operation]:
        if self._document is None:
            raise LoadError("OpenAPI specification not loaded")

        document = self._document
        arena = SchemaArena(document)
        operations: Dict[str, Operation] = {}
        paths = document.get("paths") or {}

        for path, path_item in paths.items():
            if not isinstance(path_item, Mapping):
                continue
            shared_parameters = path_item.get("parameters") or []
            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if not isinstance(operation, Mapping):
                    continue
                try:
                    derived = self._build_operation(
                        arena, path, method, operation, shared_parameters
                    )
                except Exception as exc:
                    logger.error("Failed to create tool for %s %s: %s", method.upper(), path, exc)
                    continue
                if derived.name in operations:
                    logger.warning(
                        "Duplicate operation name %s for %s %s; keeping the first",
                        derived.name,
                        method.upper(),
                        path,
                    )
                    continue
                operations[derived.name] = derived

        self._arena = arena
        self._operations = operations
        logger.info("Generated %s tools from OpenAPI spec", len(operations))
        return dict(operations)

    def list_operations(self) -> List[Operation]:
        return list(self._operations.values())

    def get_operation(self, name: str) -> Optional[Operation]:
        return self._operations.get(name)

    def require_operation(self, name: str) -> Operation:
        operation = self._operations.get(name)
        if operation is None:
            raise ToolNotFoundError(name)
        return operation

    async def _fetch(self) -> Tuple[str, str]:
        location = self.spec_location
        if location.startswith(("http://", "https://")):
            response = await self.http_client.request("GET", location)
            if not response.is_success:
                raise LoadError(
                    f"Failed to fetch OpenAPI spec: {location} ({response.status_code})"
                )
            return response.text, response.headers.get("content-type", "")
        path = Path(location.removeprefix("file://"))
        return path.read_text(encoding="utf-8"), ""

    def _parse(self, raw: Tuple[str, str]) -> Dict[str, Any]:
        text, content_type = raw
        location = self.spec_location.lower()
        if "yaml" in content_type or location.endswith((".yaml", ".yml")):
            document = yaml.safe_load(text)
        else:
            try:
                document = json.loads(text)
            except json.JSONDecodeError:
                document = yaml.safe_load(text)
        if not isinstance(document, dict):
            raise LoadError("OpenAPI specification must be a mapping")
        return document

    def _build_operation(
        self,
        arena: SchemaArena,
        path: str,
        method: str,
        operation: Mapping[str, Any],
        shared_parameters: List[Any],
    ) -> Operation:
        document = arena.document
        name = operation.get("operationId") or self._fallback_operation_id(method, path)
        description = (
            operation.get("summary") or operation.get("description") or f"{method.upper()} {path}"
        )

        merged: Dict[Tuple[str, str], Mapping[str, Any]] = {}
        for raw in [*shared_parameters, *(operation.get("parameters") or [])]:
            resolved = resolve_object(document, raw)
            if not isinstance(resolved, Mapping) or "name" not in resolved:
                continue
            merged[(resolved["name"], resolved.get("in", "query"))] = resolved

        parameters: List[Parameter] = []
        seen: set[str] = set()
        for param in merged.values():
            built = self._build_parameter(arena, param)
            if built is None:
                continue
            if built.name in seen:
                logger.warning("Duplicate parameter %s in %s %s", built.name, method, path)
                continue
            seen.add(built.name)
            parameters.append(built)

        body_description: Optional[str] = None
        request_body = resolve_object(document, operation.get("requestBody"))
        if isinstance(request_body, Mapping) and "body" not in seen:
            body_schema = self._json_body_schema(request_body)
            if body_schema is not None:
                body_description = request_body.get("description") or "Request body"
                parameters.append(
                    Parameter(
                        name="body",
                        location="body",
                        required=bool(request_body.get("required", False)),
                        declared_type="object",
                        raw_schema=dict(body_schema),
                        schema=arena.parse(body_schema),
                        description=body_description,
                    )
                )

        path_names = {p.name for p in parameters if p.location == "path"}
        unmatched = [token for token in _PATH_TOKEN.findall(path) if token not in path_names]
        if unmatched:
            raise ValueError(f"path tokens without parameters: {', '.join(unmatched)}")

        return Operation(
            name=name,
            method=method,
            path=path,
            description=description,
            parameters=tuple(parameters),
            body_description=body_description,
            arena=arena,
        )

    def _build_parameter(self, arena: SchemaArena, param: Mapping[str, Any]) -> Optional[Parameter]:
        location = param.get("in", "query")
        if location not in PARAMETER_LOCATIONS:
            logger.warning("Skipping parameter %s in unsupported location %s", param["name"], location)
            return None

        raw_schema = param.get("schema")
        if raw_schema is None:
            # Swagger 2.0 puts the type keywords on the parameter itself
            raw_schema = {key: param[key] for key in _SWAGGER2_SCHEMA_KEYS if key in param}
        try:
            resolved_schema = resolve_object(arena.document, raw_schema) or {}
        except SchemaResolutionError:
            # arena.parse logs and degrades external refs to an untyped node
            resolved_schema = {}

        name = "body" if location == "body" else param["name"]
        declared_type = resolved_schema.get("type") if isinstance(resolved_schema, Mapping) else None
        if isinstance(declared_type, list):
            declared_type = next((t for t in declared_type if t != "null"), None)

        return Parameter(
            name=name,
            location=location,
            required=bool(param.get("required", False)),
            declared_type=declared_type or ("object" if location == "body" else "string"),
            raw_schema=dict(raw_schema) if isinstance(raw_schema, Mapping) else {},
            schema=arena.parse(raw_schema),
            description=param.get("description"),
        )

    def _json_body_schema(self, request_body: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
        content = request_body.get("content") or {}
        for media_type, media in content.items():
            base = media_type.split(";")[0].strip().lower()
            if base == "application/json" or base.endswith("+json"):
                schema = (media or {}).get("schema")
                if schema is not None:
                    return schema
        return None

    def _fallback_operation_id(self, method: str, path: str) -> str:
        return f"{method}_{re.sub(r'[^a-zA-Z0-9]', '_', path)}"
