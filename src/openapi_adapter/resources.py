"""Read-only views of the loaded document for transport collaborators."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List

from .errors import LoadError, ResourceNotFoundError
from .openapi import OpenAPICatalog


SPECIFICATION_URI = "openapi://specification"
ENDPOINTS_URI = "openapi://endpoints"
SCHEMAS_URI = "openapi://schemas"
TOOLS_URI = "openapi://tools"


@dataclass(frozen=True)
class Resource:
    uri: str
    name: str
    description: str
    mime_type: str


RESOURCES = (
    Resource(
        SPECIFICATION_URI,
        "OpenAPI Specification",
        "The complete OpenAPI specification for the target API",
        "application/json",
    ),
    Resource(ENDPOINTS_URI, "API Endpoints", "List of all available API endpoints", "text/plain"),
    Resource(SCHEMAS_URI, "Data Schemas", "JSON schemas for all data models", "application/json"),
    Resource(
        TOOLS_URI,
        "Available Tools",
        "List of all generated tools with their descriptions",
        "application/json",
    ),
)


class ResourceHandler:
    """Every view is computed from the catalog's current state."""

    def __init__(self, catalog: OpenAPICatalog) -> None:
        self.catalog = catalog

    async def list_resources(self) -> List[Resource]:
        await self.catalog.ensure_loaded()
        return list(RESOURCES)

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        await self.catalog.ensure_loaded()

        if uri == SPECIFICATION_URI:
            document = self.catalog.document
            if document is None:
                raise LoadError("OpenAPI specification not loaded")
            return _content(uri, "application/json", json.dumps(dict(document), indent=2, default=str))
        if uri == ENDPOINTS_URI:
            return _content(uri, "text/plain", self.endpoints())
        if uri == SCHEMAS_URI:
            return _content(uri, "application/json", json.dumps(self.catalog.schemas, indent=2, default=str))
        if uri == TOOLS_URI:
            tools = [operation.to_dict() for operation in self.catalog.list_operations()]
            return _content(uri, "application/json", json.dumps(tools, indent=2))
        raise ResourceNotFoundError(uri)

    def endpoints(self) -> str:
        lines = [
            f"{op.method.upper()} {op.path} - {op.description}"
            for op in self.catalog.list_operations()
        ]
        return "\n".join(sorted(lines))


def _content(uri: str, mime_type: str, text: str) -> Dict[str, Any]:
    return {"uri": uri, "mimeType": mime_type, "text": text}
