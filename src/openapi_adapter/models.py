"""Internal models for catalog operations and responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .schema import AnySchema, SchemaArena, SchemaNode


PARAMETER_LOCATIONS = ("path", "query", "header", "body")


@dataclass(frozen=True)
class Parameter:
    name: str
    location: str
    required: bool = False
    declared_type: str = "string"
    raw_schema: Dict[str, Any] = field(default_factory=dict)
    schema: SchemaNode = field(default_factory=AnySchema)
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.declared_type,
            "location": self.location,
            "required": self.required,
            "description": self.description,
        }


@dataclass(frozen=True)
class Operation:
    name: str
    method: str
    path: str
    description: str
    parameters: Tuple[Parameter, ...] = ()
    body_description: Optional[str] = None
    # ref index of the build that produced this operation
    arena: Optional[SchemaArena] = field(default=None, compare=False, repr=False)

    @property
    def cacheable(self) -> bool:
        return self.method == "get"

    def parameter(self, name: str) -> Optional[Parameter]:
        for parameter in self.parameters:
            if parameter.name == name:
                return parameter
        return None

    def required_names(self) -> List[str]:
        return [p.name for p in self.parameters if p.required]

    def input_schema(self) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        for parameter in self.parameters:
            prop = dict(parameter.raw_schema)
            prop.setdefault("type", parameter.declared_type)
            if parameter.description:
                prop["description"] = parameter.description
            properties[parameter.name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": self.required_names(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "method": self.method,
            "path": self.path,
            "parameters": [p.to_dict() for p in self.parameters],
        }


@dataclass(frozen=True)
class ApiResponse:
    status: int
    status_text: str
    headers: Dict[str, str]
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "statusText": self.status_text,
            "headers": dict(self.headers),
            "data": self.body,
        }
