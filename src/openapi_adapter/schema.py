"""Typed schema nodes parsed from OpenAPI schema objects.

Each JSON type gets its own node carrying only the keywords that apply to
it. Same-document ``$ref`` pointers are resolved once, at load time, into a
``SchemaArena`` keyed by pointer; nodes that point elsewhere hold a
``RefSchema`` and are looked up in the arena during validation, which keeps
recursive schemas finite.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StringSchema:
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    type: str = field(default="string", init=False)

    @property
    def regex(self) -> Optional["re.Pattern[str]"]:
        return _compile(self.pattern) if self.pattern is not None else None


@dataclass(frozen=True)
class NumberSchema:
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    type: str = field(default="number", init=False)


@dataclass(frozen=True)
class IntegerSchema:
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    type: str = field(default="integer", init=False)


@dataclass(frozen=True)
class BooleanSchema:
    nullable: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    type: str = field(default="boolean", init=False)


@dataclass(frozen=True)
class ArraySchema:
    nullable: bool = False
    items: Optional["SchemaNode"] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    type: str = field(default="array", init=False)


@dataclass(frozen=True)
class ObjectSchema:
    nullable: bool = False
    properties: Mapping[str, "SchemaNode"] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    additional_properties: bool = True
    type: str = field(default="object", init=False)


@dataclass(frozen=True)
class AnySchema:
    """Schema without a declared type; any value is accepted."""

    nullable: bool = True
    type: str = field(default="any", init=False)


@dataclass(frozen=True)
class RefSchema:
    ref: str
    nullable: bool = False
    type: str = field(default="ref", init=False)


SchemaNode = Union[
    StringSchema,
    NumberSchema,
    IntegerSchema,
    BooleanSchema,
    ArraySchema,
    ObjectSchema,
    AnySchema,
    RefSchema,
]


_PATTERNS: Dict[str, "re.Pattern[str]"] = {}


def _compile(pattern: str) -> "re.Pattern[str]":
    compiled = _PATTERNS.get(pattern)
    if compiled is None:
        compiled = re.compile(pattern)
        _PATTERNS[pattern] = compiled
    return compiled


class SchemaResolutionError(ValueError):
    pass


def resolve_pointer(document: Mapping[str, Any], ref: str) -> Any:
    """Follow a same-document JSON pointer such as ``#/components/schemas/Pet``."""
    if not ref.startswith("#/"):
        raise SchemaResolutionError(f"Unsupported reference: {ref}")
    current: Any = document
    for raw_part in ref[2:].split("/"):
        part = raw_part.replace("~1", "/").replace("~0", "~")
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            raise SchemaResolutionError(f"Unresolvable reference: {ref}")
    return current


def resolve_object(document: Mapping[str, Any], value: Any, max_depth: int = 32) -> Any:
    """Chase ``$ref`` chains on a parameter, request body or schema object."""
    seen = 0
    while isinstance(value, Mapping) and "$ref" in value:
        seen += 1
        if seen > max_depth:
            raise SchemaResolutionError(f"Reference chain too deep: {value['$ref']}")
        value = resolve_pointer(document, str(value["$ref"]))
    return value


class SchemaArena:
    """Parsed schema nodes indexed by the ``$ref`` pointer that names them."""

    def __init__(self, document: Mapping[str, Any]) -> None:
        self.document = document
        self._nodes: Dict[str, SchemaNode] = {}
        self._parsing: set[str] = set()

    def __contains__(self, ref: object) -> bool:
        return ref in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def resolve(self, node: SchemaNode) -> SchemaNode:
        while isinstance(node, RefSchema):
            target = self._nodes.get(node.ref)
            if target is None:
                raise SchemaResolutionError(f"Unresolved reference: {node.ref}")
            node = target
        return node

    def parse(self, raw: Any) -> SchemaNode:
        if not isinstance(raw, Mapping):
            return AnySchema()

        if "$ref" in raw:
            return self._parse_ref(str(raw["$ref"]))

        nullable = bool(raw.get("nullable", False))
        schema_type = raw.get("type")
        # OpenAPI 3.1 spells nullability as a type list, e.g. ["string", "null"]
        if isinstance(schema_type, list):
            nullable = nullable or "null" in schema_type
            concrete = [t for t in schema_type if t != "null"]
            schema_type = concrete[0] if len(concrete) == 1 else None

        if schema_type is None:
            if "properties" in raw or "additionalProperties" in raw:
                schema_type = "object"
            elif "items" in raw:
                schema_type = "array"
            else:
                for combinator in ("allOf", "oneOf", "anyOf"):
                    variants = raw.get(combinator)
                    if isinstance(variants, list) and len(variants) == 1:
                        return self.parse(variants[0])
                return AnySchema(nullable=True)

        enum = tuple(raw["enum"]) if isinstance(raw.get("enum"), list) else None

        if schema_type == "string":
            pattern = raw.get("pattern")
            if pattern is not None:
                _compile(pattern)
            return StringSchema(
                nullable=nullable,
                enum=enum,
                pattern=pattern,
                min_length=raw.get("minLength"),
                max_length=raw.get("maxLength"),
            )
        if schema_type in ("number", "integer"):
            minimum, exclusive_min = _bound(raw, "minimum", "exclusiveMinimum")
            maximum, exclusive_max = _bound(raw, "maximum", "exclusiveMaximum")
            node_cls = IntegerSchema if schema_type == "integer" else NumberSchema
            return node_cls(
                nullable=nullable,
                enum=enum,
                minimum=minimum,
                maximum=maximum,
                exclusive_minimum=exclusive_min,
                exclusive_maximum=exclusive_max,
            )
        if schema_type == "boolean":
            return BooleanSchema(nullable=nullable, enum=enum)
        if schema_type == "array":
            items = raw.get("items")
            return ArraySchema(
                nullable=nullable,
                items=self.parse(items) if items is not None else None,
                min_items=raw.get("minItems"),
                max_items=raw.get("maxItems"),
            )
        if schema_type == "object":
            properties = raw.get("properties") or {}
            return ObjectSchema(
                nullable=nullable,
                properties={name: self.parse(prop) for name, prop in properties.items()},
                required=tuple(raw.get("required") or ()),
                additional_properties=raw.get("additionalProperties", True) is not False,
            )

        logger.warning("Unknown schema type %r treated as untyped", schema_type)
        return AnySchema(nullable=True)

    def _parse_ref(self, ref: str) -> SchemaNode:
        if not ref.startswith("#/"):
            logger.warning("External schema reference not followed: %s", ref)
            return AnySchema(nullable=True)
        if ref in self._nodes or ref in self._parsing:
            return RefSchema(ref=ref)

        target = resolve_pointer(self.document, ref)
        self._parsing.add(ref)
        try:
            self._nodes[ref] = self.parse(target)
        finally:
            self._parsing.discard(ref)
        return RefSchema(ref=ref)


def _bound(raw: Mapping[str, Any], key: str, exclusive_key: str) -> Tuple[Optional[float], bool]:
    value = raw.get(key)
    exclusive = raw.get(exclusive_key)
    # 3.0 uses a boolean flag next to the bound, 3.1 uses the bound itself
    if isinstance(exclusive, bool):
        return value, exclusive and value is not None
    if isinstance(exclusive, (int, float)):
        if value is None:
            return exclusive, True
        tighter = exclusive >= value if key == "minimum" else exclusive <= value
        if tighter:
            return exclusive, True
    return value, False
