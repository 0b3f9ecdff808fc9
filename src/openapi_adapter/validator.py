"""Argument validation against parameter schemas."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from .errors import ValidationError
from .models import Operation
from .schema import (
    AnySchema,
    ArraySchema,
    BooleanSchema,
    IntegerSchema,
    NumberSchema,
    ObjectSchema,
    RefSchema,
    SchemaArena,
    SchemaNode,
    SchemaResolutionError,
    StringSchema,
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _format(value: Any) -> str:
    return ", ".join(str(v) for v in value)


class SchemaValidator:
    """Recursive, fail-fast validator over typed schema nodes.

    The first violation raises ``ValidationError`` with a message naming the
    offending path, e.g. ``body.tags[2]``. ``RefSchema`` nodes are looked up
    in the arena built when the catalog was loaded.
    """

    def __init__(self, arena: Optional[SchemaArena] = None) -> None:
        self.arena = arena

    def validate(
        self, value: Any, schema: SchemaNode, name: str, required: bool = False
    ) -> None:
        try:
            schema = self._resolve(schema)
        except SchemaResolutionError as exc:
            raise ValidationError(f'Schema for "{name}" is unavailable: {exc}', path=name) from exc

        if value is None:
            if schema.nullable or not required:
                return
            self._fail(name, f'Parameter "{name}" is required')

        if isinstance(schema, StringSchema):
            if not isinstance(value, str):
                self._fail(name, f'Parameter "{name}" must be a string')
            self._validate_enum(value, schema.enum, name)
            self._validate_string(value, schema, name)
        elif isinstance(schema, (NumberSchema, IntegerSchema)):
            if not _is_number(value):
                self._fail(name, f'Parameter "{name}" must be a number')
            self._validate_enum(value, schema.enum, name)
            self._validate_number(value, schema, name)
        elif isinstance(schema, BooleanSchema):
            if not isinstance(value, bool):
                self._fail(name, f'Parameter "{name}" must be a boolean')
            self._validate_enum(value, schema.enum, name)
        elif isinstance(schema, ArraySchema):
            if not isinstance(value, (list, tuple)):
                self._fail(name, f'Parameter "{name}" must be an array')
            self._validate_array(value, schema, name)
        elif isinstance(schema, ObjectSchema):
            if not isinstance(value, Mapping):
                self._fail(name, f'Parameter "{name}" must be an object')
            self._validate_object(value, schema, name)

    def _resolve(self, schema: SchemaNode) -> SchemaNode:
        if isinstance(schema, RefSchema):
            if self.arena is None:
                return AnySchema()
            return self.arena.resolve(schema)
        return schema

    def _fail(self, name: str, message: str) -> None:
        raise ValidationError(message, path=name)

    def _validate_enum(self, value: Any, enum: Optional[tuple], name: str) -> None:
        if enum is not None and value not in enum:
            self._fail(name, f'Parameter "{name}" must be one of: {_format(enum)}')

    def _validate_string(self, value: str, schema: StringSchema, name: str) -> None:
        regex = schema.regex
        if regex is not None and not regex.search(value):
            self._fail(name, f'Parameter "{name}" does not match pattern: {schema.pattern}')
        if schema.min_length is not None and len(value) < schema.min_length:
            self._fail(
                name, f'Parameter "{name}" must be at least {schema.min_length} characters long'
            )
        if schema.max_length is not None and len(value) > schema.max_length:
            self._fail(
                name, f'Parameter "{name}" must be at most {schema.max_length} characters long'
            )

    def _validate_number(self, value: float, schema: NumberSchema | IntegerSchema, name: str) -> None:
        if schema.minimum is not None:
            if schema.exclusive_minimum and value <= schema.minimum:
                self._fail(name, f'Parameter "{name}" must be greater than {schema.minimum}')
            if not schema.exclusive_minimum and value < schema.minimum:
                self._fail(name, f'Parameter "{name}" must be at least {schema.minimum}')
        if schema.maximum is not None:
            if schema.exclusive_maximum and value >= schema.maximum:
                self._fail(name, f'Parameter "{name}" must be less than {schema.maximum}')
            if not schema.exclusive_maximum and value > schema.maximum:
                self._fail(name, f'Parameter "{name}" must be at most {schema.maximum}')
        if isinstance(schema, IntegerSchema) and not float(value).is_integer():
            self._fail(name, f'Parameter "{name}" must be an integer')

    def _validate_array(self, value: list | tuple, schema: ArraySchema, name: str) -> None:
        if schema.min_items is not None and len(value) < schema.min_items:
            self._fail(name, f'Parameter "{name}" must have at least {schema.min_items} items')
        if schema.max_items is not None and len(value) > schema.max_items:
            self._fail(name, f'Parameter "{name}" must have at most {schema.max_items} items')
        if schema.items is not None:
            for index, item in enumerate(value):
                self.validate(item, schema.items, f"{name}[{index}]")

    def _validate_object(self, value: Mapping[str, Any], schema: ObjectSchema, name: str) -> None:
        for required_prop in schema.required:
            if required_prop not in value:
                self._fail(
                    f"{name}.{required_prop}",
                    f'Property "{required_prop}" is required in "{name}"',
                )

        for prop_name, prop_schema in schema.properties.items():
            if prop_name in value:
                self.validate(
                    value[prop_name],
                    prop_schema,
                    f"{name}.{prop_name}",
                    required=prop_name in schema.required,
                )

        if not schema.additional_properties:
            extra = [key for key in value if key not in schema.properties]
            if extra:
                self._fail(name, f'Unexpected properties in "{name}": {_format(extra)}')


def validate_arguments(
    operation: Operation,
    arguments: Mapping[str, Any],
    validator: Optional[SchemaValidator] = None,
) -> None:
    """Reject missing required parameters, then check each supplied argument.

    All missing names are reported together; schema checks stop at the
    first violation.
    """
    missing = [
        p.name for p in operation.parameters if p.required and p.name not in arguments
    ]
    if missing:
        raise ValidationError.missing_parameters(missing)

    validator = validator or SchemaValidator()
    for parameter in operation.parameters:
        if parameter.name in arguments:
            validator.validate(
                arguments[parameter.name],
                parameter.schema,
                parameter.name,
                required=parameter.required,
            )
