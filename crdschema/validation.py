"""Validation markers that modify the OpenAPI schema of a type or field."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any

from crdschema.jsonschema import JSONSchemaProps, MarkerError, ValidationRule
from crdschema.priority import APPLY_PRIORITY_DEFAULT

SCHEMALESS_NAME = "kubebuilder:validation:Schemaless"
"""Marker name of :class:`Schemaless`; fields carrying it get an empty schema."""


def _has_numeric_type(schema: JSONSchemaProps) -> bool:
    return schema.type in ("integer", "number")


def _is_integral(value: float) -> bool:
    return math.isfinite(value) and float(value).is_integer()


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(float(value))


def _marshal(value: Any) -> str:
    """Encode ``value`` as compact JSON text with sorted object keys."""
    try:
        return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    except (TypeError, ValueError) as err:
        raise MarkerError(f"unable to marshal value {value!r}: {err}") from err


def _check_numeric(schema: JSONSchemaProps, name: str, value: float) -> None:
    if not _has_numeric_type(schema):
        raise MarkerError(f"must apply {name} to a numeric value, found {schema.type}")
    if schema.type == "integer" and not _is_integral(value):
        raise MarkerError(
            f"cannot apply non-integral {name} validation ({_format_float(value)}) "
            "to integer value"
        )


@dataclass(frozen=True)
class Maximum:
    """The maximum numeric value this field can have."""

    value: float

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        _check_numeric(schema, "maximum", float(self.value))
        schema.maximum = float(self.value)


@dataclass(frozen=True)
class Minimum:
    """The minimum numeric value this field can have; negative numbers are supported."""

    value: float

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        _check_numeric(schema, "minimum", float(self.value))
        schema.minimum = float(self.value)


@dataclass(frozen=True)
class ExclusiveMaximum:
    """Whether the maximum is exclusive."""

    value: bool = True

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if not _has_numeric_type(schema):
            raise MarkerError(
                f"must apply exclusivemaximum to a numeric value, found {schema.type}"
            )
        schema.exclusive_maximum = bool(self.value)


@dataclass(frozen=True)
class ExclusiveMinimum:
    """Whether the minimum is exclusive."""

    value: bool = True

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if not _has_numeric_type(schema):
            raise MarkerError(
                f"must apply exclusiveminimum to a numeric value, found {schema.type}"
            )
        schema.exclusive_minimum = bool(self.value)


@dataclass(frozen=True)
class MultipleOf:
    """The field's numeric value must be a multiple of this one."""

    value: float

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        _check_numeric(schema, "multipleof", float(self.value))
        schema.multiple_of = float(self.value)


@dataclass(frozen=True)
class MaxLength:
    """The maximum length of a string."""

    value: int

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "string":
            raise MarkerError("must apply maxlength to a string")
        schema.max_length = int(self.value)


@dataclass(frozen=True)
class MinLength:
    """The minimum length of a string."""

    value: int

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "string":
            raise MarkerError("must apply minlength to a string")
        schema.min_length = int(self.value)


@dataclass(frozen=True)
class Pattern:
    """A regular expression the string must match."""

    value: str

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        # int-or-string values accept a pattern that only applies to strings
        if schema.type != "string" and not schema.x_int_or_string:
            raise MarkerError("must apply pattern to a `string` or `IntOrString`")
        schema.pattern = self.value


@dataclass(frozen=True)
class MaxItems:
    """The maximum length of a list."""

    value: int

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "array":
            raise MarkerError("must apply maxitem to an array")
        schema.max_items = int(self.value)


@dataclass(frozen=True)
class MinItems:
    """The minimum length of a list."""

    value: int

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "array":
            raise MarkerError("must apply minitems to an array")
        schema.min_items = int(self.value)


@dataclass(frozen=True)
class UniqueItems:
    """Whether all items in a list must be unique."""

    value: bool = True

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "array":
            raise MarkerError("must apply uniqueitems to an array")
        schema.unique_items = bool(self.value)


@dataclass(frozen=True)
class MaxProperties:
    """The maximum number of keys in an object."""

    value: int

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "object":
            raise MarkerError("must apply maxproperties to an object")
        schema.max_properties = int(self.value)


@dataclass(frozen=True)
class MinProperties:
    """The minimum number of keys in an object."""

    value: int

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "object":
            raise MarkerError("must apply minproperties to an object")
        schema.min_properties = int(self.value)


@dataclass(frozen=True)
class Enum:
    """Restricts a scalar field to exactly the listed values."""

    values: tuple[Any, ...] = ()

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.enum = [_marshal(value) for value in self.values]


@dataclass(frozen=True)
class Format:
    """Additional "complex" formatting of a field, such as date-time."""

    value: str

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.format = self.value


@dataclass(frozen=True)
class Type:
    """Overrides the schema type of a field; applied before other markers."""

    value: str

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.type = self.value

    def apply_priority(self) -> int:
        return APPLY_PRIORITY_DEFAULT - 1


@dataclass(frozen=True)
class Nullable:
    """Allows the "null" value for a field."""

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.nullable = True


@dataclass(frozen=True)
class Default:
    """The default value of a field."""

    value: Any = None

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        marshalled = _marshal(self.value)
        if schema.type == "array" and marshalled == "{}":
            marshalled = "[]"
        schema.default = marshalled


@dataclass(frozen=True)
class Example:
    """An example value of a field."""

    value: Any = None

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.example = _marshal(self.value)


@dataclass(frozen=True)
class XPreserveUnknownFields:
    """Stops the API server from pruning fields that are not specified."""

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.x_preserve_unknown_fields = True


@dataclass(frozen=True)
class XEmbeddedResource:
    """Marks a field as an embedded resource with apiVersion, kind and metadata."""

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.x_embedded_resource = True


@dataclass(frozen=True)
class XIntOrString:
    """Marks a field as an int-or-string; applied before other markers."""

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.x_int_or_string = True

    def apply_priority(self) -> int:
        return APPLY_PRIORITY_DEFAULT - 1


@dataclass(frozen=True)
class Schemaless:
    """Marks a field as a schemaless object that is not introspected."""


@dataclass(frozen=True)
class XValidation:
    """A CEL rule the field's value must satisfy; may be repeated."""

    rule: str
    message: str = ""

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        schema.x_validations.append(ValidationRule(rule=self.rule, message=self.message))