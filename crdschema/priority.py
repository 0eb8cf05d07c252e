"""Ordered application of schema markers and mapping of builtin types."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from crdschema.jsonschema import JSONSchemaProps, MarkerError

APPLY_PRIORITY_DEFAULT = 10
"""Priority of markers that declare neither ``apply_priority`` nor ``apply_first``."""

APPLY_PRIORITY_FIRST = 1
"""Priority of markers that declare ``apply_first``."""

FLOAT_ERROR = (
    "found float, the usage of which is highly discouraged, as support for them varies "
    "across languages. Please consider serializing your float as string instead. If you "
    "are really sure you want to use them, re-run with crd:allowDangerousTypes=true"
)

_BOOLEAN_KINDS = frozenset({"bool"})
_STRING_KINDS = frozenset({"string"})
_INTEGER_KINDS = frozenset(
    {
        "int", "int8", "int16", "int32", "int64",
        "uint", "uint8", "uint16", "uint32", "uint64",
        "uintptr", "byte", "rune",
    }
)
_FLOAT_KINDS = frozenset({"float32", "float64"})
_FORMATS = {"int32": "int32", "uint32": "int32", "rune": "int32", "int64": "int64", "uint64": "int64"}


def marker_priority(marker: Any) -> int:
    """Return the priority a marker is applied with; lower goes first."""
    if callable(getattr(marker, "apply_priority", None)):
        return int(marker.apply_priority())
    if callable(getattr(marker, "apply_first", None)):
        return APPLY_PRIORITY_FIRST
    return APPLY_PRIORITY_DEFAULT


def apply_markers(
    marker_values: Mapping[str, Iterable[Any]], props: JSONSchemaProps
) -> list[MarkerError]:
    """Apply every schema marker in ``marker_values`` to ``props`` by priority.

    Values without ``apply_to_schema`` are ignored.  A failing marker does not
    stop the others; the errors raised are returned in application order.
    """
    schema_markers = [
        value
        for values in marker_values.values()
        for value in values
        if callable(getattr(value, "apply_to_schema", None))
    ]
    errors: list[MarkerError] = []
    for marker in sorted(schema_markers, key=marker_priority):
        try:
            marker.apply_to_schema(props)
        except MarkerError as err:
            errors.append(err)
    return errors


def builtin_to_type(kind: str, allow_dangerous_types: bool) -> tuple[str, str]:
    """Map a builtin scalar kind to its OpenAPI ``(type, format)`` pair.

    Floats are refused unless ``allow_dangerous_types`` is set.
    """
    if kind in _BOOLEAN_KINDS:
        typ = "boolean"
    elif kind in _STRING_KINDS:
        typ = "string"
    elif kind in _INTEGER_KINDS:
        typ = "integer"
    elif kind in _FLOAT_KINDS:
        if not allow_dangerous_types:
            raise MarkerError(FLOAT_ERROR)
        typ = "number"
    else:
        raise MarkerError(f'unsupported type "{kind}"')
    return typ, _FORMATS.get(kind, "")