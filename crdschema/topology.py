"""Markers describing list, map and struct topology of a schema."""

from __future__ import annotations

from dataclasses import dataclass

from crdschema.jsonschema import JSONSchemaProps, MarkerError
from crdschema.priority import APPLY_PRIORITY_DEFAULT


@dataclass(frozen=True)
class ListType:
    """Kind of data structure a list represents: "map", "set" or "atomic"."""

    value: str

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "array":
            raise MarkerError(f"must apply listType to an array, found {schema.type}")
        if self.value not in ("map", "atomic", "set"):
            raise MarkerError('ListType must be either "map", "set" or "atomic"')
        schema.x_list_type = self.value

    def apply_priority(self) -> int:
        return APPLY_PRIORITY_DEFAULT - 1


@dataclass(frozen=True)
class ListMapKey:
    """A key field of an associative list; may be repeated."""

    value: str

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "array":
            raise MarkerError(f"must apply listMapKey to an array, found {schema.type}")
        if schema.x_list_type != "map":
            raise MarkerError("must apply listMapKey to an associative-list")
        schema.x_list_map_keys.append(self.value)


@dataclass(frozen=True)
class MapType:
    """Atomicity of a map: "granular" or "atomic"."""

    value: str

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type != "object":
            raise MarkerError("must apply mapType to an object")
        if self.value not in ("atomic", "granular"):
            raise MarkerError('MapType must be either "granular" or "atomic"')
        schema.x_map_type = self.value


@dataclass(frozen=True)
class StructType:
    """Atomicity of a struct: "granular" or "atomic"."""

    value: str

    def apply_to_schema(self, schema: JSONSchemaProps) -> None:
        if schema.type not in ("object", ""):
            raise MarkerError(
                "must apply structType to an object; either explicitly set or "
                "defaulted through an empty schema type"
            )
        if self.value not in ("atomic", "granular"):
            raise MarkerError('StructType must be either "granular" or "atomic"')
        schema.x_map_type = self.value