"""OpenAPI v3 schema and CustomResourceDefinition data model, plus a schema walker."""

from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Optional, Union


class MarkerError(ValueError):
    """Raised when a marker or a type cannot be turned into a valid schema."""


@dataclass
class ValidationRule:
    """A CEL validation rule attached to a schema node."""

    rule: str
    message: str = ""


@dataclass
class JSONSchemaPropsOrBool:
    """Either a schema or a plain boolean (used for additionalProperties/Items)."""

    allows: bool = False
    schema: Optional[JSONSchemaProps] = None


@dataclass
class JSONSchemaPropsOrArray:
    """Either a single item schema or a list of positional item schemas."""

    schema: Optional[JSONSchemaProps] = None
    json_schemas: list[JSONSchemaProps] = field(default_factory=list)


@dataclass
class JSONSchemaProps:
    """A node of an OpenAPI v3 validation schema.

    ``default``, ``example`` and the entries of ``enum`` hold JSON text.
    """

    ref: Optional[str] = None
    description: str = ""
    type: str = ""
    format: str = ""
    title: str = ""
    default: Optional[str] = None
    maximum: Optional[float] = None
    exclusive_maximum: bool = False
    minimum: Optional[float] = None
    exclusive_minimum: bool = False
    max_length: Optional[int] = None
    min_length: Optional[int] = None
    pattern: str = ""
    max_items: Optional[int] = None
    min_items: Optional[int] = None
    unique_items: bool = False
    multiple_of: Optional[float] = None
    enum: list[str] = field(default_factory=list)
    max_properties: Optional[int] = None
    min_properties: Optional[int] = None
    required: list[str] = field(default_factory=list)
    items: Optional[JSONSchemaPropsOrArray] = None
    all_of: list[JSONSchemaProps] = field(default_factory=list)
    one_of: list[JSONSchemaProps] = field(default_factory=list)
    any_of: list[JSONSchemaProps] = field(default_factory=list)
    not_: Optional[JSONSchemaProps] = None
    properties: dict[str, JSONSchemaProps] = field(default_factory=dict)
    additional_properties: Optional[JSONSchemaPropsOrBool] = None
    pattern_properties: dict[str, JSONSchemaProps] = field(default_factory=dict)
    dependencies: dict[str, Union[JSONSchemaProps, list[str]]] = field(default_factory=dict)
    additional_items: Optional[JSONSchemaPropsOrBool] = None
    definitions: dict[str, JSONSchemaProps] = field(default_factory=dict)
    external_docs: Optional[dict[str, str]] = None
    example: Optional[str] = None
    nullable: bool = False
    x_preserve_unknown_fields: Optional[bool] = None
    x_embedded_resource: bool = False
    x_int_or_string: bool = False
    x_list_map_keys: list[str] = field(default_factory=list)
    x_list_type: Optional[str] = None
    x_map_type: Optional[str] = None
    x_validations: list[ValidationRule] = field(default_factory=list)

    def deep_copy(self) -> JSONSchemaProps:
        """Return an independent copy of this schema tree."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON form used in CRD manifests, omitting empty fields."""
        out: dict[str, Any] = {}

        def scalar(key: str, value: Any) -> None:
            if value is None or value is False:
                return
            if isinstance(value, (str, list, dict)) and not value:
                return
            out[key] = value

        scalar("$ref", self.ref)
        scalar("description", self.description)
        scalar("type", self.type)
        scalar("format", self.format)
        scalar("title", self.title)
        if self.default is not None:
            out["default"] = json.loads(self.default)
        scalar("maximum", self.maximum)
        scalar("exclusiveMaximum", self.exclusive_maximum)
        scalar("minimum", self.minimum)
        scalar("exclusiveMinimum", self.exclusive_minimum)
        scalar("maxLength", self.max_length)
        scalar("minLength", self.min_length)
        scalar("pattern", self.pattern)
        scalar("maxItems", self.max_items)
        scalar("minItems", self.min_items)
        scalar("uniqueItems", self.unique_items)
        scalar("multipleOf", self.multiple_of)
        if self.enum:
            out["enum"] = [json.loads(value) for value in self.enum]
        scalar("maxProperties", self.max_properties)
        scalar("minProperties", self.min_properties)
        scalar("required", list(self.required))
        if self.items is not None:
            out["items"] = _or_array_value(self.items)
        for key, schemas in (("allOf", self.all_of), ("oneOf", self.one_of), ("anyOf", self.any_of)):
            if schemas:
                out[key] = [schema.to_dict() for schema in schemas]
        if self.not_ is not None:
            out["not"] = self.not_.to_dict()
        if self.properties:
            out["properties"] = {name: prop.to_dict() for name, prop in self.properties.items()}
        if self.additional_properties is not None:
            out["additionalProperties"] = _or_bool_value(self.additional_properties)
        if self.pattern_properties:
            out["patternProperties"] = {
                name: prop.to_dict() for name, prop in self.pattern_properties.items()
            }
        if self.dependencies:
            out["dependencies"] = {
                name: dep.to_dict() if isinstance(dep, JSONSchemaProps) else list(dep)
                for name, dep in self.dependencies.items()
            }
        if self.additional_items is not None:
            out["additionalItems"] = _or_bool_value(self.additional_items)
        if self.definitions:
            out["definitions"] = {name: d.to_dict() for name, d in self.definitions.items()}
        if self.external_docs is not None:
            out["externalDocs"] = dict(self.external_docs)
        if self.example is not None:
            out["example"] = json.loads(self.example)
        scalar("nullable", self.nullable)
        if self.x_preserve_unknown_fields is not None:
            out["x-kubernetes-preserve-unknown-fields"] = self.x_preserve_unknown_fields
        scalar("x-kubernetes-embedded-resource", self.x_embedded_resource)
        scalar("x-kubernetes-int-or-string", self.x_int_or_string)
        scalar("x-kubernetes-list-map-keys", list(self.x_list_map_keys))
        scalar("x-kubernetes-list-type", self.x_list_type)
        scalar("x-kubernetes-map-type", self.x_map_type)
        if self.x_validations:
            out["x-kubernetes-validations"] = [_rule_value(rule) for rule in self.x_validations]
        return out


def _or_bool_value(value: JSONSchemaPropsOrBool) -> Any:
    if value.schema is not None:
        return value.schema.to_dict()
    return value.allows


def _or_array_value(value: JSONSchemaPropsOrArray) -> Any:
    if value.json_schemas:
        return [schema.to_dict() for schema in value.json_schemas]
    if value.schema is not None:
        return value.schema.to_dict()
    return None


def _rule_value(rule: ValidationRule) -> dict[str, str]:
    out = {"rule": rule.rule}
    if rule.message:
        out["message"] = rule.message
    return out


@dataclass
class CustomResourceSubresourceScale:
    """Configuration of the /scale subresource."""

    spec_replicas_path: str = ""
    status_replicas_path: str = ""
    label_selector_path: Optional[str] = None


@dataclass
class CustomResourceSubresources:
    """Subresources enabled on a CRD version."""

    status: bool = False
    scale: Optional[CustomResourceSubresourceScale] = None


@dataclass
class CustomResourceColumnDefinition:
    """An additional printer column for ``kubectl get``."""

    name: str = ""
    type: str = ""
    json_path: str = ""
    description: str = ""
    format: str = ""
    priority: int = 0


@dataclass
class CustomResourceDefinitionVersion:
    """One served version of a CRD."""

    name: str = ""
    served: bool = False
    storage: bool = False
    deprecated: bool = False
    deprecation_warning: Optional[str] = None
    schema: Optional[JSONSchemaProps] = None
    subresources: Optional[CustomResourceSubresources] = None
    additional_printer_columns: list[CustomResourceColumnDefinition] = field(default_factory=list)


@dataclass
class CustomResourceDefinitionNames:
    """Naming information of a CRD."""

    plural: str = ""
    singular: str = ""
    short_names: list[str] = field(default_factory=list)
    kind: str = ""
    list_kind: str = ""
    categories: list[str] = field(default_factory=list)


@dataclass
class CustomResourceDefinitionSpec:
    """The spec of a CRD."""

    group: str = ""
    names: CustomResourceDefinitionNames = field(default_factory=CustomResourceDefinitionNames)
    scope: str = "Namespaced"
    versions: list[CustomResourceDefinitionVersion] = field(default_factory=list)


@dataclass
class CustomResourceDefinition:
    """A CustomResourceDefinition object."""

    name: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    spec: CustomResourceDefinitionSpec = field(default_factory=CustomResourceDefinitionSpec)
    api_version: str = "apiextensions.k8s.io/v1"
    kind: str = "CustomResourceDefinition"

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the manifest form (without status or creation timestamp)."""
        metadata: dict[str, Any] = {}
        if self.name:
            metadata["name"] = self.name
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        if self.labels:
            metadata["labels"] = dict(self.labels)
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": _spec_value(self.spec),
        }


def _names_value(names: CustomResourceDefinitionNames) -> dict[str, Any]:
    out: dict[str, Any] = {"plural": names.plural}
    if names.singular:
        out["singular"] = names.singular
    if names.short_names:
        out["shortNames"] = list(names.short_names)
    out["kind"] = names.kind
    if names.list_kind:
        out["listKind"] = names.list_kind
    if names.categories:
        out["categories"] = list(names.categories)
    return out


def _column_value(column: CustomResourceColumnDefinition) -> dict[str, Any]:
    out: dict[str, Any] = {"name": column.name, "type": column.type}
    if column.format:
        out["format"] = column.format
    if column.description:
        out["description"] = column.description
    if column.priority:
        out["priority"] = column.priority
    out["jsonPath"] = column.json_path
    return out


def _subresources_value(sub: CustomResourceSubresources) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if sub.status:
        out["status"] = {}
    if sub.scale is not None:
        scale: dict[str, Any] = {
            "specReplicasPath": sub.scale.spec_replicas_path,
            "statusReplicasPath": sub.scale.status_replicas_path,
        }
        if sub.scale.label_selector_path is not None:
            scale["labelSelectorPath"] = sub.scale.label_selector_path
        out["scale"] = scale
    return out


def _version_value(version: CustomResourceDefinitionVersion) -> dict[str, Any]:
    out: dict[str, Any] = {
        "name": version.name,
        "served": version.served,
        "storage": version.storage,
    }
    if version.deprecated:
        out["deprecated"] = True
    if version.deprecation_warning is not None:
        out["deprecationWarning"] = version.deprecation_warning
    if version.schema is not None:
        out["schema"] = {"openAPIV3Schema": version.schema.to_dict()}
    if version.subresources is not None:
        out["subresources"] = _subresources_value(version.subresources)
    if version.additional_printer_columns:
        out["additionalPrinterColumns"] = [
            _column_value(column) for column in version.additional_printer_columns
        ]
    return out


def _spec_value(spec: CustomResourceDefinitionSpec) -> dict[str, Any]:
    return {
        "group": spec.group,
        "names": _names_value(spec.names),
        "scope": spec.scope,
        "versions": [_version_value(version) for version in spec.versions],
    }


class SchemaVisitor(ABC):
    """Walks the nodes of a schema.

    ``visit`` is called for each node.  If it returns a visitor, that visitor is
    used for the node's children and is then called with ``None`` once they have
    all been visited.  Returning ``None`` skips the children.
    """

    @abstractmethod
    def visit(self, schema: Optional[JSONSchemaProps]) -> Optional[SchemaVisitor]:
        """Visit one node, or mark the end of a node when ``schema`` is None."""


def edit_schema(schema: JSONSchemaProps, visitor: SchemaVisitor) -> None:
    """Walk ``schema`` in place with ``visitor``; edits to nodes are kept."""
    _walk(schema, visitor)


def _walk(schema: JSONSchemaProps, visitor: SchemaVisitor) -> None:
    seen: set[str] = {schema.ref} if schema.ref is not None else set()
    pending: list[SchemaVisitor] = []
    try:
        current: Optional[SchemaVisitor] = visitor
        while True:
            current = current.visit(schema)
            if current is None:
                return
            pending.append(current)
            # follow a chain of references, stopping on cycles
            if not schema.ref or schema.ref in seen:
                break
            seen.add(schema.ref)
        for child in _children(schema):
            _walk(child, current)
    finally:
        for done in reversed(pending):
            done.visit(None)


def _children(schema: JSONSchemaProps) -> Iterator[JSONSchemaProps]:
    if schema.items is not None:
        if schema.items.schema is not None:
            yield schema.items.schema
        yield from list(schema.items.json_schemas)
    yield from list(schema.all_of)
    yield from list(schema.one_of)
    yield from list(schema.any_of)
    if schema.not_ is not None:
        yield schema.not_
    yield from list(schema.properties.values())
    if schema.additional_properties is not None and schema.additional_properties.schema is not None:
        yield schema.additional_properties.schema
    yield from list(schema.pattern_properties.values())
    for dep in list(schema.dependencies.values()):
        if isinstance(dep, JSONSchemaProps):
            yield dep
    if schema.additional_items is not None and schema.additional_items.schema is not None:
        yield schema.additional_items.schema
    yield from list(schema.definitions.values())