"""Collection of API types and generation of their OpenAPI schemata."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from crdschema.flatten import Flattener, Package, TypeIdent, flatten_embedded, type_ref_link
from crdschema.jsonschema import (
    CustomResourceDefinition,
    JSONSchemaProps,
    JSONSchemaPropsOrArray,
    JSONSchemaPropsOrBool,
    MarkerError,
)
from crdschema.priority import apply_markers, builtin_to_type
from crdschema.validation import SCHEMALESS_NAME

QUANTITY_PATTERN = (
    r"^(\+|-)?(([0-9]+(\.[0-9]*)?)|(\.[0-9]+))(([KMGTPE]i)|[numkMGTPE]|"
    r"([eE](\+|-)?(([0-9]+(\.[0-9]*)?)|(\.[0-9]+))))?$"
)
"""Validation pattern of resource quantities."""

_BUILTINS = frozenset(
    {
        "bool", "string",
        "int", "int8", "int16", "int32", "int64",
        "uint", "uint8", "uint16", "uint32", "uint64",
        "uintptr", "byte", "rune",
        "float32", "float64", "complex64", "complex128",
    }
)
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*\Z")


@dataclass
class TypeInfo:
    """A declared type, or one field of a struct type.

    ``type`` is a type expression: a builtin (``string``), a local name
    (``Foo``), a qualified name (``k8s.io/api/core/v1.Protocol`` or
    ``v1.Protocol``), ``[]T``, ``[N]T``, ``map[K]V``, ``*T``, or ``struct``
    for a struct whose members are ``fields``.  A field's JSON tag goes in
    ``json``; None means the field has no tag.
    """

    name: str = ""
    type: str = "struct"
    doc: str = ""
    markers: dict[str, list[Any]] = field(default_factory=dict)
    fields: list[TypeInfo] = field(default_factory=list)
    json: Optional[str] = None
    implements_json_marshaler: bool = False


@dataclass(frozen=True)
class GroupVersion:
    """An API group and version."""

    group: str
    version: str

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


@dataclass(frozen=True)
class GroupKind:
    """An API group and kind."""

    group: str
    kind: str

    def __str__(self) -> str:
        return f"{self.kind}.{self.group}" if self.group else self.kind


PackageOverride = Callable[["Parser", Package], None]


@dataclass(eq=False)
class _Node:
    text: str


@dataclass(eq=False)
class _Ident(_Node):
    name: str


@dataclass(eq=False)
class _Selector(_Node):
    path: str
    name: str


@dataclass(eq=False)
class _Array(_Node):
    elem: _Node
    length: Optional[str]


@dataclass(eq=False)
class _Map(_Node):
    key: _Node
    value: _Node


@dataclass(eq=False)
class _Star(_Node):
    elem: _Node


@dataclass(eq=False)
class _Struct(_Node):
    pass


@dataclass(eq=False)
class _Unsupported(_Node):
    pass


def _closing_bracket(text: str, start: int) -> Optional[int]:
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return None


def _parse_type(expr: str) -> _Node:
    text = expr.strip()
    if text == "struct" or text.startswith("struct{") or text.startswith("struct {"):
        return _Struct(text)
    if text.startswith("*"):
        return _Star(text, _parse_type(text[1:]))
    if text.startswith("map["):
        end = _closing_bracket(text, 3)
        if end is None:
            return _Unsupported(text)
        return _Map(text, _parse_type(text[4:end]), _parse_type(text[end + 1:]))
    if text.startswith("["):
        end = _closing_bracket(text, 0)
        if end is None:
            return _Unsupported(text)
        return _Array(text, _parse_type(text[end + 1:]), text[1:end].strip() or None)
    if _IDENT.match(text):
        return _Ident(text, text)
    qualifier, dot, name = text.rpartition(".")
    if dot and qualifier and _IDENT.match(name) and not any(c in qualifier for c in "[]*{} "):
        return _Selector(text, qualifier, name)
    return _Unsupported(text)


def _non_vendor_path(path: str) -> str:
    return path.rsplit("/vendor/", 1)[-1]


def _present(markers: Mapping[str, list[Any]], name: str) -> bool:
    return bool(markers.get(name))


def _first(markers: Mapping[str, list[Any]], name: str) -> Any:
    values = markers.get(name)
    return values[0] if values else None


def _blank() -> TypeInfo:
    return TypeInfo(type="")


@dataclass
class _Context:
    parser: Parser
    package: Package
    info: TypeInfo
    package_markers: Mapping[str, list[Any]]
    top: Optional[_Node] = None

    def for_info(self, info: TypeInfo) -> _Context:
        return _Context(self.parser, self.package, info, self.package_markers)

    def error(self, message: str) -> None:
        self.package.add_error(MarkerError(message))

    def apply(self, markers: Mapping[str, list[Any]], props: JSONSchemaProps) -> None:
        for err in apply_markers(markers, props):
            self.package.add_error(err)


def _info_to_schema(ctx: _Context) -> JSONSchemaProps:
    # a custom JSON marshaler could emit anything, so trust its markers when they set a type
    if ctx.info.implements_json_marshaler:
        schema = JSONSchemaProps()
        ctx.apply(ctx.info.markers, schema)
        if schema.type:
            return schema
    assert ctx.top is not None
    return _type_to_schema(ctx, ctx.top)


def _type_to_schema(ctx: _Context, node: _Node) -> JSONSchemaProps:
    if isinstance(node, _Ident):
        props = _local_named_to_schema(ctx, node)
    elif isinstance(node, _Selector):
        props = _named_to_schema(ctx, node)
    elif isinstance(node, _Array):
        props = _array_to_schema(ctx, node)
    elif isinstance(node, _Map):
        props = _map_to_schema(ctx, node)
    elif isinstance(node, _Star):
        props = _type_to_schema(ctx, node.elem)
    elif isinstance(node, _Struct):
        props = _struct_to_schema(ctx, node)
    else:
        ctx.error(f'unsupported type expression "{node.text}"')
        return JSONSchemaProps()
    props.description = ctx.info.doc
    ctx.apply(ctx.info.markers, props)
    return props


def _local_named_to_schema(ctx: _Context, ident: _Ident) -> JSONSchemaProps:
    if ident.name in _BUILTINS:
        try:
            typ, fmt = builtin_to_type(ident.name, ctx.parser.allow_dangerous_types)
        except MarkerError as err:
            ctx.package.add_error(err)
            typ, fmt = "", ""
        return JSONSchemaProps(type=typ, format=fmt)
    target = TypeIdent(package=ctx.package, name=ident.name)
    if not ctx.parser._is_known(target):
        ctx.error(f"unknown type {ident.name}")
        return JSONSchemaProps()
    ctx.parser.need_schema_for(target)
    return JSONSchemaProps(ref=type_ref_link("", ident.name))


def _resolve_import(package: Package, qualifier: str) -> Optional[tuple[str, Package]]:
    imported = package.imports.get(qualifier)
    if imported is not None:
        return qualifier, imported
    for path, candidate in package.imports.items():
        if candidate.name == qualifier:
            return path, candidate
    return None


def _named_to_schema(ctx: _Context, sel: _Selector) -> JSONSchemaProps:
    resolved = _resolve_import(ctx.package, sel.path)
    if resolved is None:
        ctx.error(f"unknown type {sel.path}.{sel.name}")
        return JSONSchemaProps()
    path, package = resolved
    target = TypeIdent(package=package, name=sel.name)
    if not ctx.parser._is_known(target):
        ctx.error(f"unknown type {sel.path}.{sel.name}")
        return JSONSchemaProps()
    ctx.parser.need_schema_for(target)
    return JSONSchemaProps(ref=type_ref_link(path, sel.name))


def _array_to_schema(ctx: _Context, array: _Array) -> JSONSchemaProps:
    elem = array.elem
    if array.length is None and isinstance(elem, _Ident) and elem.name in ("byte", "uint8"):
        # byte slices are base64-encoded strings
        return JSONSchemaProps(type="string", format="byte")
    items = _type_to_schema(ctx.for_info(_blank()), elem)
    return JSONSchemaProps(type="array", items=JSONSchemaPropsOrArray(schema=items))


def _key_problem(ctx: _Context, key: _Node) -> Optional[str]:
    """Return a description of ``key`` if it does not resolve to a string."""
    package = ctx.package
    node = key
    seen: set[TypeIdent] = set()
    while True:
        if isinstance(node, _Ident) and node.name in _BUILTINS:
            return None if node.name == "string" else node.name
        if isinstance(node, _Ident):
            target = TypeIdent(package=package, name=node.name)
        elif isinstance(node, _Selector):
            resolved = _resolve_import(package, node.path)
            if resolved is None:
                return node.text
            target = TypeIdent(package=resolved[1], name=node.name)
        else:
            return node.text
        ctx.parser.need_package(target.package)
        info = ctx.parser.types.get(target)
        if info is None or target in seen:
            return node.text
        seen.add(target)
        package = target.package
        node = _parse_type(info.type)


def _map_to_schema(ctx: _Context, map_node: _Map) -> JSONSchemaProps:
    problem = _key_problem(ctx, map_node.key)
    if problem is not None:
        ctx.error(f"map keys must be strings, not {problem}")
        return JSONSchemaProps()
    sub = ctx.for_info(_blank())
    value = map_node.value
    if isinstance(value, _Ident):
        value_schema = _local_named_to_schema(sub, value)
    elif isinstance(value, _Selector):
        value_schema = _named_to_schema(sub, value)
    elif isinstance(value, _Array):
        value_schema = _array_to_schema(sub, value)
    elif isinstance(value, (_Star, _Map)):
        value_schema = _type_to_schema(sub, value)
    else:
        ctx.error(f"not a supported map value type: {value.text}")
        return JSONSchemaProps()
    return JSONSchemaProps(
        type="object",
        additional_properties=JSONSchemaPropsOrBool(allows=True, schema=value_schema),
    )


def _struct_to_schema(ctx: _Context, node: _Struct) -> JSONSchemaProps:
    props = JSONSchemaProps(type="object")
    if ctx.top is not node:
        ctx.error("encountered non-top-level struct (possibly embedded), those aren't allowed")
        return props

    optional_default = _present(ctx.package_markers, "kubebuilder:validation:Optional")
    for member in ctx.info.fields:
        if member.name and ctx.parser.ignore_unexported_fields and not member.name[0].isupper():
            continue
        if member.json is None:
            ctx.error(
                f'encountered struct field "{member.name}" without JSON tag '
                f'in type "{ctx.info.name}"'
            )
            continue
        options = member.json.split(",")
        if options == ["-"]:
            continue
        field_name = options[0]
        inline = "inline" in options[1:] or field_name == ""
        omit_empty = "omitempty" in options[1:]

        if optional_default:
            if _present(member.markers, "kubebuilder:validation:Required"):
                props.required.append(field_name)
        elif not (
            inline
            or omit_empty
            or _present(member.markers, "kubebuilder:validation:Optional")
            or _present(member.markers, "optional")
        ):
            props.required.append(field_name)

        if _present(member.markers, SCHEMALESS_NAME):
            prop = JSONSchemaProps()
        else:
            prop = _type_to_schema(ctx.for_info(_blank()), _parse_type(member.type))
        prop.description = member.doc
        ctx.apply(member.markers, prop)

        if inline:
            props.all_of.append(prop)
        else:
            props.properties[field_name] = prop
    return props


class Parser:
    """Collects API types and generates their schemata and CRDs.

    Every ``need_*`` method caches its result, so it may be called repeatedly.
    Errors are recorded on the package they concern.
    """

    def __init__(
        self,
        *,
        allow_dangerous_types: bool = False,
        ignore_unexported_fields: bool = False,
        generate_embedded_object_meta: bool = False,
    ) -> None:
        self.allow_dangerous_types = allow_dangerous_types
        self.ignore_unexported_fields = ignore_unexported_fields
        self.generate_embedded_object_meta = generate_embedded_object_meta
        self.types: dict[TypeIdent, TypeInfo] = {}
        self.schemata: dict[TypeIdent, JSONSchemaProps] = {}
        self.group_versions: dict[Package, GroupVersion] = {}
        self.custom_resource_definitions: dict[GroupKind, CustomResourceDefinition] = {}
        self.flattened_schemata: dict[TypeIdent, JSONSchemaProps] = {}
        self.package_overrides: dict[str, PackageOverride] = {}
        self.package_markers: dict[Package, dict[str, list[Any]]] = {}
        self.flattener = Flattener(self)
        self._declared: dict[Package, list[TypeInfo]] = {}
        self._packages: set[Package] = set()
        self._indexed: set[Package] = set()

    def register_type(self, package: Package, info: TypeInfo) -> None:
        """Declare a type in ``package``; it is indexed when the package is added."""
        self._declared.setdefault(package, []).append(info)
        if package in self._indexed:
            self.types[TypeIdent(package=package, name=info.name)] = info

    def set_group_version(
        self, package: Package, group: str, version: Optional[str] = None
    ) -> None:
        """Give ``package`` its group (and version, defaulting to the package name)."""
        markers = self.package_markers.setdefault(package, {})
        markers["groupName"] = [group]
        if version:
            markers["versionName"] = [version]
        else:
            markers.pop("versionName", None)
        if package in self._indexed:
            self.group_versions[package] = GroupVersion(group=group, version=version or package.name)

    def _index_types(self, package: Package) -> None:
        markers = self.package_markers.get(package, {})
        if _present(markers, "kubebuilder:skip"):
            return
        group = _first(markers, "groupName")
        if group is not None:
            version = _first(markers, "versionName")
            if version is None:
                version = package.name
            self.group_versions[package] = GroupVersion(group=str(group), version=str(version))
        for info in self._declared.get(package, []):
            self.types[TypeIdent(package=package, name=info.name)] = info
        self._indexed.add(package)

    def _is_known(self, typ: TypeIdent) -> bool:
        self.need_package(typ.package)
        return typ in self.types or typ in self.schemata

    def lookup_type(self, package: Package, name: str) -> Optional[TypeInfo]:
        """Return the indexed type ``name`` in ``package``, if any."""
        return self.types.get(TypeIdent(package=package, name=name))

    def need_schema_for(self, typ: TypeIdent) -> None:
        """Generate the (unflattened) schema of ``typ`` into ``schemata``."""
        self.need_package(typ.package)
        if typ in self.schemata:
            return
        info = self.types.get(typ)
        if info is None:
            typ.package.add_error(MarkerError(f"unknown type {typ}"))
            return
        # a placeholder stops recursive types from looping
        self.schemata[typ] = JSONSchemaProps()
        ctx = _Context(
            parser=self,
            package=typ.package,
            info=info,
            package_markers=self.package_markers.get(typ.package, {}),
            top=_parse_type(info.type),
        )
        self.schemata[typ] = _info_to_schema(ctx)

    def need_flattened_schema_for(self, typ: TypeIdent) -> None:
        """Generate the reference-free, embedding-free schema of ``typ``."""
        if typ in self.flattened_schemata:
            return
        self.need_schema_for(typ)
        partial = self.flattener.flatten_type(typ)
        if partial is None:
            return
        self.flattened_schemata[typ] = flatten_embedded(partial, typ.package)

    def add_package(self, package: Package) -> None:
        """Index the types of ``package``, ignoring any override."""
        if package in self._packages:
            return
        self._index_types(package)
        self._packages.add(package)

    def need_package(self, package: Package) -> None:
        """Load ``package``, through its override when one is registered."""
        if package in self._packages:
            return
        override = self.package_overrides.get(_non_vendor_path(package.pkg_path))
        if override is not None:
            override(self, package)
            self._packages.add(package)
            return
        self.add_package(package)


def _string_schema() -> JSONSchemaProps:
    return JSONSchemaProps(type="string")


def _core_v1(parser: Parser, pkg: Package) -> None:
    parser.schemata[TypeIdent(pkg, "Protocol")] = JSONSchemaProps(type="string", default='"TCP"')
    parser.add_package(pkg)


def _meta_v1(parser: Parser, pkg: Package) -> None:
    parser.schemata[TypeIdent(pkg, "ObjectMeta")] = JSONSchemaProps(type="object")
    parser.schemata[TypeIdent(pkg, "Time")] = JSONSchemaProps(type="string", format="date-time")
    parser.schemata[TypeIdent(pkg, "MicroTime")] = JSONSchemaProps(
        type="string", format="date-time"
    )
    parser.schemata[TypeIdent(pkg, "Duration")] = JSONSchemaProps(type="string")
    # a recursive structure that cannot be flattened, so accept any map
    parser.schemata[TypeIdent(pkg, "Fields")] = JSONSchemaProps(
        type="object", additional_properties=JSONSchemaPropsOrBool(allows=True)
    )
    parser.add_package(pkg)


def _int_or_string(pattern: str = "") -> JSONSchemaProps:
    return JSONSchemaProps(
        x_int_or_string=True,
        any_of=[JSONSchemaProps(type="integer"), JSONSchemaProps(type="string")],
        pattern=pattern,
    )


def _resource(parser: Parser, pkg: Package) -> None:
    parser.schemata[TypeIdent(pkg, "Quantity")] = _int_or_string(QUANTITY_PATTERN)


def _runtime(parser: Parser, pkg: Package) -> None:
    parser.schemata[TypeIdent(pkg, "RawExtension")] = JSONSchemaProps(
        type="object", x_preserve_unknown_fields=True
    )
    parser.add_package(pkg)


def _unstructured(parser: Parser, pkg: Package) -> None:
    parser.schemata[TypeIdent(pkg, "Unstructured")] = JSONSchemaProps(type="object")
    parser.add_package(pkg)


def _intstr(parser: Parser, pkg: Package) -> None:
    parser.schemata[TypeIdent(pkg, "IntOrString")] = _int_or_string()


def _apiextensions(parser: Parser, pkg: Package) -> None:
    parser.schemata[TypeIdent(pkg, "JSON")] = JSONSchemaProps(x_preserve_unknown_fields=True)
    parser.add_package(pkg)


KNOWN_PACKAGES: dict[str, PackageOverride] = {
    "k8s.io/api/core/v1": _core_v1,
    "k8s.io/apimachinery/pkg/apis/meta/v1": _meta_v1,
    "k8s.io/apimachinery/pkg/api/resource": _resource,
    "k8s.io/apimachinery/pkg/runtime": _runtime,
    "k8s.io/apimachinery/pkg/apis/meta/v1/unstructured": _unstructured,
    "k8s.io/apimachinery/pkg/util/intstr": _intstr,
    "k8s.io/apiextensions-apiserver/pkg/apis/apiextensions/v1beta1": _apiextensions,
    "k8s.io/apiextensions-apiserver/pkg/apis/apiextensions/v1": _apiextensions,
}
"""Overrides for well-known packages whose types carry no validation markers."""


def _embedded_object_meta(parser: Parser, pkg: Package) -> None:
    known = KNOWN_PACKAGES.get("k8s.io/apimachinery/pkg/apis/meta/v1")
    if known is not None:
        known(parser, pkg)
    # only this allow-listed subset of ObjectMeta is generated
    parser.schemata[TypeIdent(pkg, "ObjectMeta")] = JSONSchemaProps(
        type="object",
        properties={
            "name": _string_schema(),
            "namespace": _string_schema(),
            "annotations": JSONSchemaProps(
                type="object",
                additional_properties=JSONSchemaPropsOrBool(schema=_string_schema()),
            ),
            "labels": JSONSchemaProps(
                type="object",
                additional_properties=JSONSchemaPropsOrBool(schema=_string_schema()),
            ),
            "finalizers": JSONSchemaProps(
                type="array",
                items=JSONSchemaPropsOrArray(schema=_string_schema()),
            ),
        },
    )


OBJECT_META_PACKAGES: dict[str, PackageOverride] = {
    "k8s.io/apimachinery/pkg/apis/meta/v1": _embedded_object_meta,
}
"""Overrides that generate embedded ObjectMeta fields."""


def add_known_types(parser: Parser) -> None:
    """Register the overrides for well-known packages with ``parser``."""
    parser.package_overrides.update(KNOWN_PACKAGES)
    if parser.generate_embedded_object_meta:
        parser.package_overrides.update(OBJECT_META_PACKAGES)