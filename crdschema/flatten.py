"""Resolution of schema references and flattening of embedded (allOf) schemata."""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping
from dataclasses import Field, MISSING, dataclass, field, fields
from typing import Any, Optional, Protocol

from crdschema.jsonschema import (
    JSONSchemaProps,
    JSONSchemaPropsOrArray,
    JSONSchemaPropsOrBool,
    MarkerError,
    SchemaVisitor,
    edit_schema,
)

DEF_PREFIX = "#/definitions/"
"""Prefix of the links that point at type definitions in a schema."""

# documentation fields are merged separately so field docs survive flattening
_NOT_MERGED = frozenset({"all_of", "title", "description", "example", "external_docs"})


class _ErrorRecorder(Protocol):
    def add_error(self, error: Exception) -> None: ...


class _SchemaSource(Protocol):
    schemata: Mapping[TypeIdent, JSONSchemaProps]

    def need_schema_for(self, typ: TypeIdent) -> None: ...


@dataclass(eq=False)
class Package:
    """A package of API types; errors found while processing it are recorded here."""

    id: str
    name: str = ""
    pkg_path: str = ""
    imports: dict[str, Package] = field(default_factory=dict)
    errors: list[Exception] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.pkg_path:
            self.pkg_path = self.id
        if not self.name:
            self.name = self.id.rsplit("/", 1)[-1]

    def add_error(self, error: Exception) -> None:
        """Record that ``error`` occurred while processing this package."""
        self.errors.append(error)


@dataclass(frozen=True)
class TypeIdent:
    """A named type within a package."""

    package: Package
    name: str

    def __str__(self) -> str:
        return f'"{self.package.id}".{self.name}'


def _zero(spec: Field) -> Any:
    if spec.default is not MISSING:
        return spec.default
    return spec.default_factory()  # type: ignore[misc]


def _is_empty(value: Any, zero: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, dict)):
        return not value
    return value == zero


def _detached(value: Any) -> Any:
    if isinstance(
        value, (list, dict, JSONSchemaProps, JSONSchemaPropsOrBool, JSONSchemaPropsOrArray)
    ):
        return copy.deepcopy(value)
    return value


def flatten_all_of_into(
    dst: JSONSchemaProps, src: JSONSchemaProps, err_rec: _ErrorRecorder
) -> None:
    """Merge ``src`` and each of its allOf entries into ``dst``.

    Values that cannot be merged are hoisted into a pair of allOf entries on
    ``dst``; conflicting types are reported to ``err_rec``.
    """
    for embedded in src.all_of:
        flatten_all_of_into(dst, embedded, err_rec)

    dst_remainder = JSONSchemaProps()
    src_remainder = JSONSchemaProps()
    hoisted = False

    for spec in fields(JSONSchemaProps):
        name = spec.name
        if name in _NOT_MERGED:
            continue
        zero = _zero(spec)
        src_val = getattr(src, name)
        if _is_empty(src_val, zero):
            continue
        dst_val = getattr(dst, name)
        if _is_empty(dst_val, zero):
            setattr(dst, name, _detached(src_val))
            continue
        if not isinstance(src_val, (list, dict)) and src_val == dst_val:
            continue

        if name == "properties":
            for key, value in src_val.items():
                if key not in dst_val:
                    dst_val[key] = value.deep_copy()
                else:
                    flatten_all_of_into(dst_val[key], value, err_rec)
        elif name == "required":
            dst.required = [*dst_val, *src_val]
        elif name == "type":
            err_rec.add_error(
                MarkerError(
                    f"conflicting types in allOf branches in schema: {dst_val} vs {src_val}"
                )
            )
        elif name == "additional_properties":
            if src_val.schema is None:
                continue
            if dst_val.schema is None:
                dst_val.schema = JSONSchemaProps()
            flatten_all_of_into(dst_val.schema, src_val.schema, err_rec)
        elif name in ("x_preserve_unknown_fields", "x_map_type"):
            setattr(dst, name, src_val)
        else:
            hoisted = True
            setattr(src_remainder, name, _detached(src_val))
            setattr(dst_remainder, name, dst_val)
            setattr(dst, name, _zero(spec))

    if hoisted:
        dst.all_of.extend([dst_remainder, src_remainder])

    if dst.required:
        dst.required = sorted(set(dst.required))


class _AllOfVisitor(SchemaVisitor):
    def __init__(self, err_rec: _ErrorRecorder) -> None:
        self.err_rec = err_rec

    def visit(self, schema: Optional[JSONSchemaProps]) -> Optional[SchemaVisitor]:
        if schema is None:
            return self
        original = schema.all_of
        schema.all_of = []
        for embedded in original:
            flatten_all_of_into(schema, embedded, self.err_rec)
        return self


def flatten_embedded(schema: JSONSchemaProps, err_rec: _ErrorRecorder) -> JSONSchemaProps:
    """Return a copy of a reference-free schema with its allOf entries merged in."""
    out = schema.deep_copy()
    edit_schema(out, _AllOfVisitor(err_rec))
    return out


def _qualified_name(pkg_name: str, type_name: str) -> str:
    if pkg_name:
        return pkg_name.replace("/", "~1") + "~0" + type_name
    return type_name


def type_ref_link(pkg_name: str, type_name: str) -> str:
    """Build the definition link for a type, qualified by package when given."""
    return DEF_PREFIX + _qualified_name(pkg_name, type_name)


def ref_parts(ref: str) -> tuple[str, str]:
    """Split a definition link into ``(type name, package path)``.

    The package path is empty for a reference local to the current package.
    """
    if not ref.startswith(DEF_PREFIX):
        raise ValueError(f'non-standard reference link "{ref}"')
    ref = ref[len(DEF_PREFIX):].replace("~1", "/").replace("~0", "~")
    pkg_name, sep, type_name = ref.partition("~")
    if not sep:
        return pkg_name, ""
    return type_name, pkg_name


def ident_from_ref(ref: str, context_pkg: Package) -> TypeIdent:
    """Resolve a definition link, relative to ``context_pkg``, to the type it names."""
    type_name, pkg_name = ref_parts(ref)
    if not pkg_name:
        return TypeIdent(package=context_pkg, name=type_name)
    imported = context_pkg.imports.get(pkg_name)
    if imported is None:
        raise ValueError(f'package "{pkg_name}" is not imported by "{context_pkg.id}"')
    return TypeIdent(package=imported, name=type_name)


def _assign(dst: JSONSchemaProps, src: JSONSchemaProps) -> None:
    for spec in fields(JSONSchemaProps):
        setattr(dst, spec.name, getattr(src, spec.name))


def _preserve_fields(dst: JSONSchemaProps, src: JSONSchemaProps) -> None:
    """Wrap ``dst`` with the field-level docs and validation found on ``src``."""
    stripped = copy.copy(src)
    stripped.description = ""
    stripped.title = ""
    stripped.external_docs = None
    stripped.example = None
    stripped.ref = None

    wrapped = JSONSchemaProps(
        all_of=[copy.copy(dst), stripped],
        description=dst.description,
        title=dst.title,
        external_docs=dst.external_docs,
        example=dst.example,
    )
    if src.description:
        wrapped.description = src.description
    if src.title:
        wrapped.title = src.title
    if src.external_docs is not None:
        wrapped.external_docs = src.external_docs
    if src.example is not None:
        wrapped.example = src.example
    _assign(dst, wrapped)


class Flattener:
    """Replaces references in schemata with the schemata they point at.

    Flattened types are cached, so repeated requests for a type are cheap.
    ``parser`` supplies ``schemata`` and ``need_schema_for``.
    """

    def __init__(
        self,
        parser: _SchemaSource,
        lookup_reference: Optional[Callable[[str, Package], TypeIdent]] = None,
    ) -> None:
        self.parser = parser
        self.lookup_reference = lookup_reference or ident_from_ref
        self.flattened_types: dict[TypeIdent, JSONSchemaProps] = {}

    def _cache_type(self, typ: TypeIdent, schema: JSONSchemaProps) -> None:
        self.flattened_types[typ] = schema.deep_copy()

    def _load_unflattened_schema(self, typ: TypeIdent) -> JSONSchemaProps:
        self.parser.need_schema_for(typ)
        schema = self.parser.schemata.get(typ)
        if schema is None:
            raise LookupError(f"unable to locate schema for type {typ}")
        return schema

    def flatten_type(self, typ: TypeIdent) -> Optional[JSONSchemaProps]:
        """Return the flattened schema of a type, or None (recording an error)."""
        cached = self.flattened_types.get(typ)
        if cached is not None:
            return cached.deep_copy()
        try:
            base = self._load_unflattened_schema(typ)
        except LookupError as err:
            typ.package.add_error(err)
            return None
        result = self.flatten_schema(base, typ.package)
        self._cache_type(typ, result)
        return result

    def flatten_schema(
        self, base_schema: JSONSchemaProps, current_package: Package
    ) -> JSONSchemaProps:
        """Return a copy of ``base_schema`` with every reference resolved."""
        result = base_schema.deep_copy()
        edit_schema(result, _FlattenVisitor(self, current_package))
        return result


class _FlattenVisitor(SchemaVisitor):
    def __init__(
        self,
        flattener: Flattener,
        current_package: Package,
        current_type: Optional[TypeIdent] = None,
        current_schema: Optional[JSONSchemaProps] = None,
        original_field: Optional[JSONSchemaProps] = None,
    ) -> None:
        self.flattener = flattener
        self.current_package = current_package
        self.current_type = current_type
        self.current_schema = current_schema
        self.original_field = original_field

    def visit(self, schema: Optional[JSONSchemaProps]) -> Optional[SchemaVisitor]:
        flattener = self.flattener
        if schema is None:
            if self.current_type is not None:
                assert self.current_schema is not None and self.original_field is not None
                flattener._cache_type(self.current_type, self.current_schema)
                # field information is added after caching so the cached type stays generic
                _preserve_fields(self.current_schema, self.original_field)
            return self

        if schema.ref:
            try:
                ref_ident = flattener.lookup_reference(schema.ref, self.current_package)
            except ValueError as err:
                self.current_package.add_error(err)
                return None

            cached = flattener.flattened_types.get(ref_ident)
            if cached is not None:
                resolved = cached.deep_copy()
                _preserve_fields(resolved, schema)
                _assign(schema, resolved)
                return None

            try:
                ref_schema = flattener._load_unflattened_schema(ref_ident)
            except LookupError as err:
                self.current_package.add_error(err)
                return None

            original = copy.copy(schema)
            _assign(schema, ref_schema.deep_copy())
            # guard against reference loops while this type is being flattened
            flattener._cache_type(ref_ident, JSONSchemaProps())
            return _FlattenVisitor(
                flattener,
                ref_ident.package,
                current_type=ref_ident,
                current_schema=schema,
                original_field=original,
            )

        if self.current_type is not None:
            # a fresh visitor keeps this node's end-of-node caching from firing early
            return _FlattenVisitor(flattener, self.current_package)
        return self