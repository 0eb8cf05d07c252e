"""Assembly of CustomResourceDefinitions from parsed API types."""

from __future__ import annotations

from typing import Any, Optional

from crdschema.crd_markers import Metadata
from crdschema.description import truncate_description
from crdschema.flatten import Package, TypeIdent
from crdschema.jsonschema import (
    CustomResourceDefinition,
    CustomResourceDefinitionNames,
    CustomResourceDefinitionSpec,
    CustomResourceDefinitionVersion,
    JSONSchemaProps,
    MarkerError,
)
from crdschema.parser import GroupKind, Parser

VERSION_ANNOTATION = "controller-gen.kubebuilder.io/version"
"""Annotation recording the version of the generator that produced a CRD."""

_IRREGULAR = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "louse": "lice",
    "goose": "geese",
    "foot": "feet",
    "tooth": "teeth",
    "ox": "oxen",
    "die": "dice",
    "leaf": "leaves",
    "knife": "knives",
    "life": "lives",
    "wife": "wives",
    "half": "halves",
    "wolf": "wolves",
    "shelf": "shelves",
    "calf": "calves",
    "thief": "thieves",
    "index": "indices",
    "matrix": "matrices",
    "vertex": "vertices",
    "criterion": "criteria",
    "datum": "data",
    "analysis": "analyses",
    "basis": "bases",
    "crisis": "crises",
    "axis": "axes",
    "quiz": "quizzes",
}

_UNCOUNTABLE = frozenset(
    {
        "equipment", "information", "rice", "money", "species", "series",
        "fish", "sheep", "deer", "news", "police", "metadata", "data",
    }
)

_ALREADY_PLURAL = frozenset(_IRREGULAR.values())


def _match_case(template: str, word: str) -> str:
    if len(template) > 1 and template.isupper():
        return word.upper()
    if template[:1].isupper():
        return word[:1].upper() + word[1:]
    return word


def pluralize(word: str) -> str:
    """Return the English plural of ``word``, keeping its capitalisation."""
    if not word:
        return word
    lower = word.lower()
    if lower in _UNCOUNTABLE or lower in _ALREADY_PLURAL:
        return word
    irregular = _IRREGULAR.get(lower)
    if irregular is not None:
        return _match_case(word, irregular)
    shout = len(word) > 1 and word.isupper()
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        suffix = "es"
        stem = word
    elif lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        suffix = "ies"
        stem = word[:-1]
    else:
        suffix = "s"
        stem = word
    return stem + (suffix.upper() if shout else suffix)


def _apply_crd_markers(
    crd: CustomResourceDefinition, package: Package, markers: dict[str, list[Any]], version: str
) -> None:
    for values in markers.values():
        for value in values:
            if not callable(getattr(value, "apply_to_crd", None)):
                continue
            target = crd if isinstance(value, Metadata) else crd.spec
            try:
                value.apply_to_crd(target, version)
            except MarkerError as err:
                package.add_error(err)


def need_crd_for(
    parser: Parser, group_kind: GroupKind, max_desc_len: Optional[int]
) -> None:
    """Build the CRD for ``group_kind`` into ``parser.custom_resource_definitions``.

    The packages holding the kind's types must already be loaded.  Nothing is
    stored when no version remains; problems are recorded on the packages.
    """
    if group_kind in parser.custom_resource_definitions:
        return

    packages = [
        pkg for pkg, gv in parser.group_versions.items() if gv.group == group_kind.group
    ]

    default_plural = pluralize(group_kind.kind).lower()
    crd = CustomResourceDefinition(
        name=f"{default_plural}.{group_kind.group}",
        spec=CustomResourceDefinitionSpec(
            group=group_kind.group,
            names=CustomResourceDefinitionNames(
                kind=group_kind.kind,
                list_kind=group_kind.kind + "List",
                plural=default_plural,
                singular=group_kind.kind.lower(),
            ),
            scope="Namespaced",
        ),
    )

    for pkg in packages:
        ident = TypeIdent(package=pkg, name=group_kind.kind)
        if parser.types.get(ident) is None:
            continue
        parser.need_flattened_schema_for(ident)
        flattened = parser.flattened_schemata.get(ident)
        full_schema = flattened.deep_copy() if flattened is not None else JSONSchemaProps()
        if max_desc_len is not None:
            truncate_description(full_schema, max_desc_len)
        crd.spec.versions.append(
            CustomResourceDefinitionVersion(
                name=parser.group_versions[pkg].version,
                served=True,
                schema=full_schema,
            )
        )

    # markers go on after the versions exist
    for pkg in packages:
        ident = TypeIdent(package=pkg, name=group_kind.kind)
        info = parser.types.get(ident)
        if info is None:
            continue
        _apply_crd_markers(crd, pkg, info.markers, parser.group_versions[pkg].version)

    crd.name = f"{crd.spec.names.plural}.{group_kind.group}"

    if not crd.spec.versions:
        return

    crd.spec.versions.sort(key=lambda ver: ver.name)

    if len(crd.spec.versions) == 1:
        crd.spec.versions[0].storage = True

    if not any(ver.storage for ver in crd.spec.versions):
        packages[0].add_error(MarkerError(f"CRD for {group_kind} has no storage version"))

    if not any(ver.served for ver in crd.spec.versions):
        names = [ver.name for ver in crd.spec.versions]
        packages[0].add_error(
            MarkerError(
                f"CRD for {group_kind} with version(s) {names} does not serve any version"
            )
        )

    parser.custom_resource_definitions[group_kind] = crd


def fix_top_level_metadata(crd: CustomResourceDefinition) -> None:
    """Reset the top-level ``metadata`` property of every version to a bare object."""
    for ver in crd.spec.versions:
        schema = ver.schema
        if schema is not None and "metadata" in schema.properties:
            schema.properties["metadata"] = JSONSchemaProps(type="object")


def remove_description_from_metadata(crd: CustomResourceDefinition) -> None:
    """Clear the description of the top-level ``metadata`` property in every version."""
    for ver in crd.spec.versions:
        schema = ver.schema
        if schema is None:
            continue
        meta = schema.properties.get("metadata")
        if meta is not None and meta.description:
            meta.description = ""


def add_attribution(crd: CustomResourceDefinition, version: str) -> None:
    """Annotate ``crd`` with the generator version that produced it."""
    crd.annotations[VERSION_ANNOTATION] = version


def transform_remove_crd_status(obj: dict[str, Any]) -> dict[str, Any]:
    """Drop the ``status`` key from a serialised CRD and return it."""
    obj.pop("status", None)
    return obj