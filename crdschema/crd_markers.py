"""Markers that modify a CustomResourceDefinition other than its validation schema."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from crdschema.jsonschema import (
    CustomResourceColumnDefinition,
    CustomResourceDefinition,
    CustomResourceDefinitionSpec,
    CustomResourceDefinitionVersion,
    CustomResourceSubresources,
    CustomResourceSubresourceScale,
    MarkerError,
)


def _find_version(
    spec: CustomResourceDefinitionSpec, version: str
) -> Optional[CustomResourceDefinitionVersion]:
    return next((ver for ver in spec.versions if ver.name == version), None)


def _subresources_for(
    spec: CustomResourceDefinitionSpec, version: str
) -> Optional[CustomResourceSubresources]:
    ver = _find_version(spec, version)
    if ver is None:
        return None
    if ver.subresources is None:
        ver.subresources = CustomResourceSubresources()
    return ver.subresources


def _split_pairs(entries: tuple[str, ...], what: str) -> list[tuple[str, str]]:
    pairs = []
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep:
            raise MarkerError(f"{what} {entry} is not in 'xxx=xxx' format")
        pairs.append((key, value))
    return pairs


@dataclass(frozen=True)
class SubresourceStatus:
    """Enables the "/status" subresource on a CRD."""

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        subresources = _subresources_for(spec, version)
        if subresources is None:
            raise MarkerError(f'status subresource applied to version "{version}" not in CRD')
        subresources.status = True


@dataclass(frozen=True)
class SubresourceScale:
    """Enables the "/scale" subresource on a CRD."""

    spec_path: str = ""
    status_path: str = ""
    selector_path: Optional[str] = None

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        subresources = _subresources_for(spec, version)
        if subresources is None:
            raise MarkerError(f'scale subresource applied to version "{version}" not in CRD')
        subresources.scale = CustomResourceSubresourceScale(
            spec_replicas_path=self.spec_path,
            status_replicas_path=self.status_path,
            label_selector_path=self.selector_path,
        )


@dataclass(frozen=True)
class StorageVersion:
    """Marks this version as the storage version of the CRD."""

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        if not version:
            return
        ver = _find_version(spec, version)
        if ver is not None:
            ver.storage = True


@dataclass(frozen=True)
class SkipVersion:
    """Removes this version from the CRD's spec."""

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        if not version:
            raise MarkerError("cannot skip a version if there is only a single version")
        spec.versions = [ver for ver in spec.versions if ver.name != version]


@dataclass(frozen=True)
class PrintColumn:
    """Adds a column to "kubectl get" output for this CRD."""

    name: str
    type: str
    json_path: str
    description: str = ""
    format: str = ""
    priority: int = 0

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        ver = _find_version(spec, version)
        if ver is None:
            raise MarkerError(f'printer columns applied to version "{version}" not in CRD')
        if ver.subresources is None:
            ver.subresources = CustomResourceSubresources()
        ver.additional_printer_columns.append(
            CustomResourceColumnDefinition(
                name=self.name,
                type=self.type,
                json_path=self.json_path,
                description=self.description,
                format=self.format,
                priority=self.priority,
            )
        )


@dataclass(frozen=True)
class Resource:
    """Configures naming and scope for a CRD."""

    path: str = ""
    short_name: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    singular: str = ""
    scope: str = ""

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        if self.path:
            spec.names.plural = self.path
        if self.singular:
            spec.names.singular = self.singular
        spec.names.short_names = list(self.short_name)
        spec.names.categories = list(self.categories)
        spec.scope = self.scope or "Namespaced"


@dataclass(frozen=True)
class UnservedVersion:
    """Stops serving this version."""

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        ver = _find_version(spec, version)
        if ver is not None:
            ver.served = False


@dataclass(frozen=True)
class DeprecatedVersion:
    """Marks this version as deprecated, with an optional warning."""

    warning: Optional[str] = None

    def apply_to_crd(self, spec: CustomResourceDefinitionSpec, version: str) -> None:
        if not version:
            return
        ver = _find_version(spec, version)
        if ver is not None:
            ver.deprecated = True
            ver.deprecation_warning = self.warning


@dataclass(frozen=True)
class Metadata:
    """Adds annotations and labels, given as "key=value", to the CRD."""

    annotations: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()

    def apply_to_crd(self, crd: CustomResourceDefinition, version: str) -> None:
        for key, value in _split_pairs(self.annotations, "annotation"):
            crd.annotations[key] = value
        for key, value in _split_pairs(self.labels, "label"):
            crd.labels[key] = value


CRD_MARKERS = {
    "kubebuilder:subresource:status": SubresourceStatus,
    "kubebuilder:subresource:scale": SubresourceScale,
    "kubebuilder:printcolumn": PrintColumn,
    "kubebuilder:resource": Resource,
    "kubebuilder:storageversion": StorageVersion,
    "kubebuilder:skipversion": SkipVersion,
    "kubebuilder:unservedversion": UnservedVersion,
    "kubebuilder:deprecatedversion": DeprecatedVersion,
    "kubebuilder:metadata": Metadata,
}
"""Marker names of the CRD-level markers, mapped to their classes."""