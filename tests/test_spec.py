import pytest

from crdschema.crd_markers import (
    Metadata,
    Resource,
    SkipVersion,
    StorageVersion,
    UnservedVersion,
)
from crdschema.flatten import Package
from crdschema.jsonschema import (
    CustomResourceDefinition,
    CustomResourceDefinitionNames,
    CustomResourceDefinitionSpec,
    CustomResourceDefinitionVersion,
    JSONSchemaProps,
)
from crdschema.parser import GroupKind, Parser, TypeInfo
from crdschema.spec import (
    VERSION_ANNOTATION,
    add_attribution,
    fix_top_level_metadata,
    need_crd_for,
    pluralize,
    remove_description_from_metadata,
    transform_remove_crd_status,
)

GROUP = "example.com"


def _kind(markers=None, doc="A Foo resource."):
    return TypeInfo(
        name="Foo",
        type="struct",
        doc=doc,
        markers=markers or {},
        fields=[
            TypeInfo(name="Spec", type="string", json="spec", doc="The spec of the foo."),
            TypeInfo(name="Count", type="int32", json="count,omitempty"),
        ],
    )


def _setup(versions_markers):
    parser = Parser()
    packages = []
    for version, markers in versions_markers.items():
        pkg = Package(id=f"example.com/api/{version}")
        parser.set_group_version(pkg, GROUP, version)
        parser.register_type(pkg, _kind(markers))
        parser.need_package(pkg)
        packages.append(pkg)
    return parser, packages


def _crd(versions, **spec_kwargs):
    return CustomResourceDefinition(
        name="foos.example.com",
        spec=CustomResourceDefinitionSpec(
            group=GROUP,
            names=CustomResourceDefinitionNames(
                kind="Foo", list_kind="FooList", plural="foos", singular="foo"
            ),
            scope="Namespaced",
            versions=versions,
            **spec_kwargs,
        ),
    )


@pytest.mark.parametrize(
    "word, plural",
    [("Policy", "Policies"), ("Box", "Boxes"), ("Person", "People")],
)
def test_pluralize_known_forms(word, plural):
    assert pluralize(word) == plural


def test_pluralize_regular_word_appends_s_and_keeps_case():
    result = pluralize("Widget")
    assert result == "Widget" + "s"
    assert pluralize("widget") == "widget" + "s"


def test_pluralize_vowel_y_and_uncountable():
    assert pluralize("Key") == "Key" + "s"
    assert pluralize("Sheep") == "Sheep"


def test_need_crd_for_builds_names_and_single_storage_version():
    parser, packages = _setup({"v1": None})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    crd = parser.custom_resource_definitions[gk]
    names = crd.spec.names
    assert names.plural == pluralize("Foo").lower()
    assert crd.name == f"{names.plural}.{GROUP}"
    assert names.list_kind == "FooList"
    assert names.singular == "foo"
    assert crd.spec.scope == "Namespaced"
    assert [v.name for v in crd.spec.versions] == ["v1"]
    assert crd.spec.versions[0].storage is True
    assert crd.spec.versions[0].served is True
    assert packages[0].errors == []


def test_need_crd_for_schema_contains_fields_and_required():
    parser, _ = _setup({"v1": None})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    schema = parser.custom_resource_definitions[gk].spec.versions[0].schema
    assert schema.type == "object"
    assert set(schema.properties) == {"spec", "count"}
    assert schema.properties["count"].format == "int32"
    assert schema.required == ["spec"]
    assert schema.properties["spec"].description == "The spec of the foo."


def test_need_crd_for_zero_desc_len_drops_descriptions_without_touching_cache():
    parser, packages = _setup({"v1": None})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, 0)
    schema = parser.custom_resource_definitions[gk].spec.versions[0].schema
    assert schema.description == ""
    assert schema.properties["spec"].description == ""
    cached = next(iter(parser.flattened_schemata.values()))
    assert cached.properties["spec"].description == "The spec of the foo."


def test_need_crd_for_is_cached():
    parser, _ = _setup({"v1": None})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    first = parser.custom_resource_definitions[gk]
    need_crd_for(parser, gk, 0)
    assert parser.custom_resource_definitions[gk] is first


def test_need_crd_for_resource_marker_renames():
    parser, _ = _setup({"v1": {"kubebuilder:resource": [Resource(path="foobars", scope="Cluster")]}})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    crd = parser.custom_resource_definitions[gk]
    assert crd.name == "foobars." + GROUP
    assert crd.spec.scope == "Cluster"


def test_need_crd_for_metadata_marker_sets_annotations():
    marker = Metadata(annotations=("team=platform",), labels=("tier=backend",))
    parser, _ = _setup({"v1": {"kubebuilder:metadata": [marker]}})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    crd = parser.custom_resource_definitions[gk]
    assert crd.annotations["team"] == "platform"
    assert crd.labels["tier"] == "backend"


def test_need_crd_for_bad_metadata_records_error():
    parser, packages = _setup({"v1": {"kubebuilder:metadata": [Metadata(annotations=("broken",))]}})
    need_crd_for(parser, GroupKind(group=GROUP, kind="Foo"), None)
    assert len(packages[0].errors) == 1
    assert "broken" in str(packages[0].errors[0])


def test_need_crd_for_skipped_only_version_stores_nothing():
    parser, _ = _setup({"v1": {"kubebuilder:skipversion": [SkipVersion()]}})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    assert gk not in parser.custom_resource_definitions


def test_need_crd_for_multiple_versions_without_storage_errors():
    parser, packages = _setup({"v2": None, "v1": None})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    crd = parser.custom_resource_definitions[gk]
    assert [v.name for v in crd.spec.versions] == ["v1", "v2"]
    all_errors = [str(e) for pkg in packages for e in pkg.errors]
    assert any("has no storage version" in msg for msg in all_errors)


def test_need_crd_for_storage_marker_selects_version():
    parser, packages = _setup(
        {"v1": None, "v2": {"kubebuilder:storageversion": [StorageVersion()]}}
    )
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    crd = parser.custom_resource_definitions[gk]
    assert [v.storage for v in crd.spec.versions] == [False, True]
    assert all(pkg.errors == [] for pkg in packages)


def test_need_crd_for_unserved_only_version_errors():
    parser, packages = _setup({"v1": {"kubebuilder:unservedversion": [UnservedVersion()]}})
    gk = GroupKind(group=GROUP, kind="Foo")
    need_crd_for(parser, gk, None)
    assert parser.custom_resource_definitions[gk].spec.versions[0].served is False
    assert any("does not serve any version" in str(e) for e in packages[0].errors)


def test_need_crd_for_other_group_is_ignored():
    parser, _ = _setup({"v1": None})
    gk = GroupKind(group="other.example.com", kind="Foo")
    need_crd_for(parser, gk, None)
    assert gk not in parser.custom_resource_definitions


def test_fix_top_level_metadata_resets_schema():
    schema = JSONSchemaProps(
        type="object",
        properties={
            "metadata": JSONSchemaProps(type="object", description="meta", properties={"name": JSONSchemaProps(type="string")}),
            "spec": JSONSchemaProps(type="string"),
        },
    )
    crd = _crd([CustomResourceDefinitionVersion(name="v1", served=True, schema=schema)])
    fix_top_level_metadata(crd)
    props = crd.spec.versions[0].schema.properties
    assert props["metadata"] == JSONSchemaProps(type="object")
    assert props["spec"] == JSONSchemaProps(type="string")


def test_remove_description_from_metadata():
    schema = JSONSchemaProps(
        type="object",
        properties={
            "metadata": JSONSchemaProps(type="object", description="meta"),
            "spec": JSONSchemaProps(type="string", description="kept"),
        },
    )
    crd = _crd([CustomResourceDefinitionVersion(name="v1", served=True, schema=schema)])
    remove_description_from_metadata(crd)
    props = crd.spec.versions[0].schema.properties
    assert props["metadata"].description == ""
    assert props["spec"].description == "kept"


def test_add_attribution_sets_version_annotation():
    crd = _crd([])
    add_attribution(crd, "v0.14.0")
    assert crd.annotations[VERSION_ANNOTATION] == "v0.14.0"
    assert VERSION_ANNOTATION == "controller-gen.kubebuilder.io/version"


def test_transform_remove_crd_status():
    obj = {"kind": "CustomResourceDefinition", "status": {"conditions": []}}
    result = transform_remove_crd_status(obj)
    assert result == {"kind": "CustomResourceDefinition"}
    assert transform_remove_crd_status({"kind": "X"}) == {"kind": "X"}