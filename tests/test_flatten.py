import pytest

from crdschema.flatten import (
    Flattener,
    Package,
    TypeIdent,
    flatten_all_of_into,
    flatten_embedded,
    ident_from_ref,
    ref_parts,
    type_ref_link,
)
from crdschema.jsonschema import JSONSchemaProps, MarkerError


class _FakeParser:
    def __init__(self, schemata):
        self.schemata = schemata
        self.requested = []

    def need_schema_for(self, typ):
        self.requested.append(typ)


@pytest.fixture
def pkg():
    return Package("example.com/api/v1")


def test_ref_parts_local():
    assert ref_parts("#/definitions/Foo") == ("Foo", "")


def test_type_ref_link_pinned_format():
    assert type_ref_link("", "Foo") == "#/definitions/Foo"
    assert type_ref_link("k8s.io/api/core/v1", "Pod") == "#/definitions/k8s.io~1api~1core~1v1~0Pod"


def test_ref_parts_round_trip():
    link = type_ref_link("example.com/a/b", "Widget")
    assert ref_parts(link) == ("Widget", "example.com/a/b")


def test_ref_parts_rejects_non_standard():
    with pytest.raises(ValueError):
        ref_parts("Foo")


def test_ident_from_ref_local(pkg):
    ident = ident_from_ref("#/definitions/Spec", pkg)
    assert ident == TypeIdent(package=pkg, name="Spec")


def test_ident_from_ref_imported(pkg):
    other = Package("example.com/other")
    pkg.imports["example.com/other"] = other
    ident = ident_from_ref(type_ref_link("example.com/other", "Thing"), pkg)
    assert ident.package is other
    assert ident.name == "Thing"


def test_ident_from_ref_unknown_import(pkg):
    with pytest.raises(ValueError):
        ident_from_ref(type_ref_link("example.com/missing", "Thing"), pkg)


def test_type_ident_str(pkg):
    assert str(TypeIdent(pkg, "Foo")) == '"example.com/api/v1".Foo'


def test_add_error_records(pkg):
    err = ValueError("boom")
    pkg.add_error(err)
    assert pkg.errors == [err]


def test_flatten_all_of_merges_properties_and_required(pkg):
    dst = JSONSchemaProps(
        type="object",
        required=["b", "a"],
        properties={"a": JSONSchemaProps(type="string")},
    )
    src = JSONSchemaProps(
        type="object",
        required=["a", "c"],
        properties={"c": JSONSchemaProps(type="integer")},
    )
    flatten_all_of_into(dst, src, pkg)
    assert set(dst.properties) == {"a", "c"}
    assert dst.properties["c"] == JSONSchemaProps(type="integer")
    assert dst.required == sorted(set(["b", "a", "c"]))
    assert pkg.errors == []


def test_flatten_all_of_type_conflict_recorded(pkg):
    dst = JSONSchemaProps(type="string")
    src = JSONSchemaProps(type="integer")
    flatten_all_of_into(dst, src, pkg)
    assert dst.type == "string"
    assert len(pkg.errors) == 1
    assert isinstance(pkg.errors[0], MarkerError)


def test_flatten_all_of_hoists_conflicts(pkg):
    dst = JSONSchemaProps(type="integer", maximum=5.0)
    src = JSONSchemaProps(type="integer", maximum=3.0)
    flatten_all_of_into(dst, src, pkg)
    assert dst.maximum is None
    assert dst.all_of == [JSONSchemaProps(maximum=5.0), JSONSchemaProps(maximum=3.0)]


def test_flatten_all_of_does_not_merge_docs(pkg):
    dst = JSONSchemaProps(description="kept")
    src = JSONSchemaProps(description="ignored", type="object")
    flatten_all_of_into(dst, src, pkg)
    assert dst.description == "kept"
    assert dst.type == "object"


def test_flatten_embedded_leaves_input_untouched(pkg):
    schema = JSONSchemaProps(
        type="object",
        properties={"x": JSONSchemaProps(type="string")},
        all_of=[JSONSchemaProps(properties={"y": JSONSchemaProps(type="boolean")})],
    )
    before = schema.deep_copy()
    out = flatten_embedded(schema, pkg)
    assert schema == before
    assert out.all_of == []
    assert set(out.properties) == {"x", "y"}


def _spec_setup(pkg):
    spec_ident = TypeIdent(pkg, "Spec")
    root_ident = TypeIdent(pkg, "Root")
    spec_schema = JSONSchemaProps(
        type="object",
        description="spec type doc",
        properties={"size": JSONSchemaProps(type="integer")},
    )
    root_schema = JSONSchemaProps(
        type="object",
        properties={
            "spec": JSONSchemaProps(ref=type_ref_link("", "Spec"), description="field doc")
        },
    )
    parser = _FakeParser({spec_ident: spec_schema, root_ident: root_schema})
    return parser, root_ident, spec_ident


def test_flatten_type_resolves_references(pkg):
    parser, root_ident, _ = _spec_setup(pkg)
    flattener = Flattener(parser)
    flat = flattener.flatten_type(root_ident)
    full = flatten_embedded(flat, pkg)
    spec = full.properties["spec"]
    assert spec.ref is None
    assert spec.type == "object"
    assert spec.description == "field doc"
    assert spec.properties == {"size": JSONSchemaProps(type="integer")}
    assert pkg.errors == []


def test_flatten_type_does_not_change_parser_schemata(pkg):
    parser, root_ident, spec_ident = _spec_setup(pkg)
    before = {k: v.deep_copy() for k, v in parser.schemata.items()}
    Flattener(parser).flatten_type(root_ident)
    assert parser.schemata == before


def test_flatten_type_is_cached(pkg):
    parser, root_ident, _ = _spec_setup(pkg)
    flattener = Flattener(parser)
    first = flattener.flatten_type(root_ident)
    count = len(parser.requested)
    first.properties.clear()
    second = flattener.flatten_type(root_ident)
    assert len(parser.requested) == count
    assert "spec" in second.properties


def test_flatten_type_missing_schema(pkg):
    parser = _FakeParser({})
    result = Flattener(parser).flatten_type(TypeIdent(pkg, "Nope"))
    assert result is None
    assert len(pkg.errors) == 1
    assert isinstance(pkg.errors[0], LookupError)


def test_bad_reference_records_error(pkg):
    parser = _FakeParser({})
    schema = JSONSchemaProps(properties={"x": JSONSchemaProps(ref="not-a-link")})
    out = Flattener(parser).flatten_schema(schema, pkg)
    assert out.properties["x"].ref == "not-a-link"
    assert len(pkg.errors) == 1
    assert isinstance(pkg.errors[0], ValueError)


def test_recursive_type_terminates(pkg):
    node_ident = TypeIdent(pkg, "Node")
    node = JSONSchemaProps(
        type="object",
        properties={"child": JSONSchemaProps(ref=type_ref_link("", "Node"))},
    )
    parser = _FakeParser({node_ident: node})
    root = JSONSchemaProps(properties={"node": JSONSchemaProps(ref=type_ref_link("", "Node"))})
    out = Flattener(parser).flatten_schema(root, pkg)
    resolved = out.properties["node"]
    assert resolved.ref is None
    inner = resolved.all_of[0].properties["child"]
    assert inner.ref is None


def test_custom_lookup_reference(pkg):
    target = TypeIdent(pkg, "Target")
    parser = _FakeParser({target: JSONSchemaProps(type="string")})
    seen = []

    def lookup(ref, context):
        seen.append((ref, context))
        return target

    schema = JSONSchemaProps(properties={"v": JSONSchemaProps(ref="#/definitions/Anything")})
    out = flatten_embedded(Flattener(parser, lookup).flatten_schema(schema, pkg), pkg)
    assert seen == [("#/definitions/Anything", pkg)]
    assert out.properties["v"].type == "string"