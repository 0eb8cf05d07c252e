# crdschema

A library for building OpenAPI v3 validation schemas and
CustomResourceDefinition (CRD) objects from type declarations annotated with
markers.

## Modules

- `crdschema.jsonschema` models schemas (`JSONSchemaProps`) and CRD objects
  (`CustomResourceDefinition`, `CustomResourceDefinitionSpec`,
  `CustomResourceDefinitionVersion` and friends). `to_dict()` gives the
  manifest form. `edit_schema` walks a schema in place with a
  `SchemaVisitor`. Markers that cannot apply raise `MarkerError`.
- `crdschema.description` trims descriptions to a maximum length, cutting at
  the nearest sentence end (`truncate_description`, `truncate_string`).
- `crdschema.priority` applies schema markers in priority order
  (`apply_markers`, `marker_priority`) and maps builtin kinds such as
  `int32` or `string` to schema type and format (`builtin_to_type`).
- `crdschema.validation` holds validation markers: `Maximum`, `Minimum`,
  `MultipleOf`, `MaxLength`, `Pattern`, `MaxItems`, `UniqueItems`, `Enum`,
  `Format`, `Type`, `Nullable`, `Default`, `Example`,
  `XPreserveUnknownFields`, `XEmbeddedResource`, `XIntOrString`,
  `Schemaless`, `XValidation` and the rest.
- `crdschema.topology` holds `ListType`, `ListMapKey`, `MapType` and
  `StructType`.
- `crdschema.crd_markers` holds markers that change the CRD itself:
  `SubresourceStatus`, `SubresourceScale`, `PrintColumn`, `Resource`,
  `StorageVersion`, `SkipVersion`, `UnservedVersion`, `DeprecatedVersion`
  and `Metadata`.
- `crdschema.flatten` resolves `$ref` links (`Flattener`, `ref_parts`,
  `type_ref_link`, `ident_from_ref`) and folds embedded `allOf` branches into
  their parent (`flatten_all_of_into`, `flatten_embedded`). `Package` and
  `TypeIdent` identify types; errors are recorded on `Package.errors`.
- `crdschema.parser` keeps registered types (`TypeInfo`), generates their
  schemas and group-versions (`Parser`), and registers overrides for
  well-known Kubernetes packages (`add_known_types`).
- `crdschema.spec` assembles full CRDs (`need_crd_for`) and prepares them
  for output (`fix_top_level_metadata`, `remove_description_from_metadata`,
  `add_attribution`, `transform_remove_crd_status`, `pluralize`).

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Examples

Applying markers to a single schema:

```python
from crdschema.jsonschema import JSONSchemaProps
from crdschema.description import truncate_description
from crdschema.validation import Maximum

schema = JSONSchemaProps(
    type="integer",
    description="Replica count. Must be positive. More text follows",
)
Maximum(10).apply_to_schema(schema)
truncate_description(schema, 40)

print(schema.to_dict())
# {'description': 'Replica count. Must be positive.', 'type': 'integer', 'maximum': 10.0}
```

Building a CRD from registered types:

```python
from crdschema.flatten import Package
from crdschema.parser import GroupKind, Parser, TypeInfo, add_known_types
from crdschema.spec import need_crd_for
from crdschema.validation import Minimum

pkg = Package("example.com/api/v1")
parser = Parser()
add_known_types(parser)
parser.set_group_version(pkg, "example.com")
parser.register_type(pkg, TypeInfo(
    name="Widget",
    fields=[TypeInfo(name="Spec", type="WidgetSpec", json="spec")],
))
parser.register_type(pkg, TypeInfo(
    name="WidgetSpec",
    fields=[TypeInfo(
        name="Replicas",
        type="int32",
        json="replicas,omitempty",
        markers={"kubebuilder:validation:Minimum": [Minimum(1)]},
    )],
))
parser.need_package(pkg)

kind = GroupKind("example.com", "Widget")
need_crd_for(parser, kind, None)
crd = parser.custom_resource_definitions[kind]
print(crd.name)  # widgets.example.com
print([(v.name, v.storage) for v in crd.spec.versions])  # [('v1', True)]
```

## What it does not do

- It does not read source code: types are declared with `TypeInfo` and
  `Parser.register_type`, and package markers with
  `Parser.set_group_version`.
- It has no command-line tool and writes no files; `to_dict()` returns plain
  dictionaries for the caller to serialise.
- It does not convert CRDs between API versions; only the `apiextensions.k8s.io/v1`
  form is produced.