import pytest

from crdschema.jsonschema import JSONSchemaProps, MarkerError
from crdschema.priority import (
    APPLY_PRIORITY_DEFAULT,
    APPLY_PRIORITY_FIRST,
    apply_markers,
    builtin_to_type,
    marker_priority,
)


class PriorityMarker:
    def __init__(self, priority, callback):
        self.priority = priority
        self.callback = callback

    def apply_priority(self):
        return self.priority

    def apply_to_schema(self, schema):
        self.callback()


class DefaultMarker:
    def __init__(self, callback):
        self.callback = callback

    def apply_to_schema(self, schema):
        self.callback()


class FirstMarker(DefaultMarker):
    def apply_first(self):
        pass


class FailingMarker:
    def apply_to_schema(self, schema):
        raise MarkerError("boom")


class TypeSetter:
    def apply_to_schema(self, schema):
        schema.type = "integer"


def test_apply_markers_orders_by_priority():
    invocations = []
    apply_markers(
        {
            "blah": [
                PriorityMarker(0, lambda: invocations.append("0")),
                PriorityMarker(2, lambda: invocations.append("2")),
                PriorityMarker(11, lambda: invocations.append("11")),
                DefaultMarker(lambda: invocations.append("default")),
                FirstMarker(lambda: invocations.append("applyFirst")),
            ]
        },
        JSONSchemaProps(),
    )
    assert invocations == ["0", "applyFirst", "2", "default", "11"]


def test_marker_priority_defaults():
    assert marker_priority(FirstMarker(lambda: None)) == APPLY_PRIORITY_FIRST
    assert marker_priority(DefaultMarker(lambda: None)) == APPLY_PRIORITY_DEFAULT
    assert marker_priority(PriorityMarker(7, lambda: None)) == 7


def test_apply_markers_collects_errors_and_continues():
    props = JSONSchemaProps()
    errors = apply_markers({"a": [FailingMarker(), "not a marker"], "b": [TypeSetter()]}, props)
    assert [str(err) for err in errors] == ["boom"]
    assert props.type == "integer"


def test_float_allowed_is_number():
    assert builtin_to_type("float32", True) == ("number", "")


def test_float_refused_without_dangerous_types():
    with pytest.raises(MarkerError, match="found float"):
        builtin_to_type("float64", False)


@pytest.mark.parametrize(
    "kind, expected",
    [
        ("bool", ("boolean", "")),
        ("string", ("string", "")),
        ("int32", ("integer", "int32")),
        ("uint32", ("integer", "int32")),
        ("int64", ("integer", "int64")),
        ("uint64", ("integer", "int64")),
        ("int", ("integer", "")),
    ],
)
def test_builtin_kinds(kind, expected):
    assert builtin_to_type(kind, False) == expected


def test_unsupported_kind():
    with pytest.raises(MarkerError, match='unsupported type "complex64"'):
        builtin_to_type("complex64", True)