"""Tests for schema loading, shape inference and normalization."""

import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from helmform.exceptions import ParseError
from helmform.models import MISSING, FieldKind, SchemaNode
from helmform.schema import (
    coerce_input,
    format_for_input,
    infer_schema_document,
    infer_shape,
    load_schema,
    normalize,
)


class TestSchemaNode:
    """Tests for schema node invariants."""

    def test_object_gets_empty_children(self):
        node = SchemaNode(FieldKind.OBJECT)

        assert node.children == {}
        assert node.item_shape is None
        assert node.choices is None

    def test_array_defaults_to_string_items(self):
        node = SchemaNode.array_of()

        assert node.item_shape == SchemaNode(FieldKind.STRING)
        assert node.children is None

    def test_kind_accepts_plain_string(self):
        assert SchemaNode("integer").kind is FieldKind.INTEGER

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ValueError):
            SchemaNode("null")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"kind": FieldKind.STRING, "children": {}},
            {"kind": FieldKind.OBJECT, "item_shape": SchemaNode(FieldKind.STRING)},
            {"kind": FieldKind.INTEGER, "choices": ("a",)},
        ],
    )
    def test_payload_must_match_kind(self, kwargs):
        with pytest.raises(ValueError):
            SchemaNode(**kwargs)


class TestInferShape:
    """Tests for shape inference from values."""

    def test_scalars(self):
        assert infer_shape("x").kind is FieldKind.STRING
        assert infer_shape(True).kind is FieldKind.BOOLEAN
        assert infer_shape(3).kind is FieldKind.INTEGER
        assert infer_shape(3.0).kind is FieldKind.INTEGER
        assert infer_shape(3.5).kind is FieldKind.NUMBER

    def test_null_is_string(self):
        assert infer_shape(None) == SchemaNode(FieldKind.STRING)

    def test_object_keeps_key_order(self):
        shape = infer_shape({"b": 1, "a": {"c": False}})

        assert shape.kind is FieldKind.OBJECT
        assert list(shape.children) == ["b", "a"]
        assert shape.children["a"].children["c"].kind is FieldKind.BOOLEAN

    def test_array_of_objects(self):
        shape = infer_shape([{"key": "a", "value": "b"}, {"other": 1}])

        assert shape.kind is FieldKind.ARRAY
        assert shape.item_shape.kind is FieldKind.OBJECT
        assert list(shape.item_shape.children) == ["key", "value"]

    @pytest.mark.parametrize(
        "value, item_kind",
        [
            ([], FieldKind.STRING),
            ([1, 2.5], FieldKind.INTEGER),
            ([2.5], FieldKind.NUMBER),
            ([False], FieldKind.BOOLEAN),
            (["a"], FieldKind.STRING),
            ([None, {"a": 1}], FieldKind.STRING),
            ([[1]], FieldKind.STRING),
        ],
    )
    def test_array_items_follow_first_element(self, value, item_kind):
        assert infer_shape(value).item_shape.kind is item_kind

    @pytest.mark.parametrize("value", [{}, [], None, "", 0, [[]], {"a": [None]}, [{}], {"a": {"b": {}}}])
    def test_inference_is_total(self, value):
        assert isinstance(infer_shape(value), SchemaNode)

    def test_schema_document_carries_defaults(self):
        doc = infer_schema_document({"replicas": 2, "tolerations": [{"key": "a"}], "tags": []})

        assert doc["type"] == "object"
        assert doc["properties"]["replicas"] == {"type": "integer", "default": 2}
        assert doc["properties"]["tolerations"]["items"] == {
            "type": "object",
            "properties": {"key": {"type": "string", "default": "a"}},
            "default": {"key": "a"},
        }
        assert doc["properties"]["tags"]["items"] == {"type": "string"}

    def test_schema_document_loads_back(self):
        values = {"image": {"tag": "v1"}, "ports": [80]}

        document = load_schema(json.dumps(infer_schema_document(values)))

        assert document.root.children["image"].children["tag"].default == "v1"
        assert document.root.children["ports"].item_shape.kind is FieldKind.INTEGER

    def test_schema_document_from_non_mapping(self):
        assert infer_schema_document(None) == {"type": "object", "properties": {}}


class TestNormalize:
    """Tests for value normalization."""

    def test_json_string_under_object(self):
        assert normalize('{"enabled":true}', FieldKind.OBJECT) == {"enabled": True}

    def test_json_string_under_array(self):
        assert normalize(' [1, 2] ', SchemaNode.array_of()) == [1, 2]

    def test_json_string_is_decoded_for_scalar_kinds(self):
        assert normalize('{"a": 1}', FieldKind.STRING) == {"a": 1}

    def test_malformed_json_keeps_string(self):
        assert normalize("{not json}", FieldKind.STRING) == "{not json}"

    def test_mismatched_brackets_keep_string(self):
        assert normalize("{abc]", FieldKind.STRING) == "{abc]"

    def test_container_kinds_reset_wrong_types(self):
        assert normalize("plain", FieldKind.ARRAY) == []
        assert normalize({"a": 1}, FieldKind.ARRAY) == []
        assert normalize([1], FieldKind.OBJECT) == {}
        assert normalize(None, FieldKind.OBJECT) == {}
        assert normalize("{broken", FieldKind.OBJECT) == {}

    def test_scalars_pass_through(self):
        assert normalize("3", FieldKind.INTEGER) == "3"
        assert normalize(None, FieldKind.STRING) is None
        assert normalize(True, FieldKind.STRING) is True

    def test_unchanged_values_keep_identity(self):
        value = {"a": 1}
        assert normalize(value, FieldKind.OBJECT) is value

    @pytest.mark.parametrize(
        "value",
        ['{"a": 1}', "[1]", "{bad}", "text", None, 5, [1], {"a": 1}, "  [ ]  ", '"[1]"'],
    )
    @pytest.mark.parametrize("kind", list(FieldKind))
    def test_normalize_is_idempotent(self, value, kind):
        once = normalize(value, kind)

        assert normalize(once, kind) == once


class TestCoerceInput:
    """Tests for converting typed text into values."""

    def test_blank_input_is_missing(self):
        assert coerce_input("   ", FieldKind.STRING) is MISSING

    def test_integer(self):
        assert coerce_input(" 42 ", FieldKind.INTEGER) == 42
        assert coerce_input("4.2", FieldKind.INTEGER) == "4.2"

    def test_number(self):
        assert coerce_input("0.5", FieldKind.NUMBER) == 0.5
        assert coerce_input("lots", FieldKind.NUMBER) == "lots"
        assert coerce_input("inf", FieldKind.NUMBER) == "inf"

    def test_boolean(self):
        assert coerce_input("TRUE", FieldKind.BOOLEAN) is True
        assert coerce_input("false", FieldKind.BOOLEAN) is False
        assert coerce_input("maybe", FieldKind.BOOLEAN) == "maybe"

    def test_string_is_kept_verbatim(self):
        assert coerce_input(" padded ", FieldKind.STRING) == " padded "

    def test_json_input(self):
        assert coerce_input('{"a": [1]}', FieldKind.STRING) == {"a": [1]}
        assert coerce_input("[broken", FieldKind.ARRAY) == "[broken"


def test_format_for_input():
    assert format_for_input(None) == ""
    assert format_for_input(MISSING) == ""
    assert format_for_input(True) == "true"
    assert format_for_input(3) == "3"
    assert format_for_input({"a": 1}) == '{\n  "a": 1\n}'


class TestLoadSchema:
    """Tests for loading JSON Schema documents."""

    def test_full_document(self):
        text = json.dumps(
            {
                "$schema": "http://json-schema.org/draft-07/schema#",
                "type": "object",
                "properties": {
                    "replicas": {"type": "integer", "default": 1, "description": "Pod count"},
                    "image": {
                        "type": "object",
                        "properties": {
                            "pullPolicy": {"type": "string", "enum": ["Always", "IfNotPresent"]},
                        },
                    },
                    "tolerations": {"type": "array", "items": {"type": "object"}},
                },
            }
        )

        document = load_schema(text)
        children = document.root.children

        assert list(children) == ["replicas", "image", "tolerations"]
        assert children["replicas"].default == 1
        assert children["replicas"].description == "Pod count"
        assert children["image"].children["pullPolicy"].choices == ("Always", "IfNotPresent")
        assert children["tolerations"].item_shape.kind is FieldKind.OBJECT
        assert document.unsupported == []

    def test_bare_properties_map(self):
        document = load_schema('{"replicas": {"type": "integer", "default": 1}}')

        assert document.root.children["replicas"].kind is FieldKind.INTEGER

    def test_bare_map_with_field_named_properties(self):
        text = json.dumps(
            {
                "properties": {"type": "object", "properties": {"enabled": {"type": "boolean"}}},
                "replicas": {"type": "integer", "default": 1},
            }
        )

        children = load_schema(text).root.children

        assert list(children) == ["properties", "replicas"]
        assert children["properties"].children["enabled"].kind is FieldKind.BOOLEAN
        assert children["replicas"].default == 1

    def test_bare_map_with_field_named_type(self):
        children = load_schema('{"type": {"type": "string", "default": "ClusterIP"}}').root.children

        assert children["type"].kind is FieldKind.STRING
        assert children["type"].default == "ClusterIP"

    def test_object_document_without_schema_keyword(self):
        document = load_schema('{"type": "object", "properties": {"debug": {"type": "boolean"}}}')

        assert list(document.root.children) == ["debug"]

    @pytest.mark.parametrize("text", [None, "", "  ", "null", "{}", '{"type": "object"}', '{"properties": {}}'])
    def test_no_schema(self, text):
        assert load_schema(text).is_empty

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            load_schema("{nope")

    def test_non_object_document(self):
        with pytest.raises(ParseError):
            load_schema("[1, 2]")

    def test_missing_type_is_inferred(self):
        document = load_schema(
            '{"properties": {"a": {"properties": {}}, "b": {"items": {"type": "integer"}}, "c": {"enum": ["x"]}}}'
        )
        children = document.root.children

        assert children["a"].kind is FieldKind.OBJECT
        assert children["b"].item_shape.kind is FieldKind.INTEGER
        assert children["c"].choices == ("x",)

    def test_nullable_type_list(self):
        document = load_schema('{"properties": {"a": {"type": ["null", "string"]}}}')

        assert document.root.children["a"].kind is FieldKind.STRING

    def test_unsupported_fields_are_skipped(self):
        document = load_schema(
            json.dumps(
                {
                    "properties": {
                        "a": {"type": "null"},
                        "b": {"type": "object", "properties": {"c": {"description": "no type"}}},
                        "d": {"type": "array", "items": {"type": "date"}},
                        "e": {"type": "string"},
                    }
                }
            )
        )

        assert list(document.root.children) == ["b", "d", "e"]
        assert document.root.children["b"].children == {}
        assert document.root.children["d"].item_shape.kind is FieldKind.STRING
        assert [(u.path, u.declared_type) for u in document.unsupported] == [
            ("a", "null"),
            ("b.c", None),
            ("d[]", "date"),
        ]
        assert all(u.message == "unsupported field type" for u in document.unsupported)


json_values = st.recursive(
    st.none()
    | st.booleans()
    | st.integers()
    | st.floats(allow_nan=False, allow_infinity=False)
    | st.text(),
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(), children, max_size=4),
    max_leaves=20,
)
# values as a release may store them, including JSON documents kept as strings
stored_values = json_values | json_values.map(json.dumps) | json_values.map(lambda v: f"  {json.dumps(v)} ")

KIND_OF_TYPE = {dict: FieldKind.OBJECT, list: FieldKind.ARRAY, bool: FieldKind.BOOLEAN, str: FieldKind.STRING}


@given(stored_values, st.sampled_from(list(FieldKind)))
@settings(deadline=None)
def test_normalize_is_idempotent_for_any_value(value, kind):
    once = normalize(value, kind)

    assert normalize(once, kind) == once
    if kind is FieldKind.OBJECT:
        assert isinstance(once, dict)
    if kind is FieldKind.ARRAY:
        assert isinstance(once, list)


@given(json_values)
@settings(deadline=None)
def test_infer_shape_accepts_any_value(value):
    shape = infer_shape(value)

    if value is None:
        assert shape.kind is FieldKind.STRING
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        assert shape.kind in (FieldKind.INTEGER, FieldKind.NUMBER)
    else:
        assert shape.kind is KIND_OF_TYPE[type(value)]
    if isinstance(value, dict):
        assert set(shape.children) == set(value)


@given(st.dictionaries(st.text(min_size=1), json_values, max_size=5))
@settings(deadline=None)
def test_inferred_documents_load_back(values):
    document = load_schema(json.dumps(infer_schema_document(values)))

    assert document.unsupported == []
    assert list(document.root.children) == list(values)
    for key, child in document.root.children.items():
        assert child.kind is infer_shape(values[key]).kind
