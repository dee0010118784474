import enum
from typing import Literal, Optional

import annotated_types
import pytest
from pydantic import BaseModel, Field

from fakes import PERSON_DOC, Person


class Color(str, enum.Enum):
    RED = "red"
    GREEN = "green"


class Profile(BaseModel):
    """A user profile."""

    name: str = Field(min_length=1, description="Full name")
    age: int = Field(ge=0, le=150)
    nickname: Optional[str] = None
    email: str | None
    tags: list[str] = Field(default_factory=list, max_length=5)
    color: Color
    kind: Literal["person"]


def test_classify_structural_and_document():
    from homogenaize.schema import SchemaKind, classify

    assert classify(Person) is SchemaKind.STRUCTURAL
    assert classify(PERSON_DOC) is SchemaKind.JSON_DOCUMENT
    assert classify({"anyOf": [{"type": "string"}]}) is SchemaKind.JSON_DOCUMENT
    assert classify({"$ref": "#/$defs/X"}) is SchemaKind.JSON_DOCUMENT


@pytest.mark.parametrize("value", [42, "string", {"foo": 1}, None])
def test_classify_rejects_unknown_shapes(value):
    from homogenaize.errors import SchemaError
    from homogenaize.schema import classify

    with pytest.raises(SchemaError):
        classify(value)


def test_structural_model_to_node():
    from homogenaize.schema import (
        ArrayNode,
        EnumNode,
        LiteralNode,
        NumberNode,
        ObjectNode,
        OptionalNode,
        StringNode,
        to_node,
    )

    node = to_node(Profile)

    assert isinstance(node, ObjectNode)
    assert node.description == "A user profile."
    assert list(node.properties) == ["name", "age", "nickname", "email", "tags", "color", "kind"]
    assert node.required == frozenset({"name", "age", "email", "color", "kind"})

    assert node.properties["name"] == StringNode(min_length=1, description="Full name")
    assert node.properties["age"] == NumberNode(is_integer=True, minimum=0, maximum=150)
    assert node.properties["nickname"] == OptionalNode(StringNode(nullable=True))
    assert node.properties["email"] == StringNode(nullable=True)
    assert node.properties["tags"] == OptionalNode(ArrayNode(items=StringNode(), max_items=5))
    assert node.properties["color"] == EnumNode(values=("red", "green"))
    assert node.properties["kind"] == LiteralNode(value="person")


def test_nested_models_become_nested_objects():
    from homogenaize.schema import ObjectNode, to_node

    class Team(BaseModel):
        lead: Person
        members: list[Person]

    node = to_node(Team)
    assert isinstance(node.properties["lead"], ObjectNode)
    assert isinstance(node.properties["members"].items, ObjectNode)
    assert node.properties["lead"].required == frozenset({"name", "age"})


def test_constraint_walk_last_entry_wins_and_groups_expand():
    from homogenaize.schema.convert import _collect_constraints

    found = _collect_constraints([annotated_types.Ge(1), annotated_types.Ge(5)])
    assert found == {"minimum": 5}

    found = _collect_constraints([annotated_types.Interval(ge=2, le=9), annotated_types.Le(4)])
    assert found == {"minimum": 2, "maximum": 4}


def test_enum_values_try_candidate_accessors_in_order():
    from homogenaize.errors import SchemaError
    from homogenaize.schema.convert import _enum_values

    class WithOptions:
        options = ["a", "b"]

    class WithEntries:
        entries = {"A": "a", "B": "b"}

    class WithBoth:
        values = ["first"]
        options = ["second"]

    class WithNothing:
        pass

    assert _enum_values(Color) == ("red", "green")
    assert _enum_values(WithOptions) == ("a", "b")
    assert _enum_values(WithEntries) == ("a", "b")
    assert _enum_values(WithBoth) == ("first",)
    with pytest.raises(SchemaError):
        _enum_values(WithNothing)


def test_json_document_to_node():
    from homogenaize.schema import (
        ArrayNode,
        NumberNode,
        OptionalNode,
        StringNode,
        to_node,
    )

    doc = {
        "type": "object",
        "properties": {
            "id": {"type": "integer", "minimum": 1},
            "label": {"type": ["string", "null"]},
            "note": {"anyOf": [{"type": "string"}, {"type": "null"}]},
            "items": {"type": "array"},
        },
        "required": ["id", "label"],
    }
    node = to_node(doc)

    assert node.properties["id"] == NumberNode(is_integer=True, minimum=1)
    assert node.properties["label"] == StringNode(nullable=True)
    assert node.properties["note"] == OptionalNode(StringNode(nullable=True))
    assert node.properties["items"] == OptionalNode(ArrayNode(items=StringNode()))
    assert node.is_required("id") and node.is_required("label")
    assert not node.is_required("note")


def test_json_document_local_refs_resolve_and_recursion_fails():
    from homogenaize.errors import SchemaError
    from homogenaize.schema import NumberNode, ObjectNode, to_node

    doc = {
        "$defs": {
            "Point": {
                "type": "object",
                "properties": {"x": {"type": "number"}},
                "required": ["x"],
            }
        },
        "type": "object",
        "properties": {"p": {"$ref": "#/$defs/Point"}},
        "required": ["p"],
    }
    node = to_node(doc)
    assert node.properties["p"] == ObjectNode(
        properties={"x": NumberNode()}, required=frozenset({"x"})
    )

    recursive = {
        "$defs": {
            "Node": {"type": "object", "properties": {"next": {"$ref": "#/$defs/Node"}}}
        },
        "$ref": "#/$defs/Node",
    }
    with pytest.raises(SchemaError):
        to_node(recursive)


def test_json_document_enum_const_and_union():
    from homogenaize.schema import EnumNode, LiteralNode, StringNode, UnionNode, to_node

    assert to_node({"type": "string", "enum": ["a", "b"]}) == EnumNode(values=("a", "b"))
    assert to_node({"type": "string", "enum": ["a", None]}) == LiteralNode("a", nullable=True)
    assert to_node({"const": 3, "type": "integer"}) == LiteralNode(3)
    union = to_node({"anyOf": [{"type": "string"}, {"type": "integer"}]})
    assert isinstance(union, UnionNode)
    assert union.options[0] == StringNode()


def test_optional_never_nests_and_optional_wins_over_required():
    from homogenaize.schema import ObjectNode, OptionalNode, StringNode, optional

    once = optional(StringNode())
    assert optional(once) is once
    assert OptionalNode(OptionalNode(StringNode())).inner == StringNode()

    node = ObjectNode(properties={"a": optional(StringNode())}, required=frozenset({"a"}))
    assert node.is_required("a") is False


def test_object_node_properties_are_read_only():
    from homogenaize.schema import ObjectNode, StringNode

    source = {"a": StringNode()}
    node = ObjectNode(properties=source, required=frozenset({"a"}))
    source["b"] = StringNode()

    assert list(node.properties) == ["a"]
    with pytest.raises(TypeError):
        node.properties["c"] = StringNode()


def test_validate_payload_structural():
    from homogenaize.errors import LLMValidationError
    from homogenaize.schema import prepare_schema, validate_payload

    prepared = prepare_schema(Person)
    value = validate_payload(prepared, {"name": "Ada", "age": 36})
    assert isinstance(value, Person)
    assert value.name == "Ada"

    with pytest.raises(LLMValidationError) as exc:
        validate_payload(prepared, {"name": "", "age": -1})
    assert exc.value.cause is not None
    assert exc.value.retryable is True


def test_validate_payload_document_uses_context_cache():
    from homogenaize.context import CallContext
    from homogenaize.errors import LLMValidationError
    from homogenaize.schema import prepare_schema, validate_payload

    ctx = CallContext()
    prepared = prepare_schema(PERSON_DOC)

    assert validate_payload(prepared, {"name": "Ada", "age": 1}, ctx) == {"name": "Ada", "age": 1}
    with pytest.raises(LLMValidationError):
        validate_payload(prepared, {"name": "Ada"}, ctx)
    assert len(ctx.validators) == 1


def test_invalid_json_schema_document_is_a_schema_error():
    from homogenaize.errors import SchemaError
    from homogenaize.schema import prepare_schema, validate_payload

    prepared = prepare_schema({"type": "object", "properties": {"a": {"type": 12}}})
    with pytest.raises(SchemaError):
        validate_payload(prepared, {"a": 1})


def test_non_object_roots_are_wrapped_for_tools():
    from homogenaize.errors import LLMValidationError
    from homogenaize.schema import prepare_schema, unwrap_root

    prepared = prepare_schema({"type": "array", "items": {"type": "string"}})
    assert prepared.wraps_root is True
    assert unwrap_root(prepared, {"value": ["a"]}) == ["a"]
    with pytest.raises(LLMValidationError):
        unwrap_root(prepared, {"other": 1})

    assert prepare_schema(PERSON_DOC).wraps_root is False


def test_free_form_mappings_are_rejected():
    from typing import Dict

    from homogenaize.errors import SchemaError
    from homogenaize.schema import prepare_schema

    class Tagged(BaseModel):
        tags: Dict[str, str]

    with pytest.raises(SchemaError):
        prepare_schema(Tagged)

    with pytest.raises(SchemaError):
        prepare_schema({"type": "object", "additionalProperties": {"type": "string"}})

    assert prepare_schema({"type": "object"}).node.properties == {}
