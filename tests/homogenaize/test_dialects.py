import json

import pytest

from homogenaize.dialects import SYNTHETIC_TOOL_NAME, anthropic, gemini, openai
from homogenaize.schema import (
    ArrayNode,
    BooleanNode,
    EnumNode,
    LiteralNode,
    NumberNode,
    ObjectNode,
    StringNode,
    UnionNode,
    optional,
    to_node,
)

DIALECTS = [openai.compile_schema, anthropic.compile_schema, gemini.compile_schema]


def _all_required():
    return ObjectNode(
        properties={"a": StringNode(), "b": NumberNode(is_integer=True)},
        required=frozenset({"a", "b"}),
    )


def _one_optional():
    return ObjectNode(
        properties={
            "a": StringNode(),
            "b": NumberNode(is_integer=True),
            "c": optional(BooleanNode()),
        },
        required=frozenset({"a", "b"}),
    )


@pytest.mark.parametrize("compile_schema", DIALECTS)
def test_compiling_twice_yields_identical_output(compile_schema):
    node = to_node(
        {
            "type": "object",
            "properties": {
                "tags": {"type": "array", "items": {"type": "string"}, "maxItems": 3},
                "score": {"type": "number", "minimum": 0, "multipleOf": 0.5},
                "kind": {"type": "string", "enum": ["x", "y"]},
                "note": {"type": ["string", "null"]},
            },
            "required": ["tags"],
        }
    )
    assert compile_schema(node) == compile_schema(node)


@pytest.mark.parametrize("compile_schema", DIALECTS)
def test_all_required_properties_listed_by_every_dialect(compile_schema):
    assert compile_schema(_all_required())["required"] == ["a", "b"]


def test_one_optional_wrapper_changes_required_lists():
    node = _one_optional()

    openai_out = openai.compile_schema(node)
    assert openai_out["required"] == ["a", "b", "c"]
    # The optional marker is internal only.
    assert "ptional" not in json.dumps(openai_out)
    assert openai._compile_node(node.properties["c"]) == ({"type": "boolean"}, True)

    assert anthropic.compile_schema(node)["required"] == ["a", "b"]

    gemini_out = gemini.compile_schema(node)
    assert gemini_out["required"] == ["a", "b"]
    assert gemini_out["propertyOrdering"] == ["a", "b", "c"]


def test_nullable_union_unwrapping_per_dialect():
    node = to_node(
        {
            "type": "object",
            "properties": {"x": {"anyOf": [{"type": "string"}, {"type": "null"}]}},
            "required": ["x"],
        }
    )

    assert gemini.compile_schema(node)["properties"]["x"] == {"type": "STRING", "nullable": True}
    assert openai.compile_schema(node)["properties"]["x"] == {"type": "string"}
    assert anthropic.compile_schema(node)["properties"]["x"] == {"type": "string"}


def test_openai_objects_forbid_additional_properties_at_every_level():
    node = ObjectNode(
        properties={
            "inner": ObjectNode(properties={"y": StringNode()}, required=frozenset({"y"})),
            "list": ArrayNode(items=ObjectNode(properties={"z": BooleanNode()})),
        },
        required=frozenset({"inner", "list"}),
    )
    out = openai.compile_schema(node)
    assert out["additionalProperties"] is False
    assert out["properties"]["inner"]["additionalProperties"] is False
    assert out["properties"]["list"]["items"]["additionalProperties"] is False
    assert out["properties"]["list"]["items"]["required"] == ["z"]


def test_lower_and_upper_case_type_names():
    node = ArrayNode(items=StringNode(min_length=2))

    assert openai.compile_schema(node) == {"type": "array", "items": {"type": "string", "minLength": 2}}
    assert anthropic.compile_schema(node) == {"type": "array", "items": {"type": "string", "minLength": 2}}
    assert gemini.compile_schema(node) == {"type": "ARRAY", "items": {"type": "STRING", "minLength": 2}}


def test_gemini_literals_degrade():
    assert gemini.compile_schema(LiteralNode("x")) == {"type": "STRING", "enum": ["x"]}
    assert gemini.compile_schema(LiteralNode(3)) == {"type": "INTEGER"}
    assert gemini.compile_schema(LiteralNode(2.5)) == {"type": "NUMBER"}
    assert gemini.compile_schema(LiteralNode(True)) == {"type": "BOOLEAN"}

    assert openai.compile_schema(LiteralNode(True)) == {"type": "boolean", "const": True}
    assert anthropic.compile_schema(LiteralNode("x")) == {"type": "string", "const": "x"}


def test_gemini_drops_unsupported_numeric_keywords():
    node = NumberNode(minimum=1, maximum=9, multiple_of=2, exclusive_minimum=0)

    assert gemini.compile_schema(node) == {"type": "NUMBER", "minimum": 1, "maximum": 9}
    assert openai.compile_schema(node) == {
        "type": "number",
        "minimum": 1,
        "maximum": 9,
        "exclusiveMinimum": 0,
        "multipleOf": 2,
    }


def test_enum_and_description_are_carried():
    node = EnumNode(values=("low", "high"), description="Priority")

    assert openai.compile_schema(node) == {
        "type": "string",
        "enum": ["low", "high"],
        "description": "Priority",
    }
    assert gemini.compile_schema(node) == {
        "type": "STRING",
        "enum": ["low", "high"],
        "description": "Priority",
    }


def test_openai_tools_are_strict_unless_schema_has_a_union():
    plain = ObjectNode(properties={"q": StringNode()}, required=frozenset({"q"}))
    unioned = ObjectNode(
        properties={"u": UnionNode(options=(StringNode(), NumberNode()))},
        required=frozenset({"u"}),
    )

    assert openai.compile_tool("search", "Search", plain)["function"]["strict"] is True
    tool = openai.compile_tool("pick", "Pick", unioned)
    assert tool["function"]["strict"] is False
    assert tool["function"]["parameters"]["properties"]["u"] == {
        "anyOf": [{"type": "string"}, {"type": "number"}]
    }


def test_structured_output_tools_wrap_non_object_roots():
    node = ArrayNode(items=StringNode())

    tool = openai.structured_output_tool(node)
    assert tool["function"]["name"] == SYNTHETIC_TOOL_NAME
    assert tool["function"]["parameters"] == {
        "type": "object",
        "properties": {"value": {"type": "array", "items": {"type": "string"}}},
        "required": ["value"],
        "additionalProperties": False,
    }

    tool = anthropic.structured_output_tool(node)
    assert tool["name"] == SYNTHETIC_TOOL_NAME
    assert tool["input_schema"]["required"] == ["value"]

    fn = gemini.structured_output_function(node)
    assert fn["name"] == SYNTHETIC_TOOL_NAME
    assert fn["parameters"]["propertyOrdering"] == ["value"]


def test_anthropic_required_tool_choice_precondition():
    from homogenaize.errors import InvalidRequestError
    from homogenaize.types import NamedToolChoice

    one = [anthropic.compile_tool("a", "", ObjectNode())]
    two = one + [anthropic.compile_tool("b", "", ObjectNode())]

    assert anthropic.compile_tool_choice("required", one) == {"type": "tool", "name": "a"}
    with pytest.raises(InvalidRequestError):
        anthropic.compile_tool_choice("required", two)

    assert anthropic.compile_tool_choice(NamedToolChoice("b"), two) == {"type": "tool", "name": "b"}
    assert anthropic.compile_tool_choice("auto", two) == {"type": "auto"}
    assert anthropic.compile_tool_choice("none", two) is None


def test_tool_choice_mapping_openai_and_gemini():
    from homogenaize.types import NamedToolChoice

    assert openai.compile_tool_choice("required") == "required"
    assert openai.compile_tool_choice(NamedToolChoice("f")) == {
        "type": "function",
        "function": {"name": "f"},
    }

    assert gemini.compile_tool_config("required") == {"functionCallingConfig": {"mode": "ANY"}}
    assert gemini.compile_tool_config("none") == {"functionCallingConfig": {"mode": "NONE"}}
    assert gemini.compile_tool_config(NamedToolChoice("f")) == {
        "functionCallingConfig": {"mode": "ANY", "allowedFunctionNames": ["f"]}
    }
    assert gemini.compile_tool_config(None) is None


def test_gemini_rejects_unknown_tool_choice():
    from homogenaize.errors import InvalidRequestError

    with pytest.raises(InvalidRequestError):
        gemini.compile_tool_config("sometimes")


def test_gemini_native_response_format():
    node = _all_required()
    assert gemini.response_format(node) == {
        "responseMimeType": "application/json",
        "responseSchema": {
            "type": "OBJECT",
            "properties": {"a": {"type": "STRING"}, "b": {"type": "INTEGER"}},
            "required": ["a", "b"],
            "propertyOrdering": ["a", "b"],
        },
    }
