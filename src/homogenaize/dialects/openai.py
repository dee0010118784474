"""OpenAI-style schema dialect.

- Lower-case JSON Schema type names.
- Every property is listed in `required`; optionality is tracked by the
  internal walk only and never reaches the wire.
- `additionalProperties: false` on every object.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from ..schema.nodes import (
    ArrayNode,
    BooleanNode,
    EnumNode,
    LiteralNode,
    NumberNode,
    ObjectNode,
    SchemaNode,
    StringNode,
    UnionNode,
    unwrap_optional,
)
from ..types import NamedToolChoice, ToolChoice
from ._common import (
    SYNTHETIC_TOOL_DESCRIPTION,
    SYNTHETIC_TOOL_NAME,
    drop_none,
    enum_type,
    has_union,
    literal_type,
    tool_root,
)


def _compile_node(node: SchemaNode) -> Tuple[Dict[str, Any], bool]:
    """Return (schema, is_optional). The flag is consumed by the object case."""

    node, is_optional = unwrap_optional(node)

    if isinstance(node, StringNode):
        out = drop_none(
            {
                "type": "string",
                "pattern": node.pattern,
                "minLength": node.min_length,
                "maxLength": node.max_length,
                "format": node.format,
            }
        )
    elif isinstance(node, NumberNode):
        out = drop_none(
            {
                "type": "integer" if node.is_integer else "number",
                "minimum": node.minimum,
                "maximum": node.maximum,
                "exclusiveMinimum": node.exclusive_minimum,
                "exclusiveMaximum": node.exclusive_maximum,
                "multipleOf": node.multiple_of,
            }
        )
    elif isinstance(node, BooleanNode):
        out = {"type": "boolean"}
    elif isinstance(node, ArrayNode):
        out = drop_none(
            {
                "type": "array",
                "items": _compile_node(node.items)[0],
                "minItems": node.min_items,
                "maxItems": node.max_items,
            }
        )
    elif isinstance(node, ObjectNode):
        properties = {}
        for name, child in node.properties.items():
            schema, _optional = _compile_node(child)
            properties[name] = schema
        out = {
            "type": "object",
            "properties": properties,
            "required": list(properties),
            "additionalProperties": False,
        }
    elif isinstance(node, EnumNode):
        out = drop_none({"type": enum_type(node.values), "enum": list(node.values)})
    elif isinstance(node, LiteralNode):
        out = drop_none({"type": literal_type(node.value), "const": node.value})
    elif isinstance(node, UnionNode):
        out = {"anyOf": [_compile_node(option)[0] for option in node.options]}
    else:
        raise TypeError(f"Unknown schema node {node!r}")

    if getattr(node, "description", None):
        out["description"] = node.description
    return out, is_optional


def compile_schema(node: SchemaNode) -> Dict[str, Any]:
    return _compile_node(node)[0]


def compile_tool(name: str, description: str, node: SchemaNode) -> Dict[str, Any]:
    root = tool_root(node)
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": compile_schema(root),
            "strict": not has_union(root),
        },
    }


def structured_output_tool(node: SchemaNode) -> Dict[str, Any]:
    return compile_tool(SYNTHETIC_TOOL_NAME, SYNTHETIC_TOOL_DESCRIPTION, node)


def compile_tool_choice(choice: ToolChoice) -> Any:
    if isinstance(choice, NamedToolChoice):
        return {"type": "function", "function": {"name": choice.name}}
    return choice
