"""Anthropic-style schema dialect.

Lower-case type names, `required` lists only non-optional properties, and
structured output travels as the `input_schema` of a forced tool.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from ..errors import InvalidRequestError
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
    literal_type,
    tool_root,
)


def compile_schema(node: SchemaNode) -> Dict[str, Any]:
    node, _ = unwrap_optional(node)

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
                "items": compile_schema(node.items),
                "minItems": node.min_items,
                "maxItems": node.max_items,
            }
        )
    elif isinstance(node, ObjectNode):
        out = {
            "type": "object",
            "properties": {name: compile_schema(child) for name, child in node.properties.items()},
        }
        required = [name for name in node.properties if node.is_required(name)]
        if required:
            out["required"] = required
    elif isinstance(node, EnumNode):
        out = drop_none({"type": enum_type(node.values), "enum": list(node.values)})
    elif isinstance(node, LiteralNode):
        out = drop_none({"type": literal_type(node.value), "const": node.value})
    elif isinstance(node, UnionNode):
        out = {"anyOf": [compile_schema(option) for option in node.options]}
    else:
        raise TypeError(f"Unknown schema node {node!r}")

    if getattr(node, "description", None):
        out["description"] = node.description
    return out


def compile_tool(name: str, description: str, node: SchemaNode) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "input_schema": compile_schema(tool_root(node)),
    }


def structured_output_tool(node: SchemaNode) -> Dict[str, Any]:
    return compile_tool(SYNTHETIC_TOOL_NAME, SYNTHETIC_TOOL_DESCRIPTION, node)


def forced_tool_choice(name: str) -> Dict[str, Any]:
    return {"type": "tool", "name": name}


def compile_tool_choice(
    choice: Optional[ToolChoice], tools: Sequence[Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    """Map a caller tool choice onto Anthropic's `tool_choice` object.

    "required" without a target is only accepted when exactly one tool is
    declared; the backend cannot be told "call one of these" unambiguously.
    Returns None for "none", which callers handle by omitting the tools.
    """

    if choice is None or choice == "auto":
        return {"type": "auto"}
    if choice == "none":
        return None
    if isinstance(choice, NamedToolChoice):
        return forced_tool_choice(choice.name)
    if choice == "required":
        if len(tools) != 1:
            raise InvalidRequestError(
                "tool_choice='required' needs exactly one tool for Anthropic "
                f"(got {len(tools)}); name the tool with NamedToolChoice"
            )
        return forced_tool_choice(tools[0]["name"])
    raise InvalidRequestError(f"Unsupported tool_choice {choice!r}")
