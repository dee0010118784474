"""Gemini-style schema dialect (the OpenAPI subset Gemini accepts).

- Upper-case type names.
- `required` (non-optional only) plus `propertyOrdering`.
- Nullability is a flag, `nullable: true`, not a union with null.
- No literal primitive: string literals become single-value enums, number
  and boolean literals become bare typed fields.
- No `multipleOf`, exclusive bounds or `additionalProperties`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

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

# Gemini only honours these string formats.
_STRING_FORMATS = frozenset({"date-time", "enum"})

_CALLING_MODES = {"auto": "AUTO", "required": "ANY", "none": "NONE"}


def _upper(type_name: Optional[str]) -> Optional[str]:
    if type_name is None or type_name == "null":
        return None
    return type_name.upper()


def compile_schema(node: SchemaNode) -> Dict[str, Any]:
    node, _ = unwrap_optional(node)

    if isinstance(node, StringNode):
        out = drop_none(
            {
                "type": "STRING",
                "pattern": node.pattern,
                "minLength": node.min_length,
                "maxLength": node.max_length,
                "format": node.format if node.format in _STRING_FORMATS else None,
            }
        )
    elif isinstance(node, NumberNode):
        out = drop_none(
            {
                "type": "INTEGER" if node.is_integer else "NUMBER",
                "minimum": node.minimum,
                "maximum": node.maximum,
            }
        )
    elif isinstance(node, BooleanNode):
        out = {"type": "BOOLEAN"}
    elif isinstance(node, ArrayNode):
        out = drop_none(
            {
                "type": "ARRAY",
                "items": compile_schema(node.items),
                "minItems": node.min_items,
                "maxItems": node.max_items,
            }
        )
    elif isinstance(node, ObjectNode):
        out = {
            "type": "OBJECT",
            "properties": {name: compile_schema(child) for name, child in node.properties.items()},
        }
        required = [name for name in node.properties if node.is_required(name)]
        if required:
            out["required"] = required
        if node.properties:
            out["propertyOrdering"] = list(node.properties)
    elif isinstance(node, EnumNode):
        if all(isinstance(v, str) for v in node.values):
            out = {"type": "STRING", "enum": list(node.values)}
        else:
            # Gemini enums are string-only; keep the type, drop the values.
            out = drop_none({"type": _upper(enum_type(node.values))})
    elif isinstance(node, LiteralNode):
        if isinstance(node.value, str):
            out = {"type": "STRING", "enum": [node.value]}
        else:
            out = drop_none({"type": _upper(literal_type(node.value))})
    elif isinstance(node, UnionNode):
        out = {"anyOf": [compile_schema(option) for option in node.options]}
    else:
        raise TypeError(f"Unknown schema node {node!r}")

    if getattr(node, "description", None):
        out["description"] = node.description
    if getattr(node, "nullable", False):
        out["nullable"] = True
    return out


def compile_function(name: str, description: str, node: SchemaNode) -> Dict[str, Any]:
    return {
        "name": name,
        "description": description,
        "parameters": compile_schema(tool_root(node)),
    }


def structured_output_function(node: SchemaNode) -> Dict[str, Any]:
    return compile_function(SYNTHETIC_TOOL_NAME, SYNTHETIC_TOOL_DESCRIPTION, node)


def response_format(node: SchemaNode) -> Dict[str, Any]:
    """Native structured output: generationConfig fields, no synthetic tool."""
    return {
        "responseMimeType": "application/json",
        "responseSchema": compile_schema(node),
    }


def compile_tool_config(choice: Optional[ToolChoice]) -> Optional[Dict[str, Any]]:
    if choice is None:
        return None
    if isinstance(choice, NamedToolChoice):
        config = {"mode": "ANY", "allowedFunctionNames": [choice.name]}
    elif choice in _CALLING_MODES:
        config = {"mode": _CALLING_MODES[choice]}
    else:
        raise InvalidRequestError(f"Unsupported tool_choice {choice!r}")
    return {"functionCallingConfig": config}
