from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from ..schema.nodes import (
    ArrayNode,
    ObjectNode,
    OptionalNode,
    SchemaNode,
    UnionNode,
    unwrap_optional,
)
from ..schema.validate import VALUE_KEY

SYNTHETIC_TOOL_NAME = "respond_with_structured_output"
SYNTHETIC_TOOL_DESCRIPTION = "Respond with structured output matching the required schema"


def tool_root(node: SchemaNode) -> ObjectNode:
    """Tool arguments are always objects; other roots go under VALUE_KEY."""
    inner, _ = unwrap_optional(node)
    if isinstance(inner, ObjectNode):
        return inner
    return ObjectNode(properties={VALUE_KEY: inner}, required=frozenset({VALUE_KEY}))


def has_union(node: SchemaNode) -> bool:
    if isinstance(node, OptionalNode):
        return has_union(node.inner)
    if isinstance(node, UnionNode):
        return True
    if isinstance(node, ArrayNode):
        return has_union(node.items)
    if isinstance(node, ObjectNode):
        return any(has_union(child) for child in node.properties.values())
    return False


def literal_type(value: Any) -> Optional[str]:
    # bool first: it is an int subclass.
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is None:
        return "null"
    return None


def enum_type(values: Iterable[Any]) -> Optional[str]:
    kinds = {literal_type(v) for v in values}
    if kinds == {"integer", "number"}:
        return "number"
    if len(kinds) == 1:
        return kinds.pop()
    return None


def drop_none(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in mapping.items() if v is not None}
