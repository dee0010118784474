from .convert import SchemaKind, classify, is_json_document, is_structural, to_node
from .nodes import (
    ArrayNode,
    BooleanNode,
    EnumNode,
    LiteralNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    SchemaNode,
    StringNode,
    UnionNode,
    optional,
    unwrap_optional,
)
from .validate import (
    VALUE_KEY,
    PreparedSchema,
    prepare_schema,
    unwrap_root,
    validate_payload,
)

__all__ = [
    "ArrayNode",
    "BooleanNode",
    "EnumNode",
    "LiteralNode",
    "NumberNode",
    "ObjectNode",
    "OptionalNode",
    "PreparedSchema",
    "SchemaKind",
    "SchemaNode",
    "StringNode",
    "UnionNode",
    "VALUE_KEY",
    "classify",
    "is_json_document",
    "is_structural",
    "optional",
    "prepare_schema",
    "to_node",
    "unwrap_optional",
    "unwrap_root",
    "validate_payload",
]
