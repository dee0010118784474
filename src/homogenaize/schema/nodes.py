"""Uniform schema tree shared by every dialect.

One tree is built per call from whichever schema the caller supplied and is
never mutated afterwards. Every node carries an optional `description` and a
`nullable` flag (the JSON Schema `anyOf: [T, null]` idiom).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class StringNode:
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    format: Optional[str] = None
    description: Optional[str] = None
    nullable: bool = False


@dataclass(frozen=True)
class NumberNode:
    is_integer: bool = False
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    multiple_of: Optional[float] = None
    description: Optional[str] = None
    nullable: bool = False


@dataclass(frozen=True)
class BooleanNode:
    description: Optional[str] = None
    nullable: bool = False


@dataclass(frozen=True)
class ArrayNode:
    items: "SchemaNode" = field(default_factory=StringNode)
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    description: Optional[str] = None
    nullable: bool = False


@dataclass(frozen=True)
class ObjectNode:
    properties: Mapping[str, "SchemaNode"] = field(default_factory=dict)
    required: frozenset = frozenset()
    description: Optional[str] = None
    nullable: bool = False

    def __post_init__(self) -> None:
        # Freeze the property map; insertion order is the declaration order.
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))
        object.__setattr__(self, "required", frozenset(self.required))

    def is_required(self, name: str) -> bool:
        """Optional wrapping wins over membership in `required`."""
        node = self.properties.get(name)
        return name in self.required and not isinstance(node, OptionalNode)


@dataclass(frozen=True)
class EnumNode:
    values: Tuple[Any, ...] = ()
    description: Optional[str] = None
    nullable: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))


@dataclass(frozen=True)
class LiteralNode:
    value: Any = None
    description: Optional[str] = None
    nullable: bool = False


@dataclass(frozen=True)
class OptionalNode:
    inner: "SchemaNode" = field(default_factory=StringNode)

    def __post_init__(self) -> None:
        inner = self.inner
        while isinstance(inner, OptionalNode):
            inner = inner.inner
        object.__setattr__(self, "inner", inner)


@dataclass(frozen=True)
class UnionNode:
    options: Tuple["SchemaNode", ...] = ()
    description: Optional[str] = None
    nullable: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", tuple(self.options))


SchemaNode = Union[
    StringNode,
    NumberNode,
    BooleanNode,
    ArrayNode,
    ObjectNode,
    EnumNode,
    LiteralNode,
    OptionalNode,
    UnionNode,
]


def optional(node: SchemaNode) -> OptionalNode:
    """Wrap `node` as optional without ever nesting two Optional wrappers."""
    if isinstance(node, OptionalNode):
        return node
    return OptionalNode(node)


def unwrap_optional(node: SchemaNode) -> Tuple[SchemaNode, bool]:
    if isinstance(node, OptionalNode):
        return node.inner, True
    return node, False
