from __future__ import annotations

import datetime
import enum
import inspect
import types
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import (
    Annotated,
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Literal,
    Mapping,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
)
from collections.abc import Mapping as AbcMapping, Sequence as AbcSequence, Set as AbcSet

import annotated_types

from ..errors import SchemaError
from .nodes import (
    ArrayNode,
    BooleanNode,
    EnumNode,
    LiteralNode,
    NumberNode,
    ObjectNode,
    SchemaNode,
    StringNode,
    UnionNode,
    optional,
)

_JSON_SCHEMA_KEYS = ("type", "properties", "items", "anyOf", "oneOf", "allOf", "$ref")


class SchemaKind(str, enum.Enum):
    STRUCTURAL = "structural"
    JSON_DOCUMENT = "json_document"


def is_structural(value: Any) -> bool:
    """A structural schema carries its own validator (pydantic-style models)."""
    return hasattr(value, "model_fields") and callable(
        getattr(value, "model_validate", None)
    )


def is_json_document(value: Any) -> bool:
    return isinstance(value, AbcMapping) and any(k in value for k in _JSON_SCHEMA_KEYS)


def classify(schema: Any) -> SchemaKind:
    if is_structural(schema):
        return SchemaKind.STRUCTURAL
    if is_json_document(schema):
        return SchemaKind.JSON_DOCUMENT
    raise SchemaError(
        f"Unsupported schema value of type {type(schema).__name__}: expected a "
        "pydantic model or a JSON Schema document"
    )


def to_node(schema: Any) -> SchemaNode:
    kind = classify(schema)
    if kind is SchemaKind.STRUCTURAL:
        model = schema if isinstance(schema, type) else type(schema)
        return _model_to_node(model, ())
    return _document_to_node(schema, schema, ())


# ---------------------------------------------------------------------------
# Structural schemas (pydantic models)
# ---------------------------------------------------------------------------

# (attribute on a constraint object, node keyword). Walked left to right over
# the constraint list, so later entries override earlier ones.
_CONSTRAINT_ATTRS = (
    ("ge", "minimum"),
    ("gt", "exclusive_minimum"),
    ("le", "maximum"),
    ("lt", "exclusive_maximum"),
    ("multiple_of", "multiple_of"),
    ("min_length", "min_length"),
    ("max_length", "max_length"),
    ("pattern", "pattern"),
    ("format", "format"),
)

_STRING_KEYS = ("pattern", "min_length", "max_length", "format")
_NUMBER_KEYS = (
    "minimum",
    "maximum",
    "exclusive_minimum",
    "exclusive_maximum",
    "multiple_of",
)

# Compatibility shim: enum-like types expose their values under different
# attributes depending on where they come from. First hit wins.
_ENUM_VALUE_ACCESSORS = (
    ("__members__", lambda src: [m.value for m in src.values()]),
    ("_value2member_map_", lambda src: list(src.keys())),
    ("values", lambda src: list(src)),
    ("options", lambda src: list(src)),
    ("entries", lambda src: list(src.values())),
)

_STRING_FORMATS = {
    datetime.datetime: "date-time",
    datetime.date: "date",
    datetime.time: "time",
    uuid.UUID: "uuid",
}
_STRING_FORMATS_BY_NAME = {
    "EmailStr": "email",
    "NameEmail": "email",
    "AnyUrl": "uri",
    "AnyHttpUrl": "uri",
    "HttpUrl": "uri",
}


def _flatten_constraints(constraints: Iterable[Any]) -> Iterator[Any]:
    for item in constraints:
        if isinstance(item, annotated_types.GroupedMetadata):
            yield from _flatten_constraints(item)
        else:
            yield item


def _collect_constraints(constraints: Iterable[Any]) -> Dict[str, Any]:
    found: Dict[str, Any] = {}
    for item in _flatten_constraints(constraints):
        for attr, key in _CONSTRAINT_ATTRS:
            value = getattr(item, attr, None)
            if value is None or callable(value):
                continue
            if key == "pattern" and hasattr(value, "pattern"):
                value = value.pattern
            found[key] = value
    return found


def _pick(found: Mapping[str, Any], keys: Tuple[str, ...]) -> Dict[str, Any]:
    return {k: found[k] for k in keys if k in found}


def _enum_values(tp: Any) -> Tuple[Any, ...]:
    for name, extract in _ENUM_VALUE_ACCESSORS:
        source = getattr(tp, name, None)
        if source is None or callable(source):
            continue
        return tuple(extract(source))
    raise SchemaError(f"Cannot read enum values from {tp!r}")


def _description(doc: Optional[str]) -> Optional[str]:
    return inspect.cleandoc(doc) if doc else None


def _model_to_node(model: Any, seen: Tuple[Any, ...]) -> ObjectNode:
    if model in seen:
        raise SchemaError(f"Recursive structural schema {model.__name__} is not supported")
    seen = seen + (model,)

    properties: Dict[str, SchemaNode] = {}
    required = set()
    for name, info in model.model_fields.items():
        key = info.alias or name
        constraints: List[Any] = list(getattr(info, "metadata", None) or [])
        extra = getattr(info, "json_schema_extra", None)
        if isinstance(extra, dict) and "format" in extra:
            constraints.append(types.SimpleNamespace(format=extra["format"]))

        node = _annotation_to_node(info.annotation, constraints, seen)
        if info.description:
            node = replace(node, description=info.description)

        if info.is_required():
            required.add(key)
        else:
            node = optional(node)
        properties[key] = node

    return ObjectNode(
        properties=properties,
        required=frozenset(required),
        description=_description(model.__doc__),
    )


def _annotation_to_node(tp: Any, constraints: List[Any], seen: Tuple[Any, ...]) -> SchemaNode:
    origin = get_origin(tp)
    args = get_args(tp)

    if origin is Annotated:
        return _annotation_to_node(args[0], constraints + list(args[1:]), seen)

    if origin is Union or origin is types.UnionType:
        members = [a for a in args if a is not type(None)]
        nullable = len(members) < len(args)
        if len(members) == 1:
            node = _annotation_to_node(members[0], constraints, seen)
        else:
            node = UnionNode(options=[_annotation_to_node(m, [], seen) for m in members])
        return replace(node, nullable=True) if nullable else node

    if origin is Literal:
        return _literal_values_to_node(args)

    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        return EnumNode(values=_enum_values(tp))

    found = _collect_constraints(constraints)

    if origin in (list, tuple, set, frozenset) or (
        origin is not None
        and isinstance(origin, type)
        and issubclass(origin, (AbcSequence, AbcSet))
        and not issubclass(origin, str)
    ):
        item_args = [a for a in args if a is not Ellipsis]
        items = _annotation_to_node(item_args[0], [], seen) if item_args else StringNode()
        return ArrayNode(
            items=items,
            min_items=found.get("min_length"),
            max_items=found.get("max_length"),
        )

    if tp in (list, tuple, set, frozenset):
        return ArrayNode(
            items=StringNode(),
            min_items=found.get("min_length"),
            max_items=found.get("max_length"),
        )

    if tp in (dict,) or origin in (dict,) or (
        isinstance(origin, type) and issubclass(origin, AbcMapping)
    ):
        # Every dialect closes objects to their declared properties.
        raise SchemaError(
            f"Free-form mapping {tp!r} is not supported; declare a model with named fields"
        )

    if tp is bool:
        return BooleanNode()
    if tp is int:
        return NumberNode(is_integer=True, **_pick(found, _NUMBER_KEYS))
    if tp in (float, Decimal):
        return NumberNode(is_integer=False, **_pick(found, _NUMBER_KEYS))
    if tp is str:
        return StringNode(**_pick(found, _STRING_KEYS))

    if tp in _STRING_FORMATS:
        return StringNode(**{"format": _STRING_FORMATS[tp], **_pick(found, _STRING_KEYS)})
    fmt = _STRING_FORMATS_BY_NAME.get(getattr(tp, "__name__", ""))
    if fmt:
        return StringNode(**{"format": fmt, **_pick(found, _STRING_KEYS)})

    if is_structural(tp):
        return _model_to_node(tp, seen)

    # Unsupported annotations degrade to plain strings.
    return StringNode(**_pick(found, _STRING_KEYS))


def _literal_values_to_node(values: Iterable[Any]) -> SchemaNode:
    values = list(values)
    nullable = None in values
    values = [v for v in values if v is not None]
    if len(values) == 1:
        node: SchemaNode = LiteralNode(value=values[0])
    elif values and all(isinstance(v, str) for v in values):
        node = EnumNode(values=values)
    elif values:
        node = UnionNode(options=[LiteralNode(value=v) for v in values])
    else:
        node = LiteralNode(value=None)
        nullable = False
    return replace(node, nullable=True) if nullable else node


# ---------------------------------------------------------------------------
# Plain JSON Schema documents
# ---------------------------------------------------------------------------


def _resolve_ref(ref: str, root: Mapping[str, Any]) -> Mapping[str, Any]:
    if not ref.startswith("#"):
        raise SchemaError(f"Only local $ref values are supported, got {ref!r}")
    target: Any = root
    for part in [p for p in ref[1:].split("/") if p]:
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(target, AbcMapping) or part not in target:
            raise SchemaError(f"Unresolvable $ref {ref!r}")
        target = target[part]
    if not isinstance(target, AbcMapping):
        raise SchemaError(f"$ref {ref!r} does not point at a schema")
    return target


def _number(doc: Mapping[str, Any], is_integer: bool) -> NumberNode:
    minimum = doc.get("minimum")
    maximum = doc.get("maximum")
    exclusive_minimum = doc.get("exclusiveMinimum")
    exclusive_maximum = doc.get("exclusiveMaximum")
    # Draft 4 spells exclusivity as a boolean next to minimum/maximum.
    if exclusive_minimum is True:
        exclusive_minimum, minimum = minimum, None
    elif exclusive_minimum is False:
        exclusive_minimum = None
    if exclusive_maximum is True:
        exclusive_maximum, maximum = maximum, None
    elif exclusive_maximum is False:
        exclusive_maximum = None
    return NumberNode(
        is_integer=is_integer,
        minimum=minimum,
        maximum=maximum,
        exclusive_minimum=exclusive_minimum,
        exclusive_maximum=exclusive_maximum,
        multiple_of=doc.get("multipleOf"),
    )


def _typed_node(
    type_name: str,
    doc: Mapping[str, Any],
    root: Mapping[str, Any],
    resolving: Tuple[str, ...],
) -> SchemaNode:
    if type_name == "string":
        return StringNode(
            pattern=doc.get("pattern"),
            min_length=doc.get("minLength"),
            max_length=doc.get("maxLength"),
            format=doc.get("format"),
        )
    if type_name in ("integer", "number"):
        return _number(doc, type_name == "integer")
    if type_name == "boolean":
        return BooleanNode()
    if type_name == "array":
        items = doc.get("items")
        if isinstance(items, list):
            items = items[0] if items else None
        return ArrayNode(
            items=_document_to_node(items, root, resolving) if items else StringNode(),
            min_items=doc.get("minItems"),
            max_items=doc.get("maxItems"),
        )
    if type_name == "object":
        required = set(doc.get("required") or ())
        extra = doc.get("additionalProperties")
        if not doc.get("properties") and (extra is True or isinstance(extra, AbcMapping)):
            raise SchemaError(
                "Objects with only additionalProperties are not supported; declare properties"
            )
        properties: Dict[str, SchemaNode] = {}
        for name, sub in (doc.get("properties") or {}).items():
            node = _document_to_node(sub, root, resolving)
            properties[name] = node if name in required else optional(node)
        return ObjectNode(properties=properties, required=frozenset(required))
    if type_name == "null":
        return LiteralNode(value=None)
    return StringNode()


def _document_to_node(
    doc: Any, root: Mapping[str, Any], resolving: Tuple[str, ...]
) -> SchemaNode:
    if not isinstance(doc, AbcMapping):
        raise SchemaError(f"Expected a JSON Schema object, got {type(doc).__name__}")

    node = _document_body_to_node(doc, root, resolving)
    if doc.get("description") and getattr(node, "description", None) is None:
        node = replace(node, description=doc["description"])
    if doc.get("nullable") is True:
        node = replace(node, nullable=True)
    return node


def _document_body_to_node(
    doc: Mapping[str, Any], root: Mapping[str, Any], resolving: Tuple[str, ...]
) -> SchemaNode:
    ref = doc.get("$ref")
    if ref is not None:
        if ref in resolving:
            raise SchemaError(f"Recursive $ref {ref!r} is not supported")
        return _document_to_node(_resolve_ref(ref, root), root, resolving + (ref,))

    arms = doc.get("anyOf") or doc.get("oneOf")
    if arms:
        non_null = [a for a in arms if not (isinstance(a, AbcMapping) and a.get("type") == "null")]
        nullable = len(non_null) < len(arms)
        if len(non_null) == 1:
            node = _document_to_node(non_null[0], root, resolving)
        else:
            node = UnionNode(options=[_document_to_node(a, root, resolving) for a in non_null])
        return replace(node, nullable=True) if nullable else node

    all_of = doc.get("allOf")
    if all_of:
        if len(all_of) != 1:
            raise SchemaError("allOf with more than one subschema is not supported")
        return _document_to_node(all_of[0], root, resolving)

    if "enum" in doc:
        return _literal_values_to_node(doc["enum"])
    if "const" in doc:
        return LiteralNode(value=doc["const"])

    declared = doc.get("type")
    if isinstance(declared, list):
        names = [str(t).lower() for t in declared]
        nullable = "null" in names
        names = [t for t in names if t != "null"]
        if len(names) == 1:
            node = _typed_node(names[0], doc, root, resolving)
        elif names:
            node = UnionNode(options=[_typed_node(t, doc, root, resolving) for t in names])
        else:
            return LiteralNode(value=None)
        return replace(node, nullable=True) if nullable else node

    if isinstance(declared, str):
        return _typed_node(declared.lower(), doc, root, resolving)
    if "properties" in doc:
        return _typed_node("object", doc, root, resolving)
    if "items" in doc:
        return _typed_node("array", doc, root, resolving)
    return StringNode()
