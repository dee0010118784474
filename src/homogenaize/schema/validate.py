from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import ValidationError

from .._json import validate_json
from ..context import CallContext
from ..errors import LLMValidationError
from .convert import SchemaKind, classify, to_node
from .nodes import ObjectNode, SchemaNode

# Root key used when a non-object schema has to travel as tool arguments.
VALUE_KEY = "value"


@dataclass(frozen=True)
class PreparedSchema:
    """A caller schema plus its uniform tree, built once per call."""

    kind: SchemaKind
    source: Any
    node: SchemaNode

    @property
    def model(self) -> Optional[type]:
        if self.kind is not SchemaKind.STRUCTURAL:
            return None
        return self.source if isinstance(self.source, type) else type(self.source)

    @property
    def wraps_root(self) -> bool:
        """Tool arguments must be objects; other roots ride under VALUE_KEY."""
        return not isinstance(self.node, ObjectNode)


def prepare_schema(schema: Any) -> PreparedSchema:
    return PreparedSchema(kind=classify(schema), source=schema, node=to_node(schema))


def validate_payload(
    prepared: PreparedSchema, payload: Any, context: Optional[CallContext] = None
) -> Any:
    """Validate a decoded payload against the caller's schema.

    Structural schemas return the model instance; JSON documents return the
    payload unchanged once it conforms.
    """

    if prepared.kind is SchemaKind.STRUCTURAL:
        try:
            return prepared.model.model_validate(payload)
        except ValidationError as e:
            raise LLMValidationError(
                f"Response did not match {prepared.model.__name__}: {e}", cause=e
            ) from e

    context = context or CallContext()
    validate_json(payload, prepared.source, context.validators)
    return payload


def unwrap_root(prepared: PreparedSchema, arguments: Any) -> Any:
    if not prepared.wraps_root:
        return arguments
    if not isinstance(arguments, dict) or VALUE_KEY not in arguments:
        raise LLMValidationError(
            f"Structured output arguments are missing the {VALUE_KEY!r} key"
        )
    return arguments[VALUE_KEY]
