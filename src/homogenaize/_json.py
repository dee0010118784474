from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Tuple

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError as _JSONSchemaError

from .errors import LLMValidationError, SchemaError


def parse_json(text: str) -> Any:
    """Parse JSON from a model response.

    Tolerates a surrounding markdown code fence, which some models add even
    when asked for bare JSON.
    """

    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    try:
        return json.loads(stripped)
    except ValueError as e:
        raise LLMValidationError(f"Failed to parse JSON: {e}", cause=e) from e


class ValidatorCache:
    """Compiled Draft 7 validators keyed by schema identity.

    Pure memoization: evicting an entry only costs a recompile.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, Tuple[Mapping[str, Any], Draft7Validator]] = {}

    def get(self, schema: Mapping[str, Any]) -> Draft7Validator:
        entry = self._entries.get(id(schema))
        # The stored reference keeps id() stable and guards against reuse.
        if entry is not None and entry[0] is schema:
            return entry[1]
        try:
            Draft7Validator.check_schema(schema)
        except _JSONSchemaError as e:
            raise SchemaError(f"Invalid JSON Schema: {e.message}") from e
        validator = Draft7Validator(schema)
        self._entries[id(schema)] = (schema, validator)
        return validator

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def validate_json(
    instance: Any, schema: Mapping[str, Any], cache: ValidatorCache
) -> None:
    validator = cache.get(schema)
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.absolute_path))
    if errors:
        details = "; ".join(
            f"/{'/'.join(str(p) for p in e.absolute_path)}: {e.message}" for e in errors
        )
        raise LLMValidationError(
            f"JSON schema validation failed: {details}", cause=errors[0]
        )
