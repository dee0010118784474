from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence

from ._json import parse_json
from .context import CallContext
from .dialects import SYNTHETIC_TOOL_NAME
from .errors import LLMValidationError
from .schema import PreparedSchema, unwrap_root, validate_payload
from .types import ChatResult, FinishReason, ToolCall, Usage


def parse_tool_arguments(name: str, raw: Any) -> Dict[str, Any]:
    """Tool arguments arrive as a JSON string (OpenAI, streamed deltas) or an object."""
    if isinstance(raw, Mapping):
        return dict(raw)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    arguments = parse_json(raw)
    if not isinstance(arguments, dict):
        raise LLMValidationError(f"Arguments for tool {name!r} are not a JSON object")
    return arguments


def build_result(
    *,
    provider: str,
    model: str,
    text: str,
    tool_calls: Sequence[ToolCall] = (),
    usage: Optional[Usage] = None,
    finish_reason: Optional[FinishReason] = None,
    extras: Optional[Mapping[str, Any]] = None,
    prepared: Optional[PreparedSchema] = None,
    context: Optional[CallContext] = None,
) -> ChatResult:
    """Assemble the normalized result of one attempt.

    With a schema requested, the structured payload comes from the synthetic
    tool call when the model made one, else from the text. When the model only
    called caller tools, those calls are returned and nothing is validated.
    Raises LLMValidationError on non-conforming output.
    """

    content: Any = text
    calls = tuple(tool_calls)

    if prepared is not None:
        synthetic = next((c for c in calls if c.name == SYNTHETIC_TOOL_NAME), None)
        if synthetic is not None:
            calls = tuple(c for c in calls if c.name != SYNTHETIC_TOOL_NAME)
            payload = unwrap_root(prepared, synthetic.arguments)
            content = validate_payload(prepared, payload, context)
            if not calls:
                finish_reason = FinishReason.STOP
        elif not calls:
            content = validate_payload(prepared, parse_json(text), context)

    return ChatResult(
        provider=provider,
        model=model,
        content=content,
        usage=usage or Usage(),
        finish_reason=finish_reason,
        tool_calls=calls,
        extras=dict(extras or {}),
        raw_text=text,
    )
