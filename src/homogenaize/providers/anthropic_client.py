from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from .. import config
from ..dialects import SYNTHETIC_TOOL_NAME
from ..dialects import anthropic as dialect
from ..errors import (
    OVERLOADED_STATUS,
    ClientError,
    LLMError,
    RateLimitError,
    ServerError,
)
from ..normalize import build_result, parse_tool_arguments
from ..schema import PreparedSchema
from ..streaming import StreamAssembler
from ..types import ChatRequest, ChatResult, FinishReason, Message, ToolCall, Usage
from .base import Provider, tool_node

FINISH_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "pause_turn": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
    "refusal": FinishReason.CONTENT_FILTER,
}

DEFAULT_THINKING_BUDGET = 1024


def _content(message: Message) -> Any:
    if isinstance(message.content, str):
        return message.content
    blocks: List[Dict[str, Any]] = []
    for part in message.content:
        if part.type == "text":
            blocks.append({"type": "text", "text": part.text or ""})
        elif part.url:
            blocks.append({"type": "image", "source": {"type": "url", "url": part.url}})
        else:
            blocks.append(
                {
                    "type": "image",
                    "source": {"type": "base64", "media_type": part.mime_type, "data": part.data},
                }
            )
    return blocks


def _message(message: Message) -> Dict[str, Any]:
    if message.role == "tool":
        return {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.text,
                }
            ],
        }
    return {"role": message.role, "content": _content(message)}


def stream_error(error: Mapping[str, Any], model: str) -> LLMError:
    """Classify an `error` event delivered inside an open stream."""

    kind = error.get("type", "")
    message = f"Anthropic stream error ({kind}): {error.get('message', '')}"
    if kind == "overloaded_error":
        return ServerError(message, status_code=OVERLOADED_STATUS, provider="anthropic", model=model)
    if kind == "rate_limit_error":
        return RateLimitError(message, provider="anthropic", model=model)
    if kind in ("api_error", "timeout_error"):
        return ServerError(message, status_code=500, provider="anthropic", model=model)
    return ClientError(message, status_code=400, provider="anthropic", model=model)


class AnthropicProvider(Provider):
    """Anthropic Messages API.

    System messages are lifted into `system`; structured output is the input
    schema of a forced synthetic tool.
    """

    name = "anthropic"

    def endpoint(self, model: str, *, stream: bool) -> str:
        return f"{self._base_url}/messages"

    def headers(self) -> Dict[str, str]:
        return {"x-api-key": self._api_key, "anthropic-version": config.ANTHROPIC_VERSION}

    def transform_request(
        self, request: ChatRequest, prepared: Optional[PreparedSchema], *, stream: bool
    ) -> Dict[str, Any]:
        system = "\n\n".join(m.text for m in request.messages if m.role == "system")
        body: Dict[str, Any] = {
            "model": request.model,
            "messages": [_message(m) for m in request.messages if m.role != "system"],
            "max_tokens": request.max_tokens or config.DEFAULT_MAX_TOKENS,
        }
        if system:
            body["system"] = system
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.top_p is not None:
            body["top_p"] = request.top_p
        if request.stop:
            body["stop_sequences"] = list(request.stop)

        tools = [
            dialect.compile_tool(t.name, t.description, tool_node(t)) for t in request.tools
        ]
        choice = request.tool_choice

        if prepared is not None:
            if choice == "none":
                tools = []
            if tools:
                tool_choice = (
                    {"type": "any"} if choice is None else dialect.compile_tool_choice(choice, tools)
                )
            else:
                tool_choice = dialect.forced_tool_choice(SYNTHETIC_TOOL_NAME)
            body["tools"] = tools + [dialect.structured_output_tool(prepared.node)]
            body["tool_choice"] = tool_choice
        elif tools:
            tool_choice = dialect.compile_tool_choice(choice, tools)
            if tool_choice is not None:
                body["tools"] = tools
                if choice is not None:
                    body["tool_choice"] = tool_choice
        elif choice is not None and choice not in ("auto", "none"):
            dialect.compile_tool_choice(choice, tools)

        if request.features.get("thinking"):
            body["thinking"] = {
                "type": "enabled",
                "budget_tokens": request.features.get("max_thinking_tokens")
                or DEFAULT_THINKING_BUDGET,
            }

        if stream:
            body["stream"] = True
        return body

    def parse_complete(
        self, body: Mapping[str, Any], prepared: Optional[PreparedSchema], model: str
    ) -> ChatResult:
        text_parts: List[str] = []
        thinking_parts: List[str] = []
        tool_calls: List[ToolCall] = []
        for block in body.get("content") or []:
            kind = block.get("type")
            if kind == "text":
                text_parts.append(block.get("text", ""))
            elif kind == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.get("id", ""),
                        name=block["name"],
                        arguments=parse_tool_arguments(block["name"], block.get("input")),
                    )
                )
            elif kind == "thinking":
                thinking_parts.append(block.get("thinking") or block.get("text") or "")

        raw_usage = body.get("usage") or {}
        input_tokens = raw_usage.get("input_tokens", 0)
        output_tokens = raw_usage.get("output_tokens", 0)

        extras: Dict[str, Any] = {}
        if body.get("stop_reason"):
            extras["stop_reason"] = body["stop_reason"]
        if thinking_parts:
            extras["thinking"] = "".join(thinking_parts)

        return build_result(
            provider=self.name,
            model=body.get("model", model),
            text="".join(text_parts),
            tool_calls=tool_calls,
            usage=Usage(input_tokens, output_tokens, input_tokens + output_tokens),
            finish_reason=FINISH_REASONS.get(body.get("stop_reason")),
            extras=extras,
            prepared=prepared,
            context=self._context,
        )

    def stream_assembler(self, model: str) -> StreamAssembler:
        return AnthropicStreamAssembler(model)


class AnthropicStreamAssembler(StreamAssembler):
    provider = "anthropic"

    def __init__(self, model: str) -> None:
        super().__init__(model)
        self._input_tokens = 0
        self._output_tokens = 0
        self._thinking: List[str] = []

    def feed(self, data: str) -> List[str]:
        event = self.decode(data)
        kind = event.get("type")

        if kind == "error":
            raise stream_error(event.get("error") or {}, self.model)

        if kind == "message_start":
            message = event.get("message") or {}
            self.model = message.get("model") or self.model
            self._input_tokens = (message.get("usage") or {}).get("input_tokens", 0)
            self._output_tokens = (message.get("usage") or {}).get("output_tokens", 0)

        elif kind == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                pending = self.tool_call(event.get("index", 0))
                pending.id = block.get("id", "")
                pending.name = block.get("name", "")
            elif block.get("type") == "text" and block.get("text"):
                self.text_parts.append(block["text"])
                return [block["text"]]

        elif kind == "content_block_delta":
            delta = event.get("delta") or {}
            if delta.get("type") == "text_delta":
                self.text_parts.append(delta.get("text", ""))
                return [delta.get("text", "")]
            if delta.get("type") == "input_json_delta":
                self.tool_call(event.get("index", 0)).arguments += delta.get("partial_json", "")
            elif delta.get("type") == "thinking_delta":
                self._thinking.append(delta.get("thinking", ""))

        elif kind == "message_delta":
            delta = event.get("delta") or {}
            if delta.get("stop_reason"):
                self.finish_reason = FINISH_REASONS.get(delta["stop_reason"])
                self.extras["stop_reason"] = delta["stop_reason"]
            usage = event.get("usage") or {}
            self._output_tokens = usage.get("output_tokens", self._output_tokens)

        self.usage = Usage(
            self._input_tokens, self._output_tokens, self._input_tokens + self._output_tokens
        )
        if self._thinking:
            self.extras["thinking"] = "".join(self._thinking)
        return []
