from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..dialects import openai as dialect
from ..errors import LLMError
from ..normalize import build_result, parse_tool_arguments
from ..schema import PreparedSchema
from ..streaming import StreamAssembler
from ..types import ChatRequest, ChatResult, FinishReason, Message, ToolCall, Usage
from .base import Provider, tool_node

FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.CONTENT_FILTER,
}

# Request features passed straight through when set.
_FEATURES = ("logprobs", "top_logprobs", "seed", "response_format")


def _content(message: Message) -> Any:
    if isinstance(message.content, str):
        return message.content
    parts: List[Dict[str, Any]] = []
    for part in message.content:
        if part.type == "text":
            parts.append({"type": "text", "text": part.text or ""})
        else:
            url = part.url or f"data:{part.mime_type};base64,{part.data}"
            parts.append({"type": "image_url", "image_url": {"url": url}})
    return parts


def _message(message: Message) -> Dict[str, Any]:
    if message.role == "tool":
        return {"role": "tool", "tool_call_id": message.tool_call_id, "content": message.text}
    return {"role": message.role, "content": _content(message)}


def _usage(raw: Optional[Mapping[str, Any]]) -> Usage:
    raw = raw or {}
    prompt = raw.get("prompt_tokens", 0)
    completion = raw.get("completion_tokens", 0)
    return Usage(
        input_tokens=prompt,
        output_tokens=completion,
        total_tokens=raw.get("total_tokens", prompt + completion),
    )


class OpenAIProvider(Provider):
    """OpenAI Chat Completions.

    Structured output is coerced through a forced call of the synthetic tool.
    """

    name = "openai"

    def endpoint(self, model: str, *, stream: bool) -> str:
        return f"{self._base_url}/chat/completions"

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    def transform_request(
        self, request: ChatRequest, prepared: Optional[PreparedSchema], *, stream: bool
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": request.model,
            "messages": [_message(m) for m in request.messages],
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if request.top_p is not None:
            body["top_p"] = request.top_p
        if request.stop:
            body["stop"] = list(request.stop)

        tools = [
            dialect.compile_tool(t.name, t.description, tool_node(t)) for t in request.tools
        ]
        tool_choice = request.tool_choice
        if prepared is not None:
            tools.append(dialect.structured_output_tool(prepared.node))
            if tool_choice is None or not request.tools:
                tool_choice = "required"
        if tools:
            body["tools"] = tools
            if tool_choice is not None:
                body["tool_choice"] = dialect.compile_tool_choice(tool_choice)

        for key in _FEATURES:
            if request.features.get(key) is not None:
                body[key] = request.features[key]

        if stream:
            body["stream"] = True
            body["stream_options"] = {"include_usage": True}
        return body

    def parse_complete(
        self, body: Mapping[str, Any], prepared: Optional[PreparedSchema], model: str
    ) -> ChatResult:
        choices = body.get("choices") or []
        if not choices:
            raise LLMError("OpenAI response contained no choices", provider=self.name, model=model)
        choice = choices[0]
        message = choice.get("message") or {}

        tool_calls = [
            ToolCall(
                id=call.get("id", ""),
                name=call["function"]["name"],
                arguments=parse_tool_arguments(
                    call["function"]["name"], call["function"].get("arguments")
                ),
            )
            for call in message.get("tool_calls") or []
        ]

        extras: Dict[str, Any] = {}
        if body.get("system_fingerprint"):
            extras["system_fingerprint"] = body["system_fingerprint"]
        if choice.get("logprobs"):
            extras["logprobs"] = (choice["logprobs"] or {}).get("content")

        return build_result(
            provider=self.name,
            model=body.get("model", model),
            text=message.get("content") or "",
            tool_calls=tool_calls,
            usage=_usage(body.get("usage")),
            finish_reason=FINISH_REASONS.get(choice.get("finish_reason")),
            extras=extras,
            prepared=prepared,
            context=self._context,
        )

    def stream_assembler(self, model: str) -> StreamAssembler:
        return OpenAIStreamAssembler(model)


class OpenAIStreamAssembler(StreamAssembler):
    provider = "openai"

    def feed(self, data: str) -> List[str]:
        event = self.decode(data)
        if event.get("error"):
            raise LLMError(
                f"OpenAI stream error: {event['error'].get('message', event['error'])}",
                provider=self.provider,
                model=self.model,
            )
        self.model = event.get("model") or self.model
        if event.get("system_fingerprint"):
            self.extras["system_fingerprint"] = event["system_fingerprint"]
        if event.get("usage"):
            self.usage = _usage(event["usage"])

        fragments: List[str] = []
        for choice in event.get("choices") or []:
            delta = choice.get("delta") or {}
            if delta.get("content"):
                self.text_parts.append(delta["content"])
                fragments.append(delta["content"])
            for call_delta in delta.get("tool_calls") or []:
                pending = self.tool_call(call_delta.get("index", 0))
                pending.id = call_delta.get("id") or pending.id
                function = call_delta.get("function") or {}
                pending.name = function.get("name") or pending.name
                pending.arguments += function.get("arguments") or ""
            logprobs = (choice.get("logprobs") or {}).get("content")
            if logprobs:
                self.extras.setdefault("logprobs", []).extend(logprobs)
            if choice.get("finish_reason"):
                self.finish_reason = FINISH_REASONS.get(choice["finish_reason"])
        return fragments
