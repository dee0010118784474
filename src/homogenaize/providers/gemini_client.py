from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..dialects import gemini as dialect
from ..errors import InvalidRequestError
from ..normalize import build_result, parse_tool_arguments
from ..schema import PreparedSchema
from ..streaming import StreamAssembler
from ..types import ChatRequest, ChatResult, FinishReason, Message, ToolCall, Usage
from .base import Provider, tool_node

FINISH_REASONS = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.CONTENT_FILTER,
    "BLOCKLIST": FinishReason.CONTENT_FILTER,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    "SPII": FinishReason.CONTENT_FILTER,
    "IMAGE_SAFETY": FinishReason.CONTENT_FILTER,
}


def tool_call_id(name: str, index: int) -> str:
    # Gemini function calls carry no id of their own.
    return f"{name}_{index}"


def _parts(message: Message) -> List[Dict[str, Any]]:
    if isinstance(message.content, str):
        return [{"text": message.content}]
    parts: List[Dict[str, Any]] = []
    for part in message.content:
        if part.type == "text":
            parts.append({"text": part.text or ""})
        elif part.data:
            parts.append({"inlineData": {"mimeType": part.mime_type, "data": part.data}})
        else:
            parts.append({"fileData": {"mimeType": part.mime_type, "fileUri": part.url}})
    return parts


def _content(message: Message) -> Dict[str, Any]:
    if message.role == "tool":
        if not message.name:
            raise InvalidRequestError(
                "Gemini tool messages need the tool name; set Message.name "
                "or use ToolResult.to_message()"
            )
        return {
            "role": "user",
            "parts": [
                {
                    "functionResponse": {
                        "name": message.name,
                        "response": {"content": message.text},
                    }
                }
            ],
        }
    role = "model" if message.role == "assistant" else "user"
    return {"role": role, "parts": _parts(message)}


def _usage(raw: Optional[Mapping[str, Any]]) -> Usage:
    raw = raw or {}
    prompt = raw.get("promptTokenCount", 0)
    candidates = raw.get("candidatesTokenCount", 0)
    return Usage(
        input_tokens=prompt,
        output_tokens=candidates,
        total_tokens=raw.get("totalTokenCount", prompt + candidates),
    )


def _read_candidate(
    candidate: Mapping[str, Any], first_index: int
) -> Tuple[List[str], List[ToolCall]]:
    texts: List[str] = []
    calls: List[ToolCall] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        if "functionCall" in part:
            call = part["functionCall"]
            calls.append(
                ToolCall(
                    id=call.get("id") or tool_call_id(call["name"], first_index + len(calls)),
                    name=call["name"],
                    arguments=parse_tool_arguments(call["name"], call.get("args")),
                )
            )
        elif "text" in part and not part.get("thought"):
            texts.append(part["text"])
    return texts, calls


class GeminiProvider(Provider):
    """Gemini generateContent.

    Uses native `responseSchema` when a schema comes without tools; with tools
    the schema is folded into the function declarations instead.
    """

    name = "gemini"

    def endpoint(self, model: str, *, stream: bool) -> str:
        if stream:
            return f"{self._base_url}/models/{model}:streamGenerateContent?alt=sse"
        return f"{self._base_url}/models/{model}:generateContent"

    def headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self._api_key}

    def transform_request(
        self, request: ChatRequest, prepared: Optional[PreparedSchema], *, stream: bool
    ) -> Dict[str, Any]:
        system = "\n\n".join(m.text for m in request.messages if m.role == "system")
        body: Dict[str, Any] = {
            "contents": [_content(m) for m in request.messages if m.role != "system"],
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        generation: Dict[str, Any] = {}
        if request.temperature is not None:
            generation["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation["maxOutputTokens"] = request.max_tokens
        if request.top_p is not None:
            generation["topP"] = request.top_p
        if request.stop:
            generation["stopSequences"] = list(request.stop)

        functions = [
            dialect.compile_function(t.name, t.description, tool_node(t)) for t in request.tools
        ]
        choice = request.tool_choice

        if prepared is not None and not functions:
            generation.update(dialect.response_format(prepared.node))
        elif prepared is not None:
            functions.append(dialect.structured_output_function(prepared.node))
            if choice is None:
                choice = "required"

        if functions:
            body["tools"] = [{"functionDeclarations": functions}]
            tool_config = dialect.compile_tool_config(choice)
            if tool_config is not None:
                body["toolConfig"] = tool_config

        generation.update(request.features.get("generation_config") or {})
        if generation:
            body["generationConfig"] = generation
        if request.features.get("safety_settings"):
            body["safetySettings"] = list(request.features["safety_settings"])
        return body

    def parse_complete(
        self, body: Mapping[str, Any], prepared: Optional[PreparedSchema], model: str
    ) -> ChatResult:
        candidates = body.get("candidates") or []
        extras: Dict[str, Any] = {}
        texts: List[str] = []
        calls: List[ToolCall] = []
        finish_reason: Optional[FinishReason] = None

        if candidates:
            candidate = candidates[0]
            texts, calls = _read_candidate(candidate, 0)
            finish_reason = FINISH_REASONS.get(candidate.get("finishReason"))
            if candidate.get("safetyRatings"):
                extras["safety_ratings"] = candidate["safetyRatings"]
        elif (body.get("promptFeedback") or {}).get("blockReason"):
            finish_reason = FinishReason.CONTENT_FILTER
            extras["block_reason"] = body["promptFeedback"]["blockReason"]

        if calls and finish_reason is FinishReason.STOP:
            finish_reason = FinishReason.TOOL_CALLS

        return build_result(
            provider=self.name,
            model=body.get("modelVersion", model),
            text="".join(texts),
            tool_calls=calls,
            usage=_usage(body.get("usageMetadata")),
            finish_reason=finish_reason,
            extras=extras,
            prepared=prepared,
            context=self._context,
        )

    def stream_assembler(self, model: str) -> StreamAssembler:
        return GeminiStreamAssembler(model)


class GeminiStreamAssembler(StreamAssembler):
    """Each SSE event is a complete GenerateContentResponse fragment."""

    provider = "gemini"

    def feed(self, data: str) -> List[str]:
        event = self.decode(data)
        if event.get("usageMetadata"):
            self.usage = _usage(event["usageMetadata"])
        self.model = event.get("modelVersion") or self.model

        candidates = event.get("candidates") or []
        if not candidates:
            return []
        candidate = candidates[0]
        texts, calls = _read_candidate(candidate, len(self.tool_calls))
        for call in calls:
            pending = self.tool_call(len(self.tool_calls))
            pending.id, pending.name, pending.parsed = call.id, call.name, call.arguments

        if candidate.get("finishReason"):
            self.finish_reason = FINISH_REASONS.get(candidate["finishReason"])
            if self.tool_calls and self.finish_reason is FinishReason.STOP:
                self.finish_reason = FinishReason.TOOL_CALLS
        if candidate.get("safetyRatings"):
            self.extras["safety_ratings"] = candidate["safetyRatings"]

        self.text_parts.extend(texts)
        return texts
