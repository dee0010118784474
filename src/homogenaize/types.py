from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional, Sequence, Tuple, Union

from .cancellation import CancellationToken

Role = Literal["system", "user", "assistant", "tool"]
ToolChoiceMode = Literal["auto", "required", "none"]


@dataclass(frozen=True)
class ContentPart:
    """One multimodal message part: text, or an image by URL or base64 data."""

    type: Literal["text", "image"]
    text: Optional[str] = None
    url: Optional[str] = None
    data: Optional[str] = None
    mime_type: str = "image/png"

    @classmethod
    def of_text(cls, text: str) -> "ContentPart":
        return cls(type="text", text=text)

    @classmethod
    def of_image(
        cls, *, url: Optional[str] = None, data: Optional[str] = None, mime_type: str = "image/png"
    ) -> "ContentPart":
        return cls(type="image", url=url, data=data, mime_type=mime_type)


@dataclass(frozen=True)
class Message:
    role: Role
    content: Union[str, Tuple[ContentPart, ...]]
    tool_call_id: Optional[str] = None
    # Tool name for role="tool" messages; Gemini keys function responses by name.
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            object.__setattr__(self, "content", tuple(self.content))

    @property
    def text(self) -> str:
        """Concatenated text of the message, ignoring non-text parts."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text or "" for p in self.content if p.type == "text")


@dataclass(frozen=True)
class Tool:
    """A callable tool as declared to the backend.

    `parameters` is either a pydantic model or a JSON Schema document.
    """

    name: str
    description: str = ""
    parameters: Any = None


@dataclass(frozen=True)
class NamedToolChoice:
    name: str


ToolChoice = Union[ToolChoiceMode, NamedToolChoice]


@dataclass(frozen=True)
class ChatRequest:
    messages: Tuple[Message, ...]
    model: str = ""
    schema: Any = None
    tools: Tuple[Tool, ...] = ()
    tool_choice: Optional[ToolChoice] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    stop: Optional[Tuple[str, ...]] = None
    features: Mapping[str, Any] = field(default_factory=dict)
    cancellation: Optional[CancellationToken] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "tools", tuple(self.tools))
        if self.stop is not None:
            stop = (self.stop,) if isinstance(self.stop, str) else tuple(self.stop)
            object.__setattr__(self, "stop", stop)


class FinishReason(str, enum.Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChatResult:
    """Provider-neutral result container.

    `content` is the raw text, or the validated structured value when a
    schema was requested and the model answered with it.
    """

    provider: str
    model: str
    content: Any
    usage: Usage = field(default_factory=Usage)
    finish_reason: Optional[FinishReason] = None
    tool_calls: Tuple[ToolCall, ...] = ()
    extras: Mapping[str, Any] = field(default_factory=dict)
    raw_text: str = ""


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    name: str
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_message(self) -> Message:
        """The tool-role message that reports this result back to the model."""
        if self.error is not None:
            content = json.dumps({"error": self.error})
        elif isinstance(self.result, str):
            content = self.result
        else:
            content = json.dumps(self.result, default=str)
        return Message("tool", content, tool_call_id=self.tool_call_id, name=self.name)


def as_messages(messages: Sequence[Union[Message, Mapping[str, Any]]]) -> Tuple[Message, ...]:
    """Accept Message instances or plain {"role", "content"} dicts."""
    out = []
    for m in messages:
        if isinstance(m, Message):
            out.append(m)
        else:
            content = m["content"]
            if not isinstance(content, str):
                content = tuple(
                    p if isinstance(p, ContentPart) else ContentPart(**p) for p in content
                )
            out.append(
                Message(
                    role=m["role"],
                    content=content,
                    tool_call_id=m.get("tool_call_id"),
                    name=m.get("name"),
                )
            )
    return tuple(out)
