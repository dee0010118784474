"""One chat call shape across OpenAI, Anthropic and Gemini.

Design goals:
- Compile one schema (pydantic model or JSON Schema) into each backend's dialect.
- Retry transient failures and schema non-conformance with backoff and jitter.
- Normalize complete and streamed responses into one result type.
"""

from ._retry import RetryPolicy, execute, retrying
from .cancellation import CancellationToken
from .context import CallContext
from .errors import (
    CallCancelledError,
    ClientError,
    ErrorKind,
    InvalidRequestError,
    LLMError,
    LLMValidationError,
    NetworkError,
    RateLimitError,
    SchemaError,
    ServerError,
)
from .factory import LLMClient, build_llm
from .types import (
    ChatRequest,
    ChatResult,
    ContentPart,
    FinishReason,
    Message,
    NamedToolChoice,
    Tool,
    ToolCall,
    ToolResult,
    Usage,
)

__all__ = [
    "CallCancelledError",
    "CallContext",
    "CancellationToken",
    "ChatRequest",
    "ChatResult",
    "ClientError",
    "ContentPart",
    "ErrorKind",
    "FinishReason",
    "InvalidRequestError",
    "LLMClient",
    "LLMError",
    "LLMValidationError",
    "Message",
    "NamedToolChoice",
    "NetworkError",
    "RateLimitError",
    "RetryPolicy",
    "SchemaError",
    "ServerError",
    "Tool",
    "ToolCall",
    "ToolResult",
    "Usage",
    "build_llm",
    "execute",
    "retrying",
]
