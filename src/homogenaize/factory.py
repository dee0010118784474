from __future__ import annotations

import inspect
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from . import config
from ._retry import RetryPolicy
from .cancellation import CancellationToken
from .context import CallContext
from .errors import LLMError
from .providers import PROVIDERS, Provider
from .schema import prepare_schema, validate_payload
from .streaming import StreamingResponse
from .transport import HttpxTransport, Transport
from .types import (
    ChatRequest,
    ChatResult,
    Message,
    Tool,
    ToolCall,
    ToolChoice,
    ToolResult,
    as_messages,
)

_BASE_URLS = {
    "openai": config.OPENAI_BASE_URL,
    "anthropic": config.ANTHROPIC_BASE_URL,
    "gemini": config.GEMINI_BASE_URL,
}

# Sampling options a client may carry as per-call defaults.
_DEFAULT_OPTIONS = ("temperature", "max_tokens", "top_p", "stop", "features")


@dataclass(frozen=True)
class DefinedTool:
    tool: Tool
    func: Callable[..., Any]


class LLMClient:
    """Provider-neutral chat client.

    Wraps one `Provider` with a default model, default sampling options and a
    registry of executable tools.
    """

    def __init__(
        self,
        provider: Provider,
        *,
        model: str,
        defaults: Optional[Mapping[str, Any]] = None,
    ) -> None:
        unknown = set(defaults or {}) - set(_DEFAULT_OPTIONS)
        if unknown:
            raise LLMError(f"Unknown default option(s): {', '.join(sorted(unknown))}")
        self._provider = provider
        self._model = model
        self._defaults = dict(defaults or {})
        self._tools: Dict[str, DefinedTool] = {}

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def model(self) -> str:
        return self._model

    @property
    def context(self) -> CallContext:
        return self._provider.context

    @property
    def tools(self) -> List[Tool]:
        return [d.tool for d in self._tools.values()]

    def build_request(
        self,
        messages: Sequence[Union[Message, Mapping[str, Any]]],
        *,
        schema: Any = None,
        tools: Optional[Iterable[Tool]] = None,
        tool_choice: Optional[ToolChoice] = None,
        cancellation: Optional[CancellationToken] = None,
        model: Optional[str] = None,
        **options: Any,
    ) -> ChatRequest:
        unknown = set(options) - set(_DEFAULT_OPTIONS)
        if unknown:
            raise LLMError(f"Unknown chat option(s): {', '.join(sorted(unknown))}")
        merged = {**self._defaults, **{k: v for k, v in options.items() if v is not None}}
        return ChatRequest(
            messages=as_messages(messages),
            model=model or self._model,
            schema=schema,
            tools=tuple(tools) if tools is not None else (),
            tool_choice=tool_choice,
            temperature=merged.get("temperature"),
            max_tokens=merged.get("max_tokens"),
            top_p=merged.get("top_p"),
            stop=merged.get("stop"),
            features=merged.get("features") or {},
            cancellation=cancellation,
        )

    async def chat(
        self,
        messages: Sequence[Union[Message, Mapping[str, Any]]],
        *,
        retry: Optional[RetryPolicy] = None,
        **kwargs: Any,
    ) -> ChatResult:
        """One logical chat call.

        With `schema`, `content` is the validated value (a model instance for
        pydantic schemas). `retry` overrides the client policy for this call.
        """
        return await self._provider.chat(self.build_request(messages, **kwargs), retry=retry)

    async def stream(
        self,
        messages: Sequence[Union[Message, Mapping[str, Any]]],
        *,
        retry: Optional[RetryPolicy] = None,
        **kwargs: Any,
    ) -> StreamingResponse:
        return await self._provider.stream(self.build_request(messages, **kwargs), retry=retry)

    def define_tool(
        self,
        name: str,
        description: str,
        parameters: Any,
        func: Callable[..., Any],
    ) -> Tool:
        """Register an executable tool; the returned `Tool` can be passed to `chat`."""
        if parameters is not None:
            prepare_schema(parameters)
        tool = Tool(name=name, description=description, parameters=parameters)
        self._tools[name] = DefinedTool(tool=tool, func=func)
        return tool

    async def execute_tools(self, tool_calls: Iterable[ToolCall]) -> List[ToolResult]:
        """Run registered tools for each call in order.

        Arguments are validated against the tool's schema first. Failures are
        reported per call in `ToolResult.error`; the remaining calls still run.
        """
        log = self.context.logger
        results: List[ToolResult] = []
        for call in tool_calls:
            defined = self._tools.get(call.name)
            if defined is None:
                results.append(
                    ToolResult(call.id, call.name, error=f"Tool {call.name!r} is not defined")
                )
                continue
            try:
                arguments: Any = call.arguments
                if defined.tool.parameters is not None:
                    prepared = prepare_schema(defined.tool.parameters)
                    arguments = validate_payload(prepared, call.arguments, self.context)
                value = defined.func(arguments)
                if inspect.isawaitable(value):
                    value = await value
            except Exception as e:  # noqa: BLE001
                log.warning("Tool %s failed: %s", call.name, e)
                results.append(ToolResult(call.id, call.name, error=str(e)))
                continue
            results.append(ToolResult(call.id, call.name, result=value))
        return results


def build_llm(
    *,
    provider: str,
    model: str,
    api_key: Optional[str] = None,
    retry: Optional[RetryPolicy] = None,
    transport: Optional[Transport] = None,
    context: Optional[CallContext] = None,
    base_url: Optional[str] = None,
    timeout_s: Optional[float] = None,
    **defaults: Any,
) -> LLMClient:
    """Factory for provider clients.

    Providers:
    - openai
    - anthropic
    - gemini

    The API key falls back to the provider's environment variable.
    """

    p = provider.lower().strip()
    provider_cls = PROVIDERS.get(p)
    if provider_cls is None:
        raise LLMError(f"Unknown LLM provider: {provider}")

    api_key = api_key or os.getenv(config.API_KEY_ENV[p])
    if not api_key:
        raise LLMError(f"Missing env var {config.API_KEY_ENV[p]} for {p} API key")

    instance = provider_cls(
        api_key=api_key,
        transport=transport or HttpxTransport(timeout_s=timeout_s or config.REQUEST_TIMEOUT_S),
        base_url=base_url or _BASE_URLS[p],
        retry=retry,
        context=context,
        timeout_s=timeout_s,
    )
    return LLMClient(instance, model=model, defaults=defaults)
