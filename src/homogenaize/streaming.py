"""Incremental stream decoding shared by the provider assemblers."""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from .cancellation import CancellationToken, run_cancellable
from .context import CallContext
from .errors import LLMError
from .normalize import build_result, parse_tool_arguments
from .schema import PreparedSchema
from .types import ChatResult, FinishReason, ToolCall, Usage

DONE_SENTINEL = "[DONE]"


class LineBuffer:
    """Split a byte stream into complete lines.

    Bytes are decoded incrementally, so a multi-byte character split across
    chunks is never mangled; the trailing partial line waits for more input.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: Any) -> List[str]:
        text = self._decoder.decode(chunk) if isinstance(chunk, (bytes, bytearray)) else chunk
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        rest = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        rest = rest.rstrip("\r")
        return [rest] if rest else []


def sse_data(line: str) -> Optional[str]:
    """Payload of an SSE `data:` line, or None for any other line."""
    if not line.startswith("data:"):
        return None
    data = line[5:]
    return data[1:] if data.startswith(" ") else data


async def iter_sse_data(chunks: AsyncIterator[Any]) -> AsyncIterator[str]:
    buffer = LineBuffer()
    async for chunk in chunks:
        for line in buffer.feed(chunk):
            data = sse_data(line)
            if data is not None:
                yield data
    for line in buffer.flush():
        data = sse_data(line)
        if data is not None:
            yield data


_END = object()


async def _next_chunk(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END


async def _cancellable_chunks(
    chunks: AsyncIterator[Any], token: CancellationToken
) -> AsyncIterator[Any]:
    """Yield from `chunks`, abandoning a pending read the instant `token` fires."""
    iterator = chunks.__aiter__()
    while True:
        chunk = await run_cancellable(_next_chunk(iterator), token)
        if chunk is _END:
            return
        yield chunk


@dataclass
class PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""
    parsed: Optional[Dict[str, Any]] = None


class StreamAssembler:
    """Accumulates one streamed attempt; subclasses decode their event format."""

    provider = ""

    def __init__(self, model: str) -> None:
        self.model = model
        self.text_parts: List[str] = []
        self.tool_calls: Dict[int, PendingToolCall] = {}
        self.usage = Usage()
        self.finish_reason: Optional[FinishReason] = None
        self.extras: Dict[str, Any] = {}

    def feed(self, data: str) -> List[str]:
        """Consume one SSE payload and return the text fragments it carried."""
        raise NotImplementedError

    def decode(self, data: str) -> Dict[str, Any]:
        try:
            event = json.loads(data)
        except ValueError as e:
            raise LLMError(
                f"Malformed {self.provider} stream event: {data[:200]!r}",
                provider=self.provider,
                model=self.model,
            ) from e
        if not isinstance(event, dict):
            raise LLMError(
                f"Unexpected {self.provider} stream event: {data[:200]!r}",
                provider=self.provider,
                model=self.model,
            )
        return event

    def tool_call(self, index: int) -> PendingToolCall:
        return self.tool_calls.setdefault(index, PendingToolCall())

    def text(self) -> str:
        return "".join(self.text_parts)

    def result(
        self, prepared: Optional[PreparedSchema], context: Optional[CallContext]
    ) -> ChatResult:
        calls = []
        for index in sorted(self.tool_calls):
            pending = self.tool_calls[index]
            arguments = (
                pending.parsed
                if pending.parsed is not None
                else parse_tool_arguments(pending.name, pending.arguments)
            )
            calls.append(ToolCall(id=pending.id, name=pending.name, arguments=arguments))
        return build_result(
            provider=self.provider,
            model=self.model,
            text=self.text(),
            tool_calls=calls,
            usage=self.usage,
            finish_reason=self.finish_reason,
            extras=self.extras,
            prepared=prepared,
            context=context,
        )


class StreamingResponse:
    """Lazy, finite, single-pass sequence of text fragments plus `complete()`.

    When a schema was requested no fragments are emitted (partial JSON is
    never valid), but the text is still accumulated for `complete()`.
    """

    def __init__(
        self,
        chunks: AsyncIterator[Any],
        assembler: StreamAssembler,
        *,
        prepared: Optional[PreparedSchema] = None,
        context: Optional[CallContext] = None,
        cancellation: Optional[CancellationToken] = None,
        close: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._assembler = assembler
        self._prepared = prepared
        self._context = context
        self._cancellation = cancellation
        self._close = close
        self._fragments = self._generate(chunks)
        self._result: Optional[ChatResult] = None
        self._error: Optional[BaseException] = None
        self._finished = False

    async def _generate(self, chunks: AsyncIterator[Any]) -> AsyncIterator[str]:
        if self._cancellation is not None:
            chunks = _cancellable_chunks(chunks, self._cancellation)
        try:
            async for data in iter_sse_data(chunks):
                if self._cancellation is not None:
                    self._cancellation.raise_if_cancelled()
                if data.strip() == DONE_SENTINEL:
                    continue
                for fragment in self._assembler.feed(data):
                    if self._prepared is None and fragment:
                        yield fragment
        except Exception as e:
            self._error = e
            raise
        else:
            self._finished = True
        finally:
            if self._close is not None:
                await self._close()

    def __aiter__(self) -> "StreamingResponse":
        return self

    async def __anext__(self) -> str:
        return await self._fragments.__anext__()

    async def aclose(self) -> None:
        await self._fragments.aclose()

    async def complete(self) -> ChatResult:
        """Drain unread fragments, then validate and return the result.

        A stream that failed re-raises its error; one closed before the end
        raises LLMError. Partial output never becomes a result.
        """
        if self._result is None:
            if self._error is None:
                async for _ in self._fragments:
                    pass
            if self._error is not None:
                raise self._error
            if not self._finished:
                raise LLMError(
                    f"{self._assembler.provider} stream was closed before it finished",
                    provider=self._assembler.provider,
                    model=self._assembler.model,
                )
            self._result = self._assembler.result(self._prepared, self._context)
        return self._result
