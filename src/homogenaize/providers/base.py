from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .. import _retry
from ..context import CallContext
from ..errors import LLMError, ServerError, error_from_status
from ..logger import sanitize
from ..schema import ObjectNode, PreparedSchema, SchemaNode, prepare_schema, to_node
from ..streaming import StreamAssembler, StreamingResponse
from ..transport import HttpRequest, RawResponse, Transport
from ..types import ChatRequest, ChatResult, Tool


def tool_node(tool: Tool) -> SchemaNode:
    if tool.parameters is None:
        return ObjectNode()
    return to_node(tool.parameters)


class Provider:
    """One backend: request compilation, response parsing, retried execution.

    Subclasses implement `transform_request`, `endpoint`, `headers`,
    `parse_complete` and `stream_assembler`.
    """

    name = ""

    def __init__(
        self,
        *,
        api_key: str,
        transport: Transport,
        base_url: str,
        retry: Optional[_retry.RetryPolicy] = None,
        context: Optional[CallContext] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self._api_key = api_key
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._retry = retry or _retry.DEFAULT_POLICY
        self._context = context or CallContext()
        self._timeout_s = timeout_s

    @property
    def context(self) -> CallContext:
        return self._context

    @property
    def retry_policy(self) -> _retry.RetryPolicy:
        return self._retry

    # -- per-backend hooks -------------------------------------------------

    def transform_request(
        self, request: ChatRequest, prepared: Optional[PreparedSchema], *, stream: bool
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def endpoint(self, model: str, *, stream: bool) -> str:
        raise NotImplementedError

    def headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def parse_complete(
        self, body: Mapping[str, Any], prepared: Optional[PreparedSchema], model: str
    ) -> ChatResult:
        raise NotImplementedError

    def stream_assembler(self, model: str) -> StreamAssembler:
        raise NotImplementedError

    # -- shared pipeline ---------------------------------------------------

    def build_request(
        self, request: ChatRequest, prepared: Optional[PreparedSchema], *, stream: bool
    ) -> HttpRequest:
        body = self.transform_request(request, prepared, stream=stream)
        return HttpRequest(
            url=self.endpoint(request.model, stream=stream),
            json=body,
            headers={"Content-Type": "application/json", **self.headers()},
            stream=stream,
            timeout_s=self._timeout_s,
        )

    def raise_for_status(self, raw: RawResponse, model: str) -> None:
        if raw.ok:
            return
        raise error_from_status(
            raw.status_code,
            f"{self.name} API error ({raw.status_code}): {_error_message(raw)}",
            retry_after=raw.header("retry-after"),
            provider=self.name,
            model=model,
        )

    def _decode(self, raw: RawResponse, model: str) -> Mapping[str, Any]:
        try:
            body = raw.json()
        except ValueError as e:
            raise ServerError(
                f"{self.name} returned a malformed response body",
                status_code=raw.status_code,
                provider=self.name,
                model=model,
            ) from e
        if not isinstance(body, Mapping):
            raise LLMError(
                f"{self.name} returned an unexpected response body", provider=self.name, model=model
            )
        return body

    def _prepare(self, request: ChatRequest) -> Optional[PreparedSchema]:
        return prepare_schema(request.schema) if request.schema is not None else None

    async def chat(
        self, request: ChatRequest, *, retry: Optional[_retry.RetryPolicy] = None
    ) -> ChatResult:
        """Run one logical call; validation failures re-invoke the same request."""

        prepared = self._prepare(request)
        http_request = self.build_request(request, prepared, stream=False)
        log = self._context.logger
        log.debug("%s request: %s", self.name, sanitize(http_request.json))

        async def attempt() -> ChatResult:
            raw = await self._transport.invoke(http_request, request.cancellation)
            self.raise_for_status(raw, request.model)
            return self.parse_complete(self._decode(raw, request.model), prepared, request.model)

        result = await _retry.execute(
            attempt,
            retry or self._retry,
            request.cancellation,
            context=self._context,
            description=f"{self.name} chat",
        )
        log.debug(
            "%s response: finish=%s usage=%s", self.name, result.finish_reason, result.usage
        )
        return result

    async def stream(
        self, request: ChatRequest, *, retry: Optional[_retry.RetryPolicy] = None
    ) -> StreamingResponse:
        """Open a stream. Only opening is retried; the body is consumed lazily."""

        prepared = self._prepare(request)
        http_request = self.build_request(request, prepared, stream=True)
        self._context.logger.debug(
            "%s stream request: %s", self.name, sanitize(http_request.json)
        )

        async def open_stream() -> RawResponse:
            raw = await self._transport.invoke(http_request, request.cancellation)
            self.raise_for_status(raw, request.model)
            return raw

        raw = await _retry.execute(
            open_stream,
            retry or self._retry,
            request.cancellation,
            context=self._context,
            description=f"{self.name} stream",
        )
        chunks = raw.chunks if raw.chunks is not None else _single_chunk(raw.content)
        return StreamingResponse(
            chunks,
            self.stream_assembler(request.model),
            prepared=prepared,
            context=self._context,
            cancellation=request.cancellation,
            close=raw.close,
        )


async def _single_chunk(content: bytes):
    yield content


def _error_message(raw: RawResponse) -> str:
    try:
        body = raw.json()
    except ValueError:
        return raw.text.strip() or "Unknown error"
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return raw.text.strip() or "Unknown error"
