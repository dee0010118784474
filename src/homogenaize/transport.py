"""Network primitive seam.

The pipeline only ever calls `Transport.invoke`; `HttpxTransport` is the
default implementation and tests substitute their own.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional, Protocol

import httpx

from . import config
from .cancellation import CancellationToken, run_cancellable
from .errors import NetworkError


@dataclass(frozen=True)
class HttpRequest:
    url: str
    json: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    method: str = "POST"
    stream: bool = False
    timeout_s: Optional[float] = None


@dataclass
class RawResponse:
    """What the network primitive hands back.

    Streaming responses carry `chunks` (raw bytes as they arrive) instead of
    `content`, plus an optional `close` hook releasing the connection.
    """

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    content: bytes = b""
    chunks: Optional[AsyncIterator[bytes]] = None
    close: Optional[Callable[[], Awaitable[None]]] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class Transport(Protocol):
    async def invoke(
        self, request: HttpRequest, cancellation: Optional[CancellationToken] = None
    ) -> RawResponse:
        raise NotImplementedError


class HttpxTransport:
    """`Transport` backed by an `httpx.AsyncClient`.

    The client is created lazily unless one is passed in; only a client this
    transport created is closed by `aclose()`.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout_s: float = config.REQUEST_TIMEOUT_S,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout_s = timeout_s

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_s)
        return self._client

    async def invoke(
        self, request: HttpRequest, cancellation: Optional[CancellationToken] = None
    ) -> RawResponse:
        return await run_cancellable(self._send(request), cancellation)

    async def _send(self, request: HttpRequest) -> RawResponse:
        client = self._get_client()
        http_request = client.build_request(
            request.method,
            request.url,
            headers=dict(request.headers),
            json=request.json,
            timeout=request.timeout_s or self._timeout_s,
        )
        try:
            response = await client.send(http_request, stream=request.stream)
        except httpx.TransportError as e:
            raise NetworkError(f"{type(e).__name__} while calling {request.url}: {e}") from e

        headers = dict(response.headers)
        if not request.stream:
            return RawResponse(
                status_code=response.status_code, headers=headers, content=response.content
            )

        if response.status_code >= 400:
            # Error bodies are small; read them so the caller can classify.
            try:
                content = await response.aread()
            finally:
                await response.aclose()
            return RawResponse(status_code=response.status_code, headers=headers, content=content)

        return RawResponse(
            status_code=response.status_code,
            headers=headers,
            chunks=_iter_bytes(response),
            close=response.aclose,
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


async def _iter_bytes(response: httpx.Response) -> AsyncIterator[bytes]:
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.TransportError as e:
        raise NetworkError(f"Stream interrupted: {e}") from e
    finally:
        await response.aclose()
