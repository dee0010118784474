from __future__ import annotations

import asyncio
import enum
import socket
from typing import Any, Optional

import httpx


class ErrorKind(str, enum.Enum):
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    SERVER_FAULT = "server_fault"
    VALIDATION_FAILURE = "validation_failure"
    CANCELLED = "cancelled"
    CLIENT_FAULT = "client_fault"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.NETWORK,
        ErrorKind.RATE_LIMITED,
        ErrorKind.SERVER_FAULT,
        ErrorKind.VALIDATION_FAILURE,
    }
)


class LLMError(RuntimeError):
    """Base error for homogenaize."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.model = model

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class NetworkError(LLMError):
    """Connection-level failure before any response arrived."""

    kind = ErrorKind.NETWORK


class RateLimitError(LLMError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        *,
        retry_after_s: Optional[float] = None,
        status_code: int = 429,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.retry_after_s = retry_after_s
        self.status_code = status_code


class ServerError(LLMError):
    kind = ErrorKind.SERVER_FAULT

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        retry_after_s: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.retry_after_s = retry_after_s


class LLMValidationError(LLMError):
    """Raised when the model output cannot be validated against the requested schema."""

    kind = ErrorKind.VALIDATION_FAILURE

    def __init__(
        self, message: str, *, cause: Optional[BaseException] = None, **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)
        self.cause = cause


class CallCancelledError(LLMError):
    """Cooperative abort of a call. Always terminal."""

    kind = ErrorKind.CANCELLED

    def __init__(self, reason: Any = None, message: str = "Call cancelled") -> None:
        super().__init__(message if reason is None else f"{message}: {reason}")
        self.reason = reason


class ClientError(LLMError):
    """4xx-class failure caused by the request itself. Never retried."""

    kind = ErrorKind.CLIENT_FAULT

    def __init__(self, message: str, *, status_code: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class SchemaError(LLMError):
    """The value passed as a schema is neither a structural schema nor a JSON Schema document."""

    kind = ErrorKind.CLIENT_FAULT


class InvalidRequestError(LLMError):
    """A request precondition does not hold (e.g. an ambiguous forced tool choice)."""

    kind = ErrorKind.CLIENT_FAULT


# Anthropic answers with 529 when the API is overloaded
OVERLOADED_STATUS = 529

_NETWORK_HINTS = (
    "ECONNRESET",
    "ETIMEDOUT",
    "ECONNREFUSED",
    "ENOTFOUND",
    "SOCKET",
    "TIMEOUT",
    "NETWORK",
)
_SERVER_HINTS = ("RESOURCE_EXHAUSTED", "UNAVAILABLE", "OVERLOADED")

_TRANSIENT_ERRNOS = {
    104,  # ECONNRESET
    110,  # ETIMEDOUT
    111,  # ECONNREFUSED
    113,  # EHOSTUNREACH
}


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds. HTTP-date values are ignored."""
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def error_from_status(
    status_code: int,
    message: str,
    *,
    retry_after: Optional[str] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
) -> LLMError:
    """Map a non-2xx HTTP status onto the error taxonomy."""

    retry_after_s = parse_retry_after(retry_after)
    if status_code == 429:
        return RateLimitError(
            message, retry_after_s=retry_after_s, provider=provider, model=model
        )
    if status_code == 408:
        return NetworkError(message, provider=provider, model=model)
    if 500 <= status_code <= 599:
        return ServerError(
            message,
            status_code=status_code,
            retry_after_s=retry_after_s,
            provider=provider,
            model=model,
        )
    return ClientError(message, status_code=status_code, provider=provider, model=model)


def _status_of(error: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def _kind_for_status(status_code: int) -> ErrorKind:
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 408:
        return ErrorKind.NETWORK
    if 500 <= status_code <= 599:
        return ErrorKind.SERVER_FAULT
    if 400 <= status_code <= 499:
        return ErrorKind.CLIENT_FAULT
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorKind:
    """Return the taxonomy kind for any exception, ours or foreign."""

    if isinstance(error, LLMError):
        return error.kind
    if isinstance(error, asyncio.CancelledError):
        return ErrorKind.CANCELLED

    status = _status_of(error)
    if status is not None:
        return _kind_for_status(status)

    if isinstance(error, (TimeoutError, socket.timeout, ConnectionError)):
        return ErrorKind.NETWORK
    if isinstance(error, httpx.TransportError):
        return ErrorKind.NETWORK
    if isinstance(error, OSError) and getattr(error, "errno", None) in _TRANSIENT_ERRNOS:
        return ErrorKind.NETWORK

    message = str(error).upper()
    if any(h in message for h in _NETWORK_HINTS):
        return ErrorKind.NETWORK
    if any(h in message for h in _SERVER_HINTS):
        return ErrorKind.SERVER_FAULT

    return ErrorKind.UNKNOWN


def is_retryable_error(error: BaseException) -> bool:
    explicit = getattr(error, "retryable", None)
    if isinstance(explicit, bool):
        return explicit
    return classify_error(error) in RETRYABLE_KINDS


def retry_after_of(error: BaseException) -> Optional[float]:
    """Server-supplied delay hint in seconds, if the failure carries one."""
    for attr in ("retry_after_s", "retry_after"):
        value = getattr(error, attr, None)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None
