from __future__ import annotations

import functools
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .cancellation import CancellationToken, cancellable_sleep
from .context import CallContext
from .errors import (
    CallCancelledError,
    ErrorKind,
    classify_error,
    is_retryable_error,
    retry_after_of,
)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff settings for one logical call.

    Notes:
    - `max_retries` counts retries, not attempts: 3 allows 4 invocations.
    - `max_validation_retries` gives schema-validation failures their own
      budget. When None they share `max_retries` with transient failures.
    """

    max_retries: int = 3
    initial_delay_s: float = 1.0
    max_delay_s: float = 60.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    is_retryable: Optional[Callable[[BaseException], bool]] = None
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None
    max_validation_retries: Optional[int] = None

    def __post_init__(self) -> None:
        # Clamp instead of raising to keep retry helpers low-friction.
        if self.max_retries < 0:
            object.__setattr__(self, "max_retries", 0)

        if self.max_validation_retries is not None and self.max_validation_retries < 0:
            object.__setattr__(self, "max_validation_retries", 0)

        if self.initial_delay_s < 0:
            object.__setattr__(self, "initial_delay_s", 0.0)

        if self.max_delay_s < self.initial_delay_s:
            object.__setattr__(self, "max_delay_s", float(self.initial_delay_s))

        if self.backoff_multiplier < 1:
            object.__setattr__(self, "backoff_multiplier", 1.0)


DEFAULT_POLICY = RetryPolicy()


def compute_backoff(attempt: int, policy: RetryPolicy) -> float:
    """Exponential delay for zero-based `attempt`, capped at `max_delay_s`."""
    delay = policy.initial_delay_s * (policy.backoff_multiplier**attempt)
    return min(delay, policy.max_delay_s)


def apply_jitter(delay_s: float) -> float:
    """Scale `delay_s` by a uniform factor in [0.5, 1.0]."""
    return delay_s * (0.5 + random.random() * 0.5)


def _should_retry(error: BaseException, policy: RetryPolicy) -> bool:
    if policy.is_retryable is not None:
        return bool(policy.is_retryable(error))
    return is_retryable_error(error)


async def execute(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    cancellation: Optional[CancellationToken] = None,
    *,
    context: Optional[CallContext] = None,
    description: str = "LLM call",
) -> T:
    """Run `operation` until it succeeds, fails terminally, or is cancelled.

    Failures propagate unwrapped. A pending cancellation always wins over the
    classification of the operation's own failure.
    """

    policy = policy or DEFAULT_POLICY
    log = (context or CallContext()).logger

    attempt = 0
    transient_retries = 0
    validation_retries = 0

    while True:
        if cancellation is not None:
            cancellation.raise_if_cancelled()

        try:
            return await operation()

        except CallCancelledError:
            raise

        except Exception as e:
            if cancellation is not None and cancellation.cancelled:
                raise CallCancelledError(cancellation.reason) from e

            kind = classify_error(e)
            if kind is ErrorKind.VALIDATION_FAILURE and policy.max_validation_retries is not None:
                used, budget = validation_retries, policy.max_validation_retries
            else:
                used, budget = transient_retries, policy.max_retries

            if used >= budget or not _should_retry(e, policy):
                log.error(
                    "%s failed (attempt %d, %s): %s", description, attempt + 1, kind.value, e
                )
                raise

            if kind is ErrorKind.VALIDATION_FAILURE and policy.max_validation_retries is not None:
                validation_retries += 1
            else:
                transient_retries += 1

            delay = compute_backoff(attempt, policy)
            hint = retry_after_of(e)
            if hint is not None:
                delay = hint
            if policy.jitter:
                delay = apply_jitter(delay)

            log.warning(
                "Retryable %s during %s; retrying in %.2fs (attempt %d): %s",
                kind.value,
                description,
                delay,
                attempt + 1,
                e,
            )
            if policy.on_retry is not None:
                policy.on_retry(attempt + 1, e, delay)

            await cancellable_sleep(delay, cancellation)
            attempt += 1


def retrying(
    policy: Optional[RetryPolicy] = None,
    cancellation: Optional[CancellationToken] = None,
):
    """Decorator form of `execute` for coroutine functions."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await execute(
                lambda: func(*args, **kwargs),
                policy,
                cancellation,
                description=func.__name__,
            )

        return wrapper

    return decorator
