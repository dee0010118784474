"""Cooperative cancellation shared by every suspension point of one call.

A token is passed by reference through the pipeline. Suspensions that need to
react to it (the inter-retry sleep, the in-flight network call) register a
listener for exactly as long as they are suspended.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from .errors import CallCancelledError

T = TypeVar("T")

Listener = Callable[[Any], None]


class CancellationToken:
    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Any = None
        self._listeners: List[Listener] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Any:
        return self._reason

    def cancel(self, reason: Any = None) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        # Listeners may deregister themselves while we notify.
        for listener in list(self._listeners):
            listener(reason)

    def add_listener(self, listener: Listener) -> None:
        """Register `listener`; it is called immediately if already cancelled."""
        if self._cancelled:
            listener(self._reason)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CallCancelledError(self._reason)


async def cancellable_sleep(
    delay_s: float, token: Optional[CancellationToken] = None
) -> None:
    """Sleep for `delay_s`, failing with CallCancelledError the instant `token` fires."""

    if token is None:
        await asyncio.sleep(delay_s)
        return

    token.raise_if_cancelled()
    loop = asyncio.get_running_loop()
    waiter: asyncio.Future[None] = loop.create_future()

    def _wake() -> None:
        if not waiter.done():
            waiter.set_result(None)

    def _on_cancel(reason: Any) -> None:
        if not waiter.done():
            waiter.set_exception(CallCancelledError(reason, "Sleep cancelled"))

    timer = loop.call_later(max(delay_s, 0.0), _wake)
    token.add_listener(_on_cancel)
    try:
        await waiter
    finally:
        timer.cancel()
        token.remove_listener(_on_cancel)


async def run_cancellable(
    awaitable: Awaitable[T], token: Optional[CancellationToken] = None
) -> T:
    """Await `awaitable`, abandoning it with CallCancelledError when `token` fires."""

    if token is None:
        return await awaitable

    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise CallCancelledError(token.reason)
    task = asyncio.ensure_future(awaitable)

    def _on_cancel(_reason: Any) -> None:
        task.cancel()

    token.add_listener(_on_cancel)
    try:
        return await task
    except asyncio.CancelledError:
        if token.cancelled:
            raise CallCancelledError(token.reason) from None
        raise
    finally:
        token.remove_listener(_on_cancel)
