"""Cooperative cancellation handle for in-flight vendor calls."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from ..exceptions import ProviderTimeoutError, RequestAborted

T = TypeVar("T")


class AbortSignal:
    """One-shot cancellation flag with an optional deadline.

    Network calls wrap their awaitable with :meth:`guard`; whichever of
    "work finished", "signal fired" or "deadline passed" happens first
    decides the outcome.  Abort raises :class:`RequestAborted`, an expired
    deadline raises :class:`ProviderTimeoutError`.
    """

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._deadline = (
            time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        )

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def abort(self, reason: str = "request aborted") -> bool:
        """Fire the signal; returns ``False`` when it already fired."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise RequestAborted(self._reason or "request aborted")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        work = asyncio.ensure_future(awaitable)
        if self.aborted:
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            self.raise_if_aborted()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            work.cancel()
            waiter.cancel()
            raise

        if work in done:
            waiter.cancel()
            return work.result()

        work.cancel()
        waiter.cancel()
        await asyncio.gather(work, waiter, return_exceptions=True)
        if self.aborted:
            raise RequestAborted(self._reason or "request aborted")
        raise ProviderTimeoutError("request timed out before the vendor answered")
