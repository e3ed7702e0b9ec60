"""Bookkeeping that lets a cancel request reach a running submission."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from ..utils.abort_signal import AbortSignal


class InflightRegistry:
    """Map task id to the signal of its one outstanding vendor call.

    A fresh signal is registered per submission attempt and removed the
    moment that attempt settles.
    """

    def __init__(self) -> None:
        self._signals: dict[int, AbortSignal] = {}
        self._lock = threading.Lock()

    @contextmanager
    def track(self, task_id: int, *, timeout_seconds: float | None = None) -> Iterator[AbortSignal]:
        signal = AbortSignal(timeout_seconds=timeout_seconds)
        with self._lock:
            previous = self._signals.get(task_id)
            self._signals[task_id] = signal
        if previous is not None:
            previous.abort("superseded by a newer submission")
        try:
            yield signal
        finally:
            with self._lock:
                if self._signals.get(task_id) is signal:
                    del self._signals[task_id]

    def abort(self, task_id: int, reason: str = "cancelled by user") -> bool:
        """Fire and forget the handle for ``task_id``; ``True`` if one was running."""
        with self._lock:
            signal = self._signals.pop(task_id, None)
        if signal is None:
            return False
        return signal.abort(reason)

    def is_inflight(self, task_id: int) -> bool:
        with self._lock:
            return task_id in self._signals

    def __len__(self) -> int:
        with self._lock:
            return len(self._signals)
