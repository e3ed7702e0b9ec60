from __future__ import annotations

import asyncio

import pytest

from gentask.exceptions import ProviderTimeoutError, RequestAborted
from gentask.utils.abort_signal import AbortSignal


@pytest.mark.asyncio
async def test_guard_returns_result_when_work_finishes_first() -> None:
    signal = AbortSignal()

    async def work() -> str:
        return "done"

    assert await signal.guard(work()) == "done"
    assert not signal.aborted


@pytest.mark.asyncio
async def test_guard_raises_request_aborted_and_cancels_work() -> None:
    signal = AbortSignal()
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def never() -> None:
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.set()
            raise

    guarded = asyncio.create_task(signal.guard(never()))
    await started.wait()
    assert signal.abort("cancelled by user") is True

    with pytest.raises(RequestAborted) as excinfo:
        await guarded
    assert excinfo.value.reason == "cancelled by user"
    assert cancelled.is_set()


@pytest.mark.asyncio
async def test_guard_on_already_aborted_signal() -> None:
    signal = AbortSignal()
    signal.abort("early")

    async def work() -> str:
        return "never returned"

    with pytest.raises(RequestAborted):
        await signal.guard(work())


@pytest.mark.asyncio
async def test_guard_deadline_raises_timeout() -> None:
    signal = AbortSignal(timeout_seconds=0.01)

    with pytest.raises(ProviderTimeoutError):
        await signal.guard(asyncio.sleep(5))
    assert not signal.aborted


def test_abort_is_one_shot() -> None:
    signal = AbortSignal()
    assert signal.abort("first") is True
    assert signal.abort("second") is False
    assert signal.reason == "first"
    with pytest.raises(RequestAborted):
        signal.raise_if_aborted()


def test_remaining_without_deadline() -> None:
    assert AbortSignal().remaining() is None
    assert 0 <= AbortSignal(timeout_seconds=30).remaining() <= 30
