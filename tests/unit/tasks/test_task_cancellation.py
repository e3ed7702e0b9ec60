from __future__ import annotations

from gentask.tasks.task_cancellation import InflightRegistry


def test_track_registers_and_releases_handle() -> None:
    registry = InflightRegistry()

    with registry.track(7) as signal:
        assert registry.is_inflight(7)
        assert len(registry) == 1
        assert not signal.aborted

    assert not registry.is_inflight(7)
    assert len(registry) == 0


def test_abort_fires_running_handle_once() -> None:
    registry = InflightRegistry()

    with registry.track(7) as signal:
        assert registry.abort(7, "cancelled by user") is True
        assert signal.aborted
        assert signal.reason == "cancelled by user"
        assert registry.abort(7) is False


def test_abort_without_running_call_returns_false() -> None:
    assert InflightRegistry().abort(99) is False


def test_new_attempt_supersedes_previous_handle() -> None:
    registry = InflightRegistry()

    with registry.track(3) as first:
        with registry.track(3) as second:
            assert first.aborted
            assert not second.aborted
            assert registry.is_inflight(3)
        assert not registry.is_inflight(3)


def test_keys_are_independent() -> None:
    registry = InflightRegistry()

    with registry.track(1) as one, registry.track(2) as two:
        registry.abort(1)
        assert one.aborted
        assert not two.aborted
        assert registry.is_inflight(2)
