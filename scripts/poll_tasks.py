"""Cron entry point for one reconciliation pass over asynchronous tasks."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass

from gentask.main import create_app
from gentask.workers.task_poller import TaskPoller


@dataclass(slots=True)
class PollSummary:
    recovered: int
    polled: int


async def perform_poll(*, recover: bool) -> PollSummary:
    """Optionally settle stale submissions, then poll every due task once."""
    app = create_app(start_poller=False)
    poller: TaskPoller = app.state.task_poller
    recovered = poller.recover_submitting_tasks() if recover else 0
    polled = await poller.poll_once()
    await app.state.task_service.drain()
    return PollSummary(recovered=recovered, polled=len(polled))


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile asynchronous vendor tasks once.")
    parser.add_argument(
        "--recover",
        action="store_true",
        help="Also settle tasks left in 'submitting' by a crashed process.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = asyncio.run(perform_poll(recover=args.recover))
    except Exception as exc:
        print(f"poll failed: {exc}", file=sys.stderr)
        return 2

    print(f"poll done, recovered={summary.recovered}, polled={summary.polled}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
