"""Periodic reconciliation of asynchronous vendor tasks."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..providers.providers_factory import get_async_api_formats
from ..repositories.aimodel_repository import AiModelRepository
from ..repositories.task_repository import TaskRepository
from ..tasks.task_models import (
    SUBMIT_INTERRUPTED_MESSAGE,
    TaskRecord,
    TaskStatus,
    status_field_changes,
)
from ..tasks.task_service import TaskService

logger = logging.getLogger(__name__)

DEFAULT_ESTIMATED_SECONDS = 60


def poll_interval_seconds(estimated_seconds: float) -> float:
    """Cadence for a task whose model usually finishes in ``estimated_seconds``."""
    if estimated_seconds <= 30:
        return 3.0
    if estimated_seconds <= 300:
        return 10.0
    return 30.0


@dataclass(slots=True)
class TaskPoller:
    task_service: TaskService
    task_repo: TaskRepository
    aimodel_repo: AiModelRepository
    tick_seconds: float = 3.0
    monotonic: Callable[[], float] = field(default_factory=lambda: time.monotonic)
    log: logging.Logger = field(default_factory=lambda: logger)
    _last_polled: dict[int, float] = field(default_factory=dict)

    def recover_submitting_tasks(self) -> int:
        """Settle async tasks left in ``submitting`` by a previous process.

        Tasks that already carry an upstream id resume polling; the rest
        never reached the vendor and are marked failed.
        """
        recovered = 0
        for task in self.task_repo.list_by_status(
            TaskStatus.SUBMITTING.value, api_formats=get_async_api_formats()
        ):
            if task.upstream_task_id:
                self.task_repo.update(task.id, **status_field_changes(TaskStatus.PROCESSING))
                self.log.info("poller.recover.processing", extra={"task_id": task.id})
            else:
                self.task_repo.update(
                    task.id,
                    **status_field_changes(TaskStatus.FAILED, error=SUBMIT_INTERRUPTED_MESSAGE),
                )
                self.log.info("poller.recover.failed", extra={"task_id": task.id})
            recovered += 1
        return recovered

    def due_tasks(self) -> list[TaskRecord]:
        now = self.monotonic()
        due: list[TaskRecord] = []
        for task in self.task_repo.list_by_status(
            TaskStatus.PROCESSING.value, api_formats=get_async_api_formats()
        ):
            last = self._last_polled.get(task.id)
            if last is None or now - last >= self._interval_for(task):
                due.append(task)
        return due

    async def poll_once(self) -> list[int]:
        """Poll every due task concurrently; returns the ids that were polled."""
        due = self.due_tasks()
        if not due:
            return []
        self.log.debug("poller.tick", extra={"task_ids": [task.id for task in due]})
        await asyncio.gather(*(self._poll(task.id) for task in due))
        return [task.id for task in due]

    async def run_forever(self, shutdown_event: asyncio.Event) -> None:
        try:
            self.recover_submitting_tasks()
        except Exception:
            self.log.exception("poller.recover.error")

        while not shutdown_event.is_set():
            try:
                await self.poll_once()
            except Exception:
                self.log.exception("poller.tick.error")
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=self.tick_seconds)
            except asyncio.TimeoutError:
                continue

    async def _poll(self, task_id: int) -> None:
        try:
            task = await self.task_service.sync_task_status(task_id)
        except Exception:
            self.log.exception("poller.task.error", extra={"task_id": task_id})
            return
        if task.is_terminal:
            self._last_polled.pop(task_id, None)
        else:
            self._last_polled[task_id] = self.monotonic()

    def _interval_for(self, task: TaskRecord) -> float:
        aimodel = self.aimodel_repo.get(task.aimodel_id)
        estimated = aimodel.estimated_time if aimodel is not None else DEFAULT_ESTIMATED_SECONDS
        return poll_interval_seconds(estimated)
