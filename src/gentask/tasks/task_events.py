"""In-process, per-user event fan-out."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

TASK_CREATED = "task.created"
TASK_STATUS_UPDATED = "task.status.updated"
TASK_DELETED = "task.deleted"
TASK_RESTORED = "task.restored"
TASK_BLUR_UPDATED = "task.blur.updated"
TASKS_BLUR_UPDATED = "tasks.blur.updated"


@dataclass(slots=True)
class EventBroadcaster:
    """Deliver ``{id, event, data, timestamp}`` envelopes to a user's subscribers.

    Emission never raises: a full subscriber queue drops the event with a
    warning rather than blocking the state change that produced it.
    """

    queue_size: int = 100
    log: logging.Logger = field(default_factory=lambda: logger)
    _subscribers: dict[int, set[asyncio.Queue[dict[str, Any]]]] = field(
        default_factory=lambda: defaultdict(set)
    )

    def subscribe(self, user_id: int) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[user_id].add(queue)
        return queue

    def unsubscribe(self, user_id: int, queue: asyncio.Queue[dict[str, Any]]) -> None:
        queues = self._subscribers.get(user_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            self._subscribers.pop(user_id, None)

    def subscriber_count(self, user_id: int) -> int:
        return len(self._subscribers.get(user_id, ()))

    def emit_to_user(self, user_id: int, event: str, data: dict[str, Any]) -> None:
        envelope = {
            "id": uuid.uuid4().hex,
            "event": event,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        for queue in list(self._subscribers.get(user_id, ())):
            try:
                queue.put_nowait(envelope)
            except asyncio.QueueFull:
                self.log.warning(
                    "events.queue_full",
                    extra={"user_id": user_id, "event": event},
                )
