"""Task entity snapshots and lifecycle vocabulary."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    PENDING = "pending"
    SUBMITTING = "submitting"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskType(StrEnum):
    IMAGE = "image"
    VIDEO = "video"


IN_FLIGHT_STATUSES = frozenset(
    {TaskStatus.PENDING, TaskStatus.SUBMITTING, TaskStatus.PROCESSING}
)
TERMINAL_STATUSES = frozenset({TaskStatus.SUCCESS, TaskStatus.FAILED, TaskStatus.CANCELLED})
RETRYABLE_STATUSES = frozenset({TaskStatus.FAILED, TaskStatus.CANCELLED})

USER_CANCELLED_MESSAGE = "用户取消"
SUBMIT_INTERRUPTED_MESSAGE = "任务提交中断（服务重启）"


@dataclass(slots=True)
class TaskRecord:
    """Snapshot of a task row."""

    id: int
    user_id: int
    unique_id: str | None
    upstream_id: int
    aimodel_id: int
    task_type: str
    model_type: str
    api_format: str
    model_name: str | None
    prompt: str | None
    images: list[str]
    model_params: dict[str, Any] | None
    operation: str
    status: str
    upstream_task_id: str | None
    progress: str | None
    resource_url: str | None
    error: str | None
    buttons: list[dict[str, Any]] | None
    is_blurred: bool
    duration_seconds: float | None
    created_at: datetime
    started_at: datetime | None
    updated_at: datetime
    deleted_at: datetime | None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(slots=True)
class TaskClassification:
    """Which vendor family and adapter a task targets."""

    aimodel_id: int
    model_type: str
    api_format: str
    task_type: str = TaskType.IMAGE
    model_name: str | None = None


@dataclass(slots=True)
class TaskInputs:
    prompt: str | None = None
    images: list[str] = field(default_factory=list)
    model_params: dict[str, Any] | None = None
    operation: str = "imagine"
    unique_id: str | None = None
    is_blurred: bool = True


@dataclass(slots=True)
class TaskPage:
    items: list[TaskRecord]
    total: int
    page: int
    page_size: int


def status_field_changes(
    status: TaskStatus,
    *,
    error: str | None = None,
    resource_url: str | None = None,
) -> dict[str, Any]:
    """Return the column changes that keep ``status``/``error``/``resource_url`` consistent.

    ``resource_url`` is set only on success, ``error`` only on failed or
    cancelled; every other status clears both.
    """
    if status is TaskStatus.SUCCESS:
        if not resource_url:
            raise ValueError("success requires a resource_url")
        return {"status": status.value, "resource_url": resource_url, "error": None}
    if status in (TaskStatus.FAILED, TaskStatus.CANCELLED):
        if not error:
            raise ValueError(f"{status.value} requires an error message")
        return {"status": status.value, "resource_url": None, "error": error}
    return {"status": status.value, "resource_url": None, "error": None}
