"""Pydantic schemas for the tasks API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .task_models import TaskRecord


class TaskOut(BaseModel):
    """Public view of a task row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    unique_id: str | None = None
    upstream_id: int
    aimodel_id: int
    task_type: str
    model_type: str
    api_format: str
    model_name: str | None = None
    prompt: str | None = None
    images: list[str] = Field(default_factory=list)
    model_params: dict[str, Any] | None = None
    operation: str
    status: str
    upstream_task_id: str | None = None
    progress: str | None = None
    resource_url: str | None = None
    error: str | None = None
    buttons: list[dict[str, Any]] | None = None
    is_blurred: bool
    duration_seconds: float | None = None
    created_at: datetime
    started_at: datetime | None = None
    updated_at: datetime
    deleted_at: datetime | None = None

    @classmethod
    def from_record(cls, record: TaskRecord) -> "TaskOut":
        return cls.model_validate(record)


def task_payload(record: TaskRecord) -> dict[str, Any]:
    """JSON-ready dict used both in responses and in broadcast events."""
    return TaskOut.from_record(record).model_dump(mode="json")


class TaskCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    aimodel_id: int = Field(..., ge=1)
    model_type: str = Field(..., min_length=1)
    api_format: str = Field(..., min_length=1)
    task_type: Literal["image", "video"] = "image"
    model_name: str | None = None
    prompt: str | None = None
    images: list[str] = Field(default_factory=list)
    model_params: dict[str, Any] | None = None
    operation: Literal["imagine", "blend"] = "imagine"
    unique_id: str | None = None
    is_blurred: bool = True


class TaskListResponse(BaseModel):
    tasks: list[TaskOut]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)


class TaskActionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    task_id: int = Field(..., ge=1)
    custom_id: str = Field(..., min_length=1)


class TaskCancelResponse(BaseModel):
    task: TaskOut
    aborted: bool


class BlurUpdateRequest(BaseModel):
    is_blurred: bool


class BatchBlurRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    task_ids: list[int] = Field(..., min_length=1)
    is_blurred: bool


class BatchBlurResponse(BaseModel):
    updated: list[int]
    is_blurred: bool


class EmptyTrashResponse(BaseModel):
    deleted: int = Field(..., ge=0)


class TaskLogsResponse(BaseModel):
    task_id: int
    entries: list[dict[str, Any]]
