"""Persistence layer for generation tasks."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..db.db_models import TaskModel
from ..tasks.task_models import TaskRecord
from ..utils.clock import utcnow

_UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "upstream_task_id",
        "progress",
        "resource_url",
        "error",
        "buttons",
        "is_blurred",
        "duration_seconds",
        "created_at",
        "started_at",
        "deleted_at",
        "model_name",
    }
)


def _to_record(model: TaskModel) -> TaskRecord:
    return TaskRecord(
        id=model.id,
        user_id=model.user_id,
        unique_id=model.unique_id,
        upstream_id=model.upstream_id,
        aimodel_id=model.aimodel_id,
        task_type=model.task_type,
        model_type=model.model_type,
        api_format=model.api_format,
        model_name=model.model_name,
        prompt=model.prompt,
        images=list(model.images or []),
        model_params=dict(model.model_params) if model.model_params else None,
        operation=model.operation,
        status=model.status,
        upstream_task_id=model.upstream_task_id,
        progress=model.progress,
        resource_url=model.resource_url,
        error=model.error,
        buttons=list(model.buttons) if model.buttons else None,
        is_blurred=model.is_blurred,
        duration_seconds=model.duration_seconds,
        created_at=model.created_at,
        started_at=model.started_at,
        updated_at=model.updated_at,
        deleted_at=model.deleted_at,
    )


class TaskRepository:
    """Manage task rows; every write touches exactly one row per commit."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def create(
        self,
        *,
        user_id: int,
        upstream_id: int,
        aimodel_id: int,
        task_type: str,
        model_type: str,
        api_format: str,
        model_name: str | None,
        prompt: str | None = None,
        images: list[str] | None = None,
        model_params: dict[str, Any] | None = None,
        operation: str = "imagine",
        status: str = "pending",
        unique_id: str | None = None,
        is_blurred: bool = True,
        started_at: datetime | None = None,
    ) -> TaskRecord:
        now = self._clock()
        with self._session_factory() as session:
            model = TaskModel(
                user_id=user_id,
                unique_id=unique_id,
                upstream_id=upstream_id,
                aimodel_id=aimodel_id,
                task_type=task_type,
                model_type=model_type,
                api_format=api_format,
                model_name=model_name,
                prompt=prompt,
                images=list(images or []),
                model_params=model_params,
                operation=operation,
                status=status,
                is_blurred=is_blurred,
                created_at=now,
                started_at=started_at,
                updated_at=now,
            )
            session.add(model)
            session.commit()
            return _to_record(model)

    def get(self, task_id: int) -> TaskRecord | None:
        with self._session_factory() as session:
            model = session.get(TaskModel, task_id)
            return _to_record(model) if model is not None else None

    def update(self, task_id: int, **changes: Any) -> TaskRecord | None:
        """Apply ``changes`` atomically; unchanged values leave the row untouched.

        Returns ``None`` when the task does not exist.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")

        with self._session_factory() as session:
            model = session.get(TaskModel, task_id)
            if model is None:
                return None
            dirty = False
            for key, value in changes.items():
                if getattr(model, key) != value:
                    setattr(model, key, value)
                    dirty = True
            if dirty:
                model.updated_at = self._clock()
                session.commit()
            return _to_record(model)

    def list_for_user(
        self,
        user_id: int,
        *,
        page: int = 1,
        page_size: int = 20,
        task_type: str | None = None,
        deleted: bool = False,
    ) -> tuple[list[TaskRecord], int]:
        """Return one page of the user's tasks (newest first) and the total count."""
        conditions = [TaskModel.user_id == user_id]
        conditions.append(
            TaskModel.deleted_at.is_not(None) if deleted else TaskModel.deleted_at.is_(None)
        )
        if task_type:
            conditions.append(TaskModel.task_type == task_type)

        order = TaskModel.deleted_at.desc() if deleted else TaskModel.created_at.desc()
        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(TaskModel).where(*conditions)) or 0
            rows = session.scalars(
                select(TaskModel)
                .where(*conditions)
                .order_by(order, TaskModel.id.desc())
                .offset(max(page - 1, 0) * page_size)
                .limit(page_size)
            ).all()
            return [_to_record(row) for row in rows], int(total)

    def list_by_status(
        self, status: str, *, api_formats: Iterable[str] | None = None
    ) -> list[TaskRecord]:
        """Return non-deleted tasks in ``status`` (optionally limited to formats)."""
        stmt = select(TaskModel).where(
            TaskModel.status == status, TaskModel.deleted_at.is_(None)
        )
        if api_formats is not None:
            stmt = stmt.where(TaskModel.api_format.in_([str(fmt) for fmt in api_formats]))
        with self._session_factory() as session:
            return [_to_record(row) for row in session.scalars(stmt.order_by(TaskModel.id)).all()]

    def soft_delete(self, task_id: int) -> TaskRecord | None:
        return self.update(task_id, deleted_at=self._clock())

    def restore(self, task_id: int) -> TaskRecord | None:
        return self.update(task_id, deleted_at=None)

    def empty_trash(self, user_id: int) -> int:
        """Hard-delete every soft-deleted task of ``user_id``; returns the count."""
        with self._session_factory() as session:
            result = session.execute(
                delete(TaskModel).where(
                    TaskModel.user_id == user_id,
                    TaskModel.deleted_at.is_not(None),
                )
            )
            session.commit()
            return int(result.rowcount or 0)

    def batch_blur(self, user_id: int, task_ids: Iterable[int], is_blurred: bool) -> list[int]:
        """Set the blur flag on the user's tasks among ``task_ids``; returns touched ids."""
        ids = list(task_ids)
        if not ids:
            return []
        with self._session_factory() as session:
            rows = session.scalars(
                select(TaskModel).where(TaskModel.user_id == user_id, TaskModel.id.in_(ids))
            ).all()
            now = self._clock()
            touched: list[int] = []
            for row in rows:
                touched.append(row.id)
                if row.is_blurred != is_blurred:
                    row.is_blurred = is_blurred
                    row.updated_at = now
            session.commit()
            return sorted(touched)
