"""Task orchestration: submission, reconciliation, cancellation and trash."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Coroutine, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import (
    ERROR_MESSAGES,
    ErrorCode,
    ErrorInput,
    classify_error,
    classify_exception,
    is_abort_error,
)
from ..exceptions import (
    InvalidTaskStateError,
    ProviderError,
    ResourceSaveError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    TaskValidationError,
    UpstreamConfigError,
)
from ..media.media_service import ResourceStore, filename_from_locator
from ..media.resource_materializer import ResourceMaterializer
from ..providers.model_types import (
    IMAGE_MODEL_TYPES,
    VIDEO_MODEL_TYPES,
    ApiFormat,
    ModelCategory,
)
from ..providers.providers_base import (
    ActionService,
    AsyncProvider,
    GenerateParams,
    Provider,
    TaskOperation,
    UpstreamStatus,
    ValidationRules,
)
from ..providers.providers_factory import find_provider, get_provider
from ..providers.providers_http import ProviderHttp
from ..repositories.aimodel_repository import AiModelRecord, AiModelRepository
from ..repositories.task_repository import TaskRepository
from ..repositories.upstream_repository import (
    UpstreamRecord,
    UpstreamRepository,
    get_api_key,
)
from ..utils.abort_signal import AbortSignal
from ..utils.clock import utcnow
from ..utils.http_logger import TaskHttpLogger
from .task_cancellation import InflightRegistry
from .task_events import (
    TASK_BLUR_UPDATED,
    TASK_CREATED,
    TASK_DELETED,
    TASK_RESTORED,
    TASK_STATUS_UPDATED,
    TASKS_BLUR_UPDATED,
    EventBroadcaster,
)
from .task_models import (
    IN_FLIGHT_STATUSES,
    RETRYABLE_STATUSES,
    USER_CANCELLED_MESSAGE,
    TaskClassification,
    TaskInputs,
    TaskPage,
    TaskRecord,
    TaskStatus,
    TaskType,
    status_field_changes,
)
from .task_schemas import task_payload

logger = logging.getLogger(__name__)

_FROM_SUBMITTING = frozenset({TaskStatus.SUBMITTING})
_FROM_PROCESSING = frozenset({TaskStatus.PROCESSING})


@dataclass(slots=True)
class TaskService:
    """Drives every task through ``pending -> submitting -> processing -> terminal``.

    State is re-read immediately before each write and the write is skipped
    when the task already left the status the caller started from, so a
    late vendor answer never overwrites a cancellation or a newer attempt.
    """

    task_repo: TaskRepository
    upstream_repo: UpstreamRepository
    aimodel_repo: AiModelRepository
    resource_store: ResourceStore
    materializer: ResourceMaterializer
    broadcaster: EventBroadcaster
    http: ProviderHttp
    inflight: InflightRegistry = field(default_factory=InflightRegistry)
    http_logger: TaskHttpLogger | None = None
    public_url: str | None = None
    submit_deadline_seconds: float | None = 600.0

    provider_lookup: Callable[[str], Provider] = field(default_factory=lambda: get_provider)
    clock: Callable[[], datetime] = field(default_factory=lambda: utcnow)
    log: logging.Logger = field(default_factory=lambda: logger)
    _background: set[asyncio.Task[Any]] = field(default_factory=set)
    _sync_locks: dict[int, asyncio.Lock] = field(default_factory=dict)
    _sync_waiters: dict[int, int] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Lookups

    def get_task(self, task_id: int) -> TaskRecord:
        task = self.task_repo.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def get_task_for_user(self, task_id: int, user_id: int) -> TaskRecord:
        task = self.get_task(task_id)
        if task.user_id != user_id:
            raise TaskAccessDeniedError(f"Task {task_id} belongs to another user")
        return task

    def list_tasks(
        self,
        user_id: int,
        *,
        page: int = 1,
        page_size: int = 20,
        task_type: str | None = None,
    ) -> TaskPage:
        items, total = self.task_repo.list_for_user(
            user_id, page=page, page_size=page_size, task_type=task_type
        )
        return TaskPage(items=items, total=total, page=page, page_size=page_size)

    def list_trash(self, user_id: int, *, page: int = 1, page_size: int = 20) -> TaskPage:
        items, total = self.task_repo.list_for_user(
            user_id, page=page, page_size=page_size, deleted=True
        )
        return TaskPage(items=items, total=total, page=page, page_size=page_size)

    def task_logs(self, task_id: int, user_id: int) -> list[dict[str, Any]]:
        self.get_task_for_user(task_id, user_id)
        if self.http_logger is None:
            return []
        return self.http_logger.read_task_logs(task_id)

    # ------------------------------------------------------------------
    # Creation

    def create_task(
        self,
        user_id: int,
        classification: TaskClassification,
        inputs: TaskInputs,
    ) -> TaskRecord:
        """Validate the request against the model configuration and persist it as ``pending``."""
        aimodel = self.aimodel_repo.get(classification.aimodel_id)
        if aimodel is None:
            raise TaskValidationError("模型配置不存在")
        upstream = self.upstream_repo.get(aimodel.upstream_id)
        if upstream is None or upstream.user_id != user_id:
            raise TaskValidationError("模型配置不存在")

        self.validate_inputs(classification, inputs)

        task = self.task_repo.create(
            user_id=user_id,
            upstream_id=upstream.id,
            aimodel_id=aimodel.id,
            task_type=str(classification.task_type),
            model_type=str(classification.model_type),
            api_format=str(classification.api_format),
            model_name=classification.model_name or aimodel.model_name,
            prompt=inputs.prompt,
            images=list(inputs.images),
            model_params=inputs.model_params,
            operation=inputs.operation,
            unique_id=inputs.unique_id,
            is_blurred=inputs.is_blurred,
        )
        self.log.info(
            "task.create",
            extra={"task_id": task.id, "api_format": task.api_format, "model_type": task.model_type},
        )
        self._emit(task.user_id, TASK_CREATED, {"task": task_payload(task)})
        return task

    def validate_inputs(self, classification: TaskClassification, inputs: TaskInputs) -> None:
        task_type = classification.task_type
        if task_type not in (TaskType.IMAGE, TaskType.VIDEO):
            raise TaskValidationError("无效的任务类型")

        allowed_types = VIDEO_MODEL_TYPES if task_type == TaskType.VIDEO else IMAGE_MODEL_TYPES
        if classification.model_type not in allowed_types:
            raise TaskValidationError("模型类型与任务类型不匹配")

        provider = find_provider(classification.api_format)
        if provider is None:
            raise TaskValidationError(f"不支持的 API 格式: {classification.api_format}")
        expected_category = (
            ModelCategory.VIDEO if task_type == TaskType.VIDEO else ModelCategory.IMAGE
        )
        if provider.meta.category != expected_category:
            raise TaskValidationError("API 格式与任务类型不匹配")

        rules = provider.meta.validation
        images = inputs.images
        prompt = (inputs.prompt or "").strip()

        if rules.requires_image and not images:
            raise TaskValidationError(f"{provider.meta.label} 需要上传图片")
        if len(images) < rules.min_images:
            raise TaskValidationError(f"至少需要 {rules.min_images} 张图片")
        if rules.max_images is not None and len(images) > rules.max_images:
            raise TaskValidationError(f"最多支持 {rules.max_images} 张图片")

        if inputs.operation == TaskOperation.BLEND:
            if provider.meta.api_format != ApiFormat.MJ_PROXY:
                raise TaskValidationError("混合模式仅支持 MJ-Proxy 格式")
            if len(images) < 2:
                raise TaskValidationError("混合模式至少需要 2 张图片")
        elif task_type == TaskType.VIDEO:
            if not prompt:
                raise TaskValidationError("视频任务需要输入提示词")
        elif rules.requires_prompt and not prompt:
            raise TaskValidationError("请输入提示词")

    # ------------------------------------------------------------------
    # Submission

    def spawn_submission(self, task_id: int) -> asyncio.Task[None]:
        """Run ``submit_task`` in the background; the caller does not wait."""
        return self._spawn(self.submit_task(task_id), name=f"task-submit-{task_id}")

    async def submit_task(self, task_id: int) -> None:
        task = self.get_task(task_id)
        try:
            provider, aimodel, upstream, api_key = self._resolve(task)
        except (ProviderError, UpstreamConfigError, TaskValidationError) as exc:
            self.log.warning(
                "task.submit.config_error", extra={"task_id": task_id, "error": str(exc)}
            )
            self._transition(
                task_id,
                TaskStatus.FAILED,
                only_from=IN_FLIGHT_STATUSES,
                error=classify_error(ErrorInput(message=str(exc))),
            )
            return

        task = self._transition(
            task_id,
            TaskStatus.SUBMITTING,
            only_from=frozenset({TaskStatus.PENDING}),
            started_at=self.clock(),
        )
        if task is None or task.status != TaskStatus.SUBMITTING:
            return

        self.log.info(
            "task.submit.start",
            extra={"task_id": task_id, "api_format": task.api_format, "model_type": task.model_type},
        )
        with self.inflight.track(task_id, timeout_seconds=self.submit_deadline_seconds) as signal:
            try:
                images = await self._prepare_images(
                    task.images, provider.meta.validation, signal
                )
                params = GenerateParams(
                    task_id=task.id,
                    prompt=task.prompt or "",
                    model_name=task.model_name or aimodel.model_name,
                    model_type=task.model_type,
                    images=images,
                    model_params=dict(task.model_params or {}),
                    operation=task.operation,
                    signal=signal,
                )
                service = provider.create_service(upstream.base_url, api_key, self.http)
                if isinstance(provider, AsyncProvider):
                    submitted = await service.submit(params)
                    self._transition(
                        task_id,
                        TaskStatus.PROCESSING,
                        only_from=_FROM_SUBMITTING,
                        upstream_task_id=submitted.upstream_task_id,
                    )
                    self.log.info(
                        "task.submit.accepted",
                        extra={"task_id": task_id, "upstream_task_id": submitted.upstream_task_id},
                    )
                    return

                result = await service.generate(params)
                if not result.success:
                    self._transition(
                        task_id,
                        TaskStatus.FAILED,
                        only_from=_FROM_SUBMITTING,
                        error=classify_error(ErrorInput(message=result.error)),
                    )
                    return
                await self._complete(
                    task,
                    only_from=_FROM_SUBMITTING,
                    resource_url=result.resource_url,
                    image_base64=result.image_base64,
                    mime_type=result.mime_type,
                    signal=signal,
                )
            except Exception as exc:
                # An abort-looking error nobody asked for is an ordinary failure.
                if is_abort_error(exc) and signal.aborted:
                    self.log.info(
                        "task.submit.aborted", extra={"task_id": task_id, "reason": str(exc)}
                    )
                    return
                self.log.warning(
                    "task.submit.failed",
                    extra={"task_id": task_id, "error": str(exc), "error_type": type(exc).__name__},
                )
                self._transition(
                    task_id,
                    TaskStatus.FAILED,
                    only_from=_FROM_SUBMITTING,
                    error=classify_exception(exc),
                )

    async def _prepare_images(
        self,
        images: Iterable[str],
        rules: ValidationRules,
        signal: AbortSignal,
    ) -> list[str]:
        """Turn stored image references into what the adapter can consume."""
        prepared: list[str] = []
        for image in images:
            if image.startswith("data:"):
                prepared.append(image)
                continue

            filename = filename_from_locator(image)
            if filename is not None:
                if rules.supports_image_url and self.public_url:
                    prepared.append(f"{self.public_url.rstrip('/')}{image}")
                    continue
                prepared.append(self._read_local_image(filename, image))
                continue

            if rules.supports_image_url:
                prepared.append(image)
                continue

            downloaded = await self.resource_store.download(image, signal=signal)
            if downloaded is None:
                raise TaskValidationError(f"参考图下载失败: {image}")
            prepared.append(self._read_local_image(downloaded, image))
        return prepared

    def _read_local_image(self, filename: str, original: str) -> str:
        data_url = self.resource_store.read_as_base64(filename)
        if data_url is None:
            raise TaskValidationError(f"参考图不存在: {original}")
        return data_url

    # ------------------------------------------------------------------
    # Reconciliation

    async def sync_task_status(self, task_id: int) -> TaskRecord:
        """Ask the vendor where an async task stands; failures keep the known state.

        Concurrent calls for one task run one after another, so a result is
        downloaded and its duration recorded only once.
        """
        async with self._sync_guard(task_id):
            return await self._sync_once(task_id)

    @contextlib.asynccontextmanager
    async def _sync_guard(self, task_id: int) -> AsyncIterator[None]:
        lock = self._sync_locks.setdefault(task_id, asyncio.Lock())
        self._sync_waiters[task_id] = self._sync_waiters.get(task_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._sync_waiters[task_id] - 1
            if remaining:
                self._sync_waiters[task_id] = remaining
            else:
                del self._sync_waiters[task_id]
                self._sync_locks.pop(task_id, None)

    async def _sync_once(self, task_id: int) -> TaskRecord:
        task = self.get_task(task_id)
        if task.is_terminal or not task.upstream_task_id:
            return task
        if task.status != TaskStatus.PROCESSING:
            return task
        provider = find_provider(task.api_format)
        if not isinstance(provider, AsyncProvider):
            return task

        try:
            _, _, upstream, api_key = self._resolve(task)
            service = provider.create_service(upstream.base_url, api_key, self.http)
            result = await service.query(task.upstream_task_id, task_id=task.id)
        except Exception as exc:
            self.log.warning(
                "task.sync.failed",
                extra={
                    "task_id": task_id,
                    "upstream_task_id": task.upstream_task_id,
                    "error": str(exc),
                },
            )
            return task

        progress = f"{result.progress}%" if result.progress is not None else task.progress
        buttons = result.buttons if result.buttons is not None else task.buttons

        if result.status == UpstreamStatus.FAILED:
            error = (
                classify_error(ErrorInput(message=result.error))
                if result.error
                else ERROR_MESSAGES[ErrorCode.UNKNOWN]
            )
            return self._transition(
                task_id,
                TaskStatus.FAILED,
                only_from=_FROM_PROCESSING,
                error=error,
                progress=progress,
                buttons=buttons,
            ) or task

        if result.status == UpstreamStatus.SUCCESS:
            if not result.resource_url:
                return self._transition(
                    task_id,
                    TaskStatus.FAILED,
                    only_from=_FROM_PROCESSING,
                    error=ERROR_MESSAGES[ErrorCode.EMPTY_RESPONSE],
                    buttons=buttons,
                ) or task
            return await self._complete(
                task,
                only_from=_FROM_PROCESSING,
                resource_url=result.resource_url,
                buttons=buttons,
            ) or task

        return self._transition(
            task_id,
            TaskStatus.PROCESSING,
            only_from=_FROM_PROCESSING,
            progress=progress,
            buttons=buttons,
        ) or task

    # ------------------------------------------------------------------
    # Success handling

    async def _complete(
        self,
        task: TaskRecord,
        *,
        only_from: frozenset[TaskStatus],
        resource_url: str | None = None,
        image_base64: str | None = None,
        mime_type: str | None = None,
        buttons: list[dict[str, Any]] | None = None,
        signal: AbortSignal | None = None,
    ) -> TaskRecord | None:
        extra_fields: dict[str, Any] = {}
        if buttons is not None:
            extra_fields["buttons"] = buttons
        try:
            locator = await self.materializer.materialize(
                resource_url=resource_url,
                image_base64=image_base64,
                mime_type=mime_type,
                signal=signal,
            )
        except ResourceSaveError as exc:
            self.log.error(
                "task.resource.save_failed", extra={"task_id": task.id, "error": str(exc)}
            )
            return self._transition(
                task.id,
                TaskStatus.FAILED,
                only_from=only_from,
                error=ERROR_MESSAGES[ErrorCode.SAVE_FAILED],
                **extra_fields,
            )

        duration: float | None = None
        if task.started_at is not None:
            duration = round((self.clock() - task.started_at).total_seconds(), 3)
        updated, written = self._apply_transition(
            task.id,
            TaskStatus.SUCCESS,
            only_from=only_from,
            resource_url=locator,
            progress="100%",
            duration_seconds=duration,
            **extra_fields,
        )
        if written and duration is not None:
            self._record_duration(task.aimodel_id, duration)
        return updated

    def _record_duration(self, aimodel_id: int, seconds: float) -> None:
        try:
            self.aimodel_repo.update_estimated_time(aimodel_id, seconds)
        except Exception:
            self.log.warning(
                "task.estimate.update_failed",
                extra={"aimodel_id": aimodel_id, "seconds": seconds},
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Cancellation and retry

    def abort_task(self, task_id: int) -> bool:
        """Interrupt the outstanding vendor call for ``task_id``; ``True`` if one was running."""
        aborted = self.inflight.abort(task_id, "cancelled by user")
        if aborted:
            self.log.info("task.abort", extra={"task_id": task_id})
        return aborted

    def cancel_task(self, task_id: int, user_id: int) -> tuple[TaskRecord, bool]:
        """Abort any running call and record ``cancelled`` in one step."""
        task = self.get_task_for_user(task_id, user_id)
        if task.status not in IN_FLIGHT_STATUSES:
            raise InvalidTaskStateError("只能取消进行中的任务")
        aborted = self.abort_task(task_id)
        updated = self._transition(
            task_id,
            TaskStatus.CANCELLED,
            only_from=IN_FLIGHT_STATUSES,
            error=USER_CANCELLED_MESSAGE,
        )
        return updated or task, aborted

    def retry_task(self, task_id: int, user_id: int) -> TaskRecord:
        """Reset a failed or cancelled task to ``pending`` and resubmit it in the background."""
        task = self.get_task_for_user(task_id, user_id)
        if task.status not in RETRYABLE_STATUSES:
            raise InvalidTaskStateError("只能重试失败或已取消的任务")

        updated = self._transition(
            task_id,
            TaskStatus.PENDING,
            only_from=RETRYABLE_STATUSES,
            upstream_task_id=None,
            progress=None,
            buttons=None,
            duration_seconds=None,
            started_at=None,
            created_at=self.clock(),
        )
        if updated is None or updated.status != TaskStatus.PENDING:
            raise InvalidTaskStateError("只能重试失败或已取消的任务")
        self.log.info("task.retry", extra={"task_id": task_id})
        self.spawn_submission(task_id)
        return updated

    # ------------------------------------------------------------------
    # Button actions

    async def execute_action(self, parent_task_id: int, custom_id: str, user_id: int) -> TaskRecord:
        """Create a child task that runs a vendor button action on the parent's result."""
        parent = self.get_task_for_user(parent_task_id, user_id)
        provider, aimodel, upstream, api_key = self._resolve(parent)
        service = provider.create_service(upstream.base_url, api_key, self.http)
        if not isinstance(service, ActionService):
            raise TaskValidationError("仅 Midjourney 支持按钮动作")
        if not parent.upstream_task_id:
            raise InvalidTaskStateError("父任务未提交")

        child = self.task_repo.create(
            user_id=parent.user_id,
            upstream_id=parent.upstream_id,
            aimodel_id=parent.aimodel_id,
            task_type=parent.task_type,
            model_type=parent.model_type,
            api_format=parent.api_format,
            model_name=parent.model_name or aimodel.model_name,
            prompt=parent.prompt,
            images=list(parent.images),
            model_params=parent.model_params,
            operation=TaskOperation.IMAGINE.value,
            status=TaskStatus.SUBMITTING.value,
            is_blurred=parent.is_blurred,
            started_at=self.clock(),
        )
        self._emit(child.user_id, TASK_CREATED, {"task": task_payload(child)})
        self.log.info(
            "task.action.start",
            extra={"task_id": child.id, "parent_task_id": parent.id, "custom_id": custom_id},
        )

        with self.inflight.track(child.id, timeout_seconds=self.submit_deadline_seconds) as signal:
            try:
                submitted = await service.action(
                    parent.upstream_task_id, custom_id, task_id=child.id, signal=signal
                )
            except Exception as exc:
                if is_abort_error(exc) and signal.aborted:
                    return self.get_task(child.id)
                self.log.warning(
                    "task.action.failed", extra={"task_id": child.id, "error": str(exc)}
                )
                return self._transition(
                    child.id,
                    TaskStatus.FAILED,
                    only_from=_FROM_SUBMITTING,
                    error=classify_exception(exc),
                ) or self.get_task(child.id)

        return self._transition(
            child.id,
            TaskStatus.PROCESSING,
            only_from=_FROM_SUBMITTING,
            upstream_task_id=submitted.upstream_task_id,
        ) or self.get_task(child.id)

    # ------------------------------------------------------------------
    # Trash and display flags

    def delete_task(self, task_id: int, user_id: int) -> TaskRecord:
        task = self.get_task_for_user(task_id, user_id)
        if task.deleted_at is not None:
            return task
        if task.status in IN_FLIGHT_STATUSES:
            self.abort_task(task_id)
        deleted = self.task_repo.soft_delete(task_id) or task
        self._emit(user_id, TASK_DELETED, {"task_id": task_id})
        return deleted

    def restore_task(self, task_id: int, user_id: int) -> TaskRecord:
        task = self.get_task_for_user(task_id, user_id)
        if task.deleted_at is None:
            raise InvalidTaskStateError("任务不在回收站中")
        restored = self.task_repo.restore(task_id) or task
        self._emit(user_id, TASK_RESTORED, {"task": task_payload(restored)})
        return restored

    def empty_trash(self, user_id: int) -> int:
        count = self.task_repo.empty_trash(user_id)
        self.log.info("task.trash.emptied", extra={"user_id": user_id, "count": count})
        return count

    def update_blur(self, task_id: int, user_id: int, is_blurred: bool) -> TaskRecord:
        self.get_task_for_user(task_id, user_id)
        updated = self.task_repo.update(task_id, is_blurred=is_blurred)
        if updated is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        self._emit(user_id, TASK_BLUR_UPDATED, {"task_id": task_id, "is_blurred": is_blurred})
        return updated

    def batch_blur(self, user_id: int, task_ids: Iterable[int], is_blurred: bool) -> list[int]:
        touched = self.task_repo.batch_blur(user_id, task_ids, is_blurred)
        if touched:
            self._emit(
                user_id, TASKS_BLUR_UPDATED, {"task_ids": touched, "is_blurred": is_blurred}
            )
        return touched

    # ------------------------------------------------------------------
    # Background work

    async def drain(self) -> None:
        """Wait until every background submission spawned so far has settled."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        job = asyncio.create_task(coro, name=name)
        self._background.add(job)
        job.add_done_callback(self._on_background_done)
        return job

    def _on_background_done(self, job: asyncio.Task[Any]) -> None:
        self._background.discard(job)
        if job.cancelled():
            return
        exc = job.exception()
        if exc is not None:
            self.log.error(
                "task.background.failed",
                extra={"job": job.get_name()},
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    # ------------------------------------------------------------------
    # Helpers

    def _resolve(self, task: TaskRecord) -> tuple[Provider, AiModelRecord, UpstreamRecord, str]:
        provider = self.provider_lookup(task.api_format)
        aimodel = self.aimodel_repo.get(task.aimodel_id)
        if aimodel is None:
            raise TaskValidationError("模型配置不存在")
        upstream = self.upstream_repo.get(task.upstream_id)
        if upstream is None:
            raise UpstreamConfigError("上游配置不存在")
        return provider, aimodel, upstream, get_api_key(upstream, aimodel.key_name)

    def _transition(
        self,
        task_id: int,
        status: TaskStatus,
        *,
        only_from: frozenset[TaskStatus],
        error: str | None = None,
        resource_url: str | None = None,
        **fields: Any,
    ) -> TaskRecord | None:
        """Write ``status`` if the task is still in one of ``only_from``.

        Returns the current row unchanged when the task has already moved
        on, and ``None`` when it no longer exists.
        """
        updated, _ = self._apply_transition(
            task_id, status, only_from=only_from, error=error, resource_url=resource_url, **fields
        )
        return updated

    def _apply_transition(
        self,
        task_id: int,
        status: TaskStatus,
        *,
        only_from: frozenset[TaskStatus],
        error: str | None = None,
        resource_url: str | None = None,
        **fields: Any,
    ) -> tuple[TaskRecord | None, bool]:
        """Like ``_transition``, also reporting whether this call changed the row."""
        current = self.task_repo.get(task_id)
        if current is None:
            return None, False
        if current.status not in only_from:
            self.log.info(
                "task.transition.skipped",
                extra={"task_id": task_id, "current": current.status, "target": status.value},
            )
            return current, False

        changes = status_field_changes(status, error=error, resource_url=resource_url)
        changes.update(fields)
        updated = self.task_repo.update(task_id, **changes)
        written = updated is not None and updated != current
        if written:
            self._emit(updated.user_id, TASK_STATUS_UPDATED, {"task": task_payload(updated)})
        return updated, written

    def _emit(self, user_id: int, event: str, data: dict[str, Any]) -> None:
        try:
            self.broadcaster.emit_to_user(user_id, event, data)
        except Exception:
            self.log.warning("task.event.emit_failed", extra={"event": event}, exc_info=True)
