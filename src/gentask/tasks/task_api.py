"""Task API endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse

from ..exceptions import (
    InvalidTaskStateError,
    ProviderError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    TaskValidationError,
    UpstreamConfigError,
)
from ..media.media_service import ResourceStore, mime_for_filename
from .task_models import TaskClassification, TaskInputs, TaskPage
from .task_schemas import (
    BatchBlurRequest,
    BatchBlurResponse,
    BlurUpdateRequest,
    EmptyTrashResponse,
    TaskActionRequest,
    TaskCancelResponse,
    TaskCreateRequest,
    TaskListResponse,
    TaskLogsResponse,
    TaskOut,
)
from .task_service import TaskService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])
files_router = APIRouter(prefix="/api/files", tags=["files"])


def get_task_service(request: Request) -> TaskService:
    try:
        return request.app.state.task_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("TaskService is not configured") from exc


def get_resource_store(request: Request) -> ResourceStore:
    try:
        return request.app.state.resource_store  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("ResourceStore is not configured") from exc


def require_user_id(request: Request) -> int:
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": "error", "failure_reason": "unauthenticated"},
        )
    return int(user_id)


def _error_response(exc: Exception) -> HTTPException:
    if isinstance(exc, TaskNotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"status": "error", "failure_reason": "task_not_found"},
        )
    if isinstance(exc, TaskAccessDeniedError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"status": "error", "failure_reason": "forbidden"},
        )
    if isinstance(exc, InvalidTaskStateError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"status": "error", "failure_reason": "invalid_state", "details": str(exc)},
        )
    if isinstance(exc, (TaskValidationError, UpstreamConfigError)):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"status": "error", "failure_reason": "invalid_request", "details": str(exc)},
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"status": "error", "failure_reason": "provider_error", "details": str(exc)},
    )


_HANDLED_ERRORS = (
    TaskNotFoundError,
    TaskAccessDeniedError,
    InvalidTaskStateError,
    TaskValidationError,
    UpstreamConfigError,
    ProviderError,
)


def _list_response(page: TaskPage) -> TaskListResponse:
    return TaskListResponse(
        tasks=[TaskOut.from_record(item) for item in page.items],
        total=page.total,
        page=page.page,
        page_size=page.page_size,
    )


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreateRequest,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    classification = TaskClassification(
        aimodel_id=payload.aimodel_id,
        model_type=payload.model_type,
        api_format=payload.api_format,
        task_type=payload.task_type,
        model_name=payload.model_name,
    )
    inputs = TaskInputs(
        prompt=payload.prompt,
        images=list(payload.images),
        model_params=payload.model_params,
        operation=payload.operation,
        unique_id=payload.unique_id,
        is_blurred=payload.is_blurred,
    )
    try:
        task = service.create_task(user_id, classification, inputs)
    except _HANDLED_ERRORS as exc:
        logger.info("task.api.create.rejected", user_id=user_id, reason=str(exc))
        raise _error_response(exc) from exc
    service.spawn_submission(task.id)
    return TaskOut.from_record(task)


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    task_type: str | None = Query(None, alias="type"),
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskListResponse:
    return _list_response(
        service.list_tasks(user_id, page=page, page_size=page_size, task_type=task_type)
    )


@router.get("/trash", response_model=TaskListResponse)
async def list_trash(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskListResponse:
    return _list_response(service.list_trash(user_id, page=page, page_size=page_size))


@router.delete("/trash/empty", response_model=EmptyTrashResponse)
async def empty_trash(
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> EmptyTrashResponse:
    deleted = service.empty_trash(user_id)
    logger.info("task.api.trash.emptied", user_id=user_id, deleted=deleted)
    return EmptyTrashResponse(deleted=deleted)


@router.patch("/blur-batch", response_model=BatchBlurResponse)
async def batch_blur(
    payload: BatchBlurRequest,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> BatchBlurResponse:
    updated = service.batch_blur(user_id, payload.task_ids, payload.is_blurred)
    return BatchBlurResponse(updated=updated, is_blurred=payload.is_blurred)


@router.post("/action", response_model=TaskOut)
async def execute_action(
    payload: TaskActionRequest,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    try:
        task = await service.execute_action(payload.task_id, payload.custom_id, user_id)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    return TaskOut.from_record(task)


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: int,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    try:
        service.get_task_for_user(task_id, user_id)
        task = await service.sync_task_status(task_id)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    return TaskOut.from_record(task)


@router.post("/{task_id}/cancel", response_model=TaskCancelResponse)
async def cancel_task(
    task_id: int,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskCancelResponse:
    try:
        task, aborted = service.cancel_task(task_id, user_id)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    logger.info("task.api.cancel", user_id=user_id, task_id=task_id, aborted=aborted)
    return TaskCancelResponse(task=TaskOut.from_record(task), aborted=aborted)


@router.post("/{task_id}/retry", response_model=TaskOut)
async def retry_task(
    task_id: int,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    try:
        task = service.retry_task(task_id, user_id)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    return TaskOut.from_record(task)


@router.delete("/{task_id}", response_model=TaskOut)
async def delete_task(
    task_id: int,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    try:
        task = service.delete_task(task_id, user_id)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    return TaskOut.from_record(task)


@router.post("/{task_id}/restore", response_model=TaskOut)
async def restore_task(
    task_id: int,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    try:
        task = service.restore_task(task_id, user_id)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    return TaskOut.from_record(task)


@router.patch("/{task_id}/blur", response_model=TaskOut)
async def update_blur(
    task_id: int,
    payload: BlurUpdateRequest,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskOut:
    try:
        task = service.update_blur(task_id, user_id, payload.is_blurred)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    return TaskOut.from_record(task)


@router.get("/{task_id}/logs", response_model=TaskLogsResponse)
async def task_logs(
    task_id: int,
    user_id: int = Depends(require_user_id),
    service: TaskService = Depends(get_task_service),
) -> TaskLogsResponse:
    try:
        entries = service.task_logs(task_id, user_id)
    except _HANDLED_ERRORS as exc:
        raise _error_response(exc) from exc
    return TaskLogsResponse(task_id=task_id, entries=entries)


@files_router.get("/{name}")
async def serve_file(
    name: str,
    store: ResourceStore = Depends(get_resource_store),
) -> FileResponse:
    path = store.path_for(name)
    if path is None or not path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"status": "error", "failure_reason": "file_not_found"},
        )
    return FileResponse(path, media_type=mime_for_filename(name))
