"""Dependency wiring helpers."""

from fastapi import FastAPI

from .config import AppConfig
from .media.media_service import ResourceStore
from .media.resource_materializer import ResourceMaterializer
from .providers.providers_http import ProviderHttp
from .repositories.aimodel_repository import AiModelRepository
from .repositories.task_repository import TaskRepository
from .repositories.upstream_repository import UpstreamRepository
from .tasks.task_api import files_router
from .tasks.task_api import router as tasks_router
from .tasks.task_cancellation import InflightRegistry
from .tasks.task_events import EventBroadcaster
from .tasks.task_service import TaskService
from .utils.http_logger import TaskHttpLogger
from .workers.task_poller import TaskPoller


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    task_repo = TaskRepository(config.session_factory)
    upstream_repo = UpstreamRepository(config.session_factory)
    aimodel_repo = AiModelRepository(config.session_factory)

    resource_store = ResourceStore(
        config.storage_paths,
        download_timeout_seconds=config.provider_timeouts.download_seconds,
    )
    http_logger = TaskHttpLogger(config.storage_paths.logs)
    broadcaster = EventBroadcaster()

    task_service = TaskService(
        task_repo=task_repo,
        upstream_repo=upstream_repo,
        aimodel_repo=aimodel_repo,
        resource_store=resource_store,
        materializer=ResourceMaterializer(resource_store),
        broadcaster=broadcaster,
        http=ProviderHttp(
            timeout_seconds=config.provider_timeouts.request_seconds,
            http_logger=http_logger,
        ),
        inflight=InflightRegistry(),
        http_logger=http_logger,
        public_url=config.public_url,
        submit_deadline_seconds=config.provider_timeouts.submit_deadline_seconds,
    )
    task_poller = TaskPoller(
        task_service=task_service,
        task_repo=task_repo,
        aimodel_repo=aimodel_repo,
        tick_seconds=config.poll_tick_seconds,
    )

    app.state.config = config
    app.state.task_repo = task_repo
    app.state.upstream_repo = upstream_repo
    app.state.aimodel_repo = aimodel_repo
    app.state.resource_store = resource_store
    app.state.event_broadcaster = broadcaster
    app.state.task_service = task_service
    app.state.task_poller = task_poller

    app.include_router(tasks_router)
    app.include_router(files_router)
