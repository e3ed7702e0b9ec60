"""FastAPI application entry point."""

import asyncio
import contextlib
from collections.abc import AsyncIterator

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .logging import configure_logging


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    shutdown_event = asyncio.Event()
    poller_task = asyncio.create_task(
        app.state.task_poller.run_forever(shutdown_event), name="task-poller"
    )
    try:
        yield
    finally:
        shutdown_event.set()
        await poller_task
        await app.state.task_service.drain()


def create_app(config: AppConfig | None = None, *, start_poller: bool = True) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="gentask", lifespan=_lifespan if start_poller else None)
    include_routers(app, cfg)
    return app
