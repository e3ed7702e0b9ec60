"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db


@dataclass(slots=True)
class StoragePaths:
    uploads: Path
    logs: Path


@dataclass(slots=True)
class ProviderTimeouts:
    request_seconds: float
    download_seconds: float
    submit_deadline_seconds: float


@dataclass(slots=True)
class AppConfig:
    storage_paths: StoragePaths
    provider_timeouts: ProviderTimeouts
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    public_url: str | None
    poll_tick_seconds: float


def _ensure_storage_paths(paths: StoragePaths) -> None:
    paths.uploads.mkdir(parents=True, exist_ok=True)
    (paths.logs / "task").mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    storage_paths = StoragePaths(
        uploads=Path(os.getenv("UPLOAD_ROOT", "uploads")),
        logs=Path(os.getenv("TASK_LOG_ROOT", "logs")),
    )
    _ensure_storage_paths(storage_paths)

    provider_timeouts = ProviderTimeouts(
        request_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 120)),
        download_seconds=float(os.getenv("DOWNLOAD_TIMEOUT_SECONDS", 60)),
        submit_deadline_seconds=float(os.getenv("SUBMIT_DEADLINE_SECONDS", 600)),
    )

    database_url = os.getenv("DATABASE_URL", "sqlite:///gentask.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    public_url = (os.getenv("PUBLIC_URL") or "").strip() or None
    poll_tick_seconds = float(os.getenv("POLL_TICK_SECONDS", 3))

    init_db(engine)

    return AppConfig(
        storage_paths=storage_paths,
        provider_timeouts=provider_timeouts,
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        public_url=public_url,
        poll_tick_seconds=poll_tick_seconds,
    )
