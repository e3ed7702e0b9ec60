from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gentask.config import StoragePaths
from gentask.db.db_models import Base
from gentask.repositories.aimodel_repository import AiModelRepository
from gentask.repositories.task_repository import TaskRepository
from gentask.repositories.upstream_repository import UpstreamRepository


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    Base.metadata.create_all(engine)
    return Session


@pytest.fixture
def storage_paths(tmp_path: Path) -> StoragePaths:
    paths = StoragePaths(uploads=tmp_path / "uploads", logs=tmp_path / "logs")
    paths.uploads.mkdir(parents=True)
    (paths.logs / "task").mkdir(parents=True)
    return paths


@pytest.fixture
def task_repo(session_factory) -> TaskRepository:
    return TaskRepository(session_factory)


@pytest.fixture
def upstream_repo(session_factory) -> UpstreamRepository:
    return UpstreamRepository(session_factory)


@pytest.fixture
def aimodel_repo(session_factory) -> AiModelRepository:
    return AiModelRepository(session_factory)
