"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..utils.clock import utcnow


class Base(DeclarativeBase):
    """Base declarative class."""


class UpstreamModel(Base):
    """Vendor account: base URL plus one or more named API keys."""

    __tablename__ = "upstream"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    base_url: Mapped[str] = mapped_column(String(512), nullable=False)
    api_keys: Mapped[list[dict[str, str]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    aimodels: Mapped[list["AiModelModel"]] = relationship(
        back_populates="upstream",
        cascade="all, delete-orphan",
    )


class AiModelModel(Base):
    """Configured model on an upstream (format, model name, timing estimate)."""

    __tablename__ = "aimodel"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    upstream_id: Mapped[int] = mapped_column(Integer, ForeignKey("upstream.id"), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(16), nullable=False, default="image")
    model_type: Mapped[str] = mapped_column(String(32), nullable=False)
    api_format: Mapped[str] = mapped_column(String(32), nullable=False)
    model_name: Mapped[str] = mapped_column(String(128), nullable=False)
    estimated_time: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    key_name: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    upstream: Mapped[UpstreamModel] = relationship(back_populates="aimodels")


class TaskModel(Base):
    __tablename__ = "task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    unique_id: Mapped[str | None] = mapped_column(String(64), index=True)
    upstream_id: Mapped[int] = mapped_column(Integer, nullable=False)
    aimodel_id: Mapped[int] = mapped_column(Integer, nullable=False)
    task_type: Mapped[str] = mapped_column(String(16), nullable=False, default="image")
    model_type: Mapped[str] = mapped_column(String(32), nullable=False)
    api_format: Mapped[str] = mapped_column(String(32), nullable=False)
    model_name: Mapped[str | None] = mapped_column(String(128))
    prompt: Mapped[str | None] = mapped_column(Text)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    model_params: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    operation: Mapped[str] = mapped_column(String(16), nullable=False, default="imagine")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    upstream_task_id: Mapped[str | None] = mapped_column(String(128))
    progress: Mapped[str | None] = mapped_column(String(32))
    resource_url: Mapped[str | None] = mapped_column(String(512))
    error: Mapped[str | None] = mapped_column(Text)
    buttons: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    is_blurred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    duration_seconds: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
