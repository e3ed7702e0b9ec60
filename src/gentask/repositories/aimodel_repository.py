"""Configured models and their running completion-time estimate."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..db.db_models import AiModelModel


@dataclass(slots=True)
class AiModelRecord:
    id: int
    upstream_id: int
    category: str
    model_type: str
    api_format: str
    model_name: str
    estimated_time: int
    key_name: str | None


class AiModelRepository:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        *,
        upstream_id: int,
        category: str,
        model_type: str,
        api_format: str,
        model_name: str,
        estimated_time: int = 60,
        key_name: str | None = None,
    ) -> AiModelRecord:
        with self._session_factory() as session:
            model = AiModelModel(
                upstream_id=upstream_id,
                category=category,
                model_type=model_type,
                api_format=api_format,
                model_name=model_name,
                estimated_time=estimated_time,
                key_name=key_name,
            )
            session.add(model)
            session.commit()
            return _to_record(model)

    def get(self, aimodel_id: int) -> AiModelRecord | None:
        with self._session_factory() as session:
            model = session.get(AiModelModel, aimodel_id)
            return _to_record(model) if model is not None else None

    def update_estimated_time(self, aimodel_id: int, observed_seconds: float) -> None:
        """Record the latest observed duration as the model's estimate."""
        with self._session_factory() as session:
            model = session.get(AiModelModel, aimodel_id)
            if model is None:
                raise KeyError(f"AI model '{aimodel_id}' not found")
            model.estimated_time = max(1, round(observed_seconds))
            session.commit()


def _to_record(model: AiModelModel) -> AiModelRecord:
    return AiModelRecord(
        id=model.id,
        upstream_id=model.upstream_id,
        category=model.category,
        model_type=model.model_type,
        api_format=model.api_format,
        model_name=model.model_name,
        estimated_time=model.estimated_time,
        key_name=model.key_name,
    )
