"""Vendor account (upstream) lookups and credential resolution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ..db.db_models import UpstreamModel
from ..exceptions import UpstreamConfigError

DEFAULT_KEY_NAME = "default"


@dataclass(slots=True)
class UpstreamRecord:
    id: int
    user_id: int
    name: str
    base_url: str
    api_keys: list[dict[str, str]] = field(default_factory=list)


def get_api_key(upstream: UpstreamRecord, key_name: str | None = None) -> str:
    """Pick the named key (``default`` when unnamed), else the first key."""
    wanted = key_name or DEFAULT_KEY_NAME
    keys = [entry for entry in upstream.api_keys if entry.get("key")]
    for entry in keys:
        if entry.get("name") == wanted:
            return entry["key"]
    if keys:
        return keys[0]["key"]
    raise UpstreamConfigError(f"上游 {upstream.name} 未配置 API 密钥")


class UpstreamRepository:
    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        *,
        user_id: int,
        name: str,
        base_url: str,
        api_keys: list[dict[str, str]],
    ) -> UpstreamRecord:
        with self._session_factory() as session:
            model = UpstreamModel(
                user_id=user_id, name=name, base_url=base_url, api_keys=list(api_keys)
            )
            session.add(model)
            session.commit()
            return _to_record(model)

    def get(self, upstream_id: int) -> UpstreamRecord | None:
        with self._session_factory() as session:
            model = session.get(UpstreamModel, upstream_id)
            return _to_record(model) if model is not None else None


def _to_record(model: UpstreamModel) -> UpstreamRecord:
    return UpstreamRecord(
        id=model.id,
        user_id=model.user_id,
        name=model.name,
        base_url=model.base_url,
        api_keys=[dict(entry) for entry in model.api_keys or []],
    )
