"""Provider contract: metadata plus two structurally distinct service shapes.

A synchronous service only knows ``generate``; an asynchronous service
only knows ``submit``/``query``.  Keeping them as separate ABCs means a
caller holding a sync service has no ``query`` to call by mistake.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from ..utils.abort_signal import AbortSignal
from .model_types import ApiFormat, ModelCategory, ModelType
from .providers_http import ProviderHttp


class TaskOperation(StrEnum):
    IMAGINE = "imagine"
    BLEND = "blend"


class UpstreamStatus(StrEnum):
    """Normalised vendor status returned by ``AsyncService.query``."""

    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ModelCapabilities:
    reference_image: bool = False
    negative_prompt: bool = False
    size: bool = False
    quality: bool = False
    style: bool = False
    aspect_ratio: bool = False
    seed: bool = False
    guidance: bool = False
    watermark: bool = False
    background: bool = False
    duration: bool = False
    orientation: bool = False
    enhance_prompt: bool = False
    upsample: bool = False


@dataclass(frozen=True, slots=True)
class ValidationRules:
    requires_prompt: bool = True
    requires_image: bool = False
    min_images: int = 0
    max_images: int | None = None
    # False: every input image must be re-encoded as a base64 data URL first.
    supports_image_url: bool = True


@dataclass(frozen=True, slots=True)
class ProviderMeta:
    api_format: ApiFormat
    label: str
    category: ModelCategory
    is_async: bool
    model_types: tuple[ModelType, ...]
    capabilities: ModelCapabilities = ModelCapabilities()
    validation: ValidationRules = ValidationRules()


@dataclass(slots=True)
class GenerateParams:
    task_id: int
    prompt: str
    model_name: str
    model_type: ModelType
    images: list[str] = field(default_factory=list)
    model_params: dict[str, Any] = field(default_factory=dict)
    operation: TaskOperation = TaskOperation.IMAGINE
    signal: AbortSignal | None = None


@dataclass(slots=True)
class SyncResult:
    success: bool
    resource_url: str | None = None
    image_base64: str | None = None
    mime_type: str | None = None
    error: str | None = None


@dataclass(slots=True)
class AsyncSubmitResult:
    upstream_task_id: str


@dataclass(slots=True)
class AsyncQueryResult:
    status: UpstreamStatus
    progress: int | None = None
    resource_url: str | None = None
    error: str | None = None
    buttons: list[dict[str, Any]] | None = None


class SyncService(ABC):
    """Completes the whole vendor round trip inside ``generate``."""

    @abstractmethod
    async def generate(self, params: GenerateParams) -> SyncResult:
        """Return a success/failure result; transport errors are classified, not raised."""


class AsyncService(ABC):
    """Submit-then-poll vendor workflow."""

    @abstractmethod
    async def submit(self, params: GenerateParams) -> AsyncSubmitResult:
        """Start vendor work and return its handle; raises on submission failure."""

    @abstractmethod
    async def query(
        self,
        upstream_task_id: str,
        *,
        task_id: int | None = None,
        signal: AbortSignal | None = None,
    ) -> AsyncQueryResult:
        """Fetch and normalise vendor status for ``upstream_task_id``."""


class ActionService(AsyncService):
    """Async service that also supports button-driven follow-up actions."""

    @abstractmethod
    async def action(
        self,
        parent_upstream_task_id: str,
        custom_id: str,
        *,
        task_id: int,
        signal: AbortSignal | None = None,
    ) -> AsyncSubmitResult:
        """Submit a follow-up operation; the result is a brand new vendor task."""


class Provider(ABC):
    meta: ClassVar[ProviderMeta]


class SyncProvider(Provider):
    @abstractmethod
    def create_service(self, base_url: str, api_key: str, http: ProviderHttp) -> SyncService:
        """Bind vendor credentials to a synchronous service."""


class AsyncProvider(Provider):
    @abstractmethod
    def create_service(self, base_url: str, api_key: str, http: ProviderHttp) -> AsyncService:
        """Bind vendor credentials to an asynchronous service."""


def is_async_provider(provider: Provider) -> bool:
    return isinstance(provider, AsyncProvider)


def is_sync_provider(provider: Provider) -> bool:
    return isinstance(provider, SyncProvider)


def parse_data_url(value: str) -> tuple[str, str] | None:
    """Split ``data:<mime>;base64,<payload>`` into ``(mime, payload)``."""
    if not value.startswith("data:"):
        return None
    header, sep, payload = value.partition(",")
    if not sep or not payload:
        return None
    mime = header[5:].split(";", 1)[0] or "application/octet-stream"
    return mime, payload


def strip_data_url(value: str) -> str:
    """Return the bare base64 payload of a data URL (or ``value`` unchanged)."""
    parsed = parse_data_url(value)
    return parsed[1] if parsed else value


_PROGRESS_RE = re.compile(r"(\d+)%")


def parse_progress(value: Any) -> int | None:
    """Normalise ``"45%"``-style (or numeric) progress to an int in 0..100."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return max(0, min(100, int(value)))
    match = _PROGRESS_RE.search(str(value))
    if not match:
        return None
    return max(0, min(100, int(match.group(1))))
