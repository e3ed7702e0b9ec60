"""Unified video API (Jimeng, Veo, Sora, Grok video) (asynchronous)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from ..exceptions import ProviderResponseError
from ..utils.abort_signal import AbortSignal
from .model_types import ApiFormat, ModelCategory, ModelType
from .providers_base import (
    AsyncProvider,
    AsyncQueryResult,
    AsyncService,
    AsyncSubmitResult,
    GenerateParams,
    ModelCapabilities,
    ProviderMeta,
    UpstreamStatus,
    parse_progress,
)
from .providers_http import ProviderHttp, ensure_success

logger = logging.getLogger(__name__)

STATUS_NORMALIZATION: dict[str, UpstreamStatus] = {
    "pending": UpstreamStatus.PROCESSING,
    "processing": UpstreamStatus.PROCESSING,
    "generating": UpstreamStatus.PROCESSING,
    "image_downloading": UpstreamStatus.PROCESSING,
    "video_generating": UpstreamStatus.PROCESSING,
    "video_upsampling": UpstreamStatus.PROCESSING,
    "video_generation_completed": UpstreamStatus.PROCESSING,
    "not_start": UpstreamStatus.PROCESSING,
    "submitted": UpstreamStatus.PROCESSING,
    "queued": UpstreamStatus.PROCESSING,
    "in_progress": UpstreamStatus.PROCESSING,
    "success": UpstreamStatus.SUCCESS,
    "completed": UpstreamStatus.SUCCESS,
    "video_upsampling_completed": UpstreamStatus.SUCCESS,
    "failed": UpstreamStatus.FAILED,
    "failure": UpstreamStatus.FAILED,
    "error": UpstreamStatus.FAILED,
    "video_generation_failed": UpstreamStatus.FAILED,
    "video_upsampling_failed": UpstreamStatus.FAILED,
}

# model_params key -> request field
_OPTIONAL_FIELDS = (
    ("aspect_ratio", "aspect_ratio"),
    ("size", "size"),
    ("orientation", "orientation"),
    ("duration", "duration"),
)
_OPTIONAL_FLAGS = (
    ("enhance_prompt", "enhance_prompt"),
    ("upsample", "enable_upsample"),
    ("watermark", "watermark"),
)


def normalize_status(raw_status: str, log: logging.Logger = logger) -> UpstreamStatus:
    """Map a vendor status onto processing/success/failed.

    Unknown values stay ``processing``: an unrecognised string must never
    be read as a terminal outcome.
    """
    status = STATUS_NORMALIZATION.get(raw_status) or STATUS_NORMALIZATION.get(raw_status.lower())
    if status is not None:
        return status
    log.warning("provider.video.query.unknown_status", extra={"status": raw_status})
    return UpstreamStatus.PROCESSING


def normalize_error(error: Any) -> str | None:
    if not error:
        return None
    if isinstance(error, dict):
        return str(error.get("message") or json.dumps(error, ensure_ascii=False))
    return str(error)


@dataclass(slots=True)
class VideoUnifiedService(AsyncService):
    base_url: str
    api_key: str
    http: ProviderHttp
    log: logging.Logger = field(default_factory=lambda: logger)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def submit(self, params: GenerateParams) -> AsyncSubmitResult:
        model_params = params.model_params
        body: dict[str, Any] = {"model": params.model_name, "prompt": params.prompt}
        for key, target in _OPTIONAL_FIELDS:
            if model_params.get(key):
                body[target] = model_params[key]
        for key, target in _OPTIONAL_FLAGS:
            if model_params.get(key) is not None:
                body[target] = model_params[key]
        if params.images:
            body["images"] = list(params.images)

        response = await self.http.request(
            "POST",
            f"{self.base_url}/v1/video/create",
            task_id=params.task_id,
            headers=self.headers,
            json=body,
            signal=params.signal,
        )
        data = ensure_success(response)
        upstream_id = data.get("id") if isinstance(data, dict) else None
        if not upstream_id:
            raise ProviderResponseError("Video create response has no id")
        return AsyncSubmitResult(upstream_task_id=str(upstream_id))

    async def query(
        self,
        upstream_task_id: str,
        *,
        task_id: int | None = None,
        signal: AbortSignal | None = None,
    ) -> AsyncQueryResult:
        response = await self.http.request(
            "GET",
            f"{self.base_url}/v1/video/query?id={quote(upstream_task_id, safe='')}",
            task_id=task_id,
            headers=self.headers,
            signal=signal,
        )
        data = ensure_success(response)
        if not isinstance(data, dict):
            raise ProviderResponseError("Video query response is not an object")
        return AsyncQueryResult(
            status=normalize_status(str(data.get("status") or ""), self.log),
            progress=parse_progress(data.get("progress")),
            resource_url=data.get("video_url") or None,
            error=normalize_error(data.get("error")),
        )


class VideoUnifiedProvider(AsyncProvider):
    meta = ProviderMeta(
        api_format=ApiFormat.VIDEO_UNIFIED,
        label="视频统一格式",
        category=ModelCategory.VIDEO,
        is_async=True,
        model_types=(
            ModelType.JIMENG_VIDEO,
            ModelType.VEO,
            ModelType.SORA,
            ModelType.GROK_VIDEO,
        ),
        capabilities=ModelCapabilities(
            reference_image=True,
            duration=True,
            orientation=True,
            enhance_prompt=True,
            upsample=True,
        ),
    )

    def create_service(
        self, base_url: str, api_key: str, http: ProviderHttp
    ) -> VideoUnifiedService:
        return VideoUnifiedService(base_url=base_url.rstrip("/"), api_key=api_key, http=http)
