"""OpenAI ``/v1/videos`` (Sora) adapter (asynchronous)."""

from __future__ import annotations

import base64
import binascii
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
    ValidationRules,
    parse_data_url,
    parse_progress,
)
from .providers_http import ProviderHttp, ensure_success
from .providers_video_unified import normalize_error

logger = logging.getLogger(__name__)

STATUS_NORMALIZATION: dict[str, UpstreamStatus] = {
    "pending": UpstreamStatus.PROCESSING,
    "processing": UpstreamStatus.PROCESSING,
    "queued": UpstreamStatus.PROCESSING,
    "generating": UpstreamStatus.PROCESSING,
    "in_progress": UpstreamStatus.PROCESSING,
    "success": UpstreamStatus.SUCCESS,
    "completed": UpstreamStatus.SUCCESS,
    "failed": UpstreamStatus.FAILED,
    "error": UpstreamStatus.FAILED,
}


def resolve_size(size: str | None, orientation: str | None) -> str | None:
    """Map ``small``/``large`` plus orientation to the pixel sizes the API accepts."""
    if not size:
        return None
    portrait = orientation == "portrait"
    if size == "large":
        return "1024x1792" if portrait else "1792x1024"
    return "720x1280" if portrait else "1280x720"


@dataclass(slots=True)
class OpenAIVideoService(AsyncService):
    base_url: str
    api_key: str
    http: ProviderHttp
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, params: GenerateParams) -> AsyncSubmitResult:
        model_params = params.model_params
        form: dict[str, Any] = {"model": params.model_name, "prompt": params.prompt}
        if model_params.get("duration"):
            form["seconds"] = str(model_params["duration"])
        size = resolve_size(model_params.get("size"), model_params.get("orientation"))
        if size:
            form["size"] = size

        files = None
        reference = _input_reference(params.images)
        if reference is not None:
            files = {"input_reference": reference}
        else:
            # Multipart is mandatory even without a reference file.
            files = {key: (None, value) for key, value in form.items()}
            form = None

        response = await self.http.request(
            "POST",
            f"{self.base_url}/v1/videos",
            task_id=params.task_id,
            headers={"Authorization": f"Bearer {self.api_key}"},
            data=form,
            files=files,
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
            f"{self.base_url}/v1/videos/{quote(upstream_task_id, safe='')}",
            task_id=task_id,
            headers={"Authorization": f"Bearer {self.api_key}"},
            signal=signal,
        )
        data = ensure_success(response)
        if not isinstance(data, dict):
            raise ProviderResponseError("Video query response is not an object")

        raw_status = str(data.get("status") or "")
        status = STATUS_NORMALIZATION.get(raw_status.lower())
        if status is None:
            self.log.warning(
                "provider.openai_video.query.unknown_status",
                extra={"task_id": task_id, "upstream_task_id": upstream_task_id, "status": raw_status},
            )
            status = UpstreamStatus.PROCESSING

        return AsyncQueryResult(
            status=status,
            progress=parse_progress(data.get("progress")),
            resource_url=data.get("video_url") or None,
            error=normalize_error(data.get("error")),
        )


def _input_reference(images: list[str]) -> tuple[str, bytes, str] | None:
    if not images:
        return None
    parsed = parse_data_url(images[0])
    if parsed is None:
        return None
    mime_type, payload = parsed
    try:
        return ("reference.png", base64.b64decode(payload), mime_type)
    except (binascii.Error, ValueError):
        return None


class OpenAIVideoProvider(AsyncProvider):
    meta = ProviderMeta(
        api_format=ApiFormat.OPENAI_VIDEO,
        label="OpenAI Video",
        category=ModelCategory.VIDEO,
        is_async=True,
        model_types=(ModelType.SORA,),
        capabilities=ModelCapabilities(reference_image=True, duration=True, watermark=True),
        validation=ValidationRules(supports_image_url=False),
    )

    def create_service(
        self, base_url: str, api_key: str, http: ProviderHttp
    ) -> OpenAIVideoService:
        return OpenAIVideoService(base_url=base_url.rstrip("/"), api_key=api_key, http=http)
