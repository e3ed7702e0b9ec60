"""Koukoutu background removal (asynchronous, image only)."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import ProviderHttpError, ProviderResponseError, TaskValidationError
from ..utils.abort_signal import AbortSignal
from .model_types import ApiFormat, ModelCategory, ModelType
from .providers_base import (
    AsyncProvider,
    AsyncQueryResult,
    AsyncService,
    AsyncSubmitResult,
    GenerateParams,
    ProviderMeta,
    UpstreamStatus,
    ValidationRules,
    strip_data_url,
)
from .providers_http import ProviderHttp, ensure_success

logger = logging.getLogger(__name__)

DEFAULT_MODEL_KEY = "background-removal"

KOUKOUTU_STATE_MAP: dict[int, UpstreamStatus] = {
    0: UpstreamStatus.PROCESSING,
    1: UpstreamStatus.SUCCESS,
    -1: UpstreamStatus.FAILED,
}


@dataclass(slots=True)
class KoukoutuService(AsyncService):
    base_url: str
    api_key: str
    http: ProviderHttp
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, params: GenerateParams) -> AsyncSubmitResult:
        if not params.images:
            raise TaskValidationError("抠抠图需要上传图片")
        try:
            content = base64.b64decode(strip_data_url(params.images[0]))
        except (binascii.Error, ValueError) as exc:
            raise ProviderResponseError("Invalid base64 image payload") from exc

        form = {
            "model_key": params.model_name or DEFAULT_MODEL_KEY,
            "output_format": "webp",
            "crop": "0",
            "border": "0",
            "stamp_crop": "0",
        }
        response = await self.http.request(
            "POST",
            f"{self.base_url}/v1/create",
            task_id=params.task_id,
            headers={"Authorization": f"Bearer {self.api_key}"},
            data=form,
            files={"image_file": ("image.png", content, "image/png")},
            signal=params.signal,
        )
        body = _as_object(ensure_success(response))
        if body.get("code") != 200:
            raise ProviderHttpError(
                str(body.get("message") or "提交失败"), status=response.status_code, body=body
            )
        task_ref = (body.get("data") or {}).get("task_id")
        if task_ref is None:
            raise ProviderResponseError("Koukoutu create response has no task_id")
        return AsyncSubmitResult(upstream_task_id=str(task_ref))

    async def query(
        self,
        upstream_task_id: str,
        *,
        task_id: int | None = None,
        signal: AbortSignal | None = None,
    ) -> AsyncQueryResult:
        # Multipart text fields: the endpoint rejects urlencoded bodies.
        response = await self.http.request(
            "POST",
            f"{self.base_url}/v1/query",
            task_id=task_id,
            headers={"Authorization": f"Bearer {self.api_key}"},
            files={"task_id": (None, upstream_task_id), "response": (None, "url")},
            signal=signal,
        )
        data = _as_object(ensure_success(response)).get("data") or {}
        state = data.get("state")
        status = KOUKOUTU_STATE_MAP.get(state) if isinstance(state, int) else None
        if status is None:
            self.log.warning(
                "provider.koukoutu.query.unknown_status",
                extra={"task_id": task_id, "upstream_task_id": upstream_task_id, "status": state},
            )
            status = UpstreamStatus.PROCESSING
        return AsyncQueryResult(
            status=status,
            resource_url=data.get("result_file") or None,
            error="抠图处理失败" if status is UpstreamStatus.FAILED else None,
        )


def _as_object(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ProviderResponseError("Koukoutu response is not an object")
    return data


class KoukoutuProvider(AsyncProvider):
    meta = ProviderMeta(
        api_format=ApiFormat.KOUKOUTU,
        label="抠抠图 API",
        category=ModelCategory.IMAGE,
        is_async=True,
        model_types=(ModelType.KOUKOUTU,),
        validation=ValidationRules(
            requires_prompt=False,
            requires_image=True,
            min_images=1,
            supports_image_url=False,
        ),
    )

    def create_service(self, base_url: str, api_key: str, http: ProviderHttp) -> KoukoutuService:
        return KoukoutuService(base_url=base_url.rstrip("/"), api_key=api_key, http=http)
