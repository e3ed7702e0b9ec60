"""DALL-E compatible image endpoint (synchronous).

Text-to-image and JSON reference images go to ``/v1/images/generations``;
Flux reference images require multipart ``/v1/images/edits``.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors.error_classifier import ERROR_MESSAGES, ErrorCode, classify_exception
from ..exceptions import RequestAborted
from .model_types import ApiFormat, ModelCategory, ModelType
from .providers_base import (
    GenerateParams,
    ModelCapabilities,
    ProviderMeta,
    SyncProvider,
    SyncResult,
    SyncService,
    ValidationRules,
    parse_data_url,
)
from .providers_http import ProviderHttp, ensure_success

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DalleService(SyncService):
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

    async def generate(self, params: GenerateParams) -> SyncResult:
        image = params.images[0] if params.images else None
        if not image:
            return await self._post_json(params, self._build_body(params))
        if params.model_type == ModelType.FLUX:
            return await self._edit_flux(params, image)

        body = self._build_body(params)
        if params.model_type == ModelType.DOUBAO:
            body["image"] = image
        else:
            parsed = parse_data_url(image)
            body["image"] = parsed[1] if parsed else image
        return await self._post_json(params, body)

    def _build_body(self, params: GenerateParams) -> dict[str, Any]:
        model_params = params.model_params
        model_type = params.model_type
        body: dict[str, Any] = {
            "model": params.model_name,
            "prompt": params.prompt,
            "n": model_params.get("n") or 1,
            "response_format": "url",
        }

        # Doubao rejects the implicit default size.
        if model_type != ModelType.DOUBAO:
            body["size"] = model_params.get("size") or "1024x1024"
        elif model_params.get("size"):
            body["size"] = model_params["size"]

        if model_params.get("negative_prompt"):
            body["negative_prompt"] = model_params["negative_prompt"]

        if model_type == ModelType.DALLE and params.model_name.startswith("dall-e-3"):
            for key in ("quality", "style"):
                if model_params.get(key):
                    body[key] = model_params[key]
        elif model_type == ModelType.DOUBAO:
            seed = model_params.get("seed")
            if seed is not None and seed != -1:
                body["seed"] = seed
            if model_params.get("guidance_scale") is not None:
                body["guidance_scale"] = model_params["guidance_scale"]
            if model_params.get("watermark") is not None:
                body["watermark"] = model_params["watermark"]
        elif model_type == ModelType.FLUX:
            if model_params.get("aspect_ratio"):
                body["aspect_ratio"] = model_params["aspect_ratio"]
        elif model_type == ModelType.GPT_IMAGE:
            if model_params.get("quality"):
                body["quality"] = model_params["quality"]
            background = model_params.get("background")
            if background and background != "auto":
                body["background"] = background
        return body

    async def _post_json(self, params: GenerateParams, body: dict[str, Any]) -> SyncResult:
        url = f"{self.base_url}/v1/images/generations"
        try:
            response = await self.http.request(
                "POST",
                url,
                task_id=params.task_id,
                headers=self.headers,
                json=body,
                signal=params.signal,
            )
            data = ensure_success(response)
        except RequestAborted:
            raise
        except Exception as exc:
            self.log.warning(
                "dalle.request.failed",
                extra={"task_id": params.task_id, "error": str(exc)},
            )
            return SyncResult(success=False, error=classify_exception(exc))
        return _first_image(data)

    async def _edit_flux(self, params: GenerateParams, image: str) -> SyncResult:
        parsed = parse_data_url(image)
        if parsed is None:
            return SyncResult(success=False, error=ERROR_MESSAGES[ErrorCode.INVALID_PARAMS])
        mime_type, payload = parsed
        try:
            content = base64.b64decode(payload)
        except (binascii.Error, ValueError):
            return SyncResult(success=False, error=ERROR_MESSAGES[ErrorCode.INVALID_PARAMS])

        model_params = params.model_params
        form: dict[str, Any] = {
            "model": params.model_name,
            "prompt": params.prompt,
            "n": str(model_params.get("n") or 1),
            "response_format": "b64_json",
        }
        if model_params.get("negative_prompt"):
            form["negative_prompt"] = model_params["negative_prompt"]
        if model_params.get("aspect_ratio"):
            form["aspect_ratio"] = model_params["aspect_ratio"]

        url = f"{self.base_url}/v1/images/edits"
        try:
            response = await self.http.request(
                "POST",
                url,
                task_id=params.task_id,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data=form,
                files={"image": ("image.png", content, mime_type)},
                signal=params.signal,
            )
            data = ensure_success(response)
        except RequestAborted:
            raise
        except Exception as exc:
            self.log.warning(
                "dalle.edit.failed",
                extra={"task_id": params.task_id, "error": str(exc)},
            )
            return SyncResult(success=False, error=classify_exception(exc))
        return _first_image(data)


def _first_image(data: Any) -> SyncResult:
    items = data.get("data") if isinstance(data, dict) else None
    first = items[0] if isinstance(items, list) and items else None
    if not isinstance(first, dict) or not (first.get("url") or first.get("b64_json")):
        return SyncResult(success=False, error=ERROR_MESSAGES[ErrorCode.EMPTY_RESPONSE])
    return SyncResult(
        success=True,
        resource_url=first.get("url"),
        image_base64=first.get("b64_json"),
    )


class DalleProvider(SyncProvider):
    meta = ProviderMeta(
        api_format=ApiFormat.DALLE,
        label="DALL-E API",
        category=ModelCategory.IMAGE,
        is_async=False,
        model_types=(
            ModelType.DALLE,
            ModelType.FLUX,
            ModelType.DOUBAO,
            ModelType.GPT_IMAGE,
            ModelType.Z_IMAGE,
        ),
        capabilities=ModelCapabilities(
            reference_image=True,
            negative_prompt=True,
            size=True,
            quality=True,
            style=True,
            aspect_ratio=True,
            seed=True,
            guidance=True,
            watermark=True,
        ),
        validation=ValidationRules(supports_image_url=True),
    )

    def create_service(self, base_url: str, api_key: str, http: ProviderHttp) -> DalleService:
        return DalleService(base_url=base_url.rstrip("/"), api_key=api_key, http=http)
