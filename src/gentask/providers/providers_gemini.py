"""Gemini ``generateContent`` image generation (synchronous)."""

from __future__ import annotations

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

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
    "HARM_CATEGORY_CIVIC_INTEGRITY",
)


@dataclass(slots=True)
class GeminiService(SyncService):
    """Call Gemini REST with the prompt and optional inline reference images."""

    base_url: str
    api_key: str
    http: ProviderHttp
    log: logging.Logger = field(default_factory=lambda: logger)

    async def generate(self, params: GenerateParams) -> SyncResult:
        if not self.api_key:
            return SyncResult(success=False, error="Gemini API Key 未配置")

        self.log.info(
            "gemini.request.start",
            extra={"task_id": params.task_id, "images": len(params.images)},
        )
        url = f"{self.base_url}/v1beta/models/{params.model_name}:generateContent"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }
        try:
            response = await self.http.request(
                "POST",
                url,
                task_id=params.task_id,
                headers=headers,
                json=self._build_body(params),
                signal=params.signal,
            )
            data = ensure_success(response)
        except RequestAborted:
            raise
        except Exception as exc:
            self.log.warning(
                "gemini.request.failed",
                extra={"task_id": params.task_id, "error": str(exc)},
            )
            return SyncResult(success=False, error=classify_exception(exc))
        return _parse_response(data)

    def _build_body(self, params: GenerateParams) -> dict[str, Any]:
        # Text first, inline images after it.
        parts: list[dict[str, Any]] = [{"text": params.prompt}]
        for image in params.images:
            parsed = parse_data_url(image)
            if parsed and parsed[0].startswith("image/"):
                parts.append({"inlineData": {"mimeType": parsed[0], "data": parsed[1]}})

        generation_config: dict[str, Any] = {
            "candidateCount": 1,
            "maxOutputTokens": 8192,
            "temperature": 1.0,
            "topP": 0.95,
            "topK": 40,
        }
        image_config: dict[str, Any] = {}
        if params.model_params.get("size"):
            image_config["imageSize"] = params.model_params["size"]
        if params.model_params.get("aspect_ratio"):
            image_config["aspectRatio"] = params.model_params["aspect_ratio"]
        if image_config:
            generation_config["imageConfig"] = image_config

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
            "safetySettings": [
                {"category": category, "threshold": "OFF"} for category in _SAFETY_CATEGORIES
            ],
        }


def _parse_response(data: Any) -> SyncResult:
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates:
        return SyncResult(success=False, error="未收到响应")

    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            return SyncResult(
                success=True,
                image_base64=inline["data"],
                mime_type=inline.get("mimeType") or inline.get("mime_type") or "image/png",
            )

    # A text-only answer usually explains a refusal.
    for part in parts:
        if part.get("text"):
            return SyncResult(success=False, error=part["text"])
    return SyncResult(success=False, error=ERROR_MESSAGES[ErrorCode.EMPTY_RESPONSE])


class GeminiProvider(SyncProvider):
    meta = ProviderMeta(
        api_format=ApiFormat.GEMINI,
        label="Gemini API",
        category=ModelCategory.IMAGE,
        is_async=False,
        model_types=(ModelType.GEMINI,),
        capabilities=ModelCapabilities(reference_image=True),
        validation=ValidationRules(supports_image_url=False),
    )

    def create_service(self, base_url: str, api_key: str, http: ProviderHttp) -> GeminiService:
        return GeminiService(base_url=base_url.rstrip("/"), api_key=api_key, http=http)
