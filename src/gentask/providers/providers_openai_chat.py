"""Chat-completions based image generation (synchronous).

The image arrives embedded in the assistant message, either as a markdown
image link, a data URL, or a bare image URL.
"""

from __future__ import annotations

import logging
import re
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
    parse_data_url,
)
from .providers_http import ProviderHttp, ensure_success

logger = logging.getLogger(__name__)

_MARKDOWN_IMAGE_RE = re.compile(r"!\[.*?\]\((https?://[^\s)]+)\)")
_DATA_URL_RE = re.compile(r"(data:image/[^;]+;base64,[A-Za-z0-9+/=]+)")
_IMAGE_URL_RE = re.compile(r"(https?://[^\s\"'<>]+\.(?:png|jpg|jpeg|gif|webp))", re.IGNORECASE)


def extract_image_url(content: str) -> str | None:
    for pattern in (_MARKDOWN_IMAGE_RE, _DATA_URL_RE, _IMAGE_URL_RE):
        match = pattern.search(content)
        if match:
            return match.group(1)
    return None


@dataclass(slots=True)
class OpenAIChatImageService(SyncService):
    base_url: str
    api_key: str
    http: ProviderHttp
    log: logging.Logger = field(default_factory=lambda: logger)

    async def generate(self, params: GenerateParams) -> SyncResult:
        url = f"{self.base_url}/v1/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": params.model_name,
            "messages": [{"role": "user", "content": _build_content(params)}],
            "stream": False,
        }
        try:
            response = await self.http.request(
                "POST",
                url,
                task_id=params.task_id,
                headers=headers,
                json=body,
                signal=params.signal,
            )
            data = ensure_success(response)
        except RequestAborted:
            raise
        except Exception as exc:
            self.log.warning(
                "openai_chat.request.failed",
                extra={"task_id": params.task_id, "error": str(exc)},
            )
            return SyncResult(success=False, error=classify_exception(exc))

        content = _message_content(data)
        image_url = extract_image_url(content)
        if not image_url:
            self.log.warning(
                "openai_chat.response.no_image",
                extra={"task_id": params.task_id, "content_preview": content[:160]},
            )
            return SyncResult(success=False, error=ERROR_MESSAGES[ErrorCode.PARSE_ERROR])

        parsed = parse_data_url(image_url)
        if parsed is not None:
            return SyncResult(success=True, image_base64=parsed[1], mime_type=parsed[0])
        return SyncResult(success=True, resource_url=image_url)


def _build_content(params: GenerateParams) -> Any:
    if not params.images:
        return params.prompt
    parts: list[dict[str, Any]] = [
        {"type": "image_url", "image_url": {"url": image}} for image in params.images
    ]
    parts.append({"type": "text", "text": params.prompt})
    return parts


def _message_content(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content")
    return content if isinstance(content, str) else ""


class OpenAIChatImageProvider(SyncProvider):
    meta = ProviderMeta(
        api_format=ApiFormat.OPENAI_CHAT,
        label="OpenAI Chat",
        category=ModelCategory.IMAGE,
        is_async=False,
        model_types=(
            ModelType.GPT4O_IMAGE,
            ModelType.SORA_IMAGE,
            ModelType.GROK_IMAGE,
            ModelType.QWEN_IMAGE,
            ModelType.GEMINI,
        ),
        capabilities=ModelCapabilities(
            reference_image=True, size=True, quality=True, background=True
        ),
    )

    def create_service(
        self, base_url: str, api_key: str, http: ProviderHttp
    ) -> OpenAIChatImageService:
        return OpenAIChatImageService(base_url=base_url.rstrip("/"), api_key=api_key, http=http)
