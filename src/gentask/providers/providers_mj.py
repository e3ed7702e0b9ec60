"""MJ-Proxy (Midjourney relay) adapter: submit, fetch and button actions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..errors.error_classifier import ErrorInput, classify_error
from ..exceptions import ProviderHttpError, ProviderResponseError
from ..utils.abort_signal import AbortSignal
from .model_types import ApiFormat, ModelCategory, ModelType
from .providers_base import (
    ActionService,
    AsyncProvider,
    AsyncQueryResult,
    AsyncSubmitResult,
    GenerateParams,
    ModelCapabilities,
    ProviderMeta,
    TaskOperation,
    UpstreamStatus,
    ValidationRules,
    parse_progress,
)
from .providers_http import ProviderHttp, ensure_success

logger = logging.getLogger(__name__)

MJ_STATUS_MAP: dict[str, UpstreamStatus] = {
    "SUCCESS": UpstreamStatus.SUCCESS,
    "FAILURE": UpstreamStatus.FAILED,
    "IN_PROGRESS": UpstreamStatus.PROCESSING,
    "SUBMITTED": UpstreamStatus.PROCESSING,
    "MODAL": UpstreamStatus.PROCESSING,
    "NOT_START": UpstreamStatus.PROCESSING,
}


@dataclass(slots=True)
class MJService(ActionService):
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
        if params.operation == TaskOperation.BLEND and params.images:
            url = f"{self.base_url}/mj/submit/blend"
            body: dict[str, Any] = {"base64Array": list(params.images), "dimensions": "SQUARE"}
        else:
            url = f"{self.base_url}/mj/submit/imagine"
            body = {"prompt": params.prompt, "base64Array": list(params.images)}
        return await self._submit(url, body, params.task_id, params.signal, "提交失败")

    async def query(
        self,
        upstream_task_id: str,
        *,
        task_id: int | None = None,
        signal: AbortSignal | None = None,
    ) -> AsyncQueryResult:
        response = await self.http.request(
            "GET",
            f"{self.base_url}/mj/task/{upstream_task_id}/fetch",
            task_id=task_id,
            headers=self.headers,
            signal=signal,
        )
        data = _as_object(ensure_success(response))

        raw_status = str(data.get("status") or "")
        status = MJ_STATUS_MAP.get(raw_status)
        if status is None:
            self.log.warning(
                "provider.mj.query.unknown_status",
                extra={"task_id": task_id, "upstream_task_id": upstream_task_id, "status": raw_status},
            )
            status = UpstreamStatus.PROCESSING

        fail_reason = data.get("failReason")
        buttons = data.get("buttons")
        return AsyncQueryResult(
            status=status,
            progress=parse_progress(data.get("progress")),
            resource_url=data.get("imageUrl") or None,
            error=classify_error(ErrorInput(message=str(fail_reason))) if fail_reason else None,
            buttons=[item for item in buttons if isinstance(item, dict)] if buttons else None,
        )

    async def action(
        self,
        parent_upstream_task_id: str,
        custom_id: str,
        *,
        task_id: int,
        signal: AbortSignal | None = None,
    ) -> AsyncSubmitResult:
        body = {"taskId": parent_upstream_task_id, "customId": custom_id}
        return await self._submit(
            f"{self.base_url}/mj/submit/action", body, task_id, signal, "执行动作失败"
        )

    async def _submit(
        self,
        url: str,
        body: dict[str, Any],
        task_id: int,
        signal: AbortSignal | None,
        fallback_error: str,
    ) -> AsyncSubmitResult:
        response = await self.http.request(
            "POST", url, task_id=task_id, headers=self.headers, json=body, signal=signal
        )
        result = _as_object(ensure_success(response))
        if result.get("code") != 1:
            raise ProviderHttpError(
                str(result.get("description") or fallback_error),
                status=response.status_code,
                body=result,
            )
        upstream_task_id = result.get("result")
        if not upstream_task_id:
            raise ProviderResponseError("MJ submit response has no task id")
        self.log.info(
            "provider.mj.submitted",
            extra={"task_id": task_id, "upstream_task_id": str(upstream_task_id)},
        )
        return AsyncSubmitResult(upstream_task_id=str(upstream_task_id))


def _as_object(data: Any) -> dict[str, Any]:
    # Some relays return the JSON document as a quoted string.
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError as exc:
            raise ProviderResponseError("MJ response is not JSON") from exc
    if not isinstance(data, dict):
        raise ProviderResponseError("MJ response is not an object")
    return data


class MJProvider(AsyncProvider):
    meta = ProviderMeta(
        api_format=ApiFormat.MJ_PROXY,
        label="MJ-Proxy",
        category=ModelCategory.IMAGE,
        is_async=True,
        model_types=(ModelType.MIDJOURNEY,),
        capabilities=ModelCapabilities(reference_image=True),
        validation=ValidationRules(supports_image_url=False),
    )

    def create_service(self, base_url: str, api_key: str, http: ProviderHttp) -> MJService:
        return MJService(base_url=base_url.rstrip("/"), api_key=api_key, http=http)
