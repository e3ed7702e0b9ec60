"""Shared HTTP plumbing for vendor adapters."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..errors.error_classifier import extract_error_info
from ..exceptions import ProviderHttpError, ProviderResponseError
from ..utils.abort_signal import AbortSignal
from ..utils.http_logger import TaskHttpLogger

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProviderHttp:
    """Issue one vendor request with cancellation, capture and error shaping."""

    timeout_seconds: float = 120.0
    http_logger: TaskHttpLogger | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def request(
        self,
        method: str,
        url: str,
        *,
        task_id: int | None,
        headers: dict[str, str],
        json: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        signal: AbortSignal | None = None,
    ) -> httpx.Response:
        if signal is not None:
            signal.raise_if_aborted()

        if task_id is not None and self.http_logger is not None:
            self.http_logger.log_request(
                task_id,
                url=url,
                method=method,
                headers=headers,
                body=_loggable_body(json, data, files),
            )

        kwargs: dict[str, Any] = {"headers": headers}
        if json is not None:
            kwargs["json"] = json
        if data is not None:
            kwargs["data"] = data
        if files is not None:
            kwargs["files"] = files

        started = time.monotonic()
        try:
            response = await self._send(method, url, kwargs, signal)
        except Exception as exc:
            info = extract_error_info(exc)
            self._log_response(
                task_id,
                status=None,
                started=started,
                error=info.message,
                error_type=info.error_type,
            )
            raise

        self._log_response(
            task_id,
            status=response.status_code,
            started=started,
            status_text=getattr(response, "reason_phrase", None),
            body=_response_body(response),
        )
        return response

    async def _send(
        self,
        method: str,
        url: str,
        kwargs: dict[str, Any],
        signal: AbortSignal | None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            call = client.get(url, **kwargs) if method == "GET" else client.post(url, **kwargs)
            if signal is None:
                return await call
            return await signal.guard(call)

    def _log_response(
        self,
        task_id: int | None,
        *,
        status: int | None,
        started: float,
        status_text: str | None = None,
        body: Any = None,
        error: str | None = None,
        error_type: str | None = None,
    ) -> None:
        if task_id is None or self.http_logger is None:
            return
        self.http_logger.log_response(
            task_id,
            status=status,
            duration_ms=int((time.monotonic() - started) * 1000),
            status_text=status_text,
            body=body,
            error=error,
            error_type=error_type,
        )


def read_json(response: httpx.Response) -> Any:
    """Decode a JSON body; a non-JSON 2xx body is a parse failure."""
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderResponseError(
            f"响应格式异常: {response.text[:200]}"
        ) from exc


def ensure_success(response: httpx.Response) -> Any:
    """Return the decoded body or raise :class:`ProviderHttpError` for non-2xx."""
    if 200 <= response.status_code < 300:
        return read_json(response)

    body = _response_body(response)
    message = _error_message(body) or f"HTTP {response.status_code}"
    code = None
    error_type = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        code = body["error"].get("code")
        error_type = body["error"].get("type")
    raise ProviderHttpError(
        message,
        status=response.status_code,
        body=body,
        code=str(code) if code is not None else None,
        error_type=str(error_type) if error_type is not None else None,
    )


def _error_message(body: Any) -> str | None:
    if isinstance(body, str):
        return body.strip() or None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    for key in ("message", "description", "detail"):
        if body.get(key):
            return str(body[key])
    return None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _loggable_body(
    json: dict[str, Any] | None,
    data: dict[str, Any] | None,
    files: dict[str, Any] | None,
) -> Any:
    if json is not None:
        return json
    if data is None and files is None:
        return None
    body: dict[str, Any] = dict(data or {})
    for name, value in (files or {}).items():
        if isinstance(value, tuple) and len(value) >= 2:
            filename, content = value[0], value[1]
            size = len(content) if isinstance(content, (bytes, bytearray)) else 0
            body[name] = f"[file {filename} {size} bytes]"
        else:
            body[name] = "[file]"
    return body
