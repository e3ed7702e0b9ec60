"""Map heterogeneous vendor failures onto a closed set of error kinds.

Six-plus unrelated vendor APIs are aggregated behind one task model, so
failure shapes differ wildly: bare HTTP statuses, vendor JSON envelopes
(``{"error": {"code": ..., "type": ...}}``), transport exceptions from
``httpx`` and free-text ``failReason`` strings.  Everything funnels
through :func:`classify_error` which scans keywords first and falls back
to HTTP status buckets.  Classification is total: any input, including
``None`` or a non-exception object, yields a user-facing message.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx

from ..exceptions import ProviderHttpError, RequestAborted


class ErrorCode(StrEnum):
    CONTENT_FILTERED = "CONTENT_FILTERED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    RATE_LIMITED = "RATE_LIMITED"
    AUTH_FAILED = "AUTH_FAILED"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    INVALID_PARAMS = "INVALID_PARAMS"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    NETWORK_ERROR = "NETWORK_ERROR"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    PARSE_ERROR = "PARSE_ERROR"
    SAVE_FAILED = "SAVE_FAILED"
    UNKNOWN = "UNKNOWN"


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.CONTENT_FILTERED: "内容被安全过滤器拒绝",
    ErrorCode.QUOTA_EXCEEDED: "API 配额已用尽",
    ErrorCode.RATE_LIMITED: "请求过于频繁，请稍后重试",
    ErrorCode.AUTH_FAILED: "API 密钥无效或已过期",
    ErrorCode.MODEL_UNAVAILABLE: "模型暂不可用",
    ErrorCode.INVALID_PARAMS: "请求参数无效",
    ErrorCode.UPSTREAM_TIMEOUT: "上游服务响应超时",
    ErrorCode.NETWORK_ERROR: "网络连接失败",
    ErrorCode.EMPTY_RESPONSE: "未收到有效响应",
    ErrorCode.PARSE_ERROR: "响应格式异常",
    ErrorCode.SAVE_FAILED: "图片保存失败",
    ErrorCode.UNKNOWN: "生成失败",
}

# Ordered: the first matching group wins.
_KEYWORD_RULES: tuple[tuple[ErrorCode, tuple[str, ...]], ...] = (
    (
        ErrorCode.CONTENT_FILTERED,
        (
            "safety",
            "blocked",
            "filtered",
            "content_policy",
            "content policy",
            "moderation",
            "moderated",
            "violat",
            "nsfw",
            "inappropriate",
            "sensitive",
        ),
    ),
    (
        ErrorCode.EMPTY_RESPONSE,
        ("empty response", "empty_response", "no response", "未收到", "no meaningful content"),
    ),
    (ErrorCode.QUOTA_EXCEEDED, ("quota", "balance", "insufficient", "billing", "exceeded your")),
    (ErrorCode.RATE_LIMITED, ("rate limit", "rate_limit", "too many requests")),
    (
        ErrorCode.AUTH_FAILED,
        ("unauthorized", "invalid key", "invalid_api_key", "authentication failed"),
    ),
    (ErrorCode.MODEL_UNAVAILABLE, ("model not found", "does not exist", "model_not_found")),
)

_TIMEOUT_KEYWORDS = ("timeout", "timed out")
_TIMEOUT_ERROR_NAMES = frozenset(
    {"TimeoutError", "TimeoutException", "ReadTimeout", "ConnectTimeout", "WriteTimeout", "PoolTimeout", "ProviderTimeoutError"}
)
_NETWORK_KEYWORDS = (
    "econnrefused",
    "enotfound",
    "etimedout",
    "network error",
    "connection error",
    "connection refused",
)
_NETWORK_ERROR_NAMES = frozenset(
    {"FetchError", "NetworkError", "ConnectError", "RemoteProtocolError", "ReadError", "WriteError", "TransportError"}
)

_STATUS_BUCKETS: dict[int, ErrorCode] = {
    401: ErrorCode.AUTH_FAILED,
    403: ErrorCode.AUTH_FAILED,
    402: ErrorCode.QUOTA_EXCEEDED,
    404: ErrorCode.MODEL_UNAVAILABLE,
    429: ErrorCode.RATE_LIMITED,
    400: ErrorCode.INVALID_PARAMS,
    408: ErrorCode.UPSTREAM_TIMEOUT,
    504: ErrorCode.UPSTREAM_TIMEOUT,
}


@dataclass(slots=True)
class ErrorInput:
    """Whatever is known about a failure; every field is optional."""

    status: int | None = None
    status_text: str | None = None
    message: str | None = None
    code: str | None = None
    type: str | None = None
    data: Any = None
    error_name: str | None = None


@dataclass(slots=True)
class ErrorInfo:
    """Failure facts extracted for structured logging."""

    status: int | None
    status_text: str | None
    body: Any
    message: str
    error_type: str


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    lower = text.lower()
    return any(keyword.lower() in lower for keyword in keywords)


def _stringify(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    try:
        return json.dumps(data, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(data)


def classify_error_code(error: ErrorInput) -> ErrorCode:
    """Return the error kind; ``UNKNOWN`` when nothing matches."""
    all_text = " ".join(
        part
        for part in (error.message, error.code, error.type, _stringify(error.data))
        if part
    )

    for code, keywords in _KEYWORD_RULES:
        if _contains_any(all_text, keywords):
            return code

    if _contains_any(all_text, _TIMEOUT_KEYWORDS) or error.error_name in _TIMEOUT_ERROR_NAMES:
        return ErrorCode.UPSTREAM_TIMEOUT

    if error.error_name in _NETWORK_ERROR_NAMES or _contains_any(all_text, _NETWORK_KEYWORDS):
        return ErrorCode.NETWORK_ERROR

    if error.status is not None and error.status in _STATUS_BUCKETS:
        return _STATUS_BUCKETS[error.status]

    return ErrorCode.UNKNOWN


def classify_error(error: ErrorInput) -> str:
    """Classify ``error`` and return the user-facing message.

    Unmatched failures keep their original message verbatim so that a
    meaningful vendor explanation is not replaced by a generic string.
    """
    code = classify_error_code(error)
    if code is ErrorCode.UNKNOWN:
        original = (error.message or "").strip()
        return original or ERROR_MESSAGES[ErrorCode.UNKNOWN]
    return ERROR_MESSAGES[code]


def error_message(code: ErrorCode) -> str:
    return ERROR_MESSAGES[code]


def _envelope_field(body: Any, field: str) -> str | None:
    if not isinstance(body, dict):
        return None
    envelope = body.get("error")
    if isinstance(envelope, dict):
        value = envelope.get(field)
        return str(value) if value is not None else None
    return None


def to_error_input(error: object) -> ErrorInput | None:
    """Extract classifier input from an arbitrary raised object."""
    if error is None:
        return None
    if isinstance(error, str):
        return ErrorInput(message=error)
    if isinstance(error, ProviderHttpError):
        return ErrorInput(
            status=error.status,
            message=error.message,
            code=_envelope_field(error.body, "code") or error.code,
            type=_envelope_field(error.body, "type") or error.error_type,
            data=error.body,
            error_name=type(error).__name__,
        )
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return ErrorInput(
            status=response.status_code,
            status_text=response.reason_phrase,
            message=str(error),
            code=_envelope_field(body, "code"),
            type=_envelope_field(body, "type"),
            data=body,
            error_name=type(error).__name__,
        )
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorInput(message=str(error) or None, error_name="TimeoutError")
    if isinstance(error, BaseException):
        status = getattr(error, "status", None)
        code = getattr(error, "code", None)
        return ErrorInput(
            status=status if isinstance(status, int) else None,
            message=str(error) or None,
            code=code if isinstance(code, str) else None,
            error_name=type(error).__name__,
        )
    return None


def classify_exception(error: object) -> str:
    """Classify any raised object; never raises."""
    try:
        error_input = to_error_input(error)
    except Exception:  # pragma: no cover - exotic __str__ implementations
        return ERROR_MESSAGES[ErrorCode.UNKNOWN]
    if error_input is None:
        return ERROR_MESSAGES[ErrorCode.UNKNOWN]
    return classify_error(error_input)


def extract_error_info(error: object) -> ErrorInfo:
    """Return loggable facts about ``error``."""
    if error is None:
        return ErrorInfo(None, None, None, "Unknown error", "Error")
    if isinstance(error, str):
        return ErrorInfo(None, None, None, error, "Error")
    error_input = to_error_input(error)
    if error_input is None:
        return ErrorInfo(None, None, None, str(error), "Error")
    return ErrorInfo(
        status=error_input.status,
        status_text=error_input.status_text,
        body=error_input.data,
        message=error_input.message or "Unknown error",
        error_type=error_input.error_name or "Error",
    )


def is_abort_error(error: object) -> bool:
    """Return ``True`` when ``error`` signals an intentional cancellation."""
    if isinstance(error, (RequestAborted, asyncio.CancelledError)):
        return True
    if not isinstance(error, BaseException):
        return False
    if type(error).__name__ == "AbortError":
        return True
    return "abort" in str(error).lower()
