"""Per-task JSONL capture of vendor requests and responses.

Every write is best effort: a failing logger must never break the vendor
call it observes, so I/O and serialisation errors are logged at debug
level and dropped.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")
_BARE_BASE64_MIN_LENGTH = 100
_PREVIEW_EDGE = 20


def _byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


def mask_authorization(value: str) -> str:
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


def sanitize_headers(headers: dict[str, str] | None) -> dict[str, str]:
    result: dict[str, str] = {}
    for key, value in (headers or {}).items():
        if key.lower() in {"authorization", "x-goog-api-key"}:
            result[key] = mask_authorization(str(value))
        else:
            result[key] = value
    return result


def content_preview(content: str) -> str:
    size = _byte_size(content)
    if len(content) <= _PREVIEW_EDGE * 2:
        return f"{content} ({size} bytes)"
    return f"{content[:_PREVIEW_EDGE]}...{content[-_PREVIEW_EDGE:]} ({size} bytes)"


def _summarize_messages(messages: list[Any]) -> dict[str, Any]:
    def _entry(message: Any) -> dict[str, Any]:
        if not isinstance(message, dict):
            return {"role": None, "content": content_preview(str(message))}
        content = message.get("content")
        text = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False, default=str)
        return {"role": message.get("role"), "content": content_preview(text)}

    size = _byte_size(json.dumps(messages, ensure_ascii=False, default=str))
    return {
        "_truncated": True,
        "_summary": f"[{len(messages)} messages, {size} bytes]",
        "_first": [_entry(message) for message in messages[:2]],
        "_last": _entry(messages[-1]),
    }


def _sanitize_string(value: str) -> str:
    if value.startswith("data:"):
        return f"[base64 {_byte_size(value)} bytes]"
    if len(value) > _BARE_BASE64_MIN_LENGTH and _BASE64_RE.match(value):
        return f"[base64 {_byte_size(value)} bytes]"
    return value


def sanitize_body(body: Any) -> Any:
    """Replace inline image payloads and summarise chat transcripts."""
    if isinstance(body, dict):
        result: dict[str, Any] = {}
        for key, value in body.items():
            if key == "messages" and isinstance(value, list) and value:
                result[key] = _summarize_messages(value)
            else:
                result[key] = sanitize_body(value)
        return result
    if isinstance(body, list):
        return [sanitize_body(item) for item in body]
    if isinstance(body, str):
        return _sanitize_string(body)
    if isinstance(body, bytes):
        return f"[binary {len(body)} bytes]"
    return body


@dataclass(slots=True)
class TaskHttpLogger:
    """Append sanitised request/response entries to ``<root>/task/<id>.jsonl``."""

    root: Path
    log: logging.Logger = field(default_factory=lambda: logger)

    def path_for(self, task_id: int) -> Path:
        return self.root / "task" / f"{task_id}.jsonl"

    def log_request(
        self,
        task_id: int,
        *,
        url: str,
        method: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> None:
        self._safe_append(
            task_id,
            lambda: {
                "timestamp": _now_iso(),
                "event": "request",
                "url": url,
                "method": method,
                "headers": sanitize_headers(headers),
                "body": sanitize_body(body) if body is not None else None,
            },
        )

    def log_response(
        self,
        task_id: int,
        *,
        status: int | None,
        duration_ms: int,
        status_text: str | None = None,
        body: Any = None,
        error: str | None = None,
        error_type: str | None = None,
    ) -> None:
        def _entry() -> dict[str, Any]:
            entry: dict[str, Any] = {
                "timestamp": _now_iso(),
                "event": "response",
                "status": status,
                "durationMs": duration_ms,
            }
            if status is not None:
                entry["statusText"] = status_text
                entry["body"] = sanitize_body(body)
            else:
                entry["error"] = error
                entry["errorType"] = error_type
            return entry

        self._safe_append(task_id, _entry)

    def read_task_logs(self, task_id: int) -> list[dict[str, Any]]:
        """Return parsed entries for ``task_id``; malformed lines are skipped."""
        path = self.path_for(task_id)
        if not path.exists():
            return []
        entries: list[dict[str, Any]] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                entries.append(json.loads(line))
            except ValueError:
                continue
        return entries

    def _safe_append(self, task_id: int, build) -> None:
        try:
            entry = build()
            path = self.path_for(task_id)
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
        except Exception as exc:  # noqa: BLE001 - logging must never break the caller
            self.log.debug(
                "http_logger.write_failed",
                extra={"task_id": task_id, "error": str(exc)},
            )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
