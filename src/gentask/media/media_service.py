"""Durable storage for generated resources and uploaded inputs."""

from __future__ import annotations

import base64
import hashlib
import logging
import mimetypes
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx

from ..config import StoragePaths
from ..utils.abort_signal import AbortSignal

logger = logging.getLogger(__name__)

LOCATOR_PREFIX = "/api/files/"

_EXT_BY_MIME = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "application/pdf": "pdf",
    "application/json": "json",
    "text/plain": "txt",
}
_URL_EXT_RE = re.compile(r"^[a-z0-9]{2,5}$")
_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def locator(filename: str) -> str:
    return f"{LOCATOR_PREFIX}{filename}"


def is_local_locator(value: str | None) -> bool:
    return bool(value) and value.startswith(LOCATOR_PREFIX)


def filename_from_locator(value: str) -> str | None:
    if not is_local_locator(value):
        return None
    name = value[len(LOCATOR_PREFIX):].split("?", 1)[0]
    return name or None


def extension_for_mime(mime_type: str | None) -> str:
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    return _EXT_BY_MIME.get(mime, "bin")


def mime_for_filename(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    for mime, known in _EXT_BY_MIME.items():
        if known == ext:
            return mime
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


@dataclass(slots=True)
class ResourceStore:
    """Save bytes under ``uploads/`` and hand out ``/api/files/<name>`` locators."""

    paths: StoragePaths
    download_timeout_seconds: float = 60.0
    log: logging.Logger = field(default_factory=lambda: logger)

    @property
    def root(self) -> Path:
        return self.paths.uploads

    def generate_filename(self, data: bytes, ext: str) -> str:
        digest = hashlib.md5(data).hexdigest()[:16]
        timestamp = _base36(int(time.time() * 1000))
        return f"{timestamp}-{digest}.{ext.lstrip('.') or 'bin'}"

    def path_for(self, filename: str) -> Path | None:
        if not _SAFE_NAME_RE.match(filename) or filename.startswith("."):
            return None
        return self.root / filename

    def save(self, data: bytes, ext: str) -> str:
        """Write ``data`` and return the generated filename."""
        self.root.mkdir(parents=True, exist_ok=True)
        filename = self.generate_filename(data, ext)
        (self.root / filename).write_bytes(data)
        return filename

    def save_base64(self, payload: str, mime_type: str | None) -> str:
        return self.save(base64.b64decode(payload), extension_for_mime(mime_type))

    async def download(self, url: str, *, signal: AbortSignal | None = None) -> str | None:
        """Fetch ``url`` into the store; ``None`` when the download fails."""
        try:
            async with httpx.AsyncClient(timeout=self.download_timeout_seconds) as client:
                call = client.get(url, follow_redirects=True)
                response = await (signal.guard(call) if signal is not None else call)
        except httpx.HTTPError as exc:
            self.log.warning("media.download.failed", extra={"url": url, "error": str(exc)})
            return None

        if response.status_code != 200:
            self.log.warning(
                "media.download.bad_status",
                extra={"url": url, "status_code": response.status_code},
            )
            return None

        ext = extension_for_mime(response.headers.get("content-type"))
        if ext == "bin":
            path = urlparse(url).path
            url_ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
            if _URL_EXT_RE.match(url_ext):
                ext = url_ext

        filename = self.save(response.content, ext)
        self.log.info("media.download.saved", extra={"url": url, "stored_as": filename})
        return filename

    def read(self, filename: str) -> bytes | None:
        path = self.path_for(filename)
        if path is None or not path.is_file():
            return None
        return path.read_bytes()

    def read_as_base64(self, filename: str) -> str | None:
        """Return a ``data:`` URL for a stored file, ``None`` when missing."""
        data = self.read(filename)
        if data is None:
            return None
        encoded = base64.b64encode(data).decode("ascii")
        return f"data:{mime_for_filename(filename)};base64,{encoded}"
