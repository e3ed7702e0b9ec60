"""Turn a vendor result (remote URL or inline base64) into a local locator."""

from __future__ import annotations

import binascii
import logging
from dataclasses import dataclass, field

from ..exceptions import ProviderTimeoutError, ResourceSaveError
from ..providers.providers_base import parse_data_url
from ..utils.abort_signal import AbortSignal
from .media_service import ResourceStore, is_local_locator, locator

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/png"


@dataclass(slots=True)
class ResourceMaterializer:
    store: ResourceStore
    log: logging.Logger = field(default_factory=lambda: logger)

    async def materialize(
        self,
        *,
        resource_url: str | None = None,
        image_base64: str | None = None,
        mime_type: str | None = None,
        signal: AbortSignal | None = None,
    ) -> str:
        """Persist the resource and return its ``/api/files/...`` locator.

        Already-local locators are returned unchanged so repeated polls never
        download twice.  Any storage failure raises ``ResourceSaveError``.
        """
        if resource_url and is_local_locator(resource_url):
            return resource_url

        if image_base64:
            return locator(self._save_inline(image_base64, mime_type))

        if resource_url:
            parsed = parse_data_url(resource_url)
            if parsed is not None:
                return locator(self._save_inline(parsed[1], parsed[0]))
            try:
                filename = await self.store.download(resource_url, signal=signal)
            except ProviderTimeoutError as exc:
                raise ResourceSaveError(f"download timed out: {resource_url}") from exc
            except OSError as exc:
                raise ResourceSaveError(f"cannot write downloaded resource: {exc}") from exc
            if filename is None:
                raise ResourceSaveError(f"download failed: {resource_url}")
            return locator(filename)

        raise ResourceSaveError("vendor result carries neither a URL nor inline data")

    def _save_inline(self, payload: str, mime_type: str | None) -> str:
        parsed = parse_data_url(payload)
        if parsed is not None:
            mime_type, payload = parsed
        try:
            return self.store.save_base64(payload, mime_type or DEFAULT_MIME_TYPE)
        except (binascii.Error, ValueError) as exc:
            raise ResourceSaveError("inline payload is not valid base64") from exc
        except OSError as exc:
            self.log.error("media.save.failed", extra={"error": str(exc)})
            raise ResourceSaveError(f"cannot write resource: {exc}") from exc
