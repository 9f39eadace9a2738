"""
Two-phase signed upload.

1. Ask the upload service for a slot: GET <request_upload_url>/<name>
   answers {"upload": {"method", "url", "headers"}, "location", "id"}.
2. Send the bytes using the slot's upload options.

Reported progress is a percentage: the slot request fills the first 25%,
the binary transfer the remaining 75%.
"""
from typing import Optional
from urllib.parse import quote
import logging

import httpx

from ..errors import ConfigurationError, TransferFailedError
from ..models import AdapterConfig, TransferFile, TransferProgress, TransferResponse
from ..protocols import ProgressCallback
from .base import DEFAULT_CHUNK_SIZE, HTTPTransferAdapter, notify, parse_json

logger = logging.getLogger(__name__)

SLOT_PROGRESS_RATIO = 0.25
UPLOAD_PROGRESS_RATIO = 1 - SLOT_PROGRESS_RATIO
DEFAULT_UPLOAD_METHOD = "PUT"


class SignedUploadAdapter(HTTPTransferAdapter):
    """Upload through a same-origin service that hands out signed upload URLs."""

    name = "local"

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: AdapterConfig,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if not config.request_upload_url:
            raise ConfigurationError("No upload URL specified")
        super().__init__(client, config, chunk_size)

    def slot_url(self, file: TransferFile) -> str:
        base = self._config.request_upload_url.rstrip("/")
        return f"{base}/{quote(file.name, safe='')}"

    async def upload(
        self,
        file: TransferFile,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TransferResponse:
        async def on_slot_progress(progress: TransferProgress):
            await notify(progress_callback, TransferProgress(100 * SLOT_PROGRESS_RATIO * progress.ratio, 100))

        async def on_upload_progress(progress: TransferProgress):
            percent = 100 * (SLOT_PROGRESS_RATIO + UPLOAD_PROGRESS_RATIO * progress.ratio)
            await notify(progress_callback, TransferProgress(percent, 100))

        slot = await self._fetch_json(
            self._config.request_upload_method or "GET",
            self.slot_url(file),
            progress_callback=on_slot_progress,
        )
        upload_options = slot.get("upload") if isinstance(slot, dict) else None
        if not isinstance(upload_options, dict) or not upload_options.get("url"):
            logger.warning(f"[signed] Invalid upload slot for {file.name}: {slot!r}")
            raise TransferFailedError(detail="Invalid upload slot response")

        location = slot.get("location")
        upload_id = slot.get("id")
        logger.debug(f"[signed] Slot {upload_id} for {file.name} -> {location}")

        headers = dict(upload_options.get("headers") or {})
        if file.content_type and "Content-Type" not in headers:
            headers["Content-Type"] = file.content_type

        response = await self._send_data(
            upload_options.get("method") or DEFAULT_UPLOAD_METHOD,
            upload_options["url"],
            file.data,
            headers=headers,
            progress_callback=on_upload_progress,
        )

        payload = parse_json(response.content)
        if isinstance(payload, dict) and payload.get("path"):
            return TransferResponse(path=payload["path"], location=location, upload_id=upload_id, raw=payload)
        if location:
            return TransferResponse.from_location(location, upload_id=upload_id, raw=slot)
        return TransferResponse(path=self._config.path.rstrip("/") + file.path, upload_id=upload_id, raw=slot)
