"""Direct-token upload: one authenticated PUT per file."""
from typing import Optional
from urllib.parse import urlencode

import httpx

from ..errors import ConfigurationError
from ..models import DROPBOX_UPLOAD_API_ENDPOINT, AdapterConfig, TransferFile, TransferResponse
from ..protocols import ProgressCallback
from .base import DEFAULT_CHUNK_SIZE, HTTPTransferAdapter, parse_json, quote_path

UPLOAD_METHOD = "PUT"
UPLOAD_PARAMS = {"overwrite": "false", "autorename": "true"}


class DropboxAdapter(HTTPTransferAdapter):
    """
    Upload straight to the cloud storage content API with a bearer token.

    The server may rename the file on collision (autorename), so the
    stored path is read back from the response.
    """

    name = "dropbox"

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: AdapterConfig,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if not config.token:
            raise ConfigurationError("dropbox adapter requires an access token")
        super().__init__(client, config, chunk_size)
        self._endpoint = config.endpoint or DROPBOX_UPLOAD_API_ENDPOINT

    def upload_path(self, file: TransferFile) -> str:
        return self._config.path.rstrip("/") + file.path

    def build_url(self, file: TransferFile) -> str:
        return f"{self._endpoint}{quote_path(self.upload_path(file))}?{urlencode(UPLOAD_PARAMS)}"

    async def upload(
        self,
        file: TransferFile,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TransferResponse:
        headers = {"Authorization": f"Bearer {self._config.token}"}
        if file.content_type:
            headers["Content-Type"] = file.content_type

        response = await self._send_data(
            UPLOAD_METHOD,
            self.build_url(file),
            file.data,
            headers=headers,
            progress_callback=progress_callback,
        )

        payload = parse_json(response.content)
        if isinstance(payload, dict) and payload.get("path"):
            return TransferResponse(path=payload["path"], raw=payload)
        return TransferResponse(path=self.upload_path(file))
