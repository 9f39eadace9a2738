"""HTTP transport shared by the storage adapters."""
from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional
from urllib.parse import quote

import httpx

from ..errors import TransferFailedError
from ..models import AdapterConfig, TransferFile, TransferProgress, TransferResponse
from ..protocols import ProgressCallback

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

# Characters encodeURIComponent leaves alone on top of quote()'s defaults
_SEGMENT_SAFE = "!*'()"


async def notify(callback: Optional[ProgressCallback], progress: TransferProgress) -> None:
    """Invoke a sync or async progress callback."""
    if callback is None:
        return
    result = callback(progress)
    if inspect.isawaitable(result):
        await result


def quote_path(path: str) -> str:
    """Percent-encode each segment of a path, keeping the / separators."""
    return "/".join(quote(segment, safe=_SEGMENT_SAFE) for segment in path.split("/"))


def parse_json(content: bytes) -> Optional[Any]:
    """Parse a response body; empty or malformed bodies yield None."""
    if not content:
        return None
    try:
        return json.loads(content)
    except ValueError:
        return None


class HTTPTransferAdapter(ABC):
    """
    Base class for adapters that move file bytes over HTTP.

    Uploads stream the body in chunks so progress can be reported as the
    transport consumes it. Transport errors and error statuses surface as
    TransferFailedError; task cancellation is left to propagate so the
    caller can tell an abort from a failure.
    """

    name = "http"

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: AdapterConfig,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._client = client
        self._config = config
        self._chunk_size = max(chunk_size, 1)

    @abstractmethod
    async def upload(
        self,
        file: TransferFile,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TransferResponse:
        ...

    async def _send_data(
        self,
        method: str,
        url: str,
        data: bytes,
        headers: Optional[Dict[str, str]] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> httpx.Response:
        """Send data as the request body, reporting bytes sent."""
        total = len(data)
        chunk_size = self._chunk_size

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, chunk_size):
                chunk = data[offset:offset + chunk_size]
                yield chunk
                sent += len(chunk)
                await notify(progress_callback, TransferProgress(sent, total))

        request_headers = {"Content-Length": str(total)}
        request_headers.update(headers or {})

        logger.debug(f"[http] {method} {url} ({total} bytes)")
        try:
            response = await self._client.request(method, url, content=body(), headers=request_headers)
        except httpx.HTTPError as exc:
            logger.warning(f"[http] {method} {url} failed: {exc}")
            raise TransferFailedError(detail=str(exc)) from exc

        self._raise_for_status(response, method, url)
        return response

    async def _fetch_json(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Optional[Any]:
        """Download a JSON document, reporting bytes received when the length is known."""
        logger.debug(f"[http] {method} {url}")
        chunks = []
        try:
            async with self._client.stream(method, url, headers=headers) as response:
                if response.status_code >= 400:
                    await response.aread()
                    self._raise_for_status(response, method, url)

                total = int(response.headers.get("Content-Length") or 0)
                received = 0
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    received += len(chunk)
                    if total:
                        await notify(progress_callback, TransferProgress(min(received, total), total))
        except httpx.HTTPError as exc:
            logger.warning(f"[http] {method} {url} failed: {exc}")
            raise TransferFailedError(detail=str(exc)) from exc

        return parse_json(b"".join(chunks))

    @staticmethod
    def _raise_for_status(response: httpx.Response, method: str, url: str) -> None:
        if response.status_code < 400:
            return
        try:
            detail = response.text[:500]
        except Exception:
            detail = None
        logger.warning(f"[http] {method} {url} returned {response.status_code}")
        raise TransferFailedError(status_code=response.status_code, detail=detail)
