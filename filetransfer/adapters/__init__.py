"""Storage adapters and the factory that selects one from configuration."""
from typing import Dict, Type

import httpx

from ..errors import InvalidAdapterError
from ..models import AdapterConfig
from .base import DEFAULT_CHUNK_SIZE, HTTPTransferAdapter, quote_path
from .dropbox import DropboxAdapter
from .resampling import ResamplingAdapter
from .signed import SignedUploadAdapter

ADAPTERS: Dict[str, Type[HTTPTransferAdapter]] = {
    DropboxAdapter.name: DropboxAdapter,
    SignedUploadAdapter.name: SignedUploadAdapter,
}


def create_adapter(
    config: AdapterConfig,
    client: httpx.AsyncClient,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> HTTPTransferAdapter:
    """
    Build the adapter named by config.adapter.

    Raises:
        InvalidAdapterError: unknown adapter name (no network call made)
        ConfigurationError: adapter settings incomplete
    """
    adapter_cls = ADAPTERS.get(config.adapter)
    if adapter_cls is None:
        raise InvalidAdapterError(config.adapter)
    return adapter_cls(client, config, chunk_size=chunk_size)


__all__ = [
    "ADAPTERS",
    "create_adapter",
    "quote_path",
    "HTTPTransferAdapter",
    "DropboxAdapter",
    "SignedUploadAdapter",
    "ResamplingAdapter",
]
