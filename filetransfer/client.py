"""Transfer client - entry point that wires adapters, orchestrator and process."""
from typing import Any, Iterable, Mapping, Optional, Union
import logging

import httpx

from .adapters import ResamplingAdapter, create_adapter
from .batch import TransferBatch
from .models import AdapterConfig, TransferFile, UploadConfig
from .orchestrator import UploadOrchestrator, UploadProcess
from .protocols import IImageResampler, IStorageAdapter
from .services.resample import ImageResampleService

logger = logging.getLogger(__name__)


class TransferClient:
    """
    Uploads batches of files using one shared HTTP connection pool.

    Usage:
        async with TransferClient(UploadConfig(retries=2)) as client:
            process = client.upload_files(files, {"adapter": "dropbox", "path": "/Site", "token": token})
            process.on_progress(render)
            batch = await process.wait()
            if batch.num_failed:
                ...
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        resampler: Optional[IImageResampler] = None,
    ):
        """
        Args:
            config: Upload configuration
            http_client: Pre-built client (tests, custom transports); not closed on exit
            resampler: Image resampler used when config.image is set
        """
        self._config = config or UploadConfig()
        self._external_client = http_client
        self._client: Optional[httpx.AsyncClient] = http_client
        self._resampler = resampler or ImageResampleService()

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout)
        return self

    async def __aexit__(self, *args):
        if self._client is not None and self._external_client is None:
            await self._client.aclose()
            self._client = None

    @property
    def config(self) -> UploadConfig:
        return self._config

    def build_adapter(self, adapter_config: Union[AdapterConfig, Mapping[str, Any]]) -> IStorageAdapter:
        """
        Build the adapter for a configuration.

        Raises:
            InvalidAdapterError: unknown adapter name
            ConfigurationError: incomplete adapter settings
        """
        if self._client is None:
            raise RuntimeError("TransferClient not initialized. Use 'async with' context.")
        if not isinstance(adapter_config, AdapterConfig):
            adapter_config = AdapterConfig.from_dict(adapter_config)

        adapter: IStorageAdapter = create_adapter(adapter_config, self._client, chunk_size=self._config.chunk_size)
        if self._config.image is not None:
            adapter = ResamplingAdapter(adapter, self._resampler, self._config.image)
        return adapter

    def upload_files(
        self,
        files: Iterable[TransferFile],
        adapter_config: Union[AdapterConfig, Mapping[str, Any]],
        retries: Optional[int] = None,
    ) -> UploadProcess:
        """
        Prepare a batch upload. Configuration errors are raised here, before
        any file is sent; everything after that is reported per item.

        Returns an UploadProcess; call wait() (or start()) to run it.
        """
        adapter = self.build_adapter(adapter_config)
        batch = TransferBatch(files)
        orchestrator = UploadOrchestrator(
            batch,
            adapter,
            retries=self._config.retries if retries is None else retries,
            retry_delay=self._config.retry_delay,
        )
        logger.debug(f"Prepared batch of {len(batch)} file(s) for {adapter.name}")
        return UploadProcess(orchestrator)
