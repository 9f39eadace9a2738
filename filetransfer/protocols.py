"""
Protocols (Interfaces) for Dependency Inversion.

Small interfaces so the orchestrator can be driven by any adapter,
including test doubles.
"""
from typing import Awaitable, Callable, Optional, Protocol, Union, runtime_checkable

from .models import ImageOptions, TransferFile, TransferProgress, TransferResponse

ProgressCallback = Callable[[TransferProgress], Union[None, Awaitable[None]]]


@runtime_checkable
class IStorageAdapter(Protocol):
    """Interface for uploading one file to a storage backend."""

    name: str

    async def upload(
        self,
        file: TransferFile,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TransferResponse:
        """
        Upload file and return the server completion response.

        Raises TransferError subclasses on failure. Cancellation of the
        calling task aborts the request in flight.
        """
        ...


@runtime_checkable
class IImageResampler(Protocol):
    """Interface for image pre-processing."""

    def is_image(self, file: TransferFile) -> bool:
        ...

    async def resample(self, file: TransferFile, options: ImageOptions) -> TransferFile:
        """Return a re-encoded copy of file."""
        ...
