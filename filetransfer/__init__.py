"""
filetransfer - Sequential batch uploads to cloud or signed-upload storage.

One file in flight per batch, per-item retries, mid-flight abort and a
batch that can grow while it is being processed.

Usage:
    from filetransfer import TransferClient, TransferFile, UploadConfig

    files = [TransferFile("/docs/a.txt", b"hello")]

    async with TransferClient(UploadConfig(retries=1)) as client:
        process = client.upload_files(
            files,
            {"adapter": "local", "path": "/site", "requestUploadUrl": "https://example.com/uploads"},
        )
        process.on_progress(lambda s: print(f"{s.num_loaded}/{s.length} {s.percent:.0f}%"))

        # Side channels while running
        process.append([TransferFile("/docs/b.txt", b"world")])
        # process.abort()

        batch = await process.wait()
        print(batch.num_loaded, batch.num_failed)
"""
from .batch import TransferBatch
from .client import TransferClient
from .errors import (
    ConfigurationError,
    InvalidAdapterError,
    ResampleError,
    TransferCanceledError,
    TransferError,
    TransferFailedError,
)
from .models import (
    AdapterConfig,
    BatchSnapshot,
    ImageOptions,
    TransferFile,
    TransferItem,
    TransferProgress,
    TransferResponse,
    TransferState,
    UploadConfig,
)
from .orchestrator import UploadOrchestrator, UploadProcess

__version__ = "0.1.0"
__all__ = [
    # Main
    "TransferClient",
    "UploadOrchestrator",
    "UploadProcess",
    "TransferBatch",
    # Models
    "AdapterConfig",
    "BatchSnapshot",
    "ImageOptions",
    "TransferFile",
    "TransferItem",
    "TransferProgress",
    "TransferResponse",
    "TransferState",
    "UploadConfig",
    # Errors
    "ConfigurationError",
    "InvalidAdapterError",
    "ResampleError",
    "TransferCanceledError",
    "TransferError",
    "TransferFailedError",
]
