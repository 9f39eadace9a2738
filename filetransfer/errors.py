"""
Error types for transfer operations.

Item-level errors (TransferError subclasses) end up on TransferItem.error and
never escape a batch run. ConfigurationError is the only error raised to the
caller, before any item is dispatched.
"""
from typing import Optional


class TransferError(Exception):
    """Base class for per-item transfer failures."""

    retryable = True

    def __init__(self, message: str = "Transfer error"):
        super().__init__(message)
        self.message = message


class TransferFailedError(TransferError):
    """Network failure, HTTP error status or unreadable response."""

    def __init__(
        self,
        message: str = "Transfer failed",
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class TransferCanceledError(TransferError):
    """Transfer stopped intentionally by the caller."""

    retryable = False

    def __init__(self, message: str = "Transfer canceled"):
        super().__init__(message)


class ResampleError(TransferError):
    """Image pre-processing failed; the file was never uploaded."""

    retryable = False


class ConfigurationError(ValueError):
    """Invalid configuration detected before any network call."""


class InvalidAdapterError(ConfigurationError):
    """Unknown storage adapter name."""

    def __init__(self, adapter: Optional[str]):
        super().__init__(f"Invalid adapter: {adapter}")
        self.adapter = adapter
