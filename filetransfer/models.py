"""
Models for filetransfer module.

Configuration and result types are immutable dataclasses. TransferItem is the
one mutable record: it tracks a single file through a batch run.
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Mapping
from urllib.parse import unquote, urlparse
import posixpath

from .errors import TransferError


class TransferState(Enum):
    """Lifecycle state of a transfer item."""
    PENDING = "pending"
    STARTED = "started"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class TransferFile:
    """File descriptor: destination path plus the bytes to send."""
    path: str
    data: bytes
    size: Optional[int] = None
    content_type: Optional[str] = None

    def __post_init__(self):
        if not self.path.startswith("/"):
            object.__setattr__(self, "path", f"/{self.path}")
        if self.size is None:
            object.__setattr__(self, "size", len(self.data))

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)

    @classmethod
    def from_path(cls, local_path: Path, dest_path: Optional[str] = None, content_type: Optional[str] = None):
        """Read a local file. dest_path defaults to /<filename>."""
        local_path = Path(local_path)
        data = local_path.read_bytes()
        return cls(
            path=dest_path or f"/{local_path.name}",
            data=data,
            size=len(data),
            content_type=content_type,
        )


@dataclass(frozen=True)
class TransferProgress:
    """Progress tick reported by an adapter (bytes or percent out of 100)."""
    loaded: float
    total: float

    @property
    def ratio(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(max(self.loaded / self.total, 0.0), 1.0)

    @property
    def percent(self) -> float:
        return 100.0 * self.ratio


@dataclass(frozen=True)
class TransferResponse:
    """Server completion response for one file."""
    path: str
    location: Optional[str] = None
    upload_id: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None

    @property
    def filename(self) -> str:
        return self.path.rstrip("/").split("/")[-1]

    @classmethod
    def from_location(cls, location: str, upload_id: Optional[str] = None, raw: Optional[Dict[str, Any]] = None):
        """Build a response whose path is the URL path of the final location."""
        return cls(path=unquote(urlparse(location).path), location=location, upload_id=upload_id, raw=raw)


@dataclass(eq=False)
class TransferItem:
    """
    One file's transfer record within a batch.

    Transitions: pending -> started -> completed | error. A retry re-enters
    started; a canceled queued item goes straight from pending to error.
    """
    file: TransferFile
    filename: str = ""
    bytes_loaded: int = 0
    bytes_total: int = 0
    state: TransferState = TransferState.PENDING
    error: Optional[TransferError] = None
    attempts: int = 0

    def __post_init__(self):
        if not self.filename:
            self.filename = self.file.name
        if not self.bytes_total:
            self.bytes_total = self.file.size

    @property
    def started(self) -> bool:
        return self.state in (TransferState.STARTED, TransferState.COMPLETED)

    @property
    def completed(self) -> bool:
        return self.state == TransferState.COMPLETED

    @property
    def failed(self) -> bool:
        return self.state == TransferState.ERROR

    @property
    def is_terminal(self) -> bool:
        return self.state in (TransferState.COMPLETED, TransferState.ERROR)

    def start(self) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Cannot start item in state: {self.state}")
        self.state = TransferState.STARTED
        self.bytes_loaded = 0
        self.attempts += 1

    def update_progress(self, progress: TransferProgress) -> None:
        if self.state != TransferState.STARTED:
            return
        self.bytes_loaded = int(round(self.bytes_total * progress.ratio))

    def complete(self, response: TransferResponse) -> None:
        if self.state != TransferState.STARTED:
            raise RuntimeError(f"Cannot complete item in state: {self.state}")
        self.bytes_loaded = self.bytes_total
        self.filename = response.filename or self.filename
        self.state = TransferState.COMPLETED

    def fail(self, error: TransferError) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Cannot fail item in state: {self.state}")
        self.error = error
        self.state = TransferState.ERROR


@dataclass(frozen=True)
class BatchSnapshot:
    """
    Point-in-time aggregate view of a batch.

    The counters are fixed when the snapshot is taken. current_item is the
    live TransferItem, so its state and bytes_loaded keep moving after
    emission; copy them out if a frozen view of the item is needed.
    """
    length: int
    num_loaded: int
    num_failed: int
    bytes_loaded: int
    bytes_total: int
    current_item: Optional[TransferItem] = None

    @property
    def percent(self) -> float:
        if self.bytes_total <= 0:
            return 100.0 if self.is_finished else 0.0
        return 100.0 * self.bytes_loaded / self.bytes_total

    @property
    def is_finished(self) -> bool:
        return self.num_loaded + self.num_failed == self.length


DROPBOX_UPLOAD_API_ENDPOINT = "https://content.dropboxapi.com/1/files_put/auto"


@dataclass(frozen=True)
class AdapterConfig:
    """Which storage backend to use and how to reach it."""
    adapter: str
    path: str = ""
    token: Optional[str] = None
    request_upload_url: Optional[str] = None
    request_upload_method: str = "GET"
    endpoint: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AdapterConfig":
        """Accept both snake_case and the camelCase keys used by web clients."""
        def pick(*keys, default=None):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return default

        return cls(
            adapter=pick("adapter", default=""),
            path=pick("path", default=""),
            token=pick("token"),
            request_upload_url=pick("request_upload_url", "requestUploadUrl"),
            request_upload_method=pick("request_upload_method", "requestUploadMethod", default="GET"),
            endpoint=pick("endpoint"),
        )


@dataclass(frozen=True)
class ImageOptions:
    """Resample settings applied to images before upload."""
    format: str = "JPEG"
    quality: int = 85
    max_width: Optional[int] = None
    max_height: Optional[int] = None


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for batch uploads."""
    retries: int = 0
    retry_delay: float = 0.0  # seconds, multiplied by the attempt number
    timeout: float = 60.0
    chunk_size: int = 64 * 1024
    image: Optional[ImageOptions] = None
