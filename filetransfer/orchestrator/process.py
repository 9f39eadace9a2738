from enum import Enum
from typing import Callable, Iterable, List, Optional
import asyncio
import logging

from ..batch import TransferBatch
from ..models import BatchSnapshot, TransferFile, TransferItem, TransferProgress
from .core import OrchestratorState, UploadOrchestrator

logger = logging.getLogger(__name__)


class ProcessState(Enum):
    """State of upload process."""
    PENDING = "pending"
    RUNNING = "running"
    ABORTED = "aborted"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadProcess:
    """
    Handle for one batch upload with event-based progress tracking.

    The result (wait) and the progress stream (on_* callbacks) share the
    same run: abort() stops both, append() grows the batch while it runs.

    Usage:
        process = client.upload_files(files, adapter_config)
        process.on_progress(lambda snapshot: print(f"{snapshot.percent:.0f}%"))
        process.on_item_complete(lambda item: print(f"Done: {item.filename}"))
        process.on_item_fail(lambda item: print(f"Failed: {item.filename}: {item.error}"))

        batch = await process.wait()  # wait() starts automatically if needed
    """

    def __init__(self, orchestrator: UploadOrchestrator):
        self._orchestrator = orchestrator
        self._events = orchestrator.events
        self._state = ProcessState.PENDING
        self._task: Optional[asyncio.Task] = None
        self._result: Optional[TransferBatch] = None
        self._error: Optional[Exception] = None

    # Event subscription methods
    def on_start(self, callback: Callable[[], None]):
        """Called when the upload process starts."""
        self._events.on("start", callback)

    def on_item_start(self, callback: Callable[[TransferItem], None]):
        """Called each time an item enters the started state (retries included)."""
        self._events.on("item_start", callback)

    def on_item_progress(self, callback: Callable[[TransferItem, TransferProgress], None]):
        """Called on every progress tick of the active item."""
        self._events.on("item_progress", callback)

    def on_item_complete(self, callback: Callable[[TransferItem], None]):
        """Called when an item completes. item.filename holds the stored name."""
        self._events.on("item_complete", callback)

    def on_item_fail(self, callback: Callable[[TransferItem], None]):
        """Called when an item reaches the error state after its retries."""
        self._events.on("item_fail", callback)

    def on_progress(self, callback: Callable[[BatchSnapshot], None]):
        """Called with a batch snapshot on every state change and progress tick."""
        self._events.on("progress", callback)

    def on_finish(self, callback: Callable[[TransferBatch], None]):
        """Called once every item is completed or failed."""
        self._events.on("finish", callback)

    def on_error(self, callback: Callable[[Exception], None]):
        """Called when the run itself crashes. Receives Exception."""
        self._events.on("error", callback)

    # Control methods
    async def start(self):
        """Start the upload process (non-blocking)."""
        if self._state != ProcessState.PENDING:
            raise RuntimeError(f"Cannot start process in state: {self._state}")

        self._state = ProcessState.RUNNING
        self._task = asyncio.create_task(self._run())
        await self._events.emit("start")

    def abort(self):
        """Cancel queued items and abort the transfer in flight. The run still resolves."""
        if self._state in (ProcessState.COMPLETED, ProcessState.FAILED):
            return
        logger.info("Abort requested")
        self._orchestrator.abort()

    def append(self, files: Iterable[TransferFile]) -> List[TransferItem]:
        """
        Add files to the running batch. They are uploaded after the current tail.

        After abort() the new items are canceled while still queued.
        """
        if self._orchestrator.state == OrchestratorState.DONE:
            raise RuntimeError("Cannot append to a finished batch")
        items = self._orchestrator.batch.append(files)
        if self._orchestrator.is_aborted:
            # Never dispatched; flagged while still queued
            self._orchestrator.batch.cancel()
        logger.debug(f"Appended {len(items)} file(s), batch length {len(self._orchestrator.batch)}")
        return items

    async def wait(self) -> TransferBatch:
        """Wait for the batch to finish and return it."""
        if self._state == ProcessState.PENDING:
            await self.start()

        if self._task:
            await self._task

        if self._error is not None:
            raise self._error
        return self._result

    # State properties
    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def batch(self) -> TransferBatch:
        return self._orchestrator.batch

    @property
    def snapshot(self) -> BatchSnapshot:
        return self._orchestrator.batch.snapshot()

    @property
    def result(self) -> Optional[TransferBatch]:
        """Final batch (None if not finished yet)."""
        return self._result

    @property
    def is_running(self) -> bool:
        return self._state == ProcessState.RUNNING

    @property
    def is_completed(self) -> bool:
        return self._state == ProcessState.COMPLETED

    @property
    def is_aborted(self) -> bool:
        return self._state == ProcessState.ABORTED

    async def _run(self):
        try:
            self._result = await self._orchestrator.run()
            if self._orchestrator.is_aborted:
                self._state = ProcessState.ABORTED
            else:
                self._state = ProcessState.COMPLETED
        except asyncio.CancelledError:
            self._state = ProcessState.ABORTED
            raise
        except Exception as e:
            self._state = ProcessState.FAILED
            self._error = e
            logger.error(f"Upload process failed: {e}", exc_info=True)
            await self._events.emit("error", e)
