"""Core orchestrator - drives one batch through a storage adapter."""
from enum import Enum
from typing import Optional
import asyncio
import logging

from ..batch import TransferBatch
from ..errors import TransferCanceledError, TransferError, TransferFailedError
from ..models import TransferItem, TransferProgress, TransferResponse
from ..protocols import IStorageAdapter
from ..utils.events import EventEmitter

logger = logging.getLogger(__name__)


class OrchestratorState(Enum):
    """State of a batch run."""
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"


class UploadOrchestrator:
    """
    Upload the items of a batch one at a time, in index order.

    A failed item is retried up to `retries` times (same item object) and
    then left in the error state; the run always carries on to the next
    item and returns the batch once the cursor reaches the tail. Items
    appended while running are picked up when the cursor reaches them.

    Events emitted on the given EventEmitter:
        item_start(item), item_progress(item, progress), item_complete(item),
        item_fail(item), progress(snapshot), finish(batch)

    Usage:
        orchestrator = UploadOrchestrator(batch, adapter, retries=2)
        orchestrator.events.on("progress", print)
        batch = await orchestrator.run()
    """

    def __init__(
        self,
        batch: TransferBatch,
        adapter: IStorageAdapter,
        events: Optional[EventEmitter] = None,
        retries: int = 0,
        retry_delay: float = 0.0,
    ):
        if retries < 0:
            raise ValueError(f"retries must be >= 0, got {retries}")
        self._batch = batch
        self._adapter = adapter
        self._events = events or EventEmitter()
        self._retries = retries
        self._retry_delay = retry_delay
        self._state = OrchestratorState.IDLE
        self._cursor = -1
        self._abort_event = asyncio.Event()
        # Task of the transfer in flight; replaced per attempt, cleared on settle
        self._active_request: Optional[asyncio.Task] = None

    @property
    def batch(self) -> TransferBatch:
        return self._batch

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def cursor(self) -> int:
        """Index of the item being processed (-1 before the first)."""
        return self._cursor

    @property
    def is_aborted(self) -> bool:
        return self._abort_event.is_set()

    @property
    def active_request(self) -> Optional[asyncio.Task]:
        return self._active_request

    def abort(self) -> None:
        """Cancel queued items and abort the transfer in flight."""
        if self._state == OrchestratorState.DONE:
            return
        self._abort_event.set()
        self._batch.cancel()
        if self._active_request is not None and not self._active_request.done():
            logger.info("Aborting active transfer")
            self._active_request.cancel()

    async def run(self) -> TransferBatch:
        if self._state != OrchestratorState.IDLE:
            raise RuntimeError(f"Cannot run orchestrator in state: {self._state}")

        self._state = OrchestratorState.PROCESSING
        logger.info(f"Uploading {len(self._batch)} file(s) via {self._adapter.name}")
        try:
            while self._cursor < len(self._batch) - 1:
                self._cursor += 1
                await self._process_item(self._batch.get_item_at(self._cursor))
        finally:
            self._active_request = None
            self._state = OrchestratorState.DONE

        logger.info(
            f"Batch finished: {self._batch.num_loaded} uploaded, "
            f"{self._batch.num_failed} failed of {len(self._batch)}"
        )
        await self._events.emit("finish", self._batch)
        return self._batch

    async def _process_item(self, item: TransferItem) -> None:
        if item.is_terminal:
            # Canceled while queued
            await self._emit_progress()
            return

        retries_left = self._retries
        while True:
            item.start()
            logger.info(f"Uploading {item.file.path} (attempt {item.attempts})")
            await self._events.emit("item_start", item)
            await self._emit_progress()

            try:
                response = await self._transfer(item)
            except TransferError as error:
                logger.warning(f"Upload of {item.file.path} failed on attempt {item.attempts}: {error}")
                if self.is_aborted or not error.retryable or retries_left <= 0:
                    await self._fail_item(item, error)
                    return

                retries_left -= 1
                await self._wait_before_retry(item.attempts)
                if self.is_aborted:
                    await self._fail_item(item, TransferCanceledError())
                    return
                continue

            item.complete(response)
            logger.info(f"Uploaded {item.file.path} as {item.filename}")
            await self._events.emit("item_complete", item)
            await self._emit_progress()
            return

    async def _transfer(self, item: TransferItem) -> TransferResponse:
        """Run one adapter upload as the active request."""
        if self.is_aborted:
            raise TransferCanceledError()

        async def on_progress(progress: TransferProgress):
            item.update_progress(progress)
            await self._events.emit("item_progress", item, progress)
            await self._emit_progress()

        self._active_request = asyncio.create_task(self._adapter.upload(item.file, on_progress))
        try:
            return await self._active_request
        except asyncio.CancelledError:
            if not self.is_aborted:
                raise
            raise TransferCanceledError() from None
        except TransferError:
            raise
        except Exception as exc:
            logger.exception(f"Unexpected error uploading {item.file.path}")
            raise TransferFailedError(detail=str(exc)) from exc
        finally:
            self._active_request = None

    async def _wait_before_retry(self, attempt: int) -> None:
        delay = self._retry_delay * attempt
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._abort_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _fail_item(self, item: TransferItem, error: TransferError) -> None:
        item.fail(error)
        if isinstance(error, TransferCanceledError):
            logger.info(f"Upload of {item.file.path} canceled")
        else:
            logger.error(f"Upload of {item.file.path} failed: {error}")
        await self._events.emit("item_fail", item)
        await self._emit_progress()

    async def _emit_progress(self) -> None:
        snapshot = self._batch.snapshot()
        logger.debug(
            f"Progress: {snapshot.num_loaded}/{snapshot.length} files, "
            f"{snapshot.bytes_loaded}/{snapshot.bytes_total} bytes"
        )
        await self._events.emit("progress", snapshot)
