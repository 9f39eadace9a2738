"""Ordered, append-only queue of transfer items with derived statistics."""
from typing import Iterable, Iterator, List, Optional

from .errors import TransferCanceledError
from .models import BatchSnapshot, TransferFile, TransferItem, TransferState


class TransferBatch:
    """
    Files submitted together for transfer.

    Insertion order is processing order. Items are only ever appended;
    every aggregate is computed from the current item states on each call.
    """

    def __init__(self, files: Iterable[TransferFile] = ()):
        self._items: List[TransferItem] = [TransferItem(file) for file in files]

    def append(self, files: Iterable[TransferFile]) -> List[TransferItem]:
        """Add files to the tail as pending items. Safe during processing."""
        items = [TransferItem(file) for file in files]
        self._items.extend(items)
        return items

    def cancel(self) -> None:
        """Flag every queued item as canceled. In-flight items are left alone."""
        for item in self._items:
            if item.state != TransferState.PENDING:
                continue
            item.fail(TransferCanceledError())

    def get_item_at(self, index: int) -> TransferItem:
        if not 0 <= index < len(self._items):
            raise IndexError(f"Batch index out of range: {index} (length {len(self._items)})")
        return self._items[index]

    def snapshot(self) -> BatchSnapshot:
        return BatchSnapshot(
            length=self.length,
            num_loaded=self.num_loaded,
            num_failed=self.num_failed,
            bytes_loaded=self.bytes_loaded,
            bytes_total=self.bytes_total,
            current_item=self.current_item,
        )

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[TransferItem]:
        return iter(list(self._items))

    def __repr__(self) -> str:
        return (
            f"TransferBatch(length={self.length}, loaded={self.num_loaded}, "
            f"failed={self.num_failed})"
        )

    @property
    def items(self) -> List[TransferItem]:
        return list(self._items)

    @property
    def length(self) -> int:
        return len(self._items)

    @property
    def num_loaded(self) -> int:
        return sum(1 for item in self._items if item.completed)

    @property
    def num_failed(self) -> int:
        return sum(1 for item in self._items if item.failed)

    @property
    def bytes_loaded(self) -> int:
        return sum(item.bytes_loaded for item in self._items if not item.failed)

    @property
    def bytes_total(self) -> int:
        return sum(item.bytes_total for item in self._items if not item.failed)

    @property
    def current_item(self) -> Optional[TransferItem]:
        for item in self._items:
            if item.state == TransferState.STARTED:
                return item
        return None

    @property
    def pending_items(self) -> List[TransferItem]:
        return [item for item in self._items if item.state == TransferState.PENDING]

    @property
    def completed_items(self) -> List[TransferItem]:
        return [item for item in self._items if item.completed]

    @property
    def failed_items(self) -> List[TransferItem]:
        return [item for item in self._items if item.failed]
