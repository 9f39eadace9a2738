"""Tests for TransferBatch queue and aggregates."""
import pytest

from filetransfer.batch import TransferBatch
from filetransfer.errors import TransferCanceledError, TransferFailedError
from filetransfer.models import TransferFile, TransferProgress, TransferResponse, TransferState


def _files(*specs):
    return [TransferFile(f"/{name}", b"x" * size) for name, size in specs]


@pytest.fixture
def batch():
    return TransferBatch(_files(("a.txt", 10), ("b.txt", 20), ("c.txt", 5)))


def _states(batch):
    return [item.state for item in batch.items]


class TestConstruction:
    def test_items_in_order(self, batch):
        assert [item.filename for item in batch.items] == ["a.txt", "b.txt", "c.txt"]
        assert len(batch) == 3
        assert batch.length == 3

    def test_unprocessed_filename_is_base_name(self):
        batch = TransferBatch(_files(("docs/guide/intro.md", 3)))
        assert batch.items[0].filename == "intro.md"

    def test_empty(self):
        batch = TransferBatch()
        assert batch.length == 0
        assert batch.current_item is None
        assert batch.snapshot().is_finished is True


class TestAggregates:
    def test_initial(self, batch):
        assert batch.num_loaded == 0
        assert batch.num_failed == 0
        assert batch.bytes_loaded == 0
        assert batch.bytes_total == 35
        assert len(batch.pending_items) == 3

    def test_failed_items_excluded_from_byte_totals(self, batch):
        a, b, c = batch.items
        a.start()
        a.complete(TransferResponse(path="/a.txt"))
        b.start()
        b.update_progress(TransferProgress(8, 20))
        b.fail(TransferFailedError())

        assert batch.num_loaded == 1
        assert batch.num_failed == 1
        assert batch.bytes_loaded == 10
        assert batch.bytes_total == 15
        assert batch.completed_items == [a]
        assert batch.failed_items == [b]
        assert batch.pending_items == [c]

    def test_current_item(self, batch):
        a, b, _ = batch.items
        assert batch.current_item is None
        a.start()
        assert batch.current_item is a
        a.complete(TransferResponse(path="/a.txt"))
        b.start()
        assert batch.current_item is b

    def test_aggregates_are_live(self, batch):
        item = batch.get_item_at(0)
        item.start()
        item.update_progress(TransferProgress(5, 10))
        assert batch.bytes_loaded == 5
        item.update_progress(TransferProgress(9, 10))
        assert batch.bytes_loaded == 9

    def test_snapshot(self, batch):
        a = batch.get_item_at(0)
        a.start()
        snapshot = batch.snapshot()
        assert snapshot.length == 3
        assert snapshot.current_item is a
        assert snapshot.num_loaded + snapshot.num_failed <= snapshot.length

    def test_snapshot_counters_are_fixed_but_current_item_is_live(self, batch):
        a = batch.get_item_at(0)
        a.start()
        a.update_progress(TransferProgress(2, 10))
        snapshot = batch.snapshot()

        a.update_progress(TransferProgress(9, 10))
        a.complete(TransferResponse(path="/a.txt"))

        assert (snapshot.bytes_loaded, snapshot.num_loaded) == (2, 0)
        assert snapshot.current_item is a
        assert snapshot.current_item.state == TransferState.COMPLETED


class TestGetItemAt:
    def test_index_stable_after_append(self, batch):
        second = batch.get_item_at(1)
        batch.append(_files(("d.txt", 1)))
        assert batch.get_item_at(1) is second
        assert batch.get_item_at(3).filename == "d.txt"

    def test_out_of_range(self, batch):
        with pytest.raises(IndexError):
            batch.get_item_at(3)
        with pytest.raises(IndexError):
            batch.get_item_at(-1)


class TestAppend:
    def test_append_preserves_existing_items(self, batch):
        a = batch.get_item_at(0)
        a.start()
        before = list(zip(batch.items, _states(batch)))

        new_items = batch.append(_files(("d.txt", 4), ("e.txt", 6)))

        assert [item.filename for item in new_items] == ["d.txt", "e.txt"]
        assert list(zip(batch.items[:3], _states(batch)[:3])) == before
        assert all(item.state == TransferState.PENDING for item in new_items)
        assert batch.bytes_total == 45


class TestCancel:
    def test_cancel_flags_only_queued_items(self, batch):
        a, b, c = batch.items
        a.start()
        a.complete(TransferResponse(path="/a.txt"))
        b.start()

        batch.cancel()

        assert a.state == TransferState.COMPLETED
        assert b.state == TransferState.STARTED
        assert c.state == TransferState.ERROR
        assert isinstance(c.error, TransferCanceledError)
        assert str(c.error) == "Transfer canceled"

    def test_cancel_is_idempotent(self, batch):
        batch.get_item_at(0).start()
        batch.cancel()
        first = (_states(batch), [item.error for item in batch.items])
        batch.cancel()
        second = (_states(batch), [item.error for item in batch.items])
        assert first == second

    def test_cancel_keeps_existing_errors(self, batch):
        b = batch.get_item_at(1)
        b.start()
        error = TransferFailedError()
        b.fail(error)
        batch.cancel()
        assert b.error is error
