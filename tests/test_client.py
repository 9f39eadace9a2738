"""Tests for TransferClient and the UploadProcess handle."""
import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from filetransfer import TransferClient
from filetransfer.adapters import ResamplingAdapter, SignedUploadAdapter
from filetransfer.batch import TransferBatch
from filetransfer.errors import ConfigurationError, InvalidAdapterError, TransferCanceledError
from filetransfer.models import AdapterConfig, ImageOptions, TransferFile, TransferResponse, UploadConfig
from filetransfer.orchestrator import ProcessState, UploadOrchestrator, UploadProcess


LOCAL = {
    "adapter": "local",
    "path": "/site",
    "requestUploadUrl": "https://app.example.com/api/upload",
}


def _files():
    return [
        TransferFile("/a.txt", b"x" * 10),
        TransferFile("/b.txt", b"x" * 20),
        TransferFile("/c.txt", b"x" * 5),
    ]


class SlotServer:
    """MockTransport handler for the signed-upload flow."""

    def __init__(self, fail_uploads=None):
        # name -> number of PUTs that answer 500 before succeeding
        self.fail_uploads = dict(fail_uploads or {})
        self.uploads = []

    def __call__(self, request):
        if request.url.host == "app.example.com":
            name = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={
                "upload": {"method": "PUT", "url": f"https://storage.example.com/{name}"},
                "location": f"https://cdn.example.com/files/{name}",
                "id": name,
            })

        name = request.url.path.rsplit("/", 1)[-1]
        self.uploads.append(name)
        if self.fail_uploads.get(name):
            self.fail_uploads[name] -= 1
            return httpx.Response(500)
        return httpx.Response(200)


class GatedAdapter:
    name = "gated"

    def __init__(self, gated_path):
        self.gated_path = gated_path
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()
        self.calls = []

    async def upload(self, file, progress_callback=None):
        self.calls.append(file.path)
        if file.path == self.gated_path:
            self.entered.set()
            await self.gate.wait()
        return TransferResponse(path=file.path)


@pytest.mark.asyncio
async def test_upload_files_end_to_end():
    server = SlotServer(fail_uploads={"b.txt": 1})
    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
        async with TransferClient(UploadConfig(retries=1), http_client=http) as client:
            process = client.upload_files(_files(), LOCAL)
            snapshots = []
            completed = []
            started = []
            process.on_start(lambda: started.append(True))
            process.on_progress(snapshots.append)
            process.on_item_complete(lambda item: completed.append(item.filename))

            batch = await process.wait()

        assert not http.is_closed

    assert started == [True]
    assert process.state == ProcessState.COMPLETED
    assert process.result is batch
    assert server.uploads == ["a.txt", "b.txt", "b.txt", "c.txt"]
    assert completed == ["a.txt", "b.txt", "c.txt"]
    assert batch.get_item_at(1).attempts == 2
    final = snapshots[-1]
    assert (final.length, final.num_loaded, final.num_failed) == (3, 3, 0)
    assert (final.bytes_loaded, final.bytes_total) == (35, 35)


@pytest.mark.asyncio
async def test_failed_item_reported_without_retries():
    server = SlotServer(fail_uploads={"b.txt": 1})
    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
        async with TransferClient(http_client=http) as client:
            process = client.upload_files(_files(), LOCAL)
            failed = []
            process.on_item_fail(failed.append)
            batch = await process.wait()

    assert [item.file.path for item in failed] == ["/b.txt"]
    assert failed[0].error.status_code == 500
    assert (batch.num_loaded, batch.num_failed) == (2, 1)
    assert (batch.bytes_loaded, batch.bytes_total) == (15, 15)
    assert process.state == ProcessState.COMPLETED


@pytest.mark.asyncio
async def test_invalid_adapter_raises_before_any_request():
    server = SlotServer()
    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
        async with TransferClient(http_client=http) as client:
            with pytest.raises(InvalidAdapterError, match="Invalid adapter: ftp"):
                client.upload_files(_files(), {"adapter": "ftp"})
            with pytest.raises(ConfigurationError):
                client.upload_files(_files(), {"adapter": "dropbox"})
    assert server.uploads == []


def test_build_adapter_requires_context():
    with pytest.raises(RuntimeError, match="not initialized"):
        TransferClient().build_adapter({"adapter": "local", "requestUploadUrl": "https://x/up"})


@pytest.mark.asyncio
async def test_image_options_wrap_adapter():
    async with httpx.AsyncClient(transport=httpx.MockTransport(SlotServer())) as http:
        async with TransferClient(UploadConfig(image=ImageOptions(max_width=640)), http_client=http) as client:
            adapter = client.build_adapter(AdapterConfig(adapter="local", request_upload_url="https://x/up"))
            plain = TransferClient(http_client=http).build_adapter(LOCAL)
    assert isinstance(adapter, ResamplingAdapter)
    assert adapter.name == "local"
    assert isinstance(plain, SignedUploadAdapter)


@pytest.mark.asyncio
async def test_owned_http_client_is_closed():
    client = TransferClient()
    async with client:
        http = client._client
        assert http is not None
    assert http.is_closed


class TestUploadProcess:
    @pytest.mark.asyncio
    async def test_abort_while_running(self):
        batch = TransferBatch(_files())
        adapter = GatedAdapter("/b.txt")
        process = UploadProcess(UploadOrchestrator(batch, adapter))

        await process.start()
        assert process.is_running
        await asyncio.wait_for(adapter.entered.wait(), timeout=1)

        process.abort()
        result = await asyncio.wait_for(process.wait(), timeout=1)

        assert result is batch
        assert process.is_aborted
        a, b, c = batch.items
        assert a.completed
        assert isinstance(b.error, TransferCanceledError)
        assert isinstance(c.error, TransferCanceledError)
        assert adapter.calls == ["/a.txt", "/b.txt"]

    @pytest.mark.asyncio
    async def test_append_while_running(self):
        batch = TransferBatch(_files())
        adapter = GatedAdapter("/c.txt")
        process = UploadProcess(UploadOrchestrator(batch, adapter))

        await process.start()
        await asyncio.wait_for(adapter.entered.wait(), timeout=1)
        appended = process.append([TransferFile("/d.txt", b"dd")])
        adapter.gate.set()
        await process.wait()

        assert [item.file.path for item in appended] == ["/d.txt"]
        assert adapter.calls == ["/a.txt", "/b.txt", "/c.txt", "/d.txt"]
        assert process.snapshot.num_loaded == 4

        with pytest.raises(RuntimeError):
            process.append([TransferFile("/e.txt", b"e")])

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        process = UploadProcess(UploadOrchestrator(TransferBatch(), GatedAdapter(None)))
        finished = []
        process.on_finish(finished.append)

        batch = await process.wait()

        assert len(batch) == 0
        assert finished == [batch]
        assert process.is_completed

    @pytest.mark.asyncio
    async def test_start_twice(self):
        process = UploadProcess(UploadOrchestrator(TransferBatch(), GatedAdapter(None)))
        await process.start()
        with pytest.raises(RuntimeError):
            await process.start()
        await process.wait()

    @pytest.mark.asyncio
    async def test_internal_crash_is_reported(self):
        orchestrator = UploadOrchestrator(TransferBatch(_files()), GatedAdapter(None))
        orchestrator.run = AsyncMock(side_effect=RuntimeError("crash"))
        process = UploadProcess(orchestrator)
        errors = []
        process.on_error(errors.append)

        with pytest.raises(RuntimeError, match="crash"):
            await process.wait()

        assert process.state == ProcessState.FAILED
        assert [str(error) for error in errors] == ["crash"]
        process.abort()
        assert process.state == ProcessState.FAILED

    @pytest.mark.asyncio
    async def test_append_after_abort_is_canceled_while_queued(self):
        batch = TransferBatch(_files())
        adapter = GatedAdapter("/b.txt")
        process = UploadProcess(UploadOrchestrator(batch, adapter))
        starts = []
        failed = []
        process.on_item_start(lambda item: starts.append(item.file.path))
        process.on_item_fail(lambda item: failed.append(item.file.path))

        await process.start()
        await asyncio.wait_for(adapter.entered.wait(), timeout=1)
        process.abort()
        (appended,) = process.append([TransferFile("/d.txt", b"dd")])

        assert isinstance(appended.error, TransferCanceledError)
        await asyncio.wait_for(process.wait(), timeout=1)

        assert starts == ["/a.txt", "/b.txt"]
        assert failed == ["/b.txt"]
        assert adapter.calls == ["/a.txt", "/b.txt"]
        assert batch.num_failed == 3


class BlockingServer:
    """Async MockTransport handler that holds the upload of one file open."""

    def __init__(self, blocked_name):
        self.blocked_name = blocked_name
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.uploads = []

    async def __call__(self, request):
        name = request.url.path.rsplit("/", 1)[-1]
        if request.url.host == "app.example.com":
            return httpx.Response(200, json={
                "upload": {"method": "PUT", "url": f"https://storage.example.com/{name}"},
                "location": f"https://cdn.example.com/files/{name}",
            })

        self.uploads.append(name)
        if name == self.blocked_name:
            self.entered.set()
            await self.release.wait()
        return httpx.Response(200)


def _record_snapshots(process):
    snapshots = []
    item_bytes = []
    process.on_progress(snapshots.append)
    process.on_item_progress(lambda item, progress: item_bytes.append((item.bytes_loaded, item.bytes_total)))
    return snapshots, item_bytes


def _assert_invariants(snapshots, item_bytes):
    assert snapshots
    for snapshot in snapshots:
        assert 0 <= snapshot.bytes_loaded <= snapshot.bytes_total
        assert snapshot.num_loaded + snapshot.num_failed <= snapshot.length
    for loaded, total in item_bytes:
        assert 0 <= loaded <= total


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_config", [
    LOCAL,
    {"adapter": "dropbox", "path": "/Apps/site", "token": "t0k"},
], ids=["local", "dropbox"])
async def test_abort_cancels_request_in_flight(adapter_config):
    server = BlockingServer("b.txt")
    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http:
        async with TransferClient(http_client=http) as client:
            process = client.upload_files(_files(), adapter_config)
            snapshots, item_bytes = _record_snapshots(process)

            await process.start()
            await asyncio.wait_for(server.entered.wait(), timeout=1)

            process.abort()
            a, b, c = process.batch.items
            assert isinstance(c.error, TransferCanceledError)

            batch = await asyncio.wait_for(process.wait(), timeout=1)

    assert process.is_aborted
    assert a.completed
    assert isinstance(b.error, TransferCanceledError)
    assert str(b.error) == "Transfer canceled"
    assert server.uploads == ["a.txt", "b.txt"]
    assert (batch.num_loaded, batch.num_failed) == (1, 2)
    _assert_invariants(snapshots, item_bytes)
