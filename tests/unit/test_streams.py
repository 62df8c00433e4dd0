"""StreamBridge, WritableTarget and ReadableStream: settle-once and stall timeouts."""

import asyncio
import gc

import pytest

from storage_sink.domain.exceptions import (
    InvalidArgumentError,
    ObjectNotFoundError,
    StreamAbortedError,
    StreamTimeoutError,
)
from storage_sink.infrastructure.storage.memory_storage import MemoryStorageBackend
from storage_sink.infrastructure.streams import StreamBridge
from tests.conftest import SlowBackend


class Settles:
    """Collects on_settle callbacks."""

    def __init__(self) -> None:
        self.calls: list[BaseException | None] = []

    def __call__(self, error: BaseException | None) -> None:
        self.calls.append(error)


@pytest.mark.asyncio
async def test_write_commits_only_on_close() -> None:
    backend = MemoryStorageBackend()
    settles = Settles()
    target = await StreamBridge(backend).open_write("a/b.txt", "text/plain", settles)
    await target.write(b"hello ")
    await target.write(b"world")
    assert backend.keys() == []
    await target.close()
    assert backend.keys() == ["a/b.txt"]
    assert settles.calls == [None]
    assert target.bytes_written == 11


@pytest.mark.asyncio
async def test_close_twice_settles_once() -> None:
    settles = Settles()
    target = await StreamBridge(MemoryStorageBackend()).open_write("k", "text/plain", settles)
    await target.close()
    await target.close()
    assert settles.calls == [None]


@pytest.mark.asyncio
async def test_write_rejects_non_bytes() -> None:
    target = await StreamBridge(MemoryStorageBackend()).open_write("k", "text/plain")
    with pytest.raises(InvalidArgumentError):
        await target.write("text")  # type: ignore[arg-type]
    await target.abort()


@pytest.mark.asyncio
async def test_write_after_close_raises() -> None:
    target = await StreamBridge(MemoryStorageBackend()).open_write("k", "text/plain")
    await target.close()
    with pytest.raises(RuntimeError, match="write after end"):
        await target.write(b"late")


@pytest.mark.asyncio
async def test_context_manager_aborts_on_error() -> None:
    backend = MemoryStorageBackend()
    settles = Settles()
    target = await StreamBridge(backend).open_write("k", "text/plain", settles)
    with pytest.raises(ValueError):
        async with target:
            await target.write(b"partial")
            raise ValueError("producer failed")
    assert backend.keys() == []
    assert len(settles.calls) == 1
    assert isinstance(settles.calls[0], ValueError)


@pytest.mark.asyncio
async def test_write_from_async_source() -> None:
    backend = MemoryStorageBackend()

    async def source():
        for part in (b"a", b"b", b"c"):
            yield part

    target = await StreamBridge(backend).open_write("k", "text/plain")
    await target.write_from(source())
    result = await StreamBridge(backend).open_read("k")
    assert await result.stream.read() == b"abc"


@pytest.mark.asyncio
async def test_slow_commit_times_out_and_aborts() -> None:
    backend = SlowBackend(commit_delay=0.5)
    settles = Settles()
    target = await StreamBridge(backend, timeout_ms=40).open_write("k", "application/json", settles)
    await target.write(b"{}")
    with pytest.raises(StreamTimeoutError, match="network timeout at"):
        await target.close()
    assert len(settles.calls) == 1
    assert isinstance(settles.calls[0], StreamTimeoutError)
    await asyncio.sleep(0)
    assert backend.aborted == ["k"]
    assert backend.keys() == []


@pytest.mark.asyncio
async def test_idle_write_stream_times_out() -> None:
    backend = SlowBackend()
    settles = Settles()
    target = await StreamBridge(backend, timeout_ms=20).open_write("k", "text/plain", settles)
    await asyncio.sleep(0.1)
    assert target.settled
    assert isinstance(settles.calls[0], StreamTimeoutError)
    with pytest.raises(StreamTimeoutError):
        await target.write(b"too late")
    assert backend.aborted == ["k"]


@pytest.mark.asyncio
async def test_active_writes_reset_the_idle_clock() -> None:
    backend = MemoryStorageBackend()
    target = await StreamBridge(backend, timeout_ms=100).open_write("k", "text/plain")
    for _ in range(5):
        await asyncio.sleep(0.04)
        await target.write(b"x")
    await target.close()
    assert backend.keys() == ["k"]


@pytest.mark.asyncio
async def test_open_read_missing_raises_immediately() -> None:
    with pytest.raises(ObjectNotFoundError):
        await StreamBridge(MemoryStorageBackend()).open_read("missing")


@pytest.mark.asyncio
async def test_read_iterates_chunks_and_settles_at_end() -> None:
    backend = MemoryStorageBackend()
    writer = await backend.open_write("k", "text/plain")
    await writer.write(b"0123456789")
    await writer.commit()
    settles = Settles()
    bridge = StreamBridge(backend, chunk_size=4)
    result = await bridge.open_read("k", settles)
    assert result.mime_type == "text/plain"
    assert result.etag
    chunks = [chunk async for chunk in result.stream]
    assert chunks == [b"0123", b"4567", b"89"]
    assert settles.calls == [None]


@pytest.mark.asyncio
async def test_read_early_close_settles_as_success() -> None:
    backend = MemoryStorageBackend()
    writer = await backend.open_write("k", "text/plain")
    await writer.write(b"0123456789")
    await writer.commit()
    settles = Settles()
    result = await StreamBridge(backend, chunk_size=4).open_read("k", settles)
    async with result.stream as stream:
        assert await stream.read(4) == b"0123"
    assert settles.calls == [None]
    assert await result.stream.read() == b""


@pytest.mark.asyncio
async def test_slow_read_times_out() -> None:
    backend = SlowBackend(read_delay=0.5)
    writer = await backend.open_write("k", "text/plain")
    await writer.write(b"data")
    await writer.commit()
    settles = Settles()
    result = await StreamBridge(backend, timeout_ms=40).open_read("k", settles)
    with pytest.raises(StreamTimeoutError):
        await result.stream.read()
    assert len(settles.calls) == 1
    assert isinstance(settles.calls[0], StreamTimeoutError)


@pytest.mark.asyncio
async def test_no_timeout_when_disabled() -> None:
    backend = SlowBackend(commit_delay=0.05)
    target = await StreamBridge(backend, timeout_ms=None).open_write("k", "text/plain")
    await asyncio.sleep(0.05)
    await target.write(b"x")
    await target.close()
    assert backend.keys() == ["k"]


@pytest.mark.asyncio
async def test_abort_settles_with_stream_aborted() -> None:
    backend = SlowBackend()
    settles = Settles()
    target = await StreamBridge(backend).open_write("k", "text/plain", settles)
    await target.write(b"partial")
    await target.abort()
    await target.abort()
    assert len(settles.calls) == 1
    assert isinstance(settles.calls[0], StreamAbortedError)
    assert settles.calls[0].error_code == "ABORTED"
    assert backend.aborted == ["k"]
    assert backend.keys() == []


@pytest.mark.asyncio
async def test_untimed_stream_dropped_while_open_is_released() -> None:
    """Without a watchdog, collecting an open stream settles and releases it."""
    backend = SlowBackend()
    settles = Settles()
    target = await StreamBridge(backend, timeout_ms=None).open_write("k", "text/plain", settles)
    await target.write(b"partial")
    del target
    gc.collect()
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert len(settles.calls) == 1
    assert isinstance(settles.calls[0], StreamAbortedError)
    assert backend.aborted == ["k"]


@pytest.mark.asyncio
async def test_settled_stream_collection_is_silent() -> None:
    settles = Settles()
    target = await StreamBridge(MemoryStorageBackend(), timeout_ms=None).open_write("k", "text/plain", settles)
    await target.close()
    del target
    gc.collect()
    assert settles.calls == [None]
