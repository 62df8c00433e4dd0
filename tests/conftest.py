"""Pytest configuration and fixtures for storage_sink.

Sink tests run against MemoryStorageBackend; SlowBackend wraps it with
artificial latency to exercise stall timeouts.
"""

import asyncio

import pytest

from storage_sink.application.sink import Sink
from storage_sink.domain.value_objects import MetricRecord
from storage_sink.infrastructure.storage.memory_storage import MemoryStorageBackend

IMPORT_MAP = b'{"imports":{}}'


class SlowBackend(MemoryStorageBackend):
    """Memory backend whose writer commit and reader reads sleep first."""

    def __init__(self, commit_delay: float = 0.0, read_delay: float = 0.0) -> None:
        super().__init__()
        self.commit_delay = commit_delay
        self.read_delay = read_delay
        self.aborted: list[str] = []

    async def open_write(self, key: str, content_type: str):
        writer = await super().open_write(key, content_type)
        backend = self
        commit = writer.commit
        abort = writer.abort

        async def slow_commit() -> None:
            await asyncio.sleep(backend.commit_delay)
            await commit()

        async def tracked_abort() -> None:
            backend.aborted.append(key)
            await abort()

        writer.commit = slow_commit  # type: ignore[method-assign]
        writer.abort = tracked_abort  # type: ignore[method-assign]
        return writer

    async def open_read(self, key: str):
        reader = await super().open_read(key)
        backend = self
        read = reader.read

        async def slow_read(size: int = -1) -> bytes:
            await asyncio.sleep(backend.read_delay)
            return await read(size)

        reader.read = slow_read  # type: ignore[method-assign]
        return reader


async def put(sink: Sink, path: str, body: bytes = IMPORT_MAP, mime_type: str = "application/json") -> None:
    """Write body to path through the sink and wait for the upload."""
    target = await sink.write(path, mime_type)
    await target.write_from([body])


@pytest.fixture
def backend() -> MemoryStorageBackend:
    """Fresh in-memory backend."""
    return MemoryStorageBackend()


@pytest.fixture
def sink(backend: MemoryStorageBackend) -> Sink:
    """Sink over the in-memory backend with the default timeout."""
    return Sink(backend)


@pytest.fixture
def records(sink: Sink) -> list[MetricRecord]:
    """Every metric record the sink emits, in order."""
    collected: list[MetricRecord] = []
    sink.metrics.add_listener(collected.append)
    return collected
