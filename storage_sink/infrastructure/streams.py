"""Timeout-bounded byte streams over backend readers and writers.

Each stream owns a stall clock. Every backend call is bounded by
asyncio.wait_for, and an idle watchdog fires when the caller stops feeding
or draining the stream. Either way the stream is aborted, its backend handle
released, and StreamTimeoutError is raised to whoever touches it next.

A stream settles exactly once (commit, end of object, caller close, abort,
error, timeout, cancellation or being garbage collected while open) and
reports that through its on_settle callback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from storage_sink.domain.exceptions import (
    InvalidArgumentError,
    StreamAbortedError,
    StreamTimeoutError,
)
from storage_sink.infrastructure.storage.protocol import (
    BackendReader,
    BackendWriter,
    StorageBackend,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SettleCallback = Callable[[BaseException | None], None]

DEFAULT_TIMEOUT_MS = 60_000
CHUNK_SIZE = 64 * 1024  # 64KB

# Strong references to releases scheduled by finalizers until they finish.
_orphan_releases: set[asyncio.Task[None]] = set()


def _noop_settle(error: BaseException | None) -> None:
    return None


async def _release_quietly(key: str, release: Callable[[], Awaitable[None]]) -> None:
    try:
        await release()
    except Exception as e:
        logger.warning("Failed to release backend stream for %s: %s", key, e)


def _spawn_orphan_release(key: str, release: Callable[[], Awaitable[None]]) -> None:
    task = asyncio.ensure_future(_release_quietly(key, release))
    _orphan_releases.add(task)
    task.add_done_callback(_orphan_releases.discard)


class _TimedStream:
    """Stall clock, settle-once bookkeeping and backend release."""

    _release_backend: Callable[[], Awaitable[None]]

    def __init__(self, key: str, timeout_ms: float | None, on_settle: SettleCallback) -> None:
        self.key = key
        self._timeout_ms = timeout_ms
        self._timeout = None if timeout_ms is None else timeout_ms / 1000
        self._on_settle = on_settle
        self._loop = asyncio.get_running_loop()
        self._timer: asyncio.TimerHandle | None = None
        self._error: BaseException | None = None
        self._settled = False
        self._release_task: asyncio.Task[None] | None = None
        self._arm()

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def error(self) -> BaseException | None:
        return self._error

    def _arm(self) -> None:
        self._disarm()
        if self._timeout is not None and not self._settled:
            self._timer = self._loop.call_later(self._timeout, self._expired)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expired(self) -> None:
        self._timer = None
        if self._settled:
            return
        logger.warning("Stream for %s idle for %sms; aborting", self.key, self._timeout_ms)
        self._fail(StreamTimeoutError(self.key, self._timeout_ms or 0))

    def _settle(self, error: BaseException | None) -> bool:
        if self._settled:
            return False
        self._settled = True
        self._disarm()
        self._on_settle(error)
        return True

    def _fail(self, error: BaseException) -> None:
        self._error = error
        if self._settle(error):
            self._release_task = self._loop.create_task(
                _release_quietly(self.key, self._release_backend)
            )

    async def _release(self) -> None:
        await self._release_backend()

    def __del__(self) -> None:
        # An armed watchdog holds a reference to the stream, so this only
        # runs for streams opened without a timeout.
        if getattr(self, "_settled", True):
            return
        logger.warning("Stream for %s dropped before it was closed", self.key)
        self._settle(StreamAbortedError(self.key, "dropped before it was closed"))
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(
                _spawn_orphan_release, self.key, self._release_backend
            )

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error

    async def _call(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Run one backend call under the stall timeout.

        The watchdog is paused while the call is in flight and re-armed
        once it returns.
        """
        self._raise_if_failed()
        self._disarm()
        try:
            if self._timeout is None:
                result = await func(*args)
            else:
                result = await asyncio.wait_for(func(*args), self._timeout)
        except TimeoutError as e:
            error = StreamTimeoutError(self.key, self._timeout_ms or 0)
            self._fail(error)
            raise error from e
        except BaseException as e:
            self._fail(e)
            raise
        self._arm()
        return result


class WritableTarget(_TimedStream):
    """Writable byte stream bound to a key and content type.

    The upload is committed only by close(). Use as an async context
    manager to close on success and abort on error.
    """

    def __init__(
        self,
        writer: BackendWriter,
        key: str,
        content_type: str,
        timeout_ms: float | None = DEFAULT_TIMEOUT_MS,
        on_settle: SettleCallback = _noop_settle,
    ) -> None:
        self._writer = writer
        self._release_backend = writer.abort
        self.content_type = content_type
        self.bytes_written = 0
        super().__init__(key, timeout_ms, on_settle)

    async def write(self, data: bytes) -> None:
        """Send one chunk to the backend."""
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InvalidArgumentError("Chunk must be bytes", argument="data")
        if self._settled:
            self._raise_if_failed()
            raise RuntimeError(f"write after end: {self.key}")
        if not data:
            return
        await self._call(self._writer.write, bytes(data))
        self.bytes_written += len(data)

    async def close(self) -> None:
        """Signal end of input and wait for the upload to complete."""
        if self._settled:
            self._raise_if_failed()
            return
        await self._call(self._writer.commit)
        self._settle(None)
        logger.debug("Upload of %s complete (%d bytes)", self.key, self.bytes_written)

    async def abort(self, error: BaseException | None = None) -> None:
        """Discard the upload. No-op once the stream has settled."""
        if self._settled:
            return
        self._fail(error or StreamAbortedError(self.key))
        if self._release_task is not None:
            await self._release_task

    async def write_from(self, source: AsyncIterable[bytes] | Iterable[bytes]) -> None:
        """Pipe every chunk of source into the target, then close it."""
        try:
            if isinstance(source, AsyncIterable):
                async for chunk in source:
                    await self.write(chunk)
            else:
                for chunk in source:
                    await self.write(chunk)
        except BaseException as e:
            await self.abort(e)
            raise
        await self.close()

    async def __aenter__(self) -> WritableTarget:
        return self

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        if exc is None:
            await self.close()
        else:
            await self.abort(exc)


class ReadableStream(_TimedStream):
    """Readable byte stream over an open backend object.

    Iterate with "async for" or call read(). Reaching the end of the object
    or calling aclose() settles the stream successfully.
    """

    def __init__(
        self,
        reader: BackendReader,
        key: str,
        timeout_ms: float | None = DEFAULT_TIMEOUT_MS,
        on_settle: SettleCallback = _noop_settle,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._reader = reader
        self._release_backend = reader.close
        self.chunk_size = chunk_size
        self.bytes_read = 0
        super().__init__(key, timeout_ms, on_settle)

    async def read(self, size: int = -1) -> bytes:
        """Return up to size bytes, or everything left when size is negative."""
        if size == 0:
            return b""
        if size is not None and size > 0:
            return await self._read_chunk(size)
        chunks: list[bytes] = []
        while True:
            chunk = await self._read_chunk(self.chunk_size)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    async def _read_chunk(self, size: int) -> bytes:
        if self._settled:
            self._raise_if_failed()
            return b""
        chunk = await self._call(self._reader.read, size)
        if not chunk:
            self._settle(None)
            await self._release()
            logger.debug("Download of %s complete (%d bytes)", self.key, self.bytes_read)
            return b""
        self.bytes_read += len(chunk)
        return chunk

    async def aclose(self) -> None:
        """Stop reading and release the backend handle."""
        if self._settled:
            return
        self._settle(None)
        await self._release()

    def __aiter__(self) -> ReadableStream:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read(self.chunk_size)
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def __aenter__(self) -> ReadableStream:
        return self

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        await self.aclose()


@dataclass(frozen=True)
class ReadResult:
    """An open object: its byte stream, entity tag and content type."""

    stream: ReadableStream
    etag: str
    mime_type: str


class StreamBridge:
    """Opens timeout-bounded streams on a storage backend."""

    def __init__(
        self,
        backend: StorageBackend,
        timeout_ms: float | None = DEFAULT_TIMEOUT_MS,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._backend = backend
        self.timeout_ms = timeout_ms
        self.chunk_size = chunk_size

    async def _bounded(self, key: str, awaitable: Awaitable[T]) -> T:
        if self.timeout_ms is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self.timeout_ms / 1000)
        except TimeoutError as e:
            raise StreamTimeoutError(key, self.timeout_ms) from e

    async def open_write(
        self,
        key: str,
        content_type: str,
        on_settle: SettleCallback = _noop_settle,
    ) -> WritableTarget:
        """Start an upload; the returned target commits it on close()."""
        writer = await self._bounded(key, self._backend.open_write(key, content_type))
        return WritableTarget(writer, key, content_type, self.timeout_ms, on_settle)

    async def open_read(
        self,
        key: str,
        on_settle: SettleCallback = _noop_settle,
    ) -> ReadResult:
        """Open key for reading. ObjectNotFoundError surfaces here, not on first read."""
        reader = await self._bounded(key, self._backend.open_read(key))
        stream = ReadableStream(
            reader,
            key,
            self.timeout_ms,
            on_settle,
            chunk_size=self.chunk_size,
        )
        return ReadResult(stream=stream, etag=reader.etag, mime_type=reader.content_type)
