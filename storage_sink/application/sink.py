"""Sink façade: validated, timeout-bounded, metered access to a storage backend.

Every public operation emits exactly one MetricRecord, on every exit path.
write() and read() hand the record over to the stream they return, which
emits it when the transfer settles; exist() and delete() emit it before they
return or raise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from storage_sink.application.metrics import MetricsEmitter
from storage_sink.application.path_guard import PathGuard, require_string
from storage_sink.domain.enums import Operation
from storage_sink.domain.exceptions import (
    InvalidArgumentError,
    SinkConfigurationError,
    SinkException,
)
from storage_sink.domain.value_objects import MetricRecord
from storage_sink.infrastructure.storage.protocol import StorageBackend
from storage_sink.infrastructure.streams import (
    DEFAULT_TIMEOUT_MS,
    ReadResult,
    StreamBridge,
    WritableTarget,
)
from storage_sink.shared.telemetry.tracing import add_span_attributes, traced
from storage_sink.shared.utils.datetime import utc_now

if TYPE_CHECKING:
    from storage_sink.core.config import Settings

logger = logging.getLogger(__name__)

_REASON_BACKEND = "BACKEND_FAILURE"
_REASON_CANCELLED = "CANCELLED"


def failure_reason(error: BaseException) -> str:
    """Map an exception to the reason tag recorded in metrics."""
    if isinstance(error, SinkException):
        return error.error_code
    if isinstance(error, asyncio.CancelledError):
        return _REASON_CANCELLED
    return _REASON_BACKEND


class _OperationMeter:
    """Times one operation and emits its record exactly once."""

    def __init__(self, emitter: MetricsEmitter, operation: Operation, raw_path: Any) -> None:
        self._emitter = emitter
        self.operation = operation
        self.key = raw_path if isinstance(raw_path, str) else repr(raw_path)
        self.access = False
        self._started_at = utc_now()
        self._start = time.perf_counter()
        self._done = False

    def settle(self, error: BaseException | None = None) -> None:
        if self._done:
            return
        self._done = True
        record = MetricRecord(
            operation=self.operation,
            key=self.key,
            success=error is None,
            access=self.access,
            reason=None if error is None else failure_reason(error),
            started_at=self._started_at,
            duration_ms=(time.perf_counter() - self._start) * 1000,
        )
        if error is not None:
            logger.debug(
                "%s %s failed: %s", self.operation.value, self.key, record.reason
            )
        self._emitter.emit(record)

    @contextmanager
    def failures_recorded(self) -> Iterator[None]:
        """Settle with the error if the block raises; re-raise it."""
        try:
            yield
        except BaseException as e:
            self.settle(e)
            raise


class Sink:
    """Uniform streaming access (write, read, exist, delete) to object storage.

    Paths are confined to the sink's root prefix; each stream is bounded by
    the write timeout; every operation is reported on the metrics channel.
    """

    def __init__(
        self,
        backend: StorageBackend | None = None,
        *,
        write_timeout: float | None = DEFAULT_TIMEOUT_MS,
        root_path: str = "",
        metrics: MetricsEmitter | None = None,
    ) -> None:
        """Initialize the sink.

        Args:
            backend: Storage backend (connection to the object store). Required.
            write_timeout: Stall timeout per stream in milliseconds; None disables it.
            root_path: Key prefix every path is confined to ("" for the bucket root).
            metrics: Metrics channel to report into; a new one by default.

        Raises:
            SinkConfigurationError: backend missing or invalid, bad timeout or root.
        """
        if backend is None or not isinstance(backend, StorageBackend):
            raise SinkConfigurationError('"storage_options" argument must be provided')
        if write_timeout is not None and write_timeout <= 0:
            raise SinkConfigurationError(
                f"write_timeout must be a positive number of milliseconds, got {write_timeout}"
            )
        try:
            root = PathGuard.normalize(root_path)
        except SinkException as e:
            raise SinkConfigurationError(f"Invalid root_path: {root_path!r}") from e
        self._backend = backend
        self._root = root
        self._bridge = StreamBridge(backend, timeout_ms=write_timeout)
        self._metrics = metrics or MetricsEmitter()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> Sink:
        """Build a sink and its backend from settings (get_settings() by default)."""
        from storage_sink.core.config import get_settings
        from storage_sink.infrastructure.storage.factory import StorageFactory

        s = settings or get_settings()
        backend = StorageFactory.create_storage_backend(s)
        logger.info(
            "Sink configured: backend=%s, root_path=%r, write_timeout_ms=%s",
            backend.backend_name,
            s.sink_root_path,
            s.sink_write_timeout_ms,
        )
        return cls(
            backend,
            write_timeout=s.sink_write_timeout_ms,
            root_path=s.sink_root_path,
        )

    @property
    def metrics(self) -> MetricsEmitter:
        """Channel receiving one MetricRecord per operation."""
        return self._metrics

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    @property
    def root_path(self) -> str:
        return self._root

    @property
    def write_timeout(self) -> float | None:
        return self._bridge.timeout_ms

    def __repr__(self) -> str:
        return f"<Sink backend={self._backend.backend_name!r} root_path={self._root!r}>"

    def _meter(self, operation: Operation, raw_path: Any) -> _OperationMeter:
        return _OperationMeter(self._metrics, operation, raw_path)

    def _resolve(self, meter: _OperationMeter, raw_path: Any, *, require_object: bool) -> str:
        """Normalize a caller path into a storage key under the root."""
        relative = PathGuard.normalize(raw_path)
        if require_object and not relative:
            raise InvalidArgumentError("Path must address an object", argument="path")
        key = PathGuard.join(self._root, relative)
        meter.key = key
        meter.access = True
        add_span_attributes(**{"storage.key": key, "storage.backend": self._backend.backend_name})
        return key

    @traced("storage_sink.write")
    async def write(self, path: str, mime_type: str) -> WritableTarget:
        """Open a writable stream to path.

        Bytes written to the target are uploaded once the caller closes it.

        Raises:
            InvalidArgumentError: path or mime_type is not a string.
            PathTraversalError: path escapes the root.
        """
        meter = self._meter(Operation.WRITE, path)
        with meter.failures_recorded():
            require_string(path, "path")
            require_string(mime_type, "mime_type")
            key = self._resolve(meter, path, require_object=True)
            target = await self._bridge.open_write(key, mime_type, on_settle=meter.settle)
        logger.debug("Opened write stream for %s (%s)", key, mime_type)
        return target

    @traced("storage_sink.read")
    async def read(self, path: str) -> ReadResult:
        """Open path for reading.

        Raises:
            InvalidArgumentError: path is not a string.
            PathTraversalError: path escapes the root.
            ObjectNotFoundError: no object at path.
        """
        meter = self._meter(Operation.READ, path)
        with meter.failures_recorded():
            key = self._resolve(meter, path, require_object=True)
            result = await self._bridge.open_read(key, on_settle=meter.settle)
        logger.debug("Opened read stream for %s", key)
        return result

    @traced("storage_sink.exist")
    async def exist(self, path: str) -> None:
        """Return if an object exists at path; raise ObjectNotFoundError otherwise."""
        meter = self._meter(Operation.EXIST, path)
        with meter.failures_recorded():
            key = self._resolve(meter, path, require_object=True)
            await self._backend.stat(key)
        meter.settle()

    @traced("storage_sink.delete")
    async def delete(self, path: str) -> None:
        """Delete the object at path and every object below it.

        The key is a whole-segment prefix: deleting "dir/a" removes "dir/a" and
        "dir/a/..." but never "dir/ab". Deleting something that does not exist
        succeeds.
        """
        meter = self._meter(Operation.DELETE, path)
        with meter.failures_recorded():
            prefix = self._resolve(meter, path, require_object=False)
            listed = await self._backend.list_objects(prefix)
            keys = [key for key in listed if PathGuard.is_within(key, prefix)]
            await asyncio.gather(*(self._backend.delete_object(key) for key in keys))
        meter.settle()
        logger.info("Deleted %d object(s) under %r", len(keys), prefix)

    async def close(self) -> None:
        """Close the metrics channel. The backend is left to its owner."""
        self._metrics.close()

    async def __aenter__(self) -> Sink:
        return self

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> None:
        await self.close()
