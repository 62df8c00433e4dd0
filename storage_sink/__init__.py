"""Storage sink: streaming write/read/exist/delete over object storage.

Paths are confined to a root prefix, streams are bounded by a stall timeout
and every operation is reported on the sink's metrics channel.

Backends:
- MemoryStorageBackend: in-process (dev/test)
- LocalStorageBackend: local filesystem
- S3StorageBackend: AWS S3 compatible

Environment Variables (see storage_sink.core.config.Settings):
    STORAGE_BACKEND: "memory", "local" or "s3" (default: "memory")
    SINK_ROOT_PATH: key prefix for every path (default: "")
    SINK_WRITE_TIMEOUT_MS: per-stream stall timeout (default: 60000)
"""

from storage_sink.application import MetricsEmitter, PathGuard, Sink
from storage_sink.domain import (
    BackendFailureError,
    InvalidArgumentError,
    MetricRecord,
    ObjectInfo,
    ObjectNotFoundError,
    Operation,
    PathTraversalError,
    SinkConfigurationError,
    SinkException,
    StreamAbortedError,
    StreamTimeoutError,
)
from storage_sink.infrastructure.storage import MemoryStorageBackend, StorageBackend
from storage_sink.infrastructure.streams import ReadableStream, ReadResult, WritableTarget

__all__ = [
    "Sink",
    "PathGuard",
    "MetricsEmitter",
    "MetricRecord",
    "ObjectInfo",
    "Operation",
    "ReadResult",
    "ReadableStream",
    "WritableTarget",
    "StorageBackend",
    "MemoryStorageBackend",
    "SinkException",
    "InvalidArgumentError",
    "PathTraversalError",
    "ObjectNotFoundError",
    "StreamTimeoutError",
    "StreamAbortedError",
    "BackendFailureError",
    "SinkConfigurationError",
]
