"""Domain layer: exceptions, enums and value objects.

No I/O; shared by application and infrastructure.
"""

from storage_sink.domain.enums import Operation
from storage_sink.domain.exceptions import (
    BackendFailureError,
    InvalidArgumentError,
    ObjectNotFoundError,
    PathTraversalError,
    SinkConfigurationError,
    SinkException,
    StreamAbortedError,
    StreamTimeoutError,
)
from storage_sink.domain.value_objects import MetricRecord, ObjectInfo

__all__ = [
    "Operation",
    "MetricRecord",
    "ObjectInfo",
    "SinkException",
    "InvalidArgumentError",
    "PathTraversalError",
    "ObjectNotFoundError",
    "StreamTimeoutError",
    "StreamAbortedError",
    "BackendFailureError",
    "SinkConfigurationError",
]
