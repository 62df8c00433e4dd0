"""Domain value objects for the storage sink.

Value objects are immutable types with no identity, only value.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from storage_sink.domain.enums import Operation


@dataclass(frozen=True)
class ObjectInfo:
    """Metadata the backend reports for a stored object.

    Attributes:
        key: Storage key of the object.
        etag: Opaque version/integrity token supplied by the backend.
        content_type: MIME type declared when the object was written.
        size: Object size in bytes.
    """

    key: str
    etag: str
    content_type: str
    size: int


@dataclass(frozen=True)
class MetricRecord:
    """Outcome of a single sink operation.

    Created exactly once per operation attempt and never mutated.

    Attributes:
        operation: Which sink operation ran.
        key: Storage key when the path was valid, else the raw path as given
            (or its repr if it was not a string).
        success: True when the operation settled without error.
        access: True once the path passed validation and the backend was reached.
        reason: Error code of the failure; None on success.
        started_at: UTC timestamp of the invocation.
        duration_ms: Wall-clock time from invocation to settlement.
    """

    operation: Operation
    key: str
    success: bool
    access: bool
    reason: str | None
    started_at: datetime
    duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        """Convert record to dictionary for JSON serialization."""
        return {
            "operation": self.operation.value,
            "key": self.key,
            "success": self.success,
            "access": self.access,
            "reason": self.reason,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
        }
