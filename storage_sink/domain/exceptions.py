"""Domain exceptions for the storage sink.

Every error a sink operation can raise derives from SinkException. The
error_code doubles as the failure reason recorded in metrics, so callers
and dashboards classify failures the same way.
"""

from typing import Any


class SinkException(Exception):
    """Base exception for all storage sink errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. key, reason).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class InvalidArgumentError(SinkException, TypeError):
    """Raised when a required argument has the wrong type or shape."""

    def __init__(self, message: str = "Argument must be a String", argument: str | None = None) -> None:
        """Initialize with message and optional argument name.

        Args:
            message: Description of the invalid argument.
            argument: Optional name of the offending parameter.
        """
        details = {"argument": argument} if argument else {}
        super().__init__(message, "INVALID_ARGUMENT", details)


class PathTraversalError(SinkException):
    """Raised when a path would escape the storage root."""

    def __init__(self, path: str) -> None:
        super().__init__("Directory traversal", "PATH_TRAVERSAL", {"path": path})


class ObjectNotFoundError(SinkException):
    """Raised when the addressed object does not exist in the backend."""

    def __init__(self, key: str) -> None:
        super().__init__(f"{key} does not exist", "NOT_FOUND", {"key": key})


class StreamTimeoutError(SinkException, TimeoutError):
    """Raised when an open stream transfers no data within the timeout window."""

    def __init__(self, key: str, timeout_ms: float) -> None:
        super().__init__(
            f"network timeout at: {key}",
            "TIMEOUT",
            {"key": key, "timeout_ms": timeout_ms},
        )


class BackendFailureError(SinkException):
    """Raised when the storage backend cannot complete an operation.

    Covers network, permission and quota failures; anything that is not a
    missing object.
    """

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(
            f"Storage backend failed for {key}: {reason}",
            "BACKEND_FAILURE",
            {"key": key, "reason": reason},
        )


class SinkConfigurationError(SinkException, ValueError):
    """Raised when a sink is constructed with missing or invalid configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "CONFIGURATION_ERROR")


class StreamAbortedError(SinkException):
    """Raised when a stream is abandoned before it settles.

    Covers an explicit abort() by the caller and a stream that is garbage
    collected while still open.
    """

    def __init__(self, key: str, reason: str = "aborted by caller") -> None:
        super().__init__(
            f"Stream for {key} {reason}",
            "ABORTED",
            {"key": key, "reason": reason},
        )
