"""Storage backend protocol (DIP). Implementations: Memory, Local, S3."""

from typing import Protocol, runtime_checkable

from storage_sink.domain.value_objects import ObjectInfo


class BackendWriter(Protocol):
    """Open upload to a single key. Nothing is visible until commit()."""

    async def write(self, data: bytes) -> None:
        """Append a chunk to the pending upload."""
        ...

    async def commit(self) -> None:
        """Finish the upload and make the object visible."""
        ...

    async def abort(self) -> None:
        """Discard the pending upload. Safe to call more than once."""
        ...


class BackendReader(Protocol):
    """Open download of a single object."""

    etag: str
    content_type: str

    async def read(self, size: int = -1) -> bytes:
        """Return up to size bytes (all remaining if -1); b"" at end of object."""
        ...

    async def close(self) -> None:
        """Release the underlying connection or file handle."""
        ...


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol for object storage backends (memory, local, S3-compatible)."""

    @property
    def backend_name(self) -> str:
        """Backend identifier for logs and spans."""
        ...

    async def open_write(self, key: str, content_type: str) -> BackendWriter:
        """Start an upload to key with the given content type."""
        ...

    async def open_read(self, key: str) -> BackendReader:
        """Open key for streaming. Raises ObjectNotFoundError if absent."""
        ...

    async def stat(self, key: str) -> ObjectInfo:
        """Return object metadata. Raises ObjectNotFoundError if absent."""
        ...

    async def list_objects(self, prefix: str) -> list[str]:
        """Return every key starting with prefix (plain string prefix)."""
        ...

    async def delete_object(self, key: str) -> None:
        """Delete key. Succeeds if the key does not exist."""
        ...
