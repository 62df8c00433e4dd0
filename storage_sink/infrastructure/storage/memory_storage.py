"""In-process storage backend for development and tests."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from storage_sink.domain.exceptions import ObjectNotFoundError
from storage_sink.domain.value_objects import ObjectInfo


@dataclass(frozen=True)
class _StoredObject:
    body: bytes
    content_type: str
    etag: str


class MemoryWriter:
    """Buffers chunks and publishes them atomically on commit."""

    def __init__(self, store: MemoryStorageBackend, key: str, content_type: str) -> None:
        self._store = store
        self._key = key
        self._content_type = content_type
        self._chunks: list[bytes] = []
        self._done = False

    async def write(self, data: bytes) -> None:
        if self._done:
            raise RuntimeError(f"Upload to {self._key} already finished")
        self._chunks.append(bytes(data))

    async def commit(self) -> None:
        if self._done:
            return
        self._done = True
        body = b"".join(self._chunks)
        self._chunks.clear()
        self._store._objects[self._key] = _StoredObject(
            body=body,
            content_type=self._content_type,
            etag=hashlib.md5(body).hexdigest(),
        )

    async def abort(self) -> None:
        self._done = True
        self._chunks.clear()


class MemoryReader:
    """Reads from an immutable snapshot of the object taken at open time."""

    def __init__(self, obj: _StoredObject) -> None:
        self.etag = obj.etag
        self.content_type = obj.content_type
        self._body = obj.body
        self._offset = 0

    async def read(self, size: int = -1) -> bytes:
        if size < 0:
            end = len(self._body)
        else:
            end = min(self._offset + size, len(self._body))
        chunk = self._body[self._offset:end]
        self._offset = end
        return chunk

    async def close(self) -> None:
        self._offset = len(self._body)


class MemoryStorageBackend:
    """Dict-backed storage. Last commit to a key wins."""

    def __init__(self) -> None:
        self._objects: dict[str, _StoredObject] = {}

    @property
    def backend_name(self) -> str:
        return "memory"

    def keys(self) -> list[str]:
        """Return all stored keys, sorted."""
        return sorted(self._objects)

    async def open_write(self, key: str, content_type: str) -> MemoryWriter:
        return MemoryWriter(self, key, content_type)

    async def open_read(self, key: str) -> MemoryReader:
        obj = self._objects.get(key)
        if obj is None:
            raise ObjectNotFoundError(key)
        return MemoryReader(obj)

    async def stat(self, key: str) -> ObjectInfo:
        obj = self._objects.get(key)
        if obj is None:
            raise ObjectNotFoundError(key)
        return ObjectInfo(
            key=key,
            etag=obj.etag,
            content_type=obj.content_type,
            size=len(obj.body),
        )

    async def list_objects(self, prefix: str) -> list[str]:
        return sorted(k for k in self._objects if k.startswith(prefix))

    async def delete_object(self, key: str) -> None:
        self._objects.pop(key, None)
