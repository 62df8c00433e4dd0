"""Local filesystem storage with path validation and atomic commits.

Layout under storage_root:

    objects/<key>    object bytes
    metadata/<key>   JSON sidecar (etag, content type, size)
    tmp/             in-flight uploads, renamed into objects/ on commit

Caller keys only ever address the objects/ tree, so no key can collide with
a sidecar or an in-flight upload.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, cast

import aiofiles
import aiofiles.os

from storage_sink.domain.exceptions import (
    BackendFailureError,
    ObjectNotFoundError,
    PathTraversalError,
)
from storage_sink.domain.value_objects import ObjectInfo
from storage_sink.shared.utils.datetime import utc_now

logger = logging.getLogger(__name__)

_OBJECTS_DIR = "objects"
_METADATA_DIR = "metadata"
_TEMP_DIR = "tmp"
_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _make_temp_file(directory: Path) -> str:
    fd, name = tempfile.mkstemp(dir=directory, prefix="upload_")
    os.close(fd)
    return name


class LocalWriter:
    """Streams chunks into a temp file; renames it into place on commit."""

    def __init__(
        self,
        key: str,
        target_path: Path,
        meta_path: Path,
        temp_path: Path,
        handle: Any,
        content_type: str,
    ) -> None:
        self._key = key
        self._target_path = target_path
        self._meta_path = meta_path
        self._temp_path = temp_path
        self._handle = handle
        self._content_type = content_type
        self._sha256 = hashlib.sha256()
        self._size = 0
        self._done = False

    async def write(self, data: bytes) -> None:
        try:
            await self._handle.write(data)
        except OSError as e:
            raise BackendFailureError(self._key, str(e)) from e
        self._sha256.update(data)
        self._size += len(data)

    async def commit(self) -> None:
        if self._done:
            return
        self._done = True
        metadata = {
            "key": self._key,
            "etag": self._sha256.hexdigest(),
            "content_type": self._content_type,
            "size": self._size,
            "uploaded_at": utc_now().isoformat(),
        }
        try:
            await self._handle.close()
            await asyncio.to_thread(os.chmod, self._temp_path, 0o640)
            await aiofiles.os.makedirs(self._target_path.parent, mode=0o750, exist_ok=True)
            await aiofiles.os.makedirs(self._meta_path.parent, mode=0o750, exist_ok=True)
            await aiofiles.os.replace(self._temp_path, self._target_path)
            async with aiofiles.open(self._meta_path, "w") as f:
                await f.write(json.dumps(metadata, indent=2))
        except OSError as e:
            await self._discard()
            raise BackendFailureError(self._key, str(e)) from e

    async def abort(self) -> None:
        if self._done:
            return
        self._done = True
        await self._handle.close()
        await self._discard()

    async def _discard(self) -> None:
        try:
            await aiofiles.os.remove(self._temp_path)
        except FileNotFoundError:
            pass


class LocalReader:
    """Chunked reader over an open file handle."""

    def __init__(self, key: str, handle: Any, etag: str, content_type: str) -> None:
        self._key = key
        self._handle = handle
        self.etag = etag
        self.content_type = content_type

    async def read(self, size: int = -1) -> bytes:
        try:
            return cast(bytes, await self._handle.read(size))
        except OSError as e:
            raise BackendFailureError(self._key, str(e)) from e

    async def close(self) -> None:
        await self._handle.close()


class LocalStorageBackend:
    """Local filesystem storage with atomic commits and path confinement.

    Content type and sha256 etag are kept in a sidecar under metadata/. A key
    cannot be both an object and a "directory" of other objects; the
    filesystem rejects that with a BackendFailureError on commit.
    """

    def __init__(self, storage_root: str | Path) -> None:
        """Initialize local storage.

        Args:
            storage_root: Base directory for objects, sidecars and uploads.
        """
        self.storage_root = Path(storage_root).resolve()
        self.objects_root = self.storage_root / _OBJECTS_DIR
        self.metadata_root = self.storage_root / _METADATA_DIR
        self.temp_root = self.storage_root / _TEMP_DIR
        for directory in (self.objects_root, self.metadata_root, self.temp_root):
            directory.mkdir(parents=True, exist_ok=True, mode=0o750)

    @property
    def backend_name(self) -> str:
        return "local"

    def _get_full_path(self, key: str) -> Path:
        """Resolve and validate path under objects_root. Raises PathTraversalError if outside."""
        full_path = (self.objects_root / key).resolve()
        try:
            full_path.relative_to(self.objects_root)
        except ValueError as e:
            raise PathTraversalError(key) from e
        if full_path == self.objects_root:
            raise PathTraversalError(key)
        return full_path

    def _meta_path(self, file_path: Path) -> Path:
        return self.metadata_root / file_path.relative_to(self.objects_root)

    async def _read_metadata(self, key: str, file_path: Path) -> dict[str, Any]:
        """Read JSON sidecar or empty dict."""
        meta_path = self._meta_path(file_path)
        if not await aiofiles.os.path.isfile(meta_path):
            return {}
        try:
            async with aiofiles.open(meta_path, "r", encoding="utf-8") as f:
                result = json.loads(await f.read())
        except ValueError as e:
            raise BackendFailureError(key, f"corrupt metadata: {e}") from e
        return cast(dict[str, Any], result) if isinstance(result, dict) else {}

    async def _require_file(self, key: str) -> Path:
        file_path = self._get_full_path(key)
        if not await aiofiles.os.path.isfile(file_path):
            raise ObjectNotFoundError(key)
        return file_path

    async def open_write(self, key: str, content_type: str) -> LocalWriter:
        target_path = self._get_full_path(key)
        try:
            temp_name = await asyncio.to_thread(_make_temp_file, self.temp_root)
            handle = await aiofiles.open(temp_name, "wb")
        except OSError as e:
            raise BackendFailureError(key, str(e)) from e
        return LocalWriter(
            key,
            target_path,
            self._meta_path(target_path),
            Path(temp_name),
            handle,
            content_type,
        )

    async def open_read(self, key: str) -> LocalReader:
        file_path = await self._require_file(key)
        try:
            meta = await self._read_metadata(key, file_path)
            handle = await aiofiles.open(file_path, "rb")
        except FileNotFoundError as e:
            raise ObjectNotFoundError(key) from e
        except OSError as e:
            raise BackendFailureError(key, str(e)) from e
        return LocalReader(
            key,
            handle,
            etag=meta.get("etag", ""),
            content_type=meta.get("content_type", _DEFAULT_CONTENT_TYPE),
        )

    async def stat(self, key: str) -> ObjectInfo:
        file_path = await self._require_file(key)
        try:
            meta = await self._read_metadata(key, file_path)
            stat = await aiofiles.os.stat(file_path)
        except FileNotFoundError as e:
            raise ObjectNotFoundError(key) from e
        except OSError as e:
            raise BackendFailureError(key, str(e)) from e
        return ObjectInfo(
            key=key,
            etag=meta.get("etag", ""),
            content_type=meta.get("content_type", _DEFAULT_CONTENT_TYPE),
            size=stat.st_size,
        )

    def _list_sync(self, prefix: str) -> list[str]:
        keys: list[str] = []
        for path in self.objects_root.rglob("*"):
            if not path.is_file():
                continue
            key = path.relative_to(self.objects_root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    async def list_objects(self, prefix: str) -> list[str]:
        try:
            return await asyncio.to_thread(self._list_sync, prefix)
        except OSError as e:
            raise BackendFailureError(prefix, str(e)) from e

    async def _prune_empty_parents(self, path: Path, root: Path) -> None:
        parent = path.parent
        while parent != root:
            try:
                if await aiofiles.os.listdir(parent):
                    break
                await aiofiles.os.rmdir(parent)
            except OSError:
                break
            parent = parent.parent

    async def delete_object(self, key: str) -> None:
        """Delete file and sidecar, then prune empty parent directories."""
        file_path = self._get_full_path(key)
        meta_path = self._meta_path(file_path)
        try:
            for path in (file_path, meta_path):
                try:
                    await aiofiles.os.remove(path)
                except FileNotFoundError:
                    pass
        except OSError as e:
            raise BackendFailureError(key, str(e)) from e
        await self._prune_empty_parents(file_path, self.objects_root)
        await self._prune_empty_parents(meta_path, self.metadata_root)
        logger.debug("Deleted local object %s", key)
