"""S3-compatible object storage (AWS S3, MinIO, etc.) with streaming transfers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from storage_sink.domain.exceptions import BackendFailureError, ObjectNotFoundError
from storage_sink.domain.value_objects import ObjectInfo

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

DEFAULT_PART_SIZE = 8 * 1024 * 1024  # 8MB


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


def _strip_etag(raw: str | None) -> str:
    return (raw or "").strip('"')


class S3Writer:
    """Upload that stays in memory up to one part, then goes multipart.

    Bodies smaller than part_size are sent with a single put_object on
    commit. Larger bodies start a multipart upload and send each full part as
    soon as it is buffered, so at most one part is held in memory.
    """

    def __init__(
        self,
        backend: S3StorageBackend,
        key: str,
        content_type: str,
        part_size: int,
    ) -> None:
        self._backend = backend
        self._key = key
        self._content_type = content_type
        self._part_size = part_size
        self._buffer = bytearray()
        self._upload_id: str | None = None
        self._parts: list[dict[str, Any]] = []
        self._committed = False
        self._aborted = False

    async def write(self, data: bytes) -> None:
        self._buffer.extend(data)
        while len(self._buffer) >= self._part_size:
            part = bytes(self._buffer[: self._part_size])
            del self._buffer[: self._part_size]
            await self._upload_part(part)

    async def _upload_part(self, body: bytes) -> None:
        client = self._backend.client
        bucket = self._backend.bucket
        if self._upload_id is None:
            resp = await self._backend.call(
                self._key,
                client.create_multipart_upload,
                Bucket=bucket,
                Key=self._key,
                ContentType=self._content_type,
            )
            self._upload_id = resp["UploadId"]
        part_number = len(self._parts) + 1
        resp = await self._backend.call(
            self._key,
            client.upload_part,
            Bucket=bucket,
            Key=self._key,
            UploadId=self._upload_id,
            PartNumber=part_number,
            Body=body,
        )
        self._parts.append({"ETag": resp["ETag"], "PartNumber": part_number})

    async def commit(self) -> None:
        if self._committed:
            return
        if self._aborted:
            raise RuntimeError(f"commit after abort: {self._key}")
        client = self._backend.client
        bucket = self._backend.bucket
        if self._upload_id is None:
            body = bytes(self._buffer)
            self._buffer.clear()
            await self._backend.call(
                self._key,
                client.put_object,
                Bucket=bucket,
                Key=self._key,
                Body=body,
                ContentType=self._content_type,
            )
            self._committed = True
            return
        if self._buffer:
            await self._upload_part(bytes(self._buffer))
            self._buffer.clear()
        await self._backend.call(
            self._key,
            client.complete_multipart_upload,
            Bucket=bucket,
            Key=self._key,
            UploadId=self._upload_id,
            MultipartUpload={"Parts": self._parts},
        )
        self._committed = True

    async def abort(self) -> None:
        """Drop buffered data and any multipart upload that did not complete."""
        if self._committed or self._aborted:
            return
        self._aborted = True
        self._buffer.clear()
        if self._upload_id is not None:
            await self._backend.call(
                self._key,
                self._backend.client.abort_multipart_upload,
                Bucket=self._backend.bucket,
                Key=self._key,
                UploadId=self._upload_id,
            )


class S3Reader:
    """Reads from a get_object StreamingBody in a worker thread."""

    def __init__(self, backend: S3StorageBackend, key: str, response: dict[str, Any]) -> None:
        self._backend = backend
        self._key = key
        self._body = response["Body"]
        self.etag = _strip_etag(response.get("ETag"))
        self.content_type = response.get("ContentType") or "application/octet-stream"

    async def read(self, size: int = -1) -> bytes:
        amt = None if size < 0 else size
        return await self._backend.call(self._key, self._body.read, amt)

    async def close(self) -> None:
        await asyncio.to_thread(self._body.close)


class S3StorageBackend:
    """S3-compatible storage backend.

    Uses boto3 (sync) via asyncio.to_thread for the async API. Compatible
    with AWS S3, MinIO, DigitalOcean Spaces.
    """

    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        part_size: int = DEFAULT_PART_SIZE,
        client: Any = None,
    ) -> None:
        """Initialize S3 client.

        Args:
            bucket: Bucket name.
            region: AWS region.
            endpoint_url: Custom endpoint (MinIO/Spaces).
            access_key: Optional; uses env/IAM if not set.
            secret_key: Optional.
            part_size: Multipart part size in bytes.
            client: Pre-built boto3 S3 client (overrides the connection args).
        """
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.part_size = part_size
        if client is None:
            extra = {} if endpoint_url is None else {"endpoint_url": endpoint_url}
            client = boto3.client(
                "s3",
                region_name=region,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                **extra,
            )
        self.client = client

    @property
    def backend_name(self) -> str:
        return "s3"

    async def call(self, key: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking client call in a thread, translating botocore errors."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(key) from e
            raise BackendFailureError(key, str(e)) from e
        except BotoCoreError as e:
            raise BackendFailureError(key, str(e)) from e

    async def open_write(self, key: str, content_type: str) -> S3Writer:
        return S3Writer(self, key, content_type, self.part_size)

    async def open_read(self, key: str) -> S3Reader:
        resp = await self.call(key, self.client.get_object, Bucket=self.bucket, Key=key)
        return S3Reader(self, key, resp)

    async def stat(self, key: str) -> ObjectInfo:
        head = await self.call(key, self.client.head_object, Bucket=self.bucket, Key=key)
        return ObjectInfo(
            key=key,
            etag=_strip_etag(head.get("ETag")),
            content_type=head.get("ContentType") or "application/octet-stream",
            size=int(head.get("ContentLength", 0)),
        )

    def _list_sync(self, prefix: str) -> list[str]:
        keys: list[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    async def list_objects(self, prefix: str) -> list[str]:
        return await self.call(prefix, self._list_sync, prefix)

    async def delete_object(self, key: str) -> None:
        # S3 delete_object succeeds for missing keys.
        await self.call(key, self.client.delete_object, Bucket=self.bucket, Key=key)
        logger.debug("Deleted s3://%s/%s", self.bucket, key)
