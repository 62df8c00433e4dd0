"""Storage backend factory: creates memory, local or S3 backend from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from storage_sink.domain.exceptions import SinkConfigurationError
from storage_sink.infrastructure.storage.protocol import StorageBackend

if TYPE_CHECKING:
    from storage_sink.core.config import Settings


class StorageFactory:
    """Factory for storage backend instances based on configuration."""

    @staticmethod
    def create_storage_backend(settings: "Settings | None" = None) -> StorageBackend:
        """Create storage backend from settings.

        Args:
            settings: Sink settings; if None, uses get_settings().

        Returns:
            MemoryStorageBackend, LocalStorageBackend or S3StorageBackend.

        Raises:
            SinkConfigurationError: Unknown backend or missing required config.
        """
        from storage_sink.core.config import get_settings

        s = settings or get_settings()
        backend = s.storage_backend.lower()

        if backend == "memory":
            from storage_sink.infrastructure.storage.memory_storage import (
                MemoryStorageBackend,
            )

            return MemoryStorageBackend()
        if backend == "local":
            from storage_sink.infrastructure.storage.local_storage import (
                LocalStorageBackend,
            )

            if not s.storage_root:
                raise SinkConfigurationError("STORAGE_ROOT required for local backend")
            return LocalStorageBackend(storage_root=s.storage_root)
        if backend == "s3":
            if not s.s3_bucket:
                raise SinkConfigurationError("S3_BUCKET required for s3 backend")
            from storage_sink.infrastructure.storage.s3_storage import (
                S3StorageBackend,
            )

            return S3StorageBackend(
                bucket=s.s3_bucket,
                region=s.s3_region,
                endpoint_url=s.s3_endpoint_url,
                access_key=s.s3_access_key,
                secret_key=s.s3_secret_key.get_secret_value() if s.s3_secret_key else None,
                part_size=s.s3_part_size,
            )
        raise SinkConfigurationError(
            f"Unknown storage backend: {backend}. Supported: 'memory', 'local', 's3'"
        )
