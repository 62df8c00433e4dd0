"""Storage backends: in-memory, local filesystem and S3-compatible.

Factory creates a backend from storage_sink.core.config. Implementations are
loaded lazily inside StorageFactory.create_storage_backend() so the S3
backend only imports boto3 when it is selected.

Implementations satisfy StorageBackend (open_write, open_read, stat,
list_objects, delete_object).
"""

from storage_sink.infrastructure.storage.factory import StorageFactory
from storage_sink.infrastructure.storage.memory_storage import MemoryStorageBackend
from storage_sink.infrastructure.storage.protocol import (
    BackendReader,
    BackendWriter,
    StorageBackend,
)

__all__ = [
    "StorageFactory",
    "StorageBackend",
    "BackendReader",
    "BackendWriter",
    "MemoryStorageBackend",
]
