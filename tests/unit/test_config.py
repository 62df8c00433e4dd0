"""Settings validation and StorageFactory backend selection."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from storage_sink.core.config import Settings, get_settings
from storage_sink.infrastructure.storage.factory import StorageFactory
from storage_sink.infrastructure.storage.local_storage import LocalStorageBackend
from storage_sink.infrastructure.storage.memory_storage import MemoryStorageBackend
from storage_sink.infrastructure.storage.s3_storage import S3StorageBackend


class TestSettings:
    """Backend-specific fields are validated at load time."""

    def test_defaults(self) -> None:
        s = Settings(_env_file=None)
        assert s.storage_backend == "memory"
        assert s.sink_write_timeout_ms == 60_000
        assert s.sink_root_path == ""

    def test_unknown_backend_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid storage_backend"):
            Settings(_env_file=None, storage_backend="gcs")

    def test_s3_requires_bucket(self) -> None:
        with pytest.raises(ValidationError, match="s3_bucket is required"):
            Settings(_env_file=None, storage_backend="s3")

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError, match="sink_write_timeout_ms"):
            Settings(_env_file=None, sink_write_timeout_ms=0)

    def test_part_size_minimum(self) -> None:
        with pytest.raises(ValidationError, match="s3_part_size"):
            Settings(_env_file=None, s3_part_size=1024)

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SINK_ROOT_PATH", "eik")
        monkeypatch.setenv("SINK_WRITE_TIMEOUT_MS", "40")
        get_settings.cache_clear()
        try:
            s = get_settings()
            assert s.sink_root_path == "eik"
            assert s.sink_write_timeout_ms == 40
        finally:
            get_settings.cache_clear()


class TestStorageFactory:
    """Factory returns the configured backend."""

    def test_memory(self) -> None:
        backend = StorageFactory.create_storage_backend(Settings(_env_file=None))
        assert isinstance(backend, MemoryStorageBackend)

    def test_local(self, tmp_path: Path) -> None:
        settings = Settings(_env_file=None, storage_backend="local", storage_root=str(tmp_path))
        backend = StorageFactory.create_storage_backend(settings)
        assert isinstance(backend, LocalStorageBackend)
        assert backend.storage_root == tmp_path.resolve()

    def test_s3(self) -> None:
        settings = Settings(
            _env_file=None,
            storage_backend="s3",
            s3_bucket="sink-test",
            s3_access_key="test",
            s3_secret_key="test",
            s3_endpoint_url="http://localhost:9000",
        )
        backend = StorageFactory.create_storage_backend(settings)
        assert isinstance(backend, S3StorageBackend)
        assert backend.bucket == "sink-test"
        assert backend.backend_name == "s3"
