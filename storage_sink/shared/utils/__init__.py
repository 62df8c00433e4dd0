"""Shared utilities: datetime."""

from storage_sink.shared.utils.datetime import utc_now

__all__ = ["utc_now"]
