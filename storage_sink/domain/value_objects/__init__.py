"""Domain value objects: immutable object and metric descriptions."""

from storage_sink.domain.value_objects.core import MetricRecord, ObjectInfo

__all__ = ["MetricRecord", "ObjectInfo"]
