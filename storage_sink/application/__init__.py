"""Application layer: path guard, metrics channel and the Sink façade."""

from storage_sink.application.metrics import MetricsEmitter, MetricsSubscription
from storage_sink.application.path_guard import PathGuard
from storage_sink.application.sink import Sink

__all__ = ["MetricsEmitter", "MetricsSubscription", "PathGuard", "Sink"]
