"""Shared telemetry: logging setup, OpenTelemetry config, and tracing helpers."""

from storage_sink.shared.telemetry.logging import setup_logging
from storage_sink.shared.telemetry.telemetry import TelemetryConfig, configure_telemetry
from storage_sink.shared.telemetry.tracing import add_span_attributes, traced

__all__ = [
    "setup_logging",
    "TelemetryConfig",
    "configure_telemetry",
    "traced",
    "add_span_attributes",
]
