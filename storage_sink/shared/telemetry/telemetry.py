"""OpenTelemetry tracing for sink operations.

Spans from Sink.write/read/exist/delete carry the storage key and backend.
The provider's resource names the service and the backend it fronts, so
traces from sinks over different stores can be told apart.
"""

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from storage_sink.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _build_exporter(exporter_type: str, otlp_endpoint: str | None) -> SpanExporter | None:
    """Return the span exporter to attach, or None for "none"."""
    if exporter_type == "none":
        return None
    if exporter_type == "otlp":
        if otlp_endpoint:
            logger.info("Using OTLP span exporter: %s", otlp_endpoint)
            return OTLPSpanExporter(
                endpoint=otlp_endpoint, insecure=otlp_endpoint.startswith("http://")
            )
        logger.warning("OTLP exporter requested without an endpoint, using console")
    elif exporter_type != "console":
        logger.warning("Unknown exporter type '%s', using console", exporter_type)
    return ConsoleSpanExporter()


class TelemetryConfig:
    """Tracer provider for sink operation spans.

    Exporters: console, otlp, or none (spans are recorded but not shipped).
    """

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
        storage_backend: str | None = None,
    ) -> None:
        """Initialize telemetry config.

        Args:
            service_name: Service name for resource attributes.
            service_version: Version for resource attributes.
            enabled: Whether tracing is enabled.
            environment: Deployment environment (e.g. development, production).
            storage_backend: Backend the sink fronts, recorded on the resource.
        """
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.storage_backend = storage_backend
        self.tracer_provider: TracerProvider | None = None

    def resource(self) -> Resource:
        attributes: dict[str, str] = {
            SERVICE_NAME: self.service_name,
            SERVICE_VERSION: self.service_version,
            "deployment.environment": self.environment,
        }
        if self.storage_backend:
            attributes["storage.backend"] = self.storage_backend
        return Resource(attributes=attributes)

    def setup_telemetry(
        self,
        exporter_type: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
        set_global: bool = True,
    ) -> TracerProvider | None:
        """Build the tracer provider and optionally install it globally.

        Args:
            exporter_type: "console", "otlp" or "none"; anything else falls back to console.
            otlp_endpoint: OTLP gRPC endpoint (e.g. http://localhost:4317).
            sample_rate: Fraction of traces to sample, 0.0 to 1.0.
            set_global: Install the provider as the global tracer provider.

        Returns:
            TracerProvider, or None if disabled or setup failed.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        try:
            provider = TracerProvider(
                resource=self.resource(), sampler=TraceIdRatioBased(sample_rate)
            )
            exporter = _build_exporter(exporter_type, otlp_endpoint)
            if exporter is not None:
                provider.add_span_processor(BatchSpanProcessor(exporter))
        except Exception as e:
            logger.exception("Failed to initialize telemetry: %s", e)
            return None
        self.tracer_provider = provider
        if set_global:
            trace.set_tracer_provider(provider)
        logger.info(
            "Tracing initialized: service=%s, backend=%s, exporter=%s",
            self.service_name,
            self.storage_backend,
            exporter_type,
        )
        return provider

    def shutdown(self) -> None:
        """Flush remaining spans and shut the provider down."""
        if self.tracer_provider:
            try:
                self.tracer_provider.shutdown()
                logger.info("Telemetry shutdown complete")
            except Exception as e:
                logger.exception("Error during telemetry shutdown: %s", e)


def configure_telemetry(
    settings: Settings | None = None, set_global: bool = True
) -> TelemetryConfig:
    """Build TelemetryConfig from settings and initialize tracing."""
    s = settings or get_settings()
    config = TelemetryConfig(
        service_name=s.app_name,
        service_version=s.app_version,
        enabled=s.telemetry_enabled,
        environment=s.telemetry_environment,
        storage_backend=s.storage_backend,
    )
    config.setup_telemetry(
        exporter_type=s.telemetry_exporter,
        otlp_endpoint=s.telemetry_otlp_endpoint,
        sample_rate=s.telemetry_sample_rate,
        set_global=set_global,
    )
    return config
