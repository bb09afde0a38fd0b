"""OpenTelemetry integration for distributed tracing."""

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from support_chat.config import ChatSettings, get_settings

logger = logging.getLogger(__name__)


def init_telemetry(settings: ChatSettings | None = None) -> bool:
    """Initialize OpenTelemetry tracing with OTLP or console exporter.

    Args:
        settings: Application settings (default: loaded from environment)

    Returns:
        True if a tracer provider was installed
    """
    settings = settings or get_settings()

    if not settings.enable_phoenix:
        logger.info("Telemetry disabled (enable_phoenix=false)")
        return False

    try:
        resource = Resource(attributes={"service.name": settings.otel_service_name})
        provider = TracerProvider(resource=resource)

        if settings.otel_endpoint:
            # Add /v1/traces suffix if not present
            endpoint_url = (
                settings.otel_endpoint
                if "/v1/traces" in settings.otel_endpoint
                else f"{settings.otel_endpoint}/v1/traces"
            )
            logger.info(f"Initializing OTLP exporter: {endpoint_url}")
            exporter = OTLPSpanExporter(endpoint=endpoint_url)
        else:
            logger.info("OTLP endpoint not set, using console exporter for local dev")
            exporter = ConsoleSpanExporter()

        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)
        logger.info(f"OpenTelemetry initialized for service: {settings.otel_service_name}")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize OpenTelemetry: {e}")
        logger.info("Continuing without tracing...")
        return False
