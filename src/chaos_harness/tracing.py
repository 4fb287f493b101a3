"""
Chaos Harness OpenTelemetry Tracing Module
Spans around dispatch, failure injection and recovery validation
"""

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from contextlib import contextmanager
import logging
from typing import Optional, Any, Dict, Generator

logger: logging.Logger = logging.getLogger(__name__)

TRACER_NAME = "chaos_harness"


def initialize_tracing(
    service_name: str = "chaos-harness",
    enabled: bool = True,
    exporter: Optional[SpanExporter] = None,
    console: bool = False,
) -> TracerProvider:
    """
    Initialize OpenTelemetry tracing.

    Installs a global SDK TracerProvider tagged with the service name. Spans are
    exported to ``exporter`` when given, or to the console when ``console`` is
    set; otherwise they are recorded and dropped.

    Args:
        service_name: Name of the service for tracing
        enabled: Enable/disable tracing
        exporter: Optional span exporter
        console: Export spans to stdout

    Returns:
        TracerProvider instance
    """
    if not enabled:
        logger.info("Tracing disabled - using no-op tracer provider")
        return TracerProvider()

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    if exporter is None and console:
        exporter = ConsoleSpanExporter()
    if exporter is not None:
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    logger.info(f"Tracing initialized for {service_name}")
    return provider


def get_tracer(name: str = TRACER_NAME) -> trace.Tracer:
    """Get a tracer instance"""
    return trace.get_tracer(name)


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None) -> Generator[Any, None, None]:
    """
    Context manager for creating manual OpenTelemetry spans.

    Args:
        name (str): The operation name to display in the trace.
        attributes (Optional[dict]): Key-value pairs to annotate the span.

    Yields:
        trace.Span: The active span object for further customization.

    Example:
        with span("dispatch_intent", {"intent_id": intent_id}):
            ...
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span_obj:
        if attributes:
            for key, value in attributes.items():
                try:
                    span_obj.set_attribute(key, str(value))
                except (TypeError, ValueError) as e:
                    logger.warning(
                        f"Failed to set span attribute '{key}': {e}. "
                        f"Attribute type: {type(value).__name__}"
                    )
        yield span_obj


def shutdown_tracing() -> None:
    """
    Flush pending spans
    Call this on harness shutdown
    """
    provider = trace.get_tracer_provider()

    if not hasattr(provider, 'force_flush'):
        logger.debug("Tracer provider does not support force_flush (no-op provider)")
        return

    try:
        provider.force_flush(timeout_millis=5000)
        logger.info("Tracing flushed")
    except RuntimeError as e:
        logger.warning(f"Runtime error during tracing shutdown: {e}")
