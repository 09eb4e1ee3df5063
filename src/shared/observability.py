import logging
import os

from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import start_http_server

logger = logging.getLogger(__name__)

SERVICE_NAME = "practice-engine"


def configure_observability(metrics_port: int | None = None) -> bool:
    """
    Configures OpenTelemetry to ship traces and logs via OTLP.
    Optionally starts a background Prometheus server for metrics.

    Returns True when the OTLP exporters were installed.
    """
    if metrics_port is not None:
        try:
            start_http_server(metrics_port)
            logger.info("Prometheus metrics server started on port %s", metrics_port)
        except OSError:
            logger.warning("Prometheus port %s already in use. Skipping.", metrics_port)

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    headers = os.getenv("OTEL_EXPORTER_OTLP_HEADERS")

    if not endpoint or not headers:
        logger.warning("OTEL env vars not set. Telemetry will stay local.")
        return False

    resource = Resource.create({"service.name": SERVICE_NAME})

    # --- A. TRACING ---
    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, headers=headers))
    )
    trace.set_tracer_provider(trace_provider)

    # --- B. LOGGING ---
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=endpoint, headers=headers))
    )
    set_logger_provider(logger_provider)

    # Root logger handler captures every Telemetry facade
    handler = LoggingHandler(level=logging.INFO, logger_provider=logger_provider)
    logging.getLogger().addHandler(handler)
    return True
