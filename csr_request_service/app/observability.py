from csr_request_service.app.config import settings
import logging
from typing import Dict, List, Optional, Tuple
from opentelemetry import trace, metrics
from opentelemetry.metrics import Observation
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader, ConsoleMetricExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME as ResourceAttributesServiceName
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from pythonjsonlogger import jsonlogger
from opentelemetry.context import Context
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator


logger = logging.getLogger("csr_request_service")

def setup_json_logging():
    root_logger = logging.getLogger()
    if any(isinstance(h.formatter, jsonlogger.JsonFormatter) for h in root_logger.handlers):
        return
    logHandler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(module)s %(funcName)s %(lineno)d %(otelTraceID)s %(otelSpanID)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger_name", "asctime": "timestamp"},
    )
    logHandler.setFormatter(formatter)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(logHandler)
    log_level = settings.LOG_LEVEL.upper()
    root_logger.setLevel(log_level)
    logger.setLevel(log_level)
    logger.info(f"JSON logging configured at level {log_level}.")

def setup_opentelemetry(service_name: str):
    resource = Resource(attributes={
        ResourceAttributesServiceName: service_name,
    })
    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    if settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT:
        logger.info(f"Configuring OTLP Span Exporter. Endpoint: {settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT}")
        otlp_span_exporter = OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT, insecure=True)
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
    else:
        logger.info("OTLP Span Exporter not configured. Using Console for spans.")
    trace.set_tracer_provider(tracer_provider)
    logger.info(f"OpenTelemetry TracerProvider configured for service: {service_name}.")

    metric_readers = [PeriodicExportingMetricReader(ConsoleMetricExporter(), export_interval_millis=5000)]
    if settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT:
        logger.info(f"Configuring OTLP Metric Exporter. Endpoint: {settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT}")
        otlp_metric_exporter = OTLPMetricExporter(endpoint=settings.OTEL_EXPORTER_OTLP_METRICS_ENDPOINT, insecure=True)
        metric_readers.append(PeriodicExportingMetricReader(otlp_metric_exporter, export_interval_millis=5000))
    else:
        logger.info("OTLP Metric Exporter not configured. Using Console for metrics.")
    meter_provider = MeterProvider(resource=resource, metric_readers=metric_readers)
    metrics.set_meter_provider(meter_provider)
    logger.info(f"OpenTelemetry MeterProvider configured for service: {service_name}.")

# Call at module load time
setup_json_logging()

# Modules import these instances; they bind to the real providers once an
# entry point has called setup_opentelemetry.
tracer = trace.get_tracer("csr_request_service.tracer")
meter = metrics.get_meter("csr_request_service.meter")

# --- Custom Metrics Definitions ---
requests_ingested_counter = meter.create_counter(
    name="csr.requests.ingested.total",
    description="Counts CSR requests accepted through the intake interface.",
    unit="1"
)

requests_dispatched_counter = meter.create_counter(
    name="csr.requests.dispatched.total",
    description="Counts CSR requests transitioned to 'Sent to Provider', partitioned by provider.",
    unit="1"
)

dispatch_failures_counter = meter.create_counter(
    name="csr.dispatch.failures.total",
    description="Counts dispatch attempts rolled back because the provider was unreachable.",
    unit="1"
)

responses_forwarded_counter = meter.create_counter(
    name="csr.responses.forwarded.total",
    description="Counts provider responses forwarded back to police stations.",
    unit="1"
)

domain_events_processed_counter = meter.create_counter(
    name="csr.domain.events.processed.total",
    description="Counts the total number of domain events processed by projectors.",
    unit="1"
)

domain_events_by_type_counter = meter.create_counter(
    name="csr.domain.events.type.total",
    description="Counts domain events processed, partitioned by event type.",
    unit="1"
)

kafka_messages_consumed_counter = meter.create_counter(
    name="csr.kafka.messages.consumed.total",
    description="Counts the total number of Kafka intake messages consumed.",
    unit="1"
)

dispatch_latency_histogram = meter.create_histogram(
    name="csr.dispatch.latency.seconds",
    description="Measures the latency of a provider dispatch from command reception to projection.",
    unit="s"
)

# Latest pending count per provider, refreshed by a request store subscription.
_pending_by_provider: Dict[str, int] = {}

def record_pending_by_provider(pending: Dict[str, int]) -> None:
    _pending_by_provider.clear()
    _pending_by_provider.update(pending)

def _observe_pending_requests(options):
    return [Observation(count, {"provider": provider}) for provider, count in _pending_by_provider.items()]

pending_requests_gauge = meter.create_observable_gauge(
    name="csr.requests.pending",
    callbacks=[_observe_pending_requests],
    description="Requests in 'Request Received' per provider.",
    unit="1"
)
logger.info("Custom metrics (Counters, Histogram, Gauge) defined in observability.py.")

def extract_trace_context_from_kafka_headers(headers: list) -> Optional[Context]:
    """
    Extracts OpenTelemetry trace context from Kafka message headers.
    Args:
        headers: A list of tuples (key, value_bytes) from Kafka message.
    Returns:
        An OpenTelemetry Context object, potentially with parent span info.
    """
    if not headers:
        return None

    header_dict = {key: value.decode('utf-8') for key, value in headers if value is not None}
    return TraceContextTextMapPropagator().extract(carrier=header_dict)

def inject_trace_context_into_kafka_headers() -> List[Tuple[str, bytes]]:
    """Kafka headers carrying the current span's context, readable by extract_trace_context_from_kafka_headers."""
    carrier: Dict[str, str] = {}
    TraceContextTextMapPropagator().inject(carrier=carrier)
    return [(key, value.encode('utf-8')) for key, value in carrier.items()]
