"""Monitoring and observability setup.

Providers are installed by ``init_tracing``/``init_metrics`` from the
application lifespan. The instruments below are created up front from the
global meter; OpenTelemetry's proxy meter forwards them to the real provider
once it is set, and they are no-ops until then (e.g. under pytest).

Exemplars are attached automatically to the histograms when they are
recorded inside an active span, so a slow order or an unusually large
debit links straight to its trace.
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
import pyroscope

from config import OTEL_EXPORTER_OTLP_ENDPOINT, PYROSCOPE_SERVER, SERVICE_NAME

logger = logging.getLogger(__name__)


def init_tracing() -> TracerProvider:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer provider, so the caller can shut it down
    """
    resource = Resource.create({"service.name": SERVICE_NAME})

    tracer_provider = TracerProvider(resource=resource)
    otlp_span_exporter = OTLPSpanExporter(
        endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
        insecure=True
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
    trace.set_tracer_provider(tracer_provider)

    logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")

    return tracer_provider


def init_metrics() -> MeterProvider:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter provider, so the caller can shut it down
    """
    resource = Resource.create({"service.name": SERVICE_NAME})

    otlp_metric_exporter = OTLPMetricExporter(
        endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
        insecure=True
    )
    otlp_metric_reader = PeriodicExportingMetricReader(
        otlp_metric_exporter,
        export_interval_millis=5000
    )

    meter_provider = MeterProvider(
        resource=resource,
        metric_readers=[otlp_metric_reader]
    )
    metrics.set_meter_provider(meter_provider)

    logger.info("Metrics initialized with OTLP exporter")

    return meter_provider


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"env": "demo"}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


meter = metrics.get_meter(__name__)

# Order placement metrics
orders_created_counter = meter.create_counter(
    "shop.orders.created",
    description="Total number of orders placed from carts",
    unit="1"
)

order_failures_counter = meter.create_counter(
    "shop.orders.failures",
    description="Order placements rejected, by error code",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "shop.orders.amount",
    description="Order totals in minor currency units",
    unit="1"
)
# Exemplars: links unusually large orders to their traces

order_status_changes_counter = meter.create_counter(
    "shop.orders.status_changes",
    description="Administrative order status transitions",
    unit="1"
)

# Wallet ledger metrics
wallet_operations_counter = meter.create_counter(
    "shop.wallet.operations",
    description="Wallet ledger operations by operation and outcome",
    unit="1"
)

wallet_amount_histogram = meter.create_histogram(
    "shop.wallet.amount",
    description="Amounts moved by wallet ledger operations in minor units",
    unit="1"
)

ledger_conflicts_counter = meter.create_counter(
    "shop.ledger.conflicts",
    description="Transactions retried after a concurrent modification",
    unit="1"
)

# Cart and inventory metrics
cart_additions_counter = meter.create_counter(
    "shop.cart.additions",
    description="Total number of items added to cart",
    unit="1"
)

stock_restocks_counter = meter.create_counter(
    "shop.inventory.restocks",
    description="Units added back to product stock",
    unit="1"
)

# Security monitoring metrics
auth_failures_counter = meter.create_counter(
    "shop.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

auth_attempts_counter = meter.create_counter(
    "shop.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "shop.rate_limit.exceeded",
    description="Total number of rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "shop.security.suspicious_activity",
    description="Total number of suspicious activity detections",
    unit="1"
)
