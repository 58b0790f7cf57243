"""Structured logging configuration."""
import logging
import sys
from pythonjsonlogger import jsonlogger
from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.sdk.resources import Resource

from config import OTEL_ENABLED, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter that includes trace context."""

    def add_fields(self, log_record, record, message_dict):
        """Add custom fields to log record."""
        super().add_fields(log_record, record, message_dict)

        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            ctx = span.get_span_context()
            log_record['trace_id'] = format(ctx.trace_id, '032x')
            log_record['span_id'] = format(ctx.span_id, '016x')
            log_record['trace_flags'] = ctx.trace_flags

        log_record['service'] = SERVICE_NAME

        if 'message' in log_record:
            log_record['msg'] = log_record.pop('message')


def _otlp_handler() -> LoggingHandler:
    resource = Resource.create({
        "service.name": SERVICE_NAME,
        "deployment.environment": "demo"
    })
    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=OTEL_EXPORTER_OTLP_ENDPOINT, insecure=True))
    )
    # Experimental API; there is no stable set_logger_provider yet
    set_logger_provider(logger_provider)
    return LoggingHandler(level=logging.INFO, logger_provider=logger_provider)


def setup_logging(level: int = logging.INFO, otlp: bool = OTEL_ENABLED):
    """
    Configure structured logging for the application.

    Args:
        level: Root log level
        otlp: Also ship records to the OpenTelemetry collector
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stdout for local viewing
    formatter = CustomJsonFormatter(
        '%(levelname)s %(name)s %(message)s',
        rename_fields={
            'levelname': 'level'
        }
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if otlp:
        try:
            root_logger.addHandler(_otlp_handler())
            logging.info("OTLP logging handler configured")
        except Exception as e:
            logging.warning(f"Failed to configure OTLP logging handler: {e}")

    # Reduce noise from libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
