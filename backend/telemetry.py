# telemetry.py — OpenTelemetry tracing for Trackify
"""
Traces HTTP requests and SQL statements and ships them to an OTLP collector.

Tracing is opt-in: nothing happens unless OTEL_EXPORTER_OTLP_ENDPOINT is set
and the ``telemetry`` extra is installed.
"""
import os
import logging

logger = logging.getLogger("trackify.telemetry")

SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "trackify-api")
SERVICE_VERSION = "1.0.0"


def _instrument_app(app, provider) -> None:
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    except ImportError:
        logger.warning("opentelemetry-instrumentation-fastapi not installed, HTTP spans disabled")
        return
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health", tracer_provider=provider)


def _instrument_engine(provider) -> None:
    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    except ImportError:
        logger.warning("opentelemetry-instrumentation-sqlalchemy not installed, SQL spans disabled")
        return
    from database import engine
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)


def setup_telemetry(app=None, endpoint=None):
    """Install a tracer provider exporting to ``endpoint`` (or the env var).

    Returns the provider, or None when tracing stays off.
    """
    if endpoint is None:
        endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    if not endpoint:
        logger.info("Tracing disabled: OTEL_EXPORTER_OTLP_ENDPOINT not set")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.warning("OTLP endpoint configured but opentelemetry-sdk is not installed")
        return None

    try:
        provider = TracerProvider(resource=Resource.create({
            "service.name": SERVICE_NAME,
            "service.version": SERVICE_VERSION,
            "deployment.environment": os.getenv("ENVIRONMENT", "development"),
        }))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
        trace.set_tracer_provider(provider)

        if app is not None:
            _instrument_app(app, provider)
        _instrument_engine(provider)
    except Exception as e:
        # Tracing must never keep the API from starting
        logger.error("OpenTelemetry setup failed: %s", e)
        return None

    logger.info("Tracing to %s as %s", endpoint, SERVICE_NAME)
    return provider
