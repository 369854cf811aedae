from __future__ import annotations

from typing import Optional

from fastapi import FastAPI
from opentelemetry import trace
from sqlalchemy.engine import Engine

from .logging import ServiceLogger
from .settings import Settings

_log = ServiceLogger("observability")


def get_tracer(name: str) -> trace.Tracer:
    """Tracer for pipeline spans; a no-op until tracing is configured."""
    return trace.get_tracer(name)


def _span_exporter(settings: Settings):
    if settings.otel_exporter_otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)

    from opentelemetry.sdk.trace.export import ConsoleSpanExporter

    return ConsoleSpanExporter()


def configure_observability(app: FastAPI, settings: Settings, engine: Optional[Engine] = None) -> None:
    if not settings.otel_enabled:
        return

    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.otel_service_name}))
    provider.add_span_processor(BatchSpanProcessor(_span_exporter(settings)))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine)

    _log.info(
        "tracing enabled",
        service=settings.otel_service_name,
        exporter="otlp" if settings.otel_exporter_otlp_endpoint else "console",
        sql=engine is not None,
    )
