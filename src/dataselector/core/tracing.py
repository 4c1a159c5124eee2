"""OpenTelemetry spans around selector queries.

Applications export spans by calling ``configure_tracing()`` once at
startup; without it the spans go to OpenTelemetry's no-op provider.
"""
from __future__ import annotations

import functools
import os
from typing import Any, Callable, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.status import Status, StatusCode

from dataselector.core.config import Settings, settings as default_settings

F = TypeVar("F", bound=Callable[..., Any])


def is_tracing_enabled(settings: Settings | None = None) -> bool:
    """Tracing is off under pytest and when ``otel_enabled`` is false."""
    if "pytest" in os.environ.get("_", "") or os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return (settings or default_settings).otel_enabled


def configure_tracing(settings: Settings | None = None) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider.

    Returns the provider, or None when tracing is disabled.
    """
    settings = settings or default_settings
    if not is_tracing_enabled(settings):
        return None

    provider = TracerProvider(
        resource=Resource.create({
            "service.name": settings.otel_service_name,
            "deployment.environment": settings.environment,
        })
    )
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)
    return provider


def trace_query(operation: str | None = None) -> Callable[[F], F]:
    """Run an async selector method inside a span named after ``operation``.

    Example:
        @trace_query("selector.count")
        async def get_count(self) -> int:
            ...
    """
    def decorator(func: F) -> F:
        if not is_tracing_enabled():
            return func

        op_name = operation or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = trace.get_tracer(func.__module__)
            with tracer.start_as_current_span(op_name) as span:
                span.set_attribute("db.operation", op_name)
                span.set_attribute("component", "selector")
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    span.record_exception(exc)
                    span.set_status(Status(StatusCode.ERROR, str(exc)))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper  # type: ignore
    return decorator
