"""
OpenTelemetry tracing for tempo-utils.

Calls to Tempo run inside CLIENT spans and carry W3C trace context, so the
queries a service makes against its tracing backend show up in its own
traces. Only the OpenTelemetry API is used; without an SDK provider
installed by the application every call here is a no-op.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from opentelemetry import trace
from opentelemetry.propagate import inject
from opentelemetry.trace import Span, SpanKind, Status, StatusCode, Tracer

TRACER_NAME = "tempo_utils"


def get_tracer(name: str = TRACER_NAME) -> Tracer:
    """Get a named tracer instance."""
    return trace.get_tracer(name)


def get_current_trace_id() -> Optional[str]:
    """Get the current trace ID as hex string."""
    span = trace.get_current_span()
    span_context = span.get_span_context()

    if span_context.trace_id == 0:
        return None

    return format(span_context.trace_id, "032x")


def inject_trace_context(headers: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Inject trace context into headers for outbound requests."""
    carrier = headers if headers is not None else {}
    inject(carrier)
    return carrier


@contextmanager
def client_span(
    name: str,
    attributes: Optional[dict[str, str | int]] = None,
    tracer: Optional[Tracer] = None,
) -> Iterator[Span]:
    """
    Run a block inside a CLIENT span.

    Exceptions escaping the block are recorded on the span, which is marked
    as failed, and re-raised.
    """
    active_tracer = tracer or get_tracer()
    with active_tracer.start_as_current_span(
        name,
        kind=SpanKind.CLIENT,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        for key, value in (attributes or {}).items():
            span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
