"""
Observability Package

OpenTelemetry client spans and trace-context propagation for calls to Tempo.
"""

from tempo_utils.observability.tracing import (
    client_span,
    get_current_trace_id,
    get_tracer,
    inject_trace_context,
)

__all__ = [
    "client_span",
    "get_current_trace_id",
    "get_tracer",
    "inject_trace_context",
]
