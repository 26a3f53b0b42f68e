"""TraceQL search result models.

Mirrors the JSON returned by Tempo's ``POST /api/search``. Field names are
snake_case in Python and keep Tempo's camelCase spelling as aliases.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tempo_utils.models.geo import AttributeValue, EmptyIfNone


class TraceQLSpan(BaseModel):
    """Span matched by a TraceQL query.

    Attributes:
        span_id: Span identifier (hex string).
        name: Span name (e.g. "HTTP POST /api/trpc/observability.logA11yViolation").
        start_time_unix_nano: Start time in nanoseconds since the Unix epoch.
        duration_nanos: Duration in nanoseconds.
        attributes: Attribute name to value (e.g. http.method, http.status_code).
    """

    model_config = ConfigDict(populate_by_name=True)

    span_id: str = Field(default="", alias="spanID")
    name: str = ""
    start_time_unix_nano: str | None = Field(default=None, alias="startTimeUnixNano")
    duration_nanos: str | None = Field(default=None, alias="durationNanos")
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("attributes", mode="before")
    @classmethod
    def _flatten_otlp_attributes(cls, value: Any) -> Any:
        """Accept Tempo's list of ``{key, value}`` pairs as well as a mapping."""
        if value is None:
            return {}
        if isinstance(value, list):
            flattened: dict[str, Any] = {}
            for item in value:
                if not isinstance(item, Mapping) or "key" not in item:
                    continue
                flattened[item["key"]] = AttributeValue.model_validate(
                    item.get("value") or {}
                ).as_python()
            return flattened
        return value


class TraceQLSpanSet(BaseModel):
    """Group of spans in one trace matched by the query."""

    spans: Annotated[list[TraceQLSpan], EmptyIfNone] = Field(default_factory=list)
    matched: int = 0


class TraceQLTrace(BaseModel):
    """Trace containing span sets that matched the query.

    Attributes:
        trace_id: Trace identifier (hex string).
        root_service_name: Root service name (e.g. "stonewall-sveltekit").
        root_trace_name: Root span name (e.g. "HTTP GET /admin/security").
        start_time_unix_nano: Trace start in nanoseconds since the Unix epoch.
        duration_ms: Total trace duration in milliseconds.
        span_sets: Span sets matching the query.
        span_set: First span set, as older Tempo versions return it.
    """

    model_config = ConfigDict(populate_by_name=True)

    trace_id: str = Field(alias="traceID")
    root_service_name: str | None = Field(default=None, alias="rootServiceName")
    root_trace_name: str | None = Field(default=None, alias="rootTraceName")
    start_time_unix_nano: str | None = Field(default=None, alias="startTimeUnixNano")
    duration_ms: float | None = Field(default=None, alias="durationMs")
    span_sets: Annotated[list[TraceQLSpanSet], EmptyIfNone] = Field(
        default_factory=list, alias="spanSets"
    )
    span_set: TraceQLSpanSet | None = Field(default=None, alias="spanSet")


class TraceQLMetrics(BaseModel):
    """Work Tempo did to answer the query."""

    model_config = ConfigDict(populate_by_name=True)

    inspected_traces: int = Field(default=0, alias="inspectedTraces")
    inspected_spans: int = Field(default=0, alias="inspectedSpans")
    inspected_bytes: int = Field(default=0, alias="inspectedBytes")


class TraceQLResult(BaseModel):
    """Search response: matching traces plus execution metrics."""

    traces: Annotated[list[TraceQLTrace], EmptyIfNone] = Field(default_factory=list)
    metrics: TraceQLMetrics = Field(default_factory=TraceQLMetrics)
