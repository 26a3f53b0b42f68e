"""Data models for tempo-utils.

Models:
- traceql: TraceQL search results
- batch: batch query input and results
- geo: geo-reader trace views, OTLP raw traces, GeoLocation
"""

from tempo_utils.models.batch import BatchQuery, BatchQueryItemResult, BatchQueryResult
from tempo_utils.models.geo import (
    AttributeKind,
    AttributeValue,
    GeoLocation,
    GeoSource,
    OTLPBatch,
    OTLPScopeSpans,
    OTLPSpan,
    OTLPTraceResponse,
    SpanAttribute,
    TempoSpan,
    TempoSpanSet,
    TempoTrace,
)
from tempo_utils.models.traceql import (
    TraceQLMetrics,
    TraceQLResult,
    TraceQLSpan,
    TraceQLSpanSet,
    TraceQLTrace,
)

__all__ = [
    "AttributeKind",
    "AttributeValue",
    "BatchQuery",
    "BatchQueryItemResult",
    "BatchQueryResult",
    "GeoLocation",
    "GeoSource",
    "OTLPBatch",
    "OTLPScopeSpans",
    "OTLPSpan",
    "OTLPTraceResponse",
    "SpanAttribute",
    "TempoSpan",
    "TempoSpanSet",
    "TempoTrace",
    "TraceQLMetrics",
    "TraceQLResult",
    "TraceQLSpan",
    "TraceQLSpanSet",
    "TraceQLTrace",
]
