"""tempo-utils: client helpers for Grafana Tempo.

This package queries Tempo through TraceQL (single and batched queries) and
reads trace geolocation from root or child spans during the geo attribute
migration.
"""

from tempo_utils.core.config import (
    Settings,
    TempoUtilsConfig,
    configure_tempo_utils,
    get_query_performance_tracker,
    get_settings,
    get_tempo_api_key,
    get_tempo_base_url,
    get_tempo_logger,
    get_tempo_utils_config,
    reset_tempo_utils_config,
)
from tempo_utils.core.exceptions import (
    ConfigurationError,
    ErrorCode,
    InvalidLimitError,
    NonRetriableError,
    QueryFailedError,
    QueryTimeoutError,
    RetriableError,
    TempoFetchError,
    TempoUtilsError,
    UnexpectedQueryError,
)
from tempo_utils.core.logging import NoopLogger, StructlogLogger, TempoUtilsLogger
from tempo_utils.models import (
    AttributeKind,
    AttributeValue,
    BatchQuery,
    BatchQueryItemResult,
    BatchQueryResult,
    GeoLocation,
    GeoSource,
    SpanAttribute,
    TempoSpan,
    TempoTrace,
    TraceQLMetrics,
    TraceQLResult,
    TraceQLSpan,
    TraceQLSpanSet,
    TraceQLTrace,
)
from tempo_utils.services.batch import query_traceql_batch
from tempo_utils.services.cache import CacheStats
from tempo_utils.services.performance import (
    InMemoryQueryPerformanceTracker,
    QueryExecution,
    QueryPerformanceTracker,
)
from tempo_utils.services.query_client import (
    build_fingerprint_query,
    build_session_query,
    build_status_code_query,
    query_traceql,
    query_traces_by_fingerprint,
    query_traces_by_session,
    query_traces_by_status_code,
)
from tempo_utils.services.span_reader import (
    SpanReader,
    SpanReaderOptions,
    parse_coordinate,
    parse_span_attributes,
    validate_coordinates,
)

# Former name of SpanReader, kept for existing imports
ChildSpanReader = SpanReader

__version__ = "0.1.0"
__all__ = [
    "AttributeKind",
    "AttributeValue",
    "BatchQuery",
    "BatchQueryItemResult",
    "BatchQueryResult",
    "CacheStats",
    "ChildSpanReader",
    "ConfigurationError",
    "ErrorCode",
    "GeoLocation",
    "GeoSource",
    "InMemoryQueryPerformanceTracker",
    "InvalidLimitError",
    "NonRetriableError",
    "NoopLogger",
    "QueryExecution",
    "QueryFailedError",
    "QueryPerformanceTracker",
    "QueryTimeoutError",
    "RetriableError",
    "Settings",
    "SpanAttribute",
    "SpanReader",
    "SpanReaderOptions",
    "StructlogLogger",
    "TempoFetchError",
    "TempoSpan",
    "TempoTrace",
    "TempoUtilsConfig",
    "TempoUtilsError",
    "TempoUtilsLogger",
    "TraceQLMetrics",
    "TraceQLResult",
    "TraceQLSpan",
    "TraceQLSpanSet",
    "TraceQLTrace",
    "UnexpectedQueryError",
    "__version__",
    "build_fingerprint_query",
    "build_session_query",
    "build_status_code_query",
    "configure_tempo_utils",
    "get_query_performance_tracker",
    "get_settings",
    "get_tempo_api_key",
    "get_tempo_base_url",
    "get_tempo_logger",
    "get_tempo_utils_config",
    "parse_coordinate",
    "parse_span_attributes",
    "query_traceql",
    "query_traceql_batch",
    "query_traces_by_fingerprint",
    "query_traces_by_session",
    "query_traces_by_status_code",
    "reset_tempo_utils_config",
    "validate_coordinates",
]
