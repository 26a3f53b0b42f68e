"""Shared constants for tempo-utils.

Centralizes Tempo endpoints, query limits and geo-reader defaults so the
query client and the span reader agree on them.

Usage:
    from tempo_utils.core.constants import DEFAULT_TEMPO_URL, MAX_QUERY_LIMIT
"""

# =============================================================================
# Tempo Backend
# =============================================================================

# Tempo's HTTP API listens on 3200 by default
DEFAULT_TEMPO_URL = "http://localhost:3200"

SEARCH_PATH = "/api/search"
TRACE_BY_ID_PATH = "/api/traces/{trace_id}"


# =============================================================================
# Query Executor
# =============================================================================

DEFAULT_QUERY_LIMIT = 20
MIN_QUERY_LIMIT = 1
MAX_QUERY_LIMIT = 1000  # Enforced server-side by Tempo

# TraceQL queries can be expensive for large time ranges
DEFAULT_TIMEOUT_S = 30.0

# Raw non-JSON error bodies shorter than this are appended to error messages
ERROR_BODY_PREVIEW_CHARS = 200

NANOS_PER_MILLI = 1_000_000


# =============================================================================
# Span Geo Reader
# =============================================================================

GEOIP_LOOKUP_SPAN_NAME = "fingerprint.geoip_lookup"
UNKNOWN_COUNTRY = "Unknown"

DEFAULT_CACHE_TTL_MS = 300_000  # 5 minutes
DEFAULT_MAX_CONCURRENCY = 10
DEFAULT_FETCH_TIMEOUT_S = 30.0

GEO_LATITUDE = "geo.latitude"
GEO_LONGITUDE = "geo.longitude"
GEO_COUNTRY = "geo.country"
GEO_COUNTRY_CODE = "geo.country_code"
GEO_CITY = "geo.city"
GEO_TIMEZONE = "geo.timezone"
