"""Span geo reader.

Geo attributes moved during a schema migration: newer traces carry them on
the root (primary) span returned by TraceQL search, older traces only on a
``fingerprint.geoip_lookup`` child (secondary) span that search does not
return. SpanReader checks the primary span first and falls back to fetching
the full trace, caching every outcome (including "no geo data") per trace.

Lookup per trace:
    1. cache (hit -> return, expired -> evict, miss -> continue)
    2. primary span: first span of the trace's span set
    3. secondary span: GET /api/traces/{id}, first geoip_lookup span with
       valid coordinates, scanning batch -> scope -> span in document order
    4. store the result (GeoLocation or None) in the cache

Backend failures on step 3 are logged and treated as "no geo data";
read_geo and read_geo_bulk never raise for them.

Example:
    async with SpanReader(SpanReaderOptions(max_concurrency=5)) as reader:
        geo_by_trace = await reader.read_geo_bulk(traces)
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from tempo_utils.core.config import TempoUtilsConfig, resolve_config
from tempo_utils.core.constants import (
    DEFAULT_CACHE_TTL_MS,
    DEFAULT_FETCH_TIMEOUT_S,
    DEFAULT_MAX_CONCURRENCY,
    GEO_CITY,
    GEO_COUNTRY,
    GEO_COUNTRY_CODE,
    GEO_LATITUDE,
    GEO_LONGITUDE,
    GEO_TIMEZONE,
    GEOIP_LOOKUP_SPAN_NAME,
    TRACE_BY_ID_PATH,
    UNKNOWN_COUNTRY,
)
from tempo_utils.core.logging import TempoUtilsLogger
from tempo_utils.models.geo import (
    GeoLocation,
    GeoSource,
    OTLPTraceResponse,
    SpanAttribute,
    TempoSpan,
    TempoSpanSet,
    TempoTrace,
)
from tempo_utils.models.traceql import TraceQLTrace
from tempo_utils.observability.tracing import client_span, inject_trace_context
from tempo_utils.services.cache import CacheStats, GeoCache


# =============================================================================
# Attribute / Coordinate Helpers
# =============================================================================


def parse_span_attributes(
    attributes: Iterable[SpanAttribute | Mapping[str, Any]] | None,
) -> dict[str, str]:
    """Flatten OTLP attributes into a key -> string map.

    String, int, double and bool values are stringified uniformly; an
    attribute with no populated value is skipped.

    Args:
        attributes: SpanAttribute models or their OTLP JSON form.

    Returns:
        Attribute key to string value.
    """
    attrs: dict[str, str] = {}
    for attr in attributes or []:
        if not isinstance(attr, SpanAttribute):
            attr = SpanAttribute.model_validate(attr)
        value = attr.value.as_string()
        if value is not None:
            attrs[attr.key] = value
    return attrs


def parse_coordinate(value: str | None) -> float | None:
    """Parse a coordinate string.

    Returns:
        The float value, or None when absent, empty, non-numeric or not
        finite (NaN, inf). Digit separators ("1_0") are not numeric.
    """
    if not value or "_" in value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def validate_coordinates(latitude: float, longitude: float) -> bool:
    """Check latitude in [-90, 90] and longitude in [-180, 180], inclusive."""
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def _build_geo(
    attrs: Mapping[str, str],
    latitude: float,
    longitude: float,
    source: GeoSource,
) -> GeoLocation:
    return GeoLocation(
        country=attrs.get(GEO_COUNTRY) or UNKNOWN_COUNTRY,
        country_code=attrs.get(GEO_COUNTRY_CODE),
        city=attrs.get(GEO_CITY) or None,
        latitude=latitude,
        longitude=longitude,
        timezone=attrs.get(GEO_TIMEZONE),
        source=source,
    )


# =============================================================================
# Options
# =============================================================================


class SpanReaderOptions(BaseModel):
    """Per-instance SpanReader settings.

    Attributes:
        cache_enabled: Cache lookups per trace ID. Default: True.
        cache_ttl_ms: Cache entry lifetime. Default: 300000 (5 minutes).
        max_concurrency: Trace fetches in flight during bulk reads. Default: 10.
        tempo_url: Tempo base URL, overrides the configured one.
        fetch_timeout_s: Timeout for full-trace fetches. Default: 30.
    """

    model_config = ConfigDict(frozen=True)

    cache_enabled: bool = True
    cache_ttl_ms: float = Field(default=DEFAULT_CACHE_TTL_MS, ge=0)
    max_concurrency: int = Field(default=DEFAULT_MAX_CONCURRENCY, ge=1)
    tempo_url: str | None = None
    fetch_timeout_s: float = Field(default=DEFAULT_FETCH_TIMEOUT_S, gt=0)


# =============================================================================
# SpanReader
# =============================================================================


class SpanReader:
    """Reads trace geolocation from primary or secondary spans.

    Attributes:
        options: Effective SpanReaderOptions.
    """

    parse_span_attributes = staticmethod(parse_span_attributes)
    parse_coordinate = staticmethod(parse_coordinate)
    validate_coordinates = staticmethod(validate_coordinates)

    def __init__(
        self,
        options: SpanReaderOptions | None = None,
        *,
        config: TempoUtilsConfig | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] | None = None,
        **option_fields: Any,
    ) -> None:
        """Initialize SpanReader.

        Args:
            options: Reader options.
            config: Configuration to use instead of the process-wide one.
            client: HTTP client for trace fetches. When omitted the reader
                opens its own and closes it in aclose().
            clock: Millisecond clock for cache expiry (tests).
            **option_fields: SpanReaderOptions fields, applied over ``options``.
        """
        base = options.model_dump() if options is not None else {}
        self.options = SpanReaderOptions.model_validate({**base, **option_fields})
        self._config = config
        self._client = client
        self._owns_client = False
        self._cache = GeoCache(ttl_ms=self.options.cache_ttl_ms, clock=clock)

        self._logger.debug(
            "SpanReader initialized",
            {
                "cache_enabled": self.options.cache_enabled,
                "cache_ttl_ms": self.options.cache_ttl_ms,
                "max_concurrency": self.options.max_concurrency,
            },
        )

    # -------------------------------------------------------------------------
    # Configuration / Lifecycle
    # -------------------------------------------------------------------------

    @property
    def _logger(self) -> TempoUtilsLogger:
        return resolve_config(self._config).resolved_logger()

    @property
    def tempo_url(self) -> str:
        """Base URL for trace fetches, resolved at call time."""
        return resolve_config(self._config).resolved_base_url(
            override=self.options.tempo_url
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.options.fetch_timeout_s)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if the reader opened it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    async def __aenter__(self) -> SpanReader:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def read_geo(
        self,
        trace: TempoTrace | TraceQLTrace | Mapping[str, Any],
    ) -> GeoLocation | None:
        """Resolve the geolocation of a trace.

        Args:
            trace: Search-result trace: geo view, parsed TraceQLTrace or raw
                TraceQL JSON.

        Returns:
            GeoLocation, or None when the trace has no geo data.
        """
        trace = _as_trace(trace)
        logger = self._logger

        if self.options.cache_enabled:
            entry = self._cache.get(trace.trace_id)
            if entry is not None:
                logger.debug("Cache hit for geo data", {"trace_id": trace.trace_id})
                return entry.geo_location

        geo = self._read_geo_from_primary_span(trace, logger)
        if geo is None:
            geo = await self._read_geo_from_secondary_span(trace, logger)

        if self.options.cache_enabled:
            self._cache.store(trace.trace_id, geo)
        return geo

    async def read_geo_bulk(
        self,
        traces: Sequence[TempoTrace | TraceQLTrace | Mapping[str, Any]],
    ) -> dict[str, GeoLocation | None]:
        """Resolve geolocation for many traces.

        Traces are processed in chunks of ``max_concurrency``: lookups within
        a chunk run concurrently, and the next chunk starts only when the
        whole chunk is done.

        Returns:
            Trace ID to GeoLocation or None, with every input trace present.
        """
        logger = self._logger
        items = [_as_trace(t) for t in traces]
        chunk_size = self.options.max_concurrency
        results: dict[str, GeoLocation | None] = {}

        logger.debug(
            "Bulk reading geo data",
            {"trace_count": len(items), "batch_size": chunk_size},
        )

        for offset in range(0, len(items), chunk_size):
            chunk = items[offset:offset + chunk_size]
            geos = await asyncio.gather(*(self.read_geo(t) for t in chunk))
            for trace, geo in zip(chunk, geos):
                results[trace.trace_id] = geo

        logger.debug(
            "Bulk read complete",
            {
                "total_traces": len(items),
                "traces_with_geo": sum(1 for g in results.values() if g is not None),
            },
        )
        return results

    def needs_child_span(
        self,
        trace: TempoTrace | TraceQLTrace | Mapping[str, Any],
    ) -> bool:
        """True when the primary span alone yields no geolocation.

        No cache access and no network call.
        """
        return self._read_geo_from_primary_span(_as_trace(trace), self._logger) is None

    def clear_cache(self) -> None:
        """Drop all cache entries. Hit/miss counters are kept."""
        previous_size = self._cache.clear()
        self._logger.debug("Cache cleared", {"previous_size": previous_size})

    def get_cache_stats(self) -> CacheStats:
        return self._cache.stats()

    # -------------------------------------------------------------------------
    # Primary Span
    # -------------------------------------------------------------------------

    def _read_geo_from_primary_span(
        self,
        trace: TempoTrace,
        logger: TempoUtilsLogger,
    ) -> GeoLocation | None:
        span = trace.first_span
        if span is None:
            logger.debug("No spans in trace", {"trace_id": trace.trace_id})
            return None

        attrs = parse_span_attributes(span.attributes)
        latitude = parse_coordinate(attrs.get(GEO_LATITUDE))
        longitude = parse_coordinate(attrs.get(GEO_LONGITUDE))

        if latitude is None or longitude is None:
            logger.debug(
                "Primary span missing geo coordinates",
                {
                    "trace_id": trace.trace_id,
                    "has_latitude": GEO_LATITUDE in attrs,
                    "has_longitude": GEO_LONGITUDE in attrs,
                },
            )
            return None

        if not validate_coordinates(latitude, longitude):
            logger.warning(
                "Invalid coordinates in primary span",
                {
                    "trace_id": trace.trace_id,
                    "latitude": latitude,
                    "longitude": longitude,
                },
            )
            return None

        return _build_geo(attrs, latitude, longitude, GeoSource.PRIMARY_SPAN)

    # -------------------------------------------------------------------------
    # Secondary Span
    # -------------------------------------------------------------------------

    async def _read_geo_from_secondary_span(
        self,
        trace: TempoTrace,
        logger: TempoUtilsLogger,
    ) -> GeoLocation | None:
        try:
            full_trace = await self._fetch_full_trace(trace.trace_id, logger)
            if full_trace is None:
                logger.debug("Failed to fetch full trace", {"trace_id": trace.trace_id})
                return None

            for span in full_trace.iter_spans():
                if span.name != GEOIP_LOOKUP_SPAN_NAME:
                    continue

                attrs = parse_span_attributes(span.attributes)
                latitude = parse_coordinate(attrs.get(GEO_LATITUDE))
                longitude = parse_coordinate(attrs.get(GEO_LONGITUDE))

                if (
                    latitude is not None
                    and longitude is not None
                    and validate_coordinates(latitude, longitude)
                ):
                    logger.debug(
                        "Found geo data in secondary span",
                        {"trace_id": trace.trace_id, "span_name": span.name},
                    )
                    return _build_geo(attrs, latitude, longitude, GeoSource.SECONDARY_SPAN)

            logger.debug("No valid secondary span found", {"trace_id": trace.trace_id})
            return None

        except Exception as e:
            logger.warning(
                "Error reading geo from secondary span",
                {"trace_id": trace.trace_id, "error": str(e) or type(e).__name__},
            )
            return None

    async def _fetch_full_trace(
        self,
        trace_id: str,
        logger: TempoUtilsLogger,
    ) -> OTLPTraceResponse | None:
        """Fetch the raw trace, or None if Tempo cannot provide it."""
        url = f"{self.tempo_url}{TRACE_BY_ID_PATH.format(trace_id=quote(trace_id, safe=''))}"

        try:
            with client_span("tempo.trace_by_id", {"tempo.trace_id": trace_id, "tempo.url": url}):
                response = await self._get_client().get(
                    url,
                    headers=inject_trace_context({"Accept": "application/json"}),
                    timeout=self.options.fetch_timeout_s,
                )
        except httpx.HTTPError as e:
            logger.warning(
                "Error fetching full trace",
                {"trace_id": trace_id, "error": str(e) or type(e).__name__},
            )
            return None

        if not response.is_success:
            logger.debug(
                "Full trace not available",
                {
                    "trace_id": trace_id,
                    "status": response.status_code,
                    "status_text": response.reason_phrase,
                },
            )
            return None

        try:
            return OTLPTraceResponse.model_validate(response.json())
        except ValueError as e:
            logger.warning(
                "Malformed full trace",
                {"trace_id": trace_id, "error": str(e)},
            )
            return None


def _as_trace(trace: TempoTrace | TraceQLTrace | Mapping[str, Any]) -> TempoTrace:
    if isinstance(trace, TempoTrace):
        return trace
    if isinstance(trace, TraceQLTrace):
        return _from_search_result(trace)
    return TempoTrace.model_validate(trace)


def _from_search_result(trace: TraceQLTrace) -> TempoTrace:
    """Narrow a parsed search-result trace to the geo view.

    Attribute values that are not str/int/float/bool are dropped.
    """
    span_set = trace.span_set or (trace.span_sets[0] if trace.span_sets else None)
    spans = [
        TempoSpan(
            span_id=span.span_id,
            name=span.name,
            start_time_unix_nano=span.start_time_unix_nano,
            duration_nanos=span.duration_nanos,
            attributes=[
                SpanAttribute.of(key, value)
                for key, value in span.attributes.items()
                if isinstance(value, (str, int, float, bool))
            ],
        )
        for span in (span_set.spans if span_set is not None else [])
    ]
    return TempoTrace(
        trace_id=trace.trace_id,
        root_service_name=trace.root_service_name,
        root_trace_name=trace.root_trace_name,
        start_time_unix_nano=trace.start_time_unix_nano,
        duration_ms=trace.duration_ms,
        span_set=(
            TempoSpanSet(spans=spans, matched=span_set.matched)
            if span_set is not None
            else None
        ),
    )
