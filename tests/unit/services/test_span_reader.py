"""Tests for the span geo reader.

Tests verify:
- Primary span extraction and coordinate validation
- Secondary span fallback via the full trace fetch
- Fetch failures degrade to "no geo data"
- Caching of results, including None, with TTL expiry
- Bulk reads: completeness and bounded concurrency
"""

import asyncio
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from pydantic import ValidationError

from tempo_utils import ChildSpanReader
from tempo_utils.core.config import TempoUtilsConfig, configure_tempo_utils
from tempo_utils.models.geo import GeoSource, SpanAttribute, TempoTrace
from tempo_utils.models.traceql import TraceQLResult
from tempo_utils.services.span_reader import (
    SpanReader,
    SpanReaderOptions,
    parse_coordinate,
    parse_span_attributes,
    validate_coordinates,
)
from tests.conftest import TEST_TEMPO_URL, FakeClock, TempoBackend, search_response, string_attr

BERLIN_ATTRS = [
    string_attr("geo.latitude", "52.52"),
    string_attr("geo.longitude", "13.405"),
    string_attr("geo.country", "Germany"),
    string_attr("geo.country_code", "DE"),
    string_attr("geo.city", "Berlin"),
    string_attr("geo.timezone", "Europe/Berlin"),
]

TOKYO_ATTRS = [
    string_attr("geo.latitude", "35.6762"),
    string_attr("geo.longitude", "139.6503"),
    string_attr("geo.country", "Japan"),
]


def make_trace(trace_id: str, attributes: list[dict[str, Any]] | None = None) -> TempoTrace:
    return TempoTrace.model_validate(
        {
            "traceID": trace_id,
            "spanSet": {"spans": [{"spanID": f"{trace_id}-root", "attributes": attributes or []}]},
        }
    )


def raw_trace(*spans: dict[str, Any]) -> dict[str, Any]:
    return {"batches": [{"scopeSpans": [{"spans": list(spans)}]}]}


def geoip_span(attributes: list[dict[str, Any]]) -> dict[str, Any]:
    return {"name": "fingerprint.geoip_lookup", "attributes": attributes}


@pytest.fixture
def config(mock_logger: MagicMock) -> TempoUtilsConfig:
    return TempoUtilsConfig(logger=mock_logger, tempo_base_url=TEST_TEMPO_URL)


@pytest.fixture
def reader(
    config: TempoUtilsConfig,
    tempo_client: httpx.AsyncClient,
    fake_clock: FakeClock,
) -> SpanReader:
    return SpanReader(config=config, client=tempo_client, clock=fake_clock)


# =============================================================================
# Helpers
# =============================================================================


class TestParseSpanAttributes:
    def test_uniform_strings(self) -> None:
        attrs = parse_span_attributes(
            [
                {"key": "s", "value": {"stringValue": "x"}},
                {"key": "i", "value": {"intValue": "42"}},
                {"key": "d", "value": {"doubleValue": 1.5}},
                {"key": "b", "value": {"boolValue": True}},
            ]
        )
        assert attrs == {"s": "x", "i": "42", "d": "1.5", "b": "true"}

    def test_skips_empty_values(self) -> None:
        assert parse_span_attributes([{"key": "empty", "value": {}}]) == {}

    def test_accepts_models_and_none(self) -> None:
        assert parse_span_attributes([SpanAttribute.of("k", False)]) == {"k": "false"}
        assert parse_span_attributes(None) == {}

    def test_available_on_reader(self) -> None:
        assert SpanReader.parse_span_attributes is parse_span_attributes


class TestParseCoordinate:
    @pytest.mark.parametrize(
        "raw,expected",
        [("52.52", 52.52), ("-180", -180.0), ("0", 0.0), (" 1.5 ", 1.5)],
    )
    def test_numeric(self, raw: str, expected: float) -> None:
        assert parse_coordinate(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "north", "NaN", "nan", "1_0", "inf", "-Infinity"])
    def test_invalid(self, raw: str | None) -> None:
        assert parse_coordinate(raw) is None


class TestValidateCoordinates:
    @pytest.mark.parametrize(
        "lat,lon",
        [(90, 180), (-90, -180), (0, 0), (52.52, 13.405)],
    )
    def test_valid(self, lat: float, lon: float) -> None:
        assert validate_coordinates(lat, lon) is True

    @pytest.mark.parametrize(
        "lat,lon",
        [(90.0001, 0), (-90.0001, 0), (0, 180.0001), (0, -180.0001)],
    )
    def test_out_of_range(self, lat: float, lon: float) -> None:
        assert validate_coordinates(lat, lon) is False


class TestSpanReaderOptions:
    def test_defaults(self) -> None:
        options = SpanReaderOptions()
        assert options.cache_enabled is True
        assert options.cache_ttl_ms == 300_000
        assert options.max_concurrency == 10
        assert options.tempo_url is None
        assert options.fetch_timeout_s == 30.0

    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValidationError):
            SpanReaderOptions(max_concurrency=0)

    def test_keyword_fields_override_options(self) -> None:
        reader = SpanReader(SpanReaderOptions(max_concurrency=3), cache_enabled=False)
        assert reader.options.max_concurrency == 3
        assert reader.options.cache_enabled is False


# =============================================================================
# read_geo
# =============================================================================


class TestPrimarySpan:
    """Test geo extraction from the root span."""

    @pytest.mark.asyncio
    async def test_reads_all_fields(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        geo = await reader.read_geo(make_trace("t1", BERLIN_ATTRS))

        assert geo is not None
        assert geo.country == "Germany"
        assert geo.country_code == "DE"
        assert geo.city == "Berlin"
        assert geo.latitude == 52.52
        assert geo.longitude == 13.405
        assert geo.timezone == "Europe/Berlin"
        assert geo.source is GeoSource.PRIMARY_SPAN
        assert tempo_backend.requests == []

    @pytest.mark.asyncio
    async def test_missing_country_is_unknown(self, reader: SpanReader) -> None:
        geo = await reader.read_geo(
            make_trace("t1", [string_attr("geo.latitude", "1"), string_attr("geo.longitude", "2")])
        )
        assert geo is not None
        assert geo.country == "Unknown"
        assert geo.city is None

    @pytest.mark.asyncio
    async def test_boundary_coordinates_accepted(self, reader: SpanReader) -> None:
        geo = await reader.read_geo(
            make_trace("t1", [string_attr("geo.latitude", "90"), string_attr("geo.longitude", "-180")])
        )
        assert geo is not None
        assert (geo.latitude, geo.longitude) == (90.0, -180.0)

    @pytest.mark.asyncio
    async def test_numeric_attribute_values(self, reader: SpanReader) -> None:
        attrs = [
            {"key": "geo.latitude", "value": {"doubleValue": 48.8566}},
            {"key": "geo.longitude", "value": {"doubleValue": 2.3522}},
        ]
        geo = await reader.read_geo(make_trace("t1", attrs))
        assert geo is not None
        assert geo.latitude == 48.8566

    @pytest.mark.asyncio
    async def test_accepts_trace_mapping(self, reader: SpanReader) -> None:
        geo = await reader.read_geo(
            {"traceID": "t1", "spanSet": {"spans": [{"spanID": "s", "attributes": BERLIN_ATTRS}]}}
        )
        assert geo is not None
        assert geo.country == "Germany"

    @pytest.mark.asyncio
    async def test_reads_span_sets_list(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        geo = await reader.read_geo(
            {
                "traceID": "t1",
                "spanSets": [
                    {"spans": [{"spanID": "root", "attributes": BERLIN_ATTRS}], "matched": 1},
                    {"spans": [{"spanID": "other", "attributes": TOKYO_ATTRS}], "matched": 1},
                ],
            }
        )

        assert geo is not None
        assert geo.country == "Germany"
        assert geo.source is GeoSource.PRIMARY_SPAN
        assert tempo_backend.requests == []

    @pytest.mark.asyncio
    async def test_accepts_parsed_search_result(
        self,
        reader: SpanReader,
        tempo_backend: TempoBackend,
    ) -> None:
        result = TraceQLResult.model_validate(
            {
                "traces": [
                    {
                        "traceID": "t1",
                        "spanSets": [
                            {
                                "spans": [
                                    {
                                        "spanID": "root",
                                        "attributes": [
                                            {"key": "geo.latitude", "value": {"doubleValue": 52.52}},
                                            {"key": "geo.longitude", "value": {"stringValue": "13.405"}},
                                            {"key": "geo.country", "value": {"stringValue": "Germany"}},
                                            {"key": "http.status_code", "value": {"intValue": "200"}},
                                        ],
                                    }
                                ],
                                "matched": 1,
                            }
                        ],
                    }
                ]
            }
        )

        geo = await reader.read_geo(result.traces[0])

        assert geo is not None
        assert (geo.latitude, geo.longitude) == (52.52, 13.405)
        assert geo.country == "Germany"
        assert tempo_backend.requests == []
        assert reader.needs_child_span(result.traces[0]) is False

    @pytest.mark.asyncio
    async def test_parsed_search_result_without_geo_falls_back(
        self,
        reader: SpanReader,
        tempo_backend: TempoBackend,
    ) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)
        result = TraceQLResult.model_validate(search_response(["t1"]))

        assert await reader.read_geo(result.traces[0]) is None
        assert str(tempo_backend.requests[0].url) == f"{TEST_TEMPO_URL}/api/traces/t1"

    @pytest.mark.asyncio
    async def test_invalid_coordinates_fall_back(
        self,
        reader: SpanReader,
        mock_logger: MagicMock,
        tempo_backend: TempoBackend,
    ) -> None:
        tempo_backend.handler = lambda request: httpx.Response(200, json=raw_trace(geoip_span(TOKYO_ATTRS)))

        geo = await reader.read_geo(
            make_trace("t1", [string_attr("geo.latitude", "91"), string_attr("geo.longitude", "0")])
        )

        assert geo is not None
        assert geo.source is GeoSource.SECONDARY_SPAN
        assert mock_logger.warning.call_args.args[0] == "Invalid coordinates in primary span"


class TestSecondarySpan:
    """Test fallback to the full trace."""

    @pytest.mark.asyncio
    async def test_fetches_full_trace(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(
            200,
            json=raw_trace(
                {"name": "HTTP GET /", "attributes": []},
                geoip_span(TOKYO_ATTRS),
            ),
        )

        geo = await reader.read_geo(make_trace("abc123"))

        assert geo is not None
        assert geo.country == "Japan"
        assert geo.latitude == 35.6762
        assert geo.source is GeoSource.SECONDARY_SPAN
        request = tempo_backend.requests[0]
        assert request.method == "GET"
        assert str(request.url) == f"{TEST_TEMPO_URL}/api/traces/abc123"

    @pytest.mark.asyncio
    async def test_first_valid_geoip_span_wins(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(
            200,
            json=raw_trace(
                geoip_span([string_attr("geo.latitude", "abc"), string_attr("geo.longitude", "1")]),
                geoip_span([string_attr("geo.latitude", "100"), string_attr("geo.longitude", "1")]),
                geoip_span(TOKYO_ATTRS),
                geoip_span(BERLIN_ATTRS),
            ),
        )

        geo = await reader.read_geo(make_trace("t1"))

        assert geo is not None
        assert geo.country == "Japan"

    @pytest.mark.asyncio
    async def test_searches_across_batches(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(
            200,
            json={
                "batches": [
                    {"scopeSpans": [{"spans": [{"name": "other"}]}]},
                    {"scopeSpans": [{"spans": [geoip_span(BERLIN_ATTRS)]}]},
                ]
            },
        )

        geo = await reader.read_geo(make_trace("t1"))

        assert geo is not None
        assert geo.country == "Germany"

    @pytest.mark.asyncio
    async def test_no_geoip_span(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(
            200, json=raw_trace({"name": "other", "attributes": BERLIN_ATTRS})
        )

        assert await reader.read_geo(make_trace("t1")) is None

    @pytest.mark.asyncio
    async def test_trace_without_spans(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(200, json={"batches": []})

        assert await reader.read_geo(TempoTrace.model_validate({"traceID": "t1"})) is None
        assert len(tempo_backend.requests) == 1

    @pytest.mark.parametrize("status", [404, 500, 503])
    @pytest.mark.asyncio
    async def test_error_status_is_no_geo(
        self,
        status: int,
        reader: SpanReader,
        tempo_backend: TempoBackend,
    ) -> None:
        tempo_backend.handler = lambda request: httpx.Response(status, text="nope")

        assert await reader.read_geo(make_trace("t1")) is None

    @pytest.mark.asyncio
    async def test_network_error_is_no_geo(
        self,
        reader: SpanReader,
        mock_logger: MagicMock,
        tempo_backend: TempoBackend,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        tempo_backend.handler = handler

        assert await reader.read_geo(make_trace("t1")) is None
        assert mock_logger.warning.call_args.args[0] == "Error fetching full trace"

    @pytest.mark.asyncio
    async def test_malformed_body_is_no_geo(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(200, text="not json")

        assert await reader.read_geo(make_trace("t1")) is None

    @pytest.mark.asyncio
    async def test_uses_tempo_url_option(
        self,
        config: TempoUtilsConfig,
        tempo_backend: TempoBackend,
        tempo_client: httpx.AsyncClient,
    ) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)
        reader = SpanReader(config=config, client=tempo_client, tempo_url="http://other:3200/")

        await reader.read_geo(make_trace("t1"))

        assert str(tempo_backend.requests[0].url) == "http://other:3200/api/traces/t1"

    @pytest.mark.asyncio
    async def test_reads_registry_at_call_time(
        self,
        tempo_backend: TempoBackend,
        tempo_client: httpx.AsyncClient,
    ) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)
        reader = SpanReader(client=tempo_client, cache_enabled=False)
        configure_tempo_utils(tempo_base_url="http://late:3200")

        await reader.read_geo(make_trace("t1"))

        assert str(tempo_backend.requests[0].url) == "http://late:3200/api/traces/t1"


class TestCaching:
    """Test the per-reader cache."""

    @pytest.mark.asyncio
    async def test_second_read_is_cached(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(200, json=raw_trace(geoip_span(TOKYO_ATTRS)))

        first = await reader.read_geo(make_trace("t1"))
        second = await reader.read_geo(make_trace("t1"))

        assert first == second
        assert len(tempo_backend.requests) == 1
        stats = reader.get_cache_stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_none_is_cached(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)

        assert await reader.read_geo(make_trace("t1")) is None
        assert await reader.read_geo(make_trace("t1")) is None

        assert len(tempo_backend.requests) == 1

    @pytest.mark.asyncio
    async def test_cache_hit_ignores_new_attributes(self, reader: SpanReader) -> None:
        await reader.read_geo(make_trace("t1", BERLIN_ATTRS))
        geo = await reader.read_geo(make_trace("t1", TOKYO_ATTRS))

        assert geo is not None
        assert geo.country == "Germany"

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(
        self,
        reader: SpanReader,
        fake_clock: FakeClock,
        tempo_backend: TempoBackend,
    ) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)

        await reader.read_geo(make_trace("t1"))
        fake_clock.advance(300_001)
        await reader.read_geo(make_trace("t1"))

        assert len(tempo_backend.requests) == 2
        assert reader.get_cache_stats().misses == 2

    @pytest.mark.asyncio
    async def test_disabled_cache(
        self,
        config: TempoUtilsConfig,
        tempo_backend: TempoBackend,
        tempo_client: httpx.AsyncClient,
    ) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)
        reader = SpanReader(config=config, client=tempo_client, cache_enabled=False)

        await reader.read_geo(make_trace("t1"))
        await reader.read_geo(make_trace("t1"))

        assert len(tempo_backend.requests) == 2
        stats = reader.get_cache_stats()
        assert (stats.hits, stats.misses, stats.size) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_clear_cache_keeps_counters(
        self,
        reader: SpanReader,
        mock_logger: MagicMock,
    ) -> None:
        await reader.read_geo(make_trace("t1", BERLIN_ATTRS))
        await reader.read_geo(make_trace("t1", BERLIN_ATTRS))

        reader.clear_cache()

        stats = reader.get_cache_stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 0)
        mock_logger.debug.assert_any_call("Cache cleared", {"previous_size": 1})


class TestNeedsChildSpan:
    def test_false_with_primary_geo(self, reader: SpanReader) -> None:
        assert reader.needs_child_span(make_trace("t1", BERLIN_ATTRS)) is False

    def test_true_without_coordinates(self, reader: SpanReader) -> None:
        assert reader.needs_child_span(make_trace("t1", [string_attr("geo.country", "X")])) is True

    def test_true_with_invalid_coordinates(self, reader: SpanReader) -> None:
        attrs = [string_attr("geo.latitude", "0"), string_attr("geo.longitude", "181")]
        assert reader.needs_child_span(make_trace("t1", attrs)) is True

    def test_does_not_touch_cache(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        reader.needs_child_span(make_trace("t1"))

        stats = reader.get_cache_stats()
        assert (stats.hits, stats.misses) == (0, 0)
        assert tempo_backend.requests == []


# =============================================================================
# read_geo_bulk
# =============================================================================


class TestReadGeoBulk:
    """Test bulk reads."""

    @pytest.mark.asyncio
    async def test_every_trace_present(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)

        results = await reader.read_geo_bulk(
            [make_trace("t1", BERLIN_ATTRS), make_trace("t2"), make_trace("t3", TOKYO_ATTRS)]
        )

        assert set(results) == {"t1", "t2", "t3"}
        assert results["t1"] is not None and results["t1"].country == "Germany"
        assert results["t2"] is None
        assert results["t3"] is not None and results["t3"].country == "Japan"

    @pytest.mark.asyncio
    async def test_empty(self, reader: SpanReader) -> None:
        assert await reader.read_geo_bulk([]) == {}

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(
        self,
        config: TempoUtilsConfig,
        tempo_backend: TempoBackend,
        tempo_client: httpx.AsyncClient,
    ) -> None:
        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(404)

        tempo_backend.handler = handler
        reader = SpanReader(config=config, client=tempo_client, max_concurrency=2)

        results = await reader.read_geo_bulk([make_trace(f"t{i}") for i in range(5)])

        assert len(results) == 5
        assert len(tempo_backend.requests) == 5
        assert peak == 2

    @pytest.mark.asyncio
    async def test_bulk_uses_cache(self, reader: SpanReader, tempo_backend: TempoBackend) -> None:
        tempo_backend.handler = lambda request: httpx.Response(404)

        await reader.read_geo_bulk([make_trace("t1"), make_trace("t2")])
        await reader.read_geo_bulk([make_trace("t1"), make_trace("t2")])

        assert len(tempo_backend.requests) == 2
        assert reader.get_cache_stats().hits == 2


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_owned_client_closed(self) -> None:
        async with SpanReader() as reader:
            client = reader._get_client()
            assert not client.is_closed
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, tempo_client: httpx.AsyncClient) -> None:
        async with SpanReader(client=tempo_client):
            pass
        assert not tempo_client.is_closed

    def test_child_span_reader_alias(self) -> None:
        assert ChildSpanReader is SpanReader
