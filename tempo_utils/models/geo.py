"""Models for the span geo reader.

Two trace shapes are involved:

- TempoTrace: a trace as returned by TraceQL search, narrowed to what geo
  extraction needs (identifier plus the first span set).
- OTLPTraceResponse: the full raw trace from ``/api/traces/{id}``, nested
  batches -> scopeSpans -> spans.

Span attributes in both shapes are OTLP key/value pairs whose value is a
one-of over string/int/double/bool, modelled by AttributeValue.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _empty_if_none(value: Any) -> Any:
    return [] if value is None else value


# Tempo emits null for empty lists in some versions
EmptyIfNone = BeforeValidator(_empty_if_none)


# =============================================================================
# Attribute Values
# =============================================================================


class AttributeKind(str, Enum):
    """Populated variant of an OTLP attribute value."""

    STRING = "string"
    INT = "int"
    DOUBLE = "double"
    BOOL = "bool"


# Checked in this order when a payload carries more than one variant
_OTLP_VALUE_KEYS: tuple[tuple[str, AttributeKind], ...] = (
    ("stringValue", AttributeKind.STRING),
    ("intValue", AttributeKind.INT),
    ("doubleValue", AttributeKind.DOUBLE),
    ("boolValue", AttributeKind.BOOL),
)


class AttributeValue(BaseModel):
    """Tagged attribute value: ``kind`` says which variant ``value`` holds.

    Validates from the OTLP JSON shape (``{"stringValue": "x"}``). Values with
    no supported variant (arrays, key/value lists, empty objects) get
    ``kind=None`` and are skipped when attributes are flattened.

    OTLP encodes 64-bit integers as JSON strings, so an INT value may be a
    ``str``.
    """

    model_config = ConfigDict(frozen=True)

    kind: AttributeKind | None = None
    value: StrictBool | StrictInt | StrictFloat | StrictStr | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_otlp(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "kind" not in data:
            for key, kind in _OTLP_VALUE_KEYS:
                if data.get(key) is not None:
                    return {"kind": kind, "value": data[key]}
            return {"kind": None, "value": None}
        return data

    @classmethod
    def of(cls, value: str | int | float | bool) -> AttributeValue:
        """Build from a Python value, picking the variant by type."""
        if isinstance(value, bool):
            return cls(kind=AttributeKind.BOOL, value=value)
        if isinstance(value, int):
            return cls(kind=AttributeKind.INT, value=value)
        if isinstance(value, float):
            return cls(kind=AttributeKind.DOUBLE, value=value)
        return cls(kind=AttributeKind.STRING, value=str(value))

    def as_string(self) -> str | None:
        """Uniform string form, ``None`` when no variant is populated."""
        if self.kind is None or self.value is None:
            return None
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return str(self.value)

    def as_python(self) -> str | int | float | bool | None:
        """Native value, with string-encoded ints converted back to int."""
        if self.kind is AttributeKind.INT and isinstance(self.value, str):
            try:
                return int(self.value)
            except ValueError:
                return self.value
        return self.value


class SpanAttribute(BaseModel):
    """OTLP attribute: key plus tagged value."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: AttributeValue = Field(default_factory=AttributeValue)

    @classmethod
    def of(cls, key: str, value: str | int | float | bool) -> SpanAttribute:
        return cls(key=key, value=AttributeValue.of(value))


# =============================================================================
# Search-result Trace (geo-reader view)
# =============================================================================


class TempoSpan(BaseModel):
    """Span inside a search-result span set."""

    model_config = ConfigDict(populate_by_name=True)

    span_id: str = Field(default="", alias="spanID")
    name: str | None = None
    start_time_unix_nano: str | None = Field(default=None, alias="startTimeUnixNano")
    duration_nanos: str | None = Field(default=None, alias="durationNanos")
    attributes: Annotated[list[SpanAttribute], EmptyIfNone] = Field(default_factory=list)


class TempoSpanSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    spans: Annotated[list[TempoSpan], EmptyIfNone] = Field(default_factory=list)
    matched: int = 0


class TempoTrace(BaseModel):
    """Search-result trace narrowed to what geo extraction reads.

    Accepts the legacy ``spanSet`` object as well as the ``spanSets`` list,
    of which only the first entry is kept.
    """

    model_config = ConfigDict(populate_by_name=True)

    trace_id: str = Field(alias="traceID")
    root_service_name: str | None = Field(default=None, alias="rootServiceName")
    root_trace_name: str | None = Field(default=None, alias="rootTraceName")
    start_time_unix_nano: str | None = Field(default=None, alias="startTimeUnixNano")
    duration_ms: float | None = Field(default=None, alias="durationMs")
    span_set: TempoSpanSet | None = Field(default=None, alias="spanSet")

    @model_validator(mode="before")
    @classmethod
    def _first_of_span_sets(cls, data: Any) -> Any:
        """Take the first entry of ``spanSets`` when ``spanSet`` is absent."""
        if not isinstance(data, Mapping):
            return data
        if data.get("spanSet") is not None or data.get("span_set") is not None:
            return data
        span_sets = data.get("spanSets")
        if isinstance(span_sets, list) and span_sets:
            return {**data, "spanSet": span_sets[0]}
        return data

    @property
    def first_span(self) -> TempoSpan | None:
        """First span of the span set, the root span for geo purposes."""
        if self.span_set is None or not self.span_set.spans:
            return None
        return self.span_set.spans[0]


# =============================================================================
# Raw Trace (OTLP)
# =============================================================================


class OTLPSpan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    span_id: str = Field(default="", alias="spanId")
    trace_id: str = Field(default="", alias="traceId")
    name: str = ""
    start_time_unix_nano: str | None = Field(default=None, alias="startTimeUnixNano")
    end_time_unix_nano: str | None = Field(default=None, alias="endTimeUnixNano")
    attributes: Annotated[list[SpanAttribute], EmptyIfNone] = Field(default_factory=list)


class OTLPScopeSpans(BaseModel):
    spans: Annotated[list[OTLPSpan], EmptyIfNone] = Field(default_factory=list)


class OTLPBatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scope_spans: Annotated[list[OTLPScopeSpans], EmptyIfNone] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "scopeSpans", "instrumentationLibrarySpans", "scope_spans"
        ),
    )


class OTLPTraceResponse(BaseModel):
    """Body of ``GET /api/traces/{traceID}``."""

    batches: Annotated[list[OTLPBatch], EmptyIfNone] = Field(
        default_factory=list,
        validation_alias=AliasChoices("batches", "resourceSpans"),
    )

    def iter_spans(self) -> Iterator[OTLPSpan]:
        """Yield spans batch by batch, scope by scope, in document order."""
        for batch in self.batches:
            for scope_spans in batch.scope_spans:
                yield from scope_spans.spans


# =============================================================================
# Geo Location
# =============================================================================


class GeoSource(str, Enum):
    """Where a GeoLocation was found."""

    PRIMARY_SPAN = "primary-span"
    SECONDARY_SPAN = "secondary-span"


class GeoLocation(BaseModel):
    """Geographic origin of a trace. Immutable once built.

    Attributes:
        country: Country name, "Unknown" when the span did not carry one.
        country_code: ISO country code, if present.
        city: City name, if present.
        latitude: Latitude in degrees, within [-90, 90].
        longitude: Longitude in degrees, within [-180, 180].
        timezone: IANA timezone, if present.
        source: Span the data came from.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    country: str
    country_code: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None
    source: GeoSource
