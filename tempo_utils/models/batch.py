"""Batch query models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tempo_utils.core.constants import DEFAULT_QUERY_LIMIT
from tempo_utils.models.traceql import TraceQLResult


class BatchQuery(BaseModel):
    """One query of a batch.

    Attributes:
        query: TraceQL text.
        start: Start of the time range (inclusive).
        end: End of the time range (inclusive).
        limit: Maximum traces to return. Validated by the executor, so an
            out-of-range limit fails that item only. None means the default (20).
    """

    query: str
    start: datetime
    end: datetime
    limit: int = DEFAULT_QUERY_LIMIT

    @field_validator("limit", mode="before")
    @classmethod
    def _default_limit(cls, value: Any) -> Any:
        return DEFAULT_QUERY_LIMIT if value is None else value


class BatchQueryItemResult(BaseModel):
    """Outcome of one batch item.

    Attributes:
        success: Whether the query succeeded.
        data: Query result (only if success).
        error: Error message (only if not success).
        execution_time_ms: Time from this item's dispatch to its completion.
    """

    success: bool
    data: TraceQLResult | None = None
    error: str | None = None
    execution_time_ms: float


class BatchQueryResult(BaseModel):
    """Aggregated batch outcome.

    Attributes:
        results: Item results in input order.
        total_execution_time_ms: Time from batch dispatch to the slowest item.
    """

    results: list[BatchQueryItemResult] = Field(default_factory=list)
    total_execution_time_ms: float

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count
