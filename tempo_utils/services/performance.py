"""Query performance tracking.

The query executor reports one QueryExecution per call to an optional
QueryPerformanceTracker. Applications bring their own tracker (a metrics
exporter, a database table, ...); InMemoryQueryPerformanceTracker is a
bounded in-process implementation useful for dashboards and tests.
"""

from __future__ import annotations

import hashlib
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class QueryExecution:
    """One query execution, successful or not.

    Attributes:
        query_hash: Opaque identifier of the query text.
        query: Raw TraceQL text.
        execution_time_ms: Wall-clock time of the call.
        result_count: Number of traces returned (0 on failure).
        start_time: When the call started.
        end_time: When the call finished.
        success: Whether Tempo returned a result.
        error_message: Error message on failure.
    """

    query_hash: str
    query: str
    execution_time_ms: float
    result_count: int
    start_time: datetime
    end_time: datetime
    success: bool
    error_message: str | None = None


@runtime_checkable
class QueryPerformanceTracker(Protocol):
    """Sink for query execution records."""

    def hash_query(self, query: str) -> str:
        """Map a query string to an opaque identifier."""
        ...

    def record_query_execution(self, execution: QueryExecution) -> None:
        """Record one execution."""
        ...


def hash_query(query: str) -> str:
    """Stable short identifier for a query (first 16 hex chars of SHA-256)."""
    return hashlib.sha256(query.encode()).hexdigest()[:16]


class InMemoryQueryPerformanceTracker:
    """Keeps the most recent executions in memory.

    Example:
        tracker = InMemoryQueryPerformanceTracker()
        configure_tempo_utils(query_performance_tracker=tracker)
        ...
        tracker.stats()
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self._executions: deque[QueryExecution] = deque(maxlen=max_entries)

    @property
    def executions(self) -> list[QueryExecution]:
        """Recorded executions, oldest first."""
        return list(self._executions)

    def hash_query(self, query: str) -> str:
        return hash_query(query)

    def record_query_execution(self, execution: QueryExecution) -> None:
        self._executions.append(execution)

    def stats(self, query_hash: str | None = None) -> dict[str, Any]:
        """Aggregate the recorded executions.

        Args:
            query_hash: Restrict to one query.

        Returns:
            count, success_count, failure_count and avg_execution_time_ms.
        """
        selected = [
            e for e in self._executions
            if query_hash is None or e.query_hash == query_hash
        ]
        success_count = sum(1 for e in selected if e.success)
        avg = (
            sum(e.execution_time_ms for e in selected) / len(selected)
            if selected
            else 0.0
        )
        return {
            "count": len(selected),
            "success_count": success_count,
            "failure_count": len(selected) - success_count,
            "avg_execution_time_ms": avg,
        }

    def clear(self) -> None:
        self._executions.clear()
