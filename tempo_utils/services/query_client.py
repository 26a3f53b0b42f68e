"""Tempo TraceQL HTTP query client.

Sends TraceQL queries to Tempo's search API and returns typed results.
Logger, base URL and performance tracker come from the tempo-utils
configuration, read on every call.

Failure classification:
    InvalidLimitError     limit outside [1, 1000], raised before any I/O
    QueryTimeoutError     no answer within 30s
    TempoFetchError       transport failure (DNS, refused connection, ...)
    QueryFailedError      Tempo answered with a non-success status
    UnexpectedQueryError  anything else (e.g. malformed response body)

Example:
    result = await query_traceql(
        '{ span.http.method = "POST" && span.http.status_code >= 500 }',
        datetime.now(timezone.utc) - timedelta(days=1),
        datetime.now(timezone.utc),
        limit=100,
    )
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from tempo_utils.core.config import TempoUtilsConfig, resolve_config
from tempo_utils.core.constants import (
    DEFAULT_QUERY_LIMIT,
    DEFAULT_TIMEOUT_S,
    ERROR_BODY_PREVIEW_CHARS,
    MAX_QUERY_LIMIT,
    MIN_QUERY_LIMIT,
    NANOS_PER_MILLI,
    SEARCH_PATH,
)
from tempo_utils.core.exceptions import (
    InvalidLimitError,
    QueryFailedError,
    QueryTimeoutError,
    TempoFetchError,
    TempoUtilsError,
    UnexpectedQueryError,
)
from tempo_utils.core.logging import TempoUtilsLogger
from tempo_utils.models.traceql import TraceQLResult
from tempo_utils.observability.tracing import client_span, inject_trace_context
from tempo_utils.services.performance import QueryExecution, QueryPerformanceTracker

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# Helpers
# =============================================================================


def to_unix_nanos(moment: datetime) -> int:
    """Convert a datetime to Tempo's nanosecond timestamp (millisecond precision).

    Naive datetimes are interpreted as local time.
    """
    if moment.tzinfo is None:
        moment = moment.astimezone(timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1) * NANOS_PER_MILLI


def _error_text(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _failure_message(response: httpx.Response) -> str:
    """Build the QueryFailedError message from a non-success response.

    Prefers the ``error``/``message`` field of a JSON body; a short non-JSON
    body is appended verbatim.
    """
    body = response.text
    message = f"Tempo query failed: {response.status_code} {response.reason_phrase}"

    try:
        payload = json.loads(body)
    except ValueError:
        if body and len(body) < ERROR_BODY_PREVIEW_CHARS:
            message += f" - {body}"
        return message

    if isinstance(payload, dict):
        detail = payload.get("error") or payload.get("message")
        if detail:
            message = f"Tempo query failed: {detail}"
    return message


def _hash_query(
    tracker: QueryPerformanceTracker | None,
    query: str,
    logger: TempoUtilsLogger,
) -> str:
    if tracker is None:
        return ""
    try:
        return tracker.hash_query(query)
    except Exception as e:
        logger.warning("Query hashing failed", {"error": _error_text(e)})
        return ""


def _record_execution(
    tracker: QueryPerformanceTracker | None,
    execution: QueryExecution,
    logger: TempoUtilsLogger,
) -> None:
    if tracker is None:
        return
    try:
        tracker.record_query_execution(execution)
    except Exception as e:
        logger.warning(
            "Recording query execution failed",
            {"query_hash": execution.query_hash, "error": _error_text(e)},
        )


async def _post_search(
    client: httpx.AsyncClient | None,
    url: str,
    body: dict[str, Any],
) -> httpx.Response:
    headers = inject_trace_context({"Content-Type": "application/json"})
    if client is not None:
        return await client.post(url, json=body, headers=headers, timeout=DEFAULT_TIMEOUT_S)
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_S) as owned_client:
        return await owned_client.post(url, json=body, headers=headers)


# =============================================================================
# Query Executor
# =============================================================================


async def query_traceql(
    query: str,
    start: datetime,
    end: datetime,
    limit: int = DEFAULT_QUERY_LIMIT,
    *,
    config: TempoUtilsConfig | None = None,
    client: httpx.AsyncClient | None = None,
) -> TraceQLResult:
    """Query Tempo's TraceQL search API.

    Args:
        query: TraceQL query (e.g. '{ resource.fingerprint_id = "abc123" }').
        start: Start of the time range (inclusive).
        end: End of the time range (inclusive).
        limit: Maximum number of traces to return (1-1000, default 20).
        config: Configuration to use instead of the process-wide one.
        client: HTTP client to send the request with. A short-lived client
            is opened when omitted.

    Returns:
        Matching traces with execution metrics.

    Raises:
        InvalidLimitError: limit outside [1, 1000].
        QueryTimeoutError: Tempo did not answer within 30 seconds.
        TempoFetchError: Transport failure.
        QueryFailedError: Tempo returned a non-success status.
        UnexpectedQueryError: Any other failure, e.g. a malformed body.
    """
    cfg = resolve_config(config)
    logger = cfg.resolved_logger()
    tracker = cfg.query_performance_tracker
    url = f"{cfg.resolved_base_url()}{SEARCH_PATH}"

    if limit < MIN_QUERY_LIMIT or limit > MAX_QUERY_LIMIT:
        raise InvalidLimitError(
            f"Invalid limit: {limit}. Must be between {MIN_QUERY_LIMIT} and {MAX_QUERY_LIMIT}.",
            limit=limit,
        )

    request_body = {
        "query": query,
        "start": to_unix_nanos(start),
        "end": to_unix_nanos(end),
        "limit": limit,
    }

    query_hash = _hash_query(tracker, query, logger)
    start_time = datetime.now(timezone.utc)
    started = time.perf_counter()

    logger.debug(
        "Querying Tempo TraceQL",
        {
            "url": url,
            "query": query,
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
            "limit": limit,
            "time_range": f"{int((end - start).total_seconds())}s",
        },
    )

    span_attributes = {"tempo.query": query, "tempo.limit": limit, "tempo.url": url}
    with client_span("tempo.search", span_attributes) as span:
        try:
            response = await asyncio.wait_for(
                _post_search(client, url, request_body),
                timeout=DEFAULT_TIMEOUT_S,
            )

            if not response.is_success:
                logger.warning(
                    "Tempo query failed",
                    {
                        "url": url,
                        "query": query,
                        "status": response.status_code,
                        "status_text": response.reason_phrase,
                        "error_body": response.text,
                    },
                )
                raise QueryFailedError(
                    _failure_message(response),
                    status_code=response.status_code,
                    response_body=response.text,
                )

            try:
                result = TraceQLResult.model_validate(response.json())
            except ValueError as e:
                raise UnexpectedQueryError(
                    f"Tempo query error: malformed response body ({_error_text(e)})"
                ) from e

        except Exception as e:
            end_time = datetime.now(timezone.utc)
            error = _classify_failure(e, url, query, logger)
            _record_execution(
                tracker,
                QueryExecution(
                    query_hash=query_hash,
                    query=query,
                    execution_time_ms=(time.perf_counter() - started) * 1000,
                    result_count=0,
                    start_time=start_time,
                    end_time=end_time,
                    success=False,
                    error_message=error.message,
                ),
                logger,
            )
            if error is e:
                raise
            raise error from e

        end_time = datetime.now(timezone.utc)
        execution_time_ms = (time.perf_counter() - started) * 1000
        span.set_attribute("tempo.result_count", len(result.traces))

    logger.debug(
        "Tempo query succeeded",
        {
            "url": url,
            "query": query,
            "traces_found": len(result.traces),
            "inspected_traces": result.metrics.inspected_traces,
            "inspected_spans": result.metrics.inspected_spans,
            "inspected_bytes": result.metrics.inspected_bytes,
            "execution_time_ms": execution_time_ms,
        },
    )

    _record_execution(
        tracker,
        QueryExecution(
            query_hash=query_hash,
            query=query,
            execution_time_ms=execution_time_ms,
            result_count=len(result.traces),
            start_time=start_time,
            end_time=end_time,
            success=True,
        ),
        logger,
    )

    return result


def _classify_failure(
    error: Exception,
    url: str,
    query: str,
    logger: TempoUtilsLogger,
) -> TempoUtilsError:
    """Map a raw failure onto the tempo-utils error taxonomy and log it."""
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        logger.error(
            "Tempo query timeout",
            {
                "url": url,
                "query": query,
                "timeout_s": DEFAULT_TIMEOUT_S,
                "error": f"Query exceeded {DEFAULT_TIMEOUT_S:g} second timeout",
            },
        )
        return QueryTimeoutError(
            f"Tempo query timeout: Query exceeded {DEFAULT_TIMEOUT_S:g}s timeout",
            timeout_s=DEFAULT_TIMEOUT_S,
        )

    if isinstance(error, httpx.TransportError):
        logger.error(
            "Tempo fetch error",
            {"url": url, "query": query, "error": _error_text(error)},
        )
        return TempoFetchError(f"Tempo fetch error: {_error_text(error)}", url=url)

    if isinstance(error, TempoUtilsError):
        logger.error(
            "Tempo query error",
            {"url": url, "query": query, "error": error.message},
        )
        return error

    logger.error(
        "Tempo query error",
        {"url": url, "query": query, "error": _error_text(error)},
    )
    return UnexpectedQueryError(f"Tempo query error: {_error_text(error)}")


# =============================================================================
# Query Builders
# =============================================================================


def _quote(value: str) -> str:
    """Escape a value for use inside a double-quoted TraceQL string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_fingerprint_query(fingerprint_id: str) -> str:
    return f'{{ resource.fingerprint_id = "{_quote(fingerprint_id)}" }}'


def build_session_query(session_id: str) -> str:
    return f'{{ resource.session_id = "{_quote(session_id)}" }}'


def build_status_code_query(min_status: int, max_status: int | None = None) -> str:
    """Range filter when ``max_status`` is given, equality filter otherwise."""
    if max_status is not None:
        return (
            f"{{ span.http.status_code >= {min_status} "
            f"&& span.http.status_code <= {max_status} }}"
        )
    return f"{{ span.http.status_code = {min_status} }}"


async def query_traces_by_fingerprint(
    fingerprint_id: str,
    start: datetime,
    end: datetime,
    limit: int = DEFAULT_QUERY_LIMIT,
    **kwargs: Any,
) -> TraceQLResult:
    """Query traces for a browser fingerprint (user journey through the app).

    Args:
        fingerprint_id: Browser fingerprint ID (e.g. "fp_abc123xyz").
        start: Start of the time range.
        end: End of the time range.
        limit: Maximum traces to return (default 20).
        **kwargs: ``config`` / ``client``, passed to query_traceql.
    """
    return await query_traceql(
        build_fingerprint_query(fingerprint_id), start, end, limit, **kwargs
    )


async def query_traces_by_session(
    session_id: str,
    start: datetime,
    end: datetime,
    limit: int = DEFAULT_QUERY_LIMIT,
    **kwargs: Any,
) -> TraceQLResult:
    """Query traces within one user session."""
    return await query_traceql(
        build_session_query(session_id), start, end, limit, **kwargs
    )


async def query_traces_by_status_code(
    min_status: int,
    max_status: int | None,
    start: datetime,
    end: datetime,
    limit: int = DEFAULT_QUERY_LIMIT,
    **kwargs: Any,
) -> TraceQLResult:
    """Query traces by HTTP status code.

    Args:
        min_status: Minimum status code (inclusive), or the exact code when
            ``max_status`` is None.
        max_status: Maximum status code (inclusive), or None.
        start: Start of the time range.
        end: End of the time range.
        limit: Maximum traces to return (default 20).
        **kwargs: ``config`` / ``client``, passed to query_traceql.

    Example:
        errors = await query_traces_by_status_code(500, 599, hour_ago, now)
    """
    return await query_traceql(
        build_status_code_query(min_status, max_status), start, end, limit, **kwargs
    )
