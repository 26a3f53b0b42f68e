"""pytest configuration and fixtures for tempo-utils tests.

Provides a mocked Tempo backend (httpx.MockTransport), a recording logger
and a fake clock. The process-wide configuration and structlog state are
reset around every test.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from tempo_utils.core.config import reset_tempo_utils_config
from tempo_utils.core.logging import reset_logging


# =============================================================================
# Constants
# =============================================================================

TEST_TEMPO_URL = "http://tempo.test:3200"
QUERY_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
QUERY_END = QUERY_START + timedelta(hours=1)


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external dependencies)")


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Start every test unconfigured, without TEMPO_* variables."""
    for var in ("TEMPO_ENDPOINT", "TEMPO_URL", "TEMPO_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    reset_tempo_utils_config()
    reset_logging()
    yield
    reset_tempo_utils_config()
    reset_logging()


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def mock_logger() -> MagicMock:
    """Logger recording every call (debug/info/warning/error)."""
    return MagicMock(spec=["debug", "info", "warning", "error"])


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Mock Tempo Backend
# =============================================================================


Handler = Callable[[httpx.Request], Any]


class TempoBackend:
    """Records requests and answers them with a swappable handler."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Handler = lambda request: httpx.Response(404)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    def json_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def tempo_backend() -> TempoBackend:
    return TempoBackend()


@pytest.fixture
async def tempo_client(tempo_backend: TempoBackend) -> AsyncGenerator[httpx.AsyncClient, None]:
    """AsyncClient routed to the mock backend."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(tempo_backend)) as client:
        yield client


# =============================================================================
# Payload Builders
# =============================================================================


def search_response(trace_ids: list[str] | None = None) -> dict[str, Any]:
    """Tempo /api/search body with one span per trace."""
    return {
        "traces": [
            {
                "traceID": trace_id,
                "rootServiceName": "stonewall-sveltekit",
                "rootTraceName": "HTTP GET /admin/security",
                "startTimeUnixNano": "1704110400000000000",
                "durationMs": 42,
                "spanSets": [
                    {
                        "spans": [
                            {
                                "spanID": f"{trace_id}-span",
                                "name": "HTTP GET /admin/security",
                                "startTimeUnixNano": "1704110400000000000",
                                "durationNanos": "42000000",
                                "attributes": [
                                    {"key": "http.status_code", "value": {"intValue": "500"}},
                                ],
                            }
                        ],
                        "matched": 1,
                    }
                ],
            }
            for trace_id in (trace_ids or [])
        ],
        "metrics": {
            "inspectedTraces": 120,
            "inspectedSpans": 480,
            "inspectedBytes": "65536",
        },
    }


def string_attr(key: str, value: str) -> dict[str, Any]:
    return {"key": key, "value": {"stringValue": value}}
