"""Logging for tempo-utils.

Two layers:

- TempoUtilsLogger is the narrow interface the library logs through. It is
  injected via configure_tempo_utils(); NoopLogger is used when nothing is
  injected, so the library stays silent unless asked.
- configure_logging()/get_logger() set up structlog with JSON output, and
  StructlogLogger adapts it to TempoUtilsLogger for applications that want
  the library's log lines.

Patterns applied:
- Singleton _configured flag prevents reconfiguration
- configure_logging() called ONCE at startup (force=True for tests)
- Underscore-prefix for unused structlog params
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from typing import Any, Protocol, TextIO, runtime_checkable

import structlog


# =============================================================================
# Logger Interface
# =============================================================================


@runtime_checkable
class TempoUtilsLogger(Protocol):
    """Severity-leveled logger taking a message and optional metadata."""

    def debug(self, msg: str, meta: Mapping[str, Any] | None = None) -> None: ...

    def info(self, msg: str, meta: Mapping[str, Any] | None = None) -> None: ...

    def warning(self, msg: str, meta: Mapping[str, Any] | None = None) -> None: ...

    def error(self, msg: str, meta: Mapping[str, Any] | None = None) -> None: ...


class NoopLogger:
    """Discards everything. Default when no logger is configured."""

    def debug(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        pass

    def info(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        pass

    def warning(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        pass

    def error(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        pass


NOOP_LOGGER = NoopLogger()


# =============================================================================
# Singleton Configuration State
# =============================================================================
_configured: bool = False


def _level_to_int(level: str) -> int:
    """Convert log level string to integer.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        Integer log level for structlog filtering.
    """
    levels = {
        "DEBUG": 10,
        "INFO": 20,
        "WARNING": 30,
        "ERROR": 40,
        "CRITICAL": 50,
    }
    return levels.get(level.upper(), 20)


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    force: bool = False,
) -> None:
    """Configure structlog ONCE.

    Subsequent calls are no-ops unless force=True (for testing).

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Output stream. Defaults to sys.stdout.
        force: Force reconfiguration (for testing only).
    """
    global _configured

    if _configured and not force:
        return

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_to_int(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stdout),
        cache_logger_on_first_use=False,
    )

    _configured = True


def reset_logging() -> None:
    """Reset configuration state for test isolation."""
    global _configured
    _configured = False


def get_logger(name: str) -> Any:
    """Get configured structlog logger by name.

    Auto-configures with defaults if not already configured.

    Args:
        name: Logger name (typically __name__ of the module).

    Returns:
        Configured structlog BoundLogger instance.
    """
    configure_logging()  # No-op if already configured
    return structlog.get_logger().bind(logger=name)


# =============================================================================
# structlog Adapter
# =============================================================================


class StructlogLogger:
    """TempoUtilsLogger backed by structlog.

    The message becomes the structlog event and the metadata mapping is
    passed through as key/value pairs.

    Example:
        configure_tempo_utils(logger=StructlogLogger(level="DEBUG"))
    """

    def __init__(self, name: str = "tempo_utils", level: str | None = None) -> None:
        """Initialize the adapter.

        Args:
            name: Logger name bound on every event.
            level: If given, (re)configures structlog with this level.
        """
        if level is not None:
            configure_logging(level=level, force=True)
        self._logger = get_logger(name)

    def debug(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        self._logger.debug(msg, **dict(meta or {}))

    def info(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        self._logger.info(msg, **dict(meta or {}))

    def warning(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        self._logger.warning(msg, **dict(meta or {}))

    def error(self, msg: str, meta: Mapping[str, Any] | None = None) -> None:
        self._logger.error(msg, **dict(meta or {}))
