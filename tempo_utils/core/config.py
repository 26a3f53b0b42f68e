"""Configuration for tempo-utils.

Two sources feed the configuration:

- Settings: TEMPO_* environment variables, loaded with pydantic-settings.
- TempoUtilsConfig: collaborators injected by the application (logger,
  performance tracker, base URL, API key). It is immutable; the process-wide
  registry holds one instance and swaps it on every configure call.

Every operation that needs configuration accepts an explicit
``config: TempoUtilsConfig | None``. When it is omitted the registry is read
at call time, so reconfiguration takes effect on the next call.

Base URL resolution order:
    explicit override > injected tempo_base_url > TEMPO_ENDPOINT > TEMPO_URL
    > hardcoded default

Patterns applied:
- pydantic-settings BaseSettings with env_prefix
- @lru_cache for the Settings singleton
- PEP 604 union syntax (X | None)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from pydantic import Field
from pydantic_settings import BaseSettings

from tempo_utils.core.constants import DEFAULT_TEMPO_URL
from tempo_utils.core.exceptions import ConfigurationError
from tempo_utils.core.logging import NOOP_LOGGER, TempoUtilsLogger

if TYPE_CHECKING:
    from tempo_utils.services.performance import QueryPerformanceTracker


# =============================================================================
# Environment Settings
# =============================================================================


class Settings(BaseSettings):
    """Settings loaded from TEMPO_* environment variables.

    Attributes:
        endpoint: TEMPO_ENDPOINT, preferred backend URL.
        url: TEMPO_URL, fallback backend URL.
        api_key: TEMPO_API_KEY.
    """

    endpoint: str | None = Field(
        default=None,
        description="Tempo base URL (TEMPO_ENDPOINT)",
    )
    url: str | None = Field(
        default=None,
        description="Tempo base URL fallback (TEMPO_URL)",
    )
    api_key: str | None = Field(
        default=None,
        description="Tempo API key (TEMPO_API_KEY)",
    )

    model_config = {
        "env_prefix": "TEMPO_",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get singleton Settings instance.

    Returns:
        Cached Settings instance. Cleared by reset_tempo_utils_config().
    """
    return Settings()


# =============================================================================
# Injected Configuration
# =============================================================================


@dataclass(frozen=True)
class TempoUtilsConfig:
    """Immutable collaborator configuration.

    Attributes:
        logger: Logger the library writes to. NoopLogger when unset.
        tempo_base_url: Tempo base URL, overrides the environment.
        tempo_api_key: API key. Carried for callers; no request sends it.
        query_performance_tracker: Optional sink for query execution records.
    """

    logger: TempoUtilsLogger | None = None
    tempo_base_url: str | None = None
    tempo_api_key: str | None = None
    query_performance_tracker: QueryPerformanceTracker | None = None

    def merged(self, other: TempoUtilsConfig) -> TempoUtilsConfig:
        """Return a copy with every field that is set on ``other`` applied."""
        changes = {
            f.name: getattr(other, f.name)
            for f in dataclasses.fields(other)
            if getattr(other, f.name) is not None
        }
        return dataclasses.replace(self, **changes)

    def resolved_logger(self) -> TempoUtilsLogger:
        return self.logger if self.logger is not None else NOOP_LOGGER

    def resolved_base_url(
        self,
        override: str | None = None,
        default: str = DEFAULT_TEMPO_URL,
    ) -> str:
        """Resolve the Tempo base URL.

        Args:
            override: Per-call or per-instance URL, wins over everything.
            default: Used when nothing else is set.

        Returns:
            Base URL without trailing slash.
        """
        settings = get_settings()
        url = (
            override
            or self.tempo_base_url
            or settings.endpoint
            or settings.url
            or default
        )
        return url.rstrip("/")

    def resolved_api_key(self) -> str | None:
        return self.tempo_api_key or get_settings().api_key


# =============================================================================
# Process-wide Registry
# =============================================================================

_config: TempoUtilsConfig = TempoUtilsConfig()

_CONFIG_FIELDS = frozenset(f.name for f in dataclasses.fields(TempoUtilsConfig))


def configure_tempo_utils(
    config: TempoUtilsConfig | None = None,
    **fields: Any,
) -> TempoUtilsConfig:
    """Merge new values into the process-wide configuration.

    Later calls win on overlapping fields; fields left unset keep their
    current value. A keyword argument is applied as given, so passing
    ``None`` clears that field. Fields of ``config`` that are None are
    treated as unset.

    Args:
        config: Values to merge.
        **fields: TempoUtilsConfig fields to set; None clears a field.

    Returns:
        The new process-wide configuration.

    Raises:
        ConfigurationError: If an unknown field is passed.

    Example:
        configure_tempo_utils(logger=StructlogLogger(), tempo_base_url="http://tempo:3200")
    """
    global _config

    unknown = set(fields) - _CONFIG_FIELDS
    if unknown:
        name = sorted(unknown)[0]
        raise ConfigurationError(
            f"Unknown tempo-utils setting: {name}", setting=name
        )

    updated = _config
    if config is not None:
        updated = updated.merged(config)
    if fields:
        updated = dataclasses.replace(updated, **fields)
    _config = updated
    return _config


def get_tempo_utils_config() -> TempoUtilsConfig:
    """Get the current process-wide configuration."""
    return _config


def reset_tempo_utils_config() -> None:
    """Clear the process-wide configuration and the cached environment."""
    global _config
    _config = TempoUtilsConfig()
    get_settings.cache_clear()


def resolve_config(config: TempoUtilsConfig | None) -> TempoUtilsConfig:
    """Use ``config`` when given, otherwise the current registry value."""
    return config if config is not None else _config


# =============================================================================
# Accessors
# =============================================================================


def get_tempo_logger() -> TempoUtilsLogger:
    """Get the configured logger, or the no-op logger."""
    return _config.resolved_logger()


def get_tempo_base_url(default: str = DEFAULT_TEMPO_URL) -> str:
    """Get the Tempo base URL (config > TEMPO_ENDPOINT > TEMPO_URL > default)."""
    return _config.resolved_base_url(default=default)


def get_tempo_api_key() -> str | None:
    """Get the configured API key, falling back to TEMPO_API_KEY."""
    return _config.resolved_api_key()


def get_query_performance_tracker() -> QueryPerformanceTracker | None:
    """Get the configured performance tracker, if any."""
    return _config.query_performance_tracker
