# backend/src/quarry/config.py
"""Configuration system for the Quarry search service.

Settings come from an optional INI file plus a handful of environment
overrides. Every tunable lives in CONFIG_SCHEMA together with its default and
allowed range, so an invalid value fails at load time instead of at query time.
"""

from configparser import ConfigParser
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional
import os


class ConfigError(Exception):
    """Raised when configuration validation fails."""

    pass


# Schema: section -> key -> (type, default, min, max, description)
CONFIG_SCHEMA: dict[str, dict[str, tuple[type, Any, Any, Any, str]]] = {
    "search": {
        "min_query_length": (int, 2, 1, 50, "Shortest sanitized query accepted"),
        "max_query_length": (int, 200, 10, 1000, "Sanitized query truncation length"),
        "default_limit": (int, 20, 1, 100, "Page size when none is requested"),
        "max_limit": (int, 100, 1, 1000, "Largest page size a caller may request"),
        "max_results": (int, 100, 1, 5000, "Global result cap after merging types"),
        "per_type_limit": (int, 50, 1, 1000, "Candidates fetched per content type"),
        "timeout_ms": (int, 5000, 10, 120_000, "Per-type execution timeout"),
        "highlight_tokens": (int, 50, 1, 64, "Tokens of context in native snippets"),
        "snippet_max_length": (int, 200, 50, 1000, "Characters in fallback snippets"),
        "enable_fts": (bool, True, None, None, "Use the native FTS5 strategy when available"),
        "fallback_types": (str, "", None, None, "Content types forced onto LIKE matching"),
        "native_signal_weight": (
            float,
            1.0,
            0.0,
            10.0,
            "Weight of the normalized engine signal in the final score",
        ),
    },
    "index": {
        "max_pending_events": (int, 1000, 1, 1_000_000, "Per-type change queue bound"),
        "max_lag_ms": (int, 2000, 1, 3_600_000, "Documented staleness bound"),
        "rebuild_batch_size": (int, 500, 1, 100_000, "Rows copied per rebuild batch"),
    },
    "analytics": {
        "enabled": (bool, True, None, None, "Record search events"),
        "queue_size": (int, 10_000, 1, 1_000_000, "Bounded analytics queue size"),
        "batch_size": (int, 100, 1, 10_000, "Events persisted per batch"),
        "flush_interval_ms": (int, 500, 1, 60_000, "Max wait before a partial batch"),
        "retry_base_ms": (int, 100, 1, 60_000, "First persistence retry backoff"),
        "retry_max_ms": (int, 10_000, 1, 600_000, "Persistence retry backoff ceiling"),
        "zero_result_history": (int, 100, 1, 10_000, "Zero-result queries kept in memory"),
    },
    "suggestions": {
        "enabled": (bool, True, None, None, "Serve autocomplete suggestions"),
        "max_suggestions": (int, 10, 1, 100, "Suggestions returned per request"),
        "min_partial_length": (int, 2, 1, 50, "Shortest partial query answered"),
    },
}


@dataclass(frozen=True)
class SearchConfig:
    """Query planning and execution configuration."""

    min_query_length: int
    max_query_length: int
    default_limit: int
    max_limit: int
    max_results: int
    per_type_limit: int
    timeout_ms: int
    highlight_tokens: int
    snippet_max_length: int
    enable_fts: bool
    fallback_types: str
    native_signal_weight: float

    @property
    def fallback_type_set(self) -> frozenset[str]:
        """Content types configured to always use the fallback strategy."""
        return frozenset(t.strip() for t in self.fallback_types.split(",") if t.strip())


@dataclass(frozen=True)
class IndexConfig:
    """Index synchronization configuration."""

    max_pending_events: int
    max_lag_ms: int
    rebuild_batch_size: int


@dataclass(frozen=True)
class AnalyticsConfig:
    """Search analytics configuration."""

    enabled: bool
    queue_size: int
    batch_size: int
    flush_interval_ms: int
    retry_base_ms: int
    retry_max_ms: int
    zero_result_history: int


@dataclass(frozen=True)
class SuggestionsConfig:
    """Autocomplete configuration."""

    enabled: bool
    max_suggestions: int
    min_partial_length: int


def _coerce(typ: type, raw_value: str) -> Any:
    if typ is bool:
        return raw_value.strip().lower() in ("true", "1", "yes", "on")
    if typ is int:
        return int(raw_value)
    if typ is float:
        return float(raw_value)
    return raw_value


def _load_section(
    parser: ConfigParser, section: str, schema: dict[str, tuple[type, Any, Any, Any, str]]
) -> dict[str, Any]:
    """Load and validate a configuration section.

    Args:
        parser: ConfigParser instance with loaded config
        section: Section name to load
        schema: Schema definition for the section

    Returns:
        Dictionary of validated configuration values

    Raises:
        ConfigError: If validation fails
    """
    result = {}

    for key, (typ, default, min_val, max_val, _) in schema.items():
        if parser.has_option(section, key):
            raw_value = parser.get(section, key)
            try:
                value = _coerce(typ, raw_value)
            except ValueError as e:
                raise ConfigError(
                    f"Invalid value for [{section}].{key}: {raw_value!r} (expected {typ.__name__})"
                ) from e
        else:
            value = default

        # bool is a subclass of int; only range-check real numbers
        if typ in (int, float) and value is not None:
            if min_val is not None and value < min_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but minimum is {min_val}"
                )
            if max_val is not None and value > max_val:
                raise ConfigError(
                    f"Value for [{section}].{key} is {value}, but maximum is {max_val}"
                )

        result[key] = value

    return result


def _defaults(section: str) -> dict[str, Any]:
    return {key: default for key, (_, default, _, _, _) in CONFIG_SCHEMA[section].items()}


@dataclass(frozen=True)
class Config:
    """Complete service configuration."""

    data_dir: Path = None  # type: ignore[assignment]  # Set in __post_init__ if None
    search: SearchConfig = None  # type: ignore[assignment]
    index: IndexConfig = None  # type: ignore[assignment]
    analytics: AnalyticsConfig = None  # type: ignore[assignment]
    suggestions: SuggestionsConfig = None  # type: ignore[assignment]

    def __post_init__(self):
        """Initialize section configs with defaults if not provided."""
        # Since frozen=True, we need to use object.__setattr__
        if self.data_dir is None:
            object.__setattr__(self, "data_dir", Path.home() / ".quarry")
        if self.search is None:
            object.__setattr__(self, "search", SearchConfig(**_defaults("search")))
        if self.index is None:
            object.__setattr__(self, "index", IndexConfig(**_defaults("index")))
        if self.analytics is None:
            object.__setattr__(self, "analytics", AnalyticsConfig(**_defaults("analytics")))
        if self.suggestions is None:
            object.__setattr__(self, "suggestions", SuggestionsConfig(**_defaults("suggestions")))

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database holding the index and search analytics."""
        return self.data_dir / "quarry.db"

    @property
    def config_path(self) -> Path:
        """Default location of the INI config file."""
        return self.data_dir / "config.ini"


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[dict[str, dict[str, str]]] = None,
    data_dir: Optional[Path] = None,
) -> Config:
    """Load configuration from an INI file plus string overrides.

    Args:
        config_path: Path to config file. If None or missing, schema defaults apply.
        overrides: section -> key -> raw string value, applied on top of the file.
        data_dir: Data directory for the database.

    Returns:
        Config object with all sections populated.

    Raises:
        ConfigError: If validation fails.
    """
    parser = ConfigParser()

    if config_path and config_path.exists():
        parser.read(config_path)

    for section, values in (overrides or {}).items():
        if section not in CONFIG_SCHEMA:
            raise ConfigError(f"Unknown config section: [{section}]")
        if not parser.has_section(section):
            parser.add_section(section)
        for key, raw_value in values.items():
            parser.set(section, key, raw_value)

    return Config(
        data_dir=data_dir,  # type: ignore[arg-type]
        search=SearchConfig(**_load_section(parser, "search", CONFIG_SCHEMA["search"])),
        index=IndexConfig(**_load_section(parser, "index", CONFIG_SCHEMA["index"])),
        analytics=AnalyticsConfig(
            **_load_section(parser, "analytics", CONFIG_SCHEMA["analytics"])
        ),
        suggestions=SuggestionsConfig(
            **_load_section(parser, "suggestions", CONFIG_SCHEMA["suggestions"])
        ),
    )


# Environment variable -> (section, key). Kept for parity with deployments that
# only toggle behaviour through the process environment.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "QUARRY_ENABLE_FTS": ("search", "enable_fts"),
    "QUARRY_MIN_QUERY_LENGTH": ("search", "min_query_length"),
    "QUARRY_MAX_RESULTS": ("search", "max_results"),
    "QUARRY_FALLBACK_TYPES": ("search", "fallback_types"),
    "QUARRY_SEARCH_ANALYTICS": ("analytics", "enabled"),
    "QUARRY_SEARCH_SUGGESTIONS": ("suggestions", "enabled"),
    "QUARRY_MAX_SUGGESTIONS": ("suggestions", "max_suggestions"),
}


@lru_cache(maxsize=1)
def load_settings() -> Config:
    """Load settings from environment variables and config file.

    Settings are cached for the lifetime of the application.
    Use load_settings.cache_clear() to reload settings.

    Returns:
        Config object populated from environment variables and config file.
    """
    data_dir_str = os.getenv("QUARRY_DATA_DIR")
    data_dir = Path(data_dir_str) if data_dir_str else Path.home() / ".quarry"

    config_str = os.getenv("QUARRY_CONFIG")
    config_file = Path(config_str) if config_str else data_dir / "config.ini"
    try:
        config_exists = config_file.exists()
    except PermissionError:
        config_exists = False

    overrides: dict[str, dict[str, str]] = {}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        raw_value = os.getenv(env_name)
        if raw_value is not None:
            overrides.setdefault(section, {})[key] = raw_value

    return load_config(
        config_file if config_exists else None,
        overrides=overrides,
        data_dir=data_dir,
    )


# Alias for code that imports Settings instead of Config
Settings = Config
