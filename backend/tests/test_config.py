# backend/tests/test_config.py
"""Configuration tests.

Tests verify behavior (types, ranges, loading) not specific values.
"""

from pathlib import Path

import pytest

from quarry.config import (
    CONFIG_SCHEMA,
    Config,
    ConfigError,
    load_config,
    load_settings,
)


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Clear the load_settings cache before each test."""
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def write_config(directory: Path, content: str) -> Path:
    """Write a config.ini file to the directory and return the path."""
    config_path = directory / "config.ini"
    config_path.write_text(content)
    return config_path


# =============================================================================
# Type Validation Tests
# =============================================================================


def test_all_settings_have_correct_types():
    """Every setting matches its declared type from schema."""
    config = load_config(None)

    for section_name, keys in CONFIG_SCHEMA.items():
        section = getattr(config, section_name)
        for key, (expected_type, *_) in keys.items():
            value = getattr(section, key)
            assert isinstance(value, expected_type), (
                f"{section_name}.{key}: expected {expected_type.__name__}, "
                f"got {type(value).__name__}"
            )


def test_invalid_type_raises_clear_error(tmp_path: Path):
    """Non-numeric value for int setting gives helpful message."""
    config_path = write_config(tmp_path, "[search]\nmax_results = lots")

    with pytest.raises(ConfigError) as exc_info:
        load_config(config_path)

    assert "search" in str(exc_info.value)
    assert "max_results" in str(exc_info.value)
    assert "int" in str(exc_info.value)


def test_invalid_float_raises_clear_error(tmp_path: Path):
    """Non-numeric value for float setting gives helpful message."""
    config_path = write_config(tmp_path, "[search]\nnative_signal_weight = heavy")

    with pytest.raises(ConfigError) as exc_info:
        load_config(config_path)

    assert "native_signal_weight" in str(exc_info.value)
    assert "float" in str(exc_info.value)


# =============================================================================
# Range Validation Tests
# =============================================================================


def test_defaults_are_consistent():
    """Default values are within their declared ranges and ordered sensibly."""
    config = load_config(None)

    assert config.search.min_query_length <= config.search.max_query_length
    assert config.search.default_limit <= config.search.max_limit
    assert config.search.per_type_limit > 0
    assert config.index.max_pending_events > 0
    assert config.analytics.retry_base_ms <= config.analytics.retry_max_ms


def test_value_below_minimum_raises_error(tmp_path: Path):
    """Value below declared minimum raises ConfigError."""
    config_path = write_config(tmp_path, "[analytics]\nqueue_size = 0")

    with pytest.raises(ConfigError) as exc_info:
        load_config(config_path)

    assert "analytics" in str(exc_info.value)
    assert "queue_size" in str(exc_info.value)
    assert "minimum" in str(exc_info.value)


def test_value_above_maximum_raises_error(tmp_path: Path):
    """Value above declared maximum raises ConfigError."""
    config_path = write_config(tmp_path, "[search]\nhighlight_tokens = 500")

    with pytest.raises(ConfigError) as exc_info:
        load_config(config_path)

    assert "highlight_tokens" in str(exc_info.value)
    assert "maximum" in str(exc_info.value)


# =============================================================================
# Loading Behavior Tests
# =============================================================================


def test_missing_config_uses_defaults():
    """No config.ini file? All defaults load successfully."""
    config = load_config(None)

    assert config.search is not None
    assert config.index is not None
    assert config.analytics is not None
    assert config.suggestions is not None


def test_partial_config_merges_with_defaults(tmp_path: Path):
    """Config with only [search] still has [analytics] defaults."""
    config_path = write_config(tmp_path, "[search]\nenable_fts = false\nmax_results = 50")

    config = load_config(config_path)

    assert config.search.enable_fts is False
    assert config.search.max_results == 50
    assert config.analytics.batch_size > 0


def test_overrides_apply_on_top_of_file(tmp_path: Path):
    """String overrides win over the config file."""
    config_path = write_config(tmp_path, "[suggestions]\nmax_suggestions = 5")

    config = load_config(config_path, overrides={"suggestions": {"max_suggestions": "3"}})

    assert config.suggestions.max_suggestions == 3


def test_unknown_override_section_raises(tmp_path: Path):
    """Overrides for a section that does not exist are rejected."""
    with pytest.raises(ConfigError):
        load_config(None, overrides={"bogus": {"key": "1"}})


def test_fallback_types_are_parsed(tmp_path: Path):
    """Comma list of forced fallback types becomes a set."""
    config_path = write_config(tmp_path, "[search]\nfallback_types = files, chat ,")

    config = load_config(config_path)

    assert config.search.fallback_type_set == frozenset({"files", "chat"})


def test_default_config_fills_sections(tmp_path: Path):
    """Config() without arguments has every section populated."""
    config = Config(data_dir=tmp_path)

    assert config.db_path == tmp_path / "quarry.db"
    assert config.search.default_limit == CONFIG_SCHEMA["search"]["default_limit"][1]


# =============================================================================
# Environment Tests
# =============================================================================


def test_load_settings_reads_environment(tmp_path: Path, monkeypatch):
    """QUARRY_* variables select the data dir and override settings."""
    monkeypatch.setenv("QUARRY_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("QUARRY_ENABLE_FTS", "false")
    monkeypatch.setenv("QUARRY_MAX_SUGGESTIONS", "4")

    settings = load_settings()

    assert settings.data_dir == tmp_path
    assert settings.search.enable_fts is False
    assert settings.suggestions.max_suggestions == 4


def test_load_settings_reads_config_file(tmp_path: Path, monkeypatch):
    """QUARRY_CONFIG points at an INI file."""
    config_path = write_config(tmp_path, "[search]\nmin_query_length = 3")
    monkeypatch.setenv("QUARRY_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("QUARRY_CONFIG", str(config_path))

    settings = load_settings()

    assert settings.search.min_query_length == 3


def test_load_settings_is_cached(tmp_path: Path, monkeypatch):
    """Settings are cached until cache_clear()."""
    monkeypatch.setenv("QUARRY_DATA_DIR", str(tmp_path))

    assert load_settings() is load_settings()
