"""
Tests for configuration management in `health_insights/config.py`.

Covers:
- Environment parsing and debug defaults
- Logging level coercion to the expected Literal
- Priority action limit and care gap evaluation parsing
- get_config cache behavior
- AppConfig validation (debug only allowed in development)
- Logging setup
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
import structlog
from pydantic import ValidationError

from health_insights.config import (
    AppConfig,
    EngineConfig,
    LoggingConfig,
    configure_logging,
    get_config,
    load_config_from_env,
)


@pytest.fixture(autouse=True)
def clear_config_cache() -> Iterator[None]:
    """Ensure get_config cache is cleared before and after each test."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ("ENVIRONMENT", "LOG_LEVEL", "PRIORITY_ACTION_LIMIT", "EVALUATE_CARE_GAPS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_load_config_dev_defaults(clean_env: pytest.MonkeyPatch) -> None:
    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.logging.level == "INFO"
    assert config.engine.priority_action_limit == 3
    assert config.engine.evaluate_care_gaps is True


def test_production_uses_json_logs(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("ENVIRONMENT", "prod")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"


def test_logging_level_literal_coercion(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("ENVIRONMENT", "staging")

    # Unknown level should coerce to INFO
    clean_env.setenv("LOG_LEVEL", "unknown")
    assert load_config_from_env().logging.level == "INFO"

    clean_env.setenv("LOG_LEVEL", "error")
    assert load_config_from_env().logging.level == "ERROR"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("", 3), ("5", 5), ("0", 0), ("none", None), ("ALL", None)],
)
def test_priority_action_limit_parsing(
    clean_env: pytest.MonkeyPatch, raw: str, expected: int | None
) -> None:
    clean_env.setenv("PRIORITY_ACTION_LIMIT", raw)

    assert load_config_from_env().engine.priority_action_limit == expected


def test_negative_priority_action_limit_fails_fast(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("PRIORITY_ACTION_LIMIT", "-1")

    with pytest.raises(ValidationError):
        load_config_from_env()


def test_evaluate_care_gaps_boolean_parsing(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("EVALUATE_CARE_GAPS", "false")
    assert load_config_from_env().engine.evaluate_care_gaps is False

    clean_env.setenv("EVALUATE_CARE_GAPS", "yes")
    assert load_config_from_env().engine.evaluate_care_gaps is True


def test_get_config_cache(clean_env: pytest.MonkeyPatch) -> None:
    c1 = get_config()
    c2 = get_config()
    assert c1 is c2  # same object due to lru_cache


def test_app_config_debug_only_in_dev_validation() -> None:
    with pytest.raises(ValueError, match="debug mode is only allowed"):
        AppConfig(environment="production", debug=True)


def test_engine_config_defaults() -> None:
    config = EngineConfig()

    assert config.priority_action_limit == 3
    assert config.evaluate_care_gaps is True


@pytest.mark.parametrize("log_format", ["json", "console"])
def test_configure_logging(log_format: str) -> None:
    configure_logging(LoggingConfig(level="DEBUG", format=log_format))  # type: ignore[arg-type]

    logger = structlog.get_logger("health_insights.test")
    logger.info("configured", format=log_format)

    structlog.reset_defaults()
