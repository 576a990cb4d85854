"""Tests for logger configuration."""

import logging

import pytest

from app.core.config import Settings
from app.core.logging import get_logger, resolve_level


def make_settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


def test_debug_flag_picks_level():
    assert resolve_level(make_settings(DEBUG=True)) == logging.DEBUG
    assert resolve_level(make_settings(DEBUG=False)) == logging.INFO


def test_log_level_overrides_debug():
    assert resolve_level(make_settings(DEBUG=True, LOG_LEVEL="warning")) == logging.WARNING


def test_unknown_level_rejected():
    with pytest.raises(ValueError):
        resolve_level(make_settings(LOG_LEVEL="chatty"))


def test_logger_uses_configured_format():
    config = make_settings(LOG_LEVEL="ERROR", LOG_FORMAT="%(levelname)s|%(message)s")

    logger = get_logger("autoclaim.tests.format", config)

    handler = logger.logger.handlers[0]
    assert logger.logger.level == logging.ERROR
    assert handler.formatter._fmt == "%(levelname)s|%(message)s"
