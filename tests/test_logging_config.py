"""
test_logging_config.py — Tests for shopsync/logging_config.py

Verifies Loguru setup and stdlib logging interception (the connectors and
services log through logging.getLogger). Uses a loguru sink for assertions.

Called by: pytest
Depends on: shopsync/logging_config.py
"""

import logging
import os
from unittest.mock import patch

import pytest
from loguru import logger

from shopsync.logging_config import setup_logging


@pytest.fixture(autouse=True)
def _clean_loguru():
    """Remove all handlers before/after each test for isolation."""
    logger.remove()
    yield
    logger.remove()


def test_setup_logging_adds_handler():
    assert len(logger._core.handlers) == 0
    with patch.dict(os.environ, {"KEYSTONE_ENVIRONMENT": "development"}):
        setup_logging()
    assert len(logger._core.handlers) > 0


def test_stdlib_logging_intercepted():
    """After setup, stdlib logging.getLogger() messages go through Loguru."""
    with patch.dict(os.environ, {"KEYSTONE_ENVIRONMENT": "development"}):
        setup_logging()

    messages = []
    logger.add(lambda m: messages.append(str(m)), format="{message}")

    logging.getLogger("shopsync.connectors.keystone").warning("intercepted message")

    assert any("intercepted message" in m for m in messages)


def test_log_level_from_env():
    with patch.dict(os.environ, {"KEYSTONE_ENVIRONMENT": "development", "LOG_LEVEL": "WARNING"}):
        setup_logging()

    messages = []
    logger.add(lambda m: messages.append(str(m)), level="WARNING", format="{message}")

    logger.debug("should be filtered")
    logger.warning("should appear")

    assert any("should appear" in m for m in messages)
    assert not any("should be filtered" in m for m in messages)


def test_production_uses_json_lines(capsys):
    with patch.dict(os.environ, {"KEYSTONE_ENVIRONMENT": "production", "LOG_LEVEL": "INFO"}):
        setup_logging()
    logger.info("structured line")
    out = capsys.readouterr().out
    assert '"text"' in out
    assert "structured line" in out


def test_noisy_loggers_quieted():
    with patch.dict(os.environ, {"KEYSTONE_ENVIRONMENT": "development"}):
        setup_logging()
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("apscheduler").level == logging.WARNING
