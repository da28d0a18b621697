"""Tests for structured logging setup."""

import json
import logging

import pytest
import structlog

from deal_kernel.logging_config import setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_json_mode(self, restore_logging, capsys):
        setup_logging(json_mode=True, level="INFO")
        structlog.get_logger("deal_kernel.test").info("deal_loaded", deal_id="deal_1")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "deal_loaded"
        assert record["deal_id"] == "deal_1"
        assert record["level"] == "info"
        assert "timestamp" in record

    def test_level_filters(self, restore_logging, capsys):
        setup_logging(json_mode=True, level="WARNING")
        log = structlog.get_logger("deal_kernel.test")
        log.info("quiet")
        log.warning("loud")

        err = capsys.readouterr().err
        assert "quiet" not in err
        assert "loud" in err

    def test_unknown_level_falls_back_to_info(self, restore_logging):
        setup_logging(level="CHATTY")
        assert logging.getLogger().level == logging.INFO
