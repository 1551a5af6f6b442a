"""Tests for logging setup."""

import asyncio
import json
import logging
from unittest.mock import MagicMock

import pytest
import structlog

from toolwise.logging import AsyncTimer, get_logger, setup_logging


@pytest.fixture
def restore_logging():
    """Undo global logging configuration after the test."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    structlog.reset_defaults()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_log_file_gets_json_lines(self, tmp_path, restore_logging):
        log_file = tmp_path / "logs" / "toolwise.jsonl"
        setup_logging(level="INFO", log_file=log_file, colors=False)

        get_logger("toolwise.test").info("Recorded experience", tool="echo")
        get_logger("toolwise.test").debug("Not at this level")

        lines = log_file.read_text().splitlines()
        assert len(lines) == 1
        event = json.loads(lines[0])
        assert event["event"] == "Recorded experience"
        assert event["tool"] == "echo"
        assert event["level"] == "info"
        assert event["logger"] == "toolwise.test"
        assert "timestamp" in event

    def test_unknown_level_falls_back_to_info(self, restore_logging):
        setup_logging(level="chatty")

        assert logging.getLogger().level == logging.INFO


class TestAsyncTimer:
    """Tests for AsyncTimer."""

    @pytest.mark.asyncio
    async def test_measures_and_logs(self):
        logger = MagicMock()

        async with AsyncTimer("tool.run(echo)", logger) as timer:
            await asyncio.sleep(0.01)

        assert timer.elapsed > 0
        assert timer.elapsed_ms == int(timer.elapsed * 1000)
        logger.debug.assert_called_once_with(
            "Timed operation", operation="tool.run(echo)", elapsed_ms=timer.elapsed_ms
        )
