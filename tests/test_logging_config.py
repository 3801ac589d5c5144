"""Tests for loguru sink setup."""

import json

from loguru import logger

from shared.logging_config import setup_logging


class TestSetupLogging:
    def test_json_sink(self, settings, capsys):
        setup_logging(settings.model_copy(update={"log_format": "json", "log_level": "INFO"}))
        logger.info("matched 3 jobs")
        logger.debug("hidden")

        lines = [line for line in capsys.readouterr().err.splitlines() if line]
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["record"]["message"] == "matched 3 jobs"
        assert record["record"]["level"]["name"] == "INFO"

    def test_human_sink(self, settings, capsys):
        setup_logging(settings.model_copy(update={"log_format": "text", "log_level": "DEBUG"}))
        logger.debug("batch 1/3 done")

        assert "batch 1/3 done" in capsys.readouterr().err
