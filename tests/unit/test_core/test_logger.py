# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for logger setup and the logging helpers."""
from __future__ import annotations

import json
import logging

import pytest
from v2vlog.core.logger import TRACE, Log, c
from v2vlog.core.logging_utils import log_parse_summary, log_step
from v2vlog.parser import parse_log_text


@pytest.mark.unit
class TestLogSetup:
    @pytest.mark.parametrize(
        "verbose,quiet,level",
        [(0, 0, logging.WARNING), (1, 0, logging.INFO), (2, 0, logging.DEBUG), (3, 0, TRACE), (3, 1, logging.ERROR)],
    )
    def test_level_from_flags(self, verbose, quiet, level):
        """-v raises verbosity, -q wins over it."""
        assert Log._level_from_flags(verbose, quiet) == level

    def test_handlers_replaced(self):
        """Repeated setup leaves exactly one console handler."""
        Log.setup(0, logger_name="v2vlog.test.setup")
        logger = Log.setup(2, logger_name="v2vlog.test.setup")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert logger.propagate is False

    def test_json_log_file(self, tmp_path):
        """--log-file with --json-logs writes NDJSON records."""
        path = tmp_path / "logs" / "v2vlog.ndjson"
        logger = Log.setup(0, str(path), json_logs=True, logger_name="v2vlog.test.json")
        Log.bind(logger, run=0).warning("stage %s", "missing")
        for h in logger.handlers:
            h.flush()
        records = [json.loads(ln) for ln in path.read_text(encoding="utf-8").splitlines()]
        last = records[-1]
        assert last["level"] == "WARNING"
        assert last["msg"] == "stage missing"
        assert last["ctx"] == {"run": "0"}

    def test_colorize_disabled(self):
        """c() leaves text alone when disabled or without a color."""
        assert c("plain", "red", enable=False) == "plain"
        assert c("plain") == "plain"
        assert "plain" in c("plain", "red")


@pytest.mark.unit
class TestHelpers:
    def test_log_step(self, caplog):
        """A step logs its start and its completion."""
        logger = logging.getLogger("logstep_test")
        with caplog.at_level(logging.INFO, logger="logstep_test"):
            with log_step(logger, "Parsing"):
                pass
        messages = [r.getMessage() for r in caplog.records]
        assert messages[0].endswith("Parsing ...")
        assert "Parsing (" in messages[1]

    def test_log_step_reraises(self, caplog):
        """Failures are logged at ERROR and propagate."""
        logger = logging.getLogger("logstep_test")
        with caplog.at_level(logging.INFO, logger="logstep_test"):
            with pytest.raises(ValueError):
                with log_step(logger, "Parsing"):
                    raise ValueError("boom")
        assert caplog.records[-1].levelno == logging.ERROR
        assert "boom" in caplog.records[-1].getMessage()

    def test_log_parse_summary(self, caplog, sample_log_text):
        """One debug line per tool run."""
        logger = logging.getLogger("summary_test")
        with caplog.at_level(logging.DEBUG, logger="summary_test"):
            log_parse_summary(logger, parse_log_text(sample_log_text))
        (record,) = caplog.records
        assert "3 api calls" in record.getMessage()
        assert record.ctx == {"run": 0, "tool": "virt-v2v"}
