# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/core/logging_utils.py
"""
Logging helpers for the command-line front end.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Generator

from .logger import Log


@contextmanager
def log_step(logger: logging.Logger, description: str, level: int = logging.INFO) -> Generator[None, None, None]:
    """
    Log `description`, run the block, then log how long it took.

    A failing block is logged at ERROR and re-raised.

    Example:
        with log_step(logger, "Parsing log"):
            parsed = parse_log_text(text)
    """
    t0 = time.perf_counter()
    logger.log(level, "⏳ %s ...", description)
    try:
        yield
    except Exception as e:
        logger.error("💥 %s failed after %.2fs: %s", description, time.perf_counter() - t0, e)
        raise
    logger.log(level, "✅ %s (%.2fs)", description, time.perf_counter() - t0)


def log_parse_summary(logger: logging.Logger, parsed: Any) -> None:
    """One DEBUG line per tool run; the tool's own error messages at INFO."""
    for i, run in enumerate(parsed.tool_runs):
        log = Log.bind(logger, run=i, tool=run.tool.value)
        log.debug(
            "lines %d-%d: %d stages, %d api calls, %d file copies, status %s",
            run.start_line,
            run.end_line,
            len(run.stages),
            len(run.api_calls),
            len(run.file_copies),
            run.exit_status.value,
        )
        for m in run.errors:
            log.info("line %d: %s", m.line_number, m.message)
