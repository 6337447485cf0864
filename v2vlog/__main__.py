# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/__main__.py
from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console

from .analysis import analyze_log
from .cli.args import parse_args_with_config
from .cli.report import render_json, render_summary
from .core.exceptions import EXIT_INPUT, EXIT_INTERRUPTED, Fatal, InputError, format_exception_for_cli, wrap_fatal
from .core.logging_utils import log_parse_summary, log_step
from .parser import is_v2v_log, parse_log_text


def _print_stderr(msg: str) -> None:
    print(msg, file=sys.stderr)


def read_log(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    p = Path(path).expanduser()
    try:
        return p.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise InputError(code=EXIT_INPUT, msg=f"Cannot read log file {path}", cause=e, context={"path": str(p)}) from e


def run(args: argparse.Namespace, logger: logging.Logger) -> int:
    content = read_log(args.logfile)
    if not is_v2v_log(content):
        logger.warning("%s does not look like a virt-v2v log; parsing anyway", args.logfile)

    with log_step(logger, f"Parsing {args.logfile}", level=logging.DEBUG):
        parsed = parse_log_text(content)
    log_parse_summary(logger, parsed)
    if args.tool_run is not None and args.tool_run >= len(parsed.tool_runs):
        logger.warning("tool run %d not found (log has %d)", args.tool_run, len(parsed.tool_runs))

    with log_step(logger, "Analysing stages", level=logging.DEBUG):
        reports = analyze_log(parsed, tool_run=args.tool_run, stage_filter=args.stage or "", with_trees=bool(args.trees))

    try:
        if args.format == "json":
            sys.stdout.write(render_json(args.logfile, parsed, reports, indent=int(args.indent)) + "\n")
            sys.stdout.flush()
        else:
            console = Console(no_color=bool(args.no_color), highlight=False)
            render_summary(console, args.logfile, parsed, reports)
    except OSError as e:
        raise wrap_fatal("Cannot write report", e, code=1, format=args.format) from e
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    logger: Optional[logging.Logger] = None

    # Phase 1: parse (Fatal can happen here, e.g. a broken config file)
    try:
        args, _conf, logger = parse_args_with_config(argv)
    except Fatal as e:
        _print_stderr(f"💥 ERROR    {format_exception_for_cli(e, verbose=1)}")
        raise SystemExit(e.code)
    except KeyboardInterrupt:
        _print_stderr("Interrupted by user (Ctrl+C).")
        raise SystemExit(EXIT_INTERRUPTED)

    # Phase 2: analyse and report
    try:
        rc = run(args, logger)
    except Fatal as e:
        logger.error("%s", format_exception_for_cli(e, verbose=args.verbose))
        rc = e.code
    except KeyboardInterrupt:
        logger.warning("Interrupted by user (Ctrl+C).")
        rc = EXIT_INTERRUPTED
    except Exception as e:
        logger.error("💥 UNHANDLED %s: %s", type(e).__name__, e)
        logger.debug("%s", traceback.format_exc())
        rc = 1

    raise SystemExit(rc)


if __name__ == "__main__":
    main()
