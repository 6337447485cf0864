# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/cli/args.py
from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, Optional, Sequence, Tuple

from ..config.config_loader import Config
from ..core.logger import Log, c

FORMATS = ("summary", "json")

CONFIG_EXAMPLE = """\
  # ~/.config/v2vlog.yaml
  format: summary
  trees: true
  indent: 2
"""


class HelpFormatter(argparse.RawDescriptionHelpFormatter, argparse.ArgumentDefaultsHelpFormatter):
    pass


def _add_global_config_logging(p: argparse.ArgumentParser) -> None:
    from .. import __version__

    p.add_argument(
        "--config",
        action="append",
        default=[],
        help="YAML/JSON config file, directory or glob (repeatable; later overrides earlier).",
    )
    p.add_argument("--dump-config", action="store_true", help="Print merged normalized config and exit.")
    p.add_argument("--version", action="version", version=__version__)
    p.add_argument("-v", "--verbose", action="count", default=0, help="Verbosity: -v, -vv, -vvv")
    p.add_argument("-q", "--quiet", action="count", default=0, help="Only log errors.")
    p.add_argument("--log-file", dest="log_file", default=None, help="Write logs to file.")
    p.add_argument("--json-logs", dest="json_logs", action="store_true", help="Emit logs as NDJSON.")
    p.add_argument("--no-color", dest="no_color", action="store_true", help="Disable colors in logs and reports.")


def _add_report_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("logfile", help="virt-v2v / virt-v2v-in-place log file ('-' for stdin).")
    p.add_argument("--format", dest="format", choices=FORMATS, default="summary", help="Report format.")
    p.add_argument("--tool-run", dest="tool_run", type=int, default=None, help="Only report tool run N (0-based).")
    p.add_argument("--stage", dest="stage", default="", help="Only report stages whose name contains this text.")
    p.add_argument("--trees", dest="trees", action="store_true", help="Include the guest file-operation trees.")
    p.add_argument("--indent", dest="indent", type=int, default=2, help="JSON indentation.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="v2vlog",
        description=c("v2vlog: structured analysis of virt-v2v conversion logs", "green", ["bold"]),
        formatter_class=HelpFormatter,
        epilog=c("Config example:\n", "cyan", ["bold"]) + c(CONFIG_EXAMPLE, "cyan"),
    )
    _add_global_config_logging(p)
    _add_report_options(p)
    return p


def _build_preparser() -> argparse.ArgumentParser:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", action="append", default=[])
    pre.add_argument("-v", "--verbose", action="count", default=0)
    pre.add_argument("-q", "--quiet", action="count", default=0)
    pre.add_argument("--log-file", dest="log_file", default=None)
    pre.add_argument("--json-logs", dest="json_logs", action="store_true")
    pre.add_argument("--no-color", dest="no_color", action="store_true")
    pre.add_argument("--dump-config", action="store_true")
    return pre


def _load_merged_config(logger: Any, cfgs: Sequence[str]) -> Dict[str, Any]:
    if not cfgs:
        return {}
    expanded = Config.expand_configs(logger, list(cfgs))
    return Config.load_many(logger, expanded)


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Checks argparse cannot express; config-provided values go through here too."""
    if args.format not in FORMATS:
        parser.error(f"--format must be one of {', '.join(FORMATS)} (got {args.format!r})")
    if args.tool_run is not None and int(args.tool_run) < 0:
        parser.error("--tool-run must be >= 0")
    if int(args.indent) < 0:
        parser.error("--indent must be >= 0")


def parse_args_with_config(
    argv: Optional[Sequence[str]] = None,
    logger: Any = None,
) -> Tuple[argparse.Namespace, Dict[str, Any], Any]:
    """
    Two-phase parse:
      Phase 0: global flags needed to locate config and set up logging
      Phase 1: load and merge config files
      Phase 2: config values become parser defaults
      Phase 3: full parse; explicit flags win
      Phase 4: validate
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    parser = build_parser()
    pre = _build_preparser()
    args0, _rest = pre.parse_known_args(argv)

    if logger is None:
        logger = Log.setup(
            args0.verbose,
            args0.log_file,
            quiet=args0.quiet,
            color=not args0.no_color,
            json_logs=args0.json_logs,
        )

    conf = _load_merged_config(logger, args0.config or [])

    if args0.dump_config:
        print(json.dumps(conf, indent=2, sort_keys=True, default=str))
        raise SystemExit(0)

    Config.apply_as_defaults(logger, parser, conf)
    args = parser.parse_args(argv)
    validate_args(parser, args)
    return args, conf, logger
