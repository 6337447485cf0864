# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/__init__.py
"""
v2vlog - structured analysis of virt-v2v conversion logs

Turns the debug log of virt-v2v, virt-v2v-in-place and friends into typed
records: tool runs, pipeline stages, per-stage findings (disk layout,
kernels, package removals, initramfs rebuilds, SELinux relabels, ...) and
a per-device tree of every guest file the conversion touched.

Usage as a library:

    from v2vlog import parse_log_text, analyze_log

    parsed = parse_log_text(open("v2v.log").read())
    for report in analyze_log(parsed, with_trees=True):
        for stage in report.stages:
            print(stage.stage.name, stage.kind)
"""

__version__ = "0.1.0"

from .analysis import RunReport, StageReport, analyze_log, analyze_run
from .extractors import StageKind, extract_stage, stage_kind
from .filetree import build_forest, count_stats, decompose_augeas_path, find_node
from .parser import ParsedLog, ToolRun, parse_log_lines, parse_log_text

__all__ = [
    "__version__",
    "ParsedLog",
    "RunReport",
    "StageKind",
    "StageReport",
    "ToolRun",
    "analyze_log",
    "analyze_run",
    "build_forest",
    "count_stats",
    "decompose_augeas_path",
    "extract_stage",
    "find_node",
    "parse_log_lines",
    "parse_log_text",
    "stage_kind",
]
