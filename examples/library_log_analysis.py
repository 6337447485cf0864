#!/usr/bin/env python3
# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Example: inspect a virt-v2v log with the v2vlog library.

This example demonstrates:
- Splitting a log into tool runs and stages
- Reading the kernels and package removals of a Linux conversion
- Walking the file tree of the guest's root device

Usage:
    python library_log_analysis.py /path/to/virt-v2v.log
"""

import sys
import logging
from pathlib import Path

from v2vlog import StageKind, analyze_log, count_stats, find_node, parse_log_text

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def summarize(log_path: str):
    """Print the interesting findings of every tool run."""

    parsed = parse_log_text(Path(log_path).read_text(encoding="utf-8", errors="replace"))
    logger.info(f"{log_path}: {parsed.total_lines} lines, {len(parsed.tool_runs)} tool run(s)")

    for report in analyze_log(parsed, with_trees=True):
        run = report.run
        logger.info(f"Run {report.index}: {run.tool.value} ({run.exit_status.value})")

        for sr in report.stages:
            logger.info(f"  [{sr.stage.elapsed_seconds:7.1f}] {sr.stage.name or '(preamble)'}")
            if sr.kind is StageKind.LINUX_CONVERSION and sr.data is not None:
                for kernel in sr.data.kernels:
                    logger.info(f"      kernel {kernel.name} {kernel.version}")
                for op in sr.data.package_operations:
                    logger.info(f"      {op.command}: removed {len(op.packages)} package(s)")

        # Which guest files were probed, edited or copied in
        for tree in report.forest.device_trees:
            stats = count_stats(tree.root)
            logger.info(
                f"  {tree.device} on {tree.mountpoint}: "
                f"{stats.total_entries} files, {stats.copies} copied in, {stats.augeas} augeas ops"
            )
            fstab = find_node(tree, "/etc/fstab")
            if fstab is not None and fstab.ops:
                logger.info(f"    /etc/fstab touched {len(fstab.ops)} time(s)")

    return parsed


def main():
    """Main entry point."""

    if len(sys.argv) != 2:
        print(f"Usage: {sys.argv[0]} <virt-v2v.log>")
        sys.exit(1)

    log_path = sys.argv[1]
    if not Path(log_path).exists():
        logger.error(f"Log file not found: {log_path}")
        sys.exit(1)

    summarize(log_path)


if __name__ == '__main__':
    main()
