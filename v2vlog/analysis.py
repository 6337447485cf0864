# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/analysis.py
"""
Run-level analysis: every stage's extracted record plus the run's file forest.

This is what the command line reports on. Everything here is derived from
a ParsedLog and cached underneath by input identity, so analysing the same
parse twice is cheap.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from .core.memo import memoize_by_identity
from .extractors import StageKind, extract_stage, stage_kind
from .extractors.selinux import RelabeledFile, SELinuxRelabel
from .filetree import FileForest, build_forest, select_tree_calls
from .parser.records import ParsedLog, StageRecord, ToolRun

logger = logging.getLogger(__name__)


@dataclass
class StageReport:
    stage: StageRecord
    kind: Optional[StageKind] = None
    data: Any = None


@dataclass
class RunReport:
    index: int
    run: ToolRun
    stages: List[StageReport] = field(default_factory=list)
    forest: Optional[FileForest] = None


def stage_matches(stage: StageRecord, needle: str) -> bool:
    return not needle or needle.lower() in stage.name.lower()


def relabels_of(stages: Sequence[StageReport]) -> List[RelabeledFile]:
    out: List[RelabeledFile] = []
    for s in stages:
        if isinstance(s.data, SELinuxRelabel):
            out.extend(s.data.relabeled)
    return out


@memoize_by_identity(maxsize=16)
def stage_reports(run: ToolRun) -> List[StageReport]:
    """Every stage of `run` with its extracted record."""
    return [
        StageReport(stage=stage, kind=stage_kind(stage.name, stage.raw_lines), data=extract_stage(stage, run.raw_lines))
        for stage in run.stages
    ]


@memoize_by_identity(maxsize=8)
def run_forest(run: ToolRun) -> FileForest:
    # relabels come from every stage, not only the filtered ones
    return build_forest(
        select_tree_calls(run.api_calls),
        run.file_copies,
        relabels_of(stage_reports(run)),
        virtio_iso_path=run.virtio_iso_path,
    )


def analyze_run(index: int, run: ToolRun, *, stage_filter: str = "", with_trees: bool = False) -> RunReport:
    report = RunReport(index=index, run=run)
    report.stages = [sr for sr in stage_reports(run) if stage_matches(sr.stage, stage_filter)]
    if with_trees:
        report.forest = run_forest(run)
    logger.debug("run %d (%s): %d stages reported", index, run.tool.value, len(report.stages))
    return report


def analyze_log(
    parsed: ParsedLog,
    *,
    tool_run: Optional[int] = None,
    stage_filter: str = "",
    with_trees: bool = False,
) -> List[RunReport]:
    """Analyse every run, or only run number `tool_run` (0-based) when given."""
    out = []
    for i, run in enumerate(parsed.tool_runs):
        if tool_run is not None and i != tool_run:
            continue
        out.append(analyze_run(i, run, stage_filter=stage_filter, with_trees=with_trees))
    return out
