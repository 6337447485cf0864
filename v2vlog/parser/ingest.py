# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/ingest.py
"""
From raw log text to a ParsedLog.

Pre-processing repairs the damage container log collectors do to virt-v2v
output (timestamp prefixes, several `Building command:` records glued onto
one line, libguestfs trace records spliced into the middle of another
line). Boundary detection then cuts the line array into one section per
tool invocation, and each section is classified, segmented into stages and
scanned for run-level events.
"""
from __future__ import annotations

import logging
import re
from typing import List, NamedTuple, Optional, Sequence

from ..core.memo import memoize_by_identity
from .classifier import classify_lines
from .events import scan_run
from .records import ParsedLog, ToolKind, ToolRun
from .segmenter import segment_stages

logger = logging.getLogger(__name__)

# "2026-01-21T00:57:24.837772290Z Building command: ..."
CONTAINER_TS_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z\s+")
_EMBEDDED_TS_RE = re.compile(r"\n\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z\s+")

BUILD_CMD_SPACE_RE = re.compile(r"^Building command:\s*(\S+)\s+\[(.*)]")
BUILD_CMD_NOSPACE_RE = re.compile(r"Building command:(\S+?)\[([^\]]*)\]")

_BUILD_CMD = "Building command:"
_TRACE = "libguestfs: trace:"

DETECT_HEAD_CHARS = 3000
DETECT_TOOL_LINES = 20

_V2V_LOG_MARKERS = (
    re.compile(r"Building command[:\s]*virt-v2v", re.IGNORECASE),
    re.compile(r"^info:\s*virt-v2v", re.MULTILINE),
    re.compile(r"^virt-v2v:", re.MULTILINE),
    re.compile(r"virt-v2v-in-place", re.IGNORECASE),
    re.compile(r"virt-v2v-inspector", re.IGNORECASE),
    re.compile(r"^libguestfs:\s+trace:", re.MULTILINE),
)


class RunBoundary(NamedTuple):
    line_index: int
    tool: ToolKind
    command_line: str


def strip_container_timestamp(line: str) -> str:
    return CONTAINER_TS_PREFIX_RE.sub("", line, count=1)


def is_v2v_log(content: str) -> bool:
    """Cheap sniff of the first few KiB for virt-v2v family markers."""
    head = strip_container_timestamp(content[:DETECT_HEAD_CHARS])
    head = _EMBEDDED_TS_RE.sub("\n", head)
    return any(rx.search(head) for rx in _V2V_LOG_MARKERS)


def split_build_commands(line: str) -> List[str]:
    """
    Split a line carrying several `Building command:` records into one line
    per record. Text before the first record is kept as its own line.
    """
    if line.count(_BUILD_CMD) <= 1:
        return [line]

    starts: List[int] = []
    pos = line.find(_BUILD_CMD)
    while pos >= 0:
        starts.append(pos)
        pos = line.find(_BUILD_CMD, pos + len(_BUILD_CMD))

    parts: List[str] = []
    prefix = line[: starts[0]].strip()
    if prefix:
        parts.append(prefix)
    for i, s in enumerate(starts):
        e = starts[i + 1] if i + 1 < len(starts) else len(line)
        part = line[s:e].strip()
        if part:
            parts.append(part)
    return parts or [line]


def preprocess_lines(raw_lines: Sequence[str]) -> List[str]:
    out: List[str] = []
    for raw in raw_lines:
        line = strip_container_timestamp(raw.rstrip("\r"))

        parts = split_build_commands(line)
        if len(parts) > 1:
            out.extend(parts)
            continue

        # trace record spliced after a garbled prefix ("gulibguestfs: trace: ...")
        if not line.startswith("libguestfs:") and _TRACE in line:
            idx = line.index(_TRACE)
            prefix = line[:idx].strip()
            if prefix:
                out.append(prefix)
            out.append(line[idx:])
            continue

        # two trace records on one line
        if line.startswith(_TRACE):
            second = line.find(_TRACE, 1)
            if second > 0:
                out.append(line[:second].strip())
                out.append(line[second:])
                continue

        out.append(line)
    return out


def classify_tool(name: str) -> Optional[ToolKind]:
    lower = name.lower()
    if lower == "virt-v2v-in-place":
        return ToolKind.IN_PLACE
    if lower == "virt-v2v-inspector":
        return ToolKind.INSPECTOR
    if lower in ("virt-v2v-customize", "virt-customize"):
        return ToolKind.CUSTOMIZE
    if lower == "virt-v2v":
        return ToolKind.V2V
    if "monitor" in lower:
        return None
    if "virt-v2v" in lower:
        return ToolKind.V2V
    return None


def find_run_boundaries(lines: Sequence[str]) -> List[RunBoundary]:
    found: List[RunBoundary] = []
    for i, line in enumerate(lines):
        if _BUILD_CMD not in line:
            continue
        m = BUILD_CMD_SPACE_RE.match(line)
        if m:
            tool = classify_tool(m.group(1))
            if tool is not None:
                found.append(RunBoundary(i, tool, m.group(2)))
                continue
        m = BUILD_CMD_NOSPACE_RE.search(line)
        if m:
            tool = classify_tool(m.group(1))
            if tool is not None:
                found.append(RunBoundary(i, tool, m.group(2)))
    return found


def detect_tool_from_content(lines: Sequence[str]) -> ToolKind:
    head = "\n".join(lines[:DETECT_TOOL_LINES]).lower()
    if "virt-v2v-in-place" in head:
        return ToolKind.IN_PLACE
    if "virt-v2v-inspector" in head:
        return ToolKind.INSPECTOR
    if "virt-v2v-customize" in head or "virt-customize" in head:
        return ToolKind.CUSTOMIZE
    return ToolKind.V2V


def build_tool_run(section: Sequence[str], tool: ToolKind, command_line: str, offset: int) -> ToolRun:
    lines = classify_lines(section, offset=offset)
    stages = segment_stages(lines)
    return scan_run(tool, command_line, lines, stages)


def parse_log_lines(raw_lines: Sequence[str]) -> ParsedLog:
    lines = preprocess_lines(raw_lines)
    total = len(lines)

    runs: List[ToolRun] = []
    bounds = find_run_boundaries(lines)
    for i, b in enumerate(bounds):
        end = bounds[i + 1].line_index if i + 1 < len(bounds) else total
        runs.append(build_tool_run(lines[b.line_index : end], b.tool, b.command_line, b.line_index))

    # Lines before the first boundary belong to no run; with no boundary at
    # all the whole file is one run.
    if not runs:
        runs.append(build_tool_run(lines, detect_tool_from_content(lines), "", 0))

    logger.debug("Parsed %d lines into %d tool runs", total, len(runs))
    return ParsedLog(tool_runs=runs, total_lines=total)


@memoize_by_identity(maxsize=4)
def parse_log_text(content: str) -> ParsedLog:
    """
    Parse the full text of a virt-v2v family log.

    Never raises on log content: unrecognized lines are classified `other`
    and contribute nothing. Empty input is a single empty line, giving one
    run with one blank line.
    """
    return parse_log_lines(content.split("\n"))
