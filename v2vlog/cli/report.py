# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/cli/report.py
"""
Report rendering: JSON for machines, rich tables for people.

The JSON form is `dataclasses.asdict` of the extracted records with the
per-line payloads (`lines`, `raw_lines`, `launch_lines`) dropped; file trees
are written node by node so the original call records are not repeated everywhere.
"""
from __future__ import annotations

import dataclasses
import json
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table
from rich.tree import Tree

from ..analysis import RunReport, StageReport
from ..core.units import human_bytes
from ..extractors import DiskInventory
from ..filetree import DeviceTree, FileOp, OpKind, TreeNode, count_stats
from ..parser.records import ParsedLog

# bulky per-line fields left out of the JSON report
_DROPPED_KEYS = frozenset(["lines", "raw_lines", "launch_lines"])

_MAX_TREE_LINES = 400


def _prune(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _prune(v) for k, v in obj.items() if k not in _DROPPED_KEYS}
    if isinstance(obj, list):
        return [_prune(v) for v in obj]
    return obj


def to_plain(record: Any) -> Any:
    if record is None:
        return None
    if dataclasses.is_dataclass(record):
        return _prune(dataclasses.asdict(record))
    if isinstance(record, list):
        return [to_plain(r) for r in record]
    return record


def op_to_dict(op: FileOp) -> Dict[str, Any]:
    d: Dict[str, Any] = {"kind": op.kind.value, "line_number": op.line_number}
    if op.kind is OpKind.AUGEAS:
        d.update(aug_op=op.aug_op, aug_key=op.aug_key, aug_value=op.aug_value)
    elif op.kind is OpKind.RELABEL:
        d.update(from_context=op.from_context, to_context=op.to_context)
    elif op.kind is OpKind.COPY and op.copy is not None:
        d.update(
            origin=op.copy.origin.value,
            source=op.copy.source,
            destination=op.copy.destination,
            size_bytes=op.copy.size_bytes,
        )
    if op.call is not None:
        d.update(api=op.call.name, args=op.call.args, result=op.call.result)
    return d


def node_to_dict(node: TreeNode) -> Dict[str, Any]:
    d: Dict[str, Any] = {"name": node.name, "path": node.path}
    if node.checks:
        d["checks"] = [
            {"api": ch.api, "result": ch.result, "found": ch.found, "line_number": ch.line_number} for ch in node.checks
        ]
    if node.ops:
        d["ops"] = [op_to_dict(op) for op in node.ops]
    if node.copied_to:
        d["copied_to"] = [cp.destination for cp in node.copied_to]
    if node.children:
        d["children"] = [node_to_dict(node.children[k]) for k in sorted(node.children)]
    return d


def tree_to_dict(tree: DeviceTree) -> Dict[str, Any]:
    passes = []
    if tree.group is not None:
        passes = [
            {
                "mountpoint": p.mountpoint,
                "pass_number": p.pass_number,
                "start_line": p.start_line,
                "end_line": p.end_line,
                "chroot_path": p.chroot_path,
            }
            for p in tree.group.passes
        ]
    return {
        "device": tree.device,
        "mountpoint": tree.mountpoint,
        "source_label": tree.source_label,
        "passes": passes,
        "stats": dataclasses.asdict(count_stats(tree.root)),
        "root": node_to_dict(tree.root),
    }


def stage_to_dict(sr: StageReport) -> Dict[str, Any]:
    st = sr.stage
    return {
        "name": st.name,
        "kind": sr.kind.value if sr.kind is not None else None,
        "start_line": st.start_line,
        "end_line": st.end_line,
        "elapsed_seconds": st.elapsed_seconds,
        "data": to_plain(sr.data),
    }


def run_to_dict(report: RunReport) -> Dict[str, Any]:
    run = report.run
    d: Dict[str, Any] = {
        "index": report.index,
        "tool": run.tool.value,
        "command_line": run.command_line,
        "exit_status": run.exit_status.value,
        "start_line": run.start_line,
        "end_line": run.end_line,
        "versions": dataclasses.asdict(run.versions),
        "guest_info": dict(run.guest_info),
        "inspection": to_plain(run.inspection),
        "installed_apps": to_plain(run.installed_apps),
        "registry_accesses": to_plain(run.registry_accesses),
        "libguestfs": to_plain(run.libguestfs),
        "host_tmp_dir": run.host_tmp_dir,
        "host_free_space": run.host_free_space,
        "virtio_iso_path": run.virtio_iso_path,
        "errors": to_plain(run.errors),
        "warnings": to_plain(run.warnings),
        "host_commands": to_plain(run.host_commands),
        "nbdkit_connections": to_plain(run.nbdkit_connections),
        "disk_progress": to_plain(run.disk_progress),
        "api_call_count": len(run.api_calls),
        "file_copy_count": len(run.file_copies),
        "stages": [stage_to_dict(s) for s in report.stages],
    }
    if report.forest is not None:
        d["file_trees"] = [tree_to_dict(t) for t in report.forest.device_trees]
        d["aux_trees"] = [tree_to_dict(t) for t in report.forest.aux_trees]
    return d


def render_json(path: str, parsed: ParsedLog, reports: Sequence[RunReport], indent: int = 2) -> str:
    doc = {
        "file": path,
        "total_lines": parsed.total_lines,
        "tool_runs": [run_to_dict(r) for r in reports],
    }
    return json.dumps(doc, indent=indent or None, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# rich summary
# ---------------------------------------------------------------------------


def _runs_table(reports: Sequence[RunReport]) -> Table:
    t = Table(title="Tool runs", header_style="bold cyan")
    t.add_column("#", justify="right")
    t.add_column("Tool")
    t.add_column("Status")
    t.add_column("Lines", justify="right")
    t.add_column("Stages", justify="right")
    t.add_column("API calls", justify="right")
    t.add_column("Copies", justify="right")
    t.add_column("Errors", justify="right")
    for r in reports:
        run = r.run
        status_style = {"success": "green", "error": "red"}.get(run.exit_status.value, "yellow")
        t.add_row(
            str(r.index),
            run.tool.value,
            f"[{status_style}]{run.exit_status.value}[/]",
            f"{run.start_line}-{run.end_line}",
            str(len(run.stages)),
            str(len(run.api_calls)),
            str(len(run.file_copies)),
            str(len(run.errors)),
        )
    return t


def _stages_table(report: RunReport) -> Table:
    t = Table(title=f"Stages (run {report.index})", header_style="bold cyan")
    t.add_column("Elapsed", justify="right")
    t.add_column("Stage")
    t.add_column("Kind")
    t.add_column("Lines", justify="right")
    for sr in report.stages:
        st = sr.stage
        t.add_row(
            f"{st.elapsed_seconds:.1f}s",
            st.name or "(preamble)",
            sr.kind.value if sr.kind is not None else "-",
            f"{st.start_line}-{st.end_line}",
        )
    return t


def _disks_table(report: RunReport) -> Optional[Table]:
    disks = [d for sr in report.stages if isinstance(sr.data, DiskInventory) for d in sr.data.disks]
    if not disks:
        return None
    t = Table(title=f"Disks (run {report.index})", header_style="bold cyan")
    t.add_column("Device")
    t.add_column("Table")
    t.add_column("Size", justify="right")
    t.add_column("Partitions")
    for d in disks:
        parts = ", ".join(f"{p.number}:{p.fs_type or '-'} {human_bytes(p.size_bytes)}" for p in d.partitions)
        t.add_row(d.device, d.table_type or "-", human_bytes(d.size_bytes or None), parts or "-")
    return t


def _messages_table(report: RunReport) -> Optional[Table]:
    msgs = report.run.errors + report.run.warnings
    if not msgs:
        return None
    t = Table(title=f"Errors and warnings (run {report.index})", header_style="bold cyan")
    t.add_column("Line", justify="right")
    t.add_column("Level")
    t.add_column("Source")
    t.add_column("Message", overflow="fold")
    for m in sorted(msgs, key=lambda m: m.line_number):
        style = "red" if m.level == "error" else "yellow"
        t.add_row(str(m.line_number), f"[{style}]{m.level}[/]", m.source, m.message)
    return t


def _trees_table(trees: Sequence[DeviceTree]) -> Table:
    t = Table(title="File operations", header_style="bold cyan")
    for col in ("Device", "Mountpoint", "Passes", "Entries", "Found", "Missing", "Copies", "Scripts", "Augeas", "Relabels"):
        t.add_column(col, justify="left" if col in ("Device", "Mountpoint") else "right")
    for tree in trees:
        s = count_stats(tree.root)
        passes = len(tree.group.passes) if tree.group is not None else 0
        device = f"{tree.device} ({tree.source_label})" if tree.source_label else tree.device
        t.add_row(
            device,
            tree.mountpoint,
            str(passes),
            str(s.total_entries),
            str(s.found),
            str(s.not_found),
            str(s.copies),
            str(s.scripts),
            str(s.augeas),
            str(s.relabels),
        )
    return t


def _node_label(node: TreeNode) -> str:
    bits: List[str] = [node.name + ("/" if node.children else "")]
    if node.checks:
        found = any(ch.found for ch in node.checks)
        bits.append("[green]found[/]" if found else "[red]missing[/]")
    kinds = sorted({op.kind.value for op in node.ops if op.kind is not OpKind.MOUNT})
    if kinds:
        bits.append("[cyan]" + ",".join(kinds) + "[/]")
    if node.copied_to:
        bits.append(f"[magenta]-> {len(node.copied_to)} cop{'y' if len(node.copied_to) == 1 else 'ies'}[/]")
    return " ".join(bits)


def _rich_tree(tree: DeviceTree) -> Tree:
    label = f"[bold]{tree.device}[/] on {tree.mountpoint}"
    rt = Tree(label)
    remaining = [_MAX_TREE_LINES]

    def walk(node: TreeNode, into: Tree) -> None:
        for name in sorted(node.children):
            if remaining[0] <= 0:
                into.add("[dim]...[/]")
                return
            remaining[0] -= 1
            child = node.children[name]
            walk(child, into.add(_node_label(child)))

    walk(tree.root, rt)
    return rt


def render_summary(console: Console, path: str, parsed: ParsedLog, reports: Sequence[RunReport]) -> None:
    console.print(f"[bold]{path}[/]: {parsed.total_lines} lines, {len(parsed.tool_runs)} tool run(s)")
    console.print(_runs_table(reports))
    for r in reports:
        console.print(_stages_table(r))
        disks = _disks_table(r)
        if disks is not None:
            console.print(disks)
        msgs = _messages_table(r)
        if msgs is not None:
            console.print(msgs)
        if r.forest is not None:
            trees = r.forest.all_trees()
            if trees:
                console.print(_trees_table(trees))
                for tree in trees:
                    if tree.root.children:
                        console.print(_rich_tree(tree))
