# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/packages.py
"""
Package removal (dnf, yum, apt-get, zypper).

virt-v2v removes hypervisor guest tools by running the package manager
through libguestfs `sh`. The request line names the command; the
`sh = "..."` result line carries the whole output with escaped newlines.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..core.memo import memoize_by_identity
from ..core.units import safe_float
from ..parser.file_copies import decode_write_escapes

logger = logging.getLogger(__name__)

_DNF_START_RE = re.compile(r"\bsh [\"']((?:dnf|yum) -y remove .+?)[\"']")
_SH_OPEN_RE = re.compile(r"\bsh [\"']")
_APT_PKGS_RE = re.compile(r"remove\s+(.+?)(?:\\n|\s*[\"'])")
_DURATION_RE = re.compile(r"\bsh\b.*took ([\d.]+) secs")
_OUTPUT_RE = re.compile(r"\bsh = [\"'](.*)[\"']")

_FREED_DNF_RE = re.compile(r"Freed space:\s*(.+)")
_FREED_APT_RE = re.compile(r"(\d[\d.,]*\s*[kKmMgG]?B) disk space will be freed")
_DNF_ROW_RE = re.compile(r"^\s+(\S+)\s+(x86_64|noarch|i686|aarch64|ppc64le|s390x)\s+(\S+)\s+@?(\S+)\s+(.+)")
_APT_ROW_RE = re.compile(r"Removing (\S+) \(([^)]+)\)")
_ZYPPER_ROW_RE = re.compile(r"^\s*(?:\(\s*\d+/\s*\d+\)\s+)?Removing ([\w.+-]+)-(\d\S*)\s")
_ZYPPER_FREED_RE = re.compile(r"this operation will free ([\d.]+\s*\S+)", re.IGNORECASE)

_DNF_TABLE_START = ("Removing:", "Removing unused dependencies:", "Removing dependent packages:")


@dataclass
class RemovedPackage:
    name: str
    arch: str = ""
    version: str = ""
    repo: str = ""
    size: str = ""


@dataclass
class PackageOperation:
    manager: str  # dnf | yum | apt | zypper
    command: str
    packages: List[RemovedPackage] = field(default_factory=list)
    freed_space: str = ""
    duration_secs: Optional[float] = None
    line_number: int = 0


class State(Enum):
    IDLE = "idle"
    AWAIT_OUTPUT = "await_output"


def _parse_dnf_output(output: str, op: PackageOperation) -> None:
    m = _FREED_DNF_RE.search(output)
    if m:
        op.freed_space = m.group(1).strip()
    in_table = False
    for row in output.split("\n"):
        if any(h in row for h in _DNF_TABLE_START):
            in_table = True
            continue
        if "Transaction Summary" in row:
            in_table = False
            continue
        if in_table:
            r = _DNF_ROW_RE.match(row)
            if r:
                op.packages.append(
                    RemovedPackage(
                        name=r.group(1),
                        arch=r.group(2),
                        version=r.group(3),
                        repo=r.group(4),
                        size=r.group(5).strip(),
                    )
                )


def _parse_apt_output(output: str, op: PackageOperation) -> None:
    m = _FREED_APT_RE.search(output)
    if m:
        op.freed_space = m.group(1).strip()
    for row in output.split("\n"):
        r = _APT_ROW_RE.search(row)
        if r:
            op.packages.append(RemovedPackage(name=r.group(1), version=r.group(2), repo="installed"))


def _parse_zypper_output(output: str, op: PackageOperation) -> None:
    m = _ZYPPER_FREED_RE.search(output)
    if m:
        op.freed_space = m.group(1).strip()
    for row in output.split("\n"):
        r = _ZYPPER_ROW_RE.match(row)
        if r:
            op.packages.append(RemovedPackage(name=r.group(1), version=r.group(2), repo="installed"))


_OUTPUT_PARSERS = {
    "dnf": _parse_dnf_output,
    "yum": _parse_dnf_output,
    "apt": _parse_apt_output,
    "zypper": _parse_zypper_output,
}


class PackageScanner:
    def __init__(self) -> None:
        self.state = State.IDLE
        self.current: Optional[PackageOperation] = None
        self.ops: List[PackageOperation] = []

    def _start(self, index: int, line: str) -> Optional[PackageOperation]:
        m = _DNF_START_RE.search(line)
        if m:
            cmd = m.group(1).replace("'", "")
            return PackageOperation(manager="yum" if cmd.startswith("yum") else "dnf", command=cmd, line_number=index)
        if not _SH_OPEN_RE.search(line) or "remove" not in line:
            return None
        if "apt-get" in line:
            pm = _APT_PKGS_RE.search(line)
            cmd = f"apt-get remove {pm.group(1).replace(chr(39), '').strip()}" if pm else "apt-get remove"
            return PackageOperation(manager="apt", command=cmd, line_number=index)
        if "zypper" in line:
            return PackageOperation(manager="zypper", command="zypper remove", line_number=index)
        return None

    def feed(self, index: int, line: str) -> None:
        if self.state is State.IDLE:
            op = self._start(index, line)
            if op is not None:
                self.current = op
                self.state = State.AWAIT_OUTPUT
            return

        op = self.current
        if op is None:
            self.state = State.IDLE
            return

        m = _DURATION_RE.search(line)
        if m:
            op.duration_secs = safe_float(m.group(1))

        m = _OUTPUT_RE.search(line)
        if m:
            output = decode_write_escapes(m.group(1)).replace("\r", "")
            _OUTPUT_PARSERS[op.manager](output, op)
            self._emit()

    def _emit(self) -> None:
        if self.current is not None:
            self.ops.append(self.current)
        self.current = None
        self.state = State.IDLE

    def finish(self) -> List[PackageOperation]:
        # a removal whose output never arrived is reported as-is
        self._emit()
        return self.ops


@memoize_by_identity(maxsize=16)
def extract_package_operations(lines: Sequence[str]) -> List[PackageOperation]:
    scanner = PackageScanner()
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    ops = scanner.finish()
    logger.debug("package operations: %d", len(ops))
    return ops
