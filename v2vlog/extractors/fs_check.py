# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/fs_check.py
"""
xfs_repair / e2fsck integrity checks.

A check opens on the libguestfs trace call (`xfs_repair "/dev/sda1" ...`)
or on the daemon's `commandrvf: xfs_repair -n /dev/sda1` line, collects the
tool's phase output, and closes on the trace result (`xfs_repair = 0`).
Daemon, nbdkit and trace chatter interleaved with the tool output is
skipped. A check whose result never shows up within the lookahead window
is closed with what it collected.
"""
from __future__ import annotations

import logging
import re
from enum import Enum
from typing import List, Optional, Sequence

from ..core.list_utils import dedup_by_key
from ..core.memo import memoize_by_identity
from ..core.units import safe_float, safe_int
from .base import is_noise
from .models import FsCheckResult

logger = logging.getLogger(__name__)

FSCHECK_RESULT_LOOKAHEAD = 300

_TRACE_CALL_RE = re.compile(r"libguestfs: trace: \S+: (xfs_repair|e2fsck) [\"'](/dev/[^\"']+)[\"']")
_TRACE_RESULT_RE = re.compile(r"libguestfs: trace: \S+: (xfs_repair|e2fsck) = (-?\d+)")
_RVF_CALL_RE = re.compile(r"^commandrvf:\s*(xfs_repair|e2fsck)\s+(?:.*\s+)?(/dev/\S+)")
_DURATION_RE = re.compile(r"^guestfsd: => (xfs_repair|e2fsck)\b.*took ([\d.]+) secs")

_XFS_PHASE_RE = re.compile(r"^Phase \d+ - ")
_XFS_SUBSTEP_RE = re.compile(r"^\s+- ")
_XFS_NOMODIFY_RE = re.compile(r"^No modify flag set")
_E2FSCK_PASS_RE = re.compile(r"^Pass \d+:")
_E2FSCK_SUMMARY_RE = re.compile(r"^/dev/\S+:\s+\d+/\d+\s+files.*blocks\s*$")

_STOP_RE = re.compile(r"^(command:|list_filesystems:)")


class State(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"


class FsCheckScanner:
    def __init__(self) -> None:
        self.state = State.IDLE
        self.current: Optional[FsCheckResult] = None
        self.results: List[FsCheckResult] = []

    def _open(self, tool: str, device: str, index: int) -> None:
        self._close()
        self.current = FsCheckResult(device=device, tool=tool, line_number=index)
        self.state = State.COLLECTING

    def _close(self) -> None:
        if self.current is not None:
            self.results.append(self.current)
        self.current = None
        self.state = State.IDLE

    def _start(self, index: int, line: str) -> bool:
        m = _TRACE_CALL_RE.search(line) or _RVF_CALL_RE.match(line)
        if not m:
            return False
        tool, device = m.group(1), m.group(2)
        cur = self.current
        if cur is not None and cur.tool == tool and cur.device == device:
            # the daemon line of a check already opened by its trace call
            return True
        self._open(tool, device, index)
        return True

    def _collect(self, index: int, line: str) -> None:
        cur = self.current
        if cur is None:
            return

        m = _TRACE_RESULT_RE.search(line)
        if m and m.group(1) == cur.tool:
            cur.exit_code = safe_int(m.group(2))
            self._close()
            return

        m = _DURATION_RE.match(line)
        if m and m.group(1) == cur.tool:
            cur.duration_secs = safe_float(m.group(2))
            return

        if self._start(index, line):
            return
        if is_noise(line) or line.startswith("commandrvf:"):
            return
        if _STOP_RE.match(line):
            self._close()
            return

        if cur.tool == "xfs_repair":
            if _XFS_PHASE_RE.match(line) or _XFS_SUBSTEP_RE.match(line):
                cur.phases.append(line.rstrip())
            elif _XFS_NOMODIFY_RE.match(line):
                cur.phases.append(line.strip())
        else:
            if _E2FSCK_PASS_RE.match(line):
                cur.phases.append(line.rstrip())
            elif _E2FSCK_SUMMARY_RE.match(line):
                cur.summary = line.strip()
            elif line[:1].isspace() and line.strip():
                cur.phases.append(line.rstrip())

    def feed(self, index: int, line: str) -> None:
        if self.state is State.COLLECTING and self.current is not None:
            if index - self.current.line_number > FSCHECK_RESULT_LOOKAHEAD:
                self._close()
            else:
                self._collect(index, line)
                return
        self._start(index, line)

    def finish(self) -> List[FsCheckResult]:
        self._close()
        return self.results


def dedup_fs_checks(results: Sequence[FsCheckResult]) -> List[FsCheckResult]:
    return dedup_by_key(results, key=lambda r: r.device)


@memoize_by_identity(maxsize=16)
def extract_fs_checks(lines: Sequence[str]) -> List[FsCheckResult]:
    scanner = FsCheckScanner()
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    out = dedup_fs_checks(scanner.finish())
    logger.debug("fs checks: %d", len(out))
    return out
