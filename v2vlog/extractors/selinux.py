# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/selinux.py
"""
SELinux relabelling stage.

virt-v2v reads the guest's /etc/selinux/config through augeas, probes
setfiles with a few flag combinations, then runs `setfiles -F` over the
guest root. setfiles prints one `Relabeled /sysroot/... from A to B` line
per file; that output is buffered by the daemon and regularly lands after
the next stage marker, which is why the whole run may be passed as a
secondary source of relabel lines.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.memo import memoize_by_identity
from ..core.units import safe_float, safe_int
from .base import parse_augeas_error, scan_backward, scan_forward
from .models import AugeasError

logger = logging.getLogger(__name__)

SELINUX_VALUE_LOOKAHEAD = 8
LOAD_POLICY_LOOKAHEAD = 5
AUGEAS_DETAIL_LOOKAHEAD = 4
RELABEL_FEATURE_LOOKBEHIND = 5

RELABEL_RE = re.compile(r"^\s*[Rr]elabeled\s+(\S+)\s+from\s+(.+?)\s+to\s+(.+?)\s*$")

_CONFIG_GET_RE = re.compile(r"aug_get [\"']/files?/etc/selinux/config/(SELINUX|SELINUXTYPE)[\"']")
_AUG_GET_VALUE_RE = re.compile(r"aug_get\s*=\s*[\"']([^\"']+)[\"']")
_LOAD_POLICY_RE = re.compile(r"is_file [\"']/usr/sbin/load_policy[\"']")
_IS_FILE_RESULT_RE = re.compile(r"is_file\s*=\s*(\d)")
_FEATURE_CALL_RE = re.compile(r"(?:internal_)?feature_available [\"']?selinuxrelabel")
_FILE_CONTEXTS_RE = re.compile(r"is_file [\"']([^\"']*file_contexts)[\"']")
_MOUNTPOINTS_RE = re.compile(r"mountpoints\s*=\s*\[(.+)\]")
_SETFILES_CMD_RE = re.compile(r"setfiles:? [\"']-F[\"']")
_SETFILES_DURATION_RE = re.compile(r"setfiles.*took\s+([\d.]+)\s+secs")
_SETFILES_EXIT_RE = re.compile(r"setfiles returned (\d+)")
_CONTEXT_ERROR_RE = re.compile(r"Could not set context for ([^:]+):\s*(.*)")
_AUTORELABEL_RE = re.compile(r"rm_f [\"']/\.autorelabel[\"']")

_NBDKIT_NOISE_RE = re.compile(r"nbdkit:\s*\S+:\s*debug:\s*\S+:\s*\S+")
_GUESTFSD_NOISE_RE = re.compile(r"guestfsd:\s*[<=>].*")
_MULTISPACE_RE = re.compile(r"\s{2,}")


@dataclass
class SELinuxConfig:
    load_policy_found: bool = False
    relabel_available: bool = False
    mode: str = ""  # enforcing | permissive | disabled
    type: str = ""  # targeted | mls | minimum
    file_contexts_path: str = ""


@dataclass
class RelabeledFile:
    path: str
    from_context: str
    to_context: str


@dataclass
class RelabelGroup:
    directory: str
    files: List[RelabeledFile] = field(default_factory=list)


@dataclass
class SELinuxRelabel:
    config: SELinuxConfig = field(default_factory=SELinuxConfig)
    augeas_errors: List[AugeasError] = field(default_factory=list)
    mountpoints: List[Tuple[str, str]] = field(default_factory=list)
    setfiles_command: str = ""
    setfiles_duration_secs: Optional[float] = None
    setfiles_exit_code: Optional[int] = None
    skipped_bins: List[str] = field(default_factory=list)
    context_errors: List[str] = field(default_factory=list)
    autorelabel_removed: bool = False
    relabeled: List[RelabeledFile] = field(default_factory=list)
    groups: List[RelabelGroup] = field(default_factory=list)
    total_relabeled: int = 0


class State(Enum):
    PROBING = "probing"  # flag probes; their exit codes are provisional
    RELABELING = "relabeling"  # after the real `setfiles -F`


def strip_noise(line: str) -> str:
    """Remove daemon chatter spliced into the middle of a setfiles line."""
    text = line.strip()
    if "nbdkit:" in text or "guestfsd:" in text:
        text = _NBDKIT_NOISE_RE.sub("", text)
        text = _GUESTFSD_NOISE_RE.sub("", text)
        text = _MULTISPACE_RE.sub(" ", text).strip()
    return text


def parse_relabel(line: str) -> Optional[RelabeledFile]:
    """
      >>> parse_relabel("Relabeled /sysroot/etc/hosts from a_t to b_t")
      RelabeledFile(path='/etc/hosts', from_context='a_t', to_context='b_t')
    """
    m = RELABEL_RE.match(strip_noise(line))
    if not m:
        return None
    path = m.group(1)
    if path.startswith("/sysroot/"):
        path = path[len("/sysroot"):]
    return RelabeledFile(path=path, from_context=m.group(2).strip(), to_context=m.group(3).strip())


def top_directory(path: str) -> str:
    parts = [p for p in path.split("/") if p]
    return f"/{parts[0]}" if len(parts) > 1 else "/"


def group_relabels(files: Sequence[RelabeledFile]) -> List[RelabelGroup]:
    groups: Dict[str, RelabelGroup] = {}
    for f in files:
        d = top_directory(f.path)
        groups.setdefault(d, RelabelGroup(directory=d)).files.append(f)
    # stable: equal counts keep first-seen order
    return sorted(groups.values(), key=lambda g: -len(g.files))


class SELinuxScanner:
    def __init__(self, lines: Sequence[str]) -> None:
        self.lines = lines
        self.state = State.PROBING
        self.out = SELinuxRelabel()

    def _lookahead_value(self, index: int, line: str) -> Optional[str]:
        m = _AUG_GET_VALUE_RE.search(line)
        if m:
            return m.group(1)
        hit = scan_forward(self.lines, index, SELINUX_VALUE_LOOKAHEAD, _AUG_GET_VALUE_RE)
        return hit[1].group(1) if hit is not None else None

    def feed(self, index: int, line: str) -> None:
        cfg = self.out.config

        if _LOAD_POLICY_RE.search(line):
            m = _IS_FILE_RESULT_RE.search(line)
            if m is None:
                hit = scan_forward(self.lines, index, LOAD_POLICY_LOOKAHEAD, _IS_FILE_RESULT_RE)
                m = hit[1] if hit is not None else None
            if m is not None:
                cfg.load_policy_found = m.group(1) == "1"
            return

        if "feature_available = 1" in line and not cfg.relabel_available:
            if scan_backward(self.lines, index, RELABEL_FEATURE_LOOKBEHIND, _FEATURE_CALL_RE) is not None:
                cfg.relabel_available = True
            return

        m = _CONFIG_GET_RE.search(line)
        if m:
            value = self._lookahead_value(index, line)
            if value is not None:
                if m.group(1) == "SELINUX":
                    cfg.mode = value
                else:
                    cfg.type = value
            return

        m = _FILE_CONTEXTS_RE.search(line)
        if m:
            if not cfg.file_contexts_path:
                cfg.file_contexts_path = m.group(1)
            return

        if line.startswith("augeas failed to parse"):
            err = parse_augeas_error(self.lines, index, AUGEAS_DETAIL_LOOKAHEAD)
            if err is not None:
                self.out.augeas_errors.append(err)
            return

        m = _MOUNTPOINTS_RE.search(line)
        if m:
            parts = [p.strip().strip("\"'") for p in m.group(1).split(",")]
            for k in range(0, len(parts) - 1, 2):
                if parts[k] and parts[k + 1]:
                    self.out.mountpoints.append((parts[k], parts[k + 1]))
            return

        if _SETFILES_CMD_RE.search(line):
            self.out.setfiles_command = re.sub(r"^command:\s*", "", line).strip()
            self.state = State.RELABELING
            return

        m = _SETFILES_DURATION_RE.search(line)
        if m:
            self.out.setfiles_duration_secs = safe_float(m.group(1))
            return

        m = _SETFILES_EXIT_RE.search(line)
        if m:
            code = safe_int(m.group(1))
            if self.state is State.RELABELING or self.out.setfiles_exit_code is None:
                self.out.setfiles_exit_code = code
            return

        if "Old compiled fcontext format, skipping" in line:
            head = line.split(":", 1)
            self.out.skipped_bins.append(head[0].strip() if len(head) > 1 else line.strip())
            return

        m = _CONTEXT_ERROR_RE.search(line)
        if m:
            self.out.context_errors.append(m.group(1).replace("/sysroot/", "/", 1))
            return

        if _AUTORELABEL_RE.search(line):
            self.out.autorelabel_removed = True
            return

        rel = parse_relabel(line)
        if rel is not None:
            self.out.relabeled.append(rel)

    def finish(self) -> SELinuxRelabel:
        return self.out


def merge_relabels(out: SELinuxRelabel, extra: Sequence[str]) -> int:
    """Add relabels from `extra` whose path is not already known; returns how many."""
    seen = {f.path for f in out.relabeled}
    added = 0
    for line in extra:
        rel = parse_relabel(line)
        if rel is not None and rel.path not in seen:
            seen.add(rel.path)
            out.relabeled.append(rel)
            added += 1
    return added


@memoize_by_identity(maxsize=16)
def extract_selinux(lines: Sequence[str], whole_run: Optional[Sequence[str]] = None) -> SELinuxRelabel:
    scanner = SELinuxScanner(lines)
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    out = scanner.finish()
    if whole_run is not None and whole_run is not lines:
        added = merge_relabels(out, whole_run)
        logger.debug("selinux: %d relabels recovered from the whole run", added)
    out.groups = group_relabels(out.relabeled)
    out.total_relabeled = len(out.relabeled)
    logger.debug("selinux: mode=%s relabeled=%d", out.config.mode or "-", out.total_relabeled)
    return out
