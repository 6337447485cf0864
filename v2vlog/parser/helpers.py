# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/helpers.py
from __future__ import annotations

import re
from typing import List, Sequence

from .classifier import is_stage_marker
from .records import ComponentVersions, ExitStatus, HostCommand, RunMessage, StageRecord

_ARG_TOKEN_RE = re.compile(r"'([^']*)'|\"([^\"]*)\"|(\S+)")

_SOURCE_RE = re.compile(r"^(nbdkit|libguestfs|guestfsd|virt-v2v(?:-[a-z]+)?|virt-customize)\b")

_NOISY_COMMANDS = frozenset({"udevadm"})

_KNOWN_PREFIXES = (
    "command:",
    "commandrvf:",
    "chroot:",
    "libguestfs:",
    "guestfsd:",
    "nbdkit:",
    "running nbdkit",
    "info:",
    "virt-v2v",
    "Building command",
    "i_",
)

_V2V_VERSION_RE = re.compile(r"^info:\s*[\w-]+:\s*virt-v2v\s+(\S+)")
_LIBVIRT_VERSION_RE = re.compile(r"libvirt version:\s*(\S+)")
_NBDKIT_VERSION_RE = re.compile(r"^nbdkit\s+(\d+\.\d+\.\d+)")
_VDDK_VERSION_RE = re.compile(r"VMware VixDiskLib \(([^)]+)\)")
_QEMU_VERSION_RE = re.compile(r"qemu version:\s*(\S+)")
_LIBGUESTFS_VERSION_RE = re.compile(r"major: (\d+), minor: (\d+), release: (\d+)")

_FINISH_STAGE = "Finishing off"
_MONITOR_FINISHED = "virt-v2v monitoring: Finished"


def parse_command_args(text: str) -> List[str]:
    """
    Split a logged command line into arguments.

    Single-quoted, double-quoted and bare tokens are all accepted:

      >>> parse_command_args("blkid '-c' /dev/null")
      ['blkid', '-c', '/dev/null']
      >>> parse_command_args("'path with spaces'")
      ['path with spaces']
    """
    out: List[str] = []
    for m in _ARG_TOKEN_RE.finditer(text or ""):
        if m.group(1) is not None:
            out.append(m.group(1))
        elif m.group(2) is not None:
            out.append(m.group(2))
        else:
            out.append(m.group(3))
    return out


def is_noisy_command(name: str) -> bool:
    return name in _NOISY_COMMANDS


def is_known_prefix(line: str) -> bool:
    """True for lines that belong to a log component rather than captured stdout."""
    return line.startswith(_KNOWN_PREFIXES) or is_stage_marker(line)


def extract_source(line: str) -> str:
    m = _SOURCE_RE.match(line)
    return m.group(1) if m else "unknown"


def build_host_command(parts: Sequence[str], line_number: int) -> HostCommand:
    if not parts:
        return HostCommand(command="", args=[], line_number=line_number)
    return HostCommand(command=parts[0], args=list(parts[1:]), line_number=line_number)


def parse_version_fields(line: str, versions: ComponentVersions) -> None:
    """Fill empty version slots from one line; existing values are never overwritten."""
    if not versions.virt_v2v:
        m = _V2V_VERSION_RE.match(line)
        if m:
            versions.virt_v2v = m.group(1)
    if not versions.libvirt:
        m = _LIBVIRT_VERSION_RE.search(line)
        if m:
            versions.libvirt = m.group(1)
    if not versions.nbdkit:
        m = _NBDKIT_VERSION_RE.match(line)
        if m:
            versions.nbdkit = m.group(1)
    if not versions.vddk:
        m = _VDDK_VERSION_RE.search(line)
        if m:
            versions.vddk = m.group(1)
    if not versions.qemu:
        m = _QEMU_VERSION_RE.search(line)
        if m:
            versions.qemu = m.group(1)
    if not versions.libguestfs:
        m = _LIBGUESTFS_VERSION_RE.search(line)
        if m:
            versions.libguestfs = ".".join(m.groups())


def infer_exit_status(
    stages: Sequence[StageRecord],
    messages: Sequence[RunMessage],
    raw_lines: Sequence[str],
) -> ExitStatus:
    """
    success: a "Finishing off" stage or the monitor's "Finished" line
    error:   an error-level message emitted by the conversion tool itself
    in_progress: stages but no end signal (truncated log)
    """
    if any(s.name.startswith(_FINISH_STAGE) for s in stages):
        return ExitStatus.SUCCESS
    if any(ln.startswith(_MONITOR_FINISHED) for ln in raw_lines):
        return ExitStatus.SUCCESS
    if any(m.level == "error" and m.source.startswith(("virt-v2v", "virt-customize")) for m in messages):
        return ExitStatus.ERROR
    if any(s.name for s in stages):
        return ExitStatus.IN_PROGRESS
    return ExitStatus.UNKNOWN
