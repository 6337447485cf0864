# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/initramfs.py
"""
Initramfs rebuilds (dracut, update-initramfs, mkinitrd).

A rebuild opens on the libguestfs `command "..."` call naming the tool.
Everything until the next rebuild command belongs to it: dracut's
"Including module" chatter, the compression method, the image path, the
daemon's duration, and for update-initramfs the single `command = "..."`
result line whose escaped output lists binaries, firmware, configs,
module directories, hooks and microcode bundles.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..core.list_utils import dedup_by_key, dedup_preserve_order
from ..core.memo import memoize_by_identity
from ..core.units import safe_float

logger = logging.getLogger(__name__)

INITRAMFS_TOOLS = ("update-initramfs", "dracut", "mkinitrd")

_COMMAND_RE = re.compile(r"\bcommand [\"']([^\"']*?(?:update-initramfs|dracut|mkinitrd)[^\"']*)[\"']")
_DURATION_RE = re.compile(r"\bcommand \(0x[0-9a-fA-F]+\) took ([\d.]+) secs")
_DRACUT_MODULE_RE = re.compile(r"dracut: \*\*\* Including module: (.+?) \*\*\*")
_KO_MODULE_RE = re.compile(r"Adding module /(?:usr/)?lib/modules/\S+/([^/\s]+\.ko(?:\.[xg]z|\.zst)?)")
_COMPRESSION_RE = re.compile(r"dracut: (?:dracut: )?using auto-determined compression method '(.+?)'")
_IMAGE_RE = re.compile(r"Creating (?:initramfs )?image file '(.+?)'")
_GENERATING_RE = re.compile(r"update-initramfs: Generating ([^\"'\\]+)")
_OUTPUT_RE = re.compile(r"\bcommand = [\"'](.*)[\"']")
_BINARY_RE = re.compile(r"^Adding binary(?:-link)?\s+")
_COPY_DIR_RE = re.compile(r"Copying module directory (.+)")


@dataclass
class CopyDir:
    dir: str
    excludes: str = ""


@dataclass
class InitramfsRebuild:
    tool: str = "unknown"
    command: str = ""
    included_modules: List[str] = field(default_factory=list)
    added_kernel_modules: List[str] = field(default_factory=list)
    compression: str = ""
    duration_secs: Optional[float] = None
    image_path: str = ""
    binaries: List[str] = field(default_factory=list)
    firmware: List[str] = field(default_factory=list)
    configs: List[str] = field(default_factory=list)
    copy_dirs: List[CopyDir] = field(default_factory=list)
    hooks: List[str] = field(default_factory=list)
    microcode_count: int = 0
    line_number: int = 0

    def has_modules(self) -> bool:
        return bool(self.included_modules or self.added_kernel_modules)


class State(Enum):
    IDLE = "idle"
    REBUILDING = "rebuilding"


def tool_of(command: str) -> str:
    for tool in INITRAMFS_TOOLS:
        if tool in command:
            return tool
    return "unknown"


def parse_command_output(output: str, rb: InitramfsRebuild) -> None:
    """Sort the `\\n`-separated update-initramfs output into its categories."""
    for raw in output.split("\\n"):
        entry = raw.strip()
        if not entry:
            continue
        m = _KO_MODULE_RE.search(entry)
        if m:
            rb.added_kernel_modules.append(m.group(1))
            continue
        m = _COPY_DIR_RE.match(entry)
        if m:
            rb.copy_dirs.append(CopyDir(dir=m.group(1)))
            continue
        if _BINARY_RE.match(entry) and "module" not in entry:
            rb.binaries.append(_BINARY_RE.sub("", entry))
        elif entry.startswith("Adding firmware "):
            rb.firmware.append(entry[len("Adding firmware "):])
        elif entry.startswith("Adding config "):
            rb.configs.append(entry[len("Adding config "):])
        elif entry.startswith("(excluding ") and rb.copy_dirs:
            rb.copy_dirs[-1].excludes = entry
        elif entry.startswith("Calling hook "):
            rb.hooks.append(entry[len("Calling hook "):])
        elif entry.startswith("microcode bundle "):
            rb.microcode_count += 1
        elif not rb.image_path:
            g = _GENERATING_RE.search(entry)
            if g:
                rb.image_path = g.group(1).strip()


class InitramfsScanner:
    def __init__(self) -> None:
        self.state = State.IDLE
        self.current: Optional[InitramfsRebuild] = None
        self.rebuilds: List[InitramfsRebuild] = []
        # module lines may show up before any command line is seen
        self.orphan = InitramfsRebuild()

    def _target(self) -> InitramfsRebuild:
        return self.current if self.current is not None else self.orphan

    def _close(self) -> None:
        if self.current is not None:
            self.rebuilds.append(self.current)
        self.current = None
        self.state = State.IDLE

    def feed(self, index: int, line: str) -> None:
        m = _OUTPUT_RE.search(line)
        if m and tool_of(line) != "unknown":
            parse_command_output(m.group(1), self._target())
            return

        m = _COMMAND_RE.search(line)
        if m:
            self._close()
            self.current = InitramfsRebuild(tool=tool_of(m.group(1)), command=m.group(1), line_number=index)
            self.state = State.REBUILDING
            return

        rb = self._target()
        m = _DURATION_RE.search(line)
        if m and self.state is State.REBUILDING and rb.duration_secs is None:
            rb.duration_secs = safe_float(m.group(1))
            return
        m = _DRACUT_MODULE_RE.search(line)
        if m:
            rb.included_modules.append(m.group(1))
            return
        m = _KO_MODULE_RE.search(line)
        if m:
            rb.added_kernel_modules.append(m.group(1))
            return
        m = _COMPRESSION_RE.search(line)
        if m:
            rb.compression = m.group(1)
            return
        m = _IMAGE_RE.search(line) or _GENERATING_RE.search(line)
        if m:
            rb.image_path = m.group(1).strip()

    def finish(self) -> List[InitramfsRebuild]:
        self._close()
        if self.orphan.has_modules() and not self.rebuilds:
            self.orphan.line_number = 0
            self.rebuilds.append(self.orphan)
        return self.rebuilds


def dedup_rebuilds(rebuilds: Sequence[InitramfsRebuild]) -> List[InitramfsRebuild]:
    out = dedup_by_key(rebuilds, key=lambda r: r.command)
    for rb in out:
        rb.included_modules = dedup_preserve_order(rb.included_modules)
        rb.added_kernel_modules = dedup_preserve_order(rb.added_kernel_modules)
    return out


@memoize_by_identity(maxsize=16)
def extract_initramfs(lines: Sequence[str]) -> List[InitramfsRebuild]:
    scanner = InitramfsScanner()
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    rebuilds = [r for r in dedup_rebuilds(scanner.finish()) if r.command or r.has_modules()]
    logger.debug("initramfs rebuilds: %d", len(rebuilds))
    return rebuilds
