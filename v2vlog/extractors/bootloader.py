# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/bootloader.py
"""
Bootloader, fstab and modprobe evidence from the Linux conversion stage.

Most of it comes from augeas traffic: `aug_get` reads of GRUB_CMDLINE_LINUX
and the fstab specs, `aug_set` writes of DEFAULTKERNEL and modprobe
aliases. Values arrive on the result line after the call, so the scanner
looks ahead a few lines for them.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ..core.list_utils import dedup_by_key, dedup_preserve_order
from ..core.memo import memoize_by_identity
from .base import scan_forward

logger = logging.getLogger(__name__)

GRUB_CMDLINE_LOOKAHEAD = 5
MODPROBE_LOOKAHEAD = 5
FSTAB_SPEC_LOOKAHEAD = 5

_DETECTED_RE = re.compile(r"^detected bootloader (\S+) at (.+)")
_FIND_RE = re.compile(r"\bfind = \[(.+)\]")
_AUG_GET_VALUE_RE = re.compile(r"aug_get = [\"'](.+)[\"']")
_BDM_HEADER_RE = re.compile(r"^info: block device map:")
_BDM_ENTRY_RE = re.compile(r"^\t(\S+)\s+->\s+(\S+)")
_FSTAB_SPEC_RE = re.compile(r"aug_get = [\"'](.+?)[\"']")
_LAST_ARG_RE = re.compile(r"[\"']([^\"']+)[\"']\s*$")
_MODULENAME_RE = re.compile(r"modulename")


@dataclass
class ModprobeAlias:
    alias: str
    module: str


@dataclass
class BootloaderInfo:
    type: str = ""
    config_path: str = ""
    efi_files: List[str] = field(default_factory=list)
    grub_cmdline: str = ""
    grub_cmdline_line: Optional[int] = None
    block_device_map: List[Tuple[str, str]] = field(default_factory=list)
    fstab_specs: List[str] = field(default_factory=list)
    default_kernel: str = ""
    modprobe_aliases: List[ModprobeAlias] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.type
            or self.efi_files
            or self.grub_cmdline
            or self.block_device_map
            or self.fstab_specs
            or self.default_kernel
            or self.modprobe_aliases
        )


class State(Enum):
    IDLE = "idle"
    DEVICE_MAP = "device_map"


def _unquote(value: str) -> str:
    return value.replace('\\"', '"').strip().strip("\"'")


class BootloaderScanner:
    def __init__(self, lines: Sequence[str]) -> None:
        self.lines = lines
        self.state = State.IDLE
        self.info = BootloaderInfo()

    def feed(self, index: int, line: str) -> None:
        if self.state is State.DEVICE_MAP:
            m = _BDM_ENTRY_RE.match(line)
            if m:
                self.info.block_device_map.append((m.group(1), m.group(2)))
                return
            self.state = State.IDLE

        if _BDM_HEADER_RE.match(line):
            self.state = State.DEVICE_MAP
            return

        m = _DETECTED_RE.match(line)
        if m:
            self.info.type = m.group(1)
            self.info.config_path = m.group(2).strip()
            return

        if "/EFI" in line:
            m = _FIND_RE.search(line)
            if m:
                items = [s.strip().strip("\"'") for s in m.group(1).split(",")]
                self.info.efi_files = [f for f in items if f]
                return

        if "aug_get" in line and "GRUB_CMDLINE_LINUX" in line and "aug_get =" not in line:
            self._grub_cmdline(index)
            return

        if "aug_get" in line and "/files/etc/fstab/" in line and "/spec" in line:
            m = _FSTAB_SPEC_RE.search(line)
            if m is None and "aug_get =" not in line:
                hit = scan_forward(self.lines, index, FSTAB_SPEC_LOOKAHEAD, _FSTAB_SPEC_RE)
                m = hit[1] if hit is not None else None
            if m:
                self.info.fstab_specs.append(m.group(1))
            return

        if "aug_set" not in line:
            return
        if "DEFAULTKERNEL/value" in line:
            m = _LAST_ARG_RE.search(line)
            if m:
                self.info.default_kernel = m.group(1)
        elif "modprobe.d" in line and "/alias[" in line and not _MODULENAME_RE.search(line):
            self._modprobe_alias(index, line)

    def _grub_cmdline(self, index: int) -> None:
        for j in range(index + 1, min(len(self.lines), index + GRUB_CMDLINE_LOOKAHEAD + 1)):
            m = _AUG_GET_VALUE_RE.search(self.lines[j])
            if m and "=" in m.group(1):
                self.info.grub_cmdline = _unquote(m.group(1))
                self.info.grub_cmdline_line = j
                return

    def _modprobe_alias(self, index: int, line: str) -> None:
        alias = _LAST_ARG_RE.search(line)
        if not alias:
            return
        hit = scan_forward(self.lines, index, MODPROBE_LOOKAHEAD, _MODULENAME_RE)
        if hit is None:
            return
        module = _LAST_ARG_RE.search(self.lines[hit[0]])
        if module:
            self.info.modprobe_aliases.append(ModprobeAlias(alias=alias.group(1), module=module.group(1)))

    def finish(self) -> BootloaderInfo:
        self.state = State.IDLE
        return self.info


def dedup_bootloader(info: BootloaderInfo) -> BootloaderInfo:
    info.fstab_specs = dedup_preserve_order(info.fstab_specs)
    info.block_device_map = dedup_preserve_order(info.block_device_map)
    info.modprobe_aliases = dedup_by_key(info.modprobe_aliases, key=lambda a: (a.alias, a.module))
    return info


@memoize_by_identity(maxsize=16)
def extract_bootloader(lines: Sequence[str]) -> BootloaderInfo:
    scanner = BootloaderScanner(lines)
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    info = dedup_bootloader(scanner.finish())
    logger.debug("bootloader: %s (%d fstab specs)", info.type or "-", len(info.fstab_specs))
    return info
