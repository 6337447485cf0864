# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/bios_uefi.py
"""
BIOS / UEFI check stage.

Two log formats exist. virt-v2v probes the guest's partition tables
(`part_get_parttype`, parted machine output, /dev/disk/by-path), while
virt-v2v-in-place prints `target firmware:` and `target boot device:`
directly and may add a "This guest requires UEFI" remark. The firmware
line wins, then the remark, then the partition table types.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..core.list_utils import dedup_by_key, dedup_preserve_order
from ..core.memo import memoize_by_identity
from ..core.units import safe_int
from .base import apply_guest_cap, parse_parted_disk, parse_parted_partition, quoted_args, scan_backward
from .models import DiskLayout, GuestCaps

logger = logging.getLogger(__name__)

PARTTYPE_LOOKBACK = 20
PARTED_STDOUT_LOOKAHEAD = 20

BOOT_UEFI = "uefi"
BOOT_BIOS = "bios"
BOOT_UNKNOWN = "unknown"

_MESSAGE_RE = re.compile(r"virt-v2v[\w-]*:\s*(This guest requires (?:UEFI|BIOS)[^.]*\.?)", re.IGNORECASE)
_FIRMWARE_RE = re.compile(r"^target firmware:\s*(.+)")
_BOOT_DEVICE_RE = re.compile(r"^target boot device:\s*(.+)")
_GUEST_INFO_RE = re.compile(r"^\s{2,}(\S[^:]+):\s*(.+)")
_INSPECT_RE = re.compile(r"^(i_\w+)\s*=\s*(.+)")
_DISK_SUMMARY_RE = re.compile(r"^\s+\d+\s+\[\w+\]")
_MP_DEVICE_RE = re.compile(r"^(/\S+)\s+(\S+)\s+\((\w+)\):")
_PERCENT_RE = re.compile(r"([\d.]+%)\s*$")
_LIST_PARTITIONS_RE = re.compile(r"list_partitions\s*=\s*\[([^\]]*)\]")
_PARTTYPE_RESULT_RE = re.compile(r"part_get_parttype\s*=\s*[\"']([^\"']+)[\"']")
_PARTTYPE_CALL_RE = re.compile(r"part_get_parttype\s+[\"']([^\"']+)[\"']")
_PARTED_STDOUT_RE = re.compile(r"command: parted: ?stdout:")

_SIZE_KEYS = ("Size", "Used", "Available")
_MP_STATS_END = ("total ", "drwx", "srwx", "-rw")


@dataclass
class MountpointStat:
    device: str
    mountpoint: str
    fs_type: str
    size_bytes: int = 0
    used_bytes: int = 0
    avail_bytes: int = 0
    use_percent: str = ""


@dataclass
class BiosUefi:
    boot_type: str = BOOT_UNKNOWN
    firmware: str = ""
    boot_device: str = ""
    message: str = ""
    partitions: List[str] = field(default_factory=list)
    # device -> msdos | gpt
    part_types: Dict[str, str] = field(default_factory=dict)
    parted_lines: List[DiskLayout] = field(default_factory=list)
    by_path: List[str] = field(default_factory=list)
    guest_info: Dict[str, str] = field(default_factory=dict)
    guest_caps: Optional[GuestCaps] = None
    disk_summary: List[str] = field(default_factory=list)
    mountpoint_stats: List[MountpointStat] = field(default_factory=list)


class State(Enum):
    IDLE = "idle"
    MOUNTPOINT_STATS = "mountpoint_stats"


def decide_boot_type(firmware: str, message: str, part_types: Dict[str, str]) -> str:
    """
      >>> decide_boot_type("", "", {"/dev/sda": "gpt", "/dev/sdb": "msdos"})
      'uefi'
      >>> decide_boot_type("bios", "This guest requires UEFI", {})
      'bios'
    """
    if firmware:
        return BOOT_UEFI if firmware.lower() == BOOT_UEFI else BOOT_BIOS
    low = message.lower()
    if BOOT_UEFI in low:
        return BOOT_UEFI
    if BOOT_BIOS in low:
        return BOOT_BIOS
    types = set(part_types.values())
    if "gpt" in types:
        return BOOT_UEFI
    if "msdos" in types:
        return BOOT_BIOS
    return BOOT_UNKNOWN


def read_parted_block(lines: Sequence[str], index: int) -> Optional[DiskLayout]:
    """The disk described by the parted stdout following lines[index]."""
    disk: Optional[DiskLayout] = None
    stop = min(len(lines), index + PARTED_STDOUT_LOOKAHEAD + 1)
    for j in range(index + 1, stop):
        text = lines[j].strip()
        if not text or text == "BYT;":
            continue
        parsed = parse_parted_disk(text)
        if parsed is not None:
            disk = parsed
            continue
        part = parse_parted_partition(text)
        if part is not None and disk is not None:
            disk.partitions.append(part)
            continue
        break
    return disk


class BiosUefiScanner:
    def __init__(self, lines: Sequence[str]) -> None:
        self.lines = lines
        self.state = State.IDLE
        self.out = BiosUefi()
        self.pending_mount: Optional[MountpointStat] = None

    def _mountpoint_stats(self, line: str) -> bool:
        """Handle one line of the `mountpoint stats:` table; False once it has ended."""
        if all(k in line for k in _SIZE_KEYS):
            return True
        m = _MP_DEVICE_RE.match(line)
        if m:
            self.pending_mount = MountpointStat(device=m.group(1), mountpoint=m.group(2), fs_type=m.group(3))
            return True
        text = line.strip()
        nums = [n for n in text.split() if n.isdigit()]
        if self.pending_mount is not None and len(nums) >= 3:
            mp = self.pending_mount
            mp.size_bytes, mp.used_bytes, mp.avail_bytes = (safe_int(n) for n in nums[:3])
            self.out.mountpoint_stats.append(mp)
            self.pending_mount = None
            return True
        p = _PERCENT_RE.search(text)
        if p and self.out.mountpoint_stats and self.pending_mount is None:
            last = self.out.mountpoint_stats[-1]
            if not last.use_percent:
                last.use_percent = p.group(1)
                return True
        return not line.startswith(_MP_STATS_END)

    def feed(self, index: int, line: str) -> None:
        if self.state is State.MOUNTPOINT_STATS:
            if self._mountpoint_stats(line):
                return
            self.state = State.IDLE

        if "mountpoint stats:" in line:
            self.state = State.MOUNTPOINT_STATS
            return

        m = _MESSAGE_RE.search(line)
        if m:
            self.out.message = m.group(1)
            return
        m = _FIRMWARE_RE.match(line)
        if m:
            self.out.firmware = m.group(1).strip()
            return
        m = _BOOT_DEVICE_RE.match(line)
        if m:
            self.out.boot_device = m.group(1).strip()
            return

        m = _INSPECT_RE.match(line)
        if m:
            self.out.guest_info[m.group(1)] = m.group(2).strip()
            return
        if line.startswith("gcaps_"):
            self.out.guest_caps = apply_guest_cap(self.out.guest_caps, line)
            return
        if _DISK_SUMMARY_RE.match(line):
            self.out.disk_summary.append(line.strip())
            return
        m = _GUEST_INFO_RE.match(line)
        if m:
            key, value = m.group(1).strip(), m.group(2).strip()
            if value and key not in _SIZE_KEYS:
                self.out.guest_info[key] = value
            return

        m = _LIST_PARTITIONS_RE.search(line)
        if m:
            self.out.partitions.extend(quoted_args(m.group(1)))
            return
        m = _PARTTYPE_RESULT_RE.search(line)
        if m:
            hit = scan_backward(self.lines, index, PARTTYPE_LOOKBACK, _PARTTYPE_CALL_RE)
            if hit is not None:
                self.out.part_types[hit[1].group(1)] = m.group(1)
            return
        if _PARTED_STDOUT_RE.search(line):
            disk = read_parted_block(self.lines, index)
            if disk is not None:
                self.out.parted_lines.append(disk)
            return
        if line.startswith("pci-"):
            self.out.by_path.append(line.strip())

    def finish(self) -> BiosUefi:
        self.state = State.IDLE
        self.out.boot_type = decide_boot_type(self.out.firmware, self.out.message, self.out.part_types)
        return self.out


def dedup_bios_uefi(out: BiosUefi) -> BiosUefi:
    out.partitions = dedup_preserve_order(out.partitions)
    out.parted_lines = dedup_by_key(out.parted_lines, key=lambda d: d.device)
    out.by_path = dedup_preserve_order(out.by_path)
    out.disk_summary = dedup_preserve_order(out.disk_summary)
    return out


@memoize_by_identity(maxsize=16)
def extract_bios_uefi(lines: Sequence[str]) -> BiosUefi:
    scanner = BiosUefiScanner(lines)
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    out = dedup_bios_uefi(scanner.finish())
    logger.debug("bios/uefi: %s (%d partition tables)", out.boot_type, len(out.part_types))
    return out
