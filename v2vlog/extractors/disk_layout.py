# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/disk_layout.py
"""
Disk inventory of the source guest.

Collected from the inspection and filesystem-check stages:

  - parted machine output (`BYT;` then a disk line and partition lines),
    repeated many times in a log, so disks are kept first-seen;
  - `list_filesystems: adding "dev", "type"` discovery lines;
  - LVM `vg/lv` names printed under `command: lvm: stdout:`;
  - /dev/disk/by-path entries (`pci-...`);
  - GPT partition type GUIDs, from `part_get_gpt_type` results and from
    `sfdisk --part-type` stdout;
  - inspection keys (`i_root = ...`), fstrim results, the /boot device;
  - xfs_repair / e2fsck results (see fs_check).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.list_utils import dedup_by_key, dedup_preserve_order
from ..core.memo import memoize_by_identity
from ..core.units import canonical_fs_type, safe_int
from .base import parse_parted_disk, parse_parted_partition, scan_backward, scan_forward
from .fs_check import extract_fs_checks
from .models import DiskLayout, FsCheckResult
from .tables import gpt_type_name

logger = logging.getLogger(__name__)

GPT_TYPE_LOOKBACK = 10
SFDISK_GUID_LOOKAHEAD = 10

_LIST_FS_RE = re.compile(r"list_filesystems:\s*adding\s+[\"']([^\"']+)[\"'],\s*[\"']([^\"']+)[\"']")
_LVM_STDOUT_RE = re.compile(r"^command: lvm: stdout:")
_LVM_LV_RE = re.compile(r"^\s*([\w.+-]+)/([\w.+-]+)\s*$")
_BY_PATH_RE = re.compile(r"^(pci-\S+)$")
_GPT_RESULT_RE = re.compile(r"part_get_gpt_type\s+=\s+[\"']([^\"']+)[\"']")
_GPT_CALL_RE = re.compile(r"part_get_gpt_type\s+[\"'](/dev/[^\"']+)[\"']\s+(\d+)")
_SFDISK_RE = re.compile(r"command:\s*sfdisk\s+[\"']--part-type[\"']\s+[\"']([^\"']+)[\"']\s+[\"'](\d+)[\"']")
_GUID_RE = re.compile(r"^\s*([0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12})\s*$")
_OS_INFO_RE = re.compile(r"^i_(\w+)\s*=\s*(.*)$")
_TRIM_DEVICE_RE = re.compile(r"info: trimming\s+(/dev/\S+)")
_TRIM_RESULT_RE = re.compile(r"/sysroot/?:\s+(.+?)\s+\((\d+)\s+bytes\)\s+trimmed")
_CHECK_FS_ON_RE = re.compile(r"check_for_filesystem_on:\s+(\S+)\s+\((\w+)\)")
_CHECK_FS_MATCH_RE = re.compile(r"check_filesystem:\s+(\S+)\s+matched\s+(.+)")
_GRUB_SIG_RE = re.compile(r"has_grub_signature:.*\"GRUB\" signature on (/dev/\S+)\?\s+(true|false)")
_BOOT_FS_RE = re.compile(r"get_device_of_boot_filesystem:\s+found\s+/boot\s+filesystem on device\s+(/dev/\S+)")
_MOUNTPOINTS_RE = re.compile(r"mountpoints\s+=\s+\[([^\]]+)\]")


@dataclass
class FilesystemEntry:
    device: str
    fs_type: str
    line_number: int = 0


@dataclass
class LvmVolume:
    vg_name: str
    lv_name: str

    @property
    def path(self) -> str:
        return f"{self.vg_name}/{self.lv_name}"


@dataclass
class InspectionStep:
    device: str
    fs_type: str
    result: str = ""


@dataclass
class TrimOp:
    device: str
    trimmed_human: str
    trimmed_bytes: int = 0
    line_number: int = 0


@dataclass
class BootDevice:
    device: str = ""
    grub_signature: Optional[bool] = None
    mountpoints: List[Tuple[str, str]] = field(default_factory=list)


@dataclass
class DiskInventory:
    disks: List[DiskLayout] = field(default_factory=list)
    filesystems: List[FilesystemEntry] = field(default_factory=list)
    lvm_volumes: List[LvmVolume] = field(default_factory=list)
    by_path_devices: List[str] = field(default_factory=list)
    # "device:partnum" -> GUID
    partition_guids: Dict[str, str] = field(default_factory=dict)
    os_info: Dict[str, str] = field(default_factory=dict)
    inspection_steps: List[InspectionStep] = field(default_factory=list)
    trim_ops: List[TrimOp] = field(default_factory=list)
    total_trimmed_bytes: int = 0
    boot_device: Optional[BootDevice] = None
    fs_checks: List[FsCheckResult] = field(default_factory=list)


class State(Enum):
    IDLE = "idle"
    PARTED_DISK = "parted_disk"  # after "BYT;", expecting the disk line
    PARTED_PARTS = "parted_parts"
    LVM_STDOUT = "lvm_stdout"


class DiskLayoutScanner:
    def __init__(self, lines: Sequence[str]) -> None:
        self.lines = lines
        self.state = State.IDLE
        self.inv = DiskInventory()
        self.current_disk: Optional[DiskLayout] = None
        self.last_trim_device = ""

    def _boot(self) -> BootDevice:
        if self.inv.boot_device is None:
            self.inv.boot_device = BootDevice()
        return self.inv.boot_device

    def _finish_disk(self) -> None:
        if self.current_disk is not None:
            self.inv.disks.append(self.current_disk)
        self.current_disk = None

    def feed(self, index: int, line: str) -> None:
        if self.state is State.PARTED_DISK:
            self.state = State.IDLE
            disk = parse_parted_disk(line)
            if disk is not None:
                self.current_disk = disk
                self.state = State.PARTED_PARTS
                return
        elif self.state is State.PARTED_PARTS:
            part = parse_parted_partition(line)
            if part is not None and self.current_disk is not None:
                self.current_disk.partitions.append(part)
                return
            self._finish_disk()
            self.state = State.IDLE
        elif self.state is State.LVM_STDOUT:
            m = _LVM_LV_RE.match(line)
            if m:
                self.inv.lvm_volumes.append(LvmVolume(vg_name=m.group(1), lv_name=m.group(2)))
                return
            self.state = State.IDLE

        self._idle(index, line)

    def _idle(self, index: int, line: str) -> None:
        stripped = line.strip()
        if stripped == "BYT;":
            self.state = State.PARTED_DISK
            return
        if _LVM_STDOUT_RE.match(line):
            self.state = State.LVM_STDOUT
            return

        m = _LIST_FS_RE.search(line)
        if m:
            self.inv.filesystems.append(
                FilesystemEntry(device=m.group(1), fs_type=canonical_fs_type(m.group(2)), line_number=index)
            )
            return

        m = _BY_PATH_RE.match(stripped)
        if m:
            self.inv.by_path_devices.append(m.group(1))
            return

        m = _GPT_RESULT_RE.search(line)
        if m:
            hit = scan_backward(self.lines, index, GPT_TYPE_LOOKBACK, _GPT_CALL_RE)
            if hit is not None:
                _, call = hit
                self.inv.partition_guids.setdefault(f"{call.group(1)}:{safe_int(call.group(2))}", m.group(1))
            return

        m = _SFDISK_RE.search(line)
        if m:
            hit = scan_forward(self.lines, index, SFDISK_GUID_LOOKAHEAD, _GUID_RE)
            if hit is not None:
                _, g = hit
                self.inv.partition_guids.setdefault(f"{m.group(1)}:{safe_int(m.group(2))}", g.group(1).upper())
            return

        m = _OS_INFO_RE.match(line)
        if m:
            value = m.group(2).strip()
            if value and m.group(1) not in self.inv.os_info:
                self.inv.os_info[m.group(1)] = value
            return

        m = _TRIM_DEVICE_RE.search(line)
        if m:
            self.last_trim_device = m.group(1)
            return
        m = _TRIM_RESULT_RE.search(line)
        if m and self.last_trim_device:
            self.inv.trim_ops.append(
                TrimOp(
                    device=self.last_trim_device,
                    trimmed_human=m.group(1),
                    trimmed_bytes=safe_int(m.group(2)),
                    line_number=index,
                )
            )
            return

        m = _CHECK_FS_ON_RE.search(line)
        if m:
            self.inv.inspection_steps.append(InspectionStep(device=m.group(1), fs_type=m.group(2)))
            return
        m = _CHECK_FS_MATCH_RE.search(line)
        if m:
            for step in reversed(self.inv.inspection_steps):
                if step.device == m.group(1) and not step.result:
                    step.result = m.group(2).strip()
                    break
            return

        m = _GRUB_SIG_RE.search(line)
        if m:
            self._boot().grub_signature = m.group(2) == "true"
            return
        m = _BOOT_FS_RE.search(line)
        if m:
            self._boot().device = m.group(1)
            return
        m = _MOUNTPOINTS_RE.search(line)
        if m and not (self.inv.boot_device and self.inv.boot_device.mountpoints):
            parts = [p.strip().strip("\"'") for p in m.group(1).split(",")]
            pairs = [(parts[k], parts[k + 1]) for k in range(0, len(parts) - 1, 2)]
            self._boot().mountpoints = pairs

    def finish(self) -> DiskInventory:
        self._finish_disk()
        return self.inv


def dedup_inventory(inv: DiskInventory) -> DiskInventory:
    inv.disks = dedup_by_key(inv.disks, key=lambda d: d.device)
    inv.filesystems = dedup_by_key(inv.filesystems, key=lambda f: (f.device, f.fs_type))
    inv.lvm_volumes = dedup_by_key(inv.lvm_volumes, key=lambda v: v.path)
    inv.by_path_devices = dedup_preserve_order(inv.by_path_devices)
    inv.trim_ops = dedup_by_key(inv.trim_ops, key=lambda t: t.device)
    inv.total_trimmed_bytes = sum(t.trimmed_bytes for t in inv.trim_ops)
    return inv


def attach_partition_guids(inv: DiskInventory) -> None:
    for disk in inv.disks:
        for part in disk.partitions:
            guid = inv.partition_guids.get(f"{disk.device}:{part.number}")
            if guid and not part.type_guid:
                part.type_guid = guid
                part.type_name = gpt_type_name(guid)


@memoize_by_identity(maxsize=16)
def extract_disk_layout(lines: Sequence[str]) -> DiskInventory:
    scanner = DiskLayoutScanner(lines)
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    inv = dedup_inventory(scanner.finish())
    attach_partition_guids(inv)
    inv.fs_checks = extract_fs_checks(lines)
    logger.debug(
        "disk layout: %d disks, %d filesystems, %d LVs",
        len(inv.disks),
        len(inv.filesystems),
        len(inv.lvm_volumes),
    )
    return inv
