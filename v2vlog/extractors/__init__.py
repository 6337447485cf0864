# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/__init__.py
"""
Stage content extractors and the dispatch that picks one for a stage.

Stage names come from virt-v2v's progress markers ("Inspecting the source",
"Copying disk 1/2", ...). The specific names are checked first so that the
content-based conversion detection never claims a stage that has its own
extractor.
"""
from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..parser.records import StageRecord
from .bios_uefi import BiosUefi, extract_bios_uefi
from .bootloader import BootloaderInfo, extract_bootloader
from .disk_copy import DISK_COPY_STAGE_RE, DiskCopy, extract_disk_copy
from .disk_layout import DiskInventory, extract_disk_layout
from .fs_check import extract_fs_checks
from .initramfs import InitramfsRebuild, extract_initramfs
from .kernels import KernelInfo, extract_kernels
from .linux_conversion import LinuxConversion, extract_linux_conversion, is_linux_conversion_content
from .models import AugeasError, DiskLayout, FsCheckResult, GuestCaps, PartitionEntry
from .packages import PackageOperation, extract_package_operations
from .selinux import SELinuxRelabel, extract_selinux
from .source_setup import SourceSetup, extract_source_setup
from .windows import WindowsConversion, extract_windows_conversion, is_windows_conversion_content

logger = logging.getLogger(__name__)

_OUTPUT_METADATA_RE = re.compile(r"creating output metadata", re.IGNORECASE)


class StageKind(str, Enum):
    INSPECT = "inspect"
    FILESYSTEM_CHECK = "filesystem_check"
    FILESYSTEM_MAPPING = "filesystem_mapping"
    OPEN_SOURCE = "open_source"
    SOURCE_SETUP = "source_setup"
    DESTINATION = "destination"
    SELINUX = "selinux"
    BIOS_UEFI = "bios_uefi"
    HOSTNAME = "hostname"
    SEED = "seed"
    LINUX_CONVERSION = "linux_conversion"
    WINDOWS_CONVERSION = "windows_conversion"
    DISK_COPY = "disk_copy"
    OUTPUT_METADATA = "output_metadata"
    CLOSING_OVERLAY = "closing_overlay"
    FINISHING_OFF = "finishing_off"


def _has(name: str, *words: str) -> bool:
    return all(w in name for w in words)


def is_filesystem_check_stage(name: str) -> bool:
    return _has(name.lower(), "checking", "filesystem", "integrity")


def is_filesystem_mapping_stage(name: str) -> bool:
    return _has(name.lower(), "mapping", "filesystem")


def is_bios_uefi_stage(name: str) -> bool:
    low = name.lower()
    return ("bios" in low or "uefi" in low) and "boot" in low


def is_inspect_stage(name: str) -> bool:
    if is_bios_uefi_stage(name) or is_filesystem_check_stage(name) or is_filesystem_mapping_stage(name):
        return False
    low = name.lower()
    return _has(low, "inspecting", "source") or (
        "detecting" in low and ("bios" in low or "uefi" in low or "boot" in low)
    )


# Name matchers in priority order. The conversion kinds are not listed:
# they also consult the content, see stage_kind().
SPECIFIC_MATCHERS: List[Tuple[StageKind, Callable[[str], bool]]] = [
    (StageKind.FILESYSTEM_CHECK, is_filesystem_check_stage),
    (StageKind.FILESYSTEM_MAPPING, is_filesystem_mapping_stage),
    (StageKind.BIOS_UEFI, is_bios_uefi_stage),
    (StageKind.INSPECT, is_inspect_stage),
    (StageKind.OPEN_SOURCE, lambda n: _has(n.lower(), "opening", "source")),
    (StageKind.SOURCE_SETUP, lambda n: _has(n.lower(), "setting up", "source")),
    (StageKind.DESTINATION, lambda n: _has(n.lower(), "setting up", "destination")),
    (StageKind.SELINUX, lambda n: "selinux" in n.lower()),
    (StageKind.CLOSING_OVERLAY, lambda n: _has(n.lower(), "closing", "overlay")),
    (StageKind.FINISHING_OFF, lambda n: _has(n.lower(), "finishing", "off")),
    (StageKind.HOSTNAME, lambda n: _has(n.lower(), "setting", "hostname")),
    (StageKind.DISK_COPY, lambda n: bool(DISK_COPY_STAGE_RE.match(n))),
    (StageKind.OUTPUT_METADATA, lambda n: bool(_OUTPUT_METADATA_RE.search(n))),
    (StageKind.SEED, lambda n: "seed" in n.lower() or "random" in n.lower()),
]


def _specific_kind(name: str) -> Optional[StageKind]:
    for kind, match in SPECIFIC_MATCHERS:
        if match(name):
            return kind
    return None


def _is_free_space_check(name: str) -> bool:
    low = name.lower()
    return "checking" in low and "free" in low and ("disk" in low or "space" in low)


def _conversion_kind(name: str, lines: Optional[Sequence[str]]) -> Optional[StageKind]:
    low = name.lower()
    if "windows" in low and ("converting" in low or "conversion" in low):
        return StageKind.WINDOWS_CONVERSION
    if "conversion" in low and ("linux" in low or "rhel" in low):
        return StageKind.LINUX_CONVERSION
    if "converting" in low and "windows" not in low and "to " in low:
        return StageKind.LINUX_CONVERSION
    if lines is None or _is_free_space_check(name):
        return None
    if is_windows_conversion_content(lines):
        return StageKind.WINDOWS_CONVERSION
    if is_linux_conversion_content(lines):
        return StageKind.LINUX_CONVERSION
    return None


def stage_kind(name: str, lines: Optional[Sequence[str]] = None) -> Optional[StageKind]:
    """
    Classify a stage by its name, falling back to its content for the
    conversion stages whose wording differs between guests and versions.

      >>> stage_kind("Copying disk 1/2")
      <StageKind.DISK_COPY: 'disk_copy'>
      >>> stage_kind("Converting Red Hat Enterprise Linux 9.4 (Plow) to run on KVM")
      <StageKind.LINUX_CONVERSION: 'linux_conversion'>
      >>> stage_kind("Checking if the guest needs BIOS or UEFI to boot")
      <StageKind.BIOS_UEFI: 'bios_uefi'>
    """
    kind = _specific_kind(name)
    if kind is not None:
        return kind
    return _conversion_kind(name, lines)


def extract_stage(stage: StageRecord, whole_run: Optional[Sequence[str]] = None) -> Optional[Any]:
    """
    Run the extractor matching `stage` over its lines.

    `whole_run` is forwarded to the extractors whose evidence spills past
    the next stage marker (SELinux relabels, Linux conversion output).
    Returns None for stages without an extractor.
    """
    lines = stage.raw_lines
    kind = stage_kind(stage.name, lines)
    logger.debug("stage %r -> %s", stage.name, kind.value if kind else "-")
    if kind is None:
        return None
    if kind in (StageKind.INSPECT, StageKind.FILESYSTEM_MAPPING):
        return extract_disk_layout(lines)
    if kind is StageKind.FILESYSTEM_CHECK:
        return extract_fs_checks(lines)
    if kind is StageKind.SOURCE_SETUP:
        return extract_source_setup(lines)
    if kind is StageKind.SELINUX:
        return extract_selinux(lines, whole_run)
    if kind is StageKind.BIOS_UEFI:
        return extract_bios_uefi(lines)
    if kind is StageKind.LINUX_CONVERSION:
        return extract_linux_conversion(lines, whole_run)
    if kind is StageKind.WINDOWS_CONVERSION:
        return extract_windows_conversion(lines)
    if kind is StageKind.DISK_COPY:
        return extract_disk_copy(lines)
    return None


__all__ = [
    "AugeasError",
    "BiosUefi",
    "BootloaderInfo",
    "DiskCopy",
    "DiskInventory",
    "DiskLayout",
    "FsCheckResult",
    "GuestCaps",
    "InitramfsRebuild",
    "KernelInfo",
    "LinuxConversion",
    "PackageOperation",
    "PartitionEntry",
    "SELinuxRelabel",
    "SourceSetup",
    "StageKind",
    "WindowsConversion",
    "extract_bios_uefi",
    "extract_bootloader",
    "extract_disk_copy",
    "extract_disk_layout",
    "extract_fs_checks",
    "extract_initramfs",
    "extract_kernels",
    "extract_linux_conversion",
    "extract_package_operations",
    "extract_selinux",
    "extract_source_setup",
    "extract_stage",
    "extract_windows_conversion",
    "stage_kind",
]
