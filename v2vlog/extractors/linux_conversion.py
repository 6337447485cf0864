# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/linux_conversion.py
"""
Linux guest conversion stage.

The stage itself carries the conversion module, the libosinfo match, the
candidate kernel packages, augeas parse errors, the guest capabilities and
the checks for other hypervisors' tools. Kernels, package removals,
initramfs rebuilds and the bootloader have their own scanners; their
output is often flushed after the next stage marker, so when the whole run
is available those scanners also run over it and the results are merged
on natural keys.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..core.list_utils import dedup_by_key, merge_unique
from ..core.memo import memoize_by_identity
from .base import apply_guest_cap, parse_augeas_error
from .bootloader import BootloaderInfo, extract_bootloader
from .initramfs import InitramfsRebuild, extract_initramfs
from .kernels import KernelInfo, extract_kernels
from .models import AugeasError, GuestCaps
from .packages import PackageOperation, extract_package_operations

logger = logging.getLogger(__name__)

AUGEAS_DETAIL_LOOKAHEAD = 1

_MODULE_RE = re.compile(r"picked conversion module (\S+)")
_OSINFO_RE = re.compile(r"libosinfo: loaded OS:\s*(.*)")
_RHEL_URL_RE = re.compile(r"redhat\.com/rhel/(.+)")
_CANDIDATES_RE = re.compile(r"^info: candidate kernel packages.*?:\s*(.*)")
_CLEANUP_RE = re.compile(r"is_file [\"']([^\"']+)[\"']")
_IS_FILE_RESULT_RE = re.compile(r"is_file = (\d)")

CLEANUP_MARKERS = ("VBoxGuestAdditions", "parallels-tools", "vmware-uninstall", "kudzu")
CONVERSION_MARKERS = (
    "candidate kernel packages",
    "installing kernel",
    "rebuilding initrd",
    "remapping networks",
)


@dataclass
class LinuxConversion:
    conversion_module: str = ""
    os_detected: str = ""
    kernel_packages: List[str] = field(default_factory=list)
    kernels: List[KernelInfo] = field(default_factory=list)
    augeas_errors: List[AugeasError] = field(default_factory=list)
    bootloader: BootloaderInfo = field(default_factory=BootloaderInfo)
    package_operations: List[PackageOperation] = field(default_factory=list)
    initramfs: List[InitramfsRebuild] = field(default_factory=list)
    guest_caps: Optional[GuestCaps] = None
    cleanup: List[str] = field(default_factory=list)


def readable_os(url: str) -> str:
    """
      >>> readable_os("http://redhat.com/rhel/9.4")
      'RHEL 9.4'
      >>> readable_os("http://ubuntu.com/ubuntu/22.04")
      'http://ubuntu.com/ubuntu/22.04'
    """
    url = url.strip()
    m = _RHEL_URL_RE.search(url)
    return f"RHEL {m.group(1)}" if m else url


def is_linux_conversion_content(lines: Sequence[str], sample: int = 200) -> bool:
    # gcaps_* also show up in the BIOS/UEFI check, so they do not count
    for line in lines[:sample]:
        if "picked conversion module" in line and "windows" not in line:
            return True
        if any(marker in line for marker in CONVERSION_MARKERS):
            return True
    return False


def _scan_stage(lines: Sequence[str], conv: LinuxConversion) -> None:
    for i, line in enumerate(lines):
        m = _MODULE_RE.search(line)
        if m:
            conv.conversion_module = m.group(1)
            continue
        m = _OSINFO_RE.search(line)
        if m:
            conv.os_detected = readable_os(m.group(1))
            continue
        m = _CANDIDATES_RE.match(line)
        if m:
            conv.kernel_packages = m.group(1).split()
            continue
        if line.startswith("gcaps_"):
            conv.guest_caps = apply_guest_cap(conv.guest_caps, line)
            continue
        if "is_file" in line and any(marker in line for marker in CLEANUP_MARKERS):
            m = _CLEANUP_RE.search(line)
            if m:
                r = _IS_FILE_RESULT_RE.search(line)
                found = r is not None and r.group(1) == "1"
                conv.cleanup.append(f"{m.group(1)} ({'found' if found else 'not found'})")


def extract_augeas_errors(lines: Sequence[str]) -> List[AugeasError]:
    errors = []
    for i, line in enumerate(lines):
        if line.startswith("augeas failed to parse"):
            err = parse_augeas_error(lines, i, AUGEAS_DETAIL_LOOKAHEAD)
            if err is not None:
                errors.append(err)
    return dedup_by_key(errors, key=lambda e: e.file)


def _merge_bootloader(primary: BootloaderInfo, secondary: BootloaderInfo) -> BootloaderInfo:
    if primary.is_empty():
        return secondary
    return primary


@memoize_by_identity(maxsize=16)
def extract_linux_conversion(lines: Sequence[str], whole_run: Optional[Sequence[str]] = None) -> LinuxConversion:
    conv = LinuxConversion()
    _scan_stage(lines, conv)
    conv.augeas_errors = extract_augeas_errors(lines)

    conv.kernels = list(extract_kernels(lines))
    conv.package_operations = list(extract_package_operations(lines))
    conv.initramfs = list(extract_initramfs(lines))
    conv.bootloader = extract_bootloader(lines)

    if whole_run is not None and whole_run is not lines:
        conv.kernels, _ = merge_unique(conv.kernels, extract_kernels(whole_run), key=lambda k: k.key)
        conv.package_operations, _ = merge_unique(
            conv.package_operations, extract_package_operations(whole_run), key=lambda p: p.command
        )
        conv.initramfs, _ = merge_unique(conv.initramfs, extract_initramfs(whole_run), key=lambda r: r.command)
        conv.bootloader = _merge_bootloader(conv.bootloader, extract_bootloader(whole_run))
        conv.augeas_errors, _ = merge_unique(conv.augeas_errors, extract_augeas_errors(whole_run), key=lambda e: e.file)

    logger.debug(
        "linux conversion: module=%s kernels=%d package ops=%d initramfs=%d",
        conv.conversion_module or "-",
        len(conv.kernels),
        len(conv.package_operations),
        len(conv.initramfs),
    )
    return conv
