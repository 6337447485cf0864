# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/windows.py
"""Windows guest conversion stage."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..core.list_utils import dedup_preserve_order
from ..core.memo import memoize_by_identity
from ..core.units import safe_int
from .base import apply_guest_cap
from .models import GuestCaps

logger = logging.getLogger(__name__)

_MODULE_RE = re.compile(r"picked conversion module (\S+)")
_INSPECT_STR_RE = re.compile(
    r"inspect_get_(type|arch|product_name|product_variant|osinfo|windows_current_control_set|windows_systemroot)"
    r" = [\"'](.+?)[\"']"
)
_INSPECT_NUM_RE = re.compile(r"inspect_get_(major|minor)_version = (\d+)")
_ISO_RE = re.compile(r"copy_from_virtio_win:\s+guest tools source ISO\s+(\S+)")
_ISO_VERSION_RE = re.compile(r"virtio-win-(\d[\d.]+\d)\.iso")
_WARNING_RE = re.compile(r"virt-v2v:\s*warning:\s*(.+)")

HAS_VIRTIO_MARKER = "This guest has virtio drivers installed"

# inspect_get_* name -> WindowsOsInfo attribute
_INSPECT_FIELDS = {
    "type": "type",
    "arch": "arch",
    "product_name": "product_name",
    "product_variant": "product_variant",
    "osinfo": "osinfo",
    "windows_current_control_set": "control_set",
    "windows_systemroot": "system_root",
}


@dataclass
class WindowsOsInfo:
    type: str = ""
    arch: str = ""
    major_version: Optional[int] = None
    minor_version: Optional[int] = None
    product_name: str = ""
    product_variant: str = ""
    osinfo: str = ""
    control_set: str = ""
    system_root: str = ""


@dataclass
class WindowsConversion:
    conversion_module: str = ""
    os_info: WindowsOsInfo = field(default_factory=WindowsOsInfo)
    virtio_iso: str = ""
    virtio_version: str = ""
    has_virtio_drivers: bool = False
    guest_caps: Optional[GuestCaps] = None
    warnings: List[str] = field(default_factory=list)


def is_windows_conversion_content(lines: Sequence[str], sample: int = 200) -> bool:
    for line in lines[:sample]:
        if "picked conversion module" in line and "windows" in line:
            return True
        if "copy_from_virtio_win" in line or "virtio_win: read_file" in line:
            return True
    return False


@memoize_by_identity(maxsize=16)
def extract_windows_conversion(lines: Sequence[str]) -> WindowsConversion:
    out = WindowsConversion()
    info = out.os_info
    for line in lines:
        m = _MODULE_RE.search(line)
        if m:
            out.conversion_module = m.group(1)
            continue

        # the first answer wins; inspection is repeated by later stages
        m = _INSPECT_STR_RE.search(line)
        if m:
            attr = _INSPECT_FIELDS[m.group(1)]
            if not getattr(info, attr):
                setattr(info, attr, m.group(2))
            continue
        m = _INSPECT_NUM_RE.search(line)
        if m:
            attr = f"{m.group(1)}_version"
            if getattr(info, attr) is None:
                setattr(info, attr, safe_int(m.group(2)))
            continue

        m = _ISO_RE.search(line)
        if m:
            out.virtio_iso = m.group(1)
        m = _ISO_VERSION_RE.search(line)
        if m and not out.virtio_version:
            out.virtio_version = m.group(1)
        if HAS_VIRTIO_MARKER in line:
            out.has_virtio_drivers = True

        if line.startswith("gcaps_"):
            out.guest_caps = apply_guest_cap(out.guest_caps, line)
            continue
        m = _WARNING_RE.search(line)
        if m:
            out.warnings.append(m.group(1).strip())

    out.warnings = dedup_preserve_order(out.warnings)
    logger.debug("windows conversion: %s virtio=%s", info.product_name or "-", out.virtio_version or "-")
    return out
