# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/guest_info.py
"""
Guest inspection results: the `i_*` keys virt-v2v prints, the indented
inspection block, and the application list from inspect_list_applications2.
"""
from __future__ import annotations

import re
from typing import Dict, List, Mapping, Tuple

from ..core.units import safe_int
from .records import DriveMapping, FstabEntry, GuestInfo, InstalledApp

GUEST_INFO_RE = re.compile(r"^i_(\w+)\s*=\s*(.+)$")
ROOT_HEADER_RE = re.compile(r"^(/dev/\S+)\s+\(\w+\):\s*$")
FS_ROLE_RE = re.compile(r"^fs:\s+(/dev/\S+)\s+\(\w+\)\s+role:\s+(\w+)")
INDENTED_KEY_RE = re.compile(r"^\s{4}(\w[\w\s]*\w)\s*:\s*(.+)$")

APP_ENTRY_SPLIT_RE = re.compile(r"\}\s*\[\d+\]\{")
DRIVE_ARROW_RE = re.compile(r"^(\w+)\s*=>\s*(.+)$")
DRIVE_PAIR_RE = re.compile(r"\((\w+),\s*([^)]+)\)")
FSTAB_PAIR_RE = re.compile(r"\(([^,]+),\s*([^)]+)\)")

# inspection block label -> guest info key
INSPECTION_KEYS = {
    "type": "type",
    "distro": "distro",
    "arch": "arch",
    "hostname": "hostname",
    "version": "version",
    "product_name": "product_name",
    "product_variant": "product_variant",
    "package_format": "package_format",
    "package_management": "package_management",
    "build ID": "build_id",
    "fstab": "fstab",
    "drive_mappings": "drive_mappings",
    "windows_systemroot": "windows_systemroot",
    "windows_software_hive": "windows_software_hive",
    "windows_system_hive": "windows_system_hive",
    "windows_current_control_set": "windows_current_control_set",
}

APP_FIELDS = (
    ("name", "app2_name"),
    ("display_name", "app2_display_name"),
    ("version", "app2_version"),
    ("publisher", "app2_publisher"),
    ("install_path", "app2_install_path"),
    ("description", "app2_description"),
    ("arch", "app2_arch"),
)


def collect_guest_info_line(line: str, raw: Dict[str, str]) -> bool:
    """Record one inspection key from `line` into `raw`; True if the line carried one."""
    m = GUEST_INFO_RE.match(line)
    if m:
        raw[m.group(1)] = m.group(2).strip()
        return True
    m = ROOT_HEADER_RE.match(line)
    if m:
        raw.setdefault("root", m.group(1))
        return True
    m = FS_ROLE_RE.match(line)
    if m:
        if m.group(2) == "root":
            raw.setdefault("root", m.group(1))
        return True
    m = INDENTED_KEY_RE.match(line)
    if m:
        key = INSPECTION_KEYS.get(m.group(1).strip())
        if key:
            raw.setdefault(key, m.group(2).strip())
            return True
    return False


def extract_app_field(fields: str, key: str) -> str:
    """
    Value of `key` in an `app2_a: x, app2_b: y` list. Values may hold commas,
    so a value runs up to the next `, app2_`.
    """
    marker = f"{key}: "
    idx = fields.find(marker)
    if idx < 0:
        return ""
    start = idx + len(marker)
    nxt = fields.find(", app2_", start)
    if nxt < 0:
        return re.sub(r",?\s*$", "", fields[start:]).strip()
    return fields[start:nxt].strip()


def parse_installed_apps(result: str) -> List[InstalledApp]:
    """
    Applications from an inspect_list_applications2 result:

      = <struct guestfs_application2_list(2) = [0]{app2_name: ...} [1]{...}>
    """
    start = result.find("[0]{")
    if start < 0:
        return []
    apps: List[InstalledApp] = []
    for chunk in APP_ENTRY_SPLIT_RE.split(result[start:]):
        fields = re.sub(r"\}\s*>?\s*$", "", re.sub(r"^\[\d+\]\{", "", chunk))
        app = InstalledApp(**{attr: extract_app_field(fields, key) for attr, key in APP_FIELDS})
        if app.display_name or app.name:
            apps.append(app)
    return apps


def cpe_version(product_name: str) -> str:
    """
      >>> cpe_version("cpe:2.3:o:amazon:amazon_linux:2023")
      '2023'
    """
    if not product_name.startswith("cpe:"):
        return ""
    parts = product_name.split(":")
    if len(parts) >= 6 and parts[5] and parts[5] != "*":
        return parts[5]
    return ""


def parse_drive_mappings(text: str) -> List[DriveMapping]:
    """Either `E => /dev/sdb1; C => /dev/sda2` or `[(C, /dev/sda2), (E, /dev/sdb1)]`, sorted by letter."""
    out: List[DriveMapping] = []
    if "=>" in text:
        for part in text.split(";"):
            m = DRIVE_ARROW_RE.match(part.strip())
            if m:
                out.append(DriveMapping(letter=m.group(1), device=m.group(2).strip()))
    else:
        for m in DRIVE_PAIR_RE.finditer(text):
            out.append(DriveMapping(letter=m.group(1).strip(), device=m.group(2).strip()))
    return sorted(out, key=lambda d: d.letter)


def parse_fstab_pairs(text: str) -> List[FstabEntry]:
    return [FstabEntry(device=m.group(1).strip(), mountpoint=m.group(2).strip()) for m in FSTAB_PAIR_RE.finditer(text)]


def _split_version(text: str) -> Tuple[int, int]:
    parts = text.split(".")
    return safe_int(parts[0] if parts else 0), safe_int(parts[1] if len(parts) > 1 else 0)


def build_guest_info(raw: Mapping[str, str]) -> GuestInfo:
    """
    Typed inspection result from the collected keys.

    The version comes from i_major_version/i_minor_version, else from a CPE
    product name, else from `version: X.Y`. The CPE is read before `version`,
    which inspection blocks sometimes fill with the CPE specification
    version (2.3).
    """
    major = safe_int(raw.get("major_version", 0))
    minor = safe_int(raw.get("minor_version", 0))
    if major == 0:
        cpe = cpe_version(raw.get("product_name", ""))
        if cpe:
            major, minor = _split_version(cpe)
        if major == 0 and "version" in raw:
            major, minor = _split_version(raw["version"])

    return GuestInfo(
        root=raw.get("root", ""),
        type=raw.get("type", ""),
        distro=raw.get("distro", ""),
        osinfo=raw.get("osinfo", ""),
        arch=raw.get("arch", ""),
        major_version=major,
        minor_version=minor,
        product_name=raw.get("product_name", ""),
        product_variant=raw.get("product_variant", ""),
        package_format=raw.get("package_format", ""),
        package_management=raw.get("package_management", ""),
        hostname=raw.get("hostname", ""),
        build_id=raw.get("build_id", ""),
        windows_systemroot=raw.get("windows_systemroot", ""),
        windows_software_hive=raw.get("windows_software_hive", ""),
        windows_system_hive=raw.get("windows_system_hive", ""),
        windows_current_control_set=raw.get("windows_current_control_set", ""),
        drive_mappings=parse_drive_mappings(raw.get("drive_mappings", "")),
        fstab=parse_fstab_pairs(raw.get("fstab", "")),
    )


def has_inspection(raw: Mapping[str, str]) -> bool:
    return any(k in raw for k in ("root", "type", "distro"))
