# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/core/units.py
"""
Unit and name normalization applied at parse time.

Sizes are always exposed as integer bytes and filesystem types with their
kernel names, so the consumers never re-parse "12.8 GiB" or "fat32".
"""
from __future__ import annotations

import re
from typing import Any, Optional

_FS_ALIASES = {
    "fat32": "vfat",
    "fat16": "vfat",
    "fat12": "vfat",
    "fat": "vfat",
    "linux-swap": "swap",
    "linux-swap(v1)": "swap",
    "linux-swap(v0)": "swap",
    "linux-swap(new)": "swap",
    "linux-swap(old)": "swap",
    "lvm2_member": "LVM2_member",
}

_SIZE_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*([KMGTP]?)(I?)(B?)\s*$", re.IGNORECASE)

_MULTIPLIERS = {
    "": 1,
    "K": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
    "P": 1024**5,
}


def canonical_fs_type(name: str) -> str:
    """
    Map low-level tool spellings to kernel filesystem names.

      >>> canonical_fs_type("fat32")
      'vfat'
      >>> canonical_fs_type("linux-swap(v1)")
      'swap'
      >>> canonical_fs_type("XFS")
      'xfs'
    """
    raw = (name or "").strip()
    if not raw:
        return ""
    low = raw.lower()
    return _FS_ALIASES.get(low, low)


def parse_size_to_bytes(s: str) -> Optional[int]:
    """
    Parse human sizes into bytes with binary multipliers:
      - "10G", "10GiB", "10GB"
      - "12.8 GiB", "512 M"
      - "1024" (bytes)
    Returns None when the text is not a size.
    """
    m = _SIZE_RE.match(s or "")
    if not m:
        return None
    try:
        num = float(m.group(1))
    except ValueError:
        return None
    return int(num * _MULTIPLIERS[m.group(2).upper()])


def human_bytes(n: Optional[int]) -> str:
    if n is None:
        return "unknown"
    x = float(n)
    for unit in ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]:
        if x < 1024 or unit == "PiB":
            return f"{x:.2f} {unit}" if unit != "B" else f"{int(x)} {unit}"
        x /= 1024
    return f"{n} B"


def safe_int(x: Any, default: int = 0) -> int:
    try:
        return int(str(x).strip())
    except (TypeError, ValueError):
        return default


def safe_float(x: Any, default: float = 0.0) -> float:
    try:
        v = float(str(x).strip())
    except (TypeError, ValueError):
        return default
    # "nan"/"inf" parse but are not usable log values
    if v != v or v in (float("inf"), float("-inf")):
        return default
    return v
