# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/base.py
"""
Helpers shared by the stage extractors.

The windowed scans bound how far a result line may drift from its request
line. A window of N covers exactly N lines past (or before) `start`, so a
match at distance N is found and one at N + 1 is not.
"""
from __future__ import annotations

import re
from typing import List, Optional, Pattern, Sequence, Tuple, Union

from ..core.units import canonical_fs_type, safe_int
from .models import AugeasError, DiskLayout, GuestCaps, PartitionEntry

PatternLike = Union[str, Pattern[str]]

# "'a' 'b c'" or "\"a\" \"b c\""
QUOTED_ARG_RE = re.compile(r"'([^']*)'|\"([^\"]*)\"")

# parted -m: "/dev/sda:1000000000B:scsi:512:512:gpt:Model;" with optional ":;"
PARTED_DISK_RE = re.compile(r"^(/dev/[\w/-]+):(\d+)B:([^:]*):(\d+):(\d+):([^:]*):(.*?):?;$")
# "1:1048576B:2097151B:1048576B:vfat:EFI:boot, esp;"
PARTED_PART_RE = re.compile(r"^(\d+):(\d+)B:(\d+)B:(\d+)B:([^:]*):([^:]*):([^;]*);?$")

# libguestfs trace noise interleaved into stage output
NOISE_PREFIXES = ("nbdkit:", "guestfsd:", "libguestfs: trace:")


def _compile(pattern: PatternLike) -> Pattern[str]:
    return re.compile(pattern) if isinstance(pattern, str) else pattern


def scan_forward(
    lines: Sequence[str], start: int, window: int, pattern: PatternLike
) -> Optional[Tuple[int, "re.Match[str]"]]:
    """First match in lines[start+1 .. start+window], as (index, match)."""
    rx = _compile(pattern)
    stop = min(len(lines), start + window + 1)
    for j in range(start + 1, stop):
        m = rx.search(lines[j])
        if m:
            return j, m
    return None


def scan_backward(
    lines: Sequence[str], start: int, window: int, pattern: PatternLike
) -> Optional[Tuple[int, "re.Match[str]"]]:
    """Nearest match in lines[start-window .. start-1], as (index, match)."""
    rx = _compile(pattern)
    stop = max(-1, start - window - 1)
    for j in range(start - 1, stop, -1):
        m = rx.search(lines[j])
        if m:
            return j, m
    return None


def quoted_args(text: str) -> List[str]:
    """Every single- or double-quoted argument in `text`, in order."""
    return [m.group(1) if m.group(1) is not None else m.group(2) for m in QUOTED_ARG_RE.finditer(text or "")]


def is_noise(line: str) -> bool:
    return line.startswith(NOISE_PREFIXES)


def parse_parted_disk(line: str) -> Optional[DiskLayout]:
    m = PARTED_DISK_RE.match(line.strip())
    if not m:
        return None
    return DiskLayout(
        device=m.group(1),
        size_bytes=safe_int(m.group(2)),
        transport=m.group(3),
        sector_size=safe_int(m.group(4), default=512),
        table_type=m.group(6),
        model=m.group(7),
    )


def parse_parted_partition(line: str) -> Optional[PartitionEntry]:
    m = PARTED_PART_RE.match(line.strip())
    if not m:
        return None
    return PartitionEntry(
        number=safe_int(m.group(1)),
        start_bytes=safe_int(m.group(2)),
        end_bytes=safe_int(m.group(3)),
        size_bytes=safe_int(m.group(4)),
        fs_type=canonical_fs_type(m.group(5)),
        name=m.group(6),
        flags=m.group(7),
    )


# "augeas failed to parse /etc/fstab:" with the detail on a later line
AUGEAS_FAILED_RE = re.compile(r"^augeas failed to parse ([^:]+?)\s*:")
AUGEAS_DETAIL_RE = re.compile(
    r"error\s+[\"']([^\"']+)[\"']\s+at\s+line\s+(\d+)\s+char\s+(\d+)(?:\s+in\s+lens\s+(\S+?):?\s*$)?"
)

GCAPS_RE = re.compile(r"^gcaps_(\w+)\s*=\s*(.+)")

# gcaps key -> (GuestCaps attribute, is_bool)
_GCAPS_FIELDS = {
    "block_bus": ("block_bus", False),
    "net_bus": ("net_bus", False),
    "virtio_rng": ("virtio_rng", True),
    "virtio_balloon": ("virtio_balloon", True),
    "isa_pvpanic": ("pvpanic", True),
    "virtio_socket": ("virtio_socket", True),
    "machine": ("machine", False),
    "arch": ("arch", False),
    "virtio_1_0": ("virtio_1_0", True),
    "rtc_utc": ("rtc_utc", True),
}


def parse_augeas_error(lines: Sequence[str], index: int, lookahead: int) -> Optional[AugeasError]:
    """
    Build the error reported at lines[index].

    The detail may sit on the same line or up to `lookahead` lines later;
    without it the error is still reported, with an empty message.
    """
    m = AUGEAS_FAILED_RE.match(lines[index])
    if not m:
        return None
    err = AugeasError(file=m.group(1).strip(), line_number=index)
    detail = AUGEAS_DETAIL_RE.search(lines[index])
    if detail is None:
        hit = scan_forward(lines, index, lookahead, AUGEAS_DETAIL_RE)
        detail = hit[1] if hit is not None else None
    if detail is not None:
        err.message = detail.group(1)
        err.line = safe_int(detail.group(2))
        err.char = safe_int(detail.group(3))
        err.lens = detail.group(4) or ""
    return err


def apply_guest_cap(caps: Optional[GuestCaps], line: str) -> Optional[GuestCaps]:
    """Fold one `gcaps_key = value` line into `caps`, creating it on first use."""
    m = GCAPS_RE.match(line)
    if not m:
        return caps
    if caps is None:
        caps = GuestCaps()
    spec = _GCAPS_FIELDS.get(m.group(1))
    if spec is not None:
        attr, is_bool = spec
        value = m.group(2).strip()
        setattr(caps, attr, value.lower() == "true" if is_bool else value)
    return caps
