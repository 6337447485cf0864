# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/models.py
"""Records shared by more than one extractor."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class PartitionEntry:
    number: int
    start_bytes: int = 0
    end_bytes: int = 0
    size_bytes: int = 0
    fs_type: str = ""
    name: str = ""
    flags: str = ""
    type_guid: Optional[str] = None
    type_name: str = ""


@dataclass
class DiskLayout:
    device: str
    size_bytes: int = 0
    transport: str = ""
    sector_size: int = 512
    table_type: str = ""  # gpt | msdos | loop
    model: str = ""
    partitions: List[PartitionEntry] = field(default_factory=list)


@dataclass
class FsCheckResult:
    device: str
    tool: str  # xfs_repair | e2fsck
    exit_code: Optional[int] = None
    phases: List[str] = field(default_factory=list)
    duration_secs: Optional[float] = None
    summary: str = ""
    line_number: int = 0


@dataclass
class AugeasError:
    file: str
    message: str = ""
    line: Optional[int] = None
    char: Optional[int] = None
    lens: str = ""
    line_number: int = 0


@dataclass
class GuestCaps:
    """Target capabilities virt-v2v chose for the converted guest (`gcaps_*`)."""

    block_bus: str = ""
    net_bus: str = ""
    virtio_rng: bool = False
    virtio_balloon: bool = False
    pvpanic: bool = False
    virtio_socket: bool = False
    machine: str = ""
    arch: str = ""
    virtio_1_0: bool = False
    rtc_utc: bool = False
