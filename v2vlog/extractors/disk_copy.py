# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/disk_copy.py
"""
"Copying disk N/M" stage: nbdinfo descriptions of the input and output
disks, the VDDK connection as seen in nbdkit's debug output, the nbdkit
filter stack, the copy worker count and VDDK warnings.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..core.list_utils import dedup_preserve_order
from ..core.memo import memoize_by_identity
from ..core.units import safe_int
from .tables import capability_label, mbr_type_name

logger = logging.getLogger(__name__)

SECTOR_SIZE = 512

_DISK_HEADER_RE = re.compile(r"^info:\s+(input|output)\s+disk\s+(\d+/\d+):")
_PROTOCOL_RE = re.compile(r"^protocol:\s+(.+)")
_EXPORT_SIZE_RE = re.compile(r"^\texport-size:\s+(\d+)\s+\(([^)]+)\)")
_FIELD_RE = re.compile(r"^\t(content|uri|block_size_minimum|block_size_preferred|block_size_maximum):\s+(.+)")
_CAPABILITY_RE = re.compile(r"^\t(is_\w+|can_\w+):\s+(.+)")

_VMDK_RE = re.compile(r"VixDiskLib_Open\s+\(connection,\s+(.+?),\s+\d+,")
_TRANSPORT_RE = re.compile(r"transport mode:\s+(\w+)")
_NFC_RE = re.compile(r"NBD_ClientOpen: attempting to create connection to\s+(.+)")
_SOCKET_RE = re.compile(
    r"NfcAioOpenSession: the socket options (client|server) snd buffer size (\d+),\s+rcv buffer size (\d+)"
)
_COW_SIZE_RE = re.compile(r"cow: underlying file size:\s+(\d+)")
_BLOCK_PARAMS_RE = re.compile(r"handle values minblock=(\d+)\s+maxdata=(\d+)\s+maxlen=(\d+)")
_FILTER_OPEN_RE = re.compile(r"nbdkit:\s+\w+\[\d+\]:\s+debug:\s+(\w[\w-]+):\s+open\s+readonly")
_WORKER_RE = re.compile(r"starting worker thread\s+\w+\.(\d+)")
_VDDK_WARNING_RE = re.compile(r"warning\s+-\[\d+\]\s+\[.+?\]\s+(.+)")
_MBR_PART_RE = re.compile(
    r"partition\s+(\d+)\s*:\s*ID=(0x[\da-fA-F]+),?\s*(active,?)?\s*.*?startsector\s+(\d+),\s*(\d+)\s+sectors"
)

DISK_COPY_STAGE_RE = re.compile(r"^Copying disk\s+\d+", re.IGNORECASE)


@dataclass
class MbrPartition:
    number: int
    id: str
    type_name: str = ""
    active: bool = False
    start_sector: int = 0
    sector_count: int = 0
    size_bytes: int = 0


@dataclass
class NbdDiskInfo:
    direction: str  # input | output
    label: str
    protocol: str = ""
    export_size: int = 0
    export_size_human: str = ""
    uri: str = ""
    content: str = ""
    capabilities: Dict[str, str] = field(default_factory=dict)
    block_size_minimum: str = ""
    block_size_preferred: str = ""
    block_size_maximum: str = ""
    partitions: List[MbrPartition] = field(default_factory=list)

    def labelled_capabilities(self) -> Dict[str, str]:
        return {capability_label(k): v for k, v in self.capabilities.items()}


@dataclass
class SocketBuffers:
    client_snd: int = 0
    client_rcv: int = 0
    server_snd: int = 0
    server_rcv: int = 0


@dataclass
class BlockParams:
    minblock: int
    maxdata: int
    maxlen: int


@dataclass
class VddkConnection:
    vmdk_path: str = ""
    transport_mode: str = ""
    nfc_endpoint: str = ""
    backing_size: int = 0
    block_params: Optional[BlockParams] = None
    socket_buffers: Optional[SocketBuffers] = None


@dataclass
class DiskCopy:
    disks: List[NbdDiskInfo] = field(default_factory=list)
    vddk: Optional[VddkConnection] = None
    filters: List[str] = field(default_factory=list)
    worker_count: int = 0
    warnings: List[str] = field(default_factory=list)

    def disk(self, direction: str) -> Optional[NbdDiskInfo]:
        for d in self.disks:
            if d.direction == direction:
                return d
        return None


class State(Enum):
    IDLE = "idle"
    NBDINFO = "nbdinfo"


def decode_mbr_partitions(content: str) -> List[MbrPartition]:
    """
    Partitions from nbdinfo's `file(1)`-style content description.

      >>> p = decode_mbr_partitions("DOS/MBR boot sector; partition 1 : ID=0x83, active, "
      ...                           "start-CHS (0x0,32,33), startsector 2048, 2097152 sectors")
      >>> (p[0].id, p[0].active, p[0].size_bytes)
      ('0x83', True, 1073741824)
    """
    out = []
    for m in _MBR_PART_RE.finditer(content or ""):
        count = safe_int(m.group(5))
        out.append(
            MbrPartition(
                number=safe_int(m.group(1)),
                id=m.group(2),
                type_name=mbr_type_name(m.group(2)),
                active=bool(m.group(3)),
                start_sector=safe_int(m.group(4)),
                sector_count=count,
                size_bytes=count * SECTOR_SIZE,
            )
        )
    return out


class DiskCopyScanner:
    def __init__(self) -> None:
        self.state = State.IDLE
        self.current: Optional[NbdDiskInfo] = None
        self.out = DiskCopy()
        self.vddk = VddkConnection()
        self.max_worker = -1

    def _close_disk(self) -> None:
        if self.current is not None:
            self.current.partitions = decode_mbr_partitions(self.current.content)
            self.out.disks.append(self.current)
        self.current = None
        self.state = State.IDLE

    def feed(self, index: int, line: str) -> None:
        m = _DISK_HEADER_RE.match(line)
        if m:
            self._close_disk()
            self.current = NbdDiskInfo(direction=m.group(1), label=f"{m.group(1)} disk {m.group(2)}")
            self.state = State.NBDINFO
            return

        if self.state is State.NBDINFO:
            if self._nbdinfo(line):
                return
            self._close_disk()

        self._debug_line(line)

    def _nbdinfo(self, line: str) -> bool:
        disk = self.current
        if disk is None:
            return False
        m = _PROTOCOL_RE.match(line)
        if m:
            disk.protocol = m.group(1).strip()
            return True
        m = _EXPORT_SIZE_RE.match(line)
        if m:
            disk.export_size = safe_int(m.group(1))
            disk.export_size_human = m.group(2)
            return True
        m = _FIELD_RE.match(line)
        if m:
            setattr(disk, m.group(1), m.group(2).strip())
            return True
        m = _CAPABILITY_RE.match(line)
        if m:
            disk.capabilities[m.group(1)] = m.group(2).strip()
            return True
        return line.startswith("\t") or line.startswith("export=") or not line.strip()

    def _debug_line(self, line: str) -> None:
        v = self.vddk
        m = _VMDK_RE.search(line)
        if m and not v.vmdk_path:
            v.vmdk_path = m.group(1).strip()
        m = _TRANSPORT_RE.search(line)
        if m:
            v.transport_mode = m.group(1)
        m = _NFC_RE.search(line)
        if m and not v.nfc_endpoint:
            v.nfc_endpoint = m.group(1).strip()
        m = _SOCKET_RE.search(line)
        if m:
            if m.group(1) == "client" and v.socket_buffers is None:
                v.socket_buffers = SocketBuffers(client_snd=safe_int(m.group(2)), client_rcv=safe_int(m.group(3)))
            elif m.group(1) == "server" and v.socket_buffers is not None:
                v.socket_buffers.server_snd = safe_int(m.group(2))
                v.socket_buffers.server_rcv = safe_int(m.group(3))
        m = _COW_SIZE_RE.search(line)
        if m:
            v.backing_size = safe_int(m.group(1))
        m = _BLOCK_PARAMS_RE.search(line)
        if m:
            v.block_params = BlockParams(
                minblock=safe_int(m.group(1)), maxdata=safe_int(m.group(2)), maxlen=safe_int(m.group(3))
            )

        m = _FILTER_OPEN_RE.search(line)
        if m:
            self.out.filters.append(m.group(1))
        m = _WORKER_RE.search(line)
        if m:
            self.max_worker = max(self.max_worker, safe_int(m.group(1), default=-1))
        m = _VDDK_WARNING_RE.search(line)
        if m:
            self.out.warnings.append(m.group(1).strip())

    def finish(self) -> DiskCopy:
        self._close_disk()
        if self.max_worker >= 0:
            self.out.worker_count = self.max_worker + 1
        if self.vddk.vmdk_path or self.vddk.transport_mode:
            self.out.vddk = self.vddk
        return self.out


def dedup_disk_copy(out: DiskCopy) -> DiskCopy:
    out.filters = dedup_preserve_order(out.filters)
    out.warnings = dedup_preserve_order(out.warnings)
    return out


@memoize_by_identity(maxsize=16)
def extract_disk_copy(lines: Sequence[str]) -> DiskCopy:
    scanner = DiskCopyScanner()
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    out = dedup_disk_copy(scanner.finish())
    logger.debug("disk copy: %d nbdinfo disks, %d workers", len(out.disks), out.worker_count)
    return out
