# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/kernels.py
"""
Installed kernel enumeration from the Linux conversion stage.

virt-v2v prints one block per kernel it found in the guest:

    * kernel-core 5.14.0-1.x86_64 (x86_64)
    \t/boot/vmlinuz-5.14.0-1.x86_64
    \t/boot/initramfs-5.14.0-1.x86_64.img
    \t/lib/modules/5.14.0-1.x86_64
    \t2105 modules found
    virtio: blk=true net=true rng=true balloon=true
    \tpvpanic=true vsock=true xen=false debug=false

The "best kernel" / "default kernel" remarks precede the header.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from ..core.list_utils import dedup_by_key
from ..core.memo import memoize_by_identity
from ..core.units import safe_int

logger = logging.getLogger(__name__)

KERNEL_FLAG_LOOKBEHIND = 2

_HEADER_RE = re.compile(r"^\*\s+(\S+)\s+(\S+)\s+\((\S+)\)")
_MODULES_RE = re.compile(r"^(\d+) modules found")
_VIRTIO_RE = re.compile(r"^virtio:\s*(.*)$")
_VIRTIO_CONT_RE = re.compile(r"^(?:pvpanic|vsock|xen|debug)=")
_KV_RE = re.compile(r"(\w+)=(\S+)")

_TRUE_VALUES = ("true", "1", "yes")


@dataclass
class KernelInfo:
    name: str
    version: str
    arch: str = ""
    vmlinuz: str = ""
    initramfs: str = ""
    config: str = ""
    modules_path: str = ""
    modules_count: int = 0
    virtio: Dict[str, bool] = field(default_factory=dict)
    is_best: bool = False
    is_default: bool = False
    line_number: int = 0

    @property
    def key(self) -> str:
        return f"{self.name}-{self.version}"


class State(Enum):
    IDLE = "idle"
    IN_BLOCK = "in_block"


def parse_virtio_flags(text: str, into: Dict[str, bool]) -> None:
    for k, v in _KV_RE.findall(text):
        into[k] = v.lower() in _TRUE_VALUES


class KernelScanner:
    def __init__(self, lines: Sequence[str]) -> None:
        self.lines = lines
        self.state = State.IDLE
        self.current: Optional[KernelInfo] = None
        self.kernels: List[KernelInfo] = []

    def _flags(self, index: int, kernel: KernelInfo) -> None:
        for j in range(max(0, index - KERNEL_FLAG_LOOKBEHIND), index):
            prev = self.lines[j].lower()
            if "best kernel" in prev:
                kernel.is_best = True
            if "default" in prev:
                kernel.is_default = True

    def _close(self) -> None:
        if self.current is not None:
            self.kernels.append(self.current)
        self.current = None
        self.state = State.IDLE

    def feed(self, index: int, line: str) -> None:
        if self.state is State.IN_BLOCK and self.current is not None:
            if self._block_line(line):
                return
            self._close()

        m = _HEADER_RE.match(line)
        if m:
            kernel = KernelInfo(name=m.group(1), version=m.group(2), arch=m.group(3), line_number=index)
            self._flags(index, kernel)
            self.current = kernel
            self.state = State.IN_BLOCK

    def _block_line(self, line: str) -> bool:
        """Absorb one line of the current block; False when the block has ended."""
        k = self.current
        if k is None:
            return False
        if not line.strip():
            return True
        indented = line[:1].isspace()
        body = line.strip()

        m = _VIRTIO_RE.match(body)
        if m:
            parse_virtio_flags(m.group(1), k.virtio)
            return True
        if _VIRTIO_CONT_RE.match(body):
            parse_virtio_flags(body, k.virtio)
            return True

        if body.startswith("/boot/vmlinuz-"):
            k.vmlinuz = body
        elif body.startswith("/boot/initramfs-") or body.startswith("/boot/initrd"):
            k.initramfs = body
        elif body.startswith("/boot/config-"):
            k.config = body
        elif body.startswith("/lib/modules/"):
            k.modules_path = body
        else:
            m = _MODULES_RE.match(body)
            if m:
                k.modules_count = safe_int(m.group(1))
            elif not indented:
                return False
        return True

    def finish(self) -> List[KernelInfo]:
        self._close()
        return self.kernels


def dedup_kernels(kernels: Sequence[KernelInfo]) -> List[KernelInfo]:
    return dedup_by_key(kernels, key=lambda k: k.key)


@memoize_by_identity(maxsize=16)
def extract_kernels(lines: Sequence[str]) -> List[KernelInfo]:
    scanner = KernelScanner(lines)
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    kernels = dedup_kernels(scanner.finish())
    logger.debug("kernels: %d", len(kernels))
    return kernels
