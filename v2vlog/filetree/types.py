# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/filetree/types.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..parser.records import ApiCallRecord, CopyOrigin, FileCopyRecord

FILE_CHECK_APIS = frozenset(["is_file", "is_dir", "is_symlink", "is_blockdev", "is_chardev", "exists", "stat", "lstat"])
MOUNT_APIS = frozenset(["mount", "mount_ro", "mount_options"])
UMOUNT_APIS = frozenset(["umount", "umount_all"])

# handles naming the converted guest itself; anything else is an auxiliary source
PRIMARY_HANDLES = frozenset(["", "v2v"])

SYNTHETIC_DEVICE = "Guest"


class OpKind(str, Enum):
    COPY = "copy"
    AUGEAS = "augeas"
    RELABEL = "relabel"
    MOUNT = "mount"
    CALL = "call"


@dataclass
class FileCheck:
    api: str
    result: str = ""
    found: bool = False
    line_number: int = 0
    call: Optional[ApiCallRecord] = field(default=None, repr=False)


@dataclass
class FileOp:
    kind: OpKind
    line_number: int = 0
    copy: Optional[FileCopyRecord] = None
    aug_op: str = ""
    aug_key: str = ""
    aug_value: str = ""
    from_context: str = ""
    to_context: str = ""
    call: Optional[ApiCallRecord] = field(default=None, repr=False)

    def is_true_copy(self) -> bool:
        """Files brought in from outside the guest."""
        return (
            self.kind is OpKind.COPY
            and self.copy is not None
            and self.copy.origin in (CopyOrigin.VIRTIO_WIN, CopyOrigin.VIRT_TOOLS)
        )

    def is_script_op(self) -> bool:
        """Files written by virt-v2v itself (firstboot scripts, guest-side edits)."""
        return (
            self.kind is OpKind.COPY
            and self.copy is not None
            and self.copy.origin in (CopyOrigin.SCRIPT, CopyOrigin.GUEST)
        )


@dataclass
class TreeNode:
    name: str
    path: str
    children: Dict[str, "TreeNode"] = field(default_factory=dict)
    checks: List[FileCheck] = field(default_factory=list)
    ops: List[FileOp] = field(default_factory=list)
    # auxiliary trees only: copies that took this file into the guest
    copied_to: List[FileCopyRecord] = field(default_factory=list)

    def is_directory(self) -> bool:
        return bool(self.children)


@dataclass
class MountGroup:
    """One pass: a contiguous interval with `device` mounted on `mountpoint`."""

    device: str
    mountpoint: str
    chroot_path: str = ""
    checks: List[ApiCallRecord] = field(default_factory=list)
    start_line: int = 0
    # None while still mounted at the end of the log
    end_line: Optional[int] = None
    pass_number: int = 1
    handle: str = ""
    mount_calls: List[ApiCallRecord] = field(default_factory=list)

    def contains_line(self, line_number: int) -> bool:
        if line_number < self.start_line:
            return False
        return self.end_line is None or line_number <= self.end_line


@dataclass
class MergedDeviceGroup:
    device: str
    mountpoint: str
    passes: List[MountGroup] = field(default_factory=list)
    all_checks: List[ApiCallRecord] = field(default_factory=list)
    first_line: int = 0
    synthetic: bool = False


@dataclass
class TreeStats:
    total_entries: int = 0
    found: int = 0
    not_found: int = 0
    copies: int = 0
    scripts: int = 0
    augeas: int = 0
    augeas_by_op: Dict[str, int] = field(default_factory=dict)
    relabels: int = 0

    def add(self, other: "TreeStats") -> None:
        self.total_entries += other.total_entries
        self.found += other.found
        self.not_found += other.not_found
        self.copies += other.copies
        self.scripts += other.scripts
        self.augeas += other.augeas
        self.relabels += other.relabels
        for op, n in other.augeas_by_op.items():
            self.augeas_by_op[op] = self.augeas_by_op.get(op, 0) + n


@dataclass
class DeviceTree:
    device: str
    mountpoint: str
    root: TreeNode
    group: Optional[MergedDeviceGroup] = None
    # label of an auxiliary source, e.g. the virtio-win ISO path
    source_label: str = ""


@dataclass
class FileForest:
    device_trees: List[DeviceTree] = field(default_factory=list)
    aux_trees: List[DeviceTree] = field(default_factory=list)

    def all_trees(self) -> List[DeviceTree]:
        return self.device_trees + self.aux_trees
