# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/filetree/grouping.py
"""
Mount-context grouping of libguestfs calls.

virt-v2v mounts guest filesystems through the primary handle and probes
paths relative to the mounted tree, so a call only says which device it
touched through the mount calls issued before it. Only one (device,
mountpoint) pair is active at a time: a pass ends at the next umount or at
the next mount of a different pair, and a umount leaves nothing active.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from ..extractors.base import quoted_args
from ..parser.records import ApiCallRecord
from .types import (
    MOUNT_APIS,
    PRIMARY_HANDLES,
    SYNTHETIC_DEVICE,
    UMOUNT_APIS,
    MergedDeviceGroup,
    MountGroup,
)

logger = logging.getLogger(__name__)


def extract_chroot_path(mount_call: ApiCallRecord) -> str:
    """Host-side mount directory from the daemon's own `mount` command, "" if not logged."""
    for cmd in mount_call.guest_commands:
        if cmd.command == "mount" and cmd.args:
            return cmd.args[-1].rstrip("/") or "/"
    return ""


def mount_target(call: ApiCallRecord) -> Optional[Tuple[str, str]]:
    """(device, mountpoint) of a mount call; mount_options carries the options first."""
    args = quoted_args(call.args)
    if call.name == "mount_options":
        args = args[1:]
    if len(args) < 2 or not args[0]:
        return None
    return args[0], args[1]


def is_under(path: str, mountpoint: str) -> bool:
    """
      >>> is_under("/boot/grub2/grub.cfg", "/boot")
      True
      >>> is_under("/bootstrap", "/boot")
      False
    """
    mp = mountpoint.rstrip("/")
    if not mp:
        return True
    return path == mp or path.startswith(mp + "/")


class MountGrouper:
    def __init__(self) -> None:
        self.passes: List[MountGroup] = []
        self.current: Optional[MountGroup] = None
        self.pass_counts: Dict[Tuple[str, str], int] = {}
        self.orphans: Optional[MountGroup] = None

    def _orphan_group(self, call: ApiCallRecord) -> MountGroup:
        if self.orphans is None:
            self.orphans = MountGroup(
                device=SYNTHETIC_DEVICE, mountpoint="/", start_line=call.line_number, handle=call.handle
            )
            self.passes.append(self.orphans)
        return self.orphans

    def _flush(self, line_number: int) -> None:
        if self.current is not None:
            self.current.end_line = line_number
        self.current = None

    def _on_mount(self, call: ApiCallRecord) -> bool:
        target = mount_target(call)
        if target is None:
            return False
        cur = self.current
        if cur is not None and (cur.device, cur.mountpoint) == target:
            cur.mount_calls.append(call)
            return True
        self._flush(call.line_number)

        n = self.pass_counts.get(target, 0) + 1
        self.pass_counts[target] = n
        device, mountpoint = target
        self.current = MountGroup(
            device=device,
            mountpoint=mountpoint,
            chroot_path=extract_chroot_path(call),
            start_line=call.line_number,
            pass_number=n,
            handle=call.handle,
            mount_calls=[call],
        )
        self.passes.append(self.current)
        return True

    def _on_umount(self, call: ApiCallRecord) -> None:
        owner = self.current if self.current is not None else self._orphan_group(call)
        owner.mount_calls.append(call)
        self._flush(call.line_number)

    def feed(self, call: ApiCallRecord) -> None:
        if call.name in MOUNT_APIS and self._on_mount(call):
            return
        if call.name in UMOUNT_APIS:
            self._on_umount(call)
            return
        target = self.current if self.current is not None else self._orphan_group(call)
        target.checks.append(call)

    def finish(self) -> List[MountGroup]:
        # open passes stay open: no implicit umount at the end of the log
        return sorted(self.passes, key=lambda g: g.start_line)


def group_by_mount(calls: Sequence[ApiCallRecord]) -> List[MountGroup]:
    """
    Split the primary guest's calls into mount passes, in line order.

    Calls issued while nothing is mounted land in one synthetic pass on the
    device "Guest" at "/". Auxiliary-handle calls are ignored here, see
    group_aux_handles().
    """
    grouper = MountGrouper()
    for call in sorted(calls, key=lambda c: c.line_number):
        if call.handle in PRIMARY_HANDLES:
            grouper.feed(call)
    passes = grouper.finish()
    logger.debug("mount grouping: %d passes", len(passes))
    return passes


def merge_device_groups(passes: Sequence[MountGroup]) -> List[MergedDeviceGroup]:
    """Fold passes on the same device into one group; the first mountpoint is kept."""
    merged: Dict[str, MergedDeviceGroup] = {}
    for p in passes:
        group = merged.get(p.device)
        if group is None:
            group = MergedDeviceGroup(
                device=p.device,
                mountpoint=p.mountpoint,
                first_line=p.start_line,
                synthetic=p.device == SYNTHETIC_DEVICE,
            )
            merged[p.device] = group
        group.passes.append(p)
        group.all_checks.extend(p.checks)
        group.first_line = min(group.first_line, p.start_line)
    return sorted(merged.values(), key=lambda g: g.first_line)


def group_aux_handles(calls: Sequence[ApiCallRecord]) -> List[MergedDeviceGroup]:
    """One group per auxiliary handle (virtio_win, ...), rooted at "/"."""
    by_handle: Dict[str, MountGroup] = {}
    for call in sorted(calls, key=lambda c: c.line_number):
        if call.handle in PRIMARY_HANDLES:
            continue
        group = by_handle.get(call.handle)
        if group is None:
            group = MountGroup(device=call.handle, mountpoint="/", start_line=call.line_number, handle=call.handle)
            by_handle[call.handle] = group
        if call.name in MOUNT_APIS or call.name in UMOUNT_APIS:
            group.mount_calls.append(call)
        else:
            group.checks.append(call)
    out = []
    for handle, group in by_handle.items():
        out.append(
            MergedDeviceGroup(
                device=handle,
                mountpoint="/",
                passes=[group],
                all_checks=list(group.checks),
                first_line=group.start_line,
            )
        )
    return out


def group_for_copy(groups: Sequence[MergedDeviceGroup], destination: str, line_number: int) -> Optional[MergedDeviceGroup]:
    """
    The group whose mountpoint is the longest prefix of `destination` among
    the passes mounted at `line_number`.
    """
    best: Optional[MergedDeviceGroup] = None
    best_len = -1
    for group in groups:
        if group.synthetic:
            continue
        for p in group.passes:
            if not p.contains_line(line_number) or not is_under(destination, p.mountpoint):
                continue
            depth = len(p.mountpoint.rstrip("/"))
            if depth > best_len:
                best, best_len = group, depth
    return best


def group_for_path(groups: Sequence[MergedDeviceGroup], path: str) -> Optional[MergedDeviceGroup]:
    """Longest mountpoint prefix of `path`, ignoring when each pass was mounted."""
    best: Optional[MergedDeviceGroup] = None
    best_len = -1
    for group in groups:
        if group.synthetic:
            continue
        for p in group.passes:
            depth = len(p.mountpoint.rstrip("/"))
            if is_under(path, p.mountpoint) and depth > best_len:
                best, best_len = group, depth
    return best


def attach_to_primary_group(groups: Sequence[MergedDeviceGroup]) -> Optional[MergedDeviceGroup]:
    """
    Default home for copies that no mounted pass claims: the device mounted
    on "/", else the first real device, else the synthetic guest group.
    Returning None makes the builder create a synthetic group.
    """
    real = [g for g in groups if not g.synthetic]
    for g in real:
        if g.mountpoint == "/":
            return g
    if real:
        return real[0]
    return groups[0] if groups else None
