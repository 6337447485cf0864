# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/filetree/builder.py
"""
Per-device trees of the guest files virt-v2v touched.

Every call and every copy handed to build_forest() ends up in exactly one
node: checks in `checks`, everything else in `ops`. Calls without a usable
path, and the mount/umount calls of each pass, sit on the tree root.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence, Union

from ..core.memo import memoize_by_identity
from ..extractors.base import quoted_args
from ..extractors.selinux import RelabeledFile
from ..parser.records import ApiCallRecord, CopyOrigin, FileCopyRecord
from .augeas_path import AUGEAS_APIS, decompose_augeas_path, is_augeas_data_call
from .grouping import (
    attach_to_primary_group,
    group_aux_handles,
    group_by_mount,
    group_for_copy,
    group_for_path,
    merge_device_groups,
)
from .types import (
    FILE_CHECK_APIS,
    MOUNT_APIS,
    SYNTHETIC_DEVICE,
    UMOUNT_APIS,
    DeviceTree,
    FileCheck,
    FileForest,
    FileOp,
    MergedDeviceGroup,
    OpKind,
    TreeNode,
    TreeStats,
)

logger = logging.getLogger(__name__)

FallbackPolicy = Callable[[Sequence[MergedDeviceGroup]], Optional[MergedDeviceGroup]]

VIRTIO_WIN_HANDLE = "virtio_win"

# calls worth showing in a tree; build_forest() itself places whatever it is given
STAGE_FILE_OPS = FILE_CHECK_APIS | frozenset(
    [
        "download",
        "upload",
        "copy_in",
        "copy_out",
        "read_file",
        "read_lines",
        "cat",
        "write",
        "write_file",
        "write_append",
        "mkdir",
        "mkdir_p",
        "rm",
        "rm_rf",
        "rmdir",
        "chmod",
        "chown",
        "ln_sf",
        "ln_s",
        "link",
        "cp",
        "cp_a",
        "mv",
        "rename",
    ]
)


def normalize_path(path: str) -> str:
    """
      >>> normalize_path("///Balloon/2k19/amd64/balloon.inf")
      '/Balloon/2k19/amd64/balloon.inf'
    """
    return "/" + "/".join(s for s in (path or "").split("/") if s)


def _unquote(value: str) -> str:
    v = (value or "").strip()
    if len(v) >= 2 and v[0] == v[-1] and v[0] in "\"'":
        return v[1:-1]
    return v


def is_check_found(api: str, result: str) -> bool:
    """
    Did a probe find its path? stat/lstat answer with a struct, the
    predicates with a boolean.

      >>> is_check_found("is_file", "1")
      True
      >>> is_check_found("stat", "error: No such file or directory")
      False
    """
    result = _unquote(result)
    if api not in FILE_CHECK_APIS:
        return True
    if api in ("stat", "lstat"):
        return result not in ("", "0") and not result.startswith("error")
    return result in ("1", "true")


def select_tree_calls(calls: Sequence[ApiCallRecord]) -> List[ApiCallRecord]:
    """The calls that say something about guest files: probes, augeas edits, file ops and mounts."""
    return [
        c
        for c in calls
        if c.name in STAGE_FILE_OPS or c.name in MOUNT_APIS or c.name in UMOUNT_APIS or is_augeas_data_call(c)
    ]


def insert_path(root: TreeNode, raw_path: str) -> TreeNode:
    """Walk (and create) the nodes for `raw_path` below `root`."""
    node = root
    current = ""
    for seg in (raw_path or "").split("/"):
        if not seg:
            continue
        current = f"{current}/{seg}"
        child = node.children.get(seg)
        if child is None:
            child = TreeNode(name=seg, path=current)
            node.children[seg] = child
        node = child
    return node


def _path_arg(args: Sequence[str]) -> Optional[str]:
    if args and args[0].startswith("/"):
        return args[0]
    return None


def _augeas_op(root: TreeNode, call: ApiCallRecord, args: Sequence[str]) -> None:
    op_name = call.name[len("aug_"):]
    if op_name == "set":
        value = args[1] if len(args) >= 2 else ""
    elif op_name == "clear":
        value = ""
    else:
        value = _unquote(call.result)

    parsed = decompose_augeas_path(args[0]) if args else None
    node = insert_path(root, parsed.file_path) if parsed is not None else root
    node.ops.append(
        FileOp(
            kind=OpKind.AUGEAS,
            line_number=call.line_number,
            aug_op=op_name,
            aug_key=parsed.key if parsed is not None else (args[0] if args else ""),
            aug_value=value,
            call=call,
        )
    )


def place_call(root: TreeNode, call: ApiCallRecord) -> None:
    args = quoted_args(call.args)
    if call.name in FILE_CHECK_APIS:
        path = _path_arg(args)
        node = insert_path(root, path) if path else root
        node.checks.append(
            FileCheck(
                api=call.name,
                result=_unquote(call.result),
                found=is_check_found(call.name, call.result),
                line_number=call.line_number,
                call=call,
            )
        )
        return
    if is_augeas_data_call(call):
        _augeas_op(root, call, args)
        return
    path = _path_arg(args)
    # augeas bookkeeping (/augeas/...) is not a guest file
    if path and call.name not in AUGEAS_APIS:
        insert_path(root, path).ops.append(FileOp(kind=OpKind.CALL, line_number=call.line_number, call=call))
        return
    root.ops.append(FileOp(kind=OpKind.CALL, line_number=call.line_number, call=call))


def place_copy(root: TreeNode, copy: FileCopyRecord) -> None:
    insert_path(root, copy.destination).ops.append(FileOp(kind=OpKind.COPY, line_number=copy.line_number, copy=copy))


def place_relabel(root: TreeNode, relabel: RelabeledFile) -> None:
    insert_path(root, relabel.path).ops.append(
        FileOp(kind=OpKind.RELABEL, from_context=relabel.from_context, to_context=relabel.to_context)
    )


def _build_tree(
    group: MergedDeviceGroup,
    copies: Sequence[FileCopyRecord],
    relabels: Sequence[RelabeledFile],
) -> TreeNode:
    root = TreeNode(name="/", path="/")
    for p in group.passes:
        for call in p.mount_calls:
            root.ops.append(FileOp(kind=OpKind.MOUNT, line_number=call.line_number, call=call))
        for call in p.checks:
            place_call(root, call)
    for copy in copies:
        place_copy(root, copy)
    for relabel in relabels:
        place_relabel(root, relabel)
    return root


def _aux_tree(group: Optional[MergedDeviceGroup], handle: str, sources: Sequence[FileCopyRecord], label: str) -> DeviceTree:
    root = TreeNode(name="/", path="/")
    if group is not None:
        for p in group.passes:
            for call in p.mount_calls:
                root.ops.append(FileOp(kind=OpKind.MOUNT, line_number=call.line_number, call=call))
            for call in p.checks:
                place_call(root, call)
    for copy in sources:
        insert_path(root, normalize_path(copy.source)).copied_to.append(copy)
    return DeviceTree(device=handle, mountpoint="/", root=root, group=group, source_label=label)


@memoize_by_identity(maxsize=8)
def build_forest(
    calls: Sequence[ApiCallRecord],
    copies: Sequence[FileCopyRecord],
    relabels: Sequence[RelabeledFile] = (),
    fallback: FallbackPolicy = attach_to_primary_group,
    virtio_iso_path: str = "",
) -> FileForest:
    """
    Build one tree per guest device and one per auxiliary source.

    Copies go to the device whose mounted pass covers their line with the
    longest mountpoint prefix of the destination; unclaimed copies and
    relabels go wherever `fallback` says, or to a synthetic "Guest" tree
    when it has no answer.
    """
    groups = merge_device_groups(group_by_mount(calls))
    assigned_copies: Dict[int, List[FileCopyRecord]] = {}
    assigned_relabels: Dict[int, List[RelabeledFile]] = {}
    created: List[MergedDeviceGroup] = []

    def fallback_group() -> MergedDeviceGroup:
        group = fallback(groups)
        if group is not None:
            if not any(g is group for g in groups):
                groups.append(group)
            return group
        if not created:
            created.append(MergedDeviceGroup(device=SYNTHETIC_DEVICE, mountpoint="/", synthetic=True))
            groups.append(created[0])
        return created[0]

    for copy in copies:
        group = group_for_copy(groups, normalize_path(copy.destination), copy.line_number) or fallback_group()
        assigned_copies.setdefault(id(group), []).append(copy)
    for relabel in relabels:
        group = group_for_path(groups, normalize_path(relabel.path)) or fallback_group()
        assigned_relabels.setdefault(id(group), []).append(relabel)

    forest = FileForest()
    for group in groups:
        root = _build_tree(group, assigned_copies.get(id(group), []), assigned_relabels.get(id(group), []))
        forest.device_trees.append(DeviceTree(device=group.device, mountpoint=group.mountpoint, root=root, group=group))

    aux_groups = {g.device: g for g in group_aux_handles(calls)}
    iso_sources = [c for c in copies if c.origin is CopyOrigin.VIRTIO_WIN and c.source]
    if iso_sources and VIRTIO_WIN_HANDLE not in aux_groups:
        forest.aux_trees.append(_aux_tree(None, VIRTIO_WIN_HANDLE, iso_sources, virtio_iso_path))
    for handle, group in aux_groups.items():
        sources = iso_sources if handle == VIRTIO_WIN_HANDLE else []
        label = virtio_iso_path if handle == VIRTIO_WIN_HANDLE else ""
        forest.aux_trees.append(_aux_tree(group, handle, sources, label))

    logger.debug(
        "file forest: %d device trees, %d aux trees (%d calls, %d copies)",
        len(forest.device_trees),
        len(forest.aux_trees),
        len(calls),
        len(copies),
    )
    return forest


def count_stats(node: TreeNode) -> TreeStats:
    """Leaf-level totals below `node`; a file counts once however many ops it saw."""
    stats = TreeStats()
    if not node.children and (node.checks or node.ops):
        stats.total_entries = 1
        if any(op.is_true_copy() for op in node.ops):
            stats.copies = 1
        if any(op.is_script_op() for op in node.ops):
            stats.scripts = 1
        for op in node.ops:
            if op.kind is OpKind.AUGEAS:
                stats.augeas += 1
                stats.augeas_by_op[op.aug_op] = stats.augeas_by_op.get(op.aug_op, 0) + 1
            elif op.kind is OpKind.RELABEL:
                stats.relabels += 1
        if node.checks:
            if any(c.found for c in node.checks):
                stats.found = 1
            else:
                stats.not_found = 1
    for child in node.children.values():
        stats.add(count_stats(child))
    return stats


def find_node(tree: Union[TreeNode, DeviceTree], path: str) -> Optional[TreeNode]:
    """Look a path up in a tree; "///x" and "/x" name the same node."""
    node = tree.root if isinstance(tree, DeviceTree) else tree
    for seg in normalize_path(path).split("/"):
        if not seg:
            continue
        node = node.children.get(seg)
        if node is None:
            return None
    return node
