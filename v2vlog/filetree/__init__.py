# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/filetree/__init__.py
from .augeas_path import AugeasPath, decompose_augeas_path, is_augeas_data_call
from .builder import (
    build_forest,
    count_stats,
    find_node,
    insert_path,
    is_check_found,
    normalize_path,
    select_tree_calls,
)
from .grouping import (
    attach_to_primary_group,
    extract_chroot_path,
    group_aux_handles,
    group_by_mount,
    merge_device_groups,
)
from .types import (
    DeviceTree,
    FileCheck,
    FileForest,
    FileOp,
    MergedDeviceGroup,
    MountGroup,
    OpKind,
    TreeNode,
    TreeStats,
)

__all__ = [
    "AugeasPath",
    "DeviceTree",
    "FileCheck",
    "FileForest",
    "FileOp",
    "MergedDeviceGroup",
    "MountGroup",
    "OpKind",
    "TreeNode",
    "TreeStats",
    "attach_to_primary_group",
    "build_forest",
    "count_stats",
    "decompose_augeas_path",
    "extract_chroot_path",
    "find_node",
    "group_aux_handles",
    "group_by_mount",
    "insert_path",
    "is_augeas_data_call",
    "is_check_found",
    "merge_device_groups",
    "normalize_path",
    "select_tree_calls",
]
