# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.extractors.disk_layout import GPT_TYPE_LOOKBACK, extract_disk_layout

PARTED = [
    "BYT;",
    "/dev/sda:1000000000B:scsi:512:512:gpt:Model;",
    "1:1048576B:2097151B:1048576B:vfat:EFI:boot, esp;",
]


@pytest.mark.unit
class TestParted:
    def test_disk_and_partition(self):
        """parted machine output becomes a disk with its partitions."""
        inv = extract_disk_layout(list(PARTED))
        assert len(inv.disks) == 1
        disk = inv.disks[0]
        assert disk.device == "/dev/sda"
        assert disk.table_type == "gpt"
        assert disk.size_bytes == 1000000000
        assert disk.transport == "scsi"
        assert len(disk.partitions) == 1
        part = disk.partitions[0]
        assert part.number == 1
        assert part.fs_type == "vfat"
        assert part.flags == "boot, esp"

    def test_fs_type_canonicalised(self):
        """Low-level filesystem names are mapped to kernel names."""
        lines = PARTED[:2] + ["2:2097152B:3145727B:1048576B:linux-swap(v1):swap:;"]
        part = extract_disk_layout(lines).disks[0].partitions[0]
        assert part.fs_type == "swap"

    def test_repeated_parted_output_kept_once(self):
        """The same disk printed again is not duplicated."""
        inv = extract_disk_layout(PARTED + ["noise"] + PARTED)
        assert [d.device for d in inv.disks] == ["/dev/sda"]

    def test_unterminated_block_kept(self):
        """A partition table cut off at end of input is still reported."""
        inv = extract_disk_layout(PARTED[:2])
        assert inv.disks[0].partitions == []


@pytest.mark.unit
class TestInventory:
    def test_filesystems_and_lvm(self):
        """Discovered filesystems and logical volumes are listed."""
        lines = [
            'list_filesystems: adding "/dev/sda1", "fat32"',
            'list_filesystems: adding "/dev/rhel/root", "xfs"',
            "command: lvm: stdout:",
            "rhel/root",
            "rhel/swap",
            "command: lvm returned 0",
        ]
        inv = extract_disk_layout(lines)
        assert [(f.device, f.fs_type) for f in inv.filesystems] == [("/dev/sda1", "vfat"), ("/dev/rhel/root", "xfs")]
        assert [v.path for v in inv.lvm_volumes] == ["rhel/root", "rhel/swap"]

    def test_gpt_type_guid_resolved(self):
        """A partition type GUID is attached with its name."""
        lines = PARTED + [
            'libguestfs: trace: v2v: part_get_gpt_type "/dev/sda" 1',
            'libguestfs: trace: v2v: part_get_gpt_type = "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"',
        ]
        part = extract_disk_layout(lines).disks[0].partitions[0]
        assert part.type_guid == "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"
        assert part.type_name == "EFI System"

    def test_unknown_guid_passed_through(self):
        """An unknown GUID is its own name."""
        guid = "11111111-2222-3333-4444-555555555555"
        lines = PARTED + [
            'libguestfs: trace: v2v: part_get_gpt_type "/dev/sda" 1',
            f'libguestfs: trace: v2v: part_get_gpt_type = "{guid}"',
        ]
        assert extract_disk_layout(lines).disks[0].partitions[0].type_name == guid

    def test_gpt_lookback_edge(self):
        """The call may sit exactly the lookback distance before its result."""
        call = 'libguestfs: trace: v2v: part_get_gpt_type "/dev/sda" 1'
        result = 'libguestfs: trace: v2v: part_get_gpt_type = "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"'
        at_edge = [call] + ["x"] * (GPT_TYPE_LOOKBACK - 1) + [result]
        beyond = [call] + ["x"] * GPT_TYPE_LOOKBACK + [result]
        assert extract_disk_layout(at_edge).partition_guids == {"/dev/sda:1": "C12A7328-F81F-11D2-BA4B-00A0C93EC93B"}
        assert extract_disk_layout(beyond).partition_guids == {}

    def test_inspection_keys_first_seen(self):
        """Inspection keys keep their first non-empty value."""
        inv = extract_disk_layout(["i_root = /dev/rhel/root", "i_type = linux", "i_root = /dev/sdb1"])
        assert inv.os_info == {"root": "/dev/rhel/root", "type": "linux"}

    def test_trim_results(self):
        """fstrim output is paired with the device being trimmed."""
        lines = ["info: trimming /dev/sda1", "/sysroot/: 1.5 GiB (1610612736 bytes) trimmed"]
        inv = extract_disk_layout(lines)
        assert inv.trim_ops[0].device == "/dev/sda1"
        assert inv.total_trimmed_bytes == 1610612736

    def test_empty_input(self):
        """No lines gives an empty inventory."""
        inv = extract_disk_layout([])
        assert inv.disks == [] and inv.filesystems == [] and inv.boot_device is None
