# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.extractors.bios_uefi import PARTTYPE_LOOKBACK, decide_boot_type, extract_bios_uefi

CALL = 'libguestfs: trace: v2v: part_get_parttype "/dev/sda"'
RESULT = 'libguestfs: trace: v2v: part_get_parttype = "gpt"'


@pytest.mark.unit
class TestDecideBootType:
    def test_precedence(self):
        """Firmware beats the remark, which beats partition tables."""
        assert decide_boot_type("uefi", "This guest requires BIOS", {"/dev/sda": "msdos"}) == "uefi"
        assert decide_boot_type("", "This guest requires BIOS", {"/dev/sda": "gpt"}) == "bios"
        assert decide_boot_type("", "", {"/dev/sda": "msdos"}) == "bios"
        assert decide_boot_type("", "", {}) == "unknown"


@pytest.mark.unit
class TestExtractBiosUefi:
    def test_in_place_format(self):
        """virt-v2v-in-place prints the firmware and boot device directly."""
        out = extract_bios_uefi(["target firmware: uefi", "target boot device: /dev/sda"])
        assert (out.boot_type, out.firmware, out.boot_device) == ("uefi", "uefi", "/dev/sda")

    def test_requirement_message(self):
        """The guest requirement remark decides when no firmware line exists."""
        out = extract_bios_uefi(["virt-v2v: This guest requires UEFI on the target to boot."])
        assert out.boot_type == "uefi"
        assert out.message.startswith("This guest requires UEFI")

    def test_partition_tables(self):
        """Partition table types are paired with the disk they were asked for."""
        lines = [
            'libguestfs: trace: v2v: list_partitions = ["/dev/sda1", "/dev/sda2"]',
            CALL,
            RESULT,
            "pci-0000:00:10.0-scsi-0:0:0:0",
        ]
        out = extract_bios_uefi(lines)
        assert out.partitions == ["/dev/sda1", "/dev/sda2"]
        assert out.part_types == {"/dev/sda": "gpt"}
        assert out.by_path == ["pci-0000:00:10.0-scsi-0:0:0:0"]
        assert out.boot_type == "uefi"

    def test_parttype_lookback_edge(self):
        """The call may precede its result by exactly the lookback window."""
        at_edge = [CALL] + ["x"] * (PARTTYPE_LOOKBACK - 1) + [RESULT]
        beyond = [CALL] + ["x"] * PARTTYPE_LOOKBACK + [RESULT]
        assert extract_bios_uefi(at_edge).part_types == {"/dev/sda": "gpt"}
        assert extract_bios_uefi(beyond).part_types == {}

    def test_parted_stdout(self):
        """parted output captured from the daemon becomes a disk layout."""
        lines = [
            "command: parted: stdout:",
            "BYT;",
            "/dev/sda:1000000000B:scsi:512:512:gpt:Model;",
            "1:1048576B:2097151B:1048576B:fat32:EFI:boot, esp;",
            "command: parted returned 0",
        ]
        disk = extract_bios_uefi(lines).parted_lines[0]
        assert disk.device == "/dev/sda"
        assert disk.partitions[0].fs_type == "vfat"

    def test_guest_caps_and_mountpoint_stats(self):
        """gcaps lines and the mountpoint stats table are read."""
        lines = [
            "gcaps_block_bus = virtio-blk",
            "gcaps_machine = q35",
            "mountpoint stats:",
            "          Size        Used   Available",
            "/dev/sda1 / (xfs):",
            "  10726932480  2147483648  8579448832",
            "total 0",
        ]
        out = extract_bios_uefi(lines)
        assert out.guest_caps.block_bus == "virtio-blk"
        assert out.guest_caps.machine == "q35"
        mp = out.mountpoint_stats[0]
        assert (mp.device, mp.mountpoint, mp.fs_type) == ("/dev/sda1", "/", "xfs")
        assert (mp.size_bytes, mp.used_bytes, mp.avail_bytes) == (10726932480, 2147483648, 8579448832)

    def test_empty(self):
        """No evidence leaves the boot type unknown."""
        assert extract_bios_uefi([]).boot_type == "unknown"
