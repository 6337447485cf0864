# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.extractors.bootloader import GRUB_CMDLINE_LOOKAHEAD, extract_bootloader

GRUB_CALL = 'libguestfs: trace: v2v: aug_get "/files/etc/default/grub/GRUB_CMDLINE_LINUX"'
GRUB_VALUE = 'libguestfs: trace: v2v: aug_get = "crashkernel=auto rd.lvm.lv=rhel/root rhgb quiet"'


@pytest.mark.unit
class TestExtractBootloader:
    def test_detected_bootloader(self):
        """The detected bootloader and its config file are read."""
        info = extract_bootloader(["detected bootloader grub2 at /boot/grub2/grub.cfg"])
        assert (info.type, info.config_path) == ("grub2", "/boot/grub2/grub.cfg")

    def test_grub_cmdline(self):
        """The kernel command line comes from the aug_get result."""
        info = extract_bootloader([GRUB_CALL, GRUB_VALUE])
        assert info.grub_cmdline == "crashkernel=auto rd.lvm.lv=rhel/root rhgb quiet"
        assert info.grub_cmdline_line == 1

    def test_grub_cmdline_window_edge(self):
        """A result exactly at the lookahead distance is used; one further is not."""
        at_edge = [GRUB_CALL] + ["x"] * (GRUB_CMDLINE_LOOKAHEAD - 1) + [GRUB_VALUE]
        beyond = [GRUB_CALL] + ["x"] * GRUB_CMDLINE_LOOKAHEAD + [GRUB_VALUE]
        assert extract_bootloader(at_edge).grub_cmdline != ""
        assert extract_bootloader(beyond).grub_cmdline == ""

    def test_block_device_map(self):
        """Indented entries under the block device map header are pairs."""
        lines = ["info: block device map:", "\tsda -> virtio-blk", "\tsdb -> virtio-blk", "done"]
        assert extract_bootloader(lines).block_device_map == [("sda", "virtio-blk"), ("sdb", "virtio-blk")]

    def test_fstab_specs(self):
        """fstab specs read through augeas are listed once each."""
        lines = [
            'libguestfs: trace: v2v: aug_get "/files/etc/fstab/1/spec"',
            'libguestfs: trace: v2v: aug_get = "/dev/mapper/rhel-root"',
            'libguestfs: trace: v2v: aug_get "/files/etc/fstab/2/spec"',
            'libguestfs: trace: v2v: aug_get = "UUID=1234-ABCD"',
            'libguestfs: trace: v2v: aug_get "/files/etc/fstab/1/spec"',
            'libguestfs: trace: v2v: aug_get = "/dev/mapper/rhel-root"',
        ]
        assert extract_bootloader(lines).fstab_specs == ["/dev/mapper/rhel-root", "UUID=1234-ABCD"]

    def test_default_kernel_and_modprobe(self):
        """aug_set writes of DEFAULTKERNEL and modprobe aliases are recorded."""
        lines = [
            'libguestfs: trace: v2v: aug_set "/files/etc/sysconfig/kernel/DEFAULTKERNEL/value" "kernel-core"',
            'libguestfs: trace: v2v: aug_set "/files/etc/modprobe.d/virt-v2v-added.conf/alias[last()+1]" "eth0"',
            'libguestfs: trace: v2v: aug_set "/files/etc/modprobe.d/virt-v2v-added.conf/alias[last()]/modulename" "virtio_net"',
        ]
        info = extract_bootloader(lines)
        assert info.default_kernel == "kernel-core"
        assert [(a.alias, a.module) for a in info.modprobe_aliases] == [("eth0", "virtio_net")]

    def test_efi_files(self):
        """EFI files come from a find result under /EFI."""
        info = extract_bootloader(['libguestfs: trace: v2v: find = ["/EFI", "/EFI/redhat/grubx64.efi"]'])
        assert info.efi_files == ["/EFI", "/EFI/redhat/grubx64.efi"]

    def test_empty(self):
        """No evidence gives an empty record."""
        assert extract_bootloader([]).is_empty()
