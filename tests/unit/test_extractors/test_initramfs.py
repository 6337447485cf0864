# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.extractors.initramfs import extract_initramfs, tool_of

DRACUT = [
    'libguestfs: trace: v2v: command "/usr/bin/dracut --verbose --add-drivers virtio virtio_ring --force /boot/initramfs-5.14.0-1.x86_64.img 5.14.0-1.x86_64"',
    "dracut: *** Including module: bash ***",
    "dracut: *** Including module: systemd ***",
    "dracut: *** Including module: bash ***",
    "dracut: using auto-determined compression method 'pigz'",
    "dracut: *** Creating image file '/boot/initramfs-5.14.0-1.x86_64.img' ***",
    "guestfsd: => command (0x32) took 12.50 secs",
    'libguestfs: trace: v2v: command = ""',
]


@pytest.mark.unit
class TestExtractInitramfs:
    def test_tool_of(self):
        """The rebuild tool is named from the command text."""
        assert tool_of("/usr/sbin/mkinitrd -f") == "mkinitrd"
        assert tool_of("true") == "unknown"

    def test_dracut_rebuild(self):
        """dracut chatter is collected under its command."""
        rebuilds = extract_initramfs(list(DRACUT))
        assert len(rebuilds) == 1
        rb = rebuilds[0]
        assert rb.tool == "dracut"
        assert rb.command.startswith("/usr/bin/dracut --verbose")
        assert rb.included_modules == ["bash", "systemd"]
        assert rb.compression == "pigz"
        assert rb.image_path == "/boot/initramfs-5.14.0-1.x86_64.img"
        assert rb.duration_secs == 12.5
        assert rb.line_number == 0

    def test_update_initramfs_output(self):
        """The escaped update-initramfs output is sorted into categories."""
        lines = [
            'libguestfs: trace: v2v: command "update-initramfs -u -k all"',
            r'libguestfs: trace: v2v: command = "update-initramfs: Generating /boot/initrd.img-5.15.0-91-generic\n'
            r"Adding binary /usr/bin/kmod\n"
            r"Adding module /lib/modules/5.15.0-91-generic/kernel/drivers/block/virtio_blk.ko\n"
            r"Adding firmware /lib/firmware/foo.bin\n"
            r"Calling hook dmsetup\n"
            r'microcode bundle 1\n"',
        ]
        rb = extract_initramfs(lines)[0]
        assert rb.tool == "update-initramfs"
        assert rb.image_path == "/boot/initrd.img-5.15.0-91-generic"
        assert rb.binaries == ["/usr/bin/kmod"]
        assert rb.added_kernel_modules == ["virtio_blk.ko"]
        assert rb.firmware == ["/lib/firmware/foo.bin"]
        assert rb.hooks == ["dmsetup"]
        assert rb.microcode_count == 1

    def test_same_command_reported_once(self):
        """A rebuild logged twice is one rebuild."""
        assert len(extract_initramfs(DRACUT + DRACUT)) == 1

    def test_modules_without_command(self):
        """Module lines with no command still form a rebuild."""
        rebuilds = extract_initramfs(["dracut: *** Including module: nss-softokn ***"])
        assert rebuilds[0].tool == "unknown"
        assert rebuilds[0].included_modules == ["nss-softokn"]

    def test_no_evidence(self):
        """Unrelated lines give no rebuilds."""
        assert extract_initramfs(["a", "b"]) == []
