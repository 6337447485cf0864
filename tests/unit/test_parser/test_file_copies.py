# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.parser.file_copies import (
    GENERATED_SOURCE,
    FileCopyTracker,
    decode_write_escapes,
    extract_original_size,
)
from v2vlog.parser.records import CopyOrigin


def _track(lines):
    t = FileCopyTracker()
    for i, line in enumerate(lines):
        t.feed(line, i)
    return t


@pytest.mark.unit
class TestDecodeWriteEscapes:
    def test_simple_escapes(self):
        """Backslash escapes from the trace are decoded."""
        assert decode_write_escapes(r"a\nb\tc\\d\"e") == 'a\nb\tc\\d"e'

    def test_hex_escapes(self):
        """\\xHH sequences become the character they name."""
        assert decode_write_escapes(r"\x41\x42C") == "ABC"

    def test_incomplete_escape_kept(self):
        """A dangling or unknown escape is copied through."""
        assert decode_write_escapes("tail\\") == "tail\\"
        assert decode_write_escapes(r"\q") == r"\q"

    def test_original_size(self):
        """The byte count is read from the truncation note."""
        assert extract_original_size('"..."<truncated, original size 4096 bytes>') == 4096
        assert extract_original_size("nothing here") is None


@pytest.mark.unit
class TestFileCopyTracker:
    def test_generated_write_is_script(self):
        """A write with no preceding read is generated content."""
        t = _track([r'libguestfs: trace: v2v: write "/etc/modprobe.d/virt-v2v-added.conf" "alias eth0 virtio_net\n"'])
        assert len(t.copies) == 1
        cp = t.copies[0]
        assert cp.origin is CopyOrigin.SCRIPT
        assert cp.source == GENERATED_SOURCE
        assert cp.destination == "/etc/modprobe.d/virt-v2v-added.conf"
        assert cp.content == "alias eth0 virtio_net\n"

    def test_read_modify_write_is_guest(self):
        """Reading a guest path then writing it back is a guest copy."""
        t = _track(
            [
                'libguestfs: trace: v2v: read_file "/etc/sysconfig/network"',
                r'libguestfs: trace: v2v: read_file = "NETWORKING=yes\n"',
                r'libguestfs: trace: v2v: write "/etc/sysconfig/network" "NETWORKING=yes\nNOZEROCONF=yes\n"',
            ]
        )
        assert len(t.copies) == 1
        cp = t.copies[0]
        assert cp.origin is CopyOrigin.GUEST
        assert cp.source == cp.destination == "/etc/sysconfig/network"
        assert cp.line_number == 0
        assert cp.content == "NETWORKING=yes\nNOZEROCONF=yes\n"

    def test_virtio_win_read_then_write(self):
        """A read from the virtio-win ISO attributes the next write to it."""
        t = _track(
            [
                "copy_from_virtio_win: guest tools source ISO /usr/share/virtio-win/virtio-win.iso",
                'libguestfs: trace: virtio_win: read_file "///Balloon/2k19/amd64/balloon.inf"',
                'libguestfs: trace: virtio_win: read_file = "\\xff\\xfe[\\x00"...<truncated, original size 4096 bytes>',
                'libguestfs: trace: v2v: write "/Windows/Drivers/VirtIO/balloon.inf" "\\xff\\xfe"',
            ]
        )
        assert t.iso_path == "/usr/share/virtio-win/virtio-win.iso"
        assert len(t.copies) == 1
        cp = t.copies[0]
        assert cp.origin is CopyOrigin.VIRTIO_WIN
        assert cp.source == "///Balloon/2k19/amd64/balloon.inf"
        assert cp.destination == "/Windows/Drivers/VirtIO/balloon.inf"
        assert cp.size_bytes == 4096
        assert cp.line_number == 1

    def test_virt_tools_upload(self):
        """Uploads from the host data directory are virt-tools copies."""
        t = _track(['libguestfs: trace: v2v: upload "/usr/share/virt-tools/rhsrvany.exe" "/Program Files/Guestfs/Firstboot/rhsrvany.exe"'])
        assert [c.origin for c in t.copies] == [CopyOrigin.VIRT_TOOLS]
        assert t.copies[0].destination == "/Program Files/Guestfs/Firstboot/rhsrvany.exe"

    def test_tmp_upload_skipped(self):
        """Uploads of host temporary files are not copies."""
        t = _track(['libguestfs: trace: v2v: upload "/tmp/v2v.abc/firstboot.bat" "/Program Files/Guestfs/Firstboot/firstboot.bat"'])
        assert t.copies == []

    def test_binary_destination_has_no_content(self):
        """Content is not decoded for binary file types."""
        t = _track([r'libguestfs: trace: v2v: write "/Windows/System32/drivers/viostor.sys" "MZ\x90\x00"'])
        assert t.copies[0].origin is CopyOrigin.SCRIPT
        assert t.copies[0].content is None
