# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for per-line category tagging."""
from __future__ import annotations

import pytest
from v2vlog.parser.classifier import classify_line, classify_lines, parse_stage_marker, stage_elapsed
from v2vlog.parser.records import LineCategory


@pytest.mark.unit
class TestClassifyLine:
    @pytest.mark.parametrize(
        "line,category",
        [
            ("[    0.000000] Linux version 5.14.0", LineCategory.KERNEL),
            ("[  12.3] Inspecting the source", LineCategory.STAGE),
            ("nbdkit: debug: vddk: open", LineCategory.NBDKIT),
            ("running nbdkit:", LineCategory.NBDKIT),
            ('libguestfs: trace: v2v: is_file "/etc/fstab"', LineCategory.LIBGUESTFS),
            ("guestfsd: <= mount (0x28) request length 64 bytes", LineCategory.GUESTFSD),
            ("command: mount '-o' '' '/dev/sda1' '/sysroot/'", LineCategory.COMMAND),
            ("chroot: /sysroot: running 'rpm -qa'", LineCategory.COMMAND),
            ("virt-v2v monitoring: Progress update, completed 10 %", LineCategory.MONITOR),
            ("virt-v2v: error: no guest found", LineCategory.ERROR),
            ("virt-v2v: warning: could not determine version", LineCategory.WARNING),
            ("info: virt-v2v: virt-v2v 2.5.6rhel=9", LineCategory.INFO),
            ("<domain type='kvm'>", LineCategory.XML),
            ("apiVersion: v1", LineCategory.YAML),
            ("just some text", LineCategory.OTHER),
            ("", LineCategory.OTHER),
            ("   ", LineCategory.OTHER),
        ],
    )
    def test_categories(self, line, category):
        """Each known line shape gets its category."""
        assert classify_line(line) is category

    def test_error_false_positives(self):
        """Trace lines reporting an error return value are not errors."""
        assert classify_line("hivex_node_get_value = -1 (error)") is LineCategory.OTHER
        assert classify_line("usbserial: error probing device") is not LineCategory.ERROR

    def test_total_and_idempotent(self):
        """Every line gets exactly one category, the same one every time."""
        lines = ["[  1.0] Opening the source", "garbage \x00 bytes", "error", "<xml", ""]
        first = classify_lines(lines, offset=5)
        second = classify_lines(lines, offset=5)
        assert first == second
        assert [ln.index for ln in first] == [5, 6, 7, 8, 9]
        assert all(isinstance(ln.category, LineCategory) for ln in first)


@pytest.mark.unit
class TestStageMarkers:
    def test_parse_marker(self):
        """A marker yields its elapsed token and stage name."""
        assert parse_stage_marker("[  12.3] Inspecting the source") == ("12.3", "Inspecting the source")

    def test_kernel_lines_are_not_markers(self):
        """Appliance kernel timestamps share the bracket shape but are not stages."""
        assert parse_stage_marker("[    0.000000] Linux version") is None

    def test_elapsed_fallback(self):
        """An unparsable counter keeps the previous value."""
        assert stage_elapsed("12.5", 3.0) == 12.5
        assert stage_elapsed("1.2.3", 3.0) == 3.0
