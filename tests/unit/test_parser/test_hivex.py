# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.parser.hivex import REG_BINARY, REG_DWORD, REG_SZ, HivexTracker, decode_hivex_data, parse_escaped_bytes


def feed_all(calls):
    tracker = HivexTracker()
    for n, (name, args) in enumerate(calls):
        tracker.feed(name, args, n)
    return tracker.finish()


OPEN_SOFTWARE = [
    ("hivex_open", '"/tmp/v2v.abc/software" "verbose:true"'),
    ("hivex_open", "= 0"),
    ("hivex_root", ""),
    ("hivex_root", "= 1024"),
]


@pytest.mark.unit
class TestSessions:
    def test_key_path_and_string_value(self):
        """Child lookups build the key path; value_string results become values."""
        accesses = feed_all(
            OPEN_SOFTWARE
            + [
                ("hivex_node_get_child", '1024 "Microsoft"'),
                ("hivex_node_get_child", "= 2048"),
                ("hivex_node_get_child", '2048 "Windows NT"'),
                ("hivex_node_get_child", "= 3072"),
                ("hivex_node_get_value", '3072 "ProductName"'),
                ("hivex_node_get_value", "= 4096"),
                ("hivex_value_string", "4096"),
                ("hivex_value_string", '= "Windows Server 2019"'),
                ("hivex_close", ""),
            ]
        )
        assert len(accesses) == 1
        acc = accesses[0]
        assert acc.hive_path == "/tmp/v2v.abc/software"
        assert acc.key_path == "Microsoft\\Windows NT"
        assert acc.mode == "read"
        assert acc.line_number == 0
        assert [(v.name, v.value) for v in acc.values] == [("ProductName", "Windows Server 2019")]

    def test_missing_child_not_added(self):
        """A lookup answered with handle 0 does not extend the path."""
        accesses = feed_all(
            OPEN_SOFTWARE
            + [
                ("hivex_node_get_child", '1024 "Microsoft"'),
                ("hivex_node_get_child", "= 2048"),
                ("hivex_node_get_child", '2048 "NoSuchKey"'),
                ("hivex_node_get_child", "= 0"),
                ("hivex_close", ""),
            ]
        )
        assert [a.key_path for a in accesses] == ["Microsoft"]

    def test_empty_session_skipped(self):
        accesses = feed_all(OPEN_SOFTWARE + [("hivex_close", "")])
        assert accesses == []

    def test_walk_from_root_starts_new_access(self):
        """Walking again from the root handle closes the previous walk."""
        accesses = feed_all(
            OPEN_SOFTWARE
            + [
                ("hivex_node_get_child", '1024 "Microsoft"'),
                ("hivex_node_get_child", "= 2048"),
                ("hivex_node_get_child", '1024 "Classes"'),
                ("hivex_node_get_child", "= 5000"),
                ("hivex_close", ""),
            ]
        )
        assert [(a.key_path, a.line_number) for a in accesses] == [("Microsoft", 0), ("Classes", 6)]

    def test_set_value_marks_write(self):
        """A set_value makes the access a write, located at the first write."""
        accesses = feed_all(
            OPEN_SOFTWARE
            + [
                ("hivex_node_get_child", '1024 "ControlSet001"'),
                ("hivex_node_get_child", "= 2048"),
                ("hivex_node_set_value", r'2048 "Start" 4 "\x03\x00\x00\x00"'),
                ("hivex_node_set_value", "= 0"),
                ("hivex_commit", "NULL"),
                ("hivex_commit", "= 0"),
                ("hivex_close", ""),
            ]
        )
        assert len(accesses) == 1
        acc = accesses[0]
        assert acc.mode == "write"
        assert acc.line_number == 6
        assert acc.key_path == "ControlSet001"
        assert [(v.name, v.value) for v in acc.values] == [("Start", "3")]

    def test_open_session_kept_at_end(self):
        accesses = feed_all(
            OPEN_SOFTWARE + [("hivex_node_get_child", '1024 "Microsoft"'), ("hivex_node_get_child", "= 2048")]
        )
        assert [a.key_path for a in accesses] == ["Microsoft"]

    def test_other_calls_ignored(self):
        tracker = HivexTracker()
        tracker.feed("is_file", '"/etc/fstab"', 0)
        tracker.feed("hivex_root", "= 1", 1)
        assert tracker.finish() == []


@pytest.mark.unit
class TestValueDecoding:
    def test_escaped_bytes(self):
        assert parse_escaped_bytes(r"A\x00\x7f") == [0x41, 0x00, 0x7F]
        # a lone backslash is its own byte
        assert parse_escaped_bytes("\\x0") == [0x5C, ord("x"), ord("0")]

    def test_dword_little_endian(self):
        assert decode_hivex_data(r"\x00\x01\x00\x00", REG_DWORD) == "256"

    def test_utf16_string_stops_at_null(self):
        assert decode_hivex_data(r"v\x00i\x00o\x00\x00\x00x\x00", REG_SZ) == "vio"

    def test_binary_short_and_long(self):
        assert decode_hivex_data(r"\x01\xff", REG_BINARY) == "01 ff"
        assert decode_hivex_data("a" * 20, REG_BINARY) == "(20 bytes)"
