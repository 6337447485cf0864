# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for size and filesystem-name normalization."""
from __future__ import annotations

import pytest
from v2vlog.core.units import canonical_fs_type, human_bytes, parse_size_to_bytes, safe_float, safe_int


@pytest.mark.unit
class TestCanonicalFsType:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("fat32", "vfat"),
            ("FAT16", "vfat"),
            ("linux-swap(v1)", "swap"),
            ("linux-swap(new)", "swap"),
            ("ext4", "ext4"),
            ("XFS", "xfs"),
            ("", ""),
        ],
    )
    def test_aliases(self, raw, expected):
        """Low-level spellings map to kernel names."""
        assert canonical_fs_type(raw) == expected


@pytest.mark.unit
class TestSizes:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1024", 1024),
            ("10G", 10 * 1024**3),
            ("10GiB", 10 * 1024**3),
            ("512 M", 512 * 1024**2),
            ("1.5K", 1536),
        ],
    )
    def test_parse_size(self, raw, expected):
        """Suffixes use binary multipliers."""
        assert parse_size_to_bytes(raw) == expected

    def test_parse_size_rejects_text(self):
        """Non-sizes give None rather than raising."""
        assert parse_size_to_bytes("lots") is None
        assert parse_size_to_bytes("") is None

    def test_human_bytes(self):
        """Sizes render with binary units."""
        assert human_bytes(None) == "unknown"
        assert human_bytes(512) == "512 B"
        assert human_bytes(1024**3) == "1.00 GiB"


@pytest.mark.unit
class TestSafeNumbers:
    def test_safe_int(self):
        """Malformed numbers fall back to the default."""
        assert safe_int(" 42 ") == 42
        assert safe_int("4x2") == 0
        assert safe_int(None, default=-1) == -1

    def test_safe_float(self):
        """nan and inf are not usable log values."""
        assert safe_float("3.25") == 3.25
        assert safe_float("nan") == 0.0
        assert safe_float("inf", default=1.0) == 1.0
        assert safe_float("x") == 0.0
