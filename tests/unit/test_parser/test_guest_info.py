# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.parser.guest_info import (
    build_guest_info,
    collect_guest_info_line,
    has_inspection,
    parse_drive_mappings,
    parse_fstab_pairs,
    parse_installed_apps,
)

APPS_RESULT = (
    "<struct guestfs_application2_list(2) = "
    "[0]{app2_name: vim-enhanced, app2_display_name: , app2_epoch: 2, app2_version: 8.2.2637, "
    "app2_release: 20.el9, app2_arch: x86_64, app2_install_path: , app2_publisher: , "
    "app2_description: The VIM editor, enhanced} "
    "[1]{app2_name: {90160000-008C}, app2_display_name: Microsoft Office, Professional, "
    "app2_version: 16.0.4266, app2_publisher: Microsoft Corporation, app2_install_path: C:\\Office, "
    "app2_description: }>"
)


@pytest.mark.unit
class TestInstalledApps:
    def test_parses_each_entry(self):
        apps = parse_installed_apps(APPS_RESULT)
        assert [a.name for a in apps] == ["vim-enhanced", "{90160000-008C}"]
        vim = apps[0]
        assert vim.version == "8.2.2637"
        assert vim.arch == "x86_64"
        assert vim.description == "The VIM editor, enhanced"

    def test_value_with_comma(self):
        """A display name may contain a comma; it runs up to the next field."""
        office = parse_installed_apps(APPS_RESULT)[1]
        assert office.display_name == "Microsoft Office, Professional"
        assert office.publisher == "Microsoft Corporation"
        assert office.install_path == "C:\\Office"

    def test_empty_list(self):
        assert parse_installed_apps("<struct guestfs_application2_list(0) = >") == []


@pytest.mark.unit
class TestInspectionKeys:
    def test_collects_i_keys_and_indented_block(self):
        raw = {}
        lines = [
            "i_type = linux",
            "i_distro = rhel",
            "/dev/sda2 (xfs):",
            "    type: linux",
            "    hostname: web01",
            "    product_name: Red Hat Enterprise Linux 9.4 (Plow)",
            "    fstab: [(/dev/sda2, /), (/dev/sda1, /boot)]",
            "unrelated line",
        ]
        matched = [collect_guest_info_line(line, raw) for line in lines]
        assert matched == [True, True, True, True, True, True, True, False]
        # i_ keys win over the indented block
        assert raw["type"] == "linux"
        assert raw["root"] == "/dev/sda2"
        assert raw["hostname"] == "web01"
        assert has_inspection(raw)

    def test_root_from_fs_role(self):
        raw = {}
        collect_guest_info_line("fs: /dev/sda1 (vfat) role: boot", raw)
        collect_guest_info_line("fs: /dev/sda3 (ext4) role: root", raw)
        assert raw["root"] == "/dev/sda3"

    def test_no_inspection(self):
        assert not has_inspection({"osinfo": "win10"})


@pytest.mark.unit
class TestGuestInfo:
    def test_explicit_version_keys(self):
        info = build_guest_info({"root": "/dev/sda2", "major_version": "9", "minor_version": "4"})
        assert (info.major_version, info.minor_version) == (9, 4)

    def test_cpe_version_before_version_key(self):
        """The product version in a CPE name beats the `version` line."""
        info = build_guest_info({"product_name": "cpe:2.3:o:amazon:amazon_linux:2023", "version": "2.3"})
        assert (info.major_version, info.minor_version) == (2023, 0)

    def test_version_key_fallback(self):
        info = build_guest_info({"version": "10.0"})
        assert (info.major_version, info.minor_version) == (10, 0)

    def test_windows_fields_and_mappings(self):
        info = build_guest_info(
            {
                "type": "windows",
                "windows_systemroot": "/Windows",
                "drive_mappings": "E => /dev/sdb1; C => /dev/sda2",
                "fstab": "[(/dev/sda2, /)]",
            }
        )
        assert info.windows_systemroot == "/Windows"
        assert [(d.letter, d.device) for d in info.drive_mappings] == [("C", "/dev/sda2"), ("E", "/dev/sdb1")]
        assert [(f.device, f.mountpoint) for f in info.fstab] == [("/dev/sda2", "/")]


@pytest.mark.unit
class TestMappings:
    def test_pair_format_sorted(self):
        got = parse_drive_mappings("[(E, /dev/sdb1), (C, /dev/sda2)]")
        assert [(d.letter, d.device) for d in got] == [("C", "/dev/sda2"), ("E", "/dev/sdb1")]

    def test_fstab_pairs(self):
        got = parse_fstab_pairs("[(/dev/mapper/rhel-root, /), (UUID=abcd, /boot)]")
        assert [(f.device, f.mountpoint) for f in got] == [("/dev/mapper/rhel-root", "/"), ("UUID=abcd", "/boot")]
