# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest
from v2vlog.extractors.packages import extract_package_operations

DNF = [
    'libguestfs: trace: v2v: sh "dnf -y remove open-vm-tools"',
    "guestfsd: => sh (0x64) took 4.20 secs",
    r'libguestfs: trace: v2v: sh = "Dependencies resolved.\n'
    r" Package        Arch     Version         Repository     Size\n"
    r"Removing:\n"
    r" open-vm-tools  x86_64   12.3.5-1.el9    @appstream     3.1 M\n"
    r"\n"
    r"Transaction Summary\n"
    r"Freed space: 3.1 M\n"
    r'Complete!\n"',
]


@pytest.mark.unit
class TestExtractPackageOperations:
    def test_dnf_removal(self):
        """dnf removal rows, freed space and duration are read."""
        ops = extract_package_operations(list(DNF))
        assert len(ops) == 1
        op = ops[0]
        assert op.manager == "dnf"
        assert op.command == "dnf -y remove open-vm-tools"
        assert op.duration_secs == 4.2
        assert op.freed_space == "3.1 M"
        assert len(op.packages) == 1
        pkg = op.packages[0]
        assert (pkg.name, pkg.arch, pkg.version, pkg.repo, pkg.size) == (
            "open-vm-tools",
            "x86_64",
            "12.3.5-1.el9",
            "appstream",
            "3.1 M",
        )

    def test_apt_removal(self):
        """apt-get removals list each package with its version."""
        lines = [
            'libguestfs: trace: v2v: sh "apt-get remove -y open-vm-tools"',
            r'libguestfs: trace: v2v: sh = "After this operation, 3,072 kB disk space will be freed.\n'
            r'Removing open-vm-tools (2:12.1.5-1) ...\n"',
        ]
        op = extract_package_operations(lines)[0]
        assert op.manager == "apt"
        assert op.command == "apt-get remove -y open-vm-tools"
        assert op.freed_space == "3,072 kB"
        assert [(p.name, p.version) for p in op.packages] == [("open-vm-tools", "2:12.1.5-1")]

    def test_missing_output_reported(self):
        """A removal whose output never arrived is still listed."""
        op = extract_package_operations(DNF[:1])[0]
        assert op.packages == []
        assert op.freed_space == ""

    def test_no_removals(self):
        """Other sh calls are not package operations."""
        assert extract_package_operations(['libguestfs: trace: v2v: sh "ls /"']) == []
