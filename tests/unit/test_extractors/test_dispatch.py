# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import dataclasses

import pytest
from v2vlog.extractors import (
    DiskCopy,
    DiskInventory,
    LinuxConversion,
    SELinuxRelabel,
    StageKind,
    WindowsConversion,
    extract_kernels,
    extract_stage,
    extract_windows_conversion,
    stage_kind,
)
from v2vlog.parser.records import StageRecord


def _stage(name, lines):
    return StageRecord(name=name, start_line=0, end_line=max(len(lines) - 1, 0), raw_lines=list(lines))


@pytest.mark.unit
class TestStageKind:
    @pytest.mark.parametrize(
        "name,kind",
        [
            ("Opening the source", StageKind.OPEN_SOURCE),
            ("Setting up the source: -i libvirt -ic vpx://vcenter/DC/host rhel9", StageKind.SOURCE_SETUP),
            ("Inspecting the source", StageKind.INSPECT),
            ("Detecting if this guest uses BIOS or UEFI to boot", StageKind.BIOS_UEFI),
            ("Checking filesystem integrity before conversion", StageKind.FILESYSTEM_CHECK),
            ("Mapping filesystem data to avoid copying unused and blank areas", StageKind.FILESYSTEM_MAPPING),
            ("Setting up the destination: -o local -os /var/tmp", StageKind.DESTINATION),
            ("SELinux relabelling", StageKind.SELINUX),
            ("Copying disk 1/2", StageKind.DISK_COPY),
            ("Creating output metadata", StageKind.OUTPUT_METADATA),
            ("Closing the overlay", StageKind.CLOSING_OVERLAY),
            ("Finishing off", StageKind.FINISHING_OFF),
            ("Converting Windows Server 2019 Standard to run on KVM", StageKind.WINDOWS_CONVERSION),
            ("Converting Red Hat Enterprise Linux 9.4 (Plow) to run on KVM", StageKind.LINUX_CONVERSION),
        ],
    )
    def test_names(self, name, kind):
        """Stage names map to their kind."""
        assert stage_kind(name) is kind

    def test_content_fallback(self):
        """An unfamiliar name is classified by what the stage printed."""
        assert stage_kind("Doing things", ["picked conversion module rhel"]) is StageKind.LINUX_CONVERSION
        assert stage_kind("Doing things", ["copy_from_virtio_win: guest tools source ISO /x.iso"]) is StageKind.WINDOWS_CONVERSION
        assert stage_kind("Doing things", ["nothing"]) is None

    def test_free_space_check_not_content_classified(self):
        """The free space check never becomes a conversion stage."""
        assert stage_kind("Checking for sufficient free disk space in the guest", ["picked conversion module rhel"]) is None


@pytest.mark.unit
class TestExtractStage:
    def test_dispatch_types(self):
        """Each stage kind gets its extractor's record."""
        assert isinstance(extract_stage(_stage("Inspecting the source", [])), DiskInventory)
        assert isinstance(extract_stage(_stage("Copying disk 1/1", [])), DiskCopy)
        assert isinstance(extract_stage(_stage("SELinux relabelling", [])), SELinuxRelabel)
        assert isinstance(extract_stage(_stage("Converting Windows 10 to run on KVM", [])), WindowsConversion)
        assert isinstance(extract_stage(_stage("Converting Ubuntu 22.04 to run on KVM", [])), LinuxConversion)

    def test_stages_without_extractor(self):
        """Stages with nothing to extract give None."""
        assert extract_stage(_stage("Finishing off", ["x"])) is None
        assert extract_stage(_stage("", ["preamble"])) is None

    def test_whole_run_forwarded(self):
        """Relabels flushed after the stage are found through the whole run."""
        stage = _stage("SELinux relabelling", ["command: setfiles '-F' '/sysroot/'"])
        whole = stage.raw_lines + ["[  50.0] Next", "Relabeled /sysroot/etc/hosts from a_t to b_t"]
        out = extract_stage(stage, whole)
        assert [r.path for r in out.relabeled] == ["/etc/hosts"]


@pytest.mark.unit
class TestProperties:
    def test_idempotent(self):
        """Equal inputs give equal records."""
        lines = ["* kernel 4.18.0 (x86_64)", "\t/boot/vmlinuz-4.18.0", "virtio: blk=true"]
        assert extract_kernels(list(lines)) == extract_kernels(list(lines))

    def test_unrelated_lines_do_not_change_records(self):
        """Noise around the evidence leaves the record unchanged, line numbers aside."""
        lines = ["* kernel 4.18.0 (x86_64)", "\t/boot/vmlinuz-4.18.0", "virtio: blk=true"]
        noisy = ["some unrelated text", "more of it"] + lines + ["trailing noise"]
        plain = [dataclasses.replace(k, line_number=0) for k in extract_kernels(lines)]
        with_noise = [dataclasses.replace(k, line_number=0) for k in extract_kernels(noisy)]
        assert plain == with_noise

        win = ["picked conversion module windows", 'libguestfs: trace: v2v: inspect_get_arch = "x86_64"']
        assert extract_windows_conversion(win) == extract_windows_conversion(["noise", win[0], "noise", win[1], "noise"])

    def test_total_over_garbage(self):
        """Arbitrary lines never raise."""
        garbage = ["", "\x00\x01", "[", "BYT;", "augeas failed to parse", "* ", "info: input disk 1/1:", "<domain"]
        for name in ("Inspecting the source", "SELinux relabelling", "Copying disk 1/1", "Setting up the source",
                     "Converting Red Hat Enterprise Linux 9 to run on KVM", "Checking if the guest needs BIOS or UEFI to boot"):
            extract_stage(_stage(name, garbage), garbage)
