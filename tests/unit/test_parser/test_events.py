# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for the whole-run event scanner."""
from __future__ import annotations

import pytest
from v2vlog.parser import ExitStatus, ToolKind, parse_log_lines

RUN = [
    "Building command: virt-v2v [-i disk guest.img -o local -os /var/tmp]",
    "info: virt-v2v: virt-v2v 2.5.6rhel=9,release=1.el9 (x86_64)",
    "libvirt version: 10.0.0",
    "[   0.0] Setting up the source: -i disk guest.img",
    'libguestfs: trace: v2v: mount "/dev/sda1" "/"',
    "guestfsd: <= mount (0x28) request length 64 bytes",
    "command: mount '-o' '' '/dev/sda1' '/sysroot/'",
    "guestfsd: => mount (0x28) took 0.02 secs",
    "libguestfs: trace: v2v: mount = 0",
    'libguestfs: trace: v2v: is_file "/etc/fstab"',
    "libguestfs: trace: v2v: is_file = 1",
    'libguestfs: trace: v2v: is_dir "/boot/grub2"',
    "[  10.5] Finishing off",
]


@pytest.mark.unit
class TestApiCalls:
    def test_calls_paired_with_results(self):
        """Each trace call is paired with its `name = value` result line."""
        run = parse_log_lines(RUN).tool_runs[0]
        names = [(c.name, c.result) for c in run.api_calls]
        assert names == [("mount", "0"), ("is_file", "1"), ("is_dir", "")]

    def test_call_fields(self):
        """Handle, raw args and line numbers are kept."""
        run = parse_log_lines(RUN).tool_runs[0]
        mount = run.api_calls[0]
        assert mount.handle == "v2v"
        assert mount.args == '"/dev/sda1" "/"'
        assert mount.line_number == 4

    def test_unanswered_call_kept(self):
        """A call whose result never arrives is still reported."""
        run = parse_log_lines(RUN).tool_runs[0]
        assert run.api_calls[-1].name == "is_dir"
        assert run.api_calls[-1].line_number == 11

    def test_guestfsd_duration_and_guest_commands(self):
        """Daemon timings and the commands it ran attach to the call."""
        mount = parse_log_lines(RUN).tool_runs[0].api_calls[0]
        assert mount.duration_secs == 0.02
        assert len(mount.guest_commands) == 1
        cmd = mount.guest_commands[0]
        assert cmd.command == "mount"
        assert cmd.args == ["-o", "", "/dev/sda1", "/sysroot/"]
        assert cmd.source == "command"


@pytest.mark.unit
class TestRunFields:
    def test_tool_and_command_line(self):
        """The Building command line names the tool and its arguments."""
        run = parse_log_lines(RUN).tool_runs[0]
        assert run.tool is ToolKind.V2V
        assert run.command_line == "-i disk guest.img -o local -os /var/tmp"

    def test_versions(self):
        """Component versions are read once."""
        run = parse_log_lines(RUN).tool_runs[0]
        assert run.versions.virt_v2v == "2.5.6rhel=9,release=1.el9"
        assert run.versions.libvirt == "10.0.0"

    def test_success_exit_status(self):
        """A Finishing off stage means success."""
        assert parse_log_lines(RUN).tool_runs[0].exit_status is ExitStatus.SUCCESS

    def test_error_exit_status(self):
        """An error from virt-v2v itself without a finish means failure."""
        lines = RUN[:-1] + ["virt-v2v: error: inspection could not detect the source guest"]
        run = parse_log_lines(lines).tool_runs[0]
        assert run.exit_status is ExitStatus.ERROR
        assert run.errors[0].source == "virt-v2v"
        assert run.errors[0].line_number == len(lines) - 1

    def test_in_progress_exit_status(self):
        """Stages but no end signal is a truncated log."""
        assert parse_log_lines(RUN[:-1]).tool_runs[0].exit_status is ExitStatus.IN_PROGRESS


@pytest.mark.unit
class TestGuestCommands:
    def test_stdout_capture_and_return_code(self):
        """Captured stdout and the return code land on the guest command."""
        lines = [
            'libguestfs: trace: v2v: command_lines "rpm -qa"',
            "guestfsd: <= command_lines (0x7d) request length 80 bytes",
            "commandrvf: rpm -qa",
            "commandrvf: rpm: stdout:",
            "kernel-core-5.14.0",
            "bash-5.1",
            "commandrvf: rpm returned 0",
            "guestfsd: => command_lines (0x7d) took 0.40 secs",
            'libguestfs: trace: v2v: command_lines = ["kernel-core-5.14.0", "bash-5.1"]',
        ]
        run = parse_log_lines(lines).tool_runs[0]
        call = run.api_calls[0]
        assert call.name == "command_lines"
        assert call.duration_secs == 0.40
        cmd = call.guest_commands[0]
        assert cmd.command == "rpm"
        assert cmd.source == "commandrvf"
        assert cmd.stdout_lines == ["kernel-core-5.14.0", "bash-5.1"]
        assert cmd.return_code == 0


LAUNCH = [
    'libguestfs: trace: v2v: add_drive "/var/tmp/guest.img" "format:raw" "protocol:nbd" "server:unix:/tmp/sock"',
    "libguestfs: trace: v2v: add_drive = 0",
    'libguestfs: trace: v2v: add_drive_ro "/usr/share/virtio-win/virtio-win.iso"',
    "libguestfs: trace: v2v: add_drive_ro = 0",
    "libguestfs: trace: v2v: set_memsize 2048",
    "libguestfs: trace: v2v: set_memsize = 0",
    "libguestfs: trace: v2v: set_smp 2",
    "libguestfs: trace: v2v: set_smp = 0",
    "libguestfs: launch: program=virt-v2v",
    "libguestfs: launch: identifier=v2v",
    "libguestfs: launch: backend=direct",
    "libguestfs: trace: v2v: inspect_list_applications2 \"/dev/sda2\"",
    "libguestfs: trace: v2v: inspect_list_applications2 = <struct guestfs_application2_list(1) = "
    "[0]{app2_name: bash, app2_display_name: , app2_version: 5.1.8, app2_arch: x86_64}>",
    'libguestfs: trace: v2v: hivex_open "/tmp/v2v/system" "write:true"',
    "libguestfs: trace: v2v: hivex_open = 0",
    "libguestfs: trace: v2v: hivex_root = 512",
    'libguestfs: trace: v2v: hivex_node_get_child 512 "Select"',
    "libguestfs: trace: v2v: hivex_node_get_child = 600",
    "libguestfs: trace: v2v: hivex_close",
    "i_root = /dev/sda2",
    "i_type = linux",
    "i_major_version = 9",
]


@pytest.mark.unit
class TestLaunchAndInspection:
    def test_launch_settings(self):
        """Drives, appliance size and backend come from the launch trace."""
        launch = parse_log_lines(LAUNCH).tool_runs[0].libguestfs
        assert launch.backend == "direct"
        assert launch.identifier == "v2v"
        assert (launch.memsize, launch.smp) == (2048, 2)
        assert len(launch.launch_lines) == 3
        disk, iso = launch.drives
        assert (disk.path, disk.format, disk.protocol, disk.server) == (
            "/var/tmp/guest.img",
            "raw",
            "nbd",
            "unix:/tmp/sock",
        )
        assert not disk.readonly
        assert iso.readonly
        assert iso.line_number == 2

    def test_installed_apps(self):
        apps = parse_log_lines(LAUNCH).tool_runs[0].installed_apps
        assert [(a.name, a.version) for a in apps] == [("bash", "5.1.8")]

    def test_registry_accesses(self):
        accesses = parse_log_lines(LAUNCH).tool_runs[0].registry_accesses
        assert [(a.hive_path, a.key_path, a.mode) for a in accesses] == [("/tmp/v2v/system", "Select", "read")]

    def test_inspection(self):
        run = parse_log_lines(LAUNCH).tool_runs[0]
        assert run.guest_info["root"] == "/dev/sda2"
        assert run.inspection is not None
        assert (run.inspection.type, run.inspection.major_version) == ("linux", 9)

    def test_no_inspection_without_keys(self):
        assert parse_log_lines(RUN).tool_runs[0].inspection is None
