# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/events.py
"""
Whole-run event scanner.

A single forward pass over one tool run's lines produces everything that is
not stage-specific: libguestfs API calls paired with their results, the
guest commands each call ran, file copies, host commands, nbdkit
connections, disk copy progress, component versions, guest inspection keys,
libguestfs launch settings, installed applications, registry accesses and
the error/warning list.

The scanner is a set of small handlers sharing one mutable state object
(RunScanner); `scan_run` drives it and returns the populated ToolRun.
"""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..core.units import safe_float, safe_int
from .classifier import ERROR_RE, WARNING_RE, is_error_false_positive
from .file_copies import FileCopyTracker
from .guest_info import build_guest_info, collect_guest_info_line, has_inspection, parse_installed_apps
from .helpers import (
    build_host_command,
    extract_source,
    infer_exit_status,
    is_known_prefix,
    is_noisy_command,
    parse_command_args,
    parse_version_fields,
)
from .hivex import HivexTracker
from .records import (
    ApiCallRecord,
    DiskProgress,
    GuestCommand,
    HostCommand,
    InstalledApp,
    LibguestfsDrive,
    LibguestfsLaunch,
    LogLine,
    NbdkitConnection,
    RunMessage,
    StageRecord,
    ToolKind,
    ToolRun,
)

logger = logging.getLogger(__name__)

LIBGUESTFS_TRACE_RE = re.compile(r"^libguestfs: trace: (\S+): (\S+)\s*(.*)$")
LIBGUESTFS_CMD_RE = re.compile(r"^libguestfs: command: run:\s*(.*)$")

GUESTFSD_START_RE = re.compile(r"^guestfsd: <= (\S+) \(0x[0-9a-fA-F]+\)")
GUESTFSD_END_RE = re.compile(r"^guestfsd: => (\S+) .*took ([\d.]+) secs")

CMD_STDOUT_RE = re.compile(r"^(?:command|commandrvf): (\S+): stdout:\s*$")
CMD_RETURN_RE = re.compile(r"^(?:command|commandrvf): (\S+) returned (-?\d+)")
COMMAND_RE = re.compile(r"^command: (\S+)\s*(.*)$")
COMMANDRVF_META_RE = re.compile(r"^commandrvf: stdout=")
COMMANDRVF_EXEC_RE = re.compile(r"^commandrvf: (\S+)\s*(.*)$")
CHROOT_RE = re.compile(r"^chroot: (\S+): running '([^']+)'")

MONITOR_DISK_RE = re.compile(r"Copying disk (\d+) out of (\d+)")
MONITOR_PROGRESS_RE = re.compile(r"Progress update, completed (\d+) %")
HOST_FREE_SPACE_RE = re.compile(r"check_host_free_space: large_tmpdir=(\S+) free_space=(\d+)")

NBDKIT_SOCKET_RE = re.compile(r"--unix['\s]+([^\s']+)")
NBDKIT_URI_RE = re.compile(r"NBD URI:\s*(\S+)")
NBDKIT_PLUGIN_RE = re.compile(r"registered plugin\s+\S+\s+\(name\s+(\w+)\)")
NBDKIT_FILTER_RE = re.compile(r"registered filter\s+\S+\s+\(name\s+(\w+)\)")
NBDKIT_FILE_RE = re.compile(r"config key=file, value=(.+)")
NBDKIT_SERVER_RE = re.compile(r"config key=server, value=(\S+)")
NBDKIT_VM_RE = re.compile(r"config key=vm, value=moref=(\S+)")
NBDKIT_TRANSPORT_RE = re.compile(r"transport mode:\s*(\w+)")
COW_FILE_SIZE_RE = re.compile(r"cow:\s+underlying file size:\s+(\d+)")

LAUNCH_BACKEND_RE = re.compile(r"^libguestfs: launch: backend=(\S+)")
LAUNCH_IDENTIFIER_RE = re.compile(r"^libguestfs: launch: identifier=(\S+)")
DOUBLE_QUOTED_RE = re.compile(r'"([^"]*)"')
ADD_DRIVE_CALLS = ("add_drive", "add_drive_opts", "add_drive_ro")


@dataclass
class _GuestfsdScope:
    name: str
    commands: List[GuestCommand] = field(default_factory=list)


@dataclass
class _NbdkitBlock:
    start_line: int
    end_line: int
    socket_path: str = ""
    uri: str = ""
    plugin: str = ""
    filters: List[str] = field(default_factory=list)
    disk_file: str = ""
    server: str = ""
    vm_moref: str = ""
    transport_mode: str = ""
    backing_size: Optional[int] = None


class RunScanner:
    def __init__(self) -> None:
        self.completed: List[ApiCallRecord] = []
        # "handle:name" -> FIFO of calls awaiting their result line
        self.open_calls: "OrderedDict[str, List[ApiCallRecord]]" = OrderedDict()
        self.last_call_name: str = ""
        self.scope: Optional[_GuestfsdScope] = None
        self.stdout_for: Optional[str] = None

        self.pending_host_cmd: List[str] = []
        self.pending_host_line = 0
        self.host_commands: List[HostCommand] = []

        self.nbdkit: Optional[_NbdkitBlock] = None
        self.nbdkit_map: "OrderedDict[str, NbdkitConnection]" = OrderedDict()

        self.disk_progress: List[DiskProgress] = []
        self.messages: List[RunMessage] = []
        self.guest_info: Dict[str, str] = {}
        self.host_tmp_dir = ""
        self.host_free_space: Optional[int] = None
        self.copies = FileCopyTracker()
        self.hivex = HivexTracker()
        self.installed_apps: List[InstalledApp] = []
        self.launch = LibguestfsLaunch()
        self.run = ToolRun(tool=ToolKind.V2V)
        self.last_line = 0

    # ----- guest commands -----------------------------------------------

    def _add_guest_command(self, cmd: GuestCommand) -> None:
        if self.scope is not None:
            self.scope.commands.append(cmd)
            return
        if self.open_calls:
            queue = next(reversed(self.open_calls.values()))
            if queue:
                queue[-1].guest_commands.append(cmd)

    def _find_guest_command(self, name: str) -> Optional[GuestCommand]:
        if self.scope is not None:
            for cmd in reversed(self.scope.commands):
                if cmd.command == name:
                    return cmd
        for queue in self.open_calls.values():
            for call in reversed(queue):
                for cmd in reversed(call.guest_commands):
                    if cmd.command == name:
                        return cmd
        for call in reversed(self.completed):
            for cmd in reversed(call.guest_commands):
                if cmd.command == name:
                    return cmd
        return None

    def _queue_for(self, api_name: str) -> Optional[List[ApiCallRecord]]:
        suffix = ":" + api_name
        for key, queue in self.open_calls.items():
            if key.endswith(suffix) and queue:
                return queue
        return None

    def _attach_scope(self, scope: _GuestfsdScope) -> None:
        if not scope.commands:
            return
        queue = self._queue_for(scope.name)
        if queue:
            queue[0].guest_commands.extend(scope.commands)
            return
        for call in reversed(self.completed):
            if call.name == scope.name:
                call.guest_commands.extend(scope.commands)
                return

    # ----- handlers -----------------------------------------------------

    def handle_stdout_capture(self, line: str) -> bool:
        if self.stdout_for is None:
            return False
        if is_known_prefix(line):
            self.stdout_for = None
            return False
        cmd = self._find_guest_command(self.stdout_for)
        if cmd is not None:
            cmd.stdout_lines.append(line)
        return True

    def handle_monitor(self, line: str, n: int) -> None:
        m = MONITOR_PROGRESS_RE.search(line)
        if m and self.disk_progress:
            last = self.disk_progress[-1]
            self.disk_progress.append(
                DiskProgress(
                    disk_number=last.disk_number,
                    total_disks=last.total_disks,
                    percent_complete=safe_int(m.group(1)),
                    line_number=n,
                )
            )
        m = MONITOR_DISK_RE.search(line)
        if m:
            self.disk_progress.append(
                DiskProgress(disk_number=safe_int(m.group(1)), total_disks=safe_int(m.group(2)), line_number=n)
            )

    def handle_versions(self, line: str) -> None:
        parse_version_fields(line, self.run.versions)
        if self.host_free_space is None:
            m = HOST_FREE_SPACE_RE.search(line)
            if m:
                self.host_tmp_dir = m.group(1)
                self.host_free_space = safe_int(m.group(2))

    def _finalize_nbdkit(self, end_line: int) -> None:
        blk = self.nbdkit
        if blk is None:
            return
        conn_id = blk.socket_path or f"nbdkit-{len(self.nbdkit_map)}"
        if conn_id not in self.nbdkit_map:
            self.nbdkit_map[conn_id] = NbdkitConnection(
                id=conn_id,
                socket_path=blk.socket_path,
                uri=blk.uri,
                plugin=blk.plugin,
                filters=list(blk.filters),
                disk_file=blk.disk_file,
                server=blk.server,
                vm_moref=blk.vm_moref,
                transport_mode=blk.transport_mode,
                backing_size=blk.backing_size,
                start_line=blk.start_line,
                end_line=end_line,
            )

    def handle_nbdkit(self, line: str, n: int) -> None:
        starts = line.startswith(("running nbdkit:", "running nbdkit "))
        if starts:
            if self.nbdkit is not None:
                self._finalize_nbdkit(self.nbdkit.end_line)
            self.nbdkit = _NbdkitBlock(start_line=n, end_line=n)

        blk = self.nbdkit
        in_block = starts or line.startswith("nbdkit:") or (blk is not None and line.startswith(" "))
        if not in_block:
            if blk is not None:
                self._finalize_nbdkit(blk.end_line)
                self.nbdkit = None
            return

        if line.startswith("nbdkit:") and blk is None:
            if self.nbdkit_map:
                next(reversed(self.nbdkit_map.values())).end_line = n
            return
        if blk is None:
            return

        blk.end_line = n
        m = NBDKIT_SOCKET_RE.search(line)
        if m:
            blk.socket_path = m.group(1)
        m = NBDKIT_URI_RE.search(line)
        if m:
            blk.uri = m.group(1)
        m = NBDKIT_PLUGIN_RE.search(line)
        if m:
            blk.plugin = m.group(1)
        m = NBDKIT_FILTER_RE.search(line)
        if m and m.group(1) not in blk.filters:
            blk.filters.append(m.group(1))
        m = NBDKIT_FILE_RE.search(line)
        if m:
            blk.disk_file = m.group(1).strip()
        m = NBDKIT_SERVER_RE.search(line)
        if m:
            blk.server = m.group(1)
        m = NBDKIT_VM_RE.search(line)
        if m:
            blk.vm_moref = m.group(1)
        m = NBDKIT_TRANSPORT_RE.search(line)
        if m:
            blk.transport_mode = m.group(1)
        m = COW_FILE_SIZE_RE.search(line)
        if m:
            blk.backing_size = safe_int(m.group(1))

    def _record_launch_call(self, name: str, args: str, n: int) -> None:
        if name == "set_memsize":
            self.launch.memsize = safe_int(args.strip()) or None
        elif name == "set_smp":
            self.launch.smp = safe_int(args.strip()) or None
        elif name in ADD_DRIVE_CALLS:
            parts = DOUBLE_QUOTED_RE.findall(args)
            if not parts:
                return
            drive = LibguestfsDrive(path=parts[0], readonly=name == "add_drive_ro", line_number=n)
            for opt in parts[1:]:
                key, _, value = opt.partition(":")
                if key == "readonly":
                    drive.readonly = value == "true"
                elif key in ("format", "protocol", "server"):
                    setattr(drive, key, value)
            self.launch.drives.append(drive)

    def _record_launch_line(self, line: str) -> None:
        self.launch.launch_lines.append(line)
        m = LAUNCH_BACKEND_RE.match(line)
        if m:
            self.launch.backend = m.group(1)
        m = LAUNCH_IDENTIFIER_RE.match(line)
        if m:
            self.launch.identifier = m.group(1)

    def handle_trace(self, line: str, n: int) -> None:
        if not line.startswith("libguestfs:"):
            return

        m = LIBGUESTFS_TRACE_RE.match(line)
        if m:
            handle, name, args = m.group(1), m.group(2), m.group(3)
            is_result = name == "=" or args.startswith("=")
            if not is_result and not name.endswith("="):
                call = ApiCallRecord(name=name, handle=handle, args=args, line_number=n)
                self.open_calls.setdefault(f"{handle}:{name}", []).append(call)
                self.last_call_name = name
                self._record_launch_call(name, args, n)
            else:
                if name == "=":
                    result_name = self.last_call_name
                    value = re.sub(r"^=?\s*", "", args).strip()
                else:
                    result_name = name.rstrip("=")
                    value = re.sub(r"^=\s*", "", args).strip()
                key = f"{handle}:{result_name}"
                queue = self.open_calls.get(key)
                if result_name and queue:
                    call = queue.pop(0)
                    call.result = value
                    self.completed.append(call)
                    if not queue:
                        del self.open_calls[key]
                if result_name == "inspect_list_applications2":
                    self.installed_apps.extend(parse_installed_apps(value))
            self.hivex.feed(name, args, n)
        elif "libguestfs: launch:" in line:
            self._record_launch_line(line)

        m = LIBGUESTFS_CMD_RE.match(line)
        if m:
            text = m.group(1).strip()
            if text.startswith("\\"):
                self.pending_host_cmd.append(text[1:].strip())
            elif text:
                self._flush_host_command()
                self.pending_host_cmd = [text]
                self.pending_host_line = n

    def _flush_host_command(self) -> None:
        if self.pending_host_cmd:
            self.host_commands.append(build_host_command(self.pending_host_cmd, self.pending_host_line))
            self.pending_host_cmd = []

    def handle_host_command_flush(self, line: str) -> None:
        if self.pending_host_cmd and not line.startswith("libguestfs:") and not line.strip().startswith("\\"):
            self._flush_host_command()

    def handle_guestfsd(self, line: str) -> None:
        if not line.startswith("guestfsd:"):
            return
        m = GUESTFSD_START_RE.match(line)
        if m:
            if self.scope is not None:
                self._attach_scope(self.scope)
            self.scope = _GuestfsdScope(name=m.group(1))

        m = GUESTFSD_END_RE.match(line)
        if m:
            secs = safe_float(m.group(2))
            queue = self._queue_for(m.group(1))
            if queue is None and self.scope is not None:
                queue = self._queue_for(self.scope.name)
            if queue:
                queue[0].duration_secs = secs
            if self.scope is not None:
                self._attach_scope(self.scope)
                self.scope = None

    def handle_guest_commands(self, line: str, n: int) -> bool:
        if line.startswith(("libguestfs:", "guestfsd:")):
            return False

        m = CMD_STDOUT_RE.match(line)
        if m:
            self.stdout_for = m.group(1)
            return True

        m = CMD_RETURN_RE.match(line)
        if m:
            cmd = self._find_guest_command(m.group(1))
            if cmd is not None and cmd.return_code is None:
                cmd.return_code = safe_int(m.group(2))
            return True

        if line.startswith("command:"):
            m = COMMAND_RE.match(line)
            if m:
                self._add_guest_command(
                    GuestCommand(command=m.group(1), args=parse_command_args(m.group(2)), source="command", line_number=n)
                )
        elif line.startswith("commandrvf:"):
            if not COMMANDRVF_META_RE.match(line):
                m = COMMANDRVF_EXEC_RE.match(line)
                if m and not is_noisy_command(m.group(1)):
                    self._add_guest_command(
                        GuestCommand(
                            command=m.group(1),
                            args=parse_command_args(m.group(2)),
                            source="commandrvf",
                            line_number=n,
                        )
                    )
        elif line.startswith("chroot:"):
            m = CHROOT_RE.match(line)
            if m:
                self._add_guest_command(GuestCommand(command=m.group(2), source="chroot", line_number=n))
        return False

    def handle_guest_info(self, line: str) -> None:
        collect_guest_info_line(line, self.guest_info)

    def handle_messages(self, line: str, n: int) -> None:
        if ERROR_RE.search(line) and not is_error_false_positive(line):
            self.messages.append(RunMessage(level="error", source=extract_source(line), message=line, line_number=n))
        elif WARNING_RE.search(line):
            self.messages.append(RunMessage(level="warning", source=extract_source(line), message=line, line_number=n))

    # ----- driver -------------------------------------------------------

    def feed(self, line: str, n: int) -> None:
        self.last_line = n
        if not line.strip():
            return
        if self.handle_stdout_capture(line):
            return
        self.handle_monitor(line, n)
        self.handle_versions(line)
        self.handle_nbdkit(line, n)
        self.handle_trace(line, n)
        self.handle_host_command_flush(line)
        self.handle_guestfsd(line)
        if self.handle_guest_commands(line, n):
            return
        self.handle_guest_info(line)
        self.copies.feed(line, n)
        self.handle_messages(line, n)

    def finish(self) -> None:
        self._flush_host_command()
        if self.scope is not None:
            self._attach_scope(self.scope)
            self.scope = None
        if self.nbdkit is not None:
            self._finalize_nbdkit(self.last_line)
            self.nbdkit = None
        for queue in self.open_calls.values():
            self.completed.extend(queue)
        self.open_calls.clear()
        self.completed.sort(key=lambda c: c.line_number)


def scan_run(
    tool: ToolKind,
    command_line: str,
    lines: Sequence[LogLine],
    stages: Sequence[StageRecord],
) -> ToolRun:
    """Scan one tool run's classified lines and assemble its ToolRun."""
    scanner = RunScanner()
    for ln in lines:
        scanner.feed(ln.text, ln.index)
    scanner.finish()

    raw = [ln.text for ln in lines]
    run = scanner.run
    run.tool = tool
    run.command_line = command_line
    run.start_line = lines[0].index if lines else 0
    run.end_line = lines[-1].index if lines else 0
    run.lines = list(lines)
    run.raw_lines = raw
    run.stages = list(stages)
    run.api_calls = scanner.completed
    run.file_copies = scanner.copies.copies
    run.virtio_iso_path = scanner.copies.iso_path
    run.host_commands = scanner.host_commands
    run.nbdkit_connections = list(scanner.nbdkit_map.values())
    run.disk_progress = scanner.disk_progress
    run.messages = scanner.messages
    run.guest_info = scanner.guest_info
    run.inspection = build_guest_info(scanner.guest_info) if has_inspection(scanner.guest_info) else None
    run.installed_apps = scanner.installed_apps
    run.registry_accesses = scanner.hivex.finish()
    run.libguestfs = scanner.launch
    run.host_tmp_dir = scanner.host_tmp_dir
    run.host_free_space = scanner.host_free_space
    run.exit_status = infer_exit_status(run.stages, run.messages, raw)

    logger.debug(
        "Run %s: %d api calls, %d copies, %d messages",
        tool.value,
        len(run.api_calls),
        len(run.file_copies),
        len(run.messages),
    )
    return run
