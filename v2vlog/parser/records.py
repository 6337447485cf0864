# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/records.py
"""
Run-level value objects shared by the parser, the extractors and the file
tree builder.

Everything here is plain data: dataclasses with neutral defaults, so a
missing piece of evidence is an empty string, an empty list or None, never
an exception.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class LineCategory(str, Enum):
    STAGE = "stage"
    KERNEL = "kernel"
    NBDKIT = "nbdkit"
    LIBGUESTFS = "libguestfs"
    GUESTFSD = "guestfsd"
    COMMAND = "command"
    INFO = "info"
    MONITOR = "monitor"
    XML = "xml"
    YAML = "yaml"
    ERROR = "error"
    WARNING = "warning"
    OTHER = "other"


class ToolKind(str, Enum):
    V2V = "virt-v2v"
    IN_PLACE = "virt-v2v-in-place"
    INSPECTOR = "virt-v2v-inspector"
    CUSTOMIZE = "virt-v2v-customize"


class ExitStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    IN_PROGRESS = "in_progress"
    UNKNOWN = "unknown"


class CopyOrigin(str, Enum):
    VIRTIO_WIN = "virtio_win"
    GUEST = "guest"
    SCRIPT = "script"
    VIRT_TOOLS = "virt-tools"


@dataclass(frozen=True)
class LogLine:
    index: int
    text: str
    category: LineCategory = LineCategory.OTHER


@dataclass
class StageRecord:
    name: str
    start_line: int
    end_line: int
    elapsed_seconds: float = 0.0
    lines: List[LogLine] = field(default_factory=list)
    # same text as `lines`, kept as one list object so identity caching works
    raw_lines: List[str] = field(default_factory=list, repr=False)


@dataclass
class GuestCommand:
    command: str
    args: List[str] = field(default_factory=list)
    source: str = "command"  # command | commandrvf | chroot
    stdout_lines: List[str] = field(default_factory=list)
    return_code: Optional[int] = None
    line_number: int = 0


@dataclass
class ApiCallRecord:
    name: str
    handle: str = ""
    args: str = ""
    result: str = ""
    line_number: int = 0
    duration_secs: Optional[float] = None
    guest_commands: List[GuestCommand] = field(default_factory=list)


@dataclass
class FileCopyRecord:
    origin: CopyOrigin
    source: str
    destination: str
    size_bytes: Optional[int] = None
    content: Optional[str] = None
    content_truncated: bool = False
    line_number: int = 0


@dataclass
class HostCommand:
    command: str
    args: List[str] = field(default_factory=list)
    line_number: int = 0


@dataclass
class RunMessage:
    level: str  # error | warning
    source: str
    message: str
    line_number: int = 0


@dataclass
class NbdkitConnection:
    id: str
    socket_path: str = ""
    uri: str = ""
    plugin: str = ""
    filters: List[str] = field(default_factory=list)
    disk_file: str = ""
    server: str = ""
    vm_moref: str = ""
    transport_mode: str = ""
    backing_size: Optional[int] = None
    start_line: int = 0
    end_line: int = 0


@dataclass
class DiskProgress:
    disk_number: int
    total_disks: int
    percent_complete: int = 0
    line_number: int = 0


@dataclass
class ComponentVersions:
    virt_v2v: str = ""
    libvirt: str = ""
    nbdkit: str = ""
    vddk: str = ""
    qemu: str = ""
    libguestfs: str = ""

    def is_empty(self) -> bool:
        return not any((self.virt_v2v, self.libvirt, self.nbdkit, self.vddk, self.qemu, self.libguestfs))


@dataclass
class RegistryValue:
    name: str
    value: str = ""
    line_number: int = 0


@dataclass
class RegistryHiveAccess:
    """One walk through a Windows registry hive: the key reached and the values read or set there."""

    hive_path: str
    mode: str = "read"  # read | write
    key_path: str = ""
    values: List[RegistryValue] = field(default_factory=list)
    line_number: int = 0


@dataclass
class InstalledApp:
    name: str = ""
    display_name: str = ""
    version: str = ""
    publisher: str = ""
    install_path: str = ""
    description: str = ""
    arch: str = ""


@dataclass
class LibguestfsDrive:
    path: str
    format: str = ""
    protocol: str = ""
    server: str = ""
    readonly: bool = False
    line_number: int = 0


@dataclass
class LibguestfsLaunch:
    backend: str = ""
    identifier: str = ""
    memsize: Optional[int] = None
    smp: Optional[int] = None
    drives: List[LibguestfsDrive] = field(default_factory=list)
    launch_lines: List[str] = field(default_factory=list, repr=False)


@dataclass
class DriveMapping:
    letter: str
    device: str


@dataclass
class FstabEntry:
    device: str
    mountpoint: str


@dataclass
class GuestInfo:
    root: str = ""
    type: str = ""
    distro: str = ""
    osinfo: str = ""
    arch: str = ""
    major_version: int = 0
    minor_version: int = 0
    product_name: str = ""
    product_variant: str = ""
    package_format: str = ""
    package_management: str = ""
    hostname: str = ""
    build_id: str = ""
    windows_systemroot: str = ""
    windows_software_hive: str = ""
    windows_system_hive: str = ""
    windows_current_control_set: str = ""
    drive_mappings: List[DriveMapping] = field(default_factory=list)
    fstab: List[FstabEntry] = field(default_factory=list)


@dataclass
class ToolRun:
    tool: ToolKind
    command_line: str = ""
    exit_status: ExitStatus = ExitStatus.UNKNOWN
    start_line: int = 0
    end_line: int = 0
    lines: List[LogLine] = field(default_factory=list)
    raw_lines: List[str] = field(default_factory=list, repr=False)
    stages: List[StageRecord] = field(default_factory=list)
    api_calls: List[ApiCallRecord] = field(default_factory=list)
    file_copies: List[FileCopyRecord] = field(default_factory=list)
    virtio_iso_path: str = ""
    host_commands: List[HostCommand] = field(default_factory=list)
    nbdkit_connections: List[NbdkitConnection] = field(default_factory=list)
    disk_progress: List[DiskProgress] = field(default_factory=list)
    versions: ComponentVersions = field(default_factory=ComponentVersions)
    messages: List[RunMessage] = field(default_factory=list)
    guest_info: Dict[str, str] = field(default_factory=dict)
    inspection: Optional[GuestInfo] = None
    installed_apps: List[InstalledApp] = field(default_factory=list)
    registry_accesses: List[RegistryHiveAccess] = field(default_factory=list)
    libguestfs: LibguestfsLaunch = field(default_factory=LibguestfsLaunch)
    host_tmp_dir: str = ""
    host_free_space: Optional[int] = None

    @property
    def errors(self) -> List[RunMessage]:
        return [m for m in self.messages if m.level == "error"]

    @property
    def warnings(self) -> List[RunMessage]:
        return [m for m in self.messages if m.level == "warning"]


@dataclass
class ParsedLog:
    tool_runs: List[ToolRun] = field(default_factory=list)
    total_lines: int = 0
