# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/source_setup.py
"""
Source setup stage: the source domain's libvirt XML and the nbdkit
instances opened to read its disks.

The XML is printed verbatim after `libvirt xml is:`. It is matched with
quote-agnostic regexes rather than an XML parser: the block is frequently
cut short by the end of the stage, and a partial document should still
yield what it holds.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..core.list_utils import dedup_by_key
from ..core.memo import memoize_by_identity
from ..core.units import safe_int

logger = logging.getLogger(__name__)

NBDKIT_INFO_LOOKAHEAD = 300

# quote-agnostic attribute value
_Q = r"[\"']([^\"']+)[\"']"

_XML_MARKER = "libvirt xml is:"
_DOMAIN_TYPE_RE = re.compile(rf"<domain\s+type={_Q}")
_NAME_RE = re.compile(r"<name>([^<]+)</name>")
_UUID_RE = re.compile(r"<uuid>([^<]+)</uuid>")
_MEMORY_UNIT_RE = re.compile(rf"<memory\s+unit={_Q}>(\d+)</memory>")
_MEMORY_PLAIN_RE = re.compile(r"<memory>(\d+)</memory>")
_VCPU_RE = re.compile(r"<vcpu[^>]*>(\d+)</vcpu>")
_TOPOLOGY_RE = re.compile(rf"<topology\s+sockets={_Q}\s+cores={_Q}")
_THREADS_RE = re.compile(rf"<topology[^>]+threads={_Q}")
_ARCH_RE = re.compile(rf"<type\s+arch={_Q}")
_OS_TYPE_RE = re.compile(r"<type[^>]*>([^<]+)</type>")
_BOOT_DEV_RE = re.compile(rf"<boot\s+dev={_Q}")
_DATACENTER_RE = re.compile(r"<vmware:datacenterpath>([^<]+)</vmware:datacenterpath>")
_MOREF_RE = re.compile(r"<vmware:moref>([^<]+)</vmware:moref>")
_DISK_RE = re.compile(
    rf"<disk\s+type={_Q}\s+device={_Q}>[\s\S]*?<source\s+(?:file|dev)={_Q}[\s\S]*?<target\s+dev={_Q}\s+bus={_Q}"
)
_DRIVER_TYPE_RE = re.compile(rf"<driver[^>]+type={_Q}")
_NIC_RE = re.compile(rf"<interface\s+type={_Q}>[\s\S]*?<mac\s+address={_Q}[\s\S]*?<model\s+type={_Q}")
_SWITCH_RE = re.compile(rf"<source\s+switchid={_Q}[^>]*portgroupid={_Q}")
_CONTROLLER_RE = re.compile(rf"<controller\s+type={_Q}[^>]*model={_Q}")

_NBDKIT_START_RE = re.compile(r"running nbdkit:|^\s*LANG=C\s+'nbdkit'")
_VDDK_VERSION_RE = re.compile(r"VMware VixDiskLib \(([^)]+)\)")
_TRANSPORT_MODES_RE = re.compile(r"Available transport modes:\s+(.+)")
_FILTER_RE = re.compile(r"'--filter'\s+'([^']+)'|--filter\s+(\S+)")

# KiB per unit; libvirt's default unit is KiB
_MEMORY_UNITS = {
    "b": None,
    "bytes": None,
    "k": 1,
    "kib": 1,
    "kb": 1,
    "m": 1024,
    "mib": 1024,
    "mb": 1024,
    "g": 1024 * 1024,
    "gib": 1024 * 1024,
    "gb": 1024 * 1024,
}


@dataclass
class SourceVm:
    name: str = ""
    uuid: str = ""
    memory_kib: int = 0
    vcpus: int = 0
    os_arch: str = ""
    os_type: str = ""
    boot_dev: str = ""
    domain_type: str = ""
    datacenter_path: str = ""
    moref: str = ""


@dataclass
class SourceDisk:
    source: str
    target: str
    bus: str = ""
    driver_type: str = ""
    disk_type: str = ""


@dataclass
class SourceNic:
    mac: str
    model: str = ""
    switch_id: str = ""
    portgroup_id: str = ""


@dataclass
class SourceController:
    type: str
    model: str = ""


@dataclass
class NbdkitInstance:
    vmdk: str = ""
    socket: str = ""
    server: str = ""
    user: str = ""
    thumbprint: str = ""
    filters: List[str] = field(default_factory=list)
    vddk_version: str = ""
    transport_modes: str = ""
    line_number: int = 0


@dataclass
class SourceSetup:
    vm: Optional[SourceVm] = None
    disks: List[SourceDisk] = field(default_factory=list)
    nics: List[SourceNic] = field(default_factory=list)
    controllers: List[SourceController] = field(default_factory=list)
    nbdkit_instances: List[NbdkitInstance] = field(default_factory=list)


class State(Enum):
    IDLE = "idle"
    XML = "xml"


def memory_to_kib(value: int, unit: str) -> int:
    """
      >>> memory_to_kib(4, "GiB")
      4194304
      >>> memory_to_kib(2048, "bytes")
      2
    """
    factor = _MEMORY_UNITS.get(unit.lower(), 1)
    if factor is None:
        return value // 1024
    return value * factor


def parse_domain_xml(xml: str, out: SourceSetup) -> None:
    if not xml:
        return

    def first(rx: "re.Pattern[str]") -> str:
        m = rx.search(xml)
        return m.group(1) if m else ""

    vcpus = safe_int(first(_VCPU_RE))
    if not vcpus:
        topo = _TOPOLOGY_RE.search(xml)
        if topo:
            vcpus = safe_int(topo.group(1)) * safe_int(topo.group(2))
            threads = _THREADS_RE.search(xml)
            if threads:
                vcpus *= safe_int(threads.group(1), default=1)

    memory_kib = 0
    m = _MEMORY_UNIT_RE.search(xml)
    if m:
        memory_kib = memory_to_kib(safe_int(m.group(2)), m.group(1))
    else:
        memory_kib = safe_int(first(_MEMORY_PLAIN_RE))

    out.vm = SourceVm(
        name=first(_NAME_RE),
        uuid=first(_UUID_RE),
        memory_kib=memory_kib,
        vcpus=vcpus,
        os_arch=first(_ARCH_RE),
        os_type=first(_OS_TYPE_RE),
        boot_dev=first(_BOOT_DEV_RE),
        domain_type=first(_DOMAIN_TYPE_RE),
        datacenter_path=first(_DATACENTER_RE),
        moref=first(_MOREF_RE),
    )

    for d in _DISK_RE.finditer(xml):
        if d.group(2) != "disk":
            continue
        driver = _DRIVER_TYPE_RE.search(d.group(0))
        out.disks.append(
            SourceDisk(
                source=d.group(3),
                target=d.group(4),
                bus=d.group(5),
                driver_type=driver.group(1) if driver else "",
                disk_type=d.group(1),
            )
        )

    for n in _NIC_RE.finditer(xml):
        sw = _SWITCH_RE.search(xml, n.start())
        out.nics.append(
            SourceNic(
                mac=n.group(2),
                model=n.group(3),
                switch_id=sw.group(1) if sw else "",
                portgroup_id=sw.group(2) if sw else "",
            )
        )

    for c in _CONTROLLER_RE.finditer(xml):
        out.controllers.append(SourceController(type=c.group(1), model=c.group(2)))


def _arg(cmdline: str, name: str) -> str:
    m = re.search(rf"'{name}=([^']+)'", cmdline) or re.search(rf"\b{name}=(\S+)", cmdline)
    return m.group(1) if m else ""


def parse_nbdkit_instance(lines: Sequence[str], index: int) -> NbdkitInstance:
    line = lines[index]
    cmdline = line
    if "running nbdkit:" in line and index + 1 < len(lines):
        cmdline = lines[index + 1]

    inst = NbdkitInstance(line_number=index)
    m = re.search(r"'--unix'\s+'([^']+)'", cmdline) or re.search(r"--unix\s+(\S+)", cmdline)
    if m:
        inst.socket = m.group(1)
    inst.server = _arg(cmdline, "server")
    inst.vmdk = _arg(cmdline, "file")
    inst.user = _arg(cmdline, "user")
    inst.thumbprint = _arg(cmdline, "thumbprint")
    inst.filters = [a or b for a, b in _FILTER_RE.findall(cmdline)]

    stop = min(len(lines), index + NBDKIT_INFO_LOOKAHEAD + 1)
    for j in range(index + 1, stop):
        text = lines[j]
        if j > index + 1 and "running nbdkit:" in text:
            break
        if not inst.vddk_version:
            v = _VDDK_VERSION_RE.search(text)
            if v:
                inst.vddk_version = v.group(1)
        if not inst.transport_modes:
            t = _TRANSPORT_MODES_RE.search(text)
            if t:
                inst.transport_modes = t.group(1).strip().rstrip(".")
    return inst


class SourceSetupScanner:
    def __init__(self, lines: Sequence[str]) -> None:
        self.lines = lines
        self.state = State.IDLE
        self.xml_lines: List[str] = []
        self.out = SourceSetup()

    def feed(self, index: int, line: str) -> None:
        if self.state is State.XML:
            self.xml_lines.append(line)
            if "</domain>" in line:
                self.state = State.IDLE
            return

        if _XML_MARKER in line and not self.xml_lines:
            rest = line.split(_XML_MARKER, 1)[1].strip()
            if rest:
                self.xml_lines.append(rest)
            if "</domain>" not in rest:
                self.state = State.XML
            return
        if line.lstrip().startswith("<domain") and not self.xml_lines:
            self.xml_lines.append(line)
            if "</domain>" not in line:
                self.state = State.XML
            return

        if _NBDKIT_START_RE.search(line):
            inst = parse_nbdkit_instance(self.lines, index)
            if inst.vmdk or inst.socket:
                self.out.nbdkit_instances.append(inst)

    def finish(self) -> SourceSetup:
        # an unterminated block is parsed as far as it goes
        self.state = State.IDLE
        parse_domain_xml("\n".join(self.xml_lines), self.out)
        return self.out


def dedup_source_setup(out: SourceSetup) -> SourceSetup:
    # nbdkit re-execs itself with the same socket
    out.nbdkit_instances = dedup_by_key(out.nbdkit_instances, key=lambda n: n.socket)
    return out


@memoize_by_identity(maxsize=16)
def extract_source_setup(lines: Sequence[str]) -> SourceSetup:
    scanner = SourceSetupScanner(lines)
    for i, line in enumerate(lines):
        scanner.feed(i, line)
    out = dedup_source_setup(scanner.finish())
    logger.debug(
        "source setup: vm=%s disks=%d nics=%d nbdkit=%d",
        out.vm.name if out.vm else "-",
        len(out.disks),
        len(out.nics),
        len(out.nbdkit_instances),
    )
    return out
