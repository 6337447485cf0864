# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/hivex.py
"""
Windows registry access reconstructed from hivex trace calls.

virt-v2v edits the guest's SYSTEM and SOFTWARE hives through libguestfs'
hivex_* API. The trace only shows node handles, so the key path is rebuilt
from the child names looked up one by one after hivex_root. A session runs
from hivex_open to hivex_close; every new walk from the root handle, and
every commit, closes the walk so far as one RegistryHiveAccess.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .records import RegistryHiveAccess, RegistryValue

logger = logging.getLogger(__name__)

HANDLE_NAME_RE = re.compile(r'(\d+)\s+"([^"]+)"')
QUOTED_RESULT_RE = re.compile(r'^"(.*)"$')
SET_VALUE_RE = re.compile(r'^\d+\s+"([^"]+)"\s+(\d+)\s+"(.+)"$')
HIVE_PATH_RE = re.compile(r'^"([^"]+)"')

REG_SZ = 1
REG_EXPAND_SZ = 2
REG_BINARY = 3
REG_DWORD = 4
REG_MULTI_SZ = 7

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def parse_escaped_bytes(s: str) -> List[int]:
    r"""
    Bytes of a hivex trace payload.

    `\xHH` is one byte; any other character, a lone backslash included, is
    its own code. libguestfs does not double backslashes, so `\\x00` is
    0x5c followed by 0x00.
    """
    out: List[int] = []
    i = 0
    n = len(s)
    while i < n:
        if s[i] == "\\" and i + 3 < n and s[i + 1] == "x" and s[i + 2] in _HEX_DIGITS and s[i + 3] in _HEX_DIGITS:
            out.append(int(s[i + 2 : i + 4], 16))
            i += 4
            continue
        out.append(ord(s[i]) & 0xFF)
        i += 1
    return out


def decode_utf16le(data: List[int]) -> str:
    chars: List[str] = []
    for i in range(0, len(data) - 1, 2):
        code = data[i] | (data[i + 1] << 8)
        if code == 0:
            break
        chars.append(chr(code))
    return "".join(chars)


def decode_hivex_data(raw: str, reg_type: int) -> str:
    """
    Readable form of a registry value payload.

      >>> decode_hivex_data("\\x03\\x00\\x00\\x00", REG_DWORD)
      '3'
    """
    data = parse_escaped_bytes(raw)
    if reg_type == REG_DWORD and len(data) >= 4:
        return str(int.from_bytes(bytes(data[:4]), "little"))
    if reg_type in (REG_SZ, REG_EXPAND_SZ, REG_MULTI_SZ):
        return decode_utf16le(data)
    if len(data) <= 16:
        return " ".join(f"{b:02x}" for b in data)
    return f"({len(data)} bytes)"


@dataclass
class HivexSession:
    hive_path: str
    line_number: int
    key_segments: List[str] = field(default_factory=list)
    values: List[RegistryValue] = field(default_factory=list)
    root_handle: str = ""
    pending_value: Optional[str] = None
    pending_child: Optional[str] = None
    has_write: bool = False
    first_write_line: int = 0

    def mark_write(self, n: int) -> None:
        self.has_write = True
        if not self.first_write_line:
            self.first_write_line = n


class HivexTracker:
    def __init__(self) -> None:
        self.accesses: List[RegistryHiveAccess] = []
        self.session: Optional[HivexSession] = None

    def _flush(self, s: Optional[HivexSession]) -> None:
        if s is None:
            return
        key_path = "\\".join(s.key_segments)
        if not key_path and not s.values:
            return
        mode = "write" if s.has_write else "read"
        line = s.first_write_line if mode == "write" and s.first_write_line else s.line_number

        last = self.accesses[-1] if self.accesses else None
        if (
            last is not None
            and (last.hive_path, last.key_path, last.mode, last.line_number) == (s.hive_path, key_path, mode, line)
        ):
            last.values.extend(s.values)
            return
        self.accesses.append(
            RegistryHiveAccess(hive_path=s.hive_path, mode=mode, key_path=key_path, values=list(s.values), line_number=line)
        )

    def _restart_walk(self, s: HivexSession, *, line_number: Optional[int] = None, write_line: int = 0) -> None:
        self._flush(s)
        s.key_segments = []
        s.values = []
        s.pending_value = None
        s.pending_child = None
        s.has_write = bool(write_line)
        s.first_write_line = write_line
        if line_number is not None:
            s.line_number = line_number

    def _is_root_walk(self, s: HivexSession, parent: str) -> bool:
        return bool(s.root_handle) and parent == s.root_handle and bool(s.key_segments)

    def feed(self, name: str, args: str, n: int) -> None:
        if not name.startswith("hivex_"):
            return
        is_result = args.startswith("=")
        value = args[1:].strip() if is_result else ""

        if name == "hivex_open":
            if not is_result:
                self._flush(self.session)
                self.session = None
                m = HIVE_PATH_RE.match(args)
                if m:
                    self.session = HivexSession(hive_path=m.group(1), line_number=n)
            return

        s = self.session
        if s is None:
            return

        if name == "hivex_root":
            if is_result:
                s.root_handle = value
            elif s.key_segments or s.values:
                self._restart_walk(s)
        elif name == "hivex_node_get_child":
            if is_result:
                if value != "0" and s.pending_child:
                    s.key_segments.append(s.pending_child)
                s.pending_child = None
            else:
                m = HANDLE_NAME_RE.search(args)
                if m:
                    if self._is_root_walk(s, m.group(1)):
                        self._restart_walk(s, line_number=n)
                    s.pending_child = m.group(2)
        elif name == "hivex_node_add_child":
            if not is_result:
                s.mark_write(n)
                m = HANDLE_NAME_RE.search(args)
                if m and self._is_root_walk(s, m.group(1)):
                    self._restart_walk(s, line_number=n, write_line=n)
                if m:
                    s.key_segments.append(m.group(2))
        elif name == "hivex_node_get_value":
            if is_result:
                if value == "0":
                    s.pending_value = None
            else:
                m = HANDLE_NAME_RE.search(args)
                if m:
                    s.pending_value = m.group(2)
        elif name in ("hivex_value_string", "hivex_value_value"):
            m = QUOTED_RESULT_RE.match(value) if is_result else None
            if m and s.pending_value:
                text = m.group(1) if name == "hivex_value_string" else decode_hivex_data(m.group(1), REG_SZ)
                s.values.append(RegistryValue(name=s.pending_value, value=text, line_number=n))
                s.pending_value = None
        elif name == "hivex_value_key":
            m = QUOTED_RESULT_RE.match(value) if is_result else None
            if m:
                s.pending_value = m.group(1)
        elif name == "hivex_node_set_value":
            if not is_result:
                s.mark_write(n)
                m = SET_VALUE_RE.match(args)
                if m:
                    s.values.append(
                        RegistryValue(
                            name=m.group(1),
                            value=decode_hivex_data(m.group(3), int(m.group(2))),
                            line_number=n,
                        )
                    )
        elif name == "hivex_commit":
            if not is_result:
                s.mark_write(n)
                if s.values or s.key_segments:
                    self._restart_walk(s)
        elif name == "hivex_close":
            if not is_result:
                self._flush(s)
                self.session = None

    def finish(self) -> List[RegistryHiveAccess]:
        # a session still open at the end of the run is kept
        self._flush(self.session)
        self.session = None
        logger.debug("hivex: %d registry accesses", len(self.accesses))
        return self.accesses
