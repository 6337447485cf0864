# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/file_copies.py
"""
Files placed into the guest during conversion.

libguestfs traces every `read_file`, `write` and `upload` the conversion
performs. A write is attributed to where its bytes came from:

  virtio_win  a virtio-win ISO file was read just before the write
  guest       the same guest path was read earlier (read-modify-write)
  script      nothing was read; virt-v2v generated the content
  virt-tools  an upload from the host's virt-tools data directory
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..core.units import safe_int
from .records import CopyOrigin, FileCopyRecord

ORIGINAL_SIZE_RE = re.compile(r"original size (\d+) bytes")

_ISO_RE = re.compile(r"copy_from_virtio_win:\s+guest tools source ISO\s+(\S+)")
_VIRTIO_READ_RE = re.compile(r'libguestfs: trace: virtio_win: read_file "(///[^"]+)"')
_V2V_READ_RE = re.compile(r'libguestfs: trace: v2v: read_file "([^"]+)"')
_V2V_READ_RESULT = "libguestfs: trace: v2v: read_file = "
_WRITE_RE = re.compile(r'libguestfs: trace: v2v: write "([^"]+)"')
_UPLOAD_RE = re.compile(r'libguestfs: trace: v2v: upload "([^"]+)" "([^"]+)"')

_BINARY_EXT_RE = re.compile(r"\.(exe|msi|dll|sys|cat|pdb|cab|iso|img|bin|dat|drv)$", re.IGNORECASE)
_BINARY_PREFIX_RE = re.compile(r"^\\x[0-9a-f]{2}\\x[0-9a-f]{2}", re.IGNORECASE)
_TEXTISH_PREFIX_RE = re.compile(r"^\\x[0-9a-f]{2}\\x0[0ad]", re.IGNORECASE)
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")

_SIMPLE_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", '"': '"'}

_TRUNCATED = '"<truncated'
GENERATED_SOURCE = "(generated)"


def extract_original_size(line: str) -> Optional[int]:
    m = ORIGINAL_SIZE_RE.search(line)
    return safe_int(m.group(1)) if m else None


def decode_write_escapes(s: str) -> str:
    r"""Undo libguestfs trace quoting: \xHH, \n, \r, \t, \\ and \"."""
    out: List[str] = []
    i = 0
    n = len(s)
    while i < n:
        ch = s[i]
        if ch == "\\" and i + 1 < n:
            nxt = s[i + 1]
            if nxt == "x" and i + 3 < n and s[i + 2] in _HEX_DIGITS and s[i + 3] in _HEX_DIGITS:
                out.append(chr(int(s[i + 2 : i + 4], 16)))
                i += 4
                continue
            if nxt in _SIMPLE_ESCAPES:
                out.append(_SIMPLE_ESCAPES[nxt])
                i += 2
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def _quoted_payload(line: str, start: int) -> Optional[str]:
    end = line.find(_TRUNCATED, start)
    if end < 0:
        end = line.rfind('"')
        if end <= start:
            return None
    return line[start:end]


def extract_read_file_content(line: str) -> Optional[str]:
    """Decoded text of a `read_file = "..."` result, or None for binary data."""
    marker = 'read_file = "'
    idx = line.find(marker)
    if idx < 0:
        return None
    raw = _quoted_payload(line, idx + len(marker))
    if raw is None:
        return None
    if _BINARY_PREFIX_RE.match(raw) and not _TEXTISH_PREFIX_RE.match(raw):
        return None
    return decode_write_escapes(raw)


def extract_write_content(line: str, dest_path: str) -> Optional[str]:
    """Decoded content of `write "/dest" "content"`; None for binary destinations."""
    if _BINARY_EXT_RE.search(dest_path):
        return None
    idx = line.find('" "')
    if idx < 0:
        return None
    raw = _quoted_payload(line, idx + 3)
    if raw is None:
        return None
    return decode_write_escapes(raw)


@dataclass
class _PendingRead:
    source: str
    line_number: int
    size_bytes: Optional[int] = None
    content: Optional[str] = None


class FileCopyTracker:
    """Line-at-a-time state machine pairing guest reads with later writes."""

    def __init__(self) -> None:
        self.copies: List[FileCopyRecord] = []
        self.iso_path: str = ""
        self._virtio_read: Optional[_PendingRead] = None
        self._guest_reads: Dict[str, _PendingRead] = {}
        self._last_guest_read: Optional[str] = None

    def feed(self, line: str, line_number: int) -> None:
        if "copy_from_virtio_win" in line:
            m = _ISO_RE.search(line)
            if m:
                self.iso_path = m.group(1)

        if "libguestfs: trace:" not in line:
            if self._virtio_read is not None:
                self._note_virtio_size(line)
            return

        m = _VIRTIO_READ_RE.search(line)
        if m:
            self._virtio_read = _PendingRead(source=m.group(1), line_number=line_number)
        if self._virtio_read is not None:
            self._note_virtio_size(line)

        m = _V2V_READ_RE.search(line)
        if m and "read_file =" not in line:
            self._last_guest_read = m.group(1)
            self._guest_reads[m.group(1)] = _PendingRead(source=m.group(1), line_number=line_number)

        if self._last_guest_read is not None and _V2V_READ_RESULT in line:
            pending = self._guest_reads.get(self._last_guest_read)
            if pending is not None:
                size = extract_original_size(line)
                if size is not None:
                    pending.size_bytes = size
                content = extract_read_file_content(line)
                if content is not None:
                    pending.content = content
            self._last_guest_read = None

        m = _WRITE_RE.search(line)
        if m:
            self._on_write(line, m.group(1), line_number)

        m = _UPLOAD_RE.search(line)
        if m and not m.group(1).startswith("/tmp/"):
            self.copies.append(
                FileCopyRecord(
                    origin=CopyOrigin.VIRT_TOOLS,
                    source=m.group(1),
                    destination=m.group(2),
                    line_number=line_number,
                )
            )

    def _note_virtio_size(self, line: str) -> None:
        size = extract_original_size(line)
        if size is not None and self._virtio_read is not None:
            self._virtio_read.size_bytes = size

    def _on_write(self, line: str, dest: str, line_number: int) -> None:
        write_size = extract_original_size(line)
        truncated = "<truncated," in line
        content = extract_write_content(line, dest)

        if self._virtio_read is not None:
            read = self._virtio_read
            self._virtio_read = None
            self.copies.append(
                FileCopyRecord(
                    origin=CopyOrigin.VIRTIO_WIN,
                    source=read.source,
                    destination=dest,
                    size_bytes=read.size_bytes if read.size_bytes is not None else write_size,
                    line_number=read.line_number,
                )
            )
            return

        read = self._guest_reads.pop(dest, None)
        if read is not None:
            self.copies.append(
                FileCopyRecord(
                    origin=CopyOrigin.GUEST,
                    source=dest,
                    destination=dest,
                    size_bytes=read.size_bytes if read.size_bytes is not None else write_size,
                    content=content if content is not None else read.content,
                    content_truncated=truncated,
                    line_number=read.line_number,
                )
            )
            return

        self.copies.append(
            FileCopyRecord(
                origin=CopyOrigin.SCRIPT,
                source=GENERATED_SOURCE,
                destination=dest,
                size_bytes=write_size,
                content=content,
                content_truncated=truncated,
                line_number=line_number,
            )
        )
