# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/classifier.py
"""
Per-line category tagging.

Classification is a total, stateless function of the line text: every line
gets exactly one LineCategory (OTHER by default), so callers may re-run it
freely.
"""
from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from ..core.units import safe_float
from .records import LineCategory, LogLine

# "[    0.000000] Linux version ..." (guest appliance kernel, microsecond clock)
KERNEL_BOOT_RE = re.compile(r"^\[\s*\d+\.\d{6}\]")

# "[  12.3] Inspecting the source" (virt-v2v stage marker, decisecond clock).
# The elapsed token is captured loosely so a garbled counter still marks a
# boundary; the segmenter decides what to do with an unparsable value.
STAGE_RE = re.compile(r"^\[\s*(\d[\d.]*)\]\s+(\S.*?)\s*$")

ERROR_RE = re.compile(r"\berror\b", re.IGNORECASE)
WARNING_RE = re.compile(r"\bwarning\b", re.IGNORECASE)

_ERROR_FALSE_POSITIVES = (
    re.compile(r"=\s*(?:NULL|-1)\s*\(error\)"),  # libguestfs trace: call returned an error value
    re.compile(r"usbserial"),
    re.compile(r"error:\s*No error"),
    re.compile(r"^nbdkit:.*\bdebug:"),
)

_COMMAND_PREFIXES = ("command:", "commandrvf:", "chroot:")
_XML_RE = re.compile(r"^</?[A-Za-z][\w:.-]*[\s>/]")
_YAML_PREFIXES = ("apiVersion:", "kind:")


def is_error_false_positive(text: str) -> bool:
    return any(rx.search(text) for rx in _ERROR_FALSE_POSITIVES)


def parse_stage_marker(text: str) -> Optional[Tuple[str, str]]:
    """
    Return (elapsed_token, stage_name) for a stage marker line, else None.

    Appliance kernel lines share the bracket shape and are excluded.
    """
    if KERNEL_BOOT_RE.match(text):
        return None
    m = STAGE_RE.match(text)
    if not m:
        return None
    return m.group(1), m.group(2)


def is_stage_marker(text: str) -> bool:
    return parse_stage_marker(text) is not None


def stage_elapsed(token: str, previous: float) -> float:
    """Elapsed seconds from a marker token; unparsable tokens keep `previous`."""
    v = safe_float(token, default=-1.0)
    return previous if v < 0 else v


def classify_line(text: str) -> LineCategory:
    if not text or not text.strip():
        return LineCategory.OTHER
    if KERNEL_BOOT_RE.match(text):
        return LineCategory.KERNEL
    if STAGE_RE.match(text):
        return LineCategory.STAGE

    stripped = text.lstrip()
    if text.startswith("nbdkit:") or stripped.startswith("running nbdkit"):
        return LineCategory.NBDKIT
    if text.startswith("libguestfs:"):
        return LineCategory.LIBGUESTFS
    if text.startswith("guestfsd:"):
        return LineCategory.GUESTFSD
    if text.startswith(_COMMAND_PREFIXES):
        return LineCategory.COMMAND
    if text.startswith("virt-v2v monitoring:"):
        return LineCategory.MONITOR

    if ERROR_RE.search(text) and not is_error_false_positive(text):
        return LineCategory.ERROR
    if WARNING_RE.search(text):
        return LineCategory.WARNING
    if text.startswith("info:"):
        return LineCategory.INFO
    if _XML_RE.match(stripped):
        return LineCategory.XML
    if stripped.startswith(_YAML_PREFIXES):
        return LineCategory.YAML
    return LineCategory.OTHER


def classify_lines(lines: Sequence[str], offset: int = 0) -> List[LogLine]:
    """Tag every line; `index` is the global 0-based line number."""
    return [LogLine(index=offset + i, text=t, category=classify_line(t)) for i, t in enumerate(lines)]
