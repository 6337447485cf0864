# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/filetree/augeas_path.py
"""
Split augeas key paths into the guest file and the key inside it.

    /files/etc/fstab/1/spec                  -> /etc/fstab, 1/spec
    /files/etc/sysconfig/kernel/DEFAULTKERNEL -> /etc/sysconfig/kernel, DEFAULTKERNEL
    /files/etc/modprobe.d/v2v.conf/alias[1]  -> /etc/modprobe.d/v2v.conf, alias[1]

Augeas does not mark where the file ends, so the boundary is guessed from
the segments, left to right, first rule wins:

  1. a numeric or bracketed segment is a key: the file ended before it;
  2. a segment with a config-file extension is the file;
  3. a well-known extensionless config file name is the file;
  4. an all-uppercase segment is a key name: the file ended before it;
  5. otherwise the whole path is the file.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..parser.records import ApiCallRecord

AUGEAS_APIS = frozenset(["aug_get", "aug_set", "aug_rm", "aug_match", "aug_clear", "aug_ls"])

KNOWN_CONFIG_LEAVES = frozenset(
    [
        "fstab",
        "hostname",
        "config",
        "grub",
        "passwd",
        "group",
        "shadow",
        "hosts",
        "crypttab",
        "mtab",
        "shells",
        "services",
        "protocols",
        "exports",
        "sudoers",
        "crontab",
        "profile",
        "environment",
        "locale",
        "timezone",
        "adjtime",
    ]
)

# ".d" is left out on purpose: modprobe.d, sysctl.d and friends are directories
CONFIG_EXTENSION_RE = re.compile(
    r"\.(conf|cfg|sh|ini|rules|repo|list|cnf|aug|mount|service|timer|socket|xml|json|yaml|yml|properties|env)$"
)
_NUMERIC_RE = re.compile(r"^\d+$")
_UPPER_KEY_RE = re.compile(r"^[A-Z_]+$")

_PREFIXES = ("/files", "/file")


@dataclass(frozen=True)
class AugeasPath:
    file_path: str
    key: str = ""

    def joined(self) -> str:
        return f"{self.file_path}/{self.key}" if self.key else self.file_path


def _strip_prefix(path: str) -> str:
    for prefix in _PREFIXES:
        if path == prefix:
            return ""
        if path.startswith(prefix + "/"):
            return path[len(prefix):]
    return path


def _file_end(segments: "list[str]") -> int:
    for i, seg in enumerate(segments):
        if _NUMERIC_RE.match(seg) or "[" in seg:
            return i
        if CONFIG_EXTENSION_RE.search(seg) or seg in KNOWN_CONFIG_LEAVES:
            return i + 1
        if len(seg) > 1 and _UPPER_KEY_RE.match(seg):
            return i
    return len(segments)


def decompose_augeas_path(path: str) -> Optional[AugeasPath]:
    """
    Split an augeas path, or return None when it is not an absolute path.

      >>> decompose_augeas_path("/files/etc/fstab/1/spec")
      AugeasPath(file_path='/etc/fstab', key='1/spec')
      >>> decompose_augeas_path("/files/etc/sysconfig/kernel/DEFAULTKERNEL")
      AugeasPath(file_path='/etc/sysconfig/kernel', key='DEFAULTKERNEL')
      >>> decompose_augeas_path("files/etc/hosts") is None
      True
    """
    rest = _strip_prefix((path or "").strip())
    if not rest.startswith("/"):
        return None
    segments = [s for s in rest.split("/") if s]
    if not segments:
        return None
    end = _file_end(segments)
    # a key at the very first segment leaves no file; keep the segment as the file
    if end == 0:
        end = 1
    return AugeasPath(file_path="/" + "/".join(segments[:end]), key="/".join(segments[end:]))


def is_augeas_data_call(call: ApiCallRecord) -> bool:
    """True for augeas calls on guest files, False for augeas' own /augeas/ metadata."""
    if call.name not in AUGEAS_APIS:
        return False
    if "/augeas/" in call.args:
        return False
    return "/files/" in call.args or "/file/" in call.args
