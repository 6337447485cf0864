# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/parser/__init__.py
from .classifier import (
    classify_line,
    classify_lines,
    is_error_false_positive,
    is_stage_marker,
    parse_stage_marker,
)
from .ingest import is_v2v_log, parse_log_lines, parse_log_text, preprocess_lines
from .records import (
    ApiCallRecord,
    ComponentVersions,
    CopyOrigin,
    DiskProgress,
    DriveMapping,
    ExitStatus,
    FileCopyRecord,
    FstabEntry,
    GuestCommand,
    GuestInfo,
    HostCommand,
    InstalledApp,
    LibguestfsDrive,
    LibguestfsLaunch,
    LineCategory,
    LogLine,
    NbdkitConnection,
    ParsedLog,
    RegistryHiveAccess,
    RegistryValue,
    RunMessage,
    StageRecord,
    ToolKind,
    ToolRun,
)
from .segmenter import segment_stages, segment_text_lines

__all__ = [
    "ApiCallRecord",
    "ComponentVersions",
    "CopyOrigin",
    "DiskProgress",
    "DriveMapping",
    "ExitStatus",
    "FileCopyRecord",
    "FstabEntry",
    "GuestCommand",
    "GuestInfo",
    "HostCommand",
    "InstalledApp",
    "LibguestfsDrive",
    "LibguestfsLaunch",
    "LineCategory",
    "LogLine",
    "NbdkitConnection",
    "ParsedLog",
    "RegistryHiveAccess",
    "RegistryValue",
    "RunMessage",
    "StageRecord",
    "ToolKind",
    "ToolRun",
    "classify_line",
    "classify_lines",
    "is_error_false_positive",
    "is_stage_marker",
    "is_v2v_log",
    "parse_log_lines",
    "parse_log_text",
    "parse_stage_marker",
    "preprocess_lines",
    "segment_stages",
    "segment_text_lines",
]
