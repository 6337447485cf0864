# SPDX-License-Identifier: LGPL-3.0-or-later
# v2vlog/extractors/tables.py
"""Static lookup tables. Unknown codes are passed through unchanged."""
from __future__ import annotations

from typing import Dict, Optional

GPT_TYPE_NAMES: Dict[str, str] = {
    "C12A7328-F81F-11D2-BA4B-00A0C93EC93B": "EFI System",
    "0FC63DAF-8483-4772-8E79-3D69D8477DE4": "Linux filesystem",
    "E6D6D379-F507-44C2-A23C-238F2A3DF928": "Linux LVM",
    "EBD0A0A2-B9E5-4433-87C0-68B6B72699C7": "Microsoft basic data",
    "21686148-6449-6E6F-744E-656564454649": "BIOS boot",
    "DE94BBA4-06D1-4D40-A16A-BFD50179D6AC": "Windows RE",
    "E3C9E316-0B5C-4DB8-817D-F92DF00215AE": "Microsoft reserved",
    "5808C8AA-7E8F-42E0-85D2-E1E90434CFB3": "Linux LUKS",
    "0657FD6D-A4AB-43C4-84E5-0933C84B4F4F": "Linux swap",
    "A19D880F-05FC-4D3B-A006-743F0F84911E": "Linux RAID",
}

# MBR partition type bytes, keyed by lower-case "0xNN"
MBR_TYPE_NAMES: Dict[str, str] = {
    "0x01": "FAT12",
    "0x04": "FAT16 <32M",
    "0x05": "Extended",
    "0x06": "FAT16",
    "0x07": "HPFS/NTFS/exFAT",
    "0x0b": "W95 FAT32",
    "0x0c": "W95 FAT32 (LBA)",
    "0x0e": "W95 FAT16 (LBA)",
    "0x0f": "W95 Extended (LBA)",
    "0x27": "Hidden NTFS WinRE",
    "0x82": "Linux swap",
    "0x83": "Linux",
    "0x8e": "Linux LVM",
    "0xee": "GPT protective",
    "0xef": "EFI System",
    "0xfd": "Linux raid autodetect",
}

# nbdinfo capability keys
CAPABILITY_LABELS: Dict[str, str] = {
    "is_rotational": "Rotational",
    "is_read_only": "Read Only",
    "can_write": "Write",
    "can_zero": "Zero",
    "can_fast_zero": "Fast Zero",
    "can_trim": "Trim",
    "can_fua": "Force Unit Access",
    "can_flush": "Flush",
    "can_multi_conn": "Multi-connection",
    "can_cache": "Cache",
    "can_extents": "Extents",
    "can_df": "Disk Free",
    "can_block_status_payload": "Block Status Payload",
}


def gpt_type_name(guid: Optional[str]) -> str:
    if not guid:
        return ""
    return GPT_TYPE_NAMES.get(guid.strip().upper(), guid)


def mbr_type_name(code: Optional[str]) -> str:
    if not code:
        return ""
    key = code.strip().lower()
    if not key.startswith("0x"):
        key = "0x" + key
    if len(key) == 3:
        key = "0x0" + key[2]
    return MBR_TYPE_NAMES.get(key, code)


def capability_label(key: str) -> str:
    return CAPABILITY_LABELS.get(key, key)
