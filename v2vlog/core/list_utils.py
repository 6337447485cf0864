# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/core/list_utils.py
"""Shared list manipulation utilities

Ordered de-duplication used by the extractors' dedup steps. Every extractor
keeps first-seen order, so these helpers never sort.
"""
from __future__ import annotations

from typing import Callable, Hashable, Iterable, List, Set, Tuple, TypeVar


T = TypeVar('T')
H = TypeVar('H', bound=Hashable)


def dedup_preserve_order(items: Iterable[H]) -> List[H]:
    """Remove duplicates from a sequence while preserving order.

    Example:
        >>> dedup_preserve_order(['a', 'b', 'a', 'c', 'b'])
        ['a', 'b', 'c']
        >>> dedup_preserve_order([])
        []
    """
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def dedup_by_key(items: Iterable[T], key: Callable[[T], Hashable]) -> List[T]:
    """Keep the first item for every natural key, in first-seen order.

    Args:
        items: Records that may repeat the same logical entity
        key: Function returning the natural key of a record

    Returns:
        New list with later duplicates dropped

    Example:
        >>> dedup_by_key([("k", 1), ("k", 2), ("j", 3)], key=lambda t: t[0])
        [('k', 1), ('j', 3)]
    """
    seen: Set[Hashable] = set()
    result: List[T] = []
    for item in items:
        k = key(item)
        if k not in seen:
            seen.add(k)
            result.append(item)
    return result


def merge_unique(primary: Iterable[T], secondary: Iterable[T], key: Callable[[T], Hashable]) -> Tuple[List[T], int]:
    """Append the secondary records whose key is absent from the primary ones.

    Returns the merged list and how many secondary records were added.

    Example:
        >>> merge_unique(["/a", "/b"], ["/b", "/c"], key=lambda s: s)
        (['/a', '/b', '/c'], 1)
    """
    merged = dedup_by_key(primary, key)
    seen = {key(item) for item in merged}
    added = 0
    for item in secondary:
        k = key(item)
        if k not in seen:
            seen.add(k)
            merged.append(item)
            added += 1
    return merged, added


__all__ = [
    "dedup_preserve_order",
    "dedup_by_key",
    "merge_unique",
]
