# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tests for identity-keyed memoization."""
from __future__ import annotations

import pytest
from v2vlog.core.memo import clear_all_caches, memoize_by_identity


@pytest.mark.unit
class TestMemoizeByIdentity:
    def _counting(self, maxsize=4):
        calls = []

        @memoize_by_identity(maxsize=maxsize)
        def fn(lines):
            calls.append(lines)
            return [len(lines)]

        return fn, calls

    def test_same_object_hits(self):
        """The very same list returns the very same result object."""
        fn, calls = self._counting()
        lines = ["a", "b"]
        first = fn(lines)
        assert fn(lines) is first
        assert len(calls) == 1

    def test_equal_but_distinct_list_misses(self):
        """Equality is not enough; identity is the key."""
        fn, calls = self._counting()
        fn(["a"])
        fn(["a"])
        assert len(calls) == 2

    def test_lru_eviction(self):
        """Old entries are evicted beyond maxsize."""
        fn, calls = self._counting(maxsize=1)
        a, b = ["a"], ["b"]
        fn(a)
        fn(b)
        fn(a)
        assert len(calls) == 3
        assert fn.cache_len() == 1

    def test_clear_all_caches(self):
        """clear_all_caches empties every registered cache."""
        fn, calls = self._counting()
        lines = ["x"]
        fn(lines)
        clear_all_caches()
        fn(lines)
        assert len(calls) == 2
