# SPDX-License-Identifier: LGPL-3.0-or-later
# -*- coding: utf-8 -*-
# v2vlog/core/memo.py
"""
Memoization keyed on argument identity.

Callers re-run extractors with the very same list objects on every refresh.
Lists are unhashable and can be large, so the cache key is the tuple of
``id()`` values; the cached entry keeps strong references to the arguments
so an id cannot be recycled while its entry is alive, and a hit requires
every argument to be the identical object.
"""
from __future__ import annotations

import functools
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Tuple, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

_REGISTRY: List[Callable[[], None]] = []


def memoize_by_identity(maxsize: int = 32) -> Callable[[F], F]:
    def decorator(fn: F) -> F:
        cache: "OrderedDict[Tuple[Any, ...], Tuple[Tuple[Any, ...], Dict[str, Any], Any]]" = OrderedDict()
        lock = threading.Lock()

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            key = tuple(id(a) for a in args) + tuple((k, id(v)) for k, v in sorted(kwargs.items()))
            with lock:
                hit = cache.get(key)
                if hit is not None:
                    c_args, c_kwargs, result = hit
                    same = all(a is b for a, b in zip(c_args, args)) and all(
                        c_kwargs.get(k) is v for k, v in kwargs.items()
                    )
                    if same:
                        cache.move_to_end(key)
                        return result

            result = fn(*args, **kwargs)

            with lock:
                cache[key] = (args, dict(kwargs), result)
                cache.move_to_end(key)
                while len(cache) > maxsize:
                    cache.popitem(last=False)
            return result

        def cache_clear() -> None:
            with lock:
                cache.clear()

        wrapper.cache_clear = cache_clear  # type: ignore[attr-defined]
        wrapper.cache_len = lambda: len(cache)  # type: ignore[attr-defined]
        wrapper.__wrapped__ = fn  # type: ignore[attr-defined]
        _REGISTRY.append(cache_clear)
        return wrapper  # type: ignore[return-value]

    return decorator


def clear_all_caches() -> None:
    """Drop every identity cache (tests, long-running callers)."""
    for clear in _REGISTRY:
        clear()

