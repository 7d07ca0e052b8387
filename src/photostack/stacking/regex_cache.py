"""Bounded cache of compiled regular expressions."""

from __future__ import annotations

import re
import threading
from collections import OrderedDict
from typing import Optional, Tuple

DEFAULT_CAPACITY = 1000


class RegexCache:
    """Thread-safe mapping of pattern strings to compiled patterns with LRU eviction.

    One lock guards both the lookup table and the recency order, so `get` and
    `put` may be called from concurrent stacking runs that share an instance.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize the cache.

        Args:
            capacity: Maximum number of patterns retained before evicting the
                least recently used entry.

        Raises:
            ValueError: If capacity is smaller than one.
        """
        if capacity < 1:
            raise ValueError("Regex cache capacity must be at least 1.")
        self._capacity = capacity
        self._entries: OrderedDict[str, re.Pattern[str]] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        """Return the maximum number of cached patterns."""
        return self._capacity

    def get(self, pattern: str) -> Tuple[Optional[re.Pattern[str]], bool]:
        """Return the compiled pattern and whether it was cached, marking it recently used."""
        with self._lock:
            compiled = self._entries.get(pattern)
            if compiled is None:
                return None, False
            self._entries.move_to_end(pattern)
            return compiled, True

    def put(self, pattern: str, compiled: re.Pattern[str]) -> None:
        """Insert or refresh a compiled pattern, evicting the oldest entry when full."""
        with self._lock:
            if pattern in self._entries:
                self._entries[pattern] = compiled
                self._entries.move_to_end(pattern)
                return
            if len(self._entries) >= self._capacity:
                self._entries.popitem(last=False)
            self._entries[pattern] = compiled

    def compile(self, pattern: str) -> re.Pattern[str]:
        """Return a compiled pattern, compiling and caching it on a miss.

        Raises:
            re.error: If the pattern is not a valid regular expression.
        """
        compiled, found = self.get(pattern)
        if found and compiled is not None:
            return compiled
        compiled = re.compile(pattern)
        self.put(pattern, compiled)
        return compiled

    def clear(self) -> None:
        """Drop every cached pattern."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, pattern: object) -> bool:
        with self._lock:
            return pattern in self._entries


__all__ = ["DEFAULT_CAPACITY", "RegexCache"]
