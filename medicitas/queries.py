"""Generation tracking for overlapping queries.

Each view-model begins a new generation per query key when it issues a
request. A response is applied only if its generation is still the current
one for that key, so a slow response can never overwrite a newer selection.
"""
import itertools
from typing import Dict, Hashable


class QueryGenerations:
    """Per-key monotonically increasing request generations."""

    def __init__(self):
        self._counter = itertools.count(1)
        self._current: Dict[Hashable, int] = {}

    def begin(self, key: Hashable = "default") -> int:
        """Start a request for key. Any earlier request for key becomes stale."""
        generation = next(self._counter)
        self._current[key] = generation
        return generation

    def is_current(self, key: Hashable, generation: int) -> bool:
        return self._current.get(key) == generation

    def invalidate(self, key: Hashable = "default") -> None:
        """Make every in-flight request for key stale without starting a new one."""
        self._current[key] = next(self._counter)
