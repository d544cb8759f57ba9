"""Randomness used to pick between alternate button exits."""
from __future__ import annotations

import threading
from random import Random
from typing import Optional, Protocol


class RandomSource(Protocol):
    def uniform_index(self, n: int) -> int:
        """Return an index in ``range(n)`` drawn uniformly."""
        ...


class SharedRandom:
    """Process-wide source of exit draws, safe to share between workers."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._random = Random(seed)
        self._lock = threading.Lock()

    def uniform_index(self, n: int) -> int:
        if n <= 0:
            raise ValueError("Cannot draw an index from an empty range.")
        with self._lock:
            return self._random.randrange(n)
