"""Priority frontier of discovered-but-unvisited URLs."""
from __future__ import annotations

import heapq
import itertools
import threading

from goalcrawl.core.models import FrontierEntry


class Frontier:
    """Binary heap ordered by expected value (desc), depth (asc), discovery order (asc).

    The frontier holds no visited knowledge; callers consult the ledger before `push`.
    """

    def __init__(self, min_expected_value: float = 0.0):
        self.min_expected_value = float(min_expected_value)
        self._heap: list[tuple[tuple[float, int, int], int, FrontierEntry]] = []
        self._urls: set[str] = set()
        self._lock = threading.Lock()
        self._sequence = itertools.count()
        self._tiebreak = itertools.count()

    def next_sequence(self) -> int:
        with self._lock:
            return next(self._sequence)

    def push(self, entry: FrontierEntry) -> bool:
        """Add `entry`; returns False when it is below threshold or already queued."""
        if entry.expected_value < self.min_expected_value:
            return False
        with self._lock:
            if entry.url in self._urls:
                return False
            heapq.heappush(self._heap, (entry.sort_key(), next(self._tiebreak), entry))
            self._urls.add(entry.url)
            return True

    def pop(self) -> FrontierEntry | None:
        with self._lock:
            if not self._heap:
                return None
            _key, _tb, entry = heapq.heappop(self._heap)
            self._urls.discard(entry.url)
            return entry

    def peek(self) -> FrontierEntry | None:
        with self._lock:
            if not self._heap:
                return None
            return self._heap[0][2]

    def size(self) -> int:
        with self._lock:
            return len(self._heap)

    def is_empty(self) -> bool:
        return self.size() == 0

    def snapshot(self) -> list[FrontierEntry]:
        with self._lock:
            return [entry for _key, _tb, entry in sorted(self._heap)]

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._urls
