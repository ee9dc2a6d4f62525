"""Visited ledger: the at-most-once gate for crawl workers."""
from __future__ import annotations

import enum
import threading
from typing import Any

from goalcrawl.errors import LedgerStateError


class Partition(str, enum.Enum):
    UNKNOWN = "unknown"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


class VisitedLedger:
    """Canonical URLs partitioned into in-flight, completed and failed.

    A URL moves unknown -> in_flight -> completed|failed exactly once.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state: dict[str, Partition] = {}
        self._outcomes: dict[str, Any] = {}
        self._reasons: dict[str, str] = {}

    def try_mark_in_flight(self, url: str) -> bool:
        with self._lock:
            if url in self._state:
                return False
            self._state[url] = Partition.IN_FLIGHT
            return True

    def _finish(self, url: str, partition: Partition) -> None:
        current = self._state.get(url, Partition.UNKNOWN)
        if current is not Partition.IN_FLIGHT:
            raise LedgerStateError(f"Cannot mark {url} {partition.value}: it is {current.value}.", url=url)
        self._state[url] = partition

    def mark_completed(self, url: str, outcome: Any = None) -> None:
        with self._lock:
            self._finish(url, Partition.COMPLETED)
            if outcome is not None:
                self._outcomes[url] = outcome

    def mark_failed(self, url: str, reason: str) -> None:
        with self._lock:
            self._finish(url, Partition.FAILED)
            self._reasons[url] = str(reason or "")

    def contains(self, url: str) -> Partition:
        with self._lock:
            return self._state.get(url, Partition.UNKNOWN)

    def outcome(self, url: str) -> Any:
        with self._lock:
            return self._outcomes.get(url)

    def failure_reason(self, url: str) -> str | None:
        with self._lock:
            return self._reasons.get(url)

    def _urls_in(self, partition: Partition) -> list[str]:
        with self._lock:
            return [u for u, p in self._state.items() if p is partition]

    def in_flight(self) -> list[str]:
        return self._urls_in(Partition.IN_FLIGHT)

    def completed(self) -> list[str]:
        return self._urls_in(Partition.COMPLETED)

    def failed(self) -> list[str]:
        return self._urls_in(Partition.FAILED)

    def counts(self) -> dict[str, int]:
        with self._lock:
            out = {p.value: 0 for p in Partition if p is not Partition.UNKNOWN}
            for partition in self._state.values():
                out[partition.value] += 1
            return out

    def __len__(self) -> int:
        with self._lock:
            return len(self._state)
