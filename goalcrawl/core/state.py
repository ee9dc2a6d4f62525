"""Single-owner mutable state of one crawl run."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from goalcrawl.core.canonical import try_canonicalize
from goalcrawl.core.filters import LinkFilter
from goalcrawl.core.frontier import Frontier
from goalcrawl.core.ledger import Partition, VisitedLedger
from goalcrawl.core.models import FrontierEntry, LinkCandidate, PageRecord
from goalcrawl.core.run_config import Limits


@dataclass
class RunState:
    """Owned by the scheduler loop.

    Other components read it; writes go through the frontier/ledger contracts
    and the methods below.
    """

    goal: str
    limits: Limits
    start_time: float
    frontier: Frontier
    ledger: VisitedLedger
    link_filter: LinkFilter
    tracking_params: frozenset[str] = frozenset()
    pages: dict[str, PageRecord] = field(default_factory=dict)
    step_count: int = 0
    auth_events: int = 0

    @classmethod
    def create(cls, goal: str, limits: Limits, link_filter: LinkFilter, *, start_time: float, tracking_params=frozenset()):
        return cls(
            goal=goal,
            limits=limits,
            start_time=start_time,
            frontier=Frontier(min_expected_value=limits.min_expected_value_to_enqueue),
            ledger=VisitedLedger(),
            link_filter=link_filter,
            tracking_params=frozenset(tracking_params),
        )

    @property
    def pages_processed(self) -> int:
        return len(self.pages)

    def elapsed(self, now: float) -> float:
        return max(0.0, now - self.start_time)

    def seed(self, url: str) -> bool:
        entry = FrontierEntry(url=url, depth=0, expected_value=1.0, discovered_at=self.frontier.next_sequence())
        pushed = self.frontier.push(entry)
        if pushed:
            self.link_filter.remember(url)
        return pushed

    def advance_step(self) -> int:
        self.step_count += 1
        return self.step_count

    def commit_page(self, record: PageRecord) -> None:
        self.ledger.mark_completed(record.url, outcome=record.content_hash or True)
        self.pages[record.url] = record

    def record_failure(self, url: str, reason: str) -> None:
        self.ledger.mark_failed(url, reason)

    def enqueue_link(self, link: LinkCandidate, *, base_url: str, depth: int) -> tuple[bool, str]:
        """Canonicalize, filter and queue one outbound link; returns (queued, reason)."""
        url = try_canonicalize(link.url, base_url, tracking_params=self.tracking_params)
        if url is None:
            return False, "invalid_url"
        if depth > self.limits.max_depth:
            return False, "max_depth"
        if self.ledger.contains(url) is not Partition.UNKNOWN:
            return False, "already_seen"
        if url in self.frontier:
            return False, "already_queued"
        allowed, reason = self.link_filter.allows(url)
        if not allowed:
            return False, reason
        entry = FrontierEntry(
            url=url,
            depth=depth,
            expected_value=max(0.0, min(1.0, float(link.predicted_value))),
            discovered_at=self.frontier.next_sequence(),
        )
        if not self.frontier.push(entry):
            return False, "below_threshold"
        self.link_filter.remember(url)
        return True, ""

    def page_list(self) -> list[PageRecord]:
        return list(self.pages.values())

    def content_snapshot(self) -> tuple[str, ...]:
        return tuple(page.content for page in self.pages.values() if page.content)

    def snapshot(self, now: float | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "goal": self.goal,
            "pages": self.pages_processed,
            "steps": self.step_count,
            "frontier": self.frontier.size(),
            "ledger": self.ledger.counts(),
        }
        if now is not None:
            data["elapsed"] = round(self.elapsed(now), 3)
        return data
