"""Crawl data model."""
from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any


def _clamp(value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if v != v:  # NaN
        return 0.0
    return max(0.0, min(1.0, v))


class Action(str, enum.Enum):
    SELECTING = "selecting"
    CONTINUE = "continue"
    COMPLETE = "complete"


class CompletionReason:
    FRONTIER_EXHAUSTED = "frontier exhausted"
    PAGE_BUDGET = "page budget reached"
    STEP_BUDGET = "step budget reached"
    TIME_BUDGET = "time budget reached"
    GOAL_SATISFIED = "goal satisfied"
    DIMINISHING_RETURNS = "diminishing returns"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FrontierEntry:
    url: str
    depth: int
    expected_value: float
    discovered_at: int

    def sort_key(self) -> tuple[float, int, int]:
        return (-self.expected_value, self.depth, self.discovered_at)


@dataclass(frozen=True)
class Metrics:
    information_density: float = 0.0
    relevance: float = 0.0
    uniqueness: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "information_density", _clamp(self.information_density))
        object.__setattr__(self, "relevance", _clamp(self.relevance))
        object.__setattr__(self, "uniqueness", _clamp(self.uniqueness))

    @classmethod
    def neutral(cls) -> "Metrics":
        return cls(0.5, 0.5, 0.5)

    @classmethod
    def zero(cls) -> "Metrics":
        return cls(0.0, 0.0, 0.0)


@dataclass(frozen=True)
class LinkCandidate:
    url: str
    anchor_text: str = ""
    surrounding_context: str = ""
    predicted_value: float = 0.5


@dataclass(frozen=True)
class EntityMention:
    name: str
    type: str = "general"
    mentions: int = 1


@dataclass(frozen=True)
class PageRecord:
    url: str
    title: str
    content: str
    content_type: str
    extraction_timestamp: str
    metrics: Metrics
    outbound_links: tuple[LinkCandidate, ...] = ()
    entities: tuple[EntityMention, ...] = ()
    depth: int = 0
    content_hash: str = ""
    estimator_fallback: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.content

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProgressMetrics:
    information_density: float = 0.0
    relevance: float = 0.0
    uniqueness: float = 0.0
    completeness: float = 0.0
    diminishing_returns: bool = False
    remaining_value_estimate: float = 1.0
    keyword_coverage: float = 0.0


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: str
    completion_estimate: float
    next_url: str | None = None
    next_entry: FrontierEntry | None = None

    @property
    def is_complete(self) -> bool:
        return self.action is Action.COMPLETE


@dataclass
class RunSummary:
    pages_scraped: int = 0
    total_content_size: int = 0
    execution_time: float = 0.0
    goal_completion: float = 0.0
    coverage_score: float = 0.0
    steps: int = 0
    completion_reason: str = ""
    pages_failed: int = 0
    auth_required: int = 0


@dataclass
class CrawlOutput:
    pages: list[PageRecord] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)

    def to_dict(self, *, include_pages: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {"summary": asdict(self.summary)}
        if include_pages:
            data["pages"] = [page.to_dict() for page in self.pages]
        return data
