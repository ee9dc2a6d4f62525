"""Run-level progress signals aggregated from per-page metrics.

Pure functions of their inputs: no I/O, no clock, no randomness.
"""
from __future__ import annotations

from typing import Sequence

from goalcrawl.core.models import PageRecord, ProgressMetrics
from goalcrawl.core.run_config import EvaluationPolicy
from goalcrawl.core.text import contains_word, goal_keywords

KEYWORD_WEIGHT = 0.7
VOLUME_WEIGHT = 0.3


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def keyword_coverage(pages: Sequence[PageRecord], goal: str) -> float:
    """Fraction of goal keywords seen at least once across all page content."""
    keywords = goal_keywords(goal)
    if not keywords:
        return 0.5
    remaining = set(keywords)
    for page in pages:
        if not remaining:
            break
        text = f"{page.title} {page.content}".lower()
        for keyword in list(remaining):
            if contains_word(text, keyword):
                remaining.discard(keyword)
    return (len(keywords) - len(remaining)) / len(keywords)


class ProgressEvaluator:
    def __init__(self, policy: EvaluationPolicy | None = None):
        self.policy = policy or EvaluationPolicy()

    def evaluate(self, pages: Sequence[PageRecord], goal: str) -> ProgressMetrics:
        if not pages:
            return ProgressMetrics(remaining_value_estimate=1.0)

        # Simple (unweighted) means over every completed page.
        density = _mean([p.metrics.information_density for p in pages])
        relevance = _mean([p.metrics.relevance for p in pages])
        uniqueness = _mean([p.metrics.uniqueness for p in pages])

        coverage = keyword_coverage(pages, goal)
        volume = min(1.0, len(pages) / self.policy.volume_cap_pages)
        completeness = max(0.0, min(1.0, KEYWORD_WEIGHT * coverage + VOLUME_WEIGHT * volume))

        window = self.policy.diminishing_window
        recent = [p.metrics.uniqueness for p in pages[-window:]]
        recent_uniqueness = _mean(recent)
        diminishing = len(pages) >= window and recent_uniqueness < self.policy.diminishing_threshold

        return ProgressMetrics(
            information_density=density,
            relevance=relevance,
            uniqueness=uniqueness,
            completeness=completeness,
            diminishing_returns=diminishing,
            remaining_value_estimate=max(0.0, min(1.0, (1.0 - completeness) * recent_uniqueness)),
            keyword_coverage=coverage,
        )
