"""Deterministic keyword/structure based value estimator."""
from __future__ import annotations

import re
from typing import Sequence
from urllib.parse import urlsplit

from goalcrawl.core.models import LinkCandidate, Metrics
from goalcrawl.core.ports import ValueEstimator
from goalcrawl.core.text import STOP_WORDS, goal_keywords, jaccard, word_set

LOW_VALUE_PATTERNS = ("/login", "/signup", "/contact", "/about", "/terms", "/privacy", "/cart", "/checkout")
HIGH_VALUE_PATTERNS = (
    "/docs", "/documentation", "/guide", "/tutorial",
    "/product", "/api", "/specification", "/details",
)
ACTION_WORDS = ("learn", "guide", "tutorial", "how", "example", "documentation")
_DIGITS = re.compile(r"\d+")


def information_density(text: str) -> float:
    words = (text or "").lower().split()
    if not words:
        return 0.0
    meaningful = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    return len(meaningful) / len(words)


def text_relevance(text: str, goal: str) -> float:
    """Fraction of goal keywords contained in `text`; 0.5 when the goal has none."""
    if not text:
        return 0.0
    keywords = goal_keywords(goal)
    if not keywords:
        return 0.5
    lowered = text.lower()
    return sum(1 for k in keywords if k in lowered) / len(keywords)


def uniqueness(text: str, seen: Sequence[str]) -> float:
    if not seen:
        return 1.0
    words = word_set(text)
    similarities = [jaccard(words, word_set(other)) for other in seen]
    return 1.0 - (sum(similarities) / len(similarities))


def url_structure_score(url: str) -> float:
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return 0.0
    depth = len([seg for seg in path.split("/") if seg])
    score = min(depth / 5, 1.0) * 0.5
    if any(p in path for p in HIGH_VALUE_PATTERNS):
        score += 0.5
    return score


def anchor_heuristic_score(anchor_text: str) -> float:
    text = anchor_text or ""
    score = 0.0
    if len(text) > 20:
        score += 0.1
    lowered = text.lower()
    if any(word in lowered for word in ACTION_WORDS):
        score += 0.2
    if _DIGITS.search(text):
        score += 0.1
    # Shouting headings and very short labels are usually navigation.
    if len(text) < 4 or (text.isupper() and any(c.isalpha() for c in text)):
        score -= 0.1
    return score


def path_adjustment(url: str, value: float) -> float:
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return value
    if any(p in path for p in LOW_VALUE_PATTERNS):
        value *= 0.5
    elif any(p in path for p in HIGH_VALUE_PATTERNS):
        value = min(value * 1.5, 1.0)
    return value


class HeuristicValueEstimator(ValueEstimator):
    async def score_content(self, text: str, goal: str, *, seen: Sequence[str] = ()) -> Metrics:
        return Metrics(
            information_density=information_density(text),
            relevance=text_relevance(text, goal),
            uniqueness=uniqueness(text, seen),
        )

    async def score_link(self, candidate: LinkCandidate, goal: str) -> float:
        score = 0.5
        score += text_relevance(candidate.anchor_text, goal) * 0.3
        score += text_relevance(candidate.surrounding_context, goal) * 0.3
        score += url_structure_score(candidate.url) * 0.2
        score += anchor_heuristic_score(candidate.anchor_text) * 0.2
        score = max(0.0, min(1.0, score))
        return max(0.0, min(1.0, path_adjustment(candidate.url, score)))
