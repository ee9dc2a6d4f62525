"""Keyword and similarity helpers shared by the evaluator and the heuristic estimator."""
from __future__ import annotations

import re

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "with", "about", "from", "by", "is", "was", "were", "be", "been",
        "have", "has", "had", "do", "does", "did", "of", "that", "this",
        "these", "those", "they", "we", "you", "i", "he", "she", "it",
        "what", "which", "when", "where", "how", "who", "why", "into", "their",
        "there", "them", "then", "than", "will", "would", "should", "could",
    }
)

_PUNCT = re.compile(r"[^\w\s]")
_SPACE = re.compile(r"\s+")


def normalize_space(text: str) -> str:
    return _SPACE.sub(" ", text or "").strip()


def goal_keywords(goal: str, *, min_len: int = 4) -> list[str]:
    """Lower-cased, deduplicated goal keywords of at least `min_len` characters."""
    words = _PUNCT.sub("", (goal or "").lower()).split()
    out: list[str] = []
    for word in words:
        if len(word) < min_len or word in STOP_WORDS or word in out:
            continue
        out.append(word)
    return out


def contains_word(text_lower: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text_lower) is not None


def word_set(text: str, *, min_len: int = 4) -> set[str]:
    return {w for w in (text or "").lower().split() if len(w) >= min_len}


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)
