"""Prometheus metrics helpers."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

PAGES_PROCESSED_TOTAL = Counter(
    "goalcrawl_pages_processed_total",
    "Pages committed to a run",
    ["empty"],
)
FETCH_ERRORS_TOTAL = Counter(
    "goalcrawl_fetch_errors_total",
    "Fetch failures by error code",
    ["code"],
)
FETCH_LATENCY_SEC = Histogram(
    "goalcrawl_fetch_latency_seconds",
    "Fetch latency in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)
ESTIMATOR_FALLBACKS_TOTAL = Counter(
    "goalcrawl_estimator_fallbacks_total",
    "Estimator calls replaced by the neutral score",
    ["operation", "reason"],
)
DECISIONS_TOTAL = Counter(
    "goalcrawl_decisions_total",
    "Navigation decisions by action and reason",
    ["action", "reason"],
)


def record_decision(action: str, reason: str) -> None:
    # Continue reasons embed the URL score; collapse them to keep label cardinality low.
    label = reason if action == "complete" else "selected"
    DECISIONS_TOTAL.labels(action=action, reason=label).inc()
