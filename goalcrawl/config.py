"""goalcrawl configuration.

Environment values only supply defaults for the command line entry point.
The scheduler itself is driven by an explicit `RunConfig` and never reads
the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return bool(default)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip())
    except Exception:
        return int(default)


def _as_float(value: str | None, default: float) -> float:
    try:
        return float(str(value).strip())
    except Exception:
        return float(default)


def _as_optional_int(value: str | None) -> int | None:
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


@dataclass(frozen=True)
class Settings:
    base_dir: Path

    # Run limits
    max_pages: int
    max_depth: int
    max_steps: int
    max_wall_clock_sec: float
    min_expected_value: float
    concurrency: int
    # Step ceiling of whatever engine hosts the scheduler (optional).
    host_step_ceiling: int | None

    # Fetching
    fetch_timeout_sec: float
    fetch_max_retries: int
    fetch_backoff_base_sec: float
    fetch_backoff_max_sec: float
    user_agent: str
    max_doc_bytes: int
    respect_robots: bool
    block_private_networks: bool

    # Scoring and cancellation
    estimator_timeout_sec: float
    cancel_grace_sec: float
    auth_timeout_sec: float
    links_per_page: int

    log_level: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    base_dir = Path(__file__).resolve().parents[1]
    load_dotenv(dotenv_path=base_dir / ".env", override=False)

    return Settings(
        base_dir=base_dir,
        max_pages=max(1, _as_int(os.getenv("GOALCRAWL_MAX_PAGES"), 20)),
        max_depth=max(0, _as_int(os.getenv("GOALCRAWL_MAX_DEPTH"), 5)),
        max_steps=max(1, _as_int(os.getenv("GOALCRAWL_MAX_STEPS"), 50)),
        max_wall_clock_sec=max(1.0, _as_float(os.getenv("GOALCRAWL_MAX_WALL_CLOCK_SEC"), 300.0)),
        min_expected_value=min(1.0, max(0.0, _as_float(os.getenv("GOALCRAWL_MIN_EXPECTED_VALUE"), 0.0))),
        concurrency=max(1, _as_int(os.getenv("GOALCRAWL_CONCURRENCY"), 1)),
        host_step_ceiling=_as_optional_int(os.getenv("GOALCRAWL_HOST_STEP_CEILING")),
        fetch_timeout_sec=max(0.1, _as_float(os.getenv("GOALCRAWL_FETCH_TIMEOUT_SEC"), 20.0)),
        fetch_max_retries=max(0, _as_int(os.getenv("GOALCRAWL_FETCH_MAX_RETRIES"), 2)),
        fetch_backoff_base_sec=max(0.0, _as_float(os.getenv("GOALCRAWL_FETCH_BACKOFF_BASE_SEC"), 0.25)),
        fetch_backoff_max_sec=max(0.0, _as_float(os.getenv("GOALCRAWL_FETCH_BACKOFF_MAX_SEC"), 8.0)),
        user_agent=os.getenv("GOALCRAWL_USER_AGENT", "GoalCrawlBot/1.0"),
        max_doc_bytes=max(1024, _as_int(os.getenv("GOALCRAWL_MAX_DOC_BYTES"), 2_000_000)),
        respect_robots=_as_bool(os.getenv("GOALCRAWL_RESPECT_ROBOTS"), True),
        block_private_networks=_as_bool(os.getenv("GOALCRAWL_BLOCK_PRIVATE_NETWORKS"), True),
        estimator_timeout_sec=max(0.01, _as_float(os.getenv("GOALCRAWL_ESTIMATOR_TIMEOUT_SEC"), 10.0)),
        cancel_grace_sec=max(0.0, _as_float(os.getenv("GOALCRAWL_CANCEL_GRACE_SEC"), 5.0)),
        auth_timeout_sec=max(0.1, _as_float(os.getenv("GOALCRAWL_AUTH_TIMEOUT_SEC"), 60.0)),
        links_per_page=max(1, _as_int(os.getenv("GOALCRAWL_LINKS_PER_PAGE"), 80)),
        log_level=(os.getenv("GOALCRAWL_LOG_LEVEL", "INFO") or "INFO").strip().upper(),
    )
