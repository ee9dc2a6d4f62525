"""Crawl-run correlation id.

The scheduler sets it when a run starts; the fetcher forwards it as
`X-Correlation-ID` so server logs can be tied back to one crawl.
"""
from __future__ import annotations

from contextvars import ContextVar

_RUN_ID: ContextVar[str] = ContextVar("crawl_run_id", default="")


def set_run_id(value: str) -> None:
    _RUN_ID.set((value or "").strip())


def get_run_id() -> str:
    return _RUN_ID.get().strip()
