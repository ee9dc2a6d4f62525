"""Fetch/extract worker: turns one URL into a PageRecord plus scored link candidates.

The pipeline never touches RunState; the scheduler commits what it returns.
"""
from __future__ import annotations

import asyncio
import hashlib
from datetime import datetime, timezone
from typing import Sequence

from loguru import logger

from goalcrawl.core.models import LinkCandidate, Metrics, PageRecord
from goalcrawl.core.ports import (
    ContentExtractor,
    Extraction,
    FetchOptions,
    FetchResult,
    Fetcher,
    LinkExtractor,
    ValueEstimator,
)
from goalcrawl.core.run_config import RunConfig
from goalcrawl.errors import AuthenticationRequired, EstimatorTimeout, FetchFatal, FetchTransient
from goalcrawl.observability.metrics import ESTIMATOR_FALLBACKS_TOTAL, FETCH_ERRORS_TOTAL

NEUTRAL_SCORE = 0.5


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PagePipeline:
    def __init__(
        self,
        fetcher: Fetcher,
        content_extractor: ContentExtractor,
        link_extractor: LinkExtractor,
        estimator: ValueEstimator,
        config: RunConfig,
        *,
        sleep=asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.content_extractor = content_extractor
        self.link_extractor = link_extractor
        self.estimator = estimator
        self.config = config
        self._sleep = sleep

    def _fetch_options(self) -> FetchOptions:
        policy = self.config.fetch
        return FetchOptions(timeout=policy.timeout, use_js=policy.use_js, headers=dict(policy.headers))

    async def fetch_with_retry(self, url: str) -> FetchResult:
        """Fetch with bounded exponential backoff on transient failures."""
        policy = self.config.fetch
        opts = self._fetch_options()
        attempts = policy.max_retries + 1
        last_error: FetchTransient | None = None

        for attempt in range(attempts):
            try:
                # The per-request timeout is enforced here too, for fetchers that ignore opts.timeout.
                return await asyncio.wait_for(self.fetcher.fetch(url, opts), timeout=policy.timeout)
            except asyncio.TimeoutError:
                last_error = FetchTransient(f"Timed out fetching {url}", url=url, code="timeout")
            except FetchTransient as exc:
                last_error = exc
            except (FetchFatal, AuthenticationRequired) as exc:
                FETCH_ERRORS_TOTAL.labels(code=exc.code).inc()
                raise
            except Exception as exc:
                FETCH_ERRORS_TOTAL.labels(code="unclassified").inc()
                raise FetchFatal(f"Fetcher failed for {url}: {exc}", url=url, code="unclassified") from exc

            FETCH_ERRORS_TOTAL.labels(code=last_error.code).inc()
            if attempt < attempts - 1:
                delay = min(policy.backoff_max, policy.backoff_base * (2 ** attempt))
                logger.debug("transient fetch failure for {} (attempt {}/{}); retrying in {:.2f}s", url, attempt + 1, attempts, delay)
                await self._sleep(delay)

        assert last_error is not None
        raise FetchFatal(
            f"Giving up on {url} after {attempts} attempts: {last_error}",
            url=url,
            status_code=last_error.status_code,
            code="retries_exhausted",
        ) from last_error

    async def _bounded(self, coro, operation: str, url: str):
        try:
            return await asyncio.wait_for(coro, timeout=self.config.fetch.estimator_timeout)
        except asyncio.TimeoutError:
            err = EstimatorTimeout(f"{operation} timed out for {url}", url=url)
            ESTIMATOR_FALLBACKS_TOTAL.labels(operation=operation, reason="timeout").inc()
            logger.debug("{}; using neutral score", err)
        except Exception as exc:
            ESTIMATOR_FALLBACKS_TOTAL.labels(operation=operation, reason="error").inc()
            logger.debug("{} failed for {}: {}; using neutral score", operation, url, exc)
        return None

    async def score_content(self, text: str, url: str, goal: str, seen: Sequence[str]) -> tuple[Metrics, bool]:
        result = await self._bounded(self.estimator.score_content(text, goal, seen=seen), "score_content", url)
        if not isinstance(result, Metrics):
            return Metrics.neutral(), True
        return result, False

    async def score_link(self, candidate: LinkCandidate, goal: str) -> float:
        value = await self._bounded(self.estimator.score_link(candidate, goal), "score_link", candidate.url)
        if value is None:
            return NEUTRAL_SCORE
        try:
            return max(0.0, min(1.0, float(value)))
        except (TypeError, ValueError):
            return NEUTRAL_SCORE

    def _extract(self, html: str, url: str) -> Extraction:
        try:
            return self.content_extractor.extract(html, url)
        except Exception as exc:
            logger.warning("Content extraction failed for {}: {}", url, exc)
            return Extraction(title="Untitled Page", text="")

    async def _links(self, html: str, url: str, goal: str) -> list[LinkCandidate]:
        try:
            raw_links = self.link_extractor.extract_links(html, url)
        except Exception as exc:
            logger.warning("Link extraction failed for {}: {}", url, exc)
            return []
        raw_links = raw_links[: self.config.links.links_per_page]
        candidates = [
            LinkCandidate(url=link.url, anchor_text=link.anchor_text, surrounding_context=link.context)
            for link in raw_links
        ]
        scores = await asyncio.gather(*(self.score_link(c, goal) for c in candidates))
        scored = [
            LinkCandidate(
                url=c.url,
                anchor_text=c.anchor_text,
                surrounding_context=c.surrounding_context,
                predicted_value=score,
            )
            for c, score in zip(candidates, scores)
        ]
        # Stable sort keeps document order among equal scores.
        scored.sort(key=lambda c: -c.predicted_value)
        return scored

    async def process(
        self,
        url: str,
        depth: int,
        goal: str,
        seen: Sequence[str] = (),
    ) -> tuple[PageRecord, list[LinkCandidate]]:
        """Fetch, extract and score one URL.

        Raises FetchFatal (after retries) or AuthenticationRequired; scoring
        failures never abort the page.
        """
        fetched = await self.fetch_with_retry(url)
        html = fetched.html or ""
        extraction = self._extract(html, url)
        text = extraction.text or ""

        if text:
            metrics, fallback = await self.score_content(text, url, goal, seen)
        else:
            # Empty extraction still counts as a processed page.
            metrics, fallback = Metrics.zero(), False

        links = await self._links(html, fetched.final_url or url, goal) if html else []
        record = PageRecord(
            url=url,
            title=extraction.title,
            content=text,
            content_type=extraction.content_type,
            extraction_timestamp=_utcnow_iso(),
            metrics=metrics,
            outbound_links=tuple(links),
            entities=tuple(extraction.entities),
            depth=depth,
            content_hash=hashlib.sha256(text.encode("utf-8", errors="ignore")).hexdigest() if text else "",
            estimator_fallback=fallback,
        )
        return record, links
