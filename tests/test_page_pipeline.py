import asyncio
import unittest

from goalcrawl.core.models import Metrics
from goalcrawl.core.ports import (
    ContentExtractor,
    Extraction,
    FetchResult,
    Fetcher,
    LinkExtractor,
    RawLink,
    ValueEstimator,
)
from goalcrawl.core.run_config import RunConfig
from goalcrawl.engine.pipeline import PagePipeline
from goalcrawl.errors import AuthenticationRequired, FetchFatal, FetchTransient


class FlakyFetcher(Fetcher):
    def __init__(self, failures=0, exc=None, html="<p>body</p>"):
        self.failures = failures
        self.exc = exc
        self.html = html
        self.calls = 0

    async def fetch(self, url, opts):
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        if self.calls <= self.failures:
            raise FetchTransient("503", url=url, status_code=503, code="http_503")
        return FetchResult(html=self.html, status=200, final_url=url)


class StaticExtractor(ContentExtractor):
    def __init__(self, text="useful pricing text"):
        self.text = text

    def extract(self, html, url):
        return Extraction(title="Title", text=self.text)


class StaticLinks(LinkExtractor):
    def __init__(self, count=3):
        self.count = count

    def extract_links(self, html, base_url):
        return [RawLink(url=f"https://example.com/p{i}", anchor_text=f"link {i}") for i in range(self.count)]


class ScriptedEstimator(ValueEstimator):
    def __init__(self, delay=0.0, fail=False):
        self.delay = delay
        self.fail = fail
        self.content_calls = 0
        self.seen = None

    async def score_content(self, text, goal, *, seen=()):
        self.content_calls += 1
        self.seen = tuple(seen)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("model unavailable")
        return Metrics(0.9, 0.8, 0.7)

    async def score_link(self, candidate, goal):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("model unavailable")
        return int(candidate.url[-1]) / 10


def _config(**fetch):
    policy = {"max_retries": 2, "backoff_base": 0.5, "backoff_max": 1.0, "estimator_timeout": 0.05, "timeout": 1.0}
    policy.update(fetch)
    return RunConfig.build(
        base_url="https://example.com",
        goal="pricing",
        limits={"max_pages": 5, "max_depth": 2, "max_steps": 10, "max_wall_clock": 30},
        fetch=policy,
        links={"links_per_page": 2},
    )


class PagePipelineTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.delays = []

    async def _sleep(self, delay):
        self.delays.append(delay)

    def _pipeline(self, fetcher, estimator=None, extractor=None, config=None):
        return PagePipeline(
            fetcher,
            extractor or StaticExtractor(),
            StaticLinks(),
            estimator or ScriptedEstimator(),
            config or _config(),
            sleep=self._sleep,
        )

    async def test_processes_page_and_sorts_capped_links(self):
        estimator = ScriptedEstimator()
        pipeline = self._pipeline(FlakyFetcher(), estimator)
        record, links = await pipeline.process("https://example.com/", depth=1, goal="pricing", seen=("old",))

        self.assertEqual(record.metrics, Metrics(0.9, 0.8, 0.7))
        self.assertFalse(record.estimator_fallback)
        self.assertEqual(record.depth, 1)
        self.assertEqual(len(record.content_hash), 64)
        self.assertEqual(estimator.seen, ("old",))
        self.assertEqual([link.url for link in links], ["https://example.com/p1", "https://example.com/p0"])
        self.assertEqual(links[0].predicted_value, 0.1)

    async def test_transient_failures_are_retried_with_backoff(self):
        fetcher = FlakyFetcher(failures=2)
        record, _ = await self._pipeline(fetcher).process("https://example.com/", depth=0, goal="pricing")
        self.assertEqual(fetcher.calls, 3)
        self.assertEqual(self.delays, [0.5, 1.0])
        self.assertEqual(record.content, "useful pricing text")

    async def test_retries_exhausted_becomes_fatal(self):
        fetcher = FlakyFetcher(failures=10)
        with self.assertRaises(FetchFatal) as ctx:
            await self._pipeline(fetcher).process("https://example.com/", depth=0, goal="pricing")
        self.assertEqual(fetcher.calls, 3)
        self.assertEqual(ctx.exception.code, "retries_exhausted")
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_fatal_and_auth_errors_are_not_retried(self):
        for exc in (FetchFatal("gone", code="http_410"), AuthenticationRequired("https://example.com/", "basic")):
            with self.subTest(exc=type(exc).__name__):
                fetcher = FlakyFetcher(exc=exc)
                with self.assertRaises(type(exc)):
                    await self._pipeline(fetcher).process("https://example.com/", depth=0, goal="pricing")
                self.assertEqual(fetcher.calls, 1)

    async def test_unexpected_fetcher_errors_are_fatal(self):
        fetcher = FlakyFetcher(exc=ValueError("bug"))
        with self.assertRaises(FetchFatal) as ctx:
            await self._pipeline(fetcher).process("https://example.com/", depth=0, goal="pricing")
        self.assertEqual(ctx.exception.code, "unclassified")

    async def test_estimator_timeout_falls_back_to_neutral(self):
        pipeline = self._pipeline(FlakyFetcher(), ScriptedEstimator(delay=1.0))
        record, links = await pipeline.process("https://example.com/", depth=0, goal="pricing")
        self.assertEqual(record.metrics, Metrics.neutral())
        self.assertTrue(record.estimator_fallback)
        self.assertEqual({link.predicted_value for link in links}, {0.5})

    async def test_estimator_errors_fall_back_to_neutral(self):
        pipeline = self._pipeline(FlakyFetcher(), ScriptedEstimator(fail=True))
        record, _ = await pipeline.process("https://example.com/", depth=0, goal="pricing")
        self.assertEqual(record.metrics, Metrics.neutral())
        self.assertTrue(record.estimator_fallback)

    async def test_empty_extraction_gets_zero_metrics_without_scoring(self):
        estimator = ScriptedEstimator()
        pipeline = self._pipeline(FlakyFetcher(), estimator, extractor=StaticExtractor(text=""))
        record, _ = await pipeline.process("https://example.com/", depth=0, goal="pricing")
        self.assertTrue(record.is_empty)
        self.assertEqual(record.metrics, Metrics.zero())
        self.assertEqual(estimator.content_calls, 0)
        self.assertEqual(record.content_hash, "")
