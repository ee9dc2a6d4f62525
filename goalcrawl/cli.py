"""Command line entry point: run one crawl and print the result as JSON."""
from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Any, Sequence

from loguru import logger

from goalcrawl.config import Settings, get_settings
from goalcrawl.core.models import CrawlOutput
from goalcrawl.core.run_config import RunConfig
from goalcrawl.engine.scheduler import CrawlScheduler
from goalcrawl.errors import ConfigurationError
from goalcrawl.infra.estimators.heuristic import HeuristicValueEstimator
from goalcrawl.infra.events.sink import LoggingEventSink
from goalcrawl.infra.extract.html_extract import HtmlContentExtractor, HtmlLinkExtractor
from goalcrawl.infra.fetch.httpx_fetcher import HttpxFetcher


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl a site toward a stated information goal.")
    parser.add_argument("--url", required=True, help="Start URL")
    parser.add_argument("--goal", required=True, help="Natural-language information goal")
    parser.add_argument("--max-pages", type=int, default=None)
    parser.add_argument("--max-depth", type=int, default=None)
    parser.add_argument("--max-steps", type=int, default=None)
    parser.add_argument("--max-time", type=float, default=None, help="Wall clock budget in seconds")
    parser.add_argument("--min-expected-value", type=float, default=None)
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--include", action="append", default=[], help="Regex a URL must match (repeatable)")
    parser.add_argument("--exclude", action="append", default=[], help="Regex that drops a URL (repeatable)")
    parser.add_argument("--allow-external", action="store_true", help="Follow links to other hosts")
    parser.add_argument("--skip-similar-paths", action="store_true")
    parser.add_argument("--no-robots", action="store_true", help="Ignore robots.txt")
    parser.add_argument("--summary-only", action="store_true", help="Print only the run summary")
    parser.add_argument("--log-level", default=None)
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    limits = {
        key: value
        for key, value in (
            ("max_pages", args.max_pages),
            ("max_depth", args.max_depth),
            ("max_steps", args.max_steps),
            ("max_wall_clock", args.max_time),
            ("min_expected_value_to_enqueue", args.min_expected_value),
        )
        if value is not None
    }
    links: dict[str, Any] = {}
    if args.include:
        links["include_patterns"] = list(args.include)
    if args.exclude:
        links["exclude_patterns"] = list(args.exclude)
    if args.allow_external:
        links["same_host_only"] = False
    if args.skip_similar_paths:
        links["skip_similar_paths"] = True
    overrides: dict[str, Any] = {"limits": limits, "links": links}
    if args.concurrency is not None:
        overrides["concurrency"] = args.concurrency
    return overrides


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def build_config(args: argparse.Namespace, settings: Settings) -> RunConfig:
    return RunConfig.from_settings(args.url, args.goal, settings, **_overrides(args))


async def _crawl(config: RunConfig, settings: Settings, *, respect_robots: bool) -> CrawlOutput:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        pass

    async with HttpxFetcher(
        user_agent=settings.user_agent,
        max_doc_bytes=settings.max_doc_bytes,
        respect_robots=respect_robots,
        block_private_networks=settings.block_private_networks,
    ) as fetcher:
        scheduler = CrawlScheduler(
            config,
            fetcher,
            HtmlContentExtractor(),
            HtmlLinkExtractor(),
            HeuristicValueEstimator(),
            event_sink=LoggingEventSink(level="DEBUG"),
        )
        return await scheduler.run(cancel_event)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()

    _configure_logging(args.log_level or settings.log_level)

    try:
        config = build_config(args, settings)
    except ConfigurationError as exc:
        logger.error("{}", exc)
        return 2

    respect_robots = settings.respect_robots and not args.no_robots
    output = asyncio.run(_crawl(config, settings, respect_robots=respect_robots))
    print(json.dumps(output.to_dict(include_pages=not args.summary_only), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
