"""Scheduler loop: drives decide -> fetch -> commit until a completion rule fires."""
from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from loguru import logger

from goalcrawl.core.canonical import url_host
from goalcrawl.core.decision import NavigationDecisionEngine
from goalcrawl.core.filters import LinkFilter
from goalcrawl.core.models import (
    CompletionReason,
    CrawlOutput,
    FrontierEntry,
    LinkCandidate,
    PageRecord,
    ProgressMetrics,
    RunSummary,
)
from goalcrawl.core.ports import (
    AuthChallenge,
    AuthProvider,
    ContentExtractor,
    CrawlEvent,
    EventSink,
    Fetcher,
    LinkExtractor,
    ValueEstimator,
)
from goalcrawl.core.progress import ProgressEvaluator
from goalcrawl.core.run_config import RunConfig
from goalcrawl.core.state import RunState
from goalcrawl.engine.pipeline import PagePipeline
from goalcrawl.errors import AuthenticationRequired, ConfigurationError, FetchFatal
from goalcrawl.infra.auth import DenyAuthProvider
from goalcrawl.infra.events.sink import (
    EVENT_AUTH_REQUIRED,
    EVENT_COMPLETED,
    EVENT_ERROR,
    EVENT_PAGE_PROCESSED,
    EVENT_STARTED,
    NullEventSink,
)
from goalcrawl.observability.context import set_run_id
from goalcrawl.observability.metrics import PAGES_PROCESSED_TOTAL

FAILED_CANCELLED = "cancelled"
FAILED_TIME_BUDGET = "time budget"
COMPLETION_ERROR = "error"


@dataclass
class _WorkResult:
    entry: FrontierEntry
    record: PageRecord | None = None
    links: list[LinkCandidate] = field(default_factory=list)
    error: str = ""
    error_code: str = ""
    auth_challenges: int = 0


class CrawlScheduler:
    """Runs one goal-directed crawl.

    RunState is only mutated here, between batches; workers return results
    and never write shared state.
    """

    def __init__(
        self,
        config: RunConfig | dict[str, Any],
        fetcher: Fetcher,
        content_extractor: ContentExtractor,
        link_extractor: LinkExtractor,
        estimator: ValueEstimator,
        *,
        auth_provider: AuthProvider | None = None,
        event_sink: EventSink | None = None,
        clock: Callable[[], float] = time.monotonic,
        run_id: str | None = None,
    ):
        if isinstance(config, dict):
            config = RunConfig.build(**config)
        if not isinstance(config, RunConfig):
            raise ConfigurationError(f"Unsupported run configuration: {type(config).__name__}")
        self.config = config
        self.fetcher = fetcher
        self.auth_provider = auth_provider or DenyAuthProvider()
        self.event_sink = event_sink or NullEventSink()
        self.clock = clock
        self.run_id = run_id or uuid.uuid4().hex
        self.pipeline = PagePipeline(fetcher, content_extractor, link_extractor, estimator, config)
        self.evaluator = ProgressEvaluator(config.evaluation)
        self.engine = NavigationDecisionEngine(config.evaluation)
        self.state: RunState | None = None
        self._seen: tuple[str, ...] = ()
        self._log = logger.bind(run_id=self.run_id)

    def _emit(self, event_type: str, url: str = "", **payload: Any) -> None:
        event = CrawlEvent(type=event_type, run_id=self.run_id, url=url, payload=payload)
        try:
            self.event_sink.emit(event)
        except Exception as exc:
            self._log.warning("Event sink failed on {}: {}", event_type, exc)

    def _new_state(self) -> RunState:
        link_filter = LinkFilter(self.config.links, url_host(self.config.base_url))
        state = RunState.create(
            self.config.goal,
            self.config.limits,
            link_filter,
            start_time=self.clock(),
            tracking_params=self.config.links.tracking_params,
        )
        state.seed(self.config.base_url)
        return state

    def _auth_budget(self) -> float:
        """Seconds one escalation may wait on the provider; never past the wall clock."""
        timeout = self.config.fetch.auth_timeout
        if self.state is not None:
            timeout = min(timeout, self.state.limits.max_wall_clock - self.state.elapsed(self.clock()))
        return max(0.0, timeout)

    async def _escalate(self, entry: FrontierEntry, exc: AuthenticationRequired) -> tuple[PageRecord | None, list[LinkCandidate], str]:
        challenge = AuthChallenge(
            url=exc.url or entry.url,
            challenge_type=exc.challenge_type,
            login_url=exc.login_url,
            form_fields=tuple(exc.form_fields),
        )
        self._emit(
            EVENT_AUTH_REQUIRED,
            entry.url,
            challenge_type=challenge.challenge_type,
            login_url=challenge.login_url,
            session_token=challenge.session_token,
            instructions=challenge.instructions,
        )
        try:
            result = await asyncio.wait_for(self.auth_provider.authenticate(challenge), timeout=self._auth_budget())
        except asyncio.TimeoutError:
            self._log.warning("Auth provider timed out for {}", entry.url)
            return None, [], "authentication failed: timed out"
        except Exception as auth_exc:
            self._log.warning("Auth provider failed for {}: {}", entry.url, auth_exc)
            return None, [], f"authentication failed: {auth_exc}"
        if not result.success:
            return None, [], f"authentication failed: {result.message or challenge.challenge_type}"

        self.fetcher.apply_session(result.artifacts or {})
        try:
            record, links = await self.pipeline.process(
                entry.url, depth=entry.depth, goal=self.config.goal, seen=self._seen
            )
        except AuthenticationRequired:
            return None, [], "authentication rejected"
        return record, links, ""

    async def _work(self, entry: FrontierEntry) -> _WorkResult:
        result = _WorkResult(entry=entry)
        try:
            result.record, result.links = await self.pipeline.process(
                entry.url, depth=entry.depth, goal=self.config.goal, seen=self._seen
            )
        except AuthenticationRequired as exc:
            result.auth_challenges = 1
            try:
                record, links, error = await self._escalate(entry, exc)
            except FetchFatal as retry_exc:
                result.error, result.error_code = str(retry_exc), retry_exc.code
            except Exception as retry_exc:
                self._log.exception("Auth escalation failed for {}", entry.url)
                result.error, result.error_code = f"unexpected error: {retry_exc}", "unexpected"
            else:
                result.record, result.links, result.error = record, links, error
                result.error_code = "auth_required" if error else ""
        except FetchFatal as exc:
            result.error, result.error_code = str(exc), exc.code
        except Exception as exc:
            # Collaborator bugs must not abort the run.
            self._log.exception("Unexpected worker failure for {}", entry.url)
            result.error, result.error_code = f"unexpected error: {exc}", "unexpected"
        return result

    def _fill_batch(self, state: RunState, first: FrontierEntry) -> list[FrontierEntry]:
        room = min(self.config.concurrency, state.limits.max_pages - state.pages_processed)
        candidates = [first]
        while len(candidates) < room:
            entry = state.frontier.pop()
            if entry is None:
                break
            candidates.append(entry)
        batch = []
        for entry in candidates:
            if state.ledger.try_mark_in_flight(entry.url):
                batch.append(entry)
            else:
                self._log.debug("skipping {}: already claimed", entry.url)
        return batch

    async def _await_batch(
        self, tasks: list[asyncio.Task], cancel_event: asyncio.Event, state: RunState
    ) -> str:
        """Wait for the batch; returns "" or the reason unfinished tasks were dropped."""
        pending = set(tasks)
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        reason = ""
        try:
            while pending:
                remaining = state.limits.max_wall_clock - state.elapsed(self.clock())
                if remaining <= 0:
                    reason = FAILED_TIME_BUDGET
                    break
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if cancel_waiter in done:
                    reason = FAILED_CANCELLED
                    break
        finally:
            cancel_waiter.cancel()

        if reason == FAILED_CANCELLED and pending:
            grace = self.config.fetch.cancel_grace_period
            self._log.info("cancellation requested; giving {} in-flight page(s) {}s", len(pending), grace)
            done, pending = await asyncio.wait(pending, timeout=grace)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        return reason

    def _commit(self, state: RunState, batch: list[FrontierEntry], tasks: list[asyncio.Task], drop_reason: str) -> None:
        for entry, task in zip(batch, tasks):
            if task.cancelled() or not task.done():
                state.record_failure(entry.url, drop_reason or FAILED_CANCELLED)
                continue
            exc = task.exception()
            if exc is not None:
                state.record_failure(entry.url, f"unexpected error: {exc}")
                self._log.opt(exception=exc).error("worker crashed for {}", entry.url)
                self._emit(EVENT_ERROR, entry.url, code="unexpected", message=str(exc))
                continue
            result: _WorkResult = task.result()
            state.auth_events += result.auth_challenges
            if result.record is None:
                state.record_failure(entry.url, result.error or "unknown error")
                self._log.warning("page failed {}: {}", entry.url, result.error)
                self._emit(EVENT_ERROR, entry.url, code=result.error_code, message=result.error)
                continue

            record = result.record
            state.commit_page(record)
            PAGES_PROCESSED_TOTAL.labels(empty=str(record.is_empty).lower()).inc()
            queued = 0
            for link in result.links:
                ok, _reason = state.enqueue_link(link, base_url=record.url, depth=entry.depth + 1)
                queued += int(ok)
            self._emit(
                EVENT_PAGE_PROCESSED,
                record.url,
                title=record.title,
                depth=record.depth,
                metrics=asdict(record.metrics),
                links_found=len(result.links),
                links_queued=queued,
                estimator_fallback=record.estimator_fallback,
            )

    async def _run_batch(self, state: RunState, first: FrontierEntry, cancel_event: asyncio.Event) -> str:
        batch = self._fill_batch(state, first)
        # Content snapshot is taken before the batch so all workers score against the same history.
        self._seen = state.content_snapshot()
        tasks = [asyncio.create_task(self._work(entry)) for entry in batch]
        drop_reason = await self._await_batch(tasks, cancel_event, state) if tasks else ""
        self._commit(state, batch, tasks, drop_reason)
        state.advance_step()
        return drop_reason

    def _summary(self, state: RunState, progress: ProgressMetrics, reason: str) -> RunSummary:
        pages = state.page_list()
        return RunSummary(
            pages_scraped=len(pages),
            total_content_size=sum(len(p.content) for p in pages),
            execution_time=round(state.elapsed(self.clock()), 3),
            goal_completion=progress.completeness,
            coverage_score=progress.relevance * progress.information_density,
            steps=state.step_count,
            completion_reason=reason,
            pages_failed=len(state.ledger.failed()),
            auth_required=state.auth_events,
        )

    async def run(self, cancel_event: asyncio.Event | None = None) -> CrawlOutput:
        set_run_id(self.run_id)
        cancel_event = cancel_event or asyncio.Event()
        state = self.state = self._new_state()
        self._seen = ()
        self._emit(
            EVENT_STARTED,
            self.config.base_url,
            goal=self.config.goal,
            limits=self.config.limits.model_dump(),
            concurrency=self.config.concurrency,
        )
        self._log.info("crawl started base_url={} goal={!r}", self.config.base_url, self.config.goal)

        progress = self.evaluator.evaluate(state.page_list(), state.goal)
        reason = CompletionReason.STEP_BUDGET
        try:
            # Every non-final iteration advances step_count, so rule 3 fires by the last one.
            for _ in range(state.limits.max_steps + 1):
                if cancel_event.is_set():
                    reason = CompletionReason.CANCELLED
                    break
                progress = self.evaluator.evaluate(state.page_list(), state.goal)
                decision = self.engine.decide(state, progress, self.clock())
                if decision.is_complete:
                    reason = decision.reason
                    break
                assert decision.next_entry is not None
                self._log.info("step {}: {}", state.step_count + 1, decision.reason)
                dropped = await self._run_batch(state, decision.next_entry, cancel_event)
                if dropped == FAILED_CANCELLED:
                    reason = CompletionReason.CANCELLED
                    break
        except Exception as exc:
            # The caller still gets whatever was collected.
            self._log.exception("crawl loop failed")
            self._emit(EVENT_ERROR, code="scheduler", message=str(exc))
            reason = COMPLETION_ERROR

        progress = self.evaluator.evaluate(state.page_list(), state.goal)
        summary = self._summary(state, progress, reason)
        self._emit(EVENT_COMPLETED, summary=asdict(summary))
        self._log.info(
            "crawl complete reason={!r} pages={} failed={} steps={}",
            reason,
            summary.pages_scraped,
            summary.pages_failed,
            summary.steps,
        )
        return CrawlOutput(pages=state.page_list(), summary=summary)
