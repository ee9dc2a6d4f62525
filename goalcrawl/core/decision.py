"""Navigation decision engine.

Rules are evaluated in a fixed order and the first match wins:

1. frontier empty            -> COMPLETE("frontier exhausted")
2. pages >= max_pages        -> COMPLETE("page budget reached")
3. step_count >= max_steps   -> COMPLETE("step budget reached")
4. elapsed >= max_wall_clock -> COMPLETE("time budget reached")
5. goal completeness reached -> COMPLETE("goal satisfied")
6. diminishing returns       -> COMPLETE("diminishing returns")
7. otherwise                 -> CONTINUE with the frontier's best entry

Rules 5 and 6 only apply once `min_pages_before_goal_check` pages exist.
"""
from __future__ import annotations

from loguru import logger

from goalcrawl.core.models import Action, CompletionReason, Decision, ProgressMetrics
from goalcrawl.core.run_config import EvaluationPolicy
from goalcrawl.core.state import RunState
from goalcrawl.observability.metrics import record_decision

_PROGRESS_REASONS = {CompletionReason.GOAL_SATISFIED, CompletionReason.DIMINISHING_RETURNS}


class NavigationDecisionEngine:
    def __init__(self, policy: EvaluationPolicy | None = None):
        self.policy = policy or EvaluationPolicy()
        self.state = Action.SELECTING

    def _complete(self, run: RunState, progress: ProgressMetrics, reason: str) -> Decision:
        if reason in _PROGRESS_REASONS:
            estimate = progress.completeness
        else:
            estimate = min(1.0, run.pages_processed / max(1, run.limits.max_pages))
        self.state = Action.COMPLETE
        return Decision(action=Action.COMPLETE, reason=reason, completion_estimate=estimate)

    def _completion_rule(self, run: RunState, progress: ProgressMetrics, now: float) -> str | None:
        limits = run.limits
        pages = run.pages_processed
        if run.frontier.is_empty():
            return CompletionReason.FRONTIER_EXHAUSTED
        if pages >= limits.max_pages:
            return CompletionReason.PAGE_BUDGET
        if run.step_count >= limits.max_steps:
            return CompletionReason.STEP_BUDGET
        if run.elapsed(now) >= limits.max_wall_clock:
            return CompletionReason.TIME_BUDGET
        goal_check = pages >= self.policy.min_pages_before_goal_check
        if goal_check and progress.completeness >= self.policy.completeness_threshold:
            return CompletionReason.GOAL_SATISFIED
        if goal_check and progress.diminishing_returns:
            return CompletionReason.DIMINISHING_RETURNS
        return None

    def decide(self, run: RunState, progress: ProgressMetrics, now: float) -> Decision:
        self.state = Action.SELECTING
        while True:
            reason = self._completion_rule(run, progress, now)
            if reason is not None:
                decision = self._complete(run, progress, reason)
                break
            entry = run.frontier.pop()
            if entry is None:
                # Lost a race with another consumer; start over from rule 1.
                continue
            self.state = Action.CONTINUE
            decision = Decision(
                action=Action.CONTINUE,
                reason=f"Selected next URL with expected value: {entry.expected_value:.2f}",
                completion_estimate=min(1.0, run.pages_processed / max(1, run.limits.max_pages)),
                next_url=entry.url,
                next_entry=entry,
            )
            break
        record_decision(decision.action.value, decision.reason)
        logger.debug(
            "decision action={} reason={!r} pages={} steps={} frontier={}",
            decision.action.value,
            decision.reason,
            run.pages_processed,
            run.step_count,
            run.frontier.size(),
        )
        return decision
