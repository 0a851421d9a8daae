"""
Engine executor — the sequential step state machine.

The executor takes a Plan, runs each step through the host adapter in
declared order and appends one StepResult per step to the RunReport.

Per step:
    cancellation check → precondition → apply → retry → failure policy

Preconditions are asked of the adapter, except StepsUnchanged, which
the executor answers from the states it has recorded this run. Every
log record emitted during ``run`` carries the run id.

Flow:
    privileges → steps in order → completed | aborted
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import UTC, datetime
from typing import Callable

from provisioner.adapters.base import DEFAULT_NETWORK_TIMEOUT, Adapter
from provisioner.core.errors import ProvisionError
from provisioner.core.models import (
    FailurePolicy,
    Plan,
    RunReport,
    RunStatus,
    Step,
    StepOutcome,
    StepResult,
    StepState,
    StepsUnchanged,
)
from provisioner.core.observability.logging_config import run_context
from provisioner.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)

ABORTED_BY_PRIOR_FAILURE = "aborted by prior failure"
CANCELLED = "cancelled"

_MARKERS = {
    StepOutcome.SUCCEEDED: "✓",
    StepOutcome.RETRIED: "✓",
    StepOutcome.FAILED: "✗",
    StepOutcome.SKIPPED: "⊘",
}


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


class Executor:
    """Runs plans against one host adapter.

    Args:
        adapter: Host adapter every capability goes through.
        retry: Attempt bound and backoff for retryable steps.
        network_timeout: Seconds allowed per network-capable step attempt.
        cancel_event: Set to request cancellation at the next step boundary.
        on_result: Called with each StepResult as soon as it is recorded.
        sleep: Backoff sleeper (tests pass a no-op).
    """

    def __init__(
        self,
        adapter: Adapter,
        retry: RetryPolicy | None = None,
        network_timeout: float = DEFAULT_NETWORK_TIMEOUT,
        cancel_event: threading.Event | None = None,
        on_result: Callable[[StepResult], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.adapter = adapter
        self.retry = retry or RetryPolicy()
        self.network_timeout = network_timeout
        self.cancel_event = cancel_event
        self.on_result = on_result
        self._sleep = sleep
        self.step_states: dict[str, StepState] = {}

    # ── Public API ───────────────────────────────────────────────

    def run(self, plan: Plan, run_id: str | None = None) -> RunReport:
        """Execute ``plan`` and return its RunReport.

        Raises:
            InsufficientPrivilegesError: Before any step runs.
            FatalError: The package manager is missing, before any step runs.
        """
        report = RunReport(
            run_id=run_id or generate_run_id(),
            product=plan.product,
            platform=plan.facts,
        )
        self.step_states = {step.id: StepState.PENDING for step in plan.steps}
        with run_context(report.run_id):
            return self._run_steps(plan, report)

    def _run_steps(self, plan: Plan, report: RunReport) -> RunReport:
        self.adapter.check_privileges()
        logger.info("Run %s: %s (%d steps)", report.run_id, plan.product, len(plan.steps))

        for index, step in enumerate(plan.steps):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.warning("Run %s cancelled before '%s'", report.run_id, step.id)
                self._skip_remaining(report, plan.steps[index:], CANCELLED)
                report.finish(RunStatus.ABORTED, CANCELLED)
                return report

            result = self._run_step(step)
            self._record(report, result)

            if result.outcome == StepOutcome.FAILED:
                if step.on_failure == FailurePolicy.ABORT:
                    reason = f"step '{step.id}' failed: {result.message}"
                    logger.error("Run %s aborted: %s", report.run_id, reason)
                    self._skip_remaining(report, plan.steps[index + 1:], ABORTED_BY_PRIOR_FAILURE)
                    report.finish(RunStatus.ABORTED, reason)
                    return report
                logger.warning("Continuing after failed step '%s'", step.id)

        report.finish(RunStatus.COMPLETED)
        logger.info(
            "Run %s completed: %d succeeded, %d skipped, %d failed",
            report.run_id, report.succeeded, report.skipped, report.failed,
        )
        return report

    def preview(self, plan: Plan) -> list[dict]:
        """Dry pass: which steps would run right now. Mutates nothing."""
        rows = []
        satisfied_ids: set[str] = set()
        for step in plan.steps:
            if isinstance(step.precondition, StepsUnchanged):
                # Nothing runs in a preview; an earlier step "changes" the
                # host exactly when it would run
                satisfied = step.idempotent and satisfied_ids.issuperset(
                    step.precondition.step_ids
                )
            else:
                satisfied = step.idempotent and self.adapter.holds(step.precondition)
            if satisfied:
                satisfied_ids.add(step.id)
            rows.append({
                "id": step.id,
                "phase": step.phase.value,
                "description": step.description,
                "precondition": step.precondition.describe(),
                "satisfied": satisfied,
                "would_run": not satisfied,
            })
        return rows

    # ── Step machinery ───────────────────────────────────────────

    def _record(self, report: RunReport, result: StepResult) -> None:
        report.record(result)
        logger.info(
            "%s %s → %s (%s)",
            _MARKERS[result.outcome], result.step_id, result.outcome.value, result.message,
        )
        if self.on_result is not None:
            self.on_result(result)

    def _skip_remaining(self, report: RunReport, steps, reason: str) -> None:
        for step in steps:
            self.step_states[step.id] = StepState.ABORTED
            self._record(report, StepResult(
                step_id=step.id,
                phase=step.phase,
                outcome=StepOutcome.SKIPPED,
                message=reason,
            ))

    def _holds(self, step: Step) -> bool:
        precondition = step.precondition
        if isinstance(precondition, StepsUnchanged):
            return not any(
                self.step_states.get(step_id) == StepState.SUCCEEDED
                for step_id in precondition.step_ids
            )
        return self.adapter.holds(precondition)

    def _run_step(self, step: Step) -> StepResult:
        start = time.monotonic()
        self.step_states[step.id] = StepState.RUNNING

        def _result(outcome: StepOutcome, attempts: int, message: str) -> StepResult:
            return StepResult(
                step_id=step.id,
                phase=step.phase,
                outcome=outcome,
                attempts=attempts,
                message=message,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        # Always re-checked here, even after a preview
        if step.idempotent and self._holds(step):
            self.step_states[step.id] = StepState.SKIPPED
            return _result(
                StepOutcome.SKIPPED, 0, f"already satisfied: {step.precondition.describe()}"
            )

        timeout = self.network_timeout if step.action.network else None
        attempt = 0
        while True:
            attempt += 1
            try:
                message = self.adapter.apply(step.action, timeout=timeout)
            except ProvisionError as e:
                error: Exception = e
            except Exception as e:
                logger.exception("Unexpected error in step '%s'", step.id)
                error = e
            else:
                self.step_states[step.id] = StepState.SUCCEEDED
                outcome = StepOutcome.SUCCEEDED if attempt == 1 else StepOutcome.RETRIED
                return _result(outcome, attempt, message)

            if step.retryable and self.retry.should_retry(attempt, error):
                delay = self.retry.delay(attempt)
                logger.warning(
                    "⟳ %s attempt %d/%d failed: %s; retrying in %.1fs",
                    step.id, attempt, self.retry.max_attempts, error, delay,
                )
                self._sleep(delay)
                continue

            self.step_states[step.id] = StepState.FAILED
            return _result(StepOutcome.FAILED, attempt, str(error) or type(error).__name__)
