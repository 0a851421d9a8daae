"""
StepResult, RunReport and CheckResult — the execution record.

The RunReport is append-only: the executor records one StepResult per
plan step, in plan order, and never rewrites an earlier entry.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from provisioner.core.models.plan import StepPhase
from provisioner.core.models.platform import PlatformFacts


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class StepOutcome(StrEnum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRIED = "retried"             # succeeded after more than one attempt


class StepState(StrEnum):
    """Lifecycle of a step inside one executor run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"


class RunStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepResult(BaseModel):
    """Outcome of one step. Permanent once recorded."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    phase: StepPhase
    outcome: StepOutcome
    attempts: int = 0
    message: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome in (StepOutcome.SUCCEEDED, StepOutcome.RETRIED)


class CheckResult(BaseModel):
    """Outcome of one post-install check."""

    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    detail: str = ""


class RunReport(BaseModel):
    """Append-only log of step outcomes for one executor run."""

    run_id: str = ""
    product: str = ""
    platform: PlatformFacts | None = None
    status: RunStatus = RunStatus.RUNNING
    abort_reason: str | None = None

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str | None = None

    results: list[StepResult] = Field(default_factory=list)

    def record(self, result: StepResult) -> None:
        """Append a step result. Earlier entries are never touched."""
        if self.status != RunStatus.RUNNING:
            raise RuntimeError(f"Run {self.run_id} is already {self.status.value}")
        self.results.append(result)

    def finish(self, status: RunStatus, abort_reason: str | None = None) -> None:
        self.status = status
        self.abort_reason = abort_reason
        self.ended_at = _now_iso()

    def result_for(self, step_id: str) -> StepResult | None:
        for result in self.results:
            if result.step_id == step_id:
                return result
        return None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.outcome == StepOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == StepOutcome.SKIPPED)

    @property
    def aborted(self) -> bool:
        return self.status == RunStatus.ABORTED

    @property
    def all_ok(self) -> bool:
        return self.status == RunStatus.COMPLETED and self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "product": self.product,
            "platform": self.platform.model_dump(mode="json") if self.platform else None,
            "status": self.status.value,
            "abort_reason": self.abort_reason,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.model_dump(mode="json") for r in self.results],
        }
