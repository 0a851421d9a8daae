"""
Reporter — human and machine summaries of a run.

Every step result and every check result appears exactly once, in the
order it was produced. The text rendering holds no wall-clock values,
so the same report always renders the same text.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from provisioner.core.models import CheckResult, RunReport, StepOutcome, StepResult


class ExitCode(IntEnum):
    """Process exit codes."""

    OK = 0
    PRE_PLAN_ERROR = 1      # unsupported platform, privileges, config
    ABORTED = 2             # a step with on_failure=abort failed
    DEGRADED = 3            # completed with failed steps or failed checks


_STEP_MARKERS = {
    StepOutcome.SUCCEEDED: "✓",
    StepOutcome.RETRIED: "✓",
    StepOutcome.FAILED: "✗",
    StepOutcome.SKIPPED: "⊘",
}


def progress_line(result: StepResult) -> str:
    """One streaming line for a just-recorded step."""
    attempts = f" [{result.attempts} attempts]" if result.attempts > 1 else ""
    message = f" ({result.message})" if result.message else ""
    return f"{_STEP_MARKERS[result.outcome]} {result.step_id}: {result.outcome.value}{attempts}{message}"


class Reporter:
    """Summarizes one RunReport and its CheckResults."""

    def __init__(
        self,
        report: RunReport | None,
        checks: list[CheckResult] | None = None,
        error: str | None = None,
    ):
        self.report = report
        self.checks = list(checks or [])
        self.error = error

    @staticmethod
    def progress_line(result: StepResult) -> str:
        return progress_line(result)

    @property
    def failed_checks(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.passed]

    def exit_code(self) -> ExitCode:
        if self.error is not None:
            return ExitCode.PRE_PLAN_ERROR
        if self.report is None:
            # verify-only run
            return ExitCode.DEGRADED if self.failed_checks else ExitCode.OK
        if self.report.aborted:
            return ExitCode.ABORTED
        if self.report.failed or self.failed_checks:
            return ExitCode.DEGRADED
        return ExitCode.OK

    def render_text(self) -> str:
        lines: list[str] = []
        if self.error is not None:
            lines.append(f"✗ Not started: {self.error}")
            return "\n".join(lines)

        report = self.report
        if report is not None:
            platform = report.platform.describe() if report.platform else "unknown platform"
            lines.append(f"Run {report.run_id}: {report.product} on {platform}")
            lines.append(f"Status: {report.status.value}")
            if report.abort_reason:
                lines.append(f"Reason: {report.abort_reason}")

            lines.append("")
            lines.append("Steps:")
            width = max((len(r.step_id) for r in report.results), default=0)
            for r in report.results:
                attempts = f"x{r.attempts}" if r.attempts > 1 else ""
                lines.append(
                    f"  {_STEP_MARKERS[r.outcome]} {r.step_id:<{width}}  "
                    f"{r.outcome.value:<9} {attempts:>3}  {r.message}".rstrip()
                )

        if self.checks:
            if lines:
                lines.append("")
            lines.append("Checks:")
            width = max(len(c.name) for c in self.checks)
            for c in self.checks:
                marker = "✓" if c.passed else "✗"
                lines.append(f"  {marker} {c.name:<{width}}  {c.detail}".rstrip())

        parts = []
        if report is not None:
            parts.append(
                f"{report.succeeded} succeeded, {report.skipped} skipped, {report.failed} failed"
            )
        if self.checks:
            passed = len(self.checks) - len(self.failed_checks)
            parts.append(f"{passed}/{len(self.checks)} checks passed")
        lines.append("")
        lines.append("Summary: " + ("; ".join(parts) or "nothing to report"))
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exit_code": int(self.exit_code()),
            "error": self.error,
            "run": self.report.to_dict() if self.report else None,
            "checks": [c.model_dump(mode="json") for c in self.checks],
            "checks_passed": len(self.checks) - len(self.failed_checks),
            "checks_failed": len(self.failed_checks),
        }
