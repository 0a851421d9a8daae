"""
Tests for the append-only run ledger.
"""

import json

from provisioner.core.models import (
    CheckResult,
    RunReport,
    RunStatus,
    StepOutcome,
    StepPhase,
    StepResult,
)
from provisioner.core.persistence.ledger import DEFAULT_LEDGER_FILE, LedgerEntry, RunLedger


def _report() -> RunReport:
    report = RunReport(run_id="run-20260101-000000-abcdef", product="docker")
    report.record(StepResult(step_id="update-index", phase=StepPhase.UPDATE_INDEX,
                             outcome=StepOutcome.SKIPPED))
    report.record(StepResult(step_id="add-repo", phase=StepPhase.ADD_REPO,
                             outcome=StepOutcome.FAILED, attempts=3, message="timed out"))
    report.finish(RunStatus.ABORTED, "step 'add-repo' failed: timed out")
    return report


class TestLedgerEntry:
    def test_from_install(self):
        checks = [CheckResult(name="service:docker", passed=False, detail="inactive")]
        entry = LedgerEntry.from_run("install", "docker", _report(), checks, 2, "ubuntu 22")
        assert entry.run_id == "run-20260101-000000-abcdef"
        assert entry.status == "aborted"
        assert entry.steps_total == 2
        assert entry.steps_skipped == 1
        assert entry.steps_failed == 1
        assert entry.abort_reason == "step 'add-repo' failed: timed out"
        assert entry.failed_checks == ["service:docker"]
        assert entry.exit_code == 2

    def test_from_verify(self):
        ok = LedgerEntry.from_run("verify", "nginx", None, [CheckResult(name="port:80", passed=True)], 0)
        assert ok.status == "verified"
        bad = LedgerEntry.from_run("verify", "nginx", None, [CheckResult(name="port:80", passed=False)], 3)
        assert bad.status == "degraded"

    def test_not_started(self):
        entry = LedgerEntry.from_run("install", "nginx", None, [], 1)
        assert entry.status == "not-started"


class TestRunLedger:
    def test_append_and_read(self, tmp_state_dir):
        ledger = RunLedger(tmp_state_dir)
        ledger.write(LedgerEntry(operation="install", product="nginx", run_id="a"))
        ledger.write(LedgerEntry(operation="verify", product="nginx"))
        entries = ledger.read_all()
        assert [e.operation for e in entries] == ["install", "verify"]
        lines = (tmp_state_dir / DEFAULT_LEDGER_FILE).read_text().splitlines()
        assert json.loads(lines[0])["run_id"] == "a"

    def test_creates_state_dir(self, tmp_path):
        ledger = RunLedger(tmp_path / "new" / "state")
        ledger.write(LedgerEntry(operation="install"))
        assert ledger.path.is_file()

    def test_empty(self, tmp_state_dir):
        assert RunLedger(tmp_state_dir).read_all() == []

    def test_corrupt_lines_skipped(self, tmp_state_dir):
        ledger = RunLedger(tmp_state_dir)
        ledger.write(LedgerEntry(operation="install", product="nginx"))
        with ledger.path.open("a") as f:
            f.write("{not json\n\n")
        ledger.write(LedgerEntry(operation="install", product="docker"))
        assert [e.product for e in ledger.read_all()] == ["nginx", "docker"]

    def test_read_recent(self, tmp_state_dir):
        ledger = RunLedger(tmp_state_dir)
        for i in range(5):
            ledger.write(LedgerEntry(operation="install", run_id=f"run-{i}"))
        assert [e.run_id for e in ledger.read_recent(2)] == ["run-3", "run-4"]
        assert ledger.read_recent(0) == []

    def test_write_failure_does_not_raise(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        RunLedger(blocker / "state").write(LedgerEntry(operation="install"))
