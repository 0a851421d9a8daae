"""
Run ledger — append-only history of provisioning runs.

Every install or verify run appends one NDJSON line to
``<state_dir>/runs.ndjson``. Entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from provisioner.core.models import CheckResult, RunReport

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_FILE = "runs.ndjson"


class LedgerEntry(BaseModel):
    """A single run record."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    run_id: str = ""
    operation: str = ""            # install, verify
    product: str = ""
    platform: str = ""

    # Results
    status: str = ""               # completed, aborted, verified, degraded
    exit_code: int = 0
    steps_total: int = 0
    steps_succeeded: int = 0
    steps_skipped: int = 0
    steps_failed: int = 0
    abort_reason: str | None = None
    failed_checks: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_run(
        cls,
        operation: str,
        product: str,
        report: RunReport | None,
        checks: list[CheckResult],
        exit_code: int,
        platform: str = "",
    ) -> LedgerEntry:
        entry = cls(
            operation=operation,
            product=product,
            platform=platform,
            exit_code=exit_code,
            failed_checks=[c.name for c in checks if not c.passed],
        )
        if report is not None:
            entry.run_id = report.run_id
            entry.status = report.status.value
            entry.steps_total = report.total
            entry.steps_succeeded = report.succeeded
            entry.steps_skipped = report.skipped
            entry.steps_failed = report.failed
            entry.abort_reason = report.abort_reason
        elif operation == "verify":
            entry.status = "degraded" if entry.failed_checks else "verified"
        else:
            entry.status = "not-started"
        return entry


class RunLedger:
    """Append-only NDJSON ledger of runs."""

    def __init__(self, state_dir: Path):
        self._path = Path(state_dir) / DEFAULT_LEDGER_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: LedgerEntry) -> None:
        """Append ``entry``. A write failure is logged, not raised."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Ledger entry written: %s/%s", entry.operation, entry.run_id)
        except OSError as e:
            logger.error("Failed to write run ledger %s: %s", self._path, e)

    def read_all(self) -> list[LedgerEntry]:
        """All entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(LedgerEntry.model_validate(json.loads(line)))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning("Skipping corrupt ledger entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read run ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[LedgerEntry]:
        return self.read_all()[-n:] if n > 0 else []
