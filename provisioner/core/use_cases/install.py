"""
Install use case — the full vertical slice for one product.

Loads config, detects the platform, builds the plan, executes it
through the selected adapter, verifies the result and records the run
in the ledger.

    config → detect → plan → execute → verify → ledger

Pre-plan failures (config, unknown product, unsupported platform,
privileges) are returned as ``error`` with no RunReport.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from provisioner.adapters.base import Adapter
from provisioner.adapters.mock import FakeHost
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.config.loader import ProvisionerConfig, load_config
from provisioner.core.detection.platform import detect
from provisioner.core.engine.executor import Executor
from provisioner.core.errors import ProvisionError
from provisioner.core.models import CheckResult, Plan, PlatformFacts, RunReport, RunStatus, StepResult
from provisioner.core.persistence.ledger import LedgerEntry, RunLedger
from provisioner.core.planning.builder import build_plan, resolve_product
from provisioner.core.reporting.reporter import ExitCode, Reporter
from provisioner.core.verification.verifier import Verifier

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "ubuntu-22.04"


@dataclass
class InstallResult:
    """Result of an install, plan or verify request."""

    operation: str = "install"
    product: str = ""
    facts: PlatformFacts | None = None
    plan: Plan | None = None
    report: RunReport | None = None
    checks: list[CheckResult] = field(default_factory=list)
    preview: list[dict] = field(default_factory=list)
    error: str | None = None
    mock: bool = False

    @property
    def reporter(self) -> Reporter:
        return Reporter(self.report, self.checks, self.error)

    @property
    def exit_code(self) -> ExitCode:
        return self.reporter.exit_code()

    def to_dict(self) -> dict:
        result: dict = {"operation": self.operation, "product": self.product}
        if self.error:
            result["error"] = self.error
            result["exit_code"] = int(self.exit_code)
            return result

        result["mock"] = self.mock
        result["platform"] = self.facts.model_dump(mode="json") if self.facts else None
        if self.plan and self.operation == "plan":
            result["plan"] = self.plan.to_dict()
        if self.preview:
            result["preview"] = self.preview
        result.update(self.reporter.to_dict())
        return result


@dataclass
class _Context:
    config: ProvisionerConfig
    product: str
    facts: PlatformFacts
    adapter: Adapter


def _prepare(
    result: InstallResult,
    product: str,
    config_path: Path | None,
    mock: bool,
    profile: str,
    adapter: Adapter | None,
    os_root: Path,
) -> _Context | None:
    """Resolve config, product, platform and adapter; record errors on ``result``."""
    try:
        config = load_config(config_path)
        result.product = resolve_product(product)

        if adapter is not None:
            facts = adapter.facts
        elif mock:
            adapter = FakeHost.for_profile(profile)
            facts = adapter.facts
        else:
            facts = detect(root=os_root)
            adapter = AdapterRegistry(root=os_root).adapter_for(facts)
    except ProvisionError as e:
        logger.error("%s", e)
        result.error = str(e)
        return None

    result.facts = facts
    result.mock = isinstance(adapter, FakeHost)
    return _Context(config=config, product=result.product, facts=facts, adapter=adapter)


def _record(ctx: _Context, result: InstallResult) -> None:
    if result.mock:
        return
    entry = LedgerEntry.from_run(
        operation=result.operation,
        product=ctx.product,
        report=result.report,
        checks=result.checks,
        exit_code=int(result.exit_code),
        platform=ctx.facts.describe(),
    )
    RunLedger(Path(ctx.config.state_dir)).write(entry)


def run_install(
    product: str,
    config_path: Path | None = None,
    mock: bool = False,
    profile: str = DEFAULT_PROFILE,
    adapter: Adapter | None = None,
    os_root: Path = Path("/"),
    cancel_event: threading.Event | None = None,
    on_result: Callable[[StepResult], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> InstallResult:
    """Install ``product`` on this host (or the simulated one).

    Args:
        product: Product name or alias.
        config_path: Optional explicit config file.
        mock: Run against a FakeHost for ``profile``.
        profile: Simulated platform name in mock mode.
        adapter: Pre-built adapter (takes precedence over ``mock``).
        os_root: Filesystem root for detection and managed files.
        cancel_event: Cancels the run at the next step boundary.
        on_result: Streaming callback per recorded step.
        sleep: Backoff sleeper.

    Returns:
        InstallResult; ``exit_code`` follows the reporter's convention.
    """
    result = InstallResult(operation="install")
    ctx = _prepare(result, product, config_path, mock, profile, adapter, os_root)
    if ctx is None:
        return result

    options = ctx.config.plan_options(ctx.product)
    try:
        result.plan = build_plan(ctx.product, ctx.facts, options)
    except ProvisionError as e:
        result.error = str(e)
        return result

    executor = Executor(
        ctx.adapter,
        retry=ctx.config.retry_policy(),
        network_timeout=ctx.config.network_timeout,
        cancel_event=cancel_event,
        on_result=on_result,
        sleep=sleep,
    )
    try:
        result.report = executor.run(result.plan)
    except ProvisionError as e:
        logger.error("Run not started: %s", e)
        result.error = str(e)
        _record(ctx, result)
        return result

    if result.report.status == RunStatus.COMPLETED:
        result.checks = Verifier(ctx.adapter, options).verify(ctx.product, ctx.facts)

    _record(ctx, result)
    return result


def run_verify(
    product: str,
    config_path: Path | None = None,
    mock: bool = False,
    profile: str = DEFAULT_PROFILE,
    adapter: Adapter | None = None,
    os_root: Path = Path("/"),
) -> InstallResult:
    """Run only the product's post-install checks."""
    result = InstallResult(operation="verify")
    ctx = _prepare(result, product, config_path, mock, profile, adapter, os_root)
    if ctx is None:
        return result

    options = ctx.config.plan_options(ctx.product)
    result.checks = Verifier(ctx.adapter, options).verify(ctx.product, ctx.facts)
    _record(ctx, result)
    return result


def preview_plan(
    product: str,
    config_path: Path | None = None,
    mock: bool = False,
    profile: str = DEFAULT_PROFILE,
    adapter: Adapter | None = None,
    os_root: Path = Path("/"),
    check_state: bool = False,
) -> InstallResult:
    """Build the plan; with ``check_state`` also evaluate every precondition."""
    result = InstallResult(operation="plan")
    ctx = _prepare(result, product, config_path, mock, profile, adapter, os_root)
    if ctx is None:
        return result

    try:
        result.plan = build_plan(ctx.product, ctx.facts, ctx.config.plan_options(ctx.product))
    except ProvisionError as e:
        result.error = str(e)
        return result

    if check_state:
        result.preview = Executor(ctx.adapter).preview(result.plan)
    return result


def detect_platform(
    mock: bool = False,
    profile: str = DEFAULT_PROFILE,
    os_root: Path = Path("/"),
) -> tuple[PlatformFacts | None, str | None]:
    """Detect (or simulate) the platform. Returns ``(facts, error)``."""
    try:
        if mock:
            return FakeHost.for_profile(profile).facts, None
        return detect(root=os_root), None
    except ProvisionError as e:
        return None, str(e)
