"""
Host provisioner — CLI entrypoint.

Usage:
    provisioner --help
    provisioner detect
    provisioner plan nginx
    provisioner install docker
    provisioner install grafana-stack --mock --profile rocky-9
"""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import resolve_level, setup_logging

_PROFILE_HELP = "Simulated platform for --mock (e.g. ubuntu-22.04, rocky-9)."

_STATUS_COLORS = {
    0: "green",
    1: "red",
    2: "red",
    3: "yellow",
}


@click.group()
@click.version_option(version=__version__, prog_name="provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to config file (default: $PROVISIONER_CONFIG, ./provisioner.yml, "
         "/etc/provisioner/config.yml).",
)
@click.option(
    "--root",
    "os_root",
    type=click.Path(file_okay=False),
    default="/",
    hidden=True,
    help="Filesystem root for detection and managed files.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    os_root: str,
) -> None:
    """Host provisioner — install nginx, Docker and the Grafana stack idempotently."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["os_root"] = Path(os_root)

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None

    setup_logging(level=resolve_level(level))


def _exit(code: int) -> None:
    if code:
        sys.exit(code)


# ── detect ───────────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Report a simulated platform.")
@click.option("--profile", default="ubuntu-22.04", show_default=True, help=_PROFILE_HELP)
@click.pass_context
def detect(ctx: click.Context, as_json: bool, mock: bool, profile: str) -> None:
    """Detect OS family, distribution and package manager."""
    from provisioner.core.use_cases.install import detect_platform

    facts, error = detect_platform(mock=mock, profile=profile, os_root=ctx.obj["os_root"])

    if as_json:
        payload = {"error": error} if error else facts.model_dump(mode="json")
        click.echo(json.dumps(payload, indent=2))
        _exit(1 if error else 0)
        return

    if error:
        click.secho(f"❌ {error}", fg="red")
        sys.exit(1)

    click.secho(f"\n🖥  {facts.describe()}", fg="cyan", bold=True)
    click.echo(f"   Family:          {facts.family.value}")
    click.echo(f"   Distribution:    {facts.distro_id} {facts.version_major}")
    if facts.codename:
        click.echo(f"   Codename:        {facts.codename}")
    click.echo(f"   Package manager: {facts.package_manager.value}")
    click.echo(f"   Architecture:    {facts.arch}")
    click.echo()


# ── products ─────────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def products(as_json: bool) -> None:
    """List installable products."""
    from provisioner.core.data.recipes import PRODUCT_ALIASES
    from provisioner.core.planning.builder import list_products

    items = list_products()
    if as_json:
        click.echo(json.dumps({"products": items, "aliases": PRODUCT_ALIASES}, indent=2))
        return

    click.secho("\n📦 Products", fg="cyan", bold=True)
    aliases = {target: alias for alias, target in PRODUCT_ALIASES.items()}
    for item in items:
        alias = f"  (alias: {aliases[item['name']]})" if item["name"] in aliases else ""
        click.echo(f"   • {item['name']:<16} {item['label']}{alias}")
    click.echo()


# ── plan ─────────────────────────────────────────────────────────────


@cli.command()
@click.argument("product")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--check", "check_state", is_flag=True, help="Evaluate preconditions now.")
@click.option("--mock", is_flag=True, help="Plan against a simulated host.")
@click.option("--profile", default="ubuntu-22.04", show_default=True, help=_PROFILE_HELP)
@click.pass_context
def plan(
    ctx: click.Context,
    product: str,
    as_json: bool,
    check_state: bool,
    mock: bool,
    profile: str,
) -> None:
    """Show the ordered steps for PRODUCT on this platform.

    Examples:

        provisioner plan nginx

        provisioner plan docker --check

        provisioner plan grafana-stack --mock --profile rocky-9
    """
    from provisioner.core.use_cases.install import preview_plan

    result = preview_plan(
        product,
        config_path=ctx.obj.get("config_path"),
        mock=mock,
        profile=profile,
        os_root=ctx.obj["os_root"],
        check_state=check_state,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        _exit(int(result.exit_code))
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(int(result.exit_code))

    built = result.plan
    mode_label = "[mock] " if result.mock else ""
    click.secho(
        f"\n📋 {mode_label}{built.product} on {built.facts.describe()}",
        fg="cyan",
        bold=True,
    )
    preview = {row["id"]: row for row in result.preview}
    for index, step in enumerate(built.steps, start=1):
        marker = ""
        if step.id in preview:
            marker = "  ⊘ satisfied" if preview[step.id]["satisfied"] else "  → would run"
        click.echo(f"   {index:>2}. {step.id:<42} {step.description}{marker}")
        if ctx.obj.get("verbose"):
            policy = step.on_failure.value
            retry = ", retryable" if step.retryable else ""
            click.echo(f"       │ skip if: {step.precondition.describe()} ({policy}{retry})")
    click.echo()


# ── install ──────────────────────────────────────────────────────────


@cli.command()
@click.argument("product")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Run against a simulated host (no real changes).")
@click.option("--profile", default="ubuntu-22.04", show_default=True, help=_PROFILE_HELP)
@click.pass_context
def install(
    ctx: click.Context,
    product: str,
    as_json: bool,
    mock: bool,
    profile: str,
) -> None:
    """Install and configure PRODUCT, then verify it.

    Exit codes: 0 ok, 1 not started, 2 aborted, 3 completed with failures.

    Examples:

        provisioner install nginx

        provisioner install docker --json

        provisioner install grafana-stack --mock --profile debian-12
    """
    from provisioner.core.reporting.reporter import progress_line
    from provisioner.core.use_cases.install import run_install

    quiet = ctx.obj.get("quiet", False)
    cancel = threading.Event()

    def _on_result(step_result) -> None:
        if not as_json and not quiet:
            click.echo(f"   {progress_line(step_result)}")

    def _request_cancel(signum, frame) -> None:
        if not cancel.is_set():
            click.secho("\n   ⏹ Cancelling after the current step…", fg="yellow", err=True)
        cancel.set()

    # Signal handlers can only be installed from the main thread
    in_main = threading.current_thread() is threading.main_thread()
    previous = signal.signal(signal.SIGINT, _request_cancel) if in_main else None
    try:
        if not as_json and not quiet:
            click.secho(f"\n⚡ {'[mock] ' if mock else ''}install {product}", fg="cyan", bold=True)
        result = run_install(
            product,
            config_path=ctx.obj.get("config_path"),
            mock=mock,
            profile=profile,
            os_root=ctx.obj["os_root"],
            cancel_event=cancel,
            on_result=_on_result,
        )
    finally:
        if in_main:
            signal.signal(signal.SIGINT, previous)

    _print_result(result, as_json, quiet)
    _exit(int(result.exit_code))


# ── verify ───────────────────────────────────────────────────────────


@cli.command()
@click.argument("product")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--mock", is_flag=True, help="Verify a simulated host.")
@click.option("--profile", default="ubuntu-22.04", show_default=True, help=_PROFILE_HELP)
@click.pass_context
def verify(ctx: click.Context, product: str, as_json: bool, mock: bool, profile: str) -> None:
    """Run PRODUCT's post-install checks without changing anything."""
    from provisioner.core.use_cases.install import run_verify

    result = run_verify(
        product,
        config_path=ctx.obj.get("config_path"),
        mock=mock,
        profile=profile,
        os_root=ctx.obj["os_root"],
    )
    _print_result(result, as_json, ctx.obj.get("quiet", False))
    _exit(int(result.exit_code))


def _print_result(result, as_json: bool, quiet: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        return

    code = int(result.exit_code)
    if not quiet:
        click.echo()
        click.echo(result.reporter.render_text())
    click.echo()
    verdict = {0: "✅ Done", 2: "❌ Aborted", 3: "⚠️  Completed with failures"}.get(code, "")
    click.secho(f"{verdict} (exit {code})", fg=_STATUS_COLORS.get(code, "white"), bold=True)


# ── history ──────────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--limit", "-n", default=20, show_default=True, help="Number of runs to show.")
@click.pass_context
def history(ctx: click.Context, as_json: bool, limit: int) -> None:
    """Show recent runs from the run ledger."""
    from provisioner.core.config.loader import load_config
    from provisioner.core.errors import ConfigError
    from provisioner.core.persistence.ledger import RunLedger

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    entries = RunLedger(Path(config.state_dir)).read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No runs recorded yet.")
        return

    click.secho(f"\n📜 Last {len(entries)} run(s)", fg="cyan", bold=True)
    for entry in reversed(entries):
        color = _STATUS_COLORS.get(entry.exit_code, "white")
        click.echo(f"   {entry.timestamp[:19]}  {entry.operation:<7} {entry.product:<14} ", nl=False)
        click.secho(entry.status, fg=color, nl=False)
        click.echo(
            f"  ({entry.steps_succeeded} ok, {entry.steps_skipped} skipped, "
            f"{entry.steps_failed} failed)"
        )
        if entry.failed_checks:
            click.echo(f"     │ failed checks: {', '.join(entry.failed_checks)}")
    click.echo()


if __name__ == "__main__":
    cli()
