"""
Plan builder — recipe data + PlatformFacts → Plan.

``build_plan`` is pure: it never looks at the live system. Whether a
step actually has work to do is decided later by the executor, through
each step's precondition. The same inputs always give the same step ids
in the same order.

Step sequence for every product:

    remove-conflicting-packages  (when the recipe lists conflicts)
    update-index                 (Debian: before prerequisites)
    install-prerequisites        (packages, then system users)
    add-repo                     (when the recipe has a repository)
    update-index
    install-target-packages      (packages, then release archives)
    write-configuration-files    (directories, files, group membership)
    enable-and-start-services    (then restarts where a config file changed)
    run-post-checks              (always executes)
    configure-local-firewall     (when enabled)
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict

from provisioner.core.data.recipes import (
    NODE_EXPORTER_VERSION,
    PRODUCT_ALIASES,
    PRODUCT_RECIPES,
    PROMETHEUS_VERSION,
)
from provisioner.core.errors import PlanError, UnknownProductError, UnsupportedPlatformError
from provisioner.core.models import (
    AddSignedRepo,
    AddUserToGroup,
    BinaryPresent,
    BinaryVersion,
    CommandSucceeds,
    DirectoryExists,
    EnableService,
    EnsureDirectory,
    EnsureSystemUser,
    FailurePolicy,
    FileMatches,
    FirewallPortsOpen,
    InstallArchive,
    InstallPackages,
    Never,
    OpenFirewallPorts,
    OSFamily,
    PackagesAbsent,
    PackagesInstalled,
    Plan,
    PlatformFacts,
    PortListening,
    RemovePackages,
    RepoConfigured,
    RunCheck,
    ServiceActive,
    ServicesActive,
    StartService,
    Step,
    StepPhase,
    StepsUnchanged,
    UpdateIndex,
    UserExists,
    UserInGroup,
    WriteFile,
)

logger = logging.getLogger(__name__)


class PlanOptions(BaseModel):
    """Per-run knobs that change the shape of a plan."""

    model_config = ConfigDict(frozen=True)

    firewall: bool = False
    group_user: str | None = None
    smoke_test: bool = False
    strict_verification: bool = False
    prometheus_version: str = PROMETHEUS_VERSION
    node_exporter_version: str = NODE_EXPORTER_VERSION


# ── Recipe lookup ────────────────────────────────────────────────────


def resolve_product(name: str) -> str:
    """Canonical product name.

    Raises:
        UnknownProductError: No recipe for ``name``.
    """
    key = PRODUCT_ALIASES.get(name, name)
    if key not in PRODUCT_RECIPES:
        known = ", ".join(sorted(PRODUCT_RECIPES))
        raise UnknownProductError(f"Unknown product '{name}' (available: {known})")
    return key


def list_products() -> list[dict[str, str]]:
    return [
        {"name": name, "label": recipe["label"]}
        for name, recipe in sorted(PRODUCT_RECIPES.items())
    ]


def _for_family(field: dict | None, facts: PlatformFacts) -> list:
    if not field:
        return []
    return list(field.get(facts.family.value, field.get("_default", [])))


def _template_vars(facts: PlatformFacts, options: PlanOptions) -> dict[str, str]:
    return {
        "distro_id": facts.distro_id,
        "vendor": facts.repo_vendor,
        "codename": facts.codename,
        "version_major": str(facts.version_major),
        "arch": facts.arch,
        "rhel_flavor": "rhel" if facts.distro_id == "rhel" else "centos",
        "prometheus_version": options.prometheus_version,
        "node_exporter_version": options.node_exporter_version,
    }


def _repo(recipe: dict, facts: PlatformFacts, tvars: dict[str, str]) -> AddSignedRepo | None:
    spec = recipe.get("repo")
    if not spec or facts.family.value not in spec:
        return None
    family = spec[facts.family.value]
    suite = family.get("suite", "").format(**tvars)
    if facts.family == OSFamily.DEBIAN and not suite:
        raise UnsupportedPlatformError(
            f"No release codename for {facts.describe()}; "
            f"cannot configure the {spec['name']} repository"
        )
    return AddSignedRepo(
        name=spec["name"],
        url=family["url"].format(**tvars),
        key_url=family["key_url"].format(**tvars),
        key_fingerprints=tuple(family.get("fingerprints", spec.get("fingerprints", ()))),
        suite=suite,
        components=family.get("components", ""),
    )


def _check(entry: dict):
    if "service" in entry:
        return ServiceActive(name=entry["service"])
    if "version" in entry:
        v = entry["version"]
        return BinaryVersion(binary=v["binary"], args=tuple(v["args"]), pattern=v["pattern"])
    if "command" in entry:
        c = entry["command"]
        return CommandSucceeds(name=c["name"], argv=tuple(c["argv"]))
    if "port" in entry:
        return PortListening(port=entry["port"])
    raise PlanError(f"Unknown check entry: {entry!r}")


def product_checks(
    product: str,
    facts: PlatformFacts,
    options: PlanOptions | None = None,
) -> tuple:
    """The product's post-install checks, as used by the verifier."""
    options = options or PlanOptions()
    recipe = PRODUCT_RECIPES[resolve_product(product)]
    checks = [_check(entry) for entry in recipe.get("checks", [])]
    if options.smoke_test and recipe.get("smoke_test"):
        smoke = recipe["smoke_test"]
        checks.append(CommandSucceeds(name=smoke["name"], argv=tuple(smoke["argv"])))
    return tuple(checks)


# ── Step accumulation ────────────────────────────────────────────────


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class _Steps:
    """Ordered step list with unique, phase-derived ids."""

    def __init__(self) -> None:
        self.steps: list[Step] = []
        self._ids: set[str] = set()

    def add(self, phase: StepPhase, action, precondition=None, *, suffix: str = "", **fields) -> str:
        base = f"{phase.value}-{_slug(suffix)}" if suffix else phase.value
        step_id, n = base, 1
        while step_id in self._ids:
            n += 1
            step_id = f"{base}-{n}"
        self._ids.add(step_id)
        self.steps.append(Step(
            id=step_id,
            phase=phase,
            description=fields.pop("description", None) or action.describe(),
            action=action,
            precondition=precondition or Never(),
            **fields,
        ))
        return step_id


# ── Builder ──────────────────────────────────────────────────────────


def build_plan(
    product: str,
    facts: PlatformFacts,
    options: PlanOptions | None = None,
) -> Plan:
    """Build the installation plan for ``product`` on ``facts``.

    Raises:
        UnknownProductError: No recipe for ``product``.
        UnsupportedPlatformError: ``facts`` has no family or package manager.
        PlanError: The built plan violates an ordering rule.
    """
    options = options or PlanOptions()
    name = resolve_product(product)
    if not facts.supported:
        raise UnsupportedPlatformError(f"Cannot plan for {facts.describe()}")

    recipe = PRODUCT_RECIPES[name]
    tvars = _template_vars(facts, options)
    out = _Steps()

    conflicts = tuple(_for_family(recipe.get("conflicts"), facts))
    prereqs = tuple(_for_family(recipe.get("prerequisites"), facts))
    targets = tuple(_for_family(recipe.get("packages"), facts))
    repo = _repo(recipe, facts, tvars)

    if conflicts:
        out.add(
            StepPhase.REMOVE_CONFLICTING, RemovePackages(names=conflicts),
            PackagesAbsent(names=conflicts),
            retryable=True, on_failure=FailurePolicy.WARN_AND_CONTINUE,
        )

    # Debian needs a fresh index before the first install of the run
    early_index = facts.family == OSFamily.DEBIAN and bool(prereqs)
    if early_index:
        satisfied_by = prereqs if repo else prereqs + targets
        out.add(
            StepPhase.UPDATE_INDEX, UpdateIndex(), PackagesInstalled(names=satisfied_by),
            retryable=True,
        )

    if prereqs:
        out.add(
            StepPhase.INSTALL_PREREQUISITES, InstallPackages(names=prereqs),
            PackagesInstalled(names=prereqs), retryable=True,
        )
    for user in recipe.get("users", []):
        out.add(
            StepPhase.INSTALL_PREREQUISITES, EnsureSystemUser(name=user), UserExists(name=user),
            suffix=f"user-{user}",
        )

    if repo:
        out.add(StepPhase.ADD_REPO, repo, RepoConfigured(repo=repo), retryable=True)

    if repo or not early_index:
        out.add(
            StepPhase.UPDATE_INDEX, UpdateIndex(), PackagesInstalled(names=targets),
            retryable=True,
        )

    if targets:
        out.add(
            StepPhase.INSTALL_TARGET, InstallPackages(names=targets),
            PackagesInstalled(names=targets), retryable=True,
        )
    for archive in recipe.get("archives", []):
        action = InstallArchive(
            name=archive["name"],
            url=archive["url"].format(**tvars),
            binaries=tuple(archive["binaries"]),
            sha256=archive.get("sha256"),
        )
        out.add(
            StepPhase.INSTALL_TARGET, action,
            BinaryPresent(
                path=f"{action.dest_dir}/{action.binaries[0]}",
                version=archive["version"].format(**tvars),
            ),
            suffix=archive["name"], retryable=True,
        )

    for directory in recipe.get("directories", []):
        out.add(
            StepPhase.WRITE_CONFIGURATION,
            EnsureDirectory(path=directory["path"], owner=directory.get("owner")),
            DirectoryExists(path=directory["path"]),
            suffix=PurePosixPath(directory["path"]).name,
        )
    # service → write steps whose change requires a restart
    restart_triggers: dict[str, list[str]] = {}
    for entry in recipe.get("files", []):
        spec = {k: v for k, v in entry.items() if k != "restarts"}
        step_id = out.add(
            StepPhase.WRITE_CONFIGURATION,
            WriteFile(**spec),
            FileMatches(path=spec["path"], content=spec["content"], mode=spec.get("mode")),
            suffix=PurePosixPath(spec["path"]).name,
        )
        for service in entry.get("restarts", []):
            restart_triggers.setdefault(service, []).append(step_id)
    if options.group_user and recipe.get("group"):
        group = recipe["group"]
        out.add(
            StepPhase.WRITE_CONFIGURATION,
            AddUserToGroup(user=options.group_user, group=group),
            UserInGroup(user=options.group_user, group=group),
            suffix=f"group-{group}", on_failure=FailurePolicy.WARN_AND_CONTINUE,
        )

    services = tuple(recipe.get("services", []))
    if services:
        out.add(
            StepPhase.ENABLE_AND_START, EnableService(names=services),
            ServicesActive(names=services),
        )
    # A running unit keeps its old configuration until restarted
    for service in services:
        triggers = restart_triggers.get(service)
        if triggers:
            out.add(
                StepPhase.ENABLE_AND_START, StartService(names=(service,), restart=True),
                StepsUnchanged(step_ids=tuple(triggers)),
                suffix=f"restart-{service}",
            )

    checks = product_checks(name, facts, options)
    if checks:
        out.add(
            StepPhase.RUN_POST_CHECKS, RunCheck(checks=checks), Never(),
            idempotent=False, retryable=True,
            on_failure=(
                FailurePolicy.ABORT if options.strict_verification
                else FailurePolicy.WARN_AND_CONTINUE
            ),
        )

    ports = tuple(recipe.get("firewall", []))
    if options.firewall and ports:
        zone = recipe.get("firewall_zone", {})
        extras = {
            "trusted_interfaces": tuple(zone.get("trusted_interfaces", ())),
            "masquerade": bool(zone.get("masquerade", False)),
        }
        out.add(
            StepPhase.CONFIGURE_FIREWALL, OpenFirewallPorts(ports=ports, **extras),
            FirewallPortsOpen(ports=ports, **extras), on_failure=FailurePolicy.WARN_AND_CONTINUE,
        )

    plan = Plan(product=name, facts=facts, steps=tuple(out.steps))
    violations = validate_plan(plan)
    if violations:
        raise PlanError("; ".join(violations))
    logger.debug("Built plan %s for %s: %s", name, facts.describe(), plan.step_ids)
    return plan


def validate_plan(plan: Plan) -> list[str]:
    """Ordering and uniqueness violations in ``plan`` (empty when valid)."""
    violations: list[str] = []
    seen: set[str] = set()
    for step in plan.steps:
        if step.id in seen:
            violations.append(f"duplicate step id '{step.id}'")
        if isinstance(step.precondition, StepsUnchanged):
            for ref in step.precondition.step_ids:
                if ref not in seen:
                    violations.append(f"'{step.id}' depends on '{ref}' which does not precede it")
        seen.add(step.id)

    phases = plan.phases
    installs = [i for i, p in enumerate(phases) if p == StepPhase.INSTALL_TARGET]
    for i, phase in enumerate(phases):
        if phase != StepPhase.ADD_REPO:
            continue
        if installs and i > installs[0]:
            violations.append(f"'{plan.steps[i].id}' after install-target-packages")
            continue
        following = [j for j in installs if j > i]
        if not following:
            continue
        between = phases[i + 1:following[0]]
        if StepPhase.UPDATE_INDEX not in between:
            violations.append(
                f"no update-index between '{plan.steps[i].id}' and "
                f"'{plan.steps[following[0]].id}'"
            )
    return violations
