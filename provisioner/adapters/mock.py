"""
Simulated host — in-memory adapter for mock mode and tests.

FakeHost keeps packages, repositories, files, users, services and the
firewall in plain Python collections and applies capabilities to them
the way a real host would: repository packages only become installable
after the index has been refreshed, installed packages bring their
binaries and systemd units, started services listen on their ports.

Failures can be injected per capability kind with ``fail()``.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

from provisioner.adapters.base import Adapter
from provisioner.core.errors import (
    InstallError,
    InsufficientPrivilegesError,
    NetworkError,
    ProvisionError,
    ServiceError,
)
from provisioner.core.models import (
    CheckResult,
    OSFamily,
    PackageManagerKind,
    PlatformFacts,
)

# ── Simulated platforms ──────────────────────────────────────────────

SIMULATED_PLATFORMS: dict[str, PlatformFacts] = {
    "ubuntu-22.04": PlatformFacts(
        family=OSFamily.DEBIAN, distro_id="ubuntu", version_major=22,
        package_manager=PackageManagerKind.APT, codename="jammy",
    ),
    "debian-12": PlatformFacts(
        family=OSFamily.DEBIAN, distro_id="debian", version_major=12,
        package_manager=PackageManagerKind.APT, codename="bookworm",
    ),
    "rocky-9": PlatformFacts(
        family=OSFamily.RHEL, distro_id="rocky", version_major=9,
        package_manager=PackageManagerKind.DNF,
    ),
    "almalinux-9": PlatformFacts(
        family=OSFamily.RHEL, distro_id="almalinux", version_major=9,
        package_manager=PackageManagerKind.DNF,
    ),
    "centos-7": PlatformFacts(
        family=OSFamily.RHEL, distro_id="centos", version_major=7,
        package_manager=PackageManagerKind.YUM,
    ),
}

# Packages only installable once their repository is configured and indexed
_REPO_PROVIDES: dict[str, tuple[str, ...]] = {
    "nginx": ("nginx",),
    "docker": (
        "docker-ce", "docker-ce-cli", "containerd.io",
        "docker-buildx-plugin", "docker-compose-plugin",
    ),
    "grafana": ("grafana",),
}

# What installing a package leaves behind: binaries (path → version banner),
# systemd units and groups
_PACKAGE_EFFECTS: dict[str, dict] = {
    "nginx": {
        "binaries": {"/usr/sbin/nginx": "nginx version: nginx/1.26.2"},
        "units": ("nginx",),
    },
    "docker-ce": {
        "binaries": {"/usr/bin/dockerd": "Docker version 27.3.1, build 41ca978"},
        "units": ("docker",),
        "groups": ("docker",),
    },
    "docker-ce-cli": {
        "binaries": {"/usr/bin/docker": "Docker version 27.3.1, build ce12230"},
    },
    "containerd.io": {
        "binaries": {"/usr/bin/containerd": "containerd containerd.io 1.7.22"},
        "units": ("containerd",),
    },
    "grafana": {
        "binaries": {"/usr/sbin/grafana": "grafana version 11.3.0"},
        "units": ("grafana-server",),
    },
    "curl": {
        "binaries": {"/usr/bin/curl": "curl 8.5.0 (x86_64-pc-linux-gnu)"},
    },
}

_SERVICE_PORTS: dict[str, int] = {
    "nginx": 80,
    "grafana-server": 3000,
    "prometheus": 9090,
    "node_exporter": 9100,
}

_UNIT_DIR = "/etc/systemd/system"
_VERSION_IN_URL = re.compile(r"(\d+\.\d+\.\d+)")


class FakeHost(Adapter):
    """In-memory host implementing every capability.

    Args:
        facts: Platform the host pretends to be.
        privileged: Whether ``check_privileges`` passes.
        packages: Packages installed up front.
        firewall: Active firewall (``"ufw"``/``"firewalld"``) or None.
        users: Accounts that exist up front (``root`` always does).
    """

    def __init__(
        self,
        facts: PlatformFacts,
        *,
        privileged: bool = True,
        packages: tuple[str, ...] | set[str] = (),
        firewall: str | None = None,
        users: tuple[str, ...] = (),
    ):
        self.facts = facts
        self.privileged = privileged
        self.packages: set[str] = set()
        self.repos: dict = {}
        self.indexed_repos: set[str] = set()
        self.files: dict[str, tuple[str, int]] = {}
        self.dirs: set[str] = set()
        self.users: set[str] = {"root", *users}
        self.groups: dict[str, set[str]] = {}
        self.units: set[str] = set()
        self.enabled: set[str] = set()
        self.active: set[str] = set()
        self.binaries: dict[str, str] = {}
        self.firewall = firewall
        self.allowed_ports: set[str] = set()
        self.trusted_interfaces: set[str] = set()
        self.masquerade = False
        self.restarts: list[str] = []
        self.command_results: dict[str, bool] = {}
        self._failures: dict[str, list] = {}
        self._call_log: list = []
        for name in packages:
            self._install(name)

    @classmethod
    def for_profile(cls, profile: str, **kwargs) -> FakeHost:
        """Build a host for one of SIMULATED_PLATFORMS."""
        try:
            facts = SIMULATED_PLATFORMS[profile]
        except KeyError:
            known = ", ".join(sorted(SIMULATED_PLATFORMS))
            raise ProvisionError(f"Unknown profile '{profile}' (known: {known})") from None
        return cls(facts, **kwargs)

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list:
        """Every capability this host was asked to apply."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def listening(self) -> set[int]:
        return {_SERVICE_PORTS[s] for s in self.active if s in _SERVICE_PORTS}

    def is_available(self) -> bool:
        return True

    def check_privileges(self) -> None:
        if not self.privileged:
            raise InsufficientPrivilegesError("simulated host is not privileged")

    def fail(self, kind: str, error: Exception | None = None, times: int | None = None) -> None:
        """Make ``apply`` raise for capabilities of ``kind``.

        ``times=None`` fails forever; otherwise the next ``times`` calls.
        """
        self._failures[kind] = [error or NetworkError(f"simulated {kind} failure"), times]

    def reset(self) -> None:
        """Clear call log, recorded restarts and injected failures."""
        self._call_log.clear()
        self.restarts.clear()
        self._failures.clear()

    # ── Internal state changes ───────────────────────────────────

    def _install(self, name: str) -> None:
        self.packages.add(name)
        effects = _PACKAGE_EFFECTS.get(name, {})
        self.binaries.update(effects.get("binaries", {}))
        self.units.update(effects.get("units", ()))
        for group in effects.get("groups", ()):
            self.groups.setdefault(group, set())

    def _available(self, name: str) -> bool:
        for repo, provides in _REPO_PROVIDES.items():
            if name in provides:
                return repo in self.indexed_repos
        return True

    def _banner(self, binary: str) -> str | None:
        for path, banner in self.binaries.items():
            if PurePosixPath(path).name == binary:
                return banner
        return None

    # ── Dispatch ─────────────────────────────────────────────────

    def apply(self, capability, timeout: float | None = None) -> str:
        self._call_log.append(capability)
        failure = self._failures.get(capability.kind)
        if failure is not None:
            error, times = failure
            if times is None or times > 0:
                if times is not None:
                    failure[1] = times - 1
                raise error
        return getattr(self, f"_apply_{capability.kind}")(capability)

    def holds(self, precondition) -> bool:
        return bool(getattr(self, f"_holds_{precondition.kind}")(precondition))

    def evaluate(self, check) -> CheckResult:
        return getattr(self, f"_check_{check.kind}")(check)

    # ── Capabilities ─────────────────────────────────────────────

    def _apply_update_index(self, cap) -> str:
        self.indexed_repos = set(self.repos)
        return "package index refreshed"

    def _apply_install_packages(self, cap) -> str:
        unavailable = [n for n in cap.names if not self._available(n)]
        if unavailable:
            raise InstallError(unavailable, "no installation candidate")
        for name in cap.names:
            self._install(name)
        return f"installed {' '.join(cap.names)}"

    def _apply_remove_packages(self, cap) -> str:
        present = [n for n in cap.names if n in self.packages]
        self.packages.difference_update(present)
        return f"removed {' '.join(present)}" if present else "nothing to remove"

    def _apply_add_signed_repo(self, cap) -> str:
        if self.repos.get(cap.name) == cap:
            return f"repository {cap.name} already configured"
        self.repos[cap.name] = cap
        return f"added repository {cap.name}"

    def _apply_write_file(self, cap) -> str:
        self.files[cap.path] = (cap.content, cap.mode)
        path = PurePosixPath(cap.path)
        if str(path.parent) == _UNIT_DIR and path.suffix == ".service":
            self.units.add(path.stem)
        return f"wrote {cap.path}"

    def _apply_ensure_directory(self, cap) -> str:
        self.dirs.add(cap.path)
        return f"created {cap.path}"

    def _require_unit(self, service: str) -> None:
        if service not in self.units:
            raise ServiceError(service, "not-found", f"Unit {service}.service not found")

    def _apply_enable_service(self, cap) -> str:
        for service in cap.names:
            self._require_unit(service)
            self.enabled.add(service)
            if cap.start:
                self.active.add(service)
        return f"enabled {' '.join(cap.names)}"

    def _apply_start_service(self, cap) -> str:
        for service in cap.names:
            self._require_unit(service)
            self.active.add(service)
            if cap.restart:
                self.restarts.append(service)
        verb = "restarted" if cap.restart else "started"
        return f"{verb} {' '.join(cap.names)}"

    def _apply_ensure_system_user(self, cap) -> str:
        self.users.add(cap.name)
        return f"created system user {cap.name}"

    def _apply_add_user_to_group(self, cap) -> str:
        if cap.user not in self.users:
            raise ProvisionError(f"usermod: user '{cap.user}' does not exist")
        if cap.group not in self.groups:
            raise ProvisionError(f"usermod: group '{cap.group}' does not exist")
        self.groups[cap.group].add(cap.user)
        return f"added {cap.user} to {cap.group}"

    def _apply_install_archive(self, cap) -> str:
        match = _VERSION_IN_URL.search(cap.url)
        version = match.group(1) if match else "0.0.0"
        for binary in cap.binaries:
            self.binaries[f"{cap.dest_dir}/{binary}"] = f"{binary}, version {version}"
        return f"installed {', '.join(cap.binaries)} to {cap.dest_dir}"

    def _apply_open_firewall_ports(self, cap) -> str:
        if self.firewall is None:
            return "no firewall change needed"
        added = [p for p in cap.ports if p not in self.allowed_ports]
        self.allowed_ports.update(added)
        if self.firewall == "firewalld":
            for iface in cap.trusted_interfaces:
                if iface not in self.trusted_interfaces:
                    self.trusted_interfaces.add(iface)
                    added.append(f"trusted:{iface}")
            if cap.masquerade and not self.masquerade:
                self.masquerade = True
                added.append("masquerade")
        return f"allowed {' '.join(added)}" if added else "no firewall change needed"

    def _apply_run_check(self, cap) -> str:
        return self.run_checks(cap.checks)

    # ── Preconditions ────────────────────────────────────────────

    def _holds_never(self, pre) -> bool:
        return False

    def _holds_packages_installed(self, pre) -> bool:
        return all(n in self.packages for n in pre.names)

    def _holds_packages_absent(self, pre) -> bool:
        return not any(n in self.packages for n in pre.names)

    def _holds_repo_configured(self, pre) -> bool:
        return self.repos.get(pre.repo.name) == pre.repo

    def _holds_file_matches(self, pre) -> bool:
        current = self.files.get(pre.path)
        if current is None:
            return False
        content, mode = current
        return content == pre.content and (pre.mode is None or mode == pre.mode)

    def _holds_directory_exists(self, pre) -> bool:
        return pre.path in self.dirs

    def _holds_services_active(self, pre) -> bool:
        return all(s in self.enabled and s in self.active for s in pre.names)

    def _holds_user_exists(self, pre) -> bool:
        return pre.name in self.users

    def _holds_user_in_group(self, pre) -> bool:
        return pre.user in self.groups.get(pre.group, set())

    def _holds_binary_present(self, pre) -> bool:
        banner = self.binaries.get(pre.path)
        if banner is None:
            return False
        return pre.version is None or pre.version in banner

    def _holds_firewall_ports_open(self, pre) -> bool:
        if self.firewall is None:
            return True
        if not set(pre.ports) <= self.allowed_ports:
            return False
        if self.firewall != "firewalld":
            return True
        return (
            set(pre.trusted_interfaces) <= self.trusted_interfaces
            and (self.masquerade or not pre.masquerade)
        )

    def _holds_steps_unchanged(self, pre) -> bool:
        # Run state; only the executor can answer it
        return False

    # ── Checks ───────────────────────────────────────────────────

    def _check_service_active(self, check) -> CheckResult:
        if check.name in self.active:
            status = "active"
        elif check.name in self.units:
            status = "inactive"
        else:
            status = "unknown"
        return CheckResult(name=check.label, passed=status == "active", detail=status)

    def _check_binary_version(self, check) -> CheckResult:
        banner = self._banner(check.binary)
        if banner is None:
            return CheckResult(name=check.label, passed=False, detail="not found on PATH")
        match = re.search(check.pattern, banner)
        if not match:
            return CheckResult(name=check.label, passed=False, detail=f"unparseable: {banner}")
        return CheckResult(name=check.label, passed=True, detail=match.group(1))

    def _check_port_listening(self, check) -> CheckResult:
        passed = check.port in self.listening
        detail = f"{check.host}:{check.port}" if passed else "connection refused"
        return CheckResult(name=check.label, passed=passed, detail=detail)

    def _check_command_succeeds(self, check) -> CheckResult:
        if check.name in self.command_results:
            passed = self.command_results[check.name]
        else:
            passed = self._banner(PurePosixPath(check.argv[0]).name) is not None
        return CheckResult(name=check.label, passed=passed, detail="ok" if passed else "exit 1")
