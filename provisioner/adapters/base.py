"""
Adapter base — the capability contract between engine and host.

The executor and verifier only talk to the host through this protocol,
never directly to a package manager, systemd or the firewall.

Unlike a fire-and-forget adapter, ``apply`` raises: the executor needs
the error type to decide between retry, warn-and-continue and abort.
``holds`` and ``evaluate`` never raise.
"""

from __future__ import annotations

import logging
import os
import re
import socket
import tarfile
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Callable

from provisioner.adapters.shell.command import CommandResult, CommandRunner
from provisioner.adapters.shell.fetch import download, fetch_bytes
from provisioner.adapters.shell.filesystem import (
    ensure_directory,
    file_matches,
    sha256_bytes,
    verify_sha256,
    write_atomic,
)
from provisioner.adapters.shell.firewall import LocalFirewall
from provisioner.adapters.shell.services import SystemdServiceManager
from provisioner.core.errors import (
    FatalError,
    InstallError,
    InsufficientPrivilegesError,
    KeyVerificationError,
    NetworkError,
    PackageLockError,
    ProvisionError,
    VerificationFailure,
)
from provisioner.core.models import (
    AddSignedRepo,
    BinaryVersion,
    CheckResult,
    CommandSucceeds,
    PlatformFacts,
    PortListening,
    ServiceActive,
)

logger = logging.getLogger(__name__)

# Default bound for network-capable operations (seconds)
DEFAULT_NETWORK_TIMEOUT = 300

_LOCK_MARKERS = (
    "Could not get lock",
    "Unable to acquire the dpkg frontend lock",
    "Unable to lock the administration directory",
    "Another app is currently holding the yum lock",
    "Waiting for process with pid",
    "Existing lock",
)

_NETWORK_MARKERS = (
    "Temporary failure resolving",
    "Failed to fetch",
    "Could not resolve",
    "Cannot download",
    "Curl error",
    "Failed to download metadata",
    "Connection timed out",
)

_UNIT_DIR = "/etc/systemd/system"


class Adapter(ABC):
    """Abstract base class for every host adapter.

    To support a new package manager:
        1. Subclass PackageManagerAdapter
        2. Implement the package-manager hooks
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g. 'apt', 'dnf', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the underlying package manager exists. Never raises."""

    @abstractmethod
    def check_privileges(self) -> None:
        """Raise InsufficientPrivilegesError if the host cannot be mutated."""

    @abstractmethod
    def apply(self, capability, timeout: float | None = None) -> str:
        """Perform ``capability`` and return a short message.

        Raises:
            ProvisionError: Any failure; ``retryable`` decides retries.
        """

    @abstractmethod
    def holds(self, precondition) -> bool:
        """Evaluate a precondition against live state. Never raises."""

    @abstractmethod
    def evaluate(self, check) -> CheckResult:
        """Run a post-install check. Never raises."""

    def run_checks(self, checks) -> str:
        """Evaluate ``checks``; raise VerificationFailure if any fails."""
        results = [self.evaluate(check) for check in checks]
        failed = [r for r in results if not r.passed]
        if failed:
            raise VerificationFailure(
                "; ".join(f"{r.name}: {r.detail}" for r in failed)
            )
        return f"{len(results)} checks passed"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class PackageManagerAdapter(Adapter):
    """Shared implementation for the real package-manager adapters.

    Everything that is not package-manager specific lives here: files,
    systemd services, the local firewall, users, release archives,
    signed repositories and checks. Subclasses supply the package
    manager commands and the repository definition format.

    Args:
        facts: Detected platform.
        runner: Command runner (tests pass a scripted fake).
        root: Filesystem root prefixed to every managed path.
        fetcher: ``(url, timeout) -> bytes`` used for signing keys.
        downloader: ``(url, dest, timeout) -> Path`` used for archives.
        require_root: Enforce euid 0 in ``check_privileges``.
    """

    binary: str = ""
    env: dict[str, str] = {}

    def __init__(
        self,
        facts: PlatformFacts,
        runner: CommandRunner | None = None,
        root: Path = Path("/"),
        fetcher: Callable[[str, float], bytes] = fetch_bytes,
        downloader: Callable[[str, Path, float], Path] = download,
        require_root: bool = True,
    ):
        self.facts = facts
        self.runner = runner or CommandRunner()
        self.root = Path(root)
        self.services = SystemdServiceManager(self.runner)
        self.firewall = LocalFirewall(self.runner)
        self._fetch = fetcher
        self._download = downloader
        self._require_root = require_root

    @property
    def name(self) -> str:
        return self.binary

    def is_available(self) -> bool:
        return self.runner.which(self.binary) is not None

    def check_privileges(self) -> None:
        if self._require_root and os.geteuid() != 0:
            raise InsufficientPrivilegesError(
                "Root privileges are required to install packages and manage services"
            )
        if not self.is_available():
            raise FatalError(f"Package manager '{self.binary}' not found")

    def path(self, path: str) -> Path:
        """Map an absolute host path under ``root``."""
        return self.root / path.lstrip("/")

    # ── Package manager hooks ────────────────────────────────────

    @abstractmethod
    def index_cmd(self) -> list[str]:
        """Command that refreshes the package index."""

    @abstractmethod
    def install_cmd(self, names: tuple[str, ...]) -> list[str]:
        """Command that installs ``names`` non-interactively."""

    @abstractmethod
    def remove_cmd(self, names: tuple[str, ...]) -> list[str]:
        """Command that removes ``names`` non-interactively."""

    @abstractmethod
    def package_installed(self, name: str) -> bool:
        """Whether ``name`` is installed."""

    @abstractmethod
    def key_path(self, repo_name: str) -> str:
        """Deterministic signing-key path for a repository."""

    @abstractmethod
    def repo_path(self, repo_name: str) -> str:
        """Deterministic repository definition path."""

    @abstractmethod
    def render_repo_definition(self, repo: AddSignedRepo, key_sha256: str) -> str:
        """Repository definition referencing the stored key."""

    def missing_packages(self, names) -> list[str]:
        return [n for n in names if not self.package_installed(n)]

    def _classify(self, result: CommandResult) -> ProvisionError:
        """Map a failed package-manager command onto the error taxonomy."""
        if result.timed_out:
            return NetworkError(result.summary())
        if result.not_found:
            return FatalError(result.summary())
        output = result.output
        if any(marker in output for marker in _LOCK_MARKERS):
            return PackageLockError(f"{self.binary} is locked by another process")
        if any(marker in output for marker in _NETWORK_MARKERS):
            return NetworkError(result.summary())
        return ProvisionError(result.summary())

    def _run_pm(self, cmd: list[str], timeout: float | None) -> CommandResult:
        result = self.runner.run(
            cmd, timeout=timeout or DEFAULT_NETWORK_TIMEOUT, env_overrides=self.env
        )
        if not result.ok:
            raise self._classify(result)
        return result

    # ── Dispatch ─────────────────────────────────────────────────

    def apply(self, capability, timeout: float | None = None) -> str:
        handler = getattr(self, f"_apply_{capability.kind}", None)
        if handler is None:
            raise FatalError(f"{self.name} adapter cannot perform {capability.kind}")
        return handler(capability, timeout)

    def holds(self, precondition) -> bool:
        handler = getattr(self, f"_holds_{precondition.kind}", None)
        if handler is None:
            return False
        try:
            return bool(handler(precondition))
        except (ProvisionError, OSError, ValueError) as e:
            logger.debug("Precondition %s not evaluable: %s", precondition.kind, e)
            return False

    def evaluate(self, check) -> CheckResult:
        handler = getattr(self, f"_check_{check.kind}")
        try:
            return handler(check)
        except (ProvisionError, OSError, ValueError) as e:
            return CheckResult(name=check.label, passed=False, detail=str(e))

    # ── Packages ─────────────────────────────────────────────────

    def _apply_update_index(self, cap, timeout) -> str:
        self._run_pm(self.index_cmd(), timeout)
        return "package index refreshed"

    def _apply_install_packages(self, cap, timeout) -> str:
        result = self.runner.run(
            self.install_cmd(cap.names),
            timeout=timeout or DEFAULT_NETWORK_TIMEOUT,
            env_overrides=self.env,
        )
        detail = ""
        if not result.ok:
            error = self._classify(result)
            if error.retryable or isinstance(error, FatalError):
                raise error
            detail = result.summary()

        missing = self.missing_packages(cap.names)
        if missing:
            raise InstallError(missing, detail)
        return f"installed {' '.join(cap.names)}"

    def _apply_remove_packages(self, cap, timeout) -> str:
        present = tuple(n for n in cap.names if self.package_installed(n))
        if not present:
            return "nothing to remove"
        self._run_pm(self.remove_cmd(present), timeout)
        return f"removed {' '.join(present)}"

    def _holds_never(self, pre) -> bool:
        return False

    def _holds_packages_installed(self, pre) -> bool:
        return not self.missing_packages(pre.names)

    def _holds_packages_absent(self, pre) -> bool:
        return not any(self.package_installed(n) for n in pre.names)

    # ── Signed repositories ──────────────────────────────────────

    def key_fingerprints(self, key: bytes) -> list[str]:
        """Primary-key fingerprints in an (armored or binary) key file."""
        with tempfile.TemporaryDirectory(prefix="provisioner-gpg-") as home:
            key_file = Path(home) / "key"
            key_file.write_bytes(key)
            result = self.runner.run(
                ["gpg", "--homedir", home, "--batch", "--with-colons",
                 "--show-keys", str(key_file)],
                timeout=30,
            )
        if result.not_found:
            raise FatalError("gpg not found; cannot verify repository signing key")
        if not result.ok:
            raise KeyVerificationError(f"Cannot parse signing key: {result.summary()}")

        fingerprints: list[str] = []
        expect_primary = False
        for line in result.stdout.splitlines():
            fields = line.split(":")
            if fields[0] == "pub":
                expect_primary = True
            elif fields[0] == "sub":
                expect_primary = False
            elif fields[0] == "fpr" and expect_primary and len(fields) > 9:
                fingerprints.append(fields[9].upper())
                expect_primary = False
        return fingerprints

    def _verify_key(self, repo: AddSignedRepo, key: bytes) -> None:
        if not repo.key_fingerprints:
            return
        found = self.key_fingerprints(key)
        if not found:
            raise KeyVerificationError(f"{repo.key_url} contains no public key")
        expected = {fp.replace(" ", "").upper() for fp in repo.key_fingerprints}
        unexpected = [fp for fp in found if fp not in expected]
        if unexpected:
            raise KeyVerificationError(
                f"{repo.key_url}: unexpected key fingerprint(s) {', '.join(unexpected)}"
            )

    def _apply_add_signed_repo(self, repo: AddSignedRepo, timeout) -> str:
        key = self._fetch(repo.key_url, timeout or DEFAULT_NETWORK_TIMEOUT)
        self._verify_key(repo, key)

        written = []
        key_path = self.path(self.key_path(repo.name))
        if not file_matches(key_path, key):
            write_atomic(key_path, key, 0o644)
            written.append(self.key_path(repo.name))

        definition = self.render_repo_definition(repo, sha256_bytes(key))
        repo_path = self.path(self.repo_path(repo.name))
        if not file_matches(repo_path, definition):
            write_atomic(repo_path, definition, 0o644)
            written.append(self.repo_path(repo.name))

        if not written:
            return f"repository {repo.name} already configured"
        return f"wrote {', '.join(written)}"

    def _holds_repo_configured(self, pre) -> bool:
        key_path = self.path(self.key_path(pre.repo.name))
        if not key_path.is_file():
            return False
        definition = self.render_repo_definition(pre.repo, sha256_bytes(key_path.read_bytes()))
        return file_matches(self.path(self.repo_path(pre.repo.name)), definition)

    # ── Files ────────────────────────────────────────────────────

    def _apply_write_file(self, cap, timeout) -> str:
        target = self.path(cap.path)
        if file_matches(target, cap.content, cap.mode):
            return f"{cap.path} unchanged"
        write_atomic(target, cap.content, cap.mode, cap.owner)
        if str(PurePosixPath(cap.path).parent) == _UNIT_DIR:
            self.services.daemon_reload()
        return f"wrote {cap.path}"

    def _apply_ensure_directory(self, cap, timeout) -> str:
        created = ensure_directory(self.path(cap.path), cap.mode, cap.owner)
        return f"{'created' if created else 'updated'} {cap.path}"

    def _holds_file_matches(self, pre) -> bool:
        return file_matches(self.path(pre.path), pre.content, pre.mode)

    def _holds_directory_exists(self, pre) -> bool:
        return self.path(pre.path).is_dir()

    # ── Services ─────────────────────────────────────────────────

    def _apply_enable_service(self, cap, timeout) -> str:
        for service in cap.names:
            self.services.enable(service, start=cap.start)
        return f"enabled {' '.join(cap.names)}"

    def _apply_start_service(self, cap, timeout) -> str:
        for service in cap.names:
            self.services.start(service, restart=cap.restart)
        verb = "restarted" if cap.restart else "started"
        return f"{verb} {' '.join(cap.names)}"

    def _holds_services_active(self, pre) -> bool:
        return all(
            self.services.is_enabled(s) and self.services.is_active(s) for s in pre.names
        )

    def _holds_steps_unchanged(self, pre) -> bool:
        # Run state; only the executor can answer it
        return False

    # ── Users ────────────────────────────────────────────────────

    def _user_exists(self, name: str) -> bool:
        return self.runner.run(["id", "-u", name], timeout=10).ok

    def _apply_ensure_system_user(self, cap, timeout) -> str:
        if self._user_exists(cap.name):
            return f"user {cap.name} exists"
        result = self.runner.run(
            ["useradd", "--system", "--no-create-home", "--shell", cap.shell, cap.name],
            timeout=30,
        )
        if result.not_found:
            raise FatalError("useradd not found")
        if not result.ok:
            raise ProvisionError(f"Cannot create user {cap.name}: {result.summary()}")
        return f"created system user {cap.name}"

    def _apply_add_user_to_group(self, cap, timeout) -> str:
        result = self.runner.run(["usermod", "-aG", cap.group, cap.user], timeout=30)
        if result.not_found:
            raise FatalError("usermod not found")
        if not result.ok:
            raise ProvisionError(
                f"Cannot add {cap.user} to {cap.group}: {result.summary()}"
            )
        return f"added {cap.user} to {cap.group}"

    def _holds_user_exists(self, pre) -> bool:
        return self._user_exists(pre.name)

    def _holds_user_in_group(self, pre) -> bool:
        result = self.runner.run(["id", "-nG", pre.user], timeout=10)
        return result.ok and pre.group in result.stdout.split()

    # ── Release archives ─────────────────────────────────────────

    def _apply_install_archive(self, cap, timeout) -> str:
        with tempfile.TemporaryDirectory(prefix="provisioner-dl-") as tmp:
            archive = Path(tmp) / PurePosixPath(cap.url).name
            self._download(cap.url, archive, timeout or DEFAULT_NETWORK_TIMEOUT)
            if cap.sha256 and not verify_sha256(archive, cap.sha256):
                raise FatalError(f"Checksum mismatch for {cap.url}")

            try:
                with tarfile.open(archive) as tar:
                    members = {
                        PurePosixPath(m.name).name: m for m in tar.getmembers() if m.isfile()
                    }
                    for binary in cap.binaries:
                        member = members.get(binary)
                        if member is None:
                            raise FatalError(f"{binary} not found in {cap.url}")
                        data = tar.extractfile(member).read()
                        write_atomic(self.path(f"{cap.dest_dir}/{binary}"), data, 0o755)
            except tarfile.TarError as e:
                raise NetworkError(f"Corrupt archive {cap.url}: {e}") from e
        return f"installed {', '.join(cap.binaries)} to {cap.dest_dir}"

    def _holds_binary_present(self, pre) -> bool:
        target = self.path(pre.path)
        if not (target.is_file() and os.access(target, os.X_OK)):
            return False
        if pre.version is None:
            return True
        result = self.runner.run([str(target), "--version"], timeout=10)
        return result.ok and pre.version in result.output

    # ── Firewall ─────────────────────────────────────────────────

    def _apply_open_firewall_ports(self, cap, timeout) -> str:
        added = self.firewall.allow(cap.ports, cap.trusted_interfaces, cap.masquerade)
        return f"allowed {' '.join(added)}" if added else "no firewall change needed"

    def _holds_firewall_ports_open(self, pre) -> bool:
        return self.firewall.ports_open(pre.ports, pre.trusted_interfaces, pre.masquerade)

    # ── Checks ───────────────────────────────────────────────────

    def _apply_run_check(self, cap, timeout) -> str:
        return self.run_checks(cap.checks)

    def _check_service_active(self, check: ServiceActive) -> CheckResult:
        status = self.services.status(check.name)
        return CheckResult(name=check.label, passed=status == "active", detail=status)

    def _check_binary_version(self, check: BinaryVersion) -> CheckResult:
        if self.runner.which(check.binary) is None:
            return CheckResult(name=check.label, passed=False, detail="not found on PATH")
        result = self.runner.run([check.binary, *check.args], timeout=30)
        match = re.search(check.pattern, result.output)
        if not match:
            return CheckResult(
                name=check.label, passed=False,
                detail=f"no version in output of '{check.binary} {' '.join(check.args)}'",
            )
        return CheckResult(name=check.label, passed=True, detail=match.group(1))

    def _check_port_listening(self, check: PortListening) -> CheckResult:
        try:
            with socket.create_connection((check.host, check.port), timeout=3):
                pass
        except OSError as e:
            return CheckResult(name=check.label, passed=False, detail=str(e))
        return CheckResult(name=check.label, passed=True, detail=f"{check.host}:{check.port}")

    def _check_command_succeeds(self, check: CommandSucceeds) -> CheckResult:
        result = self.runner.run(list(check.argv), timeout=120)
        detail = "ok" if result.ok else result.summary()
        return CheckResult(name=check.label, passed=result.ok, detail=detail)
