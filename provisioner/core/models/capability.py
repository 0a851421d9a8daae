"""
Capabilities, preconditions and checks — the closed vocabulary of steps.

A Capability is an operation a step asks the adapter to perform.
A Precondition is a predicate over live system state (StepsUnchanged,
over the current run); when it holds, an idempotent step has nothing to
do. A CheckSpec is a post-install probe used by both the run-post-checks
step and the Verifier.

All three are closed, discriminated unions keyed on ``kind``. Adding a
variant means adding a handler to every adapter.
"""

from __future__ import annotations

from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _Value(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── Capabilities ─────────────────────────────────────────────────────


class _Capability(_Value):
    network: ClassVar[bool] = False

    def describe(self) -> str:
        return self.kind  # type: ignore[attr-defined]


class UpdateIndex(_Capability):
    kind: Literal["update_index"] = "update_index"
    network: ClassVar[bool] = True

    def describe(self) -> str:
        return "refresh package index"


class InstallPackages(_Capability):
    kind: Literal["install_packages"] = "install_packages"
    names: tuple[str, ...]
    network: ClassVar[bool] = True

    def describe(self) -> str:
        return f"install {' '.join(self.names)}"


class RemovePackages(_Capability):
    kind: Literal["remove_packages"] = "remove_packages"
    names: tuple[str, ...]

    def describe(self) -> str:
        return f"remove {' '.join(self.names)}"


class AddSignedRepo(_Capability):
    """A package repository trusted through a pinned signing key.

    ``url``/``suite``/``components`` are already rendered for the target
    platform. ``key_fingerprints`` lists every primary key fingerprint the
    fetched key file may contain; an empty tuple skips the check.
    """

    kind: Literal["add_signed_repo"] = "add_signed_repo"
    name: str
    url: str
    key_url: str
    key_fingerprints: tuple[str, ...] = ()
    suite: str = ""
    components: str = ""
    network: ClassVar[bool] = True

    def describe(self) -> str:
        return f"add signed repository {self.name} ({self.url})"


class WriteFile(_Capability):
    kind: Literal["write_file"] = "write_file"
    path: str
    content: str
    mode: int = 0o644
    owner: str | None = None        # "user" or "user:group"

    def describe(self) -> str:
        return f"write {self.path}"


class EnsureDirectory(_Capability):
    kind: Literal["ensure_directory"] = "ensure_directory"
    path: str
    mode: int = 0o755
    owner: str | None = None

    def describe(self) -> str:
        return f"create directory {self.path}"


class EnableService(_Capability):
    kind: Literal["enable_service"] = "enable_service"
    names: tuple[str, ...]
    start: bool = True

    def describe(self) -> str:
        verb = "enable and start" if self.start else "enable"
        return f"{verb} {' '.join(self.names)}"


class StartService(_Capability):
    kind: Literal["start_service"] = "start_service"
    names: tuple[str, ...]
    restart: bool = False

    def describe(self) -> str:
        verb = "restart" if self.restart else "start"
        return f"{verb} {' '.join(self.names)}"


class EnsureSystemUser(_Capability):
    kind: Literal["ensure_system_user"] = "ensure_system_user"
    name: str
    shell: str = "/usr/sbin/nologin"

    def describe(self) -> str:
        return f"create system user {self.name}"


class AddUserToGroup(_Capability):
    kind: Literal["add_user_to_group"] = "add_user_to_group"
    user: str
    group: str

    def describe(self) -> str:
        return f"add {self.user} to group {self.group}"


class InstallArchive(_Capability):
    """Install binaries from a release tarball."""

    kind: Literal["install_archive"] = "install_archive"
    name: str
    url: str
    binaries: tuple[str, ...]
    dest_dir: str = "/usr/local/bin"
    sha256: str | None = None
    network: ClassVar[bool] = True

    def describe(self) -> str:
        return f"install {self.name} from {self.url}"


class OpenFirewallPorts(_Capability):
    """Allow ports through the active local firewall.

    ``trusted_interfaces`` and ``masquerade`` only apply to firewalld,
    where bridge traffic (e.g. ``docker0``) is otherwise dropped.
    """

    kind: Literal["open_firewall_ports"] = "open_firewall_ports"
    ports: tuple[str, ...]          # "80/tcp"
    trusted_interfaces: tuple[str, ...] = ()
    masquerade: bool = False

    def describe(self) -> str:
        extra = [f"trust {i}" for i in self.trusted_interfaces]
        if self.masquerade:
            extra.append("masquerade")
        suffix = f" ({', '.join(extra)})" if extra else ""
        return f"allow {' '.join(self.ports)} through the local firewall{suffix}"


# ── Checks ───────────────────────────────────────────────────────────


class ServiceActive(_Value):
    kind: Literal["service_active"] = "service_active"
    name: str

    @property
    def label(self) -> str:
        return f"service:{self.name}"


class BinaryVersion(_Value):
    kind: Literal["binary_version"] = "binary_version"
    binary: str
    args: tuple[str, ...] = ("--version",)
    pattern: str = r"(\d+\.\d+(?:\.\d+)?)"

    @property
    def label(self) -> str:
        return f"version:{self.binary}"


class PortListening(_Value):
    kind: Literal["port_listening"] = "port_listening"
    port: int
    host: str = "127.0.0.1"

    @property
    def label(self) -> str:
        return f"port:{self.port}"


class CommandSucceeds(_Value):
    kind: Literal["command_succeeds"] = "command_succeeds"
    name: str
    argv: tuple[str, ...]

    @property
    def label(self) -> str:
        return f"command:{self.name}"


CheckSpec = Annotated[
    Union[ServiceActive, BinaryVersion, PortListening, CommandSucceeds],
    Field(discriminator="kind"),
]


class RunCheck(_Capability):
    kind: Literal["run_check"] = "run_check"
    checks: tuple[CheckSpec, ...]

    def describe(self) -> str:
        return f"run {len(self.checks)} post-install checks"


Capability = Annotated[
    Union[
        UpdateIndex,
        InstallPackages,
        RemovePackages,
        AddSignedRepo,
        WriteFile,
        EnsureDirectory,
        EnableService,
        StartService,
        EnsureSystemUser,
        AddUserToGroup,
        InstallArchive,
        OpenFirewallPorts,
        RunCheck,
    ],
    Field(discriminator="kind"),
]


# ── Preconditions ────────────────────────────────────────────────────


class Never(_Value):
    """Never satisfied: the step always runs."""

    kind: Literal["never"] = "never"

    def describe(self) -> str:
        return "always runs"


class PackagesInstalled(_Value):
    kind: Literal["packages_installed"] = "packages_installed"
    names: tuple[str, ...]

    def describe(self) -> str:
        return f"{' '.join(self.names)} installed"


class PackagesAbsent(_Value):
    kind: Literal["packages_absent"] = "packages_absent"
    names: tuple[str, ...]

    def describe(self) -> str:
        return "no conflicting packages installed"


class RepoConfigured(_Value):
    kind: Literal["repo_configured"] = "repo_configured"
    repo: AddSignedRepo

    def describe(self) -> str:
        return f"repository {self.repo.name} configured"


class FileMatches(_Value):
    kind: Literal["file_matches"] = "file_matches"
    path: str
    content: str
    mode: int | None = None

    def describe(self) -> str:
        return f"{self.path} up to date"


class DirectoryExists(_Value):
    kind: Literal["directory_exists"] = "directory_exists"
    path: str

    def describe(self) -> str:
        return f"{self.path} exists"


class ServicesActive(_Value):
    """Every service is enabled and active."""

    kind: Literal["services_active"] = "services_active"
    names: tuple[str, ...]

    def describe(self) -> str:
        return f"{' '.join(self.names)} enabled and active"


class UserExists(_Value):
    kind: Literal["user_exists"] = "user_exists"
    name: str

    def describe(self) -> str:
        return f"user {self.name} exists"


class UserInGroup(_Value):
    kind: Literal["user_in_group"] = "user_in_group"
    user: str
    group: str

    def describe(self) -> str:
        return f"{self.user} in group {self.group}"


class BinaryPresent(_Value):
    kind: Literal["binary_present"] = "binary_present"
    path: str
    version: str | None = None

    def describe(self) -> str:
        suffix = f" {self.version}" if self.version else ""
        return f"{self.path}{suffix} present"


class FirewallPortsOpen(_Value):
    """No active firewall, or every port already allowed."""

    kind: Literal["firewall_ports_open"] = "firewall_ports_open"
    ports: tuple[str, ...]
    trusted_interfaces: tuple[str, ...] = ()
    masquerade: bool = False

    def describe(self) -> str:
        return f"{' '.join(self.ports)} allowed"


class StepsUnchanged(_Value):
    """None of ``step_ids`` changed the host earlier in this run.

    Run state rather than host state: the executor evaluates it from
    the outcomes it has recorded, never the adapter.
    """

    kind: Literal["steps_unchanged"] = "steps_unchanged"
    step_ids: tuple[str, ...]

    def describe(self) -> str:
        return f"{', '.join(self.step_ids)} unchanged this run"


Precondition = Annotated[
    Union[
        Never,
        PackagesInstalled,
        PackagesAbsent,
        RepoConfigured,
        FileMatches,
        DirectoryExists,
        ServicesActive,
        UserExists,
        UserInGroup,
        BinaryPresent,
        FirewallPortsOpen,
        StepsUnchanged,
    ],
    Field(discriminator="kind"),
]
