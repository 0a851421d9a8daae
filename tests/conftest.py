"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from provisioner.adapters.mock import SIMULATED_PLATFORMS, FakeHost
from provisioner.adapters.shell.command import NOT_FOUND, CommandResult, CommandRunner
from provisioner.core.models import OSFamily, PackageManagerKind, PlatformFacts


class FakeRunner(CommandRunner):
    """Scripted command runner.

    Every command succeeds with empty output unless a response was
    registered with ``on()`` for a matching argv prefix. The most
    recently registered matching response wins.
    """

    def __init__(self, binaries=("apt-get", "dnf", "yum", "gpg", "systemctl")):
        super().__init__()
        self.binaries = set(binaries)
        self.calls: list[list[str]] = []
        self.envs: list[dict | None] = []
        self._responses: list[tuple[tuple[str, ...], dict]] = []

    def on(self, *prefix, returncode=0, stdout="", stderr="", timed_out=False):
        self._responses.append((prefix, {
            "returncode": returncode,
            "stdout": stdout,
            "stderr": stderr,
            "timed_out": timed_out,
        }))
        return self

    def missing(self, *prefix):
        return self.on(*prefix, returncode=NOT_FOUND, stderr=f"{prefix[0]}: not found")

    def which(self, name):
        return f"/usr/bin/{name}" if name in self.binaries else None

    def run(self, cmd, *, timeout=None, env_overrides=None, input_text=None):
        self.calls.append(list(cmd))
        self.envs.append(env_overrides)
        for prefix, spec in reversed(self._responses):
            if tuple(cmd[:len(prefix)]) == prefix:
                return CommandResult(argv=tuple(cmd), **spec)
        return CommandResult(argv=tuple(cmd), returncode=0)

    def ran(self, *prefix) -> bool:
        return any(tuple(c[:len(prefix)]) == prefix for c in self.calls)


@pytest.fixture
def make_runner():
    """Factory for scripted runners with a chosen set of binaries on PATH."""
    return FakeRunner


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def ubuntu() -> PlatformFacts:
    return SIMULATED_PLATFORMS["ubuntu-22.04"]


@pytest.fixture
def rocky() -> PlatformFacts:
    return SIMULATED_PLATFORMS["rocky-9"]


@pytest.fixture
def centos7() -> PlatformFacts:
    return SIMULATED_PLATFORMS["centos-7"]


@pytest.fixture
def unknown_facts() -> PlatformFacts:
    return PlatformFacts(
        family=OSFamily.UNKNOWN, distro_id="arch", package_manager=PackageManagerKind.NONE,
    )


@pytest.fixture
def ubuntu_host(ubuntu) -> FakeHost:
    return FakeHost(ubuntu)


@pytest.fixture
def rocky_host(rocky) -> FakeHost:
    return FakeHost(rocky)


@pytest.fixture
def os_root(tmp_path: Path):
    """Write release marker files under a temporary root."""

    def _write(os_release: str | None = None, redhat_release: str | None = None) -> Path:
        etc = tmp_path / "etc"
        etc.mkdir(exist_ok=True)
        if os_release is not None:
            (etc / "os-release").write_text(os_release)
        if redhat_release is not None:
            (etc / "redhat-release").write_text(redhat_release)
        return tmp_path

    return _write


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for the run ledger."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def delays() -> list[float]:
    """Collects backoff delays; pass ``delays.append`` as the sleeper."""
    return []


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Undo handlers installed by setup_logging (CLI runs, logging tests)."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
