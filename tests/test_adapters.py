"""
Tests for the package-manager adapters (apt, dnf, yum) and the registry.

Adapters run against a scripted command runner and a temporary
filesystem root, so nothing touches the real host.
"""

import io
import os
import socket
import tarfile

import pytest

from provisioner.adapters import AdapterRegistry, AptAdapter, DnfAdapter, FakeHost, YumAdapter
from provisioner.adapters.shell.command import CommandResult
from provisioner.adapters.shell.filesystem import sha256_bytes
from provisioner.core.engine.executor import Executor
from provisioner.core.errors import (
    FatalError,
    InstallError,
    InsufficientPrivilegesError,
    KeyVerificationError,
    NetworkError,
    PackageLockError,
    ProvisionError,
    ServiceError,
    UnsupportedPlatformError,
    VerificationFailure,
)
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
    FileMatches,
    InstallArchive,
    InstallPackages,
    Never,
    PackagesAbsent,
    PackagesInstalled,
    Plan,
    PortListening,
    RemovePackages,
    RepoConfigured,
    ServiceActive,
    ServicesActive,
    StartService,
    StepOutcome,
    UpdateIndex,
    UserExists,
    UserInGroup,
    WriteFile,
)
from provisioner.core.planning.builder import build_plan

NGINX_FPR = "573BFD6B3D8FBC641079A6ABABF5BD827BD9BF62"
KEY = b"-----BEGIN PGP PUBLIC KEY BLOCK-----\nnginx\n-----END PGP PUBLIC KEY BLOCK-----\n"

GPG_COLONS = f"""\
pub:-:2048:1:ABF5BD827BD9BF62:1313747554:1719304170::-:::scSC::::::23::0:
fpr:::::::::{NGINX_FPR}:
uid:-::::1656691199::F4F7C4CE4C7C8C1F::nginx signing key <signing-key@nginx.com>::::::::::0:
sub:-:2048:1:0123456789ABCDEF:1313747554::::::e::::::23:
fpr:::::::::1111111111111111111111111111111111111111:
"""


def _repo(**overrides) -> AddSignedRepo:
    fields = {
        "name": "nginx",
        "url": "https://nginx.org/packages/ubuntu",
        "key_url": "https://nginx.org/keys/nginx_signing.key",
        "key_fingerprints": (NGINX_FPR,),
        "suite": "jammy",
        "components": "nginx",
    }
    fields.update(overrides)
    return AddSignedRepo(**fields)


@pytest.fixture
def apt(ubuntu, runner, tmp_path):
    runner.on("gpg", stdout=GPG_COLONS)
    return AptAdapter(
        ubuntu, runner=runner, root=tmp_path,
        fetcher=lambda url, timeout: KEY, require_root=False,
    )


@pytest.fixture
def dnf(rocky, runner, tmp_path):
    runner.on("gpg", stdout=GPG_COLONS)
    return DnfAdapter(
        rocky, runner=runner, root=tmp_path,
        fetcher=lambda url, timeout: KEY, require_root=False,
    )


# ── Identity and privileges ──────────────────────────────────────────


class TestIdentity:
    def test_names(self, apt, dnf, centos7, runner):
        assert apt.name == "apt"
        assert dnf.name == "dnf"
        assert YumAdapter(centos7, runner=runner).name == "yum"

    def test_is_available(self, ubuntu, make_runner):
        assert AptAdapter(ubuntu, runner=make_runner(binaries=("apt-get",))).is_available()
        assert not AptAdapter(ubuntu, runner=make_runner(binaries=())).is_available()

    def test_non_root_rejected(self, ubuntu, runner, monkeypatch):
        monkeypatch.setattr(os, "geteuid", lambda: 1000)
        with pytest.raises(InsufficientPrivilegesError):
            AptAdapter(ubuntu, runner=runner).check_privileges()

    def test_root_accepted(self, ubuntu, runner, monkeypatch):
        monkeypatch.setattr(os, "geteuid", lambda: 0)
        AptAdapter(ubuntu, runner=runner).check_privileges()

    def test_missing_package_manager_is_fatal(self, rocky, make_runner):
        adapter = DnfAdapter(rocky, runner=make_runner(binaries=("yum",)), require_root=False)
        with pytest.raises(FatalError, match="dnf"):
            adapter.check_privileges()


# ── Packages ─────────────────────────────────────────────────────────


class TestAptPackages:
    def test_update_index_is_noninteractive(self, apt, runner):
        assert apt.apply(UpdateIndex()) == "package index refreshed"
        assert runner.calls[-1] == ["apt-get", "update"]
        assert runner.envs[-1] == {"DEBIAN_FRONTEND": "noninteractive"}

    def test_install_verifies_afterwards(self, apt, runner):
        runner.on("dpkg-query", stdout="install ok installed")
        assert apt.apply(InstallPackages(names=("nginx",))) == "installed nginx"
        assert ["apt-get", "install", "-y", "nginx"] in runner.calls

    def test_install_reports_missing_packages(self, apt, runner):
        runner.on("dpkg-query", "-W", "-f=${Status}", "curl", stdout="install ok installed")
        with pytest.raises(InstallError) as exc:
            apt.apply(InstallPackages(names=("curl", "nginx")))
        assert exc.value.failed_packages == ["nginx"]

    def test_install_failure_detail(self, apt, runner):
        runner.on("apt-get", "install", returncode=100, stderr="E: Unable to locate package nginx")
        with pytest.raises(InstallError, match="Unable to locate package"):
            apt.apply(InstallPackages(names=("nginx",)))

    def test_lock_is_transient(self, apt, runner):
        runner.on("apt-get", "install", returncode=100,
                  stderr="E: Could not get lock /var/lib/dpkg/lock-frontend")
        with pytest.raises(PackageLockError) as exc:
            apt.apply(InstallPackages(names=("nginx",)))
        assert exc.value.retryable

    def test_network_failure_is_transient(self, apt, runner):
        runner.on("apt-get", "update", returncode=100,
                  stderr="W: Failed to fetch http://archive.ubuntu.com/ubuntu/dists/jammy/InRelease")
        with pytest.raises(NetworkError):
            apt.apply(UpdateIndex())

    def test_timeout_is_network_error(self, apt, runner):
        runner.on("apt-get", "update", returncode=-1, timed_out=True)
        with pytest.raises(NetworkError, match="timed out"):
            apt.apply(UpdateIndex(), timeout=5)

    def test_remove_only_installed(self, apt, runner):
        runner.on("dpkg-query", "-W", "-f=${Status}", "docker.io", stdout="install ok installed")
        assert apt.apply(RemovePackages(names=("docker.io", "runc"))) == "removed docker.io"
        assert runner.calls[-1] == ["apt-get", "remove", "-y", "docker.io"]

    def test_remove_nothing(self, apt, runner):
        assert apt.apply(RemovePackages(names=("docker.io",))) == "nothing to remove"
        assert not runner.ran("apt-get", "remove")

    def test_package_preconditions(self, apt, runner):
        runner.on("dpkg-query", "-W", "-f=${Status}", "curl", stdout="install ok installed")
        assert apt.holds(PackagesInstalled(names=("curl",)))
        assert not apt.holds(PackagesInstalled(names=("curl", "gnupg")))
        assert apt.holds(PackagesAbsent(names=("docker.io",)))
        assert not apt.holds(PackagesAbsent(names=("curl",)))
        assert not apt.holds(Never())


class TestDnfPackages:
    def test_commands(self, dnf, runner):
        dnf.apply(UpdateIndex())
        dnf.apply(InstallPackages(names=("nginx",)))
        assert ["dnf", "makecache", "-y"] in runner.calls
        assert ["dnf", "install", "-y", "nginx"] in runner.calls
        assert runner.calls[-1] == ["rpm", "-q", "nginx"]

    def test_rpm_query(self, dnf, runner):
        runner.on("rpm", "-q", "podman", returncode=1, stdout="package podman is not installed")
        assert dnf.package_installed("nginx")
        assert not dnf.package_installed("podman")

    def test_yum_swaps_binary(self, centos7, runner):
        yum = YumAdapter(centos7, runner=runner, require_root=False)
        yum.apply(InstallPackages(names=("nginx",)))
        assert ["yum", "install", "-y", "nginx"] in runner.calls

    def test_yum_lock(self, centos7, runner):
        runner.on("yum", "makecache", returncode=1,
                  stderr="Another app is currently holding the yum lock; waiting for it to exit...")
        with pytest.raises(PackageLockError):
            YumAdapter(centos7, runner=runner).apply(UpdateIndex())


class TestClassification:
    @pytest.mark.parametrize("result,error", [
        (CommandResult(argv=("apt-get",), returncode=-1, timed_out=True), NetworkError),
        (CommandResult(argv=("apt-get",), returncode=127), FatalError),
        (CommandResult(argv=("apt-get",), returncode=100,
                       stderr="E: Unable to acquire the dpkg frontend lock"), PackageLockError),
        (CommandResult(argv=("apt-get",), returncode=100,
                       stderr="Temporary failure resolving 'nginx.org'"), NetworkError),
        (CommandResult(argv=("apt-get",), returncode=100, stderr="E: Broken packages"), ProvisionError),
    ])
    def test_classify(self, apt, result, error):
        assert type(apt._classify(result)) is error

    def test_missing_binary_is_not_retryable(self, apt):
        assert not apt._classify(CommandResult(argv=("apt-get",), returncode=127)).retryable


# ── Signed repositories ──────────────────────────────────────────────


class TestAptSignedRepo:
    def test_key_fingerprints_primary_only(self, apt):
        assert apt.key_fingerprints(KEY) == [NGINX_FPR]

    def test_writes_key_and_source(self, apt, tmp_path):
        message = apt.apply(_repo())
        assert "/etc/apt/keyrings/nginx.asc" in message
        assert (tmp_path / "etc/apt/keyrings/nginx.asc").read_bytes() == KEY
        source = (tmp_path / "etc/apt/sources.list.d/nginx.list").read_text()
        assert source.endswith(
            "deb [arch=amd64 signed-by=/etc/apt/keyrings/nginx.asc] "
            "https://nginx.org/packages/ubuntu jammy nginx\n"
        )
        assert f"key-sha256: {sha256_bytes(KEY)}" in source

    def test_reapply_changes_nothing(self, apt):
        repo = _repo()
        apt.apply(repo)
        assert apt.apply(repo) == "repository nginx already configured"

    def test_repo_configured_precondition(self, apt):
        repo = _repo()
        assert not apt.holds(RepoConfigured(repo=repo))
        apt.apply(repo)
        assert apt.holds(RepoConfigured(repo=repo))
        assert not apt.holds(RepoConfigured(repo=_repo(suite="noble")))

    def test_unexpected_fingerprint_writes_nothing(self, apt, tmp_path):
        with pytest.raises(KeyVerificationError, match=NGINX_FPR):
            apt.apply(_repo(key_fingerprints=("9DC858229FC7DD38854AE2D88D81803C0EBFCD88",)))
        assert not (tmp_path / "etc/apt/keyrings/nginx.asc").exists()

    def test_fingerprints_compared_case_and_space_insensitive(self, apt):
        spaced = " ".join(NGINX_FPR[i:i + 4] for i in range(0, 40, 4)).lower()
        apt.apply(_repo(key_fingerprints=(spaced,)))

    def test_no_pinned_fingerprint_skips_gpg(self, apt, runner):
        apt.apply(_repo(key_fingerprints=()))
        assert not runner.ran("gpg")

    def test_unparseable_key(self, apt, runner):
        runner.on("gpg", returncode=2, stderr="gpg: no valid OpenPGP data found.")
        with pytest.raises(KeyVerificationError, match="Cannot parse"):
            apt.apply(_repo())

    def test_missing_gpg_is_fatal(self, apt, runner):
        runner.missing("gpg")
        with pytest.raises(FatalError, match="gpg"):
            apt.apply(_repo())

    def test_fetch_failure_propagates(self, ubuntu, runner, tmp_path):
        def _fetch(url, timeout):
            raise NetworkError(f"{url}: timed out after {timeout}s")

        adapter = AptAdapter(ubuntu, runner=runner, root=tmp_path, fetcher=_fetch)
        with pytest.raises(NetworkError):
            adapter.apply(_repo(), timeout=7)


class TestDnfSignedRepo:
    def test_repo_file(self, dnf, tmp_path):
        repo = _repo(url="https://nginx.org/packages/centos/$releasever/$basearch/",
                     suite="", components="")
        dnf.apply(repo)
        assert (tmp_path / "etc/pki/rpm-gpg/RPM-GPG-KEY-nginx").read_bytes() == KEY
        text = (tmp_path / "etc/yum.repos.d/nginx.repo").read_text()
        assert "[nginx]\n" in text
        assert "baseurl=https://nginx.org/packages/centos/$releasever/$basearch/\n" in text
        assert "gpgcheck=1\n" in text
        assert "gpgkey=file:///etc/pki/rpm-gpg/RPM-GPG-KEY-nginx\n" in text
        assert dnf.holds(RepoConfigured(repo=repo))


# ── Files and directories ────────────────────────────────────────────


class TestFiles:
    def test_write_file(self, apt, tmp_path):
        cap = WriteFile(path="/etc/docker/daemon.json", content="{}\n", mode=0o644)
        assert apt.apply(cap) == "wrote /etc/docker/daemon.json"
        assert (tmp_path / "etc/docker/daemon.json").read_text() == "{}\n"
        assert apt.apply(cap) == "/etc/docker/daemon.json unchanged"
        assert apt.holds(FileMatches(path=cap.path, content=cap.content, mode=0o644))
        assert not apt.holds(FileMatches(path=cap.path, content="{\"debug\": true}\n"))

    def test_unit_file_triggers_daemon_reload(self, apt, runner):
        apt.apply(WriteFile(path="/etc/systemd/system/prometheus.service", content="[Unit]\n"))
        assert runner.calls[-1] == ["systemctl", "daemon-reload"]

    def test_other_files_do_not_reload(self, apt, runner):
        apt.apply(WriteFile(path="/etc/prometheus/prometheus.yml", content="global: {}\n"))
        assert not runner.ran("systemctl", "daemon-reload")

    def test_ensure_directory(self, apt, tmp_path):
        assert not apt.holds(DirectoryExists(path="/var/lib/prometheus"))
        assert apt.apply(EnsureDirectory(path="/var/lib/prometheus")) == "created /var/lib/prometheus"
        assert (tmp_path / "var/lib/prometheus").is_dir()
        assert apt.holds(DirectoryExists(path="/var/lib/prometheus"))
        assert apt.apply(EnsureDirectory(path="/var/lib/prometheus")) == "updated /var/lib/prometheus"


# ── Services ─────────────────────────────────────────────────────────


class TestServices:
    def test_enable_each(self, apt, runner):
        apt.apply(EnableService(names=("containerd", "docker")))
        assert ["systemctl", "enable", "--now", "containerd"] in runner.calls
        assert ["systemctl", "enable", "--now", "docker"] in runner.calls

    def test_enable_failure(self, apt, runner):
        runner.on("systemctl", "enable", returncode=1, stderr="Job for docker.service failed")
        runner.on("systemctl", "is-active", returncode=3, stdout="failed\n")
        with pytest.raises(ServiceError, match="docker"):
            apt.apply(EnableService(names=("docker",)))

    def test_services_active_needs_enabled_and_active(self, apt, runner):
        runner.on("systemctl", "is-active", stdout="active\n")
        assert not apt.holds(ServicesActive(names=("nginx",)))
        runner.on("systemctl", "is-enabled", stdout="enabled\n")
        assert apt.holds(ServicesActive(names=("nginx",)))

    def test_restart(self, apt, runner):
        assert apt.apply(StartService(names=("docker",), restart=True)) == "restarted docker"
        assert runner.calls[-1] == ["systemctl", "restart", "docker"]

    def test_running_docker_picks_up_rewritten_daemon_json(self, apt, runner, ubuntu, tmp_path):
        runner.on("systemctl", "is-active", stdout="active\n")
        runner.on("systemctl", "is-enabled", stdout="enabled\n")
        daemon_json = tmp_path / "etc/docker/daemon.json"
        daemon_json.parent.mkdir(parents=True)
        daemon_json.write_text('{"log-driver": "journald"}\n')
        os.chmod(daemon_json, 0o644)

        plan = build_plan("docker", ubuntu)
        wanted = (
            "write-configuration-files-daemon-json",
            "enable-and-start-services",
            "enable-and-start-services-restart-docker",
        )
        sub_plan = Plan(product="docker", facts=ubuntu,
                        steps=tuple(plan.get(step_id) for step_id in wanted))
        report = Executor(apt).run(sub_plan)

        assert [r.outcome for r in report.results] == [
            StepOutcome.SUCCEEDED, StepOutcome.SKIPPED, StepOutcome.SUCCEEDED,
        ]
        assert "native.cgroupdriver=systemd" in daemon_json.read_text()
        assert ["systemctl", "restart", "docker"] in runner.calls
        assert not runner.ran("systemctl", "restart", "containerd")

        runner.calls.clear()
        again = Executor(apt).run(sub_plan)
        assert {r.outcome for r in again.results} == {StepOutcome.SKIPPED}
        assert not runner.ran("systemctl", "restart")


# ── Users ────────────────────────────────────────────────────────────


class TestUsers:
    def test_creates_missing_user(self, apt, runner):
        runner.on("id", "-u", "prometheus", returncode=1, stderr="id: 'prometheus': no such user")
        assert not apt.holds(UserExists(name="prometheus"))
        apt.apply(EnsureSystemUser(name="prometheus"))
        assert runner.calls[-1] == [
            "useradd", "--system", "--no-create-home", "--shell", "/usr/sbin/nologin", "prometheus",
        ]

    def test_existing_user_untouched(self, apt, runner):
        assert apt.apply(EnsureSystemUser(name="prometheus")) == "user prometheus exists"
        assert not runner.ran("useradd")

    def test_add_to_group(self, apt, runner):
        runner.on("id", "-nG", "alice", stdout="alice sudo\n")
        assert not apt.holds(UserInGroup(user="alice", group="docker"))
        apt.apply(AddUserToGroup(user="alice", group="docker"))
        assert runner.calls[-1] == ["usermod", "-aG", "docker", "alice"]
        runner.on("id", "-nG", "alice", stdout="alice sudo docker\n")
        assert apt.holds(UserInGroup(user="alice", group="docker"))

    def test_add_to_group_failure(self, apt, runner):
        runner.on("usermod", returncode=6, stderr="usermod: group 'docker' does not exist")
        with pytest.raises(ProvisionError, match="does not exist"):
            apt.apply(AddUserToGroup(user="alice", group="docker"))


# ── Release archives ─────────────────────────────────────────────────


def _tarball(members: dict[str, bytes]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


PROMETHEUS_TGZ = _tarball({
    "prometheus-3.5.0.linux-amd64/prometheus": b"#!/bin/sh\necho prometheus\n",
    "prometheus-3.5.0.linux-amd64/promtool": b"#!/bin/sh\necho promtool\n",
    "prometheus-3.5.0.linux-amd64/LICENSE": b"Apache",
})

PROMETHEUS_URL = (
    "https://github.com/prometheus/prometheus/releases/download/v3.5.0/"
    "prometheus-3.5.0.linux-amd64.tar.gz"
)


@pytest.fixture
def archive_adapter(ubuntu, runner, tmp_path):
    def _download(url, dest, timeout):
        dest.write_bytes(PROMETHEUS_TGZ)
        return dest

    return AptAdapter(ubuntu, runner=runner, root=tmp_path / "root", downloader=_download)


class TestArchives:
    def test_install_binaries(self, archive_adapter, tmp_path):
        cap = InstallArchive(name="prometheus", url=PROMETHEUS_URL,
                             binaries=("prometheus", "promtool"))
        archive_adapter.apply(cap)
        binary = tmp_path / "root/usr/local/bin/prometheus"
        assert binary.read_bytes().startswith(b"#!/bin/sh")
        assert binary.stat().st_mode & 0o777 == 0o755
        assert (tmp_path / "root/usr/local/bin/promtool").is_file()
        assert not (tmp_path / "root/usr/local/bin/LICENSE").exists()

    def test_checksum_verified(self, archive_adapter):
        good = InstallArchive(name="prometheus", url=PROMETHEUS_URL, binaries=("prometheus",),
                              sha256=sha256_bytes(PROMETHEUS_TGZ))
        archive_adapter.apply(good)
        bad = good.model_copy(update={"sha256": "0" * 64})
        with pytest.raises(FatalError, match="Checksum"):
            archive_adapter.apply(bad)

    def test_missing_binary_in_archive(self, archive_adapter):
        cap = InstallArchive(name="prometheus", url=PROMETHEUS_URL, binaries=("alertmanager",))
        with pytest.raises(FatalError, match="alertmanager"):
            archive_adapter.apply(cap)

    def test_binary_present_checks_version(self, archive_adapter, runner, tmp_path):
        pre = BinaryPresent(path="/usr/local/bin/prometheus", version="3.5.0")
        assert not archive_adapter.holds(pre)
        archive_adapter.apply(InstallArchive(name="prometheus", url=PROMETHEUS_URL,
                                             binaries=("prometheus",)))
        assert archive_adapter.holds(BinaryPresent(path="/usr/local/bin/prometheus"))
        assert not archive_adapter.holds(pre)
        runner.on(str(tmp_path / "root/usr/local/bin/prometheus"),
                  stdout="prometheus, version 3.5.0 (branch: HEAD)")
        assert archive_adapter.holds(pre)


# ── Checks ───────────────────────────────────────────────────────────


class TestChecks:
    def test_service_active(self, apt, runner):
        runner.on("systemctl", "is-active", "nginx", stdout="active\n")
        runner.on("systemctl", "is-active", "docker", returncode=3, stdout="failed\n")
        assert apt.evaluate(ServiceActive(name="nginx")).passed
        result = apt.evaluate(ServiceActive(name="docker"))
        assert not result.passed
        assert result.detail == "failed"

    def test_binary_version(self, ubuntu, make_runner):
        runner = make_runner(binaries=("apt-get", "nginx"))
        runner.on("nginx", "-v", stderr="nginx version: nginx/1.26.2\n")
        adapter = AptAdapter(ubuntu, runner=runner)
        check = BinaryVersion(binary="nginx", args=("-v",), pattern=r"nginx/(\d+\.\d+\.\d+)")
        result = adapter.evaluate(check)
        assert result.passed
        assert result.detail == "1.26.2"
        assert result.name == "version:nginx"

    def test_binary_not_on_path(self, apt):
        result = apt.evaluate(BinaryVersion(binary="docker"))
        assert not result.passed
        assert result.detail == "not found on PATH"

    def test_unparseable_version(self, ubuntu, make_runner):
        runner = make_runner(binaries=("docker",))
        runner.on("docker", stdout="Docker\n")
        result = AptAdapter(ubuntu, runner=runner).evaluate(BinaryVersion(binary="docker"))
        assert not result.passed

    def test_port_listening(self, apt):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]
            assert apt.evaluate(PortListening(port=port)).passed

    def test_port_closed(self, apt):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            probe.bind(("127.0.0.1", 0))
            port = probe.getsockname()[1]
        assert not apt.evaluate(PortListening(port=port)).passed

    def test_command_succeeds(self, apt, runner):
        runner.on("nginx", "-t", returncode=1, stderr="nginx: configuration file test failed")
        result = apt.evaluate(CommandSucceeds(name="nginx-config", argv=("nginx", "-t")))
        assert not result.passed
        assert "test failed" in result.detail

    def test_run_checks_raises_on_failure(self, apt, runner):
        runner.on("systemctl", "is-active", returncode=3, stdout="inactive\n")
        with pytest.raises(VerificationFailure, match="service:nginx: inactive"):
            apt.run_checks([ServiceActive(name="nginx")])

    def test_run_checks_passes(self, apt, runner):
        runner.on("systemctl", "is-active", stdout="active\n")
        assert apt.run_checks([ServiceActive(name="nginx")]) == "1 checks passed"


# ── Registry ─────────────────────────────────────────────────────────


class TestAdapterRegistry:
    def test_selects_by_package_manager(self, ubuntu, rocky, centos7):
        registry = AdapterRegistry()
        assert type(registry.adapter_for(ubuntu)) is AptAdapter
        assert type(registry.adapter_for(rocky)) is DnfAdapter
        assert type(registry.adapter_for(centos7)) is YumAdapter

    def test_passes_root(self, ubuntu, tmp_path):
        adapter = AdapterRegistry(root=tmp_path).adapter_for(ubuntu)
        assert adapter.root == tmp_path

    def test_unsupported(self, unknown_facts):
        with pytest.raises(UnsupportedPlatformError):
            AdapterRegistry().adapter_for(unknown_facts)

    def test_mock_mode(self, rocky):
        registry = AdapterRegistry(mock_mode=True)
        adapter = registry.adapter_for(rocky)
        assert isinstance(adapter, FakeHost)
        assert adapter.facts == rocky

    def test_mock_mode_with_instance(self, ubuntu, ubuntu_host):
        registry = AdapterRegistry()
        registry.set_mock_mode(True, ubuntu_host)
        assert registry.mock_mode
        assert registry.adapter_for(ubuntu) is ubuntu_host

    def test_register_and_unregister(self, ubuntu):
        registry = AdapterRegistry()
        registry.unregister(ubuntu.package_manager)
        assert registry.list_adapters() == ["dnf", "yum"]
        with pytest.raises(UnsupportedPlatformError):
            registry.adapter_for(ubuntu)
        registry.register(ubuntu.package_manager, AptAdapter)
        assert "apt" in registry.list_adapters()

    def test_adapter_status(self, ubuntu):
        status = AdapterRegistry().adapter_status(ubuntu)
        assert set(status) == {"apt", "dnf", "yum"}
        assert status["dnf"]["type"] == "DnfAdapter"
        assert isinstance(status["apt"]["available"], bool)
