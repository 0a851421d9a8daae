"""
dnf and yum adapters — RHEL, CentOS, AlmaLinux, Rocky.

Keys live in ``/etc/pki/rpm-gpg/RPM-GPG-KEY-<name>`` and repositories in
``/etc/yum.repos.d/<name>.repo`` with ``gpgcheck=1``. yum accepts the
same command lines and repo format, so YumAdapter only swaps the binary.
"""

from __future__ import annotations

from provisioner.adapters.base import PackageManagerAdapter
from provisioner.core.models import AddSignedRepo


class DnfAdapter(PackageManagerAdapter):
    """Adapter for ``dnf`` / ``rpm``."""

    binary = "dnf"

    def index_cmd(self) -> list[str]:
        return [self.binary, "makecache", "-y"]

    def install_cmd(self, names: tuple[str, ...]) -> list[str]:
        return [self.binary, "install", "-y", *names]

    def remove_cmd(self, names: tuple[str, ...]) -> list[str]:
        return [self.binary, "remove", "-y", *names]

    def package_installed(self, name: str) -> bool:
        return self.runner.run(["rpm", "-q", name], timeout=10).ok

    def key_path(self, repo_name: str) -> str:
        return f"/etc/pki/rpm-gpg/RPM-GPG-KEY-{repo_name}"

    def repo_path(self, repo_name: str) -> str:
        return f"/etc/yum.repos.d/{repo_name}.repo"

    def render_repo_definition(self, repo: AddSignedRepo, key_sha256: str) -> str:
        return (
            "# Managed by provisioner; do not edit.\n"
            f"# key-sha256: {key_sha256}\n"
            f"[{repo.name}]\n"
            f"name={repo.name}\n"
            f"baseurl={repo.url}\n"
            "enabled=1\n"
            "gpgcheck=1\n"
            f"gpgkey=file://{self.key_path(repo.name)}\n"
        )


class YumAdapter(DnfAdapter):
    """Adapter for ``yum`` (EL7)."""

    binary = "yum"
