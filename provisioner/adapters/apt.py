"""
apt adapter — Debian and Ubuntu.

Keys live in ``/etc/apt/keyrings/<name>.asc`` and sources in
``/etc/apt/sources.list.d/<name>.list`` with a ``signed-by`` option,
so each repository is trusted only for its own key.
"""

from __future__ import annotations

from provisioner.adapters.base import PackageManagerAdapter
from provisioner.core.models import AddSignedRepo


class AptAdapter(PackageManagerAdapter):
    """Adapter for ``apt-get`` / ``dpkg``."""

    binary = "apt-get"
    env = {"DEBIAN_FRONTEND": "noninteractive"}

    @property
    def name(self) -> str:
        return "apt"

    def index_cmd(self) -> list[str]:
        return ["apt-get", "update"]

    def install_cmd(self, names: tuple[str, ...]) -> list[str]:
        return ["apt-get", "install", "-y", *names]

    def remove_cmd(self, names: tuple[str, ...]) -> list[str]:
        return ["apt-get", "remove", "-y", *names]

    def package_installed(self, name: str) -> bool:
        result = self.runner.run(["dpkg-query", "-W", "-f=${Status}", name], timeout=10)
        return "install ok installed" in result.stdout

    def key_path(self, repo_name: str) -> str:
        return f"/etc/apt/keyrings/{repo_name}.asc"

    def repo_path(self, repo_name: str) -> str:
        return f"/etc/apt/sources.list.d/{repo_name}.list"

    def render_repo_definition(self, repo: AddSignedRepo, key_sha256: str) -> str:
        options = f"arch={self.facts.arch} signed-by={self.key_path(repo.name)}"
        line = " ".join(p for p in ("deb", f"[{options}]", repo.url, repo.suite, repo.components) if p)
        return (
            "# Managed by provisioner; do not edit.\n"
            f"# key-sha256: {key_sha256}\n"
            f"{line}\n"
        )
