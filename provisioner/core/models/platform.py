"""
PlatformFacts — what the detector learned about the host.

Created once per run and passed explicitly to the plan builder and
the adapter registry. Never mutated.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class OSFamily(StrEnum):
    """Supported distribution families."""

    DEBIAN = "debian"
    RHEL = "rhel"
    UNKNOWN = "unknown"


class PackageManagerKind(StrEnum):
    """Native package managers with an adapter."""

    APT = "apt"
    DNF = "dnf"
    YUM = "yum"
    NONE = "none"


class PlatformFacts(BaseModel):
    """Immutable facts about the local platform."""

    model_config = ConfigDict(frozen=True)

    family: OSFamily
    distro_id: str
    version_major: int = 0
    package_manager: PackageManagerKind = PackageManagerKind.NONE
    codename: str = ""              # apt suite, e.g. "jammy"
    arch: str = "amd64"             # dpkg-style architecture
    vendor: str = ""                # upstream repo flavor for derivatives, e.g. "ubuntu"

    @property
    def repo_vendor(self) -> str:
        """Distribution name third-party repositories publish for."""
        return self.vendor or self.distro_id

    @property
    def supported(self) -> bool:
        return (
            self.family != OSFamily.UNKNOWN
            and self.package_manager != PackageManagerKind.NONE
        )

    def describe(self) -> str:
        """One-line summary, e.g. ``ubuntu 22 (jammy, debian/apt, amd64)``."""
        codename = f"{self.codename}, " if self.codename else ""
        return (
            f"{self.distro_id} {self.version_major} "
            f"({codename}{self.family.value}/{self.package_manager.value}, {self.arch})"
        )
