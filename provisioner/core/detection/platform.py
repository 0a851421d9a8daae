"""
Platform detection — OS family, distribution, version, package manager.

Read-only probes of the release marker files. The legacy RHEL marker
(``/etc/redhat-release``) is inspected first, then the structured
``/etc/os-release``. Detection runs once per run; the resulting
PlatformFacts is passed explicitly to everything downstream.
"""

from __future__ import annotations

import logging
import platform as _platform
import re
import shutil
from pathlib import Path
from typing import Callable

from provisioner.core.errors import UnsupportedPlatformError
from provisioner.core.models.platform import OSFamily, PackageManagerKind, PlatformFacts

logger = logging.getLogger(__name__)

REDHAT_RELEASE = "etc/redhat-release"
OS_RELEASE = "etc/os-release"

# Substring of /etc/redhat-release → distro id
_REDHAT_MARKERS: tuple[tuple[str, str], ...] = (
    ("CentOS", "centos"),
    ("Red Hat", "rhel"),
    ("AlmaLinux", "almalinux"),
    ("Rocky", "rocky"),
)

RHEL_IDS = frozenset({"centos", "rhel", "almalinux", "rocky"})
DEBIAN_IDS = frozenset({"debian", "ubuntu"})

# uname machine → dpkg architecture
_ARCH_MAP: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "armhf",
    "ppc64le": "ppc64el",
    "s390x": "s390x",
}

_VERSION_RE = re.compile(r"(\d+)(?:\.\d+)*")


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines, dropping comments and quotes."""
    data: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        data[key.strip()] = value.strip().strip('"').strip("'")
    return data


def _major(version: str) -> int:
    match = _VERSION_RE.search(version or "")
    return int(match.group(1)) if match else 0


def _arch(machine: str | None) -> str:
    machine = machine or _platform.machine()
    return _ARCH_MAP.get(machine.lower(), machine.lower() or "amd64")


def _rhel_package_manager(which: Callable[[str], str | None]) -> PackageManagerKind:
    """Prefer dnf over yum."""
    if which("dnf"):
        return PackageManagerKind.DNF
    if which("yum"):
        return PackageManagerKind.YUM
    raise UnsupportedPlatformError("RHEL-family system without dnf or yum")


def _from_redhat_release(
    text: str,
    which: Callable[[str], str | None],
    arch: str,
) -> PlatformFacts:
    distro_id = next((did for marker, did in _REDHAT_MARKERS if marker in text), None)
    if distro_id is None:
        raise UnsupportedPlatformError(
            f"Unrecognized RHEL-style release: {text.strip()[:80]!r}"
        )
    return PlatformFacts(
        family=OSFamily.RHEL,
        distro_id=distro_id,
        version_major=_major(text),
        package_manager=_rhel_package_manager(which),
        arch=arch,
    )


def _debian_vendor(distro_id: str, id_like: list[str], data: dict[str, str]) -> str:
    """Which of ubuntu/debian a derivative's upstream repositories follow."""
    if distro_id in DEBIAN_IDS:
        return distro_id
    if data.get("UBUNTU_CODENAME") or "ubuntu" in id_like:
        return "ubuntu"
    return "debian"


def _debian_codename(vendor: str, data: dict[str, str]) -> str:
    # Derivatives carry their own VERSION_CODENAME (Mint "virginia"),
    # the upstream one lives in UBUNTU_CODENAME / DEBIAN_CODENAME
    if vendor == "ubuntu":
        return data.get("UBUNTU_CODENAME") or data.get("VERSION_CODENAME", "")
    return data.get("DEBIAN_CODENAME") or data.get("VERSION_CODENAME", "")


def _from_os_release(
    data: dict[str, str],
    which: Callable[[str], str | None],
    arch: str,
) -> PlatformFacts:
    distro_id = data.get("ID", "").lower()
    id_like = data.get("ID_LIKE", "").lower().split()
    version_major = _major(data.get("VERSION_ID", ""))

    if distro_id in RHEL_IDS:
        return PlatformFacts(
            family=OSFamily.RHEL,
            distro_id=distro_id,
            version_major=version_major,
            package_manager=_rhel_package_manager(which),
            arch=arch,
        )

    if distro_id in DEBIAN_IDS or "debian" in id_like or "ubuntu" in id_like:
        vendor = _debian_vendor(distro_id, id_like, data)
        return PlatformFacts(
            family=OSFamily.DEBIAN,
            distro_id=distro_id,
            version_major=version_major,
            package_manager=PackageManagerKind.APT,
            codename=_debian_codename(vendor, data),
            arch=arch,
            vendor="" if vendor == distro_id else vendor,
        )

    raise UnsupportedPlatformError(f"Unsupported distribution: {distro_id or 'unknown'}")


def detect(
    root: Path = Path("/"),
    which: Callable[[str], str | None] = shutil.which,
    machine: str | None = None,
) -> PlatformFacts:
    """Detect the local platform.

    Args:
        root: Filesystem root holding ``etc/`` (tests pass a tmp dir).
        which: Binary lookup used to choose between dnf and yum.
        machine: Override for ``platform.machine()``.

    Returns:
        PlatformFacts for a supported platform.

    Raises:
        UnsupportedPlatformError: No release marker, unknown distribution,
            or no mapped package manager.
    """
    arch = _arch(machine)

    redhat_release = root / REDHAT_RELEASE
    if redhat_release.is_file():
        text = redhat_release.read_text(encoding="utf-8", errors="replace")
        facts = _from_redhat_release(text, which, arch)
        logger.info("Detected %s from %s", facts.describe(), redhat_release)
        return facts

    os_release = root / OS_RELEASE
    if os_release.is_file():
        data = parse_os_release(os_release.read_text(encoding="utf-8", errors="replace"))
        facts = _from_os_release(data, which, arch)
        logger.info("Detected %s from %s", facts.describe(), os_release)
        return facts

    raise UnsupportedPlatformError(
        f"No OS release marker found under {root} ({REDHAT_RELEASE}, {OS_RELEASE})"
    )
