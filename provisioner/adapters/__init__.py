"""Adapters — host bindings for package managers, services and files.

Public re-exports for convenient access.
"""

from provisioner.adapters.apt import AptAdapter
from provisioner.adapters.base import Adapter, PackageManagerAdapter
from provisioner.adapters.dnf import DnfAdapter, YumAdapter
from provisioner.adapters.mock import SIMULATED_PLATFORMS, FakeHost
from provisioner.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "AptAdapter",
    "DnfAdapter",
    "FakeHost",
    "PackageManagerAdapter",
    "SIMULATED_PLATFORMS",
    "YumAdapter",
]
