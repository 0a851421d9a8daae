"""
Adapter registry — selects the host adapter once per run.

The registry maps each PackageManagerKind to an adapter class and builds
the adapter from PlatformFacts. In mock mode every lookup returns the
simulated host instead of touching the real system.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from provisioner.adapters.apt import AptAdapter
from provisioner.adapters.base import Adapter, PackageManagerAdapter
from provisioner.adapters.dnf import DnfAdapter, YumAdapter
from provisioner.adapters.mock import FakeHost
from provisioner.core.errors import UnsupportedPlatformError
from provisioner.core.models import PackageManagerKind, PlatformFacts

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Package manager → adapter class, plus mock mode.

    Features:
        - Register/unregister adapter classes per package manager
        - Mock mode: return a FakeHost for every platform
        - Query availability of the registered package managers
    """

    def __init__(self, mock_mode: bool = False, root: Path = Path("/")):
        self._adapters: dict[PackageManagerKind, type[PackageManagerAdapter]] = {
            PackageManagerKind.APT: AptAdapter,
            PackageManagerKind.DNF: DnfAdapter,
            PackageManagerKind.YUM: YumAdapter,
        }
        self._mock_mode = mock_mode
        self._mock_adapter: Adapter | None = None
        self._root = root

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        """Enable or disable mock mode.

        Args:
            enabled: Whether to use mock mode.
            mock_adapter: Host to return. If None, a fresh FakeHost per lookup.
        """
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, kind: PackageManagerKind, adapter_cls: type[PackageManagerAdapter]) -> None:
        if kind in self._adapters:
            logger.warning("Overwriting adapter for %s", kind.value)
        self._adapters[kind] = adapter_cls
        logger.debug("Registered adapter %s for %s", adapter_cls.__name__, kind.value)

    def unregister(self, kind: PackageManagerKind) -> None:
        self._adapters.pop(kind, None)

    def list_adapters(self) -> list[str]:
        return [kind.value for kind in self._adapters]

    def adapter_for(self, facts: PlatformFacts, **kwargs: Any) -> Adapter:
        """Build the adapter for ``facts``.

        Raises:
            UnsupportedPlatformError: No adapter for the package manager.
        """
        if self._mock_mode:
            return self._mock_adapter or FakeHost(facts)

        adapter_cls = self._adapters.get(facts.package_manager)
        if adapter_cls is None:
            raise UnsupportedPlatformError(
                f"No adapter for package manager '{facts.package_manager.value}'"
            )
        kwargs.setdefault("root", self._root)
        adapter = adapter_cls(facts, **kwargs)
        logger.debug("Selected %r for %s", adapter, facts.describe())
        return adapter

    def adapter_status(self, facts: PlatformFacts) -> dict[str, dict[str, Any]]:
        """Availability of every registered package manager on this host."""
        status = {}
        for kind, adapter_cls in self._adapters.items():
            adapter = adapter_cls(facts, root=self._root)
            status[kind.value] = {
                "name": adapter.name,
                "available": adapter.is_available(),
                "type": adapter_cls.__name__,
            }
        return status
