"""
Service manager — systemd through ``systemctl``.

Both supported families run systemd, so there is a single manager.
Status queries never raise; mutating calls raise ``ServiceError``
with the unit's reported state.
"""

from __future__ import annotations

import logging

from provisioner.adapters.shell.command import CommandRunner
from provisioner.core.errors import FatalError, ServiceError

logger = logging.getLogger(__name__)

_SERVICE_TIMEOUT = 60


class SystemdServiceManager:
    """Thin wrapper over ``systemctl``."""

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    def _cmd(self, action: str, service: str) -> list[str]:
        cmd_map = {
            "start":      ["systemctl", "start", service],
            "restart":    ["systemctl", "restart", service],
            "enable":     ["systemctl", "enable", service],
            "enable-now": ["systemctl", "enable", "--now", service],
            "is-active":  ["systemctl", "is-active", service],
            "is-enabled": ["systemctl", "is-enabled", service],
        }
        return cmd_map[action]

    def _state(self, action: str, service: str) -> str:
        result = self._runner.run(self._cmd(action, service), timeout=_SERVICE_TIMEOUT)
        if result.not_found:
            return "unknown"
        return result.stdout.strip() or ("active" if result.ok else "unknown")

    # ── Queries ──────────────────────────────────────────────────

    def is_active(self, service: str) -> bool:
        return self._state("is-active", service) == "active"

    def is_enabled(self, service: str) -> bool:
        return self._state("is-enabled", service) in ("enabled", "static", "alias")

    def status(self, service: str) -> str:
        return self._state("is-active", service)

    # ── Mutations ────────────────────────────────────────────────

    def daemon_reload(self) -> None:
        result = self._runner.run(["systemctl", "daemon-reload"], timeout=_SERVICE_TIMEOUT)
        if result.not_found:
            raise FatalError("systemctl not found; systemd is required")
        if not result.ok:
            logger.warning("systemctl daemon-reload failed: %s", result.summary())

    def _mutate(self, action: str, service: str) -> None:
        result = self._runner.run(self._cmd(action, service), timeout=_SERVICE_TIMEOUT)
        if result.not_found:
            raise FatalError("systemctl not found; systemd is required")
        if not result.ok:
            raise ServiceError(service, self.status(service), result.summary())

    def enable(self, service: str, start: bool = True) -> None:
        self._mutate("enable-now" if start else "enable", service)
        logger.info("Enabled %s%s", service, " (started)" if start else "")

    def start(self, service: str, restart: bool = False) -> None:
        self._mutate("restart" if restart else "start", service)
        logger.info("%s %s", "Restarted" if restart else "Started", service)
