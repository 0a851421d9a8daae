"""
Local firewall — ufw (Debian family) and firewalld (RHEL family).

The firewall is an optional collaborator: when neither tool is active
every query reports "nothing to do" and ``allow`` is a no-op.

firewalld also carries zone settings for bridged containers: interfaces
bound to the ``trusted`` zone and masquerading on the default zone. ufw
has no equivalent, so those arguments are ignored there.
"""

from __future__ import annotations

import logging
import re

from provisioner.adapters.shell.command import CommandRunner
from provisioner.core.errors import ProvisionError

logger = logging.getLogger(__name__)

_FIREWALL_TIMEOUT = 30
_TRUSTED_ZONE = "trusted"

_UFW_RULE_RE = re.compile(r"^(\S+)\s+ALLOW", re.MULTILINE)


class FirewallError(ProvisionError):
    """A firewall rule could not be added."""


class LocalFirewall:
    """Detects the active firewall and opens ports on it."""

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    def _cmd(self, *args: str):
        return self._runner.run(list(args), timeout=_FIREWALL_TIMEOUT)

    def active(self) -> str | None:
        """Name of the active firewall (``ufw``/``firewalld``) or None."""
        if self._runner.which("ufw"):
            result = self._cmd("ufw", "status")
            if result.ok and "Status: active" in result.stdout:
                return "ufw"
        if self._runner.which("firewall-cmd"):
            result = self._cmd("firewall-cmd", "--state")
            if result.ok and result.stdout.strip() == "running":
                return "firewalld"
        return None

    def allowed_ports(self, firewall: str) -> set[str]:
        if firewall == "ufw":
            result = self._cmd("ufw", "status")
            return set(_UFW_RULE_RE.findall(result.stdout)) if result.ok else set()
        result = self._cmd("firewall-cmd", "--list-ports")
        return set(result.stdout.split()) if result.ok else set()

    def trusted_interfaces(self) -> set[str]:
        """Interfaces in firewalld's trusted zone."""
        result = self._cmd("firewall-cmd", f"--zone={_TRUSTED_ZONE}", "--list-interfaces")
        return set(result.stdout.split()) if result.ok else set()

    def masquerading(self) -> bool:
        # --query-masquerade exits non-zero for "no"
        return self._cmd("firewall-cmd", "--query-masquerade").ok

    def _pending(
        self,
        firewall: str,
        ports,
        trusted_interfaces=(),
        masquerade: bool = False,
    ) -> list[tuple[str, list[str]]]:
        """(label, command) pairs still needed on ``firewall``."""
        allowed = self.allowed_ports(firewall)
        if firewall == "ufw":
            return [(p, ["ufw", "allow", p]) for p in ports if p not in allowed]

        pending = [
            (p, ["firewall-cmd", "--permanent", f"--add-port={p}"])
            for p in ports if p not in allowed
        ]
        if trusted_interfaces:
            trusted = self.trusted_interfaces()
            pending += [
                (
                    f"trusted:{iface}",
                    ["firewall-cmd", "--permanent", f"--zone={_TRUSTED_ZONE}",
                     f"--add-interface={iface}"],
                )
                for iface in trusted_interfaces if iface not in trusted
            ]
        if masquerade and not self.masquerading():
            pending.append(("masquerade", ["firewall-cmd", "--permanent", "--add-masquerade"]))
        return pending

    def ports_open(self, ports, trusted_interfaces=(), masquerade: bool = False) -> bool:
        firewall = self.active()
        if firewall is None:
            return True
        return not self._pending(firewall, ports, trusted_interfaces, masquerade)

    def allow(self, ports, trusted_interfaces=(), masquerade: bool = False) -> list[str]:
        """Open ``ports`` (and firewalld zone settings) on the active firewall.

        Returns:
            Labels of what was added: ports, ``trusted:<iface>``, ``masquerade``.
        """
        firewall = self.active()
        if firewall is None:
            logger.info("No active firewall; skipping %s", " ".join(ports))
            return []

        pending = self._pending(firewall, ports, trusted_interfaces, masquerade)
        for label, cmd in pending:
            result = self._runner.run(cmd, timeout=_FIREWALL_TIMEOUT)
            if not result.ok:
                raise FirewallError(f"{firewall}: cannot allow {label}: {result.summary()}")

        if pending and firewall == "firewalld":
            result = self._cmd("firewall-cmd", "--reload")
            if not result.ok:
                raise FirewallError(f"firewalld reload failed: {result.summary()}")

        added = [label for label, _ in pending]
        logger.info("%s: allowed %s", firewall, " ".join(added) or "(already open)")
        return added
