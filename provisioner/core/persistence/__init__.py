"""Persistence — the append-only run ledger."""

from provisioner.core.persistence.ledger import LedgerEntry, RunLedger

__all__ = ["LedgerEntry", "RunLedger"]
