"""Observability — process-wide logging setup and run-id tagging."""

from provisioner.core.observability.logging_config import (
    resolve_level,
    run_context,
    setup_logging,
)

__all__ = ["resolve_level", "run_context", "setup_logging"]
