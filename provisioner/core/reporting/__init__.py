"""Reporting — text and structured run summaries, exit codes."""

from provisioner.core.reporting.reporter import ExitCode, Reporter, progress_line

__all__ = ["ExitCode", "Reporter", "progress_line"]
