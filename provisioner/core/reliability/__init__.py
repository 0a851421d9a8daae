"""Reliability — retry policy for transient step failures."""

from provisioner.core.reliability.retry import RetryPolicy

__all__ = ["RetryPolicy"]
