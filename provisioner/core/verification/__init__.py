"""Verification — independent post-install checks."""

from provisioner.core.verification.verifier import Verifier, verify

__all__ = ["Verifier", "verify"]
