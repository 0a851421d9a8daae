"""
Error taxonomy — every failure the engine can raise or record.

Pre-plan errors (``UnsupportedPlatformError``, ``InsufficientPrivilegesError``,
``ConfigError``) stop a run before any mutation. Step-level errors are
caught by the executor and turned into StepResults according to the
step's failure policy. Only errors with ``retryable = True`` are retried.
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base class for all provisioner errors."""

    retryable: bool = False


# ── Pre-plan ─────────────────────────────────────────────────────────


class UnsupportedPlatformError(ProvisionError):
    """No recognized OS-release marker, or no mapped package manager."""


class InsufficientPrivilegesError(ProvisionError, PermissionError):
    """The process cannot install packages or manage services."""


class ConfigError(ProvisionError):
    """Raised when provisioner configuration is invalid or unreadable."""


class UnknownProductError(ProvisionError):
    """The requested product has no recipe."""


class PlanError(ProvisionError):
    """A built plan violates its ordering or uniqueness rules."""


# ── Step level ───────────────────────────────────────────────────────


class TransientError(ProvisionError):
    """A failure that may succeed if the step is attempted again."""

    retryable = True


class NetworkError(TransientError):
    """Key fetch, index update or download failed or timed out."""


class PackageLockError(TransientError):
    """Another process holds the package manager lock."""


class FatalError(ProvisionError):
    """Missing binary or package manager; retrying cannot help."""


class KeyVerificationError(ProvisionError):
    """A fetched signing key does not carry a pinned fingerprint."""


class InstallError(ProvisionError):
    """Not every requested package is present after an install."""

    def __init__(self, failed_packages: list[str] | tuple[str, ...], detail: str = ""):
        self.failed_packages = list(failed_packages)
        self.detail = detail
        message = f"Packages not installed: {', '.join(self.failed_packages)}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ServiceError(ProvisionError):
    """A service could not be enabled or started."""

    def __init__(self, service: str, status: str, detail: str = ""):
        self.service = service
        self.status = status
        self.detail = detail
        message = f"Service '{service}' is {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# ── Post-run ─────────────────────────────────────────────────────────


class VerificationFailure(ProvisionError):
    """A post-install check did not pass.

    Retryable so the post-check step can re-poll services that are
    still starting. The Verifier never raises it to callers; it is
    reported as a failed CheckResult.
    """

    retryable = True
