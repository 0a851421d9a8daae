"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from provisioner.core.models import PlatformFacts, Plan, Step, RunReport
"""

from provisioner.core.models.capability import (
    AddSignedRepo,
    AddUserToGroup,
    BinaryPresent,
    BinaryVersion,
    Capability,
    CheckSpec,
    CommandSucceeds,
    DirectoryExists,
    EnableService,
    EnsureDirectory,
    EnsureSystemUser,
    FileMatches,
    FirewallPortsOpen,
    InstallArchive,
    InstallPackages,
    Never,
    OpenFirewallPorts,
    PackagesAbsent,
    PackagesInstalled,
    PortListening,
    Precondition,
    RemovePackages,
    RepoConfigured,
    RunCheck,
    ServiceActive,
    ServicesActive,
    StartService,
    StepsUnchanged,
    UpdateIndex,
    UserExists,
    UserInGroup,
    WriteFile,
)
from provisioner.core.models.plan import FailurePolicy, Plan, Step, StepPhase
from provisioner.core.models.platform import OSFamily, PackageManagerKind, PlatformFacts
from provisioner.core.models.report import (
    CheckResult,
    RunReport,
    RunStatus,
    StepOutcome,
    StepResult,
    StepState,
)

__all__ = [
    # capability.py
    "AddSignedRepo",
    "AddUserToGroup",
    "BinaryPresent",
    "BinaryVersion",
    "Capability",
    "CheckSpec",
    "CommandSucceeds",
    "DirectoryExists",
    "EnableService",
    "EnsureDirectory",
    "EnsureSystemUser",
    "FileMatches",
    "FirewallPortsOpen",
    "InstallArchive",
    "InstallPackages",
    "Never",
    "OpenFirewallPorts",
    "PackagesAbsent",
    "PackagesInstalled",
    "PortListening",
    "Precondition",
    "RemovePackages",
    "RepoConfigured",
    "RunCheck",
    "ServiceActive",
    "ServicesActive",
    "StartService",
    "StepsUnchanged",
    "UpdateIndex",
    "UserExists",
    "UserInGroup",
    "WriteFile",
    # plan.py
    "FailurePolicy",
    "Plan",
    "Step",
    "StepPhase",
    # platform.py
    "OSFamily",
    "PackageManagerKind",
    "PlatformFacts",
    # report.py
    "CheckResult",
    "RunReport",
    "RunStatus",
    "StepOutcome",
    "StepResult",
    "StepState",
]
