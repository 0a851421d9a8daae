"""
Step and Plan models — what the engine will do, in order.

A Plan is built once from recipe data and PlatformFacts and is never
modified afterwards. Steps are value objects; their ids are unique
within the plan.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from provisioner.core.models.capability import Capability, Never, Precondition
from provisioner.core.models.platform import PlatformFacts


class StepPhase(StrEnum):
    """Logical phases, in the order they appear in every plan."""

    REMOVE_CONFLICTING = "remove-conflicting-packages"
    INSTALL_PREREQUISITES = "install-prerequisites"
    ADD_REPO = "add-repo"
    UPDATE_INDEX = "update-index"
    INSTALL_TARGET = "install-target-packages"
    WRITE_CONFIGURATION = "write-configuration-files"
    ENABLE_AND_START = "enable-and-start-services"
    RUN_POST_CHECKS = "run-post-checks"
    CONFIGURE_FIREWALL = "configure-local-firewall"


class FailurePolicy(StrEnum):
    ABORT = "abort"
    WARN_AND_CONTINUE = "warn_and_continue"


class Step(BaseModel):
    """One idempotent unit of work."""

    model_config = ConfigDict(frozen=True)

    id: str
    phase: StepPhase
    description: str = ""
    action: Capability
    precondition: Precondition = Field(default_factory=Never)
    idempotent: bool = True
    retryable: bool = False
    on_failure: FailurePolicy = FailurePolicy.ABORT


class Plan(BaseModel):
    """Ordered steps installing one product on one platform."""

    model_config = ConfigDict(frozen=True)

    product: str
    facts: PlatformFacts
    steps: tuple[Step, ...] = ()

    @property
    def step_ids(self) -> list[str]:
        return [s.id for s in self.steps]

    @property
    def phases(self) -> list[StepPhase]:
        return [s.phase for s in self.steps]

    def get(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> dict:
        return {
            "product": self.product,
            "platform": self.facts.model_dump(mode="json"),
            "steps": [
                {
                    "id": s.id,
                    "phase": s.phase.value,
                    "description": s.description,
                    "action": s.action.kind,
                    "precondition": s.precondition.describe(),
                    "idempotent": s.idempotent,
                    "retryable": s.retryable,
                    "on_failure": s.on_failure.value,
                }
                for s in self.steps
            ],
        }
