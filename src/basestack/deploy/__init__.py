"""
Stack provisioning: configuration, service catalog, planning and bring-up.

Quick start::

    from basestack.auth import CredentialSet
    from basestack.deploy import (
        DockerRuntime, ProvisionConfig, ProvisionOrchestrator, build_stack, plan_stack,
    )

    config = ProvisionConfig(domain="db.example.com")
    specs = build_stack(config)
    result = ProvisionOrchestrator(DockerRuntime(), config).run(
        plan_stack(specs), specs, CredentialSet.initialize()
    )
"""

from basestack.deploy.config import ProvisionConfig
from basestack.deploy.orchestrator import ProvisionOrchestrator
from basestack.deploy.planner import StackPlan, StackPlanner, plan_stack
from basestack.deploy.results import ProvisionResult, ProvisionState, ServiceOutcome
from basestack.deploy.runtime import ContainerRuntime, DockerRuntime
from basestack.deploy.services import ReadinessPolicy, ServiceSpec, build_stack

__all__ = [
    "ContainerRuntime",
    "DockerRuntime",
    "ProvisionConfig",
    "ProvisionOrchestrator",
    "ProvisionResult",
    "ProvisionState",
    "ReadinessPolicy",
    "ServiceOutcome",
    "ServiceSpec",
    "StackPlan",
    "StackPlanner",
    "build_stack",
    "plan_stack",
]
