"""Structured result models for provisioning runs.

``ProvisionResult`` is what ``ProvisionOrchestrator.run()`` returns: whether
the run succeeded, the first failing stage and service, the per-service
outcome and any non-fatal warnings collected during reset or post-start
hooks.

Architecture Decisions:
    - Pydantic v2 BaseModel: ``model_dump_json(indent=2)`` for the CLI's
      ``--json`` output.
    - ``mark_complete()`` pattern: the orchestrator calls it once with the
      terminal state; duration is derived from ISO timestamps.

Tags:
    results, models, pydantic, provisioning, status
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class ProvisionState(str, Enum):
    """Run-level and per-service states of the bring-up state machine."""

    IDLE = "idle"
    NETWORK_READY = "network_ready"
    CREATED = "created"
    STARTED = "started"
    READY = "ready"
    COMPLETE = "complete"
    FAILED = "failed"


class ServiceOutcome(BaseModel):
    """What happened to one service during the run."""

    name: str
    container_name: str
    container_id: str | None = None
    state: ProvisionState = ProvisionState.IDLE
    waited_seconds: float = 0.0
    post_start_exit_code: int | None = None
    error: str | None = None


class ProvisionResult(BaseModel):
    """Result of one provisioning run."""

    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    reset_requested: bool = False
    state: ProvisionState = ProvisionState.IDLE
    succeeded: bool = False
    failed_service: str | None = None
    failed_stage: Literal["reset", "volumes", "network", "service"] | None = None
    error: dict[str, Any] | None = None
    network: str | None = None
    plan: list[str] = Field(default_factory=list)
    services: list[ServiceOutcome] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0

    def outcome(self, name: str) -> ServiceOutcome | None:
        for svc in self.services:
            if svc.name == name:
                return svc
        return None

    def mark_complete(self, state: ProvisionState) -> None:
        """Record the terminal state and compute duration."""
        self.state = state
        self.succeeded = state == ProvisionState.COMPLETE
        self.completed_at = datetime.now(UTC).isoformat()
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.completed_at)
        self.duration_seconds = (end - start).total_seconds()

    @property
    def summary(self) -> str:
        ready = sum(1 for s in self.services if s.state == ProvisionState.READY)
        total = len(self.plan) or len(self.services)
        if self.succeeded:
            return f"{ready}/{total} services ready"
        where = f" (service: {self.failed_service})" if self.failed_service else ""
        return f"failed at stage '{self.failed_stage}'{where}; {ready}/{total} services ready"


__all__ = ["ProvisionResult", "ProvisionState", "ServiceOutcome"]
