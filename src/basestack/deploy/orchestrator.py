"""Provisioning orchestrator - executes a StackPlan against a container runtime.

State machine per run::

    IDLE ──reset?──► NETWORK_READY ──► per service: CREATED ► STARTED ► READY
                                                                        │
                                              COMPLETE ◄── all ready ───┘
    any fatal error ──► FAILED

Why This Matters:
    Later services' environment points at containers started earlier (the
    database above all), and the runtime does not order startups on its
    own. The orchestrator therefore brings services up strictly one at a
    time, in plan order, blocking only on delay-based readiness.

Key Concepts:
    ProvisionOrchestrator.run(): reset (best-effort) → prepare hook → ensure network →
        start each service → wait per readiness policy → post-start hook.
    ProvisionOrchestrator.teardown(): stop/remove in reverse plan order.
    Fail-fast: the first failing ``create_and_start`` ends the run; nothing
        already running is rolled back. A later ``--reset`` run cleans up.

Architecture Decisions:
    - All env templates are resolved before the first runtime call, so a
      configuration error never leaves half a stack behind.
    - ``sleep`` is injected; tests pass a recorder instead of waiting.
    - Post-start hook failures are warnings, never fatal.

Related Modules:
    - :mod:`basestack.deploy.planner` - produces the StackPlan
    - :mod:`basestack.deploy.runtime` - ContainerRuntime gateway
    - :mod:`basestack.deploy.results` - ProvisionResult

Tags:
    orchestration, provisioning, containers, readiness, reset
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import structlog

from basestack.auth.credentials import CredentialSet
from basestack.core.errors import (
    BasestackError,
    ContainerNotFound,
    NetworkCreateFailure,
    NetworkNotFound,
    PlanError,
    RuntimeGatewayError,
    RuntimeUnavailable,
    ServiceStartFailure,
)
from basestack.core.logging import LogContext
from basestack.deploy.config import ProvisionConfig
from basestack.deploy.planner import StackPlan
from basestack.deploy.results import ProvisionResult, ProvisionState, ServiceOutcome
from basestack.deploy.runtime import ContainerRuntime
from basestack.deploy.services import ServiceSpec

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _ResolvedService:
    spec: ServiceSpec
    env: dict[str, str]
    ports: list[str]
    volumes: list[str]


class ProvisionOrchestrator:
    """Brings a planned stack up (and down) through a ``ContainerRuntime``.

    Parameters
    ----------
    runtime
        Container runtime gateway.
    config
        Provisioning configuration (network name, install dir, template values).
    sleep
        Blocking wait used for delay-based readiness.
    progress_interval
        Seconds between progress log lines while waiting.

    Example::

        orchestrator = ProvisionOrchestrator(DockerRuntime(), config)
        result = orchestrator.run(plan, specs, credentials, reset_requested=True)
        if result.succeeded:
            write_credential_file(credentials, config)
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        config: ProvisionConfig,
        sleep: Callable[[float], None] = time.sleep,
        progress_interval: float = 10.0,
    ) -> None:
        self.runtime = runtime
        self.config = config
        self._sleep = sleep
        self.progress_interval = progress_interval

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(
        self,
        plan: StackPlan,
        specs: Sequence[ServiceSpec],
        credentials: CredentialSet,
        reset_requested: bool = False,
        prepare: Callable[[], object] | None = None,
    ) -> ProvisionResult:
        """Execute ``plan``; returns a ProvisionResult (never raises for runtime failures).

        ``prepare`` runs after the reset and before the network is ensured;
        the CLI uses it to lay out volumes once old containers are gone. A
        ``BasestackError`` it raises fails the run at the ``volumes`` stage.

        Raises
        ------
        PlanError
            If ``plan`` names services absent from ``specs``.
        ConfigError
            If an env template cannot be resolved.
        """
        by_name = self._index(plan, specs)
        values = {**self.config.template_values(), **credentials.template_values()}
        resolved = [self._resolve(by_name[name], values) for name in plan.order]

        result = ProvisionResult(
            reset_requested=reset_requested,
            network=self.config.network_name,
            plan=list(plan.order),
        )

        with LogContext(run_id=result.run_id):
            logger.info(
                "provision.started",
                services=len(plan),
                reset=reset_requested,
                network=self.config.network_name,
            )

            if reset_requested:
                try:
                    result.warnings.extend(self._cleanup(plan, by_name, stage="reset"))
                except RuntimeUnavailable as exc:
                    return self._fail(result, exc, stage="reset")

            if prepare is not None:
                try:
                    prepare()
                except BasestackError as exc:
                    return self._fail(result, exc, stage="volumes")

            try:
                self._ensure_network()
            except (NetworkCreateFailure, RuntimeUnavailable) as exc:
                return self._fail(result, exc, stage="network")
            result.state = ProvisionState.NETWORK_READY

            for item in resolved:
                outcome = ServiceOutcome(
                    name=item.spec.name,
                    container_name=item.spec.container_name,
                )
                result.services.append(outcome)
                try:
                    self._start(item, outcome)
                    self._await_ready(item.spec, outcome)
                    if item.spec.post_start_command:
                        warning = self._run_post_start(item.spec, outcome)
                        if warning:
                            result.warnings.append(warning)
                except (ServiceStartFailure, RuntimeUnavailable) as exc:
                    outcome.state = ProvisionState.FAILED
                    outcome.error = exc.message
                    return self._fail(result, exc, stage="service", service=item.spec.name)

            result.mark_complete(ProvisionState.COMPLETE)
            logger.info(
                "provision.complete",
                services=len(result.services),
                duration_seconds=round(result.duration_seconds, 1),
                warnings=len(result.warnings),
            )
        return result

    def teardown(self, plan: StackPlan, specs: Sequence[ServiceSpec]) -> list[str]:
        """Stop and remove every service in reverse order, then the network.

        Best-effort: returns warnings for failures other than "not found".
        """
        by_name = self._index(plan, specs)
        return self._cleanup(plan, by_name, stage="teardown")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _cleanup(
        self,
        plan: StackPlan,
        by_name: Mapping[str, ServiceSpec],
        stage: str,
    ) -> list[str]:
        warnings: list[str] = []
        logger.info(f"{stage}.started", services=len(plan))

        for name in plan.teardown_order:
            container = by_name[name].container_name
            for action in (self.runtime.stop, self.runtime.remove):
                try:
                    action(container)
                except ContainerNotFound:
                    logger.debug(f"{stage}.container_absent", container=container)
                    break
                except RuntimeUnavailable:
                    raise
                except RuntimeGatewayError as exc:
                    message = f"{stage}: {action.__name__} {container} failed: {exc.message}"
                    logger.warning(f"{stage}.container_failed", container=container, error=exc.message)
                    warnings.append(message)

        network = self.config.network_name
        try:
            self.runtime.remove_network(network)
        except NetworkNotFound:
            logger.debug(f"{stage}.network_absent", network=network)
        except RuntimeUnavailable:
            raise
        except RuntimeGatewayError as exc:
            logger.warning(f"{stage}.network_failed", network=network, error=exc.message)
            warnings.append(f"{stage}: remove network {network} failed: {exc.message}")

        logger.info(f"{stage}.complete", warnings=len(warnings))
        return warnings

    def _ensure_network(self) -> None:
        network = self.config.network_name
        try:
            if self.runtime.network_exists(network):
                logger.info("provision.network.exists", network=network)
                return
            self.runtime.create_network(network)
        except RuntimeGatewayError as exc:
            if isinstance(exc, RuntimeUnavailable):
                raise
            raise NetworkCreateFailure(network, cause=exc) from exc
        logger.info("provision.network.created", network=network)

    def _start(self, item: _ResolvedService, outcome: ServiceOutcome) -> None:
        spec = item.spec
        logger.info("provision.service.starting", service=spec.name, image=spec.image)
        outcome.state = ProvisionState.CREATED
        try:
            outcome.container_id = self.runtime.create_and_start(
                spec,
                item.env,
                item.ports,
                item.volumes,
                network=self.config.network_name,
            )
        except RuntimeUnavailable:
            raise
        except RuntimeGatewayError as exc:
            raise ServiceStartFailure(spec.name, cause=exc) from exc
        outcome.state = ProvisionState.STARTED
        logger.info("provision.service.started", service=spec.name, container=spec.container_name)

    def _await_ready(self, spec: ServiceSpec, outcome: ServiceOutcome) -> None:
        """Block for the service's readiness delay; immediate policies return at once."""
        policy = spec.readiness
        if policy.blocks:
            remaining = policy.seconds
            ticks = max(1, math.ceil(policy.seconds / self.progress_interval))
            for tick in range(1, ticks + 1):
                step = min(self.progress_interval, remaining)
                logger.info(
                    "provision.readiness.waiting",
                    service=spec.name,
                    progress=f"{tick}/{ticks}",
                )
                self._sleep(step)
                remaining -= step
            outcome.waited_seconds = policy.seconds
        outcome.state = ProvisionState.READY
        logger.info("provision.service.ready", service=spec.name, policy=policy.kind)

    def _run_post_start(self, spec: ServiceSpec, outcome: ServiceOutcome) -> str | None:
        """Run the post-start command once; failures are returned as a warning."""
        command = list(spec.post_start_command or ())
        logger.info("provision.post_start.running", service=spec.name)
        try:
            exit_code = self.runtime.exec_once(spec.container_name, command)
        except RuntimeUnavailable:
            raise
        except RuntimeGatewayError as exc:
            logger.warning("provision.post_start.failed", service=spec.name, error=exc.message)
            return f"post-start command for {spec.name} failed: {exc.message}"

        outcome.post_start_exit_code = exit_code
        if exit_code != 0:
            logger.warning("provision.post_start.failed", service=spec.name, exit_code=exit_code)
            return f"post-start command for {spec.name} exited with {exit_code}"
        logger.info("provision.post_start.complete", service=spec.name)
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(
        self,
        result: ProvisionResult,
        error: BasestackError,
        stage: str,
        service: str | None = None,
    ) -> ProvisionResult:
        result.failed_stage = stage  # type: ignore[assignment]
        result.failed_service = service
        result.error = error.with_context(run_id=result.run_id, stage=stage).to_dict()
        result.mark_complete(ProvisionState.FAILED)
        logger.error(
            "provision.failed",
            stage=stage,
            service=service,
            error=error.message,
        )
        return result

    @staticmethod
    def _index(plan: StackPlan, specs: Sequence[ServiceSpec]) -> dict[str, ServiceSpec]:
        by_name = {spec.name: spec for spec in specs}
        missing = [name for name in plan.order if name not in by_name]
        if missing:
            raise PlanError(f"Plan references services with no spec: {', '.join(missing)}")
        return by_name

    def _resolve(self, spec: ServiceSpec, values: Mapping[str, str]) -> _ResolvedService:
        return _ResolvedService(
            spec=spec,
            env=spec.resolve_env(values),
            ports=spec.resolve_ports(),
            volumes=spec.resolve_volumes(self.config.install_dir),
        )


__all__ = ["ProvisionOrchestrator"]
