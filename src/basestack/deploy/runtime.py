"""Container runtime gateway.

The orchestrator talks to the container engine only through the narrow
``ContainerRuntime`` protocol, so its ordering logic can be exercised with
a recording fake. ``DockerRuntime`` implements the protocol over the
``docker`` CLI via subprocess.

Key Concepts:
    ContainerRuntime: Protocol - network inspect/create/remove, container
        create-and-start (pulling a missing image first), stop, remove,
        one-shot exec.
    DockerRuntime: subprocess implementation. Maps docker's stderr to
        ``ContainerNotFound`` / ``NetworkNotFound`` so best-effort cleanup
        can ignore absent objects, and to ``RuntimeUnavailable`` when the
        CLI or daemon cannot be reached.

Architecture Decisions:
    - subprocess, not docker-py: works with any engine exposing a
      ``docker`` CLI (Docker Desktop, Podman, Colima).
    - Label-based tracking: every container gets ``basestack.*`` labels.
    - No health polling here; readiness is the orchestrator's concern.

Best Practices:
    - Call ``DockerRuntime.is_available()`` before a run to fail fast.

Tags:
    container, docker, runtime, subprocess, network
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

import structlog

from basestack.core.errors import (
    ContainerNotFound,
    NetworkNotFound,
    RuntimeCommandError,
    RuntimeUnavailable,
)
from basestack.deploy.services import ServiceSpec

logger = structlog.get_logger(__name__)

_DAEMON_DOWN_MARKERS = (
    "cannot connect to the docker daemon",
    "error during connect",
    "is the docker daemon running",
)
_CONTAINER_MISSING_MARKERS = ("no such container",)
_NETWORK_MISSING_MARKERS = ("no such network",)


@runtime_checkable
class ContainerRuntime(Protocol):
    """Operations the orchestrator needs from a container engine."""

    def network_exists(self, name: str) -> bool: ...

    def create_network(self, name: str) -> None: ...

    def remove_network(self, name: str) -> None: ...

    def create_and_start(
        self,
        spec: ServiceSpec,
        env: Mapping[str, str],
        ports: Sequence[str],
        volumes: Sequence[str],
        *,
        network: str,
    ) -> str: ...

    def stop(self, name: str) -> None: ...

    def remove(self, name: str) -> None: ...

    def exec_once(self, name: str, command: Sequence[str]) -> int: ...


class DockerRuntime:
    """``ContainerRuntime`` backed by the ``docker`` CLI.

    Parameters
    ----------
    label_prefix
        Label prefix for container identification.
    command_timeout
        Seconds before a single docker command is abandoned.

    Raises
    ------
    RuntimeUnavailable
        If the docker CLI is not on PATH.
    """

    def __init__(
        self,
        label_prefix: str = "basestack",
        command_timeout: int = 120,
        exec_timeout: int = 600,
    ) -> None:
        self.label_prefix = label_prefix
        self.command_timeout = command_timeout
        self.exec_timeout = exec_timeout
        self._docker_cmd = self._find_docker()

    # ------------------------------------------------------------------
    # Docker CLI discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _find_docker() -> str:
        docker = shutil.which("docker")
        if docker is None:
            raise RuntimeUnavailable(
                "Docker CLI not found on PATH. Install Docker: "
                "https://docs.docker.com/engine/install/"
            )
        return docker

    @staticmethod
    def is_available() -> bool:
        """Check if Docker is installed and the daemon is running."""
        docker = shutil.which("docker")
        if docker is None:
            return False
        try:
            result = subprocess.run(
                [docker, "info"],
                capture_output=True,
                timeout=10,
            )
            return result.returncode == 0
        except (subprocess.TimeoutExpired, OSError):
            return False

    # ------------------------------------------------------------------
    # Network management
    # ------------------------------------------------------------------

    def network_exists(self, name: str) -> bool:
        result = self._run_docker(["network", "inspect", name], check=False)
        if result.returncode == 0:
            return True
        self._raise_if_daemon_down(result)
        return False

    def create_network(self, name: str) -> None:
        self._run_docker(["network", "create", "--driver", "bridge", name])
        logger.info("network.created", network=name)

    def remove_network(self, name: str) -> None:
        self._run_docker(["network", "rm", name])
        logger.info("network.removed", network=name)

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def create_and_start(
        self,
        spec: ServiceSpec,
        env: Mapping[str, str],
        ports: Sequence[str],
        volumes: Sequence[str],
        *,
        network: str,
    ) -> str:
        """``docker run --detach`` the service; returns the short container id."""
        cmd = [
            "run", "--detach",
            "--name", spec.container_name,
            "--network", network,
            "--restart", spec.restart_policy,
            "--label", f"{self.label_prefix}.service={spec.name}",
            "--label", f"{self.label_prefix}.network={network}",
        ]

        for key, value in env.items():
            cmd.extend(["--env", f"{key}={value}"])
        for volume in volumes:
            cmd.extend(["--volume", volume])
        for port in ports:
            cmd.extend(["--publish", port])

        cmd.append(spec.image)

        self.ensure_image(spec.image)
        result = self._run_docker(cmd)
        container_id = result.stdout.strip()[:12]
        logger.info(
            "container.started",
            service=spec.name,
            container=spec.container_name,
            image=spec.image,
        )
        return container_id

    def ensure_image(self, image: str) -> None:
        """Pull ``image`` unless it is already present locally.

        The pull is not bounded by ``command_timeout``: a first install
        downloads every image and can take many minutes.
        """
        result = self._run_docker(["image", "inspect", image], check=False)
        if result.returncode == 0:
            return
        self._raise_if_daemon_down(result)
        logger.info("image.pulling", image=image)
        self._run_docker(["pull", image], unbounded=True)
        logger.info("image.pulled", image=image)

    def stop(self, name: str) -> None:
        self._run_docker(["stop", name])
        logger.debug("container.stopped", container=name)

    def remove(self, name: str) -> None:
        self._run_docker(["rm", "--force", name])
        logger.debug("container.removed", container=name)

    def exec_once(self, name: str, command: Sequence[str]) -> int:
        """Run ``command`` inside ``name``; returns its exit code."""
        result = self._run_docker(
            ["exec", name, *command],
            check=False,
            timeout=self.exec_timeout,
        )
        if result.returncode != 0:
            self._raise_for_stderr(result, ["exec", name])
        return result.returncode

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run_docker(
        self,
        args: list[str],
        check: bool = True,
        timeout: int | None = None,
        unbounded: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Run a docker CLI command, mapping failures to gateway errors."""
        timeout = None if unbounded else timeout or self.command_timeout
        cmd = [self._docker_cmd, *args]
        logger.debug("docker.exec", args=args[:2])
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise RuntimeCommandError(
                f"Docker command timed out after {timeout}s: docker {args[0]}"
            ) from exc
        except OSError as exc:
            raise RuntimeUnavailable(f"Docker CLI could not be executed: {exc}", cause=exc) from exc

        if check and result.returncode != 0:
            self._raise_for_stderr(result, args)
            raise RuntimeCommandError(
                f"Docker command failed (exit {result.returncode}): docker {' '.join(args[:2])}\n"
                f"{result.stderr.strip()}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result

    def _raise_if_daemon_down(self, result: subprocess.CompletedProcess[str]) -> None:
        stderr = (result.stderr or "").lower()
        if any(marker in stderr for marker in _DAEMON_DOWN_MARKERS):
            raise RuntimeUnavailable(f"Docker daemon is not reachable: {result.stderr.strip()}")

    def _raise_for_stderr(self, result: subprocess.CompletedProcess[str], args: list[str]) -> None:
        """Raise a specific gateway error when stderr identifies one."""
        self._raise_if_daemon_down(result)
        stderr = (result.stderr or "").lower()
        message = f"docker {' '.join(args[:2])}: {result.stderr.strip()}"
        if any(marker in stderr for marker in _CONTAINER_MISSING_MARKERS):
            raise ContainerNotFound(message, returncode=result.returncode, stderr=result.stderr)
        if any(marker in stderr for marker in _NETWORK_MISSING_MARKERS) or (
            args[:1] == ["network"] and "not found" in stderr
        ):
            raise NetworkNotFound(message, returncode=result.returncode, stderr=result.stderr)


__all__ = ["ContainerRuntime", "DockerRuntime"]
