"""
Shared pytest fixtures and configuration for basestack tests.

This module provides:
- A recording fake ``ContainerRuntime`` (no docker required)
- A ``ProvisionConfig`` rooted in a temporary directory
- A deterministic ``CredentialSet``
- Small ServiceSpec collections for planner and orchestrator tests
"""

import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

import pytest

# Ensure basestack package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from basestack.auth.credentials import CredentialSet
from basestack.core.errors import ContainerNotFound, NetworkNotFound
from basestack.deploy.config import ProvisionConfig
from basestack.deploy.services import ReadinessPolicy, ServiceSpec


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Recording runtime
# =============================================================================


class RecordingRuntime:
    """In-memory ``ContainerRuntime`` that records every call.

    ``fail_on`` maps a method name to ``{target: exception}``; the exception
    is raised when that method is called for that container/network name.
    """

    def __init__(self, fail_on: Mapping[str, Mapping[str, Exception]] | None = None,
                 exec_exit_code: int = 0):
        self.calls: list[tuple] = []
        self.networks: set[str] = set()
        self.containers: dict[str, str] = {}
        self.fail_on = {k: dict(v) for k, v in (fail_on or {}).items()}
        self.exec_exit_code = exec_exit_code

    def _maybe_fail(self, method: str, target: str) -> None:
        exc = self.fail_on.get(method, {}).get(target)
        if exc is not None:
            raise exc

    def network_exists(self, name: str) -> bool:
        self.calls.append(("network_exists", name))
        self._maybe_fail("network_exists", name)
        return name in self.networks

    def create_network(self, name: str) -> None:
        self.calls.append(("create_network", name))
        self._maybe_fail("create_network", name)
        self.networks.add(name)

    def remove_network(self, name: str) -> None:
        self.calls.append(("remove_network", name))
        self._maybe_fail("remove_network", name)
        if name not in self.networks:
            raise NetworkNotFound(f"network {name} not found")
        self.networks.discard(name)

    def create_and_start(self, spec: ServiceSpec, env: Mapping[str, str],
                         ports: Sequence[str], volumes: Sequence[str], *, network: str) -> str:
        self.calls.append(("create_and_start", spec.container_name))
        self._maybe_fail("create_and_start", spec.container_name)
        container_id = f"id-{spec.name}"
        self.containers[spec.container_name] = container_id
        self.last_env = dict(env)
        return container_id

    def stop(self, name: str) -> None:
        self.calls.append(("stop", name))
        self._maybe_fail("stop", name)
        if name not in self.containers:
            raise ContainerNotFound(f"No such container: {name}")

    def remove(self, name: str) -> None:
        self.calls.append(("remove", name))
        self._maybe_fail("remove", name)
        if self.containers.pop(name, None) is None:
            raise ContainerNotFound(f"No such container: {name}")

    def exec_once(self, name: str, command: Sequence[str]) -> int:
        self.calls.append(("exec_once", name))
        self._maybe_fail("exec_once", name)
        return self.exec_exit_code

    def started(self) -> list[str]:
        return [target for method, target in self.calls if method == "create_and_start"]


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep BASESTACK_* variables and any ./.env out of tests."""
    for key in list(os.environ):
        if key.startswith("BASESTACK_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runtime() -> RecordingRuntime:
    return RecordingRuntime()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    return ProvisionConfig(domain="db.example.com", install_dir=tmp_path / "install")


@pytest.fixture
def credentials() -> CredentialSet:
    return CredentialSet.initialize("pg-password", "jwt-secret-for-tests")


@pytest.fixture
def abc_specs() -> list[ServiceSpec]:
    """A (no deps), B (deps: A), C (deps: A, B)."""
    return [
        ServiceSpec(name="a", image="img/a", container_name="ctr-a",
                    readiness=ReadinessPolicy.delay(30)),
        ServiceSpec(name="b", image="img/b", container_name="ctr-b", depends_on=("a",)),
        ServiceSpec(name="c", image="img/c", container_name="ctr-c", depends_on=("a", "b"),
                    post_start_command=("migrate",)),
    ]
