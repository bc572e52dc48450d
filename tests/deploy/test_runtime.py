"""Tests for basestack.deploy.runtime - DockerRuntime over a patched subprocess."""

from __future__ import annotations

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from basestack.core.errors import (
    ContainerNotFound,
    NetworkNotFound,
    RuntimeCommandError,
    RuntimeUnavailable,
)
from basestack.deploy.runtime import ContainerRuntime, DockerRuntime
from basestack.deploy.services import PortBinding, ServiceSpec


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


@pytest.fixture
def docker():
    with patch("basestack.deploy.runtime.shutil.which", return_value="/usr/bin/docker"), \
         patch("basestack.deploy.runtime.subprocess.run") as run:
        run.return_value = _completed()
        yield DockerRuntime(), run


class TestDiscovery:
    def test_missing_cli_raises(self):
        with patch("basestack.deploy.runtime.shutil.which", return_value=None):
            with pytest.raises(RuntimeUnavailable):
                DockerRuntime()

    def test_is_available_false_without_cli(self):
        with patch("basestack.deploy.runtime.shutil.which", return_value=None):
            assert DockerRuntime.is_available() is False

    def test_is_available_probes_docker_info(self):
        with patch("basestack.deploy.runtime.shutil.which", return_value="/usr/bin/docker"), \
             patch("basestack.deploy.runtime.subprocess.run", return_value=_completed(0)) as run:
            assert DockerRuntime.is_available() is True
        assert run.call_args[0][0] == ["/usr/bin/docker", "info"]

    def test_is_available_false_when_daemon_down(self):
        with patch("basestack.deploy.runtime.shutil.which", return_value="/usr/bin/docker"), \
             patch("basestack.deploy.runtime.subprocess.run", return_value=_completed(1)):
            assert DockerRuntime.is_available() is False

    def test_satisfies_protocol(self, docker):
        runtime, _ = docker
        assert isinstance(runtime, ContainerRuntime)


class TestNetworks:
    def test_exists(self, docker):
        runtime, run = docker
        assert runtime.network_exists("net") is True
        assert run.call_args[0][0] == ["/usr/bin/docker", "network", "inspect", "net"]

    def test_absent(self, docker):
        runtime, run = docker
        run.return_value = _completed(1, stderr="Error: No such network: net")
        assert runtime.network_exists("net") is False

    def test_exists_with_daemon_down(self, docker):
        runtime, run = docker
        run.return_value = _completed(1, stderr="Cannot connect to the Docker daemon at unix:///var/run/docker.sock")
        with pytest.raises(RuntimeUnavailable):
            runtime.network_exists("net")

    def test_create(self, docker):
        runtime, run = docker
        runtime.create_network("net")
        assert run.call_args[0][0][1:] == ["network", "create", "--driver", "bridge", "net"]

    def test_remove_missing(self, docker):
        runtime, run = docker
        run.return_value = _completed(1, stderr="Error: network net not found")
        with pytest.raises(NetworkNotFound):
            runtime.remove_network("net")


class TestContainers:
    def test_create_and_start_command(self, docker):
        runtime, run = docker
        run.return_value = _completed(0, stdout="0123456789abcdef\n")
        spec = ServiceSpec(name="db", image="supabase/postgres:latest",
                           container_name="supabase-db", ports=(PortBinding(5432, 5432),))

        container_id = runtime.create_and_start(
            spec, {"A": "1", "B": "x=y"}, ["5432:5432"], ["/data:/var/lib/data"], network="net",
        )

        assert container_id == "0123456789ab"
        cmd = run.call_args[0][0]
        assert cmd[:3] == ["/usr/bin/docker", "run", "--detach"]
        assert cmd[cmd.index("--name") + 1] == "supabase-db"
        assert cmd[cmd.index("--network") + 1] == "net"
        assert cmd[cmd.index("--restart") + 1] == "unless-stopped"
        assert "A=1" in cmd and "B=x=y" in cmd
        assert cmd[cmd.index("--volume") + 1] == "/data:/var/lib/data"
        assert cmd[cmd.index("--publish") + 1] == "5432:5432"
        assert "basestack.service=db" in cmd
        assert cmd[-1] == "supabase/postgres:latest"

    def test_create_failure(self, docker):
        runtime, run = docker
        run.side_effect = [
            _completed(0),
            _completed(125, stderr="Conflict. The container name is already in use"),
        ]
        spec = ServiceSpec(name="db", image="img", container_name="supabase-db")
        with pytest.raises(RuntimeCommandError) as exc_info:
            runtime.create_and_start(spec, {}, [], [], network="net")
        assert exc_info.value.returncode == 125
        assert not isinstance(exc_info.value, ContainerNotFound)

    def test_present_image_is_not_pulled(self, docker):
        runtime, run = docker
        spec = ServiceSpec(name="db", image="img", container_name="supabase-db")
        runtime.create_and_start(spec, {}, [], [], network="net")

        commands = [c[0][0][1:3] for c in run.call_args_list]
        assert commands == [["image", "inspect"], ["run", "--detach"]]

    def test_missing_image_is_pulled_without_timeout(self, docker):
        runtime, run = docker
        run.side_effect = [
            _completed(1, stderr="Error: No such image: img"),
            _completed(0),
            _completed(0, stdout="abc\n"),
        ]
        spec = ServiceSpec(name="db", image="img", container_name="supabase-db")
        runtime.create_and_start(spec, {}, [], [], network="net")

        pull, start = run.call_args_list[1:]
        assert pull[0][0][1:] == ["pull", "img"]
        assert pull[1]["timeout"] is None
        assert start[0][0][1:3] == ["run", "--detach"]
        assert start[1]["timeout"] == runtime.command_timeout

    def test_pull_failure_raises(self, docker):
        runtime, run = docker
        run.side_effect = [
            _completed(1, stderr="Error: No such image: img"),
            _completed(1, stderr="pull access denied for img"),
        ]
        spec = ServiceSpec(name="db", image="img", container_name="supabase-db")
        with pytest.raises(RuntimeCommandError):
            runtime.create_and_start(spec, {}, [], [], network="net")
        assert run.call_count == 2

    def test_stop_missing(self, docker):
        runtime, run = docker
        run.return_value = _completed(1, stderr="Error response from daemon: No such container: x")
        with pytest.raises(ContainerNotFound):
            runtime.stop("x")

    def test_remove_forces(self, docker):
        runtime, run = docker
        runtime.remove("x")
        assert run.call_args[0][0][1:] == ["rm", "--force", "x"]

    def test_timeout(self, docker):
        runtime, run = docker
        run.side_effect = subprocess.TimeoutExpired(cmd="docker", timeout=1)
        with pytest.raises(RuntimeCommandError):
            runtime.stop("x")

    def test_oserror_is_unavailable(self, docker):
        runtime, run = docker
        run.side_effect = OSError("exec format error")
        with pytest.raises(RuntimeUnavailable):
            runtime.stop("x")


class TestExec:
    def test_returns_exit_code(self, docker):
        runtime, run = docker
        assert runtime.exec_once("c", ["bash", "-c", "true"]) == 0
        assert run.call_args[0][0][1:] == ["exec", "c", "bash", "-c", "true"]
        assert run.call_args[1]["timeout"] == 600

    def test_nonzero_exit_is_returned(self, docker):
        runtime, run = docker
        run.return_value = _completed(2, stderr="migration failed")
        assert runtime.exec_once("c", ["x"]) == 2

    def test_missing_container_raises(self, docker):
        runtime, run = docker
        run.return_value = _completed(1, stderr="Error: No such container: c")
        with pytest.raises(ContainerNotFound):
            runtime.exec_once("c", ["x"])
