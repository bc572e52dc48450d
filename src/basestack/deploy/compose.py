"""Docker Compose projection of the provisioned stack.

Generates the ``docker-compose.yml`` written next to the volumes after a
successful run, so the operator can manage the same stack with
``docker compose`` afterwards. The ``ServiceSpec`` collection is the single
source of truth; nothing here is hand-maintained.

Key Concepts:
    generate_stack_compose: Services with literal (resolved) env, ports,
        ``./``-relative volumes, restart policy, ``depends_on`` lists and
        the shared named network.
    write_compose_file: Persists the YAML string to disk.

Architecture Decisions:
    - YAML string output (not dict): callers get a ready-to-write string
      with a human-readable header comment.
    - Plain ``depends_on`` lists: the images carry no health checks, so
      ``condition: service_healthy`` would never be satisfied.
    - Env values are resolved here with the same values the runtime used,
      so the compose file and the running containers agree.

Related Modules:
    - :mod:`basestack.deploy.services` - source of ServiceSpec
    - :mod:`basestack.deploy.orchestrator` - runtime bring-up of the same specs

Tags:
    compose, docker, yaml, generation, deployment
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import structlog
import yaml

from basestack.deploy.services import ServiceSpec

logger = structlog.get_logger(__name__)

COMPOSE_VERSION = "3.8"


def _yaml_dumps(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def generate_stack_compose(
    specs: Sequence[ServiceSpec],
    values: Mapping[str, str],
    network_name: str,
) -> str:
    """Generate a docker-compose YAML for the stack.

    Parameters
    ----------
    specs
        Service specifications, in declaration order.
    values
        Template values used to resolve each spec's env.
    network_name
        Name of the shared bridge network.

    Returns
    -------
    str
        YAML string ready to write to a file.

    Raises
    ------
    MissingTemplateValue
        If a spec's env names a value absent from ``values``.

    Example::

        values = {**config.template_values(), **credentials.template_values()}
        content = generate_stack_compose(build_stack(config), values, config.network_name)
        write_compose_file(content, config.compose_path)
    """
    compose: dict[str, Any] = {
        "version": COMPOSE_VERSION,
        "services": {},
        "networks": {
            network_name: {
                "name": network_name,
                "driver": "bridge",
            },
        },
    }

    for spec in specs:
        service: dict[str, Any] = {
            "image": spec.image,
            "container_name": spec.container_name,
        }

        env = spec.resolve_env(values)
        if env:
            service["environment"] = env

        if spec.ports:
            service["ports"] = spec.resolve_ports()

        if spec.volumes:
            service["volumes"] = [v.compose_entry() for v in spec.volumes]

        if spec.depends_on:
            service["depends_on"] = list(spec.depends_on)

        service["networks"] = [network_name]
        service["restart"] = spec.restart_policy

        compose["services"][spec.name] = service

    header = (
        "# Generated by basestack; services were started individually with docker run.\n"
        f"# Services: {', '.join(s.name for s in specs)}\n\n"
    )
    return header + _yaml_dumps(compose)


def write_compose_file(content: str, path: Path | str) -> Path:
    """Write compose YAML to ``path``; returns the written path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    logger.info("compose.written", path=str(target))
    return target


__all__ = ["generate_stack_compose", "write_compose_file"]
