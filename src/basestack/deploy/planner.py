"""
Stack Planner - Orders ServiceSpecs into a bring-up sequence.

This is the core ordering logic:
1. Validate identifiers are unique
2. Validate every dependency names a spec in the collection
3. Validate the dependency graph is a DAG (no cycles)
4. Topologically sort, breaking ties by declaration order
5. Return a StackPlan; teardown is the exact reverse

Design Principles:
- Pure functions (testable, deterministic)
- No runtime access (that's for ProvisionOrchestrator)
- Fails before any container is touched
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from basestack.core.errors import CyclicDependency, DuplicateService, UnknownDependency
from basestack.deploy.services import ServiceSpec

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StackPlan:
    """Dependency-respecting start order over a set of ServiceSpecs."""

    order: tuple[str, ...]

    @property
    def teardown_order(self) -> tuple[str, ...]:
        return tuple(reversed(self.order))

    def __len__(self) -> int:
        return len(self.order)

    def __iter__(self):
        return iter(self.order)

    def position(self, name: str) -> int:
        return self.order.index(name)


class StackPlanner:
    """
    Resolves a ServiceSpec collection into a StackPlan.

    Thread-safe: No mutable state, each plan() call is independent.

    Example:
        plan = StackPlanner().plan(build_stack(config))
        plan.order           # ("db", "kong", "auth", ...)
        plan.teardown_order  # reverse
    """

    def plan(self, specs: Sequence[ServiceSpec]) -> StackPlan:
        """
        Order ``specs`` so every dependency precedes its dependents.

        Raises:
            DuplicateService: If two specs share an identifier
            UnknownDependency: If a spec depends on an absent identifier
            CyclicDependency: If dependencies contain a cycle
        """
        specs = list(specs)
        logger.debug("stack_planner.start", service_count=len(specs))

        self._validate_unique(specs)
        self._validate_dependencies(specs)
        self._validate_no_cycles(specs)

        plan = StackPlan(order=tuple(self._topological_sort(specs)))

        logger.info("stack_planner.resolved", order=list(plan.order))
        return plan

    def _validate_unique(self, specs: list[ServiceSpec]) -> None:
        seen: set[str] = set()
        for spec in specs:
            if spec.name in seen:
                raise DuplicateService(spec.name)
            seen.add(spec.name)

    def _validate_dependencies(self, specs: list[ServiceSpec]) -> None:
        """Validate all dependencies reference existing specs."""
        names = {s.name for s in specs}

        for spec in specs:
            missing = [dep for dep in spec.depends_on if dep not in names]
            if missing:
                raise UnknownDependency(spec.name, missing)

    def _validate_no_cycles(self, specs: list[ServiceSpec]) -> None:
        """
        Validate the dependency graph is a DAG (no cycles).

        Uses depth-first search with three-color marking:
        - WHITE (0): Unvisited
        - GRAY (1): Currently visiting (on current path)
        - BLACK (2): Finished visiting

        If we encounter a GRAY node, we've found a cycle.
        """
        WHITE, GRAY, BLACK = 0, 1, 2

        graph = {s.name: list(s.depends_on) for s in specs}
        color = {s.name: WHITE for s in specs}
        path: list[str] = []

        def dfs(node: str) -> list[str] | None:
            color[node] = GRAY
            path.append(node)

            for neighbor in graph[node]:
                if color[neighbor] == GRAY:
                    cycle_start = path.index(neighbor)
                    return path[cycle_start:] + [neighbor]
                if color[neighbor] == WHITE:
                    found = dfs(neighbor)
                    if found:
                        return found

            color[node] = BLACK
            path.pop()
            return None

        for spec in specs:
            if color[spec.name] == WHITE:
                cycle = dfs(spec.name)
                if cycle:
                    raise CyclicDependency(cycle)

    def _topological_sort(self, specs: list[ServiceSpec]) -> list[str]:
        """
        Kahn's algorithm with a declaration-order priority queue.

        Among specs whose dependencies are all placed, the one declared
        earliest goes next, so output is reproducible run-to-run and does
        not depend on identifier names.
        """
        index = {s.name: i for i, s in enumerate(specs)}
        dependents: dict[str, list[str]] = defaultdict(list)
        in_degree = {s.name: 0 for s in specs}

        # set() so a repeated dependency counts once
        for spec in specs:
            for dep in set(spec.depends_on):
                dependents[dep].append(spec.name)
                in_degree[spec.name] += 1

        ready = [(index[name], name) for name, deg in in_degree.items() if deg == 0]
        heapq.heapify(ready)
        result: list[str] = []

        while ready:
            _, node = heapq.heappop(ready)
            result.append(node)
            for dependent in dependents[node]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, (index[dependent], dependent))

        if len(result) != len(specs):
            remaining = [s.name for s in specs if s.name not in set(result)]
            raise CyclicDependency(remaining)

        return result


def plan_stack(specs: Sequence[ServiceSpec]) -> StackPlan:
    """Convenience wrapper around ``StackPlanner().plan``."""
    return StackPlanner().plan(specs)


__all__ = ["StackPlan", "StackPlanner", "plan_stack"]
