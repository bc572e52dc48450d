"""Tests for basestack.deploy.planner - dependency ordering."""

from __future__ import annotations

import pytest

from basestack.core.errors import CyclicDependency, DuplicateService, PlanError, UnknownDependency
from basestack.deploy.planner import StackPlan, StackPlanner, plan_stack
from basestack.deploy.services import ServiceSpec, build_stack


def _spec(name: str, *deps: str) -> ServiceSpec:
    return ServiceSpec(name=name, image=f"img/{name}", container_name=f"ctr-{name}", depends_on=deps)


class TestStackPlanner:
    def test_abc_order_and_teardown(self, abc_specs):
        plan = StackPlanner().plan(abc_specs)
        assert plan.order == ("a", "b", "c")
        assert plan.teardown_order == ("c", "b", "a")

    def test_declaration_order_independent_of_input_dependencies(self):
        specs = [_spec("c", "a", "b"), _spec("b", "a"), _spec("a")]
        assert plan_stack(specs).order == ("a", "b", "c")

    def test_ties_broken_by_declaration_not_name(self):
        specs = [_spec("zeta"), _spec("alpha"), _spec("mid", "zeta")]
        assert plan_stack(specs).order == ("zeta", "alpha", "mid")

    def test_stable_across_runs(self):
        specs = [_spec("x"), _spec("y", "x"), _spec("w"), _spec("v", "w", "y")]
        first = plan_stack(specs).order
        for _ in range(10):
            assert plan_stack(specs).order == first

    def test_every_dependency_precedes_dependent(self, config):
        specs = build_stack(config)
        plan = plan_stack(specs)
        for spec in specs:
            for dep in spec.depends_on:
                assert plan.position(dep) < plan.position(spec.name)

    def test_default_stack_order(self, config):
        plan = plan_stack(build_stack(config))
        assert plan.order == (
            "db", "kong", "auth", "rest", "realtime", "storage", "meta", "studio",
        )

    def test_repeated_dependency_counts_once(self):
        specs = [_spec("a"), _spec("b", "a", "a")]
        assert plan_stack(specs).order == ("a", "b")

    def test_empty(self):
        plan = plan_stack([])
        assert plan.order == ()
        assert len(plan) == 0


class TestPlanErrors:
    def test_cycle_is_reported(self):
        specs = [_spec("a", "c"), _spec("b", "a"), _spec("c", "b")]
        with pytest.raises(CyclicDependency) as exc_info:
            plan_stack(specs)
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CyclicDependency):
            plan_stack([_spec("a", "a")])

    def test_unknown_dependency(self):
        with pytest.raises(UnknownDependency) as exc_info:
            plan_stack([_spec("a"), _spec("b", "ghost")])
        assert exc_info.value.service == "b"
        assert exc_info.value.missing == ["ghost"]

    def test_duplicate_identifier(self):
        with pytest.raises(DuplicateService):
            plan_stack([_spec("a"), _spec("a")])

    def test_all_are_plan_errors(self):
        for cls in (CyclicDependency, UnknownDependency, DuplicateService):
            assert issubclass(cls, PlanError)


class TestStackPlan:
    def test_iteration_and_position(self):
        plan = StackPlan(order=("a", "b"))
        assert list(plan) == ["a", "b"]
        assert plan.position("b") == 1
        assert len(plan) == 2
