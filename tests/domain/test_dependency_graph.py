"""
Dependency Graph Tests

Architectural Intent:
- Plan construction, cycle detection and step filtering
- Pure domain code: no I/O, no event loop
"""

import pytest

from keystone.domain.entities.step import Step
from keystone.domain.errors import (
    DependencyCycleError,
    DuplicateStepError,
    GraphValidationError,
    UnknownDependencyError,
)
from keystone.domain.services.dependency_graph import build_plan, filter_steps


def _step(name, deps=(), required=True):
    return Step(name=name, description=name, handler=lambda: None,
                dependencies=frozenset(deps), required=required)


def _install_steps():
    return [
        _step("setup"),
        _step("package-pull", {"setup"}),
        _step("provision-infra", {"package-pull"}),
        _step("db-migrate", {"provision-infra"}, required=False),
        _step("deploy", {"provision-infra"}),
        _step("post-validate", {"deploy"}, required=False),
        _step("e2e-test", {"deploy"}, required=False),
    ]


class TestBuildPlan:
    def test_levels_respect_edges(self):
        plan = build_plan(_install_steps())
        for step in plan.steps:
            for dep in step.dependencies:
                assert plan.level_of(dep) < plan.level_of(step.name)

    def test_install_workflow_levels(self):
        plan = build_plan(_install_steps())
        assert [[s.name for s in level] for level in plan.levels] == [
            ["setup"],
            ["package-pull"],
            ["provision-infra"],
            ["db-migrate", "deploy"],
            ["post-validate", "e2e-test"],
        ]

    def test_registration_order_kept_within_level(self):
        plan = build_plan([_step("c"), _step("a"), _step("b")])
        assert plan.names == ("c", "a", "b")
        assert len(plan.levels) == 1

    def test_sequential_form_is_one_step_per_level(self):
        plan = build_plan(_install_steps()).as_sequential()
        assert all(len(level) == 1 for level in plan.levels)
        assert plan.names[0] == "setup"
        assert plan.names.index("db-migrate") < plan.names.index("deploy")

    def test_empty_step_set(self):
        plan = build_plan([])
        assert len(plan) == 0
        assert plan.levels == ()

    def test_diamond(self):
        plan = build_plan([
            _step("a"),
            _step("b", {"a"}),
            _step("c", {"a"}),
            _step("d", {"b", "c"}),
        ])
        assert [len(level) for level in plan.levels] == [1, 2, 1]

    def test_transitive_dependents(self):
        plan = build_plan(_install_steps())
        assert plan.transitive_dependents("provision-infra") == {
            "db-migrate", "deploy", "post-validate", "e2e-test",
        }
        assert plan.transitive_dependents("e2e-test") == frozenset()


class TestGraphErrors:
    def test_two_cycle_names_members(self):
        with pytest.raises(DependencyCycleError) as exc_info:
            build_plan([_step("a", {"b"}), _step("b", {"a"})])
        assert set(exc_info.value.cycle) == {"a", "b"}
        assert "Circular dependency detected" in str(exc_info.value)

    def test_longer_cycle_reported_as_path(self):
        with pytest.raises(DependencyCycleError) as exc_info:
            build_plan([
                _step("root"),
                _step("a", {"root", "c"}),
                _step("b", {"a"}),
                _step("c", {"b"}),
            ])
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}
        assert "root" not in cycle

    def test_cycle_is_a_graph_validation_error(self):
        with pytest.raises(GraphValidationError):
            build_plan([_step("a", {"b"}), _step("b", {"a"})])

    def test_unknown_dependency(self):
        with pytest.raises(UnknownDependencyError, match="ghost"):
            build_plan([_step("a", {"ghost"})])

    def test_duplicate_names(self):
        with pytest.raises(DuplicateStepError):
            build_plan([_step("a"), _step("a")])

    def test_self_dependency_is_a_one_step_cycle(self):
        with pytest.raises(DependencyCycleError) as exc_info:
            build_plan([_step("root"), _step("a", {"root", "a"})])
        assert exc_info.value.cycle == ("a", "a")

    def test_assume_satisfied_allows_missing_dependency(self):
        plan = build_plan([_step("b", {"a"})], assume_satisfied={"a"})
        assert plan.names == ("b",)


class TestFilterSteps:
    def test_skip_removes_step(self):
        kept, removed = filter_steps(_install_steps(), skip=["e2e-test"])
        assert len(kept) == 6
        assert removed == {"e2e-test"}

    def test_skip_e2e_gives_six_step_plan(self):
        kept, removed = filter_steps(_install_steps(), skip=["e2e-test"])
        plan = build_plan(kept, assume_satisfied=removed)
        assert len(plan) == 6

    def test_only_keeps_named_steps_and_satisfies_the_rest(self, caplog):
        kept, removed = filter_steps(_install_steps(), only=["deploy"])
        assert [s.name for s in kept] == ["deploy"]
        plan = build_plan(kept, assume_satisfied=removed)
        assert plan.names == ("deploy",)
        assert "treating them as satisfied" in caplog.text

    def test_declared_dependencies_untouched(self):
        kept, _ = filter_steps(_install_steps(), only=["deploy"])
        assert kept[0].dependencies == {"provision-infra"}

    def test_unknown_name_rejected(self):
        with pytest.raises(ValueError, match="Unknown step"):
            filter_steps(_install_steps(), skip=["nope"])

    def test_skip_and_only_are_exclusive(self):
        with pytest.raises(ValueError):
            filter_steps(_install_steps(), skip=["setup"], only=["deploy"])

    def test_no_filters_keeps_everything(self):
        kept, removed = filter_steps(_install_steps())
        assert len(kept) == 7
        assert removed == frozenset()
