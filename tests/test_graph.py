"""Tests for WorkflowGraph."""

from __future__ import annotations

import pytest

from litestar_blueprints.core.types import StepType
from litestar_blueprints.exceptions import InvalidTransitionError, StepNotFoundError
from litestar_blueprints.workflow.graph import WorkflowGraph
from litestar_blueprints.workflow.spec import Step, Transition, WorkflowDefinition
from tests.conftest import automation, human


def _definition(transitions: list[Transition], steps: list[Step] | None = None) -> WorkflowDefinition:
    return WorkflowDefinition(
        steps=steps or [automation("a"), automation("b"), automation("c")],
        transitions=transitions,
    )


@pytest.mark.unit
class TestTransitionSelection:
    """Tests for first-match transition selection."""

    def test_first_declared_match_wins(self) -> None:
        graph = WorkflowGraph(
            _definition(
                [
                    Transition(source="a", target="b", condition="data.x===1"),
                    Transition(source="a", target="c"),
                ]
            )
        )

        assert graph.pick_next_step("a", {"data": {"x": 1}}) == "b"
        assert graph.pick_next_step("a", {"data": {"x": 2}}) == "c"

    def test_reordering_changes_the_branch(self) -> None:
        graph = WorkflowGraph(
            _definition(
                [
                    Transition(source="a", target="c"),
                    Transition(source="a", target="b", condition="data.x===1"),
                ]
            )
        )

        assert graph.pick_next_step("a", {"data": {"x": 1}}) == "c"

    def test_no_match_returns_none(self) -> None:
        graph = WorkflowGraph(_definition([Transition(source="a", target="b", condition="output.ok")]))

        assert graph.pick_next_step("a", {"data": {}, "output": {"ok": False}}) is None
        assert graph.has_outgoing("a")
        assert not graph.has_outgoing("b")

    def test_unknown_target_raises(self) -> None:
        graph = WorkflowGraph(_definition([Transition(source="a", target="ghost")]))

        with pytest.raises(InvalidTransitionError, match="ghost"):
            graph.pick_next_step("a", {"data": {}})

    def test_get_step(self) -> None:
        graph = WorkflowGraph(_definition([]))

        assert graph.get_step("a").id == "a"
        with pytest.raises(StepNotFoundError):
            graph.get_step("missing")


@pytest.mark.unit
class TestGraphStructure:
    """Tests for reachability, roots, cycles and rendering."""

    def test_reachable_from(self) -> None:
        graph = WorkflowGraph(_definition([Transition(source="a", target="b")]))

        assert graph.reachable_from("a") == {"a", "b"}
        assert graph.reachable_from("nope") == set()

    def test_roots_and_previous_steps(self) -> None:
        graph = WorkflowGraph(_definition([Transition(source="a", target="c"), Transition(source="b", target="c")]))

        assert graph.roots() == ["a", "b"]
        assert graph.get_previous_steps("c") == ["a", "b"]

    def test_find_cycle(self) -> None:
        acyclic = WorkflowGraph(_definition([Transition(source="a", target="b"), Transition(source="b", target="c")]))
        cyclic = WorkflowGraph(_definition([Transition(source="a", target="b"), Transition(source="b", target="a")]))

        assert acyclic.find_cycle() is None
        assert cyclic.find_cycle() in {"a", "b"}

    def test_to_mermaid(self) -> None:
        definition = _definition(
            [
                Transition(source="a", target="b", label="next"),
                Transition(source="b", target="c", condition="data.ok"),
            ],
            steps=[
                automation("a", label="Begin"),
                Step(id="b", type=StepType.DECISION),
                human("c"),
            ],
        )

        mermaid = WorkflowGraph(definition).to_mermaid()

        assert mermaid.splitlines() == [
            "graph TD",
            "    a((Begin))",
            "    b{b}",
            "    c[c]",
            "    a -->|next| b",
            "    b -->|data.ok| c",
        ]
