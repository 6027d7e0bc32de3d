"""Workflow graph operations and navigation.

This module provides graph-based operations over workflow definitions:
transition selection, reachability, cycle detection and Mermaid rendering.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

import structlog

from litestar_blueprints.core.expression import evaluate_expression
from litestar_blueprints.exceptions import InvalidTransitionError, StepNotFoundError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from litestar_blueprints.workflow.spec import Step, Transition, WorkflowDefinition

__all__ = ["WorkflowGraph"]

logger = structlog.get_logger(__name__)


class WorkflowGraph:
    """Graph representation of a workflow for navigation and validation.

    Transitions are kept per source step in declaration order. Selection is
    first-match: reordering ``transitions`` changes which branch is taken.

    Attributes:
        definition: The workflow definition this graph represents.
        _steps: Step index by id (first declaration wins on duplicates).
        _adjacency: Outgoing transitions per source step.
        _reverse_adjacency: Predecessor step ids per target step.
    """

    def __init__(self, definition: WorkflowDefinition) -> None:
        """Initialize a workflow graph from a definition.

        Args:
            definition: The workflow definition to represent as a graph.
        """
        self.definition = definition
        self._steps: dict[str, Step] = {}
        self._adjacency: dict[str, list[Transition]] = {}
        self._reverse_adjacency: dict[str, list[str]] = {}
        self._build_adjacency()

    def _build_adjacency(self) -> None:
        for step in self.definition.steps:
            self._steps.setdefault(step.id, step)
            self._adjacency.setdefault(step.id, [])
            self._reverse_adjacency.setdefault(step.id, [])

        for transition in self.definition.transitions:
            self._adjacency.setdefault(transition.source, []).append(transition)
            self._reverse_adjacency.setdefault(transition.target, []).append(transition.source)

    def get_step(self, step_id: str) -> Step:
        """Get a step by id.

        Raises:
            StepNotFoundError: If the definition has no such step.
        """
        try:
            return self._steps[step_id]
        except KeyError:
            raise StepNotFoundError(step_id) from None

    def has_step(self, step_id: str) -> bool:
        """Check whether the definition declares a step."""
        return step_id in self._steps

    def outgoing(self, step_id: str) -> list[Transition]:
        """Get the transitions leaving a step, in declaration order."""
        return list(self._adjacency.get(step_id, []))

    def has_outgoing(self, step_id: str) -> bool:
        """Check whether any transition leaves a step."""
        return bool(self._adjacency.get(step_id))

    def get_previous_steps(self, step_id: str) -> list[str]:
        """Get the steps that lead to a step."""
        return list(self._reverse_adjacency.get(step_id, []))

    def pick_next_step(self, step_id: str, context: Mapping[str, Any]) -> str | None:
        """Select the next step after ``step_id``.

        Args:
            step_id: The step that just executed.
            context: Expression context with ``data``, ``input`` and ``output``.

        Returns:
            The target of the first transition whose condition passes, or None
            when nothing matched.

        Raises:
            InvalidTransitionError: If the matched transition targets an unknown step.

        Example:
            >>> graph.pick_next_step("review", {"data": {"approved": True}})
            'publish'
        """
        for transition in self._adjacency.get(step_id, []):
            if not evaluate_expression(transition.condition, context):
                continue
            if transition.target not in self._steps:
                raise InvalidTransitionError(step_id, transition.target, "target step is not defined")
            logger.debug(
                "workflow.transition_selected",
                source=step_id,
                target=transition.target,
                condition=transition.condition,
            )
            return transition.target
        return None

    def reachable_from(self, start: str) -> set[str]:
        """Get every step id reachable from ``start``, itself included."""
        if start not in self._steps:
            return set()
        reachable = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for transition in self._adjacency.get(current, []):
                if transition.target in self._steps and transition.target not in reachable:
                    reachable.add(transition.target)
                    queue.append(transition.target)
        return reachable

    def roots(self) -> list[str]:
        """Get step ids with no incoming transitions, in declaration order."""
        return [step_id for step_id in self._steps if not self._reverse_adjacency.get(step_id)]

    def find_cycle(self) -> str | None:
        """Return a step id taking part in a cycle, or None for an acyclic graph."""
        visited: set[str] = set()
        stack: set[str] = set()

        def visit(node: str) -> str | None:
            if node in stack:
                return node
            if node in visited:
                return None
            stack.add(node)
            for transition in self._adjacency.get(node, []):
                if transition.target not in self._steps:
                    continue
                found = visit(transition.target)
                if found is not None:
                    return found
            stack.discard(node)
            visited.add(node)
            return None

        for step_id in self._steps:
            found = visit(step_id)
            if found is not None:
                return found
        return None

    def to_mermaid(self) -> str:
        """Render the workflow as a Mermaid flowchart.

        Example:
            >>> print(graph.to_mermaid())
            graph TD
                start((Start))
                start --> review
        """
        entry = self.definition.resolve_entry_step_id()
        lines = ["graph TD"]
        for step in self._steps.values():
            label = step.label or step.id
            if step.id == entry:
                lines.append(f"    {step.id}(({label}))")
            elif step.type == "decision":
                lines.append(f"    {step.id}{{{label}}}")
            else:
                lines.append(f"    {step.id}[{label}]")
        for transition in self.definition.transitions:
            text = transition.label or transition.condition
            if text:
                lines.append(f"    {transition.source} -->|{text}| {transition.target}")
            else:
                lines.append(f"    {transition.source} --> {transition.target}")
        return "\n".join(lines)
