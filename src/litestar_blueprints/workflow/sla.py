"""SLA breach detection.

The monitor sits outside the runner's execution path. A scheduler calls
:meth:`SLAMonitor.check` at whatever cadence it likes; each call compares the
instance's elapsed time against the workflow's SLA budgets and emits a
``workflow.sla_breach`` event per violation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from litestar_blueprints.core.events import SlaBreach
from litestar_blueprints.core.types import WorkflowStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar_blueprints.core.protocols import EventEmitter
    from litestar_blueprints.workflow.spec import WorkflowSpec
    from litestar_blueprints.workflow.state import WorkflowState

__all__ = ["SLAMonitor"]

logger = structlog.get_logger(__name__)

_ACTIVE_STATUSES = frozenset({WorkflowStatus.RUNNING, WorkflowStatus.PAUSED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: datetime, now: datetime) -> int:
    return int((now - start).total_seconds() * 1000)


class SLAMonitor:
    """Detects SLA breaches of workflow instances.

    With ``dedupe=True`` a given breach (workflow, kind, step) is reported
    once until :meth:`reset` is called for the workflow; with ``dedupe=False``
    every call reports every breach still in effect.

    Example:
        >>> monitor = SLAMonitor(emitter=publish)
        >>> breaches = monitor.check(state, spec)
    """

    def __init__(
        self,
        emitter: EventEmitter | None = None,
        *,
        dedupe: bool = True,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the monitor.

        Args:
            emitter: Receives ``workflow.sla_breach`` events.
            dedupe: Report each breach only once per workflow.
            clock: Returns the current time.
        """
        self.emitter = emitter
        self.dedupe = dedupe
        self._clock = clock
        self._reported: set[tuple[str, str, str | None]] = set()

    def check(self, state: WorkflowState, spec: WorkflowSpec) -> list[SlaBreach]:
        """Check one instance against its workflow's SLA.

        Args:
            state: The workflow instance.
            spec: The workflow spec the instance runs.

        Returns:
            The breaches reported by this call.
        """
        if state.status not in _ACTIVE_STATUSES:
            self.reset(state.workflow_id)
            return []

        sla = spec.definition.sla
        if sla is None:
            return []

        now = self._clock()
        found: list[SlaBreach] = []

        if sla.total_duration_ms is not None:
            elapsed = _elapsed_ms(state.created_at, now)
            if elapsed > sla.total_duration_ms:
                found.append(
                    SlaBreach(
                        workflow_id=state.workflow_id,
                        workflow_name=state.workflow_name,
                        kind="total",
                        elapsed_ms=elapsed,
                        limit_ms=sla.total_duration_ms,
                    )
                )

        step_limit = sla.step_duration_ms.get(state.current_step)
        if step_limit is not None:
            elapsed = _elapsed_ms(state.step_entered_at(), now)
            if elapsed > step_limit:
                found.append(
                    SlaBreach(
                        workflow_id=state.workflow_id,
                        workflow_name=state.workflow_name,
                        kind="step",
                        step_id=state.current_step,
                        elapsed_ms=elapsed,
                        limit_ms=step_limit,
                    )
                )

        reported = [breach for breach in found if self._should_report(breach)]
        for breach in reported:
            logger.info(
                "workflow.sla_breach",
                workflow_id=breach.workflow_id,
                kind=breach.kind,
                step_id=breach.step_id,
                elapsed_ms=breach.elapsed_ms,
                limit_ms=breach.limit_ms,
            )
            if self.emitter is not None:
                self.emitter(breach.name, breach.to_payload())
        return reported

    def reset(self, workflow_id: str | None = None) -> None:
        """Forget reported breaches for one workflow, or for all when None."""
        if workflow_id is None:
            self._reported.clear()
            return
        self._reported = {entry for entry in self._reported if entry[0] != workflow_id}

    def _should_report(self, breach: SlaBreach) -> bool:
        if not self.dedupe:
            return True
        marker = (breach.workflow_id, breach.kind, breach.step_id)
        if marker in self._reported:
            return False
        self._reported.add(marker)
        return True
