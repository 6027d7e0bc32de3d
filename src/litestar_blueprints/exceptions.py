"""Exception hierarchy for litestar-blueprints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    from litestar_blueprints.app_config.runtime import MissingReference
    from litestar_blueprints.policy.validation import PolicyValidationIssue
    from litestar_blueprints.workflow.runner import PreFlightIssue
    from litestar_blueprints.workflow.validation import WorkflowValidationIssue

__all__ = (
    "AppConfigCompositionError",
    "BlueprintsError",
    "DuplicateSpecError",
    "EntryStepMissingError",
    "GuardRejectedError",
    "IntegrationError",
    "InvalidTransitionError",
    "MissingOperationError",
    "NoTransitionMatchedError",
    "PolicyError",
    "PolicyNotFoundError",
    "PolicyValidationError",
    "PolicyViolationError",
    "RateLimitNotFoundError",
    "SecretProviderError",
    "SpecNotFoundError",
    "StateConflictError",
    "StepNotFoundError",
    "WorkflowError",
    "WorkflowNotFoundError",
    "WorkflowPreFlightError",
    "WorkflowStateExistsError",
    "WorkflowStateNotFoundError",
    "WorkflowTerminalStateError",
    "WorkflowValidationError",
)


class BlueprintsError(Exception):
    """Base exception for all litestar-blueprints errors.

    All exceptions raised by litestar-blueprints inherit from this class, so
    callers can catch every library error with a single except clause.
    """


class SpecNotFoundError(BlueprintsError):
    """Raised when a referenced spec is not registered.

    Attributes:
        kind: The kind of spec that was looked up (``workflow``, ``policy``...).
        key: The key that was not found.
        version: The specific version requested, if any.
    """

    kind = "spec"

    def __init__(self, key: str, version: int | None = None) -> None:
        """Initialize the exception with lookup details.

        Args:
            key: The key that was not found.
            version: The specific version requested, if any.
        """
        self.key = key
        self.version = version
        msg = f"{self.kind.capitalize()} '{key}'"
        if version is not None:
            msg += f" version {version}"
        msg += " not found"
        super().__init__(msg)


class DuplicateSpecError(BlueprintsError):
    """Raised when registering a ``(key, version)`` pair twice.

    Attributes:
        key: The duplicated key.
        version: The duplicated version.
    """

    def __init__(self, key: str, version: int) -> None:
        """Initialize the exception.

        Args:
            key: The duplicated key.
            version: The duplicated version.
        """
        self.key = key
        self.version = version
        super().__init__(f"Duplicate spec {key}.v{version}")


class WorkflowError(BlueprintsError):
    """Base exception for workflow runner errors."""


class WorkflowNotFoundError(SpecNotFoundError, WorkflowError):
    """Raised when a workflow spec is not registered."""

    kind = "workflow"


class WorkflowStateNotFoundError(WorkflowError):
    """Raised when a workflow instance does not exist in the state store.

    Attributes:
        workflow_id: The ID of the workflow instance that was not found.
    """

    def __init__(self, workflow_id: str) -> None:
        """Initialize the exception.

        Args:
            workflow_id: The ID of the workflow instance that was not found.
        """
        self.workflow_id = workflow_id
        super().__init__(f"Workflow state '{workflow_id}' not found")


class WorkflowStateExistsError(WorkflowError):
    """Raised when creating a workflow state whose ID is already stored.

    Attributes:
        workflow_id: The conflicting workflow ID.
    """

    def __init__(self, workflow_id: str) -> None:
        """Initialize the exception.

        Args:
            workflow_id: The conflicting workflow ID.
        """
        self.workflow_id = workflow_id
        super().__init__(f"Workflow state '{workflow_id}' already exists")


class WorkflowTerminalStateError(WorkflowError):
    """Raised when executing a step on a workflow in a terminal status.

    Attributes:
        workflow_id: The ID of the workflow instance.
        status: The current terminal status of the workflow.
    """

    def __init__(self, workflow_id: str, status: str) -> None:
        """Initialize the exception.

        Args:
            workflow_id: The ID of the workflow instance.
            status: The current terminal status of the workflow.
        """
        self.workflow_id = workflow_id
        self.status = status
        super().__init__(f"Workflow '{workflow_id}' is already {status}")


class EntryStepMissingError(WorkflowError):
    """Raised when a workflow has neither an entry step id nor any steps.

    Attributes:
        workflow_name: The workflow key.
        workflow_version: The workflow version.
    """

    def __init__(self, workflow_name: str, workflow_version: int) -> None:
        """Initialize the exception.

        Args:
            workflow_name: The workflow key.
            workflow_version: The workflow version.
        """
        self.workflow_name = workflow_name
        self.workflow_version = workflow_version
        super().__init__(f"Workflow {workflow_name}.v{workflow_version} has no entry step.")


class StepNotFoundError(WorkflowError):
    """Raised when a step id cannot be found in a workflow definition.

    Attributes:
        step_id: The missing step id.
        workflow_name: The workflow that was searched, if known.
    """

    def __init__(self, step_id: str, workflow_name: str | None = None) -> None:
        """Initialize the exception.

        Args:
            step_id: The missing step id.
            workflow_name: The workflow that was searched, if known.
        """
        self.step_id = step_id
        self.workflow_name = workflow_name
        msg = f"Step '{step_id}' not found"
        if workflow_name:
            msg += f" in workflow '{workflow_name}'"
        super().__init__(msg)


class MissingOperationError(WorkflowError):
    """Raised when an automation step is executed without an operation.

    Attributes:
        step_id: The automation step lacking an operation.
    """

    def __init__(self, step_id: str) -> None:
        """Initialize the exception.

        Args:
            step_id: The automation step lacking an operation.
        """
        self.step_id = step_id
        super().__init__(f"Automation step '{step_id}' requires an operation")


class GuardRejectedError(WorkflowError):
    """Raised when a step guard does not pass.

    No state change is made when this is raised.

    Attributes:
        workflow_name: The workflow key.
        step_id: The guarded step.
    """

    def __init__(self, workflow_name: str, step_id: str) -> None:
        """Initialize the exception.

        Args:
            workflow_name: The workflow key.
            step_id: The guarded step.
        """
        self.workflow_name = workflow_name
        self.step_id = step_id
        super().__init__(f"GuardRejected: {workflow_name} -> {step_id}")


class InvalidTransitionError(WorkflowError):
    """Raised when a matched transition targets a step that does not exist.

    Attributes:
        from_step: The step being transitioned from.
        to_step: The missing target step.
    """

    def __init__(self, from_step: str, to_step: str, reason: str | None = None) -> None:
        """Initialize the exception with transition details.

        Args:
            from_step: The step being transitioned from.
            to_step: The step being transitioned to.
            reason: Additional context about why the transition is invalid.
        """
        self.from_step = from_step
        self.to_step = to_step
        msg = f"Invalid transition from '{from_step}' to '{to_step}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class NoTransitionMatchedError(WorkflowError):
    """Raised when a step has outgoing transitions but none of them matched.

    Attributes:
        step_id: The step the workflow is stuck on.
    """

    def __init__(self, step_id: str) -> None:
        """Initialize the exception.

        Args:
            step_id: The step the workflow is stuck on.
        """
        self.step_id = step_id
        super().__init__(f"No transition matched after executing step '{step_id}'")


class WorkflowPreFlightError(WorkflowError):
    """Raised by ``start`` when pre-flight checks report errors.

    Attributes:
        issues: Every pre-flight issue, warnings included.
    """

    def __init__(self, issues: Sequence[PreFlightIssue]) -> None:
        """Initialize the exception.

        Args:
            issues: Every pre-flight issue, warnings included.
        """
        self.issues = list(issues)
        summary = ", ".join(f"{issue.type}:{issue.identifier}" for issue in self.issues if issue.severity == "error")
        super().__init__(f"Workflow pre-flight failed: {summary}")


class WorkflowValidationError(WorkflowError):
    """Raised when a workflow spec fails validation.

    Attributes:
        issues: The collected validation issues.
    """

    def __init__(self, message: str, issues: Sequence[WorkflowValidationIssue]) -> None:
        """Initialize the exception.

        Args:
            message: Summary message.
            issues: The collected validation issues.
        """
        self.issues = list(issues)
        super().__init__(message)


class StateConflictError(WorkflowError):
    """Raised when an optimistic state update loses a race.

    Attributes:
        workflow_id: The contended workflow instance.
        expected: The revision the caller expected.
        actual: The revision found in the store, if known.
    """

    def __init__(self, workflow_id: str, expected: int | None, actual: int | None = None) -> None:
        """Initialize the exception.

        Args:
            workflow_id: The contended workflow instance.
            expected: The revision the caller expected.
            actual: The revision found in the store, if known.
        """
        self.workflow_id = workflow_id
        self.expected = expected
        self.actual = actual
        msg = f"Workflow state '{workflow_id}' changed concurrently (expected revision {expected}, found {actual})"
        super().__init__(msg)


class PolicyError(BlueprintsError):
    """Base exception for policy errors."""


class PolicyNotFoundError(SpecNotFoundError, PolicyError):
    """Raised when a decision references a policy that is not registered."""

    kind = "policy"


class RateLimitNotFoundError(PolicyError):
    """Raised when a rule references an undeclared rate limit.

    Attributes:
        policy_key: The policy holding the rule.
        rate_limit_id: The undeclared rate limit id.
    """

    def __init__(self, policy_key: str, rate_limit_id: str) -> None:
        """Initialize the exception.

        Args:
            policy_key: The policy holding the rule.
            rate_limit_id: The undeclared rate limit id.
        """
        self.policy_key = policy_key
        self.rate_limit_id = rate_limit_id
        super().__init__(f"Rate limit '{rate_limit_id}' is not declared in policy '{policy_key}'")


class PolicyValidationError(PolicyError):
    """Raised when a policy spec fails validation.

    Attributes:
        issues: The collected validation issues.
    """

    def __init__(self, message: str, issues: Sequence[PolicyValidationIssue]) -> None:
        """Initialize the exception.

        Args:
            message: Summary message.
            issues: The collected validation issues.
        """
        self.issues = list(issues)
        super().__init__(message)


class PolicyViolationError(PolicyError):
    """Raised by a policy context when a requirement is not met.

    Attributes:
        violation: Violation type such as ``missing_role`` or ``rate_limit_exceeded``.
        details: Structured details about the violation.
    """

    def __init__(self, violation: str, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the exception.

        Args:
            violation: Violation type.
            message: Human-readable message.
            details: Structured details about the violation.
        """
        self.violation = violation
        self.details = details or {}
        super().__init__(message)


class AppConfigCompositionError(BlueprintsError):
    """Raised by strict composition when references are missing.

    Attributes:
        missing: The missing references.
    """

    def __init__(self, missing: Sequence[MissingReference]) -> None:
        """Initialize the exception.

        Args:
            missing: The missing references.
        """
        self.missing = list(missing)
        summary = ", ".join(f"{item.type}:{item.identifier}" for item in self.missing)
        super().__init__(f"compose_app_config: missing references -> {summary}")


class IntegrationError(BlueprintsError):
    """Base exception for integration runtime errors."""


class SecretProviderError(IntegrationError):
    """Raised when no secret provider can resolve a secret reference.

    Attributes:
        reference: The secret reference.
    """

    def __init__(self, reference: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            reference: The secret reference.
            reason: Additional context.
        """
        self.reference = reference
        msg = f"Unable to resolve secret '{reference}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
