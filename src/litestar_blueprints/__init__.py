"""Litestar Blueprints - multi-tenant app configuration and workflows for Litestar.

This package composes application blueprints with tenant configuration and
runs the workflows, policies and integrations those configurations reference.

Key Features:
    - Blueprint + tenant configuration merging with missing-reference reporting
    - Step-at-a-time workflow runner with guards, pre-flight checks and SLA monitoring
    - Rule-based policy engine with sandboxed conditions and an OPA adapter
    - Guarded integration calls with secret resolution, retries and telemetry
    - Litestar plugin wiring everything into dependency injection

Example:
    >>> from litestar_blueprints import WorkflowRunner, WorkflowRegistry, InMemoryStateStore
    >>>
    >>> runner = WorkflowRunner(
    ...     registry=WorkflowRegistry([onboarding_spec]),
    ...     state_store=InMemoryStateStore(),
    ...     op_executor=execute_operation,
    ... )
    >>> workflow_id = await runner.start("onboarding")
"""

from __future__ import annotations

from litestar_blueprints.__metadata__ import __project__, __version__
from litestar_blueprints.app_config import ResolvedAppConfig, compose_app_config, resolve_app_config
from litestar_blueprints.exceptions import (
    AppConfigCompositionError,
    BlueprintsError,
    GuardRejectedError,
    PolicyNotFoundError,
    PolicyViolationError,
    StateConflictError,
    WorkflowNotFoundError,
    WorkflowPreFlightError,
    WorkflowValidationError,
)
from litestar_blueprints.integrations import IntegrationCallGuard
from litestar_blueprints.plugin import BlueprintsPlugin, BlueprintsPluginConfig
from litestar_blueprints.policy import PolicyEngine, PolicyRegistry
from litestar_blueprints.workflow import InMemoryStateStore, SLAMonitor, WorkflowRegistry, WorkflowRunner

__all__ = (
    "AppConfigCompositionError",
    "BlueprintsError",
    "BlueprintsPlugin",
    "BlueprintsPluginConfig",
    "GuardRejectedError",
    "InMemoryStateStore",
    "IntegrationCallGuard",
    "PolicyEngine",
    "PolicyNotFoundError",
    "PolicyRegistry",
    "PolicyViolationError",
    "ResolvedAppConfig",
    "SLAMonitor",
    "StateConflictError",
    "WorkflowNotFoundError",
    "WorkflowPreFlightError",
    "WorkflowRegistry",
    "WorkflowRunner",
    "WorkflowValidationError",
    "__project__",
    "__version__",
    "compose_app_config",
    "resolve_app_config",
)
