"""Litestar plugin for blueprint integration.

This module provides the BlueprintsPlugin, which wires the workflow and
policy registries, the policy engine, the state store and the workflow runner
into Litestar dependency injection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.exceptions import ImproperlyConfiguredException
from litestar.plugins import InitPluginProtocol

from litestar_blueprints.core.protocols import StateStore  # noqa: TC001 - needed for DI
from litestar_blueprints.policy.engine import PolicyEngine
from litestar_blueprints.policy.spec import PolicyRegistry
from litestar_blueprints.workflow.runner import WorkflowRunner
from litestar_blueprints.workflow.spec import WorkflowRegistry
from litestar_blueprints.workflow.store import InMemoryStateStore

if TYPE_CHECKING:
    from litestar.config.app import AppConfig

    from litestar_blueprints.core.protocols import (
        AppConfigProvider,
        CapabilityEnforcer,
        EventEmitter,
        GuardEvaluator,
        OperationExecutor,
        SecretProvider,
        TranslationResolver,
    )
    from litestar_blueprints.policy.spec import PolicySpec
    from litestar_blueprints.workflow.spec import WorkflowSpec

__all__ = ["BlueprintsPlugin", "BlueprintsPluginConfig"]


@dataclass
class BlueprintsPluginConfig:
    """Configuration for the BlueprintsPlugin.

    Attributes:
        workflow_registry: Optional pre-populated WorkflowRegistry. If not
            provided, a new one will be created.
        policy_registry: Optional pre-populated PolicyRegistry. If not
            provided, a new one will be created.
        state_store: Optional state store. Defaults to an InMemoryStateStore.
        op_executor: Runs automation step operations. Required unless
            ``runner`` is given.
        runner: Optional pre-configured WorkflowRunner. When given, the
            collaborator fields below are ignored.
        guard_evaluator: Custom guard evaluation passed to the runner.
        event_emitter: Lifecycle event sink passed to the runner.
        app_config_provider: Source of the resolved configuration per instance.
        enforce_capabilities: Check run before each operation.
        secret_provider: Passed through to the operation executor.
        translation_resolver: Passed through to the operation executor.
        auto_register_workflows: Workflow specs registered on app startup.
        auto_register_policies: Policy specs registered on app startup.
        dependency_key_workflow_registry: DI key of the WorkflowRegistry.
        dependency_key_policy_registry: DI key of the PolicyRegistry.
        dependency_key_policy_engine: DI key of the PolicyEngine.
        dependency_key_runner: DI key of the WorkflowRunner.
        dependency_key_state_store: DI key of the state store.
    """

    workflow_registry: WorkflowRegistry | None = None
    policy_registry: PolicyRegistry | None = None
    state_store: StateStore | None = None
    op_executor: OperationExecutor | None = None
    runner: WorkflowRunner | None = None
    guard_evaluator: GuardEvaluator | None = None
    event_emitter: EventEmitter | None = None
    app_config_provider: AppConfigProvider | None = None
    enforce_capabilities: CapabilityEnforcer | None = None
    secret_provider: SecretProvider | None = None
    translation_resolver: TranslationResolver | None = None
    auto_register_workflows: list[WorkflowSpec] = field(default_factory=list)
    auto_register_policies: list[PolicySpec] = field(default_factory=list)
    dependency_key_workflow_registry: str = "workflow_registry"
    dependency_key_policy_registry: str = "policy_registry"
    dependency_key_policy_engine: str = "policy_engine"
    dependency_key_runner: str = "workflow_runner"
    dependency_key_state_store: str = "state_store"


class BlueprintsPlugin(InitPluginProtocol):
    """Litestar plugin for workflows and policies.

    Example:
        Basic usage with auto-registration::

            from litestar import Litestar
            from litestar_blueprints import BlueprintsPlugin, BlueprintsPluginConfig

            app = Litestar(
                plugins=[
                    BlueprintsPlugin(
                        config=BlueprintsPluginConfig(
                            op_executor=execute_operation,
                            auto_register_workflows=[onboarding_spec],
                            auto_register_policies=[contacts_policy],
                        )
                    )
                ]
            )

        Using in a route handler::

            from litestar import post
            from litestar_blueprints import WorkflowRunner


            @post("/workflows/{name:str}/start")
            async def start_workflow(name: str, workflow_runner: WorkflowRunner) -> dict:
                workflow_id = await workflow_runner.start(name)
                return {"workflow_id": workflow_id}
    """

    __slots__ = ("_config", "_policy_engine", "_policy_registry", "_registry", "_runner", "_state_store")

    def __init__(self, config: BlueprintsPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or BlueprintsPluginConfig()
        self._registry: WorkflowRegistry | None = None
        self._policy_registry: PolicyRegistry | None = None
        self._policy_engine: PolicyEngine | None = None
        self._state_store: StateStore | None = None
        self._runner: WorkflowRunner | None = None

    @property
    def registry(self) -> WorkflowRegistry:
        """Get the workflow registry.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._registry is None:
            msg = "BlueprintsPlugin has not been initialized. Access registry after app startup."
            raise RuntimeError(msg)
        return self._registry

    @property
    def policy_engine(self) -> PolicyEngine:
        """Get the policy engine.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._policy_engine is None:
            msg = "BlueprintsPlugin has not been initialized. Access policy_engine after app startup."
            raise RuntimeError(msg)
        return self._policy_engine

    @property
    def runner(self) -> WorkflowRunner:
        """Get the workflow runner.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._runner is None:
            msg = "BlueprintsPlugin has not been initialized. Access runner after app startup."
            raise RuntimeError(msg)
        return self._runner

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Creates or uses the provided registries and registers the auto-register specs
        2. Builds the policy engine over the policy registry
        3. Creates or uses the provided state store and runner
        4. Adds dependency providers to the app config

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.

        Raises:
            ImproperlyConfiguredException: If neither a runner nor an operation executor is configured.
        """
        config = self._config

        registry = config.workflow_registry if config.workflow_registry is not None else WorkflowRegistry()
        for workflow_spec in config.auto_register_workflows:
            registry.register(workflow_spec)

        policy_registry = config.policy_registry if config.policy_registry is not None else PolicyRegistry()
        for policy_spec in config.auto_register_policies:
            policy_registry.register(policy_spec)

        if config.runner is not None:
            runner = config.runner
            state_store = runner.state_store
        else:
            if config.op_executor is None:
                msg = "BlueprintsPluginConfig needs either a runner or an op_executor."
                raise ImproperlyConfiguredException(msg)
            state_store = config.state_store if config.state_store is not None else InMemoryStateStore()
            runner = WorkflowRunner(
                registry=registry,
                state_store=state_store,
                op_executor=config.op_executor,
                guard_evaluator=config.guard_evaluator,
                event_emitter=config.event_emitter,
                app_config_provider=config.app_config_provider,
                enforce_capabilities=config.enforce_capabilities,
                secret_provider=config.secret_provider,
                translation_resolver=config.translation_resolver,
            )

        self._registry = registry
        self._policy_registry = policy_registry
        self._policy_engine = PolicyEngine(policy_registry)
        self._state_store = state_store
        self._runner = runner

        def provide_registry() -> WorkflowRegistry:
            return registry

        def provide_policy_registry() -> PolicyRegistry:
            return policy_registry

        def provide_policy_engine() -> PolicyEngine:
            return self._policy_engine  # type: ignore[return-value]

        def provide_runner() -> WorkflowRunner:
            return runner

        def provide_state_store() -> StateStore:
            return state_store

        app_config.dependencies[config.dependency_key_workflow_registry] = Provide(
            provide_registry,
            sync_to_thread=False,
        )
        app_config.dependencies[config.dependency_key_policy_registry] = Provide(
            provide_policy_registry,
            sync_to_thread=False,
        )
        app_config.dependencies[config.dependency_key_policy_engine] = Provide(
            provide_policy_engine,
            sync_to_thread=False,
        )
        app_config.dependencies[config.dependency_key_runner] = Provide(
            provide_runner,
            sync_to_thread=False,
        )
        app_config.dependencies[config.dependency_key_state_store] = Provide(
            provide_state_store,
            sync_to_thread=False,
        )

        return app_config
