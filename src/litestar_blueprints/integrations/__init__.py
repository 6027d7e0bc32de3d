"""Integration specs, secrets and guarded calls."""

from __future__ import annotations

from litestar_blueprints.integrations.guard import (
    IntegrationCallError,
    IntegrationCallGuard,
    IntegrationGuardOptions,
    IntegrationInvocationResult,
    ensure_connection_ready,
)
from litestar_blueprints.integrations.secrets import (
    EnvSecretProvider,
    InMemorySecretProvider,
    ResolvedSecret,
    SecretProviderManager,
)
from litestar_blueprints.integrations.spec import (
    IntegrationBinding,
    IntegrationConnection,
    IntegrationConnectionMeta,
    IntegrationSlot,
    IntegrationSpec,
    IntegrationSpecRegistry,
    IntegrationTelemetryEvent,
)

__all__ = [
    "EnvSecretProvider",
    "InMemorySecretProvider",
    "IntegrationBinding",
    "IntegrationCallError",
    "IntegrationCallGuard",
    "IntegrationConnection",
    "IntegrationConnectionMeta",
    "IntegrationGuardOptions",
    "IntegrationInvocationResult",
    "IntegrationSlot",
    "IntegrationSpec",
    "IntegrationSpecRegistry",
    "IntegrationTelemetryEvent",
    "ResolvedSecret",
    "SecretProviderManager",
    "ensure_connection_ready",
]
