"""Integration data model.

An :class:`IntegrationSpec` describes a provider (payments, CRM, vector
store...). A blueprint declares :class:`IntegrationSlot` extension points; a
tenant binds each slot to one of its :class:`IntegrationConnection` records
through an :class:`IntegrationBinding`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from litestar_blueprints.core.registry import SpecRegistry
from litestar_blueprints.core.types import ConnectionStatus

if TYPE_CHECKING:
    from litestar_blueprints.core.refs import CapabilityRef, SpecMeta

__all__ = [
    "IntegrationBinding",
    "IntegrationConnection",
    "IntegrationConnectionMeta",
    "IntegrationScope",
    "IntegrationSlot",
    "IntegrationSpec",
    "IntegrationSpecRegistry",
    "IntegrationTelemetryEvent",
    "OwnershipMode",
]

OwnershipMode = Literal["managed", "byok"]
"""Who owns the provider credentials: the platform or the tenant."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IntegrationSpec:
    """A versioned integration provider definition.

    Attributes:
        meta: Identity and ownership metadata.
        category: Provider category such as ``payments`` or ``crm``.
        display_name: Human-readable provider name.
        supported_modes: Ownership modes the provider supports.
        provides: Capabilities the integration makes available.
        config_schema: JSON schema of the non-secret connection config.
        secret_schema: JSON schema of the secret payload.
    """

    meta: SpecMeta
    category: str
    display_name: str = ""
    supported_modes: tuple[OwnershipMode, ...] = ("managed", "byok")
    provides: tuple[CapabilityRef, ...] = ()
    config_schema: dict[str, Any] = field(default_factory=dict)
    secret_schema: dict[str, Any] = field(default_factory=dict)


class IntegrationSpecRegistry(SpecRegistry[IntegrationSpec]):
    """Registry of integration specs."""


@dataclass(frozen=True)
class IntegrationConnectionMeta:
    """Identity of a tenant's integration connection.

    Attributes:
        id: Connection id, referenced by bindings.
        tenant_id: Owning tenant.
        integration_key: Key of the :class:`IntegrationSpec` this connects to.
        integration_version: Version of that spec.
        label: Human-readable label.
        environment: Deployment environment.
    """

    id: str
    tenant_id: str
    integration_key: str
    integration_version: int
    label: str = ""
    environment: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class IntegrationConnection:
    """A tenant's configured connection to an integration provider.

    Attributes:
        meta: Connection identity.
        ownership_mode: ``managed`` or ``byok``.
        config: Non-secret configuration.
        secret_provider: Name of the secret backend.
        secret_ref: Reference handed to the :class:`SecretProvider`.
        status: Last known health.
    """

    meta: IntegrationConnectionMeta
    ownership_mode: OwnershipMode = "managed"
    config: dict[str, Any] = field(default_factory=dict)
    secret_provider: str = ""
    secret_ref: str = ""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN


@dataclass(frozen=True)
class IntegrationSlot:
    """An integration extension point declared by a blueprint.

    Attributes:
        slot_id: Slot identifier, referenced by steps' ``required_integrations``.
        required_category: Provider category the slot accepts.
        allowed_modes: Ownership modes the slot accepts.
        required_capabilities: Capabilities the bound integration must provide.
        required: Whether a tenant must bind the slot.
        description: Human-readable description.
    """

    slot_id: str
    required_category: str | None = None
    allowed_modes: tuple[OwnershipMode, ...] = ()
    required_capabilities: tuple[CapabilityRef, ...] = ()
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class IntegrationScope:
    """Limits a binding to some workflows or operations."""

    workflows: tuple[str, ...] = ()
    operations: tuple[str, ...] = ()


@dataclass(frozen=True)
class IntegrationBinding:
    """A tenant's binding of a blueprint slot to one of its connections.

    Attributes:
        slot_id: The blueprint slot.
        connection_id: The tenant connection.
        scope: Optional scope restriction.
        priority: Ordering among bindings of the same slot; lower wins.
    """

    slot_id: str
    connection_id: str
    scope: IntegrationScope | None = None
    priority: int | None = None


@dataclass(frozen=True)
class IntegrationTelemetryEvent:
    """One integration call attempt, as recorded by the call guard.

    Attributes:
        tenant_id: Tenant the call ran for.
        app_id: Application id.
        environment: Deployment environment.
        blueprint_name: Blueprint key.
        blueprint_version: Blueprint version.
        config_version: Tenant config version.
        slot_id: Slot the call went through.
        integration_key: Integration spec key.
        integration_version: Integration spec version.
        connection_id: Connection used.
        status: ``success`` or ``error``.
        duration_ms: Attempt latency.
        timestamp: When the attempt finished.
        error_code: Error code on failure.
        error_message: Error message on failure.
        metadata: Extra details such as the operation and attempt number.
    """

    tenant_id: str
    app_id: str
    environment: str | None
    blueprint_name: str
    blueprint_version: int
    config_version: int
    slot_id: str
    integration_key: str
    integration_version: int
    connection_id: str
    status: Literal["success", "error"]
    duration_ms: int
    timestamp: datetime = field(default_factory=_utcnow)
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
