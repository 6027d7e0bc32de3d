"""Blueprint and tenant configuration model.

An :class:`AppBlueprintSpec` is the app-wide default configuration shared by
every tenant. A :class:`TenantAppConfig` layers per-tenant overrides on top of
one blueprint version. :mod:`litestar_blueprints.app_config.runtime` merges
the two.

Override fields typed ``X | None | Unset`` distinguish "leave the blueprint
value alone" (:data:`~litestar_blueprints.core.types.UNSET`, the default) from
"remove the blueprint value" (``None``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar_blueprints.core.refs import SpecMeta
from litestar_blueprints.core.registry import SpecRegistry
from litestar_blueprints.core.types import UNSET, Unset

if TYPE_CHECKING:
    from datetime import datetime

    from litestar_blueprints.core.refs import CapabilityRef, PolicyRef, SpecRef
    from litestar_blueprints.integrations.spec import IntegrationBinding, IntegrationSlot

__all__ = [
    "AppBlueprintRegistry",
    "AppBlueprintSpec",
    "AppRoute",
    "BlueprintBranding",
    "BlueprintMeta",
    "BrandingAsset",
    "CapabilityOverride",
    "CapabilitySelection",
    "ExperimentSelection",
    "FeatureFlagState",
    "FeatureSelection",
    "KnowledgeBinding",
    "KnowledgeSource",
    "KnowledgeSpaceRegistry",
    "KnowledgeSpaceSpec",
    "LocaleSettings",
    "RouteOverride",
    "TelemetryBinding",
    "TelemetryOverride",
    "TenantAppConfig",
    "TenantBranding",
    "TenantConfigMeta",
    "TenantSpecOverride",
    "ThemeBinding",
    "ThemeOverride",
    "TranslationEntry",
]


@dataclass(frozen=True)
class BlueprintMeta(SpecMeta):
    """Blueprint metadata.

    Attributes:
        app_id: Application the blueprint configures.
    """

    app_id: str = ""


@dataclass(frozen=True)
class CapabilitySelection:
    """Capabilities a blueprint turns on or off by default."""

    enabled: list[CapabilityRef] = field(default_factory=list)
    disabled: list[CapabilityRef] = field(default_factory=list)


@dataclass(frozen=True)
class CapabilityOverride:
    """Capabilities a tenant adds or removes."""

    enable: list[CapabilityRef] = field(default_factory=list)
    disable: list[CapabilityRef] = field(default_factory=list)


@dataclass(frozen=True)
class FeatureSelection:
    """Feature modules included or excluded."""

    include: list[SpecRef] = field(default_factory=list)
    exclude: list[SpecRef] = field(default_factory=list)


@dataclass(frozen=True)
class TenantSpecOverride:
    """Rebinds a data view or workflow slot.

    Attributes:
        slot: The slot name declared by the blueprint.
        pointer: The new spec, or ``None`` to remove the slot.
    """

    slot: str
    pointer: SpecRef | None


@dataclass(frozen=True)
class ThemeBinding:
    """Primary theme and ordered fallbacks."""

    primary: SpecRef
    fallbacks: list[SpecRef] = field(default_factory=list)


@dataclass(frozen=True)
class ThemeOverride:
    """Tenant theme override; unset parts fall back to the blueprint."""

    primary: SpecRef | None = None
    fallbacks: list[SpecRef] | None = None


@dataclass(frozen=True)
class TelemetryBinding:
    """Telemetry spec binding.

    Attributes:
        spec: The telemetry spec to emit against.
        disabled_events: Event keys that must not be emitted.
        sampling_overrides: Sampling rate per event key.
    """

    spec: SpecRef | None = None
    disabled_events: list[str] | None = None
    sampling_overrides: dict[str, float] | None = None


@dataclass(frozen=True)
class TelemetryOverride:
    """Tenant telemetry override.

    Attributes:
        spec: Replacement spec; ``None`` clears the blueprint spec.
        disabled_events: Added to the blueprint's disabled events.
        sampling_overrides: Merged over the blueprint's sampling rates.
    """

    spec: SpecRef | None | Unset = UNSET
    disabled_events: list[str] | None = None
    sampling_overrides: dict[str, float] | None = None


@dataclass(frozen=True)
class ExperimentSelection:
    """Active and paused experiments."""

    active: list[SpecRef] = field(default_factory=list)
    paused: list[SpecRef] = field(default_factory=list)


@dataclass(frozen=True)
class FeatureFlagState:
    """A feature flag and its value."""

    key: str
    enabled: bool
    description: str = ""
    variant: str | None = None


@dataclass(frozen=True)
class AppRoute:
    """An application route.

    Attributes:
        path: URL path, unique among routes.
        label: Navigation label.
        data_view: Data view slot rendered by the route.
        workflow: Workflow slot started from the route.
        guard: Policy gating access to the route.
        feature_flag: Flag that must be on for the route to show.
        experiment: Experiment the route takes part in.
    """

    path: str
    label: str | None = None
    data_view: str | None = None
    workflow: str | None = None
    guard: PolicyRef | None = None
    feature_flag: str | None = None
    experiment: SpecRef | None = None


@dataclass(frozen=True)
class RouteOverride:
    """Tenant override of one route, matched by ``path``.

    A field left :data:`UNSET` keeps the blueprint value; ``None`` removes it.
    """

    path: str
    label: str | None | Unset = UNSET
    data_view: str | None | Unset = UNSET
    workflow: str | None | Unset = UNSET
    guard: PolicyRef | None | Unset = UNSET
    feature_flag: str | None | Unset = UNSET
    experiment: SpecRef | None | Unset = UNSET


@dataclass(frozen=True)
class BrandingAsset:
    """A branding asset such as a logo or favicon."""

    type: str
    url: str


@dataclass(frozen=True)
class BlueprintBranding:
    """Default branding.

    Attributes:
        app_name_key: Translation key of the application name.
        assets: Default assets.
        color_tokens: Color name to theme token path.
    """

    app_name_key: str = ""
    assets: list[BrandingAsset] = field(default_factory=list)
    color_tokens: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TenantBranding:
    """Tenant branding.

    Attributes:
        app_name: Application name per locale.
        assets: Assets replacing blueprint assets of the same type.
        colors: Colors replacing blueprint tokens of the same name.
        custom_domain: Tenant domain.
    """

    app_name: dict[str, str] = field(default_factory=dict)
    assets: list[BrandingAsset] = field(default_factory=list)
    colors: dict[str, str] = field(default_factory=dict)
    custom_domain: str | None = None


@dataclass(frozen=True)
class LocaleSettings:
    """Locales a tenant serves."""

    default_locale: str = "en"
    enabled_locales: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TranslationEntry:
    """A tenant translation override."""

    key: str
    locale: str
    value: str


@dataclass(frozen=True)
class KnowledgeSpaceSpec:
    """A versioned knowledge space definition.

    Attributes:
        meta: Identity and ownership metadata.
        category: Space category such as ``canonical`` or ``operational``.
        display_name: Human-readable name.
    """

    meta: SpecMeta
    category: str = "canonical"
    display_name: str = ""


class KnowledgeSpaceRegistry(SpecRegistry[KnowledgeSpaceSpec]):
    """Registry of knowledge spaces."""


@dataclass(frozen=True)
class KnowledgeSource:
    """A tenant-configured source feeding a knowledge space."""

    id: str
    tenant_id: str
    space_key: str
    space_version: int
    label: str = ""
    source_type: str = "manual"
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class KnowledgeBinding:
    """A tenant's use of a knowledge space.

    Attributes:
        space_key: Knowledge space key.
        space_version: Version; the latest registered when ``None``.
        required: Whether workflows depend on the space.
    """

    space_key: str
    space_version: int | None = None
    required: bool = False


@dataclass(frozen=True)
class AppBlueprintSpec:
    """App-wide default configuration.

    Attributes:
        meta: Blueprint metadata.
        capabilities: Default capability selection.
        features: Default feature modules.
        integration_slots: Integration extension points tenants bind.
        branding: Default branding.
        translation_catalog: Translation catalog the app ships with.
        data_views: Data view slot to spec.
        workflows: Workflow slot to spec.
        policies: Policies applied app-wide.
        theme: Theme binding.
        telemetry: Telemetry binding.
        experiments: Default experiments.
        feature_flags: Default flag values.
        routes: Application routes.
        notes: Free-form notes.
    """

    meta: BlueprintMeta
    capabilities: CapabilitySelection | None = None
    features: FeatureSelection | None = None
    integration_slots: list[IntegrationSlot] = field(default_factory=list)
    branding: BlueprintBranding | None = None
    translation_catalog: SpecRef | None = None
    data_views: dict[str, SpecRef] = field(default_factory=dict)
    workflows: dict[str, SpecRef] = field(default_factory=dict)
    policies: list[PolicyRef] = field(default_factory=list)
    theme: ThemeBinding | None = None
    telemetry: TelemetryBinding | None = None
    experiments: ExperimentSelection | None = None
    feature_flags: list[FeatureFlagState] = field(default_factory=list)
    routes: list[AppRoute] = field(default_factory=list)
    notes: str | None = None


class AppBlueprintRegistry(SpecRegistry[AppBlueprintSpec]):
    """Registry of app blueprints."""


@dataclass(frozen=True)
class TenantConfigMeta:
    """Identity of a tenant configuration.

    Attributes:
        id: Configuration id.
        tenant_id: Owning tenant.
        app_id: Application the tenant runs.
        blueprint_name: Key of the blueprint being overridden.
        blueprint_version: Version of that blueprint.
        environment: Deployment environment.
        version: Configuration version.
        status: ``draft``, ``published`` or ``archived``.
    """

    id: str
    tenant_id: str
    app_id: str
    blueprint_name: str
    blueprint_version: int
    environment: str | None = None
    version: int = 1
    status: str = "draft"
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class TenantAppConfig:
    """Per-tenant overrides layered on a blueprint.

    Example:
        >>> tenant = TenantAppConfig(
        ...     meta=TenantConfigMeta("cfg-1", "acme", "crm", "crm.app", 1),
        ...     capabilities=CapabilityOverride(disable=[SpecRef("crm.export", 1)]),
        ... )
    """

    meta: TenantConfigMeta
    capabilities: CapabilityOverride | None = None
    features: FeatureSelection | None = None
    data_view_overrides: list[TenantSpecOverride] = field(default_factory=list)
    workflow_overrides: list[TenantSpecOverride] = field(default_factory=list)
    additional_policies: list[PolicyRef] = field(default_factory=list)
    theme_override: ThemeOverride | None = None
    telemetry_override: TelemetryOverride | None = None
    experiments: ExperimentSelection | None = None
    feature_flags: list[FeatureFlagState] = field(default_factory=list)
    route_overrides: list[RouteOverride] = field(default_factory=list)
    integrations: list[IntegrationBinding] = field(default_factory=list)
    knowledge: list[KnowledgeBinding] = field(default_factory=list)
    locales: LocaleSettings | None = None
    translation_overrides: list[TranslationEntry] = field(default_factory=list)
    branding: TenantBranding | None = None
    notes: str | None = None
