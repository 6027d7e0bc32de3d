"""Blueprint and tenant configuration resolution.

:func:`resolve_app_config` merges a blueprint with a tenant's overrides into a
:class:`ResolvedAppConfig`. :func:`compose_app_config` additionally looks up
every reference in the supplied registries, collecting
:class:`MissingReference` entries for anything it cannot find instead of
failing, unless ``strict`` is requested.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from litestar_blueprints.app_config.spec import (
    AppRoute,
    BlueprintBranding,
    TelemetryBinding,
    TenantBranding,
    ThemeBinding,
)
from litestar_blueprints.core.types import UNSET
from litestar_blueprints.exceptions import AppConfigCompositionError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from litestar_blueprints.app_config.spec import (
        AppBlueprintSpec,
        CapabilityOverride,
        CapabilitySelection,
        ExperimentSelection,
        FeatureFlagState,
        FeatureSelection,
        KnowledgeBinding,
        KnowledgeSource,
        KnowledgeSpaceSpec,
        RouteOverride,
        TelemetryOverride,
        TenantAppConfig,
        TenantSpecOverride,
        ThemeOverride,
        TranslationEntry,
    )
    from litestar_blueprints.core.protocols import Registry
    from litestar_blueprints.core.refs import CapabilityRef, PolicyRef, SpecRef
    from litestar_blueprints.integrations.spec import (
        IntegrationBinding,
        IntegrationConnection,
        IntegrationSlot,
        IntegrationSpec,
    )

__all__ = [
    "AppComposition",
    "AppCompositionDeps",
    "ComposedExperiments",
    "MissingReference",
    "ResolvedAppConfig",
    "ResolvedBranding",
    "ResolvedCapabilities",
    "ResolvedExperiments",
    "ResolvedFeatures",
    "ResolvedIntegration",
    "ResolvedKnowledge",
    "ResolvedTranslation",
    "compose_app_config",
    "resolve_app_config",
]

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_ROUTE_FIELDS = ("label", "data_view", "workflow", "guard", "feature_flag", "experiment")


@dataclass(frozen=True)
class MissingReference:
    """A reference composition could not resolve.

    Attributes:
        type: Reference category, e.g. ``capability``, ``workflow`` or ``integrationSpec``.
        identifier: The unresolved reference, e.g. ``core.sample.v1``.
    """

    type: str
    identifier: str


@dataclass(frozen=True)
class ResolvedCapabilities:
    enabled: list[CapabilityRef] = field(default_factory=list)
    disabled: list[CapabilityRef] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedFeatures:
    include: list[SpecRef] = field(default_factory=list)
    exclude: list[SpecRef] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedExperiments:
    """Experiment selection after merging.

    Attributes:
        catalog: Every experiment mentioned by the blueprint or the tenant.
        active: Running experiments.
        paused: Paused experiments; never overlaps ``active``.
    """

    catalog: list[SpecRef] = field(default_factory=list)
    active: list[SpecRef] = field(default_factory=list)
    paused: list[SpecRef] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedIntegration:
    """A bound integration slot.

    Attributes:
        slot: The blueprint slot.
        binding: The tenant binding.
        connection: The tenant connection bound to the slot.
        spec: The integration spec the connection targets.
    """

    slot: IntegrationSlot
    binding: IntegrationBinding
    connection: IntegrationConnection
    spec: IntegrationSpec


@dataclass(frozen=True)
class ResolvedKnowledge:
    """A knowledge space available to the tenant, with its sources."""

    binding: KnowledgeBinding
    space: KnowledgeSpaceSpec
    sources: list[KnowledgeSource] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedBranding:
    """Effective branding.

    Attributes:
        app_name: Display name in the tenant's default locale.
        app_name_key: Translation key of the blueprint app name.
        assets: Asset type to URL, tenant assets replacing blueprint ones.
        colors: Color name to value or token, tenant colors winning.
        domain: Tenant custom domain, if any.
    """

    app_name: str
    app_name_key: str = ""
    assets: dict[str, str] = field(default_factory=dict)
    colors: dict[str, str] = field(default_factory=dict)
    domain: str | None = None


@dataclass(frozen=True)
class ResolvedTranslation:
    """Effective locale configuration.

    Attributes:
        default_locale: Locale used when a request names none.
        supported_locales: Every enabled locale, default first.
        blueprint_catalog: Translation catalog shipped with the blueprint.
        tenant_overrides: Tenant translation entries.
    """

    default_locale: str
    supported_locales: list[str] = field(default_factory=list)
    blueprint_catalog: SpecRef | None = None
    tenant_overrides: list[TranslationEntry] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedAppConfig:
    """Read-only merge of a blueprint and a tenant configuration.

    Produced fresh by every :func:`resolve_app_config` call. Consumers such as
    the workflow runner share one instance across concurrent operations and
    must not mutate it.
    """

    app_id: str
    tenant_id: str
    blueprint_name: str
    blueprint_version: int
    config_version: int
    environment: str | None = None
    capabilities: ResolvedCapabilities = field(default_factory=ResolvedCapabilities)
    features: ResolvedFeatures = field(default_factory=ResolvedFeatures)
    data_views: dict[str, SpecRef] = field(default_factory=dict)
    workflows: dict[str, SpecRef] = field(default_factory=dict)
    policies: list[PolicyRef] = field(default_factory=list)
    theme: ThemeBinding | None = None
    telemetry: TelemetryBinding | None = None
    experiments: ResolvedExperiments = field(default_factory=ResolvedExperiments)
    feature_flags: list[FeatureFlagState] = field(default_factory=list)
    routes: list[AppRoute] = field(default_factory=list)
    integrations: list[ResolvedIntegration] = field(default_factory=list)
    knowledge: list[ResolvedKnowledge] = field(default_factory=list)
    branding: ResolvedBranding | None = None
    translation: ResolvedTranslation | None = None
    notes: str | None = None


@dataclass
class AppCompositionDeps:
    """Registries and tenant records used by :func:`compose_app_config`.

    Any registry left as ``None`` makes every reference of its category missing.
    """

    capabilities: Registry[Any] | None = None
    features: Registry[Any] | None = None
    data_views: Registry[Any] | None = None
    workflows: Registry[Any] | None = None
    policies: Registry[Any] | None = None
    themes: Registry[Any] | None = None
    telemetry: Registry[Any] | None = None
    experiments: Registry[Any] | None = None
    integration_specs: Registry[IntegrationSpec] | None = None
    integration_connections: Sequence[IntegrationConnection] = ()
    knowledge_spaces: Registry[KnowledgeSpaceSpec] | None = None
    knowledge_sources: Sequence[KnowledgeSource] = ()


@dataclass(frozen=True)
class ComposedExperiments(Generic[T]):
    active: list[T] = field(default_factory=list)
    paused: list[T] = field(default_factory=list)


@dataclass(frozen=True)
class AppComposition:
    """A resolved configuration materialized against registries.

    Attributes:
        resolved: The merged configuration.
        capabilities: Specs of the enabled capabilities.
        features: Specs of the included features.
        data_views: Data view slot to spec.
        workflows: Workflow slot to spec.
        policies: Policy specs.
        theme: Primary theme spec.
        theme_fallbacks: Fallback theme specs.
        telemetry: Telemetry spec.
        experiments: Active and paused experiment specs.
        integrations: Bound integrations.
        knowledge: Available knowledge spaces.
        missing: Every reference that could not be resolved.
    """

    resolved: ResolvedAppConfig
    capabilities: list[Any] = field(default_factory=list)
    features: list[Any] = field(default_factory=list)
    data_views: dict[str, Any] = field(default_factory=dict)
    workflows: dict[str, Any] = field(default_factory=dict)
    policies: list[Any] = field(default_factory=list)
    theme: Any | None = None
    theme_fallbacks: list[Any] = field(default_factory=list)
    telemetry: Any | None = None
    experiments: ComposedExperiments[Any] = field(default_factory=ComposedExperiments)
    integrations: list[ResolvedIntegration] = field(default_factory=list)
    knowledge: list[ResolvedKnowledge] = field(default_factory=list)
    missing: list[MissingReference] = field(default_factory=list)


def resolve_app_config(
    blueprint: AppBlueprintSpec,
    tenant: TenantAppConfig,
    *,
    integration_specs: Registry[IntegrationSpec] | None = None,
    integration_connections: Sequence[IntegrationConnection] = (),
    knowledge_spaces: Registry[KnowledgeSpaceSpec] | None = None,
    knowledge_sources: Sequence[KnowledgeSource] = (),
) -> ResolvedAppConfig:
    """Merge a blueprint with a tenant's overrides.

    Integrations and knowledge are only resolved when their registries are
    given; unresolvable bindings are left out silently. Use
    :func:`compose_app_config` to see what is missing.

    Args:
        blueprint: The app blueprint.
        tenant: The tenant configuration.
        integration_specs: Registry used to resolve integration bindings.
        integration_connections: The tenant's integration connections.
        knowledge_spaces: Registry used to resolve knowledge bindings.
        knowledge_sources: The tenant's knowledge sources.

    Returns:
        The merged configuration.

    Example:
        >>> resolved = resolve_app_config(blueprint, tenant)
        >>> [ref.key for ref in resolved.capabilities.enabled]
        ['core.tenant-extension']
    """
    discarded: list[MissingReference] = []
    integrations = (
        _resolve_integrations(blueprint, tenant, integration_specs, integration_connections, discarded)
        if integration_specs is not None
        else []
    )
    knowledge = (
        _resolve_knowledge(tenant, knowledge_spaces, knowledge_sources, discarded)
        if knowledge_spaces is not None
        else []
    )
    return _merge(blueprint, tenant, integrations, knowledge)


def compose_app_config(
    blueprint: AppBlueprintSpec,
    tenant: TenantAppConfig,
    deps: AppCompositionDeps | None = None,
    *,
    strict: bool = False,
) -> AppComposition:
    """Resolve a configuration and materialize it against registries.

    Args:
        blueprint: The app blueprint.
        tenant: The tenant configuration.
        deps: Registries and tenant records; everything is missing when omitted.
        strict: Raise instead of returning a partial composition.

    Returns:
        The composition, with unresolved references listed in ``missing``.

    Raises:
        AppConfigCompositionError: If ``strict`` is set and any reference is missing.
    """
    deps = deps or AppCompositionDeps()
    missing: list[MissingReference] = []
    integrations = _resolve_integrations(
        blueprint, tenant, deps.integration_specs, deps.integration_connections, missing
    )
    knowledge = _resolve_knowledge(tenant, deps.knowledge_spaces, deps.knowledge_sources, missing)
    resolved = _merge(blueprint, tenant, integrations, knowledge)

    capabilities = _lookup_refs(resolved.capabilities.enabled, deps.capabilities, "capability", missing)
    features = _lookup_refs(resolved.features.include, deps.features, "feature", missing, versioned=False)
    data_views = _lookup_slots(resolved.data_views, deps.data_views, "dataView", missing)
    workflows = _lookup_slots(resolved.workflows, deps.workflows, "workflow", missing)
    policies = _lookup_refs(resolved.policies, deps.policies, "policy", missing)

    theme = None
    theme_fallbacks: list[Any] = []
    if resolved.theme is not None:
        found = _lookup_refs([resolved.theme.primary], deps.themes, "theme", missing)
        theme = found[0] if found else None
        theme_fallbacks = _lookup_refs(resolved.theme.fallbacks, deps.themes, "theme", missing)

    telemetry = None
    if resolved.telemetry is not None and resolved.telemetry.spec is not None:
        found = _lookup_refs([resolved.telemetry.spec], deps.telemetry, "telemetry", missing)
        telemetry = found[0] if found else None

    experiments = ComposedExperiments(
        active=_lookup_refs(resolved.experiments.active, deps.experiments, "experiment", missing),
        paused=_lookup_refs(resolved.experiments.paused, deps.experiments, "experiment", missing),
    )

    if missing:
        logger.warning(
            "app_config.missing_references",
            tenant_id=resolved.tenant_id,
            app_id=resolved.app_id,
            missing=[f"{item.type}:{item.identifier}" for item in missing],
        )
        if strict:
            raise AppConfigCompositionError(missing)

    return AppComposition(
        resolved=resolved,
        capabilities=capabilities,
        features=features,
        data_views=data_views,
        workflows=workflows,
        policies=policies,
        theme=theme,
        theme_fallbacks=theme_fallbacks,
        telemetry=telemetry,
        experiments=experiments,
        integrations=integrations,
        knowledge=knowledge,
        missing=missing,
    )


def _merge(
    blueprint: AppBlueprintSpec,
    tenant: TenantAppConfig,
    integrations: list[ResolvedIntegration],
    knowledge: list[ResolvedKnowledge],
) -> ResolvedAppConfig:
    translation = _merge_translation(blueprint, tenant)
    return ResolvedAppConfig(
        app_id=blueprint.meta.app_id,
        tenant_id=tenant.meta.tenant_id,
        environment=tenant.meta.environment,
        blueprint_name=blueprint.meta.key,
        blueprint_version=blueprint.meta.version,
        config_version=tenant.meta.version,
        capabilities=_merge_capabilities(blueprint.capabilities, tenant.capabilities),
        features=_merge_features(blueprint.features, tenant.features),
        data_views=_merge_slots(blueprint.data_views, tenant.data_view_overrides),
        workflows=_merge_slots(blueprint.workflows, tenant.workflow_overrides),
        policies=_dedupe([*blueprint.policies, *tenant.additional_policies], _ref_key),
        theme=_merge_theme(blueprint.theme, tenant.theme_override),
        telemetry=_merge_telemetry(blueprint.telemetry, tenant.telemetry_override),
        experiments=_merge_experiments(blueprint.experiments, tenant.experiments),
        feature_flags=list({flag.key: flag for flag in [*blueprint.feature_flags, *tenant.feature_flags]}.values()),
        routes=_merge_routes(blueprint.routes, tenant.route_overrides),
        integrations=integrations,
        knowledge=knowledge,
        branding=_merge_branding(blueprint, tenant, translation.default_locale),
        translation=translation,
        notes=tenant.notes if tenant.notes is not None else blueprint.notes,
    )


def _ref_key(ref: SpecRef) -> str:
    return ref.identifier


def _dedupe(items: Iterable[T], key: Callable[[T], str]) -> list[T]:
    """Deduplicate by key: the first occurrence keeps its position, the last one its value."""
    merged: dict[str, T] = {}
    for item in items:
        merged[key(item)] = item
    return list(merged.values())


def _merge_capabilities(
    blueprint: CapabilitySelection | None, tenant: CapabilityOverride | None
) -> ResolvedCapabilities:
    blueprint_enabled = blueprint.enabled if blueprint else []
    blueprint_disabled = blueprint.disabled if blueprint else []
    tenant_enable = tenant.enable if tenant else []
    tenant_disable = tenant.disable if tenant else []

    # a tenant enable beats any disable of the same capability
    re_enabled = {_ref_key(ref) for ref in tenant_enable}
    disabled = [
        ref for ref in _dedupe([*blueprint_disabled, *tenant_disable], _ref_key) if _ref_key(ref) not in re_enabled
    ]
    disabled_keys = {_ref_key(ref) for ref in disabled}
    enabled = [
        ref for ref in _dedupe([*blueprint_enabled, *tenant_enable], _ref_key) if _ref_key(ref) not in disabled_keys
    ]
    return ResolvedCapabilities(enabled=enabled, disabled=disabled)


def _merge_features(blueprint: FeatureSelection | None, tenant: FeatureSelection | None) -> ResolvedFeatures:
    include = _dedupe([*(blueprint.include if blueprint else []), *(tenant.include if tenant else [])], _feature_key)
    exclude = _dedupe([*(blueprint.exclude if blueprint else []), *(tenant.exclude if tenant else [])], _feature_key)
    excluded = {_feature_key(ref) for ref in exclude}
    return ResolvedFeatures(include=[ref for ref in include if _feature_key(ref) not in excluded], exclude=exclude)


def _feature_key(ref: SpecRef) -> str:
    return ref.key


def _merge_slots(blueprint: Mapping[str, SpecRef], overrides: Iterable[TenantSpecOverride]) -> dict[str, SpecRef]:
    merged = dict(blueprint)
    for override in overrides:
        if override.pointer is None:
            merged.pop(override.slot, None)
        else:
            merged[override.slot] = override.pointer
    return merged


def _merge_theme(blueprint: ThemeBinding | None, override: ThemeOverride | None) -> ThemeBinding | None:
    primary = (override.primary if override else None) or (blueprint.primary if blueprint else None)
    if primary is None:
        return None
    if override is not None and override.fallbacks is not None:
        fallbacks = list(override.fallbacks)
    else:
        fallbacks = list(blueprint.fallbacks) if blueprint else []
    return ThemeBinding(primary=primary, fallbacks=fallbacks)


def _merge_telemetry(blueprint: TelemetryBinding | None, override: TelemetryOverride | None) -> TelemetryBinding | None:
    if blueprint is None and override is None:
        return None
    spec = blueprint.spec if blueprint else None
    disabled_events = list(blueprint.disabled_events) if blueprint and blueprint.disabled_events else None
    sampling = dict(blueprint.sampling_overrides) if blueprint and blueprint.sampling_overrides else None

    if override is not None:
        if override.spec is not UNSET:
            spec = override.spec
        if override.disabled_events:
            disabled_events = list(dict.fromkeys([*(disabled_events or []), *override.disabled_events]))
        if override.sampling_overrides:
            sampling = {**(sampling or {}), **override.sampling_overrides}

    if spec is None and not disabled_events:
        return None
    return TelemetryBinding(spec=spec, disabled_events=disabled_events, sampling_overrides=sampling)


def _merge_experiments(
    blueprint: ExperimentSelection | None, tenant: ExperimentSelection | None
) -> ResolvedExperiments:
    default_active = blueprint.active if blueprint else []
    default_paused = blueprint.paused if blueprint else []
    tenant_active = tenant.active if tenant else []
    tenant_paused = tenant.paused if tenant else []

    active = _dedupe(tenant_active or default_active, _ref_key)
    active_keys = {_ref_key(ref) for ref in active}
    paused = [ref for ref in _dedupe(tenant_paused or default_paused, _ref_key) if _ref_key(ref) not in active_keys]
    catalog = _dedupe([*default_active, *default_paused, *tenant_active, *tenant_paused], _ref_key)
    return ResolvedExperiments(catalog=catalog, active=active, paused=paused)


def _merge_routes(blueprint: Iterable[AppRoute], overrides: Iterable[RouteOverride]) -> list[AppRoute]:
    routes: dict[str, dict[str, Any]] = {
        route.path: {name: getattr(route, name) for name in _ROUTE_FIELDS} for route in blueprint
    }
    for override in overrides:
        fields = routes.setdefault(override.path, dict.fromkeys(_ROUTE_FIELDS))
        for name in _ROUTE_FIELDS:
            value = getattr(override, name)
            if value is not UNSET:
                fields[name] = value
    return [AppRoute(path=path, **fields) for path, fields in routes.items()]


def _merge_branding(blueprint: AppBlueprintSpec, tenant: TenantAppConfig, locale: str) -> ResolvedBranding:
    base = blueprint.branding or BlueprintBranding()
    custom = tenant.branding or TenantBranding()
    app_name = (
        custom.app_name.get(locale)
        or next(iter(custom.app_name.values()), None)
        or blueprint.meta.title
        or blueprint.meta.app_id
    )
    assets = {asset.type: asset.url for asset in base.assets}
    assets.update((asset.type, asset.url) for asset in custom.assets)
    return ResolvedBranding(
        app_name=app_name,
        app_name_key=base.app_name_key,
        assets=assets,
        colors={**base.color_tokens, **custom.colors},
        domain=custom.custom_domain,
    )


def _merge_translation(blueprint: AppBlueprintSpec, tenant: TenantAppConfig) -> ResolvedTranslation:
    default_locale = tenant.locales.default_locale if tenant.locales else "en"
    enabled = tenant.locales.enabled_locales if tenant.locales else []
    return ResolvedTranslation(
        default_locale=default_locale,
        supported_locales=list(dict.fromkeys([default_locale, *enabled])),
        blueprint_catalog=blueprint.translation_catalog,
        tenant_overrides=list(tenant.translation_overrides),
    )


def _resolve_integrations(
    blueprint: AppBlueprintSpec,
    tenant: TenantAppConfig,
    specs: Registry[IntegrationSpec] | None,
    connections: Sequence[IntegrationConnection],
    missing: list[MissingReference],
) -> list[ResolvedIntegration]:
    slots = {slot.slot_id: slot for slot in blueprint.integration_slots}
    by_id = {
        connection.meta.id: connection
        for connection in connections
        if connection.meta.tenant_id == tenant.meta.tenant_id
    }
    # lowest priority value first; bindings without priority keep declaration order at the end
    bindings = sorted(tenant.integrations, key=lambda binding: (binding.priority is None, binding.priority or 0))

    resolved: list[ResolvedIntegration] = []
    bound: set[str] = set()
    for binding in bindings:
        if binding.slot_id in bound:
            continue
        slot = slots.get(binding.slot_id)
        if slot is None:
            missing.append(MissingReference("integrationSlot", f"slot:{binding.slot_id}"))
            continue
        connection = by_id.get(binding.connection_id)
        if connection is None:
            missing.append(MissingReference("integrationConnection", f"connection:{binding.connection_id}"))
            continue
        meta = connection.meta
        spec = specs.get(meta.integration_key, meta.integration_version) if specs is not None else None
        if spec is None:
            missing.append(
                MissingReference("integrationSpec", f"spec:{meta.integration_key}.v{meta.integration_version}")
            )
            continue
        resolved.append(ResolvedIntegration(slot=slot, binding=binding, connection=connection, spec=spec))
        bound.add(slot.slot_id)

    missing.extend(
        MissingReference("integrationSlot", f"slot:{slot.slot_id}")
        for slot in blueprint.integration_slots
        if slot.required and slot.slot_id not in bound
    )
    return resolved


def _resolve_knowledge(
    tenant: TenantAppConfig,
    spaces: Registry[KnowledgeSpaceSpec] | None,
    sources: Sequence[KnowledgeSource],
    missing: list[MissingReference],
) -> list[ResolvedKnowledge]:
    resolved: list[ResolvedKnowledge] = []
    for binding in tenant.knowledge:
        space = spaces.get(binding.space_key, binding.space_version) if spaces is not None else None
        if space is None:
            identifier = binding.space_key
            if binding.space_version is not None:
                identifier += f".v{binding.space_version}"
            missing.append(MissingReference("knowledgeSpace", f"space:{identifier}"))
            continue
        matching = [
            source
            for source in sources
            if source.space_key == space.meta.key
            and source.space_version == space.meta.version
            and source.tenant_id == tenant.meta.tenant_id
        ]
        if not matching:
            missing.append(MissingReference("knowledgeSource", f"{space.meta.key}@{space.meta.version}"))
            continue
        resolved.append(ResolvedKnowledge(binding=binding, space=space, sources=matching))
    return resolved


def _lookup_refs(
    refs: Iterable[SpecRef],
    registry: Registry[Any] | None,
    kind: str,
    missing: list[MissingReference],
    *,
    versioned: bool = True,
) -> list[Any]:
    found: list[Any] = []
    for ref in refs:
        version = ref.version if versioned else None
        spec = registry.get(ref.key, version) if registry is not None else None
        if spec is None:
            missing.append(MissingReference(kind, ref.identifier if versioned else ref.key))
            continue
        found.append(spec)
    return found


def _lookup_slots(
    slots: Mapping[str, SpecRef],
    registry: Registry[Any] | None,
    kind: str,
    missing: list[MissingReference],
) -> dict[str, Any]:
    found: dict[str, Any] = {}
    for slot, pointer in slots.items():
        spec = registry.get(pointer.key, pointer.version) if registry is not None else None
        if spec is None:
            missing.append(MissingReference(kind, f"{slot} -> {pointer.identifier}"))
            continue
        found[slot] = spec
    return found
