"""Blueprint and tenant configuration.

This module provides the blueprint/tenant data model and the resolver that
merges them into a :class:`ResolvedAppConfig`.
"""

from __future__ import annotations

from litestar_blueprints.app_config.runtime import (
    AppComposition,
    AppCompositionDeps,
    MissingReference,
    ResolvedAppConfig,
    ResolvedBranding,
    ResolvedCapabilities,
    ResolvedExperiments,
    ResolvedFeatures,
    ResolvedIntegration,
    ResolvedKnowledge,
    ResolvedTranslation,
    compose_app_config,
    resolve_app_config,
)
from litestar_blueprints.app_config.spec import (
    AppBlueprintRegistry,
    AppBlueprintSpec,
    AppRoute,
    BlueprintMeta,
    KnowledgeSpaceRegistry,
    TenantAppConfig,
    TenantConfigMeta,
)

__all__ = [
    "AppBlueprintRegistry",
    "AppBlueprintSpec",
    "AppComposition",
    "AppCompositionDeps",
    "AppRoute",
    "BlueprintMeta",
    "KnowledgeSpaceRegistry",
    "MissingReference",
    "ResolvedAppConfig",
    "ResolvedBranding",
    "ResolvedCapabilities",
    "ResolvedExperiments",
    "ResolvedFeatures",
    "ResolvedIntegration",
    "ResolvedKnowledge",
    "ResolvedTranslation",
    "TenantAppConfig",
    "TenantConfigMeta",
    "compose_app_config",
    "resolve_app_config",
]
