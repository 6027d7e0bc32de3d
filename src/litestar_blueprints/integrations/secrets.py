"""Secret providers for integration connections.

Connections store a ``secret_ref`` such as ``env://STRIPE_API_KEY``; the call
guard hands that reference to a :class:`SecretProvider` before each call.

Usage:
    manager = SecretProviderManager([
        EnvSecretProvider(),
        InMemorySecretProvider({"memory://stripe": '{"api_key": "sk_test"}'}),
    ])
    secret = await manager.get_secret("env://STRIPE_API_KEY")
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from litestar_blueprints.exceptions import SecretProviderError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from litestar_blueprints.core.protocols import SecretProvider

__all__ = [
    "EnvSecretProvider",
    "InMemorySecretProvider",
    "ResolvedSecret",
    "SecretProviderManager",
]

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ResolvedSecret:
    """A fetched secret.

    Attributes:
        data: Raw secret payload; usually UTF-8 JSON.
        source: Which provider produced it, e.g. ``env``.
        fetched_at: When it was fetched.
    """

    data: bytes
    source: str = ""
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return f"ResolvedSecret(source={self.source!r}, data=<redacted>)"


class EnvSecretProvider:
    """Reads secrets from environment variables via ``env://NAME`` references."""

    scheme = "env://"

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        """Initialize the provider.

        Args:
            environ: Mapping to read from; ``os.environ`` when omitted.
        """
        self._environ = environ if environ is not None else os.environ

    def can_handle(self, reference: str) -> bool:
        return reference.startswith(self.scheme)

    async def get_secret(self, reference: str) -> ResolvedSecret:
        """Fetch the environment variable named by ``reference``.

        Raises:
            SecretProviderError: If the variable is unset or empty.
        """
        name = reference[len(self.scheme) :]
        value = self._environ.get(name)
        if not value:
            raise SecretProviderError(reference, f"environment variable '{name}' not set or empty")
        return ResolvedSecret(data=value.encode("utf-8"), source="env")


class InMemorySecretProvider:
    """Serves secrets from a dict; meant for tests and local development."""

    def __init__(self, secrets: Mapping[str, str | bytes] | None = None) -> None:
        self._secrets: dict[str, bytes] = {}
        for reference, value in (secrets or {}).items():
            self.set(reference, value)

    def set(self, reference: str, value: str | bytes) -> None:
        self._secrets[reference] = value.encode("utf-8") if isinstance(value, str) else value

    def can_handle(self, reference: str) -> bool:
        return reference in self._secrets

    async def get_secret(self, reference: str) -> ResolvedSecret:
        try:
            return ResolvedSecret(data=self._secrets[reference], source="memory")
        except KeyError:
            raise SecretProviderError(reference, "not found") from None


class SecretProviderManager:
    """Delegates to the first provider that can handle a reference."""

    def __init__(self, providers: Iterable[SecretProvider] = ()) -> None:
        self.providers: list[SecretProvider] = list(providers)

    def register(self, provider: SecretProvider) -> None:
        self.providers.append(provider)

    def can_handle(self, reference: str) -> bool:
        return any(provider.can_handle(reference) for provider in self.providers)

    async def get_secret(self, reference: str) -> ResolvedSecret:
        """Fetch a secret from the first capable provider.

        Raises:
            SecretProviderError: If no provider handles the reference, or the
                chosen provider fails.
        """
        for provider in self.providers:
            if provider.can_handle(reference):
                logger.debug("integration.secret_provider_selected", provider=type(provider).__name__)
                return await provider.get_secret(reference)
        raise SecretProviderError(reference, "no provider can handle this reference")
