"""Versioned spec registry.

This module provides a registry for storing and retrieving specs by key and
numeric version. Each key keeps its versions sorted so "latest" lookups do not
scan the whole registry.
"""

from __future__ import annotations

from bisect import insort
from typing import TYPE_CHECKING, Generic

from litestar_blueprints.core.types import SpecT
from litestar_blueprints.exceptions import DuplicateSpecError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

__all__ = ["SpecRegistry"]


class SpecRegistry(Generic[SpecT]):
    """Registry for storing and retrieving versioned specs.

    Attributes:
        _specs: Nested dict mapping key -> version -> spec.
        _versions: Sorted version list per key.
    """

    def __init__(self, specs: Iterable[SpecT] = ()) -> None:
        """Initialize the registry, optionally pre-registering specs.

        Args:
            specs: Specs to register immediately.
        """
        self._specs: dict[str, dict[int, SpecT]] = {}
        self._versions: dict[str, list[int]] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: SpecT) -> SpecRegistry[SpecT]:
        """Register a spec under its ``(key, version)``.

        Args:
            spec: The spec to register.

        Returns:
            The registry itself, so registrations can be chained.

        Raises:
            DuplicateSpecError: If the same key and version is already registered.

        Example:
            >>> registry = SpecRegistry().register(spec_v1).register(spec_v2)
        """
        meta = spec.meta  # type: ignore[attr-defined]
        versions = self._specs.setdefault(meta.key, {})
        if meta.version in versions:
            raise DuplicateSpecError(meta.key, meta.version)
        versions[meta.version] = spec
        insort(self._versions.setdefault(meta.key, []), meta.version)
        return self

    def get(self, key: str, version: int | None = None) -> SpecT | None:
        """Retrieve a spec by key and optional version.

        Args:
            key: The spec key.
            version: The spec version. If None, returns the highest version.

        Returns:
            The spec, or None if nothing matches.
        """
        versions = self._specs.get(key)
        if not versions:
            return None
        if version is None:
            return versions[self._versions[key][-1]]
        return versions.get(version)

    def list_specs(self) -> list[SpecT]:
        """List every registered spec, all versions, ordered by key then version."""
        return [self._specs[key][version] for key in sorted(self._specs) for version in self._versions[key]]

    def get_versions(self, key: str) -> list[int]:
        """Get all registered versions for a key, ascending.

        Args:
            key: The spec key.

        Returns:
            List of versions, empty when the key is unknown.
        """
        return list(self._versions.get(key, []))

    def has(self, key: str, version: int | None = None) -> bool:
        """Check whether a spec exists in the registry."""
        return self.get(key, version) is not None

    def __contains__(self, key: object) -> bool:
        return key in self._specs

    def __len__(self) -> int:
        return sum(len(versions) for versions in self._specs.values())

    def __iter__(self) -> Iterator[SpecT]:
        return iter(self.list_specs())
