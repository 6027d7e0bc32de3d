"""Spec metadata and versioned references.

Every registrable spec carries a :class:`SpecMeta`; everything that points at
a spec (operations, forms, capabilities, policies, slots) uses a
:class:`SpecRef`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TypeAlias

__all__ = [
    "CapabilityRef",
    "FormRef",
    "OpRef",
    "PolicyRef",
    "SpecMeta",
    "SpecRef",
]


@dataclass(frozen=True)
class SpecMeta:
    """Identity and ownership metadata of a versioned spec.

    Attributes:
        key: Stable identifier shared by all versions of the spec.
        version: Numeric version; the highest registered version is "latest".
        title: Human-readable title.
        description: Longer description.
        domain: Business domain the spec belongs to.
        owners: Teams or people responsible for the spec.
        tags: Free-form classification tags.
        stability: Maturity marker such as ``experimental`` or ``stable``.
    """

    key: str
    version: int
    title: str = ""
    description: str = ""
    domain: str = ""
    owners: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    stability: str = "experimental"

    @property
    def identifier(self) -> str:
        """Return the ``key.vN`` form used in messages."""
        return f"{self.key}.v{self.version}"


@dataclass(frozen=True)
class SpecRef:
    """Reference to a spec by key and optional version.

    Attributes:
        key: The referenced spec key.
        version: The referenced version, or ``None`` for the latest one.
    """

    key: str
    version: int | None = field(default=None)

    @property
    def identifier(self) -> str:
        """Return the ``key.vN`` form, or the bare key when unversioned."""
        if self.version is None:
            return self.key
        return f"{self.key}.v{self.version}"

    def __str__(self) -> str:
        return self.identifier


OpRef: TypeAlias = SpecRef
"""Reference to an operation spec."""

FormRef: TypeAlias = SpecRef
"""Reference to a form spec."""

CapabilityRef: TypeAlias = SpecRef
"""Reference to a capability spec."""

PolicyRef: TypeAlias = SpecRef
"""Reference to a policy spec."""
