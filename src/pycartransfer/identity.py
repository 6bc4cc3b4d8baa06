"""Caller identities and the registration lookup."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol


def normalize_identity(identity: str) -> str:
    """Canonical form of an identity: trimmed and case-folded.

    Identities are email addresses, which clients type in any case.

    Raises
    ------
    ValueError
        If *identity* is empty after trimming.
    """
    value = identity.strip().casefold()
    if not value:
        raise ValueError("identity must be non-empty")
    return value


class IdentityResolver(Protocol):
    """Tells whether an identity already has an account."""

    async def exists(self, identity: str) -> bool:
        ...


class RegisteredIdentities:
    """In-memory :class:`IdentityResolver` backed by a set of identities."""

    def __init__(self, identities: Iterable[str] = ()) -> None:
        self._identities: set[str] = {normalize_identity(identity) for identity in identities}

    def add(self, identity: str) -> None:
        self._identities.add(normalize_identity(identity))

    def discard(self, identity: str) -> None:
        self._identities.discard(normalize_identity(identity))

    async def exists(self, identity: str) -> bool:
        return normalize_identity(identity) in self._identities
