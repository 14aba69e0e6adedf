"""Key-ring collaborator interface.

Key generation and management live outside this package.  The lifecycle
engine only asks the key ring for the identity public keys to attach to a
record after a successful authenticate or create.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol


class KeyRing(Protocol):
    """Supplies public keys associated with an authentication attempt."""

    def identity_public_keys(self, username: str) -> Sequence[str]: ...


class StaticKeyRing:
    """Key ring backed by a fixed ``username -> keys`` mapping."""

    def __init__(self, keys: dict[str, Sequence[str]] | None = None) -> None:
        self._keys: dict[str, list[str]] = {u: list(k) for u, k in (keys or {}).items()}

    def add(self, username: str, key: str) -> None:
        self._keys.setdefault(username, []).append(key)

    def identity_public_keys(self, username: str) -> Sequence[str]:
        return tuple(self._keys.get(username, ()))
