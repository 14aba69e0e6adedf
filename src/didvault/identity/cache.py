"""In-memory identity caches owned by a lifecycle engine.

Three mappings live for as long as the owning engine:

- the *node identity* slot, holding at most one DID: the first identity
  authenticated or created through this engine;
- local users, ``username -> DID`` for every other authenticated identity;
- contacts, ``username -> DID`` for known peers, stored without secrets.

There is no eviction.  All mutation happens under one lock so that two
concurrent first authentications cannot both claim the node slot.

Entries are private copies with the plaintext passphrase cleared; every
read hands out a fresh copy, so callers never share state with the cache.
"""

from __future__ import annotations

import threading
from dataclasses import replace

from didvault.identity.models import DID, DIDStatus


def _snapshot(did: DID) -> DID:
    return replace(did, passphrase=None, public_keys=list(did.public_keys))


def _copy_of(did: DID | None) -> DID | None:
    return _snapshot(did) if did is not None else None


class IdentityCache:
    """Node identity plus per-username caches, thread-safe."""

    def __init__(self) -> None:
        self._node: DID | None = None
        self._local_users: dict[str, DID] = {}
        self._contacts: dict[str, DID] = {}
        self._lock = threading.RLock()

    @property
    def node_identity(self) -> DID | None:
        with self._lock:
            return _copy_of(self._node)

    def store(self, did: DID) -> bool:
        """Cache a copy of an authenticated identity.

        The node slot is claimed with a single check-and-set: it is taken if
        empty, or refreshed if it already holds this username.  Any other
        username goes to the local-user map.

        Returns:
            True if ``did`` is (now) the node identity.
        """
        if did.username is None:
            raise ValueError("cannot cache a DID without a username")
        entry = _snapshot(did)
        with self._lock:
            if self._node is None or self._node.same_identity(entry):
                self._node = entry
                self._local_users.pop(entry.username, None)
                return True
            self._local_users[entry.username] = entry
            return False

    def _find(self, username: str) -> DID | None:
        if self._node is not None and self._node.username == username:
            return self._node
        return self._local_users.get(username)

    def lookup(self, username: str) -> DID | None:
        """Cached identity for ``username``, node slot first."""
        with self._lock:
            return _copy_of(self._find(username))

    def local_user(self, username: str) -> DID | None:
        with self._lock:
            return _copy_of(self._local_users.get(username))

    def local_usernames(self) -> list[str]:
        with self._lock:
            return list(self._local_users)

    def mark_revoked(self, username: str) -> bool:
        """Flag a cached identity as revoked. Returns True if one was cached."""
        with self._lock:
            cached = self._find(username)
            if cached is None:
                return False
            cached.status = DIDStatus.REVOKED
            cached.authenticated = False
            return True

    # -- contacts -----------------------------------------------------------

    def add_contact(self, did: DID) -> DID:
        """Remember a peer identity. Secret material is stripped."""
        if did.username is None:
            raise ValueError("cannot add a contact without a username")
        contact = did.public_copy()
        with self._lock:
            self._contacts[did.username] = contact
        return did.public_copy()

    def get_contact(self, username: str) -> DID | None:
        with self._lock:
            contact = self._contacts.get(username)
            return contact.public_copy() if contact is not None else None
