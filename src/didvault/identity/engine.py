"""DID lifecycle engine: verify, authenticate, save, get-local, revoke.

The engine owns an :class:`IdentityCache` and talks to a
:class:`RecordStore`, a :class:`HashingService` and optionally a
:class:`KeyRing`.  All of them are injected, so tests can swap any of them.

Per-username state is derived from the stored record rather than held in a
global state machine::

    NEW (no record) --save/autogenerate--> ACTIVE --revoke--> REVOKED

Failures raised by collaborators (store errors, unknown hash schemes,
unparsable stored hashes) are caught here and recorded as error codes on the
request.  Nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from didvault.core.exceptions import (
    DIDException,
    FieldRequired,
    MalformedEncodingError,
    PersistenceError,
    RevokedIdentityError,
    UnsupportedAlgorithmError,
)
from didvault.identity.cache import IdentityCache
from didvault.identity.hashing import HashingService, scheme_for
from didvault.identity.keyring import KeyRing
from didvault.identity.models import DID, DIDStatus
from didvault.identity.requests import (
    AuthenticateDIDRequest,
    GetLocalDIDRequest,
    RevokeRequest,
    ServiceRequest,
)
from didvault.identity.store import DID_KIND, InMemoryRecordStore, RecordStore

logger = logging.getLogger(__name__)


@dataclass
class SaveResult:
    """Outcome of :meth:`DIDLifecycleEngine.save`.

    ``did`` is returned even when persisting failed; ``error`` then holds
    the failure so the caller can decide what it means.
    """

    did: DID
    error: DIDException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _fail(request: ServiceRequest | None, name: str) -> None:
    """Record the request-scoped error code called ``name``."""
    if request is not None:
        request.fail(request.Error[name])


def fail_for_save_error(request: ServiceRequest, error: DIDException) -> None:
    if isinstance(error, PersistenceError):
        _fail(request, "PERSISTENCE_FAILURE")
    elif isinstance(error, FieldRequired):
        _fail(request, f"DID_{error.field.upper()}_REQUIRED")
    elif isinstance(error, RevokedIdentityError):
        _fail(request, "DID_REVOKED")
    elif isinstance(error, UnsupportedAlgorithmError):
        code = "UNSUPPORTED_HASH_ALGORITHM"
        if code not in request.Error.__members__:
            code = "DID_PASSPHRASE_HASH_ALGORITHM_UNKNOWN"
        _fail(request, code)


class DIDLifecycleEngine:
    """Identity lifecycle operations over an injected store and cache.

    Typical workflow::

        engine = DIDLifecycleEngine(store=FileRecordStore("~/.didvault/records"))

        request = AuthenticateDIDRequest(did=DID(username="alice", passphrase="s3cret"))
        engine.authenticate(request)
        if request.did.authenticated:
            ...

    Args:
        store: Record store; defaults to a fresh in-memory store.
        hashing: Hashing service; defaults to one built from config.
        cache: Identity cache; defaults to an empty one.
        key_ring: Optional source of identity public keys.
    """

    def __init__(
        self,
        store: RecordStore | None = None,
        hashing: HashingService | None = None,
        cache: IdentityCache | None = None,
        key_ring: KeyRing | None = None,
    ) -> None:
        self._store: RecordStore = store if store is not None else InMemoryRecordStore()
        self._hashing = hashing or HashingService()
        self._key_ring = key_ring
        self.cache = cache if cache is not None else IdentityCache()

    @property
    def hashing(self) -> HashingService:
        return self._hashing

    @property
    def store(self) -> RecordStore:
        return self._store

    # -- helpers ------------------------------------------------------------

    def _load(self, username: str) -> DID | None:
        data = self._store.load(DID_KIND, username)
        if not data:
            return None
        try:
            return DID.from_dict(data)
        except (AttributeError, TypeError, ValueError) as exc:
            raise PersistenceError(DID_KIND, username, "corrupt record") from exc

    def _stored_algorithm(self, did: DID) -> str | None:
        """Scheme name of a stored record, preferring its hash over its label."""
        if did.passphrase_hash is not None:
            try:
                return self._hashing.algorithm_of(did.passphrase_hash)
            except (UnsupportedAlgorithmError, MalformedEncodingError):
                pass
        if not did.passphrase_hash_algorithm:
            return None
        try:
            return scheme_for(did.passphrase_hash_algorithm).name
        except UnsupportedAlgorithmError:
            return did.passphrase_hash_algorithm

    def _attach_keys(self, did: DID) -> bool:
        """Append key-ring keys to ``did``. Returns True if any were new."""
        if self._key_ring is None or did.username is None:
            return False
        added = False
        for key in self._key_ring.identity_public_keys(did.username):
            added = did.add_public_key(key) or added
        return added

    def _cache(self, did: DID) -> None:
        if self.cache.store(did):
            logger.info("Node identity cached: %s", did.username)
        else:
            logger.info("Local user identity cached: %s", did.username)

    # -- verify -------------------------------------------------------------

    def verify(self, did: DID, request: ServiceRequest | None = None) -> DID:
        """Check that a record exists for ``did.username``.

        Returns the stored record with ``verified=True`` when one exists and
        its username matches exactly (case-sensitive).  Otherwise returns
        ``did`` itself with ``verified=False``.  The passphrase is not
        consulted.

        A store failure counts as "not verified" and is recorded on
        ``request`` as PERSISTENCE_FAILURE when a request is given.
        """
        loaded: DID | None = None
        if did.username is not None:
            try:
                loaded = self._load(did.username)
            except PersistenceError as exc:
                logger.warning("DID verification could not load record: %s", exc)
                _fail(request, "PERSISTENCE_FAILURE")
        if loaded is not None and loaded.username == did.username:
            loaded.verified = True
            logger.info("DID verification successful.")
            return loaded
        did.verified = False
        logger.info("DID verification unsuccessful.")
        return did

    # -- save ---------------------------------------------------------------

    def save(self, did: DID, auto_create: bool = True) -> SaveResult:
        """Persist ``did``, hashing its passphrase first if no hash exists.

        The plaintext passphrase is always cleared before the store is
        called.  ``auto_create`` is passed to the store: when False, saving a
        record that does not exist yet fails.

        Returns:
            A :class:`SaveResult`; failures are reported there, not raised.
        """
        logger.info("Saving DID...")
        if did.username is None:
            did.clear_passphrase()
            return SaveResult(did, FieldRequired("username"))

        if did.status != DIDStatus.REVOKED:
            try:
                existing = self._load(did.username)
            except PersistenceError as exc:
                logger.warning("Saving DID failed: %s", exc)
                did.clear_passphrase()
                return SaveResult(did, exc)
            if existing is not None and existing.is_revoked:
                logger.warning("Refusing to overwrite revoked DID %s", did.username)
                did.clear_passphrase()
                return SaveResult(did, RevokedIdentityError(did.username))

        if did.passphrase_hash is None:
            if did.passphrase is None:
                return SaveResult(did, FieldRequired("passphrase"))
            logger.debug("Hashing passphrase...")
            try:
                did.passphrase_hash = self._hashing.generate_passphrase_hash(
                    did.passphrase, did.passphrase_hash_algorithm
                )
                did.passphrase_hash_algorithm = self._hashing.algorithm_of(did.passphrase_hash)
            except UnsupportedAlgorithmError as exc:
                logger.warning("Hashing algorithm not supported while saving DID: %s", exc)
                return SaveResult(did, exc)
            finally:
                did.clear_passphrase()
        else:
            did.clear_passphrase()
            did.passphrase_hash_algorithm = self._stored_algorithm(did)

        if did.status == DIDStatus.UNINITIALIZED:
            did.status = DIDStatus.ACTIVE

        try:
            self._store.save(DID_KIND, did.username, did.to_dict(), auto_create)
        except PersistenceError as exc:
            logger.warning("Saving DID failed: %s", exc)
            return SaveResult(did, exc)
        logger.info("DID saved.")
        return SaveResult(did)

    # -- authenticate -------------------------------------------------------

    def authenticate(self, request: AuthenticateDIDRequest) -> None:
        """Authenticate ``request.did`` against its stored record.

        On success ``request.did`` is replaced by the stored record with
        ``authenticated=True`` and the identity is cached.  A wrong
        passphrase leaves ``authenticated=False`` and sets no error code; an
        unknown username sets DID_USERNAME_UNKNOWN unless ``autogenerate``
        is set, in which case the identity is created and authenticated.
        """
        did = request.did
        passphrase = did.passphrase
        did.authenticated = False
        if passphrase is None:
            _fail(request, "DID_PASSPHRASE_REQUIRED")
            return

        try:
            loaded = self._load(did.username)
        except PersistenceError as exc:
            logger.warning("Unable to load DID for authentication: %s", exc)
            did.clear_passphrase()
            _fail(request, "PERSISTENCE_FAILURE")
            return

        if loaded is None or loaded.passphrase_hash is None:
            self._autogenerate(request)
            return

        if not self._matches_stored(request, passphrase, loaded):
            return
        self._accept(request, loaded)

    def _matches_stored(self, request: ServiceRequest, passphrase: str, loaded: DID) -> bool:
        """Check ``passphrase`` against a stored record; clears the request passphrase.

        Refusals other than a plain wrong passphrase are recorded on
        ``request``: DID_REVOKED, an unknown or mismatched declared algorithm,
        or a stored hash that cannot be read.
        """
        did = request.did
        try:
            if loaded.is_revoked:
                logger.warning("Authentication refused for revoked DID %s", did.username)
                _fail(request, "DID_REVOKED")
                return False

            declared = did.passphrase_hash_algorithm
            if declared:
                try:
                    declared = scheme_for(declared).name
                except UnsupportedAlgorithmError:
                    _fail(request, "DID_PASSPHRASE_HASH_ALGORITHM_UNKNOWN")
                    return False
                stored = self._stored_algorithm(loaded)
                if stored and declared != stored:
                    logger.warning("Passphrase hash algorithm mismatch for %s", did.username)
                    _fail(request, "DID_PASSPHRASE_HASH_ALGORITHM_MISMATCH")
                    return False

            logger.info("Verifying passphrase hash...")
            try:
                matched = self._hashing.verify_passphrase_hash(passphrase, loaded.passphrase_hash)
            except UnsupportedAlgorithmError as exc:
                logger.warning("Stored passphrase hash uses an unsupported scheme: %s", exc)
                _fail(request, "DID_PASSPHRASE_HASH_ALGORITHM_UNKNOWN")
                return False
            except MalformedEncodingError as exc:
                logger.warning("Stored passphrase hash is malformed for %s: %s", did.username, exc.reason)
                _fail(request, "DID_PASSPHRASE_HASH_MALFORMED")
                return False
            logger.info("AuthN: %s", matched)
            return matched
        finally:
            did.clear_passphrase()

    def _accept(self, request: ServiceRequest, loaded: DID) -> None:
        """Mark a stored record authenticated, attach keys and cache it."""
        loaded.verified = True
        loaded.authenticated = True
        request.did = loaded
        if self._attach_keys(loaded):
            result = self.save(loaded, auto_create=False)
            if not result.ok:
                _fail(request, "PERSISTENCE_FAILURE")
        self._cache(loaded)

    def _autogenerate(self, request: AuthenticateDIDRequest) -> None:
        did = request.did
        if not request.autogenerate:
            logger.warning("Unable to load DID and autogenerate=false. Authentication failed.")
            did.clear_passphrase()
            _fail(request, "DID_USERNAME_UNKNOWN")
            return

        logger.info("Username unknown and autogenerate is true; creating DID...")
        self._attach_keys(did)
        result = self.save(did, auto_create=True)
        if isinstance(result.error, (UnsupportedAlgorithmError, FieldRequired, RevokedIdentityError)):
            fail_for_save_error(request, result.error)
            return
        did.verified = True
        did.authenticated = True
        if result.error is not None:
            # Authenticated for this session even though the record may not be durable.
            _fail(request, "PERSISTENCE_FAILURE")
        self._cache(did)

    # -- authenticate or create ---------------------------------------------

    def authenticate_or_create(self, request: AuthenticateDIDRequest) -> None:
        """Authenticate a known identity, create an unknown one."""
        verified = self.verify(request.did, request)
        if request.has_error:
            request.did.clear_passphrase()
            return
        if verified.verified:
            self.authenticate(request)
            return

        did = request.did
        self._attach_keys(did)
        result = self.save(did, auto_create=True)
        if result.error is not None:
            fail_for_save_error(request, result.error)
            if not isinstance(result.error, PersistenceError):
                return
        did.verified = True
        did.authenticated = True
        self._cache(did)

    # -- get local ----------------------------------------------------------

    def get_local_did(self, request: GetLocalDIDRequest) -> DID:
        """Return the cached identity for ``request.did.username``.

        On a cache miss the request needs both a passphrase and a passphrase
        hash algorithm.  An identity already in the store is then
        authenticated against its stored hash, never overwritten: a revoked
        record gives DID_REVOKED and a wrong passphrase DID_PASSPHRASE_MISMATCH.
        Only a username with no stored record is created (and cached).
        """
        did = request.did
        cached = self.cache.lookup(did.username)
        if cached is not None:
            did.clear_passphrase()
            return cached
        passphrase = did.passphrase
        if passphrase is None:
            _fail(request, "DID_PASSPHRASE_REQUIRED")
            return did
        if did.passphrase_hash_algorithm is None:
            did.clear_passphrase()
            _fail(request, "DID_PASSPHRASE_HASH_ALGORITHM_UNKNOWN")
            return did

        try:
            loaded = self._load(did.username)
        except PersistenceError as exc:
            logger.warning("Unable to load DID for local lookup: %s", exc)
            did.clear_passphrase()
            _fail(request, "PERSISTENCE_FAILURE")
            return did
        if loaded is not None and loaded.passphrase_hash is not None:
            if not self._matches_stored(request, passphrase, loaded):
                if not request.has_error:
                    _fail(request, "DID_PASSPHRASE_MISMATCH")
                return did
            self._accept(request, loaded)
            return loaded

        result = self.save(did, auto_create=True)
        if result.error is not None:
            fail_for_save_error(request, result.error)
            if not isinstance(result.error, PersistenceError):
                return did
        did.verified = True
        did.authenticated = True
        self._cache(did)
        return did

    # -- revoke -------------------------------------------------------------

    def revoke(self, request: RevokeRequest) -> None:
        """Revoke a stored identity after checking its passphrase.

        The record is kept with status REVOKED; later authentication is
        refused.  A cached copy is marked revoked as well.
        """
        did = request.did
        passphrase = did.passphrase
        did.clear_passphrase()
        try:
            loaded = self._load(did.username)
        except PersistenceError as exc:
            logger.warning("Unable to load DID for revocation: %s", exc)
            _fail(request, "PERSISTENCE_FAILURE")
            return
        if loaded is None or loaded.passphrase_hash is None:
            _fail(request, "DID_USERNAME_UNKNOWN")
            return

        try:
            matched = self._hashing.verify_passphrase_hash(passphrase, loaded.passphrase_hash)
        except (UnsupportedAlgorithmError, MalformedEncodingError) as exc:
            logger.warning("Cannot check passphrase for revocation of %s: %s", did.username, exc)
            matched = False
        if not matched:
            _fail(request, "DID_PASSPHRASE_MISMATCH")
            return

        if not loaded.is_revoked:
            loaded.status = DIDStatus.REVOKED
            result = self.save(loaded, auto_create=False)
            if not result.ok:
                _fail(request, "PERSISTENCE_FAILURE")
                return
        self.cache.mark_revoked(loaded.username)
        request.did = loaded
        request.revoked = True
        logger.info("DID revoked: %s", loaded.username)
