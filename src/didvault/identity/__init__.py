"""Identity lifecycle for didvault - local DIDs keyed by username.

Each process keeps one *node identity* (the first DID authenticated or
created) plus any number of local users. Records are persisted through a
pluggable store; only salted passphrase hashes are ever written.

Key concepts:
- **DID**: A local identity record with its passphrase hash and public keys.
- **HashingService**: Content hashes, fingerprints and passphrase hashes.
- **DIDLifecycleEngine**: Verify, authenticate, save, get-local and revoke.
- **RequestDispatcher**: Routes operation envelopes to the engine.

Security properties:
- Plaintext passphrases are cleared before any record leaves memory.
- Passphrase comparison is constant-time.
- A revoked identity can never authenticate again.
"""

from didvault.identity.cache import IdentityCache
from didvault.identity.dispatcher import Operation, RequestDispatcher
from didvault.identity.engine import DIDLifecycleEngine, SaveResult
from didvault.identity.hashing import HashingService
from didvault.identity.keyring import KeyRing, StaticKeyRing
from didvault.identity.models import DID, DIDStatus, Hash, HashAlgorithm
from didvault.identity.requests import (
    AuthenticateDIDRequest,
    Envelope,
    GetLocalDIDRequest,
    HashRequest,
    RevokeRequest,
    SaveDIDRequest,
    ServiceRequest,
    VerifyDIDRequest,
    VerifyHashRequest,
)
from didvault.identity.store import FileRecordStore, InMemoryRecordStore, RecordStore

__all__ = [
    "AuthenticateDIDRequest",
    "DID",
    "DIDLifecycleEngine",
    "DIDStatus",
    "Envelope",
    "FileRecordStore",
    "GetLocalDIDRequest",
    "Hash",
    "HashAlgorithm",
    "HashRequest",
    "HashingService",
    "IdentityCache",
    "InMemoryRecordStore",
    "KeyRing",
    "Operation",
    "RecordStore",
    "RequestDispatcher",
    "RevokeRequest",
    "SaveDIDRequest",
    "SaveResult",
    "ServiceRequest",
    "StaticKeyRing",
    "VerifyDIDRequest",
    "VerifyHashRequest",
]
