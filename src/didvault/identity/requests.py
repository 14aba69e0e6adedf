"""Request types for the DID service.

Each operation has its own request class carrying inputs, an integer
``error_code`` and outputs written in place.  Error codes are scoped to the
request class, numbered from 1 in declaration order; 0 means success.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from typing import Any, ClassVar

from didvault.identity.models import DID, Hash


@dataclass
class ServiceRequest:
    """Common base: the error code plus (de)serialisation helpers."""

    error_code: int = 0

    # Subclasses override with their own IntEnum.
    Error: ClassVar[type[enum.IntEnum]]

    @property
    def has_error(self) -> bool:
        return bool(self.error_code)

    def fail(self, code: enum.IntEnum) -> None:
        self.error_code = int(code)

    @property
    def error_name(self) -> str | None:
        if not self.error_code:
            return None
        try:
            return self.Error(self.error_code).name
        except ValueError:
            return str(self.error_code)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, DID):
                value = value.to_dict(transient=True)
            elif isinstance(value, Hash):
                value = value.to_dict()
            elif isinstance(value, bytes):
                value = value.hex()
            d[f.name] = value
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceRequest:
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name == "did" and value is not None:
                value = DID.from_dict(value)
            elif isinstance(value, dict) and "digest" in value:
                value = Hash.from_dict(value)
            kwargs[f.name] = value
        return cls(**kwargs)


@dataclass
class GetLocalDIDRequest(ServiceRequest):
    class Error(enum.IntEnum):
        REQUEST_REQUIRED = 1
        DID_REQUIRED = 2
        DID_USERNAME_REQUIRED = 3
        DID_PASSPHRASE_REQUIRED = 4
        DID_PASSPHRASE_HASH_ALGORITHM_UNKNOWN = 5
        UNSUPPORTED_HASH_ALGORITHM = 6
        PERSISTENCE_FAILURE = 7
        DID_REVOKED = 8
        DID_PASSPHRASE_MISMATCH = 9
        DID_PASSPHRASE_HASH_ALGORITHM_MISMATCH = 10
        DID_PASSPHRASE_HASH_MALFORMED = 11

    did: DID | None = None


@dataclass
class VerifyDIDRequest(ServiceRequest):
    class Error(enum.IntEnum):
        REQUEST_REQUIRED = 1
        PERSISTENCE_FAILURE = 2

    did: DID | None = None


@dataclass
class AuthenticateDIDRequest(ServiceRequest):
    """Authenticate (or, with ``autogenerate``, implicitly create) a DID.

    ``did.passphrase_hash_algorithm`` is the algorithm the caller expects the
    stored hash to use; when set it must match the stored record.
    """

    class Error(enum.IntEnum):
        REQUEST_REQUIRED = 1
        DID_REQUIRED = 2
        DID_USERNAME_REQUIRED = 3
        DID_PASSPHRASE_REQUIRED = 4
        DID_USERNAME_UNKNOWN = 5
        DID_PASSPHRASE_HASH_ALGORITHM_UNKNOWN = 6
        DID_PASSPHRASE_HASH_ALGORITHM_MISMATCH = 7
        DID_PASSPHRASE_HASH_MALFORMED = 8
        DID_REVOKED = 9
        PERSISTENCE_FAILURE = 10

    did: DID | None = None
    autogenerate: bool = False


@dataclass
class SaveDIDRequest(ServiceRequest):
    class Error(enum.IntEnum):
        REQUEST_REQUIRED = 1
        DID_REQUIRED = 2
        DID_USERNAME_REQUIRED = 3
        DID_PASSPHRASE_REQUIRED = 4
        UNSUPPORTED_HASH_ALGORITHM = 5
        PERSISTENCE_FAILURE = 6
        DID_REVOKED = 7

    did: DID | None = None
    auto_create: bool = True


@dataclass
class RevokeRequest(ServiceRequest):
    class Error(enum.IntEnum):
        REQUEST_REQUIRED = 1
        DID_REQUIRED = 2
        DID_USERNAME_REQUIRED = 3
        DID_PASSPHRASE_REQUIRED = 4
        DID_USERNAME_UNKNOWN = 5
        DID_PASSPHRASE_MISMATCH = 6
        PERSISTENCE_FAILURE = 7

    did: DID | None = None
    revoked: bool = False


@dataclass
class HashRequest(ServiceRequest):
    class Error(enum.IntEnum):
        REQUEST_REQUIRED = 1
        UNKNOWN_HASH_ALGORITHM = 2

    content_to_hash: str | bytes | None = None
    generate_full_hash: bool = True
    generate_fingerprint: bool = True
    full_hash: Hash | None = None
    fingerprint: Hash | None = None


@dataclass
class VerifyHashRequest(ServiceRequest):
    class Error(enum.IntEnum):
        REQUEST_REQUIRED = 1
        UNKNOWN_HASH_ALGORITHM = 2

    content: str | bytes | None = None
    hash_to_verify: Hash | None = None
    is_fingerprint: bool = False
    is_a_match: bool = False


@dataclass
class Envelope:
    """Minimal message envelope handed to the dispatcher.

    ``did`` mirrors the identity header of the hosting message bus: it is set
    to the resulting record after AUTHENTICATE, VERIFY and SAVE.
    """

    operation: str
    request: ServiceRequest | None = None
    did: DID | None = None
    correlation_id: str | None = None
