"""Identity records and hash values.

A :class:`DID` is a local identity keyed by username.  Only the passphrase
*hash* is durable; the plaintext passphrase and the ``verified`` /
``authenticated`` flags live in memory for the duration of one request and
are never part of the serialised record.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from didvault.core.exceptions import UnsupportedAlgorithmError

# ---------------------------------------------------------------------------
# DID status
# ---------------------------------------------------------------------------


class DIDStatus(enum.StrEnum):
    """Lifecycle status of a stored DID."""

    UNINITIALIZED = "UNINITIALIZED"
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


# ---------------------------------------------------------------------------
# Hash algorithms and values
# ---------------------------------------------------------------------------


class HashAlgorithm(enum.StrEnum):
    """Digest algorithms available for content hashes and fingerprints."""

    MD5 = "MD5"
    SHA1 = "SHA1"
    SHA224 = "SHA224"
    SHA256 = "SHA256"
    SHA384 = "SHA384"
    SHA512 = "SHA512"
    SHA3_256 = "SHA3_256"
    SHA3_512 = "SHA3_512"
    BLAKE2B = "BLAKE2B"

    @property
    def hashlib_name(self) -> str:
        """Name understood by :func:`hashlib.new`."""
        return self.value.lower()

    @classmethod
    def parse(cls, name: str | HashAlgorithm) -> HashAlgorithm:
        """Resolve ``name`` (``"sha-256"``, ``"SHA256"``...) to a member.

        Raises:
            UnsupportedAlgorithmError: If no member matches.
        """
        if isinstance(name, HashAlgorithm):
            return name
        normalized = str(name).strip().upper().replace("-", "")
        normalized = normalized.replace("SHA3", "SHA3_").replace("__", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise UnsupportedAlgorithmError(str(name)) from None


@dataclass(frozen=True)
class Hash:
    """An ``{algorithm, digest}`` pair.

    ``digest`` holds the raw digest bytes.  Fingerprints are computed over
    these bytes, never over the hex text.
    """

    algorithm: HashAlgorithm
    digest: bytes

    @property
    def hex(self) -> str:
        return self.digest.hex()

    def to_dict(self) -> dict[str, Any]:
        return {"algorithm": self.algorithm.value, "digest": self.hex}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Hash:
        return cls(
            algorithm=HashAlgorithm.parse(data["algorithm"]),
            digest=bytes.fromhex(data["digest"]),
        )


# ---------------------------------------------------------------------------
# DID
# ---------------------------------------------------------------------------


@dataclass
class DID:
    """A local identity record.

    Attributes:
        username: Unique lookup / storage key.
        passphrase: Plaintext passphrase; transient, cleared before persistence.
        passphrase_hash: Self-describing ``$scheme$cost$payload`` string.
        passphrase_hash_algorithm: Name of the scheme that produced the hash.
        public_keys: Ordered, de-duplicated public keys from the key ring.
        status: Stored lifecycle status.
        verified: Transient; set by the verify operation.
        authenticated: Transient; set by authenticate / create.
    """

    username: str | None = None
    passphrase: str | None = None
    passphrase_hash: str | None = None
    passphrase_hash_algorithm: str | None = None
    public_keys: list[str] = field(default_factory=list)
    status: DIDStatus = DIDStatus.UNINITIALIZED
    verified: bool = False
    authenticated: bool = False

    @property
    def is_revoked(self) -> bool:
        return self.status == DIDStatus.REVOKED

    def add_public_key(self, key: str) -> bool:
        """Append ``key`` unless already present. Returns True if added."""
        if key in self.public_keys:
            return False
        self.public_keys.append(key)
        return True

    def clear_passphrase(self) -> None:
        self.passphrase = None

    def same_identity(self, other: DID | None) -> bool:
        """True when ``other`` carries the same username."""
        return other is not None and other.username is not None and other.username == self.username

    def public_copy(self) -> DID:
        """Copy without any secret material, suitable for a contact entry."""
        return DID(
            username=self.username,
            public_keys=list(self.public_keys),
            status=self.status,
            verified=self.verified,
        )

    def to_dict(self, transient: bool = False) -> dict[str, Any]:
        """Serialise the record.

        The persisted shape never includes the plaintext passphrase.  With
        ``transient=True`` the in-memory fields are included as well, which
        is what request envelopes carry.
        """
        d: dict[str, Any] = {
            "username": self.username,
            "passphrase_hash": self.passphrase_hash,
            "passphrase_hash_algorithm": self.passphrase_hash_algorithm,
            "public_keys": list(self.public_keys),
            "status": self.status.value,
        }
        if transient:
            d["passphrase"] = self.passphrase
            d["verified"] = self.verified
            d["authenticated"] = self.authenticated
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DID:
        return cls(
            username=data.get("username"),
            passphrase=data.get("passphrase"),
            passphrase_hash=data.get("passphrase_hash"),
            passphrase_hash_algorithm=data.get("passphrase_hash_algorithm"),
            public_keys=list(data.get("public_keys", [])),
            status=DIDStatus(data.get("status", DIDStatus.UNINITIALIZED.value)),
            verified=bool(data.get("verified", False)),
            authenticated=bool(data.get("authenticated", False)),
        )
