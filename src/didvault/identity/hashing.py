"""Content hashing, fingerprints and passphrase hashing.

Content hashes use :mod:`hashlib`.  Passphrase hashes use PBKDF2 from
``cryptography`` and are encoded as a self-describing string::

    $<scheme>$<cost>$<base64url(salt || derived key), unpadded>

``cost`` is the base-2 logarithm of the iteration count.  Scheme ``31``
(PBKDF2-HMAC-SHA1, 16-byte key) yields the 43-character payload used by
existing records; scheme ``32`` is the SHA-256 variant with a 32-byte key.

The service keeps no mutable state and is safe to share between threads.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from didvault.core.config import get_config
from didvault.core.exceptions import MalformedEncodingError, UnsupportedAlgorithmError
from didvault.identity.models import Hash, HashAlgorithm

logger = logging.getLogger(__name__)

SALT_LENGTH = 16
MAX_COST = 30

_LAYOUT = re.compile(r"^\$(\d+)\$(\d\d?)\$([A-Za-z0-9_-]+)$")


@dataclass(frozen=True)
class PassphraseScheme:
    """A PBKDF2 parameter set identified by a numeric scheme id."""

    scheme_id: str
    name: str
    digest: type[hashes.HashAlgorithm]
    key_length: int

    @property
    def payload_length(self) -> int:
        """Length of the unpadded base64url payload for this scheme."""
        return len(_b64encode(bytes(SALT_LENGTH + self.key_length)))


SCHEMES: dict[str, PassphraseScheme] = {
    "31": PassphraseScheme("31", "PBKDF2WithHmacSHA1", hashes.SHA1, 16),
    "32": PassphraseScheme("32", "PBKDF2WithHmacSHA256", hashes.SHA256, 32),
}


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def scheme_for(identifier: str) -> PassphraseScheme:
    """Look up a scheme by id (``"31"``) or algorithm name.

    Raises:
        UnsupportedAlgorithmError: If nothing matches.
    """
    scheme = SCHEMES.get(identifier)
    if scheme is not None:
        return scheme
    for candidate in SCHEMES.values():
        if candidate.name.lower() == str(identifier).lower():
            return candidate
    raise UnsupportedAlgorithmError(str(identifier))


class HashingService:
    """Stateless hashing primitives.

    Args:
        content_algorithm: Digest for full content hashes (default from config).
        fingerprint_algorithm: Digest for fingerprints (default from config).
        passphrase_scheme: Scheme id or name for new passphrase hashes.
        passphrase_cost: log2 iterations for new passphrase hashes.

    Algorithm names are resolved on use, so an unsupported name surfaces as
    :class:`UnsupportedAlgorithmError` from the operation that needs it.
    """

    def __init__(
        self,
        content_algorithm: str | HashAlgorithm | None = None,
        fingerprint_algorithm: str | HashAlgorithm | None = None,
        passphrase_scheme: str | None = None,
        passphrase_cost: int | None = None,
    ) -> None:
        config = get_config()
        self._content_algorithm = content_algorithm or config.content_hash_algorithm
        self._fingerprint_algorithm = fingerprint_algorithm or config.fingerprint_algorithm
        self._passphrase_scheme = passphrase_scheme or config.passphrase_hash_scheme
        self._passphrase_cost = config.passphrase_hash_cost if passphrase_cost is None else passphrase_cost
        if not 0 <= self._passphrase_cost <= MAX_COST:
            raise ValueError(f"passphrase cost must be between 0 and {MAX_COST}")

    @property
    def passphrase_hash_algorithm(self) -> str:
        """Algorithm name recorded on DIDs hashed by this service."""
        return scheme_for(self._passphrase_scheme).name

    # -- content hashes -----------------------------------------------------

    def generate_content_hash(
        self,
        content: str | bytes,
        algorithm: str | HashAlgorithm | None = None,
    ) -> Hash:
        """Deterministic full hash of ``content`` (str is UTF-8 encoded)."""
        algo = HashAlgorithm.parse(algorithm or self._content_algorithm)
        data = content.encode("utf-8") if isinstance(content, str) else content
        return Hash(algorithm=algo, digest=self._digest(algo, data))

    def generate_fingerprint(
        self,
        full_hash: Hash | bytes,
        algorithm: str | HashAlgorithm | None = None,
    ) -> Hash:
        """Short hash over the digest bytes of a previously computed full hash."""
        algo = HashAlgorithm.parse(algorithm or self._fingerprint_algorithm)
        digest = full_hash.digest if isinstance(full_hash, Hash) else full_hash
        return Hash(algorithm=algo, digest=self._digest(algo, digest))

    def verify_content_hash(
        self,
        content: str | bytes,
        expected: Hash,
        fingerprint: bool = False,
    ) -> bool:
        """Recompute and compare.

        Args:
            content: The original content.
            expected: Hash to check against; its algorithm is used.
            fingerprint: Treat ``expected`` as a fingerprint.  The full hash
                is then computed with the configured content algorithm.
                The form is never inferred from the digest length.
        """
        if fingerprint:
            full = self.generate_content_hash(content)
            actual = self.generate_fingerprint(full, expected.algorithm)
        else:
            actual = self.generate_content_hash(content, expected.algorithm)
        return hmac.compare_digest(actual.digest, expected.digest)

    @staticmethod
    def _digest(algo: HashAlgorithm, data: bytes) -> bytes:
        try:
            return hashlib.new(algo.hashlib_name, data).digest()
        except ValueError:
            raise UnsupportedAlgorithmError(algo.value) from None

    # -- passphrase hashes --------------------------------------------------

    def generate_passphrase_hash(self, plaintext: str, scheme: str | None = None) -> str:
        """Salt and stretch ``plaintext`` into a self-describing hash string.

        Args:
            plaintext: The passphrase.
            scheme: Scheme id or algorithm name overriding the configured one.
        """
        selected = scheme_for(scheme or self._passphrase_scheme)
        salt = secrets.token_bytes(SALT_LENGTH)
        key = self._derive(selected, plaintext, salt, self._passphrase_cost)
        return f"${selected.scheme_id}${self._passphrase_cost}${_b64encode(salt + key)}"

    def verify_passphrase_hash(self, plaintext: str, encoded: str) -> bool:
        """Check ``plaintext`` against a stored hash string in constant time.

        Raises:
            MalformedEncodingError: If ``encoded`` does not match the layout.
            UnsupportedAlgorithmError: If the scheme id is unknown.
        """
        scheme, cost, salt, expected = self.decode_passphrase_hash(encoded)
        actual = self._derive(scheme, plaintext, salt, cost)
        return hmac.compare_digest(actual, expected)

    def decode_passphrase_hash(self, encoded: str) -> tuple[PassphraseScheme, int, bytes, bytes]:
        """Split a stored hash into ``(scheme, cost, salt, derived_key)``."""
        match = _LAYOUT.match(encoded) if isinstance(encoded, str) else None
        if match is None:
            raise MalformedEncodingError("layout")
        scheme_id, cost_text, payload = match.groups()
        scheme = SCHEMES.get(scheme_id)
        if scheme is None:
            raise UnsupportedAlgorithmError(f"passphrase scheme {scheme_id}")
        cost = int(cost_text)
        if cost > MAX_COST:
            raise MalformedEncodingError("cost out of range")
        if len(payload) != scheme.payload_length:
            raise MalformedEncodingError("payload length")
        try:
            raw = _b64decode(payload)
        except (binascii.Error, ValueError):
            raise MalformedEncodingError("payload encoding") from None
        return scheme, cost, raw[:SALT_LENGTH], raw[SALT_LENGTH:]

    def algorithm_of(self, encoded: str) -> str:
        """Algorithm name of a stored hash string."""
        return self.decode_passphrase_hash(encoded)[0].name

    @staticmethod
    def _derive(scheme: PassphraseScheme, plaintext: str, salt: bytes, cost: int) -> bytes:
        try:
            kdf = PBKDF2HMAC(
                algorithm=scheme.digest(),
                length=scheme.key_length,
                salt=salt,
                iterations=1 << cost,
            )
            return kdf.derive(plaintext.encode("utf-8"))
        except UnsupportedAlgorithm:
            logger.warning("PBKDF2 backend lacks %s", scheme.name)
            raise UnsupportedAlgorithmError(scheme.name) from None
