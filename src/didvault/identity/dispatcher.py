"""Operation dispatch for the DID service.

The hosting message bus hands over an :class:`Envelope` naming an
operation and carrying a typed request.  The dispatcher validates the
request, delegates to the lifecycle engine or the hashing service, and
leaves results and error codes on the request for the caller to read.

Unknown operation names go to :meth:`RequestDispatcher.dead_letter`; the
request is left untouched.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from typing import TypeVar, assert_never

from didvault.core.exceptions import UnsupportedAlgorithmError
from didvault.core.logging import correlation_context, request_logger
from didvault.identity.engine import DIDLifecycleEngine, fail_for_save_error
from didvault.identity.hashing import HashingService
from didvault.identity.models import DID
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

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=ServiceRequest)


class Operation(enum.StrEnum):
    """Operations understood by the DID service."""

    GET_LOCAL_DID = "GET_LOCAL_DID"
    VERIFY = "VERIFY"
    AUTHENTICATE = "AUTHENTICATE"
    SAVE = "SAVE"
    AUTHENTICATE_OR_CREATE = "AUTHENTICATE_OR_CREATE"
    REVOKE = "REVOKE"
    HASH = "HASH"
    VERIFY_HASH = "VERIFY_HASH"

    @classmethod
    def parse(cls, name: str | Operation) -> Operation | None:
        """Resolve an operation name; None when it is not supported."""
        if isinstance(name, Operation):
            return name
        name = _ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return None


# Names used by older callers.
_ALIASES = {"AUTHENTICATE_CREATE": "AUTHENTICATE_OR_CREATE"}


class RequestDispatcher:
    """Routes envelopes to per-operation handlers.

    Args:
        engine: Lifecycle engine; defaults to one over an in-memory store.
        hashing: Hashing service for HASH / VERIFY_HASH; defaults to the
            engine's.
    """

    def __init__(
        self,
        engine: DIDLifecycleEngine | None = None,
        hashing: HashingService | None = None,
    ) -> None:
        self.engine = engine or DIDLifecycleEngine()
        self.hashing = hashing or self.engine.hashing
        self.dead_letters: list[Envelope] = []

    # -- entry points -------------------------------------------------------

    def dispatch(self, envelope: Envelope) -> Envelope:
        """Process ``envelope`` in place and return it."""
        operation = Operation.parse(envelope.operation)
        if operation is None:
            self.dead_letter(envelope)
            return envelope

        with correlation_context(envelope.correlation_id) as cid:
            envelope.correlation_id = cid
            request = envelope.request
            request_logger.log_request(operation, request.to_dict() if request is not None else None)
            self._handler_for(operation)(envelope)
            if envelope.request is not None:
                request_logger.log_result(operation, envelope.request.error_code)
        return envelope

    def handle(self, operation: str | Operation, request: ServiceRequest | None) -> ServiceRequest | None:
        """Dispatch a bare request and return it (or the replacement created
        when ``request`` was missing)."""
        envelope = self.dispatch(Envelope(operation=str(operation), request=request))
        return envelope.request

    def dead_letter(self, envelope: Envelope) -> None:
        logger.warning("Operation not supported: %s", envelope.operation)
        self.dead_letters.append(envelope)

    def _handler_for(self, operation: Operation) -> Callable[[Envelope], None]:
        match operation:
            case Operation.GET_LOCAL_DID:
                return self._get_local_did
            case Operation.VERIFY:
                return self._verify
            case Operation.AUTHENTICATE:
                return self._authenticate
            case Operation.SAVE:
                return self._save
            case Operation.AUTHENTICATE_OR_CREATE:
                return self._authenticate_or_create
            case Operation.REVOKE:
                return self._revoke
            case Operation.HASH:
                return self._hash
            case Operation.VERIFY_HASH:
                return self._verify_hash
            case _:
                assert_never(operation)

    # -- validation ---------------------------------------------------------

    @staticmethod
    def _require(envelope: Envelope, request_type: type[R]) -> R | None:
        """Return the envelope's request, or install a fresh one flagged
        REQUEST_REQUIRED when it is missing or of the wrong type."""
        request = envelope.request
        if isinstance(request, request_type):
            return request
        logger.warning("Request required for %s.", envelope.operation)
        replacement = request_type()
        replacement.fail(request_type.Error["REQUEST_REQUIRED"])
        envelope.request = replacement
        return None

    @staticmethod
    def _validate(
        request: ServiceRequest,
        username: bool = False,
        passphrase: bool = False,
    ) -> bool:
        """Check did, then username, then passphrase; stop at the first gap."""
        did: DID | None = getattr(request, "did", None)
        if did is None:
            logger.warning("DID required.")
            request.fail(request.Error["DID_REQUIRED"])
            return False
        if username and did.username is None:
            logger.info("Username required.")
            request.fail(request.Error["DID_USERNAME_REQUIRED"])
            return False
        if passphrase and did.passphrase is None:
            logger.info("Passphrase required.")
            request.fail(request.Error["DID_PASSPHRASE_REQUIRED"])
            return False
        return True

    # -- handlers -----------------------------------------------------------

    def _get_local_did(self, envelope: Envelope) -> None:
        logger.info("Received get local DID request.")
        request = self._require(envelope, GetLocalDIDRequest)
        if request is None or not self._validate(request, username=True):
            return
        request.did = self.engine.get_local_did(request)

    def _verify(self, envelope: Envelope) -> None:
        logger.info("Received verify DID request.")
        request = self._require(envelope, VerifyDIDRequest)
        if request is None:
            return
        request.did = self.engine.verify(request.did or DID(), request)
        envelope.did = request.did

    def _authenticate(self, envelope: Envelope) -> None:
        logger.info("Received authn DID request.")
        request = self._require(envelope, AuthenticateDIDRequest)
        if request is None or not self._validate(request, username=True, passphrase=True):
            return
        self.engine.authenticate(request)
        if request.did.authenticated:
            logger.info("DID authenticated, setting DID on envelope.")
            envelope.did = request.did

    def _save(self, envelope: Envelope) -> None:
        logger.info("Received save DID request.")
        request = self._require(envelope, SaveDIDRequest)
        if request is None or not self._validate(request):
            return
        result = self.engine.save(request.did, request.auto_create)
        request.did = result.did
        if result.error is not None:
            fail_for_save_error(request, result.error)
            return
        envelope.did = request.did

    def _authenticate_or_create(self, envelope: Envelope) -> None:
        request = self._require(envelope, AuthenticateDIDRequest)
        if request is None or not self._validate(request):
            return
        self.engine.authenticate_or_create(request)
        if request.did.authenticated:
            envelope.did = request.did

    def _revoke(self, envelope: Envelope) -> None:
        logger.info("Received revoke DID request.")
        request = self._require(envelope, RevokeRequest)
        if request is None or not self._validate(request, username=True, passphrase=True):
            return
        self.engine.revoke(request)

    def _hash(self, envelope: Envelope) -> None:
        request = self._require(envelope, HashRequest)
        if request is None or request.content_to_hash is None:
            return
        try:
            if request.generate_full_hash or request.generate_fingerprint:
                full = self.hashing.generate_content_hash(request.content_to_hash)
                if request.generate_full_hash:
                    request.full_hash = full
                if request.generate_fingerprint:
                    request.fingerprint = self.hashing.generate_fingerprint(full)
        except UnsupportedAlgorithmError as exc:
            logger.warning("Hashing failed: %s", exc)
            request.fail(HashRequest.Error.UNKNOWN_HASH_ALGORITHM)

    def _verify_hash(self, envelope: Envelope) -> None:
        request = self._require(envelope, VerifyHashRequest)
        if request is None:
            return
        request.is_a_match = False
        if request.content is None or request.hash_to_verify is None:
            return
        try:
            request.is_a_match = self.hashing.verify_content_hash(
                request.content,
                request.hash_to_verify,
                fingerprint=request.is_fingerprint,
            )
        except UnsupportedAlgorithmError as exc:
            logger.warning("Hash verification failed: %s", exc)
            request.fail(VerifyHashRequest.Error.UNKNOWN_HASH_ALGORITHM)
