"""Tests for the RequestDispatcher.

Tests cover:
- REQUEST_REQUIRED for absent payloads, without touching the engine
- Required-field validation order (did -> username -> passphrase)
- Envelope DID header after AUTHENTICATE / VERIFY / SAVE
- HASH / VERIFY_HASH
- Dead-letter routing of unknown operations
- Fresh engines over a file store: no takeover of stored identities,
  malformed records reported as persistence failures
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from didvault.core.exceptions import UnsupportedAlgorithmError
from didvault.identity.dispatcher import Operation, RequestDispatcher
from didvault.identity.engine import DIDLifecycleEngine
from didvault.identity.hashing import HashingService
from didvault.identity.models import DID, Hash, HashAlgorithm
from didvault.identity.requests import (
    AuthenticateDIDRequest,
    Envelope,
    GetLocalDIDRequest,
    HashRequest,
    RevokeRequest,
    SaveDIDRequest,
    VerifyDIDRequest,
    VerifyHashRequest,
)
from didvault.identity.store import DID_KIND, FileRecordStore

REQUEST_TYPES = {
    Operation.GET_LOCAL_DID: GetLocalDIDRequest,
    Operation.VERIFY: VerifyDIDRequest,
    Operation.AUTHENTICATE: AuthenticateDIDRequest,
    Operation.SAVE: SaveDIDRequest,
    Operation.AUTHENTICATE_OR_CREATE: AuthenticateDIDRequest,
    Operation.REVOKE: RevokeRequest,
    Operation.HASH: HashRequest,
    Operation.VERIFY_HASH: VerifyHashRequest,
}


@pytest.fixture()
def mock_engine() -> MagicMock:
    return MagicMock(spec=DIDLifecycleEngine)


# ---------------------------------------------------------------------------
# Operation enum
# ---------------------------------------------------------------------------


class TestOperation:
    def test_every_operation_has_a_request_type(self):
        assert set(REQUEST_TYPES) == set(Operation)

    def test_parse(self):
        assert Operation.parse("VERIFY") is Operation.VERIFY
        assert Operation.parse(Operation.HASH) is Operation.HASH
        assert Operation.parse("AUTHENTICATE_CREATE") is Operation.AUTHENTICATE_OR_CREATE
        assert Operation.parse("DELETE") is None


# ---------------------------------------------------------------------------
# Payload and field validation
# ---------------------------------------------------------------------------


class TestRequestRequired:
    @pytest.mark.parametrize("operation", list(Operation))
    def test_absent_payload(self, operation, mock_engine):
        dispatcher = RequestDispatcher(mock_engine, hashing=MagicMock(spec=HashingService))
        envelope = dispatcher.dispatch(Envelope(operation=operation))

        request_type = REQUEST_TYPES[operation]
        assert isinstance(envelope.request, request_type)
        assert envelope.request.error_code == request_type.Error.REQUEST_REQUIRED
        assert envelope.did is None
        assert not mock_engine.method_calls

    def test_wrong_payload_type_replaced(self, mock_engine):
        dispatcher = RequestDispatcher(mock_engine)
        envelope = dispatcher.dispatch(Envelope(operation="SAVE", request=HashRequest()))

        assert isinstance(envelope.request, SaveDIDRequest)
        assert envelope.request.error_code == SaveDIDRequest.Error.REQUEST_REQUIRED
        mock_engine.save.assert_not_called()


class TestFieldValidation:
    @pytest.mark.parametrize(
        ("operation", "request_type"),
        [
            (Operation.GET_LOCAL_DID, GetLocalDIDRequest),
            (Operation.AUTHENTICATE, AuthenticateDIDRequest),
            (Operation.SAVE, SaveDIDRequest),
            (Operation.AUTHENTICATE_OR_CREATE, AuthenticateDIDRequest),
            (Operation.REVOKE, RevokeRequest),
        ],
    )
    def test_did_required(self, operation, request_type, mock_engine):
        request = RequestDispatcher(mock_engine).handle(operation, request_type())
        assert request.error_code == request_type.Error.DID_REQUIRED
        assert not mock_engine.method_calls

    @pytest.mark.parametrize(
        ("operation", "request_type"),
        [
            (Operation.GET_LOCAL_DID, GetLocalDIDRequest),
            (Operation.AUTHENTICATE, AuthenticateDIDRequest),
            (Operation.REVOKE, RevokeRequest),
        ],
    )
    def test_username_checked_before_passphrase(self, operation, request_type, mock_engine):
        request = RequestDispatcher(mock_engine).handle(operation, request_type(did=DID()))
        assert request.error_code == request_type.Error.DID_USERNAME_REQUIRED
        assert not mock_engine.method_calls

    @pytest.mark.parametrize(
        ("operation", "request_type"),
        [
            (Operation.AUTHENTICATE, AuthenticateDIDRequest),
            (Operation.REVOKE, RevokeRequest),
        ],
    )
    def test_passphrase_required(self, operation, request_type, mock_engine):
        request = RequestDispatcher(mock_engine).handle(operation, request_type(did=DID(username="alice")))
        assert request.error_code == request_type.Error.DID_PASSPHRASE_REQUIRED
        assert not mock_engine.method_calls

    def test_verify_has_no_gate(self, dispatcher: RequestDispatcher):
        envelope = dispatcher.dispatch(Envelope(operation="VERIFY", request=VerifyDIDRequest()))

        assert envelope.request.error_code == 0
        assert envelope.request.did is not None
        assert not envelope.request.did.verified


# ---------------------------------------------------------------------------
# Identity operations end to end
# ---------------------------------------------------------------------------


class TestIdentityOperations:
    def test_save_verify_authenticate(self, dispatcher: RequestDispatcher):
        save = dispatcher.dispatch(
            Envelope(operation="SAVE", request=SaveDIDRequest(did=DID(username="alice", passphrase="s3cret")))
        )
        assert save.request.error_code == 0
        assert save.did.username == "alice"
        assert save.did.passphrase is None

        verify = dispatcher.dispatch(
            Envelope(operation="VERIFY", request=VerifyDIDRequest(did=DID(username="alice")))
        )
        assert verify.did.verified

        auth = dispatcher.dispatch(
            Envelope(
                operation="AUTHENTICATE",
                request=AuthenticateDIDRequest(did=DID(username="alice", passphrase="s3cret")),
            )
        )
        assert auth.request.error_code == 0
        assert auth.did is auth.request.did
        assert auth.did.authenticated

    def test_failed_authentication_leaves_envelope_did_unset(self, dispatcher: RequestDispatcher):
        envelope = dispatcher.dispatch(
            Envelope(
                operation="AUTHENTICATE",
                request=AuthenticateDIDRequest(did=DID(username="ghost", passphrase="pw")),
            )
        )
        assert envelope.request.error_code == AuthenticateDIDRequest.Error.DID_USERNAME_UNKNOWN
        assert envelope.did is None

    def test_save_errors_mapped(self, dispatcher: RequestDispatcher):
        request = dispatcher.handle(Operation.SAVE, SaveDIDRequest(did=DID(passphrase="pw")))
        assert request.error_code == SaveDIDRequest.Error.DID_USERNAME_REQUIRED

        request = dispatcher.handle(Operation.SAVE, SaveDIDRequest(did=DID(username="alice")))
        assert request.error_code == SaveDIDRequest.Error.DID_PASSPHRASE_REQUIRED

        request = dispatcher.handle(
            Operation.SAVE,
            SaveDIDRequest(did=DID(username="alice", passphrase="pw", passphrase_hash_algorithm="bcrypt")),
        )
        assert request.error_code == SaveDIDRequest.Error.UNSUPPORTED_HASH_ALGORITHM

        request = dispatcher.handle(
            Operation.SAVE,
            SaveDIDRequest(did=DID(username="alice", passphrase="pw"), auto_create=False),
        )
        assert request.error_code == SaveDIDRequest.Error.PERSISTENCE_FAILURE

    def test_get_local_did(self, dispatcher: RequestDispatcher):
        request = dispatcher.handle(
            Operation.GET_LOCAL_DID,
            GetLocalDIDRequest(
                did=DID(username="carol", passphrase="pw", passphrase_hash_algorithm="PBKDF2WithHmacSHA1")
            ),
        )
        assert request.error_code == 0
        assert request.did.authenticated
        assert dispatcher.engine.cache.node_identity == request.did

    def test_authenticate_or_create_alias(self, dispatcher: RequestDispatcher):
        envelope = dispatcher.dispatch(
            Envelope(
                operation="AUTHENTICATE_CREATE",
                request=AuthenticateDIDRequest(did=DID(username="dave", passphrase="pw")),
            )
        )
        assert envelope.request.error_code == 0
        assert envelope.did.authenticated

    def test_revoke(self, dispatcher: RequestDispatcher):
        dispatcher.handle(Operation.SAVE, SaveDIDRequest(did=DID(username="erin", passphrase="pw")))
        request = dispatcher.handle(Operation.REVOKE, RevokeRequest(did=DID(username="erin", passphrase="pw")))

        assert request.error_code == 0
        assert request.revoked

        auth = dispatcher.handle(
            Operation.AUTHENTICATE,
            AuthenticateDIDRequest(did=DID(username="erin", passphrase="pw")),
        )
        assert auth.error_code == AuthenticateDIDRequest.Error.DID_REVOKED

    def test_save_cannot_reactivate_revoked(self, dispatcher: RequestDispatcher, store):
        dispatcher.handle(Operation.SAVE, SaveDIDRequest(did=DID(username="erin", passphrase="pw")))
        dispatcher.handle(Operation.REVOKE, RevokeRequest(did=DID(username="erin", passphrase="pw")))

        envelope = dispatcher.dispatch(
            Envelope(operation="SAVE", request=SaveDIDRequest(did=DID(username="erin", passphrase="new")))
        )

        assert envelope.request.error_code == SaveDIDRequest.Error.DID_REVOKED
        assert envelope.request.did.passphrase is None
        assert envelope.did is None
        assert store.load(DID_KIND, "erin")["status"] == "REVOKED"


# ---------------------------------------------------------------------------
# Fresh process over a persistent store
# ---------------------------------------------------------------------------


class TestFreshProcess:
    """Each call builds a new dispatcher, so nothing is cached between them."""

    @pytest.fixture()
    def records(self, tmp_path):
        return tmp_path / "records"

    @pytest.fixture()
    def fresh(self, records, hashing):
        def build() -> RequestDispatcher:
            return RequestDispatcher(DIDLifecycleEngine(store=FileRecordStore(records), hashing=hashing))

        return build

    @staticmethod
    def get_local(dispatcher: RequestDispatcher, passphrase: str) -> GetLocalDIDRequest:
        return dispatcher.handle(
            Operation.GET_LOCAL_DID,
            GetLocalDIDRequest(
                did=DID(username="alice", passphrase=passphrase, passphrase_hash_algorithm="PBKDF2WithHmacSHA1")
            ),
        )

    def test_get_local_did_refuses_revoked_record(self, fresh, records):
        fresh().handle(Operation.SAVE, SaveDIDRequest(did=DID(username="alice", passphrase="pw")))
        fresh().handle(Operation.REVOKE, RevokeRequest(did=DID(username="alice", passphrase="pw")))

        request = self.get_local(fresh(), "attacker")

        assert request.error_code == GetLocalDIDRequest.Error.DID_REVOKED
        assert not request.did.authenticated
        assert request.did.passphrase is None
        assert FileRecordStore(records).load(DID_KIND, "alice")["status"] == "REVOKED"

        auth = fresh().handle(
            Operation.AUTHENTICATE,
            AuthenticateDIDRequest(did=DID(username="alice", passphrase="attacker")),
        )
        assert auth.error_code == AuthenticateDIDRequest.Error.DID_REVOKED
        assert not auth.did.authenticated

    def test_get_local_did_does_not_overwrite_existing(self, fresh, records, hashing):
        fresh().handle(Operation.SAVE, SaveDIDRequest(did=DID(username="alice", passphrase="pw")))
        before = FileRecordStore(records).load(DID_KIND, "alice")

        dispatcher = fresh()
        request = self.get_local(dispatcher, "attacker")

        assert request.error_code == GetLocalDIDRequest.Error.DID_PASSPHRASE_MISMATCH
        assert not request.did.authenticated
        assert dispatcher.engine.cache.lookup("alice") is None
        assert FileRecordStore(records).load(DID_KIND, "alice") == before
        assert hashing.verify_passphrase_hash("pw", before["passphrase_hash"])

    def test_get_local_did_authenticates_existing(self, fresh):
        fresh().handle(Operation.SAVE, SaveDIDRequest(did=DID(username="alice", passphrase="pw")))

        dispatcher = fresh()
        request = self.get_local(dispatcher, "pw")

        assert request.error_code == 0
        assert request.did.authenticated
        assert request.did.passphrase is None
        assert dispatcher.engine.cache.node_identity == request.did

    def test_wrong_shape_record_is_persistence_failure(self, fresh, records):
        (records / "DID").mkdir(parents=True)
        (records / "DID" / "alice.json").write_text('["not", "a", "record"]')

        verify = fresh().handle(Operation.VERIFY, VerifyDIDRequest(did=DID(username="alice")))
        assert verify.error_code == VerifyDIDRequest.Error.PERSISTENCE_FAILURE
        assert not verify.did.verified

        auth = fresh().handle(
            Operation.AUTHENTICATE,
            AuthenticateDIDRequest(did=DID(username="alice", passphrase="pw"), autogenerate=True),
        )
        assert auth.error_code == AuthenticateDIDRequest.Error.PERSISTENCE_FAILURE
        assert not auth.did.authenticated

    def test_unknown_status_is_persistence_failure(self, fresh, records):
        (records / "DID").mkdir(parents=True)
        (records / "DID" / "alice.json").write_text('{"username": "alice", "status": "FROZEN"}')

        request = fresh().handle(Operation.REVOKE, RevokeRequest(did=DID(username="alice", passphrase="pw")))

        assert request.error_code == RevokeRequest.Error.PERSISTENCE_FAILURE
        assert not request.revoked


# ---------------------------------------------------------------------------
# Hash operations
# ---------------------------------------------------------------------------


class TestHashOperations:
    def test_hash_full_and_fingerprint(self, dispatcher: RequestDispatcher, hashing: HashingService):
        request = dispatcher.handle(Operation.HASH, HashRequest(content_to_hash="hello"))

        assert request.error_code == 0
        assert request.full_hash == hashing.generate_content_hash("hello")
        assert request.fingerprint == hashing.generate_fingerprint(request.full_hash)

    def test_fingerprint_only(self, dispatcher: RequestDispatcher, hashing: HashingService):
        request = dispatcher.handle(
            Operation.HASH,
            HashRequest(content_to_hash="hello", generate_full_hash=False),
        )
        assert request.full_hash is None
        assert request.fingerprint == hashing.generate_fingerprint(hashing.generate_content_hash("hello"))

    def test_full_only(self, dispatcher: RequestDispatcher):
        request = dispatcher.handle(
            Operation.HASH,
            HashRequest(content_to_hash="hello", generate_fingerprint=False),
        )
        assert request.full_hash is not None
        assert request.fingerprint is None

    def test_hash_unknown_algorithm(self, engine: DIDLifecycleEngine):
        dispatcher = RequestDispatcher(engine, hashing=HashingService(content_algorithm="WHIRLPOOL"))
        request = dispatcher.handle(Operation.HASH, HashRequest(content_to_hash="hello"))

        assert request.error_code == HashRequest.Error.UNKNOWN_HASH_ALGORITHM
        assert request.full_hash is None

    def test_verify_hash(self, dispatcher: RequestDispatcher, hashing: HashingService):
        full = hashing.generate_content_hash("doc")

        ok = dispatcher.handle(Operation.VERIFY_HASH, VerifyHashRequest(content="doc", hash_to_verify=full))
        bad = dispatcher.handle(Operation.VERIFY_HASH, VerifyHashRequest(content="doc2", hash_to_verify=full))

        assert ok.is_a_match
        assert not bad.is_a_match
        assert ok.error_code == 0
        assert bad.error_code == 0

    def test_verify_fingerprint(self, dispatcher: RequestDispatcher, hashing: HashingService):
        fp = hashing.generate_fingerprint(hashing.generate_content_hash("doc"))
        request = dispatcher.handle(
            Operation.VERIFY_HASH,
            VerifyHashRequest(content="doc", hash_to_verify=fp, is_fingerprint=True),
        )
        assert request.is_a_match

    def test_verify_hash_missing_inputs(self, dispatcher: RequestDispatcher):
        request = dispatcher.handle(Operation.VERIFY_HASH, VerifyHashRequest(content="doc"))
        assert request.error_code == 0
        assert not request.is_a_match

    def test_verify_hash_unknown_algorithm(self, dispatcher: RequestDispatcher, hashing: HashingService):
        expected = Hash(HashAlgorithm.SHA256, b"\x00" * 32)
        with patch.object(hashing, "verify_content_hash", side_effect=UnsupportedAlgorithmError("SHA256")):
            request = dispatcher.handle(
                Operation.VERIFY_HASH,
                VerifyHashRequest(content="doc", hash_to_verify=expected),
            )
        assert request.error_code == VerifyHashRequest.Error.UNKNOWN_HASH_ALGORITHM
        assert not request.is_a_match


# ---------------------------------------------------------------------------
# Envelope handling
# ---------------------------------------------------------------------------


class TestEnvelope:
    def test_unknown_operation_dead_lettered(self, dispatcher: RequestDispatcher):
        request = SaveDIDRequest(did=DID(username="alice", passphrase="pw"))
        envelope = Envelope(operation="DELETE_EVERYTHING", request=request)

        result = dispatcher.dispatch(envelope)

        assert result is envelope
        assert dispatcher.dead_letters == [envelope]
        assert request.error_code == 0
        assert request.did.passphrase == "pw"
        assert envelope.correlation_id is None

    def test_correlation_id_assigned(self, dispatcher: RequestDispatcher):
        envelope = dispatcher.dispatch(Envelope(operation="HASH", request=HashRequest(content_to_hash="x")))
        assert envelope.correlation_id

    def test_correlation_id_preserved(self, dispatcher: RequestDispatcher):
        envelope = dispatcher.dispatch(
            Envelope(operation="HASH", request=HashRequest(content_to_hash="x"), correlation_id="abc")
        )
        assert envelope.correlation_id == "abc"

    def test_passphrase_never_logged(self, dispatcher: RequestDispatcher, caplog):
        with caplog.at_level("DEBUG"):
            dispatcher.dispatch(
                Envelope(
                    operation="AUTHENTICATE",
                    request=AuthenticateDIDRequest(did=DID(username="alice", passphrase="hunter2"), autogenerate=True),
                )
            )
        assert "hunter2" not in caplog.text
        for record in caplog.records:
            assert "hunter2" not in str(getattr(record, "extra_data", ""))
