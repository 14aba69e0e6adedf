# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""
didvault CLI - local identity records and content hashes.

Commands:
  didvault hash <content>                 Content hash and fingerprint
  didvault verify-hash <content> <hex>    Check content against a hash
  didvault create <username>              Create an identity
  didvault authenticate <username>        Check a passphrase
  didvault verify <username>              Check that an identity exists
  didvault revoke <username>              Revoke an identity
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from typing import Any

from ..core.config import get_config
from ..core.exceptions import UnsupportedAlgorithmError
from ..core.logging import configure_logging
from ..identity.dispatcher import Operation, RequestDispatcher
from ..identity.engine import DIDLifecycleEngine
from ..identity.models import DID, Hash, HashAlgorithm
from ..identity.requests import (
    AuthenticateDIDRequest,
    Envelope,
    HashRequest,
    RevokeRequest,
    SaveDIDRequest,
    ServiceRequest,
    VerifyDIDRequest,
    VerifyHashRequest,
)
from ..identity.store import FileRecordStore
from .output import output_error, output_result

logger = logging.getLogger(__name__)


def get_dispatcher(args: argparse.Namespace) -> RequestDispatcher:
    """Dispatcher over the file store chosen by ``--store`` or config."""
    store = FileRecordStore(args.store or get_config().store_path)
    return RequestDispatcher(DIDLifecycleEngine(store=store))


def read_passphrase(args: argparse.Namespace, confirm: bool = False) -> str:
    """``--passphrase`` if given, otherwise prompt without echo."""
    if args.passphrase is not None:
        return args.passphrase
    passphrase = getpass.getpass("Passphrase: ")
    if confirm and getpass.getpass("Confirm passphrase: ") != passphrase:
        raise ValueError("passphrases do not match")
    return passphrase


def read_content(value: str) -> str:
    """Content argument; ``-`` reads standard input."""
    if value == "-":
        return sys.stdin.read()
    return value


def _failed(operation: Operation, request: ServiceRequest) -> int:
    output_error(f"{operation.value.lower()} failed: {request.error_name}")
    return 1


def _summary(did: DID) -> dict[str, Any]:
    return {
        "username": did.username,
        "status": did.status.value,
        "passphrase_hash_algorithm": did.passphrase_hash_algorithm,
        "public_keys": list(did.public_keys),
    }


# ============================================================================
# Hash commands
# ============================================================================


def cmd_hash(args: argparse.Namespace) -> int:
    """Hash content and print the full hash and fingerprint."""
    request = HashRequest(
        content_to_hash=read_content(args.content),
        generate_full_hash=not args.no_full,
        generate_fingerprint=not args.no_fingerprint,
    )
    get_dispatcher(args).handle(Operation.HASH, request)
    if request.has_error:
        return _failed(Operation.HASH, request)

    result: dict[str, Any] = {}
    if request.full_hash is not None:
        result["full_hash"] = request.full_hash.hex
        result["algorithm"] = request.full_hash.algorithm.value
    if request.fingerprint is not None:
        result["fingerprint"] = request.fingerprint.hex
        result["fingerprint_algorithm"] = request.fingerprint.algorithm.value
    output_result(result, args.json)
    return 0


def cmd_verify_hash(args: argparse.Namespace) -> int:
    """Check content against a hex digest. Exit 1 when it does not match."""
    config = get_config()
    default = config.fingerprint_algorithm if args.fingerprint else config.content_hash_algorithm
    try:
        expected = Hash(
            algorithm=HashAlgorithm.parse(args.algorithm or default),
            digest=bytes.fromhex(args.digest),
        )
    except UnsupportedAlgorithmError as e:
        output_error(e.message)
        return 1
    except ValueError:
        output_error("digest must be hexadecimal")
        return 1

    request = VerifyHashRequest(
        content=read_content(args.content),
        hash_to_verify=expected,
        is_fingerprint=args.fingerprint,
    )
    get_dispatcher(args).handle(Operation.VERIFY_HASH, request)
    if request.has_error:
        return _failed(Operation.VERIFY_HASH, request)

    output_result({"match": request.is_a_match}, args.json)
    return 0 if request.is_a_match else 1


# ============================================================================
# Identity commands
# ============================================================================


def cmd_create(args: argparse.Namespace) -> int:
    """Create an identity. Refuses to overwrite an existing one."""
    dispatcher = get_dispatcher(args)

    check = VerifyDIDRequest(did=DID(username=args.username))
    dispatcher.handle(Operation.VERIFY, check)
    if check.has_error:
        return _failed(Operation.VERIFY, check)
    if check.did.verified:
        output_error(f"identity already exists: {args.username}")
        return 1

    try:
        passphrase = read_passphrase(args, confirm=True)
    except ValueError as e:
        output_error(str(e))
        return 1

    request = SaveDIDRequest(
        did=DID(
            username=args.username,
            passphrase=passphrase,
            passphrase_hash_algorithm=args.algorithm,
        )
    )
    dispatcher.handle(Operation.SAVE, request)
    if request.has_error:
        return _failed(Operation.SAVE, request)

    output_result(_summary(request.did), args.json)
    return 0


def cmd_authenticate(args: argparse.Namespace) -> int:
    """Check a passphrase. Exit 1 unless authenticated."""
    autogenerate = args.autogenerate or get_config().autogenerate
    request = AuthenticateDIDRequest(
        did=DID(username=args.username, passphrase=read_passphrase(args)),
        autogenerate=autogenerate,
    )
    get_dispatcher(args).handle(Operation.AUTHENTICATE, request)
    if request.has_error:
        return _failed(Operation.AUTHENTICATE, request)

    result = _summary(request.did)
    result["authenticated"] = request.did.authenticated
    output_result(result, args.json)
    return 0 if request.did.authenticated else 1


def cmd_verify(args: argparse.Namespace) -> int:
    """Check that a record exists. Exit 1 when it does not."""
    envelope = get_dispatcher(args).dispatch(
        Envelope(
            operation=Operation.VERIFY,
            request=VerifyDIDRequest(did=DID(username=args.username)),
        )
    )
    request = envelope.request
    if request.has_error:
        return _failed(Operation.VERIFY, request)

    did = envelope.did
    result = _summary(did) if did.verified else {"username": args.username}
    result["verified"] = did.verified
    output_result(result, args.json)
    return 0 if did.verified else 1


def cmd_revoke(args: argparse.Namespace) -> int:
    """Revoke an identity after checking its passphrase."""
    request = RevokeRequest(did=DID(username=args.username, passphrase=read_passphrase(args)))
    get_dispatcher(args).handle(Operation.REVOKE, request)
    if request.has_error:
        return _failed(Operation.REVOKE, request)

    output_result({"username": args.username, "revoked": request.revoked}, args.json)
    return 0


# ============================================================================
# Parser
# ============================================================================


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="didvault",
        description="Local DID identities and content hashes",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument(
        "--store",
        default=None,
        help="Record directory (default: DIDVAULT_STORE_PATH or ~/.didvault/records)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: DIDVAULT_LOG_LEVEL)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    hash_parser = subparsers.add_parser("hash", help="Hash content")
    hash_parser.add_argument("content", help="Content to hash ('-' reads stdin)")
    hash_parser.add_argument("--no-fingerprint", action="store_true", help="Skip the fingerprint")
    hash_parser.add_argument("--no-full", action="store_true", help="Omit the full hash")
    hash_parser.set_defaults(func=cmd_hash)

    verify_hash_parser = subparsers.add_parser("verify-hash", help="Check content against a hash")
    verify_hash_parser.add_argument("content", help="Content to check ('-' reads stdin)")
    verify_hash_parser.add_argument("digest", help="Expected digest in hex")
    verify_hash_parser.add_argument("--algorithm", "-a", default=None, help="Digest algorithm of the expected hash")
    verify_hash_parser.add_argument(
        "--fingerprint",
        action="store_true",
        help="The expected hash is a fingerprint",
    )
    verify_hash_parser.set_defaults(func=cmd_verify_hash)

    def identity_parser(name: str, help_text: str, passphrase: bool = True) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("username", help="Identity username")
        if passphrase:
            sub.add_argument(
                "--passphrase",
                "-p",
                default=None,
                help="Passphrase (prompted for when omitted)",
            )
        return sub

    create_parser = identity_parser("create", "Create an identity")
    create_parser.add_argument(
        "--algorithm",
        "-a",
        default=None,
        help="Passphrase hash scheme id or name (default: DIDVAULT_PASSPHRASE_HASH_SCHEME)",
    )
    create_parser.set_defaults(func=cmd_create)

    auth_parser = identity_parser("authenticate", "Check a passphrase")
    auth_parser.add_argument(
        "--autogenerate",
        action="store_true",
        help="Create the identity if it does not exist",
    )
    auth_parser.set_defaults(func=cmd_authenticate)

    identity_parser("verify", "Check that an identity exists", passphrase=False).set_defaults(func=cmd_verify)
    identity_parser("revoke", "Revoke an identity").set_defaults(func=cmd_revoke)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
