# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for didvault.

These exceptions are raised by the hashing service and record stores.
The lifecycle engine catches them and records an operation-scoped error
code on the request, so none of them escape the dispatcher.
"""

from __future__ import annotations

from typing import Any


class DIDException(Exception):  # noqa: N818
    """Base exception for all didvault errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationException(DIDException):
    """Exception for validation errors.

    Raised when:
    - A required request field is missing
    - A field value is out of range
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class FieldRequired(ValidationException):  # noqa: N818
    """A required input field is absent."""

    def __init__(self, field: str):
        super().__init__(f"{field} is required", field=field)


class UnsupportedAlgorithmError(DIDException):
    """The hashing backend does not provide the named algorithm."""

    def __init__(self, algorithm: str):
        super().__init__(f"Unsupported algorithm: {algorithm}", {"algorithm": algorithm})
        self.algorithm = algorithm


class MalformedEncodingError(DIDException):
    """A stored passphrase hash does not match the expected layout.

    The offending value is deliberately kept out of the message and details.
    """

    def __init__(self, reason: str):
        super().__init__(f"Malformed passphrase hash encoding: {reason}", {"reason": reason})
        self.reason = reason


class PersistenceError(DIDException):
    """Exception for record store failures.

    Raised when:
    - The store cannot read or write a record
    - A stored record cannot be decoded
    """

    def __init__(self, kind: str, key: str, reason: str = ""):
        message = f"Persistence failure for {kind}/{key}"
        if reason:
            message += f": {reason}"
        super().__init__(message, {"kind": kind, "key": key})
        self.kind = kind
        self.key = key


class RecordNotFoundError(PersistenceError):
    """Save without auto-create targeted a record that does not exist."""

    def __init__(self, kind: str, key: str):
        super().__init__(kind, key, "record does not exist and auto_create is off")


class RevokedIdentityError(DIDException):
    """A write would bring a revoked identity back to life."""

    def __init__(self, username: str):
        super().__init__(f"Identity {username} is revoked", {"username": username})
        self.username = username
