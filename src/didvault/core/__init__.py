"""didvault core - configuration, logging and the exception hierarchy."""

from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    DIDException,
    FieldRequired,
    MalformedEncodingError,
    PersistenceError,
    RecordNotFoundError,
    RevokedIdentityError,
    UnsupportedAlgorithmError,
    ValidationException,
)
from .logging import (
    RequestLogger,
    configure_logging,
    correlation_context,
    request_logger,
)

__all__ = [
    "CoreSettings",
    "DIDException",
    "FieldRequired",
    "MalformedEncodingError",
    "PersistenceError",
    "RecordNotFoundError",
    "RequestLogger",
    "RevokedIdentityError",
    "UnsupportedAlgorithmError",
    "ValidationException",
    "clear_config_cache",
    "configure_logging",
    "correlation_context",
    "get_config",
    "request_logger",
]
