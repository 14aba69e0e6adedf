"""Core configuration - centralized config for the didvault package.

All environment-based configuration should flow through this module.

Usage:
    from didvault.core.config import get_config
    config = get_config()

    cost = config.passphrase_hash_cost
    log_level = config.log_level
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoreSettings(BaseSettings):
    """Core configuration settings for didvault.

    Settings can be configured via environment variables with the
    DIDVAULT_ prefix, or from a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="DIDVAULT_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="DIDVAULT_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="DIDVAULT_LOG_FILE",
    )

    # ==========================================================================
    # HASHING SETTINGS
    # ==========================================================================

    content_hash_algorithm: str = Field(
        default="SHA256",
        description="Digest algorithm for full content hashes",
        validation_alias="DIDVAULT_CONTENT_HASH_ALGORITHM",
    )
    fingerprint_algorithm: str = Field(
        default="SHA1",
        description="Digest algorithm for short fingerprints (hash of the full digest)",
        validation_alias="DIDVAULT_FINGERPRINT_ALGORITHM",
    )
    passphrase_hash_scheme: str = Field(
        default="31",
        description="Passphrase hash scheme id: '31' (PBKDF2-HMAC-SHA1) or '32' (PBKDF2-HMAC-SHA256)",
        validation_alias="DIDVAULT_PASSPHRASE_HASH_SCHEME",
    )
    passphrase_hash_cost: int = Field(
        default=16,
        ge=0,
        le=30,
        description="log2 of the PBKDF2 iteration count",
        validation_alias="DIDVAULT_PASSPHRASE_HASH_COST",
    )

    # ==========================================================================
    # STORE / IDENTITY SETTINGS
    # ==========================================================================

    store_path: str = Field(
        default=str(Path.home() / ".didvault" / "records"),
        description="Directory used by the file record store",
        validation_alias="DIDVAULT_STORE_PATH",
    )
    autogenerate: bool = Field(
        default=False,
        description="Create unknown users on authenticate (CLI default)",
        validation_alias="DIDVAULT_AUTOGENERATE",
    )

    @field_validator("content_hash_algorithm", "fingerprint_algorithm")
    @classmethod
    def _normalize_algorithm(cls, value: str) -> str:
        return value.strip().upper()


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
