# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""didvault - local DID identity lifecycle and content hashing.

A DID here is a local identity keyed by username and protected by a
salted, stretched passphrase hash. The package verifies, authenticates,
creates, caches and revokes such identities, and hashes arbitrary content
into full hashes and short fingerprints.

Architecture:
  Envelope (operation + typed request)
    -> RequestDispatcher (validation, error codes)
    -> DIDLifecycleEngine (identity cache, key ring)
    -> HashingService / RecordStore

CLI entry point: ``didvault``
"""

__version__ = "0.1.0"

from . import (
    core as core,
)
