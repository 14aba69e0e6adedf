"""Global test fixtures for the didvault test suite."""

from __future__ import annotations

import os

import pytest

from didvault.core.config import clear_config_cache
from didvault.identity.dispatcher import RequestDispatcher
from didvault.identity.engine import DIDLifecycleEngine
from didvault.identity.hashing import HashingService
from didvault.identity.store import InMemoryRecordStore

# PBKDF2 with 2**4 iterations keeps the suite fast.
TEST_COST = 4


@pytest.fixture(autouse=True)
def reset_config():
    """Every test starts and ends with a fresh settings object."""
    clear_config_cache()
    yield
    clear_config_cache()


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture
def clean_env(monkeypatch):
    """Remove all DIDVAULT_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("DIDVAULT_"):
            monkeypatch.delenv(key, raising=False)


# ============================================================================
# Identity Fixtures
# ============================================================================


@pytest.fixture
def hashing() -> HashingService:
    return HashingService(passphrase_cost=TEST_COST)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def engine(store, hashing) -> DIDLifecycleEngine:
    return DIDLifecycleEngine(store=store, hashing=hashing)


@pytest.fixture
def dispatcher(engine) -> RequestDispatcher:
    return RequestDispatcher(engine)
