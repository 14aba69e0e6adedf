"""Record storage for DIDs.

Storage is pluggable: the engine talks to anything satisfying
:class:`RecordStore`.  Records cross this boundary as plain key-value maps
(``DID.to_dict()``); the store never sees plaintext passphrases.

Two implementations ship with the package: an in-memory store for tests
and embedding, and a JSON-file store used by the CLI.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

from didvault.core.exceptions import PersistenceError, RecordNotFoundError

logger = logging.getLogger(__name__)

DID_KIND = "DID"


# ---------------------------------------------------------------------------
# Storage protocol
# ---------------------------------------------------------------------------


class RecordStore(Protocol):
    """Abstract storage backend keyed by ``(kind, key)``.

    Both methods may block on I/O.  Failures raise
    :class:`~didvault.core.exceptions.PersistenceError`; there is no retry.
    """

    def load(self, kind: str, key: str) -> dict[str, Any] | None: ...

    def save(self, kind: str, key: str, record: dict[str, Any], auto_create: bool = True) -> None: ...


# ---------------------------------------------------------------------------
# In-memory store (default / tests)
# ---------------------------------------------------------------------------


class InMemoryRecordStore:
    """Dict-backed :class:`RecordStore`. Records are deep-copied in and out."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, kind: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get((kind, key))
            return copy.deepcopy(record) if record is not None else None

    def save(self, kind: str, key: str, record: dict[str, Any], auto_create: bool = True) -> None:
        with self._lock:
            if not auto_create and (kind, key) not in self._records:
                raise RecordNotFoundError(kind, key)
            self._records[(kind, key)] = copy.deepcopy(record)

    def __len__(self) -> int:
        return len(self._records)


# ---------------------------------------------------------------------------
# JSON file store
# ---------------------------------------------------------------------------


class FileRecordStore:
    """Stores each record as ``<base>/<kind>/<quoted key>.json``.

    Writes go to a temporary file that is then renamed over the target, so
    a crash never leaves a half-written record behind.
    """

    def __init__(self, base_path: str | Path) -> None:
        self._base_path = Path(base_path).expanduser()
        self._lock = threading.Lock()

    @property
    def base_path(self) -> Path:
        return self._base_path

    def _path(self, kind: str, key: str) -> Path:
        return self._base_path / quote(kind, safe="") / f"{quote(key, safe='')}.json"

    def load(self, kind: str, key: str) -> dict[str, Any] | None:
        path = self._path(kind, key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise PersistenceError(kind, key, str(exc)) from exc
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise PersistenceError(kind, key, "corrupt record") from exc

    def save(self, kind: str, key: str, record: dict[str, Any], auto_create: bool = True) -> None:
        path = self._path(kind, key)
        with self._lock:
            if not auto_create and not path.exists():
                raise RecordNotFoundError(kind, key)
            tmp = path.with_suffix(".json.tmp")
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(json.dumps(record, indent=2, sort_keys=True), encoding="utf-8")
                # Records carry passphrase hashes
                tmp.chmod(0o600)
                os.replace(tmp, path)
            except OSError as exc:
                logger.warning("Failed to write %s/%s: %s", kind, key, exc)
                raise PersistenceError(kind, key, str(exc)) from exc
