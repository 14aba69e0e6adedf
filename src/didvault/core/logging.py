# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Structured logging configuration for didvault.

Provides:
- JSON formatter for production (machine-parseable)
- Standard formatter for development (human-readable)
- Correlation IDs scoped to one dispatched envelope, stamped on every
  record by :class:`CorrelationFilter`
- Request logging with passphrases and other secrets redacted
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

_correlation_id: ContextVar[str | None] = ContextVar("didvault_correlation_id", default=None)

# extra_data keys lifted to the top level of JSON records.
PROMOTED_FIELDS = ("operation", "error_code")

REDACTED = "[REDACTED]"


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Iterator[str]:
    """Scope a correlation ID around one dispatched envelope.

    A UUID4 string is generated when ``correlation_id`` is omitted. The
    previous ID is restored on exit, so contexts nest.
    """
    token = _correlation_id.set(correlation_id or str(uuid.uuid4()))
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


class CorrelationFilter(logging.Filter):
    """Stamps ``record.correlation_id`` from the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = get_correlation_id()
        return True


def _correlation_of(record: logging.LogRecord) -> str | None:
    return getattr(record, "correlation_id", None) or get_correlation_id()


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation.

    ``operation`` and ``error_code`` from a record's ``extra_data`` are
    promoted to top-level keys; the rest stays under ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        cid = _correlation_of(record)
        if cid:
            entry["correlation_id"] = cid

        extra = dict(getattr(record, "extra_data", None) or {})
        for key in PROMOTED_FIELDS:
            if key in extra:
                entry[key] = extra.pop(key)
        if extra:
            entry["extra"] = extra

        if record.levelno >= logging.WARNING:
            entry["at"] = f"{record.module}.{record.funcName}:{record.lineno}"
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class StandardFormatter(logging.Formatter):
    """``time level logger [cid] message`` lines, coloured on a TTY."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True):
        super().__init__(datefmt="%H:%M:%S")
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"
        cid = _correlation_of(record)
        prefix = f"[{cid[:8]}] " if cid else ""
        line = f"{self.formatTime(record, self.datefmt)} {level:<8} {record.name}: {prefix}{record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _wants_json(setting: str) -> bool:
    """Map the ``log_format`` setting to a formatter choice."""
    setting = setting.strip().lower()
    if setting in ("json", "text"):
        return setting == "json"
    return not sys.stderr.isatty()


def configure_logging(
    level: str | int | None = None,
    json_format: bool | None = None,
    log_file: str | None = None,
) -> None:
    """Install didvault's handlers on the root logger, replacing any others.

    Args:
        level: Log level; defaults to ``DIDVAULT_LOG_LEVEL``.
        json_format: Force JSON (True) or text (False). When None the
            ``DIDVAULT_LOG_FORMAT`` setting decides, falling back to JSON
            whenever stderr is not a terminal.
        log_file: Optional file that additionally receives JSON records.
    """
    from .config import get_config

    config = get_config()
    level = config.log_level if level is None else level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        json_format = _wants_json(config.log_format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    handlers[0].setFormatter(JSONFormatter() if json_format else StandardFormatter())
    target = log_file if log_file is not None else config.log_file
    if target:
        handlers.append(logging.FileHandler(target))
        handlers[-1].setFormatter(JSONFormatter())

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        handler.addFilter(CorrelationFilter())
        root.addHandler(handler)
    root.setLevel(level)


class RequestLogger:
    """Logs dispatched requests with secret-bearing fields redacted."""

    SENSITIVE_KEYS = {
        "passphrase",
        "password",
        "secret",
        "token",
        "credential",
    }

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("didvault.requests")

    def log_request(self, operation: str, payload: dict[str, Any] | None, level: int = logging.DEBUG) -> None:
        self.logger.log(
            level,
            f"Request: {operation}",
            extra={"extra_data": {"operation": str(operation), "payload": self.sanitize(payload)}},
        )

    def log_result(self, operation: str, error_code: int, level: int = logging.DEBUG) -> None:
        code = int(error_code)
        self.logger.log(
            level,
            f"Result: {operation} -> {'ok' if not code else f'error {code}'}",
            extra={"extra_data": {"operation": str(operation), "error_code": code}},
        )

    def is_sensitive(self, key: Any) -> bool:
        lowered = str(key).lower()
        return any(marker in lowered for marker in self.SENSITIVE_KEYS)

    def sanitize(self, data: Any) -> Any:
        """Return a copy of ``data`` with sensitive values replaced by ``[REDACTED]``.

        ``None`` values stay ``None`` so a missing passphrase is still visible.
        """
        if isinstance(data, dict):
            return {
                key: (REDACTED if value is not None else None) if self.is_sensitive(key) else self.sanitize(value)
                for key, value in data.items()
            }
        if isinstance(data, (list, tuple)):
            return [self.sanitize(item) for item in data]
        return data


request_logger = RequestLogger()
