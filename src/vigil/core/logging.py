# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Logging setup for vigil.

Everything under the ``vigil`` logger goes to stderr as JSON lines (the
default) or plain text.  Both formatters scrub secrets, ciphertext tokens
and password digests so a log file never becomes a second copy of the
protected data.
"""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

# Each pattern keeps group 1 (a short, non-sensitive prefix) and drops the rest.
REDACT_PATTERNS = [
    re.compile(r"((?:secret|password|encryption_key)\s*[=:]\s*\S{2})\S*", re.IGNORECASE),
    re.compile(r"(Bearer\s+[a-zA-Z0-9\-._~+/]{10})[a-zA-Z0-9\-._~+/]*"),
    re.compile(r"(vg1\.[A-Za-z0-9_\-]{6})[A-Za-z0-9_\-=]*"),
    re.compile(r"(pbkdf2-sha512\$\d+\$[0-9a-f]{4})[0-9a-f$]*"),
]

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# LogRecord attributes that are not caller-supplied ``extra`` fields.
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def redact_sensitive(text: str) -> str:
    for pattern in REDACT_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Values passed through ``extra=`` (backup ids, table names, counts) are
    merged into the object next to the standard keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_sensitive(record.getMessage()),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                entry[key] = redact_sensitive(value) if isinstance(value, str) else value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = redact_sensitive(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return redact_sensitive(super().format(record))


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """(Re)configure the ``vigil`` logger; safe to call more than once."""
    logger = logging.getLogger("vigil")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if fmt == "json" else TextFormatter(TEXT_FORMAT))
    logger.addHandler(handler)
