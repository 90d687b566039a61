"""
core/logging.py -- Logging setup with secret redaction.

Gatehouse modules log through named stdlib loggers ("gatehouse.auth",
"gatehouse.auth.throttle", ...). configure_logging() is called once by the
host application or the CLI; library code never configures handlers itself.

RedactingFilter scrubs values that look like credentials (password=...,
code=..., token=...) from messages and arguments before they are emitted.
The core never logs secrets on purpose -- the filter catches accidents such
as an exception message that echoes a form field.
"""

from __future__ import annotations

import logging
import re
from typing import Final, Pattern

_LOG_FORMAT: Final[str] = "%(asctime)s %(levelname)-5s %(name)s %(message)s"
_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

_SENSITIVE_PATTERNS: Final[list[Pattern[str]]] = [
    re.compile(r"(?i)\b(password|passwd|pwd)\s*[=:]\s*[\"']?[^\s\"',]+[\"']?"),
    re.compile(r"(?i)\b(persist_code|activation_code|reset_password_code|code)\s*[=:]\s*[\"']?[^\s\"',]+[\"']?"),
    re.compile(r"(?i)\b(token|secret|secret_key)\s*[=:]\s*[\"']?[^\s\"',]+[\"']?"),
]

_REDACTED: Final[str] = "[REDACTED]"


def redact(message: str) -> str:
    """Return message with credential-looking key/value pairs replaced."""
    for pattern in _SENSITIVE_PATTERNS:
        message = pattern.sub(lambda m: f"{m.group(1)}={_REDACTED}", message)
    return message


class RedactingFilter(logging.Filter):
    """Log filter that redacts credential values. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: redact(v) if isinstance(v, str) else v for k, v in record.args.items()}
            else:
                record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args)
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once and attach the redacting filter to its handlers."""
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT, datefmt=_DATE_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())
