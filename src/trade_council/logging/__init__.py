"""
Secret-safe logging for trade-council.

Implements a redaction pipeline so that provider credentials never reach a
log handler, even when an upstream error message echoes them back.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

_PATTERNS = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9._\-]{8,}", re.IGNORECASE),
    re.compile(r"\b(?:sk|xai|gsk|csk)[-_][A-Za-z0-9_\-]{12,}"),
    re.compile(r"\bAIza[0-9A-Za-z_\-]{20,}"),
    re.compile(
        r"((?:api[_-]?key|token|secret)[\"']?\s*[:=]\s*[\"']?)[^\s\"',}]{6,}", re.IGNORECASE
    ),
)

REDACTED = "[REDACTED]"


def redact(text: str, secrets: Iterable[str] = ()) -> str:
    """Mask known credential shapes and any literal *secrets* in *text*."""
    for secret in secrets:
        if secret and len(secret) >= 4:
            text = text.replace(secret, REDACTED)
    for pattern in _PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
        else:
            text = pattern.sub(REDACTED, text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Rewrites every record's message with credentials masked."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        self._secrets = tuple(s for s in secrets if s)

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message, self._secrets)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def configure_logging(
    level: int | str = logging.WARNING, secrets: Iterable[str] = ()
) -> logging.Logger:
    """Attach a redacting stderr handler to the ``trade_council`` logger."""
    logger = logging.getLogger("trade_council")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if getattr(handler, "_trade_council", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler._trade_council = True  # type: ignore[attr-defined]
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.addFilter(SecretRedactingFilter(secrets))
    logger.addHandler(handler)
    return logger


__all__ = ["REDACTED", "SecretRedactingFilter", "configure_logging", "redact"]
