"""Exponential backoff for rate-limited provider calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from trade_council.providers.base import RetryExhaustedError, is_rate_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 2.0


def backoff_delay(attempt: int, base: float = DEFAULT_BACKOFF_BASE) -> float:
    """Seconds to wait after the zero-based *attempt* failed: 2, 4, 8, ..."""
    return base ** (attempt + 1)


async def with_backoff(
    call: Callable[[], Awaitable[T]],
    provider: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    *,
    base: float = DEFAULT_BACKOFF_BASE,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """Invoke *call*, retrying only on explicit rate-limit signals.

    Any other error is re-raised immediately. A rate limit on the final
    attempt raises :class:`RetryExhaustedError` chained to the last error.
    Circuit-breaker accounting is left to the caller.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    sleeper = sleep or asyncio.sleep

    for attempt in range(max_attempts):
        try:
            return await call()
        except Exception as exc:
            if not is_rate_limit_error(exc):
                raise
            if attempt == max_attempts - 1:
                raise RetryExhaustedError(provider, max_attempts) from exc
            delay = backoff_delay(attempt, base)
            logger.warning(
                "%s rate limited (attempt %d/%d), retrying in %.0fs",
                provider,
                attempt + 1,
                max_attempts,
                delay,
            )
            await sleeper(delay)

    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["backoff_delay", "with_backoff"]
