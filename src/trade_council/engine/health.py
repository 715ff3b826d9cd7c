"""
Provider Health Registry for trade-council.

Implements a per-provider circuit breaker fed by the outcome of every
provider call. A provider opens after repeated failures (or at once on a
credential/quota failure) and closes itself lazily: the first availability
check after the cooldown deadline resets it. There is no external reset.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from trade_council.providers.base import CREDENTIAL_ERRORS, ErrorType, classify_exception

logger = logging.getLogger(__name__)

MAX_HEALTH_SCORE = 100
FAILURE_PENALTY = 20


class CircuitState(str, Enum):
    """Circuit breaker state."""

    CLOSED = "closed"  # Available
    OPEN = "open"  # Disabled until the cooldown deadline


@dataclass
class ProviderHealth:
    """Mutable health record for a single provider.

    Created on the first observed failure and kept for the process lifetime.
    """

    provider: str
    failures: int = 0
    last_failure_at: float | None = None
    disabled: bool = False
    disabled_until: float | None = None
    last_error: str | None = None
    last_error_type: ErrorType | None = None

    @property
    def state(self) -> CircuitState:
        return CircuitState.OPEN if self.disabled else CircuitState.CLOSED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "provider": self.provider,
            "state": self.state.value,
            "failures": self.failures,
            "last_failure_at": _iso(self.last_failure_at),
            "disabled_until": _iso(self.disabled_until),
            "last_error": self.last_error[:200] if self.last_error else None,
            "last_error_type": self.last_error_type.value if self.last_error_type else None,
        }


def _iso(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class HealthRegistry:
    """Per-provider circuit breaker.

    Rate-limit errors never touch the counters (the retry layer owns them).
    Credential and quota errors open the circuit immediately for
    ``cooldown_seconds * credential_cooldown_multiplier``. Any other error
    increments the failure count; reaching ``failure_threshold`` opens the
    circuit for ``cooldown_seconds``.
    """

    DEFAULT_FAILURE_THRESHOLD = 3
    DEFAULT_COOLDOWN_SECONDS = 300.0  # 5 minutes
    DEFAULT_CREDENTIAL_MULTIPLIER = 6.0

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        credential_cooldown_multiplier: float = DEFAULT_CREDENTIAL_MULTIPLIER,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            failure_threshold: Consecutive failures that open the circuit
            cooldown_seconds: How long an opened circuit stays open
            credential_cooldown_multiplier: Cooldown multiplier for auth/quota failures
            clock: Wall-clock source in seconds (defaults to time.time)
        """
        self._failure_threshold = failure_threshold
        self._cooldown = cooldown_seconds
        self._credential_multiplier = credential_cooldown_multiplier
        self._clock = clock or time.time
        self._records: dict[str, ProviderHealth] = {}

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown

    def get(self, provider: str) -> ProviderHealth | None:
        """Return the health record for *provider*, or None if never seen failing."""
        return self._records.get(provider)

    def record_failure(self, provider: str, error: BaseException | str) -> ErrorType:
        """Record a failed call and open the circuit if warranted.

        Returns:
            The classification the error received.
        """
        error_type = classify_exception(error)
        if error_type == ErrorType.RATE_LIMIT:
            logger.debug("Ignoring rate-limit signal from %s for circuit accounting", provider)
            return error_type

        now = self._clock()
        record = self._records.get(provider)
        if record is None:
            record = ProviderHealth(provider=provider)
            self._records[provider] = record

        record.last_failure_at = now
        record.last_error = str(error)
        record.last_error_type = error_type

        if error_type in CREDENTIAL_ERRORS:
            cooldown = self._cooldown * self._credential_multiplier
            record.failures = max(record.failures, self._failure_threshold)
            self._open(record, now, cooldown)
            logger.warning(
                "Provider %s disabled for %.0fs after %s failure: %s",
                provider,
                cooldown,
                error_type.value,
                record.last_error[:200],
            )
            return error_type

        record.failures += 1
        if record.failures >= self._failure_threshold and not record.disabled:
            self._open(record, now, self._cooldown)
            logger.warning(
                "Provider %s disabled for %.0fs after %d consecutive failures",
                provider,
                self._cooldown,
                record.failures,
            )
        else:
            logger.debug(
                "Provider %s failure %d/%d (%s)",
                provider,
                record.failures,
                self._failure_threshold,
                error_type.value,
            )
        return error_type

    def record_success(self, provider: str) -> None:
        """Reset the failure count and close the circuit unconditionally."""
        record = self._records.get(provider)
        if record is None:
            return
        if record.disabled:
            logger.info("Provider %s recovered, closing circuit", provider)
        record.failures = 0
        record.disabled = False
        record.disabled_until = None

    def is_available(self, provider: str) -> bool:
        """Return True if *provider* may be queried.

        An open circuit whose cooldown deadline has passed is closed (and its
        failure count reset) as a side effect of this call.
        """
        record = self._records.get(provider)
        if record is None or not record.disabled:
            return True
        if record.disabled_until is not None and self._clock() >= record.disabled_until:
            record.disabled = False
            record.disabled_until = None
            record.failures = 0
            logger.info("Provider %s cooldown elapsed, re-enabling", provider)
            return True
        return False

    def health_score(self, provider: str) -> int:
        """Score in [0, 100]: 100 if unseen, 0 if disabled, else 100 - 20 per failure."""
        record = self._records.get(provider)
        if record is None:
            return MAX_HEALTH_SCORE
        if record.disabled:
            return 0
        return max(0, MAX_HEALTH_SCORE - FAILURE_PENALTY * record.failures)

    def snapshot(self) -> list[dict[str, Any]]:
        """Observability rows for every provider that has ever failed."""
        rows = []
        for name in sorted(self._records):
            row = self._records[name].to_dict()
            row["health_score"] = self.health_score(name)
            rows.append(row)
        return rows

    def _open(self, record: ProviderHealth, now: float, cooldown: float) -> None:
        record.disabled = True
        record.disabled_until = now + cooldown


__all__ = [
    "CircuitState",
    "HealthRegistry",
    "ProviderHealth",
]
