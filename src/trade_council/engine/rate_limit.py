"""Per-provider request spacing."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_WINDOW_SECONDS = 60.0


@dataclass
class _ProviderSlot:
    min_delay: float
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_request_at: float | None = None
    recent: deque[float] = field(default_factory=deque)


class RateLimiter:
    """Serializes calls per provider and enforces a minimum spacing.

    Callers for the same provider queue on an :class:`asyncio.Lock`, which
    wakes waiters in FIFO order. The head of the queue sleeps until
    ``min_delay`` has passed since the previous dispatch, stamps the new
    dispatch time and keeps the lock until its call finishes, so one
    provider never has two requests in flight. Different providers never
    wait on each other.
    """

    def __init__(
        self,
        min_delays: Mapping[str, float] | None = None,
        *,
        default_min_delay: float = 1.0,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        if default_min_delay < 0:
            raise ValueError("default_min_delay must be non-negative")
        self._min_delays = dict(min_delays or {})
        self._default_min_delay = default_min_delay
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._slots: dict[str, _ProviderSlot] = {}

    def configure(self, provider: str, min_delay: float) -> None:
        """Set the minimum spacing for *provider*."""
        if min_delay < 0:
            raise ValueError("min_delay must be non-negative")
        self._min_delays[provider] = min_delay
        slot = self._slots.get(provider)
        if slot is not None:
            slot.min_delay = min_delay

    def min_delay(self, provider: str) -> float:
        return self._min_delays.get(provider, self._default_min_delay)

    def _slot(self, provider: str) -> _ProviderSlot:
        slot = self._slots.get(provider)
        if slot is None:
            slot = _ProviderSlot(min_delay=self.min_delay(provider))
            self._slots[provider] = slot
        return slot

    @asynccontextmanager
    async def acquire(self, provider: str) -> AsyncIterator[float]:
        """Hold *provider*'s slot for one request.

        Yields the dispatch timestamp.
        """
        slot = self._slot(provider)
        async with slot.lock:
            if slot.last_request_at is not None:
                wait = max(0.0, slot.min_delay - (self._clock() - slot.last_request_at))
                if wait > 0:
                    logger.debug("Spacing %s request by %.2fs", provider, wait)
                    await self._sleep(wait)
            now = self._clock()
            slot.last_request_at = now
            slot.recent.append(now)
            self._trim(slot, now)
            yield now

    def last_request_at(self, provider: str) -> float | None:
        slot = self._slots.get(provider)
        return slot.last_request_at if slot else None

    def requests_last_minute(self, provider: str) -> int:
        """Informational rolling one-minute request count."""
        slot = self._slots.get(provider)
        if slot is None:
            return 0
        self._trim(slot, self._clock())
        return len(slot.recent)

    @staticmethod
    def _trim(slot: _ProviderSlot, now: float) -> None:
        while slot.recent and now - slot.recent[0] >= _WINDOW_SECONDS:
            slot.recent.popleft()


__all__ = ["RateLimiter"]
