"""Short-lived cache of consensus decisions."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from trade_council.protocol.types import ConsensusResult, TradingContext

logger = logging.getLogger(__name__)

CacheKey = tuple[str, TradingContext]


class DecisionCache:
    """Keeps one decision per (asset id, trading context) for ``ttl_seconds``.

    The whole frozen context is part of the key, so a decision is only
    reused under the same budget, risk tolerance and roster filters.
    A TTL of zero disables the cache. Expired entries are evicted on read.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] | None = None) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[CacheKey, tuple[float, ConsensusResult]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def get(self, asset_id: str, context: TradingContext) -> ConsensusResult | None:
        if not self.enabled:
            return None
        key = (asset_id, context)
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at >= self._ttl:
            del self._entries[key]
            return None
        logger.debug("Decision cache hit for %s", asset_id)
        return result

    def put(self, asset_id: str, context: TradingContext, result: ConsensusResult) -> None:
        if self.enabled:
            self._entries[(asset_id, context)] = (self._clock(), result)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DecisionCache"]
