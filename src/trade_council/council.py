"""
TradeCouncil - Main facade class for trade-council.

Provides a simple interface for turning market snapshots into consensus
trading decisions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from trade_council.config.models import EngineConfig, resolve_credential, resolve_credentials
from trade_council.engine.cache import DecisionCache
from trade_council.engine.health import HealthRegistry
from trade_council.engine.invoker import ModelInvoker
from trade_council.engine.orchestrator import ConsensusEngine
from trade_council.engine.rate_limit import RateLimiter
from trade_council.engine.roster import Roster, RosterScheduler
from trade_council.protocol.types import (
    BatchResult,
    ConsensusResult,
    MarketSnapshot,
    TradingContext,
)
from trade_council.providers.base import DoctorResult, ProviderAdapter
from trade_council.providers.registry import get_registry

logger = logging.getLogger(__name__)


class TradeCouncil:
    """Multi-provider trading consensus.

    Queries the active team of model providers in parallel and combines
    their votes into one buy/sell/hold decision.

    Example:
        ```python
        council = TradeCouncil(load_config())
        try:
            result = await council.decide(snapshot, TradingContext(budget_per_trade=0.05))
            print(result.action, result.confidence)
        finally:
            await council.aclose()
        ```
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        adapters: Mapping[str, ProviderAdapter] | None = None,
        health: HealthRegistry | None = None,
        rate_limiter: RateLimiter | None = None,
        environ: Mapping[str, str] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the council.

        Args:
            config: Engine configuration.
            adapters: Pre-built adapters keyed by provider id. When omitted,
                adapters are created through the provider registry for every
                provider whose credential is present.
            health: Shared Health Registry (a fresh one by default).
            rate_limiter: Shared Rate Limiter (a fresh one by default).
            environ: Environment used to resolve credentials (``os.environ``
                by default).
            sleep: Async sleep used for retry backoff, for testing.
        """
        if adapters is None:
            config = resolve_credentials(config, environ)
            adapters = self._build_adapters(config, environ)
            self._owns_adapters = True
        else:
            self._owns_adapters = False
        # Providers without an adapter are never rostered
        config = config.model_copy(
            update={
                "providers": [
                    p if p.id in adapters else p.model_copy(update={"enabled": False})
                    for p in config.providers
                ]
            }
        )

        self._config = config
        self._adapters = dict(adapters)
        self._health = health or HealthRegistry(
            failure_threshold=config.failure_threshold,
            cooldown_seconds=config.cooldown_seconds,
            credential_cooldown_multiplier=config.credential_cooldown_multiplier,
        )
        self._rate_limiter = rate_limiter or RateLimiter(
            {p.id: p.min_delay_seconds for p in config.providers}
        )
        self._scheduler = RosterScheduler(config, self._health)
        self._invoker = ModelInvoker(self._health, self._rate_limiter, config, sleep=sleep)
        self._engine = ConsensusEngine(
            config, self._scheduler, self._invoker, self._adapters, self._health
        )
        self._cache = DecisionCache(config.cache_ttl_seconds)

    @staticmethod
    def _build_adapters(
        config: EngineConfig, environ: Mapping[str, str] | None
    ) -> dict[str, ProviderAdapter]:
        registry = get_registry()
        adapters: dict[str, ProviderAdapter] = {}
        for provider in config.enabled_providers:
            try:
                adapters[provider.id] = registry.create(
                    provider.adapter,
                    name=provider.id,
                    base_url=provider.base_url,
                    model=provider.model,
                    api_key=resolve_credential(provider, environ),
                    timeout=config.request_timeout,
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Could not create adapter for %s: %s", provider.id, exc)
        logger.info(
            "Initialized %d provider adapter(s): %s",
            len(adapters),
            ", ".join(adapters) or "none",
        )
        return adapters

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def health(self) -> HealthRegistry:
        return self._health

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def engine(self) -> ConsensusEngine:
        return self._engine

    @property
    def providers(self) -> list[str]:
        return list(self._adapters)

    async def decide(
        self,
        snapshot: MarketSnapshot,
        context: TradingContext | None = None,
        now: datetime | None = None,
    ) -> ConsensusResult:
        """Decide buy/sell/hold for one asset.

        Recent decisions for the same asset and trading context are reused
        while the cache TTL has not expired.

        Raises:
            ConsensusError: If no decision could be reached.
        """
        context = context or TradingContext()
        cached = self._cache.get(snapshot.id, context)
        if cached is not None:
            return cached
        result = await self._engine.decide(snapshot, context, now)
        self._cache.put(snapshot.id, context, result)
        return result

    async def decide_batch(
        self,
        snapshots: Sequence[MarketSnapshot],
        context: TradingContext | None = None,
        now: datetime | None = None,
    ) -> BatchResult:
        """Decide several assets, best opportunities first."""
        return await self._engine.decide_batch(snapshots, context, now)

    def roster(
        self, context: TradingContext | None = None, now: datetime | None = None
    ) -> Roster:
        """The providers a round started at *now* would query."""
        return self._engine.select_roster(context or TradingContext(), now)

    def health_report(self) -> dict[str, Any]:
        """Health score and circuit state for every configured provider."""
        report: dict[str, Any] = {}
        for provider in self._config.providers:
            record = self._health.get(provider.id)
            report[provider.id] = {
                "enabled": provider.enabled and provider.id in self._adapters,
                "available": self._health.is_available(provider.id),
                "health_score": self._health.health_score(provider.id),
                "tier": provider.tier,
                "requests_last_minute": self._rate_limiter.requests_last_minute(provider.id),
                **(record.to_dict() if record else {"state": "closed", "failures": 0}),
            }
        return report

    async def doctor(self) -> dict[str, DoctorResult]:
        """Check every adapter concurrently."""

        async def _check(name: str, adapter: ProviderAdapter) -> tuple[str, DoctorResult]:
            try:
                return name, await adapter.doctor()
            except Exception as exc:
                return name, DoctorResult(ok=False, message=str(exc))

        pairs = await asyncio.gather(
            *(_check(name, adapter) for name, adapter in self._adapters.items())
        )
        return dict(pairs)

    async def aclose(self) -> None:
        """Close adapters created by this council."""
        if not self._owns_adapters:
            return
        for adapter in self._adapters.values():
            await adapter.aclose()


__all__ = ["TradeCouncil"]
