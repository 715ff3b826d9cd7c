"""
Consensus orchestration engine for trade-council.

One round works in four steps:

1) Build the roster for the current UTC hour and filter it for the caller's
   context (premium exclusion, health floor, ensemble cap).
2) Invoke every roster member concurrently (:func:`asyncio.gather`) and
   wait for all of them to settle. There is no early consensus and no
   timeout at this layer.
3) Aggregate the successful votes into one weighted decision.
4) Attach the vote ledger, team, substitutions and timing.

All shared state (health, spacing) lives in the injected registry objects,
so several engines can run side by side in one process.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime

from trade_council.config.models import EngineConfig
from trade_council.engine.consensus import (
    ConsensusError,
    NoAvailableProvidersError,
    aggregate_votes,
)
from trade_council.engine.health import HealthRegistry
from trade_council.engine.invoker import ModelInvoker
from trade_council.engine.prompts import build_request
from trade_council.engine.roster import Roster, RosterEntry, RosterScheduler
from trade_council.protocol.types import (
    AnalysisVote,
    BatchResult,
    ConsensusResult,
    MarketSnapshot,
    TradingContext,
)
from trade_council.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class ConsensusEngine:
    """Runs consensus rounds over a scheduled, health-filtered roster."""

    def __init__(
        self,
        config: EngineConfig,
        scheduler: RosterScheduler,
        invoker: ModelInvoker,
        adapters: Mapping[str, ProviderAdapter],
        health: HealthRegistry,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._scheduler = scheduler
        self._invoker = invoker
        self._adapters = dict(adapters)
        self._health = health
        self._clock = clock or time.monotonic
        self._parked: set[str] = set()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def select_roster(self, context: TradingContext, now: datetime | None = None) -> Roster:
        """Scheduled roster for *now*, filtered for *context*.

        Availability is enforced by the scheduler. On top of that, premium
        providers are dropped when ``exclude_premium`` is set, providers
        under the minimum health score are dropped unless
        ``force_full_ensemble`` is set, and the rest is ordered by cost tier
        and truncated to ``max_ensemble_size``.
        """
        roster = self._scheduler.build_roster(now)
        kept: list[RosterEntry] = []
        dropped = list(roster.dropped)

        for entry in roster.entries:
            score = self._health.health_score(entry.id)
            if score >= self._config.min_health_score:
                self._parked.discard(entry.id)

            if entry.id not in self._adapters:
                logger.warning("No adapter for %s, leaving it out of the round", entry.id)
                dropped.append(entry.id)
            elif context.exclude_premium and entry.provider.tier >= self._config.premium_tier:
                logger.debug("Excluding premium provider %s", entry.id)
                dropped.append(entry.id)
            elif not context.force_full_ensemble and score < self._config.min_health_score:
                self._note_parked(entry.id, score)
                dropped.append(entry.id)
            else:
                kept.append(entry)

        kept.sort(key=lambda entry: entry.provider.tier)
        if context.max_ensemble_size is not None and len(kept) > context.max_ensemble_size:
            dropped.extend(entry.id for entry in kept[context.max_ensemble_size :])
            kept = kept[: context.max_ensemble_size]

        return Roster(
            team=roster.team,
            entries=kept,
            substitutions=dict(roster.substitutions),
            dropped=dropped,
        )

    def _note_parked(self, provider: str, score: int) -> None:
        # Warn once per episode; the flag clears when the score recovers.
        if provider in self._parked:
            logger.debug("Skipping degraded provider %s (health %d)", provider, score)
            return
        self._parked.add(provider)
        logger.warning(
            "Provider %s parked: health %d is below %d and it will not be queried "
            "until a forced full-ensemble round succeeds",
            provider,
            score,
            self._config.min_health_score,
        )

    async def decide(
        self,
        snapshot: MarketSnapshot,
        context: TradingContext | None = None,
        now: datetime | None = None,
    ) -> ConsensusResult:
        """Run one consensus round for *snapshot*.

        Raises:
            NoAvailableProvidersError: If no provider survives scheduling and filtering.
            AllProvidersFailedError: If every queried provider failed.
        """
        context = context or TradingContext()
        started = self._clock()
        roster = self.select_roster(context, now)
        if not roster.entries:
            raise NoAvailableProvidersError(
                f"No providers available for team '{roster.team}' "
                f"(dropped: {', '.join(roster.dropped) or 'none'})"
            )

        logger.info(
            "Analyzing %s with team %s: %s",
            snapshot.symbol,
            roster.team,
            ", ".join(roster.provider_ids),
        )

        results = await asyncio.gather(
            *(self._invoke(entry, snapshot, context) for entry in roster.entries),
            return_exceptions=True,
        )

        votes: list[AnalysisVote] = []
        for entry, result in zip(roster.entries, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.exception("Unexpected error invoking %s", entry.id, exc_info=result)
                error_type = self._health.record_failure(entry.id, result)
                result = AnalysisVote.failed(
                    entry.id,
                    str(result),
                    error_type,
                    weight=entry.weight,
                    substitute_for=entry.substitute_for,
                )
            votes.append(result)

        try:
            decision = aggregate_votes(votes, context)
        except ConsensusError:
            logger.warning("Every provider failed for %s", snapshot.symbol)
            raise

        return decision.model_copy(
            update={
                "asset_id": snapshot.id,
                "team": roster.team,
                "substitutions": dict(roster.substitutions),
                "duration_ms": round((self._clock() - started) * 1000),
            }
        )

    async def decide_batch(
        self,
        snapshots: Sequence[MarketSnapshot],
        context: TradingContext | None = None,
        now: datetime | None = None,
    ) -> BatchResult:
        """Decide several assets concurrently, best opportunities first.

        Decisions are ranked by ``confidence * potential_upside_percent``.
        Assets whose round could not reach a decision are listed in
        ``failures`` instead of aborting the batch.
        """
        results = await asyncio.gather(
            *(self.decide(snapshot, context, now) for snapshot in snapshots),
            return_exceptions=True,
        )

        batch = BatchResult()
        for snapshot, result in zip(snapshots, results, strict=True):
            if isinstance(result, ConsensusError):
                batch.failures[snapshot.id] = str(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                batch.decisions.append(result)

        batch.decisions.sort(
            key=lambda d: d.confidence * d.potential_upside_percent, reverse=True
        )
        logger.info(
            "Batch of %d assets: %d decisions, %d buy signals, %d failures",
            len(snapshots),
            len(batch.decisions),
            len(batch.buy_signals),
            len(batch.failures),
        )
        return batch

    async def _invoke(
        self, entry: RosterEntry, snapshot: MarketSnapshot, context: TradingContext
    ) -> AnalysisVote:
        request = build_request(snapshot, context, entry.provider, self._config)
        return await self._invoker.invoke(
            entry.provider,
            self._adapters[entry.id],
            request,
            context,
            weight=entry.weight,
            substitute_for=entry.substitute_for,
        )


__all__ = ["ConsensusEngine"]
