"""Pytest configuration and shared fixtures for trade-council tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, ClassVar

import pytest

from trade_council.config.models import EngineConfig, ProviderSpec, TeamSpec
from trade_council.engine.health import HealthRegistry
from trade_council.engine.invoker import ModelInvoker
from trade_council.engine.orchestrator import ConsensusEngine
from trade_council.engine.rate_limit import RateLimiter
from trade_council.engine.roster import RosterScheduler
from trade_council.protocol.types import MarketSnapshot, TradingContext
from trade_council.providers.base import (
    DoctorResult,
    GenerateRequest,
    GenerateResponse,
    ProviderAdapter,
)

# 03:00 UTC falls in the "night" team of the small_config fixture
NIGHT = datetime(2025, 1, 1, 3, tzinfo=timezone.utc)
DAY = datetime(2025, 1, 1, 15, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock whose async sleep moves time forward."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def analysis_json(
    action: str = "buy",
    confidence: float = 0.8,
    risk: str = "medium",
    **extra: Any,
) -> str:
    """Provider answer in the camelCase wire shape."""
    payload: dict[str, Any] = {
        "action": action,
        "confidence": confidence,
        "reasoning": f"{action} because of test conditions",
        "potentialUpsidePercent": 200.0,
        "riskLevel": risk,
        "keyFactors": ["volume"],
    }
    payload.update(extra)
    return json.dumps(payload)


class ScriptedProvider(ProviderAdapter):
    """Provider that replays a script of answers and errors.

    Each call consumes the next entry; the last entry repeats forever.
    Strings are returned as response text, exceptions are raised.
    """

    kind: ClassVar[str] = "scripted"

    def __init__(
        self,
        script: Sequence[str | BaseException] | str | BaseException | None = None,
        clock: FakeClock | None = None,
        latency: float = 0.0,
    ) -> None:
        if script is None:
            script = [analysis_json()]
        elif isinstance(script, (str, BaseException)):
            script = [script]
        self._script = list(script)
        self._clock = clock
        self._latency = latency
        self.requests: list[GenerateRequest] = []
        self.dispatch_times: list[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        index = min(len(self.requests), len(self._script) - 1)
        self.requests.append(request)
        if self._clock is not None:
            self.dispatch_times.append(self._clock())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._latency and self._clock is not None:
                await self._clock.sleep(self._latency)
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1

        outcome = self._script[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return GenerateResponse(text=outcome, model="scripted", finish_reason="stop")

    async def doctor(self) -> DoctorResult:
        return DoctorResult(ok=True, message="scripted provider OK", latency_ms=1.0)

    async def aclose(self) -> None:
        self.closed = True


def make_provider(provider_id: str, **overrides: Any) -> ProviderSpec:
    fields: dict[str, Any] = {
        "id": provider_id,
        "base_url": f"https://{provider_id}.example.com/v1",
        "model": f"{provider_id}-model",
        "min_delay_seconds": 0.0,
    }
    fields.update(overrides)
    return ProviderSpec(**fields)


def build_engine(
    config: EngineConfig,
    adapters: dict[str, ProviderAdapter],
    clock: FakeClock,
    health: HealthRegistry | None = None,
) -> tuple[ConsensusEngine, HealthRegistry, RateLimiter]:
    """Wire an engine with fake time everywhere."""
    health = health or HealthRegistry(
        failure_threshold=config.failure_threshold,
        cooldown_seconds=config.cooldown_seconds,
        credential_cooldown_multiplier=config.credential_cooldown_multiplier,
        clock=clock,
    )
    limiter = RateLimiter(
        {p.id: p.min_delay_seconds for p in config.providers}, clock=clock, sleep=clock.sleep
    )
    invoker = ModelInvoker(health, limiter, config, sleep=clock.sleep, clock=clock)
    engine = ConsensusEngine(
        config, RosterScheduler(config, health), invoker, adapters, health, clock=clock
    )
    return engine, health, limiter


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def small_config() -> EngineConfig:
    """Two 12-hour teams of three providers each; p3 and p6 are premium."""
    return EngineConfig(
        providers=[
            make_provider("p1", team="night"),
            make_provider("p2", team="night"),
            make_provider("p3", team="night", tier=2, weight=1.5),
            make_provider("p4", team="day"),
            make_provider("p5", team="day", tier=1),
            make_provider("p6", team="day", tier=2),
        ],
        teams=[
            TeamSpec(name="night", start_hour=0, end_hour=12),
            TeamSpec(name="day", start_hour=12, end_hour=0),
        ],
    )


@pytest.fixture
def single_config() -> EngineConfig:
    """One provider, always on duty."""
    return EngineConfig(providers=[make_provider("solo")])


@pytest.fixture
def snapshot() -> MarketSnapshot:
    return MarketSnapshot(
        id="So11111111111111111111111111111111111111112",
        symbol="TEST",
        name="Test Token",
        price_usd=0.00042,
        price_quote=0.0000031,
        volume_24h_usd=125_000.0,
        market_cap_usd=420_000.0,
        liquidity_usd=38_000.0,
        price_change_1h=12.5,
        price_change_24h=-4.2,
        buy_pressure_percent=64.0,
        holder_count=812,
    )


@pytest.fixture
def context() -> TradingContext:
    return TradingContext(budget_per_trade=0.1)
