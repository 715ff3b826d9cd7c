"""Tests for the TradeCouncil facade class."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from conftest import NIGHT, ScriptedProvider, analysis_json, make_provider
from trade_council import AllProvidersFailedError, TradeCouncil
from trade_council.config.models import EngineConfig
from trade_council.engine.cache import DecisionCache
from trade_council.protocol.types import Action, RiskLevel, TradingContext
from trade_council.providers.base import ProviderError
from trade_council.providers.openai_compat import OpenAICompatibleProvider


class BrokenDoctor(ScriptedProvider):
    async def doctor(self):
        raise RuntimeError("check exploded")


class TestCouncilInit:
    """Tests for TradeCouncil initialization."""

    def test_adapters_built_for_providers_with_keys(self):
        config = EngineConfig(
            providers=[
                make_provider("keyed", credential_ref="KEYED_KEY"),
                make_provider("missing", credential_ref="MISSING_KEY"),
                make_provider("keyless"),
            ]
        )

        council = TradeCouncil(config, environ={"KEYED_KEY": "sk-123"})

        assert council.providers == ["keyed", "keyless"]
        assert isinstance(council.engine._adapters["keyed"], OpenAICompatibleProvider)
        assert not council.config.providers_by_id["missing"].enabled

    def test_adapters_created_through_registry(self):
        config = EngineConfig(providers=[make_provider("groq", credential_ref="GROQ_API_KEY")])

        with patch("trade_council.council.get_registry") as mock_get_registry:
            registry = MagicMock()
            registry.create.return_value = ScriptedProvider()
            mock_get_registry.return_value = registry

            TradeCouncil(config, environ={"GROQ_API_KEY": "gsk-secret"})

        registry.create.assert_called_once_with(
            "openai",
            name="groq",
            base_url="https://groq.example.com/v1",
            model="groq-model",
            api_key="gsk-secret",
            timeout=config.request_timeout,
        )

    def test_unknown_adapter_kind_disables_provider(self):
        config = EngineConfig(providers=[make_provider("odd", adapter="carrier-pigeon")])

        council = TradeCouncil(config, environ={})

        assert council.providers == []
        assert not council.config.providers_by_id["odd"].enabled

    def test_injected_adapters_limit_roster(self, small_config):
        adapters = {"p1": ScriptedProvider(), "p3": ScriptedProvider()}

        council = TradeCouncil(small_config, adapters=adapters)
        roster = council.roster(now=NIGHT)

        assert roster.provider_ids == ["p1", "p3"]
        assert roster.dropped == ["p2"]


class TestCouncilDecide:
    """Tests for TradeCouncil.decide()."""

    @pytest.mark.asyncio
    async def test_decide(self, single_config, snapshot, context):
        council = TradeCouncil(single_config, adapters={"solo": ScriptedProvider()})

        result = await council.decide(snapshot, context)

        assert result.action == Action.BUY
        assert result.asset_id == snapshot.id

    @pytest.mark.asyncio
    async def test_cache_reuses_recent_decision(self, single_config, snapshot, context):
        config = single_config.model_copy(update={"cache_ttl_seconds": 60.0})
        adapter = ScriptedProvider()
        council = TradeCouncil(config, adapters={"solo": adapter})

        first = await council.decide(snapshot, context)
        second = await council.decide(snapshot, context)

        assert second is first
        assert adapter.call_count == 1

        await council.decide(snapshot, TradingContext(risk_tolerance=RiskLevel.HIGH))
        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_cached_decision_respects_new_budget(self, single_config, snapshot):
        config = single_config.model_copy(update={"cache_ttl_seconds": 600.0})
        adapter = ScriptedProvider(analysis_json("buy", 0.9, suggestedPositionSize=5.0))
        council = TradeCouncil(config, adapters={"solo": adapter})

        generous = await council.decide(snapshot, TradingContext(budget_per_trade=10.0))
        tight = await council.decide(snapshot, TradingContext(budget_per_trade=0.02))

        assert generous.suggested_position_size == pytest.approx(5.0)
        assert tight.suggested_position_size == pytest.approx(0.02)
        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_cache_separates_roster_filters(self, single_config, snapshot, context):
        config = single_config.model_copy(update={"cache_ttl_seconds": 600.0})
        adapter = ScriptedProvider()
        council = TradeCouncil(config, adapters={"solo": adapter})

        await council.decide(snapshot, context)
        await council.decide(snapshot, context.model_copy(update={"exclude_premium": True}))
        await council.decide(snapshot, context)

        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_cache_disabled_by_default(self, single_config, snapshot, context):
        adapter = ScriptedProvider()
        council = TradeCouncil(single_config, adapters={"solo": adapter})

        await council.decide(snapshot, context)
        await council.decide(snapshot, context)

        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_decide_batch(self, single_config, snapshot, context):
        council = TradeCouncil(
            single_config, adapters={"solo": ScriptedProvider(analysis_json("hold", 0.5))}
        )

        batch = await council.decide_batch([snapshot], context)

        assert [d.action for d in batch.decisions] == [Action.HOLD]
        assert batch.buy_signals == []


class TestCouncilObservability:
    """Health report and provider checks."""

    @pytest.mark.asyncio
    async def test_health_report(self, single_config, snapshot, context):
        adapter = ScriptedProvider(ProviderError("solo", "HTTP 500", status_code=500))
        council = TradeCouncil(single_config, adapters={"solo": adapter})

        with pytest.raises(AllProvidersFailedError):
            await council.decide(snapshot, context)

        row = council.health_report()["solo"]
        assert row["health_score"] == 80
        assert row["failures"] == 1
        assert row["state"] == "closed"
        assert row["available"] is True
        assert row["enabled"] is True
        assert row["requests_last_minute"] == 1
        assert row["last_error_type"] == "server"

    def test_health_report_for_unseen_provider(self, single_config):
        council = TradeCouncil(single_config, adapters={"solo": ScriptedProvider()})
        row = council.health_report()["solo"]
        assert row["health_score"] == 100
        assert row["state"] == "closed"
        assert row["failures"] == 0

    @pytest.mark.asyncio
    async def test_doctor(self, small_config):
        council = TradeCouncil(
            small_config, adapters={"p1": ScriptedProvider(), "p2": BrokenDoctor()}
        )

        results = await council.doctor()

        assert results["p1"].ok
        assert not results["p2"].ok
        assert results["p2"].message == "check exploded"

    @pytest.mark.asyncio
    async def test_injected_adapters_are_not_closed(self, single_config):
        adapter = ScriptedProvider()
        council = TradeCouncil(single_config, adapters={"solo": adapter})

        await council.aclose()

        assert not adapter.closed

    @pytest.mark.asyncio
    async def test_owned_adapters_are_closed(self):
        config = EngineConfig(providers=[make_provider("groq")])
        adapter = ScriptedProvider()

        with patch("trade_council.council.get_registry") as mock_get_registry:
            mock_get_registry.return_value.create.return_value = adapter
            council = TradeCouncil(config, environ={})

        await council.aclose()

        assert adapter.closed


class TestDecisionCache:
    """Tests for the TTL cache itself."""

    def test_expiry(self, clock):
        cache = DecisionCache(10.0, clock=clock)
        result = MagicMock()
        low = TradingContext(risk_tolerance=RiskLevel.LOW)

        cache.put("mint", low, result)
        assert cache.get("mint", TradingContext(risk_tolerance=RiskLevel.LOW)) is result
        assert cache.get("mint", TradingContext(risk_tolerance=RiskLevel.HIGH)) is None
        assert cache.get("mint", low.model_copy(update={"budget_per_trade": 1.0})) is None

        clock.advance(10.0)
        assert cache.get("mint", low) is None
        assert len(cache) == 0

    def test_zero_ttl_disables(self, clock):
        cache = DecisionCache(0.0, clock=clock)
        cache.put("mint", TradingContext(), MagicMock())
        assert not cache.enabled
        assert len(cache) == 0

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            DecisionCache(-1.0)
