"""
Model invoker for trade-council.

Issues one structured analysis request to one provider and turns whatever
comes back into an :class:`AnalysisVote`. Response normalization is shared
by every provider so the aggregator never has to special-case an output
format. Failures are reported to the Health Registry and converted into
zero-confidence hold votes; they never propagate to the caller.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from trade_council.config.models import EngineConfig, ProviderSpec
from trade_council.engine.health import HealthRegistry
from trade_council.engine.rate_limit import RateLimiter
from trade_council.engine.retry import with_backoff
from trade_council.protocol.types import (
    Action,
    AnalysisVote,
    RiskLevel,
    TradingAnalysis,
    TradingContext,
)
from trade_council.providers.base import (
    GenerateRequest,
    GenerateResponse,
    MalformedResponseError,
    ProviderAdapter,
)
from trade_council.schemas import TRADING_ANALYSIS, get_validator

logger = logging.getLogger(__name__)

# snake_case spellings some models use, mapped to the schema's keys
_KEY_ALIASES = {
    "risk_level": "riskLevel",
    "potential_upside_percent": "potentialUpsidePercent",
    "suggested_position_size": "suggestedPositionSize",
    "stop_loss_percent": "stopLossPercent",
    "take_profit_percent": "takeProfitPercent",
    "key_factors": "keyFactors",
}


def extract_json(text: str) -> dict[str, Any] | None:
    """Extract the first JSON object from a response string.

    Strips markdown code fences (and a ``json`` language tag) first, then
    falls back to balanced brace matching when the model wrapped the object
    in commentary.
    """
    cleaned = text.strip()

    if cleaned.startswith("```"):
        end_fence = cleaned.rfind("```")
        cleaned = cleaned[3:end_fence].strip() if end_fence > 3 else cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:].strip()

    try:
        parsed = json.loads(cleaned)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    extracted = _extract_balanced_json(cleaned)
    if extracted:
        try:
            parsed = json.loads(extracted)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    return None


def _extract_balanced_json(text: str) -> str | None:
    """Extract the first balanced JSON object using brace counting."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i, char in enumerate(text[start:], start=start):
        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


def _as_number(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip().rstrip("%")
        try:
            return float(stripped)
        except ValueError:
            return value
    return value


def normalize_response(text: str | None) -> dict[str, Any]:
    """Turn raw provider output into a payload shaped like the analysis schema.

    Raises:
        MalformedResponseError: If no JSON object can be recovered.
    """
    if not text or not text.strip():
        raise MalformedResponseError("empty response")

    data = extract_json(text)
    if data is None:
        raise MalformedResponseError(f"no JSON object in response: {text[:120]!r}")

    for snake, camel in _KEY_ALIASES.items():
        if snake in data and camel not in data:
            data[camel] = data.pop(snake)

    for key in ("action", "riskLevel"):
        if isinstance(data.get(key), str):
            data[key] = data[key].strip().lower()

    if "confidence" in data:
        confidence = _as_number(data["confidence"])
        # Percentage-style confidences (e.g. 85) are rescaled to [0, 1]
        if isinstance(confidence, (int, float)) and 1 < confidence <= 100:
            confidence = confidence / 100
        data["confidence"] = confidence

    for key in ("potentialUpsidePercent", "stopLossPercent", "takeProfitPercent"):
        if key in data:
            data[key] = _as_number(data[key])

    return data


def parse_analysis(text: str | None) -> TradingAnalysis:
    """Normalize, schema-validate and parse one provider answer.

    Raises:
        MalformedResponseError: On any parse or validation failure.
    """
    data = normalize_response(text)

    validator = get_validator(TRADING_ANALYSIS)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.path) or '<root>'}: {err.message}" for err in errors[:3]
        )
        raise MalformedResponseError(f"schema validation failed: {details}")

    try:
        return TradingAnalysis.model_validate(data)
    except ValidationError as exc:
        raise MalformedResponseError(f"invalid analysis: {exc}") from exc


def apply_guardrails(
    analysis: TradingAnalysis,
    context: TradingContext,
    provider: ProviderSpec,
    config: EngineConfig,
) -> TradingAnalysis:
    """Clamp buy position sizes and downgrade weak buy calls to hold.

    Buy sizes are clamped to the budget (and to a fraction of it under a
    low risk tolerance). A buy below the caller's minimum upside or below
    the provider's confidence floor becomes hold with a note appended to
    the reasoning. Sell and hold votes pass through unchanged.
    """
    action = analysis.action
    size = analysis.suggested_position_size
    notes: list[str] = []
    low_risk = context.risk_tolerance == RiskLevel.LOW

    if action == Action.BUY:
        budget = context.budget_per_trade
        if size is None or size > budget:
            size = budget
        if low_risk:
            size = min(size, budget * config.low_risk_position_fraction)

        min_upside = context.min_upside_percent
        if min_upside is not None and analysis.potential_upside_percent < min_upside:
            notes.append(
                f"Downgraded to hold: {analysis.potential_upside_percent:.1f}% potential upside "
                f"is below the {min_upside:.1f}% minimum"
            )
            action = Action.HOLD

    if action == Action.BUY:
        floor = config.confidence_floor(provider)
        if low_risk:
            floor = max(floor, config.low_risk_confidence_floor)
        if analysis.confidence < floor:
            notes.append(
                f"Downgraded {action.value} to hold: confidence {analysis.confidence:.2f} "
                f"is below the {floor:.2f} floor"
            )
            action = Action.HOLD

    if action == analysis.action and size == analysis.suggested_position_size:
        return analysis

    reasoning = analysis.reasoning
    if notes:
        reasoning = " ".join([reasoning.rstrip(), *(f"[{note}]" for note in notes)]).strip()
    return analysis.model_copy(
        update={"action": action, "suggested_position_size": size, "reasoning": reasoning}
    )


class ModelInvoker:
    """Runs one provider call through spacing, backoff, parsing and guardrails."""

    def __init__(
        self,
        health: HealthRegistry,
        rate_limiter: RateLimiter,
        config: EngineConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._health = health
        self._rate_limiter = rate_limiter
        self._config = config
        self._sleep = sleep
        self._clock = clock or time.perf_counter

    async def _dispatch(
        self, provider: ProviderSpec, adapter: ProviderAdapter, request: GenerateRequest
    ) -> GenerateResponse:
        async with self._rate_limiter.acquire(provider.id):
            logger.debug("Dispatching analysis request to %s (%s)", provider.id, provider.model)
            return await adapter.generate(request)

    async def invoke(
        self,
        provider: ProviderSpec,
        adapter: ProviderAdapter,
        request: GenerateRequest,
        context: TradingContext,
        *,
        weight: float | None = None,
        substitute_for: str | None = None,
    ) -> AnalysisVote:
        """Query *provider* once and return its vote.

        Never raises for provider-side problems: failures are recorded with
        the Health Registry and returned as unsuccessful hold votes.
        """
        effective_weight = provider.weight if weight is None else weight
        started = self._clock()

        try:
            response = await with_backoff(
                lambda: self._dispatch(provider, adapter, request),
                provider.id,
                self._config.max_attempts,
                base=self._config.backoff_base_seconds,
                sleep=self._sleep,
            )
            analysis = parse_analysis(response.text)
            analysis = apply_guardrails(analysis, context, provider, self._config)
        except Exception as exc:
            latency_ms = self._elapsed_ms(started)
            error_type = self._health.record_failure(provider.id, exc)
            logger.warning(
                "%s analysis failed after %dms (%s): %s",
                provider.id,
                latency_ms,
                error_type.value,
                str(exc)[:200],
            )
            return AnalysisVote.failed(
                provider.id,
                str(exc),
                error_type,
                weight=effective_weight,
                latency_ms=latency_ms,
                substitute_for=substitute_for,
            )

        self._health.record_success(provider.id)
        latency_ms = self._elapsed_ms(started)
        logger.debug(
            "%s voted %s (confidence %.2f) in %dms",
            provider.id,
            analysis.action.value,
            analysis.confidence,
            latency_ms,
        )
        return AnalysisVote(
            provider=provider.id,
            analysis=analysis,
            success=True,
            weight=effective_weight,
            latency_ms=latency_ms,
            substitute_for=substitute_for,
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, round((self._clock() - started) * 1000))


__all__ = [
    "ModelInvoker",
    "apply_guardrails",
    "extract_json",
    "normalize_response",
    "parse_analysis",
]
