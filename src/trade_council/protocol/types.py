"""
Protocol types for trade-council.

Defines Pydantic models for market snapshots, trading context, individual
provider analyses, votes and consensus results. These are the shapes that
cross the engine boundary: the discovery feed supplies snapshots, the
execution layer consumes :class:`ConsensusResult`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from trade_council.providers.base import ErrorType


class Action(str, Enum):
    """Trading action voted on by providers."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class RiskLevel(str, Enum):
    """Risk level reported by a provider or aggregated over a round."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TieBreak(str, Enum):
    """How the winning action of a round was determined."""

    NONE = "none"
    TWO_WAY = "two_way"
    THREE_WAY = "three_way"
    NO_SIGNAL = "no_signal"


class MarketSnapshot(BaseModel):
    """Market data for one tradable asset, supplied by the discovery feed."""

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    id: str = Field(..., description="Asset identifier (e.g. mint address).")
    symbol: str = Field(..., description="Ticker symbol.")
    name: str = Field(default="", description="Display name.")
    price_usd: float = Field(..., ge=0.0)
    price_quote: float | None = Field(
        default=None, ge=0.0, description="Price in the quote asset (e.g. SOL)."
    )
    volume_24h_usd: float = Field(default=0.0, ge=0.0)
    market_cap_usd: float = Field(default=0.0, ge=0.0)
    liquidity_usd: float | None = Field(default=None, ge=0.0)
    price_change_5m: float | None = Field(default=None, description="Percent.")
    price_change_1h: float | None = Field(default=None, description="Percent.")
    price_change_24h: float | None = Field(default=None, description="Percent.")
    volume_trend_percent: float | None = Field(default=None)
    buy_pressure_percent: float | None = Field(default=None, ge=0.0, le=100.0)
    holder_count: int | None = Field(default=None, ge=0)
    description: str | None = Field(default=None)


class TradingContext(BaseModel):
    """Caller-supplied parameters for one consensus round."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    risk_tolerance: RiskLevel = Field(default=RiskLevel.MEDIUM)
    budget_per_trade: float = Field(default=0.02, gt=0.0, description="Max position size.")
    force_full_ensemble: bool = Field(
        default=False,
        description="Skip the minimum-health filter (availability is still enforced).",
    )
    exclude_premium: bool = Field(
        default=False, description="Leave premium-tier providers out of the roster."
    )
    max_ensemble_size: int | None = Field(
        default=None, ge=1, description="Cap on the number of providers queried."
    )
    min_upside_percent: float | None = Field(
        default=None, description="Buy votes with less estimated upside become hold."
    )


class TradingAnalysis(BaseModel):
    """One trading opinion: a provider's answer or the consensus decision.

    Providers answer in camelCase; both spellings are accepted.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action: Action
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = Field(default="")
    potential_upside_percent: float = Field(
        default=0.0,
        validation_alias=AliasChoices("potential_upside_percent", "potentialUpsidePercent"),
    )
    risk_level: RiskLevel = Field(
        default=RiskLevel.HIGH,
        validation_alias=AliasChoices("risk_level", "riskLevel"),
    )
    suggested_position_size: float | None = Field(
        default=None,
        ge=0.0,
        validation_alias=AliasChoices(
            "suggested_position_size", "suggestedPositionSize", "suggestedBuyAmountSOL"
        ),
    )
    stop_loss_percent: float | None = Field(
        default=None, validation_alias=AliasChoices("stop_loss_percent", "stopLossPercent")
    )
    take_profit_percent: float | None = Field(
        default=None, validation_alias=AliasChoices("take_profit_percent", "takeProfitPercent")
    )
    key_factors: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("key_factors", "keyFactors")
    )

    @field_validator("key_factors", mode="before")
    @classmethod
    def _coerce_factors(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class AnalysisVote(BaseModel):
    """One provider's contribution to a round, successful or not."""

    model_config = ConfigDict(extra="allow")

    provider: str
    analysis: TradingAnalysis
    success: bool
    weight: float = Field(default=1.0, ge=0.0, description="Effective voting weight.")
    error: str | None = None
    error_type: ErrorType | None = None
    latency_ms: int = 0
    substitute_for: str | None = Field(
        default=None, description="Team member this provider stood in for."
    )

    @property
    def action(self) -> Action:
        return self.analysis.action

    @property
    def confidence(self) -> float:
        return self.analysis.confidence

    @property
    def weighted_confidence(self) -> float:
        return self.analysis.confidence * self.weight

    @classmethod
    def failed(
        cls,
        provider: str,
        error: str,
        error_type: ErrorType,
        weight: float = 1.0,
        latency_ms: int = 0,
        substitute_for: str | None = None,
    ) -> AnalysisVote:
        """Build the zero-confidence hold vote recorded for a failed call."""
        return cls(
            provider=provider,
            analysis=TradingAnalysis(
                action=Action.HOLD,
                confidence=0.0,
                reasoning=f"{provider} analysis failed",
                risk_level=RiskLevel.HIGH,
                key_factors=["Provider error"],
            ),
            success=False,
            weight=weight,
            error=error,
            error_type=error_type,
            latency_ms=latency_ms,
            substitute_for=substitute_for,
        )

    def to_ledger_entry(self) -> dict[str, Any]:
        """Flat row for audit logging."""
        return {
            "provider": self.provider,
            "action": self.action.value,
            "confidence": self.confidence,
            "weight": self.weight,
            "success": self.success,
            "error": self.error,
            "error_type": self.error_type.value if self.error_type else None,
            "latency_ms": self.latency_ms,
            "substitute_for": self.substitute_for,
        }


class ConsensusResult(BaseModel):
    """Final decision of a consensus round plus its full vote ledger."""

    model_config = ConfigDict(extra="allow")

    action: Action
    confidence: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel
    reasoning: str
    consensus: str = Field(..., description="Human-readable consensus description.")
    key_factors: list[str] = Field(default_factory=list)
    potential_upside_percent: float = 0.0
    suggested_position_size: float | None = None
    stop_loss_percent: float | None = None
    take_profit_percent: float | None = None
    weights: dict[Action, float] = Field(
        default_factory=dict, description="Aggregate weight per action."
    )
    tie_break: TieBreak = TieBreak.NONE
    votes: list[AnalysisVote] = Field(default_factory=list)
    asset_id: str | None = None
    team: str | None = None
    substitutions: dict[str, str] = Field(default_factory=dict)
    duration_ms: int = 0

    @property
    def successful_votes(self) -> list[AnalysisVote]:
        return [v for v in self.votes if v.success]

    @property
    def failed_votes(self) -> list[AnalysisVote]:
        return [v for v in self.votes if not v.success]

    @property
    def decision(self) -> TradingAnalysis:
        """The consensus expressed in the single-provider analysis shape."""
        return TradingAnalysis(
            action=self.action,
            confidence=self.confidence,
            reasoning=self.reasoning,
            potential_upside_percent=self.potential_upside_percent,
            risk_level=self.risk_level,
            suggested_position_size=self.suggested_position_size,
            stop_loss_percent=self.stop_loss_percent,
            take_profit_percent=self.take_profit_percent,
            key_factors=list(self.key_factors),
        )

    def vote_ledger(self) -> list[dict[str, Any]]:
        return [v.to_ledger_entry() for v in self.votes]


class BatchResult(BaseModel):
    """Decisions for several assets, best opportunities first."""

    model_config = ConfigDict(extra="allow")

    decisions: list[ConsensusResult] = Field(default_factory=list)
    failures: dict[str, str] = Field(
        default_factory=dict, description="Asset id -> error for rounds that raised."
    )

    @property
    def buy_signals(self) -> list[ConsensusResult]:
        return [d for d in self.decisions if d.action == Action.BUY]
