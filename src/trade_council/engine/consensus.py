"""
Weighted-vote aggregation for trade-council.

Each successful vote contributes ``confidence * weight`` to its action. The
action with the largest aggregate weight wins and the consensus confidence
is the mean confidence of the votes that chose it. Ties are resolved as
follows:

- all three weights equal and positive: the single most confident vote
  decides;
- the top two weights equal: hold;
- every weight zero: hold with no directional signal.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from statistics import fmean

from trade_council.protocol.types import (
    Action,
    AnalysisVote,
    ConsensusResult,
    RiskLevel,
    TieBreak,
    TradingContext,
)

logger = logging.getLogger(__name__)

_ACTIONS = (Action.BUY, Action.SELL, Action.HOLD)
_RISK_ORDER = (RiskLevel.HIGH, RiskLevel.MEDIUM, RiskLevel.LOW)
_TOLERANCE = 1e-9


class ConsensusError(RuntimeError):
    """No decision could be reached for a round."""


class NoAvailableProvidersError(ConsensusError):
    """The roster was empty after scheduling and filtering."""


class AllProvidersFailedError(ConsensusError):
    """Every provider in the round failed; no decision is guessed."""

    def __init__(self, message: str, votes: Sequence[AnalysisVote]) -> None:
        super().__init__(message)
        self.votes = list(votes)


def _same(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=0.0, abs_tol=_TOLERANCE)


def aggregate_risk(votes: Sequence[AnalysisVote]) -> RiskLevel:
    """Most conservative risk level reported by any vote."""
    reported = {v.analysis.risk_level for v in votes}
    for level in _RISK_ORDER:
        if level in reported:
            return level
    return RiskLevel.HIGH


def merge_key_factors(votes: Sequence[AnalysisVote]) -> list[str]:
    """Deduplicated union of key factors, in first-seen order."""
    seen: dict[str, None] = {}
    for vote in votes:
        for factor in vote.analysis.key_factors:
            factor = factor.strip()
            if factor and factor not in seen:
                seen[factor] = None
    return list(seen)


def _mean_or_none(values: list[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    return fmean(present) if present else None


def aggregate_votes(
    votes: Sequence[AnalysisVote],
    context: TradingContext | None = None,
) -> ConsensusResult:
    """Combine a round's votes into one decision.

    Args:
        votes: Every vote of the round, failed ones included (they are kept
            in the ledger but never counted).
        context: Trading context; used to cap the suggested position size.

    Raises:
        AllProvidersFailedError: If no vote succeeded.
    """
    successful = [v for v in votes if v.success]
    if not successful:
        raise AllProvidersFailedError(
            f"All {len(votes)} provider(s) failed; no decision was made", votes
        )

    weights = {action: 0.0 for action in _ACTIONS}
    for vote in successful:
        weights[vote.action] += vote.weighted_confidence

    by_action = {a: [v for v in successful if v.action == a] for a in _ACTIONS}
    top = max(weights.values())
    leaders = [a for a in _ACTIONS if _same(weights[a], top)]
    overall_confidence = fmean(v.confidence for v in successful)

    if _same(top, 0.0):
        action = Action.HOLD
        confidence = overall_confidence
        tie_break = TieBreak.NO_SIGNAL
        description = "No weighted signal (all votes carry zero weight), defaulting to hold"
        winners = by_action[Action.HOLD]
    elif len(leaders) == 3:
        best = max(successful, key=lambda v: v.confidence)
        action = best.action
        confidence = best.confidence
        tie_break = TieBreak.THREE_WAY
        description = (
            f"3-way tie between buy, sell and hold, following {best.provider} "
            f"(highest confidence): {action.value.upper()}"
        )
        winners = [best]
    elif len(leaders) == 2:
        action = Action.HOLD
        holders = by_action[Action.HOLD]
        confidence = fmean(v.confidence for v in holders) if holders else overall_confidence
        tie_break = TieBreak.TWO_WAY
        description = (
            f"Tie between {leaders[0].value} and {leaders[1].value}, defaulting to hold"
        )
        winners = holders
    else:
        action = leaders[0]
        winners = by_action[action]
        confidence = fmean(v.confidence for v in winners)
        tie_break = TieBreak.NONE
        description = f"{len(winners)}/{len(successful)} models agree on {action.value.upper()}"

    upside = fmean(v.analysis.potential_upside_percent for v in successful)

    size = None
    if action == Action.BUY:
        size = _mean_or_none([v.analysis.suggested_position_size for v in winners])
        if size is not None and context is not None:
            size = min(size, context.budget_per_trade)

    reasoning = (
        f"{description}. Avg confidence: {confidence * 100:.1f}%. "
        f"Models: {', '.join(v.provider for v in votes)}"
    )

    logger.info(
        "Consensus %s (confidence %.2f, %s) from %d/%d votes",
        action.value,
        confidence,
        tie_break.value,
        len(successful),
        len(votes),
    )

    return ConsensusResult(
        action=action,
        confidence=min(1.0, max(0.0, confidence)),
        risk_level=aggregate_risk(successful),
        reasoning=reasoning,
        consensus=description,
        key_factors=merge_key_factors(successful),
        potential_upside_percent=upside,
        suggested_position_size=size,
        stop_loss_percent=_mean_or_none([v.analysis.stop_loss_percent for v in winners]),
        take_profit_percent=_mean_or_none([v.analysis.take_profit_percent for v in winners]),
        weights=weights,
        tie_break=tie_break,
        votes=list(votes),
    )


__all__ = [
    "AllProvidersFailedError",
    "ConsensusError",
    "NoAvailableProvidersError",
    "aggregate_risk",
    "aggregate_votes",
    "merge_key_factors",
]
