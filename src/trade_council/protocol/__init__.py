"""
Protocol definitions for trade-council.

Includes Pydantic models for market snapshots, votes and consensus results.
"""

from trade_council.protocol.types import (
    Action,
    AnalysisVote,
    BatchResult,
    ConsensusResult,
    MarketSnapshot,
    RiskLevel,
    TieBreak,
    TradingAnalysis,
    TradingContext,
)

__all__ = [
    "Action",
    "AnalysisVote",
    "BatchResult",
    "ConsensusResult",
    "MarketSnapshot",
    "RiskLevel",
    "TieBreak",
    "TradingAnalysis",
    "TradingContext",
]
