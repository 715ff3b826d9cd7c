#!/usr/bin/env python3
"""
Basic Trade Council Usage Example

This example demonstrates the core functionality of trade-council:
- Creating a TradeCouncil from the default provider catalogue
- Inspecting the roster for the current UTC hour
- Running a consensus round for one token
- Ranking a small batch of tokens
- Checking provider health

Prerequisites (any subset works; providers without a key are skipped):
    export GROQ_API_KEY="..."
    export CEREBRAS_API_KEY="..."
    export GOOGLE_AI_KEY="..."

Usage:
    python examples/basic_decision.py
"""

import asyncio
import logging

from trade_council import (
    ConsensusError,
    MarketSnapshot,
    RiskLevel,
    TradeCouncil,
    TradingContext,
    load_config,
)
from trade_council.logging import configure_logging

SNAPSHOTS = [
    MarketSnapshot(
        id="DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
        symbol="BONK",
        name="Bonk",
        price_usd=0.0000231,
        volume_24h_usd=48_000_000,
        market_cap_usd=1_600_000_000,
        liquidity_usd=12_000_000,
        price_change_1h=1.8,
        price_change_24h=-3.4,
        buy_pressure_percent=55.0,
    ),
    MarketSnapshot(
        id="ExampleMint11111111111111111111111111111111",
        symbol="NEWCOIN",
        name="New Coin",
        price_usd=0.00042,
        volume_24h_usd=125_000,
        market_cap_usd=420_000,
        liquidity_usd=38_000,
        price_change_1h=12.5,
        price_change_24h=85.0,
        buy_pressure_percent=71.0,
        holder_count=812,
    ),
]


async def main():
    """Run basic trade council examples."""
    configure_logging(logging.INFO)

    council = TradeCouncil(load_config())
    if not council.providers:
        print("Error: no provider API keys found in the environment")
        return

    try:
        print("=" * 70)
        print("Trade Council - Basic Usage Example")
        print("=" * 70)

        # Example 1: Who would be asked right now
        roster = council.roster()
        print(f"\n[Example 1] Active team: {roster.team}")
        for entry in roster.entries:
            note = f" (standing in for {entry.substitute_for})" if entry.substitute_for else ""
            print(f"  - {entry.id} tier={entry.provider.tier} weight={entry.weight}{note}")

        # Example 2: One consensus round
        print("\n[Example 2] Single decision, low risk, cheap providers only")
        print("-" * 70)
        context = TradingContext(
            risk_tolerance=RiskLevel.LOW,
            budget_per_trade=0.05,
            exclude_premium=True,
        )
        try:
            result = await council.decide(SNAPSHOTS[0], context)
        except ConsensusError as e:
            print(f"No decision: {e}")
        else:
            print(f"{result.action.value.upper()} at {result.confidence:.0%} confidence")
            print(result.reasoning)
            for row in result.vote_ledger():
                print(f"  {row['provider']}: {row['action']} {row['confidence']:.2f}")

        # Example 3: Batch ranking
        print("\n[Example 3] Ranking a batch")
        print("-" * 70)
        batch = await council.decide_batch(SNAPSHOTS, TradingContext(min_upside_percent=50))
        for decision in batch.decisions:
            print(
                f"  {decision.asset_id[:8]}...  {decision.action.value:<4} "
                f"confidence={decision.confidence:.2f} "
                f"upside={decision.potential_upside_percent:.0f}%"
            )
        for asset_id, error in batch.failures.items():
            print(f"  {asset_id[:8]}...  failed: {error}")

        # Example 4: Provider health
        print("\n[Example 4] Provider health")
        print("-" * 70)
        for name, row in council.health_report().items():
            if row["enabled"]:
                print(f"  {name}: score={row['health_score']} circuit={row['state']}")
    finally:
        await council.aclose()


if __name__ == "__main__":
    asyncio.run(main())
