"""Request construction for trading analysis calls."""

from __future__ import annotations

from trade_council.config.models import EngineConfig, ProviderSpec
from trade_council.protocol.types import MarketSnapshot, TradingContext
from trade_council.providers.base import GenerateRequest, Message

SYSTEM_PROMPT = (
    "You are a professional cryptocurrency trading analyst. Analyze tokens objectively "
    "and provide actionable trading recommendations with risk assessments. "
    "Always respond with valid JSON."
)

RESPONSE_SHAPE = """{
  "action": "buy" | "sell" | "hold",
  "confidence": 0.0-1.0,
  "reasoning": "detailed explanation",
  "potentialUpsidePercent": number,
  "riskLevel": "low" | "medium" | "high",
  "suggestedPositionSize": number (optional, if action is buy),
  "stopLossPercent": number (optional),
  "takeProfitPercent": number (optional),
  "keyFactors": ["factor1", "factor2", ...]
}"""


def _signed(value: float) -> str:
    return f"{'+' if value > 0 else ''}{value:.2f}%"


def format_market_data(snapshot: MarketSnapshot) -> str:
    """Render the market snapshot as a bullet list for the prompt."""
    title = f"{snapshot.name} ({snapshot.symbol})" if snapshot.name else snapshot.symbol
    price = f"${snapshot.price_usd:.6f}"
    if snapshot.price_quote is not None:
        price += f" ({snapshot.price_quote:.9f} quote)"

    lines = [
        f"- Name: {title}",
        f"- Asset ID: {snapshot.id}",
        f"- Current Price: {price}",
        f"- 24h Volume: ${snapshot.volume_24h_usd:,.0f}",
        f"- Market Cap: ${snapshot.market_cap_usd:,.0f}",
    ]
    if snapshot.liquidity_usd is not None:
        lines.append(f"- Liquidity: ${snapshot.liquidity_usd:,.0f}")
    if snapshot.holder_count is not None:
        lines.append(f"- Holder Count: {snapshot.holder_count:,}")
    for label, change in (
        ("5m", snapshot.price_change_5m),
        ("1h", snapshot.price_change_1h),
        ("24h", snapshot.price_change_24h),
    ):
        if change is not None:
            lines.append(f"- {label} Price Change: {_signed(change)}")
    if snapshot.volume_trend_percent is not None:
        lines.append(f"- Volume Trend: {_signed(snapshot.volume_trend_percent)}")
    if snapshot.buy_pressure_percent is not None:
        lines.append(f"- Buy Pressure: {snapshot.buy_pressure_percent:.1f}%")
    if snapshot.description:
        lines.append(f"- Description: {snapshot.description}")
    return "\n".join(lines)


def build_prompt(snapshot: MarketSnapshot, context: TradingContext) -> str:
    return f"""Analyze the following token and provide a trading recommendation.

**Token Data:**
{format_market_data(snapshot)}

**Trading Parameters:**
- Risk Tolerance: {context.risk_tolerance.value}
- Max Budget Per Trade: {context.budget_per_trade}

**Analysis Requirements:**
1. Evaluate volume, market cap, and price momentum
2. Assess liquidity and holder distribution
3. Identify potential red flags (rug pull indicators, low liquidity, suspicious volume)
4. Estimate potential upside and downside

Provide your analysis in JSON format with these exact fields:
{RESPONSE_SHAPE}"""


def build_request(
    snapshot: MarketSnapshot,
    context: TradingContext,
    provider: ProviderSpec,
    config: EngineConfig,
) -> GenerateRequest:
    """Build the chat request sent to *provider* for one snapshot."""
    return GenerateRequest(
        model=provider.model,
        messages=[
            Message(role="system", content=SYSTEM_PROMPT),
            Message(role="user", content=build_prompt(snapshot, context)),
        ],
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        response_format={"type": "json_object"},
        metadata={"asset_id": snapshot.id, "provider": provider.id},
    )


__all__ = ["SYSTEM_PROMPT", "build_prompt", "build_request", "format_market_data"]
