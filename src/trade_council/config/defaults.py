"""
Default provider catalogue and team schedule.

Every provider in the catalogue speaks the OpenAI chat-completions format.
Tiers: 0 = free tier, 1 = cheap paid, 2 = premium. The three teams split
the UTC day into 8-hour shifts so free-tier daily quotas are spread out.
"""

from __future__ import annotations

from trade_council.config.models import EngineConfig, ProviderSpec, TeamSpec

DEFAULT_PROVIDERS: list[ProviderSpec] = [
    ProviderSpec(
        id="cerebras",
        base_url="https://api.cerebras.ai/v1",
        model="llama-3.3-70b",
        credential_ref="CEREBRAS_API_KEY",
        tier=0,
        team="asia",
        min_delay_seconds=1.0,
    ),
    ProviderSpec(
        id="deepseek",
        base_url="https://api.deepseek.com",
        model="deepseek-chat",
        credential_ref="DEEPSEEK_API_KEY",
        tier=1,
        weight=1.1,
        team="asia",
        min_delay_seconds=1.0,
    ),
    ProviderSpec(
        id="groq",
        base_url="https://api.groq.com/openai/v1",
        model="llama-3.3-70b-versatile",
        credential_ref="GROQ_API_KEY",
        tier=0,
        team="asia",
        min_delay_seconds=2.0,
    ),
    ProviderSpec(
        id="gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai",
        model="gemini-2.0-flash-exp",
        credential_ref="GOOGLE_AI_KEY",
        tier=0,
        weight=1.1,
        team="europe",
        min_delay_seconds=1.0,
    ),
    ProviderSpec(
        id="together",
        base_url="https://api.together.xyz/v1",
        model="meta-llama/Meta-Llama-3.1-70B-Instruct-Turbo",
        credential_ref="TOGETHER_API_KEY",
        tier=0,
        team="europe",
        min_delay_seconds=1.0,
    ),
    ProviderSpec(
        id="chatanywhere",
        base_url="https://api.chatanywhere.tech/v1",
        model="gpt-4o-mini",
        credential_ref="CHATANYWHERE_API_KEY",
        tier=0,
        team="europe",
        min_delay_seconds=5.0,  # 200 requests/day
    ),
    ProviderSpec(
        id="openrouter",
        base_url="https://openrouter.ai/api/v1",
        model="meta-llama/llama-3.3-70b-instruct",
        credential_ref="OPENROUTER_API_KEY",
        tier=0,
        team="americas",
        min_delay_seconds=3.0,
    ),
    ProviderSpec(
        id="xai",
        base_url="https://api.x.ai/v1",
        model="grok-4-fast-reasoning",
        credential_ref="XAI_API_KEY",
        tier=2,
        weight=1.2,
        team="americas",
        min_delay_seconds=1.0,
    ),
]

DEFAULT_TEAMS: list[TeamSpec] = [
    TeamSpec(name="asia", start_hour=0, end_hour=8),
    TeamSpec(name="europe", start_hour=8, end_hour=16),
    TeamSpec(name="americas", start_hour=16, end_hour=24, weight_overrides={"xai": 1.25}),
]


def default_config(**overrides: object) -> EngineConfig:
    """Build an :class:`EngineConfig` from the default catalogue."""
    return EngineConfig(
        providers=list(DEFAULT_PROVIDERS),
        teams=list(DEFAULT_TEAMS),
        default_team="asia",
        **overrides,  # type: ignore[arg-type]
    )
