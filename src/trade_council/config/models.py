"""
Provider, team and engine configuration for trade-council.

The roster is declared, not discovered: every provider the engine may query
is listed with its endpoint, credential reference, cost tier and voting
weight, and every team owns a UTC window. Configuration is loaded from YAML
or built in code; credentials are resolved separately from the environment
so that selection logic never inspects ``os.environ`` itself.

Example YAML::

    providers:
      - id: groq
        base_url: https://api.groq.com/openai/v1
        model: llama-3.3-70b-versatile
        credential_ref: GROQ_API_KEY
        team: night
        min_delay_seconds: 2
    teams:
      - name: night
        start_hour: 0
        end_hour: 12
      - name: day
        start_hour: 12
        end_hour: 0
    engine:
      cooldown_seconds: 300
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

HOURS_PER_DAY = 24
IMPLICIT_TEAM = "all"


class ProviderSpec(BaseModel):
    """Immutable configuration for one model provider."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1, description="Stable provider identifier.")
    adapter: str = Field(default="openai", description="Adapter kind in the provider registry.")
    base_url: str = Field(..., description="API root for the provider.")
    model: str = Field(..., description="Model identifier sent with every request.")
    credential_ref: str | None = Field(
        default=None,
        description="Environment variable holding the API key. None means no key is needed.",
    )
    tier: int = Field(default=0, ge=0, description="Cost tier; lower tiers are preferred.")
    weight: float = Field(default=1.0, gt=0.0, description="Voting weight multiplier.")
    team: str | None = Field(default=None, description="Team this provider belongs to.")
    enabled: bool = Field(default=True)
    min_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Minimum spacing between requests."
    )
    min_confidence: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Overrides the tier confidence floor."
    )


class TeamSpec(BaseModel):
    """A time-boxed roster of providers active during ``[start_hour, end_hour)`` UTC."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1)
    members: list[str] = Field(default_factory=list, description="Ordered provider ids.")
    weight_overrides: dict[str, float] = Field(default_factory=dict)
    start_hour: int = Field(default=0, ge=0, lt=HOURS_PER_DAY)
    end_hour: int = Field(default=0, ge=0, le=HOURS_PER_DAY)

    def covers(self, hour: int) -> bool:
        """Return True if *hour* (0-23, UTC) falls inside this team's window.

        ``start_hour == end_hour`` covers the whole day; ``start_hour > end_hour``
        wraps around midnight.
        """
        start = self.start_hour
        end = self.end_hour % HOURS_PER_DAY
        if start == end:
            return True
        if start < end:
            return start <= hour < end
        return hour >= start or hour < end

    def weight_for(self, provider: ProviderSpec) -> float:
        return self.weight_overrides.get(provider.id, provider.weight)


class EngineConfig(BaseModel):
    """Complete engine configuration: providers, teams and thresholds."""

    model_config = ConfigDict(extra="forbid")

    providers: list[ProviderSpec] = Field(default_factory=list)
    teams: list[TeamSpec] = Field(default_factory=list)
    default_team: str | None = Field(
        default=None, description="Fallback team if no window matches. Defaults to the first."
    )

    # Circuit breaker
    failure_threshold: int = Field(default=3, ge=1)
    cooldown_seconds: float = Field(default=300.0, ge=0.0)
    credential_cooldown_multiplier: float = Field(default=6.0, ge=1.0)
    min_health_score: int = Field(default=70, ge=0, le=100)

    # Retry
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base_seconds: float = Field(default=2.0, ge=0.0)

    # Guardrails
    premium_tier: int = Field(default=2, ge=0)
    confidence_floors: dict[int, float] = Field(
        default_factory=lambda: {0: 0.6, 1: 0.55, 2: 0.5},
        description="Minimum directional confidence per cost tier.",
    )
    default_confidence_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    low_risk_confidence_floor: float = Field(default=0.7, ge=0.0, le=1.0)
    low_risk_position_fraction: float = Field(default=0.5, gt=0.0, le=1.0)

    # Transport and caching
    request_timeout: float = Field(default=120.0, gt=0.0)
    max_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    cache_ttl_seconds: float = Field(
        default=0.0, ge=0.0, description="Decision cache lifetime; 0 disables caching."
    )

    @model_validator(mode="after")
    def _validate_roster(self) -> EngineConfig:
        ids = [p.id for p in self.providers]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider ids: {', '.join(duplicates)}")

        if not self.teams:
            self.teams = [TeamSpec(name=IMPLICIT_TEAM, members=ids, start_hour=0, end_hour=0)]
            self.default_team = IMPLICIT_TEAM
        else:
            self.teams = _merge_team_members(self.teams, self.providers)

        names = [t.name for t in self.teams]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate team names: {', '.join(names)}")

        known = set(ids)
        for team in self.teams:
            unknown = [m for m in team.members if m not in known]
            if unknown:
                raise ValueError(f"Team '{team.name}' references unknown providers: {unknown}")

        if self.default_team is None:
            self.default_team = self.teams[0].name
        elif self.default_team not in names:
            raise ValueError(f"default_team '{self.default_team}' is not a configured team")

        problems = schedule_problems(self.teams)
        if problems:
            raise ValueError("Team windows must partition the day: " + "; ".join(problems))
        return self

    @property
    def providers_by_id(self) -> dict[str, ProviderSpec]:
        return {p.id: p for p in self.providers}

    @property
    def enabled_providers(self) -> list[ProviderSpec]:
        return [p for p in self.providers if p.enabled]

    def team(self, name: str) -> TeamSpec:
        for team in self.teams:
            if team.name == name:
                return team
        raise KeyError(f"Unknown team '{name}'")

    def confidence_floor(self, provider: ProviderSpec) -> float:
        if provider.min_confidence is not None:
            return provider.min_confidence
        return self.confidence_floors.get(provider.tier, self.default_confidence_floor)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EngineConfig:
        """Build a config from the YAML layout (``engine`` keys are flattened)."""
        payload = dict(data)
        engine = payload.pop("engine", None) or {}
        if not isinstance(engine, Mapping):
            raise ValueError("'engine' section must be a mapping")
        return cls(**payload, **engine)

    @classmethod
    def from_yaml(cls, path: Path) -> EngineConfig:
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data)


def _merge_team_members(teams: list[TeamSpec], providers: list[ProviderSpec]) -> list[TeamSpec]:
    """Append providers that declare ``team`` to that team's member list."""
    known_teams = {t.name for t in teams}
    extra: dict[str, list[str]] = {}
    for provider in providers:
        if provider.team is None:
            continue
        if provider.team not in known_teams:
            raise ValueError(f"Provider '{provider.id}' names unknown team '{provider.team}'")
        extra.setdefault(provider.team, []).append(provider.id)

    merged: list[TeamSpec] = []
    for team in teams:
        additions = [m for m in extra.get(team.name, []) if m not in team.members]
        if additions:
            team = team.model_copy(update={"members": [*team.members, *additions]})
        merged.append(team)
    return merged


def schedule_problems(teams: list[TeamSpec]) -> list[str]:
    """Describe every UTC hour covered by zero or several teams."""
    problems: list[str] = []
    for hour in range(HOURS_PER_DAY):
        covering = [t.name for t in teams if t.covers(hour)]
        if not covering:
            problems.append(f"hour {hour:02d} has no team")
        elif len(covering) > 1:
            problems.append(f"hour {hour:02d} is claimed by {', '.join(covering)}")
    return problems


def resolve_credential(
    provider: ProviderSpec, environ: Mapping[str, str] | None = None
) -> str | None:
    """Return the API key for *provider*, or None when it is not set."""
    if provider.credential_ref is None:
        return None
    env = os.environ if environ is None else environ
    value = env.get(provider.credential_ref, "").strip()
    return value or None


def resolve_credentials(
    config: EngineConfig, environ: Mapping[str, str] | None = None
) -> EngineConfig:
    """Disable every provider whose credential is missing.

    A provider without its key is removed from consideration entirely: it
    is never rostered and no adapter is built for it. Missing keys are not
    an error.
    """
    providers = []
    for provider in config.providers:
        needs_key = provider.credential_ref is not None
        if provider.enabled and needs_key and resolve_credential(provider, environ) is None:
            provider = provider.model_copy(update={"enabled": False})
        providers.append(provider)
    return config.model_copy(update={"providers": providers})
