"""
Roster scheduling for trade-council.

Each UTC hour belongs to exactly one team. The roster for a round starts
from that team's members; members the Health Registry reports as
unavailable are replaced by the healthiest available provider from the
backup pool (every provider on any team). Slots with no healthy backup are
dropped and the roster shrinks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from trade_council.config.models import EngineConfig, ProviderSpec, TeamSpec
from trade_council.engine.health import HealthRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RosterEntry:
    """One provider queried in a round."""

    provider: ProviderSpec
    weight: float
    substitute_for: str | None = None

    @property
    def id(self) -> str:
        return self.provider.id


@dataclass
class Roster:
    """The concrete set of providers for one consensus round."""

    team: str
    entries: list[RosterEntry] = field(default_factory=list)
    substitutions: dict[str, str] = field(default_factory=dict)  # member -> substitute
    dropped: list[str] = field(default_factory=list)

    @property
    def provider_ids(self) -> list[str]:
        return [e.id for e in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


class RosterScheduler:
    """Picks the active team and fills its unavailable slots from the backup pool."""

    def __init__(self, config: EngineConfig, health: HealthRegistry) -> None:
        self._config = config
        self._health = health
        self._providers = {p.id: p for p in config.enabled_providers}

    def active_team(self, now: datetime | None = None) -> TeamSpec:
        """Return the team whose window contains the current UTC hour."""
        hour = _utc_hour(now)
        for team in self._config.teams:
            if team.covers(hour):
                return team
        # Config validation guarantees a partition; only reachable if teams were mutated.
        logger.warning("No team covers hour %02d UTC, using default team", hour)
        return self._config.team(self._config.default_team or self._config.teams[0].name)

    def backup_pool(self) -> list[ProviderSpec]:
        """Every usable provider on any team, in team order, without duplicates."""
        pool: list[ProviderSpec] = []
        seen: set[str] = set()
        for team in self._config.teams:
            for member in team.members:
                provider = self._providers.get(member)
                if provider is not None and member not in seen:
                    seen.add(member)
                    pool.append(provider)
        return pool

    def build_roster(self, now: datetime | None = None) -> Roster:
        """Build the roster for a round starting at *now* (UTC)."""
        team = self.active_team(now)
        roster = Roster(team=team.name)
        taken: set[str] = set(team.members)

        for member in team.members:
            provider = self._providers.get(member)
            if provider is not None and self._health.is_available(member):
                roster.entries.append(RosterEntry(provider, team.weight_for(provider)))
                continue

            substitute = self._pick_substitute(taken)
            if substitute is None:
                roster.dropped.append(member)
                logger.warning(
                    "Team %s: %s unavailable and no healthy backup, dropping slot",
                    team.name,
                    member,
                )
                continue

            taken.add(substitute.id)
            roster.substitutions[member] = substitute.id
            roster.entries.append(
                RosterEntry(substitute, substitute.weight, substitute_for=member)
            )
            logger.info("Team %s: substituting %s for %s", team.name, substitute.id, member)

        return roster

    def _pick_substitute(self, taken: set[str]) -> ProviderSpec | None:
        candidates = [
            (index, provider)
            for index, provider in enumerate(self.backup_pool())
            if provider.id not in taken and self._health.is_available(provider.id)
        ]
        if not candidates:
            return None
        _, best = min(
            candidates,
            key=lambda item: (-self._health.health_score(item[1].id), item[1].tier, item[0]),
        )
        return best


def _utc_hour(now: datetime | None) -> int:
    if now is None:
        return datetime.now(timezone.utc).hour
    if now.tzinfo is None:
        return now.hour
    return now.astimezone(timezone.utc).hour


__all__ = ["Roster", "RosterEntry", "RosterScheduler"]
