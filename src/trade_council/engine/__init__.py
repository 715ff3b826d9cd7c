"""
Consensus Engine - multi-provider trading decisions.

The engine coordinates:
1. Time-partitioned roster scheduling with health-based substitution
2. Per-provider circuit breaking and request spacing
3. Rate-limit backoff and response normalization
4. Weighted-vote aggregation with tie-breaking
"""

from trade_council.engine.cache import DecisionCache
from trade_council.engine.consensus import (
    AllProvidersFailedError,
    ConsensusError,
    NoAvailableProvidersError,
    aggregate_votes,
)
from trade_council.engine.health import CircuitState, HealthRegistry, ProviderHealth
from trade_council.engine.invoker import (
    ModelInvoker,
    apply_guardrails,
    normalize_response,
    parse_analysis,
)
from trade_council.engine.orchestrator import ConsensusEngine
from trade_council.engine.rate_limit import RateLimiter
from trade_council.engine.retry import backoff_delay, with_backoff
from trade_council.engine.roster import Roster, RosterEntry, RosterScheduler

__all__ = [
    # Orchestration
    "ConsensusEngine",
    "DecisionCache",
    # Roster
    "Roster",
    "RosterEntry",
    "RosterScheduler",
    # Health
    "CircuitState",
    "HealthRegistry",
    "ProviderHealth",
    # Spacing and retry
    "RateLimiter",
    "backoff_delay",
    "with_backoff",
    # Invocation
    "ModelInvoker",
    "apply_guardrails",
    "normalize_response",
    "parse_analysis",
    # Aggregation
    "AllProvidersFailedError",
    "ConsensusError",
    "NoAvailableProvidersError",
    "aggregate_votes",
]
