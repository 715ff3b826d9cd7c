"""trade-council package."""

from .config import EngineConfig, ProviderSpec, TeamSpec, default_config, load_config
from .council import TradeCouncil
from .engine import (
    AllProvidersFailedError,
    ConsensusEngine,
    ConsensusError,
    HealthRegistry,
    NoAvailableProvidersError,
    RateLimiter,
)
from .protocol.types import (
    Action,
    AnalysisVote,
    BatchResult,
    ConsensusResult,
    MarketSnapshot,
    RiskLevel,
    TradingAnalysis,
    TradingContext,
)
from .providers.base import (
    DoctorResult,
    GenerateRequest,
    GenerateResponse,
    Message,
    ProviderAdapter,
)
from .providers.registry import ProviderRegistry, get_registry

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Action",
    "AllProvidersFailedError",
    "AnalysisVote",
    "BatchResult",
    "ConsensusEngine",
    "ConsensusError",
    "ConsensusResult",
    "DoctorResult",
    "EngineConfig",
    "GenerateRequest",
    "GenerateResponse",
    "HealthRegistry",
    "MarketSnapshot",
    "Message",
    "NoAvailableProvidersError",
    "ProviderAdapter",
    "ProviderRegistry",
    "ProviderSpec",
    "RateLimiter",
    "RiskLevel",
    "TeamSpec",
    "TradeCouncil",
    "TradingAnalysis",
    "TradingContext",
    "default_config",
    "get_registry",
    "load_config",
]
