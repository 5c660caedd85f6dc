"""OpportunityIQ - personal time-value engine: metrics, persistence, auto-save and AI advice."""

__version__ = "0.1.0"

from opportunity_iq.advisor import AdvisorService, ModelCascadeRunner, SpecialistChat
from opportunity_iq.app import OpportunityIQ, create_app
from opportunity_iq.clients import ClaudeClient, GeminiClient, OpenAIClient
from opportunity_iq.config import configure_logging, get_settings
from opportunity_iq.metrics import compute_thl
from opportunity_iq.models import (
    AssetItem,
    CalculatedTHL,
    ContextAnalysisResult,
    DelegationItem,
    FinancialProfile,
    LifeContext,
    MonthlyNote,
    UserDataBundle,
    YearlyCompassData,
)
from opportunity_iq.persistence import (
    LocalPersistenceAdapter,
    PersistenceAdapter,
    RemotePersistenceAdapter,
    create_persistence_adapter,
)
from opportunity_iq.sync import AutoSaveController, UserSession

__all__ = [
    # Version
    "__version__",
    # App
    "OpportunityIQ",
    "create_app",
    # Models
    "AssetItem",
    "CalculatedTHL",
    "ContextAnalysisResult",
    "DelegationItem",
    "FinancialProfile",
    "LifeContext",
    "MonthlyNote",
    "UserDataBundle",
    "YearlyCompassData",
    # Metrics
    "compute_thl",
    # Persistence
    "PersistenceAdapter",
    "LocalPersistenceAdapter",
    "RemotePersistenceAdapter",
    "create_persistence_adapter",
    # Sync
    "AutoSaveController",
    "UserSession",
    # AI
    "AdvisorService",
    "ModelCascadeRunner",
    "SpecialistChat",
    "ClaudeClient",
    "GeminiClient",
    "OpenAIClient",
    # Config
    "get_settings",
    "configure_logging",
]
