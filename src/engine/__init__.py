"""Engine Layer - Market Data Synchronization Core

This module provides the core engine layer for market data sync, implementing:
- SyncOrchestrator: Scheduler run entry point (select → claim → dispatch → record)
- BudgetLedger: Per-provider hourly call budget
- TierClassifier: Refresh cadence and eligibility
- Normalizer: Provider payload → MarketSnapshot
- PreferenceResolver: Deterministic price selection across providers
- RetryStrategy: Error classification and backoff
- Exceptions: Provider error taxonomy
"""

from .budget import BudgetLedger
from .exceptions import (
    AuthFailureError,
    NormalizationError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    TransientError,
)
from .normalizer import Normalizer
from .orchestrator import SyncOrchestrator
from .providers import PROVIDER_RANK, UNKNOWN_RANK, Provider, ProviderAdapter, provider_rank
from .resolver import PreferenceResolver
from .result import DispatchResult, RunSummary
from .strategy import JobOutcome, RetryStrategy
from .tiers import Tier, TierClassifier, eligible_keys

__all__ = [
    "SyncOrchestrator",
    "BudgetLedger",
    "TierClassifier",
    "Tier",
    "eligible_keys",
    "Normalizer",
    "PreferenceResolver",
    "Provider",
    "ProviderAdapter",
    "PROVIDER_RANK",
    "UNKNOWN_RANK",
    "provider_rank",
    "DispatchResult",
    "RunSummary",
    "JobOutcome",
    "RetryStrategy",
    # Exceptions
    "ProviderError",
    "RateLimitedError",
    "AuthFailureError",
    "NotFoundError",
    "TransientError",
    "NormalizationError",
]
