"""
Opportunity Detection Module.

This module provides mempool monitoring, the opportunity data models and the
pluggable scorers that decide whether a pending transaction opens a
cross-venue arbitrage.
"""
from .opportunity_models import (
    PendingTransaction,
    Opportunity,
    LoanRequest,
    compute_loan_amount
)
from .opportunity_scorer import (
    BaseOpportunityScorer,
    ReserveSpreadScorer,
    ConfidenceModel,
    RuleBasedConfidenceModel,
    InferenceServiceConfidenceModel,
    VenueSpread
)
from .mempool_monitor import (
    MempoolMonitor,
    MempoolConfig
)

__all__ = [
    # Opportunity Models
    "PendingTransaction",
    "Opportunity",
    "LoanRequest",
    "compute_loan_amount",

    # Scoring
    "BaseOpportunityScorer",
    "ReserveSpreadScorer",
    "ConfidenceModel",
    "RuleBasedConfidenceModel",
    "InferenceServiceConfidenceModel",
    "VenueSpread",

    # Mempool Monitoring
    "MempoolMonitor",
    "MempoolConfig"
]
