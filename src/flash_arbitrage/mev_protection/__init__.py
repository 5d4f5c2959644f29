"""
Private bundle relay layer.

Flashbots relay client plus the simulation-gated submitter that the flash
loan executor drives.
"""
from .flashbots_client import (
    FlashbotsClient,
    FlashbotsBundleResponse,
    FlashbotsSimulationResult,
    FlashbotsNetwork
)
from .relay_submitter import (
    RelaySubmitter,
    SubmissionOutcome,
    SubmissionResult
)

__all__ = [
    # Flashbots Integration
    "FlashbotsClient",
    "FlashbotsBundleResponse",
    "FlashbotsSimulationResult",
    "FlashbotsNetwork",

    # Submission
    "RelaySubmitter",
    "SubmissionOutcome",
    "SubmissionResult"
]
