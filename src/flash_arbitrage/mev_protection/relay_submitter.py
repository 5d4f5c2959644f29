"""Simulation-gated bundle submission to the relay."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class SubmissionOutcome(str, Enum):
    """Outcome of a submission attempt."""
    SUBMITTED = "submitted"
    SIMULATION_REJECTED = "simulation_rejected"
    RELAY_REJECTED = "relay_rejected"
    ABORTED = "aborted"


@dataclass(frozen=True)
class SubmissionResult:
    """Result of a single submission attempt."""
    outcome: SubmissionOutcome
    target_block: int
    bundle_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def submitted(self) -> bool:
        """Only a submitted bundle authorizes nonce advancement."""
        return self.outcome == SubmissionOutcome.SUBMITTED


class RelaySubmitter:
    """Simulates a bundle against its target block and submits it only if clean."""

    def __init__(self, relay_client):
        """
        Args:
            relay_client: Client exposing ``simulate_bundle`` and ``send_bundle``
        """
        self.relay_client = relay_client
        self.stats = {
            "submitted": 0,
            "simulation_rejected": 0,
            "relay_rejected": 0
        }

    async def submit(self, bundle) -> SubmissionResult:
        """
        Simulate then submit a SignedBundle for ``bundle.target_block``.

        Submission is single-shot: no inclusion wait and no retry for a later
        block. A rejected simulation never reaches the relay's submit call.
        """
        target_block = bundle.target_block
        raw_transactions = bundle.raw_transactions

        simulation = await self.relay_client.simulate_bundle(raw_transactions, target_block)
        if simulation.has_error:
            self.stats["simulation_rejected"] += 1
            logger.warning(f"[FLASHBOTS] Simulation Failed: {simulation.error}")
            return SubmissionResult(
                outcome=SubmissionOutcome.SIMULATION_REJECTED,
                target_block=target_block,
                error=simulation.error
            )

        response = await self.relay_client.send_bundle(raw_transactions, target_block)
        if not response.success:
            self.stats["relay_rejected"] += 1
            logger.warning(f"[FLASHBOTS] Bundle submission failed for block {target_block}: {response.error}")
            return SubmissionResult(
                outcome=SubmissionOutcome.RELAY_REJECTED,
                target_block=target_block,
                error=response.error
            )

        self.stats["submitted"] += 1
        logger.info(f"[SUCCESS] Flash Loan Bundle submitted for block {target_block}")
        return SubmissionResult(
            outcome=SubmissionOutcome.SUBMITTED,
            target_block=target_block,
            bundle_hash=response.bundle_hash
        )
