"""
Serialized flash loan execution.

Everything between reading the reserved nonce and committing it runs under the
nonce tracker's lock, so at most one bundle is ever in flight per account and
no two bundles are built with the same nonce.
"""
import logging
from typing import Any, Dict

from ..exceptions import ChainClientError
from ..mev_detection.opportunity_models import Opportunity, PendingTransaction
from ..mev_protection.relay_submitter import SubmissionOutcome, SubmissionResult

logger = logging.getLogger(__name__)


class FlashLoanExecutor:
    """Owns the reserve -> build -> sign -> simulate -> submit -> commit section."""

    def __init__(self, chain_client, nonce_tracker, bundle_builder, relay_submitter):
        self.chain_client = chain_client
        self.nonce_tracker = nonce_tracker
        self.bundle_builder = bundle_builder
        self.relay_submitter = relay_submitter

        self.stats = {
            "executions": 0,
            "submitted": 0,
            "rejected": 0,
            "aborted": 0
        }

    async def execute(self, tx: PendingTransaction, opportunity: Opportunity) -> SubmissionResult:
        """Build, simulate and submit one bundle for an approved opportunity."""
        self.stats["executions"] += 1
        loan_request = self.bundle_builder.build_loan_request(tx, opportunity)

        async with self.nonce_tracker.lock:
            # Read inside the lock so a bundle is never built from a stale nonce
            nonce = self.nonce_tracker.reserve()

            try:
                target_block = await self.chain_client.get_block_number() + 1
                bundle = await self.bundle_builder.build_bundle(loan_request, nonce, target_block)
            except ChainClientError as e:
                self.stats["aborted"] += 1
                logger.warning(f"Bundle build aborted for {tx.hash}: {e}")
                return SubmissionResult(
                    outcome=SubmissionOutcome.ABORTED,
                    target_block=0,
                    error=str(e)
                )

            result = await self.relay_submitter.submit(bundle)

            if result.submitted:
                self.nonce_tracker.commit(nonce)
                self.stats["submitted"] += 1
            else:
                self.stats["rejected"] += 1

            return result

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "in_flight": self.nonce_tracker.lock.locked()
        }
