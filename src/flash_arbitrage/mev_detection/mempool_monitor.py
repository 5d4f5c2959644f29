"""
Mempool Monitor for flash loan arbitrage.

Drives the pipeline for every pending transaction hash: fetch, score, apply
the confidence gate and hand approved opportunities to the flash loan
executor. Hashes are buffered in a bounded queue that drops the oldest entry
when full and are consumed by a pool of scoring workers. A periodic tick
reports liveness and resyncs the account nonce.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from web3 import Web3

from ..exceptions import ChainClientError
from .opportunity_models import Opportunity, PendingTransaction

logger = logging.getLogger(__name__)


@dataclass
class MempoolConfig:
    """Configuration for mempool monitoring."""

    # Gate
    confidence_threshold: float = 0.85

    # Performance settings
    scoring_workers: int = 8
    pending_queue_size: int = 1000
    scoring_timeout_seconds: float = 2.0
    max_seen_hashes: int = 10000

    # Health settings
    health_check_interval_seconds: float = 10.0


class MempoolMonitor:
    """
    Orchestrates mempool ingestion, scoring and execution.

    Scoring runs concurrently across workers; execution is serialized by the
    executor on the account nonce. Unexpected exceptions are not swallowed:
    they end ``run()`` so the process can stop in a known state.
    """

    def __init__(
        self,
        config: MempoolConfig,
        chain_client,
        scorer,
        executor,
        nonce_tracker,
        pending_stream=None
    ):
        """
        Initialize mempool monitor.

        Args:
            config: Monitoring configuration
            chain_client: Client exposing ``get_transaction(hash)``
            scorer: BaseOpportunityScorer implementation
            executor: FlashLoanExecutor for approved opportunities
            nonce_tracker: NonceTracker resynced on every health tick
            pending_stream: Source of pending hashes (optional when fed via ``enqueue``)
        """
        self.config = config
        self.chain_client = chain_client
        self.scorer = scorer
        self.executor = executor
        self.nonce_tracker = nonce_tracker
        self.pending_stream = pending_stream

        self.is_running = False
        self._stopping = False
        self._tasks: List[asyncio.Task] = []
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=config.pending_queue_size)
        self.processed_hashes: Set[str] = set()

        # Statistics
        self.stats = {
            "hashes_received": 0,
            "hashes_dropped": 0,
            "duplicates_skipped": 0,
            "transactions_processed": 0,
            "transactions_discarded": 0,
            "scoring_timeouts": 0,
            "opportunities_found": 0,
            "opportunities_filtered": 0,
            "opportunities_executed": 0,
            "bundles_submitted": 0,
            "bundles_rejected": 0,
            "stream_errors": 0,
            "resync_failures": 0,
            "health_checks": 0,
            "uptime_start": time.time()
        }

    async def run(self):
        """Run ingestion, workers and the health tick until stopped or a task fails."""
        if self.is_running:
            logger.warning("Mempool monitor already running")
            return

        logger.info("Full system operational. Monitoring mempool...")
        self.is_running = True
        self._stopping = False

        self._tasks = [
            asyncio.create_task(self._health_loop(), name="health-tick")
        ]
        if self.pending_stream is not None:
            self._tasks.append(asyncio.create_task(self._consume_stream(), name="pending-stream"))
        for i in range(self.config.scoring_workers):
            self._tasks.append(asyncio.create_task(self._worker(), name=f"scoring-worker-{i}"))

        try:
            await asyncio.gather(*self._tasks)
        except asyncio.CancelledError:
            if not self._stopping:
                raise
        finally:
            await self._shutdown_tasks()

    async def stop(self):
        """Stop monitoring; in-flight work is cancelled."""
        logger.info("Stopping mempool monitor")
        self._stopping = True
        self.is_running = False

        if self.pending_stream is not None:
            self.pending_stream.close()

        for task in self._tasks:
            if not task.done():
                task.cancel()

    async def _shutdown_tasks(self):
        self.is_running = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    def enqueue(self, tx_hash: str) -> bool:
        """
        Buffer a pending hash for scoring.

        Returns False for duplicates. When the queue is full the oldest hash is
        dropped, since stale mempool entries lose relevance first.
        """
        self.stats["hashes_received"] += 1

        if tx_hash in self.processed_hashes:
            self.stats["duplicates_skipped"] += 1
            return False

        if len(self.processed_hashes) >= self.config.max_seen_hashes:
            self.processed_hashes.clear()
        self.processed_hashes.add(tx_hash)

        if self.queue.full():
            dropped = self.queue.get_nowait()
            self.queue.task_done()
            self.stats["hashes_dropped"] += 1
            logger.debug(f"Queue full, dropped oldest pending hash {dropped}")

        self.queue.put_nowait(tx_hash)
        return True

    def on_stream_error(self, error: Exception):
        """Error callback for the pending transaction stream; monitoring continues."""
        self.stats["stream_errors"] += 1
        logger.error(f"[WSS ERROR] Pending transaction stream encountered an error: {error}")

    async def on_pending_hash(self, tx_hash: str):
        """
        Run one pending hash through the pipeline.

        Returns the SubmissionResult when the opportunity reached the executor,
        otherwise None.
        """
        try:
            evaluated = await asyncio.wait_for(
                self._evaluate(tx_hash),
                timeout=self.config.scoring_timeout_seconds
            )
        except asyncio.TimeoutError:
            self.stats["scoring_timeouts"] += 1
            logger.debug(f"Scoring timed out for {tx_hash}")
            return None

        if evaluated is None:
            return None

        tx, opportunity = evaluated
        if not opportunity.is_profitable:
            return None

        self.stats["opportunities_found"] += 1
        profit_eth = Web3.from_wei(opportunity.estimated_profit, "ether")
        logger.info(
            f"[OPPORTUNITY] Found arbitrage! Profit: {profit_eth} ETH, "
            f"AI Score: {opportunity.confidence_score:.2f}"
        )

        if not opportunity.passes_gate(self.config.confidence_threshold):
            self.stats["opportunities_filtered"] += 1
            logger.warning(
                f"[AI FILTER] Opportunity below AI threshold "
                f"({opportunity.confidence_score:.2f} <= {self.config.confidence_threshold}). Skipping."
            )
            return None

        self.stats["opportunities_executed"] += 1
        result = await self.executor.execute(tx, opportunity)

        if result.submitted:
            self.stats["bundles_submitted"] += 1
        else:
            self.stats["bundles_rejected"] += 1

        return result

    async def _evaluate(self, tx_hash: str) -> Optional[Tuple[PendingTransaction, Opportunity]]:
        """Fetch and score; None when the hash does not resolve to a payload."""
        tx = await self.chain_client.get_transaction(tx_hash)
        if tx is None or not tx.has_payload:
            self.stats["transactions_discarded"] += 1
            logger.debug(f"Discarding {tx_hash}: no transaction body or calldata")
            return None

        self.stats["transactions_processed"] += 1
        opportunity = await self.scorer.score(tx)
        return tx, opportunity

    async def health_tick(self):
        """Liveness report plus nonce resync; a failed resync is retried next tick."""
        self.stats["health_checks"] += 1
        logger.info(f"[MONITOR] Mempool monitoring is alive. Check #{self.stats['health_checks']}")

        try:
            await self.nonce_tracker.resync()
        except ChainClientError as e:
            self.stats["resync_failures"] += 1
            logger.warning(f"Nonce resync failed: {e}")

    async def _health_loop(self):
        while self.is_running:
            await asyncio.sleep(self.config.health_check_interval_seconds)
            await self.health_tick()

    async def _consume_stream(self):
        async for tx_hash in self.pending_stream.hashes():
            self.enqueue(tx_hash)

    async def _worker(self):
        while self.is_running:
            tx_hash = await self.queue.get()
            try:
                await self.on_pending_hash(tx_hash)
            finally:
                self.queue.task_done()

    def get_pending_count(self) -> int:
        """Get count of queued hashes awaiting scoring."""
        return self.queue.qsize()

    def get_stats(self) -> Dict[str, Any]:
        """Get monitoring statistics."""
        return {
            **self.stats,
            "pending_hashes": self.queue.qsize(),
            "uptime_seconds": time.time() - self.stats["uptime_start"],
            "is_running": self.is_running
        }
