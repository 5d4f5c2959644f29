"""
Arbitrage service wiring.

Builds the pipeline from settings, performs the fatal startup checks and runs
the mempool monitor until it is stopped or fails.
"""
import logging
from typing import Any, Dict, Optional

from eth_account import Account

from .blockchain_connector.pending_stream import PendingTransactionStream
from .blockchain_connector.provider import ChainClient
from .config.settings import Settings
from .exceptions import ArbitrageInitializationError
from .execution.bundle_builder import BundleBuilder
from .execution.flash_loan_executor import FlashLoanExecutor
from .execution.nonce_tracker import NonceTracker
from .mev_detection.mempool_monitor import MempoolConfig, MempoolMonitor
from .mev_detection.opportunity_scorer import (
    ConfidenceModel,
    InferenceServiceConfidenceModel,
    ReserveSpreadScorer,
    RuleBasedConfidenceModel
)
from .mev_protection.flashbots_client import FlashbotsClient, FlashbotsNetwork
from .mev_protection.relay_submitter import RelaySubmitter

logger = logging.getLogger(__name__)


class ArbitrageService:
    """Owns every pipeline collaborator and their lifecycle."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.is_initialized = False

        self.chain_client: Optional[ChainClient] = None
        self.pending_stream: Optional[PendingTransactionStream] = None
        self.nonce_tracker: Optional[NonceTracker] = None
        self.confidence_model: Optional[ConfidenceModel] = None
        self.relay_client: Optional[FlashbotsClient] = None
        self.executor: Optional[FlashLoanExecutor] = None
        self.monitor: Optional[MempoolMonitor] = None

    async def initialize(self) -> None:
        """
        Connect every collaborator.

        Raises:
            ArbitrageInitializationError: Missing configuration, unreachable RPC,
                relay session failure or an unreadable nonce baseline
        """
        if self.is_initialized:
            return

        missing = self.settings.missing_required()
        if missing:
            raise ArbitrageInitializationError(
                f"Missing required configuration: {', '.join(missing)}"
            )

        logger.info("🚀 Starting flash loan arbitrage bot...")
        settings = self.settings

        try:
            account = Account.from_key(settings.wallet_private_key)
        except ValueError as e:
            raise ArbitrageInitializationError(f"Invalid wallet private key: {e}") from e

        try:
            network = FlashbotsNetwork(settings.flashbots_network.lower())
        except ValueError as e:
            raise ArbitrageInitializationError(f"Unknown Flashbots network: {settings.flashbots_network}") from e

        self.chain_client = ChainClient(settings.ethereum_rpc_http, chain_id=settings.chain_id)
        await self.chain_client.initialize()

        self.nonce_tracker = NonceTracker(self.chain_client, account.address)
        await self.nonce_tracker.initialize()

        self.relay_client = FlashbotsClient(
            settings.flashbots_relay_signer_key,
            network=network,
            relay_url=settings.flashbots_relay_url
        )
        await self.relay_client.initialize()

        self.confidence_model = await self._create_confidence_model()

        scorer = ReserveSpreadScorer(
            self.chain_client,
            venue_a=settings.dex_a_pair_address,
            venue_b=settings.dex_b_pair_address,
            confidence_model=self.confidence_model,
            min_profit_wei=settings.min_profit_wei,
            price_gap_divisor=settings.price_gap_divisor
        )

        bundle_builder = BundleBuilder(
            self.chain_client,
            account,
            flash_loan_contract=settings.flash_loan_contract_address,
            target_asset=settings.target_token_address,
            max_loan_wei=settings.max_loan_wei,
            loan_multiplier=settings.loan_multiplier,
            gas_limit=settings.flash_loan_gas_limit,
            chain_id=settings.chain_id
        )

        self.executor = FlashLoanExecutor(
            self.chain_client,
            self.nonce_tracker,
            bundle_builder,
            RelaySubmitter(self.relay_client)
        )

        self.monitor = MempoolMonitor(
            MempoolConfig(
                confidence_threshold=settings.confidence_threshold,
                scoring_workers=settings.scoring_workers,
                pending_queue_size=settings.pending_queue_size,
                scoring_timeout_seconds=settings.scoring_timeout_seconds,
                health_check_interval_seconds=settings.health_check_interval_seconds
            ),
            self.chain_client,
            scorer,
            self.executor,
            self.nonce_tracker
        )

        self.pending_stream = PendingTransactionStream(
            settings.ethereum_rpc_wss,
            on_error=self.monitor.on_stream_error
        )
        self.monitor.pending_stream = self.pending_stream

        self.is_initialized = True
        logger.info(f"✅ Pipeline ready for {account.address} on chain {settings.chain_id}")

    async def _create_confidence_model(self) -> ConfidenceModel:
        if not self.settings.confidence_service_url:
            logger.info("Using rule-based confidence model")
            return RuleBasedConfidenceModel()

        model = InferenceServiceConfidenceModel(self.settings.confidence_service_url)
        await model.initialize()
        logger.info(f"Using inference service at {self.settings.confidence_service_url}")
        return model

    async def run(self) -> None:
        """Run the monitor; any failure it propagates is fatal."""
        if not self.is_initialized:
            raise RuntimeError("Service not initialized")

        try:
            await self.monitor.run()
        except Exception as e:
            logger.error(f"❌ Fatal pipeline error: {e}", exc_info=True)
            raise

    async def stop(self) -> None:
        if self.monitor is not None:
            await self.monitor.stop()

    async def close(self) -> None:
        """Stop monitoring and release every connection."""
        await self.stop()

        if self.confidence_model is not None:
            await self.confidence_model.close()
        if self.relay_client is not None:
            await self.relay_client.close()
        if self.chain_client is not None:
            await self.chain_client.close()

        self.is_initialized = False
        logger.info("✅ Arbitrage service shut down")

    def get_status(self) -> Dict[str, Any]:
        """Pipeline statistics for the health API."""
        if not self.is_initialized:
            return {"initialized": False}

        return {
            "initialized": True,
            "monitor": self.monitor.get_stats(),
            "executor": self.executor.get_stats(),
            "nonce": {
                "current": self.nonce_tracker.reserve(),
                **self.nonce_tracker.stats
            },
            "scorer": dict(self.monitor.scorer.stats),
            "relay": self.relay_client.get_stats(),
            "stream": dict(self.pending_stream.stats)
        }
