"""
Nonce tracking for the executing account.

The tracker holds the only authoritative next-nonce value. The value only
moves up: by one per successfully submitted bundle, or to the chain's count
when a resync observes transactions mined from elsewhere.
"""
import asyncio
import logging
from typing import Optional

from ..exceptions import ChainClientError, NonceDesyncError, NonceInitializationError

logger = logging.getLogger(__name__)


class NonceTracker:
    """Single owner of the account's next nonce."""

    def __init__(
        self,
        chain_client,
        address: str,
        max_retries: int = 3,
        retry_delay: float = 1.0
    ):
        """
        Initialize the tracker.

        Args:
            chain_client: Client exposing ``get_transaction_count(address)``
            address: Executing account address
            max_retries: Attempts for the startup baseline read
            retry_delay: First delay between baseline attempts, doubled each retry
        """
        self.chain_client = chain_client
        self.address = address
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        # Guards the reserve -> submit -> commit section and resync
        self.lock = asyncio.Lock()
        self._nonce: Optional[int] = None

        self.stats = {
            "commits": 0,
            "resyncs": 0,
            "resync_raises": 0
        }

    @property
    def is_initialized(self) -> bool:
        return self._nonce is not None

    async def initialize(self) -> int:
        """Set the baseline from the chain; fatal if it cannot be read."""
        backoff = self.retry_delay

        for attempt in range(self.max_retries):
            try:
                self._nonce = await self.chain_client.get_transaction_count(self.address)
                logger.info(f"Initialized nonce to {self._nonce} for {self.address}")
                return self._nonce
            except ChainClientError as e:
                if attempt == self.max_retries - 1:
                    raise NonceInitializationError(
                        f"Could not read nonce baseline for {self.address}: {e}"
                    ) from e
                logger.warning(
                    f"Nonce fetch attempt {attempt + 1} failed: {e}. Retrying in {backoff}s..."
                )
                await asyncio.sleep(backoff)
                backoff *= 2

    def reserve(self) -> int:
        """Current nonce, without mutating state."""
        if self._nonce is None:
            raise RuntimeError("Nonce tracker not initialized")
        return self._nonce

    def commit(self, reserved: int) -> int:
        """
        Advance the nonce after a confirmed relay submission.

        Args:
            reserved: The nonce the submitted bundle was built with

        Returns:
            The new tracked value
        """
        current = self.reserve()
        if reserved != current:
            raise NonceDesyncError(reserved, current)

        self._nonce = current + 1
        self.stats["commits"] += 1
        logger.debug(f"Nonce advanced {current} -> {self._nonce}")
        return self._nonce

    async def resync(self) -> int:
        """Raise the nonce to the chain's count if the chain is ahead; never lower it."""
        async with self.lock:
            chain_nonce = await self.chain_client.get_transaction_count(self.address)
            current = self.reserve()
            self.stats["resyncs"] += 1

            if chain_nonce > current:
                logger.info(f"Nonce resynced from {current} to chain value {chain_nonce}")
                self._nonce = chain_nonce
                self.stats["resync_raises"] += 1

            return self._nonce
