"""
Flashbots relay client.

Simulates and submits signed bundles over the relay's JSON-RPC interface.
Every request is authenticated with an ``X-Flashbots-Signature`` header signed
by the relay signer key, which identifies the searcher but holds no funds.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from ..exceptions import ArbitrageInitializationError, RelayError

logger = logging.getLogger(__name__)


class FlashbotsNetwork(str, Enum):
    """Supported Flashbots networks."""
    MAINNET = "mainnet"
    SEPOLIA = "sepolia"
    HOLESKY = "holesky"


DEFAULT_RELAY_URLS = {
    FlashbotsNetwork.MAINNET: "https://relay.flashbots.net",
    FlashbotsNetwork.SEPOLIA: "https://relay-sepolia.flashbots.net",
    FlashbotsNetwork.HOLESKY: "https://relay-holesky.flashbots.net"
}


@dataclass
class FlashbotsBundleResponse:
    """Response from Flashbots bundle submission."""
    bundle_hash: str
    success: bool
    target_block: int = 0
    error: Optional[str] = None
    submitted_at: float = field(default_factory=time.time)


@dataclass
class FlashbotsSimulationResult:
    """Result of Flashbots bundle simulation."""
    success: bool
    bundle_hash: str = ""

    # Gas analysis
    total_gas_used: int = 0
    coinbase_diff: int = 0

    # Transaction results
    transaction_results: List[Dict[str, Any]] = field(default_factory=list)

    # State changes
    state_block: int = 0
    simulation_block: int = 0

    # Error information
    error: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return bool(self.error)


class FlashbotsClient:
    """Flashbots relay client for bundle simulation and submission."""

    def __init__(
        self,
        signer_key: str,
        network: FlashbotsNetwork = FlashbotsNetwork.MAINNET,
        relay_url: Optional[str] = None,
        timeout_seconds: float = 10.0
    ):
        """
        Initialize Flashbots client.

        Args:
            signer_key: Private key for signing relay requests (should be a burner key)
            network: Target network
            relay_url: Custom relay URL (uses network default if None)
            timeout_seconds: Total timeout per relay request
        """
        self.network = network
        self.account = Account.from_key(signer_key)
        self.relay_url = relay_url or DEFAULT_RELAY_URLS[network]
        self.timeout_seconds = timeout_seconds
        self._request_id = 0

        # HTTP session for API calls
        self.session: Optional[aiohttp.ClientSession] = None

        # Statistics
        self.stats = {
            "simulations": 0,
            "simulation_failures": 0,
            "bundles_submitted": 0,
            "submission_failures": 0
        }

    async def initialize(self):
        """Create the relay session."""
        if self.session is not None:
            return

        try:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers={"User-Agent": "flash-arbitrage/0.1"}
            )
        except Exception as e:
            raise ArbitrageInitializationError(f"Cannot create relay session: {e}") from e

        logger.info(f"Flashbots client initialized for {self.relay_url} as {self.account.address}")

    async def close(self):
        """Close the Flashbots client."""
        if self.session:
            await self.session.close()
            self.session = None

    async def simulate_bundle(
        self,
        raw_transactions: List[str],
        block_number: int,
        state_block: str = "latest"
    ) -> FlashbotsSimulationResult:
        """
        Simulate bundle execution against a target block.

        Args:
            raw_transactions: Hex-encoded signed transactions
            block_number: Block the bundle targets
            state_block: Block whose state the simulation starts from

        Returns:
            Simulation result; ``error`` is set when the bundle would fail
        """
        self.stats["simulations"] += 1
        params = {
            "txs": raw_transactions,
            "blockNumber": hex(block_number),
            "stateBlockNumber": state_block
        }

        try:
            result = await self._call("eth_callBundle", [params])
        except RelayError as e:
            self.stats["simulation_failures"] += 1
            return FlashbotsSimulationResult(success=False, error=str(e))

        try:
            simulation = self._parse_simulation_result(result)
        except (AttributeError, TypeError, ValueError) as e:
            self.stats["simulation_failures"] += 1
            return FlashbotsSimulationResult(success=False, error=f"Malformed simulation result: {e}")

        if simulation.has_error:
            self.stats["simulation_failures"] += 1
        return simulation

    async def send_bundle(
        self,
        raw_transactions: List[str],
        target_block: int
    ) -> FlashbotsBundleResponse:
        """
        Submit a bundle for inclusion in ``target_block``.

        The relay acknowledges receipt only; inclusion is not awaited.
        """
        params = {
            "txs": raw_transactions,
            "blockNumber": hex(target_block)
        }

        try:
            result = await self._call("eth_sendBundle", [params])
        except RelayError as e:
            self.stats["submission_failures"] += 1
            return FlashbotsBundleResponse(
                bundle_hash="",
                success=False,
                target_block=target_block,
                error=str(e)
            )

        bundle_hash = result.get("bundleHash", "") if isinstance(result, dict) else ""
        self.stats["bundles_submitted"] += 1
        logger.info(f"Bundle submitted: {bundle_hash or '<no hash>'} for block {target_block}")
        return FlashbotsBundleResponse(
            bundle_hash=bundle_hash,
            success=True,
            target_block=target_block
        )

    def _build_request(self, method: str, params: List[Any]) -> Dict[str, Any]:
        self._request_id += 1
        return {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params
        }

    def _sign_body(self, body: str) -> Dict[str, str]:
        """Headers carrying X-Flashbots-Signature over the keccak of the body."""
        message = encode_defunct(text=Web3.to_hex(Web3.keccak(text=body)))
        signature = Account.sign_message(message, private_key=self.account.key)
        return {
            "Content-Type": "application/json",
            "X-Flashbots-Signature": f"{self.account.address}:{Web3.to_hex(signature.signature)}"
        }

    async def _call(self, method: str, params: List[Any]) -> Any:
        """POST a signed JSON-RPC request and return its ``result``."""
        if not self.session:
            raise RuntimeError("Client not initialized")

        body = json.dumps(self._build_request(method, params))
        headers = self._sign_body(body)

        try:
            async with self.session.post(self.relay_url, data=body, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise RelayError(f"HTTP {response.status}: {error_text}", method=method)
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RelayError(f"Relay request failed: {e}", method=method) from e
        except ValueError as e:
            raise RelayError(f"Relay returned a non-JSON body: {e}", method=method) from e

        if not isinstance(payload, dict):
            raise RelayError(f"Unexpected relay response: {payload!r}", method=method)

        if "error" in payload:
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RelayError(message, method=method)

        return payload.get("result")

    def _parse_simulation_result(self, result: Optional[Dict[str, Any]]) -> FlashbotsSimulationResult:
        """Parse an ``eth_callBundle`` result; a reverted transaction is an error."""
        result = result or {}
        transaction_results = result.get("results", [])

        error = None
        for tx_result in transaction_results:
            if tx_result.get("error") or tx_result.get("revert"):
                error = tx_result.get("revert") or tx_result.get("error")
                break

        coinbase_diff = result.get("coinbaseDiff", 0)
        return FlashbotsSimulationResult(
            success=error is None,
            bundle_hash=result.get("bundleHash", ""),
            total_gas_used=int(result.get("totalGasUsed", 0)),
            coinbase_diff=int(coinbase_diff, 0) if isinstance(coinbase_diff, str) else int(coinbase_diff),
            transaction_results=transaction_results,
            state_block=int(result.get("stateBlockNumber", 0)),
            simulation_block=int(result.get("bundleBlockNumber", 0)),
            error=error
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get Flashbots client statistics."""
        return self.stats.copy()
