"""Chain client for the executing account's EVM network."""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound, Web3Exception
from web3.providers import AsyncHTTPProvider

from ..exceptions import ArbitrageInitializationError, ChainClientError
from ..mev_detection.opportunity_models import PendingTransaction


logger = logging.getLogger(__name__)

# Uniswap V2 pair ABI (just getReserves)
UNISWAP_V2_PAIR_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"internalType": "uint112", "name": "_reserve0", "type": "uint112"},
            {"internalType": "uint112", "name": "_reserve1", "type": "uint112"},
            {"internalType": "uint32", "name": "_blockTimestampLast", "type": "uint32"}
        ],
        "stateMutability": "view",
        "type": "function"
    }
]

# Errors an RPC round trip can surface; web3 still raises ValueError for JSON-RPC errors
TRANSIENT_RPC_ERRORS = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, ValueError)


def to_bytes(value: Any) -> bytes:
    """Normalize calldata from a node response to bytes."""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        if value in ("", "0x"):
            return b""
        return Web3.to_bytes(hexstr=value)
    raise TypeError(f"Unsupported calldata type: {type(value).__name__}")


class ChainClient:
    """Async read/write access to a single EVM chain over HTTP RPC."""

    def __init__(self, rpc_url: str, chain_id: int = 1, request_timeout: float = 30.0):
        """
        Initialize the chain client.

        Args:
            rpc_url: HTTP RPC endpoint
            chain_id: Expected chain ID
            request_timeout: Per-request timeout in seconds
        """
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.request_timeout = request_timeout
        self.w3: Optional[AsyncWeb3] = None
        self._pair_contracts: Dict[str, Any] = {}

    async def initialize(self) -> None:
        """Connect and verify the chain; failure here is fatal to startup."""
        if self.w3 is not None:
            return

        logger.info("🔗 Connecting to chain RPC...")
        provider = AsyncHTTPProvider(
            self.rpc_url,
            request_kwargs={"timeout": self.request_timeout}
        )
        w3 = AsyncWeb3(provider)

        try:
            block_number = await w3.eth.block_number
            chain_id = await w3.eth.chain_id
        except TRANSIENT_RPC_ERRORS as e:
            raise ArbitrageInitializationError(f"Cannot reach RPC provider: {e}") from e

        if chain_id != self.chain_id:
            logger.warning(
                f"⚠️ Chain ID mismatch: expected {self.chain_id}, got {chain_id}"
            )

        self.w3 = w3
        logger.info(f"✅ Connected to chain {chain_id} at block {block_number}")

    def _require_web3(self) -> AsyncWeb3:
        if self.w3 is None:
            raise RuntimeError("Chain client not initialized")
        return self.w3

    async def get_block_number(self) -> int:
        """Get the current block height."""
        w3 = self._require_web3()
        try:
            return await w3.eth.block_number
        except TRANSIENT_RPC_ERRORS as e:
            raise ChainClientError(f"Failed to get block number: {e}") from e

    async def get_transaction_count(self, address: str) -> int:
        """Get the account's mined transaction count (its next nonce)."""
        w3 = self._require_web3()
        try:
            return await w3.eth.get_transaction_count(Web3.to_checksum_address(address))
        except TRANSIENT_RPC_ERRORS as e:
            raise ChainClientError(f"Failed to get transaction count for {address}: {e}") from e

    async def get_transaction(self, tx_hash: str) -> Optional[PendingTransaction]:
        """
        Fetch a transaction body by hash.

        Returns None when the node no longer (or not yet) knows the hash, or the
        lookup fails; pending hashes routinely disappear before they resolve.
        """
        w3 = self._require_web3()
        try:
            tx = await w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return None
        except TRANSIENT_RPC_ERRORS as e:
            logger.debug(f"Transaction fetch failed for {tx_hash}: {e}")
            return None

        if not tx:
            return None

        tx_data = dict(tx)
        return PendingTransaction(
            hash=tx_hash,
            sender=tx_data.get("from", ""),
            to=tx_data.get("to"),
            calldata=to_bytes(tx_data.get("input")),
            raw=tx_data
        )

    async def get_reserves(self, pair_address: str) -> Tuple[int, int]:
        """Read (reserve0, reserve1) from a Uniswap V2 style pair."""
        w3 = self._require_web3()
        contract = self._pair_contracts.get(pair_address)
        if contract is None:
            contract = w3.eth.contract(
                address=Web3.to_checksum_address(pair_address),
                abi=UNISWAP_V2_PAIR_ABI
            )
            self._pair_contracts[pair_address] = contract

        reserves = await contract.functions.getReserves().call()
        return int(reserves[0]), int(reserves[1])

    async def get_fee_parameters(self) -> Dict[str, int]:
        """EIP-1559 fee fields for the next block."""
        w3 = self._require_web3()
        try:
            latest_block = await w3.eth.get_block("latest")
            priority_fee = await w3.eth.max_priority_fee
        except TRANSIENT_RPC_ERRORS as e:
            raise ChainClientError(f"Failed to get fee parameters: {e}") from e

        base_fee = int(latest_block.get("baseFeePerGas", 0))
        return {
            "maxPriorityFeePerGas": int(priority_fee),
            "maxFeePerGas": base_fee * 2 + int(priority_fee),
        }

    async def close(self) -> None:
        """Close the RPC connection."""
        if self.w3 is None:
            return

        provider = self.w3.provider
        try:
            # AsyncHTTPProvider only exposes disconnect on newer web3 releases
            if hasattr(provider, "disconnect"):
                await provider.disconnect()
        except Exception as e:
            logger.error(f"Error closing RPC connection: {e}")

        self.w3 = None
        self._pair_contracts.clear()
        logger.info("✅ Chain connection closed")
