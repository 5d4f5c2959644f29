"""Unit tests for the chain client."""
from unittest.mock import AsyncMock, MagicMock, Mock

import aiohttp
import pytest
from web3.exceptions import TransactionNotFound

from flash_arbitrage.blockchain_connector.provider import ChainClient, to_bytes
from flash_arbitrage.exceptions import ChainClientError

TX_HASH = "0x" + "01" * 32
ADDRESS = "0x" + "ab" * 20


async def awaitable(value):
    return value


class TestToBytes:
    """Test calldata normalization."""

    def test_hex_string(self):
        assert to_bytes("0xa9059cbb") == b"\xa9\x05\x9c\xbb"

    def test_empty_values(self):
        assert to_bytes(None) == b""
        assert to_bytes("0x") == b""
        assert to_bytes("") == b""

    def test_bytes_passthrough(self):
        assert to_bytes(bytearray(b"\x01\x02")) == b"\x01\x02"

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            to_bytes(12)


class TestChainClient:
    """Test ChainClient against a mocked web3 instance."""

    def setup_method(self):
        """Create a client with a mocked connection."""
        self.client = ChainClient("http://localhost:8545")
        self.client.w3 = MagicMock()

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        client = ChainClient("http://localhost:8545")

        with pytest.raises(RuntimeError):
            await client.get_block_number()

    @pytest.mark.asyncio
    async def test_get_block_number(self):
        self.client.w3.eth.block_number = awaitable(19_000_000)

        assert await self.client.get_block_number() == 19_000_000

    @pytest.mark.asyncio
    async def test_get_transaction_count_wraps_errors(self):
        self.client.w3.eth.get_transaction_count = AsyncMock(side_effect=aiohttp.ClientError("reset"))

        with pytest.raises(ChainClientError):
            await self.client.get_transaction_count(ADDRESS)

    @pytest.mark.asyncio
    async def test_get_transaction_builds_pending_transaction(self):
        self.client.w3.eth.get_transaction = AsyncMock(return_value={
            "from": "0x" + "cc" * 20,
            "to": "0x" + "dd" * 20,
            "input": "0x12345678",
            "nonce": 3
        })

        tx = await self.client.get_transaction(TX_HASH)

        assert tx.hash == TX_HASH
        assert tx.sender == "0x" + "cc" * 20
        assert tx.to == "0x" + "dd" * 20
        assert tx.calldata == b"\x12\x34\x56\x78"
        assert tx.raw["nonce"] == 3

    @pytest.mark.asyncio
    async def test_get_transaction_not_found(self):
        self.client.w3.eth.get_transaction = AsyncMock(side_effect=TransactionNotFound("unknown"))

        assert await self.client.get_transaction(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_get_transaction_transient_failure(self):
        self.client.w3.eth.get_transaction = AsyncMock(side_effect=aiohttp.ClientError("reset"))

        assert await self.client.get_transaction(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_get_reserves_caches_contract(self):
        contract = Mock()
        contract.functions.getReserves.return_value.call = AsyncMock(return_value=[100, 200, 1700000000])
        self.client.w3.eth.contract.return_value = contract

        assert await self.client.get_reserves(ADDRESS) == (100, 200)
        assert await self.client.get_reserves(ADDRESS) == (100, 200)
        self.client.w3.eth.contract.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_fee_parameters(self):
        self.client.w3.eth.get_block = AsyncMock(return_value={"baseFeePerGas": 30_000_000_000})
        self.client.w3.eth.max_priority_fee = awaitable(2_000_000_000)

        fees = await self.client.get_fee_parameters()

        assert fees == {
            "maxPriorityFeePerGas": 2_000_000_000,
            "maxFeePerGas": 62_000_000_000
        }

    @pytest.mark.asyncio
    async def test_close_resets_state(self):
        self.client.w3.provider = Mock(spec=[])

        await self.client.close()

        assert self.client.w3 is None
