"""
Bundle construction for approved opportunities.

Turns an Opportunity into a LoanRequest, encodes the flash loan contract call,
assigns the reserved nonce and gas limit, and signs the result into a bundle
for exactly one target block.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from eth_abi import encode
from web3 import Web3

from ..mev_detection.opportunity_models import LoanRequest, Opportunity, PendingTransaction

logger = logging.getLogger(__name__)

REQUEST_FLASH_LOAN_SIGNATURE = "requestFlashLoan(address,uint256,bytes)"
REQUEST_FLASH_LOAN_SELECTOR = Web3.keccak(text=REQUEST_FLASH_LOAN_SIGNATURE)[:4]

DEFAULT_FLASH_LOAN_GAS_LIMIT = 3_000_000


@dataclass(frozen=True)
class BundleTransaction:
    """A signed transaction inside a bundle."""
    nonce: int
    gas_limit: int
    raw_transaction: bytes
    tx_hash: str

    @property
    def raw_hex(self) -> str:
        return "0x" + self.raw_transaction.hex()


@dataclass(frozen=True)
class SignedBundle:
    """Ordered signed transactions targeting a single block."""
    transactions: Tuple[BundleTransaction, ...]
    target_block: int
    loan_request: LoanRequest

    def __post_init__(self):
        if not self.transactions:
            raise ValueError("Bundle must contain at least one transaction")

        expected = self.transactions[0].nonce
        for tx in self.transactions:
            if tx.nonce != expected:
                raise ValueError(
                    f"Bundle nonces must be contiguous ascending, got {[t.nonce for t in self.transactions]}"
                )
            expected += 1

    @property
    def start_nonce(self) -> int:
        return self.transactions[0].nonce

    @property
    def raw_transactions(self) -> List[str]:
        """Hex-encoded signed transactions in bundle order."""
        return [tx.raw_hex for tx in self.transactions]


def encode_request_flash_loan(loan_request: LoanRequest) -> bytes:
    """Calldata for ``requestFlashLoan(address token, uint256 amount, bytes data)``."""
    params = encode(
        ["address", "uint256", "bytes"],
        [
            Web3.to_checksum_address(loan_request.target_asset),
            int(loan_request.amount),
            loan_request.auxiliary_data
        ]
    )
    return bytes(REQUEST_FLASH_LOAN_SELECTOR) + params


class BundleBuilder:
    """Builds signed flash loan bundles for the executing account."""

    def __init__(
        self,
        chain_client,
        account,
        flash_loan_contract: str,
        target_asset: str,
        max_loan_wei: int,
        loan_multiplier: int = 10,
        gas_limit: int = DEFAULT_FLASH_LOAN_GAS_LIMIT,
        chain_id: int = 1
    ):
        """
        Initialize the bundle builder.

        Args:
            chain_client: Client exposing ``get_fee_parameters()``
            account: eth_account LocalAccount that signs bundle transactions
            flash_loan_contract: Flash loan contract address
            target_asset: Asset borrowed by the loan
            max_loan_wei: Loan ceiling
            loan_multiplier: Loan size as a multiple of estimated profit
            gas_limit: Gas limit for the loan transaction
            chain_id: Chain ID for replay protection
        """
        self.chain_client = chain_client
        self.account = account
        self.flash_loan_contract = Web3.to_checksum_address(flash_loan_contract)
        self.target_asset = target_asset
        self.max_loan_wei = max_loan_wei
        self.loan_multiplier = loan_multiplier
        self.gas_limit = gas_limit
        self.chain_id = chain_id

        self.stats = {
            "bundles_built": 0,
            "loans_capped": 0
        }

    def build_loan_request(self, tx: PendingTransaction, opportunity: Opportunity) -> LoanRequest:
        """Size the loan for an approved opportunity."""
        # The triggering transaction's calldata stands in for real route instructions
        loan_request = LoanRequest.from_opportunity(
            opportunity,
            target_asset=self.target_asset,
            auxiliary_data=tx.calldata,
            multiplier=self.loan_multiplier,
            cap=self.max_loan_wei
        )

        if loan_request.amount == self.max_loan_wei:
            self.stats["loans_capped"] += 1

        return loan_request

    async def build_bundle(
        self,
        loan_request: LoanRequest,
        nonce: int,
        target_block: int
    ) -> SignedBundle:
        """
        Build and sign the loan transaction.

        Args:
            loan_request: Sized loan
            nonce: Nonce reserved for this submission
            target_block: Block the bundle is valid for

        Returns:
            SignedBundle ready for simulation
        """
        fees = await self.chain_client.get_fee_parameters()

        transaction: Dict[str, Any] = {
            "to": self.flash_loan_contract,
            "value": 0,
            "data": encode_request_flash_loan(loan_request),
            "nonce": nonce,
            "gas": self.gas_limit,
            "chainId": self.chain_id,
            "type": 2,
            "maxFeePerGas": fees["maxFeePerGas"],
            "maxPriorityFeePerGas": fees["maxPriorityFeePerGas"],
        }

        signed = self.account.sign_transaction(transaction)

        bundle = SignedBundle(
            transactions=(
                BundleTransaction(
                    nonce=nonce,
                    gas_limit=self.gas_limit,
                    raw_transaction=bytes(signed.raw_transaction),
                    tx_hash="0x" + bytes(signed.hash).hex()
                ),
            ),
            target_block=target_block,
            loan_request=loan_request
        )

        self.stats["bundles_built"] += 1
        logger.info(
            f"[FLASH LOAN] Loan amount: {Web3.from_wei(int(loan_request.amount), 'ether')} ETH. "
            f"Nonce: {nonce}. Target block: {target_block}"
        )
        return bundle
