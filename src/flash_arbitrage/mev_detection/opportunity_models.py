"""
Data models for flash loan arbitrage opportunities.

A pending transaction is scored into an Opportunity; an approved Opportunity
is sized into a LoanRequest that the bundle builder turns into a signed bundle.
All models are immutable and live for a single pipeline pass.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Union

Amount = Union[int, Decimal]


@dataclass(frozen=True)
class PendingTransaction:
    """A transaction observed in the mempool."""
    hash: str
    sender: str
    calldata: bytes
    to: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def has_payload(self) -> bool:
        """Whether the transaction carries calldata."""
        return len(self.calldata) > 0


@dataclass(frozen=True)
class Opportunity:
    """Scoring result for a pending transaction."""
    is_profitable: bool
    estimated_profit: int
    confidence_score: float

    def __post_init__(self):
        if not 0.0 <= self.confidence_score <= 1.0:
            raise ValueError(f"Confidence score must be in [0, 1], got {self.confidence_score}")
        if self.estimated_profit < 0:
            raise ValueError(f"Estimated profit cannot be negative, got {self.estimated_profit}")

    @classmethod
    def none(cls) -> "Opportunity":
        """A non-profitable, zero-confidence result."""
        return cls(is_profitable=False, estimated_profit=0, confidence_score=0.0)

    def passes_gate(self, confidence_threshold: float) -> bool:
        """Profitable and strictly above the confidence threshold."""
        return self.is_profitable and self.confidence_score > confidence_threshold


def compute_loan_amount(estimated_profit: Amount, multiplier: int, cap: Amount) -> Amount:
    """Size a flash loan as a multiple of the expected profit, never above the cap."""
    return min(estimated_profit * multiplier, cap)


@dataclass(frozen=True)
class LoanRequest:
    """Arguments for the flash loan contract's loan entry point."""
    target_asset: str
    amount: Amount
    auxiliary_data: bytes
    cap: Amount

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError(f"Loan amount must be positive, got {self.amount}")
        if self.amount > self.cap:
            raise ValueError(f"Loan amount {self.amount} exceeds cap {self.cap}")

    @classmethod
    def from_opportunity(
        cls,
        opportunity: Opportunity,
        target_asset: str,
        auxiliary_data: bytes,
        multiplier: int,
        cap: Amount
    ) -> "LoanRequest":
        """Derive a loan request from an approved opportunity."""
        amount = compute_loan_amount(opportunity.estimated_profit, multiplier, cap)
        return cls(
            target_asset=target_asset,
            amount=amount,
            auxiliary_data=auxiliary_data,
            cap=cap
        )
