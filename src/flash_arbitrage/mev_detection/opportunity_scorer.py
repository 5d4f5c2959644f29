"""
Opportunity scoring for pending transactions.

The scorer compares the implied price of the same asset pair on two liquidity
venues. A gap above the configured relative threshold yields a profit
estimate; estimates above the profit floor are handed to a confidence model
for a score in [0, 1]. Any failed read produces a non-profitable result so a
broken price check is never mistaken for a signal.
"""
import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .opportunity_models import Opportunity, PendingTransaction

logger = logging.getLogger(__name__)

PRICE_SCALE = 10**18


@dataclass(frozen=True)
class VenueSpread:
    """Implied prices of the two venues and their absolute gap."""
    price_a: int
    price_b: int

    @property
    def difference(self) -> int:
        return abs(self.price_a - self.price_b)

    @property
    def relative_gap(self) -> float:
        """Gap relative to the reference (venue A) price."""
        if self.price_a == 0:
            return 0.0
        return self.difference / self.price_a


class ConfidenceModel(ABC):
    """Produces a confidence score for a profitable candidate."""

    @abstractmethod
    async def score(
        self,
        tx: PendingTransaction,
        spread: VenueSpread,
        estimated_profit: int
    ) -> float:
        """Return a score in [0, 1]."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass


class RuleBasedConfidenceModel(ConfidenceModel):
    """
    Deterministic confidence: a base score raised in proportion to the
    relative price gap, capped at 1.0.
    """

    def __init__(self, base_score: float = 0.6, gap_weight: float = 10.0):
        self.base_score = base_score
        self.gap_weight = gap_weight

    async def score(
        self,
        tx: PendingTransaction,
        spread: VenueSpread,
        estimated_profit: int
    ) -> float:
        return min(1.0, self.base_score + spread.relative_gap * self.gap_weight)


class InferenceServiceConfidenceModel(ConfidenceModel):
    """Confidence from an external inference service over HTTP."""

    def __init__(self, endpoint_url: str, timeout_seconds: float = 1.0):
        """
        Initialize the inference client.

        Args:
            endpoint_url: URL accepting a JSON feature payload and returning {"score": float}
            timeout_seconds: Total request timeout
        """
        self.endpoint_url = endpoint_url
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            headers={"Content-Type": "application/json"}
        )

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    def _build_features(
        self,
        tx: PendingTransaction,
        spread: VenueSpread,
        estimated_profit: int
    ) -> Dict[str, Any]:
        return {
            "transaction_hash": tx.hash,
            "sender": tx.sender,
            "to": tx.to,
            "selector": tx.calldata[:4].hex(),
            "price_a": str(spread.price_a),
            "price_b": str(spread.price_b),
            "relative_gap": spread.relative_gap,
            "estimated_profit_wei": str(estimated_profit)
        }

    async def score(
        self,
        tx: PendingTransaction,
        spread: VenueSpread,
        estimated_profit: int
    ) -> float:
        if not self.session:
            raise RuntimeError("Inference client not initialized")

        async with self.session.post(
            self.endpoint_url,
            json=self._build_features(tx, spread, estimated_profit)
        ) as response:
            response.raise_for_status()
            result = await response.json()

        return float(result["score"])


class BaseOpportunityScorer(ABC):
    """Scores a pending transaction into an Opportunity."""

    @abstractmethod
    async def score(self, tx: PendingTransaction) -> Opportunity:
        pass


class ReserveSpreadScorer(BaseOpportunityScorer):
    """Scores cross-venue spreads between two Uniswap V2 style pairs."""

    def __init__(
        self,
        chain_client,
        venue_a: str,
        venue_b: str,
        confidence_model: ConfidenceModel,
        min_profit_wei: int,
        price_gap_divisor: int = 100
    ):
        """
        Initialize the scorer.

        Args:
            chain_client: Client exposing ``get_reserves(pair_address)``
            venue_a: Reference venue pair address
            venue_b: Comparison venue pair address
            confidence_model: Source of confidence scores
            min_profit_wei: Profit floor; estimates at or below are not profitable
            price_gap_divisor: Gap must exceed ``price_a // price_gap_divisor`` (100 = 1%)
        """
        self.chain_client = chain_client
        self.venue_a = venue_a
        self.venue_b = venue_b
        self.confidence_model = confidence_model
        self.min_profit_wei = min_profit_wei
        self.price_gap_divisor = price_gap_divisor

        self.stats = {
            "scored": 0,
            "venue_failures": 0,
            "confidence_failures": 0,
            "profitable": 0
        }

    async def score(self, tx: PendingTransaction) -> Opportunity:
        self.stats["scored"] += 1

        spread = await self._read_spread()
        if spread is None:
            return Opportunity.none()

        if spread.difference <= spread.price_a // self.price_gap_divisor:
            return Opportunity.none()

        estimated_profit = (spread.difference // 100) * PRICE_SCALE
        if estimated_profit <= self.min_profit_wei:
            return Opportunity.none()

        try:
            confidence = float(await self.confidence_model.score(tx, spread, estimated_profit))
        except Exception as e:
            self.stats["confidence_failures"] += 1
            logger.warning(f"Confidence scoring failed for {tx.hash}: {e}")
            return Opportunity.none()

        if not math.isfinite(confidence):
            self.stats["confidence_failures"] += 1
            logger.warning(f"Confidence model returned a non-finite score for {tx.hash}: {confidence}")
            return Opportunity.none()

        self.stats["profitable"] += 1
        return Opportunity(
            is_profitable=True,
            estimated_profit=estimated_profit,
            confidence_score=max(0.0, min(1.0, confidence))
        )

    async def _read_spread(self) -> Optional[VenueSpread]:
        """Read both venues concurrently; None if either read fails."""
        try:
            reserves_a, reserves_b = await asyncio.gather(
                self.chain_client.get_reserves(self.venue_a),
                self.chain_client.get_reserves(self.venue_b)
            )
        except Exception as e:
            self.stats["venue_failures"] += 1
            logger.debug(f"Venue reserve read failed: {e}")
            return None

        if reserves_a[1] == 0 or reserves_b[1] == 0:
            self.stats["venue_failures"] += 1
            logger.debug("Venue reported an empty reserve")
            return None

        return VenueSpread(
            price_a=reserves_a[0] * PRICE_SCALE // reserves_a[1],
            price_b=reserves_b[0] * PRICE_SCALE // reserves_b[1]
        )
