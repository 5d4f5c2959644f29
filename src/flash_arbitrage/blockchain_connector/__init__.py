"""Blockchain connector package for chain access and the pending transaction stream."""
from .provider import ChainClient, ChainClientError
from .pending_stream import PendingTransactionStream, SubscriptionError

__all__ = [
    "ChainClient",
    "ChainClientError",
    "PendingTransactionStream",
    "SubscriptionError",
]
