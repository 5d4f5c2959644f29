"""Bundle construction, nonce ownership and serialized flash loan execution."""
from .nonce_tracker import NonceTracker
from .bundle_builder import (
    BundleBuilder,
    BundleTransaction,
    SignedBundle,
    encode_request_flash_loan
)
from .flash_loan_executor import FlashLoanExecutor

__all__ = [
    "NonceTracker",
    "BundleBuilder",
    "BundleTransaction",
    "SignedBundle",
    "encode_request_flash_loan",
    "FlashLoanExecutor",
]
