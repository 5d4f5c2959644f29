"""Exceptions raised by the arbitrage pipeline."""
from typing import Optional


class ArbitrageError(Exception):
    """Base exception for arbitrage pipeline errors."""
    pass


class ArbitrageInitializationError(ArbitrageError):
    """Startup could not establish a chain connection, relay session or nonce baseline."""
    pass


class NonceInitializationError(ArbitrageInitializationError):
    """The account nonce baseline could not be read from the chain."""
    pass


class NonceDesyncError(ArbitrageError):
    """A commit was attempted for a nonce that is no longer the tracked value."""

    def __init__(self, reserved: int, current: int):
        """
        Initialize nonce desync error.

        Args:
            reserved: Nonce the caller built its bundle with
            current: Nonce currently held by the tracker
        """
        self.reserved = reserved
        self.current = current
        super().__init__(f"Reserved nonce {reserved} does not match tracked nonce {current}")


class RelayError(ArbitrageError):
    """Exception raised for bundle relay errors."""

    def __init__(self, message: str, method: Optional[str] = None):
        self.method = method
        super().__init__(message)

    def __str__(self) -> str:
        """String representation of the error."""
        base_msg = super().__str__()
        if self.method:
            return f"[{self.method}] {base_msg}"
        return base_msg


class ChainClientError(ArbitrageError):
    """An RPC call to the chain failed."""
    pass
