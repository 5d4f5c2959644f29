"""Flash loan arbitrage bundler driven by the pending transaction stream."""

__version__ = "0.1.0"
