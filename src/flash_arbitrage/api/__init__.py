"""HTTP API for the arbitrage service."""
