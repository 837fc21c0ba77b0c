"""
Faucet API - testnet ETH faucet.

Sends a fixed drip (0.01 ETH) to a wallet at most once every 24 hours.

Usage:
    # Run the HTTP API
    faucet serve

    # Settle claims left pending by a crash or a confirmation timeout
    faucet reconcile

    # Check a wallet
    faucet check 0x...
"""

__version__ = "0.1.0"
