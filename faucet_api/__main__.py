"""
Entry point for running the faucet as a module.

Usage:
    python -m faucet_api
"""

from faucet_api.cli import main

if __name__ == "__main__":
    main()
