"""
Wallet address validation and normalization.

Only plain EVM hex addresses are accepted: ``0x`` followed by 40 hex digits.
Checksums are not enforced; every address is keyed in lowercase.
"""

import re
from typing import Optional

WALLET_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")


def is_valid_wallet_address(address: object) -> bool:
    """Return True if ``address`` is a 0x-prefixed 20-byte hex string."""
    if not isinstance(address, str):
        return False
    return WALLET_ADDRESS_RE.fullmatch(address) is not None


def normalize_wallet_address(address: str) -> str:
    """Canonical ledger key for a valid address."""
    return address.lower()


def parse_wallet_address(address: object) -> Optional[str]:
    """
    Validate and normalize in one step.

    Returns the lowercase address or None if invalid.
    """
    if not is_valid_wallet_address(address):
        return None
    return normalize_wallet_address(address)  # type: ignore[arg-type]
