"""
Exception hierarchy for the faucet core.

Callers catch the base classes (ValidationError, EligibilityError,
TransferError, PersistenceError); the HTTP layer maps each to a status code.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional


class FaucetError(Exception):
    """Base class for all faucet errors."""


# Validation


class ValidationError(FaucetError):
    pass


class InvalidAddressError(ValidationError):
    def __init__(self, address: object):
        super().__init__("Invalid wallet address")
        self.address = address


# Eligibility


class EligibilityError(FaucetError):
    pass


class NotEligibleError(EligibilityError):
    """Wallet is still inside its cooldown window."""

    def __init__(self, next_claim_time: datetime, last_claim_time: datetime):
        super().__init__("You must wait 24 hours since your last claim")
        self.next_claim_time = next_claim_time
        self.last_claim_time = last_claim_time


class ClaimInProgressError(EligibilityError):
    """Another claim for the same wallet has not been resolved yet."""

    def __init__(self, address: str):
        super().__init__("A claim for this wallet is already being processed")
        self.address = address


# Transfer


class TransferError(FaucetError):
    """
    Transfer did not complete.

    ``broadcast`` is True when the signed transaction may have reached the
    network, in which case the outcome is only known after reconciliation.
    """

    def __init__(
        self,
        message: str,
        *,
        broadcast: bool = False,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message)
        self.broadcast = broadcast
        self.tx_hash = tx_hash


class InvalidRecipientError(TransferError):
    pass


class InsufficientFundsError(TransferError):
    pass


class TransferNetworkError(TransferError):
    pass


class TransferTimeoutError(TransferNetworkError):
    pass


class TransferRevertedError(TransferError):
    pass


# Persistence


class PersistenceError(FaucetError):
    """Ledger read or write failed."""
