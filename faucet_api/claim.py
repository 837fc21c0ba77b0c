"""
Claim orchestration.

A claim moves through:
1. address validation and normalization
2. eligibility check against the ledger (24h cooldown)
3. intent reservation (atomic, one pending intent per wallet)
4. transfer, with the signed tx hash attached to the intent before broadcast
5. ledger update + intent confirmation in one transaction

A failed transfer never touches the ``claims`` table. When the outcome of a
broadcast transfer is unknown (timeout, dropped connection) the intent stays
pending and the reconciler settles it later.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncIterator, Callable, Optional

import structlog
from web3 import Web3

from .address import parse_wallet_address
from .config import CLAIM_COOLDOWN, DRIP_AMOUNT_ETH
from .db import ClaimLedger
from .eligibility import Eligibility, evaluate_eligibility, utcnow
from .errors import (
    ClaimInProgressError,
    InvalidAddressError,
    NotEligibleError,
    PersistenceError,
    TransferError,
    TransferRevertedError,
)
from .evm import TransferClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClaimResult:
    tx_hash: str
    amount_eth: Decimal
    claimed_at: datetime
    next_claim_time: datetime
    block_number: Optional[int] = None


class WalletLocks:
    """Per-wallet asyncio locks, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: defaultdict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class ClaimOrchestrator:
    """
    Disburses the drip amount to eligible wallets.

    The ledger and transfer client are injected so that several orchestrators
    (and tests) can run side by side.
    """

    def __init__(
        self,
        ledger: ClaimLedger,
        transfer: TransferClient,
        amount_eth: Decimal = DRIP_AMOUNT_ETH,
        cooldown: timedelta = CLAIM_COOLDOWN,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ledger = ledger
        self.transfer = transfer
        self.amount_eth = amount_eth
        self.cooldown = cooldown
        self.clock = clock
        self._locks = WalletLocks()

    @staticmethod
    def _parse(raw_address: object) -> str:
        address = parse_wallet_address(raw_address)
        if address is None:
            raise InvalidAddressError(raw_address)
        return address

    async def check_eligibility(self, raw_address: object) -> Eligibility:
        """Eligibility of a wallet right now. Read-only."""
        address = self._parse(raw_address)
        record = await asyncio.to_thread(self.ledger.lookup, address)
        return evaluate_eligibility(record, self.clock(), self.cooldown)

    async def claim(self, raw_address: object) -> ClaimResult:
        """
        Send the drip amount to ``raw_address`` if its cooldown has elapsed.

        Raises InvalidAddressError, NotEligibleError, ClaimInProgressError,
        TransferError or PersistenceError.
        """
        address = self._parse(raw_address)
        log = logger.bind(wallet=address)

        async with self._locks.hold(address):
            self._ensure_eligible(
                await asyncio.to_thread(self.ledger.lookup, address), log
            )

            amount_wei = Web3.to_wei(self.amount_eth, "ether")
            opened_at = self.clock()
            opened = await asyncio.to_thread(
                self.ledger.open_intent, address, amount_wei, opened_at
            )
            if not opened:
                log.warning("claim_in_progress")
                raise ClaimInProgressError(address)

            try:
                # Another process may have finished a claim in between.
                self._ensure_eligible(
                    await asyncio.to_thread(self.ledger.lookup, address), log
                )
            except (NotEligibleError, PersistenceError):
                await self._release(address, opened_at, log)
                raise

            return await self._disburse(address, opened_at, log)

    def _ensure_eligible(self, record, log) -> None:
        eligibility = evaluate_eligibility(record, self.clock(), self.cooldown)
        if not eligibility.eligible:
            log.info(
                "claim_not_eligible",
                next_claim_time=eligibility.next_claim_time.isoformat(),
            )
            raise NotEligibleError(
                next_claim_time=eligibility.next_claim_time,
                last_claim_time=eligibility.last_claim_time,
            )

    async def _disburse(self, address: str, opened_at: datetime, log) -> ClaimResult:
        async def attach(tx_hash: str) -> None:
            await asyncio.to_thread(
                self.ledger.attach_intent_tx,
                address,
                tx_hash,
                opened_at=opened_at,
                now=self.clock(),
            )

        try:
            receipt = await self.transfer.send(address, self.amount_eth, on_signed=attach)
        except TransferError as e:
            log.error(
                "claim_transfer_failed",
                error=str(e),
                broadcast=e.broadcast,
                tx_hash=e.tx_hash,
            )
            if not e.broadcast or isinstance(e, TransferRevertedError):
                await self._release(address, opened_at, log)
            raise
        except PersistenceError:
            # Intent could not be updated before broadcast; nothing was sent.
            await self._release(address, opened_at, log)
            raise

        now = self.clock()
        try:
            await asyncio.to_thread(
                self.ledger.record_claim, address, now, receipt.tx_hash
            )
        except PersistenceError:
            log.error(
                "claim_record_failed_after_transfer",
                tx_hash=receipt.tx_hash,
                action="left pending for reconciliation",
            )
            raise

        next_claim = now + self.cooldown
        log.info(
            "claim_succeeded",
            tx_hash=receipt.tx_hash,
            amount_eth=str(self.amount_eth),
            next_claim_time=next_claim.isoformat(),
        )
        return ClaimResult(
            tx_hash=receipt.tx_hash,
            amount_eth=self.amount_eth,
            claimed_at=now,
            next_claim_time=next_claim,
            block_number=receipt.block_number,
        )

    async def _release(self, address: str, opened_at: datetime, log) -> None:
        try:
            await asyncio.to_thread(self.ledger.fail_intent, address, opened_at)
        except PersistenceError:
            log.error("intent_release_failed", action="left pending for reconciliation")
