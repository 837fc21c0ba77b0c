"""
Reconciliation of claim intents left pending.

An intent stays pending when the process died mid-claim, when the
confirmation wait timed out, or when the ledger write failed after a
confirmed transfer. Each pass asks the network what actually happened.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog

from .db import ClaimIntent, ClaimLedger
from .eligibility import utcnow
from .errors import PersistenceError, TransferNetworkError
from .evm import STATUS_CONFIRMED, STATUS_PENDING, STATUS_REVERTED, TransferClient

logger = structlog.get_logger()


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    confirmed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    still_pending: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.confirmed) + len(self.failed) + len(self.still_pending)


@dataclass
class ReconcilerState:
    """Current reconciler state."""

    is_running: bool = False
    last_run_time: Optional[datetime] = None
    intents_confirmed: int = 0
    intents_failed: int = 0


class Reconciler:
    """
    Settles pending intents:
    - no tx hash: nothing was broadcast, mark failed (a claim still queued
      behind it finds the intent released and aborts before broadcast)
    - mined with status 1: write the claim record
    - mined with status 0, or unknown to the node: mark failed
    - seen but not mined: leave pending
    """

    def __init__(
        self,
        ledger: ClaimLedger,
        transfer: TransferClient,
        grace_period: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ledger = ledger
        self.transfer = transfer
        self.grace_period = grace_period
        self.clock = clock
        self.state = ReconcilerState()

    async def run_once(self) -> ReconcileReport:
        report = ReconcileReport()
        intents = await asyncio.to_thread(self.ledger.pending_intents)
        cutoff = self.clock() - self.grace_period

        for intent in intents:
            if intent.updated_at > cutoff:
                # Attaching the tx hash rewrites updated_at just before broadcast.
                report.still_pending.append(intent.wallet_address)
                continue
            try:
                await self._settle(intent, report)
            except (TransferNetworkError, PersistenceError) as e:
                logger.error(
                    "intent_reconcile_error",
                    wallet=intent.wallet_address,
                    tx_hash=intent.transaction_hash,
                    error=str(e),
                )
                report.still_pending.append(intent.wallet_address)

        self.state.last_run_time = self.clock()
        self.state.intents_confirmed += len(report.confirmed)
        self.state.intents_failed += len(report.failed)

        logger.info(
            "reconcile_complete",
            confirmed=len(report.confirmed),
            failed=len(report.failed),
            still_pending=len(report.still_pending),
        )
        return report

    async def _settle(self, intent: ClaimIntent, report: ReconcileReport) -> None:
        address = intent.wallet_address

        if intent.transaction_hash is None:
            await self._release(intent, report)
            return

        status = await self.transfer.get_transfer_status(intent.transaction_hash)

        if status.state == STATUS_CONFIRMED:
            await asyncio.to_thread(
                self.ledger.record_claim,
                address,
                intent.opened_at,
                intent.transaction_hash,
            )
            logger.info(
                "intent_reconciled_confirmed",
                wallet=address,
                tx_hash=intent.transaction_hash,
                block_number=status.block_number,
            )
            report.confirmed.append(address)
        elif status.state == STATUS_PENDING:
            report.still_pending.append(address)
        else:
            if status.state == STATUS_REVERTED:
                logger.warning("intent_reverted", wallet=address, tx_hash=intent.transaction_hash)
            await self._release(intent, report)

    async def _release(self, intent: ClaimIntent, report: ReconcileReport) -> None:
        if await asyncio.to_thread(self.ledger.release_intent, intent):
            report.failed.append(intent.wallet_address)
        else:
            # Its claim moved it on meanwhile; look again next pass.
            report.still_pending.append(intent.wallet_address)

    async def run(self, interval_seconds: float) -> None:
        """Reconcile continuously until stopped."""
        self.state.is_running = True
        logger.info("reconciler_starting", interval=interval_seconds)

        while self.state.is_running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("reconcile_cycle_error", error=str(e))

            await asyncio.sleep(interval_seconds)

    def stop(self) -> None:
        """Stop the reconciler."""
        self.state.is_running = False
        logger.info("reconciler_stopping")
