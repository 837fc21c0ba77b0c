"""
Shared fixtures: a SQLite ledger, a controllable clock and a fake
transfer client that never touches a network.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Awaitable, Callable, Optional

import pytest

from faucet_api.claim import ClaimOrchestrator
from faucet_api.db import ClaimLedger
from faucet_api.errors import TransferError
from faucet_api.evm import STATUS_UNKNOWN, TransferReceipt, TransferStatus

FAUCET_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
T0 = datetime(2026, 10, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeTransferClient:
    """
    Stands in for TransferClient.

    ``fail_with`` makes the next sends raise; the signing hook runs first so
    the intent gets a tx hash just like a real broadcast attempt.
    """

    def __init__(self, balance: Decimal = Decimal("10")):
        self.balance = balance
        self.sent: list[tuple[str, Decimal, str]] = []
        self.fail_with: Optional[TransferError] = None
        self.connected = True
        self.statuses: dict[str, TransferStatus] = {}
        # When set, send() blocks before signing until the gate opens.
        self.gate: Optional[asyncio.Event] = None
        self.waiting = False
        self._counter = 0

    async def send(
        self,
        to: str,
        amount_eth: Decimal,
        on_signed: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> TransferReceipt:
        self._counter += 1
        tx_hash = "0x" + f"{self._counter:064x}"
        if self.gate is not None:
            self.waiting = True
            await self.gate.wait()
        if on_signed is not None:
            await on_signed(tx_hash)
        # Let other claims run, as a real confirmation wait would.
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((to, amount_eth, tx_hash))
        self.balance -= amount_eth
        return TransferReceipt(
            tx_hash=tx_hash,
            block_number=100 + self._counter,
            sender=FAUCET_ADDRESS,
            recipient=to,
            amount_eth=amount_eth,
            gas_used=21000,
        )

    async def get_balance(self) -> Decimal:
        return self.balance

    async def check_connection(self) -> bool:
        return self.connected

    async def get_transfer_status(self, tx_hash: str) -> TransferStatus:
        return self.statuses.get(tx_hash, TransferStatus(state=STATUS_UNKNOWN))


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "faucet.db"


@pytest.fixture
def ledger(db_path: Path):
    ledger = ClaimLedger(f"sqlite:///{db_path}")
    yield ledger
    ledger.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transfer() -> FakeTransferClient:
    return FakeTransferClient()


@pytest.fixture
def orchestrator(ledger, transfer, clock) -> ClaimOrchestrator:
    return ClaimOrchestrator(ledger, transfer, clock=clock)
