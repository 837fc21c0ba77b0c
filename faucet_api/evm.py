"""
EVM client for the disbursing account.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import structlog
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, TransactionNotFound, Web3RPCError
from web3.types import TxReceipt

from .config import Settings
from .errors import (
    FaucetError,
    InsufficientFundsError,
    InvalidRecipientError,
    TransferNetworkError,
    TransferRevertedError,
    TransferTimeoutError,
)

logger = structlog.get_logger()

# Applied to every gas estimate.
GAS_MARGIN_PERCENT = 120

STATUS_CONFIRMED = "confirmed"
STATUS_REVERTED = "reverted"
STATUS_PENDING = "pending"
STATUS_UNKNOWN = "unknown"


@dataclass
class TransferReceipt:
    """A confirmed transfer."""

    tx_hash: str
    block_number: int
    sender: str
    recipient: str
    amount_eth: Decimal
    gas_used: Optional[int] = None


@dataclass
class TransferStatus:
    """What the network knows about a transaction hash."""

    state: str  # "confirmed", "reverted", "pending", "unknown"
    block_number: Optional[int] = None


OnSigned = Callable[[str], Awaitable[None]]


class TransferClient:
    """
    Async client that sends ETH from the faucet account.

    Submissions (nonce allocation through broadcast) go through a single
    lock so concurrent sends never share a nonce. Waiting for the receipt
    happens outside the lock.
    """

    def __init__(self, settings: Settings, w3: Optional[AsyncWeb3] = None):
        self.settings = settings
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(settings.rpc_url))
        self.account = (
            Account.from_key(settings.private_key) if settings.private_key else None
        )
        self.rpc_timeout = settings.rpc_timeout_seconds
        self.confirmation_timeout = settings.confirmation_timeout_seconds
        self._submit_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        """Get faucet account address."""
        if not self.account:
            raise ValueError("No private key configured")
        return self.account.address

    async def _rpc(self, call: Awaitable[Any]) -> Any:
        """Await one RPC round trip with a timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self.rpc_timeout)
        except (FaucetError, TransactionNotFound):
            raise
        except asyncio.TimeoutError as e:
            raise TransferNetworkError("RPC request timed out") from e
        except Exception as e:
            raise TransferNetworkError(f"RPC request failed: {e}") from e

    async def check_connection(self) -> bool:
        """Check if the EVM RPC is reachable."""
        try:
            chain_id = await self._rpc(self.w3.eth.chain_id)
        except TransferNetworkError as e:
            logger.warning("evm_connection_failed", rpc_url=self.settings.rpc_url, error=str(e))
            return False

        logger.info("evm_connected", chain_id=chain_id)
        return True

    async def get_balance_wei(self) -> int:
        return await self._rpc(self.w3.eth.get_balance(self.address))

    async def get_balance(self) -> Decimal:
        """Faucet balance in ETH."""
        balance = await self.get_balance_wei()
        return Decimal(Web3.from_wei(balance, "ether"))

    async def send(
        self,
        to: str,
        amount_eth: Decimal,
        on_signed: Optional[OnSigned] = None,
    ) -> TransferReceipt:
        """
        Send ``amount_eth`` to ``to`` and wait for one confirmation.

        ``on_signed`` is awaited with the transaction hash after signing and
        before broadcast; if it raises, nothing is sent.
        """
        if not Web3.is_address(to):
            raise InvalidRecipientError("Invalid recipient address")
        recipient = Web3.to_checksum_address(to)
        value = Web3.to_wei(amount_eth, "ether")
        sender = self.address

        async with self._submit_lock:
            balance = await self.get_balance_wei()
            logger.debug("faucet_balance", balance_wei=balance)
            if balance < value:
                raise InsufficientFundsError("Insufficient funds in faucet wallet")

            gas_estimate = await self._rpc(
                self.w3.eth.estimate_gas({"from": sender, "to": recipient, "value": value})
            )
            nonce = await self._rpc(self.w3.eth.get_transaction_count(sender, "pending"))
            gas_price = await self._rpc(self.w3.eth.gas_price)

            tx = {
                "chainId": self.settings.chain_id,
                "nonce": nonce,
                "to": recipient,
                "value": value,
                "gas": gas_estimate * GAS_MARGIN_PERCENT // 100,
                "gasPrice": gas_price,
            }
            signed = self.account.sign_transaction(tx)
            tx_hash = Web3.to_hex(signed.hash)

            if on_signed is not None:
                await on_signed(tx_hash)

            try:
                await asyncio.wait_for(
                    self.w3.eth.send_raw_transaction(signed.raw_transaction),
                    timeout=self.rpc_timeout,
                )
            except (ValueError, Web3RPCError) as e:
                # The node answered and rejected the transaction.
                raise TransferNetworkError(f"Transaction rejected: {e}", tx_hash=tx_hash) from e
            except Exception as e:
                raise TransferNetworkError(
                    f"Broadcast failed: {e}", broadcast=True, tx_hash=tx_hash
                ) from e

        logger.info(
            "transfer_sent",
            tx_hash=tx_hash,
            to=recipient,
            amount_eth=str(amount_eth),
            nonce=nonce,
            gas=tx["gas"],
        )

        try:
            receipt: TxReceipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout
            )
        except TimeExhausted as e:
            logger.warning("transfer_confirmation_timeout", tx_hash=tx_hash)
            raise TransferTimeoutError(
                "Timed out waiting for confirmation", broadcast=True, tx_hash=tx_hash
            ) from e
        except Exception as e:
            raise TransferNetworkError(
                f"Failed waiting for receipt: {e}", broadcast=True, tx_hash=tx_hash
            ) from e

        if receipt["status"] != 1:
            logger.error("transfer_reverted", tx_hash=tx_hash)
            raise TransferRevertedError("Transaction reverted", broadcast=True, tx_hash=tx_hash)

        logger.info(
            "transfer_confirmed",
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
        )
        return TransferReceipt(
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            sender=sender,
            recipient=recipient,
            amount_eth=amount_eth,
            gas_used=receipt["gasUsed"],
        )

    async def get_transfer_status(self, tx_hash: str) -> TransferStatus:
        """Look up a previously signed transfer."""
        try:
            receipt = await self._rpc(self.w3.eth.get_transaction_receipt(tx_hash))
        except TransactionNotFound:
            receipt = None

        if receipt is not None:
            state = STATUS_CONFIRMED if receipt["status"] == 1 else STATUS_REVERTED
            return TransferStatus(state=state, block_number=receipt["blockNumber"])

        try:
            await self._rpc(self.w3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return TransferStatus(state=STATUS_UNKNOWN)
        return TransferStatus(state=STATUS_PENDING)
