"""Transaction confirmation tracking.

Polling for a submitted transaction runs in its own task. Callers waiting on
a handle may be cancelled without stopping the poll, so an abandoned
transaction keeps being observed until it settles.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

from vaultflow.chains import get_explorer_tx_url

logger = logging.getLogger(__name__)


class TransactionState(str, Enum):
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


@dataclass
class TransactionHandle:
    """A submitted transaction. Mutated only by TransactionWatcher."""

    chain_id: int
    tx_hash: str
    state: TransactionState = TransactionState.SUBMITTED
    block_number: Optional[int] = None

    @property
    def settled(self) -> bool:
        return self.state != TransactionState.SUBMITTED

    @property
    def confirmed(self) -> bool:
        return self.state == TransactionState.CONFIRMED

    def to_dict(self) -> dict:
        return {
            "chain_id": self.chain_id,
            "tx_hash": self.tx_hash,
            "state": self.state.value,
            "block_number": self.block_number,
            "explorer_url": get_explorer_tx_url(self.chain_id, self.tx_hash),
        }


class ReceiptSource(Protocol):
    async def get_receipt(self, chain_id: int, tx_hash: str) -> Optional[dict]:
        """Receipt for a mined transaction, None while pending."""


class Web3ReceiptSource:
    """Receipt lookups through AsyncWeb3, one provider per chain."""

    def __init__(self, providers: dict[int, Any]):
        self.providers = providers

    async def get_receipt(self, chain_id: int, tx_hash: str) -> Optional[dict]:
        from web3.exceptions import TransactionNotFound

        w3 = self.providers[chain_id]
        try:
            receipt = await w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt is not None else None


class TransactionWatcher:
    """Tracks submitted transactions until they are confirmed or reverted."""

    def __init__(
        self,
        receipt_source: ReceiptSource,
        poll_interval: float = 2.0,
        settled_history: int = 100,
    ):
        self.receipt_source = receipt_source
        self.poll_interval = poll_interval
        self.settled_history = settled_history
        # Unsettled handles only
        self._handles: dict[str, TransactionHandle] = {}
        # Most recently settled handles, oldest first
        self._settled: OrderedDict[str, TransactionHandle] = OrderedDict()
        self._polls: dict[str, asyncio.Task] = {}

    def track(self, chain_id: int, tx_hash: str) -> TransactionHandle:
        """Start observing a transaction. Tracking the same hash twice is a no-op."""
        handle = self.get(tx_hash)
        if handle is None:
            handle = TransactionHandle(chain_id=chain_id, tx_hash=tx_hash)
            self._handles[tx_hash] = handle
            logger.info(f"Tracking transaction {tx_hash} on chain {chain_id}")
        if not handle.settled and tx_hash not in self._polls:
            self._polls[tx_hash] = asyncio.create_task(self._poll(handle))
        return handle

    async def wait(self, handle: TransactionHandle) -> TransactionHandle:
        """Suspend until the transaction settles.

        Cancelling the caller does not cancel the underlying poll.
        """
        if handle.settled:
            return handle
        task = self._polls.get(handle.tx_hash)
        if task is None:
            handle = self.track(handle.chain_id, handle.tx_hash)
            task = self._polls[handle.tx_hash]
        await asyncio.shield(task)
        return handle

    def pending(self) -> list[TransactionHandle]:
        return [h for h in self._handles.values() if not h.settled]

    def get(self, tx_hash: str) -> Optional[TransactionHandle]:
        return self._handles.get(tx_hash) or self._settled.get(tx_hash)

    def _retire(self, handle: TransactionHandle) -> None:
        self._handles.pop(handle.tx_hash, None)
        self._settled[handle.tx_hash] = handle
        while len(self._settled) > self.settled_history:
            self._settled.popitem(last=False)

    async def _poll(self, handle: TransactionHandle) -> None:
        try:
            while True:
                try:
                    receipt = await self.receipt_source.get_receipt(
                        handle.chain_id, handle.tx_hash
                    )
                except Exception as e:
                    # Transient RPC failure, keep polling
                    logger.warning(f"Receipt lookup failed for {handle.tx_hash}: {e}")
                    receipt = None

                if receipt is not None:
                    handle.block_number = receipt.get("blockNumber")
                    if receipt.get("status") == 0:
                        handle.state = TransactionState.REVERTED
                        logger.warning(f"Transaction {handle.tx_hash} reverted")
                    else:
                        handle.state = TransactionState.CONFIRMED
                        logger.info(
                            f"Transaction {handle.tx_hash} confirmed in block {handle.block_number}"
                        )
                    self._retire(handle)
                    return

                await asyncio.sleep(self.poll_interval)
        finally:
            self._polls.pop(handle.tx_hash, None)

    async def aclose(self) -> None:
        """Stop all polling (process shutdown only)."""
        tasks = list(self._polls.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
