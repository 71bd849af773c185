"""
Destination filter and mined-state guard for pending transactions.

The filter is a pure predicate on the transaction's destination. The guard
asks the node for a receipt: a transaction that already has one is mined and
too late to act on, and a failed lookup is treated the same way. The check
is advisory only; a transaction may still be mined between the check and the
moment a prediction is delivered.

Usage:
    guard = MinedStateGuard(w3)
    if is_to_oracle(tx, oracle.address) and await guard.is_pending(tx):
        ...
"""

from __future__ import annotations

import asyncio

from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.constants import DEFAULT_RECEIPT_TIMEOUT_SECONDS
from shared.types import PendingTransaction, ReceiptCheck


def is_to_oracle(tx: PendingTransaction, oracle_address: str) -> bool:
    """True when the transaction is addressed to the oracle contract."""
    if tx.to is None:
        return False
    return tx.to.lower() == oracle_address.lower()


class MinedStateGuard:
    """Receipt-based check that a candidate transaction is still pending."""

    def __init__(self, w3: AsyncWeb3, receipt_timeout: float | None = None) -> None:
        self._w3 = w3
        if receipt_timeout is None:
            receipt_timeout = get_config().get_mempool_config().get(
                "receipt_timeout_seconds", DEFAULT_RECEIPT_TIMEOUT_SECONDS
            )
        self._receipt_timeout = float(receipt_timeout)
        self._logger = setup_module_logger(
            "mined_state_guard", "mined_state_guard.log", module_folder="Pipeline_Logs"
        )

    async def check(self, tx: PendingTransaction) -> ReceiptCheck:
        """Classify a transaction as pending, mined, or unverifiable."""
        try:
            receipt = await asyncio.wait_for(
                self._w3.eth.get_transaction_receipt(tx.hash),
                timeout=self._receipt_timeout,
            )
        except TransactionNotFound:
            return ReceiptCheck.PENDING
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._logger.warning("Error during retrieval of receipt for %s: %s", tx.hash, e)
            return ReceiptCheck.QUERY_FAILED

        if receipt is None:
            return ReceiptCheck.PENDING
        self._logger.info(
            "Found receipt for %s (block %s), skipping",
            tx.hash,
            receipt.get("blockNumber"),
        )
        return ReceiptCheck.MINED

    async def is_pending(self, tx: PendingTransaction) -> bool:
        return await self.check(tx) is ReceiptCheck.PENDING
