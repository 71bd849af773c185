"""
Unit tests for core/filters.py.

Tests cover the destination filter and the receipt-based mined-state guard
(pending, mined, failed and timed-out receipt lookups).
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest
from web3.exceptions import TransactionNotFound

from shared.types import ReceiptCheck
from tests.conftest import SAMPLE_ORACLE_ADDRESS, SAMPLE_OTHER_ADDRESS, make_tx

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def guard(mock_w3, mock_config_loader):
    with (
        patch("core.filters.get_config", return_value=mock_config_loader),
        patch("core.filters.setup_module_logger") as mock_logger,
    ):
        mock_logger.return_value = MagicMock()

        from core.filters import MinedStateGuard

        return MinedStateGuard(mock_w3)


# ---------------------------------------------------------------------------
# A. Destination filter
# ---------------------------------------------------------------------------


class TestIsToOracle:

    def test_matching_destination(self):
        from core.filters import is_to_oracle

        assert is_to_oracle(make_tx(to=SAMPLE_ORACLE_ADDRESS), SAMPLE_ORACLE_ADDRESS)

    def test_case_insensitive(self):
        from core.filters import is_to_oracle

        assert is_to_oracle(make_tx(to=SAMPLE_ORACLE_ADDRESS.lower()), SAMPLE_ORACLE_ADDRESS)

    def test_other_destination(self):
        from core.filters import is_to_oracle

        assert not is_to_oracle(make_tx(to=SAMPLE_OTHER_ADDRESS), SAMPLE_ORACLE_ADDRESS)

    def test_contract_creation(self):
        from core.filters import is_to_oracle

        assert not is_to_oracle(make_tx(to=None), SAMPLE_ORACLE_ADDRESS)


# ---------------------------------------------------------------------------
# B. Mined-state guard
# ---------------------------------------------------------------------------


class TestMinedStateGuard:

    async def test_no_receipt_is_pending(self, guard, mock_w3):
        mock_w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")

        assert await guard.check(make_tx()) is ReceiptCheck.PENDING
        assert await guard.is_pending(make_tx())

    async def test_none_receipt_is_pending(self, guard, mock_w3):
        mock_w3.eth.get_transaction_receipt.return_value = None
        assert await guard.check(make_tx()) is ReceiptCheck.PENDING

    async def test_receipt_is_mined(self, guard, mock_w3):
        mock_w3.eth.get_transaction_receipt.return_value = {"blockNumber": 19_000_000, "status": 1}

        assert await guard.check(make_tx()) is ReceiptCheck.MINED
        assert not await guard.is_pending(make_tx())

    async def test_query_error_rejects(self, guard, mock_w3):
        mock_w3.eth.get_transaction_receipt.side_effect = ConnectionError("rpc down")

        assert await guard.check(make_tx()) is ReceiptCheck.QUERY_FAILED
        assert not await guard.is_pending(make_tx())

    async def test_query_timeout_rejects(self, mock_w3):
        async def slow_receipt(_):
            await asyncio.sleep(10)

        mock_w3.eth.get_transaction_receipt.side_effect = slow_receipt
        with patch("core.filters.setup_module_logger"):
            from core.filters import MinedStateGuard

            fast_guard = MinedStateGuard(mock_w3, receipt_timeout=0.01)

        assert await fast_guard.check(make_tx()) is ReceiptCheck.QUERY_FAILED

    async def test_queries_by_hash(self, guard, mock_w3):
        mock_w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        tx = make_tx(tx_hash="0x" + "12" * 32)

        await guard.check(tx)

        mock_w3.eth.get_transaction_receipt.assert_awaited_once_with(tx.hash)
