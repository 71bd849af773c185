"""
Shared data types for the Chainlink mempool watcher.

Centralized dataclasses and enums used across all modules.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from hexbytes import HexBytes
from web3 import Web3

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ReceiptCheck(Enum):
    PENDING = "pending"  # no receipt: still in the mempool
    MINED = "mined"  # receipt found: too late to act
    QUERY_FAILED = "query_failed"  # receipt lookup errored or timed out


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_int(value: Any) -> int | None:
    """Normalize a JSON-RPC quantity (hex string or int) to int."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _to_hex_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return HexBytes(value).to_0x_hex()
    return str(value)


def _to_checksum(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        value = HexBytes(value).to_0x_hex()
    return Web3.to_checksum_address(value)


# ---------------------------------------------------------------------------
# Oracle Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Oracle:
    """A watched OffchainAggregator: the asset it prices and its contract address."""

    asset: str
    address: str  # checksummed

    @classmethod
    def create(cls, asset: str, address: str) -> Oracle:
        return cls(asset=asset, address=Web3.to_checksum_address(address))


@dataclass(frozen=True)
class TokenData:
    """Aave reserve entry as returned by getAllReservesTokens()."""

    symbol: str
    token_address: str


# ---------------------------------------------------------------------------
# Mempool Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PendingTransaction:
    hash: str
    to: str | None  # None for contract creation
    input: bytes
    transaction_type: int | None
    gas_price: int | None
    max_fee_per_gas: int | None
    max_priority_fee_per_gas: int | None
    nonce: int | None = None
    sender: str | None = None

    @classmethod
    def from_rpc(cls, tx: Mapping[str, Any]) -> PendingTransaction:
        """
        Build from an eth_getTransactionByHash result.

        Accepts both a web3 AttributeDict (ints, HexBytes) and a raw JSON-RPC
        dict from an eth_subscription notification (hex strings).
        """
        raw_input = tx.get("input", tx.get("data", b""))
        if isinstance(raw_input, str):
            raw_input = HexBytes(raw_input)
        return cls(
            hash=_to_hex_str(tx["hash"]),
            to=_to_checksum(tx.get("to")),
            input=bytes(raw_input),
            transaction_type=_to_int(tx.get("type")),
            gas_price=_to_int(tx.get("gasPrice")),
            max_fee_per_gas=_to_int(tx.get("maxFeePerGas")),
            max_priority_fee_per_gas=_to_int(tx.get("maxPriorityFeePerGas")),
            nonce=_to_int(tx.get("nonce")),
            sender=_to_checksum(tx.get("from")),
        )


@dataclass(frozen=True)
class DecodedReport:
    """Arguments of an OffchainAggregator transmit() call."""

    report: bytes
    rs: tuple[bytes, ...]
    ss: tuple[bytes, ...]
    raw_vs: bytes


@dataclass(frozen=True)
class PricePrediction:
    new_price: int  # uint256 median observation
    transaction: PendingTransaction
    asset: str = ""
    oracle_address: str = ""
    observed_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset": self.asset,
            "oracle_address": self.oracle_address,
            "new_price": self.new_price,
            "tx_hash": self.transaction.hash,
            "transaction_type": self.transaction.transaction_type,
            "gas_price": self.transaction.gas_price,
            "max_fee_per_gas": self.transaction.max_fee_per_gas,
            "max_priority_fee_per_gas": self.transaction.max_priority_fee_per_gas,
            "observed_at": self.observed_at,
        }
