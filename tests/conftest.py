"""
Shared pytest configuration and fixtures for mempool watcher tests.

Provides common helpers used across both unit and integration test suites.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3 import Web3
from websockets.exceptions import ConnectionClosedError

from core.transmit_decoder import encode_transmit
from shared.types import Oracle, PendingTransaction

# ---------------------------------------------------------------------------
# Sample addresses
# ---------------------------------------------------------------------------

# OffchainAggregator under test
SAMPLE_ORACLE_ADDRESS = Web3.to_checksum_address("0x986b5e1e1755e3c2440e960477f25201b0a8bbd4")
SAMPLE_OTHER_ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
SAMPLE_TX_HASH = "0x" + "ab" * 32

SAMPLE_ORACLE = Oracle.create("USDC", SAMPLE_ORACLE_ADDRESS)


# ---------------------------------------------------------------------------
# Report / transaction builders
# ---------------------------------------------------------------------------


def word(value: int) -> bytes:
    """One 32-byte big-endian word."""
    return value.to_bytes(32, "big")


def build_report(observations: list[int], header_words: int = 4) -> bytes:
    """Report bytes laid out as header words followed by observation words."""
    header = b"".join(word(i + 1) for i in range(header_words))
    return header + b"".join(word(o) for o in observations)


def build_transmit_input(observations: list[int], header_words: int = 4) -> bytes:
    return encode_transmit(build_report(observations, header_words))


def make_tx(
    to: str | None = SAMPLE_ORACLE_ADDRESS,
    input: bytes = b"",
    tx_hash: str = SAMPLE_TX_HASH,
    **kwargs,
) -> PendingTransaction:
    """PendingTransaction with sensible defaults for the fee fields."""
    defaults = {
        "transaction_type": 2,
        "gas_price": None,
        "max_fee_per_gas": 50_000_000_000,
        "max_priority_fee_per_gas": 2_000_000_000,
    }
    defaults.update(kwargs)
    return PendingTransaction(hash=tx_hash, to=to, input=input, **defaults)


# ---------------------------------------------------------------------------
# Standard mock configs (can be overridden per test via fixture params)
# ---------------------------------------------------------------------------

STANDARD_WEBSOCKET_CONFIG = {
    "connection": {
        "ping_interval_seconds": 20,
        "ping_timeout_seconds": 1,
        "close_timeout_seconds": 1,
        "max_message_size_bytes": 10 * 1024 * 1024,
    },
    "timeouts": {
        "subscription_response_timeout_seconds": 1,
        "message_receive_timeout_seconds": 1,
    },
    "reconnection": {
        "disconnect_delay_seconds": 0,
        "base_delay_seconds": 0,
        "max_delay_seconds": 0,
        "jitter_max_seconds": 0,
    },
}

STANDARD_MEMPOOL_CONFIG = {
    "report_header_words": 4,
    "channel_capacity": 1,
    "full_transactions": False,
    "receipt_timeout_seconds": 1.0,
}


# ---------------------------------------------------------------------------
# Config loader fixture (patched singleton)
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config_loader():
    """
    Provide a mock ConfigLoader that returns standard configs.

    Usage in tests:
        def test_something(mock_config_loader):
            mock_config_loader.get_mempool_config.return_value = {...}
    """
    loader = MagicMock()
    loader.get_websocket_config.return_value = STANDARD_WEBSOCKET_CONFIG.copy()
    loader.get_mempool_config.return_value = STANDARD_MEMPOOL_CONFIG.copy()
    loader.get_oracles_config.return_value = {"assets": [], "static": []}
    loader.get_chain_config.return_value = {
        "chain_id": 1,
        "rpc": {"http_url": "https://eth.example", "ws_url": "wss://eth.example"},
        "contracts": {
            "aave_protocol_data_provider": "0x057835Ad21a177dbdd3090bB1CAE03EaCF78Fc6d",
            "aave_oracle": "0xA50ba011c48153De246E5192C8f9258A2ba79Ca9",
        },
    }
    loader.get_app_config.return_value = {"logging": {"log_dir": "logs"}}
    loader.get_abi.return_value = []
    return loader


# ---------------------------------------------------------------------------
# AsyncWeb3 fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_w3():
    """AsyncWeb3 stand-in with the eth methods the watcher uses."""
    w3 = MagicMock()
    w3.eth = MagicMock()
    w3.eth.get_transaction = AsyncMock()
    w3.eth.get_transaction_receipt = AsyncMock()
    return w3


# ---------------------------------------------------------------------------
# Fake websocket (stand-in for websockets.connect)
# ---------------------------------------------------------------------------


def notification(result) -> str:
    """An eth_subscription frame carrying `result`."""
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "method": "eth_subscription",
            "params": {"subscription": "0xsub", "result": result},
        }
    )


class FakeWebSocket:
    """
    Replays scripted frames. Once the script runs out the connection
    closes, or with hold_open=True it stays idle until the test ends.
    """

    def __init__(self, frames: list[str], error: dict | None = None, hold_open: bool = False) -> None:
        self._frames = list(frames)
        self._error = error
        self._hold_open = hold_open
        self._idle = asyncio.Event()
        self.sent: list[dict] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def send(self, raw: str) -> None:
        request = json.loads(raw)
        self.sent.append(request)
        if self._error is not None:
            ack = {"jsonrpc": "2.0", "id": request["id"], "error": self._error}
        else:
            ack = {"jsonrpc": "2.0", "id": request["id"], "result": "0xsub"}
        self._frames.insert(0, json.dumps(ack))

    async def recv(self) -> str:
        if not self._frames:
            if self._hold_open:
                await self._idle.wait()
            raise ConnectionClosedError(None, None)
        return self._frames.pop(0)

    async def ping(self):
        pong = asyncio.get_running_loop().create_future()
        pong.set_result(None)
        return pong


class FakeConnect:
    """Hands out one scripted item per connect attempt; exceptions are raised."""

    def __init__(self, *attempts) -> None:
        self._attempts = list(attempts)
        self.calls: list[tuple[str, dict]] = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        attempt = self._attempts.pop(0)
        if isinstance(attempt, Exception):
            raise attempt
        return attempt
